"""Headless race host.

:class:`RaceEnv` runs one generation: every genome drives its own car on the
same track, all cars advancing once per tick in a fixed order. A car retires
when it leaves the corridor, stops making progress, or completes a lap; the
rest run until ``max_steps``. Time is simulated, so fitness trackers read a
:class:`SimClock` instead of the wall clock.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, TextIO

from evo.genome import Genome
from evo.network import Controls
from fitness.car_fitness import FitnessMetrics, FitnessTracker, FitnessWeights, SensorReading
from fitness.track_distance import TrackDistanceTracker

from .car import CarState, SimpleCarModel
from .controller import NEATCarController
from .sensors import DEFAULT_RANGE, RaySensors, corridor_walls
from .track_io import TrackConfig

TRACE_FORMAT = "racing-neat.trace.v1"


class SimClock:
    """Manually advanced clock, callable like :func:`time.monotonic`."""

    def __init__(self, start: float = 0.0) -> None:
        self.time = start

    def __call__(self) -> float:
        return self.time

    def advance(self, dt: float) -> None:
        self.time += dt


@dataclass
class CarRun:
    controller: NEATCarController
    state: CarState
    tracker: FitnessTracker
    active: bool = True
    reason: Optional[str] = None
    steps: int = 0
    fitness: float = 0.0


@dataclass
class EpisodeResult:
    car_id: str
    fitness: float
    metrics: FitnessMetrics
    steps: int
    reason: str
    lap_completed: bool
    checkpoints: int = field(init=False)

    def __post_init__(self) -> None:
        self.checkpoints = self.metrics.checkpoints_reached


class RaceEnv:
    """Runs whole generations of cars on one track.

    Args:
        track: Waypoint loop and corridor width.
        max_steps: Tick budget per generation.
        dt: Simulated seconds per tick.
        model: Car dynamics; a default :class:`SimpleCarModel` when omitted.
        sensor_range: Distance mapped to a sensor reading of ``1.0``.
        weights: Scoring constants handed to every fitness tracker.
    """

    def __init__(
        self,
        track: TrackConfig,
        max_steps: int = 1200,
        dt: float = 0.05,
        model: SimpleCarModel | None = None,
        sensor_range: float = DEFAULT_RANGE,
        weights: FitnessWeights | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {max_steps}")
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")
        self.track = track
        self.max_steps = max_steps
        self.dt = dt
        self.model = model or SimpleCarModel()
        self.weights = weights or FitnessWeights()
        self.sensors = RaySensors(corridor_walls(track.waypoints, track.width), max_range=sensor_range)
        self.track_tracker = TrackDistanceTracker(track.waypoints)
        self.clock = SimClock()
        self.step_count = 0

    def _start_run(self, genome: Genome) -> CarRun:
        controller = NEATCarController(genome, max_speed=self.model.max_speed)
        state = CarState(position=self.track.start_position(), rotation=self.track.start_heading())
        tracker = FitnessTracker(
            genome.id,
            state.position,
            self.track.waypoints,
            tracker=self.track_tracker,
            clock=self.clock,
            weights=self.weights,
        )
        return CarRun(controller=controller, state=state, tracker=tracker)

    def _retire(self, run: CarRun, reason: str) -> None:
        run.active = False
        run.reason = reason
        run.fitness = run.tracker.calculate_fitness()

    def _step_car(self, run: CarRun) -> tuple[SensorReading, Controls]:
        readings = self.sensors.read(run.state)
        run.tracker.update_sensor_fitness(readings)
        controls = run.controller.controls(readings, run.state.speed)
        run.tracker.record_steering(controls.steering)

        run.state = self.model.step(run.state, controls, self.dt)
        run.steps += 1
        result = run.tracker.update(run.state.position, run.state.velocity())

        if result.distance_from_track > self.track.width / 2.0:
            run.tracker.record_collision()
            self._retire(run, "collision")
        elif run.tracker.is_lap_completed():
            self._retire(run, "lap_completed")
        elif run.tracker.has_timeout():
            self._retire(run, "timeout")
        return readings, controls

    def run_genomes(
        self,
        genomes: Sequence[Genome],
        trace_path: str | None = None,
        trace_car_id: str | None = None,
    ) -> List[EpisodeResult]:
        """Drive every genome's car and return one result per genome.

        When ``trace_path`` is set, one car (``trace_car_id``, default the
        first genome) is written to a JSONL trace: a metadata line with the
        track, then one record per tick.
        """

        self.clock = SimClock()
        self.step_count = 0
        runs = [self._start_run(genome) for genome in genomes]
        traced = trace_car_id or (genomes[0].id if genomes else None)

        trace_fp: TextIO | None = None
        if trace_path:
            os.makedirs(os.path.dirname(trace_path) or ".", exist_ok=True)
            trace_fp = open(trace_path, "w", encoding="utf-8")
            trace_fp.write(json.dumps({"meta": TRACE_FORMAT, "car_id": traced, "track": self.track.to_payload()}))
            trace_fp.write("\n")

        try:
            while self.step_count < self.max_steps and any(run.active for run in runs):
                self.step_count += 1
                self.clock.advance(self.dt)
                for run in runs:
                    if not run.active:
                        continue
                    readings, controls = self._step_car(run)
                    if trace_fp is not None and run.tracker.car_id == traced:
                        self._log_trace(trace_fp, run, readings, controls)
        finally:
            if trace_fp is not None:
                trace_fp.close()

        results = []
        for run in runs:
            if run.active:
                self._retire(run, "max_steps")
            results.append(
                EpisodeResult(
                    car_id=run.tracker.car_id,
                    fitness=run.fitness,
                    metrics=run.tracker.fitness_metrics(),
                    steps=run.steps,
                    reason=run.reason or "max_steps",
                    lap_completed=run.tracker.is_lap_completed(),
                )
            )
            run.tracker.destroy()
        return results

    def run_generation(self, population, trace_path: str | None = None) -> Dict[str, float]:
        """Evaluate ``population.genomes`` and return ``{car_id: fitness}``."""

        results = self.run_genomes(population.genomes, trace_path=trace_path)
        return {result.car_id: result.fitness for result in results}

    def _log_trace(self, fp: TextIO, run: CarRun, readings: SensorReading, controls: Controls) -> None:
        record = {
            "time": self.clock(),
            "position": list(run.state.position),
            "rotation": run.state.rotation,
            "speed": run.state.speed,
            "sensors": readings.as_list(),
            "controls": controls.to_dict(),
            "checkpoints": run.tracker.metrics.checkpoints_reached,
            "done": not run.active,
            "reason": run.reason,
        }
        fp.write(json.dumps(record))
        fp.write("\n")
