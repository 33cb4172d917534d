"""Per-car fitness accumulation.

One :class:`FitnessTracker` follows one car for one generation run. The host
feeds it positions and velocities every tick, sensor readings, steering
commands and collision events; :meth:`FitnessTracker.calculate_fitness` turns
the accumulated metrics into a single score.
"""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Deque, Dict, List, Optional, Sequence

from .track_distance import TrackDistanceTracker, TrackingResult, Vec3, Waypoint

SPEED_WINDOW = 60
STEERING_WINDOW = 120
CHECKPOINT_RADIUS = 5.0
PROGRESS_EPSILON = 0.1
TIMEOUT_SECONDS = 5.0
MIN_HEADING_SPEED = 0.1

SENSOR_NAMES = ("left", "left_center", "center", "right_center", "right")


@dataclass
class SensorReading:
    """Normalized distances in ``[0, 1]``; ``1.0`` means nothing in range."""

    left: float = 1.0
    left_center: float = 1.0
    center: float = 1.0
    right_center: float = 1.0
    right: float = 1.0

    def as_list(self) -> List[float]:
        return [getattr(self, name) for name in SENSOR_NAMES]

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "SensorReading":
        if len(values) != len(SENSOR_NAMES):
            raise ValueError(f"Expected {len(SENSOR_NAMES)} sensor values, got {len(values)}")
        return cls(*(float(value) for value in values))


@dataclass
class FitnessMetrics:
    distance_traveled: float = 0.0
    time_alive: float = 0.0
    average_speed: float = 0.0
    checkpoints_reached: int = 0
    collisions: int = 0
    backward_movement: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class FitnessWeights:
    distance_scale: float = 1.2
    distance_cap: float = 60.0
    speed_scale: float = 3.0
    speed_cap: float = 10.0
    sensor_cap: float = 8.0
    checkpoint_linear: float = 180.0
    checkpoint_quadratic: float = 40.0
    lap_base: float = 120.0
    lap_floor: float = 40.0
    backward_scale: float = -1.2
    collision_penalty: float = -30.0
    inactivity_multiplier: float = 2.0
    no_checkpoint_cap: float = 1.0
    minimum_fitness: float = 0.1


def inactivity_penalty(seconds_since_progress: float) -> float:
    if seconds_since_progress > 8.0:
        return -8.0
    if seconds_since_progress > 6.0:
        return -4.0
    if seconds_since_progress > 4.0:
        return -1.0
    return 0.0


def score_fitness(
    metrics: FitnessMetrics,
    sensor_bonus: float = 0.0,
    lap_completed: bool = False,
    seconds_since_progress: float = 0.0,
    steering_penalty: float = 0.0,
    weights: FitnessWeights | None = None,
) -> float:
    """Combine metrics into the final score.

    A car that never reached a checkpoint is capped at
    ``weights.no_checkpoint_cap`` so spinning near the start earns nothing,
    and every score is floored at ``weights.minimum_fitness``.
    """

    weights = weights or FitnessWeights()
    checkpoints = metrics.checkpoints_reached

    total = (
        min(metrics.distance_traveled * weights.distance_scale, weights.distance_cap)
        + min(metrics.average_speed * weights.speed_scale, weights.speed_cap)
        + min(sensor_bonus, weights.sensor_cap)
        + checkpoints * weights.checkpoint_linear
        + checkpoints**2 * weights.checkpoint_quadratic
        + metrics.backward_movement * weights.backward_scale
        + metrics.collisions * weights.collision_penalty
        + inactivity_penalty(seconds_since_progress) * weights.inactivity_multiplier
        + steering_penalty
    )
    if lap_completed:
        total += max(weights.lap_base - metrics.time_alive / 2.0, weights.lap_floor)

    if checkpoints == 0:
        total = min(total, weights.no_checkpoint_cap)
    return max(weights.minimum_fitness, total)


class FitnessTracker:
    """Accumulates :class:`FitnessMetrics` for a single car.

    Args:
        car_id: Identifier shared with the track tracker.
        start_position: Where the car spawns.
        waypoints: The track loop, also used for checkpoints.
        tracker: Shared :class:`TrackDistanceTracker`; one is built from
            ``waypoints`` when omitted.
        clock: Returns the current time in seconds. Hosts running simulated
            time pass their own clock.
        weights: Scoring constants.
    """

    def __init__(
        self,
        car_id: str,
        start_position: Vec3,
        waypoints: Sequence[Waypoint],
        tracker: TrackDistanceTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
        weights: FitnessWeights | None = None,
        checkpoint_radius: float = CHECKPOINT_RADIUS,
    ) -> None:
        self.car_id = car_id
        self.waypoints = list(waypoints)
        self.tracker = tracker or TrackDistanceTracker(self.waypoints)
        self.clock = clock
        self.weights = weights or FitnessWeights()
        self.checkpoint_radius = checkpoint_radius
        self.last_result: Optional[TrackingResult] = None
        self.reset(start_position)

    def reset(self, start_position: Vec3) -> None:
        self.metrics = FitnessMetrics()
        self.start_time = self.clock()
        self.last_progress_time = self.start_time
        self.speed_samples: Deque[float] = deque(maxlen=SPEED_WINDOW)
        self.steering_history: Deque[float] = deque(maxlen=STEERING_WINDOW)
        self.steering_penalty = 0.0
        self.sensor_bonus = 0.0
        self.waypoint_times: List[float] = []
        self.current_waypoint_index = 0
        self.lap_completed = False
        self.last_result = None
        self.tracker.reset_car(self.car_id, start_position)

    def update(self, position: Vec3, velocity: Vec3) -> TrackingResult:
        now = self.clock()
        self.metrics.time_alive = now - self.start_time

        speed = math.sqrt(velocity[0] ** 2 + velocity[1] ** 2 + velocity[2] ** 2)
        if speed > MIN_HEADING_SPEED:
            forward = (velocity[0] / speed, velocity[1] / speed, velocity[2] / speed)
        else:
            forward = self._direction_to_next_waypoint(position)

        result = self.tracker.update_car_position(self.car_id, position, forward)
        self.metrics.distance_traveled = result.total_distance
        if result.distance_delta > PROGRESS_EPSILON:
            self.last_progress_time = now
        if result.distance_delta < -PROGRESS_EPSILON:
            self.metrics.backward_movement += abs(result.distance_delta)

        self.speed_samples.append(speed)
        self.metrics.average_speed = sum(self.speed_samples) / len(self.speed_samples)

        self._update_checkpoints(position, now)
        self.last_result = result
        return result

    def update_sensor_fitness(self, readings: SensorReading) -> None:
        values = readings.as_list()
        for value in values:
            if value > 0.7:
                self.sensor_bonus += 0.07
        if readings.center > 0.7:
            self.sensor_bonus += 0.12
        if readings.left < 0.3:
            self.sensor_bonus -= 0.08
        if readings.right < 0.3:
            self.sensor_bonus -= 0.08
        if sum(values) > 4.0:
            self.sensor_bonus += 0.03

    def record_steering(self, steering: float) -> None:
        # Penalise circling: a long run of same-signed steering.
        self.steering_history.append(float(steering))
        if abs(sum(self.steering_history)) > 80.0:
            self.steering_penalty -= 0.5

    def record_collision(self) -> None:
        self.metrics.collisions += 1

    def seconds_since_progress(self) -> float:
        return self.clock() - self.last_progress_time

    def calculate_fitness(self) -> float:
        metrics = FitnessMetrics(**asdict(self.metrics))
        metrics.time_alive = self.clock() - self.start_time
        return score_fitness(
            metrics,
            sensor_bonus=self.sensor_bonus,
            lap_completed=self.lap_completed,
            seconds_since_progress=self.seconds_since_progress(),
            steering_penalty=self.steering_penalty,
            weights=self.weights,
        )

    def has_timeout(self) -> bool:
        return self.seconds_since_progress() > TIMEOUT_SECONDS

    def is_lap_completed(self) -> bool:
        return self.lap_completed

    def fitness_metrics(self) -> FitnessMetrics:
        return FitnessMetrics(**asdict(self.metrics))

    def progress(self) -> float:
        """Checkpoints reached as a percentage of the waypoint count."""

        return self.metrics.checkpoints_reached / len(self.waypoints) * 100.0

    def destroy(self) -> None:
        self.tracker.remove_car(self.car_id)

    def _update_checkpoints(self, position: Vec3, now: float) -> None:
        if self.current_waypoint_index >= len(self.waypoints):
            return
        target = self.waypoints[self.current_waypoint_index]
        distance = math.hypot(position[0] - target.x, position[2] - target.z)
        if distance >= self.checkpoint_radius:
            return

        self.waypoint_times.append(now - self.start_time)
        self.last_progress_time = now
        # The start waypoint is where cars spawn; it is not a checkpoint.
        if self.current_waypoint_index > 0:
            self.metrics.checkpoints_reached += 1
        self.current_waypoint_index += 1
        if self.current_waypoint_index >= len(self.waypoints):
            self.lap_completed = True

    def _direction_to_next_waypoint(self, position: Vec3) -> Vec3:
        if self.current_waypoint_index < len(self.waypoints):
            target = self.waypoints[self.current_waypoint_index]
            dx = target.x - position[0]
            dz = target.z - position[2]
            length = math.hypot(dx, dz)
            if length > 0.0:
                return (dx / length, 0.0, dz / length)
        return (0.0, 0.0, 1.0)
