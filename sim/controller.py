"""Glue between a genome's network and the car model.

The network sees the five sensor readings followed by the car's speed
normalized to ``[0, 1]`` by the model's top speed.
"""

from __future__ import annotations

from typing import List

from evo.genome import Genome
from evo.network import Controls, FeedForwardNetwork
from fitness.car_fitness import SensorReading

INPUT_COUNT = 6


class NEATCarController:
    def __init__(self, genome: Genome, max_speed: float = 10.0) -> None:
        self.genome = genome
        self.car_id = genome.id
        self.max_speed = max_speed
        self.network = FeedForwardNetwork.create(genome)

    def inputs(self, readings: SensorReading, speed: float) -> List[float]:
        speed_normalized = max(0.0, min(1.0, speed / self.max_speed))
        return readings.as_list() + [speed_normalized]

    def controls(self, readings: SensorReading, speed: float) -> Controls:
        return self.network.controls(self.inputs(readings, speed))
