"""Behaviour diagnostics on top of :class:`FitnessMetrics`.

These do not feed back into evolution; the training CLI uses them to annotate
champion snapshots and to explain why a generation stalls.
"""

from __future__ import annotations

from typing import List

from .car_fitness import FitnessMetrics

MAX_COLLISIONS = 5
MIN_AVERAGE_SPEED = 0.5
MAX_BACKWARD_MOVEMENT = 10.0
MIN_TIME_ALIVE = 5.0


def detect_problematic_behavior(metrics: FitnessMetrics) -> List[str]:
    problems: List[str] = []
    if metrics.collisions > MAX_COLLISIONS:
        problems.append("Too many collisions")
    if metrics.average_speed < MIN_AVERAGE_SPEED:
        problems.append("Too slow")
    if metrics.backward_movement > MAX_BACKWARD_MOVEMENT:
        problems.append("Too much backward movement")
    if metrics.time_alive < MIN_TIME_ALIVE:
        problems.append("Dies too quickly")
    return problems


def calculate_bonus_fitness(metrics: FitnessMetrics) -> float:
    """Extra credit for clean, steady driving.

    Returns:
        ``2.0`` for five or more checkpoints without a collision, ``1.0`` for
        an average speed strictly between 3 and 7, and ``1.5`` for surviving
        more than 30 seconds without a collision, summed.
    """

    bonus = 0.0
    if metrics.checkpoints_reached >= 5 and metrics.collisions == 0:
        bonus += 2.0
    if 3.0 < metrics.average_speed < 7.0:
        bonus += 1.0
    if metrics.time_alive > 30.0 and metrics.collisions == 0:
        bonus += 1.5
    return bonus
