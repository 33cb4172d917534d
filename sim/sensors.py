"""Distance sensors against the track corridor.

The corridor is bounded by two closed polylines, the waypoint loop offset by
half the track width to either side. Five rays fan out from the car's nose;
each reports the distance to the nearest wall hit divided by the sensor range,
so ``1.0`` means nothing within range.

Ray angles are measured from the car's heading; positive angles point to the
car's right.
"""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from fitness.car_fitness import SensorReading
from fitness.track_distance import Waypoint

from .car import CarState

Point = Tuple[float, float]
Wall = Tuple[Point, Point]

SENSOR_ANGLES_DEG = (-60.0, -30.0, 0.0, 30.0, 60.0)
DEFAULT_RANGE = 20.0


def corridor_walls(waypoints: Sequence[Waypoint], width: float) -> List[Wall]:
    """Wall segments of both corridor edges, as ``((x1, z1), (x2, z2))`` pairs."""

    count = len(waypoints)
    half = width / 2.0
    left: List[Point] = []
    right: List[Point] = []
    for index, waypoint in enumerate(waypoints):
        prev_wp = waypoints[index - 1]
        next_wp = waypoints[(index + 1) % count]
        # Tangent through the vertex; its right-hand normal is (tz, -tx).
        tx = next_wp.x - prev_wp.x
        tz = next_wp.z - prev_wp.z
        length = math.hypot(tx, tz) or 1.0
        nx, nz = tz / length, -tx / length
        right.append((waypoint.x + nx * half, waypoint.z + nz * half))
        left.append((waypoint.x - nx * half, waypoint.z - nz * half))

    walls: List[Wall] = []
    for edge in (left, right):
        for index, start in enumerate(edge):
            walls.append((start, edge[(index + 1) % count]))
    return walls


def ray_distance(origin: Point, direction: Point, wall: Wall) -> float | None:
    """Distance along a unit ``direction`` to ``wall``, or ``None`` on a miss."""

    (x1, z1), (x2, z2) = wall
    ox, oz = origin
    dx, dz = direction
    ex, ez = x2 - x1, z2 - z1
    denom = dx * ez - dz * ex
    if abs(denom) < 1e-12:
        return None
    wx, wz = x1 - ox, z1 - oz
    t = (wx * ez - wz * ex) / denom
    u = (wx * dz - wz * dx) / denom
    if t < 0.0 or u < 0.0 or u > 1.0:
        return None
    return t


class RaySensors:
    """Casts the five sensor rays for a car.

    Args:
        walls: Corridor wall segments from :func:`corridor_walls`.
        max_range: Distance mapped to a reading of ``1.0``.
        angles_deg: Ray angles relative to the heading, left to right.
    """

    def __init__(
        self,
        walls: Sequence[Wall],
        max_range: float = DEFAULT_RANGE,
        angles_deg: Sequence[float] = SENSOR_ANGLES_DEG,
    ) -> None:
        if len(angles_deg) != 5:
            raise ValueError(f"Expected 5 sensor angles, got {len(angles_deg)}")
        if max_range <= 0:
            raise ValueError(f"max_range must be positive, got {max_range}")
        self.walls = list(walls)
        self.max_range = max_range
        self.angles = [math.radians(angle) for angle in angles_deg]

    def cast(self, origin: Point, heading: float) -> float:
        direction = (math.sin(heading), math.cos(heading))
        nearest = self.max_range
        for wall in self.walls:
            distance = ray_distance(origin, direction, wall)
            if distance is not None and distance < nearest:
                nearest = distance
        return nearest / self.max_range

    def read(self, state: CarState) -> SensorReading:
        origin = (state.position[0], state.position[2])
        return SensorReading.from_sequence([self.cast(origin, state.rotation + angle) for angle in self.angles])
