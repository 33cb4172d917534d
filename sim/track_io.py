"""Utilities for loading track waypoint loops.

Track files are JSON. Two formats are accepted:

```
# Shorthand: a list of coordinate pairs uses the default radius and width
[[40, 0], [36.96, 9.57], [28.28, 17.68], ...]

# Explicit: name the track, set the corridor width and per-waypoint radii
{
  "name": "oval",
  "width": 12.0,
  "waypoints": [
    {"x": 40, "z": 0, "radius": 5},
    {"x": 36.96, "z": 9.57},
    ...
  ]
}
```

Waypoints form a closed loop: the last one connects back to the first. The
first waypoint is also where cars spawn.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

from fitness.track_distance import Waypoint

DEFAULT_RADIUS = 5.0
DEFAULT_WIDTH = 12.0


@dataclass
class TrackConfig:
    name: str
    width: float
    waypoints: List[Waypoint]

    def start_position(self) -> Tuple[float, float, float]:
        first = self.waypoints[0]
        return (first.x, 0.0, first.z)

    def start_heading(self) -> float:
        """Rotation about the vertical axis facing the second waypoint."""

        first, second = self.waypoints[0], self.waypoints[1]
        return math.atan2(second.x - first.x, second.z - first.z)

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "width": self.width,
            "waypoints": [{"x": wp.x, "z": wp.z, "radius": wp.radius} for wp in self.waypoints],
        }


def _parse_number(raw: object, context: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{context} must be a number, got {raw!r}")
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"{context} must be finite, got {raw!r}")
    return value


def _parse_waypoint(raw: object, index: int, default_radius: float) -> Waypoint:
    if isinstance(raw, (list, tuple)):
        if len(raw) != 2:
            raise ValueError(f"Waypoint {index} must have two coordinates, got {raw!r}")
        return Waypoint(
            _parse_number(raw[0], f"waypoint {index} x"),
            _parse_number(raw[1], f"waypoint {index} z"),
            default_radius,
        )

    if isinstance(raw, dict):
        for key in ("x", "z"):
            if key not in raw:
                raise ValueError(f"Waypoint {index} missing '{key}': {raw!r}")
        radius = _parse_number(raw.get("radius", default_radius), f"waypoint {index} radius")
        if radius <= 0:
            raise ValueError(f"Waypoint {index} radius must be positive, got {radius}")
        return Waypoint(
            _parse_number(raw["x"], f"waypoint {index} x"),
            _parse_number(raw["z"], f"waypoint {index} z"),
            radius,
        )

    raise ValueError(f"Unsupported waypoint entry: {raw!r}")


def parse_track(payload: object, name: str = "track", default_radius: float = DEFAULT_RADIUS) -> TrackConfig:
    width = DEFAULT_WIDTH
    raw_waypoints: Sequence[object]

    if isinstance(payload, dict):
        raw_waypoints = payload.get("waypoints") or []
        if not isinstance(raw_waypoints, list):
            raise ValueError("waypoints must be a list")
        name = str(payload.get("name") or name)
        if "width" in payload:
            width = _parse_number(payload["width"], "width")
            if width <= 0:
                raise ValueError(f"width must be positive, got {width}")
    elif isinstance(payload, list):
        raw_waypoints = payload
    else:
        raise ValueError("Track file must be a list of coordinates or an object with a 'waypoints' key")

    waypoints = [_parse_waypoint(raw, index, default_radius) for index, raw in enumerate(raw_waypoints)]
    if len(waypoints) < 2:
        raise ValueError(f"A track needs at least two waypoints, got {len(waypoints)}")

    return TrackConfig(name=name, width=width, waypoints=waypoints)


def load_track(path: Path, default_radius: float = DEFAULT_RADIUS) -> TrackConfig:
    """Load a waypoint loop from a JSON track file."""

    with open(path, "r", encoding="utf-8") as fp:
        payload = json.load(fp)
    return parse_track(payload, name=Path(path).stem, default_radius=default_radius)


def ellipse_track(
    radius_x: float = 40.0,
    radius_z: float = 25.0,
    count: int = 16,
    width: float = DEFAULT_WIDTH,
    name: str = "oval",
) -> TrackConfig:
    """Evenly spaced waypoints on an ellipse, counter-clockwise from ``+x``."""

    if count < 3:
        raise ValueError(f"An ellipse track needs at least three waypoints, got {count}")
    waypoints = [
        Waypoint(
            round(radius_x * math.cos(2 * math.pi * i / count), 2),
            round(radius_z * math.sin(2 * math.pi * i / count), 2),
            DEFAULT_RADIUS,
        )
        for i in range(count)
    ]
    return TrackConfig(name=name, width=width, waypoints=waypoints)
