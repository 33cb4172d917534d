"""Arc-length progress tracking along a closed track.

The track is a loop of waypoints on the ``x``/``z`` ground plane. Each
consecutive pair (wrapping last to first) becomes a segment, and a prefix sum
of segment lengths turns "closest point on segment ``i`` at fraction ``t``"
into a distance along the loop. Car positions are projected onto nearby
segments every tick to measure how far, and in which direction, each car
moved.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

Vec3 = Tuple[float, float, float]

DEFAULT_SEARCH_RADIUS = 8
DEFAULT_FORWARD_THRESHOLD = 0.4


class TrackConfigError(ValueError):
    """Raised when a waypoint loop cannot describe a track."""


@dataclass(frozen=True)
class Waypoint:
    x: float
    z: float
    radius: float = 5.0


@dataclass(frozen=True)
class TrackSegment:
    start: Vec3
    end: Vec3
    direction: Vec3
    length: float


@dataclass(frozen=True)
class Projection:
    segment_index: int
    t: float
    closest_point: Vec3
    distance_to_track: float
    progress: float


@dataclass
class CarTrackingState:
    last_progress: float
    total_accumulated: float
    last_segment_index: int
    is_going_forward: bool = True


@dataclass(frozen=True)
class TrackingResult:
    distance_delta: float
    total_distance: float
    is_going_forward: bool
    distance_from_track: float
    progress: float


def _sub(a: Sequence[float], b: Sequence[float]) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _length(a: Sequence[float]) -> float:
    return math.sqrt(_dot(a, a))


class TrackDistanceTracker:
    """Projects car positions onto a precomputed waypoint loop.

    Args:
        waypoints: Ordered closed loop of at least two waypoints. Objects with
            ``x`` and ``z`` attributes or ``(x, z)`` pairs are accepted.
        search_radius: Number of segments searched on either side of a car's
            last segment.
        forward_threshold: Minimum dot product between the car heading and
            the segment direction for the car to count as going forward.

    Raises:
        TrackConfigError: Fewer than two waypoints or a loop of zero length.
    """

    def __init__(
        self,
        waypoints: Sequence[object],
        search_radius: int = DEFAULT_SEARCH_RADIUS,
        forward_threshold: float = DEFAULT_FORWARD_THRESHOLD,
    ) -> None:
        points = [_ground_point(waypoint) for waypoint in waypoints]
        if len(points) < 2:
            raise TrackConfigError(f"A track needs at least two waypoints, got {len(points)}")
        if search_radius < 0:
            raise TrackConfigError("search_radius must be non-negative")

        self.search_radius = int(search_radius)
        self.forward_threshold = float(forward_threshold)
        self.segments: List[TrackSegment] = []
        self.cumulative_distances: List[float] = [0.0]

        total = 0.0
        for index, start in enumerate(points):
            end = points[(index + 1) % len(points)]
            vector = _sub(end, start)
            length = _length(vector)
            if length > 0.0:
                direction = (vector[0] / length, vector[1] / length, vector[2] / length)
            else:
                direction = (0.0, 0.0, 1.0)
            self.segments.append(TrackSegment(start, end, direction, length))
            total += length
            self.cumulative_distances.append(total)

        if total <= 0.0:
            raise TrackConfigError("Track waypoints must not all coincide")
        self.total_length = total
        self._cars: Dict[str, CarTrackingState] = {}

    def track_info(self) -> Dict[str, float]:
        return {"total_length": self.total_length, "segment_count": len(self.segments)}

    def project_onto_segment(self, point: Sequence[float], segment_index: int) -> Projection:
        segment = self.segments[segment_index]
        vector = _sub(segment.end, segment.start)
        offset = _sub(point, segment.start)
        if segment.length > 0.0:
            t = _dot(offset, vector) / (segment.length * segment.length)
            t = max(0.0, min(1.0, t))
        else:
            t = 0.0
        closest = (
            segment.start[0] + vector[0] * t,
            segment.start[1] + vector[1] * t,
            segment.start[2] + vector[2] * t,
        )
        return Projection(
            segment_index=segment_index,
            t=t,
            closest_point=closest,
            distance_to_track=_length(_sub(point, closest)),
            progress=self.cumulative_distances[segment_index] + t * segment.length,
        )

    def project(self, position: Sequence[float], around_segment: int = 0) -> Projection:
        """Closest projection within the local search window.

        Segments are visited outward from ``around_segment`` (the centre
        first, then ``+k`` before ``-k``); on equal distance the first visited
        segment wins.
        """

        count = len(self.segments)
        radius = min(self.search_radius, count // 2)
        best: Optional[Projection] = None
        for offset in range(radius + 1):
            if offset == 0:
                indices = (around_segment % count,)
            else:
                indices = ((around_segment + offset) % count, (around_segment - offset) % count)
            for index in indices:
                projection = self.project_onto_segment(position, index)
                if best is None or projection.distance_to_track < best.distance_to_track:
                    best = projection
        return best

    def reset_car(self, car_id: str, position: Sequence[float]) -> CarTrackingState:
        projection = self.project(position, 0)
        state = CarTrackingState(
            last_progress=projection.progress,
            total_accumulated=0.0,
            last_segment_index=projection.segment_index,
            is_going_forward=True,
        )
        self._cars[car_id] = state
        return state

    def update_car_position(
        self,
        car_id: str,
        position: Sequence[float],
        forward_direction: Sequence[float],
    ) -> TrackingResult:
        state = self._cars.get(car_id)
        if state is None:
            state = self.reset_car(car_id, position)

        projection = self.project(position, state.last_segment_index)

        delta = projection.progress - state.last_progress
        half = self.total_length / 2.0
        if delta < -half:
            delta += self.total_length
        elif delta > half:
            delta -= self.total_length

        track_direction = self.segments[projection.segment_index].direction
        is_going_forward = _dot(forward_direction, track_direction) > self.forward_threshold
        signed_delta = abs(delta) if is_going_forward else -abs(delta)

        state.last_progress = projection.progress
        state.total_accumulated += abs(signed_delta)
        state.last_segment_index = projection.segment_index
        state.is_going_forward = is_going_forward

        return TrackingResult(
            distance_delta=signed_delta,
            total_distance=state.total_accumulated,
            is_going_forward=is_going_forward,
            distance_from_track=projection.distance_to_track,
            progress=projection.progress / self.total_length,
        )

    def car_state(self, car_id: str) -> Optional[CarTrackingState]:
        return self._cars.get(car_id)

    def remove_car(self, car_id: str) -> None:
        self._cars.pop(car_id, None)


def _ground_point(waypoint: object) -> Vec3:
    if hasattr(waypoint, "x") and hasattr(waypoint, "z"):
        return (float(waypoint.x), 0.0, float(waypoint.z))
    try:
        x, z = waypoint[0], waypoint[1]
        return (float(x), 0.0, float(z))
    except (TypeError, IndexError, ValueError) as exc:
        raise TrackConfigError(f"Unsupported waypoint {waypoint!r}") from exc
