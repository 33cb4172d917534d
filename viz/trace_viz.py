"""Replay a recorded car trace on top of its track corridor."""

from __future__ import annotations

import argparse
import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Tuple

import matplotlib.pyplot as plt
from matplotlib import animation, patches

from sim.sensors import corridor_walls
from sim.track_io import TrackConfig, load_track, parse_track


@dataclass
class TraceRecord:
    time: float
    position: Tuple[float, float]
    rotation: float
    speed: float
    checkpoints: int
    reason: str | None


@dataclass
class TraceData:
    car_id: str | None
    track: TrackConfig | None
    records: List[TraceRecord]


def load_trace(path: Path) -> TraceData:
    """Read a JSONL trace; positions are projected onto the ``x``/``z`` plane."""

    car_id = None
    track = None
    records: List[TraceRecord] = []
    with open(path, "r", encoding="utf-8") as fp:
        for line in fp:
            line = line.strip()
            if not line:
                continue
            payload = json.loads(line)
            if "meta" in payload:
                car_id = payload.get("car_id")
                if "track" in payload:
                    track = parse_track(payload["track"])
                continue
            position = payload["position"]
            records.append(
                TraceRecord(
                    time=float(payload["time"]),
                    position=(float(position[0]), float(position[2])),
                    rotation=float(payload["rotation"]),
                    speed=float(payload.get("speed", 0.0)),
                    checkpoints=int(payload.get("checkpoints", 0)),
                    reason=payload.get("reason"),
                )
            )
    if not records:
        raise ValueError(f"Trace has no records: {path}")
    return TraceData(car_id=car_id, track=track, records=records)


def _car_triangle(position: Tuple[float, float], rotation: float, size: float = 2.0) -> List[Tuple[float, float]]:
    x, z = position
    fx, fz = math.sin(rotation), math.cos(rotation)
    rx, rz = fz, -fx
    nose = (x + fx * size, z + fz * size)
    rear_left = (x - fx * size * 0.6 - rx * size * 0.5, z - fz * size * 0.6 - rz * size * 0.5)
    rear_right = (x - fx * size * 0.6 + rx * size * 0.5, z - fz * size * 0.6 + rz * size * 0.5)
    return [nose, rear_left, rear_right]


def _calc_bounds(records: Sequence[TraceRecord], track: TrackConfig | None, padding: float = 10.0) -> Tuple[float, float, float, float]:
    xs = [record.position[0] for record in records]
    zs = [record.position[1] for record in records]
    if track:
        xs.extend(wp.x for wp in track.waypoints)
        zs.extend(wp.z for wp in track.waypoints)
        padding = max(padding, track.width)
    return min(xs) - padding, max(xs) + padding, min(zs) - padding, max(zs) + padding


def _draw_track(ax: plt.Axes, track: TrackConfig) -> None:
    for (x1, z1), (x2, z2) in corridor_walls(track.waypoints, track.width):
        ax.plot([x1, x2], [z1, z2], color="#6c757d", linewidth=1.5)
    loop = track.waypoints + track.waypoints[:1]
    ax.plot([wp.x for wp in loop], [wp.z for wp in loop], color="#adb5bd", linestyle="--", linewidth=1)
    for index, wp in enumerate(track.waypoints):
        ax.add_patch(patches.Circle((wp.x, wp.z), wp.radius, facecolor="#ffd166", edgecolor="#f3722c", alpha=0.4))
        ax.text(wp.x, wp.z, str(index), ha="center", va="center", fontsize=7)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("trace", type=Path, help="Path to a JSONL trace")
    parser.add_argument("--track", type=Path, default=None, help="track file overriding the one stored in the trace")
    parser.add_argument("--interval-ms", type=int, default=50, help="delay between frames in milliseconds")
    parser.add_argument("--save", type=Path, default=None, help="save the final frame as an image instead of animating")
    args = parser.parse_args()

    trace = load_trace(args.trace)
    track = load_track(args.track) if args.track else trace.track
    records = trace.records
    bounds = _calc_bounds(records, track)

    fig, ax = plt.subplots(figsize=(9, 7))
    ax.set_facecolor("#e9ecef")
    ax.set_aspect("equal", adjustable="box")
    ax.set_xlim(bounds[0], bounds[1])
    ax.set_ylim(bounds[2], bounds[3])
    ax.set_xlabel("x")
    ax.set_ylabel("z")
    if track:
        _draw_track(ax, track)

    path_line, = ax.plot([], [], color="#1d3557", linewidth=2)
    car_patch = patches.Polygon(_car_triangle(records[0].position, records[0].rotation), closed=True, facecolor="#ff7f51", edgecolor="#d1495b")
    ax.add_patch(car_patch)
    status = ax.text(0.02, 0.97, "", transform=ax.transAxes, ha="left", va="top")
    title = trace.car_id or args.trace.stem

    def _update(idx: int):
        record = records[idx]
        path_line.set_data([r.position[0] for r in records[: idx + 1]], [r.position[1] for r in records[: idx + 1]])
        car_patch.set_xy(_car_triangle(record.position, record.rotation))
        text = f"{title}  t={record.time:.2f}s  speed={record.speed:.1f}  checkpoints={record.checkpoints}"
        if record.reason:
            text += f"  ({record.reason})"
        status.set_text(text)
        return path_line, car_patch, status

    if args.save:
        _update(len(records) - 1)
        plt.savefig(args.save, dpi=200)
        return

    anim = animation.FuncAnimation(fig, _update, frames=len(records), interval=args.interval_ms, blit=False, repeat=False)
    _ = anim
    plt.show()


if __name__ == "__main__":
    main()
