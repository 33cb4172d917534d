"""Plot the per-generation fitness log written by the training harness."""

from __future__ import annotations

import argparse
import csv
import json
from collections import defaultdict
from pathlib import Path
from typing import Dict, List

import matplotlib.pyplot as plt


def load_fitness_log(path: Path) -> List[Dict[str, float]]:
    with open(path, "r", encoding="utf-8") as fp:
        entries = json.load(fp)
    if not isinstance(entries, list):
        raise ValueError(f"Fitness log must be a list of entries: {path}")
    return sorted(entries, key=lambda entry: entry["generation"])


def load_species_log(path: Path) -> Dict[int, Dict[int, int]]:
    """Species sizes keyed by generation, then species id."""

    sizes: Dict[int, Dict[int, int]] = defaultdict(dict)
    with open(path, "r", encoding="utf-8", newline="") as fp:
        for row in csv.DictReader(fp):
            sizes[int(row["generation"])][int(row["species"])] = int(row["size"])
    return dict(sizes)


def _plot_fitness(entries: List[Dict[str, float]], ax: plt.Axes) -> None:
    generations = [entry["generation"] for entry in entries]
    best = [entry["best"] for entry in entries]
    mean = [entry["mean"] for entry in entries]
    stdev = [entry["stdev"] for entry in entries]

    ax.plot(generations, best, label="best", color="#d1495b", linewidth=2)
    ax.plot(generations, mean, label="mean", color="#1d3557", linewidth=2)
    ax.fill_between(
        generations,
        [m - s for m, s in zip(mean, stdev)],
        [m + s for m, s in zip(mean, stdev)],
        color="#457b9d",
        alpha=0.2,
        label="mean ± stdev",
    )
    ax.set_xlabel("generation")
    ax.set_ylabel("fitness")
    ax.grid(True, alpha=0.4)
    ax.legend(loc="upper left")


def _plot_species(sizes: Dict[int, Dict[int, int]], ax: plt.Axes) -> None:
    generations = sorted(sizes)
    species_ids = sorted({species for counts in sizes.values() for species in counts})
    stacks = [[sizes[generation].get(species, 0) for generation in generations] for species in species_ids]
    ax.stackplot(generations, stacks, labels=[f"species {species}" for species in species_ids], alpha=0.8)
    ax.set_xlabel("generation")
    ax.set_ylabel("genomes")
    ax.grid(True, alpha=0.4)
    if len(species_ids) <= 10:
        ax.legend(loc="upper left", fontsize=8)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("run_dir", type=Path, help="Training output directory with fitness_log.json")
    parser.add_argument("--save", type=Path, default=None, help="Optional output image path")
    args = parser.parse_args()

    entries = load_fitness_log(args.run_dir / "fitness_log.json")
    if not entries:
        raise SystemExit(f"No generations logged in {args.run_dir}")

    species_path = args.run_dir / "species_log.csv"
    if species_path.exists():
        fig, (fitness_ax, species_ax) = plt.subplots(2, 1, figsize=(9, 8), sharex=True)
        _plot_species(load_species_log(species_path), species_ax)
    else:
        fig, fitness_ax = plt.subplots(figsize=(9, 5))
    _plot_fitness(entries, fitness_ax)
    fitness_ax.set_title(f"Fitness per generation ({args.run_dir.name})")
    fig.tight_layout()

    if args.save:
        plt.savefig(args.save, dpi=200)
    else:
        plt.show()


if __name__ == "__main__":
    main()
