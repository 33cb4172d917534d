"""NEAT training harness for the racing simulator.

The trainer loads an INI engine config and a track file, drives every genome's
car through :class:`sim.env.RaceEnv` once per generation, feeds the resulting
fitness map to :meth:`evo.population.Population.evolve`, and logs
per-generation metrics to CSV and JSON. The champion genome, the final
population and a champion trace are written as JSON at the end of the run.
"""

from __future__ import annotations

import argparse
import copy
import json
import os
import shutil
import statistics
from pathlib import Path
from typing import Dict, List, Optional

import neat

from evo.config import NEATConfig
from evo.genome import Genome
from evo.population import Population, Species
from evo.records import load_population, save_genome, save_population
from evo.reporting import ProgressReporter
from fitness.evaluator import calculate_bonus_fitness, detect_problematic_behavior
from sim.env import EpisodeResult, RaceEnv
from sim.track_io import load_track


class MetricsLogger(neat.reporting.BaseReporter):
    """Append fitness statistics and species sizes for every generation."""

    def __init__(self, csv_path: Path, json_path: Path, species_csv_path: Path) -> None:
        self.csv_path = csv_path
        self.json_path = json_path
        self.species_csv_path = species_csv_path
        self.current_generation = -1

        os.makedirs(self.csv_path.parent, exist_ok=True)
        with open(self.csv_path, "w", encoding="utf-8") as csv_file:
            csv_file.write("generation,best,mean,stdev,min,max,species\n")

        os.makedirs(self.json_path.parent, exist_ok=True)
        with open(self.json_path, "w", encoding="utf-8") as json_file:
            json.dump([], json_file)

        os.makedirs(self.species_csv_path.parent, exist_ok=True)
        with open(self.species_csv_path, "w", encoding="utf-8") as csv_file:
            csv_file.write("generation,species,size,mean,best\n")

    def start_generation(self, generation: int) -> None:
        self.current_generation = generation

    def post_evaluate(
        self,
        config: NEATConfig,
        population: List[Genome],
        species: List[Species],
        best_genome: Genome,
    ) -> None:
        fitness_values = [genome.fitness for genome in population]
        if not fitness_values:
            return

        entry = {
            "generation": self.current_generation,
            "best": best_genome.fitness,
            "mean": statistics.fmean(fitness_values),
            "stdev": statistics.pstdev(fitness_values),
            "min": min(fitness_values),
            "max": max(fitness_values),
            "species": len(species),
        }

        with open(self.csv_path, "a", encoding="utf-8") as csv_file:
            csv_file.write(
                f"{entry['generation']},{entry['best']},{entry['mean']},{entry['stdev']},"
                f"{entry['min']},{entry['max']},{entry['species']}\n"
            )

        with open(self.json_path, "r+", encoding="utf-8") as json_file:
            data = json.load(json_file)
            data.append(entry)
            json_file.seek(0)
            json.dump(data, json_file, indent=2)
            json_file.truncate()

        with open(self.species_csv_path, "a", encoding="utf-8") as csv_file:
            for item in species:
                csv_file.write(
                    f"{self.current_generation},{item.id},{len(item.members)},"
                    f"{item.average_fitness},{item.best_fitness}\n"
                )


class SnapshotReporter(neat.reporting.BaseReporter):
    """Save the generation champion every ``interval`` generations.

    A snapshot is only kept when the champion improved on the last saved one
    by at least ``min_fitness_improvement``, unless ``max_interval``
    generations passed without a save. Each snapshot holds the champion JSON,
    a replay trace and a ``meta.json`` with behaviour diagnostics.
    """

    def __init__(
        self,
        output_dir: Path,
        interval: int,
        env: RaceEnv,
        min_fitness_improvement: float = 0.5,
        max_interval: int = 0,
    ) -> None:
        if interval < 1:
            raise ValueError("snapshot interval must be at least 1")
        self.output_dir = output_dir
        self.interval = interval
        self.env = env
        self.min_fitness_improvement = max(0.0, min_fitness_improvement)
        self.max_interval = max(0, max_interval)
        self.current_generation = -1
        self.best_fitness: float | None = None
        self.last_saved_generation: int | None = None

    def start_generation(self, generation: int) -> None:
        self.current_generation = generation

    def post_evaluate(
        self,
        config: NEATConfig,
        population: List[Genome],
        species: List[Species],
        best_genome: Genome,
    ) -> None:
        if self.current_generation < 0 or self.current_generation % self.interval != 0:
            return

        forced = False
        if self.best_fitness is None or best_genome.fitness >= self.best_fitness + self.min_fitness_improvement:
            self.best_fitness = best_genome.fitness
        elif self.max_interval > 0 and (
            self.last_saved_generation is None
            or self.current_generation - self.last_saved_generation >= self.max_interval
        ):
            forced = True
        else:
            return

        snapshot_dir = self.output_dir / f"gen_{self.current_generation:04d}"
        save_genome(best_genome, snapshot_dir / "champion.json")
        replay = _record_trace(self.env, best_genome, snapshot_dir / "traces" / "champion.jsonl")

        meta = {
            "generation": self.current_generation,
            "best_fitness": best_genome.fitness,
            "forced": forced,
            **_describe(replay),
        }
        os.makedirs(snapshot_dir, exist_ok=True)
        with open(snapshot_dir / "meta.json", "w", encoding="utf-8") as meta_file:
            json.dump(meta, meta_file, indent=2)
        self.last_saved_generation = self.current_generation


def _record_trace(env: RaceEnv, genome: Genome, trace_path: Path) -> EpisodeResult:
    return env.run_genomes([genome], trace_path=str(trace_path))[0]


def _describe(result: EpisodeResult) -> Dict[str, object]:
    return {
        "replay_fitness": result.fitness,
        "replay_reason": result.reason,
        "lap_completed": result.lap_completed,
        "metrics": result.metrics.to_dict(),
        "problems": detect_problematic_behavior(result.metrics),
        "bonus_fitness": calculate_bonus_fitness(result.metrics),
    }


def train(population: Population, env: RaceEnv, generations: int) -> Optional[Genome]:
    """Run ``generations`` evaluate/evolve cycles and return the best genome seen.

    The returned genome is a detached copy that keeps its id and fitness.
    """

    champion: Optional[Genome] = None
    for _ in range(generations):
        fitness = env.run_generation(population)
        population.evolve(fitness)
        best_id = max(fitness, key=fitness.get)
        if champion is None or fitness[best_id] > champion.fitness:
            # evolve() replaced the genome list, so look up the scored copy by id.
            champion = copy.deepcopy(_scored_genome(population, best_id))
            champion.fitness = fitness[best_id]
    return champion


def _scored_genome(population: Population, genome_id: str) -> Genome:
    for species in population.species:
        for genome in species.members:
            if genome.id == genome_id:
                return genome
    raise KeyError(genome_id)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", type=Path, default=Path("train/configs/neat_config.ini"), help="path to the engine INI config")
    parser.add_argument("--track", type=Path, default=Path("data/tracks/oval.json"), help="path to a JSON track file")
    parser.add_argument("--output", type=Path, default=Path("data/neat_runs/latest"), help="output directory for logs and artifacts")
    parser.add_argument("--generations", type=int, default=30, help="number of generations to run")
    parser.add_argument("--max-steps", type=int, default=1200, help="maximum ticks per generation")
    parser.add_argument("--dt", type=float, default=0.05, help="simulated seconds per tick")
    parser.add_argument("--seed", type=int, default=None, help="random seed for the population")
    parser.add_argument("--resume", type=Path, default=None, help="population JSON to continue training from")
    parser.add_argument("--snapshot-interval", type=int, default=0, help="save a champion snapshot every N generations")
    parser.add_argument(
        "--snapshot-min-fitness-improvement",
        type=float,
        default=0.5,
        help="minimum fitness improvement required to keep a snapshot",
    )
    parser.add_argument(
        "--snapshot-max-interval",
        type=int,
        default=0,
        help="force saving a snapshot if none were kept for N generations",
    )
    parser.add_argument("--species-detail", action="store_true", help="print one line per species each generation")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    if args.generations < 1:
        raise ValueError("--generations must be at least 1")

    track = load_track(args.track)
    env = RaceEnv(track, max_steps=args.max_steps, dt=args.dt)

    if args.resume:
        population = load_population(args.resume, seed=args.seed)
        print(f"Resumed population at generation {population.generation} from {args.resume}")
    else:
        population = Population(NEATConfig.load(args.config), seed=args.seed)

    args.output.mkdir(parents=True, exist_ok=True)
    population.config.save(args.output / "neat_config.ini")

    population.add_reporter(ProgressReporter(show_species_detail=args.species_detail))
    population.add_reporter(
        MetricsLogger(
            args.output / "fitness_log.csv",
            args.output / "fitness_log.json",
            args.output / "species_log.csv",
        )
    )
    if args.snapshot_interval > 0:
        snapshot_dir = args.output / "snapshots"
        if snapshot_dir.exists():
            shutil.rmtree(snapshot_dir)
        population.add_reporter(
            SnapshotReporter(
                snapshot_dir,
                args.snapshot_interval,
                env,
                min_fitness_improvement=args.snapshot_min_fitness_improvement,
                max_interval=args.snapshot_max_interval,
            )
        )

    champion = train(population, env, args.generations)

    population_path = args.output / "population.json"
    save_population(population, population_path)
    print(f"Saved population (generation {population.generation}) to {population_path}")

    if champion is None:
        return
    genome_path = args.output / "champion.json"
    save_genome(champion, genome_path)
    replay = _record_trace(env, champion, args.output / "traces" / "champion.jsonl")
    summary = _describe(replay)
    with open(args.output / "champion_meta.json", "w", encoding="utf-8") as meta_file:
        json.dump({"id": champion.id, "fitness": champion.fitness, **summary}, meta_file, indent=2)

    print(f"Saved champion genome to {genome_path} (fitness {champion.fitness:.3f})")
    if summary["problems"]:
        print(f"Champion issues: {', '.join(summary['problems'])}")
    print(f"Saved trace to {args.output / 'traces' / 'champion.jsonl'}")


if __name__ == "__main__":
    main()
