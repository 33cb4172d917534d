"""Console reporter for :class:`evo.population.Population`."""

from __future__ import annotations

import statistics
import time
from typing import List

from neat.reporting import BaseReporter

from .config import NEATConfig
from .genome import Genome


class ProgressReporter(BaseReporter):
    """Print a short summary of every generation.

    Args:
        show_species_detail: Also print one line per species.
    """

    def __init__(self, show_species_detail: bool = False) -> None:
        self.show_species_detail = show_species_detail
        self.generation: int | None = None
        self.generation_start_time: float | None = None

    def start_generation(self, generation: int) -> None:
        self.generation = generation
        self.generation_start_time = time.perf_counter()
        print(f"\n ****** Generation {generation} ****** \n")

    def post_evaluate(self, config: NEATConfig, population: List[Genome], species, best_genome: Genome) -> None:
        fitness_values = [genome.fitness for genome in population]
        mean = statistics.fmean(fitness_values)
        stdev = statistics.pstdev(fitness_values)
        enabled = len(best_genome.enabled_connections())
        print(f"Population's average fitness: {mean:3.5f} stdev: {stdev:3.5f}")
        print(
            f"Best fitness: {best_genome.fitness:3.5f} - nodes {len(best_genome.node_genes)}, "
            f"enabled connections {enabled}, species {best_genome.species_id} [id: {best_genome.id}]"
        )
        if self.show_species_detail:
            print("   ID   size   mean fitness   best fitness")
            print("  ====  ====  ============  ============")
            for entry in species:
                print(
                    f"  {entry.id:>4}  {len(entry.members):>4}  {entry.average_fitness:>12.3f}  {entry.best_fitness:>12.3f}"
                )
        else:
            print(f"Species: {len(species)}")

    def end_generation(self, config: NEATConfig, population: List[Genome], species_set) -> None:
        if self.generation_start_time is None:
            return
        elapsed = time.perf_counter() - self.generation_start_time
        print(f"Generation time: {elapsed:.3f} sec")

    def info(self, msg: str) -> None:
        print(msg)
