"""Population management: speciation and generational replacement.

The host evaluates every genome (one car each), then calls
:meth:`Population.evolve` with the final fitness of each car. Car ids are
genome ids.

Reproduction deliberately derives every non-random offspring from the single
best genome of the generation (elitist copies plus mutated copies) instead of
tournament selection and crossover across species. Species are rebuilt from
scratch every generation and only drive fitness sharing.
"""

from __future__ import annotations

import math
import random
import statistics
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional

from neat.reporting import BaseReporter, ReporterSet

from .config import MutationRates, NEATConfig
from .genome import Genome, calculate_compatibility, copy_genome, create_minimal
from .innovation import InnovationCounter, default_counter
from .mutations import MutationEngine


@dataclass
class Species:
    id: int
    representative: Genome
    members: List[Genome] = field(default_factory=list)
    average_fitness: float = 0.0
    best_fitness: float = 0.0
    staleness: int = 0


@dataclass
class PopulationStats:
    generation: int
    population_size: int
    best_fitness: float
    average_fitness: float
    stdev_fitness: float
    species_count: int
    best_genome: Optional[Genome]


class Population:
    def __init__(
        self,
        config: NEATConfig | None = None,
        seed: int | None = None,
        innovations: InnovationCounter | None = None,
        genomes: List[Genome] | None = None,
        generation: int = 0,
    ) -> None:
        self.config = config or NEATConfig()
        self.rng = random.Random(seed)
        self.innovations = innovations or default_counter()
        self.mutations = MutationEngine(self.innovations, self.rng)
        self.reporters = ReporterSet()
        self.species: List[Species] = []
        self.generation = generation

        if genomes is None:
            self.genomes = [self._random_genome() for _ in range(self.config.population_size)]
        else:
            if len(genomes) != self.config.population_size:
                raise ValueError(
                    f"Expected {self.config.population_size} genomes, got {len(genomes)}"
                )
            for genome in genomes:
                self.innovations.observe(genome)
            self.genomes = list(genomes)

    def add_reporter(self, reporter: BaseReporter) -> None:
        self.reporters.add(reporter)

    def remove_reporter(self, reporter: BaseReporter) -> None:
        self.reporters.remove(reporter)

    def genome(self, genome_id: str) -> Genome:
        for genome in self.genomes:
            if genome.id == genome_id:
                return genome
        raise KeyError(genome_id)

    def best_genome(self) -> Genome:
        # max() keeps the first of equally fit genomes, matching a stable sort.
        return max(self.genomes, key=lambda genome: genome.fitness)

    def assign_fitness(self, fitness_assignments: Mapping[str, float]) -> None:
        by_id = {genome.id: genome for genome in self.genomes}
        for car_id, fitness in fitness_assignments.items():
            if car_id not in by_id:
                raise KeyError(f"No genome for car id {car_id!r}")
            by_id[car_id].fitness = float(fitness)

    def speciate(self) -> List[Species]:
        """Greedy first-match species assignment in population order."""

        threshold = self.config.speciation.compatibility_threshold
        self.species = []
        for genome in self.genomes:
            for species in self.species:
                if calculate_compatibility(genome, species.representative, self.config) < threshold:
                    species.members.append(genome)
                    genome.species_id = species.id
                    break
            else:
                species = Species(id=len(self.species) + 1, representative=genome, members=[genome])
                genome.species_id = species.id
                self.species.append(species)
        return self.species

    def calculate_adjusted_fitness(self) -> None:
        for species in self.species:
            size = len(species.members)
            for genome in species.members:
                genome.adjusted_fitness = genome.fitness / size
            species.average_fitness = statistics.fmean(genome.fitness for genome in species.members)
            species.best_fitness = max(genome.fitness for genome in species.members)

    def adaptive_rates(self, average_fitness: float) -> MutationRates:
        """Boost structural mutation while the population is still weak."""

        rates = self.config.mutation
        if average_fitness >= self.config.reproduction.low_fitness_threshold:
            return rates
        return replace(
            rates,
            weight_mutation=min(1.0, rates.weight_mutation * 1.5),
            add_node=min(0.5, rates.add_node * 2),
            add_connection=min(0.5, rates.add_connection * 2),
        )

    def create_next_generation(self) -> List[Genome]:
        size = self.config.population_size
        reproduction = self.config.reproduction
        best = self.best_genome()
        rates = self.adaptive_rates(statistics.fmean(genome.fitness for genome in self.genomes))

        elite_count = min(size, max(reproduction.min_elites, math.floor(reproduction.elitism_fraction * size)))
        mutant_count = min(size - elite_count, math.floor(reproduction.mutant_fraction * size))

        next_genomes = [copy_genome(best) for _ in range(elite_count)]
        for _ in range(mutant_count):
            child = copy_genome(best)
            self.mutations.mutate(child, rates)
            next_genomes.append(child)
        while len(next_genomes) < size:
            next_genomes.append(self._random_genome())

        self.genomes = next_genomes
        return next_genomes

    def evolve(self, fitness_assignments: Mapping[str, float] | None = None) -> List[Genome]:
        self.reporters.start_generation(self.generation)
        if fitness_assignments:
            self.assign_fitness(fitness_assignments)

        self.speciate()
        self.calculate_adjusted_fitness()
        self.reporters.post_evaluate(self.config, self.genomes, self.species, self.best_genome())

        self.create_next_generation()
        self.generation += 1
        self.reporters.end_generation(self.config, self.genomes, self.species)
        return self.genomes

    def stats(self) -> PopulationStats:
        fitness_values = [genome.fitness for genome in self.genomes]
        best = self.best_genome() if self.genomes else None
        return PopulationStats(
            generation=self.generation,
            population_size=len(self.genomes),
            best_fitness=max(fitness_values, default=0.0),
            average_fitness=statistics.fmean(fitness_values) if fitness_values else 0.0,
            stdev_fitness=statistics.pstdev(fitness_values) if fitness_values else 0.0,
            species_count=len(self.species),
            best_genome=best,
        )

    def _random_genome(self) -> Genome:
        return create_minimal(self.config, self.innovations, self.rng)
