import pytest
from neat.reporting import BaseReporter

from evo.config import MutationRates, NEATConfig, ReproductionConfig, SpeciationConfig
from evo.genome import copy_genome
from evo.population import Population


def _topology(genome):
    return (
        sorted((n.id, n.type, n.layer) for n in genome.node_genes),
        sorted((g.innovation, g.from_node, g.to_node, g.weight, g.enabled) for g in genome.connection_genes),
    )


@pytest.fixture
def population(innovations):
    return Population(NEATConfig(population_size=20), seed=42, innovations=innovations)


def test_initial_population(population):
    """A new population holds population_size distinct genomes at generation 0."""
    assert len(population.genomes) == 20
    assert len({g.id for g in population.genomes}) == 20
    assert population.generation == 0


def test_evolve_invariants(population):
    """Size is kept, generation advances by one and the champion survives."""
    fitness = {genome.id: float(index) for index, genome in enumerate(population.genomes)}
    champion = population.genomes[-1]
    champion_topology = _topology(champion)

    next_genomes = population.evolve(fitness)

    assert len(next_genomes) == 20
    assert population.generation == 1
    assert any(_topology(genome) == champion_topology for genome in next_genomes)
    assert all(genome.fitness == 0.0 for genome in next_genomes)


def test_evolve_rejects_unknown_car_id(population):
    with pytest.raises(KeyError):
        population.evolve({"not-a-genome": 1.0})


def test_evolve_without_assignments_uses_stored_fitness(population):
    for index, genome in enumerate(population.genomes):
        genome.fitness = float(index)

    population.evolve()

    assert population.generation == 1
    assert len(population.genomes) == 20


def test_next_generation_composition(innovations):
    """Elites are unmutated copies; mutants and random genomes fill the rest."""
    config = NEATConfig(
        population_size=10,
        mutation=MutationRates(1.0, 0.0, 0.0, 0.0, 0.0),
    )
    population = Population(config, seed=3, innovations=innovations)
    for index, genome in enumerate(population.genomes):
        genome.fitness = float(index)
    best = _topology(population.best_genome())

    population.speciate()
    population.calculate_adjusted_fitness()
    genomes = population.create_next_generation()

    # elites = max(2, floor(0.2 * 10)) = 2, mutants = floor(0.7 * 10) = 7, random = 1
    assert len(genomes) == 10
    assert _topology(genomes[0]) == best
    assert _topology(genomes[1]) == best
    for mutant in genomes[2:9]:
        assert len(mutant.connection_genes) == len(best[1])


def test_small_population_truncates_elites(innovations):
    """With a single genome the elite copy fills the whole generation."""
    population = Population(NEATConfig(population_size=1), seed=1, innovations=innovations)
    population.genomes[0].fitness = 3.0
    best = _topology(population.genomes[0])

    population.evolve()

    assert len(population.genomes) == 1
    assert _topology(population.genomes[0]) == best


def test_speciate_groups_compatible_genomes(innovations):
    """Copies of one genome share a species; genomes are tagged with its id."""
    config = NEATConfig(population_size=4, speciation=SpeciationConfig(compatibility_threshold=0.5))
    population = Population(config, seed=5, innovations=innovations)
    base = population.genomes[0]
    population.genomes = [base] + [copy_genome(base) for _ in range(3)]

    species = population.speciate()

    assert len(species) == 1
    assert species[0].id == 1
    assert len(species[0].members) == 4
    assert all(genome.species_id == 1 for genome in population.genomes)


def test_speciate_splits_incompatible_genomes(innovations):
    """A tiny threshold puts structurally different genomes apart."""
    config = NEATConfig(population_size=6, speciation=SpeciationConfig(compatibility_threshold=1e-9))
    population = Population(config, seed=5, innovations=innovations)
    population.genomes[1] = copy_genome(population.genomes[0])

    species = population.speciate()

    assert population.genomes[0].species_id == population.genomes[1].species_id == 1
    assert [s.id for s in species] == list(range(1, len(species) + 1))
    assert sum(len(s.members) for s in species) == 6


def test_adjusted_fitness_shares_within_species(innovations):
    config = NEATConfig(population_size=3, speciation=SpeciationConfig(compatibility_threshold=1.0))
    population = Population(config, seed=5, innovations=innovations)
    base = population.genomes[0]
    population.genomes = [base, copy_genome(base), copy_genome(base)]
    for genome, fitness in zip(population.genomes, (3.0, 6.0, 9.0)):
        genome.fitness = fitness

    population.speciate()
    population.calculate_adjusted_fitness()

    assert [g.adjusted_fitness for g in population.genomes] == [1.0, 2.0, 3.0]
    assert population.species[0].average_fitness == pytest.approx(6.0)
    assert population.species[0].best_fitness == 9.0


def test_adaptive_rates_boost_weak_generations(population):
    """Below the threshold structural rates double and weight rate grows by half."""
    base = population.config.mutation

    boosted = population.adaptive_rates(1.0)
    normal = population.adaptive_rates(10.0)

    assert normal == base
    assert boosted.weight_mutation == pytest.approx(min(1.0, base.weight_mutation * 1.5))
    assert boosted.add_node == pytest.approx(min(0.5, base.add_node * 2))
    assert boosted.add_connection == pytest.approx(min(0.5, base.add_connection * 2))
    assert boosted.disable_connection == base.disable_connection


def test_adaptive_rates_respect_caps(innovations):
    config = NEATConfig(
        population_size=2,
        mutation=MutationRates(0.9, 0.9, 0.4, 0.3, 0.0),
        reproduction=ReproductionConfig(low_fitness_threshold=5.0),
    )
    population = Population(config, seed=1, innovations=innovations)

    rates = population.adaptive_rates(0.0)

    assert rates.weight_mutation == 1.0
    assert rates.add_connection == 0.5
    assert rates.add_node == 0.5


def test_best_genome_tie_keeps_first(population):
    for genome in population.genomes:
        genome.fitness = 7.0

    assert population.best_genome() is population.genomes[0]


def test_reporters_receive_generation_hooks(mocker, population):
    """Attached reporters see start, post-evaluate and end of every generation."""
    reporter = mocker.Mock(spec=BaseReporter)
    population.add_reporter(reporter)
    fitness = {genome.id: 1.0 for genome in population.genomes}

    population.evolve(fitness)

    reporter.start_generation.assert_called_once_with(0)
    reporter.post_evaluate.assert_called_once()
    config, genomes, species, best = reporter.post_evaluate.call_args.args
    assert config is population.config
    assert best.fitness == 1.0
    reporter.end_generation.assert_called_once()


def test_stats_summarize_fitness(population):
    for index, genome in enumerate(population.genomes):
        genome.fitness = float(index % 2)

    stats = population.stats()

    assert stats.population_size == 20
    assert stats.best_fitness == 1.0
    assert stats.average_fitness == pytest.approx(0.5)
    assert stats.stdev_fitness == pytest.approx(0.5)


def test_seeded_populations_are_reproducible():
    from evo.innovation import InnovationCounter

    first = Population(NEATConfig(), seed=11, innovations=InnovationCounter())
    second = Population(NEATConfig(), seed=11, innovations=InnovationCounter())

    assert [_topology(g) for g in first.genomes] == [_topology(g) for g in second.genomes]


def test_loaded_genomes_must_match_size(innovations, config):
    with pytest.raises(ValueError, match="Expected 20 genomes"):
        Population(config, innovations=innovations, genomes=[])
