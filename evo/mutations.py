"""Structural and weight mutation operators.

Every operator works in place on a :class:`~evo.genome.Genome`. Operators that
find nothing to act on (no free node pair, no enabled connection) leave the
genome untouched.
"""

from __future__ import annotations

import random
from typing import List, Tuple

from .config import MutationRates
from .genome import ConnectionGene, Genome, NodeGene, NodeType, _RNG
from .innovation import InnovationCounter, default_counter

PERTURBATION_RANGE = 0.3
REPLACEMENT_RANGE = 3.0
NEW_CONNECTION_RANGE = 2.0
MAX_LAYER_PASSES = 100


class MutationEngine:
    """Applies the mutation pass to genomes.

    Args:
        innovations: Counter used for new connection genes.
        rng: Random source; share one with the population for reproducible
            runs.
    """

    def __init__(self, innovations: InnovationCounter | None = None, rng: random.Random | None = None) -> None:
        self.innovations = innovations or default_counter()
        self.rng = rng or _RNG

    def mutate(self, genome: Genome, rates: MutationRates) -> None:
        if self.rng.random() < rates.weight_mutation:
            self.mutate_weights(genome, rates.weight_perturbation)
        if self.rng.random() < rates.add_connection:
            self.add_connection(genome)
        if self.rng.random() < rates.add_node:
            self.add_node(genome)
        if self.rng.random() < rates.disable_connection:
            self.disable_connection(genome)

    def mutate_weights(self, genome: Genome, perturbation_rate: float) -> None:
        # Disabled genes are included so their weight stays meaningful.
        for gene in genome.connection_genes:
            if self.rng.random() < perturbation_rate:
                gene.weight += self.rng.uniform(-PERTURBATION_RANGE, PERTURBATION_RANGE)
            else:
                gene.weight = self.rng.uniform(-REPLACEMENT_RANGE, REPLACEMENT_RANGE)

    def add_connection(self, genome: Genome) -> ConnectionGene | None:
        candidates: List[Tuple[int, int]] = []
        for source in genome.node_genes:
            for target in genome.node_genes:
                if target.type == NodeType.INPUT or source.layer >= target.layer:
                    continue
                if genome.is_connected(source.id, target.id):
                    continue
                candidates.append((source.id, target.id))

        if not candidates:
            return None

        from_node, to_node = self.rng.choice(candidates)
        gene = ConnectionGene(
            innovation=self.innovations.for_connection(from_node, to_node),
            from_node=from_node,
            to_node=to_node,
            weight=self.rng.uniform(-NEW_CONNECTION_RANGE, NEW_CONNECTION_RANGE),
            enabled=True,
        )
        genome.connection_genes.append(gene)
        return gene

    def add_node(self, genome: Genome) -> NodeGene | None:
        """Split a random enabled connection with a new hidden node.

        The split connection is disabled, never removed, so it keeps lining up
        with the same gene in other genomes. The incoming link gets weight 1.0
        and the outgoing link inherits the original weight.
        """

        enabled = genome.enabled_connections()
        if not enabled:
            return None

        split = self.rng.choice(enabled)
        split.enabled = False

        source = genome.node(split.from_node)
        new_node = NodeGene(id=genome.next_node_id(), type=NodeType.HIDDEN, layer=source.layer + 1)
        genome.node_genes.append(new_node)
        _shift_layers(genome, new_node)

        genome.connection_genes.append(
            ConnectionGene(
                innovation=self.innovations.for_connection(split.from_node, new_node.id),
                from_node=split.from_node,
                to_node=new_node.id,
                weight=1.0,
                enabled=True,
            )
        )
        genome.connection_genes.append(
            ConnectionGene(
                innovation=self.innovations.for_connection(new_node.id, split.to_node),
                from_node=new_node.id,
                to_node=split.to_node,
                weight=split.weight,
                enabled=True,
            )
        )
        recalculate_layers(genome)
        return new_node

    def disable_connection(self, genome: Genome) -> ConnectionGene | None:
        # Guard is genome wide: an output may still lose its last input.
        enabled = genome.enabled_connections()
        if len(enabled) <= 1:
            return None
        gene = self.rng.choice(enabled)
        gene.enabled = False
        return gene


def _shift_layers(genome: Genome, new_node: NodeGene) -> None:
    for node in genome.node_genes:
        if node is new_node or node.type == NodeType.INPUT:
            continue
        if node.layer >= new_node.layer:
            node.layer += 1


def recalculate_layers(genome: Genome, max_passes: int = MAX_LAYER_PASSES) -> int:
    """Relax layers until every enabled connection points forward.

    Runs at most ``max_passes`` sweeps of ``to.layer = max(to.layer,
    from.layer + 1)`` and returns the number of sweeps performed. The bound
    stops the loop should a cycle ever slip into the genome.
    """

    nodes = genome.nodes_by_id()
    passes = 0
    changed = True
    while changed and passes < max_passes:
        changed = False
        passes += 1
        for gene in genome.connection_genes:
            if not gene.enabled:
                continue
            source = nodes.get(gene.from_node)
            target = nodes.get(gene.to_node)
            if source is None or target is None:
                continue
            if target.layer <= source.layer:
                target.layer = source.layer + 1
                changed = True
    return passes
