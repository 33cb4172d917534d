"""Genome representation, construction and crossover.

A genome is a list of node genes plus a list of connection genes. Connection
genes carry innovation numbers handed out by :mod:`evo.innovation`, which is
what lets :func:`crossover` and :func:`calculate_compatibility` line up genes
from genomes that never shared a parent.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional

from .config import NEATConfig
from .innovation import InnovationCounter, default_counter

INITIAL_WEIGHT_RANGE = 3.0
MIN_CONNECTIONS_PER_OUTPUT = 2
MAX_CONNECTIONS_PER_OUTPUT = 4

_RNG = random.Random()


class NodeType(str, Enum):
    INPUT = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"


@dataclass
class NodeGene:
    id: int
    type: NodeType
    layer: int


@dataclass
class ConnectionGene:
    innovation: int
    from_node: int
    to_node: int
    weight: float
    enabled: bool = True


@dataclass
class Genome:
    id: str
    node_genes: List[NodeGene] = field(default_factory=list)
    connection_genes: List[ConnectionGene] = field(default_factory=list)
    fitness: float = 0.0
    adjusted_fitness: float = 0.0
    species_id: Optional[int] = None

    def node(self, node_id: int) -> Optional[NodeGene]:
        for node in self.node_genes:
            if node.id == node_id:
                return node
        return None

    def nodes_by_id(self) -> Dict[int, NodeGene]:
        return {node.id: node for node in self.node_genes}

    def nodes_of_type(self, node_type: NodeType) -> List[NodeGene]:
        return sorted((node for node in self.node_genes if node.type == node_type), key=lambda node: node.id)

    def enabled_connections(self) -> List[ConnectionGene]:
        return [gene for gene in self.connection_genes if gene.enabled]

    def max_innovation(self) -> int:
        return max((gene.innovation for gene in self.connection_genes), default=0)

    def next_node_id(self) -> int:
        return max((node.id for node in self.node_genes), default=-1) + 1

    def is_connected(self, from_node: int, to_node: int) -> bool:
        return any(gene.from_node == from_node and gene.to_node == to_node for gene in self.connection_genes)


def new_genome_id() -> str:
    return f"genome_{uuid.uuid4().hex[:12]}"


def create_minimal(
    config: NEATConfig,
    innovations: InnovationCounter | None = None,
    rng: random.Random | None = None,
) -> Genome:
    """Build a sparsely connected genome with no hidden nodes.

    Each output node is wired to between two and four distinct, randomly
    chosen inputs (capped by the number of inputs) with weights drawn from
    ``[-3, 3]``.
    """

    innovations = innovations or default_counter()
    rng = rng or _RNG

    node_genes = [NodeGene(i, NodeType.INPUT, 0) for i in range(config.input_nodes)]
    output_ids = [config.input_nodes + i for i in range(config.output_nodes)]
    node_genes.extend(NodeGene(node_id, NodeType.OUTPUT, 1) for node_id in output_ids)

    upper = min(MAX_CONNECTIONS_PER_OUTPUT, config.input_nodes)
    lower = min(MIN_CONNECTIONS_PER_OUTPUT, upper)
    connection_genes: List[ConnectionGene] = []
    for output_id in output_ids:
        count = rng.randint(lower, upper)
        for input_id in rng.sample(range(config.input_nodes), count):
            connection_genes.append(
                ConnectionGene(
                    innovation=innovations.for_connection(input_id, output_id),
                    from_node=input_id,
                    to_node=output_id,
                    weight=rng.uniform(-INITIAL_WEIGHT_RANGE, INITIAL_WEIGHT_RANGE),
                    enabled=True,
                )
            )

    return Genome(id=new_genome_id(), node_genes=node_genes, connection_genes=connection_genes)


def copy_genome(genome: Genome) -> Genome:
    """Deep copy under a fresh id with fitness cleared."""

    return Genome(
        id=new_genome_id(),
        node_genes=[replace(node) for node in genome.node_genes],
        connection_genes=[replace(gene) for gene in genome.connection_genes],
    )


def crossover(parent1: Genome, parent2: Genome, rng: random.Random | None = None) -> Genome:
    """Combine two parents, keeping the fitter parent's structure.

    Matching genes are picked from either parent with a fair coin; genes only
    the fitter parent has are inherited, genes only the weaker parent has are
    dropped. When both parents are equally fit ``parent1`` counts as fitter.
    """

    rng = rng or _RNG
    if parent1.fitness >= parent2.fitness:
        fitter, weaker = parent1, parent2
    else:
        fitter, weaker = parent2, parent1

    weaker_genes = {gene.innovation: gene for gene in weaker.connection_genes}
    child_genes: List[ConnectionGene] = []
    for gene in fitter.connection_genes:
        match = weaker_genes.get(gene.innovation)
        if match is not None and rng.random() < 0.5:
            child_genes.append(replace(match))
        else:
            child_genes.append(replace(gene))

    return Genome(
        id=new_genome_id(),
        node_genes=[replace(node) for node in fitter.node_genes],
        connection_genes=child_genes,
    )


def calculate_compatibility(genome1: Genome, genome2: Genome, config: NEATConfig) -> float:
    """NEAT compatibility distance ``c1*E/N + c2*D/N + c3*W``."""

    genes1 = {gene.innovation: gene for gene in genome1.connection_genes}
    genes2 = {gene.innovation: gene for gene in genome2.connection_genes}
    n = max(len(genes1), len(genes2))
    if n == 0:
        return 0.0

    threshold = min(genome1.max_innovation(), genome2.max_innovation())
    excess = 0
    disjoint = 0
    matching = 0
    weight_difference = 0.0
    for innovation in genes1.keys() | genes2.keys():
        gene1 = genes1.get(innovation)
        gene2 = genes2.get(innovation)
        if gene1 is not None and gene2 is not None:
            matching += 1
            weight_difference += abs(gene1.weight - gene2.weight)
        elif innovation > threshold:
            excess += 1
        else:
            disjoint += 1

    coefficients = config.speciation
    average_weight_difference = weight_difference / matching if matching else 0.0
    return (
        coefficients.excess_coefficient * excess / n
        + coefficients.disjoint_coefficient * disjoint / n
        + coefficients.weight_coefficient * average_weight_difference
    )
