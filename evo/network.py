"""Feed-forward phenotype built from a genome."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .genome import Genome, NodeType

CONTROL_OUTPUTS = 2
_ACTIVATION_CLAMP = 60.0


def sigmoid(value: float) -> float:
    value = max(-_ACTIVATION_CLAMP, min(_ACTIVATION_CLAMP, value))
    return 1.0 / (1.0 + math.exp(-value))


@dataclass
class Controls:
    throttle: float
    steering: float

    def to_dict(self) -> Dict[str, float]:
        return {"throttle": float(self.throttle), "steering": float(self.steering)}


class FeedForwardNetwork:
    """Evaluates a genome layer by layer.

    Nodes are processed in ascending ``layer`` order only. A connection whose
    source sits in the same layer as its target (which the layer relaxation
    in :mod:`evo.mutations` prevents) reads whatever value the source held,
    zero if it has not been computed yet.
    """

    def __init__(
        self,
        input_ids: List[int],
        output_ids: List[int],
        layers: List[List[Tuple[int, NodeType, List[Tuple[int, float]]]]],
    ) -> None:
        self.input_ids = input_ids
        self.output_ids = output_ids
        self.layers = layers
        self.values: Dict[int, float] = {}

    @classmethod
    def create(cls, genome: Genome) -> "FeedForwardNetwork":
        incoming: Dict[int, List[Tuple[int, float]]] = {}
        for gene in genome.connection_genes:
            if gene.enabled:
                incoming.setdefault(gene.to_node, []).append((gene.from_node, gene.weight))

        grouped: Dict[int, List[Tuple[int, NodeType, List[Tuple[int, float]]]]] = {}
        for node in sorted(genome.node_genes, key=lambda n: (n.layer, n.id)):
            if node.type == NodeType.INPUT:
                continue
            grouped.setdefault(node.layer, []).append((node.id, node.type, incoming.get(node.id, [])))

        input_ids = [node.id for node in genome.nodes_of_type(NodeType.INPUT)]
        output_ids = [node.id for node in genome.nodes_of_type(NodeType.OUTPUT)]
        layers = [grouped[layer] for layer in sorted(grouped)]
        return cls(input_ids, output_ids, layers)

    def activate(self, inputs: Sequence[float]) -> List[float]:
        if len(inputs) != len(self.input_ids):
            raise ValueError(f"Expected {len(self.input_ids):d} inputs, got {len(inputs):d}")

        control_ids = set(self.output_ids[:CONTROL_OUTPUTS])
        self.values = {node_id: float(value) for node_id, value in zip(self.input_ids, inputs)}
        for layer in self.layers:
            for node_id, node_type, links in layer:
                total = 0.0
                for source, weight in links:
                    total += self.values.get(source, 0.0) * weight
                if node_id in control_ids:
                    self.values[node_id] = math.tanh(total)
                else:
                    self.values[node_id] = sigmoid(total)

        return [self.values.get(node_id, 0.0) for node_id in self.output_ids]

    def controls(self, inputs: Sequence[float]) -> Controls:
        """Return ``(throttle, steering)`` from the first two outputs."""

        outputs = self.activate(inputs)
        throttle = outputs[0] if outputs else 0.0
        steering = outputs[1] if len(outputs) > 1 else 0.0
        return Controls(throttle=throttle, steering=steering)

    def connection_count(self) -> int:
        return sum(len(links) for layer in self.layers for _, _, links in layer)

    def node_count(self) -> int:
        return len(self.input_ids) + sum(len(layer) for layer in self.layers)
