"""Typed persistence records for genomes and populations.

The storage side only ever sees plain JSON-compatible dictionaries:

```
{
  "id": "genome_3f9c0a1b2d4e",
  "fitness": 412.5,
  "nodes": [{"id": 0, "type": "input", "layer": 0}, ...],
  "connections": [
    {"innovation": 1, "from": 0, "to": 6, "weight": -1.25, "enabled": true},
    ...
  ]
}
```

Populations wrap a list of genome records together with the engine config and
the generation number. Every loader validates the payload and raises
:class:`RecordError` instead of guessing.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from .config import ConfigError, NEATConfig
from .genome import ConnectionGene, Genome, NodeGene, NodeType
from .innovation import InnovationCounter
from .population import Population

POPULATION_FORMAT = "racing-neat.population.v1"
GENOME_FORMAT = "racing-neat.genome.v1"


class RecordError(ValueError):
    """Raised when a serialized genome or population is malformed."""


def _require(payload: Dict[str, object], key: str, context: str) -> object:
    if key not in payload:
        raise RecordError(f"{context} is missing '{key}'")
    return payload[key]


def _as_int(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordError(f"{label} must be an integer, got {value!r}")
    return value


def _as_float(value: object, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RecordError(f"{label} must be a number, got {value!r}")
    result = float(value)
    if not math.isfinite(result):
        raise RecordError(f"{label} must be finite, got {value!r}")
    return result


@dataclass
class NodeRecord:
    id: int
    type: NodeType
    layer: int

    @classmethod
    def from_payload(cls, payload: object) -> "NodeRecord":
        if not isinstance(payload, dict):
            raise RecordError(f"node entries must be objects, got {payload!r}")
        node_id = _as_int(_require(payload, "id", "node"), "node id")
        raw_type = _require(payload, "type", f"node {node_id}")
        try:
            node_type = NodeType(raw_type)
        except ValueError as exc:
            raise RecordError(f"node {node_id} has unknown type {raw_type!r}") from exc
        layer = _as_int(_require(payload, "layer", f"node {node_id}"), f"node {node_id} layer")
        return cls(id=node_id, type=node_type, layer=layer)

    def to_payload(self) -> Dict[str, object]:
        return {"id": self.id, "type": self.type.value, "layer": self.layer}


@dataclass
class ConnectionRecord:
    innovation: int
    from_node: int
    to_node: int
    weight: float
    enabled: bool

    @classmethod
    def from_payload(cls, payload: object) -> "ConnectionRecord":
        if not isinstance(payload, dict):
            raise RecordError(f"connection entries must be objects, got {payload!r}")
        innovation = _as_int(_require(payload, "innovation", "connection"), "innovation")
        context = f"connection {innovation}"
        enabled = _require(payload, "enabled", context)
        if not isinstance(enabled, bool):
            raise RecordError(f"{context} 'enabled' must be a boolean, got {enabled!r}")
        return cls(
            innovation=innovation,
            from_node=_as_int(_require(payload, "from", context), f"{context} 'from'"),
            to_node=_as_int(_require(payload, "to", context), f"{context} 'to'"),
            weight=_as_float(_require(payload, "weight", context), f"{context} weight"),
            enabled=enabled,
        )

    def to_payload(self) -> Dict[str, object]:
        return {
            "innovation": self.innovation,
            "from": self.from_node,
            "to": self.to_node,
            "weight": self.weight,
            "enabled": self.enabled,
        }


@dataclass
class GenomeRecord:
    id: str
    fitness: float
    nodes: List[NodeRecord]
    connections: List[ConnectionRecord]

    @classmethod
    def from_genome(cls, genome: Genome) -> "GenomeRecord":
        return cls(
            id=genome.id,
            fitness=float(genome.fitness),
            nodes=[NodeRecord(node.id, node.type, node.layer) for node in genome.node_genes],
            connections=[
                ConnectionRecord(gene.innovation, gene.from_node, gene.to_node, gene.weight, gene.enabled)
                for gene in genome.connection_genes
            ],
        )

    @classmethod
    def from_payload(cls, payload: object) -> "GenomeRecord":
        if not isinstance(payload, dict):
            raise RecordError(f"genome must be an object, got {payload!r}")
        genome_id = _require(payload, "id", "genome")
        if not isinstance(genome_id, str) or not genome_id:
            raise RecordError(f"genome id must be a non-empty string, got {genome_id!r}")
        raw_nodes = _require(payload, "nodes", f"genome {genome_id}")
        raw_connections = _require(payload, "connections", f"genome {genome_id}")
        if not isinstance(raw_nodes, list) or not isinstance(raw_connections, list):
            raise RecordError(f"genome {genome_id} nodes and connections must be lists")

        record = cls(
            id=genome_id,
            fitness=_as_float(payload.get("fitness", 0.0), f"genome {genome_id} fitness"),
            nodes=[NodeRecord.from_payload(raw) for raw in raw_nodes],
            connections=[ConnectionRecord.from_payload(raw) for raw in raw_connections],
        )
        record.validate()
        return record

    def validate(self) -> None:
        nodes: Dict[int, NodeRecord] = {}
        for node in self.nodes:
            if node.id in nodes:
                raise RecordError(f"genome {self.id} has duplicate node id {node.id}")
            nodes[node.id] = node
        if not any(node.type == NodeType.INPUT for node in self.nodes):
            raise RecordError(f"genome {self.id} has no input nodes")
        if not any(node.type == NodeType.OUTPUT for node in self.nodes):
            raise RecordError(f"genome {self.id} has no output nodes")

        innovations = set()
        pairs = set()
        for connection in self.connections:
            context = f"genome {self.id} connection {connection.innovation}"
            if connection.innovation in innovations:
                raise RecordError(f"genome {self.id} has duplicate innovation {connection.innovation}")
            innovations.add(connection.innovation)
            for endpoint in (connection.from_node, connection.to_node):
                if endpoint not in nodes:
                    raise RecordError(f"{context} references unknown node {endpoint}")
            source = nodes[connection.from_node]
            target = nodes[connection.to_node]
            if target.type == NodeType.INPUT:
                raise RecordError(f"{context} targets input node {target.id}")
            # Disabled genes may lag behind layer shifts; only live edges must point forward.
            if connection.enabled and source.layer >= target.layer:
                raise RecordError(
                    f"{context} does not point forward (layer {source.layer} -> {target.layer})"
                )
            pair = (connection.from_node, connection.to_node)
            if pair in pairs:
                raise RecordError(f"{context} duplicates connection {source.id} -> {target.id}")
            pairs.add(pair)

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "fitness": self.fitness,
            "nodes": [node.to_payload() for node in self.nodes],
            "connections": [connection.to_payload() for connection in self.connections],
        }

    def to_genome(self) -> Genome:
        return Genome(
            id=self.id,
            node_genes=[NodeGene(node.id, node.type, node.layer) for node in self.nodes],
            connection_genes=[
                ConnectionGene(c.innovation, c.from_node, c.to_node, c.weight, c.enabled) for c in self.connections
            ],
            fitness=self.fitness,
        )


def genome_to_payload(genome: Genome) -> Dict[str, object]:
    return GenomeRecord.from_genome(genome).to_payload()


def genome_from_payload(payload: object) -> Genome:
    return GenomeRecord.from_payload(payload).to_genome()


def population_to_payload(population: Population) -> Dict[str, object]:
    return {
        "format": POPULATION_FORMAT,
        "generation": population.generation,
        "config": population.config.to_dict(),
        "genomes": [genome_to_payload(genome) for genome in population.genomes],
    }


def population_from_payload(
    payload: object,
    innovations: InnovationCounter | None = None,
    seed: int | None = None,
) -> Population:
    if not isinstance(payload, dict):
        raise RecordError(f"population must be an object, got {payload!r}")
    if payload.get("format", POPULATION_FORMAT) != POPULATION_FORMAT:
        raise RecordError(f"Unsupported population format {payload.get('format')!r}")
    try:
        config = NEATConfig.from_dict(_require(payload, "config", "population"))
    except ConfigError as exc:
        raise RecordError(f"population config is invalid: {exc}") from exc
    generation = _as_int(_require(payload, "generation", "population"), "generation")
    raw_genomes = _require(payload, "genomes", "population")
    if not isinstance(raw_genomes, list):
        raise RecordError("population genomes must be a list")
    genomes = [genome_from_payload(raw) for raw in raw_genomes]
    if len(genomes) != config.population_size:
        raise RecordError(f"population holds {len(genomes)} genomes, config expects {config.population_size}")
    for genome in genomes:
        inputs = len(genome.nodes_of_type(NodeType.INPUT))
        if inputs != config.input_nodes:
            raise RecordError(f"genome {genome.id} has {inputs} inputs, config expects {config.input_nodes}")
        outputs = len(genome.nodes_of_type(NodeType.OUTPUT))
        if outputs != config.output_nodes:
            raise RecordError(f"genome {genome.id} has {outputs} outputs, config expects {config.output_nodes}")
    return Population(config, seed=seed, innovations=innovations, genomes=genomes, generation=generation)


def save_genome(genome: Genome, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"format": GENOME_FORMAT, **genome_to_payload(genome)}
    with open(path, "w", encoding="utf-8") as fp:
        json.dump(payload, fp, indent=2)


def load_genome(path: Path) -> Genome:
    with open(path, "r", encoding="utf-8") as fp:
        payload = json.load(fp)
    if isinstance(payload, dict) and payload.get("format", GENOME_FORMAT) != GENOME_FORMAT:
        raise RecordError(f"Unsupported genome format {payload.get('format')!r}")
    return genome_from_payload(payload)


def save_population(population: Population, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fp:
        json.dump(population_to_payload(population), fp, indent=2)


def load_population(path: Path, innovations: InnovationCounter | None = None, seed: int | None = None) -> Population:
    with open(path, "r", encoding="utf-8") as fp:
        payload = json.load(fp)
    return population_from_payload(payload, innovations=innovations, seed=seed)
