"""Configuration for the evolutionary engine.

The parameters live in an INI file using the same layout as ``neat-python``
configs: one section per concern and ``name = value`` pairs. Parsing and
pretty printing reuse :mod:`neat.config` so files stay interchangeable with
the tooling around that library.

```
[NEAT]
population_size = 20
input_nodes     = 6
output_nodes    = 2

[Speciation]
compatibility_threshold = 3.0
excess_coefficient      = 1.0
disjoint_coefficient    = 1.0
weight_coefficient      = 0.4

[Mutation]
weight_mutation     = 0.8
weight_perturbation = 0.9
add_connection      = 0.1
add_node            = 0.05
disable_connection  = 0.02

[Reproduction]
elitism_fraction      = 0.2
min_elites            = 2
mutant_fraction       = 0.7
low_fitness_threshold = 5.0
```

Missing keys fall back to the defaults below; unknown keys are rejected.
"""

from __future__ import annotations

import configparser
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Tuple

from neat.config import ConfigParameter, write_pretty_params


class ConfigError(ValueError):
    """Raised when an engine configuration is malformed."""


@dataclass
class SpeciationConfig:
    compatibility_threshold: float = 3.0
    excess_coefficient: float = 1.0
    disjoint_coefficient: float = 1.0
    weight_coefficient: float = 0.4


@dataclass
class MutationRates:
    weight_mutation: float = 0.8
    weight_perturbation: float = 0.9
    add_connection: float = 0.1
    add_node: float = 0.05
    disable_connection: float = 0.02


@dataclass
class ReproductionConfig:
    elitism_fraction: float = 0.2
    min_elites: int = 2
    mutant_fraction: float = 0.7
    low_fitness_threshold: float = 5.0


@dataclass
class NEATConfig:
    population_size: int = 20
    input_nodes: int = 6
    output_nodes: int = 2
    speciation: SpeciationConfig = field(default_factory=SpeciationConfig)
    mutation: MutationRates = field(default_factory=MutationRates)
    reproduction: ReproductionConfig = field(default_factory=ReproductionConfig)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.population_size < 1:
            raise ConfigError(f"population_size must be at least 1, got {self.population_size}")
        if self.input_nodes < 1:
            raise ConfigError(f"input_nodes must be at least 1, got {self.input_nodes}")
        if self.output_nodes < 1:
            raise ConfigError(f"output_nodes must be at least 1, got {self.output_nodes}")

        speciation = self.speciation
        if speciation.compatibility_threshold <= 0.0:
            raise ConfigError("compatibility_threshold must be positive")
        for name in ("excess_coefficient", "disjoint_coefficient", "weight_coefficient"):
            if getattr(speciation, name) < 0.0:
                raise ConfigError(f"{name} must be non-negative")

        for item in fields(MutationRates):
            value = getattr(self.mutation, item.name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"mutation rate {item.name} must be within [0, 1], got {value}")

        reproduction = self.reproduction
        if not 0.0 <= reproduction.elitism_fraction <= 1.0:
            raise ConfigError("elitism_fraction must be within [0, 1]")
        if not 0.0 <= reproduction.mutant_fraction <= 1.0:
            raise ConfigError("mutant_fraction must be within [0, 1]")
        if reproduction.min_elites < 0:
            raise ConfigError("min_elites must be non-negative")

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: object) -> "NEATConfig":
        if not isinstance(payload, dict):
            raise ConfigError(f"config must be an object, got {payload!r}")
        try:
            return cls(
                population_size=int(payload["population_size"]),
                input_nodes=int(payload["input_nodes"]),
                output_nodes=int(payload["output_nodes"]),
                speciation=SpeciationConfig(**payload.get("speciation", {})),
                mutation=MutationRates(**payload.get("mutation", {})),
                reproduction=ReproductionConfig(**payload.get("reproduction", {})),
            )
        except ConfigError:
            raise
        except KeyError as exc:
            raise ConfigError(f"config is missing field {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"invalid config payload: {exc}") from exc

    @classmethod
    def load(cls, path: Path) -> "NEATConfig":
        parser = configparser.ConfigParser()
        with open(path, "r", encoding="utf-8") as fp:
            parser.read_file(fp)

        values: Dict[str, Dict[str, object]] = {}
        for section, _, params in _SECTIONS:
            values[section] = _parse_section(parser, section, params)

        unknown_sections = set(parser.sections()) - {section for section, _, _ in _SECTIONS}
        if unknown_sections:
            raise ConfigError(f"Unknown config sections: {sorted(unknown_sections)}")

        return cls(
            speciation=SpeciationConfig(**values["Speciation"]),
            mutation=MutationRates(**values["Mutation"]),
            reproduction=ReproductionConfig(**values["Reproduction"]),
            **values["NEAT"],
        )

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fp:
            for index, (section, attribute, params) in enumerate(_SECTIONS):
                if index:
                    fp.write("\n")
                fp.write(f"[{section}]\n")
                target = getattr(self, attribute) if attribute else self
                write_pretty_params(fp, target, params)


def _parameters(dataclass_type: type, names: List[str] | None = None) -> List[ConfigParameter]:
    params = []
    for item in fields(dataclass_type):
        if names is not None and item.name not in names:
            continue
        value_type = item.type if isinstance(item.type, type) else {"int": int, "float": float}[item.type]
        params.append(ConfigParameter(item.name, value_type, item.default))
    return params


_SECTIONS: List[Tuple[str, str | None, List[ConfigParameter]]] = [
    ("NEAT", None, _parameters(NEATConfig, ["population_size", "input_nodes", "output_nodes"])),
    ("Speciation", "speciation", _parameters(SpeciationConfig)),
    ("Mutation", "mutation", _parameters(MutationRates)),
    ("Reproduction", "reproduction", _parameters(ReproductionConfig)),
]


def _parse_section(
    parser: configparser.ConfigParser,
    section: str,
    params: List[ConfigParameter],
) -> Dict[str, object]:
    values: Dict[str, object] = {}
    if not parser.has_section(section):
        return {param.name: param.default for param in params}

    known = {param.name for param in params}
    unknown = [name for name in parser.options(section) if name not in known and name not in parser.defaults()]
    if unknown:
        raise ConfigError(f"Unknown keys in [{section}]: {unknown}")

    for param in params:
        if not parser.has_option(section, param.name):
            values[param.name] = param.default
            continue
        try:
            values[param.name] = param.parse(section, parser)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {param.name} in [{section}]: {exc}") from exc
    return values
