"""Historical markings for connection genes.

Every connection gene carries an innovation number so that genes sharing an
evolutionary origin can be lined up during crossover and speciation. The
counter is process wide for a training session and only ever moves forward.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .genome import Genome


class InnovationCounter:
    """Monotonic innovation source with a ``(from, to)`` registry.

    The first time a structural connection appears it receives the next
    number; later occurrences of the same ``(from, to)`` pair in any genome
    reuse it.
    """

    def __init__(self, start: int = 0) -> None:
        self._current = int(start)
        self._registry: Dict[Tuple[int, int], int] = {}

    @property
    def current(self) -> int:
        """Last number handed out (0 when nothing was allocated yet)."""

        return self._current

    def get_next(self) -> int:
        self._current += 1
        return self._current

    def for_connection(self, from_node: int, to_node: int) -> int:
        key = (int(from_node), int(to_node))
        innovation = self._registry.get(key)
        if innovation is None:
            innovation = self.get_next()
            self._registry[key] = innovation
        return innovation

    def observe(self, genome: "Genome") -> None:
        """Advance past the innovations of an externally created genome.

        A ``(from, to)`` pair that is already registered keeps its existing
        number. If the loaded genome numbered that pair differently, the two
        genes stay unaligned for crossover and compatibility, as with genomes
        from before a :meth:`reset`. Load saved populations into a fresh
        counter to avoid this.
        """

        for gene in genome.connection_genes:
            self._registry.setdefault((gene.from_node, gene.to_node), gene.innovation)
            if gene.innovation > self._current:
                self._current = gene.innovation

    def reset(self) -> None:
        """Start numbering from scratch.

        Genomes created before a reset no longer align with genomes created
        after it, so only call this when starting a new training session.
        """

        self._current = 0
        self._registry.clear()


_DEFAULT_COUNTER = InnovationCounter()


def default_counter() -> InnovationCounter:
    return _DEFAULT_COUNTER
