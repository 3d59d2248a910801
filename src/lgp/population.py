"""Individuals, the population arena and selection strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import numpy as np

from .enums import SelectionStrategy
from .errors import ConfigurationError
from .evaluator import SENTINEL_FITNESS
from .program import Program


@dataclass
class Individual:
    """A program with its fitness (unset until evaluated) and cached metadata."""

    program: Program
    index: int
    fitness: Optional[float] = None
    generation: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def evaluated(self) -> bool:
        return self.fitness is not None

    @property
    def score(self) -> float:
        return SENTINEL_FITNESS if self.fitness is None else self.fitness

    def sort_key(self) -> Tuple[float, int, int]:
        """Canonical order: higher fitness, then fewer instructions, then older."""
        return (-self.score, len(self.program), self.index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "generation": self.generation,
            "fitness": self.fitness,
            "metadata": self.metadata,
            "program": self.program.to_dict(),
        }


class Population:
    """
    Fixed-capacity collection of individuals stored by slot.

    Ordering is recomputed by ``rank()`` after each evaluation phase, not kept
    up to date on insertion. Insertion indices grow monotonically across
    generations and break fitness/length ties.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ConfigurationError(f"Population capacity must be at least 1, got {capacity}.")
        self.capacity = int(capacity)
        self.slots: List[Individual] = []
        self._next_index = 0

    def __len__(self) -> int:
        return len(self.slots)

    def __iter__(self) -> Iterator[Individual]:
        return iter(self.slots)

    def __getitem__(self, slot: int) -> Individual:
        return self.slots[slot]

    @property
    def is_full(self) -> bool:
        return len(self.slots) >= self.capacity

    def spawn(self, program: Program, generation: int = 0) -> Individual:
        """Create an individual with the next insertion index, without inserting it."""
        individual = Individual(program=program, index=self._next_index, generation=generation)
        self._next_index += 1
        return individual

    def add(self, individual: Union[Individual, Program], generation: int = 0) -> Individual:
        if isinstance(individual, Program):
            individual = self.spawn(individual, generation)
        if self.is_full:
            raise ValueError(f"Population is full ({self.capacity} individuals).")
        self.slots.append(individual)
        return individual

    def replace(self, individuals: Iterable[Individual]) -> None:
        """Swap in the next generation wholesale."""
        new_slots = list(individuals)
        if len(new_slots) > self.capacity:
            raise ValueError(
                f"Next generation has {len(new_slots)} individuals; capacity is {self.capacity}."
            )
        self.slots = new_slots

    def unevaluated(self) -> List[int]:
        """Slot numbers of individuals without a fitness value."""
        return [slot for slot, ind in enumerate(self.slots) if ind.fitness is None]

    def rank(self) -> None:
        self.slots.sort(key=Individual.sort_key)

    def ranked(self) -> List[Individual]:
        return sorted(self.slots, key=Individual.sort_key)

    def best(self) -> Optional[Individual]:
        ranked = self.ranked()
        return ranked[0] if ranked else None

    def median(self) -> Optional[Individual]:
        ranked = self.ranked()
        return ranked[len(ranked) // 2] if ranked else None

    def worst(self) -> Optional[Individual]:
        ranked = self.ranked()
        return ranked[-1] if ranked else None


def tournament_selection(
    ranked: List[Individual], count: int, rng: np.random.Generator, tournament_size: int = 3
) -> List[Individual]:
    """Best of ``tournament_size`` distinct contestants, ``count`` times."""
    size = min(max(1, tournament_size), len(ranked))
    selected = []
    for _ in range(count):
        contestants = rng.choice(len(ranked), size=size, replace=False)
        # ``ranked`` is in canonical order, so the lowest position wins.
        selected.append(ranked[int(contestants.min())])
    return selected


def rank_selection(
    ranked: List[Individual], count: int, rng: np.random.Generator, **_: Any
) -> List[Individual]:
    """Linear ranking: the i-th best of n is drawn with weight n - i."""
    n = len(ranked)
    weights = np.arange(n, 0, -1, dtype=np.float64)
    picks = rng.choice(n, size=count, p=weights / weights.sum())
    return [ranked[int(i)] for i in picks]


def elitist_selection(
    ranked: List[Individual], count: int, rng: np.random.Generator, **_: Any
) -> List[Individual]:
    """Top-k in canonical order, cycling when more are requested than exist."""
    return [ranked[i % len(ranked)] for i in range(count)]


SelectionFunction = Callable[..., List[Individual]]

SELECTION_STRATEGIES: Dict[SelectionStrategy, SelectionFunction] = {
    SelectionStrategy.TOURNAMENT: tournament_selection,
    SelectionStrategy.RANK: rank_selection,
    SelectionStrategy.ELITIST: elitist_selection,
}


def select(
    population: Population,
    count: int,
    strategy: Union[str, SelectionStrategy],
    rng: np.random.Generator,
    *,
    tournament_size: int = 3,
) -> List[Individual]:
    """
    Choose ``count`` individuals with the given strategy.

    The population is ranked canonically first, so the result depends only on
    the population contents and the generator state.
    """
    if count < 0:
        raise ValueError("Selection count cannot be negative.")
    if count == 0:
        return []
    if len(population) == 0:
        raise ValueError("Cannot select from an empty population.")
    selection = SELECTION_STRATEGIES[SelectionStrategy(strategy)]
    return selection(population.ranked(), count, rng, tournament_size=tournament_size)


__all__ = [
    "Individual",
    "Population",
    "SELECTION_STRATEGIES",
    "select",
    "tournament_selection",
    "rank_selection",
    "elitist_selection",
]
