"""Evolution engine: the generational state machine driving a run."""

from __future__ import annotations

import dataclasses
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import HyperParameters
from .enums import LoopState
from .errors import ConfigurationError
from .evaluator import Evaluator, episode_seeds
from .population import Individual, Population, select
from .program import generate_program
from .variation import crossover, mutate

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[LoopState, Tuple[LoopState, ...]] = {
    LoopState.INITIALIZING: (LoopState.EVALUATING, LoopState.TERMINATED),
    LoopState.EVALUATING: (LoopState.SELECTING, LoopState.TERMINATED),
    LoopState.SELECTING: (LoopState.VARYING, LoopState.TERMINATED),
    LoopState.VARYING: (LoopState.EVALUATING, LoopState.TERMINATED),
    LoopState.TERMINATED: (),
}


@dataclass
class RunBudget:
    """Limits imposed by an external driver, checked at generation boundaries."""

    max_seconds: Optional[float] = None
    max_generations: Optional[int] = None


@dataclass
class GenerationStats:
    generation: int
    best: float
    median: float
    worst: float
    mean: float
    best_length: int
    effective_size: int
    evaluated: int

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class RunResult:
    """Outcome of a run: the best individual seen in any generation."""

    best: Individual
    generations: int
    reason: str
    elapsed: float
    history: List[GenerationStats] = field(default_factory=list)
    states: List[LoopState] = field(default_factory=list)

    @property
    def best_fitness(self) -> float:
        return self.best.score

    @property
    def best_record(self) -> Dict[str, Any]:
        """Keys stored alongside the best program; metadata holds e.g. its learned Q-table."""
        return {
            "fitness": self.best.fitness,
            "generation": self.best.generation,
            "metadata": dict(self.best.metadata),
        }

    @property
    def best_program_json(self) -> str:
        return self.best.program.dumps(**self.best_record)

    def save_best(self, path: Union[str, Path]) -> Path:
        """Write the best program with its record, creating parent directories."""
        return self.best.program.save(path, **self.best_record)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_fitness": self.best_fitness,
            "generations": self.generations,
            "reason": self.reason,
            "elapsed": self.elapsed,
            "best": self.best.to_dict(),
            "history": [stats.to_dict() for stats in self.history],
        }


GenerationHook = Callable[["EvolutionEngine", GenerationStats], None]


class EvolutionEngine:
    """
    Orchestrates generations: evaluate -> select -> vary -> replace.

    The population is only modified by the thread calling ``run``/``step``;
    worker threads read programs during evaluation and hand back scores,
    which are written to their slots before the population is re-ranked.
    """

    def __init__(
        self,
        config: HyperParameters,
        evaluator: Optional[Evaluator] = None,
        *,
        budget: Optional[RunBudget] = None,
    ):
        self.config = config.validate()
        self.evaluator = evaluator or config.evaluation.build_evaluator()
        self.parameters = config.program_parameters(
            self.evaluator.n_inputs, self.evaluator.n_actions
        )
        self.weights = config.program.weights()
        self.budget = budget or RunBudget()
        self.rng = np.random.default_rng(config.seed)
        self.population = Population(config.population_size)

        self.state = LoopState.INITIALIZING
        self.states: List[LoopState] = [self.state]
        self.generation = 0
        self.best: Optional[Individual] = None
        self.history: List[GenerationStats] = []
        self.hooks: List[GenerationHook] = []
        self.termination_reason: Optional[str] = None
        self._stagnant_generations = 0
        self._cancelled = threading.Event()
        self._started_at: Optional[float] = None

    def add_hook(self, hook: GenerationHook) -> None:
        """Register a callback(engine, stats) run after each evaluation phase."""
        self.hooks.append(hook)

    def cancel(self) -> None:
        """Ask the run to stop at the next generation boundary."""
        self._cancelled.set()

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def _transition(self, new_state: LoopState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {new_state.value}.")
        self.state = new_state
        self.states.append(new_state)

    def initialize_population(self) -> None:
        """Fill the population with random programs."""
        min_length = self.config.program.min_initial_length
        while not self.population.is_full:
            program = generate_program(
                self.parameters, self.rng, min_length=min_length, weights=self.weights
            )
            self.population.add(program, generation=0)
        self._transition(LoopState.EVALUATING)

    def _score(self, programs: Sequence, seeds: List[int]) -> List[Tuple[float, Dict[str, Any]]]:
        def score(program):
            return self.evaluator.evaluate_with_metadata(program, seeds)

        if self.config.n_threads == 1 or len(programs) <= 1:
            return [score(program) for program in programs]
        with ThreadPoolExecutor(max_workers=self.config.n_threads) as pool:
            # map() yields in submission order, whatever order workers finish in.
            return list(pool.map(score, programs))

    def evaluate_population(self) -> GenerationStats:
        """Score unevaluated individuals, rank the population and record stats."""
        seeds = episode_seeds(self.rng, self.evaluator.n_episodes)
        slots = self.population.unevaluated()
        results = self._score([self.population[slot].program for slot in slots], seeds)
        for slot, (fitness, metadata) in zip(slots, results):
            individual = self.population[slot]
            individual.fitness = fitness
            individual.metadata.update(metadata)
        self.population.rank()
        return self._record_generation(len(slots))

    def _record_generation(self, n_evaluated: int) -> GenerationStats:
        ranked = self.population.slots
        scores = np.array([ind.score for ind in ranked], dtype=np.float64)
        leader = ranked[0]
        stats = GenerationStats(
            generation=self.generation,
            best=leader.score,
            median=ranked[len(ranked) // 2].score,
            worst=ranked[-1].score,
            mean=float(scores.mean()),
            best_length=len(leader.program),
            effective_size=leader.program.effective_size,
            evaluated=n_evaluated,
        )
        self.history.append(stats)

        if self.best is None or leader.score > self.best.score:
            self._stagnant_generations = 0
        else:
            self._stagnant_generations += 1
        if self.best is None or leader.sort_key() < self.best.sort_key():
            self.best = dataclasses.replace(leader, metadata=dict(leader.metadata))

        logger.info(
            "Gen %03d: Best Fitness=%.4f, Median=%.4f, Worst=%.4f, Effective Size=%d/%d",
            self.generation, stats.best, stats.median, stats.worst,
            stats.effective_size, stats.best_length,
        )

        for hook in self.hooks:
            hook(self, stats)
        self.generation += 1
        return stats

    def termination_reason_for_boundary(self) -> Optional[str]:
        """Name of the first termination criterion met, if any."""
        if self._cancelled.is_set():
            return "cancelled"
        if self.generation >= self.config.max_generations:
            return "max_generations"
        if (
            self.budget.max_generations is not None
            and self.generation >= self.budget.max_generations
        ):
            return "generation_budget"
        threshold = self.config.fitness_threshold
        if threshold is not None and self.best is not None and self.best.score >= threshold:
            return "fitness_threshold"
        limit = self.config.stagnation_limit
        if limit is not None and self._stagnant_generations >= limit:
            return "stagnation"
        limits = [s for s in (self.config.max_seconds, self.budget.max_seconds) if s is not None]
        if limits and self.elapsed >= min(limits):
            return "time_budget"
        return None

    def select_parents(self) -> List[Individual]:
        n_children = self.config.population_size - self.config.elite_count
        n_parents = 2 * math.ceil(n_children / 2)
        return select(
            self.population,
            n_parents,
            self.config.selection,
            self.rng,
            tournament_size=self.config.tournament_size,
        )

    def vary(self, parents: List[Individual]) -> List[Individual]:
        """Build the next generation: elites unchanged, then offspring of ``parents``."""
        config = self.config
        next_generation = self.generation
        elites = self.population.slots[: config.elite_count]
        if not config.lazy_evaluation:
            for elite in elites:
                elite.fitness = None
        n_children = config.population_size - len(elites)

        children: List[Individual] = []
        for i in range(0, len(parents), 2):
            parent_a, parent_b = parents[i].program, parents[i + 1].program
            if self.rng.random() < config.crossover_rate:
                offspring = crossover(parent_a, parent_b, self.rng, kind=config.crossover)
            else:
                offspring = (parent_a, parent_b)
            for program in offspring:
                if len(children) == n_children:
                    break
                child = mutate(
                    program,
                    config.mutation_rate,
                    self.rng,
                    kind=config.mutation,
                    weights=self.weights,
                )
                children.append(self.population.spawn(child, next_generation))

        return list(elites) + children

    def step(self) -> bool:
        """Advance one generation. Returns False once the run has terminated."""
        if self.state == LoopState.TERMINATED:
            return False
        if self._started_at is None:
            self._started_at = time.monotonic()
        if self.state == LoopState.INITIALIZING:
            self.initialize_population()

        self.evaluate_population()
        reason = self.termination_reason_for_boundary()
        if reason is not None:
            self.termination_reason = reason
            self._transition(LoopState.TERMINATED)
            logger.info(
                "Terminated after %d generations (%s); best fitness %.4f",
                self.generation, reason, self.best.score,
            )
            return False

        self._transition(LoopState.SELECTING)
        parents = self.select_parents()
        self._transition(LoopState.VARYING)
        self.population.replace(self.vary(parents))
        self._transition(LoopState.EVALUATING)
        return True

    def run(self) -> RunResult:
        """Run until a termination criterion holds and report the global best."""
        logger.info(
            "Starting run: population=%d, generations=%d, threads=%d, seed=%s",
            self.config.population_size,
            self.config.max_generations,
            self.config.n_threads,
            self.config.seed,
        )
        while self.step():
            pass
        return RunResult(
            best=self.best,
            generations=self.generation,
            reason=self.termination_reason or "",
            elapsed=self.elapsed,
            history=list(self.history),
            states=list(self.states),
        )


def run_experiment(
    config: Union[HyperParameters, Dict[str, Any]],
    *,
    evaluator: Optional[Evaluator] = None,
    budget: Optional[RunBudget] = None,
    hooks: Iterable[GenerationHook] = (),
) -> RunResult:
    """
    Entry point for search drivers: validate a configuration, run it and
    return the result. Raises ConfigurationError before any generation runs.
    """
    if isinstance(config, dict):
        config = HyperParameters.from_dict(config)
    elif not isinstance(config, HyperParameters):
        raise ConfigurationError("config must be a HyperParameters instance or a mapping.")
    engine = EvolutionEngine(config, evaluator, budget=budget)
    for hook in hooks:
        engine.add_hook(hook)
    return engine.run()


__all__ = [
    "ALLOWED_TRANSITIONS",
    "RunBudget",
    "GenerationStats",
    "RunResult",
    "EvolutionEngine",
    "run_experiment",
]
