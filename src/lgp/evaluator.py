"""Fitness evaluation of programs against environments and datasets."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .enums import Reduction
from .environments import Environment, EnvironmentFactory, resolve_environment
from .errors import ConfigurationError, EvaluationError
from .interpreter import Interpreter, select_action
from .program import Program

logger = logging.getLogger(__name__)

# Most negative finite float64; scores programs whose evaluation failed.
SENTINEL_FITNESS = float(np.finfo(np.float64).min)

EpisodeCallback = Callable[[int, "EpisodeState"], None]


def episode_seeds(rng: np.random.Generator, n: int) -> List[int]:
    """Draw a seed sequence for ``n`` episodes from a generator."""
    return [int(s) for s in rng.integers(0, 2**32, size=n)]


def reduce_scores(scores: Sequence[float], reduction: Union[str, Reduction]) -> float:
    """Fold per-episode scores into one fitness value."""
    if not scores:
        raise ValueError("Cannot reduce an empty score list.")
    key = Reduction(reduction)
    values = np.asarray(scores, dtype=np.float64)
    if key == Reduction.MEAN:
        return float(values.mean())
    if key == Reduction.SUM:
        return float(values.sum())
    if key == Reduction.MEDIAN:
        return float(np.median(values))
    return float(values.min())


@dataclass
class EpisodeState:
    """Transient state of one environment episode."""

    observation: np.ndarray
    cumulative_reward: float = 0.0
    steps: int = 0
    done: bool = False


class Evaluator(ABC):
    """Scores a program. ``seeds`` drive any randomness of the evaluation."""

    n_episodes: int = 0

    @abstractmethod
    def evaluate(self, program: Program, seeds: Optional[Sequence[int]] = None) -> float:
        """Return the program's fitness; failures map to SENTINEL_FITNESS."""

    def evaluate_with_metadata(
        self, program: Program, seeds: Optional[Sequence[int]] = None
    ) -> Tuple[float, Dict[str, Any]]:
        """Fitness plus evaluation metadata to cache on the individual."""
        return self.evaluate(program, seeds), {}

    @property
    @abstractmethod
    def n_inputs(self) -> int:
        """Input arity programs must be built for."""

    @property
    @abstractmethod
    def n_actions(self) -> int:
        """Number of action registers programs must be built for."""


class EpisodeEvaluator(Evaluator):
    """
    Runs a program for several episodes of an environment and reduces the
    episode returns to one fitness value.
    """

    def __init__(
        self,
        environment: Union[str, EnvironmentFactory],
        n_episodes: int = 5,
        *,
        max_episode_steps: Optional[int] = None,
        reduction: Union[str, Reduction] = Reduction.MEAN,
        interpreter: Optional[Interpreter] = None,
        persistent_memory: bool = False,
        environment_kwargs: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            environment: Registered environment name or a factory returning a new instance
            n_episodes: Episodes per evaluation when no seeds are given
            max_episode_steps: Step cap per episode (defaults to the environment's)
            reduction: How episode returns are combined
            interpreter: Interpreter carrying the execution limits
            persistent_memory: Carry registers over from one episode to the next
            environment_kwargs: Keyword arguments for the environment factory
        """
        if n_episodes < 1:
            raise ConfigurationError("At least one episode per evaluation is required.")
        self.factory = resolve_environment(environment) if isinstance(environment, str) else environment
        self.environment_kwargs = dict(environment_kwargs or {})
        self.n_episodes = int(n_episodes)
        try:
            self.reduction = Reduction(reduction)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown reduction '{reduction}'.") from exc
        self.interpreter = interpreter or Interpreter()
        self.persistent_memory = persistent_memory

        sample = self.make_environment()
        self._n_inputs = int(sample.n_inputs)
        self._n_actions = int(sample.n_actions)
        self.max_episode_steps = int(max_episode_steps or sample.max_episode_steps)
        if self.max_episode_steps < 1:
            raise ConfigurationError("max_episode_steps must be at least 1.")

    @property
    def n_inputs(self) -> int:
        return self._n_inputs

    @property
    def n_actions(self) -> int:
        return self._n_actions

    def make_environment(self) -> Environment:
        return self.factory(**self.environment_kwargs)

    def build_environment(self) -> Environment:
        """Fresh environment for one evaluation; construction failures become EvaluationError."""
        try:
            return self.make_environment()
        except Exception as exc:
            raise EvaluationError(f"{type(exc).__name__} while building environment: {exc}") from exc

    def read_observation(self, observation: Any, step: int) -> np.ndarray:
        """Convert an observation to a float vector of the input arity."""
        try:
            values = np.asarray(observation, dtype=np.float64).ravel()
        except (TypeError, ValueError) as exc:
            raise EvaluationError(f"Malformed observation at step {step}: {exc}") from exc
        if len(values) != self._n_inputs:
            raise EvaluationError(
                f"Observation at step {step} has {len(values)} values, expected {self._n_inputs}."
            )
        return values

    def execute(
        self, program: Program, observation: np.ndarray, registers: Optional[np.ndarray], step: int
    ) -> np.ndarray:
        """Run the program on one observation; any failure becomes EvaluationError."""
        try:
            return self.interpreter.execute(program, observation, registers).registers
        except Exception as exc:
            raise EvaluationError(f"{type(exc).__name__} during execution at step {step}: {exc}") from exc

    def evaluate(
        self,
        program: Program,
        seeds: Optional[Sequence[int]] = None,
        callback: Optional[EpisodeCallback] = None,
    ) -> float:
        """
        Evaluate a program on one episode per seed.

        Args:
            program: The program to evaluate
            seeds: Episode seeds; defaults to ``range(n_episodes)``
            callback: Optional callback(episode_idx, state) after each episode

        Returns:
            Reduced fitness, or SENTINEL_FITNESS when an episode failed
        """
        seeds = list(range(self.n_episodes)) if seeds is None else list(seeds)
        registers: Optional[np.ndarray] = None
        scores: List[float] = []

        try:
            environment = self.build_environment()
            for idx, seed in enumerate(seeds):
                if not self.persistent_memory:
                    registers = None
                state, registers = self.run_episode(program, environment, seed, registers)
                logger.debug(
                    "program=%s episode=%d seed=%d steps=%d score=%.4f",
                    program.id[:8], idx, seed, state.steps, state.cumulative_reward,
                )
                scores.append(state.cumulative_reward)
                if callback:
                    callback(idx, state)
        except EvaluationError as exc:
            logger.warning("Evaluation of program %s failed: %s", program.id[:8], exc)
            return SENTINEL_FITNESS

        return reduce_scores(scores, self.reduction)

    def run_episode(
        self,
        program: Program,
        environment: Environment,
        seed: Optional[int],
        registers: Optional[np.ndarray] = None,
    ) -> Tuple[EpisodeState, np.ndarray]:
        """Run one episode; registers persist across the steps of the episode."""
        try:
            observation = environment.reset(seed=seed)
        except Exception as exc:
            raise EvaluationError(f"{type(exc).__name__} during reset: {exc}") from exc
        state = EpisodeState(observation=self.read_observation(observation, 0))
        n_actions = program.parameters.n_actions

        while not state.done and state.steps < self.max_episode_steps:
            registers = self.execute(program, state.observation, registers, state.steps)
            if not np.all(np.isfinite(registers[:n_actions])):
                raise EvaluationError(
                    f"Non-finite action registers at step {state.steps}."
                )
            action = select_action(registers, n_actions)
            if action is None:
                action = environment.default_action

            try:
                observation, reward, done = environment.step(action)
                reward = float(reward)
            except Exception as exc:
                raise EvaluationError(
                    f"{type(exc).__name__} at step {state.steps}: {exc}"
                ) from exc
            observation = self.read_observation(observation, state.steps + 1)
            if not np.isfinite(reward):
                raise EvaluationError(f"Non-finite reward at step {state.steps}.")

            state.observation = observation
            state.cumulative_reward += reward
            state.steps += 1
            state.done = bool(done)

        if registers is None:
            registers = self.interpreter.initial_registers(program)
        return state, registers


class ClassificationEvaluator(Evaluator):
    """
    Fraction of samples whose label matches the winning action register.
    Ties between action registers count as wrong. Registers are reset per sample.
    """

    def __init__(
        self,
        features: Any,
        labels: Any,
        *,
        n_classes: Optional[int] = None,
        interpreter: Optional[Interpreter] = None,
    ):
        self.features = np.atleast_2d(np.asarray(features, dtype=np.float64))
        self.labels = np.asarray(labels, dtype=np.int64).ravel()
        if len(self.features) != len(self.labels):
            raise ConfigurationError("Features and labels must have the same number of rows.")
        if len(self.labels) == 0:
            raise ConfigurationError("Classification needs at least one sample.")
        self._n_classes = int(n_classes or self.labels.max() + 1)
        self.interpreter = interpreter or Interpreter()

    @classmethod
    def from_csv(cls, path: Union[str, Path], **kwargs) -> "ClassificationEvaluator":
        """Load a header-less CSV whose last column holds integer class labels."""
        data = np.loadtxt(Path(path), delimiter=",", ndmin=2)
        return cls(data[:, :-1], data[:, -1].astype(np.int64), **kwargs)

    @property
    def n_inputs(self) -> int:
        return int(self.features.shape[1])

    @property
    def n_actions(self) -> int:
        return self._n_classes

    def evaluate(self, program: Program, seeds: Optional[Sequence[int]] = None) -> float:
        n_correct = 0
        for sample, label in zip(self.features, self.labels):
            registers = self.interpreter.execute(program, sample).registers
            if select_action(registers, program.parameters.n_actions) == label:
                n_correct += 1
        return n_correct / len(self.labels)


__all__ = [
    "SENTINEL_FITNESS",
    "EpisodeState",
    "Evaluator",
    "EpisodeEvaluator",
    "ClassificationEvaluator",
    "episode_seeds",
    "reduce_scores",
]
