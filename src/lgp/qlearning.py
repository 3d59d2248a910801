"""Q-learning action selection on top of linear programs (Q-LGP)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .enums import Reduction
from .environments import Environment
from .errors import ConfigurationError, EvaluationError, RepresentationError
from .evaluator import SENTINEL_FITNESS, EpisodeEvaluator, reduce_scores
from .program import Program

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QConsts:
    """Step size (alpha), discount (gamma) and exploration rate (epsilon)."""

    alpha: float = 0.25
    gamma: float = 0.125
    epsilon: float = 0.05

    def validate(self) -> None:
        for name in ("alpha", "gamma", "epsilon"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"Q-learning {name} must lie in [0, 1], got {value}.")


@dataclass(frozen=True)
class ActionRegisterPair:
    action: int
    register: int


class QTable:
    """
    One row per register, one column per action. The register that wins the
    program's output picks the row; the row picks the action.
    """

    def __init__(self, n_registers: int, n_actions: int, consts: Optional[QConsts] = None):
        self.consts = consts or QConsts()
        self.table = np.zeros((n_registers, n_actions), dtype=np.float64)

    @property
    def n_actions(self) -> int:
        return self.table.shape[1]

    def copy(self) -> "QTable":
        clone = QTable(*self.table.shape, consts=self.consts)
        clone.table = self.table.copy()
        return clone

    def action_argmax(self, register: int) -> int:
        return int(np.argmax(self.table[register]))

    def choose_action(self, register: int, rng: np.random.Generator) -> int:
        """Epsilon-greedy choice over the row of ``register``."""
        if rng.random() < self.consts.epsilon:
            return int(rng.integers(self.n_actions))
        return self.action_argmax(register)

    def update(self, current: ActionRegisterPair, reward: float, following: ActionRegisterPair):
        """Update Q-value of the current pair from the reward and the next row's best value."""
        current_q = self.table[current.register, current.action]
        next_q = self.table[following.register].max()
        self.table[current.register, current.action] += self.consts.alpha * (
            reward + self.consts.gamma * next_q - current_q
        )

    def to_list(self) -> List[List[float]]:
        return self.table.tolist()

    @classmethod
    def from_list(cls, rows: Sequence[Sequence[float]], consts: Optional[QConsts] = None) -> "QTable":
        """Rebuild a table saved with ``to_list``."""
        try:
            values = np.asarray(rows, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise RepresentationError(f"Malformed Q-table: {exc}") from exc
        if values.ndim != 2 or 0 in values.shape:
            raise RepresentationError(f"Q-table must be a non-empty 2-D list, got shape {values.shape}.")
        table = cls(*values.shape, consts=consts)
        table.table = values.copy()
        return table


class QLearningEvaluator(EpisodeEvaluator):
    """
    Episode evaluator whose actions come from a Q-table indexed by the
    program's winning register. Each episode learns on its own copy of a fresh
    table; the table of the median-scoring episode is returned as metadata.

    Given a stored ``q_table`` the evaluator replays it instead: actions are
    greedy over the stored rows and the table is never updated.
    """

    def __init__(
        self,
        environment,
        n_episodes: int = 5,
        *,
        consts: Optional[QConsts] = None,
        q_table: Optional[QTable] = None,
        **kwargs,
    ):
        kwargs.setdefault("reduction", Reduction.MEDIAN)
        super().__init__(environment, n_episodes, **kwargs)
        self.consts = consts or QConsts()
        self.consts.validate()
        self.q_table = q_table
        if q_table is not None and q_table.n_actions != self.n_actions:
            raise ConfigurationError(
                f"Q-table has {q_table.n_actions} actions; the environment has {self.n_actions}."
            )

    @property
    def learning(self) -> bool:
        return self.q_table is None

    def evaluate(self, program: Program, seeds: Optional[Sequence[int]] = None) -> float:
        fitness, _ = self.evaluate_with_metadata(program, seeds)
        return fitness

    def _episode_table(self, program: Program) -> QTable:
        if self.q_table is None:
            return QTable(program.parameters.n_registers, self.n_actions, self.consts)
        if self.q_table.table.shape[0] != program.parameters.n_registers:
            raise EvaluationError(
                f"Q-table has {self.q_table.table.shape[0]} rows; "
                f"the program has {program.parameters.n_registers} registers."
            )
        return self.q_table.copy()

    def evaluate_with_metadata(
        self, program: Program, seeds: Optional[Sequence[int]] = None
    ) -> Tuple[float, Dict[str, Any]]:
        seeds = list(range(self.n_episodes)) if seeds is None else list(seeds)
        registers: Optional[np.ndarray] = None
        results: List[Tuple[float, QTable]] = []

        try:
            environment = self.build_environment()
            for seed in seeds:
                if not self.persistent_memory:
                    registers = None
                table = self._episode_table(program)
                score, registers = self.run_q_episode(program, environment, seed, table, registers)
                results.append((score, table))
        except EvaluationError as exc:
            logger.warning("Q-evaluation of program %s failed: %s", program.id[:8], exc)
            return SENTINEL_FITNESS, {}

        fitness = reduce_scores([score for score, _ in results], self.reduction)
        ordered = sorted(results, key=lambda item: item[0])
        median_table = ordered[len(ordered) // 2][1]
        return fitness, {"q_table": median_table.to_list()}

    def _action_state(
        self,
        program: Program,
        observation: np.ndarray,
        registers: Optional[np.ndarray],
        table: QTable,
        rng: np.random.Generator,
        step: int,
    ) -> Tuple[ActionRegisterPair, np.ndarray]:
        registers = self.execute(program, observation, registers, step)
        if not np.all(np.isfinite(registers)):
            raise EvaluationError("Non-finite registers while choosing a Q-action.")
        winner = int(np.argmax(registers))
        if self.learning:
            action = table.choose_action(winner, rng)
        else:
            action = table.action_argmax(winner)
        return ActionRegisterPair(action, winner), registers

    def run_q_episode(
        self,
        program: Program,
        environment: Environment,
        seed: int,
        table: QTable,
        registers: Optional[np.ndarray] = None,
    ) -> Tuple[float, np.ndarray]:
        """Run one episode, learning ``table`` in place; returns the return and final registers."""
        rng = np.random.default_rng([seed, 1])
        try:
            observation = environment.reset(seed=seed)
        except Exception as exc:
            raise EvaluationError(f"{type(exc).__name__} during reset: {exc}") from exc

        observation = self.read_observation(observation, 0)
        current, registers = self._action_state(program, observation, registers, table, rng, 0)
        score = 0.0
        for step in range(self.max_episode_steps):
            try:
                observation, reward, done = environment.step(current.action)
                reward = float(reward)
            except Exception as exc:
                raise EvaluationError(f"{type(exc).__name__} at step {step}: {exc}") from exc
            if not np.isfinite(reward):
                raise EvaluationError(f"Non-finite reward at step {step}.")
            score += reward
            if done:
                break
            observation = self.read_observation(observation, step + 1)
            following, registers = self._action_state(
                program, observation, registers, table, rng, step + 1
            )
            if self.learning and following.register != current.register:
                table.update(current, reward, following)
            current = following
        return score, registers


__all__ = ["QConsts", "QTable", "ActionRegisterPair", "QLearningEvaluator"]
