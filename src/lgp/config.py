"""Run configuration: dataclasses, validation and YAML loading."""

from __future__ import annotations

import dataclasses
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from .enums import CrossoverKind, MutationKind, Reduction, SelectionStrategy
from .environments import resolve_environment
from .errors import ConfigurationError
from .evaluator import ClassificationEvaluator, EpisodeEvaluator, Evaluator
from .instruction import InstructionSet
from .interpreter import DEFAULT_MAX_INSTRUCTIONS, DEFAULT_MAX_SKIPS, Interpreter
from .program import ProgramParameters
from .qlearning import QConsts, QLearningEvaluator
from .values import ValueEnumerations
from .weights import OperationWeights


@dataclass
class ProgramConfig:
    """Shape of generated programs."""

    max_length: int = 32
    min_initial_length: int = 1
    n_extra_registers: int = 1  # scratch registers beyond the action registers
    constants: Union[str, List[float]] = "math"
    operations: Optional[List[str]] = None
    modes: Optional[List[str]] = None
    operation_weights: Dict[str, float] = field(default_factory=dict)

    def instruction_set(self) -> InstructionSet:
        return InstructionSet.from_names(self.operations, self.modes)

    def weights(self) -> OperationWeights:
        try:
            return OperationWeights.from_dict(self.operation_weights)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid operation weights: {exc}") from exc

    def validate(self) -> None:
        if self.max_length < 1:
            raise ConfigurationError(f"max_length must be at least 1, got {self.max_length}.")
        if not 1 <= self.min_initial_length <= self.max_length:
            raise ConfigurationError(
                f"min_initial_length must lie in [1, {self.max_length}], got {self.min_initial_length}."
            )
        if self.n_extra_registers < 0:
            raise ConfigurationError("n_extra_registers cannot be negative.")
        try:
            ValueEnumerations.resolve(self.constants)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
        self.instruction_set()
        self.weights()


@dataclass
class EvaluationConfig:
    """How fitness is measured."""

    environment: str = "cart-pole-lgp"
    n_episodes: int = 5
    max_episode_steps: Optional[int] = None
    reduction: str = Reduction.MEAN.value
    persistent_memory: bool = False
    max_instructions: int = DEFAULT_MAX_INSTRUCTIONS
    max_skips: int = DEFAULT_MAX_SKIPS
    q_learning: bool = False
    q_alpha: float = 0.25
    q_gamma: float = 0.125
    q_epsilon: float = 0.05
    dataset: Optional[str] = None  # CSV path; switches to classification

    def validate(self) -> None:
        if self.n_episodes < 1:
            raise ConfigurationError(f"n_episodes must be at least 1, got {self.n_episodes}.")
        if self.max_episode_steps is not None and self.max_episode_steps < 1:
            raise ConfigurationError("max_episode_steps must be at least 1.")
        if self.max_instructions < 1:
            raise ConfigurationError("max_instructions must be at least 1.")
        if self.max_skips < 0:
            raise ConfigurationError("max_skips cannot be negative.")
        _check_choice("reduction", self.reduction, Reduction)
        if self.dataset is None:
            resolve_environment(self.environment)
        if self.q_learning:
            self.q_consts().validate()

    def q_consts(self) -> QConsts:
        return QConsts(alpha=self.q_alpha, gamma=self.q_gamma, epsilon=self.q_epsilon)

    def interpreter(self) -> Interpreter:
        return Interpreter(max_instructions=self.max_instructions, max_skips=self.max_skips)

    def build_evaluator(self) -> Evaluator:
        if self.dataset is not None:
            try:
                return ClassificationEvaluator.from_csv(self.dataset, interpreter=self.interpreter())
            except OSError as exc:
                raise ConfigurationError(f"Cannot read dataset '{self.dataset}': {exc}") from exc
        kwargs: Dict[str, Any] = dict(
            max_episode_steps=self.max_episode_steps,
            reduction=self.reduction,
            interpreter=self.interpreter(),
            persistent_memory=self.persistent_memory,
        )
        if self.q_learning:
            return QLearningEvaluator(
                self.environment, self.n_episodes, consts=self.q_consts(), **kwargs
            )
        return EpisodeEvaluator(self.environment, self.n_episodes, **kwargs)


@dataclass
class HyperParameters:
    """Complete configuration of one evolutionary run."""

    population_size: int = 100
    max_generations: int = 100
    mutation_rate: float = 0.1
    crossover_rate: float = 0.5
    elite_count: int = 1
    selection: str = SelectionStrategy.TOURNAMENT.value
    tournament_size: int = 3
    mutation: str = MutationKind.INSTRUCTION.value
    crossover: str = CrossoverKind.TWO_POINT.value
    fitness_threshold: Optional[float] = None
    stagnation_limit: Optional[int] = None
    n_threads: int = 1
    seed: Optional[int] = None
    max_seconds: Optional[float] = None
    lazy_evaluation: bool = True
    program: ProgramConfig = field(default_factory=ProgramConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)

    def validate(self) -> "HyperParameters":
        """Raise ConfigurationError on the first invalid setting."""
        if self.population_size < 1:
            raise ConfigurationError(
                f"population_size must be at least 1, got {self.population_size}."
            )
        if self.max_generations < 1:
            raise ConfigurationError(
                f"max_generations must be at least 1, got {self.max_generations}."
            )
        for name in ("mutation_rate", "crossover_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must lie in [0, 1], got {value}.")
        if not 0 <= self.elite_count < self.population_size:
            raise ConfigurationError(
                f"elite_count must lie in [0, {self.population_size}), got {self.elite_count}."
            )
        if self.tournament_size < 1:
            raise ConfigurationError("tournament_size must be at least 1.")
        if self.n_threads < 1:
            raise ConfigurationError(f"n_threads must be at least 1, got {self.n_threads}.")
        if self.stagnation_limit is not None and self.stagnation_limit < 1:
            raise ConfigurationError("stagnation_limit must be at least 1 when set.")
        if self.max_seconds is not None and self.max_seconds <= 0:
            raise ConfigurationError("max_seconds must be positive when set.")
        _check_choice("selection", self.selection, SelectionStrategy)
        _check_choice("mutation", self.mutation, MutationKind)
        _check_choice("crossover", self.crossover, CrossoverKind)
        self.program.validate()
        self.evaluation.validate()
        return self

    def program_parameters(self, n_inputs: int, n_actions: int) -> ProgramParameters:
        parameters = ProgramParameters(
            n_inputs=n_inputs,
            n_actions=n_actions,
            n_registers=n_actions + self.program.n_extra_registers,
            max_length=self.program.max_length,
            constants=ValueEnumerations.resolve(self.program.constants),
            instruction_set=self.program.instruction_set(),
        )
        parameters.validate()
        return parameters

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "HyperParameters":
        """
        Build from a flat or sectioned mapping. Accepted sections are
        ``evolution`` (top-level fields), ``program`` and ``evaluation``; an
        ``environment`` key at the top level is a shortcut for
        ``evaluation.environment``.
        """
        data = dict(data or {})
        evolution = dict(data.pop("evolution", None) or {})
        program = dict(data.pop("program", None) or {})
        evaluation = dict(data.pop("evaluation", None) or {})
        if "environment" in data:
            evaluation.setdefault("environment", data.pop("environment"))
        evolution.update(data)

        return cls(
            program=_build(ProgramConfig, program, "program"),
            evaluation=_build(EvaluationConfig, evaluation, "evaluation"),
            **_known_fields(cls, evolution, "evolution", exclude=("program", "evaluation")),
        )


def _known_fields(
    klass: type, values: Dict[str, Any], section: str, exclude: Sequence[str] = ()
) -> Dict[str, Any]:
    names = {f.name for f in dataclasses.fields(klass)} - set(exclude)
    unknown = sorted(set(values) - names)
    if unknown:
        raise ConfigurationError(f"Unknown {section} settings: {', '.join(unknown)}.")
    return values


def _build(klass: type, values: Dict[str, Any], section: str):
    return klass(**_known_fields(klass, values, section))


def _check_choice(name: str, value: Any, enum_cls: type) -> None:
    try:
        enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(f"Unknown {name} '{value}'. Use one of: {choices}.") from None


def load_config(path: Union[str, Path]) -> HyperParameters:
    """Load and validate a YAML configuration file."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")
    try:
        with config_path.open("r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level.")
    return HyperParameters.from_dict(data).validate()


__all__ = [
    "ProgramConfig",
    "EvaluationConfig",
    "HyperParameters",
    "load_config",
]
