"""Linear genetic programming core: programs, interpreter, evaluators and the evolution engine."""

from .errors import LgpError, ConfigurationError, RepresentationError, EvaluationError
from .enums import (
    Operation,
    Mode,
    SelectionStrategy,
    MutationKind,
    CrossoverKind,
    Reduction,
    LoopState,
    BINARY_OPS,
    UNARY_OPS,
    BRANCH_OPS,
    DEFAULT_OPS,
    ALL_MODES,
)
from .slots import (
    SLOT_COUNT,
    SLOT_OPERATION,
    SLOT_TARGET,
    SLOT_SOURCE,
    SLOT_MODE,
    SLOT_OPERAND,
    SLOT_NAMES,
    slot_name,
    resolve_slot_index,
)
from .custom_ops import (
    CustomOperation,
    CustomOperationManager,
    custom_operations,
    register_custom_operation,
    resolve_operation_name,
    resolve_operation_code,
)
from .values import ValueEnumerations
from .instruction import Instruction, InstructionSet, SlotOption, describe_slot_option
from .weights import OperationWeights
from .validator import SlotValidator
from .program import FORMAT_VERSION, ProgramParameters, Program, generate_program
from .builder import InstructionBuilder, ProgramBuilder
from .interpreter import ExecutionResult, Interpreter, select_action
from .environments import (
    Environment,
    CartPole,
    MountainCar,
    register_environment,
    available_environments,
    make_environment,
)
from .evaluator import (
    SENTINEL_FITNESS,
    Evaluator,
    EpisodeEvaluator,
    ClassificationEvaluator,
    episode_seeds,
)
from .qlearning import QConsts, QTable, QLearningEvaluator
from .population import Individual, Population, select
from .variation import mutate, crossover
from .config import ProgramConfig, EvaluationConfig, HyperParameters, load_config
from .engine import RunBudget, GenerationStats, RunResult, EvolutionEngine, run_experiment

__version__ = "0.1.0"

__all__ = [
    "LgpError",
    "ConfigurationError",
    "RepresentationError",
    "EvaluationError",
    "Operation",
    "Mode",
    "SelectionStrategy",
    "MutationKind",
    "CrossoverKind",
    "Reduction",
    "LoopState",
    "BINARY_OPS",
    "UNARY_OPS",
    "BRANCH_OPS",
    "DEFAULT_OPS",
    "ALL_MODES",
    "SLOT_COUNT",
    "SLOT_OPERATION",
    "SLOT_TARGET",
    "SLOT_SOURCE",
    "SLOT_MODE",
    "SLOT_OPERAND",
    "SLOT_NAMES",
    "slot_name",
    "resolve_slot_index",
    "CustomOperation",
    "CustomOperationManager",
    "custom_operations",
    "register_custom_operation",
    "resolve_operation_name",
    "resolve_operation_code",
    "ValueEnumerations",
    "Instruction",
    "InstructionSet",
    "SlotOption",
    "describe_slot_option",
    "OperationWeights",
    "SlotValidator",
    "FORMAT_VERSION",
    "ProgramParameters",
    "Program",
    "generate_program",
    "InstructionBuilder",
    "ProgramBuilder",
    "ExecutionResult",
    "Interpreter",
    "select_action",
    "Environment",
    "CartPole",
    "MountainCar",
    "register_environment",
    "available_environments",
    "make_environment",
    "SENTINEL_FITNESS",
    "Evaluator",
    "EpisodeEvaluator",
    "ClassificationEvaluator",
    "episode_seeds",
    "QConsts",
    "QTable",
    "QLearningEvaluator",
    "Individual",
    "Population",
    "select",
    "mutate",
    "crossover",
    "ProgramConfig",
    "EvaluationConfig",
    "HyperParameters",
    "load_config",
    "RunBudget",
    "GenerationStats",
    "RunResult",
    "EvolutionEngine",
    "run_experiment",
    "__version__",
]
