"""Enumerations and operation groupings for linear programs."""

from enum import Enum, IntEnum
from typing import List, Set


class Operation(IntEnum):
    """Built-in operations as integer opcodes."""

    NOP = 0
    MOV = 1

    # Binary arithmetic: r[target] = r[source] <op> operand
    ADD = 10
    SUB = 11
    MUL = 12
    DIV = 13
    POW = 14
    MOD = 15

    # Unary arithmetic: r[target] = f(operand)
    NEG = 20
    ABS = 21
    SIN = 22
    COS = 23
    EXP = 24
    LOG = 25
    SQRT = 26

    # Branches: skip next instruction when r[source] <cmp> operand is false
    IF_GT = 30
    IF_LT = 31
    IF_EQ = 32
    IF_NEQ = 33


class Mode(IntEnum):
    """How the operand slot of an instruction is read."""

    REGISTER = 0  # r
    INPUT = 1  # i
    CONSTANT = 2  # c


class SelectionStrategy(str, Enum):
    TOURNAMENT = "tournament"
    RANK = "rank"
    ELITIST = "elitist"


class MutationKind(str, Enum):
    INSTRUCTION = "instruction"
    SLOT = "slot"


class CrossoverKind(str, Enum):
    ONE_POINT = "one_point"
    TWO_POINT = "two_point"


class Reduction(str, Enum):
    """How per-episode scores are folded into one fitness value."""

    MEAN = "mean"
    SUM = "sum"
    MEDIAN = "median"
    MIN = "min"


class LoopState(str, Enum):
    INITIALIZING = "initializing"
    EVALUATING = "evaluating"
    SELECTING = "selecting"
    VARYING = "varying"
    TERMINATED = "terminated"


BINARY_OPS: List[Operation] = [
    Operation.ADD,
    Operation.SUB,
    Operation.MUL,
    Operation.DIV,
    Operation.POW,
    Operation.MOD,
]

UNARY_OPS: List[Operation] = [
    Operation.NEG,
    Operation.ABS,
    Operation.SIN,
    Operation.COS,
    Operation.EXP,
    Operation.LOG,
    Operation.SQRT,
]

BRANCH_OPS: List[Operation] = [
    Operation.IF_GT,
    Operation.IF_LT,
    Operation.IF_EQ,
    Operation.IF_NEQ,
]

# Operations whose result is written to the target register.
WRITING_OPS: Set[Operation] = {Operation.MOV, *BINARY_OPS, *UNARY_OPS}

# Operations that read the source register.
SOURCE_READING_OPS: Set[Operation] = {*BINARY_OPS, *BRANCH_OPS}

DEFAULT_OPS: List[Operation] = [
    Operation.ADD,
    Operation.SUB,
    Operation.MUL,
    Operation.DIV,
    Operation.MOV,
    Operation.IF_GT,
    Operation.IF_LT,
]

ALL_MODES: List[Mode] = [Mode.REGISTER, Mode.INPUT, Mode.CONSTANT]


__all__ = [
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
    "WRITING_OPS",
    "SOURCE_READING_OPS",
    "DEFAULT_OPS",
    "ALL_MODES",
]
