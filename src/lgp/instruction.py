"""Instruction representation, instruction sets and slot display helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from .custom_ops import custom_operations, resolve_operation_code, resolve_operation_name
from .enums import ALL_MODES, DEFAULT_OPS, Mode, Operation
from .errors import ConfigurationError, RepresentationError
from .slots import (
    SLOT_COUNT,
    SLOT_MODE,
    SLOT_OPERAND,
    SLOT_OPERATION,
    SLOT_SOURCE,
    SLOT_TARGET,
)


@dataclass(frozen=True)
class Instruction:
    """
    Fixed-slot instruction: (operation, target, source, mode, operand).
    Each slot is an integer index. Instances are immutable.
    """

    slots: Tuple[int, ...]

    def __init__(self, slots: Iterable[int]):
        values = tuple(int(s) for s in slots)
        if len(values) != SLOT_COUNT:
            raise RepresentationError(
                f"Instruction must have exactly {SLOT_COUNT} slots, got {len(values)}."
            )
        object.__setattr__(self, "slots", values)

    @classmethod
    def of(
        cls,
        operation: Union[int, str, Operation],
        target: int = 0,
        source: int = 0,
        mode: Union[int, Mode] = Mode.REGISTER,
        operand: int = 0,
    ) -> "Instruction":
        return cls((resolve_operation_code(operation), target, source, int(mode), operand))

    @property
    def operation(self) -> int:
        return self.slots[SLOT_OPERATION]

    @property
    def target(self) -> int:
        return self.slots[SLOT_TARGET]

    @property
    def source(self) -> int:
        return self.slots[SLOT_SOURCE]

    @property
    def mode(self) -> int:
        return self.slots[SLOT_MODE]

    @property
    def operand(self) -> int:
        return self.slots[SLOT_OPERAND]

    def replace_slot(self, index: int, value: int) -> "Instruction":
        slots = list(self.slots)
        slots[index] = int(value)
        return Instruction(slots)

    def validate(
        self,
        n_registers: int,
        n_inputs: int,
        n_constants: int,
        operations: Optional[Iterable[int]] = None,
    ) -> None:
        """Raise RepresentationError if any slot is out of range."""
        if operations is not None and self.operation not in set(operations):
            raise RepresentationError(
                f"Operation {resolve_operation_name(self.operation)} is not in the instruction set."
            )
        if operations is None and custom_operations.get(self.operation) is None:
            try:
                Operation(self.operation)
            except ValueError:
                raise RepresentationError(f"Unknown opcode {self.operation}.") from None
        if not 0 <= self.target < n_registers:
            raise RepresentationError(
                f"Target register {self.target} outside [0, {n_registers})."
            )
        if not 0 <= self.source < n_registers:
            raise RepresentationError(
                f"Source register {self.source} outside [0, {n_registers})."
            )
        try:
            mode = Mode(self.mode)
        except ValueError:
            raise RepresentationError(f"Unknown operand mode {self.mode}.") from None
        bound = operand_bound(mode, n_registers, n_inputs, n_constants)
        if not 0 <= self.operand < bound:
            raise RepresentationError(
                f"{mode.name.lower()} operand {self.operand} outside [0, {bound})."
            )

    def get_signature(self) -> str:
        """Get unique signature for this instruction."""
        return "|".join(str(s) for s in self.slots)

    def to_list(self):
        return list(self.slots)


def operand_bound(mode: Mode, n_registers: int, n_inputs: int, n_constants: int) -> int:
    """Upper bound (exclusive) of the operand slot for a mode."""
    if mode == Mode.REGISTER:
        return n_registers
    if mode == Mode.INPUT:
        return n_inputs
    return n_constants


@dataclass(frozen=True)
class InstructionSet:
    """The enabled opcodes and operand modes available to generated programs."""

    operations: Tuple[int, ...] = tuple(int(op) for op in DEFAULT_OPS)
    modes: Tuple[Mode, ...] = tuple(ALL_MODES)

    @classmethod
    def from_names(
        cls,
        names: Optional[Sequence[Union[str, int, Operation]]] = None,
        modes: Optional[Sequence[Union[str, int, Mode]]] = None,
    ) -> "InstructionSet":
        try:
            ops = (
                tuple(resolve_operation_code(n) for n in names)
                if names is not None
                else cls.operations
            )
            resolved_modes = (
                tuple(
                    Mode[m.strip().upper()] if isinstance(m, str) else Mode(m)
                    for m in modes
                )
                if modes is not None
                else tuple(ALL_MODES)
            )
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(f"Invalid instruction set: {exc}") from exc
        instruction_set = cls(operations=ops, modes=resolved_modes)
        instruction_set.validate()
        return instruction_set

    def validate(self) -> None:
        if not self.operations:
            raise ConfigurationError("Instruction set must contain at least one operation.")
        if not self.modes:
            raise ConfigurationError("Instruction set must enable at least one operand mode.")
        if len(set(self.operations)) != len(self.operations):
            raise ConfigurationError("Instruction set contains duplicate operations.")

    def names(self):
        return [resolve_operation_name(op) for op in self.operations]

    def __len__(self) -> int:
        return len(self.operations)


@dataclass(frozen=True)
class SlotOption:
    """Represents a readable option for a single slot."""

    value: int
    label: str


def describe_operand(mode: int, operand: int, constants: Sequence[float] = ()) -> str:
    """Readable label for an operand, e.g. ``r2``, ``i0`` or ``c3(2.0)``."""
    try:
        mode_enum = Mode(mode)
    except ValueError:
        return f"?{operand}"
    if mode_enum == Mode.REGISTER:
        return f"r{operand}"
    if mode_enum == Mode.INPUT:
        return f"i{operand}"
    if operand < len(constants):
        return f"{constants[operand]:g}"
    return f"c{operand}"


def describe_slot_option(
    partial: Sequence[int],
    slot_index: int,
    value: int,
    constants: Sequence[float] = (),
) -> str:
    """Return a readable label for a slot value given the slots chosen so far."""
    if slot_index == SLOT_OPERATION:
        return resolve_operation_name(int(value))
    if slot_index in (SLOT_TARGET, SLOT_SOURCE):
        return f"r{value}"
    if slot_index == SLOT_MODE:
        try:
            return Mode(value).name
        except ValueError:
            return f"MODE[{value}]"
    if slot_index == SLOT_OPERAND:
        mode = partial[SLOT_MODE] if len(partial) > SLOT_MODE else Mode.REGISTER
        return describe_operand(mode, int(value), constants)
    return str(value)


__all__ = [
    "Instruction",
    "InstructionSet",
    "SlotOption",
    "operand_bound",
    "describe_operand",
    "describe_slot_option",
]
