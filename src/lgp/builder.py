"""Slot-wise instruction and program builders."""

from __future__ import annotations

from typing import Any, List, Optional, Union

import numpy as np

from .custom_ops import resolve_operation_code
from .enums import Mode, Operation
from .errors import RepresentationError
from .instruction import Instruction, SlotOption, describe_slot_option
from .program import Program, ProgramParameters, validator_for
from .slots import (
    SLOT_COUNT,
    SLOT_MODE,
    SLOT_OPERAND,
    SLOT_OPERATION,
    SLOT_SOURCE,
    SLOT_TARGET,
    resolve_slot_index,
    slot_name,
)


class InstructionBuilder:
    """
    Slot-wise instruction builder that exposes valid next options.
    """

    def __init__(self, parameters: ProgramParameters):
        self.parameters = parameters
        self.validator = validator_for(parameters)
        self.slots: List[int] = []

    @property
    def cursor(self) -> int:
        return len(self.slots)

    def next_slot_name(self) -> str:
        return slot_name(self.cursor)

    def next_options(self, slot: Optional[Union[int, str]] = None) -> List[SlotOption]:
        slot_index = self.cursor if slot is None else resolve_slot_index(slot)
        if slot_index > self.cursor:
            raise ValueError(
                f"Slot {slot_name(slot_index)} is ahead of the current cursor "
                f"{slot_name(self.cursor)}."
            )
        return [
            SlotOption(
                value=int(opt),
                label=describe_slot_option(
                    self.slots, slot_index, int(opt), self.parameters.constants
                ),
            )
            for opt in self.validator.get_valid_options(self.slots, slot_index)
        ]

    def choose(
        self,
        value: Union[int, SlotOption, Operation, Mode],
        *,
        slot: Optional[Union[int, str]] = None,
    ) -> "InstructionBuilder":
        slot_index = self.cursor if slot is None else resolve_slot_index(slot)
        if slot_index != self.cursor:
            raise ValueError(
                f"Expected to set {slot_name(self.cursor)} next, got {slot_name(slot_index)}."
            )
        if self.cursor >= SLOT_COUNT:
            raise ValueError("Instruction is already complete.")
        value_int = int(value.value) if isinstance(value, SlotOption) else int(value)
        if value_int not in self.validator.get_valid_options(self.slots, slot_index):
            raise ValueError(f"Invalid option {value_int} for {slot_name(slot_index)}.")
        self.slots.append(value_int)
        return self

    def auto(self, rng: np.random.Generator) -> "InstructionBuilder":
        self.slots.append(self.validator.choose_option(self.slots, self.cursor, rng))
        return self

    def auto_fill(self, rng: np.random.Generator) -> "InstructionBuilder":
        while self.cursor < SLOT_COUNT:
            self.auto(rng)
        return self

    def op(self, operation: Union[str, int, Operation]) -> "InstructionBuilder":
        return self.choose(resolve_operation_code(operation), slot=SLOT_OPERATION)

    def target(self, register: int) -> "InstructionBuilder":
        return self.choose(register, slot=SLOT_TARGET)

    def source(self, register: int) -> "InstructionBuilder":
        return self.choose(register, slot=SLOT_SOURCE)

    def operand(self, mode: Union[Mode, int], index: int) -> "InstructionBuilder":
        self.choose(int(mode), slot=SLOT_MODE)
        return self.choose(index, slot=SLOT_OPERAND)

    def register(self, index: int) -> "InstructionBuilder":
        return self.operand(Mode.REGISTER, index)

    def input(self, index: int) -> "InstructionBuilder":
        return self.operand(Mode.INPUT, index)

    def constant(self, value: float) -> "InstructionBuilder":
        """Use the constant equal to ``value`` as the operand."""
        constants = [float(c) for c in self.parameters.constants]
        if float(value) not in constants:
            raise ValueError(f"Value {value} is not among the program constants.")
        return self.operand(Mode.CONSTANT, constants.index(float(value)))

    def build(self, *, rng: Optional[np.random.Generator] = None) -> Instruction:
        """Return the finished instruction, drawing remaining slots from ``rng`` if given."""
        if rng is not None:
            self.auto_fill(rng)
        if self.cursor < SLOT_COUNT:
            raise ValueError(f"Instruction incomplete; next slot is {slot_name(self.cursor)}.")
        return Instruction(self.slots)

    def reset(self) -> "InstructionBuilder":
        self.slots = []
        return self


class ProgramBuilder:
    """
    Accumulates instructions for one program.

    Example:
        builder = ProgramBuilder(parameters)
        builder.instruction().op("ADD").target(0).source(0).input(1)
        builder.instruction().op("IF_GT").target(0).source(0).constant(0.0)
        program = builder.build()
    """

    def __init__(self, parameters: ProgramParameters):
        self.parameters = parameters
        self._instructions: List[Any] = []

    def instruction(self) -> InstructionBuilder:
        builder = InstructionBuilder(self.parameters)
        self._instructions.append(builder)
        return builder

    def add(self, instruction: Instruction) -> "ProgramBuilder":
        self._instructions.append(instruction)
        return self

    def build(self, *, rng: Optional[np.random.Generator] = None) -> Program:
        instructions = []
        for position, item in enumerate(self._instructions):
            if isinstance(item, InstructionBuilder):
                try:
                    item = item.build(rng=rng)
                except ValueError as exc:
                    raise RepresentationError(f"Instruction {position}: {exc}") from exc
            instructions.append(item)
        return Program(instructions, self.parameters)


__all__ = ["InstructionBuilder", "ProgramBuilder"]
