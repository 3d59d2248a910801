"""Cascading slot validator and random instruction generator."""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from .enums import Mode
from .errors import ConfigurationError, RepresentationError
from .instruction import Instruction, InstructionSet, operand_bound
from .slots import (
    SLOT_COUNT,
    SLOT_MODE,
    SLOT_OPERAND,
    SLOT_OPERATION,
    SLOT_SOURCE,
    SLOT_TARGET,
    slot_name,
)
from .weights import OperationWeights


class SlotValidator:
    """
    Enforces cascading validity - each slot's valid options
    depend on the slots before it (the operand range depends on the mode).
    """

    def __init__(
        self,
        instruction_set: InstructionSet,
        n_registers: int,
        n_inputs: int,
        n_constants: int,
        weights: Optional[OperationWeights] = None,
    ):
        instruction_set.validate()
        if n_registers < 1:
            raise ConfigurationError("At least one register is required.")
        self.instruction_set = instruction_set
        self.n_registers = int(n_registers)
        self.n_inputs = int(n_inputs)
        self.n_constants = int(n_constants)
        self.weights = weights or OperationWeights()
        self._operations = list(instruction_set.operations)
        self._op_probabilities = self.weights.probabilities(self._operations)
        self._modes = [
            int(m)
            for m in instruction_set.modes
            if operand_bound(Mode(m), self.n_registers, self.n_inputs, self.n_constants) > 0
        ]
        if not self._modes:
            raise ConfigurationError(
                "No enabled operand mode has a non-empty range "
                f"(registers={n_registers}, inputs={n_inputs}, constants={n_constants})."
            )

    def get_valid_options(self, partial: Sequence[int], slot_index: int) -> List[int]:
        """Valid values for ``slot_index`` given the slots chosen before it."""
        if slot_index == SLOT_OPERATION:
            return list(self._operations)
        if slot_index in (SLOT_TARGET, SLOT_SOURCE):
            return list(range(self.n_registers))
        if slot_index == SLOT_MODE:
            return list(self._modes)
        if slot_index == SLOT_OPERAND:
            if len(partial) <= SLOT_MODE:
                raise ValueError("The operand slot depends on the mode slot being set.")
            mode = Mode(partial[SLOT_MODE])
            return list(
                range(operand_bound(mode, self.n_registers, self.n_inputs, self.n_constants))
            )
        raise ValueError(f"Unknown slot {slot_name(slot_index)}.")

    def choose_option(
        self, partial: Sequence[int], slot_index: int, rng: np.random.Generator
    ) -> int:
        """Draw a valid value for a slot; opcodes follow the operation weights."""
        if slot_index == SLOT_OPERATION:
            idx = rng.choice(len(self._operations), p=self._op_probabilities)
            return int(self._operations[int(idx)])
        options = self.get_valid_options(partial, slot_index)
        if not options:
            raise ValueError(f"No valid options for slot {slot_name(slot_index)}.")
        return int(options[int(rng.integers(len(options)))])

    def random_instruction(self, rng: np.random.Generator) -> Instruction:
        """Build an instruction slot-by-slot with cascading validity."""
        slots: List[int] = []
        for slot_idx in range(SLOT_COUNT):
            slots.append(self.choose_option(slots, slot_idx, rng))
        return Instruction(slots)

    def redraw_slot(
        self, instruction: Instruction, slot_index: int, rng: np.random.Generator
    ) -> Instruction:
        """
        Replace one slot with a different valid value when one exists.
        Later slots are kept when still valid and redrawn otherwise.
        """
        slots = list(instruction.slots)
        options = [v for v in self.get_valid_options(slots, slot_index) if v != slots[slot_index]]
        if options:
            slots[slot_index] = int(options[int(rng.integers(len(options)))])
        for next_slot in range(slot_index + 1, SLOT_COUNT):
            if slots[next_slot] not in self.get_valid_options(slots, next_slot):
                slots[next_slot] = self.choose_option(slots, next_slot, rng)
        return Instruction(slots)

    def validate(self, instruction: Instruction) -> None:
        instruction.validate(
            self.n_registers,
            self.n_inputs,
            self.n_constants,
            self.instruction_set.operations,
        )
        if instruction.mode not in self._modes:
            raise RepresentationError(
                f"Operand mode {Mode(instruction.mode).name} is not enabled."
            )

    def is_valid(self, instruction: Instruction) -> bool:
        try:
            self.validate(instruction)
        except RepresentationError:
            return False
        return True


__all__ = ["SlotValidator"]
