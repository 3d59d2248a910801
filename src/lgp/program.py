"""Linear programs, their parameters, serialization and intron analysis."""

from __future__ import annotations

import functools
import hashlib
import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from .custom_ops import is_branch, reads_source, resolve_operation_name, writes_target
from .enums import Mode
from .errors import ConfigurationError, RepresentationError
from .instruction import Instruction, InstructionSet, describe_operand
from .validator import SlotValidator
from .values import ValueEnumerations
from .weights import OperationWeights

FORMAT_VERSION = 1
PAYLOAD_KEYS = ("format", "id", "parameters", "instructions")

_COMPARISON_SYMBOLS = {"IF_GT": ">", "IF_LT": "<", "IF_EQ": "==", "IF_NEQ": "!="}


@dataclass(frozen=True)
class ProgramParameters:
    """Shape of the programs in a run.

    Registers ``[0, n_actions)`` are the action registers; the remaining
    registers are scratch memory.
    """

    n_inputs: int
    n_actions: int
    n_registers: int = 0
    max_length: int = 32
    constants: Tuple[float, ...] = ValueEnumerations.MATH_CONSTANTS
    instruction_set: InstructionSet = field(default_factory=InstructionSet)

    def __post_init__(self):
        if self.n_registers == 0:
            # One scratch register beyond the action registers by default.
            object.__setattr__(self, "n_registers", self.n_actions + 1)
        object.__setattr__(self, "constants", tuple(float(c) for c in self.constants))

    def validate(self) -> None:
        if self.n_actions < 1:
            raise ConfigurationError("Programs need at least one action register.")
        if self.n_inputs < 0:
            raise ConfigurationError("Input arity cannot be negative.")
        if self.n_registers < self.n_actions:
            raise ConfigurationError(
                f"Register count {self.n_registers} is smaller than action count {self.n_actions}."
            )
        if self.max_length < 1:
            raise ConfigurationError("Maximum program length must be at least 1.")
        self.instruction_set.validate()
        validator_for(self)

    @property
    def n_constants(self) -> int:
        return len(self.constants)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_inputs": self.n_inputs,
            "n_actions": self.n_actions,
            "n_registers": self.n_registers,
            "max_length": self.max_length,
            "constants": list(self.constants),
            "operations": self.instruction_set.names(),
            "modes": [Mode(m).name for m in self.instruction_set.modes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgramParameters":
        return cls(
            n_inputs=int(data["n_inputs"]),
            n_actions=int(data["n_actions"]),
            n_registers=int(data.get("n_registers", 0)),
            max_length=int(data.get("max_length", 32)),
            constants=ValueEnumerations.resolve(data.get("constants")),
            instruction_set=InstructionSet.from_names(data.get("operations"), data.get("modes")),
        )


@functools.lru_cache(maxsize=64)
def validator_for(
    parameters: ProgramParameters, weights: Optional[OperationWeights] = None
) -> SlotValidator:
    """Shared validator for a parameter set."""
    return SlotValidator(
        parameters.instruction_set,
        parameters.n_registers,
        parameters.n_inputs,
        parameters.n_constants,
        weights,
    )


class Program:
    """
    An ordered, immutable sequence of instructions bound to its parameters.
    Variation never edits a program in place; it builds a new one.
    """

    def __init__(
        self,
        instructions: Iterable[Instruction],
        parameters: ProgramParameters,
        program_id: Optional[str] = None,
    ):
        self.parameters = parameters
        self.instructions: Tuple[Instruction, ...] = tuple(instructions)
        if not 1 <= len(self.instructions) <= parameters.max_length:
            raise RepresentationError(
                f"Program length {len(self.instructions)} outside [1, {parameters.max_length}]."
            )
        validator = validator_for(parameters)
        for position, instruction in enumerate(self.instructions):
            try:
                validator.validate(instruction)
            except RepresentationError as exc:
                raise RepresentationError(f"Instruction {position}: {exc}") from exc
        self.id = program_id or uuid.uuid4().hex
        self._signature: Optional[str] = None
        self._effective_instructions: Optional[List[int]] = None

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self):
        return iter(self.instructions)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Program):
            return NotImplemented
        return self.instructions == other.instructions and self.parameters == other.parameters

    def __hash__(self) -> int:
        return hash((self.instructions, self.parameters))

    def __repr__(self) -> str:
        return f"Program(id={self.id[:8]}, length={len(self)})"

    def with_instructions(self, instructions: Iterable[Instruction]) -> "Program":
        """New program (fresh id) with the same parameters."""
        return Program(instructions, self.parameters)

    def extract_effective_algorithm(self) -> List[int]:
        """
        Indices of instructions that can influence the action registers within
        one execution, found by tracing register dependencies backwards.
        A branch is effective when the instruction it guards is.
        """
        if self._effective_instructions is not None:
            return self._effective_instructions

        needed = set(range(self.parameters.n_actions))
        effective: List[int] = []
        effective_set = set()

        for idx in range(len(self.instructions) - 1, -1, -1):
            instr = self.instructions[idx]
            op = instr.operation
            if is_branch(op):
                if idx + 1 in effective_set:
                    effective_set.add(idx)
                    effective.append(idx)
                    needed.add(instr.source)
                    if instr.mode == Mode.REGISTER:
                        needed.add(instr.operand)
                continue
            if not writes_target(op) or instr.target not in needed:
                continue

            effective_set.add(idx)
            effective.append(idx)
            guarded = idx > 0 and is_branch(self.instructions[idx - 1].operation)
            if not guarded:
                needed.discard(instr.target)
            if reads_source(op):
                needed.add(instr.source)
            if instr.mode == Mode.REGISTER:
                needed.add(instr.operand)

        self._effective_instructions = sorted(effective)
        return self._effective_instructions

    @property
    def effective_size(self) -> int:
        return len(self.extract_effective_algorithm())

    def get_signature(self) -> str:
        """Generate unique signature for this program's instructions."""
        if self._signature is None:
            sig_parts = [instr.get_signature() for instr in self.instructions]
            self._signature = hashlib.md5("|".join(sig_parts).encode()).hexdigest()
        return self._signature

    def to_human_readable(self) -> List[str]:
        """Convert to human-readable format."""
        effective = set(self.extract_effective_algorithm())
        constants = self.parameters.constants
        readable = []
        for idx, instr in enumerate(self.instructions):
            prefix = "✓" if idx in effective else "✗"
            name = resolve_operation_name(instr.operation)
            operand = describe_operand(instr.mode, instr.operand, constants)
            if name == "NOP":
                readable.append(f"{prefix} NOP")
            elif name in _COMPARISON_SYMBOLS:
                readable.append(
                    f"{prefix} IF r{instr.source} {_COMPARISON_SYMBOLS[name]} {operand}"
                )
            elif name == "MOV":
                readable.append(f"{prefix} r{instr.target} = {operand}")
            elif reads_source(instr.operation):
                readable.append(f"{prefix} r{instr.target} = {name}(r{instr.source}, {operand})")
            else:
                readable.append(f"{prefix} r{instr.target} = {name}({operand})")
        return readable

    def to_dict(self, **extra: Any) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "format": FORMAT_VERSION,
            "id": self.id,
            "parameters": self.parameters.to_dict(),
            "instructions": [instr.to_list() for instr in self.instructions],
        }
        data.update(extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Program":
        try:
            version = int(data.get("format", 0))
            if version != FORMAT_VERSION:
                raise RepresentationError(f"Unsupported program format {version}.")
            parameters = ProgramParameters.from_dict(data["parameters"])
            instructions = [Instruction(slots) for slots in data["instructions"]]
        except (KeyError, TypeError, ValueError) as exc:
            if isinstance(exc, RepresentationError):
                raise
            raise RepresentationError(f"Malformed program payload: {exc}") from exc
        return cls(instructions, parameters, program_id=data.get("id"))

    def dumps(self, **extra: Any) -> str:
        """Stable JSON encoding; extra keys (e.g. fitness) are stored alongside."""
        return json.dumps(self.to_dict(**extra), sort_keys=True)

    @staticmethod
    def _payload(text: str) -> Dict[str, Any]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RepresentationError(f"Program payload is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise RepresentationError("Program payload must be a JSON object.")
        return data

    @classmethod
    def loads(cls, text: str) -> "Program":
        return cls.from_dict(cls._payload(text))

    @classmethod
    def loads_with_extra(cls, text: str) -> Tuple["Program", Dict[str, Any]]:
        """Decode a program and the extra keys (fitness, metadata, ...) stored with it."""
        data = cls._payload(text)
        extra = {key: value for key, value in data.items() if key not in PAYLOAD_KEYS}
        return cls.from_dict(data), extra

    def save(self, path: Union[str, Path], **extra: Any) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(self.to_dict(**extra), sort_keys=True, indent=2))
        return target

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Program":
        return cls.loads(Path(path).read_text())

    @classmethod
    def load_with_extra(cls, path: Union[str, Path]) -> Tuple["Program", Dict[str, Any]]:
        return cls.loads_with_extra(Path(path).read_text())


def generate_program(
    parameters: ProgramParameters,
    rng: np.random.Generator,
    *,
    min_length: int = 1,
    weights: Optional[OperationWeights] = None,
) -> Program:
    """Random program whose length is drawn uniformly from [min_length, max_length]."""
    min_length = max(1, min(min_length, parameters.max_length))
    validator = validator_for(parameters, weights)
    length = int(rng.integers(min_length, parameters.max_length + 1))
    return Program(
        [validator.random_instruction(rng) for _ in range(length)],
        parameters,
    )


__all__ = [
    "FORMAT_VERSION",
    "PAYLOAD_KEYS",
    "ProgramParameters",
    "Program",
    "generate_program",
    "validator_for",
]
