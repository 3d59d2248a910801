"""Bounded interpreter for linear programs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .custom_ops import custom_operations
from .enums import Mode, Operation
from .instruction import Instruction
from .program import Program

DEFAULT_MAX_INSTRUCTIONS = 256
DEFAULT_MAX_SKIPS = 64


@dataclass
class ExecutionResult:
    """Register file after one execution, with the limits that were hit."""

    registers: np.ndarray
    executed: int
    skipped: int
    truncated: bool


def select_action(registers: np.ndarray, n_actions: int) -> Optional[int]:
    """
    Index of the unique maximal action register.
    Returns None on a tie or when an action register is not finite.
    """
    actions = np.asarray(registers[:n_actions], dtype=np.float64)
    if not np.all(np.isfinite(actions)):
        return None
    winners = np.flatnonzero(actions == actions.max())
    if len(winners) != 1:
        return None
    return int(winners[0])


class Interpreter:
    """Executes programs against an input vector.

    Execution is deterministic: the same program, inputs and starting
    registers always produce the same result. Termination is guaranteed by
    two caps that are part of the contract:

    * ``max_instructions`` bounds instructions executed per call; reaching it
      stops execution and returns the registers as they are (``truncated``).
    * ``max_skips`` bounds how many instructions failed branches may skip per
      call; once spent, failed branches no longer skip.
    """

    def __init__(
        self,
        max_instructions: int = DEFAULT_MAX_INSTRUCTIONS,
        max_skips: int = DEFAULT_MAX_SKIPS,
    ):
        if max_instructions < 1:
            raise ValueError("max_instructions must be at least 1.")
        if max_skips < 0:
            raise ValueError("max_skips cannot be negative.")
        self.max_instructions = int(max_instructions)
        self.max_skips = int(max_skips)

    def initial_registers(self, program: Program) -> np.ndarray:
        return np.zeros(program.parameters.n_registers, dtype=np.float64)

    def execute(
        self,
        program: Program,
        inputs: Sequence[float],
        registers: Optional[np.ndarray] = None,
    ) -> ExecutionResult:
        """
        Execute program and return the final registers.

        Args:
            program: The program to run
            inputs: Input vector, read by INPUT-mode operands
            registers: Optional starting registers (copied, never modified)
        """
        params = program.parameters
        inputs_arr = np.asarray(inputs, dtype=np.float64).ravel()
        if len(inputs_arr) < params.n_inputs:
            raise ValueError(
                f"Program expects {params.n_inputs} inputs, received {len(inputs_arr)}."
            )
        if registers is None:
            regs = self.initial_registers(program)
        else:
            regs = np.array(registers, dtype=np.float64, copy=True)
            if regs.shape != (params.n_registers,):
                raise ValueError(
                    f"Register state must have shape ({params.n_registers},), got {regs.shape}."
                )
        constants = params.constants

        executed = 0
        skipped = 0
        truncated = False
        pc = 0
        n = len(program.instructions)

        with np.errstate(all="ignore"):
            while pc < n:
                if executed >= self.max_instructions:
                    truncated = True
                    break
                instr = program.instructions[pc]
                executed += 1
                pc += 1

                operand = self._operand(instr, regs, inputs_arr, constants)
                condition = self._execute_instruction(instr, regs, operand)
                if condition is False and skipped < self.max_skips and pc < n:
                    skipped += 1
                    pc += 1

        return ExecutionResult(regs, executed, skipped, truncated)

    @staticmethod
    def _operand(
        instr: Instruction,
        regs: np.ndarray,
        inputs: np.ndarray,
        constants: Sequence[float],
    ) -> float:
        mode = instr.mode
        if mode == Mode.REGISTER:
            return float(regs[instr.operand])
        if mode == Mode.INPUT:
            return float(inputs[instr.operand])
        return float(constants[instr.operand])

    def _execute_instruction(
        self, instr: Instruction, regs: np.ndarray, b: float
    ) -> Optional[bool]:
        """Execute a single instruction; branches return their condition."""
        op_code = instr.operation
        a = float(regs[instr.source])

        custom_op = custom_operations.get(op_code)
        if custom_op:
            args = (b,) if custom_op.arity == 1 else (a, b)
            try:
                result = float(custom_op.function(*args))
            except (ArithmeticError, ValueError, TypeError):
                result = 0.0
            regs[instr.target] = result
            return None

        op = Operation(op_code)

        if op == Operation.NOP:
            return None
        if op == Operation.IF_GT:
            return a > b
        if op == Operation.IF_LT:
            return a < b
        if op == Operation.IF_EQ:
            return abs(a - b) < 1e-9
        if op == Operation.IF_NEQ:
            return abs(a - b) >= 1e-9

        if op == Operation.MOV:
            result = b
        elif op == Operation.ADD:
            result = a + b
        elif op == Operation.SUB:
            result = a - b
        elif op == Operation.MUL:
            result = a * b
        elif op == Operation.DIV:
            result = a / b if abs(b) > 1e-9 else 0.0
        elif op == Operation.MOD:
            result = float(np.fmod(a, b)) if abs(b) > 1e-9 else 0.0
        elif op == Operation.POW:
            if not np.isfinite(b) or (a < 0 and b != int(b)):
                result = 0.0
            else:
                result = float(np.power(a, b))
        elif op == Operation.NEG:
            result = -b
        elif op == Operation.ABS:
            result = abs(b)
        elif op == Operation.SIN:
            result = float(np.sin(b))
        elif op == Operation.COS:
            result = float(np.cos(b))
        elif op == Operation.EXP:
            result = float(np.exp(np.clip(b, -50.0, 50.0)))
        elif op == Operation.LOG:
            result = float(np.log(b)) if b > 1e-9 else -100.0
        elif op == Operation.SQRT:
            result = float(np.sqrt(b)) if b >= 0 else 0.0
        else:
            return None

        regs[instr.target] = result
        return None


__all__ = [
    "DEFAULT_MAX_INSTRUCTIONS",
    "DEFAULT_MAX_SKIPS",
    "ExecutionResult",
    "Interpreter",
    "select_action",
]
