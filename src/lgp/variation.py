"""Mutation and crossover operators.

Operators never modify their inputs: they return new programs (with fresh
ids) that satisfy the same length and operand bounds as their parents.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .enums import CrossoverKind, MutationKind
from .instruction import Instruction
from .program import Program, validator_for
from .slots import SLOT_COUNT
from .validator import SlotValidator
from .weights import OperationWeights

Instructions = List[Instruction]


def instruction_mutation(
    program: Program, rate: float, rng: np.random.Generator, validator: SlotValidator
) -> Instructions:
    """Replace each instruction with a fresh random one with probability ``rate``."""
    return [
        validator.random_instruction(rng) if rng.random() < rate else instr
        for instr in program.instructions
    ]


def slot_mutation(
    program: Program, rate: float, rng: np.random.Generator, validator: SlotValidator
) -> Instructions:
    """Redraw one random slot of each instruction selected with probability ``rate``."""
    mutated = []
    for instr in program.instructions:
        if rng.random() < rate:
            slot_idx = int(rng.integers(SLOT_COUNT))
            instr = validator.redraw_slot(instr, slot_idx, rng)
        mutated.append(instr)
    return mutated


MUTATIONS: Dict[MutationKind, Callable[..., Instructions]] = {
    MutationKind.INSTRUCTION: instruction_mutation,
    MutationKind.SLOT: slot_mutation,
}


def mutate(
    program: Program,
    rate: float,
    rng: np.random.Generator,
    *,
    kind: Union[str, MutationKind] = MutationKind.INSTRUCTION,
    weights: Optional[OperationWeights] = None,
) -> Program:
    """Return a mutated copy of ``program``; ``rate`` is per instruction."""
    if not 0.0 <= rate <= 1.0:
        raise ValueError(f"Mutation rate must lie in [0, 1], got {rate}.")
    validator = validator_for(program.parameters, weights)
    instructions = MUTATIONS[MutationKind(kind)](program, rate, rng, validator)
    return Program(instructions, program.parameters)


def one_point_crossover(
    a: Sequence[Instruction], b: Sequence[Instruction], rng: np.random.Generator
) -> Tuple[Instructions, Instructions]:
    """Swap the tails after one cut point drawn from [0, shorter length]."""
    cut = int(rng.integers(0, min(len(a), len(b)) + 1))
    return list(a[:cut]) + list(b[cut:]), list(b[:cut]) + list(a[cut:])


def two_point_crossover(
    a: Sequence[Instruction], b: Sequence[Instruction], rng: np.random.Generator
) -> Tuple[Instructions, Instructions]:
    """
    Exchange one non-empty segment of each parent. Segment starts are drawn
    below the shorter parent's length; segment ends are drawn per parent, so
    children may grow or shrink.
    """
    shorter = min(len(a), len(b))
    start_a = int(rng.integers(0, shorter))
    start_b = int(rng.integers(0, shorter))
    end_a = int(rng.integers(start_a + 1, len(a) + 1))
    end_b = int(rng.integers(start_b + 1, len(b) + 1))

    child_a = list(a[:start_a]) + list(b[start_b:end_b]) + list(a[end_a:])
    child_b = list(b[:start_b]) + list(a[start_a:end_a]) + list(b[end_b:])
    return child_a, child_b


CROSSOVERS: Dict[CrossoverKind, Callable[..., Tuple[Instructions, Instructions]]] = {
    CrossoverKind.ONE_POINT: one_point_crossover,
    CrossoverKind.TWO_POINT: two_point_crossover,
}


def crossover(
    parent_a: Program,
    parent_b: Program,
    rng: np.random.Generator,
    *,
    kind: Union[str, CrossoverKind] = CrossoverKind.TWO_POINT,
) -> Tuple[Program, Program]:
    """
    Produce two children from two parents. Children longer than the maximum
    length lose the tail beyond it.
    """
    if parent_a.parameters != parent_b.parameters:
        raise ValueError("Cannot cross programs built for different parameters.")
    max_length = parent_a.parameters.max_length
    child_a, child_b = CROSSOVERS[CrossoverKind(kind)](
        parent_a.instructions, parent_b.instructions, rng
    )
    return (
        Program(child_a[:max_length], parent_a.parameters),
        Program(child_b[:max_length], parent_a.parameters),
    )


__all__ = [
    "MUTATIONS",
    "CROSSOVERS",
    "mutate",
    "crossover",
    "instruction_mutation",
    "slot_mutation",
    "one_point_crossover",
    "two_point_crossover",
]
