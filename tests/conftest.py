import numpy as np
import pytest

from lgp.enums import Operation
from lgp.instruction import InstructionSet
from lgp.program import ProgramParameters


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def parameters():
    """Cart-pole shaped programs: 4 inputs, 2 actions, one scratch register."""
    return ProgramParameters(n_inputs=4, n_actions=2, n_registers=3, max_length=16)


@pytest.fixture
def full_parameters():
    """Same shape with every built-in operation enabled."""
    return ProgramParameters(
        n_inputs=4,
        n_actions=2,
        n_registers=3,
        max_length=16,
        instruction_set=InstructionSet.from_names([op.name for op in Operation]),
    )
