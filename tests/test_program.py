import json

import numpy as np
import pytest

from lgp.enums import Mode
from lgp.errors import ConfigurationError, RepresentationError
from lgp.instruction import Instruction, InstructionSet
from lgp.program import FORMAT_VERSION, Program, ProgramParameters, generate_program
from lgp.values import ValueEnumerations


def mov_input(target, index):
    return Instruction.of("MOV", target, 0, Mode.INPUT, index)


class TestProgramParameters:
    """Test program shape parameters"""

    def test_default_register_count(self):
        parameters = ProgramParameters(n_inputs=4, n_actions=2)
        assert parameters.n_registers == 3
        assert parameters.constants == ValueEnumerations.MATH_CONSTANTS

    def test_validate(self):
        with pytest.raises(ConfigurationError, match="smaller than action count"):
            ProgramParameters(n_inputs=4, n_actions=3, n_registers=2).validate()
        with pytest.raises(ConfigurationError, match="at least one action"):
            ProgramParameters(n_inputs=4, n_actions=0, n_registers=1).validate()
        with pytest.raises(ConfigurationError, match="length must be at least 1"):
            ProgramParameters(n_inputs=4, n_actions=2, max_length=0).validate()

    def test_dict_round_trip(self, full_parameters):
        restored = ProgramParameters.from_dict(full_parameters.to_dict())
        assert restored == full_parameters


class TestProgram:
    """Test program construction and validation"""

    def test_length_bounds(self, parameters):
        with pytest.raises(RepresentationError, match="length 0"):
            Program([], parameters)
        too_long = [mov_input(0, 0)] * (parameters.max_length + 1)
        with pytest.raises(RepresentationError, match="length 17"):
            Program(too_long, parameters)

    def test_invalid_instruction_reports_position(self, parameters):
        instructions = [mov_input(0, 0), Instruction.of("ADD", 0, 0, Mode.INPUT, 4)]
        with pytest.raises(RepresentationError, match="Instruction 1"):
            Program(instructions, parameters)

    def test_operation_outside_set(self, parameters):
        with pytest.raises(RepresentationError, match="not in the instruction set"):
            Program([Instruction.of("NEG", 0, 0, Mode.INPUT, 0)], parameters)

    def test_equality_ignores_id(self, parameters):
        a = Program([mov_input(0, 1)], parameters)
        b = Program([mov_input(0, 1)], parameters)
        assert a.id != b.id
        assert a == b
        assert hash(a) == hash(b)
        assert a.get_signature() == b.get_signature()

    def test_with_instructions(self, parameters):
        program = Program([mov_input(0, 1)], parameters)
        other = program.with_instructions([mov_input(1, 2)])
        assert other.parameters is parameters
        assert other.id != program.id
        assert program.instructions == (mov_input(0, 1),)


class TestEffectiveAlgorithm:
    """Test structural intron detection"""

    def test_overwritten_and_unused_writes_are_introns(self, parameters):
        program = Program(
            [
                mov_input(2, 0),  # read by the last instruction
                mov_input(0, 1),  # overwritten before use
                Instruction.of("ADD", 1, 1, Mode.CONSTANT, 1),
                Instruction.of("MOV", 0, 0, Mode.REGISTER, 2),
            ],
            parameters,
        )
        assert program.extract_effective_algorithm() == [0, 2, 3]
        assert program.effective_size == 3

    def test_branch_guarding_effective_instruction(self, parameters):
        program = Program(
            [
                mov_input(2, 3),
                Instruction.of("IF_GT", 0, 2, Mode.CONSTANT, 0),
                mov_input(0, 1),
            ],
            parameters,
        )
        assert program.extract_effective_algorithm() == [0, 1, 2]

    def test_guarded_write_keeps_earlier_definition(self, parameters):
        program = Program(
            [
                mov_input(0, 0),
                Instruction.of("IF_LT", 0, 1, Mode.CONSTANT, 0),
                mov_input(0, 1),
            ],
            parameters,
        )
        # The guarded write may be skipped, so the first write still matters.
        assert program.extract_effective_algorithm() == [0, 1, 2]

    def test_branch_guarding_intron(self, parameters):
        program = Program(
            [
                Instruction.of("IF_GT", 0, 0, Mode.CONSTANT, 0),
                mov_input(2, 0),
                mov_input(0, 1),
            ],
            parameters,
        )
        assert program.extract_effective_algorithm() == [2]

    def test_human_readable(self, parameters):
        program = Program(
            [
                Instruction.of("IF_GT", 0, 2, Mode.CONSTANT, 0),
                Instruction.of("ADD", 1, 2, Mode.INPUT, 3),
                Instruction.of("MOV", 2, 0, Mode.CONSTANT, 3),
            ],
            parameters,
        )
        assert program.to_human_readable() == [
            "✓ IF r2 > 0",
            "✓ r1 = ADD(r2, i3)",
            "✗ r2 = 2",
        ]


class TestSerialization:
    """Test the JSON program format"""

    def test_round_trip_preserves_everything(self, full_parameters, rng):
        program = generate_program(full_parameters, rng, min_length=8)
        restored = Program.loads(program.dumps(fitness=12.5))
        assert restored == program
        assert restored.id == program.id
        assert restored.parameters == program.parameters

    def test_extra_keys_are_stored(self, parameters):
        program = Program([mov_input(0, 0)], parameters)
        data = json.loads(program.dumps(fitness=3.0, generation=7))
        assert data["fitness"] == 3.0
        assert data["generation"] == 7
        assert data["format"] == FORMAT_VERSION
        assert data["instructions"] == [[1, 0, 0, 1, 0]]
        assert data["parameters"]["operations"] == InstructionSet().names()

    def test_dumps_is_stable(self, parameters):
        program = Program([mov_input(0, 0)], parameters)
        assert program.dumps() == program.dumps()

    def test_save_and_load(self, parameters, tmp_path):
        program = Program([mov_input(0, 0), mov_input(1, 3)], parameters)
        path = program.save(tmp_path / "nested" / "best.json", fitness=1.0)
        loaded = Program.load(path)
        assert loaded == program

    @pytest.mark.parametrize(
        "payload, message",
        [
            ("not json", "not valid JSON"),
            ("[1, 2]", "JSON object"),
            ('{"format": 99}', "Unsupported program format"),
            ('{"format": 1}', "Malformed program payload"),
            (
                '{"format": 1, "parameters": {"n_inputs": 1, "n_actions": 1}, '
                '"instructions": [[1, 0, 0]]}',
                "exactly 5 slots",
            ),
            (
                '{"format": 1, "parameters": {"n_inputs": 1, "n_actions": 1}, '
                '"instructions": [[1, 0, 0, 1, 5]]}',
                "input operand 5",
            ),
        ],
    )
    def test_malformed_payloads(self, payload, message):
        with pytest.raises(RepresentationError, match=message):
            Program.loads(payload)


class TestGenerateProgram:
    """Test random program generation"""

    def test_lengths_and_validity(self, parameters, rng):
        for _ in range(100):
            program = generate_program(parameters, rng, min_length=4)
            assert 4 <= len(program) <= parameters.max_length

    def test_same_seed_same_program(self, parameters):
        a = generate_program(parameters, np.random.default_rng(5))
        b = generate_program(parameters, np.random.default_rng(5))
        assert a == b
