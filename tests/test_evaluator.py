from unittest.mock import Mock

import numpy as np
import pytest

from lgp.custom_ops import custom_operations, register_custom_operation
from lgp.enums import Mode
from lgp.environments import (
    CartPole,
    MountainCar,
    available_environments,
    make_environment,
    register_environment,
)
from lgp.errors import ConfigurationError, RepresentationError
from lgp.evaluator import (
    SENTINEL_FITNESS,
    ClassificationEvaluator,
    EpisodeEvaluator,
    episode_seeds,
    reduce_scores,
)
from lgp.instruction import Instruction, InstructionSet
from lgp.interpreter import Interpreter
from lgp.program import Program, ProgramParameters, generate_program
from lgp.qlearning import ActionRegisterPair, QConsts, QLearningEvaluator, QTable

ONE, TEN = 1, 7


def nop_program(n_inputs, n_actions):
    parameters = ProgramParameters(
        n_inputs=n_inputs,
        n_actions=n_actions,
        instruction_set=InstructionSet.from_names(["NOP", "ADD"]),
    )
    return Program([Instruction.of("NOP")], parameters)


def mock_environment(n_inputs=4, n_actions=2, max_episode_steps=10):
    """Mock environment returning zero observations and unit rewards."""
    env = Mock()
    env.n_inputs = n_inputs
    env.n_actions = n_actions
    env.default_action = 0
    env.max_episode_steps = max_episode_steps
    env.reset.return_value = np.zeros(n_inputs)
    env.step.return_value = (np.zeros(n_inputs), 1.0, False)
    return env


def default_trajectory_return(environment, seed):
    env = make_environment(environment)
    env.reset(seed=seed)
    total, done, steps = 0.0, False, 0
    while not done and steps < env.max_episode_steps:
        _, reward, done = env.step(env.default_action)
        total += reward
        steps += 1
    return total


class TestEnvironments:
    """Test the built-in control problems"""

    def test_registry(self):
        names = available_environments()
        assert "cart-pole-lgp" in names
        assert "mountain-car-lgp" in names
        assert isinstance(make_environment("cart-pole-lgp"), CartPole)
        assert isinstance(make_environment("Mountain-Car"), MountainCar)

    def test_unknown_environment(self):
        with pytest.raises(ConfigurationError, match="Unknown environment 'pong'"):
            make_environment("pong")

    def test_reset_is_seeded(self):
        a = CartPole().reset(seed=3)
        b = CartPole().reset(seed=3)
        np.testing.assert_array_equal(a, b)
        assert np.all(np.abs(a) <= 0.05)

    def test_cart_pole_falls_under_constant_push(self):
        env = CartPole()
        env.reset(seed=0)
        steps, done = 0, False
        while not done:
            _, reward, done = env.step(1)
            assert reward == 1.0
            steps += 1
        assert steps < 100
        with pytest.raises(RuntimeError, match="finished"):
            env.step(1)

    def test_invalid_action(self):
        env = MountainCar()
        env.reset(seed=0)
        with pytest.raises(ValueError, match="outside"):
            env.step(3)

    def test_register_environment(self):
        register_environment("test-short-cart", lambda **kw: CartPole(max_episode_steps=5))
        evaluator = EpisodeEvaluator("test-short-cart", 1)
        assert evaluator.max_episode_steps == 5


class TestReductions:
    """Test episode score folding"""

    @pytest.mark.parametrize(
        "reduction, expected",
        [("mean", 2.0), ("sum", 8.0), ("median", 1.5), ("min", 0.5)],
    )
    def test_reductions(self, reduction, expected):
        assert reduce_scores([0.5, 1.0, 2.0, 4.5], reduction) == expected

    def test_empty_scores(self):
        with pytest.raises(ValueError):
            reduce_scores([], "mean")

    def test_episode_seeds_follow_generator(self):
        a = episode_seeds(np.random.default_rng(9), 4)
        b = episode_seeds(np.random.default_rng(9), 4)
        assert a == b
        assert len(a) == 4


class TestEpisodeEvaluator:
    """Test environment-driven fitness"""

    def test_shapes_follow_environment(self):
        evaluator = EpisodeEvaluator("cart-pole-lgp", 3)
        assert evaluator.n_inputs == 4
        assert evaluator.n_actions == 2
        assert evaluator.max_episode_steps == 500

    def test_invalid_settings(self):
        with pytest.raises(ConfigurationError, match="At least one episode"):
            EpisodeEvaluator("cart-pole-lgp", 0)
        with pytest.raises(ConfigurationError, match="Unknown reduction"):
            EpisodeEvaluator("cart-pole-lgp", 1, reduction="mode")

    @pytest.mark.parametrize("environment", ["cart-pole-lgp", "mountain-car-lgp"])
    def test_nop_program_follows_default_trajectory(self, environment):
        evaluator = EpisodeEvaluator(environment, 3)
        program = nop_program(evaluator.n_inputs, evaluator.n_actions)
        expected = np.mean([default_trajectory_return(environment, seed) for seed in range(3)])
        assert evaluator.evaluate(program) == pytest.approx(expected)

    def test_nop_on_mountain_car_times_out(self):
        evaluator = EpisodeEvaluator("mountain-car-lgp", 2)
        program = nop_program(2, 3)
        assert evaluator.evaluate(program) == -200.0

    def test_evaluation_is_pure(self, parameters, rng):
        evaluator = EpisodeEvaluator("cart-pole-lgp", 4)
        seeds = episode_seeds(rng, 4)
        for _ in range(10):
            program = generate_program(parameters, rng, min_length=6)
            assert evaluator.evaluate(program, seeds) == evaluator.evaluate(program, seeds)

    def test_step_cap(self, parameters):
        evaluator = EpisodeEvaluator("cart-pole-lgp", 1, max_episode_steps=7)
        program = Program([Instruction.of("ADD", 2, 2, Mode.CONSTANT, ONE)], parameters)
        env = evaluator.make_environment()
        state, registers = evaluator.run_episode(program, env, seed=0)
        assert state.steps <= 7
        # Registers persist across the steps of an episode.
        assert registers[2] == state.steps

    @pytest.mark.parametrize("persistent, pushes", [(False, False), (True, True)])
    def test_persistent_memory_carries_registers(self, parameters, persistent, pushes):
        env = Mock()
        env.n_inputs = 4
        env.n_actions = 2
        env.default_action = 0
        env.max_episode_steps = 5
        env.reset.return_value = np.zeros(4)
        env.step.return_value = (np.zeros(4), 1.0, False)
        # Counts steps in r2 and raises action register r1 once the count passes 10.
        program = Program(
            [
                Instruction.of("ADD", 2, 2, Mode.CONSTANT, ONE),
                Instruction.of("IF_GT", 0, 2, Mode.CONSTANT, TEN),
                Instruction.of("MOV", 1, 0, Mode.CONSTANT, ONE),
            ],
            parameters,
        )
        evaluator = EpisodeEvaluator(Mock(return_value=env), 3, persistent_memory=persistent)
        assert evaluator.evaluate(program) == 5.0
        actions = [call.args[0] for call in env.step.call_args_list]
        assert len(actions) == 15
        assert (1 in actions) is pushes

    def test_callback_receives_each_episode(self, parameters):
        evaluator = EpisodeEvaluator("cart-pole-lgp", 3, max_episode_steps=4)
        program = Program([Instruction.of("ADD", 2, 2, Mode.CONSTANT, ONE)], parameters)
        seen = []
        evaluator.evaluate(program, callback=lambda idx, state: seen.append(idx))
        assert seen == [0, 1, 2]

    def test_failing_environment_yields_sentinel(self, parameters):
        env = Mock()
        env.n_inputs = 4
        env.n_actions = 2
        env.default_action = 0
        env.max_episode_steps = 10
        env.reset.return_value = np.zeros(4)
        env.step.side_effect = RuntimeError("simulator crashed")
        evaluator = EpisodeEvaluator(Mock(return_value=env), 2)
        program = Program([Instruction.of("ADD", 0, 0, Mode.INPUT, 0)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS
        assert np.isfinite(SENTINEL_FITNESS)

    def test_failing_reset_yields_sentinel(self, parameters):
        env = Mock()
        env.n_inputs = 4
        env.n_actions = 2
        env.max_episode_steps = 10
        env.reset.side_effect = OSError("no display")
        evaluator = EpisodeEvaluator(Mock(return_value=env), 1)
        program = Program([Instruction.of("ADD", 0, 0, Mode.INPUT, 0)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS

    def test_non_finite_reward_yields_sentinel(self, parameters):
        env = Mock()
        env.n_inputs = 4
        env.n_actions = 2
        env.default_action = 0
        env.max_episode_steps = 10
        env.reset.return_value = np.zeros(4)
        env.step.return_value = (np.zeros(4), float("nan"), False)
        evaluator = EpisodeEvaluator(Mock(return_value=env), 1)
        program = Program([Instruction.of("ADD", 0, 0, Mode.INPUT, 0)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS

    def test_unstable_action_registers_yield_sentinel(self, full_parameters):
        program = Program(
            [
                Instruction.of("MOV", 0, 0, Mode.CONSTANT, TEN),
                Instruction.of("POW", 0, 0, Mode.REGISTER, 0),
                Instruction.of("POW", 0, 0, Mode.REGISTER, 0),
            ],
            full_parameters,
        )
        evaluator = EpisodeEvaluator("cart-pole-lgp", 1)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS

    def test_short_observation_yields_sentinel(self, parameters):
        env = mock_environment()
        env.step.return_value = (np.zeros(2), 1.0, False)
        evaluator = EpisodeEvaluator(Mock(return_value=env), 2)
        program = Program([Instruction.of("ADD", 0, 0, Mode.INPUT, 3)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS

    def test_malformed_reset_observation_yields_sentinel(self, parameters):
        env = mock_environment()
        env.reset.return_value = ["left", "right", "up", "down"]
        evaluator = EpisodeEvaluator(Mock(return_value=env), 1)
        program = Program([Instruction.of("ADD", 0, 0, Mode.INPUT, 0)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS

    def test_failing_environment_factory_yields_sentinel(self, parameters):
        env = mock_environment()
        factory = Mock(side_effect=[env, RuntimeError("simulator license expired")])
        evaluator = EpisodeEvaluator(factory, 2)
        program = Program([Instruction.of("ADD", 0, 0, Mode.INPUT, 0)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS
        assert factory.call_count == 2

    def test_custom_operation_failure_yields_sentinel(self):
        def lookup(a, b):
            return {}[a]

        code = register_custom_operation("test_lookup", lookup)
        try:
            parameters = ProgramParameters(
                n_inputs=4,
                n_actions=2,
                instruction_set=InstructionSet.from_names(["TEST_LOOKUP"]),
            )
            program = Program([Instruction.of(code, 0, 0, Mode.INPUT, 0)], parameters)
            evaluator = EpisodeEvaluator(Mock(return_value=mock_environment()), 1)
            assert evaluator.evaluate(program) == SENTINEL_FITNESS
        finally:
            custom_operations.unregister("test_lookup")


class TestClassificationEvaluator:
    """Test accuracy-based fitness"""

    @pytest.fixture
    def comparator(self):
        """Program predicting the index of the larger of two inputs."""
        parameters = ProgramParameters(n_inputs=2, n_actions=2)
        return Program(
            [
                Instruction.of("MOV", 0, 0, Mode.INPUT, 0),
                Instruction.of("MOV", 1, 0, Mode.INPUT, 1),
            ],
            parameters,
        )

    def test_accuracy(self, comparator):
        evaluator = ClassificationEvaluator(
            [[3.0, 1.0], [0.0, 2.0], [5.0, 4.0]], [0, 1, 1]
        )
        assert evaluator.n_inputs == 2
        assert evaluator.n_actions == 2
        assert evaluator.evaluate(comparator) == pytest.approx(2 / 3)

    def test_ties_count_as_wrong(self, comparator):
        evaluator = ClassificationEvaluator([[1.0, 1.0], [2.0, 0.0]], [0, 0])
        assert evaluator.evaluate(comparator) == 0.5

    def test_from_csv(self, comparator, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("3.0,1.0,0\n0.0,2.0,1\n")
        evaluator = ClassificationEvaluator.from_csv(path)
        assert evaluator.evaluate(comparator) == 1.0

    def test_mismatched_rows(self):
        with pytest.raises(ConfigurationError, match="same number of rows"):
            ClassificationEvaluator([[1.0, 2.0]], [0, 1])


class TestQLearning:
    """Test Q-table action selection"""

    def test_update_rule(self):
        table = QTable(n_registers=3, n_actions=2)
        current = ActionRegisterPair(action=1, register=0)
        table.update(current, 1.0, ActionRegisterPair(action=0, register=1))
        assert table.table[0, 1] == pytest.approx(0.25)
        table.update(current, 1.0, ActionRegisterPair(action=0, register=0))
        assert table.table[0, 1] == pytest.approx(0.25 + 0.25 * (1.0 + 0.125 * 0.25 - 0.25))

    def test_greedy_and_random_choices(self, rng):
        greedy = QTable(2, 3, QConsts(epsilon=0.0))
        greedy.table[1] = [0.0, 5.0, 1.0]
        assert all(greedy.choose_action(1, rng) == 1 for _ in range(20))

        explorer = QTable(2, 3, QConsts(epsilon=1.0))
        choices = {explorer.choose_action(1, rng) for _ in range(100)}
        assert choices == {0, 1, 2}

    def test_invalid_constants(self):
        with pytest.raises(ConfigurationError, match="alpha"):
            QConsts(alpha=1.5).validate()

    def test_evaluator_returns_median_table(self, parameters):
        evaluator = QLearningEvaluator("cart-pole-lgp", 3, max_episode_steps=50)
        program = Program(
            [
                Instruction.of("MOV", 0, 0, Mode.INPUT, 2),
                Instruction.of("MOV", 1, 0, Mode.INPUT, 3),
            ],
            parameters,
        )
        fitness, metadata = evaluator.evaluate_with_metadata(program, [1, 2, 3])
        assert 1.0 <= fitness <= 50.0
        table = np.asarray(metadata["q_table"])
        assert table.shape == (parameters.n_registers, 2)

    def test_evaluator_is_deterministic(self, parameters, rng):
        evaluator = QLearningEvaluator("cart-pole-lgp", 2, max_episode_steps=50)
        program = generate_program(parameters, rng, min_length=8)
        assert evaluator.evaluate_with_metadata(program, [4, 5]) == evaluator.evaluate_with_metadata(
            program, [4, 5]
        )

    def test_environment_failures_yield_sentinel(self, parameters):
        program = Program([Instruction.of("MOV", 0, 0, Mode.INPUT, 3)], parameters)
        short = mock_environment()
        short.step.return_value = (np.zeros(2), 1.0, False)
        assert QLearningEvaluator(Mock(return_value=short), 2).evaluate(program) == SENTINEL_FITNESS

        factory = Mock(side_effect=[mock_environment(), RuntimeError("simulator license expired")])
        assert QLearningEvaluator(factory, 2).evaluate_with_metadata(program) == (
            SENTINEL_FITNESS,
            {},
        )

    @pytest.mark.parametrize("persistent, fresh_starts", [(False, 3), (True, 1)])
    def test_persistent_memory(self, parameters, persistent, fresh_starts):
        interpreter = Mock(wraps=Interpreter())
        evaluator = QLearningEvaluator(
            Mock(return_value=mock_environment(max_episode_steps=4)),
            3,
            interpreter=interpreter,
            persistent_memory=persistent,
        )
        program = Program([Instruction.of("ADD", 2, 2, Mode.CONSTANT, ONE)], parameters)
        evaluator.evaluate(program)
        starts = [call for call in interpreter.execute.call_args_list if call.args[2] is None]
        assert len(starts) == fresh_starts

    def test_stored_table_is_replayed_greedily(self, parameters):
        stored = QTable(parameters.n_registers, 2, QConsts(epsilon=1.0))
        stored.table[:] = [[0.0, 1.0], [0.0, 1.0], [0.0, 1.0]]
        env = mock_environment(max_episode_steps=20)
        evaluator = QLearningEvaluator(Mock(return_value=env), 2, q_table=stored)
        assert not evaluator.learning
        program = Program([Instruction.of("MOV", 0, 0, Mode.INPUT, 0)], parameters)
        fitness, metadata = evaluator.evaluate_with_metadata(program, [0, 1])
        assert fitness == 20.0
        assert {call.args[0] for call in env.step.call_args_list} == {1}
        assert metadata["q_table"] == stored.to_list()

    def test_stored_table_shape_checks(self, parameters):
        with pytest.raises(ConfigurationError, match="3 actions"):
            QLearningEvaluator("cart-pole-lgp", 1, q_table=QTable(3, 3))
        evaluator = QLearningEvaluator("cart-pole-lgp", 1, q_table=QTable(5, 2))
        program = Program([Instruction.of("MOV", 0, 0, Mode.INPUT, 0)], parameters)
        assert evaluator.evaluate(program) == SENTINEL_FITNESS

    def test_table_from_list(self):
        table = QTable.from_list([[0.5, 1.0], [2.0, 0.0]])
        assert table.table.shape == (2, 2)
        assert table.action_argmax(1) == 0
        with pytest.raises(RepresentationError, match="2-D"):
            QTable.from_list([1.0, 2.0])
        with pytest.raises(RepresentationError, match="Malformed"):
            QTable.from_list([[1.0], [2.0, 3.0]])
