import json

import pytest

from lgp.cli import EXIT_INVALID, EXIT_OK, build_parser, build_replay_evaluator, main
from lgp.program import Program
from lgp.qlearning import QLearningEvaluator

CONFIG = """\
evolution:
  population_size: 8
  max_generations: 3
  seed: 5
program:
  max_length: 8
evaluation:
  environment: cart-pole-lgp
  n_episodes: 1
  max_episode_steps: 30
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "run.yaml"
    path.write_text(CONFIG)
    return path


class TestParser:
    """Test argument parsing"""

    def test_run_arguments(self):
        args = build_parser().parse_args(
            ["run", "cfg.yaml", "--seed", "3", "--generations", "4", "--threads", "2"]
        )
        assert args.command == "run"
        assert (args.seed, args.generations, args.threads) == (3, 4, 2)

    def test_evaluate_requires_environment(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["evaluate", "best.json"])


class TestRunCommand:
    """Test the run subcommand"""

    def test_run_reports_and_saves(self, config_path, tmp_path, capsys):
        output = tmp_path / "best.json"
        code = main(["run", str(config_path), "--generations", "2", "--output", str(output)])
        assert code == EXIT_OK
        printed = capsys.readouterr().out
        assert "Best fitness:" in printed
        assert "Generations: 2 (max_generations)" in printed
        program = Program.load(output)
        assert program.parameters.n_inputs == 4
        assert "fitness" in json.loads(output.read_text())

    def test_missing_config(self, tmp_path, capsys):
        code = main(["run", str(tmp_path / "missing.yaml")])
        assert code == EXIT_INVALID
        assert "not found" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("evolution:\n  population_size: 0\n")
        assert main(["run", str(path)]) == EXIT_INVALID
        assert "population_size" in capsys.readouterr().err


class TestEvaluateCommand:
    """Test the evaluate subcommand"""

    @pytest.fixture
    def saved_program(self, config_path, tmp_path):
        output = tmp_path / "best.json"
        assert main(["run", str(config_path), "--output", str(output)]) == EXIT_OK
        return output

    def test_evaluate(self, saved_program, capsys):
        capsys.readouterr()
        code = main(
            ["evaluate", str(saved_program), "--environment", "cart-pole-lgp", "--episodes", "2"]
        )
        assert code == EXIT_OK
        assert "Fitness:" in capsys.readouterr().out

    def test_environment_mismatch(self, saved_program, capsys):
        code = main(["evaluate", str(saved_program), "--environment", "mountain-car-lgp"])
        assert code == EXIT_INVALID
        assert "expects 4 inputs" in capsys.readouterr().err

    def test_malformed_program(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text('{"format": 1}')
        code = main(["evaluate", str(path), "--environment", "cart-pole-lgp"])
        assert code == EXIT_INVALID
        assert "Malformed" in capsys.readouterr().err

    def test_missing_program(self, tmp_path):
        code = main(["evaluate", str(tmp_path / "none.json"), "--environment", "cart-pole-lgp"])
        assert code == EXIT_INVALID

    def test_output_directory_is_created(self, config_path, tmp_path):
        output = tmp_path / "results" / "cart" / "best.json"
        assert main(["run", str(config_path), "--output", str(output)]) == EXIT_OK
        assert Program.load(output).parameters.n_actions == 2


class TestQTableReplay:
    """Test evaluating saved Q-learning programs"""

    @pytest.fixture
    def q_program(self, tmp_path):
        config = tmp_path / "q.yaml"
        config.write_text(
            CONFIG.replace("cart-pole-lgp", "mountain-car-lgp") + "  q_learning: true\n"
        )
        output = tmp_path / "q_best.json"
        assert main(["run", str(config), "--output", str(output)]) == EXIT_OK
        return output

    def test_stored_table_is_used(self, q_program):
        program, extra = Program.load_with_extra(q_program)
        evaluator = build_replay_evaluator(program, "mountain-car-lgp", 2, extra["metadata"])
        assert isinstance(evaluator, QLearningEvaluator)
        assert not evaluator.learning
        assert evaluator.q_table.to_list() == extra["metadata"]["q_table"]

    def test_plain_programs_use_registers(self, config_path, tmp_path):
        output = tmp_path / "best.json"
        assert main(["run", str(config_path), "--output", str(output)]) == EXIT_OK
        program, extra = Program.load_with_extra(output)
        evaluator = build_replay_evaluator(program, "cart-pole-lgp", 2, extra["metadata"])
        assert not isinstance(evaluator, QLearningEvaluator)

    def test_evaluate_command(self, q_program, capsys):
        capsys.readouterr()
        code = main(["evaluate", str(q_program), "--environment", "mountain-car-lgp"])
        assert code == EXIT_OK
        assert "Fitness:" in capsys.readouterr().out

    def test_table_rows_must_match_registers(self, q_program, capsys):
        data = json.loads(q_program.read_text())
        data["metadata"]["q_table"] = data["metadata"]["q_table"][:1]
        q_program.write_text(json.dumps(data))
        code = main(["evaluate", str(q_program), "--environment", "mountain-car-lgp"])
        assert code == EXIT_INVALID
        assert "rows" in capsys.readouterr().err
