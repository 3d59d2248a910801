"""
Command line entry point.

Usage:
    lgp run config.yaml --seed 7 --output best.json
    lgp evaluate best.json --environment cart-pole-lgp --episodes 10
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import load_config
from .engine import run_experiment
from .environments import available_environments
from .errors import ConfigurationError, RepresentationError
from .evaluator import EpisodeEvaluator
from .program import Program
from .qlearning import QLearningEvaluator, QTable

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID = 2


def setup_logging(level: int = logging.INFO) -> None:
    """Setup basic logging configuration."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lgp",
        description="Evolve linear genetic programs for control and classification tasks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lgp run config.yaml
  lgp run config.yaml --seed 7 --threads 4 --output best.json
  lgp evaluate best.json --environment cart-pole-lgp --episodes 10
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run an evolutionary search')
    run_parser.add_argument('config', type=Path, help='Path to YAML configuration file')
    run_parser.add_argument('--seed', type=int, help='Override the configured seed')
    run_parser.add_argument('--generations', type=int, help='Override max_generations')
    run_parser.add_argument('--threads', type=int, help='Override the evaluation thread count')
    run_parser.add_argument('--output', '-o', type=Path, help='Write the best program JSON here')

    eval_parser = subparsers.add_parser('evaluate', help='Score a saved program')
    eval_parser.add_argument('program', type=Path, help='Path to a program JSON file')
    eval_parser.add_argument(
        '--environment', '-e',
        required=True,
        help=f"Environment name ({', '.join(available_environments())})",
    )
    eval_parser.add_argument('--episodes', type=int, default=5, help='Number of episodes')
    eval_parser.add_argument('--seed', type=int, default=0, help='Seed of the first episode')
    return parser


def command_run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.seed is not None:
        config.seed = args.seed
    if args.generations is not None:
        config.max_generations = args.generations
    if args.threads is not None:
        config.n_threads = args.threads

    result = run_experiment(config)
    print(f"Best fitness: {result.best_fitness:.4f}")
    print(f"Generations: {result.generations} ({result.reason})")
    for line in result.best.program.to_human_readable():
        print(f"  {line}")

    if args.output is not None:
        result.save_best(args.output)
        logger.info("Best program written to %s", args.output)
    return EXIT_OK


def build_replay_evaluator(
    program: Program, environment: str, n_episodes: int, metadata: Optional[Dict[str, Any]]
) -> EpisodeEvaluator:
    """Evaluator for a saved program; a stored Q-table is replayed rather than relearned."""
    if not isinstance(metadata, dict) or "q_table" not in metadata:
        return EpisodeEvaluator(environment, n_episodes)
    q_table = QTable.from_list(metadata["q_table"])
    if q_table.table.shape[0] != program.parameters.n_registers:
        raise ConfigurationError(
            f"Stored Q-table has {q_table.table.shape[0]} rows; "
            f"the program has {program.parameters.n_registers} registers."
        )
    logger.info("Replaying stored %dx%d Q-table", *q_table.table.shape)
    return QLearningEvaluator(environment, n_episodes, q_table=q_table)


def command_evaluate(args: argparse.Namespace) -> int:
    try:
        program, extra = Program.load_with_extra(args.program)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read program file {args.program}: {exc}") from exc
    evaluator = build_replay_evaluator(
        program, args.environment, args.episodes, extra.get("metadata")
    )
    if (evaluator.n_inputs, evaluator.n_actions) != (
        program.parameters.n_inputs,
        program.parameters.n_actions,
    ):
        raise ConfigurationError(
            f"Program expects {program.parameters.n_inputs} inputs and "
            f"{program.parameters.n_actions} actions; '{args.environment}' has "
            f"{evaluator.n_inputs} and {evaluator.n_actions}."
        )
    seeds = range(args.seed, args.seed + args.episodes)
    fitness = evaluator.evaluate(program, seeds)
    print(f"Fitness: {fitness:.4f}")
    return EXIT_OK


COMMANDS = {
    'run': command_run,
    'evaluate': command_evaluate,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        return COMMANDS[args.command](args)
    except (ConfigurationError, RepresentationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_INVALID


__all__ = ["main", "build_parser", "setup_logging"]
