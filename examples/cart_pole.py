#!/usr/bin/env python3
"""
Evolve a cart-pole controller, print the best program and save it as JSON.
"""

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if SRC_PATH.exists() and str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from lgp import EvaluationConfig, HyperParameters, ProgramConfig, run_experiment
from lgp.cli import setup_logging


def report(engine, stats) -> None:
    if stats.best >= 500.0:
        engine.cancel()


def main() -> None:
    setup_logging(logging.INFO)
    config = HyperParameters(
        population_size=50,
        max_generations=30,
        mutation_rate=0.1,
        crossover_rate=0.5,
        elite_count=2,
        n_threads=4,
        seed=1,
        program=ProgramConfig(max_length=16, operations=["ADD", "SUB", "MUL", "MOV", "IF_GT", "IF_LT"]),
        evaluation=EvaluationConfig(environment="cart-pole-lgp", n_episodes=5),
    )
    result = run_experiment(config, hooks=[report])

    print(f"\nBest fitness {result.best_fitness:.1f} after {result.generations} generations ({result.reason})")
    for line in result.best.program.to_human_readable():
        print(f"  {line}")

    output = ROOT / "best_cart_pole.json"
    output.write_text(result.best_program_json)
    print(f"Saved to {output}")


if __name__ == "__main__":
    main()
