#!/usr/bin/env python3
"""
Compare plain action registers with Q-table action selection on mountain car.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if SRC_PATH.exists() and str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from lgp import EvaluationConfig, HyperParameters, ProgramConfig, run_experiment


def run(q_learning: bool) -> float:
    config = HyperParameters(
        population_size=40,
        max_generations=15,
        mutation_rate=0.2,
        seed=3,
        program=ProgramConfig(max_length=12, n_extra_registers=2),
        evaluation=EvaluationConfig(
            environment="mountain-car-lgp",
            n_episodes=3,
            q_learning=q_learning,
        ),
    )
    return run_experiment(config).best_fitness


def main() -> None:
    for q_learning in (False, True):
        label = "Q-table" if q_learning else "registers"
        print(f"{label:>9}: best fitness {run(q_learning):.1f}")


if __name__ == "__main__":
    main()
