#!/usr/bin/env python3
"""
Evolve a classifier for a small synthetic dataset written to a CSV file.
"""

import sys
import tempfile
from pathlib import Path

import numpy as np

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if SRC_PATH.exists() and str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from lgp import ClassificationEvaluator, EvolutionEngine, HyperParameters, ProgramConfig


def make_dataset(path: Path, n: int = 200, seed: int = 0) -> None:
    """Two features; the label is 1 when their sum is positive."""
    rng = np.random.default_rng(seed)
    features = rng.normal(size=(n, 2))
    labels = (features.sum(axis=1) > 0).astype(int)
    np.savetxt(path, np.column_stack([features, labels]), delimiter=",", fmt="%.5f")


def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "sum_sign.csv"
        make_dataset(path)
        evaluator = ClassificationEvaluator.from_csv(path)

        config = HyperParameters(
            population_size=60,
            max_generations=25,
            fitness_threshold=0.99,
            seed=11,
            program=ProgramConfig(max_length=10, operations=["ADD", "SUB", "MOV", "NEG"]),
        )
        result = EvolutionEngine(config, evaluator).run()

    print(f"Accuracy {result.best_fitness:.3f} after {result.generations} generations")
    for line in result.best.program.to_human_readable():
        print(f"  {line}")


if __name__ == "__main__":
    main()
