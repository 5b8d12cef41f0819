"""
Parameter sweep over (K, r, M) for the archetype RBM.

For every grid point: generate a dataset, train, and measure how often the
trained machine gives the correct label to the clean archetypes (ProbArch)
and to fresh blurred examples of them (ProbExam). Results are written as
two tab-delimited matrices, rows indexed by M and columns by (K, r) with K
varying slowest.

Usage:
    python sweep.py OUT_DIR RUN_INDEX

The run index seeds the random source, so every run of a batch job is
reproducible and independent of the others.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from tqdm import tqdm

from archetype_data import blur, make_dataset
from archetype_rbm import ArchetypeRBM, Hyperparameters, train
from evaluation import calculate_overlap, correct_hidden_probability


@dataclass
class SweepConfig:
    """Grid and training settings shared by every grid point."""
    n_content: int = 100
    archetype_counts: tuple[int, ...] = (2, 4, 8)
    qualities: tuple[float, ...] = (0.2, 0.4, 0.6, 0.8)
    example_counts: tuple[int, ...] = (1, 2, 5, 10, 20, 50)
    beta: float = 1.0
    holdout_examples: int = 20      # Fresh examples per archetype for ProbExam
    hyper: Hyperparameters = field(default_factory=lambda: Hyperparameters(
        learning_rate=0.05, weight_decay=1e-4, momentum=0.5,
        batch_size=10, num_epochs=100, cdk=1))

    @property
    def grid_shape(self) -> tuple[int, int]:
        return len(self.example_counts), len(self.archetype_counts) * len(self.qualities)


DEFAULT_CONFIG = SweepConfig()


@dataclass
class GridPointResult:
    n_archetypes: int
    r: float
    n_examples: int
    prob_archetype: float
    prob_example: float
    archetype_overlap: float
    example_overlap: float


def run_grid_point(config: SweepConfig,
                   n_archetypes: int,
                   r: float,
                   n_examples: int,
                   rng: np.random.Generator) -> GridPointResult:
    """Train on one (K, r, M) dataset and evaluate on archetypes and held-out examples."""
    data = make_dataset(config.n_content, n_archetypes, r, n_examples, rng)
    rbm = ArchetypeRBM.create(data.n_visible, n_archetypes, rng, beta=config.beta)
    train(rbm, data.examples, data.labels, config.hyper, rng)

    holdout = blur(data.archetypes, r, config.holdout_examples, rng)
    result = correct_hidden_probability(rbm, holdout, data.archetypes)
    archetype_overlap, example_overlap = calculate_overlap(rbm, holdout, data.archetypes)

    return GridPointResult(
        n_archetypes=n_archetypes,
        r=r,
        n_examples=n_examples,
        prob_archetype=result.archetype_mean,
        prob_example=result.mean_ratio,
        archetype_overlap=archetype_overlap,
        example_overlap=example_overlap,
    )


def run_sweep(config: SweepConfig,
              rng: np.random.Generator,
              progress: bool = True) -> tuple[np.ndarray, np.ndarray]:
    """
    Evaluate every grid point.

    Returns:
        (prob_arch, prob_exam), each of shape (len(M grid), len(K grid) * len(r grid))
    """
    prob_arch = np.zeros(config.grid_shape)
    prob_exam = np.zeros(config.grid_shape)

    points = [(i_m, i_k, i_r)
              for i_m in range(len(config.example_counts))
              for i_k in range(len(config.archetype_counts))
              for i_r in range(len(config.qualities))]

    for i_m, i_k, i_r in tqdm(points, desc="Sweep", disable=not progress):
        point = run_grid_point(config,
                               config.archetype_counts[i_k],
                               config.qualities[i_r],
                               config.example_counts[i_m],
                               rng)
        column = i_k * len(config.qualities) + i_r
        prob_arch[i_m, column] = point.prob_archetype
        prob_exam[i_m, column] = point.prob_example

    return prob_arch, prob_exam


def result_paths(out_dir: Path, run_index: int) -> tuple[Path, Path]:
    out_dir = Path(out_dir)
    return out_dir / f"ProbArch-it-{run_index}.txt", out_dir / f"ProbExam-it-{run_index}.txt"


def save_results(out_dir: Path,
                 run_index: int,
                 prob_arch: np.ndarray,
                 prob_exam: np.ndarray) -> tuple[Path, Path]:
    """Write both result matrices as tab-delimited text."""
    Path(out_dir).mkdir(parents=True, exist_ok=True)
    arch_path, exam_path = result_paths(out_dir, run_index)
    np.savetxt(arch_path, prob_arch, delimiter="\t")
    np.savetxt(exam_path, prob_exam, delimiter="\t")
    print(f"Saved {arch_path}")
    print(f"Saved {exam_path}")
    return arch_path, exam_path


def main(argv=None):
    p = argparse.ArgumentParser(description="Archetype RBM parameter sweep")
    p.add_argument("out_dir", type=Path, help="directory for ProbArch/ProbExam files")
    p.add_argument("run_index", type=int, help="run number, also the random seed")
    args = p.parse_args(argv)

    config = DEFAULT_CONFIG
    n_points = config.grid_shape[0] * config.grid_shape[1]
    print(f"Run {args.run_index}: {n_points} grid points, N = {config.n_content}")
    print(f"K = {config.archetype_counts}, r = {config.qualities}, M = {config.example_counts}")

    rng = np.random.default_rng(args.run_index)
    prob_arch, prob_exam = run_sweep(config, rng)
    save_results(args.out_dir, args.run_index, prob_arch, prob_exam)


if __name__ == "__main__":
    main()
