"""
Plot averaged sweep results.

Reads every ProbArch-it-*.txt and ProbExam-it-*.txt in a results directory
(written by sweep.py), averages over runs and plots the correct-label
probability against M, one curve per (K, r) column.

Usage:
    python plot_sweep.py RESULTS_DIR
"""

from __future__ import annotations

import argparse
from pathlib import Path

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from sweep import DEFAULT_CONFIG, SweepConfig


def load_runs(results_dir: Path, prefix: str) -> np.ndarray:
    """Stack all runs of one result kind into (n_runs, n_M, n_columns)."""
    paths = sorted(Path(results_dir).glob(f"{prefix}-it-*.txt"))
    if not paths:
        raise FileNotFoundError(f"No {prefix}-it-*.txt files in {results_dir}")
    return np.stack([np.loadtxt(path, delimiter="\t", ndmin=2) for path in paths])


def plot_probability(runs: np.ndarray,
                     config: SweepConfig,
                     title: str,
                     save_path: Path) -> Path:
    """Mean ± std over runs versus M, one panel per K."""
    mean = runs.mean(axis=0)
    std = runs.std(axis=0)
    n_k = len(config.archetype_counts)
    n_r = len(config.qualities)
    if mean.shape != config.grid_shape:
        raise ValueError(f"Results of shape {mean.shape} do not match grid {config.grid_shape}")

    fig, axes = plt.subplots(1, n_k, figsize=(4 * n_k, 3.5), squeeze=False)
    M = np.array(config.example_counts)

    for i_k, K in enumerate(config.archetype_counts):
        ax = axes[0, i_k]
        for i_r, r in enumerate(config.qualities):
            column = i_k * n_r + i_r
            ax.errorbar(M, mean[:, column], yerr=std[:, column], marker='o', capsize=3, label=f'r={r}')
        ax.axhline(1.0 / K, color='gray', linestyle='--', linewidth=1)
        ax.set_xscale('log')
        ax.set_ylim(0, 1.05)
        ax.set_xlabel('Examples per archetype M')
        ax.set_title(f'K = {K}')
        ax.grid(True, alpha=0.3)
    axes[0, 0].set_ylabel('P(correct label)')
    axes[0, -1].legend(fontsize=8)

    plt.suptitle(f'{title} ({runs.shape[0]} runs)')
    plt.tight_layout()
    plt.savefig(save_path, dpi=150)
    plt.close(fig)
    print(f"Saved {save_path}")
    return save_path


def plot_results(results_dir: Path, config: SweepConfig = DEFAULT_CONFIG) -> list[Path]:
    results_dir = Path(results_dir)
    saved = []
    for prefix, title in [('ProbArch', 'Archetype classification'),
                          ('ProbExam', 'Held-out example classification')]:
        runs = load_runs(results_dir, prefix)
        saved.append(plot_probability(runs, config, title, results_dir / f'{prefix}.png'))
    return saved


def main(argv=None):
    p = argparse.ArgumentParser(description="Plot archetype RBM sweep results")
    p.add_argument("results_dir", type=Path)
    args = p.parse_args(argv)
    plot_results(args.results_dir)


if __name__ == "__main__":
    main()
