"""
Evaluation of a trained archetype RBM.

Two diagnostics:

1. Classification probability. For a visible configuration x the hidden
   units are independent given x, so the log-partition over all 2^Nh hidden
   states factorises:

       log Σ_h exp(β x'Wh) = Σ_j log(exp(β(W'x)_j) + exp(-β(W'x)_j))

   and log P(h = c | x) = β x'Wc - log Σ_h exp(β x'Wh). The probability of
   the correct label is that likelihood for the true code c_i, normalised
   over the K label codes. Every exponential goes through log_sum_exp, so
   nothing overflows for large β or large weights.

2. Overlap (magnetization). The noise-free reconstruction of archetype i is
   m_i = tanh(β W c_i). Its normalised dot product with the archetype, or
   with an example of it, lies in [-1, 1].

Examples are grouped by archetype: columns i*M ... (i+1)*M - 1 belong to
archetype i.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce

import numpy as np
from numpy.typing import NDArray

from archetype_rbm import ArchetypeRBM
from bipolar import bipolar_identity, expectation


def log_sum_exp(u: NDArray, v: NDArray) -> NDArray[np.float64]:
    """log(exp(u) + exp(v)), elementwise, without overflow."""
    m = np.maximum(u, v)
    return m + np.log(np.exp(u - m) + np.exp(v - m))


def log_partition(rbm: ArchetypeRBM, X: NDArray) -> NDArray[np.float64]:
    """
    Log of Σ_h exp(β x'Wh) for each column x of X.

    Each column is normalised on its own; nothing is pooled across examples.

    Args:
        rbm: Trained model
        X: Visible configurations, shape (n_visible,) or (n_visible, n)

    Returns:
        Scalar array for a single configuration, shape (n,) otherwise
    """
    field = rbm.beta * (rbm.W.T @ X)
    return np.sum(log_sum_exp(field, -field), axis=0)


def label_log_likelihoods(rbm: ArchetypeRBM, X: NDArray) -> NDArray[np.float64]:
    """
    log P(h = c_k | x) for every label code c_k and every column x.

    Returns:
        Array of shape (K, n) with K = n_hidden
    """
    codes = bipolar_identity(rbm.n_hidden)
    field = rbm.beta * (rbm.W.T @ X)              # (n_hidden, n)
    return codes.T @ field - log_partition(rbm, X)


@dataclass
class ClassificationResult:
    """Correct-label probabilities for archetypes and their examples."""
    log_numerator: NDArray[np.float64]              # (K, M) log P(true code | example)
    log_denominator: NDArray[np.float64]            # (K, M) log Σ_k P(code_k | example)
    archetype_log_numerator: NDArray[np.float64]    # (K,)
    archetype_log_denominator: NDArray[np.float64]  # (K,)

    @property
    def example_probability(self) -> NDArray[np.float64]:
        return np.exp(self.log_numerator - self.log_denominator)

    @property
    def archetype_probability(self) -> NDArray[np.float64]:
        return np.exp(self.archetype_log_numerator - self.archetype_log_denominator)

    @property
    def mean_ratio(self) -> float:
        """Mean correct-label probability over all (archetype, example) pairs."""
        return float(self.example_probability.mean())

    @property
    def archetype_mean(self) -> float:
        return float(self.archetype_probability.mean())


def _check_eval_inputs(rbm: ArchetypeRBM, examples: NDArray, archetypes: NDArray) -> tuple[int, int]:
    """Validate shapes, return (K, M)."""
    if archetypes.ndim != 2 or archetypes.shape[0] != rbm.n_visible:
        raise ValueError(f"Archetypes must be ({rbm.n_visible}, K), got {archetypes.shape}")
    n_archetypes = archetypes.shape[1]
    if rbm.n_hidden != n_archetypes:
        raise ValueError(f"RBM has {rbm.n_hidden} hidden units but there are {n_archetypes} archetypes")
    if examples.ndim != 2 or examples.shape[0] != rbm.n_visible:
        raise ValueError(f"Examples must be ({rbm.n_visible}, K*M), got {examples.shape}")
    if examples.shape[1] == 0 or examples.shape[1] % n_archetypes:
        raise ValueError(f"{examples.shape[1]} examples cannot be split evenly over {n_archetypes} archetypes")
    return n_archetypes, examples.shape[1] // n_archetypes


def _true_and_total(log_likelihoods: NDArray, true_class: NDArray) -> tuple[NDArray, NDArray]:
    """Pick the true-code row per column, and the stabilised log-sum over all codes."""
    columns = np.arange(log_likelihoods.shape[1])
    log_num = log_likelihoods[true_class, columns]
    log_den = reduce(log_sum_exp, log_likelihoods)
    return log_num, log_den


def correct_hidden_probability(rbm: ArchetypeRBM,
                               examples: NDArray,
                               archetypes: NDArray) -> ClassificationResult:
    """
    Probability that the RBM assigns each configuration its own archetype's label.

    For archetype i and each of its M examples x, computes
        log_num = log P(h = c_i | x)
        log_den = log Σ_k P(h = c_k | x)
    with per-example log-partitions. The same pair is computed for the clean
    archetype itself.

    Args:
        rbm: Trained model with n_hidden == K
        examples: Blurred examples grouped by archetype, shape (n_visible, K*M)
        archetypes: Clean archetypes, shape (n_visible, K)
    """
    n_archetypes, n_examples = _check_eval_inputs(rbm, examples, archetypes)

    true_class = np.repeat(np.arange(n_archetypes), n_examples)
    log_num, log_den = _true_and_total(label_log_likelihoods(rbm, examples), true_class)

    arch_num, arch_den = _true_and_total(label_log_likelihoods(rbm, archetypes),
                                         np.arange(n_archetypes))

    return ClassificationResult(
        log_numerator=log_num.reshape(n_archetypes, n_examples),
        log_denominator=log_den.reshape(n_archetypes, n_examples),
        archetype_log_numerator=arch_num,
        archetype_log_denominator=arch_den,
    )


def expected_visible(rbm: ArchetypeRBM) -> NDArray[np.float64]:
    """Noise-free reconstruction tanh(β W c_i) of every archetype code, shape (n_visible, K)."""
    return expectation(rbm.beta * (rbm.W @ bipolar_identity(rbm.n_hidden)))


def calculate_overlap(rbm: ArchetypeRBM,
                      examples: NDArray,
                      archetypes: NDArray) -> tuple[float, float]:
    """
    Magnetization-style overlap between reconstructions and data.

    Returns:
        (archetype_overlap, example_overlap): mean over archetypes of
        a_i·m_i / Nv, and mean over all examples of x_im·m_i / Nv.
    """
    n_archetypes, n_examples = _check_eval_inputs(rbm, examples, archetypes)
    n_visible = rbm.n_visible

    m = expected_visible(rbm)
    archetype_overlap = np.sum(m * archetypes, axis=0) / n_visible
    example_overlap = np.sum(np.repeat(m, n_examples, axis=1) * examples, axis=0) / n_visible

    return float(archetype_overlap.mean()), float(example_overlap.mean())
