"""
Elementwise kernels shared by the archetype RBM, its evaluation and the
dataset generator.

Units are bipolar, s in {-1, +1}. With pre-activation x the two states carry
weights exp(+x) and exp(-x), so

    P(s = +1 | x) = exp(x) / (exp(x) + exp(-x)) = (1 + tanh(x)) / 2
    <s>           = tanh(x)

These take the place of the sigmoid used for {0, 1} units.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def activation(x: NDArray) -> NDArray[np.float64]:
    """P(s = +1 | x) for a bipolar unit."""
    return 0.5 * (1.0 + np.tanh(x))


def expectation(x: NDArray) -> NDArray[np.float64]:
    """Mean value of a bipolar unit, i.e. the infinite-sample limit of sample_one."""
    return np.tanh(x)


def sample_one(
    prob: NDArray,
    rng: np.random.Generator
) -> NDArray[np.float64]:
    """
    Draw one bipolar sample per entry of a probability field.

    Args:
        prob: Probability of the +1 state, any shape, entries in [0, 1]
        rng: Random source. Every entry gets its own fresh uniform draw.

    Returns:
        Array shaped like prob: +1 where the draw is <= prob, else -1
    """
    prob = np.asarray(prob, dtype=np.float64)
    draws = rng.random(prob.shape)
    return np.where(draws <= prob, 1.0, -1.0)


def bipolar_identity(n: int) -> NDArray[np.float64]:
    """
    Bipolar label codes: +1 on the diagonal, -1 elsewhere.

    Column k is the code of class k.
    """
    if n < 1:
        raise ValueError(f"Need at least one class, got n={n}")
    return 2.0 * np.eye(n) - 1.0


def is_bipolar(X: NDArray) -> bool:
    """True if every entry of X is exactly +1 or -1."""
    return bool(np.all(np.abs(np.asarray(X)) == 1))
