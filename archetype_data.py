"""
Synthetic archetype datasets.

K random bipolar archetypes, optionally extended by K label-coding visible
units (the bipolar identity), and M blurred examples per archetype. The
quality r in [-1, 1] sets the flip probability (1 - r)/2: r = 1 copies the
archetype, r = 0 is pure noise, r = -1 inverts it.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from bipolar import bipolar_identity


@dataclass
class ArchetypeDataset:
    """Archetypes, their blurred examples and the paired label codes."""
    archetypes: NDArray[np.float64]   # Shape: (n_visible, K)
    examples: NDArray[np.float64]     # Shape: (n_visible, K*M), grouped by archetype
    labels: NDArray[np.float64]       # Shape: (K, K*M), column-paired with examples
    r: float

    @property
    def n_visible(self) -> int:
        return self.archetypes.shape[0]

    @property
    def n_archetypes(self) -> int:
        return self.archetypes.shape[1]

    @property
    def n_examples(self) -> int:
        """Examples per archetype (M)."""
        return self.examples.shape[1] // self.n_archetypes


def generate_archetypes(n_content: int,
                        n_archetypes: int,
                        rng: np.random.Generator,
                        label_units: bool = True) -> NDArray[np.float64]:
    """
    Uniform random bipolar archetypes.

    With label_units the K x K bipolar identity is stacked below the content,
    so archetype i also carries its own label code (N' = N + K rows).
    """
    if n_content < 1 or n_archetypes < 1:
        raise ValueError(f"Need positive sizes, got N={n_content}, K={n_archetypes}")
    content = rng.choice([-1.0, 1.0], size=(n_content, n_archetypes))
    if not label_units:
        return content
    return np.vstack([content, bipolar_identity(n_archetypes)])


def blur(archetypes: NDArray,
         r: float,
         n_examples: int,
         rng: np.random.Generator) -> NDArray[np.float64]:
    """
    M noisy copies of every archetype, grouped by archetype.

    Each bit is flipped independently with probability (1 - r)/2.
    """
    if not -1.0 <= r <= 1.0:
        raise ValueError(f"Quality r must be in [-1, 1], got {r}")
    if n_examples < 1:
        raise ValueError(f"Need at least one example per archetype, got {n_examples}")

    copies = np.repeat(archetypes, n_examples, axis=1)
    flips = rng.random(copies.shape) < (1.0 - r) / 2
    return np.where(flips, -copies, copies)


def archetype_labels(n_archetypes: int, n_examples: int) -> NDArray[np.float64]:
    """Bipolar identity columns, each repeated n_examples times."""
    return np.repeat(bipolar_identity(n_archetypes), n_examples, axis=1)


def make_dataset(n_content: int,
                 n_archetypes: int,
                 r: float,
                 n_examples: int,
                 rng: np.random.Generator,
                 label_units: bool = True) -> ArchetypeDataset:
    """Archetypes, blurred training set and labels in one go."""
    archetypes = generate_archetypes(n_content, n_archetypes, rng, label_units=label_units)
    return ArchetypeDataset(
        archetypes=archetypes,
        examples=blur(archetypes, r, n_examples, rng),
        labels=archetype_labels(n_archetypes, n_examples),
        r=r,
    )
