"""
Restricted Boltzmann Machine with archetype-clamped hidden units.

Energy (bipolar units, no biases):

    E(v, h) = -β v'Wh

The hidden layer is never inferred during learning. Each training example v
is paired with the bipolar code h of its archetype, and that pair is the
positive phase. The negative phase is a CD-k Gibbs chain started from the
same pair:

    ∂log P(v, h)/∂W ≈ β (<v h'>_data - <v h'>_model)

Layout: one example per COLUMN. Visible batches are (n_visible, b), hidden
batches are (n_hidden, b).
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from bipolar import activation, is_bipolar, sample_one


@dataclass
class ArchetypeRBM:
    """Weights and inverse temperature. W is the only learned parameter."""
    W: NDArray[np.float64]     # Shape: (n_visible, n_hidden)
    beta: float = 1.0          # Inverse temperature, fixed for a run

    def __post_init__(self):
        self.W = np.array(self.W, dtype=np.float64)
        if self.W.ndim != 2:
            raise ValueError(f"W must be 2-D (n_visible, n_hidden), got shape {self.W.shape}")
        if self.beta <= 0:
            raise ValueError(f"beta must be positive, got {self.beta}")

    @classmethod
    def create(cls,
               n_visible: int,
               n_hidden: int,
               rng: np.random.Generator,
               beta: float = 1.0,
               init_scale: float = 0.01) -> 'ArchetypeRBM':
        """Small random weights drawn from the given random source."""
        if n_visible < 1 or n_hidden < 1:
            raise ValueError(f"Layer sizes must be positive, got {n_visible}x{n_hidden}")
        W = rng.standard_normal((n_visible, n_hidden)) * init_scale
        return cls(W=W, beta=beta)

    @property
    def n_visible(self) -> int:
        return self.W.shape[0]

    @property
    def n_hidden(self) -> int:
        return self.W.shape[1]

    def hidden_prob(self, v: NDArray) -> NDArray[np.float64]:
        """P(h_j = +1 | v) = (1 + tanh(β Σ_i W_ij v_i)) / 2"""
        return activation(self.beta * (self.W.T @ v))

    def visible_prob(self, h: NDArray) -> NDArray[np.float64]:
        """P(v_i = +1 | h) = (1 + tanh(β Σ_j W_ij h_j)) / 2"""
        return activation(self.beta * (self.W @ h))

    def sample_hidden(self, v: NDArray, rng: np.random.Generator) -> NDArray[np.float64]:
        return sample_one(self.hidden_prob(v), rng)

    def sample_visible(self, h: NDArray, rng: np.random.Generator) -> NDArray[np.float64]:
        return sample_one(self.visible_prob(h), rng)

    def gibbs_chain(self,
                    v0: NDArray,
                    h0: NDArray,
                    k: int,
                    rng: np.random.Generator) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """
        k steps of block Gibbs sampling from the clamped pair (v0, h0).

        Each step resamples h from the current v, then v from that new h.
        h0 is only returned as-is when k == 0.
        """
        self._check_batch(v0, h0)
        if k < 0:
            raise ValueError(f"Number of Gibbs steps must be >= 0, got {k}")

        vk, hk = v0, h0
        for _ in range(k):
            hk = self.sample_hidden(vk, rng)
            vk = self.sample_visible(hk, rng)
        return vk, hk

    def archetype_gradient(self,
                           v0: NDArray,
                           h0: NDArray,
                           k: int,
                           rng: np.random.Generator) -> NDArray[np.float64]:
        """
        CD-k estimate of ∂log P/∂W for a batch of (example, archetype code) pairs.

            dW = β (V0 H0' - VK HK') / b

        The batch size b is the number of columns; callers guarantee b >= 1.
        """
        vk, hk = self.gibbs_chain(v0, h0, k, rng)
        batch_size = v0.shape[1]

        pos_associations = v0 @ h0.T
        neg_associations = vk @ hk.T
        return self.beta * (pos_associations - neg_associations) / batch_size

    def _check_batch(self, v: NDArray, h: NDArray):
        if v.ndim != 2 or v.shape[0] != self.n_visible:
            raise ValueError(f"Visible batch must be ({self.n_visible}, b), got {v.shape}")
        if h.ndim != 2 or h.shape[0] != self.n_hidden:
            raise ValueError(f"Hidden batch must be ({self.n_hidden}, b), got {h.shape}")
        if v.shape[1] != h.shape[1]:
            raise ValueError(f"Visible and hidden batches differ in size: {v.shape[1]} vs {h.shape[1]}")


@dataclass(frozen=True)
class Hyperparameters:
    """Training configuration, fixed for a run."""
    learning_rate: float = 0.01   # >= 0; zero leaves W unchanged
    weight_decay: float = 0.0     # L2 penalty subtracted from the gradient
    momentum: float = 0.5         # In [0, 1)
    batch_size: int = 10
    num_epochs: int = 100
    cdk: int = 1                  # Gibbs steps per gradient estimate

    def __post_init__(self):
        if self.learning_rate < 0:
            raise ValueError(f"learning_rate must be >= 0, got {self.learning_rate}")
        if self.weight_decay < 0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")
        if not 0 <= self.momentum < 1:
            raise ValueError(f"momentum must be in [0, 1), got {self.momentum}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.num_epochs < 1:
            raise ValueError(f"num_epochs must be positive, got {self.num_epochs}")
        if self.cdk < 1:
            raise ValueError(f"cdk must be >= 1, got {self.cdk}")


@dataclass
class TrainingHistory:
    """Per-epoch training diagnostics."""
    epochs: list[int] = field(default_factory=list)
    weight_norm: list[float] = field(default_factory=list)
    gradient_norm: list[float] = field(default_factory=list)   # Mean over the epoch's batches


@dataclass
class TrainingState:
    """
    Everything a training run owns.

    The velocity lives as long as the run: it is never reset between
    epochs or batches.
    """
    rbm: ArchetypeRBM
    velocity: NDArray[np.float64]
    epoch: int = 0
    step: int = 0
    history: TrainingHistory = field(default_factory=TrainingHistory)

    @classmethod
    def start(cls, rbm: ArchetypeRBM) -> 'TrainingState':
        """Fresh state with zero velocity."""
        return cls(rbm=rbm, velocity=np.zeros_like(rbm.W))


def epoch_batches(n_samples: int,
                  batch_size: int,
                  rng: np.random.Generator) -> list[NDArray[np.int64]]:
    """
    Reshuffle all column indices and cut them into consecutive batches.

    The final batch is shorter when batch_size does not divide n_samples.
    """
    perm = rng.permutation(n_samples)
    return [perm[start:start + batch_size] for start in range(0, n_samples, batch_size)]


def momentum_step(state: TrainingState,
                  v0: NDArray,
                  h0: NDArray,
                  hyper: Hyperparameters,
                  rng: np.random.Generator) -> NDArray[np.float64]:
    """
    One batch update with weight decay and momentum.

        dW <- CD-k gradient - λ W
        V  <- m V + (1 - m) dW
        W  <- W + η V

    Mutates state.rbm.W and state.velocity in place and returns dW.
    """
    rbm = state.rbm
    dW = rbm.archetype_gradient(v0, h0, hyper.cdk, rng)
    dW = dW - hyper.weight_decay * rbm.W

    state.velocity *= hyper.momentum
    state.velocity += (1.0 - hyper.momentum) * dW
    rbm.W += hyper.learning_rate * state.velocity

    state.step += 1
    return dW


def check_training_data(rbm: ArchetypeRBM, examples: NDArray, labels: NDArray):
    """Fail fast on data that does not fit the RBM."""
    if examples.ndim != 2 or examples.shape[0] != rbm.n_visible:
        raise ValueError(f"Examples must be ({rbm.n_visible}, n), got {examples.shape}")
    if labels.ndim != 2 or labels.shape[0] != rbm.n_hidden:
        raise ValueError(f"Labels must be ({rbm.n_hidden}, n), got {labels.shape}")
    if examples.shape[1] != labels.shape[1]:
        raise ValueError(f"{examples.shape[1]} examples but {labels.shape[1]} labels")
    if examples.shape[1] == 0:
        raise ValueError("Training set is empty")
    if not is_bipolar(examples) or not is_bipolar(labels):
        raise ValueError("Examples and labels must contain only +1/-1")


def train(rbm: ArchetypeRBM,
          examples: NDArray,
          labels: NDArray,
          hyper: Hyperparameters,
          rng: np.random.Generator,
          verbose: bool = False,
          print_every: int = 10) -> TrainingState:
    """
    Momentum mini-batch CD-k training with archetype-clamped hidden units.

    Every epoch reshuffles the paired columns of examples and labels, then
    applies momentum_step to each batch in order. Runs exactly num_epochs
    epochs: there is no convergence check and no divergence detection.

    Args:
        rbm: Model to train. Its W is updated in place.
        examples: Bipolar training set, shape (n_visible, n)
        labels: Bipolar archetype codes paired column-for-column, shape (n_hidden, n)
        hyper: Training configuration
        rng: Random source for shuffling and Gibbs sampling
        verbose: Print a progress line every print_every epochs

    Returns:
        The final TrainingState (rbm, velocity, counters, history)
    """
    check_training_data(rbm, examples, labels)

    state = TrainingState.start(rbm)
    n_samples = examples.shape[1]

    if verbose:
        n_batches = -(-n_samples // hyper.batch_size)
        print(f"Training: {hyper.num_epochs} epochs, {n_batches} batches/epoch, CD-{hyper.cdk}")
        print(f"lr = {hyper.learning_rate}, momentum = {hyper.momentum}, "
              f"weight_decay = {hyper.weight_decay}, β = {rbm.beta}")

    for epoch in range(hyper.num_epochs):
        grad_norms = []
        for idx in epoch_batches(n_samples, hyper.batch_size, rng):
            dW = momentum_step(state, examples[:, idx], labels[:, idx], hyper, rng)
            grad_norms.append(np.linalg.norm(dW))
        state.epoch += 1

        weight_norm = float(np.linalg.norm(rbm.W))
        state.history.epochs.append(epoch)
        state.history.weight_norm.append(weight_norm)
        state.history.gradient_norm.append(float(np.mean(grad_norms)))

        if verbose and epoch % print_every == 0:
            print(f"Epoch {epoch:4d}: ||W||={weight_norm:.4f}, ||dW||={np.mean(grad_norms):.4f}")

    return state
