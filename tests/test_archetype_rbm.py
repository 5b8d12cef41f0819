"""Tests for the archetype RBM: Gibbs chain, CD-k gradient and momentum training."""

import numpy as np
import pytest

from archetype_data import make_dataset
from archetype_rbm import (
    ArchetypeRBM,
    Hyperparameters,
    TrainingState,
    epoch_batches,
    momentum_step,
    train,
)
from bipolar import is_bipolar

RTOL = 1e-10
ATOL = 1e-12


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)


@pytest.fixture
def rbm(rng: np.random.Generator) -> ArchetypeRBM:
    return ArchetypeRBM.create(6, 3, rng, beta=1.0, init_scale=0.5)


@pytest.fixture
def batch(rng: np.random.Generator) -> tuple[np.ndarray, np.ndarray]:
    v0 = rng.choice([-1.0, 1.0], size=(6, 4))
    h0 = rng.choice([-1.0, 1.0], size=(3, 4))
    return v0, h0


@pytest.fixture
def saturated() -> ArchetypeRBM:
    """Weights so large that every conditional probability is exactly 0 or 1."""
    return ArchetypeRBM(W=np.array([[20.0], [20.0]]), beta=1.0)


class TestConstruction:

    def test_create_shapes(self, rbm: ArchetypeRBM) -> None:
        assert rbm.W.shape == (6, 3)
        assert rbm.n_visible == 6
        assert rbm.n_hidden == 3

    def test_create_is_reproducible(self) -> None:
        a = ArchetypeRBM.create(5, 2, np.random.default_rng(3))
        b = ArchetypeRBM.create(5, 2, np.random.default_rng(3))
        assert np.array_equal(a.W, b.W)

    def test_create_scale(self) -> None:
        rbm = ArchetypeRBM.create(200, 50, np.random.default_rng(1), init_scale=0.01)
        assert np.std(rbm.W) == pytest.approx(0.01, rel=0.1)

    @pytest.mark.parametrize("beta", [0.0, -1.0])
    def test_rejects_non_positive_beta(self, beta: float) -> None:
        with pytest.raises(ValueError):
            ArchetypeRBM(W=np.zeros((2, 2)), beta=beta)

    def test_rejects_non_matrix_weights(self) -> None:
        with pytest.raises(ValueError):
            ArchetypeRBM(W=np.zeros(4))

    def test_owns_its_weights(self) -> None:
        rng = np.random.default_rng(4)
        data = make_dataset(2, 2, 1.0, 1, rng)
        W = np.zeros((data.n_visible, 2))
        rbm = ArchetypeRBM(W=W)
        train(rbm, data.examples, data.labels, Hyperparameters(learning_rate=0.5, batch_size=2, num_epochs=50), rng)

        assert np.any(rbm.W != 0)
        assert np.array_equal(W, np.zeros((data.n_visible, 2)))


class TestGibbsChain:

    def test_zero_steps_returns_inputs(self, rbm, batch, rng) -> None:
        v0, h0 = batch
        vk, hk = rbm.gibbs_chain(v0, h0, 0, rng)
        assert vk is v0
        assert hk is h0

    def test_outputs_are_bipolar(self, rbm, batch, rng) -> None:
        v0, h0 = batch
        vk, hk = rbm.gibbs_chain(v0, h0, 3, rng)
        assert vk.shape == v0.shape
        assert hk.shape == h0.shape
        assert is_bipolar(vk) and is_bipolar(hk)

    def test_hidden_resampled_before_visible(self, saturated, rng) -> None:
        """h comes from the old v, then v from the new h; the clamped h0 is discarded."""
        v0 = np.array([[1.0], [1.0]])
        h0 = np.array([[-1.0]])
        vk, hk = saturated.gibbs_chain(v0, h0, 1, rng)
        assert hk.tolist() == [[1.0]]
        assert vk.tolist() == [[1.0], [1.0]]

    def test_rejects_negative_steps(self, rbm, batch, rng) -> None:
        with pytest.raises(ValueError):
            rbm.gibbs_chain(*batch, -1, rng)

    def test_rejects_shape_mismatch(self, rbm, rng) -> None:
        with pytest.raises(ValueError):
            rbm.gibbs_chain(np.ones((5, 2)), np.ones((3, 2)), 1, rng)
        with pytest.raises(ValueError):
            rbm.gibbs_chain(np.ones((6, 2)), np.ones((2, 2)), 1, rng)
        with pytest.raises(ValueError):
            rbm.gibbs_chain(np.ones((6, 2)), np.ones((3, 3)), 1, rng)


class TestArchetypeGradient:

    def test_zero_steps_gives_zero_gradient(self, rbm, batch, rng) -> None:
        dW = rbm.archetype_gradient(*batch, 0, rng)
        assert dW.shape == rbm.W.shape
        assert np.array_equal(dW, np.zeros_like(rbm.W))

    def test_matches_formula(self, saturated, rng) -> None:
        """dW = β (V0 H0' - VK HK') / b with a deterministic chain."""
        v0 = np.array([[1.0], [1.0]])
        h0 = np.array([[-1.0]])
        dW = saturated.archetype_gradient(v0, h0, 1, rng)
        # VK = [[1], [1]], HK = [[1]]
        assert np.array_equal(dW, np.array([[-2.0], [-2.0]]))

    def test_scales_with_batch_and_beta(self, rng) -> None:
        rbm = ArchetypeRBM(W=np.array([[20.0], [20.0]]), beta=2.0)
        v0 = np.ones((2, 4))
        h0 = -np.ones((1, 4))
        dW = rbm.archetype_gradient(v0, h0, 1, rng)
        # pos = -4, neg = +4 per entry, divided by b = 4, times β = 2
        assert np.allclose(dW, -4.0, rtol=RTOL, atol=ATOL)


class TestHyperparameters:

    def test_defaults_are_valid(self) -> None:
        Hyperparameters()

    def test_zero_learning_rate_allowed(self) -> None:
        assert Hyperparameters(learning_rate=0.0).learning_rate == 0.0

    @pytest.mark.parametrize("kwargs", [
        {"learning_rate": -0.1},
        {"weight_decay": -1e-3},
        {"momentum": 1.0},
        {"momentum": -0.1},
        {"batch_size": 0},
        {"num_epochs": 0},
        {"cdk": 0},
    ])
    def test_rejects_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            Hyperparameters(**kwargs)


class TestEpochBatches:

    def test_covers_every_index_once(self, rng) -> None:
        batches = epoch_batches(23, 5, rng)
        assert sorted(np.concatenate(batches).tolist()) == list(range(23))

    def test_last_batch_may_be_short(self, rng) -> None:
        sizes = [len(b) for b in epoch_batches(10, 4, rng)]
        assert sizes == [4, 4, 2]

    def test_reshuffles_every_epoch(self, rng) -> None:
        first = epoch_batches(20, 5, rng)
        second = epoch_batches(20, 5, rng)
        assert {tuple(b) for b in first} != {tuple(b) for b in second}
        for batches in (first, second):
            assert sorted(np.concatenate(batches).tolist()) == list(range(20))


class TestMomentumStep:

    def test_update_rule(self, rbm, batch) -> None:
        hyper = Hyperparameters(learning_rate=0.1, weight_decay=0.01, momentum=0.9, cdk=1)
        v0, h0 = batch
        W_before = rbm.W.copy()
        state = TrainingState.start(rbm)
        state.velocity[:] = 0.5

        reference = ArchetypeRBM(W=W_before.copy(), beta=rbm.beta)
        expected_grad = reference.archetype_gradient(v0, h0, 1, np.random.default_rng(5))
        expected_grad = expected_grad - 0.01 * W_before
        expected_velocity = 0.9 * 0.5 + 0.1 * expected_grad
        expected_W = W_before + 0.1 * expected_velocity

        dW = momentum_step(state, v0, h0, hyper, np.random.default_rng(5))

        assert np.allclose(dW, expected_grad, rtol=RTOL, atol=ATOL)
        assert np.allclose(state.velocity, expected_velocity, rtol=RTOL, atol=ATOL)
        assert np.allclose(rbm.W, expected_W, rtol=RTOL, atol=ATOL)
        assert state.step == 1


class TestTrain:

    @pytest.fixture
    def data(self):
        return make_dataset(8, 3, 0.6, 5, np.random.default_rng(11))

    def test_zero_learning_rate_leaves_weights(self, data) -> None:
        rng = np.random.default_rng(2)
        rbm = ArchetypeRBM.create(data.n_visible, 3, rng, init_scale=0.1)
        W_before = rbm.W.copy()
        hyper = Hyperparameters(learning_rate=0.0, weight_decay=0.1, momentum=0.5,
                                batch_size=4, num_epochs=5)
        state = train(rbm, data.examples, data.labels, hyper, rng)
        assert np.array_equal(rbm.W, W_before)
        assert np.any(state.velocity != 0)

    def test_velocity_persists_across_epochs(self, data) -> None:
        """Replaying the same batches step by step with one persistent state gives the same result."""
        hyper = Hyperparameters(learning_rate=0.2, weight_decay=0.01, momentum=0.7,
                                batch_size=4, num_epochs=3)
        n = data.examples.shape[1]

        rng = np.random.default_rng(9)
        rbm = ArchetypeRBM.create(data.n_visible, 3, rng)
        state = train(rbm, data.examples, data.labels, hyper, rng)

        rng = np.random.default_rng(9)
        replay = TrainingState.start(ArchetypeRBM.create(data.n_visible, 3, rng))
        for _ in range(hyper.num_epochs):
            for idx in epoch_batches(n, hyper.batch_size, rng):
                momentum_step(replay, data.examples[:, idx], data.labels[:, idx], hyper, rng)

        assert np.allclose(state.rbm.W, replay.rbm.W, rtol=RTOL, atol=ATOL)
        assert np.allclose(state.velocity, replay.velocity, rtol=RTOL, atol=ATOL)
        assert state.step == replay.step == hyper.num_epochs * 4

    def test_history_and_counters(self, data) -> None:
        rng = np.random.default_rng(4)
        rbm = ArchetypeRBM.create(data.n_visible, 3, rng)
        hyper = Hyperparameters(learning_rate=0.05, batch_size=6, num_epochs=7)
        state = train(rbm, data.examples, data.labels, hyper, rng)

        assert state.rbm is rbm
        assert state.epoch == 7
        assert state.step == 7 * 3
        assert state.history.epochs == list(range(7))
        assert len(state.history.weight_norm) == 7
        assert len(state.history.gradient_norm) == 7

    def test_verbose_prints_progress(self, data, capsys) -> None:
        rng = np.random.default_rng(4)
        rbm = ArchetypeRBM.create(data.n_visible, 3, rng)
        train(rbm, data.examples, data.labels, Hyperparameters(num_epochs=3), rng,
              verbose=True, print_every=1)
        out = capsys.readouterr().out
        assert "Epoch    0" in out
        assert "Epoch    2" in out

    def test_rejects_mismatched_columns(self, data) -> None:
        rng = np.random.default_rng(0)
        rbm = ArchetypeRBM.create(data.n_visible, 3, rng)
        with pytest.raises(ValueError):
            train(rbm, data.examples, data.labels[:, :-1], Hyperparameters(), rng)

    def test_rejects_wrong_visible_size(self, data) -> None:
        rng = np.random.default_rng(0)
        rbm = ArchetypeRBM.create(data.n_visible + 1, 3, rng)
        with pytest.raises(ValueError):
            train(rbm, data.examples, data.labels, Hyperparameters(), rng)

    def test_rejects_non_bipolar_data(self, data) -> None:
        rng = np.random.default_rng(0)
        rbm = ArchetypeRBM.create(data.n_visible, 3, rng)
        examples = data.examples.copy()
        examples[0, 0] = 0.0
        with pytest.raises(ValueError):
            train(rbm, examples, data.labels, Hyperparameters(), rng)
