"""Tests for simulation-based (empirical PIT) residuals."""

import numpy as np
import pytest
from scipy import stats

from quantile_residuals import (
    ConvergenceWarning,
    InvalidInputError,
    RandomEffectDraw,
    ReplicateBatch,
    empirical_pit,
    simulated_residuals,
)

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


@pytest.fixture()
def draw():
    return RandomEffectDraw(values=np.zeros(0), provenance="posterior_draw")


# ------------------------------------------------------------------ #
# empirical_pit
# ------------------------------------------------------------------ #


class TestEmpiricalPit:
    def test_ties_without_randomization(self, rng):
        sims = np.array([[0.0], [1.0], [1.0], [2.0]])
        # below = 1, ties = 2, N = 4 → (1 + 2 + 1) / 5
        u = empirical_pit(sims, np.array([1.0]), rng, randomize=False)
        np.testing.assert_allclose(u, [0.8])

    def test_ties_randomized_interval(self, rng):
        sims = np.array([[0.0], [1.0], [1.0], [2.0]])
        u = np.array(
            [empirical_pit(sims, np.array([1.0]), rng)[0] for _ in range(2000)]
        )
        assert u.min() >= 0.2
        assert u.max() <= 0.8
        # Uniform on [0.2, 0.8].
        assert abs(u.mean() - 0.5) < 0.02

    def test_continuous_rank(self, rng):
        sims = np.array([[0.1, 5.0], [0.2, 6.0], [0.3, 7.0]])
        y = np.array([0.25, 10.0])
        u = empirical_pit(sims, y, rng, randomize=False)
        # rank 2 of 3 → 3/4; above every simulation → 4/4.
        np.testing.assert_allclose(u, [0.75, 1.0])

    def test_below_all_simulations(self, rng):
        sims = np.ones((9, 1))
        u = empirical_pit(sims, np.array([0.0]), rng)
        assert 0.0 <= u[0] <= 0.1

    def test_tail_bounded_by_n(self, rng):
        sims = np.zeros((99, 1))
        u = empirical_pit(sims, np.array([5.0]), rng)
        assert u[0] >= 0.99

    def test_uniform_under_exchangeability(self, rng):
        n, N = 2000, 99
        sims = rng.standard_normal((N, n))
        y = rng.standard_normal(n)
        u = empirical_pit(sims, y, rng)
        assert stats.kstest(u, "uniform").pvalue > 0.001

    def test_discrete_uniform_under_exchangeability(self, rng):
        n, N = 2000, 250
        sims = rng.poisson(1.5, size=(N, n)).astype(float)
        y = rng.poisson(1.5, size=n).astype(float)
        u = empirical_pit(sims, y, rng)
        assert stats.kstest(u, "uniform").pvalue > 0.001

    def test_shape_mismatch_raises(self, rng):
        with pytest.raises(InvalidInputError, match="columns"):
            empirical_pit(np.zeros((5, 3)), np.zeros(4), rng)

    def test_one_dimensional_sims_raise(self, rng):
        with pytest.raises(InvalidInputError, match="2-D"):
            empirical_pit(np.zeros(5), np.zeros(5), rng)

    def test_empty_sims_raise(self, rng):
        with pytest.raises(InvalidInputError, match="at least one"):
            empirical_pit(np.zeros((0, 3)), np.zeros(3), rng)

    def test_non_finite_raises(self, rng):
        with pytest.raises(InvalidInputError, match="finite"):
            empirical_pit(np.array([[np.nan, 0.0]]), np.zeros(2), rng)


# ------------------------------------------------------------------ #
# simulated_residuals
# ------------------------------------------------------------------ #


class TestSimulatedResiduals:
    def test_result_carries_batch_and_draw(self, rng, draw):
        batch = ReplicateBatch(values=rng.standard_normal((20, 5)), draw=draw)
        result = simulated_residuals(batch, np.zeros(5), rng)
        assert result.method == "simulation"
        assert result.batch is batch
        assert result.draw is draw
        assert result.n_obs == 5

    def test_residuals_strictly_inside_unit_interval(self, rng, draw):
        batch = ReplicateBatch(values=rng.standard_normal((50, 100)), draw=draw)
        result = simulated_residuals(batch, rng.standard_normal(100), rng)
        assert np.all(result.uniform > 0.0)
        assert np.all(result.uniform < 1.0)
        assert not result.nonfinite.any()

    def test_unrandomized_maximum_is_infinite_on_normal_scale(self, rng, draw):
        sims = np.array([[0.0, 1.0], [1.0, 2.0], [2.0, 3.0]])
        batch = ReplicateBatch(values=sims, draw=draw)
        with pytest.warns(ConvergenceWarning, match="1 of 2"):
            result = simulated_residuals(
                batch, np.array([1.0, 5.0]), rng, randomize=False
            )
        assert result.uniform[1] == 1.0
        assert result.normal[1] == np.inf
        np.testing.assert_array_equal(result.nonfinite, [False, True])
