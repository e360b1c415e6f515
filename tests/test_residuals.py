"""Tests for analytical (CDF-based) quantile residuals."""

import warnings

import numpy as np
import pytest
from scipy import stats

from quantile_residuals import (
    ConvergenceWarning,
    FittedModel,
    GaussianFamily,
    InvalidInputError,
    PoissonFamily,
    RandomEffectDraw,
    analytical_residuals,
)
from quantile_residuals.residuals import randomized_pit

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


def _no_re_draw():
    return RandomEffectDraw(values=np.zeros(0), provenance="empirical_bayes")


# ------------------------------------------------------------------ #
# randomized_pit
# ------------------------------------------------------------------ #


class TestRandomizedPit:
    def test_continuous_equals_cdf(self, rng):
        fam = GaussianFamily(sigma=2.0)
        y = np.array([-1.0, 0.5, 3.0])
        eta = np.array([0.0, 0.0, 1.0])
        u = randomized_pit(fam, y, eta, rng)
        np.testing.assert_allclose(u, stats.norm.cdf(y, loc=eta, scale=2.0))

    def test_discrete_lies_in_cdf_interval(self, rng):
        fam = PoissonFamily()
        y = rng.poisson(2.0, size=500).astype(float)
        eta = np.full(500, np.log(2.0))
        u = randomized_pit(fam, y, eta, rng)
        lower, upper = fam.cdf_below(y, eta), fam.cdf(y, eta)
        assert np.all(u >= lower - 1e-12)
        assert np.all(u <= upper + 1e-12)

    def test_discrete_distinct_values_within_tie(self, rng):
        fam = PoissonFamily()
        y = np.full(50, 2.0)
        eta = np.full(50, np.log(2.0))
        u = randomized_pit(fam, y, eta, rng)
        assert np.unique(u).size == 50

    def test_randomize_false_returns_point_cdf(self, rng):
        fam = PoissonFamily()
        y = np.array([0.0, 1.0, 4.0])
        eta = np.full(3, np.log(2.0))
        u = randomized_pit(fam, y, eta, rng, randomize=False)
        np.testing.assert_allclose(u, stats.poisson.cdf(y, 2.0))

    def test_same_stream_same_result(self):
        fam = PoissonFamily()
        y = np.array([0.0, 1.0, 2.0, 3.0])
        eta = np.zeros(4)
        a = randomized_pit(fam, y, eta, np.random.default_rng(3))
        b = randomized_pit(fam, y, eta, np.random.default_rng(3))
        np.testing.assert_array_equal(a, b)

    def test_non_finite_eta_raises(self, rng):
        with pytest.raises(InvalidInputError, match="non-finite"):
            randomized_pit(
                PoissonFamily(), np.array([1.0]), np.array([np.nan]), rng
            )


# ------------------------------------------------------------------ #
# analytical_residuals
# ------------------------------------------------------------------ #


class TestAnalyticalResiduals:
    def test_result_fields(self, rng):
        model = FittedModel(
            family=PoissonFamily(),
            X=np.ones((4, 1)),
            beta=np.array([0.0]),
            y=np.array([0.0, 1.0, 2.0, 1.0]),
        )
        draw = _no_re_draw()
        result = analytical_residuals(model, draw, rng)
        assert result.method == "analytical"
        assert result.draw is draw
        assert result.randomized
        assert result.batch is None
        np.testing.assert_array_equal(result.observed, model.y)

    def test_continuous_is_not_marked_randomized(self, rng):
        model = FittedModel(
            family=GaussianFamily(sigma=1.0),
            X=np.ones((3, 1)),
            beta=np.array([0.0]),
            y=np.array([-0.5, 0.0, 0.5]),
        )
        result = analytical_residuals(model, _no_re_draw(), rng)
        assert not result.randomized
        np.testing.assert_allclose(result.normal, model.y)

    def test_conditions_on_the_draw(self, rng):
        model = FittedModel(
            family=GaussianFamily(sigma=1.0),
            X=np.ones((4, 1)),
            beta=np.array([0.0]),
            y=np.array([1.0, 1.0, 1.0, 1.0]),
            Z=np.kron(np.eye(2), np.ones((2, 1))),
            re_mode=np.zeros(2),
        )
        draw = RandomEffectDraw(values=np.array([1.0, -1.0]), provenance="empirical_bayes")
        result = analytical_residuals(model, draw, rng)
        np.testing.assert_allclose(result.normal, [0.0, 0.0, 2.0, 2.0])

    def test_saturation_warns_and_flags(self, rng):
        model = FittedModel(
            family=GaussianFamily(sigma=1.0),
            X=np.ones((3, 1)),
            beta=np.array([0.0]),
            y=np.array([0.0, 60.0, -60.0]),
        )
        with pytest.warns(ConvergenceWarning, match="2 of 3"):
            result = analytical_residuals(model, _no_re_draw(), rng)
        np.testing.assert_array_equal(result.nonfinite, [False, True, True])
        assert result.finite().shape == (1,)

    def test_no_warning_when_finite(self, rng):
        model = FittedModel(
            family=GaussianFamily(sigma=1.0),
            X=np.ones((3, 1)),
            beta=np.array([0.0]),
            y=np.array([0.0, 1.0, -1.0]),
        )
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            analytical_residuals(model, _no_re_draw(), rng)
