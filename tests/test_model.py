"""Tests for the FittedModel snapshot and its statsmodels adapters."""

import warnings
from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm

from quantile_residuals import (
    FittedModel,
    GaussianFamily,
    InvalidInputError,
    NegativeBinomialFamily,
    PoissonFamily,
    UnsupportedFamilyError,
)

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


@pytest.fixture()
def poisson_data(rng):
    n = 200
    x = rng.standard_normal(n)
    X = np.column_stack([np.ones(n), x])
    y = rng.poisson(np.exp(0.5 + 0.3 * x)).astype(float)
    return X, y


def _model(n=6, q=3, **overrides):
    kwargs = dict(
        family=GaussianFamily(sigma=1.0),
        X=np.ones((n, 1)),
        beta=np.array([0.5]),
        y=np.linspace(-1.0, 1.0, n),
        Z=np.kron(np.eye(q), np.ones((n // q, 1))),
        re_mode=np.array([0.1, -0.2, 0.3])[:q],
        re_cov=0.5 * np.eye(q),
    )
    kwargs.update(overrides)
    return FittedModel(**kwargs)


# ------------------------------------------------------------------ #
# Construction and validation
# ------------------------------------------------------------------ #


class TestConstruction:
    def test_dimensions(self):
        model = _model()
        assert (model.n_obs, model.n_fixed, model.n_random) == (6, 1, 3)

    def test_family_string_is_resolved(self):
        model = _model(family="poisson", y=np.arange(6.0))
        assert model.family == PoissonFamily()

    def test_family_string_without_dispersion_raises(self):
        with pytest.raises(InvalidInputError, match="sigma"):
            _model(family="gaussian")

    def test_defaults_to_no_random_effects(self):
        model = FittedModel(
            family=PoissonFamily(),
            X=np.ones((4, 1)),
            beta=np.array([0.0]),
            y=np.array([0.0, 1.0, 2.0, 1.0]),
        )
        assert model.n_random == 0
        assert model.re_mode.shape == (0,)
        assert model.re_cov.shape == (0, 0)

    def test_arrays_are_read_only(self):
        model = _model()
        with pytest.raises(ValueError):
            model.beta[0] = 1.0

    def test_inputs_are_copied(self):
        beta = np.array([0.5])
        model = _model(beta=beta)
        beta[0] = 99.0
        assert model.beta[0] == 0.5

    def test_beta_length_mismatch(self):
        with pytest.raises(InvalidInputError, match="beta has 2 entries"):
            _model(beta=np.array([0.5, 1.0]))

    def test_y_length_mismatch(self):
        with pytest.raises(InvalidInputError, match="y has 5 observations"):
            _model(y=np.zeros(5))

    def test_z_row_mismatch(self):
        with pytest.raises(InvalidInputError, match="Z has 3 rows"):
            _model(Z=np.ones((3, 3)))

    def test_re_mode_length_mismatch(self):
        with pytest.raises(InvalidInputError, match="re_mode has 2 entries"):
            _model(re_mode=np.zeros(2))

    def test_re_cov_shape_mismatch(self):
        with pytest.raises(InvalidInputError, match="re_cov must be"):
            _model(re_cov=np.eye(2))

    def test_asymmetric_re_cov(self):
        cov = np.eye(3)
        cov[0, 1] = 0.4
        with pytest.raises(InvalidInputError, match="symmetric"):
            _model(re_cov=cov)

    @pytest.mark.parametrize("field", ["beta", "re_mode"])
    def test_non_finite_effects_raise(self, field):
        bad = {"beta": np.array([np.nan]), "re_mode": np.array([0.0, np.inf, 0.0])}
        with pytest.raises(InvalidInputError, match="non-finite"):
            _model(**{field: bad[field]})

    def test_y_outside_support(self):
        with pytest.raises(InvalidInputError, match="integer-valued"):
            _model(family=PoissonFamily(), y=np.full(6, 0.5))

    def test_offset_length_mismatch(self):
        with pytest.raises(InvalidInputError, match="offset"):
            _model(offset=np.zeros(4))

    def test_covariates_row_mismatch(self):
        with pytest.raises(InvalidInputError, match="covariates"):
            _model(covariates=pd.DataFrame({"a": np.zeros(3)}))


# ------------------------------------------------------------------ #
# Linear predictor
# ------------------------------------------------------------------ #


class TestLinearPredictor:
    def test_eta(self):
        model = _model(offset=np.full(6, 1.0))
        u = np.array([1.0, 2.0, 3.0])
        expected = 0.5 + np.repeat(u, 2) + 1.0
        np.testing.assert_allclose(model.linear_predictor(u), expected)

    def test_wrong_dimension_raises(self):
        with pytest.raises(InvalidInputError, match="expected \\(3,\\)"):
            _model().linear_predictor(np.zeros(2))

    def test_fitted_mean_applies_inverse_link(self):
        model = _model(family=PoissonFamily(), y=np.arange(6.0), re_cov=None)
        u = np.zeros(3)
        np.testing.assert_allclose(model.fitted_mean(u), np.exp(np.full(6, 0.5)))


# ------------------------------------------------------------------ #
# Covariance factor
# ------------------------------------------------------------------ #


class TestCovarianceFactor:
    def test_cholesky(self):
        cov = np.array([[2.0, 0.5, 0.0], [0.5, 1.0, 0.2], [0.0, 0.2, 1.5]])
        L = _model(re_cov=cov).covariance_factor()
        np.testing.assert_allclose(L @ L.T, cov)
        np.testing.assert_allclose(L, np.tril(L))

    def test_semi_definite_falls_back_to_eigen_root(self):
        v = np.array([1.0, 1.0, 0.0])
        cov = np.outer(v, v)  # rank one
        L = _model(re_cov=cov).covariance_factor()
        np.testing.assert_allclose(L @ L.T, cov, atol=1e-12)

    def test_indefinite_raises(self):
        cov = np.diag([1.0, -1.0, 1.0])
        with pytest.raises(InvalidInputError, match="positive semi-definite"):
            _model(re_cov=cov).covariance_factor()

    def test_factor_supplied_directly(self):
        L = np.array([[1.0, 0.0, 0.0], [0.5, 1.0, 0.0], [0.0, 0.0, 2.0]])
        model = _model(re_cov=None, re_cov_factor=L)
        np.testing.assert_allclose(model.re_cov, L @ L.T)
        np.testing.assert_array_equal(model.covariance_factor(), L)

    def test_consistent_covariance_and_factor(self):
        L = np.array([[1.0, 0.0, 0.0], [0.5, 1.0, 0.0], [0.0, 0.0, 2.0]])
        model = _model(re_cov=L @ L.T, re_cov_factor=L)
        np.testing.assert_array_equal(model.covariance_factor(), L)

    def test_mismatched_covariance_and_factor_raise(self):
        with pytest.raises(InvalidInputError, match="does not match re_cov"):
            _model(re_cov=np.eye(3), re_cov_factor=10.0 * np.eye(3))

    def test_missing_covariance_raises(self):
        with pytest.raises(InvalidInputError, match="no random-effect covariance"):
            _model(re_cov=None).covariance_factor()


# ------------------------------------------------------------------ #
# statsmodels adapters
# ------------------------------------------------------------------ #


class TestFromStatsmodels:
    def test_poisson_glm(self, poisson_data):
        X, y = poisson_data
        res = sm.GLM(y, X, family=sm.families.Poisson()).fit()
        model = FittedModel.from_statsmodels(res)
        assert model.family == PoissonFamily()
        assert model.n_random == 0
        np.testing.assert_allclose(model.beta, res.params)
        np.testing.assert_allclose(model.fitted_mean(np.zeros(0)), res.mu)
        assert list(model.covariates.columns) == ["const", "x1"]

    def test_poisson_glm_with_offset(self, poisson_data, rng):
        X, y = poisson_data
        offset = np.log(rng.uniform(1.0, 3.0, size=len(y)))
        res = sm.GLM(y, X, family=sm.families.Poisson(), offset=offset).fit()
        model = FittedModel.from_statsmodels(res)
        np.testing.assert_allclose(model.offset, offset)
        np.testing.assert_allclose(model.fitted_mean(np.zeros(0)), res.mu)

    def test_negative_binomial_glm(self, poisson_data):
        X, y = poisson_data
        res = sm.GLM(y, X, family=sm.families.NegativeBinomial(alpha=0.7)).fit()
        model = FittedModel.from_statsmodels(res)
        assert model.family == NegativeBinomialFamily(alpha=0.7)

    def test_gaussian_glm_carries_sigma(self, rng):
        n = 100
        X = np.column_stack([np.ones(n), rng.standard_normal(n)])
        y = X @ np.array([1.0, 2.0]) + 0.5 * rng.standard_normal(n)
        res = sm.GLM(y, X, family=sm.families.Gaussian()).fit()
        model = FittedModel.from_statsmodels(res)
        assert model.family.sigma == pytest.approx(np.sqrt(res.scale))

    def test_unsupported_family_raises(self):
        fake = SimpleNamespace(
            model=SimpleNamespace(family=sm.families.InverseGaussian()),
            scale=1.0,
        )
        with pytest.raises(UnsupportedFamilyError, match="InverseGaussian"):
            FittedModel.from_statsmodels(fake)


class TestFromMixedLM:
    @pytest.fixture()
    def mixed_result(self, rng):
        n_groups, per_group = 30, 8
        groups = np.repeat(np.arange(n_groups), per_group)
        x = rng.standard_normal(groups.size)
        b = rng.normal(0.0, 1.0, n_groups)
        y = 1.0 + 0.5 * x + b[groups] + rng.standard_normal(groups.size)
        X = np.column_stack([np.ones(groups.size), x])
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            return sm.MixedLM(y, X, groups=groups).fit()

    def test_dimensions(self, mixed_result):
        model = FittedModel.from_mixedlm(mixed_result)
        assert model.n_random == 30
        assert model.re_cov.shape == (30, 30)
        assert isinstance(model.family, GaussianFamily)
        assert model.family.sigma == pytest.approx(np.sqrt(mixed_result.scale))

    def test_fitted_values_match(self, mixed_result):
        model = FittedModel.from_mixedlm(mixed_result)
        np.testing.assert_allclose(
            model.fitted_mean(model.re_mode),
            mixed_result.fittedvalues,
            rtol=1e-6,
            atol=1e-8,
        )

    def test_covariance_is_block_diagonal(self, mixed_result):
        model = FittedModel.from_mixedlm(mixed_result)
        off_diag = model.re_cov - np.diag(np.diag(model.re_cov))
        assert np.allclose(off_diag, 0.0)
        assert np.all(np.diag(model.re_cov) > 0)

    def test_group_column_in_covariates(self, mixed_result):
        model = FittedModel.from_mixedlm(mixed_result)
        assert "group" in model.covariates.columns
