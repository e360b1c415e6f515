"""Tests for the option configuration system."""

import os

import pytest

import quantile_residuals._config as _cfg
from quantile_residuals import get_option, reset_options, set_option

_ENV = (
    "QUANTILE_RESIDUALS_MODE",
    "QUANTILE_RESIDUALS_METHOD",
    "QUANTILE_RESIDUALS_SCALE",
    "QUANTILE_RESIDUALS_N_REPLICATES",
)


def _clear():
    _cfg._overrides.clear()
    for var in _ENV:
        os.environ.pop(var, None)


class TestGetOption:
    """Tests for get_option() resolution order."""

    def setup_method(self):
        """Reset state before each test."""
        _clear()

    def teardown_method(self):
        """Reset state after each test."""
        _clear()

    def test_builtin_defaults(self):
        assert get_option("mode") == "posterior_draw"
        assert get_option("method") == "analytical"
        assert get_option("scale") == "normal"
        assert get_option("n_replicates") == 250

    def test_env_var_overrides_default(self):
        os.environ["QUANTILE_RESIDUALS_MODE"] = "empirical_bayes"
        assert get_option("mode") == "empirical_bayes"

    def test_env_var_case_insensitive(self):
        os.environ["QUANTILE_RESIDUALS_METHOD"] = "Simulation"
        assert get_option("method") == "simulation"

    def test_env_var_integer(self):
        os.environ["QUANTILE_RESIDUALS_N_REPLICATES"] = "1000"
        assert get_option("n_replicates") == 1000

    def test_invalid_env_var_raises(self):
        os.environ["QUANTILE_RESIDUALS_SCALE"] = "logit"
        with pytest.raises(ValueError, match="Unknown scale"):
            get_option("scale")

    def test_programmatic_override_wins_over_env(self):
        os.environ["QUANTILE_RESIDUALS_MODE"] = "empirical_bayes"
        set_option("mode", "mcmc")
        assert get_option("mode") == "mcmc"

    def test_auto_restores_default(self):
        set_option("n_replicates", 500)
        assert get_option("n_replicates") == 500
        set_option("n_replicates", "auto")
        assert get_option("n_replicates") == 250

    def test_none_restores_default(self):
        set_option("scale", "uniform")
        set_option("scale", None)
        assert get_option("scale") == "normal"

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="Unknown option"):
            get_option("seed")


class TestSetOption:
    """Tests for set_option() validation."""

    def setup_method(self):
        _clear()

    def teardown_method(self):
        _clear()

    def test_case_insensitive(self):
        set_option("mode", "EMPIRICAL_BAYES")
        assert get_option("mode") == "empirical_bayes"

    def test_rejects_invalid_mode(self):
        with pytest.raises(ValueError, match="Unknown mode"):
            set_option("mode", "laplace")

    @pytest.mark.parametrize("value", [0, -5, "many"])
    def test_rejects_invalid_n_replicates(self, value):
        with pytest.raises(ValueError, match="n_replicates"):
            set_option("n_replicates", value)

    def test_reset_options(self):
        set_option("method", "simulation")
        set_option("scale", "uniform")
        reset_options()
        assert get_option("method") == "analytical"
        assert get_option("scale") == "normal"
