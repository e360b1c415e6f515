"""quantile_residuals — Randomized quantile residuals for mixed models.

Computes probability-integral-transform residuals for fitted
latent-variable regression models with random effects, analytically
through the response family's CDF or empirically from replicate
batches simulated under one fixed realization of the random effects.
Random effects are realized at the empirical-Bayes mode, as a single
draw from the Laplace approximation, or from external MCMC draws.

Public API:
    .. autosummary::
        compute_residuals
        ResidualEngine
        FittedModel
        RandomEffectDraw
        ReplicateBatch
        ResidualResult
        McmcDraws
        empirical_bayes
        posterior_draw
        realize
        analytical_residuals
        simulate_replicates
        simulate_posterior_batches
        empirical_pit
        simulated_residuals
        to_normal
        to_uniform
        build_random_effects_design
        block_diagonal_covariance
        DiagnosticData
        as_diagnostic_data
        print_residual_summary
        get_option
        set_option
        reset_options
        ResponseFamily
        PoissonFamily
        NegativeBinomialFamily
        BinomialFamily
        GaussianFamily
        GammaFamily
        TweedieFamily
        available_families
        register_family
        resolve_family
        InvalidInputError
        UnsupportedFamilyError
        ConvergenceWarning
"""

from ._config import get_option, reset_options, set_option
from ._exceptions import ConvergenceWarning, InvalidInputError, UnsupportedFamilyError
from ._model import FittedModel
from ._results import RandomEffectDraw, ReplicateBatch, ResidualResult
from .core import compute_residuals
from .design import block_diagonal_covariance, build_random_effects_design
from .diagnostics import DiagnosticData, as_diagnostic_data
from .display import print_residual_summary
from .empirical import empirical_pit, simulated_residuals
from .engine import ResidualEngine
from .families import (
    BinomialFamily,
    GammaFamily,
    GaussianFamily,
    NegativeBinomialFamily,
    PoissonFamily,
    ResponseFamily,
    TweedieFamily,
    available_families,
    register_family,
    resolve_family,
)
from .random_effects import McmcDraws, empirical_bayes, posterior_draw, realize
from .residuals import analytical_residuals
from .simulation import simulate_posterior_batches, simulate_replicates
from .transforms import to_normal, to_uniform

__all__ = [
    "compute_residuals",
    "ResidualEngine",
    "FittedModel",
    "RandomEffectDraw",
    "ReplicateBatch",
    "ResidualResult",
    "McmcDraws",
    "empirical_bayes",
    "posterior_draw",
    "realize",
    "analytical_residuals",
    "simulate_replicates",
    "simulate_posterior_batches",
    "empirical_pit",
    "simulated_residuals",
    "to_normal",
    "to_uniform",
    "build_random_effects_design",
    "block_diagonal_covariance",
    "DiagnosticData",
    "as_diagnostic_data",
    "print_residual_summary",
    "get_option",
    "set_option",
    "reset_options",
    "ResponseFamily",
    "PoissonFamily",
    "NegativeBinomialFamily",
    "BinomialFamily",
    "GaussianFamily",
    "GammaFamily",
    "TweedieFamily",
    "available_families",
    "register_family",
    "resolve_family",
    "InvalidInputError",
    "UnsupportedFamilyError",
    "ConvergenceWarning",
]

__version__ = "0.1.0"
