"""The fitted-model snapshot consumed by the residual engine.

:class:`FittedModel` is the boundary with whatever fitted the model.
Fitting itself is out of scope; the engine only needs

* the fixed-effect estimates β̂ and their design X,
* the random-effect mode û, its design Z and an approximate
  (Laplace-type) covariance of û,
* a configured :class:`~quantile_residuals.families.ResponseFamily`,
* the observed response y (and an optional offset).

Given a realization u of the random effects, every observation maps to
exactly one linear predictor ``η = Xβ̂ + Zu + offset``.

Two adapters build a snapshot from statsmodels results:
:meth:`FittedModel.from_statsmodels` for fixed-effect GLMs (q = 0) and
:meth:`FittedModel.from_mixedlm` for Gaussian linear mixed models.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import linalg

from ._compat import DataFrameLike, _ensure_pandas_df
from ._exceptions import InvalidInputError, UnsupportedFamilyError
from .design import build_random_effects_design
from .families import (
    BinomialFamily,
    GammaFamily,
    GaussianFamily,
    NegativeBinomialFamily,
    PoissonFamily,
    ResponseFamily,
    TweedieFamily,
    resolve_family,
)

logger = logging.getLogger(__name__)


def _locked(values: Any, *, ndim: int, name: str) -> np.ndarray:
    arr = np.array(values, dtype=float, copy=True)
    if arr.ndim != ndim:
        msg = f"'{name}' must be {ndim}-D, got shape {arr.shape}."
        raise InvalidInputError(msg)
    arr.setflags(write=False)
    return arr


def _require_finite(arr: np.ndarray, name: str) -> None:
    if not np.all(np.isfinite(arr)):
        n_bad = int(np.sum(~np.isfinite(arr)))
        msg = (
            f"'{name}' contains {n_bad} non-finite value(s); the model "
            "may not have converged."
        )
        raise InvalidInputError(msg)


@dataclass(frozen=True)
class FittedModel:
    """Immutable snapshot of a fitted latent-variable regression model.

    Attributes:
        family: Configured response family (dispersion baked in).
        X: Fixed-effect design, shape ``(n, p)``.
        beta: Fixed-effect estimates, shape ``(p,)``.
        y: Observed response, shape ``(n,)``.
        Z: Random-effect design, shape ``(n, q)``.  Defaults to an
            ``(n, 0)`` matrix (no random effects).
        re_mode: Random-effect mode, shape ``(q,)``.
        re_cov: Approximate covariance of the mode, ``(q, q)``.
        re_cov_factor: Lower-triangular ``L`` with ``L L' = re_cov``.
            Supply either this or ``re_cov``; the other is derived.
        offset: Optional offset on the linear-predictor scale.
        covariates: Optional covariate table handed through to the
            diagnostic adapter.

    Raises:
        InvalidInputError: On any dimension mismatch, non-finite
            effect estimate, or response outside the family support.
    """

    family: ResponseFamily | str
    X: np.ndarray
    beta: np.ndarray
    y: np.ndarray
    Z: np.ndarray | None = None
    re_mode: np.ndarray | None = None
    re_cov: np.ndarray | None = None
    re_cov_factor: np.ndarray | None = None
    offset: np.ndarray | None = None
    covariates: DataFrameLike | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        family = resolve_family(self.family)
        family.validate()
        object.__setattr__(self, "family", family)

        X = _locked(self.X, ndim=2, name="X")
        beta = _locked(self.beta, ndim=1, name="beta")
        y = _locked(self.y, ndim=1, name="y")
        n, p = X.shape

        if beta.shape[0] != p:
            msg = f"beta has {beta.shape[0]} entries but X has {p} columns."
            raise InvalidInputError(msg)
        if y.shape[0] != n:
            msg = f"y has {y.shape[0]} observations but X has {n} rows."
            raise InvalidInputError(msg)
        _require_finite(X, "X")
        _require_finite(beta, "beta")
        family.validate_y(y)

        Z = _locked(np.zeros((n, 0)) if self.Z is None else self.Z, ndim=2, name="Z")
        if Z.shape[0] != n:
            msg = f"Z has {Z.shape[0]} rows but X has {n} rows."
            raise InvalidInputError(msg)
        q = Z.shape[1]
        _require_finite(Z, "Z")

        re_mode = _locked(
            np.zeros(q) if self.re_mode is None else self.re_mode,
            ndim=1,
            name="re_mode",
        )
        if re_mode.shape[0] != q:
            msg = (
                f"re_mode has {re_mode.shape[0]} entries but Z has {q} "
                "columns."
            )
            raise InvalidInputError(msg)
        _require_finite(re_mode, "re_mode")

        re_cov, re_cov_factor = self._resolve_covariance(q)

        offset = None
        if self.offset is not None:
            offset = _locked(self.offset, ndim=1, name="offset")
            if offset.shape[0] != n:
                msg = f"offset has {offset.shape[0]} entries, expected {n}."
                raise InvalidInputError(msg)
            _require_finite(offset, "offset")

        covariates = None
        if self.covariates is not None:
            covariates = _ensure_pandas_df(self.covariates, name="covariates")
            if len(covariates) != n:
                msg = f"covariates has {len(covariates)} rows, expected {n}."
                raise InvalidInputError(msg)

        for name, value in (
            ("X", X),
            ("beta", beta),
            ("y", y),
            ("Z", Z),
            ("re_mode", re_mode),
            ("re_cov", re_cov),
            ("re_cov_factor", re_cov_factor),
            ("offset", offset),
            ("covariates", covariates),
        ):
            object.__setattr__(self, name, value)

    def _resolve_covariance(
        self, q: int
    ) -> tuple[np.ndarray | None, np.ndarray | None]:
        """Validate ``re_cov`` / ``re_cov_factor`` and derive the missing one."""
        re_cov = self.re_cov
        factor = self.re_cov_factor
        if q == 0:
            # No random effects: the covariance is trivially (0, 0).
            empty = _locked(np.zeros((0, 0)), ndim=2, name="re_cov")
            return empty, empty

        if factor is not None:
            factor = _locked(factor, ndim=2, name="re_cov_factor")
            if factor.shape != (q, q):
                msg = f"re_cov_factor must be ({q}, {q}), got {factor.shape}."
                raise InvalidInputError(msg)
            _require_finite(factor, "re_cov_factor")

        if re_cov is not None:
            re_cov = _locked(re_cov, ndim=2, name="re_cov")
            if re_cov.shape != (q, q):
                msg = f"re_cov must be ({q}, {q}), got {re_cov.shape}."
                raise InvalidInputError(msg)
            _require_finite(re_cov, "re_cov")
            if not np.allclose(re_cov, re_cov.T, atol=1e-10, rtol=1e-8):
                msg = "re_cov must be symmetric."
                raise InvalidInputError(msg)
            if factor is not None and not np.allclose(
                factor @ factor.T, re_cov, atol=1e-10, rtol=1e-8
            ):
                msg = "re_cov_factor @ re_cov_factor.T does not match re_cov."
                raise InvalidInputError(msg)
        elif factor is not None:
            re_cov = _locked(factor @ factor.T, ndim=2, name="re_cov")
        return re_cov, factor

    # ---- Dimensions ------------------------------------------------

    @property
    def n_obs(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_fixed(self) -> int:
        return int(self.X.shape[1])

    @property
    def n_random(self) -> int:
        assert self.Z is not None
        return int(self.Z.shape[1])

    # ---- Linear predictor ------------------------------------------

    def linear_predictor(self, re_values: np.ndarray) -> np.ndarray:
        """``η = Xβ + Zu + offset`` for a random-effect vector *re_values*.

        Raises:
            InvalidInputError: If *re_values* does not have ``q``
                entries.
        """
        u = np.asarray(re_values, dtype=float)
        if u.shape != (self.n_random,):
            msg = (
                f"Random-effect vector has shape {u.shape}, expected "
                f"({self.n_random},)."
            )
            raise InvalidInputError(msg)
        assert self.Z is not None
        eta = self.X @ self.beta + self.Z @ u
        if self.offset is not None:
            eta = eta + self.offset
        return np.asarray(eta)

    def fitted_mean(self, re_values: np.ndarray) -> np.ndarray:
        """Conditional mean ``g⁻¹(η)`` given *re_values*."""
        family: ResponseFamily = self.family  # type: ignore[assignment]
        return family.inverse_link(self.linear_predictor(re_values))

    # ---- Covariance factor -----------------------------------------

    @cached_property
    def _factor(self) -> np.ndarray:
        if self.re_cov_factor is not None:
            return self.re_cov_factor
        if self.re_cov is None:
            msg = (
                "This model has no random-effect covariance; only "
                "empirical-Bayes residuals are available."
            )
            raise InvalidInputError(msg)
        if self.n_random == 0:
            return np.zeros((0, 0))
        try:
            L = np.linalg.cholesky(self.re_cov)
        except np.linalg.LinAlgError:
            # Positive semi-definite (e.g. a variance component on the
            # boundary): use the symmetric eigen square root instead.
            logger.debug("Cholesky failed for re_cov; using eigen square root.")
            w, V = linalg.eigh(self.re_cov)
            if np.min(w) < -1e-8 * max(1.0, float(np.max(np.abs(w)))):
                msg = "re_cov is not positive semi-definite."
                raise InvalidInputError(msg) from None
            L = V * np.sqrt(np.clip(w, 0.0, None))
        L.setflags(write=False)
        return L

    def covariance_factor(self) -> np.ndarray:
        """Return ``L`` with ``L L' = re_cov``.

        Cholesky when ``re_cov`` is positive definite, otherwise the
        symmetric eigen square root.  Computed once per model.

        Raises:
            InvalidInputError: If the model carries no covariance or
                the covariance is not positive semi-definite.
        """
        return self._factor

    # ---- statsmodels adapters --------------------------------------

    @classmethod
    def from_statsmodels(cls, result: Any) -> FittedModel:
        """Snapshot a fitted statsmodels ``GLM`` result (no random effects).

        Supported statsmodels families and the parameters carried over:

        ==========================  ======================================
        statsmodels family          Package family
        ==========================  ======================================
        ``Poisson`` (log)           ``PoissonFamily()``
        ``NegativeBinomial`` (log)  ``NegativeBinomialFamily(alpha)``
        ``Gaussian`` (identity)     ``GaussianFamily(sigma=√scale)``
        ``Gamma`` (log)             ``GammaFamily(shape=1/scale)``
        ``Binomial`` (logit)        ``BinomialFamily(trials=1)``
        ``Tweedie`` (log)           ``TweedieFamily(var_power, scale)``
        ==========================  ======================================

        Raises:
            UnsupportedFamilyError: For any other family/link pair.
        """
        model = result.model
        sm_family = model.family
        links = sm.families.links
        link = sm_family.link
        scale = float(result.scale)

        family: ResponseFamily
        if isinstance(sm_family, sm.families.Poisson) and isinstance(link, links.Log):
            family = PoissonFamily()
        elif isinstance(sm_family, sm.families.NegativeBinomial) and isinstance(
            link, links.Log
        ):
            family = NegativeBinomialFamily(alpha=float(sm_family.alpha))
        elif isinstance(sm_family, sm.families.Gaussian) and isinstance(
            link, links.Identity
        ):
            family = GaussianFamily(sigma=float(np.sqrt(scale)))
        elif isinstance(sm_family, sm.families.Gamma) and isinstance(link, links.Log):
            family = GammaFamily(shape=1.0 / scale)
        elif isinstance(sm_family, sm.families.Binomial) and isinstance(
            link, links.Logit
        ):
            family = BinomialFamily(trials=1)
        elif isinstance(sm_family, sm.families.Tweedie) and isinstance(
            link, links.Log
        ):
            family = TweedieFamily(power=float(sm_family.var_power), phi=scale)
        else:
            msg = (
                f"No residual family for statsmodels "
                f"{type(sm_family).__name__} with {type(link).__name__} link."
            )
            raise UnsupportedFamilyError(msg)

        X = np.asarray(model.exog, dtype=float)
        offset = np.zeros(X.shape[0])
        if getattr(model, "offset", None) is not None:
            offset = offset + np.asarray(model.offset, dtype=float)
        # GLM stores exposure already on the log scale.
        if getattr(model, "exposure", None) is not None:
            offset = offset + np.asarray(model.exposure, dtype=float)

        covariates = pd.DataFrame(X, columns=list(model.exog_names))
        logger.debug("Built FittedModel from statsmodels GLM (%s).", family.name)
        return cls(
            family=family,
            X=X,
            beta=np.asarray(result.params, dtype=float),
            y=np.asarray(model.endog, dtype=float),
            offset=offset if np.any(offset != 0) else None,
            covariates=covariates,
        )

    @classmethod
    def from_mixedlm(cls, result: Any) -> FittedModel:
        """Snapshot a fitted statsmodels ``MixedLM`` result.

        The random-effect mode is ``result.random_effects`` and its
        approximate covariance is the block-diagonal matrix of
        ``result.random_effects_cov`` (the conditional covariance of
        each group's random effects given the data).  The residual
        standard deviation is ``√scale``.

        Raises:
            UnsupportedFamilyError: If the model uses variance
                components (``vc_formula``), which have no ``exog_re``
                layout here.
        """
        model = result.model
        if getattr(model, "k_vc", 0):
            msg = "MixedLM models with variance components are not supported."
            raise UnsupportedFamilyError(msg)

        group_per_row = np.asarray(model.groups)
        Z, _ = build_random_effects_design(group_per_row, np.asarray(model.exog_re))
        labels = np.unique(group_per_row)

        re_mode = np.concatenate(
            [np.asarray(result.random_effects[g], dtype=float) for g in labels]
        )
        re_cov = linalg.block_diag(
            *[np.asarray(result.random_effects_cov[g], dtype=float) for g in labels]
        )
        # Symmetrise away round-off from statsmodels' solve.
        re_cov = 0.5 * (re_cov + re_cov.T)

        X = np.asarray(model.exog, dtype=float)
        covariates = pd.DataFrame(X, columns=list(model.exog_names))
        covariates["group"] = group_per_row
        logger.debug(
            "Built FittedModel from MixedLM: %d groups, q=%d.", len(labels), Z.shape[1]
        )
        return cls(
            family=GaussianFamily(sigma=float(np.sqrt(result.scale))),
            X=X,
            beta=np.asarray(result.fe_params, dtype=float),
            y=np.asarray(model.endog, dtype=float),
            Z=Z,
            re_mode=re_mode,
            re_cov=re_cov,
            covariates=covariates,
        )
