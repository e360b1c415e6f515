"""Diagnostic adapter — residuals in the shapes external tests expect.

This module performs no statistics of its own.  It lines up the
residual vector, the replicate matrix, the observed response and the
covariate table, and hands them to existing tests:

* **Uniformity / normality** — ``scipy.stats.kstest`` against U(0, 1)
  or N(0, 1).  Non-finite normal-scale residuals (CDF saturation) are
  dropped first and the number dropped is reported.
* **Trend against a covariate** — ``scipy.stats.pearsonr`` between the
  residuals and a covariate; an omitted predictor shows up as a
  significant correlation.
* **Zero inflation** — observed zero count versus the zero count of
  every replicate, for an external zero-inflation test.
* **Spatial autocorrelation** — coordinate columns as an ``(n, k)``
  array, for an external Moran's I style test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from scipy import stats

from ._compat import DataFrameLike, _ensure_pandas_df
from ._exceptions import InvalidInputError
from ._model import FittedModel
from ._results import ResidualResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosticData:
    """Residuals plus the data external diagnostic tests consume.

    Attributes:
        result: The residual result being diagnosed.
        covariates: Covariate table aligned with the observations, or
            ``None``.
    """

    result: ResidualResult
    covariates: pd.DataFrame | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.covariates is not None and len(self.covariates) != self.result.n_obs:
            msg = (
                f"covariates has {len(self.covariates)} rows but there are "
                f"{self.result.n_obs} residuals."
            )
            raise InvalidInputError(msg)

    # ---- Shape adaptation ------------------------------------------

    def residual_vector(self, scale: str = "normal") -> np.ndarray:
        """Residuals on *scale*, shape ``(n,)``."""
        return self.result.values(scale)

    def simulated_matrix(self) -> np.ndarray:
        """Replicate matrix ``(N, n)`` behind simulation residuals.

        Raises:
            InvalidInputError: For analytical residuals, which have no
                replicates.
        """
        if self.result.batch is None:
            msg = (
                "Analytical residuals carry no replicate matrix; use "
                "method='simulation'."
            )
            raise InvalidInputError(msg)
        return self.result.batch.values

    def to_frame(self, scale: str = "normal") -> pd.DataFrame:
        """Covariates with ``observed`` and ``residual`` columns appended.

        Raises:
            InvalidInputError: If the covariates already have an
                ``observed`` or ``residual`` column.
        """
        frame = (
            pd.DataFrame(index=pd.RangeIndex(self.result.n_obs))
            if self.covariates is None
            else self.covariates.reset_index(drop=True).copy()
        )
        clash = [c for c in ("observed", "residual") if c in frame.columns]
        if clash:
            msg = f"Covariate column(s) {clash} would be overwritten by to_frame()."
            raise InvalidInputError(msg)
        frame["observed"] = self.result.observed
        frame["residual"] = self.result.values(scale)
        return frame

    def covariate(self, covariate: str | np.ndarray) -> np.ndarray:
        """Resolve a covariate column name or vector to an ``(n,)`` array."""
        if isinstance(covariate, str):
            if self.covariates is None or covariate not in self.covariates:
                msg = f"Unknown covariate '{covariate}'."
                raise InvalidInputError(msg)
            values = self.covariates[covariate].to_numpy(dtype=float)
        else:
            values = np.asarray(covariate, dtype=float)
        if values.shape != (self.result.n_obs,):
            msg = (
                f"Covariate has shape {values.shape}, expected "
                f"({self.result.n_obs},)."
            )
            raise InvalidInputError(msg)
        return values

    def coordinates(self, columns: list[str]) -> np.ndarray:
        """Coordinate columns as an ``(n, k)`` array for spatial tests."""
        return np.column_stack([self.covariate(c) for c in columns])

    # ---- Hand-off to existing tests --------------------------------

    def ks_test(self, scale: str = "uniform") -> dict[str, Any]:
        """Kolmogorov–Smirnov test against the target distribution of *scale*.

        Returns:
            Dict with ``statistic``, ``p_value``, ``n`` (residuals
            tested) and ``n_dropped`` (non-finite residuals removed).
        """
        x = self.result.finite(scale)
        target = "uniform" if scale == "uniform" else "norm"
        res = stats.kstest(x, target)
        n_dropped = int(self.result.nonfinite.sum())
        if n_dropped:
            logger.debug("ks_test dropped %d non-finite residuals.", n_dropped)
        return {
            "statistic": float(res.statistic),
            "p_value": float(res.pvalue),
            "n": int(x.size),
            "n_dropped": n_dropped,
        }

    def correlation_test(
        self, covariate: str | np.ndarray, scale: str = "normal"
    ) -> dict[str, Any]:
        """Pearson correlation between the residuals and a covariate.

        Returns:
            Dict with ``r``, ``p_value`` and ``n``.
        """
        x = self.covariate(covariate)
        keep = ~self.result.nonfinite
        res = stats.pearsonr(self.result.values(scale)[keep], x[keep])
        return {
            "r": float(res.statistic),
            "p_value": float(res.pvalue),
            "n": int(keep.sum()),
        }

    def zero_count_comparison(self) -> dict[str, Any]:
        """Observed zeros versus zeros in each replicate.

        Returns:
            Dict with ``observed`` (int), ``simulated`` (array of
            length ``N``) and ``expected`` (mean simulated zeros).
        """
        sims = self.simulated_matrix()
        simulated = np.sum(sims == 0, axis=1)
        return {
            "observed": int(np.sum(self.result.observed == 0)),
            "simulated": simulated,
            "expected": float(np.mean(simulated)),
        }


def as_diagnostic_data(
    result: ResidualResult,
    model: FittedModel | None = None,
    covariates: DataFrameLike | None = None,
) -> DiagnosticData:
    """Bundle *result* with the covariates external tests need.

    Args:
        result: Residuals from :func:`~quantile_residuals.compute_residuals`.
        model: Fitted model; its ``covariates`` table is used when
            *covariates* is not given.
        covariates: Explicit covariate table (pandas or Polars).

    Returns:
        A :class:`DiagnosticData`.
    """
    table = None
    if covariates is not None:
        table = _ensure_pandas_df(covariates, name="covariates")
    elif model is not None and model.covariates is not None:
        table = model.covariates  # type: ignore[assignment]
    return DiagnosticData(result=result, covariates=table)
