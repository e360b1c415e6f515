"""Conversions between the uniform and normal residual scales.

A residual vector is only ever generated once, on the uniform scale.
Everything else goes through these two functions, so the scales stay
exact transforms of each other::

    z = Φ⁻¹(u),    u = Φ(z)

``u`` values of exactly 0 or 1 (CDF saturation in the tails) map to
``∓inf``.  That is a legitimate outcome, not an error: it is reported
by :func:`check_finite` as a :class:`ConvergenceWarning` and callers
filter the affected entries.
"""

from __future__ import annotations

import warnings

import numpy as np
from scipy import stats

from ._exceptions import ConvergenceWarning


def to_normal(u: np.ndarray) -> np.ndarray:
    """Map uniform-scale residuals to the normal scale."""
    return np.asarray(stats.norm.ppf(np.asarray(u, dtype=float)), dtype=float)


def to_uniform(z: np.ndarray) -> np.ndarray:
    """Map normal-scale residuals to the uniform scale."""
    return np.asarray(stats.norm.cdf(np.asarray(z, dtype=float)), dtype=float)


def check_finite(z: np.ndarray, *, stacklevel: int = 3) -> np.ndarray:
    """Return the mask of non-finite entries in *z*, warning if any.

    Args:
        z: Normal-scale residuals.
        stacklevel: Passed to :func:`warnings.warn` so the warning
            points at the caller's call site.

    Returns:
        Boolean mask, ``True`` where ``z`` is ``±inf`` or NaN.
    """
    mask = ~np.isfinite(z)
    n_bad = int(mask.sum())
    if n_bad:
        warnings.warn(
            f"{n_bad} of {mask.size} residuals are non-finite on the "
            "normal scale (CDF saturated at 0 or 1).  Use "
            "ResidualResult.finite() to drop them.",
            ConvergenceWarning,
            stacklevel=stacklevel,
        )
    return mask
