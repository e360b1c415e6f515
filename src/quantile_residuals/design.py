"""Random-effect design construction.

Helpers that turn grouping labels into the random-effect design matrix
``Z`` and expand per-factor covariance blocks into the full prior
covariance.  The layout matches what :class:`FittedModel` expects and
what the statsmodels ``MixedLM`` adapter produces::

    η = Xβ + Zu,   u ~ N(0, Γ),
    Γ = block_diag( kron(I_{G_1}, Σ_1), …, kron(I_{G_K}, Σ_K) )

For factor k with G_k groups and d_k random-effect columns per group
(an intercept, slopes, or any ``exog_re`` columns), Z_k has
``G_k · d_k`` columns arranged group-major::

    [group_0_col_0, group_0_col_1, …, group_1_col_0, …]
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Sequence

import numpy as np
from scipy import linalg

from ._exceptions import InvalidInputError


def _as_exog_re(exog_re: np.ndarray | None, n: int, name: str) -> np.ndarray:
    """Return the ``(n, d)`` per-row random-effect covariates for a factor."""
    if exog_re is None:
        return np.ones((n, 1))
    arr = np.asarray(exog_re, dtype=float)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2 or arr.shape[0] != n:
        msg = (
            f"exog_re for factor '{name}' must have shape ({n}, d), "
            f"got {arr.shape}."
        )
        raise InvalidInputError(msg)
    return arr


def build_random_effects_design(
    groups: np.ndarray | dict[str, np.ndarray | tuple[np.ndarray, np.ndarray]],
    exog_re: np.ndarray | None = None,
) -> tuple[np.ndarray, list[tuple[int, int]]]:
    """Build the random-effect design matrix Z and re_struct.

    Args:
        groups: Grouping factor specification.
            * 1-D array ``(n,)`` of labels → single factor.
            * dict ``{name: labels}`` → one factor per entry, random
              intercept only.
            * dict ``{name: (labels, exog_re)}`` → factor whose random
              effects multiply the columns of ``exog_re`` ``(n, d)``.
        exog_re: Per-row random-effect covariates ``(n, d)`` for the
            single-factor form.  ``None`` means a random intercept.
            Include a column of ones for intercept + slopes.

    Returns:
        ``(Z, re_struct)`` where ``Z`` is ``(n, q)`` with
        ``q = Σ_k G_k · d_k`` and ``re_struct`` is
        ``[(G_1, d_1), …, (G_K, d_K)]``.

    Raises:
        InvalidInputError: If label arrays differ in length, the dict
            is empty, or ``exog_re`` has the wrong number of rows.
    """
    factors: list[tuple[str, np.ndarray, np.ndarray | None]] = []

    if isinstance(groups, dict):
        if len(groups) == 0:
            msg = "groups dict must contain at least one grouping factor."
            raise InvalidInputError(msg)
        if exog_re is not None:
            msg = (
                "Pass exog_re inside the groups dict as (labels, exog_re) "
                "when using several grouping factors."
            )
            raise InvalidInputError(msg)
        for name, val in OrderedDict(groups).items():
            if isinstance(val, tuple):
                labels, factor_exog = val
                factors.append((name, np.asarray(labels), factor_exog))
            else:
                factors.append((name, np.asarray(val), None))
    else:
        factors.append(("factor_0", np.asarray(groups), exog_re))

    n: int | None = None
    Z_list: list[np.ndarray] = []
    re_struct: list[tuple[int, int]] = []

    for name, labels, factor_exog in factors:
        if labels.ndim != 1:
            msg = (
                f"Grouping factor '{name}' must be a 1-D array, "
                f"got shape {labels.shape}."
            )
            raise InvalidInputError(msg)
        if n is None:
            n = len(labels)
        elif len(labels) != n:
            msg = (
                f"Grouping factor '{name}' has {len(labels)} "
                f"observations, expected {n}."
            )
            raise InvalidInputError(msg)

        exog_k = _as_exog_re(factor_exog, n, name)
        # Map labels to 0-based contiguous integers (sorted label order).
        unique_labels, coded = np.unique(labels, return_inverse=True)
        G_k = len(unique_labels)
        d_k = exog_k.shape[1]

        Z_k = np.zeros((n, G_k * d_k), dtype=np.float64)
        rows = np.arange(n)
        for c in range(d_k):
            Z_k[rows, coded * d_k + c] = exog_k[:, c]

        Z_list.append(Z_k)
        re_struct.append((G_k, d_k))

    Z = np.hstack(Z_list) if len(Z_list) > 1 else Z_list[0]
    return Z, re_struct


def block_diagonal_covariance(
    re_struct: Sequence[tuple[int, int]],
    re_covariances: Sequence[np.ndarray | float],
) -> np.ndarray:
    """Expand per-factor covariances into the ``(q, q)`` matrix Γ.

    Args:
        re_struct: ``[(G_k, d_k), …]`` from
            :func:`build_random_effects_design`.
        re_covariances: One ``(d_k, d_k)`` covariance (or a scalar
            variance when ``d_k == 1``) per factor.

    Returns:
        ``block_diag(kron(I_{G_1}, Σ_1), …)``.
    """
    if len(re_struct) != len(re_covariances):
        msg = (
            f"Got {len(re_covariances)} covariance blocks for "
            f"{len(re_struct)} grouping factors."
        )
        raise InvalidInputError(msg)
    blocks = []
    for (G_k, d_k), cov_k in zip(re_struct, re_covariances, strict=True):
        cov_k = np.atleast_2d(np.asarray(cov_k, dtype=float))
        if cov_k.shape != (d_k, d_k):
            msg = f"Covariance block must be ({d_k}, {d_k}), got {cov_k.shape}."
            raise InvalidInputError(msg)
        blocks.append(np.kron(np.eye(G_k), cov_k))
    return np.asarray(linalg.block_diag(*blocks))
