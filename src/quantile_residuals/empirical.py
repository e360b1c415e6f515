"""Simulation-based residuals from replicate batches.

Each observation is ranked among its ``N`` simulated values.  The
estimator pools the observation with its simulations (``N + 1``
values in total) and places it uniformly at random inside its block
of ties:

    below = #{sims < y},    ties = #{sims == y}

    u = (below + v · (ties + 1)) / (N + 1),    v ~ U(0, 1)

* Continuous outcomes have no ties, so ``u = (below + v) / (N + 1)``,
  the randomized ``rank / (N + 1)`` plotting position.  Under the
  true model the rank is uniform on ``0 … N`` and ``u`` is exactly
  U(0, 1).
* Discrete outcomes interpolate uniformly between the pooled
  strictly-below fraction ``below / (N + 1)`` and the
  less-or-equal fraction ``(below + ties + 1) / (N + 1)`` — the
  empirical counterpart of the analytical ``[cdf_below, cdf]``
  randomization.

With ``randomize=False`` the upper fraction is returned instead.  It
is exactly 1 for an observation at or above every simulation, so that
residual is ``+inf`` on the normal scale and a
:class:`~quantile_residuals.ConvergenceWarning` is issued.

Saturation
~~~~~~~~~~
An observation more extreme than every simulation lands within
``1 / (N + 1)`` of 0 or 1; the residual cannot express how far out in
the tail it really is.  That is expected behaviour of the estimator,
not a defect.  Randomized residuals stay strictly inside (0, 1) apart
from the measure-zero case ``v = 0``; unrandomized ones can hit 1 as
described above.  Use ``N >= 250`` for stable tail estimates.
"""

from __future__ import annotations

import logging

import numpy as np

from . import transforms
from ._exceptions import InvalidInputError
from ._results import ReplicateBatch, ResidualResult

logger = logging.getLogger(__name__)


def empirical_pit(
    simulated: np.ndarray,
    observed: np.ndarray,
    rng: np.random.Generator,
    *,
    randomize: bool = True,
) -> np.ndarray:
    """Empirical PIT of *observed* against a ``(N, n)`` simulation matrix.

    Accepts any simulation matrix, including ones produced outside
    this package.

    Args:
        simulated: Replicates, shape ``(N, n)``.
        observed: Observed responses, shape ``(n,)``.
        rng: Random stream for the within-tie position.
        randomize: Randomize the position among ties (and within the
            rank gap for continuous data).

    Returns:
        Uniform-scale residuals of shape ``(n,)``.

    Raises:
        InvalidInputError: On shape mismatch or non-finite inputs.
    """
    sims = np.asarray(simulated, dtype=float)
    y = np.asarray(observed, dtype=float)
    if sims.ndim != 2:
        msg = f"simulated must be a 2-D (N, n) array, got shape {sims.shape}."
        raise InvalidInputError(msg)
    if y.ndim != 1 or y.shape[0] != sims.shape[1]:
        msg = (
            f"observed has shape {y.shape} but simulated has "
            f"{sims.shape[1]} columns."
        )
        raise InvalidInputError(msg)
    if sims.shape[0] < 1:
        msg = "simulated must contain at least one replicate."
        raise InvalidInputError(msg)
    if not (np.all(np.isfinite(sims)) and np.all(np.isfinite(y))):
        msg = "simulated and observed must be finite."
        raise InvalidInputError(msg)

    N = sims.shape[0]
    below = np.sum(sims < y, axis=0)
    ties = np.sum(sims == y, axis=0)

    if randomize:
        v = rng.random(y.shape[0])
        u = (below + v * (ties + 1)) / (N + 1)
    else:
        u = (below + ties + 1) / (N + 1)

    n_saturated = int(np.sum((below == 0) | (below + ties == N)))
    if n_saturated:
        logger.debug(
            "%d of %d observations lie at or beyond the simulated range "
            "(N=%d); their residuals are bounded by 1/(N+1).",
            n_saturated,
            y.shape[0],
            N,
        )
    return np.asarray(u, dtype=float)


def simulated_residuals(
    batch: ReplicateBatch,
    observed: np.ndarray,
    rng: np.random.Generator,
    *,
    randomize: bool = True,
) -> ResidualResult:
    """Simulation-based residuals for a :class:`ReplicateBatch`.

    Args:
        batch: Replicates simulated under a single random-effect draw.
        observed: Observed responses, shape ``(n,)``.
        rng: Random stream for the within-tie position.
        randomize: See :func:`empirical_pit`.

    Returns:
        A :class:`ResidualResult` with ``method="simulation"`` that
        carries *batch* for the diagnostic adapter.
    """
    u = empirical_pit(batch.values, observed, rng, randomize=randomize)
    transforms.check_finite(transforms.to_normal(u))
    return ResidualResult(
        uniform=u,
        method="simulation",
        draw=batch.draw,
        observed=observed,
        randomized=randomize,
        batch=batch,
    )
