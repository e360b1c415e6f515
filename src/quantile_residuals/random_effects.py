"""Random Effect Realizer — one realization of the latent effects.

Three policies produce a :class:`~quantile_residuals.RandomEffectDraw`:

``"empirical_bayes"``
    The stored mode û, unchanged.  Deterministic.  Residuals
    conditional on û are known to be too concentrated, because û is
    shrunk toward zero.

``"posterior_draw"``
    One draw from the Laplace approximation ``N(û, Σ̂)``, computed as
    ``û + L z`` with ``L L' = Σ̂`` and ``z ~ N(0, I_q)``.  Conditioning
    on a single joint draw restores the correct marginal residual
    distribution when the model is correct.

``"mcmc"``
    One row of an externally sampled batch of posterior draws, taken
    in sequence (cycling) or by explicit index.

Every policy returns a complete new vector; none of them updates part
of the mode in place.  The caller owns the draw's lifetime: the same
draw must be passed to every replicate of a simulation batch.
"""

from __future__ import annotations

import logging

import numpy as np

from ._exceptions import InvalidInputError
from ._model import FittedModel
from ._results import RandomEffectDraw

logger = logging.getLogger(__name__)


def empirical_bayes(model: FittedModel) -> RandomEffectDraw:
    """Return the random-effect mode as a draw (no randomness)."""
    assert model.re_mode is not None
    return RandomEffectDraw(values=model.re_mode, provenance="empirical_bayes")


def posterior_draw(model: FittedModel, rng: np.random.Generator) -> RandomEffectDraw:
    """Draw once from ``N(mode, re_cov)`` using the covariance factor.

    Args:
        model: Fitted model carrying ``re_mode`` and a covariance.
        rng: Explicit random stream.

    Raises:
        InvalidInputError: If the model has random effects but no
            covariance.
    """
    assert model.re_mode is not None
    q = model.n_random
    if q == 0:
        # Nothing to draw; the realization degenerates to the empty mode.
        return RandomEffectDraw(values=np.zeros(0), provenance="posterior_draw")
    L = model.covariance_factor()
    z = rng.standard_normal(q)
    return RandomEffectDraw(values=model.re_mode + L @ z, provenance="posterior_draw")


class McmcDraws:
    """A batch of externally sampled random-effect draws.

    Rows are independent posterior samples; columns are the ``q``
    random effects.  :meth:`next` hands out rows in order and wraps
    around at the end; :meth:`at` selects a row explicitly.

    Args:
        draws: Array of shape ``(S, q)``.
        n_random: Expected ``q``; checked against the column count
            when given.

    Raises:
        InvalidInputError: If the batch is empty, not 2-D, has the
            wrong number of columns, or contains non-finite values.
    """

    def __init__(self, draws: np.ndarray, n_random: int | None = None) -> None:
        arr = np.array(draws, dtype=float, copy=True)
        if arr.ndim != 2:
            msg = f"MCMC draws must be a 2-D (draws, q) array, got shape {arr.shape}."
            raise InvalidInputError(msg)
        if arr.shape[0] == 0:
            msg = "MCMC draw batch is empty."
            raise InvalidInputError(msg)
        if n_random is not None and arr.shape[1] != n_random:
            msg = (
                f"MCMC draws have {arr.shape[1]} columns but the model has "
                f"{n_random} random effects."
            )
            raise InvalidInputError(msg)
        if not np.all(np.isfinite(arr)):
            msg = "MCMC draws contain non-finite values."
            raise InvalidInputError(msg)
        arr.setflags(write=False)
        self._draws = arr
        self._cursor = 0

    def __len__(self) -> int:
        return self.n_draws

    def __repr__(self) -> str:
        return f"McmcDraws(n_draws={self.n_draws}, n_random={self.n_random})"

    @property
    def n_draws(self) -> int:
        return int(self._draws.shape[0])

    @property
    def n_random(self) -> int:
        return int(self._draws.shape[1])

    @property
    def position(self) -> int:
        """Index of the row the next call to :meth:`next` will return."""
        return self._cursor

    def check_model(self, model: FittedModel) -> None:
        """Raise ``InvalidInputError`` if the column count does not match *model*."""
        if self.n_random != model.n_random:
            msg = (
                f"MCMC draws have {self.n_random} columns but the model has "
                f"{model.n_random} random effects."
            )
            raise InvalidInputError(msg)

    def at(self, index: int) -> RandomEffectDraw:
        """Return row *index* (negative indices count from the end)."""
        if not -self.n_draws <= index < self.n_draws:
            msg = f"MCMC index {index} out of range for {self.n_draws} draws."
            raise InvalidInputError(msg)
        row = index % self.n_draws
        return RandomEffectDraw(
            values=self._draws[row], provenance="mcmc", mcmc_index=row
        )

    def next(self) -> RandomEffectDraw:
        """Return the next row in sequence, cycling after the last one."""
        draw = self.at(self._cursor)
        self._cursor = (self._cursor + 1) % self.n_draws
        return draw


def realize(
    model: FittedModel,
    mode: str,
    rng: np.random.Generator,
    *,
    mcmc_draws: McmcDraws | np.ndarray | None = None,
    mcmc_index: int | None = None,
) -> RandomEffectDraw:
    """Produce one random-effect realization under policy *mode*.

    Args:
        model: The fitted model.
        mode: ``"empirical_bayes"``, ``"posterior_draw"`` or ``"mcmc"``.
        rng: Random stream (used by ``"posterior_draw"`` only).
        mcmc_draws: Required for ``"mcmc"``.  A raw array is wrapped
            in :class:`McmcDraws` for this call.
        mcmc_index: Explicit row for ``"mcmc"``; ``None`` takes the
            next row in sequence.

    Raises:
        InvalidInputError: For an unknown *mode*, a missing or
            mismatched MCMC batch.
    """
    if mode == "empirical_bayes":
        draw = empirical_bayes(model)
    elif mode == "posterior_draw":
        draw = posterior_draw(model, rng)
    elif mode == "mcmc":
        if mcmc_draws is None:
            msg = "mode='mcmc' requires mcmc_draws."
            raise InvalidInputError(msg)
        if not isinstance(mcmc_draws, McmcDraws):
            mcmc_draws = McmcDraws(mcmc_draws, n_random=model.n_random)
        mcmc_draws.check_model(model)
        draw = mcmc_draws.next() if mcmc_index is None else mcmc_draws.at(mcmc_index)
    else:
        msg = (
            f"Unknown random-effect mode '{mode}'. Choose from: "
            "['empirical_bayes', 'mcmc', 'posterior_draw']"
        )
        raise InvalidInputError(msg)

    logger.debug(
        "Realized random effects: provenance=%s, q=%d.", draw.provenance, draw.n_random
    )
    return draw
