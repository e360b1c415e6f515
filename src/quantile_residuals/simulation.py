"""Replicate Simulator — batches of responses under one fixed draw.

A replicate batch is ``N`` independent response vectors drawn from the
fitted conditional distribution ``y | η``, with

    η = Xβ̂ + Z u*

for a single random-effect realization ``u*`` shared by every
replicate.  The realization is a required argument: the simulator
never draws random effects itself.  Re-drawing ``u*`` for each
replicate mixes the posterior spread of the random effects into the
reference distribution and produces residuals that are too
concentrated even for a correct model.

Parallelism
~~~~~~~~~~~
Replicates are independent given ``u*``.  Each one gets its own child
stream spawned from the caller's generator, so the batch is identical
whether it is generated serially or with
``joblib.Parallel(prefer="threads")`` (``n_jobs != 1``).
"""

from __future__ import annotations

import logging

import numpy as np
from joblib import Parallel, delayed

from ._exceptions import InvalidInputError
from ._model import FittedModel
from ._results import RandomEffectDraw, ReplicateBatch
from .families import ResponseFamily
from .random_effects import McmcDraws, realize

logger = logging.getLogger(__name__)


def _check_n(name: str, value: int) -> int:
    if isinstance(value, bool) or int(value) != value or value < 1:
        msg = f"{name} must be an integer >= 1, got {value!r}."
        raise InvalidInputError(msg)
    return int(value)


def simulate_replicates(
    model: FittedModel,
    draw: RandomEffectDraw,
    n_replicates: int,
    rng: np.random.Generator,
    *,
    n_jobs: int = 1,
) -> ReplicateBatch:
    """Simulate *n_replicates* response vectors conditional on *draw*.

    Args:
        model: The fitted model.
        draw: The random-effect realization held fixed for the whole
            batch.
        n_replicates: Number of replicates ``N >= 1``.
        rng: Parent random stream; one child stream is spawned per
            replicate.
        n_jobs: Worker threads for ``joblib``; ``1`` runs serially.

    Returns:
        A :class:`ReplicateBatch` of shape ``(N, n)`` tagged with
        *draw*.

    Raises:
        InvalidInputError: If ``n_replicates < 1`` or *draw* has the
            wrong dimension.
    """
    n_replicates = _check_n("n_replicates", n_replicates)
    family: ResponseFamily = model.family  # type: ignore[assignment]
    family.validate()

    # Computed once: every replicate shares the same conditional mean.
    eta = model.linear_predictor(draw.values)
    if not np.all(np.isfinite(eta)):
        msg = "Linear predictor is non-finite; cannot simulate replicates."
        raise InvalidInputError(msg)

    streams = rng.spawn(n_replicates)

    def _simulate_one(stream: np.random.Generator) -> np.ndarray:
        return family.sample(eta, stream)

    if n_jobs == 1:
        rows = [_simulate_one(s) for s in streams]
    else:
        rows = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_simulate_one)(s) for s in streams
        )

    logger.debug(
        "Simulated %d replicates of %d observations (%s draw).",
        n_replicates,
        model.n_obs,
        draw.provenance,
    )
    return ReplicateBatch(values=np.vstack(rows), draw=draw)


def simulate_posterior_batches(
    model: FittedModel,
    n_batches: int,
    n_replicates: int,
    rng: np.random.Generator,
    *,
    mode: str = "posterior_draw",
    mcmc_draws: McmcDraws | np.ndarray | None = None,
    n_jobs: int = 1,
) -> list[ReplicateBatch]:
    """Simulate several batches, each under its own random-effect draw.

    Each batch stands for one posterior sample of the random effects:
    a fresh draw is realized per batch and shared by all of that
    batch's replicates.

    Args:
        model: The fitted model.
        n_batches: Number of batches (independent draws).
        n_replicates: Replicates per batch.
        rng: Random stream for both the draws and the replicates.
        mode: Random-effect policy for the per-batch draws.
        mcmc_draws: External draws for ``mode="mcmc"``; rows are used
            in sequence.
        n_jobs: Forwarded to :func:`simulate_replicates`.

    Returns:
        List of *n_batches* :class:`ReplicateBatch` objects.
    """
    n_batches = _check_n("n_batches", n_batches)
    if mode == "mcmc" and mcmc_draws is not None and not isinstance(
        mcmc_draws, McmcDraws
    ):
        # Wrap once so the sequence advances across batches.
        mcmc_draws = McmcDraws(mcmc_draws, n_random=model.n_random)

    batches = []
    for _ in range(n_batches):
        draw = realize(model, mode, rng, mcmc_draws=mcmc_draws)
        batches.append(
            simulate_replicates(model, draw, n_replicates, rng, n_jobs=n_jobs)
        )
    return batches
