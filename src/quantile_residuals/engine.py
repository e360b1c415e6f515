"""Residual engine — Builder for policy resolution and draw lifetime.

The :class:`ResidualEngine` centralises everything that happens
*before* residuals are computed:

1. **Option resolution** — ``mode`` falls back to the configured
   default (see :mod:`quantile_residuals._config`).
2. **Random stream** — ``random_state`` is turned into one explicit
   ``numpy.random.Generator`` owned by the engine; no global state is
   touched.
3. **MCMC wiring** — an external draw batch is wrapped and checked
   against the model's random-effect dimension once.
4. **Draw lifetime** — every public operation realizes exactly one
   random-effect draw and threads it through the whole computation
   (one draw per analytical call, one draw per replicate batch).

The engine is the natural unit of reproducibility: the same model,
options and seed give the same residuals.
"""

from __future__ import annotations

import logging

import numpy as np

from ._config import MODES, get_option
from ._exceptions import InvalidInputError
from ._model import FittedModel
from ._results import RandomEffectDraw, ReplicateBatch, ResidualResult
from ._typing import RandomState
from .empirical import simulated_residuals
from .random_effects import McmcDraws, realize
from .residuals import analytical_residuals
from .simulation import simulate_posterior_batches, simulate_replicates

logger = logging.getLogger(__name__)


class ResidualEngine:
    """Builder that resolves options and owns the random stream.

    Attributes:
        model: The fitted model snapshot.
        mode: Resolved random-effect policy.
        rng: The engine's ``numpy.random.Generator``.
        mcmc_draws: Wrapped external draws when ``mode == "mcmc"``.
    """

    def __init__(
        self,
        model: FittedModel,
        *,
        mode: str | None = None,
        random_state: RandomState = None,
        mcmc_draws: McmcDraws | np.ndarray | None = None,
    ) -> None:
        if not isinstance(model, FittedModel):
            msg = f"model must be a FittedModel, got {type(model).__name__}."
            raise InvalidInputError(msg)
        self.model = model

        resolved = get_option("mode") if mode is None else str(mode).strip().lower()
        if resolved not in MODES:
            msg = f"Unknown random-effect mode '{mode}'. Choose from: {sorted(MODES)}"
            raise InvalidInputError(msg)
        self.mode: str = resolved

        # default_rng passes an existing Generator through unchanged.
        self.rng: np.random.Generator = np.random.default_rng(random_state)

        self.mcmc_draws: McmcDraws | None = None
        if mcmc_draws is not None:
            if not isinstance(mcmc_draws, McmcDraws):
                mcmc_draws = McmcDraws(mcmc_draws, n_random=model.n_random)
            mcmc_draws.check_model(model)
            self.mcmc_draws = mcmc_draws
        elif self.mode == "mcmc":
            msg = "mode='mcmc' requires mcmc_draws."
            raise InvalidInputError(msg)

        if self.mode == "posterior_draw" and model.n_random > 0 and model.re_cov is None:
            msg = (
                "mode='posterior_draw' requires re_cov or re_cov_factor on "
                "the model.  Use mode='empirical_bayes' otherwise."
            )
            raise InvalidInputError(msg)

        logger.debug(
            "ResidualEngine ready: mode=%s, n=%d, p=%d, q=%d.",
            self.mode,
            model.n_obs,
            model.n_fixed,
            model.n_random,
        )

    def realize(self, mcmc_index: int | None = None) -> RandomEffectDraw:
        """Realize one random-effect draw under the engine's policy."""
        return realize(
            self.model,
            self.mode,
            self.rng,
            mcmc_draws=self.mcmc_draws,
            mcmc_index=mcmc_index,
        )

    def analytical(
        self,
        *,
        randomize: bool = True,
        mcmc_index: int | None = None,
    ) -> ResidualResult:
        """Analytical residuals conditional on one fresh draw."""
        draw = self.realize(mcmc_index)
        return analytical_residuals(self.model, draw, self.rng, randomize=randomize)

    def replicate_batch(
        self,
        n_replicates: int,
        *,
        n_jobs: int = 1,
        mcmc_index: int | None = None,
    ) -> ReplicateBatch:
        """One replicate batch, all replicates sharing one fresh draw."""
        draw = self.realize(mcmc_index)
        return simulate_replicates(
            self.model, draw, n_replicates, self.rng, n_jobs=n_jobs
        )

    def simulated(
        self,
        n_replicates: int,
        *,
        randomize: bool = True,
        n_jobs: int = 1,
        mcmc_index: int | None = None,
    ) -> ResidualResult:
        """Simulation-based residuals from one replicate batch."""
        batch = self.replicate_batch(
            n_replicates, n_jobs=n_jobs, mcmc_index=mcmc_index
        )
        return simulated_residuals(
            batch, self.model.y, self.rng, randomize=randomize
        )

    def posterior_batches(
        self,
        n_batches: int,
        n_replicates: int,
        *,
        n_jobs: int = 1,
    ) -> list[ReplicateBatch]:
        """Several replicate batches, one fresh draw per batch."""
        return simulate_posterior_batches(
            self.model,
            n_batches,
            n_replicates,
            self.rng,
            mode=self.mode,
            mcmc_draws=self.mcmc_draws,
            n_jobs=n_jobs,
        )
