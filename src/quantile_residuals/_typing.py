"""Shared type aliases for the quantile_residuals package."""

import numpy as np

# Anything ``np.random.default_rng`` accepts as a seed, or a generator.
RandomState = int | np.random.Generator | np.random.SeedSequence | None
