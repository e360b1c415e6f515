"""Exception and warning types raised by the quantile_residuals package.

Three conditions are distinguished:

* :class:`InvalidInputError` — malformed inputs that must fail loudly
  (dimension mismatches, non-finite effects, an empty MCMC batch,
  ``n_replicates < 1``).  Subclasses ``ValueError`` so callers that
  already catch ``ValueError`` keep working.
* :class:`UnsupportedFamilyError` — no family is registered under the
  requested name.
* :class:`ConvergenceWarning` — non-finite residuals after the
  normal-quantile transform.  Emitted through :mod:`warnings` so it
  can be filtered, escalated or ignored with the standard machinery;
  it is never raised as an exception by the library itself.
"""

from __future__ import annotations


class InvalidInputError(ValueError):
    """Inputs have the wrong shape, are non-finite, or are out of range."""


class UnsupportedFamilyError(ValueError):
    """No response family is registered under the requested name."""


class ConvergenceWarning(UserWarning):
    """Residuals saturated to a non-finite value on the normal scale.

    Extreme tail observations can push the CDF to exactly 0 or 1 in
    floating point, so ``norm.ppf`` returns ``±inf``.  The residuals
    are still returned; the affected entries are reported through
    ``ResidualResult.nonfinite``.
    """
