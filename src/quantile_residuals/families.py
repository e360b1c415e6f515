"""Response family protocol and resolution logic.

The ``ResponseFamily`` protocol is the Family Adapter: the only place
that knows how a response distribution turns a linear predictor into
probabilities and draws.  The residual calculator, the replicate
simulator and the diagnostic adapter program against the protocol,
never against a concrete class, so adding a family is a local change
in this module plus one ``register_family`` call.

Each concrete family is a frozen ``@dataclass`` whose fields are the
family's dispersion / shape parameters.  Instances carry no other
state; all data flows through method arguments.

Capabilities
~~~~~~~~~~~~
Every family exposes:

* ``cdf(y, eta)`` — ``P(Y ≤ y)`` given the linear predictor ``eta``.
* ``cdf_below(y, eta)`` — the left limit ``P(Y < y)``.  For integer
  families this is ``cdf(y − 1)`` (zero at the bottom of the
  support); for continuous families it equals ``cdf``; for the
  Tweedie compound Poisson–gamma it is zero at ``y = 0`` (the point
  mass) and equals ``cdf`` above it.
* ``sample(eta, rng)`` — one draw per observation.

The gap ``cdf − cdf_below`` is exactly the probability mass at ``y``,
which is what the randomized quantile residual spreads uniformly.

Numeric tails
~~~~~~~~~~~~~
Far in the tails ``cdf`` can return exactly 0.0 or 1.0 in floating
point.  Families do not clip: the saturation is passed through and
handled downstream as a filterable, non-fatal condition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import numpy as np
from scipy import special
from scipy import stats

from ._exceptions import InvalidInputError, UnsupportedFamilyError

# ------------------------------------------------------------------ #
# Shared validation helpers
# ------------------------------------------------------------------ #


def _require_positive(family: str, field: str, value: float | None) -> None:
    """Raise ``InvalidInputError`` unless *value* is finite and > 0."""
    if value is None:
        msg = f"{family} requires '{field}' to be set."
        raise InvalidInputError(msg)
    if not np.isfinite(value) or value <= 0:
        msg = f"{family} requires a finite, positive '{field}', got {value!r}."
        raise InvalidInputError(msg)


def _require_numeric_finite(family: str, y: np.ndarray) -> None:
    if not np.issubdtype(y.dtype, np.number):
        msg = f"{family} requires numeric Y values."
        raise InvalidInputError(msg)
    if not np.all(np.isfinite(y)):
        msg = f"{family} does not accept NaN or infinite values in Y."
        raise InvalidInputError(msg)


def _require_counts(family: str, y: np.ndarray) -> None:
    _require_numeric_finite(family, y)
    if np.any(y < 0):
        msg = f"{family} requires non-negative Y values."
        raise InvalidInputError(msg)
    # Allow floats that happen to be whole numbers (e.g. 3.0),
    # but reject genuinely fractional values like 3.5.
    if not np.allclose(y, np.round(y)):
        msg = f"{family} requires integer-valued Y. Got non-integer values."
        raise InvalidInputError(msg)


# ------------------------------------------------------------------ #
# ResponseFamily protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class ResponseFamily(Protocol):
    """Interface that every response family must implement.

    Attributes:
        name: Registry key (e.g. ``"poisson"``).
        support: ``"discrete"``, ``"continuous"`` or ``"mixed"``
            (continuous with point masses, e.g. Tweedie at zero).
            Residuals are randomized for every support other than
            ``"continuous"``.
        params: The family's dispersion / shape parameters as a dict,
            for display and serialisation.
    """

    @property
    def name(self) -> str: ...

    @property
    def support(self) -> str: ...

    @property
    def params(self) -> dict[str, Any]: ...

    def validate(self) -> None:
        """Raise ``InvalidInputError`` if a parameter is missing or invalid."""
        ...

    def validate_y(self, y: np.ndarray) -> None:
        """Raise ``InvalidInputError`` if *y* lies outside the support."""
        ...

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        """Map the linear predictor to the conditional mean."""
        ...

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        """``P(Y ≤ y)`` for each observation."""
        ...

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        """``P(Y < y)`` for each observation."""
        ...

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """Draw one response per observation from the conditional law."""
        ...


def is_randomized(family: ResponseFamily) -> bool:
    """Whether residuals for *family* need randomized tie-breaking."""
    return family.support != "continuous"


# ------------------------------------------------------------------ #
# Count families
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PoissonFamily:
    """Poisson counts with log link: ``Y ~ Poisson(exp(eta))``."""

    @property
    def name(self) -> str:
        return "poisson"

    @property
    def support(self) -> str:
        return "discrete"

    @property
    def params(self) -> dict[str, Any]:
        return {}

    def validate(self) -> None:
        return None

    def validate_y(self, y: np.ndarray) -> None:
        _require_counts("PoissonFamily", y)

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        return np.exp(eta)

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        return np.asarray(stats.poisson.cdf(y, self.inverse_link(eta)))

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        # poisson.cdf(-1) is already 0; the where() keeps that explicit.
        below = stats.poisson.cdf(y - 1, self.inverse_link(eta))
        return np.where(y <= 0, 0.0, below)

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        return np.asarray(rng.poisson(lam=self.inverse_link(eta)), dtype=float)


@dataclass(frozen=True)
class NegativeBinomialFamily:
    """Negative binomial counts, NB2 parameterisation, log link.

    ``E[Y] = μ`` and ``Var(Y) = μ + α·μ²``.  In scipy/NumPy terms the
    distribution is ``nbinom(n=1/α, p=1/(1 + α·μ))``.

    Parameters
    ----------
    alpha : float
        Dispersion parameter, must be finite and positive.
    """

    alpha: float | None = None

    @property
    def name(self) -> str:
        return "negative_binomial"

    @property
    def support(self) -> str:
        return "discrete"

    @property
    def params(self) -> dict[str, Any]:
        return {"alpha": self.alpha}

    def validate(self) -> None:
        _require_positive("NegativeBinomialFamily", "alpha", self.alpha)

    def validate_y(self, y: np.ndarray) -> None:
        _require_counts("NegativeBinomialFamily", y)

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        return np.exp(eta)

    def _nb_params(self, eta: np.ndarray) -> tuple[float, np.ndarray]:
        self.validate()
        assert self.alpha is not None
        mu = self.inverse_link(eta)
        return 1.0 / self.alpha, 1.0 / (1.0 + self.alpha * mu)

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        n, p = self._nb_params(eta)
        return np.asarray(stats.nbinom.cdf(y, n, p))

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        n, p = self._nb_params(eta)
        return np.where(y <= 0, 0.0, stats.nbinom.cdf(y - 1, n, p))

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        n, p = self._nb_params(eta)
        return np.asarray(rng.negative_binomial(n=n, p=p), dtype=float)


@dataclass(frozen=True)
class BinomialFamily:
    """Binomial successes out of ``trials`` with logit link.

    ``trials`` may be a scalar or a per-observation array; ``y`` counts
    successes in ``0 … trials``.  ``trials=1`` gives Bernoulli data.
    """

    trials: int | np.ndarray = 1

    @property
    def name(self) -> str:
        return "binomial"

    @property
    def support(self) -> str:
        return "discrete"

    @property
    def params(self) -> dict[str, Any]:
        return {"trials": self.trials}

    def validate(self) -> None:
        trials = np.asarray(self.trials)
        if np.any(trials < 1) or not np.allclose(trials, np.round(trials)):
            msg = "BinomialFamily requires positive integer 'trials'."
            raise InvalidInputError(msg)

    def validate_y(self, y: np.ndarray) -> None:
        _require_counts("BinomialFamily", y)
        if np.any(y > np.asarray(self.trials)):
            msg = "BinomialFamily requires Y <= trials."
            raise InvalidInputError(msg)

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        return np.asarray(special.expit(eta))

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        return np.asarray(stats.binom.cdf(y, self.trials, self.inverse_link(eta)))

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        below = stats.binom.cdf(y - 1, self.trials, self.inverse_link(eta))
        return np.where(y <= 0, 0.0, below)

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        return np.asarray(
            rng.binomial(self.trials, self.inverse_link(eta)), dtype=float
        )


# ------------------------------------------------------------------ #
# Continuous families
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class GaussianFamily:
    """Gaussian response with identity link: ``Y ~ N(eta, sigma²)``."""

    sigma: float | None = None

    @property
    def name(self) -> str:
        return "gaussian"

    @property
    def support(self) -> str:
        return "continuous"

    @property
    def params(self) -> dict[str, Any]:
        return {"sigma": self.sigma}

    def validate(self) -> None:
        _require_positive("GaussianFamily", "sigma", self.sigma)

    def validate_y(self, y: np.ndarray) -> None:
        _require_numeric_finite("GaussianFamily", y)

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        return np.asarray(eta, dtype=float)

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        self.validate()
        return np.asarray(stats.norm.cdf(y, loc=eta, scale=self.sigma))

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        return self.cdf(y, eta)

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        self.validate()
        return np.asarray(rng.normal(loc=eta, scale=self.sigma))


@dataclass(frozen=True)
class GammaFamily:
    """Gamma response with log link.

    Mean ``μ = exp(eta)``, shape ``k`` and scale ``μ / k`` so that
    ``Var(Y) = μ² / k``.
    """

    shape: float | None = None

    @property
    def name(self) -> str:
        return "gamma"

    @property
    def support(self) -> str:
        return "continuous"

    @property
    def params(self) -> dict[str, Any]:
        return {"shape": self.shape}

    def validate(self) -> None:
        _require_positive("GammaFamily", "shape", self.shape)

    def validate_y(self, y: np.ndarray) -> None:
        _require_numeric_finite("GammaFamily", y)
        if np.any(y <= 0):
            msg = "GammaFamily requires strictly positive Y values."
            raise InvalidInputError(msg)

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        return np.exp(eta)

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        self.validate()
        scale = self.inverse_link(eta) / self.shape
        return np.asarray(stats.gamma.cdf(y, self.shape, scale=scale))

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        return self.cdf(y, eta)

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        self.validate()
        assert self.shape is not None
        return np.asarray(rng.gamma(self.shape, self.inverse_link(eta) / self.shape))


# ------------------------------------------------------------------ #
# Mixed families
# ------------------------------------------------------------------ #
#
# The Tweedie distribution with 1 < p < 2 is a compound Poisson–gamma:
#
#   N ~ Poisson(λ),   Y = Σ_{k=1..N} G_k,   G_k ~ Gamma(α, γ)
#
# with λ = μ^(2−p) / (φ(2−p)),  α = (2−p)/(p−1),  γ = φ(p−1)μ^(p−1).
#
# Y has a point mass exp(−λ) at zero and a continuous density above
# it, so the CDF is
#
#   F(y) = exp(−λ) + Σ_{k≥1} Poisson(k; λ) · GammaCDF(y; kα, γ).
#
# The series is truncated where the Poisson tail is negligible.


@dataclass(frozen=True)
class TweedieFamily:
    """Tweedie compound Poisson–gamma response with log link.

    Parameters
    ----------
    power : float
        Variance power ``p`` with ``1 < p < 2``; ``Var(Y) = φ·μ^p``.
    phi : float
        Dispersion ``φ > 0``.
    """

    power: float = 1.5
    phi: float | None = None

    @property
    def name(self) -> str:
        return "tweedie"

    @property
    def support(self) -> str:
        return "mixed"

    @property
    def params(self) -> dict[str, Any]:
        return {"power": self.power, "phi": self.phi}

    def validate(self) -> None:
        _require_positive("TweedieFamily", "phi", self.phi)
        if not 1.0 < self.power < 2.0:
            msg = f"TweedieFamily requires 1 < power < 2, got {self.power!r}."
            raise InvalidInputError(msg)

    def validate_y(self, y: np.ndarray) -> None:
        _require_numeric_finite("TweedieFamily", y)
        if np.any(y < 0):
            msg = "TweedieFamily requires non-negative Y values."
            raise InvalidInputError(msg)

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        return np.exp(eta)

    def _compound_params(
        self, eta: np.ndarray
    ) -> tuple[np.ndarray, float, np.ndarray]:
        self.validate()
        assert self.phi is not None
        p, phi = self.power, self.phi
        mu = self.inverse_link(eta)
        lam = mu ** (2.0 - p) / (phi * (2.0 - p))
        alpha = (2.0 - p) / (p - 1.0)
        gamma_scale = phi * (p - 1.0) * mu ** (p - 1.0)
        return lam, alpha, gamma_scale

    def cdf(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        y = np.asarray(y, dtype=float)
        lam, alpha, gamma_scale = self._compound_params(eta)
        lam, gamma_scale = np.broadcast_arrays(lam, gamma_scale)
        y_b = np.broadcast_to(y, lam.shape)

        lam_max = float(np.max(lam)) if lam.size else 0.0
        k_max = int(np.ceil(lam_max + 10.0 * np.sqrt(lam_max) + 20.0))
        k = np.arange(1, k_max + 1)  # (K,)

        weights = stats.poisson.pmf(k, lam[..., None])  # (..., K)
        gamma_cdf = stats.gamma.cdf(
            y_b[..., None], k * alpha, scale=gamma_scale[..., None]
        )
        total = np.exp(-lam) + np.sum(weights * gamma_cdf, axis=-1)
        total = np.where(y_b < 0, 0.0, total)
        return np.clip(total, 0.0, 1.0)

    def cdf_below(self, y: np.ndarray, eta: np.ndarray) -> np.ndarray:
        # Left limit drops the point mass at zero only.
        return np.where(np.asarray(y) <= 0, 0.0, self.cdf(y, eta))

    def sample(self, eta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        lam, alpha, gamma_scale = self._compound_params(eta)
        counts = rng.poisson(lam)
        # Sum of N iid Gamma(α, γ) is Gamma(Nα, γ); N = 0 gives 0.
        shape = np.maximum(counts * alpha, np.finfo(float).tiny)
        draws = rng.gamma(shape, gamma_scale)
        return np.where(counts > 0, draws, 0.0)


# ------------------------------------------------------------------ #
# Family registry
# ------------------------------------------------------------------ #

_FAMILIES: dict[str, type] = {}
"""Registry mapping family name strings to concrete ResponseFamily classes."""

_ALIASES = {
    "normal": "gaussian",
    "nb2": "negative_binomial",
    "nbinom2": "negative_binomial",
    "bernoulli": "binomial",
}


def register_family(name: str, cls: type) -> None:
    """Register a concrete ``ResponseFamily`` class under *name*.

    Args:
        name: Lookup key (e.g. ``"poisson"``).
        cls: A class implementing the ``ResponseFamily`` protocol.
            It must be constructible without arguments so the
            protocol check can run on a sentinel instance.

    Raises:
        TypeError: If *cls* does not satisfy the ``ResponseFamily``
            protocol.
    """
    # runtime_checkable protocols with non-method members do not
    # support issubclass(); use isinstance() on a sentinel instance.
    try:
        instance = cls()
    except Exception:  # noqa: BLE001
        msg = f"{cls!r} could not be instantiated for protocol check."
        raise TypeError(msg) from None
    if not isinstance(instance, ResponseFamily):
        msg = f"{cls!r} does not implement the ResponseFamily protocol."
        raise TypeError(msg)
    _FAMILIES[name] = cls


def available_families() -> list[str]:
    """Sorted names of every registered family."""
    return sorted(_FAMILIES)


def resolve_family(family: str | ResponseFamily, **params: Any) -> ResponseFamily:
    """Resolve a family string or instance to a ``ResponseFamily``.

    Instances are returned as-is, so callers can pass pre-configured
    families such as ``NegativeBinomialFamily(alpha=0.5)``.  Strings
    are looked up in the registry and constructed with *params*.

    Args:
        family: Registered family name (or alias) or an instance.
        **params: Constructor arguments for string lookups, e.g.
            ``resolve_family("gaussian", sigma=2.0)``.

    Returns:
        A ``ResponseFamily`` instance.

    Raises:
        UnsupportedFamilyError: If the name is not registered.
        InvalidInputError: If *params* are given alongside an
            instance.
    """
    if isinstance(family, ResponseFamily):
        if params:
            msg = (
                "resolve_family() received parameters "
                f"{sorted(params)} together with a family instance."
            )
            raise InvalidInputError(msg)
        return family

    key = _ALIASES.get(str(family).strip().lower(), str(family).strip().lower())
    if key not in _FAMILIES:
        available = ", ".join(available_families()) or "(none registered)"
        msg = f"Unknown family {family!r}.  Available families: {available}."
        raise UnsupportedFamilyError(msg)

    instance: ResponseFamily = _FAMILIES[key](**params)
    return instance


# ------------------------------------------------------------------ #
# Register built-in families
# ------------------------------------------------------------------ #

register_family("poisson", PoissonFamily)
register_family("negative_binomial", NegativeBinomialFamily)
register_family("binomial", BinomialFamily)
register_family("gaussian", GaussianFamily)
register_family("gamma", GammaFamily)
register_family("tweedie", TweedieFamily)
