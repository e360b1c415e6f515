"""Typed value objects for residual computation.

Frozen dataclasses that provide:

* **Attribute access** — ``result.uniform``, ``result.method``, etc.
* **Dict-like access** — ``result["uniform"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy types converted to native Python.

Three types follow the data flow of the engine:

* :class:`RandomEffectDraw` — one realization of the random-effect
  vector with its provenance.
* :class:`ReplicateBatch` — ``N`` replicate response vectors simulated
  conditional on exactly one draw.
* :class:`ResidualResult` — the residual vector, stored on the uniform
  scale; the normal scale is always derived from it.

Arrays are copied on construction and marked read-only, so a result is
a snapshot that cannot be mutated after creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, ClassVar

import numpy as np
from typing_extensions import Self

from . import transforms
from ._exceptions import InvalidInputError

PROVENANCES = ("empirical_bayes", "posterior_draw", "mcmc")
SCALES = ("uniform", "normal")

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy scalars/arrays to Python-native types.

    Handles nested dicts, lists, np.ndarray, np.integer, and
    np.floating so that :meth:`to_dict` returns a fully
    JSON-serialisable structure.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


def _frozen_array(values: Any, *, ndim: int, name: str) -> np.ndarray:
    """Copy *values* to a float array of *ndim* dims and lock it."""
    arr = np.array(values, dtype=float, copy=True)
    if arr.ndim != ndim:
        msg = f"'{name}' must be {ndim}-D, got shape {arr.shape}."
        raise InvalidInputError(msg)
    arr.setflags(write=False)
    return arr


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test
    """

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary.

        Nested results are converted recursively, then
        :func:`_numpy_to_python` runs on every value so the returned
        dict is fully JSON-serialisable.
        """
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            val = getattr(self, f.name)
            if isinstance(val, _DictAccessMixin):
                val = val.to_dict()
            result[f.name] = _numpy_to_python(val)
        return result


# ------------------------------------------------------------------ #
# RandomEffectDraw
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class RandomEffectDraw(_DictAccessMixin):
    """One realization of the random-effect vector.

    Created once per residual computation (or once per replicate
    batch) and passed explicitly to everything that needs it.

    Attributes:
        values: Random-effect vector of shape ``(q,)``; ``q`` may be 0.
        provenance: ``"empirical_bayes"``, ``"posterior_draw"`` or
            ``"mcmc"``.
        mcmc_index: Row of the external MCMC batch, for ``"mcmc"``
            draws only.
    """

    values: np.ndarray
    provenance: str
    mcmc_index: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "values", _frozen_array(self.values, ndim=1, name="values")
        )
        if self.provenance not in PROVENANCES:
            msg = (
                f"Unknown provenance {self.provenance!r}. "
                f"Choose from: {list(PROVENANCES)}"
            )
            raise InvalidInputError(msg)
        if (self.provenance == "mcmc") != (self.mcmc_index is not None):
            msg = "mcmc_index must be set exactly when provenance is 'mcmc'."
            raise InvalidInputError(msg)

    @property
    def n_random(self) -> int:
        return int(self.values.shape[0])


# ------------------------------------------------------------------ #
# ReplicateBatch
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ReplicateBatch(_DictAccessMixin):
    """Replicate responses simulated under one random-effect draw.

    Attributes:
        values: Matrix of shape ``(N, n)`` — rows are replicates,
            columns are observations.
        draw: The single :class:`RandomEffectDraw` shared by every
            replicate in the batch.
    """

    values: np.ndarray
    draw: RandomEffectDraw

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "values", _frozen_array(self.values, ndim=2, name="values")
        )
        if self.values.shape[0] < 1:
            msg = "ReplicateBatch requires at least one replicate."
            raise InvalidInputError(msg)

    @property
    def n_replicates(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_obs(self) -> int:
        return int(self.values.shape[1])


# ------------------------------------------------------------------ #
# ResidualResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class ResidualResult(_DictAccessMixin):
    """Randomized quantile residuals for one fitted model.

    Residuals are stored once, on the uniform scale.  The normal scale
    is derived on access through ``norm.ppf`` — the two are never
    computed from separate random draws.

    Attributes:
        uniform: Residuals on the U(0, 1) scale, shape ``(n,)``.
        method: ``"analytical"`` or ``"simulation"``.
        draw: The random-effect realization the residuals condition on.
        observed: Observed response vector, shape ``(n,)``.
        randomized: Whether discrete ties were randomized.
        scale: Scale returned by :attr:`residuals` (``"uniform"`` or
            ``"normal"``).
        batch: The replicate batch for simulation residuals, else
            ``None``.
    """

    uniform: np.ndarray
    method: str
    draw: RandomEffectDraw
    observed: np.ndarray
    randomized: bool = True
    scale: str = "normal"
    batch: ReplicateBatch | None = field(default=None, repr=False)

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"batch"})

    def __post_init__(self) -> None:
        if self.scale not in SCALES:
            msg = f"Unknown scale '{self.scale}'. Choose from: {list(SCALES)}"
            raise InvalidInputError(msg)
        object.__setattr__(
            self, "uniform", _frozen_array(self.uniform, ndim=1, name="uniform")
        )
        object.__setattr__(
            self, "observed", _frozen_array(self.observed, ndim=1, name="observed")
        )
        if self.uniform.shape != self.observed.shape:
            msg = (
                f"uniform residuals {self.uniform.shape} and observed "
                f"{self.observed.shape} must have the same shape."
            )
            raise InvalidInputError(msg)

    @property
    def n_obs(self) -> int:
        return int(self.uniform.shape[0])

    @property
    def normal(self) -> np.ndarray:
        """Residuals on the N(0, 1) scale, ``norm.ppf(uniform)``."""
        z = transforms.to_normal(self.uniform)
        z.setflags(write=False)
        return z

    @property
    def residuals(self) -> np.ndarray:
        """Residuals on the result's configured :attr:`scale`."""
        return self.values(self.scale)

    def with_scale(self, scale: str) -> Self:
        """Return a copy whose :attr:`residuals` are on *scale*."""
        return replace(self, scale=scale)

    @property
    def nonfinite(self) -> np.ndarray:
        """Boolean mask of residuals that are ``±inf`` on the normal scale."""
        return ~np.isfinite(self.normal)

    def values(self, scale: str = "normal") -> np.ndarray:
        """Return the residuals on *scale* (``"uniform"`` or ``"normal"``)."""
        if scale == "uniform":
            return self.uniform
        if scale == "normal":
            return self.normal
        msg = f"Unknown scale '{scale}'. Choose from: ['normal', 'uniform']"
        raise InvalidInputError(msg)

    def finite(self, scale: str = "normal") -> np.ndarray:
        """Residuals on *scale* with non-finite normal-scale entries dropped."""
        return np.asarray(self.values(scale)[~self.nonfinite])
