"""Default options for residual computation.

Controls the values used by :func:`~quantile_residuals.compute_residuals`
when a keyword is left as ``None``.  Four options are recognised:

================  ===============================  ==================
Option            Environment variable             Built-in default
================  ===============================  ==================
``mode``          ``QUANTILE_RESIDUALS_MODE``          ``"posterior_draw"``
``method``        ``QUANTILE_RESIDUALS_METHOD``        ``"analytical"``
``scale``         ``QUANTILE_RESIDUALS_SCALE``         ``"normal"``
``n_replicates``  ``QUANTILE_RESIDUALS_N_REPLICATES``  ``250``
================  ===============================  ==================

Resolution order (first match wins):
    1. Programmatic override via :func:`set_option`.
    2. The option's environment variable.
    3. The built-in default.

There is no seed option: every call that needs
randomness takes an explicit ``random_state``.

Examples:
    Use empirical-Bayes random effects by default from the shell::

        export QUANTILE_RESIDUALS_MODE=empirical_bayes

    Programmatically::

        import quantile_residuals
        quantile_residuals.set_option("n_replicates", 1000)

    Restore the default resolution::

        quantile_residuals.set_option("n_replicates", "auto")
"""

from __future__ import annotations

import os
from typing import Any

MODES = ("empirical_bayes", "posterior_draw", "mcmc")
METHODS = ("analytical", "simulation")
SCALES = ("uniform", "normal")

_DEFAULTS: dict[str, Any] = {
    "mode": "posterior_draw",
    "method": "analytical",
    "scale": "normal",
    "n_replicates": 250,
}

_ENV_VARS = {name: f"QUANTILE_RESIDUALS_{name.upper()}" for name in _DEFAULTS}

# Programmatic overrides; a missing key means "no override".
_overrides: dict[str, Any] = {}


def _validate(name: str, value: Any) -> Any:
    """Normalise *value* for option *name* or raise ``ValueError``."""
    if name == "n_replicates":
        try:
            n = int(value)
        except (TypeError, ValueError):
            msg = f"Option 'n_replicates' must be an integer, got {value!r}."
            raise ValueError(msg) from None
        if n < 1:
            msg = f"Option 'n_replicates' must be >= 1, got {n}."
            raise ValueError(msg)
        return n

    choices = {"mode": MODES, "method": METHODS, "scale": SCALES}[name]
    normalised = str(value).strip().lower()
    if normalised not in choices:
        msg = f"Unknown {name} '{value}'. Choose from: {sorted(choices)}"
        raise ValueError(msg)
    return normalised


def _check_name(name: str) -> None:
    if name not in _DEFAULTS:
        msg = f"Unknown option '{name}'. Available options: {sorted(_DEFAULTS)}"
        raise ValueError(msg)


def get_option(name: str) -> Any:
    """Return the active value of option *name*.

    Args:
        name: One of ``"mode"``, ``"method"``, ``"scale"``,
            ``"n_replicates"``.

    Returns:
        The override if set, else the environment value if set and
        valid, else the built-in default.

    Raises:
        ValueError: If *name* is not a recognised option, or the
            environment variable holds an invalid value.
    """
    _check_name(name)

    # 1. Programmatic override
    if name in _overrides:
        return _overrides[name]

    # 2. Environment variable
    env = os.environ.get(_ENV_VARS[name], "").strip()
    if env:
        return _validate(name, env)

    # 3. Built-in default
    return _DEFAULTS[name]


def set_option(name: str, value: Any) -> None:
    """Override option *name*.

    Args:
        name: Option name.
        value: New value.  ``None`` or ``"auto"`` removes the override
            and restores the default resolution order.

    Raises:
        ValueError: If *name* or *value* is not recognised.
    """
    _check_name(name)
    if value is None or (isinstance(value, str) and value.strip().lower() == "auto"):
        _overrides.pop(name, None)
        return
    _overrides[name] = _validate(name, value)


def reset_options() -> None:
    """Remove every programmatic override."""
    _overrides.clear()
