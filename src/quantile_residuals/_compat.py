"""Input compatibility layer for optional Polars support.

Covariate tables handed to :class:`~quantile_residuals.FittedModel`
and the diagnostic adapter may be pandas or Polars frames.  Polars
frames (eager or lazy) are converted to ``pandas.DataFrame`` at the
boundary so the rest of the package only ever sees pandas.

Polars is **not** a required dependency.  If it is not installed, the
converter simply passes pandas objects through untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeAlias

import numpy as np
import pandas as pd

from ._exceptions import InvalidInputError

if TYPE_CHECKING:
    import polars as pl

    DataFrameLike: TypeAlias = pd.DataFrame | pl.DataFrame | pl.LazyFrame
else:
    DataFrameLike: TypeAlias = pd.DataFrame

# Polars is optional.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _ensure_pandas_df(obj: DataFrameLike, *, name: str = "input") -> pd.DataFrame:
    """Convert *obj* to a :class:`pandas.DataFrame` if necessary.

    Accepted types:
        * ``pandas.DataFrame`` — returned as-is.
        * ``numpy.ndarray`` (2-D) — wrapped with ``x0, x1, …`` columns.
        * ``polars.DataFrame`` — converted via ``.to_pandas()``.
        * ``polars.LazyFrame`` — collected then converted.

    Args:
        obj: A pandas or Polars DataFrame (or LazyFrame), or a 2-D
            array.
        name: Label used in error messages (e.g. ``"covariates"``).

    Returns:
        A pandas ``DataFrame``.

    Raises:
        TypeError: If *obj* is not a recognised table type.
    """
    if isinstance(obj, pd.DataFrame):
        return obj

    if isinstance(obj, np.ndarray):
        if obj.ndim != 2:
            msg = f"'{name}' must be 2-D when given as an array, got shape {obj.shape}."
            raise InvalidInputError(msg)
        return pd.DataFrame(obj, columns=[f"x{j}" for j in range(obj.shape[1])])

    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            return obj.collect().to_pandas()
        if isinstance(obj, pl.DataFrame):
            return obj.to_pandas()

    raise TypeError(
        f"'{name}' must be a pandas DataFrame"
        + (" or Polars DataFrame/LazyFrame" if _HAS_POLARS else "")
        + f", got {type(obj).__name__}."
    )
