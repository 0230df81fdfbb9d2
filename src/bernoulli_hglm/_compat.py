"""Input compatibility layer for optional Polars support.

The data-bundle builders accept NumPy arrays and pandas objects.  This
module adds transparent support for Polars DataFrames and Series: when
a user passes a ``polars.DataFrame`` (or ``polars.LazyFrame``) it is
converted to ``pandas.DataFrame`` at the boundary so that internal
code, which operates on float64 NumPy arrays, remains unchanged.

Polars is **not** a required dependency.  If it is not installed, the
converter simply passes pandas objects through untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DataFrameLike: TypeAlias = pd.DataFrame | pl.DataFrame | pl.LazyFrame
else:
    DataFrameLike: TypeAlias = pd.DataFrame

# Runtime detection — avoids a hard dependency on Polars.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _ensure_pandas_df(obj: DataFrameLike, *, name: str = "input") -> pd.DataFrame:
    """Convert *obj* to a :class:`pandas.DataFrame` if necessary.

    Accepted types:
        * ``pandas.DataFrame`` — returned as-is.
        * ``polars.DataFrame`` — converted via ``.to_pandas()``.
        * ``polars.LazyFrame`` — collected then converted.

    Args:
        obj: A pandas or Polars DataFrame (or LazyFrame).
        name: Label used in error messages (e.g. ``"X"`` or ``"y"``).

    Returns:
        A pandas ``DataFrame``.

    Raises:
        TypeError: If *obj* is not a recognised DataFrame type.
    """
    if isinstance(obj, pd.DataFrame):
        return obj

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


def _as_float_matrix(obj: Any, *, name: str = "X", n_cols: int | None = None) -> np.ndarray:
    """Coerce a design-matrix-like object to a 2-D float64 array.

    NumPy arrays (1-D arrays become a single column when *n_cols* is 1
    or unknown), pandas/Polars frames and nested lists are accepted.
    An empty input with a known *n_cols* becomes a ``(0, n_cols)``
    array so that partitions without observations keep their width.
    """
    if isinstance(obj, np.ndarray):
        arr = obj
    elif isinstance(obj, (pd.DataFrame, pd.Series)):
        arr = obj.to_numpy()
    elif _HAS_POLARS and isinstance(obj, (pl.DataFrame, pl.LazyFrame)):
        arr = _ensure_pandas_df(obj, name=name).to_numpy()
    else:
        arr = np.asarray(obj)

    arr = np.asarray(arr, dtype=np.float64)
    if arr.size == 0 and n_cols is not None and arr.ndim != 2:
        return np.zeros((0, n_cols), dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        msg = f"'{name}' must be 2-D, got shape {arr.shape}."
        raise ValueError(msg)
    return arr


def _as_float_vector(obj: Any, *, name: str = "input") -> np.ndarray:
    """Coerce a vector-like object (array, list, Series) to 1-D float64."""
    if isinstance(obj, (pd.Series, pd.DataFrame)):
        obj = obj.to_numpy()
    elif _HAS_POLARS and isinstance(obj, pl.Series):
        obj = obj.to_numpy()
    arr = np.asarray(obj, dtype=np.float64)
    if arr.ndim == 0:
        arr = arr.reshape(1)
    elif arr.ndim == 2 and arr.shape[1] == 1:
        # Single-column frame, e.g. ``y`` passed as a DataFrame.
        arr = arr.ravel()
    if arr.ndim != 1:
        msg = f"'{name}' must be 1-D, got shape {arr.shape}."
        raise ValueError(msg)
    return arr
