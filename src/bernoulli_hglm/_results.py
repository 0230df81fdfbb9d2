"""Typed result object for the generate pass.

A frozen dataclass that provides:

* **Attribute access** — ``result.alpha``, ``result.mean_PPD``.
* **Dict-like access** — ``result["alpha"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax (the
  generate contract is documented as a mapping).
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy and JAX values converted to native Python.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any

import numpy as np

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert array scalars/arrays to Python-native types.

    Handles nested dicts, lists, np.ndarray, np.integer and
    np.floating; anything exposing ``__array__`` (JAX arrays) is
    routed through NumPy first.
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
    if hasattr(obj, "__array__"):
        return _numpy_to_python(np.asarray(obj))
    return obj


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
        """Convert to a plain, JSON-serialisable dictionary."""
        return {
            f.name: _numpy_to_python(getattr(self, f.name))
            for f in fields(self)  # type: ignore[arg-type]
        }


# ------------------------------------------------------------------ #
# GeneratedQuantities
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class GeneratedQuantities(_DictAccessMixin):
    """Derived quantities of one parameter point.

    Attributes:
        alpha: Intercept on the uncentered, unshifted scale
            (``gamma − xbar·beta − shift``); ``None`` without an
            intercept.
        mean_PPD: Mean of one posterior-predictive Bernoulli draw per
            observation; NaN when there are no observations.
        beta: Fixed-effect coefficients ``(K,)``.
        b: Random-effect coefficients ``(q,)``.
        theta_L: Flattened covariance factors ``(len_theta_L,)``.
    """

    alpha: float | None
    mean_PPD: float
    beta: np.ndarray
    b: np.ndarray
    theta_L: np.ndarray
