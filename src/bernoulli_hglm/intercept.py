"""Intercept handling and the log-link feasibility bound.

Under the log link the linear predictor is a log-probability, so every
row must satisfy ``γ + η_i ≤ 0``.  For any other link the intercept is
unbounded.

Before exponentiating under the log link the predictor is shifted by
``max(η)``, which keeps the non-intercept part ≤ 0 and moves the whole
feasibility constraint onto the intercept (``γ ≤ 0``).  The shift is a
reparameterisation, not a no-op: the intercept actually in effect is
``γ − shift``, and reported intercepts must carry it.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np

from ._backends import BackendProtocol, resolve_backend
from .links import Link, resolve_link


def _partition_max(eta0: Any, eta1: Any, xp: Any) -> Any:
    parts = [e for e in (eta0, eta1) if e.shape[0] > 0]
    if not parts:
        return xp.asarray(0.0)
    return xp.max(xp.concatenate(parts))


def intercept_upper_bound(
    link: Link | int | str,
    X0: Any,
    X1: Any,
    beta: Any,
    offset0: Any = None,
    offset1: Any = None,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Largest feasible intercept.

    Returns ``+inf`` unless *link* is the log link; otherwise
    ``−max(X·beta + offset)`` over both partitions, so that
    ``γ + X·beta + offset ≤ 0`` on every row (``0`` when both
    partitions are empty).

    Raises:
        ValueError: If *link* is invalid.
    """
    link = resolve_link(link)
    if link is not Link.LOG:
        return math.inf

    be = resolve_backend(backend)
    eta0 = be.asarray(X0) @ be.asarray(beta)
    eta1 = be.asarray(X1) @ be.asarray(beta)
    if offset0 is not None:
        eta0 = eta0 + be.asarray(offset0)
    if offset1 is not None:
        eta1 = eta1 + be.asarray(offset1)
    return -_partition_max(eta0, eta1, be.xp)


def log_link_shift(eta0: Any, eta1: Any, backend: BackendProtocol | str | None = None) -> Any:
    """``max(eta0 ∪ eta1)``, or 0 when both partitions are empty."""
    be = resolve_backend(backend)
    return _partition_max(be.asarray(eta0), be.asarray(eta1), be.xp)


def apply_intercept(
    eta0: Any,
    eta1: Any,
    gamma: Any,
    link: Link | int | str,
    backend: BackendProtocol | str | None = None,
) -> tuple[Any, Any, Any]:
    """Add the intercept to both partitions.

    Under the log link the predictor is first shifted down by
    :func:`log_link_shift`.

    Returns:
        ``(eta0, eta1, shift)`` with ``shift = 0`` for other links.
    """
    link = resolve_link(link)
    be = resolve_backend(backend)
    eta0 = be.asarray(eta0)
    eta1 = be.asarray(eta1)

    if link is not Link.LOG:
        return gamma + eta0, gamma + eta1, be.asarray(np.float64(0.0))

    shift = log_link_shift(eta0, eta1, backend=be)
    return gamma + eta0 - shift, gamma + eta1 - shift, shift
