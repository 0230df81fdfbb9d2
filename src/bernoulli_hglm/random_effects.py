"""Correlated group-level coefficients from standardized draws.

Non-centred parameterisation: the sampler moves ``z_b ~ N(0, I)`` and
the actual coefficients are ``b = T z_b`` level by level, with ``T``
the term's covariance factor from :mod:`~bernoulli_hglm.covariance`.
For a p×l term the level-``j`` slice ``z_b[j·p:(j+1)·p]`` maps to
``T @ z_b[j·p:(j+1)·p]``; stacking the l slices as rows of an
``(l, p)`` matrix turns the whole term into one product
``Z_term @ Tᵀ``.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from ._backends import BackendProtocol, resolve_backend
from .covariance import GroupTermLayout, unflatten_lower


def make_b(
    z_b: Any,
    theta_L: Any,
    layout: GroupTermLayout,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Random-effect coefficients ``b`` of length q.

    Args:
        z_b: Standardized draws ``(q,)``, one contiguous segment of
            ``p_i`` values per level.
        theta_L: Flattened covariance factors from
            :func:`~bernoulli_hglm.covariance.make_theta_L`.
        layout: Term sizes and segment offsets.
        backend: Backend name or instance.

    Returns:
        ``b`` ordered by term, then level, then effect.

    Raises:
        ValueError: If ``z_b`` or ``theta_L`` have the wrong length.
    """
    be = resolve_backend(backend)
    xp = be.xp
    z_b = be.asarray(z_b)
    theta_L = be.asarray(theta_L)

    if z_b.shape != (layout.q,):
        msg = f"z_b must have shape ({layout.q},), got {tuple(z_b.shape)}."
        raise ValueError(msg)
    if theta_L.shape != (layout.len_theta_L,):
        msg = (
            f"theta_L must have shape ({layout.len_theta_L},), "
            f"got {tuple(theta_L.shape)}."
        )
        raise ValueError(msg)

    pieces: list[Any] = []
    for seg in layout.segments():
        z_term = z_b[seg.b]
        if seg.p == 1:
            pieces.append(theta_L[seg.theta_L.start] * z_term)
        else:
            T = unflatten_lower(theta_L[seg.theta_L], seg.p, backend=be)
            levels = xp.reshape(z_term, (seg.l, seg.p))
            pieces.append(xp.reshape(levels @ T.T, (-1,)))

    if not pieces:
        return be.asarray(np.zeros(0))
    return xp.concatenate(pieces)
