"""Covariance factors for grouped random effects (onion method).

Each grouping term i contributes pᵢ correlated effects per level.  Its
covariance is parameterised through a *decomposition of covariance*:

* a total scale ``τᵢ·scaleᵢ`` fixing the trace,
  ``trace(Σᵢ) = (τᵢ·scaleᵢ)² · pᵢ``;
* a simplex ``πᵢ`` (normalised ``ζ`` draws, so Dirichlet under the
  Gamma prior on ``ζ``) splitting that trace across the pᵢ variances,
  ``diag(Σᵢ) = πᵢ · trace``;
* a correlation matrix generated row by row by the onion method from
  pᵢ − 1 values ``ρ ∈ (0, 1)`` and, for pᵢ > 2, raw direction vectors
  ``z_T``.

The output is the lower-triangular factor Tᵢ with ``Σᵢ = Tᵢ Tᵢᵀ``,
flattened into the shared ``theta_L`` vector.

Onion construction
~~~~~~~~~~~~~~~~~~
Row 0 is ``[sd₀]``.  Row 1 is the two-variable Cholesky row for the
correlation ``r = 2ρ₀ − 1``: ``[sd₁·r, sd₁·√(1 − r²)]``.  Each further
row k takes a raw vector of length k, rescales it to squared norm
``ρ_{k−1}`` and closes the row with ``√(1 − ρ_{k−1})`` on the
diagonal, so every row of the correlation factor has unit norm before
scaling by ``sd_k = √(π_k · trace)``.

Layout
~~~~~~
:func:`lower_triangle_indices` is the single definition of the flat
order (column outer, row ≥ column inner).  :func:`flatten_lower` and
:func:`unflatten_lower` are both derived from it, so the writer here
and the reader in :mod:`~bernoulli_hglm.random_effects` cannot drift
apart.  Segment offsets into ``theta_L``, ``rho``, ``z_T``, ``zeta``
and ``b`` are computed once by :class:`GroupTermLayout`.
"""

from __future__ import annotations

import functools
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from ._backends import BackendProtocol, resolve_backend

# ------------------------------------------------------------------ #
# Lower-triangle layout (shared by writer and reader)
# ------------------------------------------------------------------ #


@functools.lru_cache(maxsize=64)
def lower_triangle_indices(p: int) -> tuple[np.ndarray, np.ndarray]:
    """Row and column indices of a p×p lower triangle in flat order.

    The order is column-major over the lower triangle: column ``c``
    outer, rows ``c..p-1`` inner.  For p = 3 the flat vector is
    ``[T00, T10, T20, T11, T21, T22]``.
    """
    rows: list[int] = []
    cols: list[int] = []
    for c in range(p):
        for r in range(c, p):
            rows.append(r)
            cols.append(c)
    row_idx = np.asarray(rows, dtype=np.intp)
    col_idx = np.asarray(cols, dtype=np.intp)
    row_idx.flags.writeable = False
    col_idx.flags.writeable = False
    return row_idx, col_idx


@functools.lru_cache(maxsize=64)
def _lower_triangle_positions(p: int) -> np.ndarray:
    # (p, p) map from matrix cell to flat position; -1 above the diagonal.
    rows, cols = lower_triangle_indices(p)
    positions = np.full((p, p), -1, dtype=np.intp)
    positions[rows, cols] = np.arange(len(rows))
    positions.flags.writeable = False
    return positions


def flatten_lower(T: Any) -> Any:
    """Flatten the lower triangle of a square matrix in flat order."""
    rows, cols = lower_triangle_indices(T.shape[0])
    return T[rows, cols]


def unflatten_lower(flat: Any, p: int, backend: BackendProtocol | str | None = None) -> Any:
    """Rebuild a p×p lower-triangular matrix from its flat segment.

    Built by gathering from *flat* (zeros above the diagonal) rather
    than by indexed writes, so it is traceable on the JAX backend.
    """
    be = resolve_backend(backend)
    xp = be.xp
    positions = _lower_triangle_positions(p)
    mask = positions >= 0
    gathered = be.asarray(flat)[np.where(mask, positions, 0)]
    return xp.where(mask, gathered, 0.0)


# ------------------------------------------------------------------ #
# Term layout
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class TermSegment:
    """Slices of every per-term parameter block for one grouping term."""

    index: int
    p: int
    l: int  # noqa: E741
    theta_L: slice
    rho: slice
    z_T: slice
    zeta: slice
    b: slice


@dataclass(frozen=True)
class GroupTermLayout:
    """Sizes and segment offsets for t grouping terms.

    Attributes:
        p: Correlated effects per level, one entry per term (each ≥ 1).
        l: Number of levels, one entry per term (each ≥ 1).
    """

    p: tuple[int, ...] = ()
    l: tuple[int, ...] = ()  # noqa: E741

    def __post_init__(self) -> None:
        p = tuple(int(x) for x in self.p)
        l = tuple(int(x) for x in self.l)  # noqa: E741
        if len(p) != len(l):
            msg = f"p and l must have the same length, got {len(p)} and {len(l)}."
            raise ValueError(msg)
        if any(x < 1 for x in p):
            msg = f"Every p_i must be >= 1, got {list(p)}."
            raise ValueError(msg)
        if any(x < 1 for x in l):
            msg = f"Every l_i must be >= 1, got {list(l)}."
            raise ValueError(msg)
        object.__setattr__(self, "p", p)
        object.__setattr__(self, "l", l)

    @classmethod
    def from_terms(cls, terms: Sequence[tuple[int, int]]) -> GroupTermLayout:
        """Build from ``[(p_1, l_1), …]`` pairs."""
        return cls(p=tuple(p for p, _ in terms), l=tuple(l for _, l in terms))

    @property
    def t(self) -> int:
        return len(self.p)

    @property
    def q(self) -> int:
        return sum(p * l for p, l in zip(self.p, self.l))

    @property
    def len_theta_L(self) -> int:
        return sum(p * (p + 1) // 2 for p in self.p)

    @property
    def len_rho(self) -> int:
        return sum(p - 1 for p in self.p)

    @property
    def len_z_T(self) -> int:
        # Rows 2..p-1 of the onion consume 2, 3, …, p-1 raw entries.
        return sum(p * (p - 1) // 2 - 1 for p in self.p if p > 2)

    @property
    def len_concentration(self) -> int:
        return sum(p for p in self.p if p > 1)

    def segments(self) -> Iterator[TermSegment]:
        """Yield one :class:`TermSegment` per term, in term order."""
        theta = rho = z_T = zeta = b = 0
        for i, (p, l) in enumerate(zip(self.p, self.l)):  # noqa: E741
            n_theta = p * (p + 1) // 2
            n_rho = p - 1
            n_z_T = p * (p - 1) // 2 - 1 if p > 2 else 0
            n_zeta = p if p > 1 else 0
            n_b = p * l
            yield TermSegment(
                index=i,
                p=p,
                l=l,
                theta_L=slice(theta, theta + n_theta),
                rho=slice(rho, rho + n_rho),
                z_T=slice(z_T, z_T + n_z_T),
                zeta=slice(zeta, zeta + n_zeta),
                b=slice(b, b + n_b),
            )
            theta += n_theta
            rho += n_rho
            z_T += n_z_T
            zeta += n_zeta
            b += n_b


# ------------------------------------------------------------------ #
# Onion method
# ------------------------------------------------------------------ #


def _onion_block(
    p: int,
    total_sd: Any,
    zeta: Any,
    rho: Any,
    z_T: Any,
    be: BackendProtocol,
) -> Any:
    """Lower-triangular factor T for one term with p > 1."""
    xp = be.xp
    trace = total_sd**2 * p
    pi = zeta / xp.sum(zeta)
    sd = xp.sqrt(pi * trace)
    zero = be.asarray(0.0)

    r = 2.0 * rho[0] - 1.0
    rows = [
        [sd[0]],
        [sd[1] * r, sd[1] * xp.sqrt(1.0 - r**2)],
    ]
    z_T_pos = 0
    for k in range(2, p):
        raw = z_T[z_T_pos : z_T_pos + k]
        z_T_pos += k
        scale_factor = xp.sqrt(rho[k - 1] / xp.dot(raw, raw)) * sd[k]
        rows.append([*(raw * scale_factor), xp.sqrt(1.0 - rho[k - 1]) * sd[k]])

    padded = [xp.stack([*row, *([zero] * (p - len(row)))]) for row in rows]
    return xp.stack(padded)


def covariance_blocks(
    layout: GroupTermLayout,
    tau: Any,
    scale: Any,
    zeta: Any,
    rho: Any,
    z_T: Any,
    dispersion: float = 1.0,
    backend: BackendProtocol | str | None = None,
) -> list[Any]:
    """Per-term covariance factors ``T_i`` as ``(p_i, p_i)`` matrices.

    For p_i = 1 the block is the 1×1 matrix ``[[τ_i·scale_i·dispersion]]``.
    See the module docstring for p_i > 1.
    """
    be = resolve_backend(backend)
    tau = be.asarray(tau)
    scale = be.asarray(scale)
    zeta = be.asarray(zeta)
    rho = be.asarray(rho)
    z_T = be.asarray(z_T)

    blocks: list[Any] = []
    for seg in layout.segments():
        total_sd = tau[seg.index] * scale[seg.index] * dispersion
        if seg.p == 1:
            blocks.append(be.xp.reshape(total_sd, (1, 1)))
        else:
            blocks.append(
                _onion_block(
                    seg.p, total_sd, zeta[seg.zeta], rho[seg.rho], z_T[seg.z_T], be
                )
            )
    return blocks


def make_theta_L(
    layout: GroupTermLayout,
    tau: Any,
    scale: Any,
    zeta: Any,
    rho: Any,
    z_T: Any,
    dispersion: float = 1.0,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Flattened covariance factors of every term, concatenated.

    Args:
        layout: Term sizes and segment offsets.
        tau: Per-term total-scale parameters ``(t,)``, positive.
        scale: Per-term scale hyperparameters ``(t,)``, positive.
        zeta: Simplex sources ``(len_concentration,)``, positive.
        rho: Onion parameters ``(len_rho,)``, in (0, 1).
        z_T: Raw onion directions ``(len_z_T,)``.
        dispersion: Residual scale folded into the factors (1 for a
            Bernoulli response).
        backend: Backend name or instance.

    Returns:
        ``theta_L`` of length ``layout.len_theta_L``.
    """
    be = resolve_backend(backend)
    blocks = covariance_blocks(
        layout, tau, scale, zeta, rho, z_T, dispersion=dispersion, backend=be
    )
    if not blocks:
        return be.asarray(np.zeros(0))
    return be.xp.concatenate([flatten_lower(T) for T in blocks])
