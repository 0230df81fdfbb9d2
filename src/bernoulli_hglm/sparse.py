"""Compressed-sparse-row random-effects design.

The random-effects design ``Z`` has one column per random coefficient
(q = Σ pᵢ·lᵢ) but, for each row, only pᵢ non-zeros per grouping term:
the level's intercept indicator and its slope values.  It is stored in
CSR form:

* ``w`` — non-zero values, row by row;
* ``v`` — 0-based column index of each value;
* ``u`` — row pointers, ``len(u) == n_rows + 1``; the non-zeros of
  row ``i`` are ``w[u[i]:u[i+1]]``.

The encoding is validated once, at construction, so that the hot path
(:func:`csr_matvec`, called on every density evaluation) is a single
gather plus a segment sum with no Python loop over rows.

Column order
~~~~~~~~~~~~
:func:`build_random_effects_design` lays out the q columns term by
term, then level by level, then effect by effect::

    [term0 level0 (int, slope…), term0 level1 (int, slope…), …,
     term1 level0 (…), …]

which is exactly the order in which
:func:`~bernoulli_hglm.random_effects.make_b` emits ``b``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from scipy import sparse
from typing_extensions import Self

from ._backends import BackendProtocol, resolve_backend


@dataclass(frozen=True, eq=False)
class CSRMatrix:
    """Validated CSR encoding of a random-effects design block.

    Attributes:
        w: Non-zero values ``(nnz,)``.
        v: Column indices ``(nnz,)``, each in ``[0, n_cols)``.
        u: Row pointers ``(n_rows + 1,)``, non-decreasing, starting at
            0 and ending at ``nnz``.
        n_cols: Number of columns (q).
    """

    w: np.ndarray
    v: np.ndarray
    u: np.ndarray
    n_cols: int
    row_ids: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        w = np.asarray(self.w, dtype=np.float64).reshape(-1)
        v = np.asarray(self.v, dtype=np.intp).reshape(-1)
        u = np.asarray(self.u, dtype=np.intp).reshape(-1)

        if len(v) != len(w):
            msg = (
                f"CSR column-index array has {len(v)} entries but the "
                f"value array has {len(w)}."
            )
            raise ValueError(msg)
        if len(u) < 1:
            msg = "CSR row-pointer array must have length n_rows + 1 >= 1."
            raise ValueError(msg)
        if u[0] != 0 or u[-1] != len(w):
            msg = (
                f"CSR row pointers must start at 0 and end at nnz={len(w)}, "
                f"got {int(u[0])}..{int(u[-1])}."
            )
            raise ValueError(msg)
        if np.any(np.diff(u) < 0):
            msg = "CSR row pointers must be non-decreasing."
            raise ValueError(msg)
        if len(v) and (v.min() < 0 or v.max() >= self.n_cols):
            msg = (
                f"CSR column indices must lie in [0, {self.n_cols}), got "
                f"range [{int(v.min())}, {int(v.max())}]."
            )
            raise ValueError(msg)

        # Row id of every non-zero — the segment key for csr_matvec.
        row_ids = np.repeat(np.arange(len(u) - 1, dtype=np.intp), np.diff(u))

        object.__setattr__(self, "w", w)
        object.__setattr__(self, "v", v)
        object.__setattr__(self, "u", u)
        object.__setattr__(self, "n_cols", int(self.n_cols))
        object.__setattr__(self, "row_ids", row_ids)

    @property
    def n_rows(self) -> int:
        return len(self.u) - 1

    @property
    def nnz(self) -> int:
        return len(self.w)

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_rows, self.n_cols)

    @classmethod
    def from_dense(cls, Z: Any) -> Self:
        """Encode a dense ``(n_rows, n_cols)`` matrix, dropping zeros."""
        Z = np.asarray(Z, dtype=np.float64)
        if Z.ndim != 2:
            msg = f"Z must be 2-D, got shape {Z.shape}."
            raise ValueError(msg)
        csr = sparse.csr_array(Z)
        csr.eliminate_zeros()
        csr.sort_indices()
        return cls(w=csr.data, v=csr.indices, u=csr.indptr, n_cols=Z.shape[1])

    @classmethod
    def empty(cls, n_rows: int, n_cols: int = 0) -> Self:
        """All-zero block with *n_rows* rows."""
        return cls(
            w=np.zeros(0),
            v=np.zeros(0, dtype=np.intp),
            u=np.zeros(n_rows + 1, dtype=np.intp),
            n_cols=n_cols,
        )

    def to_scipy(self) -> sparse.csr_array:
        return sparse.csr_array((self.w, self.v, self.u), shape=self.shape)

    def to_dense(self) -> np.ndarray:
        return self.to_scipy().toarray()


def csr_matvec(
    csr: CSRMatrix,
    b: Any,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Sparse matrix–vector product ``Z @ b``.

    Every non-zero contributes ``w[k] · b[v[k]]`` to its row; the
    contributions are summed per row with the backend's segment sum,
    so rows without non-zeros yield exactly 0.

    Args:
        csr: The CSR-encoded design.
        b: Dense coefficient vector ``(n_cols,)``.
        backend: Backend name or instance.

    Returns:
        Dense vector ``(n_rows,)``.

    Raises:
        ValueError: If ``len(b)`` does not match the column count.
    """
    be = resolve_backend(backend)
    b = be.asarray(b)
    if b.shape != (csr.n_cols,):
        msg = f"b must have shape ({csr.n_cols},), got {tuple(b.shape)}."
        raise ValueError(msg)
    contributions = be.asarray(csr.w) * b[csr.v]
    return be.segment_sum(contributions, csr.row_ids, csr.n_rows)


# ------------------------------------------------------------------ #
# Design construction from grouping labels
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class GroupingTerm:
    """One grouping factor and the design columns that vary by it.

    Attributes:
        labels: Level label of every observation ``(n,)``; any
            hashable, sortable values.
        slopes: Columns of the fixed-effect design that get a random
            slope, correlated with the term's random intercept.
    """

    labels: Any
    slopes: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        labels = np.asarray(self.labels)
        if labels.ndim != 1:
            msg = f"Grouping labels must be 1-D, got shape {labels.shape}."
            raise ValueError(msg)
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "slopes", tuple(int(c) for c in self.slopes))

    @property
    def p(self) -> int:
        return 1 + len(self.slopes)


def _as_terms(groups: Any) -> list[GroupingTerm]:
    if isinstance(groups, GroupingTerm):
        return [groups]
    if isinstance(groups, (list, tuple)) and groups and all(
        isinstance(g, GroupingTerm) for g in groups
    ):
        return list(groups)
    return [GroupingTerm(groups)]


def build_random_effects_design(
    groups: Any,
    is_one: Any,
    X: np.ndarray | None = None,
) -> tuple[CSRMatrix, CSRMatrix, list[tuple[int, int]]]:
    """CSR blocks ``Z0``/``Z1`` and the ``(p_i, l_i)`` term list.

    Every row has exactly ``Σ p_i`` stored entries, one per effect of
    every term: the level's intercept indicator (1) followed by its
    slope values.  Term *i*, level *j*, effect *e* lives in column
    ``offset_i + j·p_i + e``, the order in which
    :func:`~bernoulli_hglm.random_effects.make_b` emits ``b``.
    Levels are the sorted unique labels of each term.

    Args:
        groups: A :class:`GroupingTerm`, a sequence of them, or a bare
            1-D label array (a random intercept only).
        is_one: Boolean outcome mask ``(n,)``; rows where it is true
            go to ``Z1``, the rest to ``Z0``.
        X: Design ``(n, K)`` the slope columns are read from.

    Raises:
        ValueError: If a term's length differs from ``len(is_one)``,
            slopes are requested without *X*, or a slope column is
            out of range.
    """
    terms = _as_terms(groups)
    is_one = np.asarray(is_one, dtype=bool).reshape(-1)
    n = len(is_one)

    cols: list[np.ndarray] = []
    vals: list[np.ndarray] = []
    sizes: list[tuple[int, int]] = []
    offset = 0
    for i, term in enumerate(terms):
        if len(term.labels) != n:
            msg = f"Grouping term {i} has {len(term.labels)} labels, expected {n}."
            raise ValueError(msg)
        if term.slopes and X is None:
            msg = f"Grouping term {i} has random slopes but no design X was given."
            raise ValueError(msg)
        if term.slopes:
            X = np.asarray(X, dtype=np.float64)
            bad = [c for c in term.slopes if not 0 <= c < X.shape[1]]
            if bad:
                msg = f"Slope columns {bad} of grouping term {i} are outside X's {X.shape[1]} columns."
                raise ValueError(msg)

        _, level = np.unique(term.labels, return_inverse=True)
        n_levels = int(level.max()) + 1 if n else 0
        first = offset + level * term.p
        cols.append(first[:, None] + np.arange(term.p))
        slope_vals = X[:, list(term.slopes)] if term.slopes else np.zeros((n, 0))
        vals.append(np.column_stack([np.ones(n), slope_vals]))
        sizes.append((term.p, n_levels))
        offset += term.p * n_levels

    col = np.hstack(cols).astype(np.intp)
    val = np.hstack(vals)
    per_row = col.shape[1]

    def _block(rows: np.ndarray) -> CSRMatrix:
        m = int(rows.sum())
        return CSRMatrix(
            w=val[rows].reshape(-1),
            v=col[rows].reshape(-1),
            u=np.arange(m + 1, dtype=np.intp) * per_row,
            n_cols=offset,
        )

    return _block(~is_one), _block(is_one), sizes
