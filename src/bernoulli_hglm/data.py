"""Data bundle and parameter container.

:class:`BernoulliData` holds everything that stays fixed across the
millions of density evaluations of a sampling run — the outcome-split
design matrices, the sparse random-effects design, the link, the prior
families and their hyperparameters — and validates every shape
constraint once, at construction.  :class:`Parameters` holds the
values the sampler proposes on each call.

Three ways to build a bundle:

* ``BernoulliData(...)`` directly, with typed fields;
* :meth:`BernoulliData.from_dict`, from the flat numeric dictionary
  (``K``, ``N``, ``X0``, ``prior_dist``, ``w0``/``v0``/``u0``, …)
  that sampler front-ends typically pass around;
* :meth:`BernoulliData.from_frames`, from an unsplit design ``X`` and
  binary ``y`` (pandas, Polars or NumPy) plus optional grouping
  labels.

Parameter layout
~~~~~~~~~~~~~~~~
The flat parameter vector used by :meth:`Parameters.from_flat` is the
concatenation, in this order, of::

    z_beta (K) | gamma (0|1) | global_ (0|2|4) | local (n_local·K, row-major)
    | z_b (q) | z_T (len_z_T) | rho (len_rho) | zeta (len_concentration)
    | tau (t)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from typing_extensions import Self

from ._compat import _as_float_matrix, _as_float_vector
from ._typing import ArrayLike
from .covariance import GroupTermLayout
from .links import Link, resolve_link
from .priors import (
    InterceptPrior,
    NormalInterceptPrior,
    NormalPrior,
    PriorFamily,
    resolve_intercept_prior,
    resolve_prior,
)
from .sparse import CSRMatrix, GroupingTerm, build_random_effects_design

logger = logging.getLogger(__name__)


def _optional_vector(values: Any, n: int, name: str) -> np.ndarray | None:
    if values is None:
        return None
    arr = _as_float_vector(values, name=name)
    if arr.shape != (n,):
        msg = f"{name} must have length {n}, got {arr.shape[0]}."
        raise ValueError(msg)
    return arr


def _hyper_vector(values: Any, n: int, name: str, *, positive: bool = True) -> np.ndarray:
    arr = np.asarray(values if values is not None else [], dtype=np.float64).reshape(-1)
    if arr.shape != (n,):
        msg = f"{name} must have length {n}, got {arr.shape[0]}."
        raise ValueError(msg)
    if positive and np.any(~(arr > 0)):
        msg = f"{name} must be strictly positive, got {arr.tolist()}."
        raise ValueError(msg)
    return arr


# ------------------------------------------------------------------ #
# BernoulliData
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class BernoulliData:
    """Fixed inputs of the Bernoulli hierarchical GLM.

    Attributes:
        X0: Centered design of the y = 0 rows, ``(N0, K)``.
        X1: Centered design of the y = 1 rows, ``(N1, K)``.
        xbar: Column means used for centering, ``(K,)``.
        link: Link function.
        prior: Fixed-effect prior family.
        intercept_prior: Intercept prior, ``None`` for a flat prior.
        has_intercept: Whether the model has an intercept ``gamma``.
        layout: Grouping-term sizes (``t = 0`` for no random effects).
        Z0, Z1: CSR random-effects designs, ``(N0, q)`` / ``(N1, q)``.
        weights0, weights1: Optional observation weights.
        offset0, offset1: Optional offsets.
        regularization: LKJ-style shape per term, ``(t,)``.
        concentration: Gamma shapes of ``zeta`` by within-term effect
            index, ``(len_concentration,)``.
        gamma_shape: Gamma shape of each ``tau``, ``(t,)``.
        scale: Scale multiplying each ``tau``, ``(t,)``.
        prior_pd: Draw from the prior predictive (drop the likelihood).
    """

    X0: Any
    X1: Any
    xbar: Any = None
    link: Link | int | str = Link.LOGIT
    prior: PriorFamily = field(default_factory=NormalPrior)
    intercept_prior: InterceptPrior | None = field(default_factory=NormalInterceptPrior)
    has_intercept: bool = True
    layout: GroupTermLayout = field(default_factory=GroupTermLayout)
    Z0: CSRMatrix | None = None
    Z1: CSRMatrix | None = None
    weights0: Any = None
    weights1: Any = None
    offset0: Any = None
    offset1: Any = None
    regularization: Any = None
    concentration: Any = None
    gamma_shape: Any = None
    scale: Any = None
    prior_pd: bool = False

    def __post_init__(self) -> None:
        X0 = _as_float_matrix(self.X0, name="X0")
        K = X0.shape[1]
        X1 = _as_float_matrix(self.X1, name="X1", n_cols=K)
        if X0.size == 0 and X1.shape[1] != K:
            # X0 had no rows; take the width from X1.
            K = X1.shape[1]
            X0 = np.zeros((0, K))
        if X1.shape[1] != K:
            msg = f"X0 has {K} columns but X1 has {X1.shape[1]}."
            raise ValueError(msg)
        N0, N1 = X0.shape[0], X1.shape[0]

        xbar = np.zeros(K) if self.xbar is None else _as_float_vector(self.xbar, name="xbar")
        if xbar.shape != (K,):
            msg = f"xbar must have length K={K}, got {xbar.shape[0]}."
            raise ValueError(msg)

        link = resolve_link(self.link)
        prior = resolve_prior(self.prior)
        for attr in ("mean", "scale", "df", "local4_df"):
            value = getattr(prior, attr, None)
            if value is not None and np.ndim(value) == 1 and np.shape(value) != (K,):
                msg = f"Prior hyperparameter '{attr}' must have length K={K}, got {np.shape(value)[0]}."
                raise ValueError(msg)
        intercept_prior = resolve_intercept_prior(self.intercept_prior)

        layout = self.layout
        if not isinstance(layout, GroupTermLayout):
            layout = GroupTermLayout.from_terms(layout)
        t, q = layout.t, layout.q

        Z0, Z1 = self.Z0, self.Z1
        if t > 0:
            if Z0 is None or Z1 is None:
                msg = "Z0 and Z1 are required when there are grouping terms (t > 0)."
                raise ValueError(msg)
            for name, Z, n in (("Z0", Z0, N0), ("Z1", Z1, N1)):
                if Z.shape != (n, q):
                    msg = f"{name} must have shape ({n}, {q}), got {Z.shape}."
                    raise ValueError(msg)
        else:
            Z0 = Z1 = None

        weights0 = _optional_vector(self.weights0, N0, "weights0")
        weights1 = _optional_vector(self.weights1, N1, "weights1")
        if (weights0 is None) != (weights1 is None):
            msg = "weights0 and weights1 must both be given or both be None."
            raise ValueError(msg)
        offset0 = _optional_vector(self.offset0, N0, "offset0")
        offset1 = _optional_vector(self.offset1, N1, "offset1")
        if (offset0 is None) != (offset1 is None):
            msg = "offset0 and offset1 must both be given or both be None."
            raise ValueError(msg)

        regularization = _hyper_vector(self.regularization, t, "regularization")
        # Sized like zeta; each term with p_i > 1 reads its first p_i
        # entries (see priors.zeta_shapes).
        concentration = _hyper_vector(
            self.concentration, layout.len_concentration, "concentration"
        )
        gamma_shape = _hyper_vector(self.gamma_shape, t, "gamma_shape")
        scale = _hyper_vector(self.scale, t, "scale")

        for name, value in (
            ("X0", X0),
            ("X1", X1),
            ("xbar", xbar),
            ("link", link),
            ("prior", prior),
            ("intercept_prior", intercept_prior),
            ("has_intercept", bool(self.has_intercept)),
            ("layout", layout),
            ("Z0", Z0),
            ("Z1", Z1),
            ("weights0", weights0),
            ("weights1", weights1),
            ("offset0", offset0),
            ("offset1", offset1),
            ("regularization", regularization),
            ("concentration", concentration),
            ("gamma_shape", gamma_shape),
            ("scale", scale),
            ("prior_pd", bool(self.prior_pd)),
        ):
            object.__setattr__(self, name, value)

        logger.debug(
            "BernoulliData: N=(%d, %d) K=%d t=%d q=%d link=%s prior=%s",
            N0,
            N1,
            K,
            t,
            q,
            link.name.lower(),
            prior.name,
        )

    # ---- Sizes -----------------------------------------------------

    @property
    def K(self) -> int:
        return int(self.X0.shape[1])

    @property
    def N(self) -> tuple[int, int]:
        return (int(self.X0.shape[0]), int(self.X1.shape[0]))

    @property
    def t(self) -> int:
        return self.layout.t

    @property
    def q(self) -> int:
        return self.layout.q

    @property
    def has_weights(self) -> bool:
        return self.weights0 is not None

    @property
    def has_offset(self) -> bool:
        return self.offset0 is not None

    def parameter_shapes(self) -> dict[str, tuple[int, ...]]:
        """Shapes of every parameter block, in flat-vector order."""
        K = self.K
        return {
            "z_beta": (K,),
            "gamma": (int(self.has_intercept),),
            "global_": (self.prior.n_global,),
            "local": (self.prior.n_local, K),
            "z_b": (self.q,),
            "z_T": (self.layout.len_z_T,),
            "rho": (self.layout.len_rho,),
            "zeta": (self.layout.len_concentration,),
            "tau": (self.t,),
        }

    @property
    def n_parameters(self) -> int:
        return sum(int(np.prod(s)) for s in self.parameter_shapes().values())

    # ---- Alternative constructors ---------------------------------

    @classmethod
    def from_dict(cls, bundle: dict[str, Any]) -> Self:
        """Build from a flat numeric data dictionary.

        Recognised keys (missing optional keys take neutral defaults):
        ``X0``, ``X1``, ``xbar``, ``link``, ``prior_dist``,
        ``prior_mean``, ``prior_scale``, ``prior_df``,
        ``prior_dist_for_intercept``, ``prior_mean_for_intercept``,
        ``prior_scale_for_intercept``, ``prior_df_for_intercept``,
        ``has_intercept``, ``p``, ``l``, ``w0``, ``v0``, ``u0``, ``w1``,
        ``v1``, ``u1``, ``has_weights``, ``weights0``, ``weights1``,
        ``has_offset``, ``offset0``, ``offset1``, ``prior_PD``,
        ``regularization``, ``concentration``, ``shape``, ``scale``.

        ``K`` and ``N`` are optional; when present they are checked
        against the design matrices.
        """
        b = dict(bundle)
        K = int(b["K"]) if "K" in b else None
        X0 = _as_float_matrix(b["X0"], name="X0", n_cols=K)
        X1 = _as_float_matrix(b["X1"], name="X1", n_cols=K)
        if K is not None and (X0.shape[1] != K or X1.shape[1] != K):
            msg = f"K={K} does not match the design widths {X0.shape[1]}/{X1.shape[1]}."
            raise ValueError(msg)
        if "N" in b:
            N = tuple(int(n) for n in b["N"])
            if N != (X0.shape[0], X1.shape[0]):
                msg = f"N={list(N)} does not match the design heights {X0.shape[0]}/{X1.shape[0]}."
                raise ValueError(msg)
        K = X0.shape[1]

        prior = resolve_prior(
            b.get("prior_dist", 1),
            prior_mean=b.get("prior_mean", np.zeros(K)),
            prior_scale=b.get("prior_scale", np.ones(K)),
            prior_df=b.get("prior_df", np.ones(K)),
        )
        intercept_prior = resolve_intercept_prior(
            b.get("prior_dist_for_intercept", 1),
            mean=float(b.get("prior_mean_for_intercept", 0.0)),
            scale=float(b.get("prior_scale_for_intercept", 1.0)),
            df=float(b.get("prior_df_for_intercept", 1.0)),
        )

        layout = GroupTermLayout(p=tuple(b.get("p", ())), l=tuple(b.get("l", ())))
        if "t" in b and int(b["t"]) != layout.t:
            msg = f"t={b['t']} does not match len(p)={layout.t}."
            raise ValueError(msg)
        if "q" in b and int(b["q"]) != layout.q:
            msg = f"q={b['q']} does not match sum(p * l)={layout.q}."
            raise ValueError(msg)
        Z0 = Z1 = None
        if layout.t > 0:
            Z0 = CSRMatrix(w=b["w0"], v=b["v0"], u=b["u0"], n_cols=layout.q)
            Z1 = CSRMatrix(w=b["w1"], v=b["v1"], u=b["u1"], n_cols=layout.q)

        has_weights = bool(b.get("has_weights", 0))
        has_offset = bool(b.get("has_offset", 0))

        return cls(
            X0=X0,
            X1=X1,
            xbar=b.get("xbar"),
            link=b.get("link", Link.LOGIT),
            prior=prior,
            intercept_prior=intercept_prior,
            has_intercept=bool(b.get("has_intercept", 1)),
            layout=layout,
            Z0=Z0,
            Z1=Z1,
            weights0=b.get("weights0") if has_weights else None,
            weights1=b.get("weights1") if has_weights else None,
            offset0=b.get("offset0") if has_offset else None,
            offset1=b.get("offset1") if has_offset else None,
            regularization=b.get("regularization"),
            concentration=b.get("concentration"),
            gamma_shape=b.get("shape"),
            scale=b.get("scale"),
            prior_pd=bool(b.get("prior_PD", 0)),
        )

    @classmethod
    def from_frames(
        cls,
        X: ArrayLike,
        y: ArrayLike,
        *,
        groups: Any = None,
        random_slopes: list[int] | None = None,
        weights: Any = None,
        offset: Any = None,
        regularization: Any = 1.0,
        concentration: Any = 1.0,
        gamma_shape: Any = 1.0,
        scale: Any = 1.0,
        **kwargs: Any,
    ) -> Self:
        """Split an unsplit design by outcome, center it, and build Z.

        Args:
            X: Fixed-effect design ``(n, K)`` without intercept column.
            y: Binary outcome ``(n,)`` with values in {0, 1}.
            groups: Optional grouping: a 1-D label array, a
                :class:`~bernoulli_hglm.sparse.GroupingTerm` or a list
                of them (see
                :func:`~bernoulli_hglm.sparse.build_random_effects_design`).
            random_slopes: Slope columns for a bare label array in
                *groups*; ignored when *groups* holds ``GroupingTerm``
                objects, which carry their own.
            weights: Optional observation weights ``(n,)``.
            offset: Optional offset ``(n,)``.
            regularization, concentration, gamma_shape, scale: Scalars
                broadcast to every term (every ``zeta`` for
                *concentration*) or arrays of the full length.
            **kwargs: Forwarded to the constructor (``link``,
                ``prior``, ``intercept_prior``, ``has_intercept``,
                ``prior_pd``).

        Raises:
            ValueError: If *y* is not binary or lengths disagree.
        """
        X_arr = _as_float_matrix(X, name="X")
        y_arr = _as_float_vector(y, name="y")
        if len(y_arr) != X_arr.shape[0]:
            msg = f"X has {X_arr.shape[0]} rows but y has {len(y_arr)}."
            raise ValueError(msg)
        if not np.all(np.isin(y_arr, [0.0, 1.0])):
            msg = "y must be binary with values in {0, 1}."
            raise ValueError(msg)

        xbar = X_arr.mean(axis=0) if X_arr.shape[0] else np.zeros(X_arr.shape[1])
        Xc = X_arr - xbar
        is0 = y_arr == 0
        is1 = ~is0

        layout = GroupTermLayout()
        Z0 = Z1 = None
        if groups is not None:
            has_terms = isinstance(groups, GroupingTerm) or (
                isinstance(groups, (list, tuple))
                and any(isinstance(g, GroupingTerm) for g in groups)
            )
            if random_slopes and not has_terms:
                groups = GroupingTerm(groups, tuple(random_slopes))
            Z0, Z1, terms = build_random_effects_design(groups, is1, X=X_arr)
            layout = GroupTermLayout.from_terms(terms)

        def _broadcast(value: Any, n: int) -> np.ndarray:
            arr = np.asarray(value, dtype=np.float64).reshape(-1)
            return np.full(n, float(arr[0])) if arr.size == 1 else arr

        w = None if weights is None else _as_float_vector(weights, name="weights")
        off = None if offset is None else _as_float_vector(offset, name="offset")

        return cls(
            X0=Xc[is0],
            X1=Xc[is1],
            xbar=xbar,
            layout=layout,
            Z0=Z0,
            Z1=Z1,
            weights0=None if w is None else w[is0],
            weights1=None if w is None else w[is1],
            offset0=None if off is None else off[is0],
            offset1=None if off is None else off[is1],
            regularization=_broadcast(regularization, layout.t),
            concentration=_broadcast(concentration, layout.len_concentration),
            gamma_shape=_broadcast(gamma_shape, layout.t),
            scale=_broadcast(scale, layout.t),
            **kwargs,
        )


# ------------------------------------------------------------------ #
# Parameters
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class Parameters:
    """One parameter point proposed by the sampler.

    Values are kept as given (NumPy arrays, lists or JAX tracers) so
    that a density built from them stays differentiable.  Shapes are
    checked against a bundle by :func:`check_parameters`.
    """

    z_beta: Any = field(default_factory=lambda: np.zeros(0))
    gamma: Any = field(default_factory=lambda: np.zeros(0))
    global_: Any = field(default_factory=lambda: np.zeros(0))
    local: Any = field(default_factory=lambda: np.zeros((0, 0)))
    z_b: Any = field(default_factory=lambda: np.zeros(0))
    z_T: Any = field(default_factory=lambda: np.zeros(0))
    rho: Any = field(default_factory=lambda: np.zeros(0))
    zeta: Any = field(default_factory=lambda: np.zeros(0))
    tau: Any = field(default_factory=lambda: np.zeros(0))

    @classmethod
    def from_flat(cls, vector: Any, data: BernoulliData) -> Self:
        """Unpack a flat parameter vector in the bundle's layout.

        Slicing and reshaping only, so *vector* may be a JAX tracer.

        Raises:
            ValueError: If the length does not match the bundle.
        """
        if not hasattr(vector, "shape"):
            vector = np.asarray(vector, dtype=np.float64)
        shapes = data.parameter_shapes()
        n_total = data.n_parameters
        if tuple(vector.shape) != (n_total,):
            msg = f"Flat parameter vector must have length {n_total}, got {tuple(vector.shape)}."
            raise ValueError(msg)
        blocks: dict[str, Any] = {}
        pos = 0
        for name, shape in shapes.items():
            size = int(np.prod(shape))
            blocks[name] = vector[pos : pos + size].reshape(shape)
            pos += size
        return cls(**blocks)

    def to_flat(self, data: BernoulliData) -> np.ndarray:
        """Pack into a flat NumPy vector (inverse of :meth:`from_flat`)."""
        check_parameters(self, data)
        return np.concatenate(
            [
                np.asarray(getattr(self, name), dtype=np.float64).reshape(-1)
                for name in data.parameter_shapes()
            ]
        )

    @classmethod
    def zeros(cls, data: BernoulliData) -> Self:
        """All-zero parameter blocks with the bundle's shapes."""
        return cls(**{name: np.zeros(shape) for name, shape in data.parameter_shapes().items()})


def check_parameters(params: Parameters, data: BernoulliData) -> None:
    """Check every parameter block's shape against *data*.

    Raises:
        ValueError: On the first mismatching block.
    """
    for name, shape in data.parameter_shapes().items():
        actual = tuple(np.shape(getattr(params, name)))
        if int(np.prod(shape)) == 0 and int(np.prod(actual)) == 0:
            continue
        if actual != shape:
            msg = f"Parameter '{name}' must have shape {shape}, got {actual}."
            raise ValueError(msg)
