"""Prior families for fixed effects, the intercept and the random-effects hyperparameters.

Fixed effects are sampled on a standardized scale ``z_beta`` and
mapped to coefficients ``beta`` by the prior family.  Every family is
a frozen dataclass implementing the :class:`PriorFamily` protocol —
one "transform-and-score" capability — so the orchestrator never
branches on which prior is active:

==================  ====  =======  ========  ==============================
Family              Code  locals   globals   beta
==================  ====  =======  ========  ==============================
``none``            0     0        0         z
``normal``          1     0        0         z·scale + mean
``student_t``       2     0        0         z·scale + mean
``horseshoe``       3     2        2         z·λ·g
``horseshoe_plus``  4     4        4         z·λ·λ⁺·g
==================  ====  =======  ========  ==============================

with ``λ = local₁·√local₂``, ``λ⁺ = local₃·√local₄`` and
``g = global₁·√global₂``.  Horseshoe-plus carries four globals in the
numeric parameter layout but only the first two enter ``g`` or the
log-prior; ``global₃`` and ``global₄`` are unscored and only bounded
below by 0.

The square-root products are the half-Cauchy (and half-t) scales
written as a half-normal times the root of an inverse-gamma variable,
which samples far better than the heavy-tailed scale directly.

The integer codes match the numeric data-bundle contract and are
resolved by :func:`resolve_prior`; new families are added with
:func:`register_prior`.

All log-densities include their normalising constants.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import numpy as np

from ._backends import BackendProtocol, resolve_backend
from .covariance import GroupTermLayout

# ------------------------------------------------------------------ #
# PriorFamily protocol
# ------------------------------------------------------------------ #


@runtime_checkable
class PriorFamily(Protocol):
    """Interface that every fixed-effect prior family must implement.

    Attributes:
        name: Short identifier (e.g. ``"normal"``, ``"horseshoe"``).
        code: Integer code used by the numeric data bundle.
        n_local: Rows of the ``local`` parameter block ``(n_local, K)``.
        n_global: Length of the ``global_`` parameter block.
    """

    @property
    def name(self) -> str: ...

    @property
    def code(self) -> int: ...

    @property
    def n_local(self) -> int: ...

    @property
    def n_global(self) -> int: ...

    def transform(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        """Map standardized ``z_beta`` to coefficients ``beta``."""
        ...

    def log_prior(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        """Scalar log-prior of the family's parameters."""
        ...

    def in_support(self, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        """Boolean scalar: do the shrinkage parameters satisfy their bounds?"""
        ...


def _positive(values: Any, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if np.any(~(arr > 0)):
        msg = f"{name} must be strictly positive, got {arr.tolist()}."
        raise ValueError(msg)
    return arr


# ------------------------------------------------------------------ #
# Fixed-effect families
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class NoPrior:
    """Flat prior: ``beta = z_beta`` and no log-prior contribution."""

    @property
    def name(self) -> str:
        return "none"

    @property
    def code(self) -> int:
        return 0

    @property
    def n_local(self) -> int:
        return 0

    @property
    def n_global(self) -> int:
        return 0

    def transform(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.asarray(z_beta)

    def log_prior(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.asarray(0.0)

    def in_support(self, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.xp.asarray(True)


@dataclass(frozen=True, eq=False)
class NormalPrior:
    """Independent normal priors, scored on the standardized scale.

    Attributes:
        mean: Prior mean, scalar or ``(K,)``.
        scale: Prior scale, scalar or ``(K,)``, positive.
    """

    mean: Any = 0.0
    scale: Any = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", np.asarray(self.mean, dtype=np.float64))
        object.__setattr__(self, "scale", _positive(self.scale, "prior_scale"))

    @property
    def name(self) -> str:
        return "normal"

    @property
    def code(self) -> int:
        return 1

    @property
    def n_local(self) -> int:
        return 0

    @property
    def n_global(self) -> int:
        return 0

    def transform(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.asarray(z_beta) * backend.asarray(self.scale) + backend.asarray(self.mean)

    def log_prior(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.xp.sum(backend.norm_logpdf(backend.asarray(z_beta)))

    def in_support(self, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.xp.asarray(True)


@dataclass(frozen=True, eq=False)
class StudentTPrior:
    """Independent Student-t priors, scored on the standardized scale.

    Attributes:
        mean: Prior location, scalar or ``(K,)``.
        scale: Prior scale, scalar or ``(K,)``, positive.
        df: Degrees of freedom, scalar or ``(K,)``, positive.
    """

    mean: Any = 0.0
    scale: Any = 1.0
    df: Any = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", np.asarray(self.mean, dtype=np.float64))
        object.__setattr__(self, "scale", _positive(self.scale, "prior_scale"))
        object.__setattr__(self, "df", _positive(self.df, "prior_df"))

    @property
    def name(self) -> str:
        return "student_t"

    @property
    def code(self) -> int:
        return 2

    @property
    def n_local(self) -> int:
        return 0

    @property
    def n_global(self) -> int:
        return 0

    def transform(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.asarray(z_beta) * backend.asarray(self.scale) + backend.asarray(self.mean)

    def log_prior(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        z = backend.asarray(z_beta)
        return backend.xp.sum(backend.t_logpdf(z, backend.asarray(self.df)))

    def in_support(self, local: Any, global_: Any, backend: BackendProtocol) -> Any:  # noqa: ARG002
        return backend.xp.asarray(True)


# ------------------------------------------------------------------ #
# Horseshoe families
# ------------------------------------------------------------------ #
#
# Parameter blocks: ``local`` is (n_local, K) with rows
#   local[0] ≥ 0   half-normal
#   local[1] > 0   inverse-gamma(df/2, df/2)
#   local[2] ≥ 0   half-normal               (hs+ only)
#   local[3] > 0   inverse-gamma(df⁺/2, df⁺/2)  (hs+ only)
# and ``global_`` is (2,):
#   global_[0] ≥ 0 half-normal
#   global_[1] > 0 inverse-gamma(1/2, 1/2)
# The half-normal terms are scored with the full normal density; the
# constant log 2 of the truncation is left out.


def _global_scale(global_: Any, backend: BackendProtocol) -> Any:
    return global_[0] * backend.xp.sqrt(global_[1])


def _global_log_prior(global_: Any, backend: BackendProtocol) -> Any:
    return backend.norm_logpdf(global_[0]) + backend.invgamma_logpdf(global_[1], 0.5, 0.5)


@dataclass(frozen=True, eq=False)
class HorseshoePrior:
    """Horseshoe prior with local scales ``λ_k = local₁_k · √local₂_k``.

    Attributes:
        df: Degrees of freedom of the local half-t scales, scalar or
            ``(K,)``; df = 1 gives the half-Cauchy horseshoe.
    """

    df: Any = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "df", _positive(self.df, "prior_df"))

    @property
    def name(self) -> str:
        return "horseshoe"

    @property
    def code(self) -> int:
        return 3

    @property
    def n_local(self) -> int:
        return 2

    @property
    def n_global(self) -> int:
        return 2

    def transform(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        xp = backend.xp
        lam = local[0] * xp.sqrt(local[1])
        return backend.asarray(z_beta) * lam * _global_scale(global_, backend)

    def log_prior(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        xp = backend.xp
        half_df = 0.5 * backend.asarray(self.df)
        return (
            xp.sum(backend.norm_logpdf(backend.asarray(z_beta)))
            + xp.sum(backend.norm_logpdf(local[0]))
            + xp.sum(backend.invgamma_logpdf(local[1], half_df, half_df))
            + _global_log_prior(global_, backend)
        )

    def in_support(self, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        xp = backend.xp
        return (
            xp.all(local[0] >= 0)
            & xp.all(local[1] > 0)
            & (global_[0] >= 0)
            & (global_[1] > 0)
        )


def horseshoe_plus_local4_df(prior_scale: Any) -> np.ndarray:
    """Hyperparameter of the horseshoe-plus ``local₄`` inverse gamma.

    The numeric data bundle has no dedicated slot for it and carries
    it in ``prior_scale`` instead, which a horseshoe-plus prior does
    not otherwise use.
    """
    return np.asarray(prior_scale, dtype=np.float64)


@dataclass(frozen=True, eq=False)
class HorseshoePlusPrior:
    """Horseshoe+ prior: a second local factor ``λ⁺_k = local₃_k · √local₄_k``.

    The ``global_`` block has four entries; only ``global_[:2]`` is used.

    Attributes:
        df: Degrees of freedom of the first local half-t, scalar or ``(K,)``.
        local4_df: Shape and rate (times 2) of the ``local₄`` inverse
            gamma, scalar or ``(K,)``.
    """

    df: Any = 1.0
    local4_df: Any = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "df", _positive(self.df, "prior_df"))
        object.__setattr__(self, "local4_df", _positive(self.local4_df, "local4_df"))

    @property
    def name(self) -> str:
        return "horseshoe_plus"

    @property
    def code(self) -> int:
        return 4

    @property
    def n_local(self) -> int:
        return 4

    @property
    def n_global(self) -> int:
        return 4

    def transform(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        xp = backend.xp
        lam = local[0] * xp.sqrt(local[1])
        lam_plus = local[2] * xp.sqrt(local[3])
        return backend.asarray(z_beta) * lam * lam_plus * _global_scale(global_, backend)

    def log_prior(self, z_beta: Any, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        xp = backend.xp
        half_df = 0.5 * backend.asarray(self.df)
        half_df_plus = 0.5 * backend.asarray(self.local4_df)
        return (
            xp.sum(backend.norm_logpdf(backend.asarray(z_beta)))
            + xp.sum(backend.norm_logpdf(local[0]))
            + xp.sum(backend.invgamma_logpdf(local[1], half_df, half_df))
            + xp.sum(backend.norm_logpdf(local[2]))
            + xp.sum(backend.invgamma_logpdf(local[3], half_df_plus, half_df_plus))
            + _global_log_prior(global_, backend)
        )

    def in_support(self, local: Any, global_: Any, backend: BackendProtocol) -> Any:
        xp = backend.xp
        return (
            xp.all(local[0] >= 0)
            & xp.all(local[1] > 0)
            & xp.all(local[2] >= 0)
            & xp.all(local[3] > 0)
            & (global_[0] >= 0)
            & (global_[1] > 0)
            & xp.all(global_[2:] >= 0)
        )


# ------------------------------------------------------------------ #
# Intercept priors
# ------------------------------------------------------------------ #
#
# The intercept is scored directly on its sampled (centred-predictor)
# scale, not standardized.  "No prior" is represented by ``None``.


@dataclass(frozen=True)
class NormalInterceptPrior:
    mean: float = 0.0
    scale: float = 1.0

    def __post_init__(self) -> None:
        _positive(self.scale, "prior_scale_for_intercept")

    @property
    def name(self) -> str:
        return "normal"

    def log_prior(self, gamma: Any, backend: BackendProtocol) -> Any:
        return backend.norm_logpdf(gamma, self.mean, self.scale)


@dataclass(frozen=True)
class StudentTInterceptPrior:
    mean: float = 0.0
    scale: float = 1.0
    df: float = 1.0

    def __post_init__(self) -> None:
        _positive(self.scale, "prior_scale_for_intercept")
        _positive(self.df, "prior_df_for_intercept")

    @property
    def name(self) -> str:
        return "student_t"

    def log_prior(self, gamma: Any, backend: BackendProtocol) -> Any:
        return backend.t_logpdf(gamma, self.df, self.mean, self.scale)


InterceptPrior = NormalInterceptPrior | StudentTInterceptPrior


def resolve_intercept_prior(
    prior: int | str | InterceptPrior | None,
    *,
    mean: float = 0.0,
    scale: float = 1.0,
    df: float = 1.0,
) -> InterceptPrior | None:
    """Resolve ``prior_dist_for_intercept`` (0/1/2 or a name).

    Returns ``None`` for "no prior".

    Raises:
        ValueError: For an unknown code or name.
    """
    if prior is None or isinstance(prior, (NormalInterceptPrior, StudentTInterceptPrior)):
        return prior
    key = prior.strip().lower() if isinstance(prior, str) else int(prior)
    if key in (0, "none"):
        return None
    if key in (1, "normal"):
        return NormalInterceptPrior(mean=float(mean), scale=float(scale))
    if key in (2, "student_t"):
        return StudentTInterceptPrior(mean=float(mean), scale=float(scale), df=float(df))
    msg = f"Unknown intercept prior {prior!r}.  Choose 0/none, 1/normal or 2/student_t."
    raise ValueError(msg)


# ------------------------------------------------------------------ #
# Registry
# ------------------------------------------------------------------ #

_PRIORS: dict[str, type] = {
    "none": NoPrior,
    "normal": NormalPrior,
    "student_t": StudentTPrior,
    "horseshoe": HorseshoePrior,
    "horseshoe_plus": HorseshoePlusPrior,
}

_PRIOR_CODES: dict[int, str] = {
    0: "none",
    1: "normal",
    2: "student_t",
    3: "horseshoe",
    4: "horseshoe_plus",
}


def register_prior(name: str, cls: type, code: int | None = None) -> None:
    """Register a new prior family under *name* (and optionally *code*).

    Raises:
        TypeError: If *cls* does not satisfy the ``PriorFamily``
            protocol.
    """
    try:
        instance = cls()
    except Exception:  # noqa: BLE001
        msg = f"{cls!r} could not be instantiated for protocol check."
        raise TypeError(msg) from None
    if not isinstance(instance, PriorFamily):
        msg = f"{cls!r} does not implement the PriorFamily protocol."
        raise TypeError(msg)
    _PRIORS[name] = cls
    if code is not None:
        _PRIOR_CODES[int(code)] = name


def resolve_prior(
    prior: int | str | PriorFamily,
    *,
    prior_mean: Any = 0.0,
    prior_scale: Any = 1.0,
    prior_df: Any = 1.0,
) -> PriorFamily:
    """Resolve a ``prior_dist`` code, name or instance to a family.

    Instances pass through unchanged.  Codes and names are built from
    the bundle-style hyperparameter arrays; for the horseshoe-plus
    family the ``local₄`` hyperparameter comes from *prior_scale* via
    :func:`horseshoe_plus_local4_df`.

    Raises:
        ValueError: For an unknown code or name.
    """
    if isinstance(prior, PriorFamily):
        return prior

    if isinstance(prior, str):
        name = prior.strip().lower()
    else:
        try:
            name = _PRIOR_CODES[int(prior)]
        except (KeyError, TypeError, ValueError):
            available = ", ".join(f"{c}={n}" for c, n in sorted(_PRIOR_CODES.items()))
            msg = f"Unknown prior code {prior!r}.  Available: {available}."
            raise ValueError(msg) from None

    if name not in _PRIORS:
        available = ", ".join(sorted(_PRIORS))
        msg = f"Unknown prior {prior!r}.  Available priors: {available}."
        raise ValueError(msg)

    cls = _PRIORS[name]
    if cls is NoPrior:
        return NoPrior()
    if cls is NormalPrior:
        return NormalPrior(mean=prior_mean, scale=prior_scale)
    if cls is StudentTPrior:
        return StudentTPrior(mean=prior_mean, scale=prior_scale, df=prior_df)
    if cls is HorseshoePrior:
        return HorseshoePrior(df=prior_df)
    if cls is HorseshoePlusPrior:
        return HorseshoePlusPrior(
            df=prior_df, local4_df=horseshoe_plus_local4_df(prior_scale)
        )
    instance: PriorFamily = cls()
    return instance


# ------------------------------------------------------------------ #
# Random-effects hyperprior (decomposition of covariance)
# ------------------------------------------------------------------ #


def onion_beta_shapes(p: int, regularization: float) -> tuple[np.ndarray, np.ndarray]:
    """Beta shape parameters of the p − 1 onion parameters of one term.

    Implied LKJ(regularization) correlation prior: with
    ``ν = regularization + (p − 2)/2`` the first parameter is
    ``Beta(ν, ν)``, and parameter ``j ≥ 1`` is
    ``Beta((j + 1)/2, ν − j/2)``.
    """
    nu = regularization + 0.5 * (p - 2)
    shape1 = [nu]
    shape2 = [nu]
    for j in range(1, p - 1):
        nu -= 0.5
        shape1.append(0.5 * (j + 1))
        shape2.append(nu)
    return np.asarray(shape1, dtype=np.float64), np.asarray(shape2, dtype=np.float64)


def zeta_shapes(layout: GroupTermLayout, concentration: Any) -> np.ndarray:
    """Gamma shape of every ``zeta``, in ``zeta`` order.

    Effect ``j`` of every term with ``p_i > 1`` takes
    ``concentration[j]``: the same leading entries are reused by each
    term, and entries past ``max(p_i)`` are never read.
    """
    concentration = np.asarray(concentration, dtype=np.float64).reshape(-1)
    idx = [j for seg in layout.segments() if seg.p > 1 for j in range(seg.p)]
    return concentration[np.asarray(idx, dtype=np.intp)]


def decov_log_prior(
    layout: GroupTermLayout,
    z_b: Any,
    z_T: Any,
    rho: Any,
    zeta: Any,
    tau: Any,
    regularization: Iterable[float],
    concentration: Any,
    gamma_shape: Any,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Log-prior of the random-effects block.

    Standard normal on ``z_b`` and ``z_T``; ``Beta`` on each onion
    parameter (see :func:`onion_beta_shapes`); ``Gamma(shape, 1)``
    on ``zeta`` with shapes from :func:`zeta_shapes`;
    ``Gamma(gamma_shape, 1)`` on ``tau``.
    """
    be = resolve_backend(backend)
    xp = be.xp
    regularization = np.asarray(list(regularization), dtype=np.float64)

    total = xp.sum(be.norm_logpdf(be.asarray(z_b))) + xp.sum(
        be.norm_logpdf(be.asarray(z_T))
    )
    rho = be.asarray(rho)
    for seg in layout.segments():
        if seg.p > 1:
            shape1, shape2 = onion_beta_shapes(seg.p, float(regularization[seg.index]))
            total = total + xp.sum(be.beta_logpdf(rho[seg.rho], shape1, shape2))
    shapes = be.asarray(zeta_shapes(layout, concentration))
    total = total + xp.sum(be.gamma_logpdf(be.asarray(zeta), shapes))
    total = total + xp.sum(be.gamma_logpdf(be.asarray(tau), be.asarray(gamma_shape)))
    return total
