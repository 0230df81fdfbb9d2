"""Log-density orchestrator for the Bernoulli hierarchical GLM.

One evaluation assembles the linear predictor of both outcome
partitions and sums the likelihood with every prior contribution::

    eta_y = X_y·beta + offset_y + Z_y·b + gamma (− shift under the log link)

    log p = loglik(eta0, eta1)
          + log p(z_beta, local, global_)        fixed-effect prior
          + log p(gamma)                         intercept prior
          + log p(z_b, z_T, rho, zeta, tau)      decov prior (t > 0)

Parameter points outside their declared support — a non-positive
``tau`` or ``zeta``, a ``rho`` outside (0, 1), a negative horseshoe
scale, a log-link intercept above its bound — yield ``-inf`` instead
of an exception, which is what a sampler expects from a rejected
proposal.  Shape mismatches are configuration errors and raise
``ValueError``.

The same :func:`build_linear_predictor` drives the secondary
:func:`generate` pass, so the reported intercept always carries the
log-link shift actually applied during evaluation.

Every function takes a ``backend`` argument.  On the NumPy backend
the density is a Python ``float``; on the JAX backend it is a 0-d
array and the whole evaluation is traceable, so
:meth:`BernoulliModel.grad_log_density_flat` can differentiate it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import numpy as np
from joblib import Parallel, delayed

from ._backends import BackendProtocol, resolve_backend
from ._results import GeneratedQuantities
from ._typing import Array
from .covariance import make_theta_L
from .data import BernoulliData, Parameters, check_parameters
from .intercept import apply_intercept
from .likelihood import bernoulli_log_likelihood
from .links import Link, linkinv
from .priors import decov_log_prior
from .random_effects import make_b
from .sparse import csr_matvec

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
# Shared building blocks
# ------------------------------------------------------------------ #


def _fixed_effects(params: Parameters, data: BernoulliData, be: BackendProtocol) -> Array:
    return data.prior.transform(
        be.asarray(params.z_beta),
        be.asarray(params.local),
        be.asarray(params.global_),
        be,
    )


def _random_effects(
    params: Parameters, data: BernoulliData, be: BackendProtocol
) -> tuple[Array, Array]:
    if data.t == 0:
        empty = be.asarray(np.zeros(0))
        return empty, empty
    theta_L = make_theta_L(
        data.layout,
        params.tau,
        data.scale,
        params.zeta,
        params.rho,
        params.z_T,
        backend=be,
    )
    b = make_b(params.z_b, theta_L, data.layout, backend=be)
    return theta_L, b


def build_linear_predictor(
    params: Parameters,
    data: BernoulliData,
    beta: Array,
    b: Array,
    backend: BackendProtocol | str | None = None,
) -> tuple[Array, Array, Array]:
    """Linear predictor of both outcome partitions.

    Fixed effects, then offsets, then the sparse random-effects
    product, then the intercept (with the log-link shift).

    Args:
        params: Parameter point; only ``gamma`` is read here.
        data: Validated data bundle.
        beta: Fixed-effect coefficients ``(K,)``.
        b: Random-effect coefficients ``(q,)``; ignored when ``t = 0``.
        backend: Backend name or instance.

    Returns:
        ``(eta0, eta1, shift)`` where *shift* is 0 except under the
        log link with an intercept.
    """
    be = resolve_backend(backend)
    beta = be.asarray(beta)
    eta0 = be.asarray(data.X0) @ beta
    eta1 = be.asarray(data.X1) @ beta

    if data.has_offset:
        eta0 = eta0 + be.asarray(data.offset0)
        eta1 = eta1 + be.asarray(data.offset1)

    if data.t > 0:
        eta0 = eta0 + csr_matvec(data.Z0, b, backend=be)
        eta1 = eta1 + csr_matvec(data.Z1, b, backend=be)

    if not data.has_intercept:
        return eta0, eta1, be.asarray(0.0)
    gamma = be.asarray(params.gamma)[0]
    return apply_intercept(eta0, eta1, gamma, data.link, backend=be)


def _in_support(
    params: Parameters,
    data: BernoulliData,
    eta0: Any,
    eta1: Any,
    be: BackendProtocol,
) -> Array:
    """Boolean scalar: does every constrained block satisfy its bounds?"""
    xp = be.xp
    valid = data.prior.in_support(be.asarray(params.local), be.asarray(params.global_), be)
    if data.t > 0:
        rho = be.asarray(params.rho)
        valid = (
            valid
            & xp.all(rho > 0)
            & xp.all(rho < 1)
            & xp.all(be.asarray(params.zeta) > 0)
            & xp.all(be.asarray(params.tau) > 0)
        )
    if data.link is Link.LOG:
        if data.has_intercept:
            # The shifted predictor is ≤ 0 by construction, so the
            # whole feasibility constraint sits on the intercept.
            valid = valid & (be.asarray(params.gamma)[0] <= 0)
        else:
            for eta in (eta0, eta1):
                valid = valid & xp.all(eta <= 0)
    return valid


# ------------------------------------------------------------------ #
# log_density
# ------------------------------------------------------------------ #


def log_density(
    params: Parameters,
    data: BernoulliData,
    backend: BackendProtocol | str | None = None,
) -> Array:
    """Unnormalised log-posterior density at *params*.

    Args:
        params: Parameter point (shapes must match
            ``data.parameter_shapes()``).
        data: Validated data bundle.
        backend: Backend name or instance; ``None`` uses the
            configured default.

    Returns:
        A ``float`` on the NumPy backend, a 0-d array on the JAX
        backend.  ``-inf`` when a parameter is outside its support;
        NaN and ``+inf`` from extreme inputs propagate unchanged.

    Raises:
        ValueError: If a parameter block has the wrong shape.
    """
    be = resolve_backend(backend)
    xp = be.xp
    check_parameters(params, data)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        beta = _fixed_effects(params, data, be)
        _, b = _random_effects(params, data, be)
        eta0, eta1, _ = build_linear_predictor(params, data, beta, b, backend=be)

        total = bernoulli_log_likelihood(
            eta0,
            eta1,
            data.link,
            weights0=data.weights0,
            weights1=data.weights1,
            prior_pd=data.prior_pd,
            backend=be,
        )
        total = total + data.prior.log_prior(
            be.asarray(params.z_beta),
            be.asarray(params.local),
            be.asarray(params.global_),
            be,
        )
        if data.has_intercept and data.intercept_prior is not None:
            total = total + data.intercept_prior.log_prior(be.asarray(params.gamma)[0], be)
        if data.t > 0:
            total = total + decov_log_prior(
                data.layout,
                params.z_b,
                params.z_T,
                params.rho,
                params.zeta,
                params.tau,
                data.regularization,
                data.concentration,
                data.gamma_shape,
                backend=be,
            )

        valid = _in_support(params, data, eta0, eta1, be)
        result = xp.where(valid, total, -np.inf)

    if be.name == "numpy":
        if not bool(valid):
            logger.debug("Parameter point outside its support; log density is -inf.")
        return float(result)
    return result


# ------------------------------------------------------------------ #
# generate
# ------------------------------------------------------------------ #


def generate(
    params: Parameters,
    data: BernoulliData,
    rng: np.random.Generator | int | None = None,
    backend: BackendProtocol | str | None = None,
) -> GeneratedQuantities:
    """Derived quantities of one parameter point.

    ``alpha`` undoes the centering of X and the log-link shift:
    ``alpha = gamma − xbar·beta − shift``.  ``mean_PPD`` is the
    average of one Bernoulli draw per observation at the linked
    probabilities of both partitions.

    Args:
        params: Parameter point.
        data: Validated data bundle.
        rng: Seed or ``numpy.random.Generator`` for the predictive draw.
        backend: Backend name or instance.

    Raises:
        ValueError: If a parameter block has the wrong shape.
    """
    be = resolve_backend(backend)
    check_parameters(params, data)
    rng = np.random.default_rng(rng)

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        beta = _fixed_effects(params, data, be)
        theta_L, b = _random_effects(params, data, be)
        eta0, eta1, shift = build_linear_predictor(params, data, beta, b, backend=be)
        mu = np.concatenate(
            [
                np.asarray(linkinv(eta0, data.link, backend=be), dtype=np.float64),
                np.asarray(linkinv(eta1, data.link, backend=be), dtype=np.float64),
            ]
        )

    beta = np.asarray(beta, dtype=np.float64)
    alpha = None
    if data.has_intercept:
        gamma = float(np.asarray(params.gamma, dtype=np.float64)[0])
        alpha = gamma - float(data.xbar @ beta) - float(np.asarray(shift))

    if mu.size == 0:
        mean_ppd = float("nan")
    else:
        mean_ppd = float(np.mean(rng.random(mu.size) < mu))

    return GeneratedQuantities(
        alpha=alpha,
        mean_PPD=mean_ppd,
        beta=beta,
        b=np.asarray(b, dtype=np.float64),
        theta_L=np.asarray(theta_L, dtype=np.float64),
    )


# ------------------------------------------------------------------ #
# BernoulliModel
# ------------------------------------------------------------------ #


class BernoulliModel:
    """A data bundle bound to a backend.

    Convenience wrapper for samplers that call the density many times
    with the same data: the backend is resolved once, and flat
    parameter vectors are unpacked with the bundle's layout.

    Args:
        data: Validated data bundle.
        backend: Backend name or instance; ``None`` uses the
            configured default.
    """

    def __init__(self, data: BernoulliData, backend: BackendProtocol | str | None = None) -> None:
        self.data = data
        self.backend = resolve_backend(backend)

    def __repr__(self) -> str:
        return (
            f"BernoulliModel(K={self.data.K}, N={list(self.data.N)}, "
            f"t={self.data.t}, link={self.data.link.name.lower()}, "
            f"backend={self.backend.name!r})"
        )

    @property
    def n_parameters(self) -> int:
        return self.data.n_parameters

    def log_density(self, params: Parameters) -> Array:
        return log_density(params, self.data, backend=self.backend)

    def log_density_flat(self, vector: Any) -> Array:
        """Log density at a flat parameter vector (see :mod:`.data`)."""
        return self.log_density(Parameters.from_flat(vector, self.data))

    def generate(
        self, params: Parameters, rng: np.random.Generator | int | None = None
    ) -> GeneratedQuantities:
        return generate(params, self.data, rng=rng, backend=self.backend)

    def batch_log_density(
        self, params_seq: Iterable[Parameters | Any], n_jobs: int = 1
    ) -> np.ndarray:
        """Log density of many independent parameter points.

        Items may be :class:`Parameters` or flat vectors.  On the JAX
        backend a 2-D array of flat vectors is evaluated with
        ``jax.vmap``; everything else is dispatched through
        ``joblib.Parallel(prefer="threads")``.

        Returns:
            Array of shape ``(n_points,)``.
        """
        if self.backend.name == "jax" and hasattr(params_seq, "ndim") and params_seq.ndim == 2:
            import jax

            return np.asarray(jax.vmap(self.log_density_flat)(self.backend.asarray(params_seq)))

        def _one(item: Parameters | Any) -> float:
            if isinstance(item, Parameters):
                return float(self.log_density(item))
            return float(self.log_density_flat(item))

        values = Parallel(n_jobs=n_jobs, prefer="threads")(delayed(_one)(item) for item in params_seq)
        return np.asarray(values, dtype=np.float64)

    def grad_log_density_flat(self, vector: Any) -> np.ndarray:
        """Gradient of the log density with respect to a flat vector.

        Raises:
            ValueError: If the model is not bound to the JAX backend.
        """
        if self.backend.name != "jax":
            msg = (
                "grad_log_density_flat requires the 'jax' backend, "
                f"got {self.backend.name!r}."
            )
            raise ValueError(msg)
        import jax

        grad = jax.grad(self.log_density_flat)(self.backend.asarray(vector))
        return np.asarray(grad, dtype=np.float64)
