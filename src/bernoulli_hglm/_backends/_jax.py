"""JAX backend for differentiable log-density evaluation.

Implements the :class:`~._backends.BackendProtocol` primitives with
``jax.numpy`` and ``jax.scipy`` so that the full log-density built by
:mod:`bernoulli_hglm.model` is traceable: an external sampler can
``jax.jit`` it and take ``jax.grad`` with respect to a flat parameter
vector.

Float64 rationale
~~~~~~~~~~~~~~~~~
All arithmetic uses **float64**.  The log link evaluates
``log1m_exp(eta)`` for ``eta`` arbitrarily close to 0 and the onion
construction divides by ``‖z_T‖²``; in float32 both lose most of
their significant digits long before a sampler's step-size adaptation
settles.  ``jax_enable_x64`` is switched on at import time for that
reason.

Graceful degradation
~~~~~~~~~~~~~~~~~~~~
If JAX is not installed, the :class:`JaxBackend` can still be
instantiated (for introspection) but ``is_available`` returns
``False`` and :func:`resolve_backend` will raise ``ImportError``
when this backend is explicitly requested.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

# ------------------------------------------------------------------ #
# Optional JAX import
# ------------------------------------------------------------------ #
#
# If JAX is absent, the module loads successfully but ``is_available``
# returns ``False`` and resolve_backend() gates on that.

try:
    import jax

    # Enable 64-bit floating point before any array creation.
    jax.config.update("jax_enable_x64", True)

    import jax.numpy as jnp
    from jax.scipy import special as jsp_special
    from jax.scipy import stats as jsp_stats

    _CAN_IMPORT_JAX = True
except ImportError:
    _CAN_IMPORT_JAX = False


_LOG_HALF = -float(np.log(2.0))


@dataclass(frozen=True)
class JaxBackend:
    """JAX compute backend.

    The frozen dataclass has no mutable state — all per-call data
    flows through method arguments, making instances trivially
    thread-safe and safe to close over inside ``jax.jit``.

    Every primitive is written so that the *untaken* branch of a
    ``jnp.where`` stays finite for in-domain inputs; otherwise the
    gradient of the taken branch would be poisoned by ``0 * nan``.
    """

    @property
    def name(self) -> str:
        return "jax"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return _CAN_IMPORT_JAX

    @property
    def xp(self) -> Any:  # noqa: PLR6301
        return jnp

    def asarray(self, a: Any) -> Any:  # noqa: PLR6301
        return jnp.asarray(a, dtype=jnp.float64)

    # ================================================================ #
    # Link-function primitives
    # ================================================================ #

    def sigmoid(self, x: Any) -> Any:  # noqa: PLR6301
        return jax.nn.sigmoid(x)

    def log_sigmoid(self, x: Any) -> Any:  # noqa: PLR6301
        return jax.nn.log_sigmoid(x)

    def ndtr(self, x: Any) -> Any:  # noqa: PLR6301
        return jsp_special.ndtr(x)

    def log_ndtr(self, x: Any) -> Any:  # noqa: PLR6301
        return jsp_special.log_ndtr(x)

    def log1m_exp(self, a: Any) -> Any:  # noqa: PLR6301
        a = jnp.asarray(a, dtype=jnp.float64)
        return jnp.where(
            a > _LOG_HALF,
            jnp.log(-jnp.expm1(a)),
            jnp.log1p(-jnp.exp(a)),
        )

    # ================================================================ #
    # Prior log-densities
    # ================================================================ #

    def norm_logpdf(self, x: Any, loc: Any = 0.0, scale: Any = 1.0) -> Any:  # noqa: PLR6301
        return jsp_stats.norm.logpdf(x, loc, scale)

    def t_logpdf(self, x: Any, df: Any, loc: Any = 0.0, scale: Any = 1.0) -> Any:  # noqa: PLR6301
        return jsp_stats.t.logpdf(x, df, loc, scale)

    def gamma_logpdf(self, x: Any, shape: Any) -> Any:  # noqa: PLR6301
        return jsp_stats.gamma.logpdf(x, shape)

    def invgamma_logpdf(self, x: Any, shape: Any, rate: Any) -> Any:  # noqa: PLR6301
        # jax.scipy.stats has no inverse gamma; written out from
        #   β^α / Γ(α) · x^(−α−1) · exp(−β / x).
        x = jnp.asarray(x, dtype=jnp.float64)
        shape = jnp.asarray(shape, dtype=jnp.float64)
        rate = jnp.asarray(rate, dtype=jnp.float64)
        logpdf = (
            shape * jnp.log(rate)
            - jsp_special.gammaln(shape)
            - (shape + 1.0) * jnp.log(x)
            - rate / x
        )
        return jnp.where(x > 0, logpdf, -jnp.inf)

    def beta_logpdf(self, x: Any, a: Any, b: Any) -> Any:  # noqa: PLR6301
        return jsp_stats.beta.logpdf(x, a, b)

    # ================================================================ #
    # Sparse helpers
    # ================================================================ #

    def segment_sum(  # noqa: PLR6301
        self, data: Any, segment_ids: np.ndarray, num_segments: int
    ) -> Any:
        return jax.ops.segment_sum(
            jnp.asarray(data, dtype=jnp.float64),
            jnp.asarray(segment_ids),
            num_segments=num_segments,
        )
