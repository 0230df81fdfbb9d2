"""Backend abstraction layer for log-density evaluation.

Each backend implements the :class:`BackendProtocol` interface: an
array namespace (``xp``) plus the handful of numerically careful
special functions the density needs (log-sigmoid, log-Φ, ``log1m_exp``,
the log-densities of the prior distributions, and a segment sum for
the sparse random-effects product).  Core modules program against
this interface and never import NumPy-only or JAX-only math directly,
so the same code path yields a plain float on the NumPy backend and a
traceable, differentiable scalar on the JAX backend.

Resolution follows the policy set by :mod:`._config`:

1. Programmatic override via :func:`~bernoulli_hglm.set_backend`.
2. ``BERNOULLI_HGLM_BACKEND`` environment variable.
3. Auto-detection: ``"jax"`` if importable, else ``"numpy"``.

:func:`resolve_backend` translates the policy string into a concrete
backend instance.  When ``"jax"`` is explicitly requested but JAX is
not installed, an :class:`ImportError` is raised — explicit requests
are never silently degraded.  The ``"auto"`` policy is the only mode
that falls back from JAX to NumPy.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import numpy as np

from .._config import get_backend

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# BackendProtocol
# ------------------------------------------------------------------ #


@runtime_checkable
class BackendProtocol(Protocol):
    """Interface that every compute backend must implement.

    All functions are elementwise unless stated otherwise and accept
    either NumPy arrays or the backend's own array type.

    Attributes:
        name: Short identifier (e.g. ``"numpy"``, ``"jax"``).
    """

    @property
    def name(self) -> str: ...

    @property
    def is_available(self) -> bool:
        """Whether the backend's dependencies are importable."""
        ...

    @property
    def xp(self) -> Any:
        """Array namespace (``numpy`` or ``jax.numpy``)."""
        ...

    def asarray(self, a: Any) -> Any:
        """Convert *a* to a float64 backend array."""
        ...

    # ---- Link-function primitives ----------------------------------

    def sigmoid(self, x: Any) -> Any: ...

    def log_sigmoid(self, x: Any) -> Any:
        """``log(1 / (1 + exp(-x)))`` without overflow."""
        ...

    def ndtr(self, x: Any) -> Any:
        """Standard normal CDF Φ(x)."""
        ...

    def log_ndtr(self, x: Any) -> Any:
        """``log Φ(x)``, accurate far into the lower tail."""
        ...

    def log1m_exp(self, a: Any) -> Any:
        """``log(1 − exp(a))`` for ``a < 0``; NaN for ``a > 0``."""
        ...

    # ---- Prior log-densities (normalised) --------------------------

    def norm_logpdf(self, x: Any, loc: Any = 0.0, scale: Any = 1.0) -> Any: ...

    def t_logpdf(self, x: Any, df: Any, loc: Any = 0.0, scale: Any = 1.0) -> Any: ...

    def gamma_logpdf(self, x: Any, shape: Any) -> Any:
        """Gamma log-density with unit rate."""
        ...

    def invgamma_logpdf(self, x: Any, shape: Any, rate: Any) -> Any: ...

    def beta_logpdf(self, x: Any, a: Any, b: Any) -> Any: ...

    # ---- Sparse helpers --------------------------------------------

    def segment_sum(self, data: Any, segment_ids: np.ndarray, num_segments: int) -> Any:
        """Sum *data* into *num_segments* bins keyed by *segment_ids*."""
        ...


# ------------------------------------------------------------------ #
# Backend resolution
# ------------------------------------------------------------------ #

# Singleton cache — instantiated once per backend name.
_BACKEND_CACHE: dict[str, BackendProtocol] = {}


def resolve_backend(name: str | BackendProtocol | None = None) -> BackendProtocol:
    """Return a :class:`BackendProtocol` instance for *name*.

    When *name* is ``None`` (the default), the policy from
    :func:`~bernoulli_hglm._config.get_backend` is used.  A backend
    instance is returned as-is.

    Args:
        name: ``"numpy"``, ``"jax"``, a backend instance, or ``None``
            for the policy default.

    Returns:
        A backend instance ready for density evaluation.

    Raises:
        ImportError: If ``"jax"`` is explicitly requested but JAX
            is not installed.
        ValueError: If *name* is not a recognised backend.
    """
    if isinstance(name, BackendProtocol):
        return name

    if name is None:
        name = get_backend()
    name = name.strip().lower()

    if name in _BACKEND_CACHE:
        return _BACKEND_CACHE[name]

    if name == "numpy":
        from ._numpy import NumpyBackend

        backend: BackendProtocol = NumpyBackend()

    elif name == "jax":
        from ._jax import JaxBackend

        jax_backend = JaxBackend()
        if not jax_backend.is_available:
            msg = (
                "Backend 'jax' was explicitly requested but JAX is "
                "not installed.  Install JAX (`pip install jax`) or "
                "use set_backend('numpy')."
            )
            raise ImportError(msg)
        backend = jax_backend

    else:
        msg = f"Unknown backend {name!r}.  Choose 'numpy' or 'jax'."
        raise ValueError(msg)

    logger.debug("Resolved backend %r", name)
    _BACKEND_CACHE[name] = backend
    return backend
