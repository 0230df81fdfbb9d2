"""Backend selection policy.

The density can be evaluated with plain NumPy/SciPy or with JAX; the
JAX path is traceable, so a sampler can differentiate it.  The active
choice is resolved on every call, first match wins:

1. a name set with :func:`set_backend` (anything but ``"auto"``);
2. the ``BERNOULLI_HGLM_BACKEND`` environment variable;
3. ``"jax"`` when it imports, ``"numpy"`` otherwise.

Examples:
    From the shell::

        export BERNOULLI_HGLM_BACKEND=numpy

    From Python::

        import bernoulli_hglm
        bernoulli_hglm.set_backend("numpy")
        ...
        bernoulli_hglm.set_backend("auto")  # back to the default order
"""

from __future__ import annotations

import importlib.util
import logging
import os

logger = logging.getLogger(__name__)

_ENV_VAR = "BERNOULLI_HGLM_BACKEND"
_CONCRETE = ("numpy", "jax")

_override: str | None = None


def _normalise(name: str) -> str:
    return name.strip().lower()


def _jax_is_available() -> bool:
    return importlib.util.find_spec("jax") is not None


def get_backend() -> str:
    """Name of the backend the policy currently selects.

    Returns:
        ``"jax"`` or ``"numpy"``.
    """
    if _override is not None and _override != "auto":
        return _override

    env = _normalise(os.environ.get(_ENV_VAR, ""))
    if env in _CONCRETE:
        return env
    if env and env != "auto":
        logger.debug("Ignoring unrecognised %s=%r.", _ENV_VAR, env)

    return "jax" if _jax_is_available() else "numpy"


def set_backend(name: str) -> None:
    """Pin the backend, or pass ``"auto"`` to restore the default order.

    Raises:
        ValueError: If *name* is not ``"numpy"``, ``"jax"`` or ``"auto"``.
    """
    global _override
    key = _normalise(name)
    if key not in (*_CONCRETE, "auto"):
        msg = f"Unknown backend {name!r}.  Choose 'numpy', 'jax' or 'auto'."
        raise ValueError(msg)
    _override = key
