"""NumPy / SciPy backend (always available).

This is the fallback backend that requires no optional dependencies
beyond NumPy and SciPy, both of which are hard requirements of the
package.  Special functions come from :mod:`scipy.special` and the
prior log-densities from :mod:`scipy.stats`, so every value produced
here is an independent cross-check of the hand-written JAX formulas.

Floating-point warnings
~~~~~~~~~~~~~~~~~~~~~~~
Out-of-domain parameter points (a negative scale, a correlation
outside (0, 1), a log-link intercept above its bound) are rejected by
the orchestrator with a ``-inf`` density rather than an exception.
Evaluating the density at such a point legitimately produces NaN or
±inf intermediates; the ``np.errstate`` guards below keep those from
flooding stderr with ``RuntimeWarning`` on every rejected proposal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from scipy import special, stats

_LOG_HALF = -np.log(2.0)


@dataclass(frozen=True)
class NumpyBackend:
    """NumPy / SciPy compute backend.

    The class is a frozen dataclass with no instance state — it exists
    solely to namespace the primitives behind the
    :class:`BackendProtocol` interface.  Frozen = immutable = safe to
    cache in the module-level ``_BACKEND_CACHE`` singleton.
    """

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return True

    @property
    def xp(self) -> Any:  # noqa: PLR6301
        return np

    def asarray(self, a: Any) -> np.ndarray:  # noqa: PLR6301
        return np.asarray(a, dtype=np.float64)

    # ================================================================ #
    # Link-function primitives
    # ================================================================ #

    def sigmoid(self, x: Any) -> np.ndarray:  # noqa: PLR6301
        return special.expit(x)

    def log_sigmoid(self, x: Any) -> np.ndarray:  # noqa: PLR6301
        return special.log_expit(x)

    def ndtr(self, x: Any) -> np.ndarray:  # noqa: PLR6301
        return special.ndtr(x)

    def log_ndtr(self, x: Any) -> np.ndarray:  # noqa: PLR6301
        return special.log_ndtr(x)

    # log(1 − e^a) loses precision in two different places: near
    # a = 0 (e^a ≈ 1, catastrophic cancellation) and for very
    # negative a (1 − e^a ≈ 1).  Switching at a = −log 2 picks the
    # accurate formula on each side (Mächler 2012).

    def log1m_exp(self, a: Any) -> np.ndarray:  # noqa: PLR6301
        a = np.asarray(a, dtype=np.float64)
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(
                a > _LOG_HALF,
                np.log(-np.expm1(a)),
                np.log1p(-np.exp(a)),
            )

    # ================================================================ #
    # Prior log-densities
    # ================================================================ #

    def norm_logpdf(self, x: Any, loc: Any = 0.0, scale: Any = 1.0) -> np.ndarray:  # noqa: PLR6301
        return stats.norm.logpdf(x, loc=loc, scale=scale)

    def t_logpdf(  # noqa: PLR6301
        self, x: Any, df: Any, loc: Any = 0.0, scale: Any = 1.0
    ) -> np.ndarray:
        return stats.t.logpdf(x, df, loc=loc, scale=scale)

    def gamma_logpdf(self, x: Any, shape: Any) -> np.ndarray:  # noqa: PLR6301
        return stats.gamma.logpdf(x, shape)

    def invgamma_logpdf(self, x: Any, shape: Any, rate: Any) -> np.ndarray:  # noqa: PLR6301
        # SciPy's ``scale`` for the inverse gamma is the rate of the
        # underlying gamma, i.e. β in  β^α/Γ(α) · x^(−α−1) · e^(−β/x).
        return stats.invgamma.logpdf(x, shape, scale=rate)

    def beta_logpdf(self, x: Any, a: Any, b: Any) -> np.ndarray:  # noqa: PLR6301
        return stats.beta.logpdf(x, a, b)

    # ================================================================ #
    # Sparse helpers
    # ================================================================ #
    #
    # ``np.bincount`` handles empty segments (rows of Z with no
    # non-zeros) correctly, unlike ``np.add.reduceat``, which returns
    # the *next* element for a zero-length run.

    def segment_sum(  # noqa: PLR6301
        self, data: Any, segment_ids: np.ndarray, num_segments: int
    ) -> np.ndarray:
        return np.bincount(
            segment_ids,
            weights=np.asarray(data, dtype=np.float64),
            minlength=num_segments,
        ).astype(np.float64)
