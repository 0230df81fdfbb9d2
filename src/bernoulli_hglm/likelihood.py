"""Bernoulli log-likelihood on an outcome-partitioned linear predictor.

Observations arrive pre-split by outcome: ``eta0`` holds the linear
predictor of every row with y = 0 and ``eta1`` every row with y = 1.
The split removes all per-row branching — each partition contributes
either ``log P(Y=0)`` or ``log P(Y=1)`` for every element.

Two evaluation paths
~~~~~~~~~~~~~~~~~~~~
* :func:`ll_bern` — exact and unweighted.  For each link the log
  probability is written in closed form on the η scale, so nothing is
  ever computed as ``log(μ)`` from a rounded ``μ``:

  ==========  =============================  ==========================
  Link        y = 0                          y = 1
  ==========  =============================  ==========================
  logit       log σ(−η)                      log σ(η)
  probit      log Φ(−η)                      log Φ(η)
  cauchit     log(atan2(1, η)/π)             log(atan2(1, −η)/π)
  log         log1m_exp(η)                   η
  cloglog     −e^η                           log1m_exp(−e^η)
  ==========  =============================  ==========================

* :func:`pw_bern` — pointwise ``log Bernoulli(y | g⁻¹(η))``, used when
  observation weights are present.  Apart from the logit link this
  goes through the probability scale and saturates for extreme η; it
  is the general path, not the preferred one.

:func:`bernoulli_log_likelihood` applies the selection rule.
"""

from __future__ import annotations

from typing import Any

from ._backends import BackendProtocol, resolve_backend
from .links import Link, linkinv, resolve_link


def _cauchy_log_cdf(eta: Any, be: BackendProtocol) -> Any:
    # F(η) = 1/2 + atan(η)/π = atan2(1, −η)/π, which keeps full
    # relative precision in the lower tail where 1/2 + atan(η)/π
    # cancels.
    xp = be.xp
    return xp.log(xp.arctan2(1.0, -eta) / xp.pi)


def _cauchy_log_ccdf(eta: Any, be: BackendProtocol) -> Any:
    xp = be.xp
    return xp.log(xp.arctan2(1.0, eta) / xp.pi)


def ll_bern(
    eta0: Any,
    eta1: Any,
    link: Link | int | str,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Exact unweighted Bernoulli log-likelihood.

    Args:
        eta0: Linear predictor for the y = 0 rows, shape ``(N0,)``.
        eta1: Linear predictor for the y = 1 rows, shape ``(N1,)``.
            Under the log link both are log-probabilities.
        link: Link selector.
        backend: Backend name or instance.

    Returns:
        Scalar log-likelihood.

    Raises:
        ValueError: If *link* is invalid.
    """
    link = resolve_link(link)
    be = resolve_backend(backend)
    xp = be.xp
    eta0 = be.asarray(eta0)
    eta1 = be.asarray(eta1)

    if link is Link.LOGIT:
        ll0 = be.log_sigmoid(-eta0)
        ll1 = be.log_sigmoid(eta1)
    elif link is Link.PROBIT:
        ll0 = be.log_ndtr(-eta0)
        ll1 = be.log_ndtr(eta1)
    elif link is Link.CAUCHIT:
        ll0 = _cauchy_log_ccdf(eta0, be)
        ll1 = _cauchy_log_cdf(eta1, be)
    elif link is Link.LOG:
        ll0 = be.log1m_exp(eta0)
        ll1 = eta1  # already log P(Y=1)
    else:  # cloglog
        ll0 = -xp.exp(eta0)
        ll1 = be.log1m_exp(-xp.exp(eta1))

    return xp.sum(ll0) + xp.sum(ll1)


def pw_bern(
    y: int,
    eta: Any,
    link: Link | int | str,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Pointwise Bernoulli log-likelihood for a single outcome value.

    Args:
        y: The shared outcome of every element of *eta* (0 or 1).
        eta: Linear predictor, shape ``(N,)``.
        link: Link selector.
        backend: Backend name or instance.

    Returns:
        Per-observation log-likelihood, shape ``(N,)``.

    Raises:
        ValueError: If *link* is invalid or *y* is not 0/1.
    """
    link = resolve_link(link)
    if y not in (0, 1):
        msg = f"y must be 0 or 1, got {y!r}."
        raise ValueError(msg)
    be = resolve_backend(backend)
    xp = be.xp
    eta = be.asarray(eta)

    if link is Link.LOGIT:
        return be.log_sigmoid(eta) if y == 1 else be.log_sigmoid(-eta)

    mu = linkinv(eta, link, backend=be)
    return xp.log(mu) if y == 1 else xp.log1p(-mu)


def bernoulli_log_likelihood(
    eta0: Any,
    eta1: Any,
    link: Link | int | str,
    weights0: Any = None,
    weights1: Any = None,
    prior_pd: bool = False,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Data log-likelihood with the unweighted/weighted selection rule.

    * ``prior_pd=True`` — draws from the prior predictive: the data
      contribute nothing, the result is 0.
    * no weights — :func:`ll_bern` (exact).
    * weights — ``weights0 · pw_bern(0, eta0) + weights1 · pw_bern(1, eta1)``.

    Weights must be supplied for both partitions or for neither.
    """
    link = resolve_link(link)
    be = resolve_backend(backend)
    xp = be.xp

    if prior_pd:
        return be.asarray(0.0)

    if (weights0 is None) != (weights1 is None):
        msg = "weights0 and weights1 must both be given or both be None."
        raise ValueError(msg)

    if weights0 is None:
        return ll_bern(eta0, eta1, link, backend=be)

    ll0 = xp.dot(be.asarray(weights0), pw_bern(0, eta0, link, backend=be))
    ll1 = xp.dot(be.asarray(weights1), pw_bern(1, eta1, link, backend=be))
    return ll0 + ll1
