"""Link functions for the Bernoulli response.

A link maps the success probability μ to the linear predictor η; the
density only ever needs the inverse direction, μ = g⁻¹(η):

==========  ====  =========================================
Link        Code  Inverse link g⁻¹(η)
==========  ====  =========================================
logit       1     1 / (1 + e^(−η))
probit      2     Φ(η)
cauchit     3     atan(η) / π + 1/2
log         4     e^η  (η must stay ≤ 0)
cloglog     5     1 − exp(−e^η)
==========  ====  =========================================

The integer codes are part of the data-bundle contract: samplers
written against a numeric data dictionary pass ``link=4`` rather than
``"log"``.  :func:`resolve_link` accepts either form and is the single
place where an invalid selector is rejected.
"""

from __future__ import annotations

import enum
from typing import Any

from ._backends import BackendProtocol, resolve_backend


class Link(enum.IntEnum):
    """Enumerated link selector with the bundle's integer codes."""

    LOGIT = 1
    PROBIT = 2
    CAUCHIT = 3
    LOG = 4
    CLOGLOG = 5


def resolve_link(link: Link | int | str) -> Link:
    """Resolve a link name, integer code, or :class:`Link` member.

    Raises:
        ValueError: If *link* does not name one of the five links.
    """
    if isinstance(link, Link):
        return link
    if isinstance(link, str):
        try:
            return Link[link.strip().upper()]
        except KeyError:
            available = ", ".join(m.name.lower() for m in Link)
            msg = f"Invalid link {link!r}.  Available links: {available}."
            raise ValueError(msg) from None
    try:
        return Link(int(link))
    except (TypeError, ValueError):
        msg = f"Invalid link code {link!r}; expected an integer in 1..5."
        raise ValueError(msg) from None


def linkinv(
    eta: Any,
    link: Link | int | str,
    backend: BackendProtocol | str | None = None,
) -> Any:
    """Elementwise inverse link ``μ = g⁻¹(η)``.

    Args:
        eta: Linear predictor (scalar or array).
        link: Link selector (see :func:`resolve_link`).
        backend: Backend name or instance; ``None`` uses the active
            backend policy.

    Returns:
        Probabilities with the shape of *eta* (for the log link,
        values above 1 when ``eta > 0``).

    Raises:
        ValueError: If *link* is invalid.
    """
    link = resolve_link(link)
    be = resolve_backend(backend)
    xp = be.xp
    eta = be.asarray(eta)

    if link is Link.LOGIT:
        return be.sigmoid(eta)
    if link is Link.PROBIT:
        return be.ndtr(eta)
    if link is Link.CAUCHIT:
        return xp.arctan(eta) / xp.pi + 0.5
    if link is Link.LOG:
        return xp.exp(eta)
    # cloglog
    return -xp.expm1(-xp.exp(eta))
