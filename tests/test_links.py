"""Tests for the link functions."""

import numpy as np
import pytest

from bernoulli_hglm.links import Link, linkinv, resolve_link

ETA = np.linspace(-4.0, 3.0, 15)


class TestResolveLink:
    @pytest.mark.parametrize(
        ("selector", "expected"),
        [
            (1, Link.LOGIT),
            (2, Link.PROBIT),
            (3, Link.CAUCHIT),
            (4, Link.LOG),
            (5, Link.CLOGLOG),
            ("logit", Link.LOGIT),
            (" CLogLog ", Link.CLOGLOG),
            (Link.PROBIT, Link.PROBIT),
            (np.int64(3), Link.CAUCHIT),
        ],
    )
    def test_valid_selectors(self, selector, expected):
        assert resolve_link(selector) is expected

    @pytest.mark.parametrize("code", [0, 6, -1])
    def test_invalid_code(self, code):
        with pytest.raises(ValueError, match="Invalid link code"):
            resolve_link(code)

    def test_invalid_name(self):
        with pytest.raises(ValueError, match="Available links"):
            resolve_link("identity")

    def test_invalid_type(self):
        with pytest.raises(ValueError):
            resolve_link(None)

    def test_linkinv_rejects_invalid_link(self):
        with pytest.raises(ValueError):
            linkinv(0.0, 7, backend="numpy")


class TestLinkinv:
    @pytest.mark.parametrize("link", [Link.LOGIT, Link.PROBIT, Link.CAUCHIT, Link.CLOGLOG])
    def test_value_at_zero(self, link):
        expected = 1.0 - np.exp(-1.0) if link is Link.CLOGLOG else 0.5
        assert linkinv(0.0, link, backend="numpy") == pytest.approx(expected)

    def test_log_link_is_one_at_zero(self):
        assert linkinv(0.0, Link.LOG, backend="numpy") == pytest.approx(1.0)

    def test_cauchit_is_cauchy_cdf(self):
        from scipy import stats

        np.testing.assert_allclose(
            linkinv(ETA, "cauchit", backend="numpy"), stats.cauchy.cdf(ETA), rtol=1e-12
        )

    def test_accepts_integer_codes(self):
        np.testing.assert_allclose(
            linkinv(ETA, 2, backend="numpy"), linkinv(ETA, "probit", backend="numpy")
        )

    @pytest.mark.parametrize("link", list(Link))
    def test_monotone_increasing(self, link):
        mu = linkinv(ETA, link, backend="numpy")
        assert np.all(np.diff(mu) > 0)


class TestAgainstStatsmodels:
    """Independent reference: statsmodels' GLM link objects."""

    @pytest.fixture(scope="class")
    def sm_links(self):
        links = pytest.importorskip("statsmodels.genmod.families.links")
        return {
            Link.LOGIT: links.Logit(),
            Link.PROBIT: links.Probit(),
            Link.CAUCHIT: links.Cauchy(),
            Link.LOG: links.Log(),
            Link.CLOGLOG: links.CLogLog(),
        }

    @pytest.mark.parametrize("link", list(Link))
    def test_matches_inverse(self, sm_links, link):
        np.testing.assert_allclose(
            linkinv(ETA, link, backend="numpy"),
            sm_links[link].inverse(ETA),
            rtol=1e-10,
        )


class TestJaxLinkinv:
    @pytest.mark.parametrize("link", list(Link))
    def test_matches_numpy(self, link):
        pytest.importorskip("jax")
        np.testing.assert_allclose(
            np.asarray(linkinv(ETA, link, backend="jax")),
            linkinv(ETA, link, backend="numpy"),
            rtol=1e-12,
        )
