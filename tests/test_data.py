"""Tests for the data bundle and the parameter container."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from bernoulli_hglm.covariance import GroupTermLayout
from bernoulli_hglm.data import BernoulliData, Parameters, check_parameters
from bernoulli_hglm.links import Link
from bernoulli_hglm.priors import HorseshoePlusPrior, HorseshoePrior, NormalPrior, StudentTPrior
from bernoulli_hglm.sparse import CSRMatrix, GroupingTerm

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


@pytest.fixture()
def grouped_bundle():
    """Numeric bundle with one intercept-only term and one slope term.

    N = [3, 2], K = 2, terms (p, l) = (1, 2), (2, 2) → q = 6.
    """
    Z0 = np.array(
        [
            [1, 0, 1, 0.5, 0, 0],
            [0, 1, 0, 0, 1, -1.0],
            [1, 0, 0, 0, 1, 2.0],
        ]
    )
    Z1 = np.array(
        [
            [0, 1, 1, 1.5, 0, 0],
            [1, 0, 0, 0, 1, 0.3],
        ]
    )
    csr0 = CSRMatrix.from_dense(Z0)
    csr1 = CSRMatrix.from_dense(Z1)
    return {
        "K": 2,
        "N": [3, 2],
        "X0": [[0.1, -0.2], [0.3, 0.0], [-0.4, 0.2]],
        "X1": [[0.0, 0.5], [0.2, -0.1]],
        "xbar": [1.0, 2.0],
        "link": 1,
        "prior_dist": 1,
        "prior_mean": [0.0, 0.0],
        "prior_scale": [2.5, 2.5],
        "prior_df": [1.0, 1.0],
        "prior_dist_for_intercept": 1,
        "prior_mean_for_intercept": 0.0,
        "prior_scale_for_intercept": 10.0,
        "has_intercept": 1,
        "t": 2,
        "p": [1, 2],
        "l": [2, 2],
        "q": 6,
        "w0": csr0.w,
        "v0": csr0.v,
        "u0": csr0.u,
        "w1": csr1.w,
        "v1": csr1.v,
        "u1": csr1.u,
        "regularization": [1.0, 2.0],
        "concentration": [1.0, 1.0],
        "shape": [1.0, 1.0],
        "scale": [1.0, 1.0],
        "prior_PD": 0,
    }


# ------------------------------------------------------------------ #
# Direct construction
# ------------------------------------------------------------------ #


class TestConstruction:
    def test_defaults(self):
        data = BernoulliData(X0=[[0.0], [0.0]], X1=[[1.0], [1.0]])
        assert data.K == 1
        assert data.N == (2, 2)
        assert data.t == 0
        assert data.q == 0
        assert data.link is Link.LOGIT
        assert isinstance(data.prior, NormalPrior)
        assert data.has_intercept
        assert not data.has_weights
        assert not data.has_offset
        np.testing.assert_array_equal(data.xbar, [0.0])

    def test_link_resolved(self):
        data = BernoulliData(X0=[[0.0]], X1=[[1.0]], link="cloglog")
        assert data.link is Link.CLOGLOG

    def test_zero_columns(self):
        data = BernoulliData(X0=np.zeros((2, 0)), X1=np.zeros((3, 0)))
        assert data.K == 0
        assert data.N == (2, 3)

    def test_empty_y0_partition_takes_width_from_X1(self):
        data = BernoulliData(X0=[], X1=[[1.0, 2.0]])
        assert data.K == 2
        assert data.N == (0, 1)

    def test_column_mismatch(self):
        with pytest.raises(ValueError, match="columns"):
            BernoulliData(X0=np.zeros((2, 2)), X1=np.zeros((2, 3)))

    def test_xbar_length(self):
        with pytest.raises(ValueError, match="xbar"):
            BernoulliData(X0=np.zeros((2, 2)), X1=np.zeros((2, 2)), xbar=[1.0])

    def test_invalid_link(self):
        with pytest.raises(ValueError):
            BernoulliData(X0=[[0.0]], X1=[[1.0]], link=6)

    def test_prior_hyperparameter_length(self):
        with pytest.raises(ValueError, match="prior_scale|'scale'"):
            BernoulliData(
                X0=np.zeros((2, 2)), X1=np.zeros((2, 2)), prior=NormalPrior(scale=[1.0, 1.0, 1.0])
            )

    def test_weights_both_or_neither(self):
        with pytest.raises(ValueError, match="weights0 and weights1"):
            BernoulliData(X0=[[0.0]], X1=[[1.0]], weights0=[1.0])

    def test_weights_length(self):
        with pytest.raises(ValueError, match="weights1 must have length 1"):
            BernoulliData(X0=[[0.0]], X1=[[1.0]], weights0=[1.0], weights1=[1.0, 2.0])

    def test_offsets_both_or_neither(self):
        with pytest.raises(ValueError, match="offset0 and offset1"):
            BernoulliData(X0=[[0.0]], X1=[[1.0]], offset1=[1.0])

    def test_terms_require_Z(self):
        with pytest.raises(ValueError, match="Z0 and Z1 are required"):
            BernoulliData(
                X0=[[0.0]],
                X1=[[1.0]],
                layout=GroupTermLayout(p=(1,), l=(2,)),
                regularization=[1.0],
                gamma_shape=[1.0],
                scale=[1.0],
            )

    def test_Z_shape_checked(self):
        with pytest.raises(ValueError, match="Z1 must have shape"):
            BernoulliData(
                X0=[[0.0]],
                X1=[[1.0]],
                layout=GroupTermLayout(p=(1,), l=(2,)),
                Z0=CSRMatrix.from_dense([[1.0, 0.0]]),
                Z1=CSRMatrix.from_dense([[1.0, 0.0, 0.0]]),
                regularization=[1.0],
                gamma_shape=[1.0],
                scale=[1.0],
            )

    def test_hyperparameter_lengths(self):
        with pytest.raises(ValueError, match="concentration must have length 2"):
            BernoulliData(
                X0=[[0.0]],
                X1=[[1.0]],
                layout=GroupTermLayout(p=(2,), l=(1,)),
                Z0=CSRMatrix.from_dense([[1.0, 0.0]]),
                Z1=CSRMatrix.from_dense([[0.0, 1.0]]),
                regularization=[1.0],
                concentration=[1.0],
                gamma_shape=[1.0],
                scale=[1.0],
            )

    def test_hyperparameters_positive(self):
        with pytest.raises(ValueError, match="gamma_shape must be strictly positive"):
            BernoulliData(
                X0=[[0.0]],
                X1=[[1.0]],
                layout=GroupTermLayout(p=(1,), l=(1,)),
                Z0=CSRMatrix.from_dense([[1.0]]),
                Z1=CSRMatrix.from_dense([[1.0]]),
                regularization=[1.0],
                gamma_shape=[0.0],
                scale=[1.0],
            )


# ------------------------------------------------------------------ #
# from_dict
# ------------------------------------------------------------------ #


class TestFromDict:
    def test_grouped_bundle(self, grouped_bundle):
        data = BernoulliData.from_dict(grouped_bundle)
        assert data.K == 2
        assert data.N == (3, 2)
        assert data.layout == GroupTermLayout(p=(1, 2), l=(2, 2))
        assert data.q == 6
        assert data.Z0.shape == (3, 6)
        np.testing.assert_array_equal(data.gamma_shape, [1.0, 1.0])
        assert data.intercept_prior.scale == 10.0

    def test_minimal_bundle(self):
        data = BernoulliData.from_dict({"X0": [[0.0]], "X1": [[1.0]]})
        assert data.K == 1
        assert data.t == 0

    def test_empty_partition_with_K(self):
        data = BernoulliData.from_dict({"K": 2, "N": [0, 1], "X0": [], "X1": [[1.0, 2.0]]})
        assert data.X0.shape == (0, 2)

    def test_K_mismatch(self):
        with pytest.raises(ValueError, match="K=3"):
            BernoulliData.from_dict({"K": 3, "X0": [[0.0]], "X1": [[1.0]]})

    def test_N_mismatch(self):
        with pytest.raises(ValueError, match="N="):
            BernoulliData.from_dict({"N": [2, 1], "X0": [[0.0]], "X1": [[1.0]]})

    def test_q_mismatch(self, grouped_bundle):
        grouped_bundle["q"] = 5
        with pytest.raises(ValueError, match="q=5"):
            BernoulliData.from_dict(grouped_bundle)

    def test_bad_csr(self, grouped_bundle):
        grouped_bundle["v0"] = np.where(grouped_bundle["v0"] == 5, 6, grouped_bundle["v0"])
        with pytest.raises(ValueError, match="column indices"):
            BernoulliData.from_dict(grouped_bundle)

    def test_flags_gate_weights_and_offsets(self, grouped_bundle):
        grouped_bundle["weights0"] = [1.0, 2.0, 3.0]
        grouped_bundle["weights1"] = [1.0, 1.0]
        assert not BernoulliData.from_dict(grouped_bundle).has_weights
        grouped_bundle["has_weights"] = 1
        assert BernoulliData.from_dict(grouped_bundle).has_weights

    def test_prior_codes(self, grouped_bundle):
        grouped_bundle["prior_dist"] = 2
        assert isinstance(BernoulliData.from_dict(grouped_bundle).prior, StudentTPrior)
        grouped_bundle["prior_dist"] = 4
        prior = BernoulliData.from_dict(grouped_bundle).prior
        assert isinstance(prior, HorseshoePlusPrior)
        np.testing.assert_array_equal(prior.local4_df, [2.5, 2.5])

    def test_intercept_prior_none(self, grouped_bundle):
        grouped_bundle["prior_dist_for_intercept"] = 0
        assert BernoulliData.from_dict(grouped_bundle).intercept_prior is None

    def test_prior_pd_flag(self, grouped_bundle):
        grouped_bundle["prior_PD"] = 1
        assert BernoulliData.from_dict(grouped_bundle).prior_pd


# ------------------------------------------------------------------ #
# from_frames
# ------------------------------------------------------------------ #


class TestFromFrames:
    def test_split_and_center(self):
        X = pd.DataFrame({"x1": [1.0, 2.0, 3.0, 6.0], "x2": [0.0, 1.0, 0.0, 1.0]})
        y = pd.Series([0, 1, 1, 0])
        data = BernoulliData.from_frames(X, y)
        np.testing.assert_allclose(data.xbar, [3.0, 0.5])
        np.testing.assert_allclose(data.X0, [[-2.0, -0.5], [3.0, 0.5]])
        np.testing.assert_allclose(data.X1, [[-1.0, 0.5], [0.0, -0.5]])

    def test_groups_build_csr(self, rng):
        n = 30
        X = rng.standard_normal((n, 2))
        y = (rng.random(n) < 0.5).astype(int)
        groups = np.arange(n) % 4
        data = BernoulliData.from_frames(X, y, groups=groups, random_slopes=[1])
        assert data.layout == GroupTermLayout(p=(2,), l=(4,))
        assert data.Z0.shape == (int((y == 0).sum()), 8)
        assert data.Z1.shape == (int((y == 1).sum()), 8)
        np.testing.assert_array_equal(data.concentration, [1.0, 1.0])
        np.testing.assert_array_equal(data.regularization, [1.0])

    def test_grouping_terms_carry_their_own_slopes(self, rng):
        n = 24
        X = rng.standard_normal((n, 2))
        y = np.arange(n) % 2
        terms = [GroupingTerm(np.arange(n) % 3, slopes=(0, 1)), GroupingTerm(np.arange(n) % 2)]
        data = BernoulliData.from_frames(X, y, groups=terms, concentration=2.0)
        assert data.layout == GroupTermLayout(p=(3, 1), l=(3, 2))
        # Slope values come from the uncentered design.
        np.testing.assert_allclose(data.Z1.w[1:3], X[1])
        np.testing.assert_array_equal(data.concentration, np.full(3, 2.0))

    def test_weights_and_offset_split(self):
        X = np.array([[0.0], [1.0], [2.0]])
        y = np.array([1, 0, 1])
        data = BernoulliData.from_frames(X, y, weights=[1.0, 2.0, 3.0], offset=[0.1, 0.2, 0.3])
        np.testing.assert_array_equal(data.weights0, [2.0])
        np.testing.assert_array_equal(data.weights1, [1.0, 3.0])
        np.testing.assert_array_equal(data.offset1, [0.1, 0.3])

    def test_kwargs_forwarded(self):
        data = BernoulliData.from_frames(
            [[0.0], [1.0]], [0, 1], link="probit", prior=HorseshoePrior(), has_intercept=False
        )
        assert data.link is Link.PROBIT
        assert isinstance(data.prior, HorseshoePrior)
        assert not data.has_intercept

    def test_non_binary_y(self):
        with pytest.raises(ValueError, match="binary"):
            BernoulliData.from_frames([[0.0], [1.0]], [0, 2])

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="rows"):
            BernoulliData.from_frames([[0.0], [1.0]], [0, 1, 1])


# ------------------------------------------------------------------ #
# Parameters
# ------------------------------------------------------------------ #


class TestParameters:
    def test_shapes_follow_bundle(self, grouped_bundle):
        grouped_bundle["prior_dist"] = 3
        data = BernoulliData.from_dict(grouped_bundle)
        assert data.parameter_shapes() == {
            "z_beta": (2,),
            "gamma": (1,),
            "global_": (2,),
            "local": (2, 2),
            "z_b": (6,),
            "z_T": (0,),
            "rho": (1,),
            "zeta": (2,),
            "tau": (2,),
        }
        assert data.n_parameters == 2 + 1 + 2 + 4 + 6 + 0 + 1 + 2 + 2

    def test_flat_round_trip(self, grouped_bundle, rng):
        grouped_bundle["prior_dist"] = 4
        data = BernoulliData.from_dict(grouped_bundle)
        vector = rng.standard_normal(data.n_parameters)
        params = Parameters.from_flat(vector, data)
        assert params.local.shape == (4, 2)
        np.testing.assert_array_equal(params.to_flat(data), vector)

    def test_from_flat_accepts_lists(self):
        data = BernoulliData(X0=[[0.0]], X1=[[1.0]])
        params = Parameters.from_flat([0.5, 0.1], data)
        np.testing.assert_array_equal(params.z_beta, [0.5])
        np.testing.assert_array_equal(params.gamma, [0.1])

    def test_from_flat_wrong_length(self):
        data = BernoulliData(X0=[[0.0]], X1=[[1.0]])
        with pytest.raises(ValueError, match="length 2"):
            Parameters.from_flat(np.zeros(3), data)

    def test_zeros(self, grouped_bundle):
        data = BernoulliData.from_dict(grouped_bundle)
        params = Parameters.zeros(data)
        check_parameters(params, data)
        assert params.to_flat(data).shape == (data.n_parameters,)

    def test_check_reports_block(self, grouped_bundle):
        data = BernoulliData.from_dict(grouped_bundle)
        params = Parameters(z_beta=np.zeros(2), gamma=np.zeros(1), z_b=np.zeros(5))
        with pytest.raises(ValueError, match="'z_b'"):
            check_parameters(params, data)

    def test_empty_blocks_may_be_omitted(self):
        data = BernoulliData(X0=[[0.0]], X1=[[1.0]], has_intercept=False)
        check_parameters(Parameters(z_beta=np.array([0.2])), data)
