"""Tests for the CSR design and the random-effects design builder."""

import numpy as np
import pytest

from bernoulli_hglm.sparse import (
    CSRMatrix,
    GroupingTerm,
    build_random_effects_design,
    csr_matvec,
)

# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def rng():
    return np.random.default_rng(11)


@pytest.fixture()
def hand_built():
    """3×4 matrix with an empty middle row.

        [[1, 0, 2, 0],
         [0, 0, 0, 0],
         [0, 3, 0, 4]]
    """
    csr = CSRMatrix(w=[1.0, 2.0, 3.0, 4.0], v=[0, 2, 1, 3], u=[0, 2, 2, 4], n_cols=4)
    dense = np.array([[1.0, 0.0, 2.0, 0.0], [0.0, 0.0, 0.0, 0.0], [0.0, 3.0, 0.0, 4.0]])
    return csr, dense


# ------------------------------------------------------------------ #
# CSRMatrix
# ------------------------------------------------------------------ #


class TestCSRMatrix:
    def test_shape_and_counts(self, hand_built):
        csr, _ = hand_built
        assert csr.shape == (3, 4)
        assert csr.n_rows == 3
        assert csr.nnz == 4

    def test_to_dense(self, hand_built):
        csr, dense = hand_built
        np.testing.assert_array_equal(csr.to_dense(), dense)

    def test_from_dense_round_trip(self, hand_built):
        csr, dense = hand_built
        rebuilt = CSRMatrix.from_dense(dense)
        np.testing.assert_array_equal(rebuilt.w, csr.w)
        np.testing.assert_array_equal(rebuilt.v, csr.v)
        np.testing.assert_array_equal(rebuilt.u, csr.u)

    def test_row_ids(self, hand_built):
        csr, _ = hand_built
        np.testing.assert_array_equal(csr.row_ids, [0, 0, 2, 2])

    def test_empty(self):
        csr = CSRMatrix.empty(3, 5)
        assert csr.shape == (3, 5)
        assert csr.nnz == 0

    def test_rejects_wrong_pointer_end(self):
        with pytest.raises(ValueError, match="end at nnz"):
            CSRMatrix(w=[1.0, 2.0], v=[0, 1], u=[0, 1], n_cols=2)

    def test_rejects_decreasing_pointers(self):
        with pytest.raises(ValueError, match="non-decreasing"):
            CSRMatrix(w=[1.0, 2.0], v=[0, 1], u=[0, 2, 1, 2], n_cols=2)

    def test_rejects_column_out_of_range(self):
        with pytest.raises(ValueError, match="column indices"):
            CSRMatrix(w=[1.0], v=[3], u=[0, 1], n_cols=3)

    def test_rejects_negative_column(self):
        with pytest.raises(ValueError, match="column indices"):
            CSRMatrix(w=[1.0], v=[-1], u=[0, 1], n_cols=3)

    def test_rejects_length_mismatch(self):
        with pytest.raises(ValueError, match="value array"):
            CSRMatrix(w=[1.0, 2.0], v=[0], u=[0, 2], n_cols=2)

    def test_rejects_empty_pointer_array(self):
        with pytest.raises(ValueError, match="n_rows \\+ 1"):
            CSRMatrix(w=[], v=[], u=[], n_cols=2)


# ------------------------------------------------------------------ #
# csr_matvec
# ------------------------------------------------------------------ #


class TestCsrMatvec:
    def test_matches_dense_product(self, hand_built, rng):
        csr, dense = hand_built
        for _ in range(5):
            b = rng.standard_normal(4)
            np.testing.assert_allclose(csr_matvec(csr, b, backend="numpy"), dense @ b)

    def test_empty_row_is_zero(self, hand_built):
        csr, _ = hand_built
        assert csr_matvec(csr, np.ones(4), backend="numpy")[1] == 0.0

    def test_random_sparse_matrix(self, rng):
        dense = rng.standard_normal((20, 9)) * (rng.random((20, 9)) < 0.3)
        csr = CSRMatrix.from_dense(dense)
        b = rng.standard_normal(9)
        np.testing.assert_allclose(csr_matvec(csr, b, backend="numpy"), dense @ b)

    def test_rejects_wrong_length(self, hand_built):
        csr, _ = hand_built
        with pytest.raises(ValueError, match="b must have shape"):
            csr_matvec(csr, np.ones(3), backend="numpy")

    def test_zero_row_matrix(self):
        out = csr_matvec(CSRMatrix.empty(0, 2), np.ones(2), backend="numpy")
        assert out.shape == (0,)

    def test_jax_matches_numpy(self, hand_built, rng):
        pytest.importorskip("jax")
        csr, dense = hand_built
        b = rng.standard_normal(4)
        np.testing.assert_allclose(np.asarray(csr_matvec(csr, b, backend="jax")), dense @ b)


# ------------------------------------------------------------------ #
# build_random_effects_design
# ------------------------------------------------------------------ #


class TestBuildRandomEffectsDesign:
    def test_intercept_only(self):
        Z0, Z1, terms = build_random_effects_design(
            np.array(["a", "b", "a", "c"]), is_one=[False, True, True, False]
        )
        assert terms == [(1, 3)]
        np.testing.assert_array_equal(Z0.to_dense(), [[1, 0, 0], [0, 0, 1]])
        np.testing.assert_array_equal(Z1.to_dense(), [[0, 1, 0], [1, 0, 0]])

    def test_slopes_level_major(self):
        X = np.array([[2.0, 5.0], [3.0, 6.0], [4.0, 7.0]])
        term = GroupingTerm(np.array([0, 1, 0]), slopes=(1,))
        Z0, Z1, terms = build_random_effects_design(term, is_one=[True, True, True], X=X)
        assert terms == [(2, 2)]
        assert Z0.shape == (0, 4)
        # Columns: level0 int, level0 slope, level1 int, level1 slope.
        np.testing.assert_array_equal(
            Z1.to_dense(), [[1, 5, 0, 0], [0, 0, 1, 6], [1, 7, 0, 0]]
        )

    def test_every_row_stores_one_entry_per_effect(self):
        X = np.arange(8.0).reshape(4, 2)
        terms = [GroupingTerm([0, 1, 0, 1], slopes=(0, 1)), GroupingTerm([5, 5, 6, 7])]
        Z0, Z1, sizes = build_random_effects_design(terms, is_one=[0, 1, 0, 1], X=X)
        assert sizes == [(3, 2), (1, 3)]
        for Z in (Z0, Z1):
            np.testing.assert_array_equal(np.diff(Z.u), 4)
            assert Z.n_cols == 9

    def test_matches_dense_construction(self, rng):
        n = 40
        X = rng.standard_normal((n, 3))
        school = rng.integers(0, 5, n)
        region = rng.integers(0, 3, n)
        is_one = rng.random(n) < 0.4
        terms = [GroupingTerm(school, slopes=(2,)), GroupingTerm(region)]
        Z0, Z1, sizes = build_random_effects_design(terms, is_one, X=X)

        blocks = []
        for labels, slopes in ((school, [2]), (region, [])):
            levels = np.unique(labels)
            onehot = (labels[:, None] == levels).astype(float)
            effects = [onehot] + [onehot * X[:, [c]] for c in slopes]
            blocks.append(np.stack(effects, axis=2).reshape(n, -1))
        Z = np.hstack(blocks)

        assert sizes == [(2, len(np.unique(school))), (1, len(np.unique(region)))]
        np.testing.assert_array_equal(Z0.to_dense(), Z[~is_one])
        np.testing.assert_array_equal(Z1.to_dense(), Z[is_one])

    def test_slopes_require_X(self):
        with pytest.raises(ValueError, match="no design X"):
            build_random_effects_design(GroupingTerm([0, 1], slopes=(0,)), [0, 1])

    def test_slope_column_out_of_range(self):
        with pytest.raises(ValueError, match="outside X"):
            build_random_effects_design(
                GroupingTerm([0, 1], slopes=(3,)), [0, 1], X=np.zeros((2, 2))
            )

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="3 labels, expected 4"):
            build_random_effects_design(np.zeros(3), [0, 1, 0, 1])

    def test_labels_must_be_1d(self):
        with pytest.raises(ValueError, match="1-D"):
            GroupingTerm(np.zeros((2, 2)))
