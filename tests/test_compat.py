"""Tests for Polars DataFrame input compatibility."""

import numpy as np
import pandas as pd
import pytest

from bernoulli_hglm._compat import _as_float_matrix, _as_float_vector, _ensure_pandas_df

# Import polars; skip all tests in this module if not installed.
pl = pytest.importorskip("polars")


class TestEnsurePandasDf:
    """Tests for the _ensure_pandas_df converter."""

    def test_pandas_passthrough(self):
        df = pd.DataFrame({"a": [1, 2, 3]})
        result = _ensure_pandas_df(df)
        assert result is df  # exact same object, no copy

    def test_polars_converted(self):
        pl_df = pl.DataFrame({"a": [1, 2, 3]})
        result = _ensure_pandas_df(pl_df)
        assert isinstance(result, pd.DataFrame)
        assert list(result.columns) == ["a"]
        assert result["a"].tolist() == [1, 2, 3]

    def test_polars_lazyframe_collected_and_converted(self):
        lf = pl.DataFrame({"a": [1, 2, 3]}).lazy()
        result = _ensure_pandas_df(lf)
        assert isinstance(result, pd.DataFrame)
        assert result["a"].tolist() == [1, 2, 3]

    def test_rejects_invalid_type(self):
        with pytest.raises(TypeError, match="must be a pandas DataFrame"):
            _ensure_pandas_df([1, 2, 3])

    def test_error_includes_name(self):
        with pytest.raises(TypeError, match="'X'"):
            _ensure_pandas_df({"a": 1}, name="X")


class TestCoercion:
    """Design matrices and vectors from every accepted container."""

    def test_polars_matrix(self):
        X = _as_float_matrix(pl.DataFrame({"a": [1, 2], "b": [3, 4]}))
        assert X.dtype == np.float64
        np.testing.assert_array_equal(X, [[1.0, 3.0], [2.0, 4.0]])

    def test_polars_series_vector(self):
        y = _as_float_vector(pl.Series("y", [0, 1, 1]))
        np.testing.assert_array_equal(y, [0.0, 1.0, 1.0])

    def test_single_column_frame_becomes_vector(self):
        y = _as_float_vector(pd.DataFrame({"y": [0, 1]}))
        assert y.shape == (2,)

    def test_one_dimensional_matrix_becomes_column(self):
        assert _as_float_matrix(np.array([1.0, 2.0, 3.0])).shape == (3, 1)

    def test_empty_partition_keeps_width(self):
        assert _as_float_matrix([], name="X1", n_cols=3).shape == (0, 3)

    def test_zero_width_design_keeps_rows(self):
        assert _as_float_matrix(np.zeros((2, 0)), n_cols=0).shape == (2, 0)

    def test_three_dimensional_rejected(self):
        with pytest.raises(ValueError, match="must be 2-D"):
            _as_float_matrix(np.zeros((2, 2, 2)), name="X0")


class TestPolarsEndToEnd:
    """Polars and pandas inputs give the same bundle and density."""

    @staticmethod
    def _make_polars_data(n=60, seed=42):
        rng = np.random.default_rng(seed)
        X_pl = pl.DataFrame(
            {
                "x1": rng.standard_normal(n),
                "x2": rng.standard_normal(n),
            }
        )
        eta = 1.5 * X_pl["x1"].to_numpy() - 0.5 * X_pl["x2"].to_numpy()
        y_pl = pl.DataFrame({"y": (rng.random(n) < 1 / (1 + np.exp(-eta))).astype(int)})
        return X_pl, y_pl

    def test_results_match_pandas(self):
        from bernoulli_hglm import BernoulliData, Parameters, log_density

        X_pl, y_pl = self._make_polars_data()
        data_pl = BernoulliData.from_frames(X_pl, y_pl)
        data_pd = BernoulliData.from_frames(X_pl.to_pandas(), y_pl.to_pandas())

        np.testing.assert_allclose(data_pl.X0, data_pd.X0)
        np.testing.assert_allclose(data_pl.X1, data_pd.X1)
        np.testing.assert_allclose(data_pl.xbar, data_pd.xbar)

        params = Parameters(z_beta=np.array([0.4, -0.2]), gamma=np.array([0.1]))
        assert log_density(params, data_pl, backend="numpy") == pytest.approx(
            log_density(params, data_pd, backend="numpy")
        )
