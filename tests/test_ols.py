"""
test_ols.py - Ordinary least squares

How to run:
    pytest tests/test_ols.py -v
"""

import numpy as np
import pandas as pd
import pytest

from strewnfield.data.config import CollinearityError, InsufficientDataError
from strewnfield.spatial.regression import fit_ols, prepare_design

# ===========================================================================
# SECTION 1 — Design matrix
# ===========================================================================


class TestPrepareDesign:
    """Tests for prepare_design."""

    def test_intercept_prepended(self, regression_data):
        X, y, _ = regression_data
        X_arr, y_arr, names = prepare_design(X, y)
        assert names == ["intercept", "x1", "x2"]
        np.testing.assert_array_equal(X_arr[:, 0], 1.0)
        assert X_arr.shape == (len(y), 3)

    def test_array_input_gets_generic_names(self):
        _, _, names = prepare_design(np.ones((5, 2)), np.arange(5.0), add_intercept=False)
        assert names == ["x0", "x1"]

    def test_missing_values_are_not_imputed(self):
        """pd.NA in a nullable column is an error, never a silent 0."""
        X = pd.DataFrame({"mass": pd.array([1.0, None, 3.0, 4.0], dtype="Float64")})
        with pytest.raises(InsufficientDataError, match="mass"):
            prepare_design(X, [1.0, 2.0, 3.0, 4.0])

    def test_missing_response_reported(self):
        with pytest.raises(InsufficientDataError, match="response"):
            prepare_design(np.arange(4.0), [1.0, np.nan, 3.0, 4.0])

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError):
            prepare_design(np.ones((5, 1)), np.ones(4))


# ===========================================================================
# SECTION 2 — fit_ols
#
# We check:
#   (a) estimates     — match numpy's least squares
#   (b) diagnostics   — R² bounds, residuals orthogonal to the design
#   (c) failures      — rank deficiency, too few observations
# ===========================================================================


class TestFitOLS:
    """Tests for fit_ols."""

    def test_matches_lstsq(self, regression_data):
        X, y, _ = regression_data
        result = fit_ols(X, y)
        X_arr = np.column_stack([np.ones(len(X)), X.to_numpy()])
        expected, *_ = np.linalg.lstsq(X_arr, y.to_numpy(), rcond=None)
        np.testing.assert_allclose(result.coefficients.to_numpy(), expected, rtol=1e-8)

    def test_recovers_known_coefficients(self):
        rng = np.random.default_rng(0)
        X = rng.normal(size=(500, 2))
        y = 2.0 + 3.0 * X[:, 0] - 1.0 * X[:, 1] + rng.normal(0, 0.01, 500)
        result = fit_ols(X, y)
        np.testing.assert_allclose(result.coefficients.to_numpy(), [2.0, 3.0, -1.0], atol=0.01)
        assert result.pvalues["x0"] < 1e-10

    def test_r2_bounds(self, regression_data):
        X, y, _ = regression_data
        result = fit_ols(X, y)
        assert 0 <= result.r2 <= 1
        assert result.adj_r2 <= result.r2

    def test_residuals_orthogonal_to_design(self, regression_data):
        X, y, _ = regression_data
        result = fit_ols(X, y)
        np.testing.assert_allclose(X.to_numpy().T @ result.residuals, 0, atol=1e-8)
        assert result.residuals.sum() == pytest.approx(0, abs=1e-8)

    def test_summary_table(self, regression_data):
        X, y, _ = regression_data
        table = fit_ols(X, y).summary()
        assert list(table.columns) == ["estimate", "std_error", "t", "p"]
        assert list(table.index) == ["intercept", "x1", "x2"]

    def test_collinear_columns_raise(self):
        rng = np.random.default_rng(1)
        x = rng.normal(size=20)
        X = pd.DataFrame({"a": x, "b": 2 * x})
        with pytest.raises(CollinearityError) as excinfo:
            fit_ols(X, rng.normal(size=20))
        assert excinfo.value.rank == 2
        assert excinfo.value.n_columns == 3

    def test_n_not_greater_than_p_raises(self):
        with pytest.raises(InsufficientDataError):
            fit_ols(np.array([[1.0], [2.0]]), [1.0, 2.0])
