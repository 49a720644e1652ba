"""
test_csr.py - Quadrat and average nearest-neighbour randomness tests

How to run:
    pytest tests/test_csr.py -v
"""

import numpy as np
import pytest

from strewnfield.data.config import InsufficientDataError
from strewnfield.spatial.point import Window, ann_test, build_point_pattern, quadrat_test

# ===========================================================================
# SECTION 1 — Quadrat test
#
# Goal: chi-squared on quadrat counts, with an explicit reliability flag
# when cells are too sparse for the approximation.
# ===========================================================================


class TestQuadratTest:
    """Tests for quadrat_test."""

    def test_one_point_per_cell_is_perfectly_uniform(self, unit_square_pattern):
        """Four corners on a 2×2 grid: one point per quadrat, X2 = 0, p = 1."""
        with pytest.warns(UserWarning, match="unreliable"):
            result = quadrat_test(unit_square_pattern, nx=2, ny=2)
        assert result.statistic == pytest.approx(0.0)
        assert result.pvalue == pytest.approx(1.0)
        assert result.df == 3
        assert result.counts.tolist() == [[1, 1], [1, 1]]

    def test_sparse_cells_flagged_unreliable(self, unit_square_pattern):
        with pytest.warns(UserWarning):
            result = quadrat_test(unit_square_pattern, nx=2, ny=2)
        assert result.reliable is False
        assert "UNRELIABLE" in repr(result)

    def test_strict_raises(self, unit_square_pattern):
        with pytest.raises(InsufficientDataError, match="Expected quadrat count"):
            quadrat_test(unit_square_pattern, nx=2, ny=2, strict=True)

    def test_lower_threshold_silences_warning(self, unit_square_pattern):
        result = quadrat_test(unit_square_pattern, nx=2, ny=2, min_expected=1.0)
        assert result.reliable is True

    def test_counts_sum_to_n(self, csr_pattern):
        result = quadrat_test(csr_pattern, nx=5, ny=5)
        assert result.counts.sum() == csr_pattern.n
        assert result.counts.shape == (5, 5)
        assert result.expected == pytest.approx(40.0)
        assert result.reliable is True

    def test_clustered_rejects_uniformity(self, clustered_pattern):
        result = quadrat_test(clustered_pattern, nx=4, ny=4)
        assert result.pvalue < 0.001

    def test_rows_are_y_columns_are_x(self):
        """All points in the bottom-right quadrat → counts[0, 1]."""
        coords = np.array([[0.9, 0.1], [0.8, 0.2], [0.7, 0.3]])
        pp = build_point_pattern(coords, window=Window(0, 1, 0, 1))
        result = quadrat_test(pp, nx=2, ny=2, min_expected=0)
        assert result.counts[0, 1] == 3

    def test_invalid_grid_raises(self, csr_pattern):
        with pytest.raises(ValueError):
            quadrat_test(csr_pattern, nx=1, ny=1)


# ===========================================================================
# SECTION 2 — Average nearest-neighbour Monte Carlo test
#
# Goal: the z-score comes from the simulated null distribution, replicates
# are reproducible regardless of thread count, and the test is calibrated.
# ===========================================================================


class TestANNTest:
    """Tests for ann_test."""

    def test_reproducible_with_seed(self, csr_pattern):
        a = ann_test(csr_pattern, n_simulations=20, seed=123)
        b = ann_test(csr_pattern, n_simulations=20, seed=123)
        np.testing.assert_array_equal(a.simulated, b.simulated)
        assert a.pvalue == b.pvalue

    def test_thread_count_does_not_change_result(self, csr_pattern):
        serial = ann_test(csr_pattern, n_simulations=20, seed=9, n_jobs=1)
        threaded = ann_test(csr_pattern, n_simulations=20, seed=9, n_jobs=4)
        np.testing.assert_array_equal(serial.simulated, threaded.simulated)

    def test_z_from_simulated_distribution(self, csr_pattern):
        r = ann_test(csr_pattern, n_simulations=30, seed=0)
        assert r.expected == pytest.approx(r.simulated.mean())
        assert r.sd == pytest.approx(r.simulated.std(ddof=1))
        assert r.zscore == pytest.approx((r.observed - r.expected) / r.sd)
        assert len(r.simulated) == 30

    def test_clustered_is_significant_and_negative(self, clustered_pattern):
        r = ann_test(clustered_pattern, n_simulations=49, seed=1)
        assert r.zscore < 0
        assert r.pvalue < 0.01
        assert r.ratio < 1

    def test_calibrated_under_csr(self):
        """
        On independent CSR patterns the test should mostly not reject.

        20 seeded patterns of 100 points; a majority must have p > 0.05.
        """
        window = Window(0, 1, 0, 1)
        not_rejected = 0
        n_runs = 20
        for seed in range(n_runs):
            rng = np.random.default_rng(1000 + seed)
            pp = build_point_pattern(rng.uniform(0, 1, (100, 2)), window=window)
            if ann_test(pp, n_simulations=99, seed=seed).pvalue > 0.05:
                not_rejected += 1
        assert not_rejected > n_runs / 2

    def test_too_few_points_raise(self, unit_square_pattern):
        with pytest.raises(InsufficientDataError):
            ann_test(unit_square_pattern, k=4)

    def test_invalid_arguments(self, csr_pattern):
        with pytest.raises(ValueError):
            ann_test(csr_pattern, n_simulations=1)
        with pytest.raises(ValueError):
            ann_test(csr_pattern, n_jobs=0)
