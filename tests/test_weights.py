"""
test_weights.py - k-NN and distance-band spatial weights

How to run:
    pytest tests/test_weights.py -v
"""

import numpy as np
import pytest

from strewnfield.data import AnalysisConfig, LandingTable
from strewnfield.data.config import CRSMismatchError, InsufficientDataError
from strewnfield.spatial.point import (
    build_distance_band_weights,
    build_knn_weights,
    spatial_lag,
)

# ===========================================================================
# SECTION 1 — k-nearest neighbours
#
# We check:
#   (a) structure       — row sums, neighbour counts, no self-loops
#   (b) tie-breaking    — equal distances go to the lower index
#   (c) metrics & CRS   — haversine kilometres, projected CRS rejected
# ===========================================================================


class TestKNNWeights:
    """Tests for build_knn_weights."""

    def test_rows_sum_to_one(self, csr_pattern):
        graph = build_knn_weights(csr_pattern, k=6)
        row_sums = np.asarray(graph.weights.sum(axis=1)).ravel()
        np.testing.assert_allclose(row_sums, 1.0)

    def test_exactly_k_neighbours(self, csr_pattern):
        graph = build_knn_weights(csr_pattern, k=6)
        assert (graph.cardinalities == 6).all()
        assert graph.n_edges == 6 * csr_pattern.n

    def test_no_self_loops(self, csr_pattern):
        graph = build_knn_weights(csr_pattern, k=3)
        assert graph.weights.diagonal().sum() == 0

    def test_tie_break_by_lowest_index(self, unit_square_coords):
        """
        Each corner has two neighbours at distance 1. With k=1 the lower
        index wins: 0→1, 1→0, 2→0, 3→1.
        """
        graph = build_knn_weights(unit_square_coords, k=1)
        chosen = [graph.neighbors(i).tolist() for i in range(4)]
        assert chosen == [[1], [0], [0], [1]]

    def test_graph_is_directed(self, unit_square_coords):
        """2 picks 0, but 0 picks 1: no symmetrisation."""
        graph = build_knn_weights(unit_square_coords, k=1)
        assert graph.weights[2, 0] == 1.0
        assert graph.weights[0, 2] == 0.0

    def test_edge_distances_stored(self, unit_square_coords):
        graph = build_knn_weights(unit_square_coords, k=3)
        assert graph.distances.max() == pytest.approx(np.sqrt(2))

    def test_n_not_greater_than_k_raises(self, unit_square_coords):
        with pytest.raises(InsufficientDataError):
            build_knn_weights(unit_square_coords, k=4)

    def test_ids_follow_table_index(self, landing_table):
        graph = build_knn_weights(landing_table, k=4)
        assert graph.ids.equals(landing_table.index)
        assert graph.crs == "EPSG:4326"

    def test_haversine_distances_in_km(self):
        """One degree of longitude on the equator ≈ 111.2 km."""
        coords = np.array([[0.0, 0.0], [1.0, 0.0], [5.0, 5.0]])
        graph = build_knn_weights(coords, k=1, metric="haversine", crs="EPSG:4326")
        assert graph.distances[0, 1] == pytest.approx(111.195, rel=1e-3)

    def test_metric_defaults_to_table_config(self):
        table = LandingTable(x=[0.0, 1.0, 5.0], y=[0.0, 0.0, 5.0], crs="EPSG:4326",
                             config=AnalysisConfig(distance_metric="haversine"))
        graph = build_knn_weights(table, k=1)
        assert graph.metric == "haversine"
        assert graph.distances[0, 1] == pytest.approx(111.195, rel=1e-3)
        assert build_knn_weights(table, k=1, metric="euclidean").metric == "euclidean"

    def test_plain_arrays_default_to_euclidean(self, unit_square_coords):
        assert build_knn_weights(unit_square_coords, k=1).metric == "euclidean"

    def test_haversine_on_projected_crs_raises(self, unit_square_coords):
        with pytest.raises(CRSMismatchError):
            build_knn_weights(unit_square_coords, k=1, metric="haversine", crs="EPSG:5070")

    def test_unknown_metric_raises(self, unit_square_coords):
        with pytest.raises(ValueError, match="Unknown metric"):
            build_knn_weights(unit_square_coords, k=1, metric="manhattan")

    def test_to_dict(self, unit_square_coords):
        graph = build_knn_weights(unit_square_coords, k=2)
        neighbours, weights = graph.to_dict()[3]
        assert neighbours.tolist() == [1, 2]
        np.testing.assert_allclose(weights, 0.5)


# ===========================================================================
# SECTION 2 — Distance band
#
# We check:
#   (a) closed interval  — pairs exactly at d1 or d2 are included
#   (b) zero policy      — islands keep an empty row, with a warning
# ===========================================================================


class TestDistanceBandWeights:
    """Tests for build_distance_band_weights."""

    def test_upper_bound_inclusive(self, unit_square_coords):
        """Sides are exactly 1: included in [0, 1], diagonals excluded."""
        graph = build_distance_band_weights(unit_square_coords, 0, 1)
        assert graph.neighbors(0).tolist() == [1, 2]
        assert (graph.cardinalities == 2).all()

    def test_lower_bound_excludes_near_pairs(self, unit_square_coords):
        """[1.2, 1.5] keeps only the diagonals (√2 ≈ 1.414)."""
        graph = build_distance_band_weights(unit_square_coords, 1.2, 1.5)
        assert graph.neighbors(0).tolist() == [3]
        assert graph.neighbors(1).tolist() == [2]

    def test_lower_bound_inclusive(self, unit_square_coords):
        graph = build_distance_band_weights(unit_square_coords, 1.0, 1.2)
        assert (graph.cardinalities == 2).all()

    def test_islands_keep_empty_rows(self):
        coords = np.array([[0.0, 0.0], [0.5, 0.0], [10.0, 10.0]])
        with pytest.warns(UserWarning, match="no neighbours"):
            graph = build_distance_band_weights(coords, 0, 1)
        assert graph.islands.tolist() == [2]
        row_sums = np.asarray(graph.weights.sum(axis=1)).ravel()
        np.testing.assert_allclose(row_sums, [1.0, 1.0, 0.0])

    def test_rows_sum_to_one(self, csr_pattern):
        graph = build_distance_band_weights(csr_pattern, 0, 1.0)
        row_sums = np.asarray(graph.weights.sum(axis=1)).ravel()
        np.testing.assert_allclose(row_sums[graph.cardinalities > 0], 1.0)

    def test_haversine_band(self):
        coords = np.array([[0.0, 0.0], [1.0, 0.0], [3.0, 0.0]])
        with pytest.warns(UserWarning):
            graph = build_distance_band_weights(coords, 0, 150, metric="haversine")
        assert graph.neighbors(0).tolist() == [1]
        assert graph.cardinalities[2] == 0

    def test_invalid_bounds_raise(self, unit_square_coords):
        with pytest.raises(ValueError):
            build_distance_band_weights(unit_square_coords, 2, 1)


# ===========================================================================
# SECTION 3 — Spatial lag
# ===========================================================================


class TestSpatialLag:
    """Tests for spatial_lag."""

    def test_lag_is_neighbour_mean(self, unit_square_coords):
        graph = build_distance_band_weights(unit_square_coords, 0, 1)
        lag = spatial_lag(graph, [1.0, 2.0, 3.0, 4.0])
        # 0's neighbours are 1 and 2 → (2 + 3) / 2
        assert lag[0] == pytest.approx(2.5)
        assert lag[3] == pytest.approx(2.5)

    def test_island_lag_is_zero(self):
        coords = np.array([[0.0, 0.0], [0.5, 0.0], [10.0, 10.0]])
        with pytest.warns(UserWarning):
            graph = build_distance_band_weights(coords, 0, 1)
        lag = spatial_lag(graph, [1.0, 2.0, 3.0])
        assert lag[2] == 0.0

    def test_wrong_length_raises(self, unit_square_coords):
        graph = build_knn_weights(unit_square_coords, k=1)
        with pytest.raises(ValueError):
            spatial_lag(graph, [1.0, 2.0])
