"""
test_plots.py - Smoke tests for the plotting functions

Each plot must build without a display (Agg backend, set in conftest),
return its Figure, and write a file when save_path is given.

How to run:
    pytest tests/test_plots.py -v
"""

import numpy as np
import pytest
from matplotlib.figure import Figure

from strewnfield.spatial.point import build_knn_weights, kernel_density, ripleys_l, simulation_envelope
from strewnfield.spatial.regression import fit_gwr, local_morans_i, moran_correlogram
from strewnfield.visualization import (
    plot_correlogram,
    plot_gwr_coefficients,
    plot_intensity_surface,
    plot_landings,
    plot_local_morans,
    plot_summary_function,
)


class TestPlotLandings:
    """Tests for plot_landings."""

    def test_plain(self, landing_table):
        assert isinstance(plot_landings(landing_table, show_plot=False), Figure)

    def test_numeric_with_missing(self, landing_table):
        fig = plot_landings(landing_table, color_by="mass", log_scale=True, show_plot=False)
        assert isinstance(fig, Figure)

    def test_categorical(self, landing_table):
        fig = plot_landings(landing_table, color_by="fall", show_plot=False)
        assert isinstance(fig, Figure)

    def test_unknown_column_raises(self, landing_table):
        with pytest.raises(ValueError):
            plot_landings(landing_table, color_by="colour", show_plot=False)

    def test_save_path_writes_file(self, landing_table, tmp_path):
        path = tmp_path / "figs" / "landings.png"
        plot_landings(landing_table, save_path=str(path), dpi=50, show_plot=False)
        assert path.exists()


class TestAnalysisPlots:
    """Tests for the plots of analysis results."""

    def test_intensity_surface(self, csr_pattern):
        surface = kernel_density(csr_pattern, cell_size=0.5)
        fig = plot_intensity_surface(surface, pattern=csr_pattern, show_plot=False)
        assert isinstance(fig, Figure)

    def test_summary_function_with_envelope(self, csr_pattern):
        env = simulation_envelope(csr_pattern, function="L", n_simulations=9,
                                  r=np.array([0.5, 1.0]), seed=0)
        assert isinstance(plot_summary_function(env, show_plot=False), Figure)

    def test_summary_function_without_envelope(self, csr_pattern):
        l_curve = ripleys_l(csr_pattern, r=np.array([0.5, 1.0]))
        assert isinstance(plot_summary_function(l_curve, show_plot=False), Figure)

    def test_local_morans(self, landing_table):
        graph = build_knn_weights(landing_table, k=5)
        lisa = local_morans_i(landing_table.y, graph)
        fig = plot_local_morans(landing_table, lisa, show_plot=False)
        assert isinstance(fig, Figure)

    def test_local_morans_length_mismatch(self, landing_table):
        graph = build_knn_weights(landing_table, k=5)
        lisa = local_morans_i(landing_table.y, graph)
        with pytest.raises(ValueError):
            plot_local_morans(landing_table.get_coords()[:10], lisa, show_plot=False)

    def test_gwr_coefficients(self, regression_data, tmp_path):
        X, y, coords = regression_data
        gwr = fit_gwr(X, y, coords, bandwidth=0.4)
        path = tmp_path / "gwr.png"
        fig = plot_gwr_coefficients(coords, gwr, save_path=str(path), dpi=50, show_plot=False)
        assert isinstance(fig, Figure)
        assert path.exists()
        # intercept, x1, x2, local_r2 on a 2x2 grid
        assert len(fig.axes) >= 4

    def test_gwr_unknown_term_raises(self, regression_data):
        X, y, coords = regression_data
        gwr = fit_gwr(X, y, coords, bandwidth=0.4)
        with pytest.raises(ValueError, match="Unknown GWR terms"):
            plot_gwr_coefficients(coords, gwr, columns=["x9"], show_plot=False)

    def test_correlogram(self, landing_table):
        result = moran_correlogram(landing_table.y, landing_table, breaks=[0, 5, 10, 20])
        assert isinstance(plot_correlogram(result, show_plot=False), Figure)
