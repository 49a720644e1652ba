"""
visualization/__init__.py - Visualization subpackage for strewnfield

Static matplotlib plots of landings, intensity surfaces, summary
functions, LISA maps and GWR coefficient maps.

Usage
-----
    import strewnfield as sf
    sf.visualization.plot_landings(table, color_by='mass', log_scale=True)
    sf.visualization.plot_summary_function(envelope)
"""

from .plots import (
    LISA_COLORS,
    plot_correlogram,
    plot_gwr_coefficients,
    plot_intensity_surface,
    plot_landings,
    plot_local_morans,
    plot_summary_function,
)

__all__ = [
    'LISA_COLORS',
    'plot_correlogram',
    'plot_gwr_coefficients',
    'plot_intensity_surface',
    'plot_landings',
    'plot_local_morans',
    'plot_summary_function',
]
