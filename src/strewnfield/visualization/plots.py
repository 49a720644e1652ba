"""
plots.py - Static plots of landings and analysis results

All functions take finished results (tables, surfaces, summary functions,
LISA frames, GWR fits) and only draw them. Each returns the Figure; it is
saved when save_path is given and shown when show_plot is True.
"""

import os
from typing import Any, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.patches import Patch

from strewnfield.spatial.shared.utils import resolve_coords

# LISA spot colours (hot/cold clusters, outliers, not significant, islands)
LISA_COLORS = {
    'HH': '#d7191c',
    'LL': '#2c7bb6',
    'HL': '#fdae61',
    'LH': '#abd9e9',
    'ns': '#d9d9d9',
    'island': '#000000',
}


def _finish(fig: plt.Figure,
            save_path: Optional[str],
            dpi: int,
            show_plot: bool) -> plt.Figure:
    """Save and/or show a figure."""
    if save_path is not None:
        save_dir = os.path.dirname(save_path)
        if save_dir:
            os.makedirs(save_dir, exist_ok=True)
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight')
        print(f"Saved figure to {save_path}")

    if show_plot:
        plt.show()
    else:
        plt.close(fig)
    return fig


def plot_landings(
    table,
    color_by: Optional[str] = None,
    boundaries: Any = None,
    colormap: str = "viridis",
    log_scale: bool = False,
    dot_size: float = 8,
    figsize: Tuple[float, float] = (12, 7),
    fig_title: Optional[str] = None,
    save_path: Optional[str] = None,
    dpi: int = 300,
    show_plot: bool = True,
) -> plt.Figure:
    """
    Plot landing locations, optionally coloured by an attribute.

    Parameters
    ----------
    table : LandingTable
    color_by : str, optional
        Numeric or categorical attribute column.
    boundaries : gpd.GeoDataFrame, optional
        Polygons drawn underneath (e.g. state boundaries).
    colormap : str
        Matplotlib colormap for numeric attributes.
    log_scale : bool
        Colour numeric values by log10 (e.g. mass).
    dot_size : float
    figsize : tuple
    fig_title : str, optional
    save_path : str, optional
    dpi : int
    show_plot : bool

    Returns
    -------
    plt.Figure
    """
    fig, ax = plt.subplots(figsize=figsize)

    if boundaries is not None:
        boundaries.boundary.plot(ax=ax, color='grey', linewidth=0.5)

    if color_by is None:
        ax.scatter(table.x, table.y, s=dot_size, color='black', alpha=0.7)
    else:
        if color_by not in table.meta.columns:
            raise ValueError(f"Column '{color_by}' not found in table")
        values = table.meta[color_by]
        missing = values.isna().to_numpy()

        # Missing values drawn as hollow grey markers
        if missing.any():
            ax.scatter(table.x[missing], table.y[missing], s=dot_size,
                       facecolors='none', edgecolors='grey', linewidths=0.5,
                       label='missing')

        present = ~missing
        if pd.api.types.is_numeric_dtype(values):
            c = values[present].to_numpy(dtype=np.float64)
            label = color_by
            if log_scale:
                c = np.log10(np.where(c > 0, c, np.nan))
                label = f"log10({color_by})"
            scatter = ax.scatter(table.x[present], table.y[present], c=c,
                                 cmap=colormap, s=dot_size)
            cbar = fig.colorbar(scatter, ax=ax, shrink=0.8)
            cbar.set_label(label)
        else:
            categories = values[present].astype(str)
            cmap = plt.get_cmap('tab20')
            for i, cat in enumerate(sorted(categories.unique())):
                mask = np.zeros(table.n_obs, dtype=bool)
                mask[np.flatnonzero(present)[(categories == cat).to_numpy()]] = True
                ax.scatter(table.x[mask], table.y[mask], s=dot_size,
                           color=cmap(i % cmap.N), label=cat)
            ax.legend(loc='center left', bbox_to_anchor=(1, 0.5),
                      frameon=False, markerscale=2)

    ax.set_aspect('equal')
    ax.set_xlabel('x')
    ax.set_ylabel('y')
    ax.set_title(fig_title or f"Landings (n={table.n_obs})", fontsize=14)

    return _finish(fig, save_path, dpi, show_plot)


def plot_intensity_surface(
    surface,
    pattern: Any = None,
    colormap: str = "magma",
    dot_size: float = 4,
    figsize: Tuple[float, float] = (12, 7),
    fig_title: Optional[str] = None,
    save_path: Optional[str] = None,
    dpi: int = 300,
    show_plot: bool = True,
) -> plt.Figure:
    """
    Plot a kernel intensity surface.

    Parameters
    ----------
    surface : IntensitySurface
    pattern : PointPattern, optional
        Points overlaid on the surface.
    colormap : str
    dot_size : float
    figsize : tuple
    fig_title : str, optional
    save_path : str, optional
    dpi : int
    show_plot : bool

    Returns
    -------
    plt.Figure
    """
    fig, ax = plt.subplots(figsize=figsize)

    # Row 0 is the bottom row
    image = ax.imshow(surface.values, origin='lower', extent=surface.extent,
                      cmap=colormap, aspect='equal')
    cbar = fig.colorbar(image, ax=ax, shrink=0.8)
    cbar.set_label('intensity (points per unit area)')

    if pattern is not None:
        ax.scatter(pattern.x, pattern.y, s=dot_size, color='white',
                   edgecolors='black', linewidths=0.2)

    ax.set_title(fig_title or f"Kernel intensity (sigma={surface.sigma:.3g})",
                 fontsize=14)

    return _finish(fig, save_path, dpi, show_plot)


def plot_summary_function(
    summary_function,
    figsize: Tuple[float, float] = (6, 5),
    fig_title: Optional[str] = None,
    save_path: Optional[str] = None,
    dpi: int = 300,
    show_plot: bool = True,
) -> plt.Figure:
    """
    Plot G, F, K or L against its CSR expectation, with the envelope if present.

    Parameters
    ----------
    summary_function : SummaryFunction
    figsize : tuple
    fig_title : str, optional
    save_path : str, optional
    dpi : int
    show_plot : bool

    Returns
    -------
    plt.Figure
    """
    sf = summary_function
    fig, ax = plt.subplots(figsize=figsize)

    if sf.envelope_lo is not None:
        ax.fill_between(sf.r, sf.envelope_lo, sf.envelope_hi, color='lightgrey',
                        label='CSR envelope')
    ax.plot(sf.r, sf.csr_expected, color='red', linestyle='--', label='CSR')
    ax.plot(sf.r, sf.values, color='black', label=f"observed {sf.name}")

    ax.set_xlabel('r')
    ax.set_ylabel(f"{sf.name}(r)")
    ax.legend(frameon=False)
    ax.set_title(fig_title or f"{sf.name}-function ({sf.correction} correction)",
                 fontsize=14)

    return _finish(fig, save_path, dpi, show_plot)


def plot_local_morans(
    coords: Any,
    lisa: pd.DataFrame,
    boundaries: Any = None,
    dot_size: float = 10,
    figsize: Tuple[float, float] = (12, 7),
    fig_title: Optional[str] = None,
    save_path: Optional[str] = None,
    dpi: int = 300,
    show_plot: bool = True,
) -> plt.Figure:
    """
    Map LISA spot types (HH, LL, HL, LH, ns, island).

    Parameters
    ----------
    coords : array-like (n, 2), LandingTable or PointPattern
    lisa : pd.DataFrame
        Output of local_morans_i (needs 'spot_type').
    boundaries : gpd.GeoDataFrame, optional
    dot_size : float
    figsize : tuple
    fig_title : str, optional
    save_path : str, optional
    dpi : int
    show_plot : bool

    Returns
    -------
    plt.Figure
    """
    points, _ = resolve_coords(coords, context='plot_local_morans')
    if len(points) != len(lisa):
        raise ValueError(f"Got {len(points)} coordinates for {len(lisa)} LISA rows")

    fig, ax = plt.subplots(figsize=figsize)
    if boundaries is not None:
        boundaries.boundary.plot(ax=ax, color='grey', linewidth=0.5)

    spot_type = lisa['spot_type'].to_numpy()
    handles = []
    # Not significant first so clusters draw on top
    for spot in ['ns', 'island', 'LH', 'HL', 'LL', 'HH']:
        mask = spot_type == spot
        if not mask.any():
            continue
        ax.scatter(points[mask, 0], points[mask, 1], s=dot_size,
                   color=LISA_COLORS[spot])
        handles.append(Patch(color=LISA_COLORS[spot], label=f"{spot} ({int(mask.sum())})"))

    ax.legend(handles=handles[::-1], loc='center left', bbox_to_anchor=(1, 0.5),
              frameon=False)
    ax.set_aspect('equal')
    ax.set_title(fig_title or "Local Moran's I", fontsize=14)

    return _finish(fig, save_path, dpi, show_plot)


def plot_gwr_coefficients(
    coords: Any,
    gwr_result,
    columns: Optional[List[str]] = None,
    colormap: str = "RdBu_r",
    dot_size: float = 10,
    ncols: int = 2,
    figsize_per_panel: Tuple[float, float] = (6, 4),
    save_path: Optional[str] = None,
    dpi: int = 300,
    show_plot: bool = True,
) -> plt.Figure:
    """
    Map local GWR coefficients, one panel per term.

    Colour scales are centred on 0 so sign changes across space stand out.

    Parameters
    ----------
    coords : array-like (n, 2), LandingTable or PointPattern
    gwr_result : GWRResult
    columns : list of str, optional
        Terms to draw. Defaults to every term, local R² included.
    colormap : str
        Diverging colormap.
    dot_size : float
    ncols : int
    figsize_per_panel : tuple
    save_path : str, optional
    dpi : int
    show_plot : bool

    Returns
    -------
    plt.Figure
    """
    points, _ = resolve_coords(coords, context='plot_gwr_coefficients')
    params = gwr_result.params.copy()
    params['local_r2'] = gwr_result.local_r2.to_numpy()
    columns = columns or list(params.columns)
    unknown = [c for c in columns if c not in params.columns]
    if unknown:
        raise ValueError(f"Unknown GWR terms: {unknown}")

    nrows = int(np.ceil(len(columns) / ncols))
    fig, axes = plt.subplots(nrows, ncols, squeeze=False,
                             figsize=(figsize_per_panel[0] * ncols,
                                      figsize_per_panel[1] * nrows))

    for ax, col in zip(axes.flat, columns):
        values = params[col].to_numpy(dtype=np.float64)
        if col == 'local_r2':
            kwargs = {'cmap': 'viridis', 'vmin': 0, 'vmax': 1}
        else:
            bound = np.nanmax(np.abs(values)) or 1.0
            kwargs = {'cmap': colormap, 'vmin': -bound, 'vmax': bound}
        scatter = ax.scatter(points[:, 0], points[:, 1], c=values, s=dot_size, **kwargs)
        fig.colorbar(scatter, ax=ax, shrink=0.8)
        ax.set_aspect('equal')
        ax.set_title(col)

    for ax in list(axes.flat)[len(columns):]:
        ax.axis('off')

    fig.suptitle(f"GWR local estimates ({gwr_result.kernel}, "
                 f"bandwidth={gwr_result.bandwidth:.3g})", fontsize=14)
    fig.tight_layout()

    return _finish(fig, save_path, dpi, show_plot)


def plot_correlogram(
    correlogram: pd.DataFrame,
    alpha: float = 0.05,
    figsize: Tuple[float, float] = (7, 4),
    fig_title: Optional[str] = None,
    save_path: Optional[str] = None,
    dpi: int = 300,
    show_plot: bool = True,
) -> plt.Figure:
    """
    Plot a Moran correlogram; significant bands are filled markers.

    Parameters
    ----------
    correlogram : pd.DataFrame
        Output of moran_correlogram.
    alpha : float
    figsize : tuple
    fig_title : str, optional
    save_path : str, optional
    dpi : int
    show_plot : bool

    Returns
    -------
    plt.Figure
    """
    mid = (correlogram['d1'] + correlogram['d2']) / 2
    sig = (correlogram['pvalue'] < alpha).to_numpy()

    fig, ax = plt.subplots(figsize=figsize)
    ax.axhline(0, color='grey', linewidth=0.8)
    ax.plot(mid, correlogram['expected'], color='red', linestyle='--', label='E[I]')
    ax.plot(mid, correlogram['I'], color='black', linewidth=1)
    ax.scatter(mid[sig], correlogram['I'][sig], color='black', zorder=3,
               label=f"p < {alpha}")
    ax.scatter(mid[~sig], correlogram['I'][~sig], facecolors='white',
               edgecolors='black', zorder=3, label='not significant')

    ax.set_xlabel('distance band midpoint')
    ax.set_ylabel("Moran's I")
    ax.legend(frameon=False)
    ax.set_title(fig_title or "Moran correlogram", fontsize=14)

    return _finish(fig, save_path, dpi, show_plot)
