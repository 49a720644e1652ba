"""
intensity.py - Kernel intensity estimation

Smooths a point pattern into an IntensitySurface: expected number of
points per unit area on a regular grid over the window. Kernel mass that
falls outside the window is not corrected for, so values near the
boundary are biased low.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .pattern import PointPattern

# Points per block when accumulating kernels
_CHUNK_SIZE = 2048


@dataclass(frozen=True, eq=False)
class IntensitySurface:
    """
    Container for a gridded intensity estimate.

    Attributes
    ----------
    values : np.ndarray
        (ny, nx) non-negative densities; row 0 is the bottom row (ymin).
    origin : tuple of float
        (x, y) of the lower-left grid corner.
    cell_size : float
        Side length of a square grid cell.
    sigma : float
        Gaussian kernel standard deviation used.
    crs : str or None
        CRS tag of the grid coordinates.
    """
    values: np.ndarray
    origin: tuple[float, float]
    cell_size: float
    sigma: float
    crs: str | None = None

    @property
    def shape(self) -> tuple[int, int]:
        return self.values.shape

    @property
    def x_centers(self) -> np.ndarray:
        nx = self.values.shape[1]
        return self.origin[0] + (np.arange(nx) + 0.5) * self.cell_size

    @property
    def y_centers(self) -> np.ndarray:
        ny = self.values.shape[0]
        return self.origin[1] + (np.arange(ny) + 0.5) * self.cell_size

    @property
    def extent(self) -> tuple[float, float, float, float]:
        """(xmin, xmax, ymin, ymax) for matplotlib imshow."""
        ny, nx = self.values.shape
        x0, y0 = self.origin
        return (x0, x0 + nx * self.cell_size, y0, y0 + ny * self.cell_size)

    @property
    def integral(self) -> float:
        """Integrated intensity over the grid (≈ n minus kernel mass lost at edges)."""
        return float(self.values.sum() * self.cell_size ** 2)

    def value_at(self, x: np.ndarray | float, y: np.ndarray | float) -> np.ndarray:
        """Nearest-cell lookup; NaN outside the grid."""
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        y = np.atleast_1d(np.asarray(y, dtype=np.float64))
        ny, nx = self.values.shape
        col = np.floor((x - self.origin[0]) / self.cell_size).astype(int)
        row = np.floor((y - self.origin[1]) / self.cell_size).astype(int)
        # Points on the far edge belong to the last cell
        xmax, ymax = self.extent[1], self.extent[3]
        col[(col == nx) & (x <= xmax)] = nx - 1
        row[(row == ny) & (y <= ymax)] = ny - 1
        inside = (col >= 0) & (col < nx) & (row >= 0) & (row < ny)
        out = np.full(len(x), np.nan)
        out[inside] = self.values[row[inside], col[inside]]
        return out

    def summary(self) -> dict:
        return {
            'shape': self.shape,
            'cell_size': self.cell_size,
            'sigma': self.sigma,
            'min': float(self.values.min()),
            'max': float(self.values.max()),
            'integral': self.integral,
        }

    def __repr__(self) -> str:
        s = self.summary()
        return (
            f"IntensitySurface ({s['shape'][0]}x{s['shape'][1]} cells, "
            f"sigma={s['sigma']:.4g}, max={s['max']:.4g})"
        )


def silverman_bandwidth(pattern: PointPattern) -> float:
    """
    Silverman's rule-of-thumb kernel bandwidth for a 2D pattern.

    Per axis, h = n^(-1/6) * min(sd, IQR / 1.349); the isotropic
    bandwidth is the mean of the two axes. Axes with zero IQR fall back
    to the standard deviation.
    """
    n = pattern.n
    if n < 2:
        raise ValueError("Silverman bandwidth needs at least 2 points")

    spreads = []
    for axis in range(2):
        values = pattern.points[:, axis]
        sd = values.std(ddof=1)
        q75, q25 = np.percentile(values, [75, 25])
        iqr = (q75 - q25) / 1.349
        spreads.append(min(sd, iqr) if iqr > 0 else sd)

    sigma = float(np.mean(spreads) * n ** (-1 / 6))
    if sigma <= 0:
        raise ValueError("Silverman bandwidth is zero: all points coincide")
    return sigma


def kernel_density(
    pattern: PointPattern,
    sigma: float | None = None,
    cell_size: float | None = None,
    min_cells: int = 100,
) -> IntensitySurface:
    """
    Compute a Gaussian kernel intensity surface.

    Each point contributes an isotropic Gaussian of standard deviation
    `sigma`, evaluated at grid cell centres. No edge correction is applied.

    Parameters
    ----------
    pattern : PointPattern
    sigma : float, optional
        Kernel standard deviation in coordinate units. If None, uses
        silverman_bandwidth(pattern).
    cell_size : float, optional
        Grid cell side. If None, chosen so the shorter window side spans
        `min_cells` cells.
    min_cells : int
        Cells along the shorter window side when cell_size is None.

    Returns
    -------
    IntensitySurface
        Points per unit area, in the pattern's coordinate units
        (e.g. per square degree for lon/lat input).
    """
    if sigma is None:
        sigma = silverman_bandwidth(pattern)
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")

    window = pattern.window
    if cell_size is None:
        cell_size = min(window.width, window.height) / min_cells
    if cell_size <= 0:
        raise ValueError(f"cell_size must be positive, got {cell_size}")

    nx = int(np.ceil(window.width / cell_size - 1e-9))
    ny = int(np.ceil(window.height / cell_size - 1e-9))
    x_centers = window.xmin + (np.arange(nx) + 0.5) * cell_size
    y_centers = window.ymin + (np.arange(ny) + 0.5) * cell_size

    # Separable Gaussian: K(dx, dy) = g(dx) * g(dy) / (2*pi*sigma^2)
    density = np.zeros((ny, nx))
    for start in range(0, pattern.n, _CHUNK_SIZE):
        block = pattern.points[start:start + _CHUNK_SIZE]
        gx = np.exp(-0.5 * ((x_centers[None, :] - block[:, [0]]) / sigma) ** 2)
        gy = np.exp(-0.5 * ((y_centers[None, :] - block[:, [1]]) / sigma) ** 2)
        density += gy.T @ gx
    density /= 2 * np.pi * sigma ** 2

    surface = IntensitySurface(
        values=density,
        origin=(window.xmin, window.ymin),
        cell_size=float(cell_size),
        sigma=float(sigma),
        crs=pattern.crs,
    )

    print(f"  ✓ Kernel density: {ny}x{nx} grid, sigma={sigma:.4g}, "
          f"max={density.max():.4g}")

    return surface
