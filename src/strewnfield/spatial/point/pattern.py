"""
pattern.py - Planar point patterns and their observation windows

A PointPattern is the basic object of point-process analysis: an ordered
set of (x, y) locations inside a rectangular Window. Both are immutable;
restricting a pattern (e.g. to landings from 1970 on) builds a new one.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from strewnfield.data.config import InvalidGeometryError
from strewnfield.spatial.shared.utils import check_crs, resolve_coords


@dataclass(frozen=True)
class Window:
    """
    Axis-aligned rectangular observation window.

    Attributes
    ----------
    xmin, xmax, ymin, ymax : float
        Bounds in coordinate units.
    crs : str or None
        CRS tag of the bounds.
    """
    xmin: float
    xmax: float
    ymin: float
    ymax: float
    crs: str | None = None

    def __post_init__(self):
        bounds = (self.xmin, self.xmax, self.ymin, self.ymax)
        if not np.all(np.isfinite(bounds)):
            raise InvalidGeometryError(f"Window bounds must be finite, got {bounds}")
        if self.xmax < self.xmin or self.ymax < self.ymin:
            raise InvalidGeometryError(f"Window bounds are inverted: {bounds}")
        if self.area == 0:
            raise InvalidGeometryError(
                f"Window has zero area (width={self.width}, height={self.height}) "
                "(points are collinear or identical along one axis)"
            )

    @classmethod
    def from_points(cls, coords: np.ndarray, crs: str | None = None) -> Window:
        """Tight bounding box of an (n, 2) coordinate array."""
        coords = np.asarray(coords, dtype=np.float64)
        if len(coords) == 0:
            raise InvalidGeometryError("Cannot derive a window from zero points")
        xmin, ymin = coords.min(axis=0)
        xmax, ymax = coords.max(axis=0)
        return cls(float(xmin), float(xmax), float(ymin), float(ymax), crs=crs)

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax), the shapely/geopandas order."""
        return (self.xmin, self.ymin, self.xmax, self.ymax)

    def contains(self, coords: np.ndarray) -> np.ndarray:
        """Boolean mask of points inside the window (boundary included)."""
        coords = np.asarray(coords, dtype=np.float64)
        return (
            (coords[:, 0] >= self.xmin) & (coords[:, 0] <= self.xmax)
            & (coords[:, 1] >= self.ymin) & (coords[:, 1] <= self.ymax)
        )

    def sample_uniform(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Draw n independent uniform locations in the window."""
        return np.column_stack([
            rng.uniform(self.xmin, self.xmax, n),
            rng.uniform(self.ymin, self.ymax, n),
        ])

    def boundary_distances(self, coords: np.ndarray) -> np.ndarray:
        """Distances from each point to the left, right, bottom and top edges."""
        coords = np.asarray(coords, dtype=np.float64)
        return np.column_stack([
            coords[:, 0] - self.xmin,
            self.xmax - coords[:, 0],
            coords[:, 1] - self.ymin,
            self.ymax - coords[:, 1],
        ])


@dataclass(frozen=True, eq=False)
class PointPattern:
    """
    Container for a planar point pattern.

    Attributes
    ----------
    points : np.ndarray
        Read-only (n, 2) array of locations, in input order.
    window : Window
        Observation window; every point lies inside it.
    crs : str or None
        CRS tag shared by points and window.
    """
    points: np.ndarray
    window: Window
    crs: str | None = None
    marks: dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        points = np.array(self.points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 2:
            raise InvalidGeometryError(f"Points must be (n, 2), got {points.shape}")
        if len(points) < 1:
            raise InvalidGeometryError("A point pattern needs at least 1 point")
        if not self.window.contains(points).all():
            raise InvalidGeometryError("Point pattern has points outside its window")
        check_crs(self.crs, self.window.crs, context='PointPattern')
        for name, values in self.marks.items():
            if len(values) != len(points):
                raise ValueError(
                    f"Mark '{name}' has {len(values)} values for {len(points)} points"
                )
        points.setflags(write=False)
        object.__setattr__(self, 'points', points)

    @property
    def n(self) -> int:
        return len(self.points)

    @property
    def x(self) -> np.ndarray:
        return self.points[:, 0]

    @property
    def y(self) -> np.ndarray:
        return self.points[:, 1]

    @property
    def area(self) -> float:
        return self.window.area

    @property
    def intensity(self) -> float:
        """Mean number of points per unit area (λ = n / A)."""
        return self.n / self.window.area

    def subset(self, mask: np.ndarray, window: Window | None = None) -> PointPattern:
        """
        New pattern from the points selected by `mask`.

        The window is recomputed from the selected points unless one is given.
        """
        mask = np.asarray(mask)
        marks = {name: np.asarray(values)[mask] for name, values in self.marks.items()}
        return build_point_pattern(self.points[mask], window=window,
                                   crs=self.crs, marks=marks)

    def summary(self) -> dict:
        return {
            'n_points': self.n,
            'crs': self.crs,
            'window': self.window.bounds,
            'area': self.area,
            'intensity': self.intensity,
        }

    def __len__(self) -> int:
        return self.n

    def __repr__(self) -> str:
        s = self.summary()
        return (
            f"PointPattern ({s['n_points']} points, "
            f"area={s['area']:.4g}, intensity={s['intensity']:.4g}, "
            f"crs={s['crs']})"
        )


def build_point_pattern(
    coords: Any,
    window: Window | None = None,
    crs: str | None = None,
    marks: dict[str, np.ndarray] | None = None,
) -> PointPattern:
    """
    Build a point pattern from coordinates.

    Parameters
    ----------
    coords : array-like (n, 2), LandingTable or PointPattern
        Locations. NaNs must already be removed.
    window : Window, optional
        Observation window. If None, the tight bounding box of `coords`.
        Points outside an explicit window are dropped with a warning.
    crs : str, optional
        CRS tag of the coordinates. Must agree with the window's tag.
    marks : dict of str -> array, optional
        Per-point attributes carried along (e.g. mass, year).

    Returns
    -------
    PointPattern

    Raises
    ------
    InvalidGeometryError
        Fewer than 1 point, non-finite coordinates or a zero-area window.
    CRSMismatchError
        Coordinates and window carry different CRS tags.
    """
    coords, crs = resolve_coords(coords, crs, context='build_point_pattern')
    marks = {name: np.asarray(values) for name, values in (marks or {}).items()}

    if len(coords) < 1:
        raise InvalidGeometryError("A point pattern needs at least 1 point, got 0")

    if window is None:
        window = Window.from_points(coords, crs=crs)
    else:
        crs = check_crs(crs, window.crs, context='build_point_pattern')
        inside = window.contains(coords)
        n_out = int((~inside).sum())
        if n_out > 0:
            warnings.warn(
                f"{n_out} of {len(coords)} points lie outside the window "
                f"{window.bounds} and were dropped",
                stacklevel=2,
            )
            coords = coords[inside]
            marks = {name: values[inside] for name, values in marks.items()}
            if len(coords) < 1:
                raise InvalidGeometryError(
                    f"No points remain inside the window {window.bounds}"
                )
        if window.crs is None and crs is not None:
            window = Window(window.xmin, window.xmax, window.ymin, window.ymax, crs=crs)

    return PointPattern(points=coords, window=window, crs=crs, marks=marks)
