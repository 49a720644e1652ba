# src/strewnfield/spatial/shared/utils.py

"""
utils.py - Shared utilities for spatial analysis

Coordinate resolution, CRS checks and distance computations used by both
the point-pattern and the regression modules.
"""
from __future__ import annotations

from typing import Any

import numpy as np
from scipy.spatial.distance import cdist
from sklearn.metrics.pairwise import haversine_distances

from strewnfield.data.config import CRSMismatchError, InvalidGeometryError

EARTH_RADIUS_KM = 6371.0088

METRICS = ('euclidean', 'haversine')


def is_geographic(crs: str | None) -> bool:
    """
    Whether a CRS tag describes longitude/latitude degrees.

    Untagged coordinates (crs=None) are treated as planar.
    """
    if crs is None:
        return False
    from pyproj import CRS
    return CRS.from_user_input(crs).is_geographic


def same_crs(left: str | None, right: str | None) -> bool:
    """Compare two CRS tags; spellings like 'EPSG:4326' and 'epsg:4326' match."""
    if left is None or right is None:
        return left is right
    if left == right:
        return True
    from pyproj import CRS
    return CRS.from_user_input(left) == CRS.from_user_input(right)


def check_crs(left: str | None,
              right: str | None,
              context: str = '') -> str | None:
    """
    Reconcile two CRS tags.

    Returns the shared tag. A missing tag on one side adopts the other;
    two different tags raise CRSMismatchError.

    Examples
    --------
    >>> check_crs('EPSG:4326', None)
    'EPSG:4326'
    >>> check_crs('EPSG:4326', 'EPSG:5070')
    Traceback (most recent call last):
    ...
    CRSMismatchError: CRS mismatch: 'EPSG:4326' vs 'EPSG:5070'
    """
    if left is None:
        return right
    if right is None:
        return left
    if not same_crs(left, right):
        raise CRSMismatchError(left, right, context)
    return left


def resolve_coords(source: Any,
                   crs: str | None = None,
                   context: str = '') -> tuple[np.ndarray, str | None]:
    """
    Resolve a coordinate source to an (n, 2) float array and its CRS.

    Priority order:
    1. Object with get_coords() (LandingTable) → its coords and crs
    2. Object with a points attribute (PointPattern) → its points and crs
    3. Anything array-like → np.asarray, tagged with `crs`

    Parameters
    ----------
    source : LandingTable, PointPattern or array-like (n, 2)
    crs : str, optional
        Expected CRS tag. Checked against the source's own tag.
    context : str
        Caller name, used in error messages.

    Returns
    -------
    coords : np.ndarray (n, 2)
    crs : str or None
    """
    if hasattr(source, 'get_coords'):
        coords = source.get_coords()
        crs = check_crs(getattr(source, 'crs', None), crs, context)
    elif hasattr(source, 'points'):
        coords = np.asarray(source.points)
        crs = check_crs(getattr(source, 'crs', None), crs, context)
    else:
        coords = np.asarray(source, dtype=np.float64)

    coords = np.asarray(coords, dtype=np.float64)
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise InvalidGeometryError(
            f"Expected coordinates of shape (n, 2), got {coords.shape}"
        )
    if not np.all(np.isfinite(coords)):
        n_bad = int((~np.isfinite(coords)).any(axis=1).sum())
        raise InvalidGeometryError(
            f"{n_bad} coordinates are not finite; remove them before analysis"
        )
    return coords, crs


def resolve_metric(metric: str | None, source: Any = None) -> str:
    """
    Pick the distance metric for an analysis.

    An explicit metric wins. Otherwise a source carrying an AnalysisConfig
    (LandingTable) supplies its distance_metric; anything else is
    'euclidean'.
    """
    if metric is not None:
        return metric
    config = getattr(source, 'config', None)
    return getattr(config, 'distance_metric', 'euclidean')


def validate_metric(metric: str, crs: str | None) -> None:
    """
    Check that a distance metric is usable with a CRS tag.

    'haversine' needs lon/lat degrees: a projected CRS is rejected.
    'euclidean' is accepted on any CRS (planar degrees included).
    """
    if metric not in METRICS:
        raise ValueError(f"Unknown metric: {metric}. Use one of {METRICS}.")
    if metric == 'haversine' and crs is not None and not is_geographic(crs):
        raise CRSMismatchError(
            crs, 'geographic (lon/lat)', context="metric='haversine'"
        )


def to_radians_latlon(coords: np.ndarray) -> np.ndarray:
    """Convert (lon, lat) degrees to (lat, lon) radians, the sklearn order."""
    return np.radians(coords[:, ::-1])


def pairwise_distances(a: np.ndarray,
                       b: np.ndarray | None = None,
                       metric: str = 'euclidean') -> np.ndarray:
    """
    Dense distance matrix between two coordinate sets.

    Parameters
    ----------
    a : np.ndarray (n, 2)
    b : np.ndarray (m, 2), optional
        Defaults to `a`.
    metric : str
        'euclidean' (coordinate units) or 'haversine' (kilometres,
        inputs as lon/lat degrees).

    Returns
    -------
    np.ndarray (n, m)
    """
    if b is None:
        b = a
    if metric == 'euclidean':
        return cdist(a, b)
    if metric == 'haversine':
        return haversine_distances(
            to_radians_latlon(a), to_radians_latlon(b)
        ) * EARTH_RADIUS_KM
    raise ValueError(f"Unknown metric: {metric}. Use one of {METRICS}.")
