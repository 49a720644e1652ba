# src/strewnfield/spatial/shared/__init__.py

"""
Shared utilities for spatial analysis.

Common functions used by both point-pattern and regression methods.
"""

from .utils import (
    EARTH_RADIUS_KM,

    # CRS handling
    is_geographic,
    same_crs,
    check_crs,

    # Coordinate utilities
    resolve_coords,
    resolve_metric,
    validate_metric,
    pairwise_distances,
)

__all__ = [
    'EARTH_RADIUS_KM',

    # CRS handling
    'is_geographic',
    'same_crs',
    'check_crs',

    # Coordinate utilities
    'resolve_coords',
    'resolve_metric',
    'validate_metric',
    'pairwise_distances',
]
