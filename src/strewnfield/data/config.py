"""
config.py - Configuration and exceptions for strewnfield

Contains:
- AnalysisConfig: Column names, CRS and distance settings
- StrewnfieldError and its subclasses
"""

from __future__ import annotations

from dataclasses import dataclass

# Continental United States (lon/lat degrees)
CONUS_BBOX = (-125.0, -66.9, 24.4, 49.4)


@dataclass
class AnalysisConfig:
    """Configuration for landing table column names and settings."""

    # Column names (NASA Meteorite Landings export)
    name_col: str = "name"
    id_col: str = "id"
    class_col: str = "recclass"
    mass_col: str = "mass (g)"
    fall_col: str = "fall"
    year_col: str = "year"
    longitude_col: str = "reclong"
    latitude_col: str = "reclat"

    # Coordinate settings
    crs: str = "EPSG:4326"
    distance_metric: str = "euclidean"

    # Cleaning settings: (xmin, xmax, ymin, ymax)
    bbox: tuple[float, float, float, float] | None = CONUS_BBOX
    drop_null_island: bool = True  # (0, 0) is a placeholder in the source data

    def get_coordinate_columns(self) -> tuple[str, str]:
        """
        Get x, y column names.

        Returns
        -------
        Tuple[str, str]
            (longitude_column, latitude_column)
        """
        return self.longitude_col, self.latitude_col

    def attribute_columns(self) -> dict[str, str]:
        """Map canonical attribute names to source column names."""
        return {
            "name": self.name_col,
            "recclass": self.class_col,
            "mass": self.mass_col,
            "fall": self.fall_col,
            "year": self.year_col,
        }

    def __post_init__(self):
        if self.distance_metric not in ("euclidean", "haversine"):
            raise ValueError(
                f"Invalid distance metric: {self.distance_metric}. "
                "Use 'euclidean' or 'haversine'."
            )


class StrewnfieldError(Exception):
    """Base exception for strewnfield errors."""

    pass


class InvalidGeometryError(StrewnfieldError):
    """Raised for a degenerate window or point pattern."""

    pass


class CRSMismatchError(InvalidGeometryError):
    """Raised when coordinate-bearing inputs carry different CRS tags."""

    def __init__(self, left: str | None, right: str | None, context: str = ""):
        self.left = left
        self.right = right
        where = f" in {context}" if context else ""
        super().__init__(f"CRS mismatch{where}: '{left}' vs '{right}'")


class InsufficientDataError(StrewnfieldError):
    """Raised when there are too few observations for the requested analysis."""

    pass


class CollinearityError(StrewnfieldError):
    """Raised when a regression design matrix is rank deficient."""

    def __init__(self, rank: int, n_columns: int, columns: list[str] | None = None):
        self.rank = rank
        self.n_columns = n_columns
        self.columns = columns
        cols = f" (columns: {columns})" if columns else ""
        super().__init__(
            f"Design matrix has rank {rank} < {n_columns} columns{cols}"
        )


class NumericInstabilityError(StrewnfieldError):
    """Raised when a local weighted least squares system is ill-conditioned."""

    pass
