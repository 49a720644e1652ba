"""
loaders.py - Thin loaders for landings, boundaries and rasters

- load_landings_csv: NASA Meteorite Landings export to a LandingTable
- clean_landings: coordinate cleaning (missing, (0, 0) placeholder, bbox)
- RasterGrid: north-up grid with nearest-cell lookup
- sample_rasters: attach raster values to landings
- load_boundaries / assign_regions: state polygons and nearest-polygon join
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import geopandas as gpd
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from .config import AnalysisConfig
from .core import LandingTable

logger = logging.getLogger(__name__)


# ========== Landings ==========

def clean_landings(df: pd.DataFrame,
                   config: AnalysisConfig | None = None) -> pd.DataFrame:
    """
    Drop landings whose coordinates cannot be analysed.

    Removes, in order: rows with a missing or non-numeric coordinate, the
    (0, 0) placeholder used by the source for unknown locations (when
    config.drop_null_island), and rows outside config.bbox. Each drop is
    logged with its count. Attributes are left untouched.

    Parameters
    ----------
    df : pd.DataFrame
        Raw landings in the CSV layout.
    config : AnalysisConfig, optional

    Returns
    -------
    pd.DataFrame
        Cleaned copy with numeric coordinate columns.
    """
    config = config or AnalysisConfig()
    x_col, y_col = config.get_coordinate_columns()
    for col in (x_col, y_col):
        if col not in df.columns:
            raise KeyError(f"Coordinate column '{col}' not found")

    df = df.copy()
    df[x_col] = pd.to_numeric(df[x_col], errors='coerce')
    df[y_col] = pd.to_numeric(df[y_col], errors='coerce')
    n_start = len(df)

    missing = df[x_col].isna() | df[y_col].isna()
    if missing.any():
        logger.info(f"Dropping {int(missing.sum())} landings without coordinates")
        df = df[~missing]

    if config.drop_null_island:
        null_island = (df[x_col] == 0) & (df[y_col] == 0)
        if null_island.any():
            logger.info(f"Dropping {int(null_island.sum())} landings at the (0, 0) placeholder")
            df = df[~null_island]

    if config.bbox is not None:
        xmin, xmax, ymin, ymax = config.bbox
        inside = df[x_col].between(xmin, xmax) & df[y_col].between(ymin, ymax)
        if (~inside).any():
            logger.info(f"Dropping {int((~inside).sum())} landings outside bbox {config.bbox}")
            df = df[inside]

    if len(df) == 0:
        logger.warning("No landings left after cleaning")
    logger.info(f"Kept {len(df)}/{n_start} landings")
    return df.reset_index(drop=True)


def load_landings_csv(path: str | Path,
                      config: AnalysisConfig | None = None,
                      clean: bool = True) -> LandingTable:
    """
    Load a NASA Meteorite Landings CSV.

    Parameters
    ----------
    path : str or Path
        CSV file.
    config : AnalysisConfig, optional
        Column names, CRS tag and cleaning bbox. Set config.bbox=None to
        keep every located landing.
    clean : bool
        Apply clean_landings before building the table.

    Returns
    -------
    LandingTable
        mass as nullable Float64 and year as nullable Int64; missing
        values stay pd.NA.
    """
    config = config or AnalysisConfig()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Landings file not found: {path}")

    df = pd.read_csv(path)
    logger.info(f"Read {len(df)} landings from {path.name}")

    if clean:
        df = clean_landings(df, config)

    table = LandingTable.from_dataframe(df, config=config)
    missing = table.meta[['mass', 'year']].isna().sum()
    if missing.any():
        logger.info(f"Missing values kept as NA: {missing.to_dict()}")
    return table


# ========== Rasters ==========

@dataclass(frozen=True, eq=False)
class RasterGrid:
    """
    North-up raster exposed as nearest-cell lookup.

    Attributes
    ----------
    values : np.ndarray
        (rows, cols) grid; row 0 is the northern edge.
    origin : tuple[float, float]
        (x, y) of the top-left corner.
    cell_size : tuple[float, float]
        (dx, dy), both positive.
    nodata : float or None
        Value treated as missing.
    crs : str or None
    name : str
    """
    values: np.ndarray
    origin: tuple[float, float]
    cell_size: tuple[float, float]
    nodata: float | None = None
    crs: str | None = None
    name: str = 'raster'

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 2:
            raise ValueError(f"Raster values must be 2D, got shape {values.shape}")
        if self.cell_size[0] <= 0 or self.cell_size[1] <= 0:
            raise ValueError(f"Cell size must be positive, got {self.cell_size}")
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)

    @property
    def shape(self) -> tuple[int, int]:
        return self.values.shape

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax)."""
        x0, y0 = self.origin
        dx, dy = self.cell_size
        rows, cols = self.shape
        return (x0, y0 - rows * dy, x0 + cols * dx, y0)

    @classmethod
    def from_bounds(cls,
                    values: np.ndarray,
                    bounds: tuple[float, float, float, float],
                    crs: str | None = None,
                    nodata: float | None = None,
                    name: str = 'raster') -> RasterGrid:
        """Grid from its (xmin, ymin, xmax, ymax) extent."""
        values = np.asarray(values, dtype=np.float64)
        xmin, ymin, xmax, ymax = bounds
        rows, cols = values.shape
        return cls(
            values=values,
            origin=(xmin, ymax),
            cell_size=((xmax - xmin) / cols, (ymax - ymin) / rows),
            nodata=nodata,
            crs=crs,
            name=name,
        )

    @classmethod
    def from_geotiff(cls, path: str | Path, band: int = 1, name: str | None = None) -> RasterGrid:
        """
        Read one band of a GeoTIFF (requires the 'raster' extra).

        Rotated or sheared transforms are rejected.
        """
        try:
            import rasterio
        except ImportError as err:
            raise ImportError(
                "rasterio required. Install with: pip install strewnfield[raster]"
            ) from err

        path = Path(path)
        with rasterio.open(path) as src:
            values = src.read(band).astype(np.float64)
            transform = src.transform
            nodata = src.nodata
            crs = src.crs.to_string() if src.crs else None

        if transform.b != 0 or transform.d != 0:
            raise ValueError(f"{path.name}: rotated rasters are not supported")
        if transform.e >= 0:
            raise ValueError(f"{path.name}: expected a north-up raster")

        logger.info(f"Read raster {path.name}: {values.shape}, crs={crs}")
        return cls(
            values=values,
            origin=(transform.c, transform.f),
            cell_size=(transform.a, -transform.e),
            nodata=nodata,
            crs=crs,
            name=name or path.stem,
        )

    def sample(self, x: Any, y: Any) -> np.ndarray:
        """
        Nearest-cell values at (x, y).

        Points outside the grid and nodata cells give NaN.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        x0, y0 = self.origin
        dx, dy = self.cell_size
        rows, cols = self.shape

        col = np.floor((x - x0) / dx)
        row = np.floor((y0 - y) / dy)
        inside = (col >= 0) & (col < cols) & (row >= 0) & (row < rows)

        out = np.full(x.shape, np.nan)
        out[inside] = self.values[row[inside].astype(int), col[inside].astype(int)]
        if self.nodata is not None:
            out[out == self.nodata] = np.nan
        return out

    def __repr__(self) -> str:
        return (f"RasterGrid ({self.name}, shape={self.shape}, "
                f"cell_size={self.cell_size}, crs={self.crs})")


def sample_rasters(table: LandingTable,
                   rasters: dict[str, RasterGrid] | list[RasterGrid]) -> LandingTable:
    """
    Attach nearest-cell raster values to every landing.

    Parameters
    ----------
    table : LandingTable
    rasters : dict of column name -> RasterGrid, or list (named by raster.name)

    Returns
    -------
    LandingTable
        New table with one Float64 column per raster; NaN outside the grid
        or on nodata becomes pd.NA.

    Raises
    ------
    CRSMismatchError
        A raster's CRS differs from the table's.
    """
    from strewnfield.spatial.shared.utils import check_crs

    if not isinstance(rasters, dict):
        rasters = {r.name: r for r in rasters}

    columns = {}
    for col, raster in rasters.items():
        check_crs(table.crs, raster.crs, context=f"sample_rasters('{col}')")
        values = raster.sample(table.x, table.y)
        n_missing = int(np.isnan(values).sum())
        if n_missing:
            logger.warning(f"{n_missing}/{table.n_obs} landings have no '{col}' value")
        columns[col] = pd.Series(values, index=table.index).astype('Float64')

    print(f"  ✓ Sampled {len(columns)} rasters at {table.n_obs} landings")
    return table.with_columns(**columns)


# ========== Boundaries ==========

def load_boundaries(path: str | Path, region_col: str | None = None) -> 'gpd.GeoDataFrame':
    """
    Read a polygon layer (shapefile, GeoJSON, GeoPackage).

    Parameters
    ----------
    path : str or Path
    region_col : str, optional
        Column that must be present (e.g. 'NAME').
    """
    import geopandas as gpd

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Boundary file not found: {path}")

    boundaries = gpd.read_file(path)
    if region_col is not None and region_col not in boundaries.columns:
        raise KeyError(f"Column '{region_col}' not found in {path.name}")
    if boundaries.crs is None:
        logger.warning(f"{path.name} has no CRS")
    logger.info(f"Read {len(boundaries)} boundaries from {path.name}")
    return boundaries


def assign_regions(table: LandingTable,
                   boundaries: 'gpd.GeoDataFrame',
                   region_col: str,
                   output_col: str = 'region',
                   max_distance: float | None = None) -> LandingTable:
    """
    Label each landing with its nearest boundary polygon.

    Landings inside a polygon get that polygon (distance 0); ties go to
    the first polygon in layer order.

    Parameters
    ----------
    table : LandingTable
    boundaries : gpd.GeoDataFrame
    region_col : str
        Column of `boundaries` holding the region label.
    output_col : str
        Name of the new attribute column.
    max_distance : float, optional
        Landings farther than this from every polygon get pd.NA.

    Returns
    -------
    LandingTable
    """
    import geopandas as gpd
    from strewnfield.spatial.shared.utils import check_crs

    if region_col not in boundaries.columns:
        raise KeyError(f"Column '{region_col}' not found in boundaries")
    boundary_crs = boundaries.crs.to_string() if boundaries.crs is not None else None
    check_crs(table.crs, boundary_crs, context='assign_regions')

    points = gpd.GeoDataFrame(
        {'_pos': np.arange(table.n_obs)},
        geometry=gpd.points_from_xy(table.x, table.y),
        crs=boundaries.crs,
    )
    joined = gpd.sjoin_nearest(
        points,
        boundaries[[region_col, 'geometry']].reset_index(drop=True),
        how='left',
        max_distance=max_distance,
    )
    joined = joined.sort_values(['_pos', 'index_right'])
    joined = joined[~joined['_pos'].duplicated(keep='first')]

    labels = pd.Series(pd.NA, index=table.index, dtype='string')
    labels.iloc[joined['_pos'].to_numpy()] = joined[region_col].astype('string').to_numpy()

    n_unassigned = int(labels.isna().sum())
    if n_unassigned:
        logger.warning(f"{n_unassigned}/{table.n_obs} landings not assigned to a region")
    print(f"  ✓ Assigned {table.n_obs - n_unassigned} landings to "
          f"{labels.nunique()} regions")
    return table.with_columns(**{output_col: labels})
