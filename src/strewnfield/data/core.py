"""
core.py - LandingTable, the cleaned observation table

A LandingTable holds one row per meteorite landing: coordinates, a CRS tag
and the landing attributes (name, class, mass, fall status, year), all
aligned to a single master index of landing ids.

Missing attributes stay missing: mass is a nullable Float64 column and year
a nullable Int64 column, with pd.NA as the marker. Nothing is filled with 0.
Stages that need complete inputs call require_complete() or dropna().
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import geopandas as gpd
from typing import Any

import numpy as np
import pandas as pd

from .config import AnalysisConfig, InsufficientDataError, InvalidGeometryError

# Canonical attribute columns and their nullable dtypes
ATTRIBUTE_DTYPES = {
    'name': 'string',
    'recclass': 'string',
    'mass': 'Float64',
    'fall': 'string',
    'year': 'Int64',
}


def parse_year(values: Any) -> pd.Series:
    """
    Parse landing years to nullable Int64.

    Accepts plain numbers (1880, 1880.0) and date strings as exported by
    the NASA portal ('01/01/1880 12:00:00 AM'); anything else becomes pd.NA.
    """
    values = pd.Series(values)
    numeric = pd.to_numeric(values, errors='coerce').to_numpy(dtype='float64', na_value=np.nan)
    from_text = pd.to_numeric(
        values.astype('string').str.extract(r'(\d{4})', expand=False),
        errors='coerce',
    ).to_numpy(dtype='float64', na_value=np.nan)
    year = np.where(np.isnan(numeric), from_text, numeric)
    year[year != np.round(year)] = np.nan
    return pd.Series(year, index=values.index).astype('Int64')


class LandingTable:
    """
    Observation table of meteorite landings.

    Core Principles:
    - Master Index: landing ids stored once, everything aligned to it
    - Finite Coordinates: non-finite x/y are rejected at construction
    - Explicit Missing Values: nullable dtypes, pd.NA never coerced to 0
    - Immutable Style: filters return new tables

    Attributes
    ----------
    _index : pd.Index
        Master landing index (single source of truth)
    _x, _y : np.ndarray
        Read-only coordinates aligned to _index
    _meta : pd.DataFrame
        Attributes aligned to _index
    crs : str or None
        CRS tag of the coordinates
    config : AnalysisConfig
    """

    def __init__(self,
                 x: Any,
                 y: Any,
                 ids: Any = None,
                 attributes: pd.DataFrame | None = None,
                 crs: str | None = 'EPSG:4326',
                 config: AnalysisConfig | None = None):
        """
        Initialize a LandingTable.

        Parameters
        ----------
        x, y : array-like
            Coordinates (longitude/latitude degrees for EPSG:4326).
        ids : array-like, optional
            Landing ids. Defaults to 0..n-1.
        attributes : pd.DataFrame, optional
            Per-landing attributes, aligned to `ids` by index when it
            shares the ids, otherwise by position.
        crs : str, optional
            CRS tag of x/y.
        config : AnalysisConfig, optional
        """
        self.config = config or AnalysisConfig()
        self.crs = crs

        x = np.array(x, dtype=np.float64).ravel()
        y = np.array(y, dtype=np.float64).ravel()
        if len(x) != len(y):
            raise ValueError(f"x and y have different lengths: {len(x)} vs {len(y)}")
        bad = ~(np.isfinite(x) & np.isfinite(y))
        if bad.any():
            raise InvalidGeometryError(
                f"{int(bad.sum())} landings have non-finite coordinates; "
                "clean the table before building it"
            )
        x.setflags(write=False)
        y.setflags(write=False)
        self._x = x
        self._y = y

        # STEP 1: master index
        if ids is None:
            ids = pd.RangeIndex(len(x))
        self._index = pd.Index(ids, name=self.config.id_col)
        if len(self._index) != len(x):
            raise ValueError(f"Got {len(self._index)} ids for {len(x)} coordinates")

        # STEP 2: align attributes
        self._meta = self._prepare_attributes(attributes)

    # ========== Data Preparation ==========

    def _prepare_attributes(self, attributes: pd.DataFrame | None) -> pd.DataFrame:
        """Align attributes to the master index and apply nullable dtypes."""
        if attributes is None:
            meta = pd.DataFrame(index=self._index)
        elif attributes.index.equals(self._index):
            meta = attributes.copy()
        elif len(attributes) == len(self._index):
            meta = attributes.reset_index(drop=True).set_axis(self._index)
        else:
            raise ValueError(
                f"Attributes have {len(attributes)} rows for {len(self._index)} landings"
            )
        meta.index.name = self._index.name

        for col, dtype in ATTRIBUTE_DTYPES.items():
            if col not in meta.columns:
                meta[col] = pd.Series(pd.NA, index=meta.index, dtype=dtype)
            elif col == 'year':
                meta[col] = parse_year(meta[col]).to_numpy()
            elif dtype == 'Float64':
                meta[col] = pd.to_numeric(meta[col], errors='coerce').astype(dtype)
            else:
                meta[col] = meta[col].astype(dtype)
        return meta

    @classmethod
    def from_dataframe(cls,
                       df: pd.DataFrame,
                       config: AnalysisConfig | None = None,
                       crs: str | None = None) -> LandingTable:
        """
        Build a table from a DataFrame in the landings CSV layout.

        Source columns named in `config` are renamed to the canonical
        attribute names; other columns are carried along unchanged.
        """
        config = config or AnalysisConfig()
        x_col, y_col = config.get_coordinate_columns()
        for col in (x_col, y_col):
            if col not in df.columns:
                raise KeyError(f"Coordinate column '{col}' not found")

        ids = df[config.id_col].to_numpy() if config.id_col in df.columns else None
        rename = {src: canon for canon, src in config.attribute_columns().items()
                  if src in df.columns}
        attributes = (
            df.drop(columns=[c for c in (x_col, y_col, config.id_col) if c in df.columns])
              .rename(columns=rename)
              .reset_index(drop=True)
        )
        return cls(
            x=df[x_col].to_numpy(dtype=np.float64),
            y=df[y_col].to_numpy(dtype=np.float64),
            ids=ids,
            attributes=attributes,
            crs=crs or config.crs,
            config=config,
        )

    # ========== Properties ==========

    @property
    def index(self) -> pd.Index:
        """Get master landing index."""
        return self._index

    @property
    def n_obs(self) -> int:
        return len(self._index)

    @property
    def meta(self) -> pd.DataFrame:
        """Get attributes (aligned to master index)."""
        return self._meta

    @property
    def x(self) -> np.ndarray:
        return self._x

    @property
    def y(self) -> np.ndarray:
        return self._y

    def __len__(self) -> int:
        return self.n_obs

    # ========== Access ==========

    def _get_positions(self, ids: Any) -> np.ndarray:
        positions = self._index.get_indexer(pd.Index(ids))
        if (positions < 0).any():
            missing = pd.Index(ids)[positions < 0]
            raise KeyError(f"{len(missing)} landing ids not found, e.g. {list(missing[:5])}")
        return positions

    def get_coords(self, ids: Any = None, as_dataframe: bool = False) -> np.ndarray | pd.DataFrame:
        """
        Get coordinates.

        Parameters
        ----------
        ids : array-like, optional
            Landing ids. If None, all landings.
        as_dataframe : bool
            If True, return a DataFrame indexed by id.

        Returns
        -------
        np.ndarray (n, 2) or pd.DataFrame
        """
        if ids is None:
            positions = np.arange(self.n_obs)
        else:
            positions = self._get_positions(ids)
        coords = np.column_stack([self._x[positions], self._y[positions]])
        if as_dataframe:
            return pd.DataFrame(coords, index=self._index[positions], columns=['x', 'y'])
        return coords

    # ========== Subsetting ==========

    def _take(self, positions: np.ndarray) -> LandingTable:
        return LandingTable(
            x=self._x[positions],
            y=self._y[positions],
            ids=self._index[positions],
            attributes=self._meta.iloc[positions].copy(),
            crs=self.crs,
            config=self.config,
        )

    def subset(self, selector: Any) -> LandingTable:
        """
        New table from a boolean mask or a list of landing ids.
        """
        selector = np.asarray(selector)
        if selector.dtype == bool:
            if len(selector) != self.n_obs:
                raise ValueError(f"Mask has {len(selector)} entries for {self.n_obs} landings")
            positions = np.flatnonzero(selector)
        else:
            positions = self._get_positions(selector)
        return self._take(positions)

    def filter_years(self,
                     start: int | None = None,
                     end: int | None = None,
                     keep_missing: bool = False) -> LandingTable:
        """
        Keep landings with start <= year <= end.

        Landings with a missing year are dropped unless keep_missing=True.
        """
        year = self._meta['year']
        mask = np.ones(self.n_obs, dtype=bool)
        if start is not None:
            mask &= (year >= start).fillna(keep_missing).to_numpy(dtype=bool)
        if end is not None:
            mask &= (year <= end).fillna(keep_missing).to_numpy(dtype=bool)
        if start is None and end is None and not keep_missing:
            mask &= year.notna().to_numpy()
        result = self.subset(mask)
        print(f"  ✓ Year filter [{start}, {end}]: {result.n_obs}/{self.n_obs} landings")
        return result

    def filter_window(self, window: Any) -> LandingTable:
        """
        Keep landings inside a Window or an (xmin, xmax, ymin, ymax) box.
        """
        if hasattr(window, 'contains'):
            mask = window.contains(self.get_coords())
        else:
            xmin, xmax, ymin, ymax = window
            mask = (
                (self._x >= xmin) & (self._x <= xmax)
                & (self._y >= ymin) & (self._y <= ymax)
            )
        return self.subset(mask)

    def dropna(self, columns: list[str] | None = None) -> LandingTable:
        """Drop landings with a missing value in any of `columns` (default: all)."""
        columns = columns or list(self._meta.columns)
        self._check_columns(columns)
        mask = self._meta[columns].notna().all(axis=1).to_numpy()
        n_dropped = int((~mask).sum())
        if n_dropped:
            print(f"  ✓ Dropped {n_dropped} landings with missing {columns}")
        return self.subset(mask)

    def require_complete(self, columns: list[str]) -> LandingTable:
        """
        Check that `columns` have no missing values.

        Returns
        -------
        LandingTable
            self, for chaining.

        Raises
        ------
        InsufficientDataError
            Naming each incomplete column and its missing count.
        """
        self._check_columns(columns)
        missing = self._meta[columns].isna().sum()
        missing = missing[missing > 0]
        if len(missing) > 0:
            detail = ', '.join(f"{col}: {n}" for col, n in missing.items())
            raise InsufficientDataError(
                f"Missing values in required columns ({detail}); "
                "drop or impute them first"
            )
        return self

    def _check_columns(self, columns: list[str]) -> None:
        unknown = [c for c in columns if c not in self._meta.columns]
        if unknown:
            raise KeyError(f"Columns not found: {unknown}")

    def with_columns(self, **columns: Any) -> LandingTable:
        """New table with extra attribute columns (e.g. sampled covariates)."""
        meta = self._meta.copy()
        for name, values in columns.items():
            if isinstance(values, pd.Series) and values.index.equals(self._index):
                meta[name] = values
            else:
                values = np.asarray(values)
                if len(values) != self.n_obs:
                    raise ValueError(
                        f"Column '{name}' has {len(values)} values for {self.n_obs} landings"
                    )
                meta[name] = values
        return LandingTable(self._x, self._y, ids=self._index, attributes=meta,
                            crs=self.crs, config=self.config)

    # ========== Conversion ==========

    def to_point_pattern(self, window: Any = None, marks: list[str] | None = None):
        """
        Build a PointPattern from the landing coordinates.

        Parameters
        ----------
        window : Window, optional
            Defaults to the bounding box of the landings.
        marks : list of str, optional
            Attribute columns carried as marks.
        """
        from strewnfield.spatial.point.pattern import build_point_pattern

        mark_arrays = {col: self._meta[col].to_numpy() for col in (marks or [])}
        return build_point_pattern(self.get_coords(), window=window,
                                   crs=self.crs, marks=mark_arrays)

    def to_dataframe(self) -> pd.DataFrame:
        """Attributes plus x/y columns."""
        df = self._meta.copy()
        df.insert(0, 'y', self._y)
        df.insert(0, 'x', self._x)
        return df

    def to_geopandas(self, include_metadata: bool = True) -> 'gpd.GeoDataFrame':
        """
        Convert to a point GeoDataFrame.

        Examples
        --------
        >>> gdf = table.to_geopandas()
        >>> gdf.to_file('landings.geojson', driver='GeoJSON')
        """
        import geopandas as gpd

        data = self._meta.copy() if include_metadata else pd.DataFrame(index=self._index)
        gdf = gpd.GeoDataFrame(
            data,
            geometry=gpd.points_from_xy(self._x, self._y),
            crs=self.crs,
        )
        print(f"  ✓ Created GeoDataFrame: {len(gdf)} landings")
        return gdf

    # ========== Reporting ==========

    def summary(self) -> dict[str, Any]:
        """
        Get summary of the table.

        Returns
        -------
        dict
            Counts, missing values per column and coordinate bounds
        """
        year = self._meta['year'].dropna()
        bounds = (
            (float(self._x.min()), float(self._x.max()),
             float(self._y.min()), float(self._y.max()))
            if self.n_obs else None
        )
        return {
            'n_obs': self.n_obs,
            'crs': self.crs,
            'bounds': bounds,
            'missing': self._meta.isna().sum().to_dict(),
            'year_range': (int(year.min()), int(year.max())) if len(year) else None,
            'n_classes': int(self._meta['recclass'].nunique()),
            'columns': list(self._meta.columns),
        }

    def __repr__(self) -> str:
        s = self.summary()
        return (f"LandingTable\n"
                f"  Landings: {s['n_obs']:,}\n"
                f"  CRS:      {s['crs']}\n"
                f"  Years:    {s['year_range']}\n"
                f"  Columns:  {', '.join(s['columns'])}")

    def __str__(self) -> str:
        return self.__repr__()
