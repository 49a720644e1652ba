"""
summary.py - Descriptive statistics of a landing table

Counts and mass distributions per class, fall status, decade and region.
Missing values are counted, not dropped silently: every grouped table has
an explicit row for landings whose grouping value is missing.
"""
from __future__ import annotations
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import geopandas as gpd

import pandas as pd

from .core import LandingTable

# World Cylindrical Equal Area, for polygon areas in m²
EQUAL_AREA_CRS = 'EPSG:6933'


def _mass_stats(meta: pd.DataFrame, by: pd.Series) -> pd.DataFrame:
    grouped = meta.groupby(by, dropna=False, sort=True)
    stats = pd.DataFrame({
        'n_landings': grouped.size(),
        'n_mass_missing': grouped['mass'].apply(lambda s: int(s.isna().sum())),
        'mass_median': grouped['mass'].median(),
        'mass_total': grouped['mass'].sum(min_count=1),
    })
    stats['share'] = stats['n_landings'] / len(meta)
    return stats


def describe_landings(table: LandingTable, top_classes: int = 10) -> dict[str, pd.DataFrame | pd.Series]:
    """
    Descriptive statistics of a landing table.

    Parameters
    ----------
    table : LandingTable
    top_classes : int
        Number of most frequent classes reported; the rest are pooled
        into 'other'.

    Returns
    -------
    dict
        'overview' : pd.Series with counts, missing values and ranges
        'by_class' : per recclass
        'by_fall' : per fall status
        'by_decade' : per decade of the landing year
    """
    meta = table.meta
    mass = meta['mass']
    year = meta['year']

    overview = pd.Series({
        'n_landings': table.n_obs,
        'n_mass_missing': int(mass.isna().sum()),
        'n_mass_zero': int((mass == 0).sum()),
        'n_year_missing': int(year.isna().sum()),
        'year_min': year.min() if year.notna().any() else pd.NA,
        'year_max': year.max() if year.notna().any() else pd.NA,
        'mass_median': mass.median() if mass.notna().any() else pd.NA,
        'mass_total': mass.sum(min_count=1),
        'n_classes': int(meta['recclass'].nunique()),
    }, name='overview')

    top = meta['recclass'].value_counts().index[:top_classes]
    recclass = meta['recclass'].where(meta['recclass'].isin(top) | meta['recclass'].isna(), 'other')

    decade = (year // 10) * 10

    result = {
        'overview': overview,
        'by_class': _mass_stats(meta, recclass.rename('recclass')).sort_values(
            'n_landings', ascending=False),
        'by_fall': _mass_stats(meta, meta['fall'].rename('fall')),
        'by_decade': _mass_stats(meta, decade.rename('decade')),
    }

    print(f"  ✓ Described {table.n_obs} landings: "
          f"{overview['n_mass_missing']} without mass, "
          f"{overview['n_year_missing']} without year")
    return result


def aggregate_by_region(table: LandingTable,
                        region_col: str = 'region',
                        boundaries: 'gpd.GeoDataFrame | None' = None,
                        boundary_region_col: str | None = None) -> pd.DataFrame:
    """
    Landing counts and mass statistics per region.

    Parameters
    ----------
    table : LandingTable
        With a region column (see assign_regions).
    region_col : str
        Region column of the table.
    boundaries : gpd.GeoDataFrame, optional
        Region polygons. When given, adds area_km2 and landings per
        10,000 km²; regions without landings get a count of 0.
    boundary_region_col : str, optional
        Label column of `boundaries`. Defaults to `region_col`.

    Returns
    -------
    pd.DataFrame
        One row per region, plus a row for unassigned landings if any.
    """
    if region_col not in table.meta.columns:
        raise KeyError(f"Column '{region_col}' not found; run assign_regions first")

    meta = table.meta
    stats = _mass_stats(meta, meta[region_col].rename(region_col))
    stats['year_min'] = meta.groupby(meta[region_col], dropna=False)['year'].min()
    stats['year_max'] = meta.groupby(meta[region_col], dropna=False)['year'].max()

    if boundaries is not None:
        label_col = boundary_region_col or region_col
        if label_col not in boundaries.columns:
            raise KeyError(f"Column '{label_col}' not found in boundaries")
        areas = boundaries.to_crs(EQUAL_AREA_CRS).geometry.area / 1e6
        area_km2 = areas.groupby(boundaries[label_col].astype('string').to_numpy()).sum()
        stats = stats.reindex(stats.index.union(area_km2.index))
        stats['n_landings'] = stats['n_landings'].fillna(0).astype(int)
        stats['share'] = stats['n_landings'] / len(meta)
        stats['area_km2'] = area_km2.reindex(stats.index)
        stats['density_per_10k_km2'] = stats['n_landings'] / stats['area_km2'] * 1e4

    print(f"  ✓ Aggregated {table.n_obs} landings over "
          f"{int(meta[region_col].nunique())} regions")
    return stats.sort_values('n_landings', ascending=False)
