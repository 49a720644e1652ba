"""
test_data.py - LandingTable, loaders, rasters, regions and summaries

How to run:
    pytest tests/test_data.py -v
    pytest tests/ -v -k "LandingTable"
"""

import logging
import sys

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box

from strewnfield.data import (
    AnalysisConfig,
    LandingTable,
    RasterGrid,
    aggregate_by_region,
    assign_regions,
    clean_landings,
    describe_landings,
    load_landings_csv,
    parse_year,
    sample_rasters,
)
from strewnfield.data.config import CRSMismatchError, InsufficientDataError, InvalidGeometryError
from strewnfield.spatial.point import Window


@pytest.fixture
def regions():
    """Two halves of the continental US plus an empty polygon in Alaska."""
    return gpd.GeoDataFrame(
        {"NAME": ["west", "east", "alaska"]},
        geometry=[box(-125, 24, -95, 50), box(-95, 24, -66, 50), box(-170, 55, -140, 70)],
        crs="EPSG:4326",
    )


# ===========================================================================
# SECTION 1 — Year parsing
# ===========================================================================


class TestParseYear:
    """Tests for parse_year."""

    def test_mixed_formats(self):
        years = parse_year(["01/01/1880 12:00:00 AM", 1990, "2001", None, "unknown", 1990.5])
        assert str(years.dtype) == "Int64"
        assert years.iloc[:3].tolist() == [1880, 1990, 2001]
        assert years.iloc[3:].isna().all()

    def test_float_years_accepted(self):
        assert parse_year([1975.0]).iloc[0] == 1975


# ===========================================================================
# SECTION 2 — LandingTable
#
# We check:
#   (a) construction   — nullable dtypes, id index, read-only coordinates
#   (b) missing values — kept as NA, never coerced to 0
#   (c) filters        — years, window, ids, dropna; originals untouched
#   (d) conversion     — point pattern, GeoDataFrame
# ===========================================================================


class TestLandingTable:
    """Tests for LandingTable construction, filters and conversions."""

    def test_from_dataframe_dtypes(self, landings_df):
        table = LandingTable.from_dataframe(clean_landings(landings_df))
        assert table.index.name == "id"
        assert str(table.meta["mass"].dtype) == "Float64"
        assert str(table.meta["year"].dtype) == "Int64"
        assert str(table.meta["recclass"].dtype) == "string"
        assert "mass (g)" not in table.meta.columns
        assert "reclat" not in table.meta.columns

    def test_missing_mass_is_na_not_zero(self, landings_df):
        table = LandingTable.from_dataframe(clean_landings(landings_df))
        assert pd.isna(table.meta.loc[110, "mass"])
        assert table.meta.loc[103, "mass"] == 0.0  # a recorded zero stays zero

    def test_years_parsed(self, landings_df):
        table = LandingTable.from_dataframe(clean_landings(landings_df))
        year = table.meta["year"]
        assert year.loc[101] == 1938
        assert year.loc[103] == 1975
        assert year.loc[104] == 1891
        assert pd.isna(year.loc[105])

    def test_non_finite_coordinates_raise(self):
        with pytest.raises(InvalidGeometryError, match="non-finite"):
            LandingTable(x=[0.0, np.nan], y=[1.0, 2.0])

    def test_uncleaned_frame_raises(self, landings_df):
        """The raw frame has a missing longitude."""
        with pytest.raises(InvalidGeometryError):
            LandingTable.from_dataframe(landings_df)

    def test_coordinates_read_only(self, landing_table):
        with pytest.raises(ValueError):
            landing_table.x[0] = 0.0

    def test_get_coords_by_id(self, landing_table):
        coords = landing_table.get_coords([1003], as_dataframe=True)
        assert coords.index.tolist() == [1003]
        assert coords.iloc[0, 0] == landing_table.x[3]

    def test_unknown_id_raises(self, landing_table):
        with pytest.raises(KeyError):
            landing_table.subset([1, 2])

    def test_subset_by_ids_keeps_order(self, landing_table):
        sub = landing_table.subset([1005, 1001])
        assert sub.index.tolist() == [1005, 1001]
        assert sub.x[1] == landing_table.x[1]

    def test_filter_years_drops_missing(self, landing_table):
        sub = landing_table.filter_years(1850, 2010)
        assert sub.n_obs == landing_table.n_obs - 7
        assert landing_table.n_obs == 80  # original untouched

    def test_filter_years_keep_missing(self, landing_table):
        sub = landing_table.filter_years(1850, 2010, keep_missing=True)
        assert sub.n_obs == landing_table.n_obs

    def test_filter_years_range(self, landing_table):
        sub = landing_table.filter_years(1900, 1950)
        years = sub.meta["year"]
        assert years.min() >= 1900
        assert years.max() <= 1950

    def test_filter_window(self, landing_table):
        sub = landing_table.filter_window((-100, -80, 30, 40))
        assert (sub.x >= -100).all() and (sub.x <= -80).all()
        assert sub.n_obs == int(
            ((landing_table.x >= -100) & (landing_table.x <= -80)
             & (landing_table.y >= 30) & (landing_table.y <= 40)).sum()
        )

    def test_filter_window_object(self, landing_table):
        sub = landing_table.filter_window(Window(-125, -95, 24, 50))
        assert (sub.x <= -95).all()

    def test_require_complete_names_columns(self, landing_table):
        with pytest.raises(InsufficientDataError, match="mass: 8"):
            landing_table.require_complete(["mass", "recclass"])

    def test_require_complete_passes(self, landing_table):
        assert landing_table.require_complete(["recclass"]) is landing_table

    def test_dropna(self, landing_table):
        assert landing_table.dropna(["mass"]).n_obs == 72
        assert landing_table.dropna(["mass", "year"]).meta[["mass", "year"]].notna().all().all()

    def test_with_columns_length_checked(self, landing_table):
        with pytest.raises(ValueError):
            landing_table.with_columns(gravity=np.ones(3))

    def test_to_point_pattern(self, landing_table):
        pp = landing_table.to_point_pattern(marks=["mass"])
        assert pp.n == landing_table.n_obs
        assert pp.crs == "EPSG:4326"
        assert "mass" in pp.marks

    def test_to_geopandas(self, landing_table):
        gdf = landing_table.to_geopandas()
        assert len(gdf) == 80
        assert gdf.crs.to_epsg() == 4326
        np.testing.assert_allclose(gdf.geometry.x.to_numpy(), landing_table.x)

    def test_summary_counts_missing(self, landing_table):
        s = landing_table.summary()
        assert s["n_obs"] == 80
        assert s["missing"]["mass"] == 8
        assert s["missing"]["year"] == 7


# ===========================================================================
# SECTION 3 — Cleaning and CSV loading
# ===========================================================================


class TestLoaders:
    """Tests for clean_landings and load_landings_csv."""

    def test_clean_drops_unusable_rows(self, landings_df):
        cleaned = clean_landings(landings_df)
        assert cleaned["id"].tolist() == [101, 102, 103, 104, 105, 106, 110]

    def test_clean_logs_each_drop(self, landings_df, caplog):
        with caplog.at_level(logging.INFO, logger="strewnfield.data.loaders"):
            clean_landings(landings_df)
        assert "without coordinates" in caplog.text
        assert "(0, 0) placeholder" in caplog.text
        assert "outside bbox" in caplog.text

    def test_no_bbox_keeps_antarctica(self, landings_df):
        cleaned = clean_landings(landings_df, AnalysisConfig(bbox=None))
        assert 109 in cleaned["id"].tolist()
        assert len(cleaned) == 8

    def test_load_csv(self, landings_df, tmp_path):
        path = tmp_path / "landings.csv"
        landings_df.to_csv(path, index=False)
        table = load_landings_csv(path)
        assert table.n_obs == 7
        assert table.crs == "EPSG:4326"
        assert pd.isna(table.meta.loc[110, "mass"])
        assert table.meta.loc[106, "year"] == 2003

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_landings_csv(tmp_path / "nope.csv")


# ===========================================================================
# SECTION 4 — Rasters
# ===========================================================================


class TestRasters:
    """Tests for RasterGrid and sample_rasters."""

    @pytest.fixture
    def grid(self):
        """2×2 grid over [0, 2] × [0, 2]; row 0 is the northern row."""
        return RasterGrid.from_bounds(np.array([[1.0, 2.0], [3.0, 4.0]]), (0, 0, 2, 2),
                                      crs="EPSG:4326", name="elev")

    def test_bounds(self, grid):
        assert grid.bounds == (0, 0, 2, 2)

    def test_nearest_cell(self, grid):
        values = grid.sample([0.5, 1.5, 1.5], [1.5, 1.5, 0.5])
        np.testing.assert_array_equal(values, [1.0, 2.0, 4.0])

    def test_outside_is_nan(self, grid):
        assert np.isnan(grid.sample([3.0], [1.0])[0])

    def test_nodata_is_nan(self):
        grid = RasterGrid.from_bounds(np.array([[1.0, -9999.0]]), (0, 0, 2, 1), nodata=-9999.0)
        values = grid.sample([0.5, 1.5], [0.5, 0.5])
        assert values[0] == 1.0
        assert np.isnan(values[1])

    def test_values_must_be_2d(self):
        with pytest.raises(ValueError):
            RasterGrid(values=np.ones(3), origin=(0, 0), cell_size=(1, 1))

    def test_geotiff_without_rasterio_names_the_extra(self, monkeypatch, tmp_path):
        monkeypatch.setitem(sys.modules, "rasterio", None)
        with pytest.raises(ImportError, match=r"strewnfield\[raster\]") as excinfo:
            RasterGrid.from_geotiff(tmp_path / "elev.tif")
        assert isinstance(excinfo.value.__cause__, ImportError)

    def test_sample_rasters_adds_columns(self, landing_table):
        grid = RasterGrid.from_bounds(np.arange(12.0).reshape(3, 4), (-125, 24, -66, 50),
                                      crs="EPSG:4326", name="gravity")
        out = sample_rasters(landing_table, [grid])
        assert str(out.meta["gravity"].dtype) == "Float64"
        assert out.meta["gravity"].notna().all()
        assert "gravity" not in landing_table.meta.columns

    def test_sample_rasters_crs_mismatch(self, landing_table):
        grid = RasterGrid.from_bounds(np.ones((2, 2)), (0, 0, 1, 1), crs="EPSG:5070")
        with pytest.raises(CRSMismatchError):
            sample_rasters(landing_table, {"solar": grid})


# ===========================================================================
# SECTION 5 — Regions and summaries
# ===========================================================================


class TestRegionsAndSummaries:
    """Tests for assign_regions, describe_landings and aggregate_by_region."""

    def test_assign_regions(self, landing_table, regions):
        out = assign_regions(landing_table, regions, region_col="NAME")
        region = out.meta["region"]
        assert region.notna().all()
        west = landing_table.x < -95
        assert (region[west] == "west").all()
        assert (region[~west] == "east").all()

    def test_assign_regions_crs_mismatch(self, landing_table, regions):
        with pytest.raises(CRSMismatchError):
            assign_regions(landing_table, regions.set_crs("EPSG:5070", allow_override=True),
                           region_col="NAME")

    def test_describe_landings(self, landing_table):
        d = describe_landings(landing_table)
        assert d["overview"]["n_landings"] == 80
        assert d["overview"]["n_mass_missing"] == 8
        assert d["overview"]["n_year_missing"] == 7
        assert d["by_fall"]["n_landings"].sum() == 80
        assert d["by_decade"]["n_landings"].sum() == 80
        assert d["by_class"]["share"].sum() == pytest.approx(1.0)

    def test_aggregate_by_region(self, landing_table, regions):
        table = assign_regions(landing_table, regions, region_col="NAME")
        agg = aggregate_by_region(table, boundaries=regions, boundary_region_col="NAME")
        assert agg["n_landings"].sum() == 80
        assert agg.loc["alaska", "n_landings"] == 0
        assert (agg["area_km2"] > 0).all()
        assert agg.loc["alaska", "density_per_10k_km2"] == 0

    def test_aggregate_requires_region_column(self, landing_table):
        with pytest.raises(KeyError, match="assign_regions"):
            aggregate_by_region(landing_table)
