"""
conftest.py - Shared test fixtures for strewnfield

What is this file?
------------------
pytest automatically reads this file before running any test.
Anything defined here (called a "fixture") is available to ALL test files
without needing to import it; pytest injects it by name.

How fixtures work:
------------------
    @pytest.fixture          ← decorator that marks a reusable setup block
    def my_fixture():
        return something_useful

    def test_something(my_fixture):   ← pytest sees the name and injects it
        assert my_fixture == expected
"""

import matplotlib

matplotlib.use("Agg")  # no display during tests

import numpy as np
import pandas as pd
import pytest

from strewnfield.data.core import LandingTable
from strewnfield.spatial.point import Window, build_point_pattern

# ===========================================================================
# Constants: size of the fake datasets
# ===========================================================================

N_POISSON = 1000  # points in the CSR pattern (intensity 10 on a 10×10 window)
N_LANDINGS = 80  # fake landings inside the continental US
N_REGRESSION = 120  # observations for OLS / GWR


# ===========================================================================
# Fixture 1: homogeneous Poisson (CSR) pattern
# ===========================================================================


@pytest.fixture
def csr_pattern():
    """
    1000 uniform points in the window [0, 10] × [0, 10].

    Use this for anything that should look "random": K ≈ πr², L ≈ r,
    non-significant randomness tests.
    """
    rng = np.random.default_rng(42)
    coords = rng.uniform(0, 10, (N_POISSON, 2))
    return build_point_pattern(coords, window=Window(0, 10, 0, 10))


# ===========================================================================
# Fixture 2: clustered pattern
# ===========================================================================


@pytest.fixture
def clustered_pattern():
    """
    300 points in 6 tight clusters (sd 0.15) inside [0, 10] × [0, 10].

    The opposite of csr_pattern: randomness tests should reject CSR.
    """
    rng = np.random.default_rng(7)
    centers = rng.uniform(2, 8, (6, 2))
    coords = np.vstack([c + rng.normal(0, 0.15, (50, 2)) for c in centers])
    coords = np.clip(coords, 0, 10)
    return build_point_pattern(coords, window=Window(0, 10, 0, 10))


# ===========================================================================
# Fixture 3: the four corners of the unit square
# ===========================================================================


@pytest.fixture
def unit_square_coords():
    """
    Corners in index order: 0=(0,0), 1=(1,0), 2=(0,1), 3=(1,1).

    Every point has two neighbours at distance 1 (a tie) and one at √2.
    """
    return np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])


@pytest.fixture
def unit_square_pattern(unit_square_coords):
    return build_point_pattern(unit_square_coords)


# ===========================================================================
# Fixture 4: raw landings CSV rows (NASA export layout)
# ===========================================================================


@pytest.fixture
def landings_df():
    """
    Ten raw landings with every kind of problem the cleaning step handles.

    Rows:
      0-5  valid, inside the continental US
      6    missing longitude          → dropped
      7    (0, 0) placeholder         → dropped
      8    Antarctica                 → outside bbox, dropped
      9    valid but mass missing     → kept, mass is NA (never 0)

    Years come as portal date strings, plain numbers and blanks.
    """
    return pd.DataFrame(
        {
            "name": ["A", "B", "C", "D", "E", "F", "G", "H", "I", "J"],
            "id": [101, 102, 103, 104, 105, 106, 107, 108, 109, 110],
            "nametype": ["Valid"] * 10,
            "recclass": ["L6", "H5", "L6", "Iron, IIIAB", "H5", "L6", "H4", "L5", "H6", "LL5"],
            "mass (g)": [120.0, 5400.0, 0.0, 310000.0, 22.5, 71.0, 10.0, 15.0, 3.0, np.nan],
            "fall": ["Fell", "Found", "Found", "Found", "Fell", "Found", "Found", "Fell", "Found", "Found"],
            "year": [
                "01/01/1938 12:00:00 AM",
                "01/01/1950 12:00:00 AM",
                1975,
                "1891",
                np.nan,
                "01/01/2003 12:00:00 AM",
                1990,
                1920,
                1988,
                "01/01/1969 12:00:00 AM",
            ],
            "reclat": [35.1, 40.7, 33.2, 35.0, 44.9, 31.5, 38.0, 0.0, -79.7, 39.5],
            "reclong": [-106.6, -99.1, -101.9, -111.0, -93.2, -97.3, np.nan, 0.0, 159.4, -84.1],
        }
    )


# ===========================================================================
# Fixture 5: clean LandingTable
# ===========================================================================


@pytest.fixture
def landing_table():
    """
    80 landings scattered over the continental US with nullable attributes.

    Every 10th landing has no mass and every 13th has no year.
    """
    rng = np.random.default_rng(3)
    n = N_LANDINGS
    mass = rng.lognormal(4, 2, n)
    mass[::10] = np.nan
    year = rng.integers(1850, 2010, n).astype(float)
    year[::13] = np.nan

    attributes = pd.DataFrame(
        {
            "name": [f"met_{i}" for i in range(n)],
            "recclass": rng.choice(["L6", "H5", "H4", "LL5"], n),
            "mass": mass,
            "fall": rng.choice(["Fell", "Found"], n, p=[0.2, 0.8]),
            "year": year,
        }
    )
    return LandingTable(
        x=rng.uniform(-120, -70, n),
        y=rng.uniform(26, 48, n),
        ids=np.arange(1000, 1000 + n),
        attributes=attributes,
        crs="EPSG:4326",
    )


# ===========================================================================
# Fixture 6: regression data with a spatially varying slope
# ===========================================================================


@pytest.fixture
def regression_data():
    """
    120 observations on [0, 10] × [0, 10].

    y = 1 + b1(x) * x1 - 0.5 * x2 + noise, with the slope b1 rising from
    1 on the west edge to 3 on the east edge. OLS sees an average slope;
    GWR should recover the gradient.

    Returns (X, y, coords).
    """
    rng = np.random.default_rng(11)
    n = N_REGRESSION
    coords = rng.uniform(0, 10, (n, 2))
    x1 = rng.normal(0, 1, n)
    x2 = rng.normal(0, 1, n)
    slope = 1 + coords[:, 0] / 5
    y = 1 + slope * x1 - 0.5 * x2 + rng.normal(0, 0.1, n)
    X = pd.DataFrame({"x1": x1, "x2": x2})
    return X, pd.Series(y, name="y"), coords
