# src/strewnfield/spatial/point/__init__.py

"""
Point pattern analysis of landing locations.

Modules
-------
- pattern: Window and PointPattern construction
- intensity: Gaussian kernel intensity surfaces
- statistics: Nearest-neighbour distances, G and F functions
- ripley: Ripley's K/L functions and simulation envelopes
- csr: Quadrat and Monte Carlo nearest-neighbour randomness tests
- graph: k-NN and distance-band spatial weights

Quick Start
-----------
>>> import strewnfield as sf
>>>
>>> pp = sf.spatial.point.build_point_pattern(table)
>>> surface = sf.spatial.point.kernel_density(pp)
>>> l_curve = sf.spatial.point.ripleys_l(pp, correction='translation')
>>> sf.spatial.point.quadrat_test(pp, nx=4, ny=3)
>>> sf.spatial.point.ann_test(pp, n_simulations=99, seed=0)
>>>
>>> # Weights for autocorrelation and regression diagnostics
>>> graph = sf.spatial.point.build_knn_weights(table, k=6)

Point Patterns
--------------
Window
    Rectangular observation window
PointPattern
    Immutable points + window
build_point_pattern
    Build a pattern from coordinates, a LandingTable or another pattern

Intensity
---------
kernel_density
    Gaussian kernel intensity surface (no edge correction)
silverman_bandwidth
    Rule-of-thumb kernel bandwidth

Summary Functions
-----------------
nearest_neighbor_distances
    Distance to the k-th nearest neighbour of every point
g_function
    Nearest-neighbour distance distribution G(r)
f_function
    Empty-space distribution F(r)
ripleys_k
    Ripley's K with isotropic or translation edge correction
ripleys_l
    L(r) = sqrt(K(r)/pi)
simulation_envelope
    Pointwise CSR envelopes for G, F, K or L

Randomness Tests
----------------
quadrat_test
    Chi-squared test on quadrat counts
ann_test
    Monte Carlo average nearest-neighbour test

Spatial Weights
---------------
build_knn_weights
    k-nearest neighbours, row-standardised
build_distance_band_weights
    Distance band [d1, d2], row-standardised, zero policy
spatial_lag
    Weighted average of neighbours' values

Notes
-----
- K, L, G and F are planar: distances are in the pattern's coordinate
  units (degrees for lon/lat). Project first for metric distances.
- Weights builders take metric='haversine' for great-circle kilometres.
"""

# Point patterns
from .pattern import (
    Window,
    PointPattern,
    build_point_pattern,
)

# Intensity
from .intensity import (
    IntensitySurface,
    kernel_density,
    silverman_bandwidth,
)

# Summary functions
from .statistics import (
    SummaryFunction,
    nearest_neighbor_distances,
    g_function,
    f_function,
)

from .ripley import (
    ripleys_k,
    ripleys_l,
    simulation_envelope,
)

# Randomness tests
from .csr import (
    QuadratTestResult,
    ANNTestResult,
    quadrat_test,
    ann_test,
)

# Spatial weights
from .graph import (
    SpatialWeightsGraph,
    build_knn_weights,
    build_distance_band_weights,
    spatial_lag,
)

__all__ = [
    # Classes
    'Window',
    'PointPattern',
    'IntensitySurface',
    'SummaryFunction',
    'QuadratTestResult',
    'ANNTestResult',
    'SpatialWeightsGraph',

    # Point patterns
    'build_point_pattern',

    # Intensity
    'kernel_density',
    'silverman_bandwidth',

    # Summary functions
    'nearest_neighbor_distances',
    'g_function',
    'f_function',
    'ripleys_k',
    'ripleys_l',
    'simulation_envelope',

    # Randomness tests
    'quadrat_test',
    'ann_test',

    # Spatial weights
    'build_knn_weights',
    'build_distance_band_weights',
    'spatial_lag',
]
