"""
spatial - Spatial analysis for strewnfield

point : Point-pattern analysis
    Windows, intensity surfaces, nearest-neighbour and Ripley summary
    functions, randomness tests and spatial weights graphs.

regression : Attribute analysis over locations
    OLS, global and local Moran's I, geographically weighted regression.

shared : Utilities shared across both (coordinates, CRS, distances)

Usage
-----
>>> import strewnfield as sf
>>>
>>> pp = sf.spatial.point.build_point_pattern(table)
>>> sf.spatial.point.ripleys_l(pp)
>>>
>>> graph = sf.spatial.point.build_knn_weights(table, k=6)
>>> sf.spatial.regression.local_morans_i(table.meta['log_mass'], graph)
"""

from . import point
from . import regression

__all__ = [
    'point',
    'regression',
]
