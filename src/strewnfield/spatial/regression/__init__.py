# src/strewnfield/spatial/regression/__init__.py

"""
Regression and spatial autocorrelation of landing attributes.

Modules
-------
- ols: Global ordinary least squares
- autocorrelation: Global and local Moran's I, Moran correlograms
- gwr: Geographically weighted regression with bandwidth selection

Quick Start
-----------
>>> import strewnfield as sf
>>>
>>> graph = sf.spatial.point.build_knn_weights(table, k=8)
>>> sf.spatial.regression.morans_i(table.meta['log_mass'], graph)
>>>
>>> X = table.meta[['gravity', 'solar']]
>>> y = table.meta['log_mass']
>>> ols = sf.spatial.regression.fit_ols(X, y)
>>> sf.spatial.regression.morans_i(ols.residuals, graph)   # residual check
>>>
>>> gwr = sf.spatial.regression.fit_gwr(X, y, table, n_jobs=4)

Notes
-----
- Missing covariates or responses raise InsufficientDataError; drop or
  impute them first (LandingTable.dropna).
- GWR bandwidths are proportions q of the sample when adaptive=True.
"""

from .ols import (
    OLSResult,
    prepare_design,
    fit_ols,
)

from .autocorrelation import (
    MoranResult,
    morans_i,
    local_morans_i,
    moran_correlogram,
)

from .gwr import (
    BandwidthSelection,
    GWRResult,
    select_bandwidth,
    fit_gwr,
)

__all__ = [
    # Classes
    'OLSResult',
    'MoranResult',
    'BandwidthSelection',
    'GWRResult',

    # OLS
    'prepare_design',
    'fit_ols',

    # Autocorrelation
    'morans_i',
    'local_morans_i',
    'moran_correlogram',

    # GWR
    'select_bandwidth',
    'fit_gwr',
]
