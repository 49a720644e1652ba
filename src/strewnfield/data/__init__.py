"""
data - Landing table, configuration and loaders

This module contains the LandingTable data structure, the analysis
configuration and exceptions, thin file loaders and descriptive statistics.
"""

from .config import (
    AnalysisConfig,
    CONUS_BBOX,
    StrewnfieldError,
    InvalidGeometryError,
    CRSMismatchError,
    InsufficientDataError,
    CollinearityError,
    NumericInstabilityError,
)

from .core import LandingTable, parse_year
from .loaders import (
    RasterGrid,
    clean_landings,
    load_landings_csv,
    sample_rasters,
    load_boundaries,
    assign_regions,
)
from .summary import describe_landings, aggregate_by_region

__all__ = [
    # Core class
    'LandingTable',

    # Configuration
    'AnalysisConfig',
    'CONUS_BBOX',

    # Loaders
    'RasterGrid',
    'clean_landings',
    'load_landings_csv',
    'sample_rasters',
    'load_boundaries',
    'assign_regions',

    # Summaries
    'describe_landings',
    'aggregate_by_region',
    'parse_year',

    # Exceptions
    'StrewnfieldError',
    'InvalidGeometryError',
    'CRSMismatchError',
    'InsufficientDataError',
    'CollinearityError',
    'NumericInstabilityError',
]
