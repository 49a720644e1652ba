# src/strewnfield/__init__.py

"""
strewnfield - Spatial statistics of meteorite landings
"""

# Core data structures
from .data.core import LandingTable
from .data.config import AnalysisConfig
from .data.loaders import RasterGrid, load_landings_csv

# Import submodules
from . import data
from . import spatial
from . import visualization

__version__ = '0.1.0'

__all__ = [
    # Core classes
    'LandingTable',
    'AnalysisConfig',
    'RasterGrid',
    'load_landings_csv',

    # Submodules
    'data',
    'spatial',
    'visualization',
]
