"""
Deterministic layered tactical battle map generator.
"""

from .core import (
    BiomeType,
    DevelopmentLevel,
    ElevationZone,
    LayerBundle,
    MapGrid,
    TacticalMapContext,
    TacticalMapGenerator,
    convert_to_tiles,
    generate,
)
from .errors import (
    InvalidContextError,
    InvalidDimensionsError,
    LayerDependencyError,
    LayerGenerationError,
    TacticalMapError,
)

__version__ = "0.1.0"

__all__ = ['BiomeType', 'DevelopmentLevel', 'ElevationZone', 'LayerBundle', 'MapGrid',
           'TacticalMapContext', 'TacticalMapGenerator', 'convert_to_tiles', 'generate',
           'InvalidContextError', 'InvalidDimensionsError', 'LayerDependencyError',
           'LayerGenerationError', 'TacticalMapError']
