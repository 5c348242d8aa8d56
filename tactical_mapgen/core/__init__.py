"""
Core tactical map generation functionality.
"""

from .compatibility import (
    CompatibilityLevel,
    FeatureMixer,
    MapFeature,
    MixingSettings,
    TerrainType,
    calculate_interaction,
    compatible_features,
    get_compatibility,
    validate_settings,
)
from .context import BiomeType, DevelopmentLevel, ElevationZone, HydrologyType, Season, TacticalMapContext
from .lcg_prng import LCGRandom
from .pipeline import (
    GenerationMetadata,
    GenerationOptions,
    LayerBundle,
    MapGrid,
    TacticalMapGenerator,
    convert_to_tiles,
    generate,
)
from .seed import LayeredSeed, Seed, SeedPolicy, validate_seed
from .tiles import TacticalMapConverter, Tile

__all__ = ['CompatibilityLevel', 'FeatureMixer', 'MapFeature', 'MixingSettings', 'TerrainType',
           'calculate_interaction', 'compatible_features', 'get_compatibility', 'validate_settings',
           'BiomeType', 'DevelopmentLevel', 'ElevationZone', 'HydrologyType', 'Season',
           'TacticalMapContext', 'LCGRandom', 'GenerationMetadata', 'GenerationOptions',
           'LayerBundle', 'MapGrid', 'TacticalMapGenerator', 'convert_to_tiles', 'generate',
           'LayeredSeed', 'Seed', 'SeedPolicy', 'validate_seed', 'TacticalMapConverter', 'Tile']
