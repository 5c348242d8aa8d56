"""
Tile conversion: flattens a layer bundle into a grid of tactical tiles.

This module implements:
- Terrain selection by layer priority (structures, water, trees, relief, ground)
- Height multipliers from elevation
- Blocking, movement cost, cover and concealment per tile
- Extraction of discrete map features from the layers
- Resolution of overlapping features with the FeatureMixer
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import structlog
from scipy import ndimage

from ..utils.random import FEATURES, CoordinatedRandomGenerator, DeterministicIdGenerator
from .compatibility import (
    ArtificialFeature,
    ArtificialFeatureType,
    Bounds,
    CulturalFeature,
    CulturalFeatureType,
    FeatureMixer,
    MapFeature,
    MixingSettings,
    NaturalFeature,
    NaturalFeatureType,
    ReliefFeature,
    ReliefFeatureType,
    TerrainType,
    feature_tiles,
)
from .context import BiomeType, TacticalMapContext
from .features import FeatureType
from .geology import TerrainFeature
from .hydrology import MoistureLevel
from .structures import BuildingType, StructureType
from .vegetation import VegetationType

logger = structlog.get_logger()

MOUNTAIN_ELEVATION_FT = 40.0
LAKE_MIN_TILES = 12
WETLAND_MIN_TILES = 4
RIVER_MIN_ORDER = 3

BUILDING_STRUCTURES = (
    StructureType.HOUSE,
    StructureType.BARN,
    StructureType.TOWER,
    StructureType.WELL,
    StructureType.SHRINE,
    StructureType.RUIN,
)
ROAD_STRUCTURES = (StructureType.ROAD, StructureType.BRIDGE)


class CoverLevel(str, Enum):
    NONE = "none"
    LIGHT = "light"  # 1/4 cover, bushes
    PARTIAL = "partial"  # 1/2 cover, trees and boulders
    HEAVY = "heavy"  # 3/4 cover, walls and large rocks
    TOTAL = "total"  # behind a building


class ConcealmentLevel(str, Enum):
    NONE = "none"
    LIGHT = "light"
    MODERATE = "moderate"
    HEAVY = "heavy"
    TOTAL = "total"


_COVER_ORDER = list(CoverLevel)


def max_cover(a: CoverLevel, b: CoverLevel) -> CoverLevel:
    return _COVER_ORDER[max(_COVER_ORDER.index(a), _COVER_ORDER.index(b))]


@dataclass
class Tile:
    x: int
    y: int
    terrain: TerrainType
    elevation: float  # feet
    height_multiplier: float
    movement_cost: float  # 1 is normal, inf is impassable
    is_blocked: bool = False
    cover: CoverLevel = CoverLevel.NONE
    concealment: ConcealmentLevel = ConcealmentLevel.NONE
    vegetation_type: VegetationType = VegetationType.NONE
    structure_type: Optional[StructureType] = None
    feature_type: Optional[FeatureType] = None
    primary_feature_id: Optional[str] = None
    mixed_feature_ids: List[str] = field(default_factory=list)
    suppressed_feature_ids: List[str] = field(default_factory=list)
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_passable(self) -> bool:
        return not self.is_blocked and math.isfinite(self.movement_cost)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "terrain": self.terrain.value,
            "elevation": self.elevation,
            "height_multiplier": self.height_multiplier,
            "movement_cost": self.movement_cost if math.isfinite(self.movement_cost) else None,
            "is_blocked": self.is_blocked,
            "cover": self.cover.value,
            "concealment": self.concealment.value,
            "vegetation": self.vegetation_type.value,
            "structure": self.structure_type.value if self.structure_type else None,
            "feature": self.feature_type.value if self.feature_type else None,
            "primary_feature_id": self.primary_feature_id,
            "mixed_feature_ids": list(self.mixed_feature_ids),
            "properties": dict(self.properties),
        }


def height_multiplier(elevation: float) -> float:
    """0 ft -> 0.5, 100 ft -> 2.0, linear between and +1 per further 100 ft."""
    if elevation <= 0:
        return 0.5
    if elevation >= 100:
        return 2.0 + (elevation - 100) / 100
    return 0.5 + (elevation / 100) * 1.5


def select_terrain(
    structure_type: Optional[StructureType],
    is_road: bool,
    is_water: bool,
    vegetation_type: VegetationType,
    elevation: float,
    is_ridge: bool,
    ground: TerrainType = TerrainType.GRASS,
) -> TerrainType:
    """Terrain by priority: structures, water, trees, mountains, then ground."""
    if structure_type is not None:
        if structure_type == StructureType.WALL:
            return TerrainType.WALL
        if structure_type in ROAD_STRUCTURES:
            return TerrainType.ROAD
        return TerrainType.BUILDING
    if is_road:
        return TerrainType.ROAD
    if is_water:
        return TerrainType.WATER
    if vegetation_type in (VegetationType.DENSE_TREES, VegetationType.SPARSE_TREES):
        return TerrainType.FOREST
    if elevation > MOUNTAIN_ELEVATION_FT or is_ridge:
        return TerrainType.MOUNTAIN
    return ground


def ground_terrain(context: TacticalMapContext) -> TerrainType:
    if context.biome == BiomeType.DESERT:
        return TerrainType.DESERT
    if context.biome == BiomeType.SWAMP:
        return TerrainType.SWAMP
    if context.biome == BiomeType.UNDERGROUND:
        return TerrainType.CAVE
    if context.should_have_snow():
        return TerrainType.SNOW
    return TerrainType.GRASS


def movement_cost(
    slope: float,
    water_depth: float,
    vegetation_type: VegetationType,
    geological_features: Tuple[TerrainFeature, ...],
) -> float:
    if slope > 45:
        cost = 4.0
    elif slope > 30:
        cost = 3.0
    elif slope > 15:
        cost = 2.0
    elif slope > 5:
        cost = 1.5
    else:
        cost = 1.0

    if water_depth > 3:
        cost = math.inf
    elif water_depth > 2:
        cost = max(cost, 4.0)
    elif water_depth > 1:
        cost = max(cost, 3.0)
    elif water_depth > 0:
        cost = max(cost, 2.0)

    if vegetation_type == VegetationType.DENSE_TREES:
        cost *= 1.5
    elif vegetation_type == VegetationType.UNDERGROWTH:
        cost *= 2
    elif vegetation_type == VegetationType.SHRUBS:
        cost *= 1.25

    if TerrainFeature.TALUS in geological_features:
        cost *= 2  # loose rock
    if TerrainFeature.SINKHOLE in geological_features:
        cost = math.inf
    return cost


def cover_level(
    vegetation_type: VegetationType,
    canopy_density: float,
    structure_type: Optional[StructureType],
    geological_features: Tuple[TerrainFeature, ...],
) -> CoverLevel:
    cover = CoverLevel.NONE
    if TerrainFeature.TOWER in geological_features or TerrainFeature.COLUMN in geological_features:
        cover = CoverLevel.TOTAL
    elif (
        TerrainFeature.CORESTONE in geological_features
        or TerrainFeature.FIN in geological_features
    ):
        cover = CoverLevel.HEAVY
    elif TerrainFeature.LEDGE in geological_features:
        cover = CoverLevel.PARTIAL

    if vegetation_type == VegetationType.DENSE_TREES and canopy_density > 0.75:
        cover = max_cover(cover, CoverLevel.HEAVY)
    elif vegetation_type == VegetationType.SPARSE_TREES:
        cover = max_cover(cover, CoverLevel.PARTIAL)
    elif vegetation_type == VegetationType.SHRUBS:
        cover = max_cover(cover, CoverLevel.LIGHT)

    if structure_type in (StructureType.WALL, StructureType.BRIDGE):
        cover = CoverLevel.HEAVY
    elif structure_type in BUILDING_STRUCTURES:
        cover = CoverLevel.TOTAL
    return cover


def concealment_level(
    vegetation_type: VegetationType,
    canopy_density: float,
    geological_features: Tuple[TerrainFeature, ...],
) -> ConcealmentLevel:
    if TerrainFeature.CAVE in geological_features:
        return ConcealmentLevel.TOTAL
    if vegetation_type == VegetationType.DENSE_TREES and canopy_density > 0.9:
        return ConcealmentLevel.TOTAL
    if vegetation_type == VegetationType.DENSE_TREES and canopy_density > 0.75:
        return ConcealmentLevel.HEAVY
    if vegetation_type == VegetationType.UNDERGROWTH:
        return ConcealmentLevel.HEAVY
    if vegetation_type == VegetationType.SHRUBS:
        return ConcealmentLevel.MODERATE
    if vegetation_type == VegetationType.TALL_GRASS:
        return ConcealmentLevel.LIGHT
    return ConcealmentLevel.NONE


def _components(mask: np.ndarray) -> List[List[Tuple[int, int]]]:
    """8-connected components as (x, y) lists, ordered by first row-major tile."""
    labels, count = ndimage.label(mask, structure=np.ones((3, 3), dtype=int))
    components = []
    for label in range(1, count + 1):
        coords = np.argwhere(labels == label)
        components.append([(int(x), int(y)) for y, x in coords])
    components.sort(key=lambda tiles: (tiles[0][1], tiles[0][0]))
    return components


def _geology_mask(geology, *features: TerrainFeature) -> np.ndarray:
    mask = np.zeros((geology.height, geology.width), dtype=bool)
    for feature in features:
        mask |= geology.feature_mask(feature)
    return mask


def extract_features(bundle, ids: DeterministicIdGenerator) -> List[MapFeature]:
    """
    Discrete map features derived from a layer bundle.

    Relief comes from topography and geology, natural features from hydrology
    and vegetation, artificial ones from structures and cultural ones from
    landmarks and settlements. Feature ids of layer entities are reused.
    """
    geology = bundle.geology
    topography = bundle.topography
    hydrology = bundle.hydrology
    vegetation = bundle.vegetation
    structures = bundle.structures
    features: List[MapFeature] = []

    def relief(kind: ReliefFeatureType, mask: np.ndarray) -> None:
        for tiles in _components(mask):
            features.append(
                ReliefFeature(
                    id=ids.feature_id(kind.value),
                    type=kind,
                    bounds=Bounds.around(tiles),
                    tiles=frozenset(tiles),
                )
            )

    relief(ReliefFeatureType.MOUNTAIN, topography.elevation > MOUNTAIN_ELEVATION_FT)
    relief(ReliefFeatureType.RIDGE, topography.is_ridge)
    relief(ReliefFeatureType.VALLEY, topography.is_valley)
    relief(ReliefFeatureType.CLIFF, _geology_mask(geology, TerrainFeature.CLIFF))
    relief(
        ReliefFeatureType.CANYON,
        _geology_mask(
            geology,
            TerrainFeature.RAVINE,
            TerrainFeature.SLOT_CANYON,
            TerrainFeature.SCHIST_RAVINE,
        ),
    )
    relief(ReliefFeatureType.DEPRESSION, _geology_mask(geology, TerrainFeature.SINKHOLE))

    for segment in hydrology.streams:
        kind = NaturalFeatureType.RIVER if segment.order >= RIVER_MIN_ORDER else NaturalFeatureType.STREAM
        features.append(
            NaturalFeature(
                id=segment.id,
                type=kind,
                bounds=Bounds.around(segment.points),
                tiles=frozenset(segment.points),
                properties={"order": segment.order},
            )
        )
    for tiles in _components(hydrology.is_pool):
        kind = NaturalFeatureType.LAKE if len(tiles) >= LAKE_MIN_TILES else NaturalFeatureType.POND
        features.append(
            NaturalFeature(
                id=ids.feature_id(kind.value),
                type=kind,
                bounds=Bounds.around(tiles),
                tiles=frozenset(tiles),
            )
        )
    for tiles in _components(hydrology.moisture >= int(MoistureLevel.SATURATED)):
        if len(tiles) < WETLAND_MIN_TILES:
            continue
        features.append(
            NaturalFeature(
                id=ids.feature_id(NaturalFeatureType.WETLAND.value),
                type=NaturalFeatureType.WETLAND,
                bounds=Bounds.around(tiles),
                tiles=frozenset(tiles),
            )
        )
    for patch in vegetation.forest_patches:
        canopy = float(np.mean([vegetation.canopy_height[y, x] for x, y in patch.tiles]))
        features.append(
            NaturalFeature(
                id=patch.id,
                type=NaturalFeatureType.FOREST,
                bounds=Bounds.around(patch.tiles),
                tiles=frozenset(patch.tiles),
                height=round(canopy / 200, 4),
                properties={"forest_type": patch.forest_type},
            )
        )
    for clearing in vegetation.clearings:
        r = clearing.radius
        tiles = [
            (x, y)
            for y in range(max(0, clearing.y - r), min(vegetation.height, clearing.y + r + 1))
            for x in range(max(0, clearing.x - r), min(vegetation.width, clearing.x + r + 1))
            if (x - clearing.x) ** 2 + (y - clearing.y) ** 2 <= r * r
        ]
        features.append(
            NaturalFeature(
                id=clearing.id,
                type=NaturalFeatureType.CLEARING,
                bounds=Bounds.around(tiles),
                tiles=frozenset(tiles),
            )
        )
    for tiles in _components(_geology_mask(geology, TerrainFeature.CAVE)):
        features.append(
            NaturalFeature(
                id=ids.feature_id(NaturalFeatureType.CAVE_SYSTEM.value),
                type=NaturalFeatureType.CAVE_SYSTEM,
                bounds=Bounds.around(tiles),
                tiles=frozenset(tiles),
            )
        )

    for building in structures.buildings:
        kind = (
            ArtificialFeatureType.TOWER
            if building.building_type == BuildingType.TOWER
            else ArtificialFeatureType.BUILDING_COMPLEX
        )
        features.append(
            ArtificialFeature(
                id=building.id,
                type=kind,
                bounds=Bounds(building.x, building.y, building.width, building.depth),
                height=round(building.height_ft / 100, 4),
                properties={"blocking": True, "building_type": building.building_type.value},
            )
        )
    road_tiles = [
        (int(x), int(y))
        for y, x in np.argwhere(structures.is_road)
        if structures.structure_type[y, x] == StructureType.ROAD
    ]
    if road_tiles:
        features.append(
            ArtificialFeature(
                id=ids.feature_id(ArtificialFeatureType.ROAD_NETWORK.value),
                type=ArtificialFeatureType.ROAD_NETWORK,
                bounds=Bounds.around(road_tiles),
                tiles=frozenset(road_tiles),
                properties={"blocking": False, "movement_cost": 0.5},
            )
        )
    for bridge in structures.bridges:
        features.append(
            ArtificialFeature(
                id=bridge.id,
                type=ArtificialFeatureType.BRIDGE,
                bounds=Bounds.around(bridge.tiles),
                tiles=frozenset(bridge.tiles),
                priority=5,
                height=0.1,
                properties={"blocking": False, "movement_cost": 1.0},
            )
        )

    if len(structures.buildings) >= 3:
        settled = [tile for building in structures.buildings for tile in building.tiles()]
        features.append(
            CulturalFeature(
                id=ids.feature_id(CulturalFeatureType.SETTLEMENT_AREA.value),
                type=CulturalFeatureType.SETTLEMENT_AREA,
                bounds=Bounds.around(settled),
            )
        )
    for decoration in structures.decorations:
        if decoration.structure_type == StructureType.SHRINE:
            features.append(
                CulturalFeature(
                    id=decoration.id,
                    type=CulturalFeatureType.SACRED_SITE,
                    bounds=Bounds(decoration.x, decoration.y, 1, 1),
                )
            )
    for landmark in bundle.features.landmarks:
        if landmark.feature_type == FeatureType.STANDING_STONES:
            kind = CulturalFeatureType.SACRED_SITE
        elif landmark.feature_type == FeatureType.BATTLEFIELD_REMAINS:
            kind = CulturalFeatureType.BATTLEFIELD
        else:
            continue
        x0, y0 = max(0, landmark.x - 1), max(0, landmark.y - 1)
        x1 = min(structures.width, landmark.x + 2)
        y1 = min(structures.height, landmark.y + 2)
        features.append(
            CulturalFeature(
                id=landmark.id,
                type=kind,
                bounds=Bounds(x0, y0, x1 - x0, y1 - y0),
                properties={"significance": landmark.significance},
            )
        )
    return features


class TacticalMapConverter:
    """Converts a layer bundle into a row-major grid of Tile objects."""

    def __init__(self, mixing: Optional[MixingSettings] = None, logger=None):
        self.mixing = mixing or MixingSettings()
        self.logger = (logger or structlog.get_logger()).bind(stage="tiles")

    def convert(
        self,
        width: int,
        height: int,
        bundle,
        context: TacticalMapContext,
        seed: int,
    ) -> List[List[Tile]]:
        """
        Flatten the layers of `bundle` into tiles.

        Args:
            width: Map width in tiles
            height: Map height in tiles
            bundle: LayerBundle produced for the same parameters
            context: Map context
            seed: Normalised master seed

        Returns:
            tiles[y][x]
        """
        ids = DeterministicIdGenerator(seed).create_sub_generator("tiles")
        mixer = FeatureMixer(
            CoordinatedRandomGenerator(seed).stream(FEATURES).fork("mixing"),
            self.mixing,
            logger=self.logger,
        )
        ground = ground_terrain(context)

        tiles = [
            [self._convert_tile(x, y, bundle, ground) for x in range(width)] for y in range(height)
        ]

        features = extract_features(bundle, ids)
        covering: Dict[Tuple[int, int], List[MapFeature]] = {}
        for feature in features:
            for x, y in feature_tiles(feature):
                if 0 <= x < width and 0 <= y < height:
                    covering.setdefault((x, y), []).append(feature)

        for y in range(height):
            for x in range(width):
                overlapping = covering.get((x, y))
                if overlapping:
                    mixer.apply(tiles[y][x], overlapping)

        self.logger.info(
            "Tiles converted",
            width=width,
            height=height,
            features=len(features),
            blended=mixer.blend_count,
        )
        return tiles

    @staticmethod
    def _convert_tile(x: int, y: int, bundle, ground: TerrainType) -> Tile:
        geology = bundle.geology
        topography = bundle.topography
        hydrology = bundle.hydrology
        vegetation = bundle.vegetation
        structures = bundle.structures

        elevation = float(topography.elevation[y, x])
        geo_features = tuple(geology.features[y, x])
        structure_type = structures.structure_type[y, x]
        is_road = bool(structures.is_road[y, x])
        vegetation_type = vegetation.vegetation_type[y, x]
        canopy_density = float(vegetation.canopy_density[y, x])
        water_depth = float(hydrology.water_depth[y, x])
        is_water = (
            water_depth > 0 or bool(hydrology.is_stream[y, x]) or bool(hydrology.is_pool[y, x])
        )

        terrain = select_terrain(
            structure_type,
            is_road,
            is_water,
            vegetation_type,
            elevation,
            bool(topography.is_ridge[y, x]),
            ground,
        )
        if terrain == TerrainType.ROAD:
            cost = 0.5
        elif terrain in (TerrainType.BUILDING, TerrainType.WALL):
            cost = math.inf
        else:
            cost = movement_cost(
                float(topography.slope[y, x]), water_depth, vegetation_type, geo_features
            )

        blocked = structure_type is not None and structure_type not in ROAD_STRUCTURES
        if not is_road and not vegetation.is_passable[y, x]:
            blocked = True

        return Tile(
            x=x,
            y=y,
            terrain=terrain,
            elevation=elevation,
            height_multiplier=height_multiplier(elevation),
            movement_cost=cost,
            is_blocked=blocked,
            cover=cover_level(vegetation_type, canopy_density, structure_type, geo_features),
            concealment=concealment_level(vegetation_type, canopy_density, geo_features),
            vegetation_type=vegetation_type,
            structure_type=structure_type,
            feature_type=bundle.features.feature_type[y, x],
        )
