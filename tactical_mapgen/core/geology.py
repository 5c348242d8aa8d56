"""
Geological foundation layer.

This module implements:
- The catalogue of bedrock formations and their rock properties
- Formation selection by biome
- Bedrock patterning of a primary and optional secondary formation
- Weathering into micro-terrain features and soil depth
- Transition zones where formations meet
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from ..utils.random import TERRAIN, CoordinatedRandomGenerator
from .context import BiomeType, TacticalMapContext
from .noise import NoiseField
from .seed import LAYER_PRIMES, mix_seed

logger = structlog.get_logger()


class RockType(str, Enum):
    CARBONATE = "carbonate"  # Limestone, dolomite
    GRANITIC = "granitic"  # Granite, granodiorite
    VOLCANIC = "volcanic"  # Basalt, tuff
    CLASTIC = "clastic"  # Sandstone
    METAMORPHIC = "metamorphic"  # Schist, slate
    EVAPORITE = "evaporite"  # Gypsum, salt


class Mineral(str, Enum):
    CALCITE = "calcite"
    DOLOMITE = "dolomite"
    QUARTZ = "quartz"
    FELDSPAR = "feldspar"
    MICA = "mica"
    HORNBLENDE = "hornblende"
    BASALT = "basalt"
    GYPSUM = "gypsum"
    HALITE = "halite"
    CLAY = "clay"


class BeddingType(str, Enum):
    MASSIVE = "massive"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    FOLDED = "folded"
    CROSS_BEDDED = "cross_bedded"


class JointOrientation(str, Enum):
    ORTHOGONAL = "orthogonal"
    HEXAGONAL = "hexagonal"
    RANDOM = "random"
    RADIAL = "radial"


class WeatheringType(str, Enum):
    MECHANICAL = "mechanical"
    CHEMICAL = "chemical"
    BOTH = "both"


class WeatheringRate(str, Enum):
    RAPID = "rapid"
    MODERATE = "moderate"
    SLOW = "slow"


class PermeabilityLevel(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    IMPERMEABLE = "impermeable"


class ChemicalStability(str, Enum):
    STABLE = "stable"
    MODERATE = "moderate"
    UNSTABLE = "unstable"


class GrainSize(str, Enum):
    CRYSTALLINE = "crystalline"
    COARSE = "coarse"
    MEDIUM = "medium"
    FINE = "fine"
    GLASSY = "glassy"


class ErosionPattern(str, Enum):
    KARST = "karst"
    EXFOLIATION = "exfoliation"
    COLUMNAR = "columnar"
    FINS = "fins"
    SPHEROIDAL = "spheroidal"
    PLATY = "platy"
    BADLANDS = "badlands"


class TerrainFeature(str, Enum):
    # Karst
    TOWER = "tower"
    SINKHOLE = "sinkhole"
    CAVE = "cave"
    KARREN = "karren"
    # Granitic
    DOME = "dome"
    CORESTONE = "corestone"
    GRUS = "grus"
    TOR = "tor"
    # Volcanic
    COLUMN = "column"
    LAVA_FLOW = "lava_flow"
    VOLCANIC_NECK = "volcanic_neck"
    TUFF = "tuff"
    # Clastic
    FIN = "fin"
    SLOT_CANYON = "slot_canyon"
    HOODOO = "hoodoo"
    ALCOVE = "alcove"
    # Metamorphic
    FOLIATION_PLANE = "foliation_plane"
    CRENULATION = "crenulation"
    SCHIST_RAVINE = "schist_ravine"
    # General
    CLIFF = "cliff"
    TALUS = "talus"
    LEDGE = "ledge"
    RAVINE = "ravine"


MINERAL_HARDNESS: Dict[Mineral, int] = {
    Mineral.HALITE: 2,
    Mineral.GYPSUM: 2,
    Mineral.CALCITE: 3,
    Mineral.DOLOMITE: 4,
    Mineral.CLAY: 2,
    Mineral.MICA: 3,
    Mineral.HORNBLENDE: 5,
    Mineral.FELDSPAR: 6,
    Mineral.BASALT: 6,
    Mineral.QUARTZ: 7,
}


@dataclass(frozen=True)
class MineralComposition:
    primary: Mineral
    secondary: Optional[Mineral] = None
    accessory: Tuple[Mineral, ...] = ()

    def contains(self, mineral: Mineral) -> bool:
        return (
            self.primary == mineral
            or self.secondary == mineral
            or mineral in self.accessory
        )

    def hardness(self) -> int:
        """Mohs hardness of the primary mineral."""
        return MINERAL_HARDNESS.get(self.primary, 5)


@dataclass(frozen=True)
class StructureProperties:
    bedding: BeddingType
    joint_spacing: float  # metres between joints
    joint_orientation: JointOrientation
    foliation: Optional[str] = None  # strong, moderate or weak

    def joint_spacing_tiles(self) -> int:
        # 1 tile = 5 ft ~ 1.5 m
        return round(self.joint_spacing / 1.5)

    def creates_vertical_features(self) -> bool:
        return (
            self.bedding == BeddingType.VERTICAL
            or self.joint_orientation == JointOrientation.HEXAGONAL
        )


@dataclass(frozen=True)
class RockProperties:
    hardness: float  # Mohs 1-10
    permeability: PermeabilityLevel
    chemical_stability: ChemicalStability
    grain_size: GrainSize

    def erosion_resistance(self) -> float:
        """Resistance in [0, 1]; higher erodes less."""
        resistance = self.hardness / 10
        if self.chemical_stability == ChemicalStability.UNSTABLE:
            resistance *= 0.5
        elif self.chemical_stability == ChemicalStability.MODERATE:
            resistance *= 0.75
        if self.grain_size == GrainSize.FINE:
            resistance *= 1.1
        return min(1.0, resistance)

    def allows_caves(self) -> bool:
        return (
            self.chemical_stability == ChemicalStability.UNSTABLE
            and self.permeability != PermeabilityLevel.IMPERMEABLE
        )


@dataclass(frozen=True)
class WeatheringProfile:
    dominant: WeatheringType
    rate: WeatheringRate
    products: Tuple[TerrainFeature, ...]

    def erosion_pattern(self, rock_type: RockType, bedding: BeddingType) -> ErosionPattern:
        if rock_type == RockType.CARBONATE and self.dominant == WeatheringType.CHEMICAL:
            return ErosionPattern.KARST
        if rock_type == RockType.GRANITIC and self.dominant == WeatheringType.MECHANICAL:
            return ErosionPattern.EXFOLIATION
        if rock_type == RockType.VOLCANIC and bedding == BeddingType.MASSIVE:
            return ErosionPattern.COLUMNAR
        if rock_type == RockType.CLASTIC and bedding == BeddingType.VERTICAL:
            return ErosionPattern.FINS
        if rock_type == RockType.METAMORPHIC:
            return ErosionPattern.PLATY
        if rock_type == RockType.EVAPORITE:
            return ErosionPattern.BADLANDS
        return ErosionPattern.SPHEROIDAL


_PATTERN_FEATURES: Dict[ErosionPattern, Tuple[TerrainFeature, ...]] = {
    ErosionPattern.KARST: (
        TerrainFeature.TOWER,
        TerrainFeature.SINKHOLE,
        TerrainFeature.CAVE,
        TerrainFeature.KARREN,
    ),
    ErosionPattern.EXFOLIATION: (
        TerrainFeature.DOME,
        TerrainFeature.CORESTONE,
        TerrainFeature.GRUS,
        TerrainFeature.TOR,
    ),
    ErosionPattern.COLUMNAR: (
        TerrainFeature.COLUMN,
        TerrainFeature.LAVA_FLOW,
        TerrainFeature.VOLCANIC_NECK,
    ),
    ErosionPattern.FINS: (
        TerrainFeature.FIN,
        TerrainFeature.SLOT_CANYON,
        TerrainFeature.HOODOO,
        TerrainFeature.ALCOVE,
    ),
    ErosionPattern.PLATY: (
        TerrainFeature.FOLIATION_PLANE,
        TerrainFeature.CRENULATION,
        TerrainFeature.SCHIST_RAVINE,
    ),
}


def micro_terrain_features(
    rock_type: RockType, erosion_pattern: ErosionPattern
) -> Tuple[TerrainFeature, ...]:
    """
    Micro-terrain features an erosion pattern can produce.

    Evaporite badlands and spheroidal weathering have no characteristic
    features of their own; they only produce the general ones a formation
    adds from its hardness and structure.
    """
    features = _PATTERN_FEATURES.get(erosion_pattern, ())
    if rock_type == RockType.VOLCANIC and erosion_pattern != ErosionPattern.COLUMNAR:
        features = features + (TerrainFeature.TUFF,)
    return features


@dataclass(frozen=True)
class GeologicalFormation:
    """A bedrock formation: composition, structure, properties and weathering."""

    name: str
    rock_type: RockType
    composition: MineralComposition
    structure: StructureProperties
    properties: RockProperties
    weathering: WeatheringProfile

    def erosion_pattern(self) -> ErosionPattern:
        return self.weathering.erosion_pattern(self.rock_type, self.structure.bedding)

    def possible_features(self) -> Tuple[TerrainFeature, ...]:
        features = list(micro_terrain_features(self.rock_type, self.erosion_pattern()))
        if self.properties.hardness > 6:
            features.append(TerrainFeature.CLIFF)
        if self.structure.creates_vertical_features():
            features.append(TerrainFeature.LEDGE)
        features.append(TerrainFeature.TALUS)
        return tuple(features)

    def soil_depth_range(self) -> Tuple[float, float]:
        """(min, max) soil depth in feet."""
        base = 10 - self.properties.hardness
        multiplier = 1.0
        if self.weathering.rate == WeatheringRate.RAPID:
            multiplier = 2.0
        elif self.weathering.rate == WeatheringRate.SLOW:
            multiplier = 0.5
        return max(0.0, base * multiplier * 0.5), max(1.0, base * multiplier * 1.5)

    def can_have_springs(self) -> bool:
        return self.properties.permeability in (
            PermeabilityLevel.MODERATE,
            PermeabilityLevel.LOW,
        )


LIMESTONE_KARST = GeologicalFormation(
    "limestone_karst",
    RockType.CARBONATE,
    MineralComposition(Mineral.CALCITE, Mineral.DOLOMITE),
    StructureProperties(BeddingType.HORIZONTAL, 5, JointOrientation.ORTHOGONAL),
    RockProperties(3, PermeabilityLevel.MODERATE, ChemicalStability.UNSTABLE, GrainSize.FINE),
    WeatheringProfile(
        WeatheringType.CHEMICAL,
        WeatheringRate.MODERATE,
        (TerrainFeature.TOWER, TerrainFeature.SINKHOLE, TerrainFeature.CAVE, TerrainFeature.KARREN),
    ),
)

DOLOMITE_TOWERS = GeologicalFormation(
    "dolomite_towers",
    RockType.CARBONATE,
    MineralComposition(Mineral.DOLOMITE, Mineral.CALCITE),
    StructureProperties(BeddingType.HORIZONTAL, 3, JointOrientation.ORTHOGONAL),
    RockProperties(4, PermeabilityLevel.LOW, ChemicalStability.MODERATE, GrainSize.CRYSTALLINE),
    WeatheringProfile(
        WeatheringType.CHEMICAL,
        WeatheringRate.SLOW,
        (TerrainFeature.TOWER, TerrainFeature.LEDGE, TerrainFeature.CLIFF),
    ),
)

GRANITE_DOME = GeologicalFormation(
    "granite_dome",
    RockType.GRANITIC,
    MineralComposition(Mineral.QUARTZ, Mineral.FELDSPAR, (Mineral.MICA,)),
    StructureProperties(BeddingType.MASSIVE, 10, JointOrientation.ORTHOGONAL),
    RockProperties(6, PermeabilityLevel.LOW, ChemicalStability.MODERATE, GrainSize.COARSE),
    WeatheringProfile(
        WeatheringType.MECHANICAL,
        WeatheringRate.SLOW,
        (TerrainFeature.DOME, TerrainFeature.CORESTONE, TerrainFeature.GRUS, TerrainFeature.TOR),
    ),
)

WEATHERED_GRANODIORITE = GeologicalFormation(
    "weathered_granodiorite",
    RockType.GRANITIC,
    MineralComposition(Mineral.FELDSPAR, Mineral.QUARTZ, (Mineral.HORNBLENDE,)),
    StructureProperties(BeddingType.MASSIVE, 7, JointOrientation.RANDOM),
    RockProperties(5, PermeabilityLevel.MODERATE, ChemicalStability.MODERATE, GrainSize.MEDIUM),
    WeatheringProfile(
        WeatheringType.BOTH,
        WeatheringRate.MODERATE,
        (TerrainFeature.CORESTONE, TerrainFeature.GRUS, TerrainFeature.RAVINE),
    ),
)

BASALT_COLUMNS = GeologicalFormation(
    "basalt_columns",
    RockType.VOLCANIC,
    MineralComposition(Mineral.BASALT),
    StructureProperties(BeddingType.MASSIVE, 2, JointOrientation.HEXAGONAL),
    RockProperties(6, PermeabilityLevel.LOW, ChemicalStability.STABLE, GrainSize.FINE),
    WeatheringProfile(
        WeatheringType.MECHANICAL,
        WeatheringRate.SLOW,
        (TerrainFeature.COLUMN, TerrainFeature.TALUS, TerrainFeature.CLIFF),
    ),
)

VOLCANIC_TUFF = GeologicalFormation(
    "volcanic_tuff",
    RockType.VOLCANIC,
    MineralComposition(Mineral.CLAY, Mineral.QUARTZ),
    StructureProperties(BeddingType.HORIZONTAL, 4, JointOrientation.RANDOM),
    RockProperties(2, PermeabilityLevel.HIGH, ChemicalStability.UNSTABLE, GrainSize.FINE),
    WeatheringProfile(
        WeatheringType.BOTH,
        WeatheringRate.RAPID,
        (TerrainFeature.TUFF, TerrainFeature.ALCOVE, TerrainFeature.HOODOO),
    ),
)

SANDSTONE_FINS = GeologicalFormation(
    "sandstone_fins",
    RockType.CLASTIC,
    MineralComposition(Mineral.QUARTZ, Mineral.CLAY),
    StructureProperties(BeddingType.VERTICAL, 3, JointOrientation.ORTHOGONAL),
    RockProperties(5, PermeabilityLevel.HIGH, ChemicalStability.STABLE, GrainSize.MEDIUM),
    WeatheringProfile(
        WeatheringType.MECHANICAL,
        WeatheringRate.MODERATE,
        (TerrainFeature.FIN, TerrainFeature.SLOT_CANYON, TerrainFeature.ALCOVE),
    ),
)

CROSS_BEDDED_SANDSTONE = GeologicalFormation(
    "cross_bedded_sandstone",
    RockType.CLASTIC,
    MineralComposition(Mineral.QUARTZ),
    StructureProperties(BeddingType.CROSS_BEDDED, 5, JointOrientation.RANDOM),
    RockProperties(4, PermeabilityLevel.HIGH, ChemicalStability.STABLE, GrainSize.COARSE),
    WeatheringProfile(
        WeatheringType.MECHANICAL,
        WeatheringRate.MODERATE,
        (TerrainFeature.HOODOO, TerrainFeature.ALCOVE, TerrainFeature.FIN),
    ),
)

FOLIATED_SCHIST = GeologicalFormation(
    "foliated_schist",
    RockType.METAMORPHIC,
    MineralComposition(Mineral.MICA, Mineral.QUARTZ, (Mineral.FELDSPAR,)),
    StructureProperties(BeddingType.FOLDED, 2, JointOrientation.RANDOM, "strong"),
    RockProperties(4, PermeabilityLevel.LOW, ChemicalStability.MODERATE, GrainSize.MEDIUM),
    WeatheringProfile(
        WeatheringType.BOTH,
        WeatheringRate.MODERATE,
        (TerrainFeature.FOLIATION_PLANE, TerrainFeature.SCHIST_RAVINE, TerrainFeature.CRENULATION),
    ),
)

SLATE_BEDS = GeologicalFormation(
    "slate_beds",
    RockType.METAMORPHIC,
    MineralComposition(Mineral.CLAY, Mineral.MICA),
    StructureProperties(BeddingType.HORIZONTAL, 1, JointOrientation.ORTHOGONAL, "strong"),
    RockProperties(3, PermeabilityLevel.IMPERMEABLE, ChemicalStability.STABLE, GrainSize.FINE),
    WeatheringProfile(
        WeatheringType.MECHANICAL,
        WeatheringRate.MODERATE,
        (TerrainFeature.FOLIATION_PLANE, TerrainFeature.TALUS, TerrainFeature.LEDGE),
    ),
)

GYPSUM_BADLANDS = GeologicalFormation(
    "gypsum_badlands",
    RockType.EVAPORITE,
    MineralComposition(Mineral.GYPSUM, Mineral.HALITE),
    StructureProperties(BeddingType.HORIZONTAL, 2, JointOrientation.RANDOM),
    RockProperties(2, PermeabilityLevel.MODERATE, ChemicalStability.UNSTABLE, GrainSize.CRYSTALLINE),
    WeatheringProfile(
        WeatheringType.CHEMICAL,
        WeatheringRate.RAPID,
        (TerrainFeature.SINKHOLE, TerrainFeature.CAVE, TerrainFeature.RAVINE),
    ),
)

FORMATIONS: Tuple[GeologicalFormation, ...] = (
    LIMESTONE_KARST,
    DOLOMITE_TOWERS,
    GRANITE_DOME,
    WEATHERED_GRANODIORITE,
    BASALT_COLUMNS,
    VOLCANIC_TUFF,
    SANDSTONE_FINS,
    CROSS_BEDDED_SANDSTONE,
    FOLIATED_SCHIST,
    SLATE_BEDS,
    GYPSUM_BADLANDS,
)

BIOME_FORMATIONS: Dict[BiomeType, Tuple[GeologicalFormation, ...]] = {
    BiomeType.MOUNTAIN: (
        LIMESTONE_KARST,
        DOLOMITE_TOWERS,
        GRANITE_DOME,
        BASALT_COLUMNS,
        FOLIATED_SCHIST,
        SLATE_BEDS,
    ),
    BiomeType.DESERT: (
        SANDSTONE_FINS,
        CROSS_BEDDED_SANDSTONE,
        GYPSUM_BADLANDS,
        VOLCANIC_TUFF,
    ),
    BiomeType.FOREST: (
        GRANITE_DOME,
        WEATHERED_GRANODIORITE,
        FOLIATED_SCHIST,
        LIMESTONE_KARST,
    ),
    BiomeType.PLAINS: (LIMESTONE_KARST, CROSS_BEDDED_SANDSTONE, SLATE_BEDS),
    BiomeType.COASTAL: (SANDSTONE_FINS, BASALT_COLUMNS, LIMESTONE_KARST),
    BiomeType.SWAMP: (LIMESTONE_KARST, GYPSUM_BADLANDS),
    BiomeType.UNDERGROUND: (LIMESTONE_KARST, DOLOMITE_TOWERS, GYPSUM_BADLANDS),
}


def formations_for_biome(biome: BiomeType) -> Tuple[GeologicalFormation, ...]:
    return BIOME_FORMATIONS.get(biome, (GRANITE_DOME,))


# Weathering bands, strongest match first
_MAJOR_FEATURES = (
    TerrainFeature.TOWER,
    TerrainFeature.DOME,
    TerrainFeature.COLUMN,
    TerrainFeature.FIN,
)
_INTERMEDIATE_FEATURES = (
    TerrainFeature.CORESTONE,
    TerrainFeature.HOODOO,
    TerrainFeature.LEDGE,
)
_NEGATIVE_FEATURES = (
    TerrainFeature.SINKHOLE,
    TerrainFeature.CAVE,
    TerrainFeature.RAVINE,
    TerrainFeature.SLOT_CANYON,
)


def weathering_features(
    intensity: float, products: Tuple[TerrainFeature, ...]
) -> Tuple[TerrainFeature, ...]:
    """Features produced at a weathering intensity in [-1, 1]."""
    if intensity > 0.7:
        band = _MAJOR_FEATURES
    elif intensity > 0.4:
        band = _INTERMEDIATE_FEATURES
    elif intensity < -0.5:
        band = _NEGATIVE_FEATURES
    else:
        band = ()

    features = []
    for candidate in band:
        if candidate in products:
            features.append(candidate)
            break
    if intensity > 0.2 and TerrainFeature.TALUS in products:
        features.append(TerrainFeature.TALUS)
    return tuple(features)


def soil_depth_for(base_depth: float, features: Tuple[TerrainFeature, ...]) -> float:
    depth = base_depth
    if TerrainFeature.GRUS in features:
        depth += 3  # decomposed granite
    if TerrainFeature.TALUS in features:
        depth += 2
    if TerrainFeature.DOME in features or TerrainFeature.TOWER in features:
        depth = 0.5  # bare rock
    if TerrainFeature.SINKHOLE in features:
        depth += 5  # sediment
    return max(0.0, depth)


@dataclass
class GeologyOptions:
    """Geology generation options."""
    bedrock_scale: float = 0.05  # Noise frequency of the formation boundary
    weathering_scale: float = 0.1  # Noise frequency of weathering intensity
    soil_scale: float = 0.2  # Noise frequency of base soil depth
    secondary_probability: float = 0.3  # Chance a secondary formation is present


@dataclass
class GeologyTile:
    formation: GeologicalFormation
    soil_depth: float
    permeability: PermeabilityLevel
    features: Tuple[TerrainFeature, ...]
    fracture_intensity: float
    weathering: float
    is_transition: bool


@dataclass
class GeologyLayer:
    """Geology layer output. Grids are indexed [y, x]."""

    width: int
    height: int
    formations: List[GeologicalFormation]  # index 0 is the primary formation
    formation_index: np.ndarray  # int8
    soil_depth: np.ndarray
    fracture_intensity: np.ndarray
    weathering: np.ndarray  # intensity in [-1, 1]
    features: np.ndarray  # object array of TerrainFeature tuples
    transition_zones: List[Tuple[int, int]]
    statistics: Dict[str, float] = field(default_factory=dict)

    @property
    def formation(self) -> GeologicalFormation:
        return self.formations[0]

    @property
    def secondary_formation(self) -> Optional[GeologicalFormation]:
        return self.formations[1] if len(self.formations) > 1 else None

    def formation_at(self, x: int, y: int) -> GeologicalFormation:
        return self.formations[int(self.formation_index[y, x])]

    @property
    def permeability(self) -> np.ndarray:
        levels = np.array([f.properties.permeability for f in self.formations], dtype=object)
        return levels[self.formation_index]

    def spring_capable(self) -> np.ndarray:
        capable = np.array([f.can_have_springs() for f in self.formations], dtype=bool)
        return capable[self.formation_index]

    def erosion_resistance(self) -> np.ndarray:
        resistance = np.array(
            [f.properties.erosion_resistance() for f in self.formations], dtype=np.float64
        )
        return resistance[self.formation_index]

    def feature_mask(self, feature: TerrainFeature) -> np.ndarray:
        """Boolean grid of tiles carrying the feature."""
        mask = np.zeros((self.height, self.width), dtype=bool)
        for y in range(self.height):
            for x in range(self.width):
                if feature in self.features[y, x]:
                    mask[y, x] = True
        return mask

    def transition_mask(self) -> np.ndarray:
        mask = np.zeros((self.height, self.width), dtype=bool)
        for x, y in self.transition_zones:
            mask[y, x] = True
        return mask

    def tile(self, x: int, y: int) -> GeologyTile:
        formation = self.formation_at(x, y)
        return GeologyTile(
            formation=formation,
            soil_depth=float(self.soil_depth[y, x]),
            permeability=formation.properties.permeability,
            features=self.features[y, x],
            fracture_intensity=float(self.fracture_intensity[y, x]),
            weathering=float(self.weathering[y, x]),
            is_transition=(x, y) in self.transition_zones,
        )


class GeologyGenerator:
    """Generates the geological foundation every later layer builds on."""

    def __init__(self, options: Optional[GeologyOptions] = None, logger=None):
        self.options = options or GeologyOptions()
        self.logger = (logger or structlog.get_logger()).bind(stage="geology")

    def select_formations(
        self, context: TacticalMapContext, rng: CoordinatedRandomGenerator
    ) -> List[GeologicalFormation]:
        """Primary formation plus, sometimes, the next candidate as secondary."""
        candidates = formations_for_biome(context.biome)
        terrain = rng.stream(TERRAIN)
        primary_index = math.floor(terrain.next() * len(candidates))
        primary_index = min(primary_index, len(candidates) - 1)
        selected = [candidates[primary_index]]
        if terrain.next() < self.options.secondary_probability and len(candidates) > 1:
            selected.append(candidates[(primary_index + 1) % len(candidates)])
        return selected

    def generate(
        self,
        width: int,
        height: int,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
    ) -> GeologyLayer:
        """
        Generate the geology layer.

        Args:
            width: Map width in tiles
            height: Map height in tiles
            context: Generation context
            rng: Per-request random hierarchy

        Returns:
            GeologyLayer
        """
        self.logger.info("Generating geology", width=width, height=height, biome=context.biome.value)

        formations = self.select_formations(context, rng)
        base_seed = rng.sub_seed(TERRAIN)

        formation_index = self._bedrock_pattern(width, height, formations, base_seed)
        weathering = NoiseField(mix_seed(base_seed, LAYER_PRIMES["geology.weathering"])).grid(
            width, height, self.options.weathering_scale
        ) * 2 - 1
        soil_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["geology"])).grid(
            width, height, self.options.soil_scale
        )

        features = np.empty((height, width), dtype=object)
        soil_depth = np.zeros((height, width), dtype=np.float64)
        fracture = np.zeros((height, width), dtype=np.float64)
        candidates = [formation.possible_features() for formation in formations]
        for y in range(height):
            for x in range(width):
                index = formation_index[y, x]
                formation = formations[index]
                tile_features = weathering_features(float(weathering[y, x]), candidates[index])
                features[y, x] = tile_features
                soil_depth[y, x] = soil_depth_for(1 + soil_noise[y, x] * 2, tile_features)
                fracture[y, x] = 1 / (formation.structure.joint_spacing + 1)

        transitions = self._transition_zones(formation_index)

        layer = GeologyLayer(
            width=width,
            height=height,
            formations=formations,
            formation_index=formation_index,
            soil_depth=soil_depth,
            fracture_intensity=fracture,
            weathering=weathering,
            features=features,
            transition_zones=transitions,
        )
        layer.statistics = self._statistics(layer)

        self.logger.info(
            "Geology generated",
            primary=formations[0].name,
            secondary=formations[1].name if len(formations) > 1 else None,
            transition_zones=len(transitions),
        )
        return layer

    def _bedrock_pattern(
        self,
        width: int,
        height: int,
        formations: List[GeologicalFormation],
        base_seed: int,
    ) -> np.ndarray:
        if len(formations) == 1:
            return np.zeros((height, width), dtype=np.int8)

        noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["geology.formations"])).grid(
            width, height, self.options.bedrock_scale
        ) - 0.5
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        bedding = formations[0].structure.bedding
        if bedding == BeddingType.VERTICAL:
            threshold = np.sin(xs * 0.1) * 0.3
        elif bedding == BeddingType.FOLDED:
            threshold = np.sin(xs * 0.1) * np.cos(ys * 0.1) * 0.3
        else:
            threshold = np.zeros_like(xs)
        return np.where(noise > threshold, 0, 1).astype(np.int8)

    @staticmethod
    def _transition_zones(formation_index: np.ndarray) -> List[Tuple[int, int]]:
        """Interior tiles with a 4-neighbour on a different formation."""
        height, width = formation_index.shape
        transitions = []
        for y in range(1, height - 1):
            for x in range(1, width - 1):
                current = formation_index[y, x]
                if (
                    formation_index[y - 1, x] != current
                    or formation_index[y + 1, x] != current
                    or formation_index[y, x - 1] != current
                    or formation_index[y, x + 1] != current
                ):
                    transitions.append((x, y))
        return transitions

    @staticmethod
    def _statistics(layer: GeologyLayer) -> Dict[str, float]:
        total = layer.width * layer.height
        stats = {
            "average_soil_depth": float(layer.soil_depth.mean()),
            "primary_coverage": float(np.count_nonzero(layer.formation_index == 0) / total),
            "transition_tiles": len(layer.transition_zones),
        }
        counts: Dict[str, int] = {}
        for tile_features in layer.features.flat:
            for feature in tile_features:
                counts[feature.value] = counts.get(feature.value, 0) + 1
        for name in sorted(counts):
            stats[f"feature_{name}"] = counts[name]
        return stats
