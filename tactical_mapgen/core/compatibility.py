"""
Feature compatibility and mixing.

This module implements:
- The MapFeature tagged union (relief, natural, artificial, cultural)
- The four-level compatibility lattice and its explicit pair table
- Per-aspect interaction resolution with height blending modes
- FeatureMixer, which resolves features overlapping on one tile
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .lcg_prng import LCGRandom

logger = structlog.get_logger()


class TerrainType(str, Enum):
    GRASS = "grass"
    FOREST = "forest"
    MOUNTAIN = "mountain"
    WATER = "water"
    DESERT = "desert"
    SNOW = "snow"
    SWAMP = "swamp"
    ROCK = "rock"
    CAVE = "cave"
    ROAD = "road"
    BUILDING = "building"
    WALL = "wall"


class FeatureCategory(str, Enum):
    RELIEF = "relief"
    NATURAL = "natural"
    ARTIFICIAL = "artificial"
    CULTURAL = "cultural"


class ReliefFeatureType(str, Enum):
    MOUNTAIN = "mountain"
    HILL = "hill"
    VALLEY = "valley"
    BASIN = "basin"
    RIDGE = "ridge"
    PLATEAU = "plateau"
    CLIFF = "cliff"
    CANYON = "canyon"
    DEPRESSION = "depression"


class NaturalFeatureType(str, Enum):
    RIVER = "river"
    LAKE = "lake"
    POND = "pond"
    STREAM = "stream"
    FOREST = "forest"
    CLEARING = "clearing"
    WETLAND = "wetland"
    OASIS = "oasis"
    CAVE_SYSTEM = "cave_system"


class ArtificialFeatureType(str, Enum):
    ROAD_NETWORK = "road_network"
    BRIDGE = "bridge"
    WALL_SYSTEM = "wall_system"
    BUILDING_COMPLEX = "building_complex"
    TOWER = "tower"
    FORTIFICATION = "fortification"
    QUARRY = "quarry"
    MINE = "mine"
    CANAL = "canal"


class CulturalFeatureType(str, Enum):
    TERRITORY_BOUNDARY = "territory_boundary"
    TRADE_ROUTE = "trade_route"
    SETTLEMENT_AREA = "settlement_area"
    SACRED_SITE = "sacred_site"
    BATTLEFIELD = "battlefield"
    BORDER_CROSSING = "border_crossing"


class CompatibilityLevel(IntEnum):
    INCOMPATIBLE = 0
    NEUTRAL = 1
    COMPATIBLE = 2
    SYNERGISTIC = 3


class InteractionAspect(str, Enum):
    TERRAIN = "terrain"
    HEIGHT = "height"
    MOVEMENT = "movement"
    BLOCKING = "blocking"
    VISUAL = "visual"


class BlendMode(str, Enum):
    ADD = "add"
    AVERAGE = "average"
    MAX = "max"
    DOMINANT = "dominant"


@dataclass(frozen=True)
class Bounds:
    x: int
    y: int
    width: int
    height: int

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    @classmethod
    def around(cls, tiles: Iterable[Tuple[int, int]]) -> "Bounds":
        points = list(tiles)
        if not points:
            raise ValueError("Cannot bound an empty tile set")
        xs = [x for x, _ in points]
        ys = [y for _, y in points]
        return cls(min(xs), min(ys), max(xs) - min(xs) + 1, max(ys) - min(ys) + 1)


# Each variant carries its own type enum. `tiles` lists the covered tiles;
# when empty the whole bounds rectangle is covered. `height` is an offset in
# height-multiplier units used when the feature is blended.


@dataclass(frozen=True)
class ReliefFeature:
    id: str
    type: ReliefFeatureType
    bounds: Bounds
    tiles: FrozenSet[Tuple[int, int]] = frozenset()
    priority: int = 2
    height: Optional[float] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NaturalFeature:
    id: str
    type: NaturalFeatureType
    bounds: Bounds
    tiles: FrozenSet[Tuple[int, int]] = frozenset()
    priority: int = 3
    height: Optional[float] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArtificialFeature:
    id: str
    type: ArtificialFeatureType
    bounds: Bounds
    tiles: FrozenSet[Tuple[int, int]] = frozenset()
    priority: int = 4
    height: Optional[float] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CulturalFeature:
    id: str
    type: CulturalFeatureType
    bounds: Bounds
    tiles: FrozenSet[Tuple[int, int]] = frozenset()
    priority: int = 1
    height: Optional[float] = None
    properties: Dict[str, Any] = field(default_factory=dict)


MapFeature = Union[ReliefFeature, NaturalFeature, ArtificialFeature, CulturalFeature]

FeatureKey = Tuple[FeatureCategory, Enum]


def feature_category(feature: MapFeature) -> FeatureCategory:
    """Category tag of a feature. Raises TypeError for anything outside the union."""
    if isinstance(feature, ReliefFeature):
        return FeatureCategory.RELIEF
    if isinstance(feature, NaturalFeature):
        return FeatureCategory.NATURAL
    if isinstance(feature, ArtificialFeature):
        return FeatureCategory.ARTIFICIAL
    if isinstance(feature, CulturalFeature):
        return FeatureCategory.CULTURAL
    raise TypeError(f"Unknown map feature variant: {type(feature).__name__}")


def feature_key(feature: MapFeature) -> FeatureKey:
    return (feature_category(feature), feature.type)


def covers(feature: MapFeature, x: int, y: int) -> bool:
    if feature.tiles:
        return (x, y) in feature.tiles
    return feature.bounds.contains(x, y)


def feature_tiles(feature: MapFeature) -> List[Tuple[int, int]]:
    if feature.tiles:
        return sorted(feature.tiles, key=lambda t: (t[1], t[0]))
    b = feature.bounds
    return [(x, y) for y in range(b.y, b.y + b.height) for x in range(b.x, b.x + b.width)]


def _key(category: FeatureCategory, feature_type: Enum) -> FeatureKey:
    return (category, feature_type)


def _pair(a: FeatureKey, b: FeatureKey) -> FrozenSet[FeatureKey]:
    return frozenset((a, b))


_R = FeatureCategory.RELIEF
_N = FeatureCategory.NATURAL
_A = FeatureCategory.ARTIFICIAL

COMPATIBILITY_TABLE: Dict[FrozenSet[FeatureKey], CompatibilityLevel] = {}


def _register(
    level: CompatibilityLevel,
    left: Iterable[FeatureKey],
    right: Iterable[FeatureKey],
) -> None:
    right = list(right)
    for a in left:
        for b in right:
            COMPATIBILITY_TABLE[_pair(a, b)] = level


# Relief / natural
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_R, ReliefFeatureType.MOUNTAIN)],
    [_key(_N, NaturalFeatureType.FOREST)],
)
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_R, ReliefFeatureType.VALLEY)],
    [_key(_N, NaturalFeatureType.RIVER), _key(_N, NaturalFeatureType.STREAM)],
)
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_R, ReliefFeatureType.BASIN)],
    [_key(_N, NaturalFeatureType.LAKE)],
)
_register(
    CompatibilityLevel.COMPATIBLE,
    [_key(_R, ReliefFeatureType.HILL)],
    [_key(_N, NaturalFeatureType.FOREST)],
)
_register(
    CompatibilityLevel.COMPATIBLE,
    [_key(_R, ReliefFeatureType.PLATEAU)],
    [_key(_N, NaturalFeatureType.CLEARING)],
)
_register(
    CompatibilityLevel.INCOMPATIBLE,
    [_key(_R, ReliefFeatureType.VALLEY), _key(_R, ReliefFeatureType.BASIN)],
    [_key(_N, NaturalFeatureType.CAVE_SYSTEM)],
)

# Relief / artificial
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_R, ReliefFeatureType.MOUNTAIN)],
    [_key(_A, ArtificialFeatureType.FORTIFICATION)],
)
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_R, ReliefFeatureType.HILL)],
    [_key(_A, ArtificialFeatureType.TOWER)],
)
_register(
    CompatibilityLevel.COMPATIBLE,
    [_key(_R, ReliefFeatureType.PLATEAU)],
    [_key(_A, ArtificialFeatureType.BUILDING_COMPLEX)],
)
_register(
    CompatibilityLevel.INCOMPATIBLE,
    [_key(_R, ReliefFeatureType.CLIFF)],
    [_key(_A, ArtificialFeatureType.ROAD_NETWORK), _key(_A, ArtificialFeatureType.BUILDING_COMPLEX)],
)

# Natural / artificial
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_N, NaturalFeatureType.RIVER), _key(_N, NaturalFeatureType.STREAM)],
    [_key(_A, ArtificialFeatureType.BRIDGE)],
)
_register(
    CompatibilityLevel.SYNERGISTIC,
    [_key(_N, NaturalFeatureType.CLEARING)],
    [_key(_A, ArtificialFeatureType.BUILDING_COMPLEX)],
)
_register(
    CompatibilityLevel.INCOMPATIBLE,
    [
        _key(_N, NaturalFeatureType.LAKE),
        _key(_N, NaturalFeatureType.POND),
        _key(_N, NaturalFeatureType.RIVER),
        _key(_N, NaturalFeatureType.STREAM),
    ],
    [_key(_A, ArtificialFeatureType.BUILDING_COMPLEX), _key(_A, ArtificialFeatureType.WALL_SYSTEM)],
)


def get_compatibility(a: MapFeature, b: MapFeature) -> CompatibilityLevel:
    """Compatibility of two features. Symmetric; unlisted pairs are NEUTRAL."""
    return COMPATIBILITY_TABLE.get(_pair(feature_key(a), feature_key(b)), CompatibilityLevel.NEUTRAL)


@dataclass(frozen=True)
class _Customisation:
    dominance: Dict[InteractionAspect, FeatureCategory]
    blending: BlendMode
    terrain: Optional[TerrainType] = None
    movement: Optional[float] = None
    special: Dict[str, Any] = field(default_factory=dict)


INTERACTIONS: Dict[FrozenSet[FeatureKey], _Customisation] = {
    _pair(_key(_R, ReliefFeatureType.MOUNTAIN), _key(_N, NaturalFeatureType.FOREST)): _Customisation(
        dominance={InteractionAspect.TERRAIN: _N, InteractionAspect.HEIGHT: _R},
        blending=BlendMode.ADD,
        terrain=TerrainType.FOREST,
        movement=3.0,
    ),
    _pair(_key(_R, ReliefFeatureType.HILL), _key(_N, NaturalFeatureType.FOREST)): _Customisation(
        dominance={InteractionAspect.TERRAIN: _N, InteractionAspect.HEIGHT: _R},
        blending=BlendMode.MAX,
        terrain=TerrainType.FOREST,
        movement=2.0,
    ),
    _pair(_key(_R, ReliefFeatureType.VALLEY), _key(_N, NaturalFeatureType.RIVER)): _Customisation(
        dominance={InteractionAspect.TERRAIN: _N, InteractionAspect.HEIGHT: _R},
        blending=BlendMode.AVERAGE,
        terrain=TerrainType.WATER,
    ),
    _pair(_key(_R, ReliefFeatureType.VALLEY), _key(_N, NaturalFeatureType.STREAM)): _Customisation(
        dominance={InteractionAspect.TERRAIN: _N, InteractionAspect.HEIGHT: _R},
        blending=BlendMode.AVERAGE,
        terrain=TerrainType.WATER,
    ),
    _pair(
        _key(_R, ReliefFeatureType.MOUNTAIN), _key(_A, ArtificialFeatureType.FORTIFICATION)
    ): _Customisation(
        dominance={InteractionAspect.TERRAIN: _A, InteractionAspect.HEIGHT: _R},
        blending=BlendMode.ADD,
        terrain=TerrainType.WALL,
        special={"fortified": True, "elevated": True},
    ),
    _pair(_key(_N, NaturalFeatureType.RIVER), _key(_A, ArtificialFeatureType.BRIDGE)): _Customisation(
        dominance={InteractionAspect.TERRAIN: _A, InteractionAspect.MOVEMENT: _A},
        blending=BlendMode.ADD,
        terrain=TerrainType.ROAD,
        special={"bridge": True, "crosses_water": True},
    ),
    _pair(_key(_N, NaturalFeatureType.STREAM), _key(_A, ArtificialFeatureType.BRIDGE)): _Customisation(
        dominance={InteractionAspect.TERRAIN: _A, InteractionAspect.MOVEMENT: _A},
        blending=BlendMode.ADD,
        terrain=TerrainType.ROAD,
        special={"bridge": True, "crosses_water": True},
    ),
}


@dataclass
class FeatureInteraction:
    primary: MapFeature
    secondary: MapFeature
    compatibility: CompatibilityLevel
    dominance: Dict[InteractionAspect, str]  # aspect -> id of the dominating feature
    blending: BlendMode
    terrain_modification: Optional[TerrainType] = None
    movement_modification: Optional[float] = None
    special_properties: Dict[str, Any] = field(default_factory=dict)

    def dominant(self, aspect: InteractionAspect) -> MapFeature:
        if self.dominance[aspect] == self.primary.id:
            return self.primary
        return self.secondary


def calculate_interaction(primary: MapFeature, secondary: MapFeature) -> FeatureInteraction:
    """
    Resolve how two overlapping features combine.

    By default the primary feature dominates every aspect and heights use the
    dominant feature. Listed pairs hand individual aspects to a category and
    may force a terrain type or a minimum movement cost.

    Args:
        primary: Higher priority feature
        secondary: Feature layered under it

    Returns:
        FeatureInteraction describing the blend
    """
    compatibility = get_compatibility(primary, secondary)
    dominance = {aspect: primary.id for aspect in InteractionAspect}
    custom = INTERACTIONS.get(_pair(feature_key(primary), feature_key(secondary)))
    if custom is None:
        return FeatureInteraction(
            primary=primary,
            secondary=secondary,
            compatibility=compatibility,
            dominance=dominance,
            blending=BlendMode.DOMINANT,
        )

    secondary_category = feature_category(secondary)
    for aspect, category in custom.dominance.items():
        if category == secondary_category:
            dominance[aspect] = secondary.id
    return FeatureInteraction(
        primary=primary,
        secondary=secondary,
        compatibility=compatibility,
        dominance=dominance,
        blending=custom.blending,
        terrain_modification=custom.terrain,
        movement_modification=custom.movement,
        special_properties=dict(custom.special),
    )


def blend_height(interaction: FeatureInteraction) -> float:
    """Height offset produced by an interaction, in height-multiplier units."""
    primary = interaction.primary.height or 0.0
    secondary = interaction.secondary.height or 0.0
    mode = interaction.blending
    if mode == BlendMode.ADD:
        return primary + secondary
    if mode == BlendMode.AVERAGE:
        return (primary + secondary) / 2
    if mode == BlendMode.MAX:
        return max(primary, secondary)
    return interaction.dominant(InteractionAspect.HEIGHT).height or 0.0


def compatible_features(primary: MapFeature, candidates: Iterable[MapFeature]) -> List[MapFeature]:
    """Candidates that may share a tile with `primary`."""
    return [
        candidate
        for candidate in candidates
        if get_compatibility(primary, candidate) >= CompatibilityLevel.NEUTRAL
    ]


class MixingSettings(BaseModel):
    """Mixer settings. Out-of-range values raise pydantic.ValidationError."""

    model_config = ConfigDict(frozen=True)

    enable_feature_mixing: bool = Field(
        default=True, description="Blend overlapping features instead of keeping the top one"
    )
    mixing_probability: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Chance a compatible pair is blended"
    )
    max_mixing_depth: int = Field(
        default=3, ge=1, description="Maximum number of features blended on one tile"
    )


def validate_settings(values: Mapping[str, Any]) -> List[str]:
    """Check raw mixer settings without raising. Returns error messages."""
    errors = []
    probability = values.get("mixing_probability", 0.7)
    if not isinstance(probability, (int, float)) or not 0 <= probability <= 1:
        errors.append("Mixing probability must be between 0 and 1")
    depth = values.get("max_mixing_depth", 3)
    if not isinstance(depth, int) or isinstance(depth, bool) or depth < 1:
        errors.append("Max mixing depth must be at least 1")
    return errors


class FeatureMixer:
    """
    Resolves the features covering one tile.

    Features are ordered by priority (ties by id). The first is the primary
    feature. Each further feature is dropped if it is incompatible with any
    feature already on the tile, otherwise blended with probability
    `mixing_probability` drawn from the supplied stream, until
    `max_mixing_depth` features are on the tile.
    """

    def __init__(self, rng: LCGRandom, settings: Optional[MixingSettings] = None, logger=None):
        self.rng = rng
        self.settings = settings or MixingSettings()
        self.logger = (logger or structlog.get_logger()).bind(component="feature_mixer")
        self.blend_count = 0

    def apply(self, tile, features: List[MapFeature]):
        """
        Resolve `features` onto `tile` in place.

        Args:
            tile: Tile with terrain, height_multiplier, movement_cost,
                is_blocked and properties attributes
            features: Features covering the tile

        Returns:
            The same tile
        """
        if not features:
            return tile

        ordered = sorted(features, key=lambda f: (-f.priority, f.id))
        primary = ordered[0]
        tile.primary_feature_id = primary.id
        tile.mixed_feature_ids = [primary.id]
        if not self.settings.enable_feature_mixing:
            return tile

        mixed = [primary]
        offset = 0.0
        for secondary in ordered[1:]:
            if len(mixed) >= self.settings.max_mixing_depth:
                break
            if any(
                get_compatibility(existing, secondary) == CompatibilityLevel.INCOMPATIBLE
                for existing in mixed
            ):
                tile.suppressed_feature_ids.append(secondary.id)
                continue
            if self.rng.next() >= self.settings.mixing_probability:
                continue
            interaction = calculate_interaction(primary, secondary)
            offset = max(offset, blend_height(interaction))
            self._apply_interaction(tile, interaction)
            mixed.append(secondary)
            self.blend_count += 1

        tile.mixed_feature_ids = [feature.id for feature in mixed]
        if offset:
            tile.height_multiplier = round(tile.height_multiplier + offset, 4)
        return tile

    @staticmethod
    def _apply_interaction(tile, interaction: FeatureInteraction) -> None:
        if interaction.terrain_modification is not None:
            tile.terrain = interaction.terrain_modification

        mover = interaction.dominant(InteractionAspect.MOVEMENT)
        if "movement_cost" in mover.properties:
            tile.movement_cost = float(mover.properties["movement_cost"])
        if interaction.movement_modification is not None:
            tile.movement_cost = max(tile.movement_cost, interaction.movement_modification)

        blocker = interaction.dominant(InteractionAspect.BLOCKING)
        if "blocking" in blocker.properties:
            tile.is_blocked = bool(blocker.properties["blocking"])

        tile.properties["visual"] = interaction.dominant(InteractionAspect.VISUAL).type.value
        tile.properties.update(interaction.special_properties)
