"""
Categorical generation context.

The context biases every layer's weighting tables. It is immutable and is
validated on construction: impossible combinations raise InvalidContextError.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from ..errors import InvalidContextError


class BiomeType(str, Enum):
    FOREST = "forest"
    MOUNTAIN = "mountain"
    PLAINS = "plains"
    SWAMP = "swamp"
    DESERT = "desert"
    COASTAL = "coastal"
    UNDERGROUND = "underground"


class ElevationZone(str, Enum):
    LOWLAND = "lowland"  # 0-500ft above sea level
    FOOTHILLS = "foothills"  # 500-2000ft
    HIGHLAND = "highland"  # 2000-5000ft
    ALPINE = "alpine"  # 5000ft+


class HydrologyType(str, Enum):
    ARID = "arid"  # No water features
    SEASONAL = "seasonal"  # Seasonal streams
    STREAM = "stream"  # Permanent stream
    RIVER = "river"  # Major river
    LAKE = "lake"  # Lake or pond
    COASTAL = "coastal"  # Shore
    WETLAND = "wetland"  # Marsh


class DevelopmentLevel(str, Enum):
    WILDERNESS = "wilderness"
    FRONTIER = "frontier"
    RURAL = "rural"
    SETTLED = "settled"
    URBAN = "urban"
    RUINS = "ruins"


class Season(str, Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


# Hydrology assumed when the caller does not specify one
DEFAULT_HYDROLOGY = {
    BiomeType.FOREST: HydrologyType.STREAM,
    BiomeType.MOUNTAIN: HydrologyType.STREAM,
    BiomeType.PLAINS: HydrologyType.SEASONAL,
    BiomeType.SWAMP: HydrologyType.WETLAND,
    BiomeType.DESERT: HydrologyType.ARID,
    BiomeType.COASTAL: HydrologyType.COASTAL,
    BiomeType.UNDERGROUND: HydrologyType.SEASONAL,
}


def _coerce(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise InvalidContextError(
            f"Unknown {name} {value!r}", value, [member.value for member in enum_cls]
        ) from None


@dataclass(frozen=True)
class RequiredFeatures:
    """Feature hints carried by the context and echoed in its description."""

    has_road: bool = False
    has_bridge: bool = False
    has_ruins: bool = False
    has_cave: bool = False
    has_water: bool = False
    has_cliff: bool = False


@dataclass(frozen=True)
class TacticalMapContext:
    """
    Immutable generation context.

    Args:
        biome: Biome type (or its string value)
        development: Development level
        elevation: Elevation zone
        hydrology: Water regime, defaulted from the biome when omitted
        season: Season of the map
    """

    biome: BiomeType = BiomeType.FOREST
    development: DevelopmentLevel = DevelopmentLevel.WILDERNESS
    elevation: ElevationZone = ElevationZone.LOWLAND
    hydrology: Optional[HydrologyType] = None
    season: Season = Season.SUMMER
    required_features: RequiredFeatures = field(default_factory=RequiredFeatures)

    def __post_init__(self):
        biome = _coerce(BiomeType, self.biome, "biome")
        object.__setattr__(self, "biome", biome)
        object.__setattr__(
            self, "development", _coerce(DevelopmentLevel, self.development, "development level")
        )
        object.__setattr__(
            self, "elevation", _coerce(ElevationZone, self.elevation, "elevation zone")
        )
        object.__setattr__(self, "season", _coerce(Season, self.season, "season"))

        if self.hydrology is None:
            object.__setattr__(self, "hydrology", DEFAULT_HYDROLOGY[biome])
        else:
            object.__setattr__(
                self, "hydrology", _coerce(HydrologyType, self.hydrology, "hydrology")
            )
        self._validate()

    def _validate(self) -> None:
        if self.biome == BiomeType.UNDERGROUND and self.elevation == ElevationZone.ALPINE:
            raise InvalidContextError(
                "Underground biome cannot be at alpine elevation",
                self.elevation.value,
                [z.value for z in ElevationZone if z != ElevationZone.ALPINE],
            )
        if self.biome == BiomeType.DESERT and self.hydrology in (
            HydrologyType.RIVER,
            HydrologyType.LAKE,
            HydrologyType.WETLAND,
        ):
            raise InvalidContextError(
                "Desert biome incompatible with permanent water features",
                self.hydrology.value,
                [HydrologyType.ARID.value, HydrologyType.SEASONAL.value, HydrologyType.STREAM.value],
            )
        if self.biome == BiomeType.COASTAL and self.hydrology != HydrologyType.COASTAL:
            raise InvalidContextError(
                "Coastal biome must have coastal hydrology",
                self.hydrology.value,
                [HydrologyType.COASTAL.value],
            )
        if self.biome == BiomeType.SWAMP and self.hydrology != HydrologyType.WETLAND:
            raise InvalidContextError(
                "Swamp biome must have wetland hydrology",
                self.hydrology.value,
                [HydrologyType.WETLAND.value],
            )

    @classmethod
    def from_seed(cls, seed: int) -> "TacticalMapContext":
        """
        Derive a context from the digits of a seed.

        Combinations that fail validation fall back to the biome's default
        hydrology, then to a non-alpine elevation.
        """
        value = abs(int(seed))
        biomes = list(BiomeType)
        elevations = list(ElevationZone)
        hydrologies = list(HydrologyType)
        developments = list(DevelopmentLevel)
        seasons = list(Season)

        biome = biomes[value % len(biomes)]
        elevation = elevations[(value // 100) % len(elevations)]
        hydrology = hydrologies[(value // 10000) % len(hydrologies)]
        development = developments[(value // 1000000) % len(developments)]
        season = seasons[(value // 100000000) % len(seasons)]

        if biome == BiomeType.UNDERGROUND and elevation == ElevationZone.ALPINE:
            elevation = ElevationZone.HIGHLAND
        try:
            return cls(biome, development, elevation, hydrology, season)
        except InvalidContextError:
            return cls(biome, development, elevation, None, season)

    def description(self) -> str:
        desc = f"{self.season.value} {self.elevation.value} {self.biome.value}"
        if self.hydrology != HydrologyType.ARID:
            desc += f" with {self.hydrology.value}"
        if self.development != DevelopmentLevel.WILDERNESS:
            desc += f" ({self.development.value})"

        wanted = self.required_features
        names = [
            name
            for name, flag in (
                ("road", wanted.has_road),
                ("bridge", wanted.has_bridge),
                ("ruins", wanted.has_ruins),
                ("cave", wanted.has_cave),
                ("cliff", wanted.has_cliff),
            )
            if flag
        ]
        if names:
            desc += f" featuring {', '.join(names)}"
        return desc

    def should_have_cliffs(self) -> bool:
        return self.biome == BiomeType.MOUNTAIN or self.elevation in (
            ElevationZone.HIGHLAND,
            ElevationZone.ALPINE,
        )

    def should_have_dense_vegetation(self) -> bool:
        return (
            self.biome in (BiomeType.FOREST, BiomeType.SWAMP)
            and self.season != Season.WINTER
        )

    def should_have_snow(self) -> bool:
        return self.season == Season.WINTER and (
            self.elevation == ElevationZone.ALPINE
            or (self.elevation == ElevationZone.HIGHLAND and self.biome == BiomeType.MOUNTAIN)
        )

    def visibility_range(self) -> int:
        """Typical sight distance in tiles."""
        if self.biome == BiomeType.UNDERGROUND:
            return 10
        if self.biome == BiomeType.FOREST and self.should_have_dense_vegetation():
            return 15
        if self.biome == BiomeType.SWAMP:
            return 20
        if self.biome in (BiomeType.DESERT, BiomeType.PLAINS):
            return 50
        return 30

    def as_tuple(self) -> Tuple[str, str, str, str, str]:
        return (
            self.biome.value,
            self.development.value,
            self.elevation.value,
            self.hydrology.value,
            self.season.value,
        )


ContextInput = Union[TacticalMapContext, dict]


def coerce_context(context: ContextInput) -> TacticalMapContext:
    """Accept a context object or a plain mapping of its fields."""
    if isinstance(context, TacticalMapContext):
        return context
    if isinstance(context, dict):
        known = {
            "biome",
            "development",
            "elevation",
            "hydrology",
            "season",
        }
        aliases = {"development_level": "development", "elevation_zone": "elevation"}
        kwargs = {}
        for key, value in context.items():
            key = aliases.get(key, key)
            if key not in known:
                raise InvalidContextError(f"Unknown context field {key!r}", key, sorted(known))
            kwargs[key] = value
        return TacticalMapContext(**kwargs)
    raise InvalidContextError(
        f"Context must be a TacticalMapContext or mapping, got {type(context).__name__}",
        context,
        ["TacticalMapContext", "dict"],
    )
