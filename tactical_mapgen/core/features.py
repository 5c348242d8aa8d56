"""
Features layer: hazards, resources, landmarks and tactical positions.

This module implements:
- Hazard placement from moisture, slope, rock features and vegetation
- Harvestable resources in clearings, forests, springs and bare rock
- Landmarks on ridges, in old forest, at caves and ruins
- Tactical features (high ground, choke points, ambush sites, vantage points)
- Per-tile feature data with descriptions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

import numpy as np
import structlog

from ..errors import LayerDependencyError
from ..utils.random import FEATURES, CoordinatedRandomGenerator, DeterministicIdGenerator
from .context import Season, TacticalMapContext
from .geology import GeologyLayer, TerrainFeature
from .hydrology import HydrologyLayer, MoistureLevel
from .noise import NoiseField
from .seed import LAYER_PRIMES, mix_seed
from .structures import BuildingType, StructureCondition, StructuresLayer
from .topography import TopographyLayer
from .vegetation import VegetationLayer, VegetationType

logger = structlog.get_logger()


class FeatureType(str, Enum):
    # Hazards
    QUICKSAND = "quicksand"
    UNSTABLE_GROUND = "unstable_ground"
    POISON_PLANTS = "poison_plants"
    INSECT_NEST = "insect_nest"
    ANIMAL_DEN = "animal_den"
    # Resources
    MEDICINAL_HERBS = "medicinal_herbs"
    BERRIES = "berries"
    MUSHROOMS = "mushrooms"
    FRESH_WATER = "fresh_water"
    MINERAL_DEPOSIT = "mineral_deposit"
    # Landmarks
    ANCIENT_TREE = "ancient_tree"
    STANDING_STONES = "standing_stones"
    BATTLEFIELD_REMAINS = "battlefield_remains"
    CAMPSITE = "campsite"
    CAVE_ENTRANCE = "cave_entrance"
    # Tactical
    HIGH_GROUND = "high_ground"
    CHOKE_POINT = "choke_point"
    AMBUSH_SITE = "ambush_site"
    VANTAGE_POINT = "vantage_point"


class HazardLevel(str, Enum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    DEADLY = "deadly"


class VisibilityLevel(str, Enum):
    OBVIOUS = "obvious"  # Immediately visible
    NOTICEABLE = "noticeable"  # DC 10 Perception
    HIDDEN = "hidden"  # DC 15 Perception
    CONCEALED = "concealed"  # DC 20 Perception
    SECRET = "secret"  # DC 25 Perception


class InteractionType(str, Enum):
    INVESTIGATE = "investigate"
    HARVEST = "harvest"
    AVOID = "avoid"
    TRIGGER = "trigger"


HAZARD_DESCRIPTIONS: Dict[FeatureType, str] = {
    FeatureType.QUICKSAND: "Treacherous quicksand that can trap the unwary",
    FeatureType.UNSTABLE_GROUND: "Loose rocks and debris make footing treacherous",
    FeatureType.POISON_PLANTS: "Toxic vegetation that causes harm on contact",
    FeatureType.INSECT_NEST: "A humming nest of stinging insects",
    FeatureType.ANIMAL_DEN: "Signs of dangerous wildlife nearby",
}

LANDMARK_LORE: Dict[FeatureType, str] = {
    FeatureType.ANCIENT_TREE: "An ancient tree, centuries old, its gnarled roots tell stories of ages past",
    FeatureType.STANDING_STONES: "Weathered stones arranged in an ancient pattern, their purpose lost to time",
    FeatureType.CAVE_ENTRANCE: "A dark opening in the rock face beckons the brave or foolish",
    FeatureType.BATTLEFIELD_REMAINS: "Rusted weapons and broken shields tell of a forgotten battle",
    FeatureType.CAMPSITE: "A ring of blackened stones where travellers once rested",
}


def resource_description(feature_type: FeatureType, quantity: int) -> str:
    if feature_type == FeatureType.MEDICINAL_HERBS:
        return f"{quantity} doses of healing herbs grow here"
    if feature_type == FeatureType.BERRIES:
        return f"A bush heavy with {quantity} servings of berries"
    if feature_type == FeatureType.MUSHROOMS:
        return f"A cluster of {quantity} edible mushrooms"
    if feature_type == FeatureType.FRESH_WATER:
        return "A source of clean, fresh water"
    if feature_type == FeatureType.MINERAL_DEPOSIT:
        return f"Exposed minerals worth {quantity} gold pieces"
    return "A valuable resource"


@dataclass
class FeaturesOptions:
    """Noise thresholds for feature placement; higher means rarer."""

    quicksand: float = 0.9
    unstable_ground: float = 0.85
    poison_plants: float = 0.95
    insect_nest: float = 0.93
    animal_den: float = 0.8
    medicinal_herbs: float = 0.8
    berries: float = 0.85
    mushrooms: float = 0.88
    fresh_water: float = 0.5
    mineral_deposit: float = 0.9
    ancient_tree: float = 0.95
    standing_stones: float = 0.9
    cave_entrance: float = 0.85
    battlefield_remains: float = 0.7
    campsite: float = 0.6
    high_ground: float = 0.7
    ambush_site: float = 0.85


@dataclass
class Hazard:
    id: str
    x: int
    y: int
    feature_type: FeatureType
    level: HazardLevel
    radius: int  # effect radius in tiles


@dataclass
class Resource:
    id: str
    x: int
    y: int
    feature_type: FeatureType
    quantity: int  # 1-10
    quality: float  # 0-1


@dataclass
class Landmark:
    id: str
    x: int
    y: int
    feature_type: FeatureType
    significance: float
    lore: str


@dataclass
class TacticalFeature:
    id: str
    x: int
    y: int
    feature_type: FeatureType
    control_radius: int


@dataclass
class FeatureTile:
    has_feature: bool
    feature_type: Optional[FeatureType]
    hazard_level: HazardLevel
    resource_value: float
    visibility: VisibilityLevel
    interaction: Optional[InteractionType]
    description: Optional[str]


@dataclass
class FeaturesLayer:
    """Features layer output. Grids indexed [y, x]."""

    width: int
    height: int
    feature_type: np.ndarray  # object array of FeatureType or None
    hazard_level: np.ndarray  # object array of HazardLevel
    resource_value: np.ndarray
    visibility: np.ndarray  # object array of VisibilityLevel
    interaction: np.ndarray  # object array of InteractionType or None
    description: np.ndarray  # object array of str or None
    hazards: List[Hazard] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    landmarks: List[Landmark] = field(default_factory=list)
    tactical_features: List[TacticalFeature] = field(default_factory=list)
    total_feature_count: int = 0

    def tile(self, x: int, y: int) -> FeatureTile:
        feature_type = self.feature_type[y, x]
        return FeatureTile(
            has_feature=feature_type is not None,
            feature_type=feature_type,
            hazard_level=self.hazard_level[y, x],
            resource_value=float(self.resource_value[y, x]),
            visibility=self.visibility[y, x],
            interaction=self.interaction[y, x],
            description=self.description[y, x],
        )


class FeaturesGenerator:
    """Places hazards, resources, landmarks and tactical features."""

    def __init__(self, options: Optional[FeaturesOptions] = None, logger=None):
        self.options = options or FeaturesOptions()
        self.logger = (logger or structlog.get_logger()).bind(stage="features")

    def generate(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        structures: StructuresLayer,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
        ids: DeterministicIdGenerator,
    ) -> FeaturesLayer:
        """
        Generate the features layer from every earlier layer.

        Args:
            geology: Geology layer
            topography: Topography layer
            hydrology: Hydrology layer
            vegetation: Vegetation layer
            structures: Structures layer
            context: Generation context
            rng: Per-request random hierarchy
            ids: Identifier generator for this layer

        Returns:
            FeaturesLayer
        """
        for name, layer in (
            ("geology", geology),
            ("topography", topography),
            ("hydrology", hydrology),
            ("vegetation", vegetation),
            ("structures", structures),
        ):
            if layer is None:
                raise LayerDependencyError("features", name)

        base_seed = rng.sub_seed(FEATURES)
        self.logger.info("Generating features", season=context.season.value)

        hazard_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["features.hazards"]))
        hazards = self.place_hazards(
            geology, topography, hydrology, vegetation, structures, hazard_noise, ids
        )
        self.logger.debug("Placed hazards", count=len(hazards))

        resource_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["features.resources"]))
        resources = self.place_resources(
            geology, hydrology, vegetation, context, resource_noise, ids
        )
        self.logger.debug("Placed resources", count=len(resources))

        landmark_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["features.landmarks"]))
        landmarks = self.place_landmarks(
            geology, topography, vegetation, structures, landmark_noise, ids
        )
        self.logger.debug("Placed landmarks", count=len(landmarks))

        tactical_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["features.tactical"]))
        tactical = self.identify_tactical_features(
            topography, vegetation, structures, tactical_noise, ids
        )

        layer = self._tiles(geology.width, geology.height, hazards, resources, landmarks)
        layer.tactical_features = tactical
        layer.total_feature_count = len(hazards) + len(resources) + len(landmarks)

        self.logger.info(
            "Features generated",
            hazards=len(hazards),
            resources=len(resources),
            landmarks=len(landmarks),
            tactical=len(tactical),
            total_features=layer.total_feature_count,
        )
        return layer

    def place_hazards(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        structures: StructuresLayer,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[Hazard]:
        opts = self.options
        built = structures.has_structure
        hazards = []

        def add(x, y, feature_type, level, radius):
            hazards.append(
                Hazard(
                    id=ids.feature_id("hazard"),
                    x=x,
                    y=y,
                    feature_type=feature_type,
                    level=level,
                    radius=radius,
                )
            )

        for y in range(geology.height):
            for x in range(geology.width):
                if built[y, x]:
                    continue
                r = noise.generate_at(x * 0.15, y * 0.15)
                moisture = int(hydrology.moisture[y, x])
                slope = topography.slope[y, x]
                rock_features = geology.features[y, x]
                vegetation_type = vegetation.vegetation_type[y, x]

                if moisture == MoistureLevel.SATURATED and slope < 5 and r > opts.quicksand:
                    add(x, y, FeatureType.QUICKSAND, HazardLevel.SEVERE, 1)
                if slope > 50 and TerrainFeature.TALUS in rock_features and r > opts.unstable_ground:
                    add(x, y, FeatureType.UNSTABLE_GROUND, HazardLevel.MODERATE, 2)
                if vegetation_type == VegetationType.DENSE_TREES and r > opts.poison_plants:
                    add(x, y, FeatureType.POISON_PLANTS, HazardLevel.MINOR, 1)
                if (
                    vegetation_type in (VegetationType.SPARSE_TREES, VegetationType.SHRUBS)
                    and moisture >= MoistureLevel.MODERATE
                    and r > opts.insect_nest
                ):
                    add(x, y, FeatureType.INSECT_NEST, HazardLevel.MINOR, 1)
                if (
                    TerrainFeature.CAVE in rock_features
                    and vegetation_type != VegetationType.NONE
                    and r > opts.animal_den
                ):
                    add(x, y, FeatureType.ANIMAL_DEN, HazardLevel.MODERATE, 3)
        return hazards

    def place_resources(
        self,
        geology: GeologyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        context: TacticalMapContext,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[Resource]:
        opts = self.options
        width, height = geology.width, geology.height
        ys, xs = np.mgrid[0:height, 0:width]
        in_clearing = np.zeros((height, width), dtype=bool)
        for clearing in vegetation.clearings:
            in_clearing |= (xs - clearing.x) ** 2 + (ys - clearing.y) ** 2 <= clearing.radius ** 2

        mushroom_threshold = opts.mushrooms - (0.08 if context.season == Season.AUTUMN else 0.0)
        resources = []

        def add(x, y, feature_type, quantity, quality):
            resources.append(
                Resource(
                    id=ids.feature_id("resource"),
                    x=x,
                    y=y,
                    feature_type=feature_type,
                    quantity=max(1, min(10, quantity)),
                    quality=quality,
                )
            )

        for y in range(height):
            for x in range(width):
                r = noise.generate_at(x * 0.2, y * 0.2)
                vegetation_type = vegetation.vegetation_type[y, x]
                moisture = int(hydrology.moisture[y, x])

                if in_clearing[y, x] and r > opts.medicinal_herbs:
                    add(x, y, FeatureType.MEDICINAL_HERBS, int(np.ceil(r * 5)), r)
                if (
                    vegetation_type == VegetationType.SPARSE_TREES
                    and context.season != Season.WINTER
                    and r > opts.berries
                ):
                    add(x, y, FeatureType.BERRIES, int(np.ceil(r * 3)), r * 0.8)
                if (
                    vegetation_type == VegetationType.DENSE_TREES
                    and moisture >= MoistureLevel.MOIST
                    and r > mushroom_threshold
                ):
                    add(x, y, FeatureType.MUSHROOMS, int(np.ceil(r * 4)), r * 0.9)
                if hydrology.is_spring[y, x] and r > opts.fresh_water:
                    add(x, y, FeatureType.FRESH_WATER, 10, 1.0)
                if (
                    geology.soil_depth[y, x] < 0.5
                    and len(geology.features[y, x]) > 0
                    and r > opts.mineral_deposit
                ):
                    add(x, y, FeatureType.MINERAL_DEPOSIT, int(np.ceil(r * 7)), r * 0.7)
        return resources

    def place_landmarks(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        vegetation: VegetationLayer,
        structures: StructuresLayer,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[Landmark]:
        opts = self.options
        width, height = geology.width, geology.height
        built = structures.has_structure
        landmarks = []

        def add(x, y, feature_type, significance):
            landmarks.append(
                Landmark(
                    id=ids.feature_id("landmark"),
                    x=x,
                    y=y,
                    feature_type=feature_type,
                    significance=significance,
                    lore=LANDMARK_LORE[feature_type],
                )
            )

        # Ancient trees in old forest
        for y in range(2, height - 2):
            for x in range(2, width - 2):
                if (
                    vegetation.vegetation_type[y, x] == VegetationType.DENSE_TREES
                    and vegetation.canopy_height[y, x] > 30
                    and noise.generate_at(x * 0.1, y * 0.1) > opts.ancient_tree
                ):
                    add(x, y, FeatureType.ANCIENT_TREE, 0.7)

        # Standing stones on ridges
        for y, x in np.argwhere(topography.is_ridge):
            x, y = int(x), int(y)
            if not built[y, x] and noise.generate_at(x * 0.15, y * 0.15) > opts.standing_stones:
                add(x, y, FeatureType.STANDING_STONES, 0.8)

        for y, x in np.argwhere(geology.feature_mask(TerrainFeature.CAVE)):
            x, y = int(x), int(y)
            if noise.generate_at(x * 0.2, y * 0.2) > opts.cave_entrance:
                add(x, y, FeatureType.CAVE_ENTRANCE, 0.6)

        for building in structures.buildings:
            if (
                building.condition == StructureCondition.RUINED
                and noise.generate_at(building.x * 0.1, building.y * 0.1) > opts.battlefield_remains
            ):
                add(building.x, building.y, FeatureType.BATTLEFIELD_REMAINS, 0.5)

        # Abandoned campsites in open clearings
        for clearing in vegetation.clearings:
            if built[clearing.y, clearing.x]:
                continue
            if noise.generate_at(clearing.x * 0.25, clearing.y * 0.25) > opts.campsite:
                add(clearing.x, clearing.y, FeatureType.CAMPSITE, 0.3)
        return landmarks

    def identify_tactical_features(
        self,
        topography: TopographyLayer,
        vegetation: VegetationLayer,
        structures: StructuresLayer,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[TacticalFeature]:
        opts = self.options
        width, height = topography.width, topography.height
        passable = vegetation.is_passable
        features = []

        def add(x, y, feature_type, radius):
            features.append(
                TacticalFeature(
                    id=ids.feature_id("tactical"),
                    x=x,
                    y=y,
                    feature_type=feature_type,
                    control_radius=radius,
                )
            )

        if topography.max_elevation > 0:
            threshold = topography.max_elevation * 0.8
            for y, x in np.argwhere(topography.elevation >= threshold):
                x, y = int(x), int(y)
                if passable[y, x] and noise.generate_at(x * 0.1, y * 0.1) > opts.high_ground:
                    add(x, y, FeatureType.HIGH_GROUND, 5)

        for y in range(1, height - 1):
            for x in range(1, width - 1):
                if not (topography.is_valley[y, x] and passable[y, x]):
                    continue
                blocked = sum(
                    1
                    for nx, ny in ((x, y - 1), (x, y + 1), (x - 1, y), (x + 1, y))
                    if not passable[ny, nx]
                )
                if blocked >= 2:
                    add(x, y, FeatureType.CHOKE_POINT, 3)

        ambush: Set[Tuple[int, int]] = set()
        for segment in structures.roads.segments:
            for px, py in segment.points:
                for dy in range(-2, 3):
                    for dx in range(-2, 3):
                        x, y = px + dx, py + dy
                        if (dx, dy) == (0, 0) or (x, y) in ambush:
                            continue
                        if not (0 <= x < width and 0 <= y < height):
                            continue
                        if (
                            vegetation.provides_concealment[y, x]
                            and not structures.is_road[y, x]
                            and noise.generate_at(x * 0.2, y * 0.2) > opts.ambush_site
                        ):
                            ambush.add((x, y))
                            add(x, y, FeatureType.AMBUSH_SITE, 2)

        for building in structures.buildings:
            if building.building_type == BuildingType.TOWER:
                add(building.x, building.y, FeatureType.VANTAGE_POINT, 8)
        return features

    def _tiles(
        self,
        width: int,
        height: int,
        hazards: List[Hazard],
        resources: List[Resource],
        landmarks: List[Landmark],
    ) -> FeaturesLayer:
        feature_type = np.full((height, width), None, dtype=object)
        hazard_level = np.full((height, width), HazardLevel.NONE, dtype=object)
        resource_value = np.zeros((height, width), dtype=np.float64)
        visibility = np.full((height, width), VisibilityLevel.OBVIOUS, dtype=object)
        interaction = np.full((height, width), None, dtype=object)
        description = np.full((height, width), None, dtype=object)

        for hazard in hazards:
            x, y = hazard.x, hazard.y
            feature_type[y, x] = hazard.feature_type
            hazard_level[y, x] = hazard.level
            resource_value[y, x] = 0.0
            visibility[y, x] = (
                VisibilityLevel.HIDDEN
                if hazard.feature_type == FeatureType.QUICKSAND
                else VisibilityLevel.NOTICEABLE
            )
            interaction[y, x] = InteractionType.AVOID
            description[y, x] = HAZARD_DESCRIPTIONS[hazard.feature_type]

        # Resources never overwrite hazards
        for resource in resources:
            x, y = resource.x, resource.y
            if feature_type[y, x] is not None:
                continue
            feature_type[y, x] = resource.feature_type
            resource_value[y, x] = resource.quality
            visibility[y, x] = (
                VisibilityLevel.HIDDEN
                if resource.feature_type == FeatureType.MEDICINAL_HERBS
                else VisibilityLevel.NOTICEABLE
            )
            interaction[y, x] = InteractionType.HARVEST
            description[y, x] = resource_description(resource.feature_type, resource.quantity)

        # Landmarks always win
        for landmark in landmarks:
            x, y = landmark.x, landmark.y
            feature_type[y, x] = landmark.feature_type
            hazard_level[y, x] = HazardLevel.NONE
            resource_value[y, x] = 0.0
            visibility[y, x] = VisibilityLevel.OBVIOUS
            interaction[y, x] = InteractionType.INVESTIGATE
            description[y, x] = landmark.lore

        return FeaturesLayer(
            width=width,
            height=height,
            feature_type=feature_type,
            hazard_level=hazard_level,
            resource_value=resource_value,
            visibility=visibility,
            interaction=interaction,
            description=description,
            hazards=hazards,
            resources=resources,
            landmarks=landmarks,
        )
