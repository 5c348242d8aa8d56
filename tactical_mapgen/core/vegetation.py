"""
Vegetation layer: plants, forests and clearings.

This module implements:
- Growth potential from biome, moisture, slope, soil and elevation zone
- Forest patches from thresholded noise and cellular automaton smoothing
- Plant placement with independent tree, understory and ground cover rolls
- Forestry basal-area survey for canopy density classes
- Clearing detection and forest patch extraction
- Tree grafting (inosculation) recorded as ID pairs in a tree arena
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field
from scipy import ndimage
from sklearn.neighbors import KDTree

from ..errors import LayerDependencyError
from ..utils.grid import neighbour_count, window_sum
from ..utils.random import FORESTS, CoordinatedRandomGenerator, DeterministicIdGenerator
from .context import BiomeType, ElevationZone, TacticalMapContext
from .geology import GeologyLayer
from .hydrology import HydrologyLayer, MoistureLevel
from .noise import NoiseField
from .seed import LAYER_PRIMES, mix_seed
from .topography import TopographyLayer

logger = structlog.get_logger()

# Forestry constants
BASAL_AREA_SPARSE = 50.0  # ft²/acre
BASAL_AREA_MODERATE = 100.0
BASAL_AREA_DENSE = 150.0
BASAL_AREA_MAXIMUM = 200.0
TILE_EDGE_FT = 5
TILE_AREA_FT2 = TILE_EDGE_FT * TILE_EDGE_FT
SQ_FT_PER_ACRE = 43560.0
TILES_PER_ACRE = SQ_FT_PER_ACRE / TILE_AREA_FT2  # 1742.4
AVERAGE_TREE_DIAMETER_FT = 1.0
SURVEY_RADIUS_TILES = 3
CA_PASSES = 3
CLEARING_MAX_RADIUS = 5
CLEARING_MIN_RADIUS = 2
CLEARING_RAYS = 8

_UNIT_SCALE = 2147483648.0


class VegetationType(str, Enum):
    NONE = "none"
    GRASS = "grass"
    TALL_GRASS = "tall_grass"
    SHRUBS = "shrubs"
    UNDERGROWTH = "undergrowth"
    SPARSE_TREES = "sparse_trees"
    DENSE_TREES = "dense_trees"


class DensityClass(str, Enum):
    NONE = "none"
    SPARSE = "sparse"
    MODERATE = "moderate"
    DENSE = "dense"


class PlantCategory(str, Enum):
    TREE = "tree"
    SHRUB = "shrub"
    HERBACEOUS = "herbaceous"
    GROUND_COVER = "ground_cover"


class PlantSpecies(str, Enum):
    OAK = "oak"
    PINE = "pine"
    WILLOW = "willow"
    HAZEL = "hazel"
    ELDERBERRY = "elderberry"
    FERN = "fern"
    GRASS = "grass"
    MOSS = "moss"


class PlantSize(str, Enum):
    TINY = "tiny"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    HUGE = "huge"
    MASSIVE = "massive"


# Trunk diameter at breast height, feet
TRUNK_DIAMETERS: Dict[PlantSize, float] = {
    PlantSize.TINY: 0.25,
    PlantSize.SMALL: 0.5,
    PlantSize.MEDIUM: 1.0,
    PlantSize.LARGE: 1.5,
    PlantSize.HUGE: 2.0,
    PlantSize.MASSIVE: 3.0,
}

SIZE_HEIGHT_MULTIPLIERS: Dict[PlantSize, float] = {
    PlantSize.TINY: 0.3,
    PlantSize.SMALL: 0.5,
    PlantSize.MEDIUM: 1.0,
    PlantSize.LARGE: 1.5,
    PlantSize.HUGE: 2.0,
    PlantSize.MASSIVE: 3.0,
}

BASE_HEIGHTS: Dict[PlantCategory, float] = {
    PlantCategory.TREE: 20.0,
    PlantCategory.SHRUB: 5.0,
    PlantCategory.HERBACEOUS: 2.0,
    PlantCategory.GROUND_COVER: 0.5,
}

BIOME_POTENTIAL: Dict[BiomeType, float] = {
    BiomeType.FOREST: 1.0,
    BiomeType.PLAINS: 0.4,
    BiomeType.DESERT: 0.1,
    BiomeType.SWAMP: 0.8,
    BiomeType.MOUNTAIN: 0.5,
    BiomeType.COASTAL: 0.6,
}
DEFAULT_BIOME_POTENTIAL = 0.5

MOISTURE_FACTORS: Dict[MoistureLevel, float] = {
    MoistureLevel.SATURATED: 0.7,
    MoistureLevel.WET: 1.0,
    MoistureLevel.MOIST: 0.9,
    MoistureLevel.MODERATE: 0.7,
    MoistureLevel.DRY: 0.3,
    MoistureLevel.ARID: 0.1,
}

# Density multiplier applied by VegetationConfig.for_biome
BIOME_DENSITY: Dict[BiomeType, float] = {
    BiomeType.FOREST: 1.5,
    BiomeType.SWAMP: 1.2,
    BiomeType.PLAINS: 0.6,
    BiomeType.DESERT: 0.2,
    BiomeType.MOUNTAIN: 0.8,
    BiomeType.COASTAL: 0.8,
    BiomeType.UNDERGROUND: 0.3,
}


def classify_density(basal_area: float) -> DensityClass:
    """Density class for a basal area in ft²/acre."""
    if basal_area >= BASAL_AREA_DENSE:
        return DensityClass.DENSE
    if basal_area >= BASAL_AREA_MODERATE:
        return DensityClass.MODERATE
    if basal_area >= BASAL_AREA_SPARSE:
        return DensityClass.SPARSE
    return DensityClass.NONE


def basal_area(diameter_ft: float) -> float:
    """Trunk cross-section in ft²."""
    radius = diameter_ft / 2
    return math.pi * radius * radius


class VegetationConfig(BaseModel):
    """
    Vegetation density tuning.

    All placement probabilities derive from one density multiplier:
    0 is barren, 1 is normal and 2 is maximally dense.
    """

    model_config = ConfigDict(frozen=True)

    density_multiplier: float = Field(
        default=1.0, ge=0.0, le=2.0, description="0 barren, 1 normal, 2 very dense"
    )
    inosculation_chance: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Chance that two nearby trees graft"
    )
    graft_distance: float = Field(
        default=1.5, gt=0.0, le=5.0, description="Maximum trunk distance for grafting, tiles"
    )

    @classmethod
    def for_biome(cls, biome: BiomeType, density: float = 1.0) -> "VegetationConfig":
        multiplier = density * BIOME_DENSITY.get(biome, 1.0)
        return cls(density_multiplier=min(2.0, max(0.0, multiplier)))

    @property
    def target_basal_area(self) -> float:
        """Target ft²/acre, from sparse (50) to dense (200)."""
        scale = min(self.density_multiplier / 2, 1.0)
        return BASAL_AREA_SPARSE + (BASAL_AREA_MAXIMUM - BASAL_AREA_SPARSE) * scale

    @property
    def tree_probability(self) -> float:
        """Chance a forest tile holds a tree, from the basal area target."""
        trees_per_acre = self.target_basal_area / basal_area(AVERAGE_TREE_DIAMETER_FT)
        return trees_per_acre / TILES_PER_ACRE

    @property
    def forest_coverage(self) -> float:
        return 0.2 + 0.6 * min(self.density_multiplier / 2, 1.0)

    @property
    def understory_probability(self) -> float:
        return 0.4 * min(self.density_multiplier, 2.0)

    @property
    def ground_cover_density(self) -> float:
        return 0.8 * min(self.density_multiplier, 1.5)


@dataclass
class Plant:
    id: str
    category: PlantCategory
    species: PlantSpecies
    size: PlantSize
    x: int
    y: int
    offset_x: float  # position inside the tile, 0-1
    offset_y: float
    trunk_diameter: float = 0.0  # feet, trees only

    @property
    def height(self) -> float:
        """Height in feet."""
        return BASE_HEIGHTS[self.category] * SIZE_HEIGHT_MULTIPLIERS[self.size]

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x + self.offset_x, self.y + self.offset_y)


class TreeArena:
    """
    Trees indexed by ID and by tile.

    Grafts between trees are kept as a separate list of ID pairs, so trees
    never reference each other directly.
    """

    def __init__(self):
        self._trees: Dict[str, Plant] = {}
        self._by_tile: Dict[Tuple[int, int], List[str]] = {}
        self.grafts: List[Tuple[str, str]] = []

    def add(self, tree: Plant) -> None:
        if tree.category != PlantCategory.TREE:
            raise ValueError(f"Only trees belong in the arena, got {tree.category.value}")
        self._trees[tree.id] = tree
        self._by_tile.setdefault((tree.x, tree.y), []).append(tree.id)

    def get(self, tree_id: str) -> Plant:
        return self._trees[tree_id]

    def at(self, x: int, y: int) -> List[Plant]:
        return [self._trees[tree_id] for tree_id in self._by_tile.get((x, y), [])]

    def graft(self, first: str, second: str) -> None:
        if first not in self._trees or second not in self._trees:
            raise KeyError(f"Unknown tree in graft ({first}, {second})")
        pair = (first, second) if first < second else (second, first)
        if pair not in self.grafts:
            self.grafts.append(pair)

    def grafted_with(self, tree_id: str) -> List[str]:
        partners = []
        for first, second in self.grafts:
            if first == tree_id:
                partners.append(second)
            elif second == tree_id:
                partners.append(first)
        return partners

    def __len__(self) -> int:
        return len(self._trees)

    def __iter__(self) -> Iterator[Plant]:
        return iter(self._trees.values())

    def __contains__(self, tree_id: str) -> bool:
        return tree_id in self._trees


@dataclass
class Clearing:
    id: str
    x: int
    y: int
    radius: int


@dataclass
class ForestPatch:
    id: str
    tiles: List[Tuple[int, int]]
    forest_type: str  # deciduous, coniferous or mixed
    density: float  # mean canopy density


@dataclass
class VegetationTile:
    potential: float
    vegetation_type: VegetationType
    canopy_height: float
    canopy_density: float
    basal_area: float
    dominant_species: Optional[PlantSpecies]
    ground_cover: float
    plants: List[Plant]
    is_passable: bool
    provides_concealment: bool
    provides_cover: bool


@dataclass
class VegetationLayer:
    """Vegetation layer output. Heights in feet, grids indexed [y, x]."""

    width: int
    height: int
    potential: np.ndarray
    forest_mask: np.ndarray
    vegetation_type: np.ndarray  # object array of VegetationType
    canopy_height: np.ndarray
    canopy_density: np.ndarray
    basal_area: np.ndarray  # ft²/acre
    dominant_species: np.ndarray  # object array of PlantSpecies or None
    ground_cover: np.ndarray
    is_passable: np.ndarray
    provides_concealment: np.ndarray
    provides_cover: np.ndarray
    plants: Dict[Tuple[int, int], List[Plant]] = field(default_factory=dict)
    trees: TreeArena = field(default_factory=TreeArena)
    forest_patches: List[ForestPatch] = field(default_factory=list)
    clearings: List[Clearing] = field(default_factory=list)
    total_tree_count: int = 0
    average_canopy_coverage: float = 0.0

    def plants_at(self, x: int, y: int) -> List[Plant]:
        return self.plants.get((x, y), [])

    def is_tree_cover(self) -> np.ndarray:
        return np.asarray(
            (self.vegetation_type == VegetationType.DENSE_TREES)
            | (self.vegetation_type == VegetationType.SPARSE_TREES),
            dtype=bool,
        )

    def tile(self, x: int, y: int) -> VegetationTile:
        return VegetationTile(
            potential=float(self.potential[y, x]),
            vegetation_type=self.vegetation_type[y, x],
            canopy_height=float(self.canopy_height[y, x]),
            canopy_density=float(self.canopy_density[y, x]),
            basal_area=float(self.basal_area[y, x]),
            dominant_species=self.dominant_species[y, x],
            ground_cover=float(self.ground_cover[y, x]),
            plants=list(self.plants_at(x, y)),
            is_passable=bool(self.is_passable[y, x]),
            provides_concealment=bool(self.provides_concealment[y, x]),
            provides_cover=bool(self.provides_cover[y, x]),
        )


def smooth_forest_mask(mask: np.ndarray, passes: int = CA_PASSES) -> np.ndarray:
    """
    Majority-rule smoothing over the 8-neighbourhood.

    Every pass reads the previous pass only: five or more forest neighbours
    make a tile forest, two or fewer clear it. Off-map cells count as open.
    """
    current = mask.astype(bool)
    for _ in range(passes):
        counts = neighbour_count(current)
        updated = current.copy()
        updated[counts >= 5] = True
        updated[counts <= 2] = False
        current = updated
    return current


def survey_basal_area(trunk_basal: np.ndarray, radius: int = SURVEY_RADIUS_TILES) -> np.ndarray:
    """
    Basal area per acre around every tile.

    Args:
        trunk_basal: Summed trunk cross-section (ft²) of the trees on each tile
        radius: Survey radius in tiles

    Returns:
        ft²/acre over the survey window
    """
    radius_ft = radius * TILE_EDGE_FT
    survey_area = math.pi * radius_ft * radius_ft
    return window_sum(trunk_basal, radius) / survey_area * SQ_FT_PER_ACRE


def tile_roll(x: int, y: int, seed: int, px: int, py: int, seed_scale: int = 1) -> float:
    """Positional hash of (x, y, seed) in [0, 1)."""
    return abs(x * px + y * py + seed * seed_scale) % 1000000 / 1000000.0


def _unit(x: int, y: int, seed: int, prime: int) -> float:
    key = (seed ^ (x * 73856093) ^ (y * 19349663)) & 0x7FFFFFFF
    return mix_seed(key, prime) / _UNIT_SCALE


def _size_for(score: float) -> PlantSize:
    if score > 0.8:
        return PlantSize.HUGE
    if score > 0.6:
        return PlantSize.LARGE
    if score > 0.4:
        return PlantSize.MEDIUM
    if score > 0.2:
        return PlantSize.SMALL
    return PlantSize.TINY


def tree_species(biome: BiomeType, moisture: MoistureLevel, roll: float) -> PlantSpecies:
    if biome == BiomeType.FOREST:
        if moisture == MoistureLevel.WET:
            return PlantSpecies.WILLOW if roll < 0.5 else PlantSpecies.OAK
        return PlantSpecies.OAK if roll < 0.5 else PlantSpecies.PINE
    if biome == BiomeType.MOUNTAIN:
        return PlantSpecies.PINE if roll < 0.7 else PlantSpecies.OAK
    if biome == BiomeType.SWAMP:
        return PlantSpecies.WILLOW
    return PlantSpecies.OAK


def shrub_species(moisture: MoistureLevel, roll: float) -> PlantSpecies:
    if moisture <= MoistureLevel.DRY:
        return PlantSpecies.HAZEL
    return PlantSpecies.ELDERBERRY if roll < 0.5 else PlantSpecies.FERN


class VegetationGenerator:
    """Generates vegetation from moisture, slope and soil."""

    def __init__(self, options: Optional[VegetationConfig] = None, logger=None):
        self.options = options
        self.logger = (logger or structlog.get_logger()).bind(stage="vegetation")

    def config_for(self, context: TacticalMapContext) -> VegetationConfig:
        return self.options or VegetationConfig.for_biome(context.biome)

    def generate(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
        ids: DeterministicIdGenerator,
    ) -> VegetationLayer:
        """
        Generate the vegetation layer.

        Args:
            geology: Geology layer (soil depth)
            topography: Topography layer (slope, elevation)
            hydrology: Hydrology layer (moisture, water depth)
            context: Generation context
            rng: Per-request random hierarchy
            ids: Identifier generator for this layer

        Returns:
            VegetationLayer
        """
        for name, layer in (
            ("geology", geology),
            ("topography", topography),
            ("hydrology", hydrology),
        ):
            if layer is None:
                raise LayerDependencyError("vegetation", name)

        config = self.config_for(context)
        width, height = hydrology.width, hydrology.height
        base_seed = rng.sub_seed(FORESTS)
        self.logger.info(
            "Generating vegetation",
            biome=context.biome.value,
            density_multiplier=config.density_multiplier,
            tree_probability=round(config.tree_probability, 4),
        )

        potential = self.potential(geology, topography, hydrology, context)

        forest_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["vegetation"]))
        forest_mask = self.forest_mask(potential, config, forest_noise)

        plants, arena = self._place_plants(
            forest_mask, potential, hydrology, topography, context, config, base_seed, ids
        )
        self._graft_trees(arena, config, base_seed)

        trunk_basal = np.zeros((height, width), dtype=np.float64)
        for tree in arena:
            trunk_basal[tree.y, tree.x] += basal_area(tree.trunk_diameter)
        basal = survey_basal_area(trunk_basal)

        has_tree = trunk_basal > 0
        clearings = self.find_clearings(has_tree, ids)

        layer = self._assemble(
            width, height, potential, forest_mask, plants, arena, basal, hydrology, clearings
        )
        layer.forest_patches = self.forest_patches(layer, arena, ids)

        self.logger.info(
            "Vegetation generated",
            trees=layer.total_tree_count,
            forest_patches=len(layer.forest_patches),
            clearings=len(clearings),
            grafts=len(arena.grafts),
            average_canopy=round(layer.average_canopy_coverage, 3),
        )
        return layer

    def potential(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        context: TacticalMapContext,
    ) -> np.ndarray:
        """Growth potential per tile in [0, 1]."""
        value = np.full(
            hydrology.moisture.shape,
            BIOME_POTENTIAL.get(context.biome, DEFAULT_BIOME_POTENTIAL),
            dtype=np.float64,
        )
        moisture_factor = np.vectorize(lambda code: MOISTURE_FACTORS[MoistureLevel(int(code))])
        value *= moisture_factor(hydrology.moisture)

        slope = topography.slope
        value *= np.where(slope > 60, 0.1, np.where(slope > 40, 0.3, np.where(slope > 20, 0.7, 1.0)))

        soil = geology.soil_depth
        value *= np.where(soil < 0.5, 0.2, np.where(soil < 2, 0.6, 1.0))

        if context.elevation == ElevationZone.ALPINE:
            # Tree line
            value = np.where(topography.elevation > 60, value * 0.3, value)
        return np.clip(value, 0.0, 1.0)

    def forest_mask(
        self, potential: np.ndarray, config: VegetationConfig, noise: NoiseField
    ) -> np.ndarray:
        height, width = potential.shape
        field_values = noise.grid(width, height, 0.1)
        threshold = (1 - config.forest_coverage) - potential * 0.3
        mask = (field_values > threshold) & (potential > 0.3)
        return smooth_forest_mask(mask, CA_PASSES)

    def _place_plants(
        self,
        forest_mask: np.ndarray,
        potential: np.ndarray,
        hydrology: HydrologyLayer,
        topography: TopographyLayer,
        context: TacticalMapContext,
        config: VegetationConfig,
        base_seed: int,
        ids: DeterministicIdGenerator,
    ) -> Tuple[Dict[Tuple[int, int], List[Plant]], TreeArena]:
        plant_seed = mix_seed(base_seed, LAYER_PRIMES["vegetation.trees"])
        detail_seed = mix_seed(base_seed, LAYER_PRIMES["vegetation.undergrowth"])
        open_noise = NoiseField(detail_seed)

        plants: Dict[Tuple[int, int], List[Plant]] = {}
        arena = TreeArena()

        def make(category, species, size, x, y, salt):
            return Plant(
                id=ids.feature_id(category.value),
                category=category,
                species=species,
                size=size,
                x=x,
                y=y,
                offset_x=_unit(x, y, detail_seed, 7 + salt),
                offset_y=_unit(x, y, detail_seed, 11 + salt),
                trunk_diameter=TRUNK_DIAMETERS[size] if category == PlantCategory.TREE else 0.0,
            )

        for y in range(hydrology.height):
            for x in range(hydrology.width):
                depth = hydrology.water_depth[y, x]
                if depth > 1:
                    continue
                moisture = MoistureLevel(int(hydrology.moisture[y, x]))
                tile_potential = float(potential[y, x])
                tile_plants: List[Plant] = []

                if forest_mask[y, x]:
                    if tile_roll(x, y, plant_seed, 374761393, 668265263) < config.tree_probability:
                        species = tree_species(
                            context.biome, moisture, _unit(x, y, detail_seed, 13)
                        )
                        size = _size_for(_unit(x, y, detail_seed, 17) * tile_potential)
                        tree = make(PlantCategory.TREE, species, size, x, y, 0)
                        arena.add(tree)
                        tile_plants.append(tree)
                    if (
                        tile_roll(x, y, plant_seed, 668265263, 374761393, 2)
                        < config.understory_probability
                    ):
                        species = shrub_species(moisture, _unit(x, y, detail_seed, 19))
                        size = _size_for(_unit(x, y, detail_seed, 23) * tile_potential)
                        tile_plants.append(make(PlantCategory.SHRUB, species, size, x, y, 1))
                elif tile_potential > 0.2 and moisture != MoistureLevel.ARID:
                    r = open_noise.generate_at(x * 0.2, y * 0.2)
                    if topography.slope[y, x] > 40:
                        shrub = r > 0.7
                    elif context.biome == BiomeType.PLAINS:
                        shrub = r > 0.8
                    else:
                        shrub = r > 0.5
                    if shrub:
                        species = shrub_species(moisture, _unit(x, y, detail_seed, 19))
                        tile_plants.append(
                            make(PlantCategory.SHRUB, species, PlantSize.SMALL, x, y, 1)
                        )
                    else:
                        tile_plants.append(
                            make(PlantCategory.HERBACEOUS, PlantSpecies.GRASS, PlantSize.SMALL, x, y, 2)
                        )

                if (
                    tile_potential > 0.1
                    and depth == 0
                    and tile_roll(x, y, plant_seed, 1442695041, 1274126177, 3)
                    < config.ground_cover_density
                ):
                    tile_plants.append(
                        make(PlantCategory.GROUND_COVER, PlantSpecies.MOSS, PlantSize.TINY, x, y, 3)
                    )

                if tile_plants:
                    plants[(x, y)] = tile_plants
        return plants, arena

    def _graft_trees(self, arena: TreeArena, config: VegetationConfig, base_seed: int) -> None:
        """Graft pairs of nearby trees of the same species."""
        trees = list(arena)
        if len(trees) < 2 or config.inosculation_chance <= 0:
            return
        graft_seed = mix_seed(base_seed, LAYER_PRIMES["vegetation"] + 2)
        positions = np.array([tree.position for tree in trees])
        tree_index = KDTree(positions)
        neighbours = tree_index.query_radius(positions, r=config.graft_distance)
        for i, found in enumerate(neighbours):
            for j in sorted(int(k) for k in found):
                if j <= i or trees[i].species != trees[j].species:
                    continue
                roll = _unit(i, j, graft_seed, 29)
                if roll < config.inosculation_chance:
                    arena.graft(trees[i].id, trees[j].id)

    def find_clearings(
        self, has_tree: np.ndarray, ids: DeterministicIdGenerator
    ) -> List[Clearing]:
        """
        Open areas ringed by trees.

        A treeless tile with at least five tree tiles in the ring around its
        inner 3x3 block is a candidate. Its radius grows along eight rays
        until a ray meets a tree or leaves the map, up to a cap of five.
        """
        height, width = has_tree.shape
        visited = np.zeros((height, width), dtype=bool)
        clearings = []
        for y in range(2, height - 2):
            for x in range(2, width - 2):
                if visited[y, x] or not self._is_clearing_center(has_tree, x, y):
                    continue
                radius = self._clearing_radius(has_tree, x, y)
                if radius < CLEARING_MIN_RADIUS:
                    continue
                clearings.append(Clearing(id=ids.feature_id("clearing"), x=x, y=y, radius=radius))
                visited[
                    max(0, y - radius) : min(height, y + radius + 1),
                    max(0, x - radius) : min(width, x + radius + 1),
                ] = True
        return clearings

    @staticmethod
    def _is_clearing_center(has_tree: np.ndarray, x: int, y: int) -> bool:
        if has_tree[y, x]:
            return False
        height, width = has_tree.shape
        window = has_tree[max(0, y - 3) : min(height, y + 4), max(0, x - 3) : min(width, x + 4)]
        inner = has_tree[max(0, y - 1) : min(height, y + 2), max(0, x - 1) : min(width, x + 2)]
        return int(window.sum()) - int(inner.sum()) >= 5

    @staticmethod
    def _clearing_radius(has_tree: np.ndarray, cx: int, cy: int) -> int:
        height, width = has_tree.shape
        radius = 1
        while radius < CLEARING_MAX_RADIUS:
            for ray in range(CLEARING_RAYS):
                angle = ray * 2 * math.pi / CLEARING_RAYS
                x = int(math.floor(cx + math.cos(angle) * radius + 0.5))
                y = int(math.floor(cy + math.sin(angle) * radius + 0.5))
                if not (0 <= x < width and 0 <= y < height):
                    return radius - 1
                if has_tree[y, x]:
                    return radius - 1
            radius += 1
        return radius

    def _assemble(
        self,
        width: int,
        height: int,
        potential: np.ndarray,
        forest_mask: np.ndarray,
        plants: Dict[Tuple[int, int], List[Plant]],
        arena: TreeArena,
        basal: np.ndarray,
        hydrology: HydrologyLayer,
        clearings: List[Clearing],
    ) -> VegetationLayer:
        vegetation_type = np.full((height, width), VegetationType.NONE, dtype=object)
        dominant = np.full((height, width), None, dtype=object)
        canopy_height = np.zeros((height, width), dtype=np.float64)
        canopy_density = np.zeros((height, width), dtype=np.float64)
        ground_cover = np.full((height, width), 0.2, dtype=np.float64)

        for y in range(height):
            for x in range(width):
                tile_plants = plants.get((x, y), [])
                shrubs = sum(1 for p in tile_plants if p.category == PlantCategory.SHRUB)
                canopy_height[y, x] = max((p.height for p in tile_plants), default=0.0)
                density = classify_density(float(basal[y, x]))
                moisture = MoistureLevel(int(hydrology.moisture[y, x]))

                if density == DensityClass.DENSE:
                    canopy_density[y, x] = 0.8
                    vegetation_type[y, x] = VegetationType.DENSE_TREES
                elif density != DensityClass.NONE:
                    canopy_density[y, x] = 0.5 if density == DensityClass.MODERATE else 0.2
                    vegetation_type[y, x] = VegetationType.SPARSE_TREES
                elif shrubs:
                    canopy_density[y, x] = 0.3
                    if moisture >= MoistureLevel.WET:
                        vegetation_type[y, x] = VegetationType.UNDERGROWTH
                    else:
                        vegetation_type[y, x] = VegetationType.SHRUBS
                elif tile_plants:
                    canopy_density[y, x] = 0.1
                    grass_only = all(
                        p.category in (PlantCategory.HERBACEOUS, PlantCategory.GROUND_COVER)
                        for p in tile_plants
                    ) and any(p.category == PlantCategory.HERBACEOUS for p in tile_plants)
                    if grass_only and moisture >= MoistureLevel.MOIST:
                        vegetation_type[y, x] = VegetationType.TALL_GRASS
                    else:
                        vegetation_type[y, x] = VegetationType.GRASS

                if tile_plants:
                    counts: Dict[PlantSpecies, int] = {}
                    for plant in tile_plants:
                        counts[plant.species] = counts.get(plant.species, 0) + 1
                    # First species to reach the highest count wins ties
                    dominant[y, x] = max(counts, key=lambda s: counts[s])
                if any(p.category == PlantCategory.GROUND_COVER for p in tile_plants):
                    ground_cover[y, x] = 0.8

        dense = vegetation_type == VegetationType.DENSE_TREES
        sparse = vegetation_type == VegetationType.SPARSE_TREES
        is_passable = ~dense & (hydrology.water_depth < 2)
        provides_concealment = (canopy_density > 0.3) | (vegetation_type == VegetationType.SHRUBS)
        provides_cover = dense | (sparse & (canopy_height > 15))

        covered = canopy_density[canopy_density > 0]
        return VegetationLayer(
            width=width,
            height=height,
            potential=potential,
            forest_mask=forest_mask,
            vegetation_type=vegetation_type,
            canopy_height=canopy_height,
            canopy_density=canopy_density,
            basal_area=basal,
            dominant_species=dominant,
            ground_cover=ground_cover,
            is_passable=np.asarray(is_passable, dtype=bool),
            provides_concealment=np.asarray(provides_concealment, dtype=bool),
            provides_cover=np.asarray(provides_cover, dtype=bool),
            plants=plants,
            trees=arena,
            clearings=clearings,
            total_tree_count=len(arena),
            average_canopy_coverage=float(covered.mean()) if covered.size else 0.0,
        )

    def forest_patches(
        self, layer: VegetationLayer, arena: TreeArena, ids: DeterministicIdGenerator
    ) -> List[ForestPatch]:
        """Contiguous (8-connected) tree cover of at least three tiles."""
        tree_cover = layer.is_tree_cover()
        labels, count = ndimage.label(tree_cover, structure=np.ones((3, 3), dtype=int))
        if count == 0:
            return []

        # Order patches by their first tile in row-major order
        first_seen: Dict[int, int] = {}
        for flat_index, label in enumerate(labels.ravel()):
            if label and label not in first_seen:
                first_seen[int(label)] = flat_index

        patches = []
        for label in sorted(first_seen, key=first_seen.get):
            coords = np.argwhere(labels == label)
            if len(coords) < 3:
                continue
            tiles = [(int(x), int(y)) for y, x in coords]
            conifers = 0
            deciduous = 0
            for x, y in tiles:
                for tree in arena.at(x, y):
                    if tree.species == PlantSpecies.PINE:
                        conifers += 1
                    else:
                        deciduous += 1
            if conifers > deciduous * 2:
                forest_type = "coniferous"
            elif deciduous > conifers * 2:
                forest_type = "deciduous"
            else:
                forest_type = "mixed"
            density = float(np.mean([layer.canopy_density[y, x] for x, y in tiles]))
            patches.append(
                ForestPatch(
                    id=ids.feature_id("forest"),
                    tiles=tiles,
                    forest_type=forest_type,
                    density=density,
                )
            )
        return patches
