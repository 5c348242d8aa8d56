"""
Structures layer: buildings, roads and bridges.

This module implements:
- Building site scoring and footprint checks
- Building placement by development level with minimum spacing
- Road network connecting buildings (nearest-neighbour spanning tree)
- Bridges where roads cross open water
- Decorative structures (wells, shrines)
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog
from sklearn.neighbors import KDTree

from ..errors import LayerDependencyError
from ..utils.random import (
    BUILDINGS,
    ROADS,
    CoordinatedRandomGenerator,
    DeterministicIdGenerator,
)
from .context import DevelopmentLevel, Season, TacticalMapContext
from .hydrology import HydrologyLayer
from .noise import NoiseField
from .seed import LAYER_PRIMES, mix_seed
from .topography import TopographyLayer
from .vegetation import Clearing, VegetationLayer, VegetationType

logger = structlog.get_logger()

FEET_PER_TILE = 5


class StructureType(str, Enum):
    HOUSE = "house"
    BARN = "barn"
    TOWER = "tower"
    WALL = "wall"
    ROAD = "road"
    BRIDGE = "bridge"
    WELL = "well"
    SHRINE = "shrine"
    RUIN = "ruin"


class BuildingType(str, Enum):
    HUT = "hut"
    COTTAGE = "cottage"
    BARN = "barn"
    HOUSE = "house"
    FARMHOUSE = "farmhouse"
    TAVERN = "tavern"
    CHURCH = "church"
    TOWNHOUSE = "townhouse"
    MANOR = "manor"
    TOWER = "tower"


class MaterialType(str, Enum):
    WOOD = "wood"
    STONE = "stone"
    THATCH = "thatch"
    DIRT = "dirt"
    GRAVEL = "gravel"
    COBBLESTONE = "cobblestone"


class StructureCondition(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    RUINED = "ruined"


BUILDING_COUNTS: Dict[DevelopmentLevel, int] = {
    DevelopmentLevel.WILDERNESS: 0,
    DevelopmentLevel.FRONTIER: 1,
    DevelopmentLevel.RURAL: 3,
    DevelopmentLevel.SETTLED: 8,
    DevelopmentLevel.URBAN: 15,
    DevelopmentLevel.RUINS: 3,
}

# (width, depth) in feet
BUILDING_SIZES: Dict[BuildingType, Tuple[int, int]] = {
    BuildingType.HUT: (10, 10),
    BuildingType.COTTAGE: (20, 20),
    BuildingType.BARN: (25, 20),
    BuildingType.HOUSE: (20, 25),
    BuildingType.FARMHOUSE: (30, 25),
    BuildingType.TAVERN: (35, 30),
    BuildingType.CHURCH: (40, 35),
    BuildingType.TOWNHOUSE: (15, 20),
    BuildingType.MANOR: (45, 40),
    BuildingType.TOWER: (15, 15),
}

FLOORS: Dict[BuildingType, int] = {
    BuildingType.TAVERN: 2,
    BuildingType.CHURCH: 2,
    BuildingType.MANOR: 2,
    BuildingType.TOWNHOUSE: 2,
    BuildingType.TOWER: 3,
}

# Road (width in tiles, surface) per development level
ROAD_STYLES: Dict[DevelopmentLevel, Tuple[int, MaterialType]] = {
    DevelopmentLevel.FRONTIER: (1, MaterialType.DIRT),
    DevelopmentLevel.RURAL: (1, MaterialType.DIRT),
    DevelopmentLevel.SETTLED: (2, MaterialType.GRAVEL),
    DevelopmentLevel.URBAN: (2, MaterialType.COBBLESTONE),
    DevelopmentLevel.RUINS: (1, MaterialType.DIRT),
}


@dataclass
class StructuresOptions:
    """Structure placement options"""

    margin: int = 2  # tiles kept free along the map border
    max_site_slope: float = 35.0  # degrees
    max_footprint_slope: float = 45.0
    water_search_radius: int = 3
    min_building_spacing: float = 5.0  # tiles between building origins
    well_threshold: float = 0.7
    shrine_threshold: float = 0.8
    stone_bridge_threshold: float = 0.5


@dataclass
class BuildingSite:
    x: int
    y: int
    quality: float


@dataclass
class Building:
    id: str
    building_type: BuildingType
    x: int  # top-left tile
    y: int
    width: int  # tiles
    depth: int  # tiles
    material: MaterialType
    condition: StructureCondition
    floors: int = 1

    @property
    def center(self) -> Tuple[int, int]:
        return (self.x + self.width // 2, self.y + self.depth // 2)

    @property
    def height_ft(self) -> float:
        if self.building_type == BuildingType.TOWER:
            height = 30.0
        else:
            height = self.floors * 10.0
        if self.condition == StructureCondition.RUINED:
            height *= 0.5
        return height

    def tiles(self) -> List[Tuple[int, int]]:
        return [
            (self.x + dx, self.y + dy) for dy in range(self.depth) for dx in range(self.width)
        ]


@dataclass
class RoadSegment:
    id: str
    points: List[Tuple[int, int]]
    width: int
    material: MaterialType


@dataclass
class RoadNetwork:
    segments: List[RoadSegment] = field(default_factory=list)
    intersections: List[Tuple[int, int]] = field(default_factory=list)
    total_length: int = 0


@dataclass
class Bridge:
    id: str
    start: Tuple[int, int]  # last dry tile before the crossing
    end: Tuple[int, int]  # first dry tile after it
    tiles: List[Tuple[int, int]]  # water tiles spanned
    orientation: str  # horizontal or vertical
    length: int
    material: MaterialType


@dataclass
class Decoration:
    id: str
    x: int
    y: int
    structure_type: StructureType


@dataclass
class StructureTile:
    has_structure: bool
    structure_type: Optional[StructureType]
    material: Optional[MaterialType]
    height: float
    is_road: bool
    condition: Optional[StructureCondition]


@dataclass
class StructuresLayer:
    """Structures layer output. Heights in feet, grids indexed [y, x]."""

    width: int
    height: int
    structure_type: np.ndarray  # object array of StructureType or None
    material: np.ndarray  # object array of MaterialType or None
    structure_height: np.ndarray
    is_road: np.ndarray
    condition: np.ndarray  # object array of StructureCondition or None
    sites: List[BuildingSite] = field(default_factory=list)
    buildings: List[Building] = field(default_factory=list)
    roads: RoadNetwork = field(default_factory=RoadNetwork)
    bridges: List[Bridge] = field(default_factory=list)
    decorations: List[Decoration] = field(default_factory=list)
    total_structure_count: int = 0

    @property
    def has_structure(self) -> np.ndarray:
        return np.array(
            [[value is not None for value in row] for row in self.structure_type], dtype=bool
        ).reshape(self.height, self.width)

    def building_mask(self) -> np.ndarray:
        mask = np.zeros((self.height, self.width), dtype=bool)
        for building in self.buildings:
            for x, y in building.tiles():
                mask[y, x] = True
        return mask

    def tile(self, x: int, y: int) -> StructureTile:
        structure_type = self.structure_type[y, x]
        return StructureTile(
            has_structure=structure_type is not None,
            structure_type=structure_type,
            material=self.material[y, x],
            height=float(self.structure_height[y, x]),
            is_road=bool(self.is_road[y, x]),
            condition=self.condition[y, x],
        )


def rasterise_line(start: Tuple[int, int], end: Tuple[int, int]) -> List[Tuple[int, int]]:
    """Tiles along a straight line, one per step of the longer axis."""
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    steps = max(abs(dx), abs(dy))
    if steps == 0:
        return [start]
    points = []
    for i in range(steps + 1):
        x = int(math.floor(start[0] + dx * i / steps + 0.5))
        y = int(math.floor(start[1] + dy * i / steps + 0.5))
        if not points or points[-1] != (x, y):
            points.append((x, y))
    return points


def select_building_type(development: DevelopmentLevel, roll: float) -> BuildingType:
    if development == DevelopmentLevel.FRONTIER:
        return BuildingType.HUT
    if development == DevelopmentLevel.RURAL:
        return BuildingType.COTTAGE if roll < 0.5 else BuildingType.BARN
    if development == DevelopmentLevel.SETTLED:
        if roll < 0.5:
            return BuildingType.HOUSE
        if roll < 0.8:
            return BuildingType.FARMHOUSE
        if roll < 0.95:
            return BuildingType.TAVERN
        return BuildingType.CHURCH
    if development == DevelopmentLevel.URBAN:
        if roll < 0.4:
            return BuildingType.TOWNHOUSE
        if roll < 0.7:
            return BuildingType.HOUSE
        if roll < 0.9:
            return BuildingType.MANOR
        return BuildingType.TOWER
    if development == DevelopmentLevel.RUINS:
        if roll < 0.6:
            return BuildingType.COTTAGE
        if roll < 0.85:
            return BuildingType.TOWER
        return BuildingType.CHURCH
    return BuildingType.COTTAGE


def building_material(
    building_type: BuildingType, context: TacticalMapContext, roll: float
) -> MaterialType:
    if context.development == DevelopmentLevel.RUINS:
        return MaterialType.STONE
    if building_type in (BuildingType.TOWER, BuildingType.CHURCH, BuildingType.MANOR):
        return MaterialType.STONE
    if context.development == DevelopmentLevel.FRONTIER:
        return MaterialType.WOOD
    if context.development == DevelopmentLevel.URBAN:
        return MaterialType.STONE if roll < 0.7 else MaterialType.WOOD
    if building_type == BuildingType.BARN:
        return MaterialType.WOOD
    if context.season == Season.WINTER:
        return MaterialType.STONE if roll < 0.6 else MaterialType.WOOD
    return MaterialType.WOOD if roll < 0.6 else MaterialType.STONE


def building_condition(context: TacticalMapContext, roll: float) -> StructureCondition:
    if context.development == DevelopmentLevel.RUINS:
        return StructureCondition.RUINED if roll < 0.7 else StructureCondition.POOR
    if context.development == DevelopmentLevel.FRONTIER:
        return StructureCondition.FAIR
    if context.development == DevelopmentLevel.URBAN and roll > 0.9:
        return StructureCondition.EXCELLENT
    return StructureCondition.GOOD


class StructuresGenerator:
    """Places buildings, roads, bridges and decorations."""

    def __init__(self, options: Optional[StructuresOptions] = None, logger=None):
        self.options = options or StructuresOptions()
        self.logger = (logger or structlog.get_logger()).bind(stage="structures")

    def generate(
        self,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
        ids: DeterministicIdGenerator,
    ) -> StructuresLayer:
        """
        Generate the structures layer.

        Args:
            topography: Topography layer (slope)
            hydrology: Hydrology layer (water depth)
            vegetation: Vegetation layer (vegetation type, clearings)
            context: Generation context
            rng: Per-request random hierarchy
            ids: Identifier generator for this layer

        Returns:
            StructuresLayer
        """
        for name, layer in (
            ("topography", topography),
            ("hydrology", hydrology),
            ("vegetation", vegetation),
        ):
            if layer is None:
                raise LayerDependencyError("structures", name)

        width, height = vegetation.width, vegetation.height
        self.logger.info("Generating structures", development=context.development.value)

        sites = self.identify_sites(topography, hydrology, vegetation)
        self.logger.debug("Identified building sites", count=len(sites))

        buildings = self.place_buildings(sites, topography, hydrology, vegetation, context, rng, ids)
        roads = self.road_network(buildings, width, height, context, ids)
        road_noise = NoiseField(mix_seed(rng.sub_seed(ROADS), LAYER_PRIMES["structures.roads"]))
        bridges = self.place_bridges(roads, hydrology, road_noise, ids)

        decoration_noise = NoiseField(
            mix_seed(rng.sub_seed(BUILDINGS), LAYER_PRIMES["structures.buildings"])
        )
        decorations = self.place_decorations(
            buildings, vegetation, hydrology, context, decoration_noise, ids
        )

        layer = self._tiles(
            width, height, buildings, roads, bridges, decorations, hydrology.water_depth > 0
        )
        layer.sites = sites
        layer.total_structure_count = len(buildings) + len(bridges) + len(decorations)

        self.logger.info(
            "Structures generated",
            buildings=len(buildings),
            roads=len(roads.segments),
            bridges=len(bridges),
            decorations=len(decorations),
            total_structures=layer.total_structure_count,
        )
        return layer

    def _buildable(
        self,
        x: int,
        y: int,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
    ) -> bool:
        return (
            hydrology.water_depth[y, x] <= 0
            and topography.slope[y, x] <= self.options.max_footprint_slope
            and vegetation.vegetation_type[y, x] != VegetationType.DENSE_TREES
        )

    def footprint_fits(
        self,
        x: int,
        y: int,
        footprint_width: int,
        footprint_depth: int,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        occupied: Optional[np.ndarray] = None,
    ) -> bool:
        """True when every tile of the footprint is on the map and buildable."""
        if x + footprint_width > topography.width or y + footprint_depth > topography.height:
            return False
        for dy in range(footprint_depth):
            for dx in range(footprint_width):
                tx, ty = x + dx, y + dy
                if occupied is not None and occupied[ty, tx]:
                    return False
                if not self._buildable(tx, ty, topography, hydrology, vegetation):
                    return False
        return True

    def identify_sites(
        self,
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
    ) -> List[BuildingSite]:
        """Candidate building sites, best first."""
        width, height = topography.width, topography.height
        margin = self.options.margin
        in_clearing = self._clearing_mask(vegetation.clearings, width, height)

        water = hydrology.water_depth > 0
        r = self.options.water_search_radius
        sites = []
        for y in range(margin, height - margin):
            for x in range(margin, width - margin):
                if water[y, x]:
                    continue
                if topography.slope[y, x] > self.options.max_site_slope:
                    continue
                vegetation_type = vegetation.vegetation_type[y, x]
                if vegetation_type == VegetationType.DENSE_TREES:
                    continue

                quality = 1.0
                if (
                    vegetation_type
                    in (VegetationType.NONE, VegetationType.GRASS, VegetationType.TALL_GRASS)
                    or in_clearing[y, x]
                ):
                    quality += 0.3
                if topography.slope[y, x] < 5:
                    quality += 0.2
                nearby = water[max(0, y - r) : y + r + 1, max(0, x - r) : x + r + 1]
                if nearby.any():
                    quality += 0.2

                if self.footprint_fits(x, y, 2, 2, topography, hydrology, vegetation):
                    sites.append(BuildingSite(x=x, y=y, quality=round(quality, 6)))

        # sorted() is stable, so equal scores keep row-major order
        return sorted(sites, key=lambda site: -site.quality)

    @staticmethod
    def _clearing_mask(clearings: List[Clearing], width: int, height: int) -> np.ndarray:
        mask = np.zeros((height, width), dtype=bool)
        ys, xs = np.mgrid[0:height, 0:width]
        for clearing in clearings:
            mask |= (xs - clearing.x) ** 2 + (ys - clearing.y) ** 2 <= clearing.radius ** 2
        return mask

    def place_buildings(
        self,
        sites: List[BuildingSite],
        topography: TopographyLayer,
        hydrology: HydrologyLayer,
        vegetation: VegetationLayer,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
        ids: DeterministicIdGenerator,
    ) -> List[Building]:
        """Walk the ranked sites until the development level's count is reached."""
        target = BUILDING_COUNTS.get(context.development, 0)
        if target == 0 or not sites:
            return []

        stream = rng.stream(BUILDINGS)
        occupied = np.zeros((topography.height, topography.width), dtype=bool)
        buildings: List[Building] = []
        placed_positions: List[Tuple[int, int]] = []

        for site in sites:
            if len(buildings) >= target:
                break

            # Check spacing constraint
            if placed_positions:
                tree = KDTree(placed_positions)
                distances, _ = tree.query([[site.x, site.y]], k=1)
                if distances[0][0] < self.options.min_building_spacing:
                    continue

            building_type = select_building_type(context.development, stream.next())
            width_ft, depth_ft = BUILDING_SIZES[building_type]
            footprint_width = int(math.ceil(width_ft / FEET_PER_TILE))
            footprint_depth = int(math.ceil(depth_ft / FEET_PER_TILE))
            if not self.footprint_fits(
                site.x,
                site.y,
                footprint_width,
                footprint_depth,
                topography,
                hydrology,
                vegetation,
                occupied,
            ):
                continue

            building = Building(
                id=ids.feature_id("building"),
                building_type=building_type,
                x=site.x,
                y=site.y,
                width=footprint_width,
                depth=footprint_depth,
                material=building_material(building_type, context, stream.next()),
                condition=building_condition(context, stream.next()),
                floors=FLOORS.get(building_type, 1),
            )
            buildings.append(building)
            placed_positions.append((site.x, site.y))
            for tx, ty in building.tiles():
                occupied[ty, tx] = True
        return buildings

    def road_network(
        self,
        buildings: List[Building],
        width: int,
        height: int,
        context: TacticalMapContext,
        ids: DeterministicIdGenerator,
    ) -> RoadNetwork:
        """
        Connect buildings with straight roads.

        Builds a spanning tree by repeatedly joining the nearest unconnected
        building to the connected set. A lone building gets a road to the
        nearest map edge. Water tiles stay on the path so crossings can be
        bridged.
        """
        if context.development == DevelopmentLevel.WILDERNESS or not buildings:
            return RoadNetwork()

        road_width, material = ROAD_STYLES.get(context.development, (1, MaterialType.DIRT))
        segments: List[RoadSegment] = []

        if len(buildings) == 1:
            cx, cy = buildings[0].center
            distances = [
                (cx, (0, cy)),
                (width - 1 - cx, (width - 1, cy)),
                (cy, (cx, 0)),
                (height - 1 - cy, (cx, height - 1)),
            ]
            _, edge = min(distances, key=lambda item: item[0])
            points = rasterise_line((cx, cy), edge)
            if len(points) > 1:
                segments.append(
                    RoadSegment(id=ids.feature_id("road"), points=points, width=road_width, material=material)
                )
        else:
            connected = [0]
            remaining = list(range(1, len(buildings)))
            while remaining:
                best: Optional[Tuple[float, int, int]] = None
                for source in connected:
                    sx, sy = buildings[source].center
                    for target in remaining:
                        tx, ty = buildings[target].center
                        distance = math.hypot(tx - sx, ty - sy)
                        if best is None or distance < best[0]:
                            best = (distance, source, target)
                _, source, target = best
                points = rasterise_line(buildings[source].center, buildings[target].center)
                if len(points) > 1:
                    segments.append(
                        RoadSegment(
                            id=ids.feature_id("road"),
                            points=points,
                            width=road_width,
                            material=material,
                        )
                    )
                connected.append(target)
                remaining.remove(target)

        seen: Dict[Tuple[int, int], int] = {}
        intersections: List[Tuple[int, int]] = []
        for segment in segments:
            for point in segment.points:
                seen[point] = seen.get(point, 0) + 1
                if seen[point] == 2:
                    intersections.append(point)

        return RoadNetwork(
            segments=segments,
            intersections=intersections,
            total_length=sum(len(segment.points) for segment in segments),
        )

    def place_bridges(
        self,
        roads: RoadNetwork,
        hydrology: HydrologyLayer,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[Bridge]:
        """A bridge for every dry -> water -> dry run along a road."""
        bridges = []
        water = hydrology.water_depth > 0
        for segment in roads.segments:
            points = segment.points
            i = 1
            while i < len(points):
                prev_x, prev_y = points[i - 1]
                x, y = points[i]
                if not water[prev_y, prev_x] and water[y, x]:
                    end = i
                    while end < len(points) and water[points[end][1], points[end][0]]:
                        end += 1
                    if end < len(points):
                        start_point = points[i - 1]
                        end_point = points[end]
                        span_x = abs(end_point[0] - start_point[0])
                        span_y = abs(end_point[1] - start_point[1])
                        material = (
                            MaterialType.STONE
                            if noise.generate_at(start_point[0] * 0.1, start_point[1] * 0.1)
                            > self.options.stone_bridge_threshold
                            else MaterialType.WOOD
                        )
                        bridges.append(
                            Bridge(
                                id=ids.feature_id("bridge"),
                                start=start_point,
                                end=end_point,
                                tiles=list(points[i:end]),
                                orientation="horizontal" if span_x > span_y else "vertical",
                                length=max(span_x, span_y),
                                material=material,
                            )
                        )
                    i = end
                i += 1
        return bridges

    def place_decorations(
        self,
        buildings: List[Building],
        vegetation: VegetationLayer,
        hydrology: HydrologyLayer,
        context: TacticalMapContext,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[Decoration]:
        if context.development == DevelopmentLevel.WILDERNESS:
            return []

        width, height = vegetation.width, vegetation.height
        occupied = set()
        for building in buildings:
            occupied.update(building.tiles())

        decorations = []
        # Wells beside buildings
        for building in buildings:
            if noise.generate_at(building.x * 0.2, building.y * 0.2) <= self.options.well_threshold:
                continue
            for dx, dy in ((-2, 0), (2, 0), (0, -2), (0, 2)):
                x, y = building.x + dx, building.y + dy
                if not (0 <= x < width and 0 <= y < height):
                    continue
                if (x, y) in occupied or hydrology.water_depth[y, x] > 0:
                    continue
                if vegetation.vegetation_type[y, x] == VegetationType.DENSE_TREES:
                    continue
                decorations.append(
                    Decoration(id=ids.feature_id("well"), x=x, y=y, structure_type=StructureType.WELL)
                )
                occupied.add((x, y))
                break

        # Shrines in clearings
        if context.development in (DevelopmentLevel.SETTLED, DevelopmentLevel.URBAN):
            for clearing in vegetation.clearings:
                if (clearing.x, clearing.y) in occupied:
                    continue
                if noise.generate_at(clearing.x * 0.15, clearing.y * 0.15) > self.options.shrine_threshold:
                    decorations.append(
                        Decoration(
                            id=ids.feature_id("shrine"),
                            x=clearing.x,
                            y=clearing.y,
                            structure_type=StructureType.SHRINE,
                        )
                    )
                    occupied.add((clearing.x, clearing.y))
        return decorations

    def _tiles(
        self,
        width: int,
        height: int,
        buildings: List[Building],
        roads: RoadNetwork,
        bridges: List[Bridge],
        decorations: List[Decoration],
        water: Optional[np.ndarray] = None,
    ) -> StructuresLayer:
        structure_type = np.full((height, width), None, dtype=object)
        material = np.full((height, width), None, dtype=object)
        condition = np.full((height, width), None, dtype=object)
        structure_height = np.zeros((height, width), dtype=np.float64)
        is_road = np.zeros((height, width), dtype=bool)

        for building in buildings:
            if building.condition == StructureCondition.RUINED:
                kind = StructureType.RUIN
            elif building.building_type == BuildingType.BARN:
                kind = StructureType.BARN
            elif building.building_type == BuildingType.TOWER:
                kind = StructureType.TOWER
            else:
                kind = StructureType.HOUSE
            for x, y in building.tiles():
                structure_type[y, x] = kind
                material[y, x] = building.material
                condition[y, x] = building.condition
                structure_height[y, x] = building.height_ft

        for segment in roads.segments:
            for x, y in segment.points:
                # Roads never overwrite buildings; unbridged water stays unpaved
                if structure_type[y, x] is not None:
                    continue
                if water is not None and water[y, x]:
                    continue
                structure_type[y, x] = StructureType.ROAD
                material[y, x] = segment.material
                condition[y, x] = StructureCondition.GOOD
                is_road[y, x] = True

        for bridge in bridges:
            for x, y in bridge.tiles:
                structure_type[y, x] = StructureType.BRIDGE
                material[y, x] = bridge.material
                condition[y, x] = StructureCondition.GOOD
                structure_height[y, x] = 5.0
                is_road[y, x] = True

        for decoration in decorations:
            x, y = decoration.x, decoration.y
            is_well = decoration.structure_type == StructureType.WELL
            structure_type[y, x] = decoration.structure_type
            material[y, x] = MaterialType.STONE if is_well else MaterialType.WOOD
            condition[y, x] = StructureCondition.GOOD
            structure_height[y, x] = 3.0 if is_well else 8.0
            is_road[y, x] = False

        return StructuresLayer(
            width=width,
            height=height,
            structure_type=structure_type,
            material=material,
            structure_height=structure_height,
            is_road=is_road,
            condition=condition,
            buildings=buildings,
            roads=roads,
            bridges=bridges,
            decorations=decorations,
        )
