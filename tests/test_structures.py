"""Tests for the structures layer."""

import math
from types import SimpleNamespace

import numpy as np
import pytest

from tactical_mapgen.core.context import BiomeType, DevelopmentLevel, TacticalMapContext
from tactical_mapgen.core.geology import GeologyGenerator
from tactical_mapgen.core.hydrology import HydrologyGenerator
from tactical_mapgen.core.noise import NoiseField
from tactical_mapgen.core.structures import (
    BUILDING_COUNTS,
    Building,
    BuildingType,
    MaterialType,
    RoadNetwork,
    RoadSegment,
    StructureCondition,
    StructuresGenerator,
    StructureType,
    building_condition,
    rasterise_line,
    select_building_type,
)
from tactical_mapgen.core.topography import TopographyGenerator
from tactical_mapgen.core.vegetation import VegetationGenerator, VegetationType
from tactical_mapgen.errors import LayerDependencyError
from tactical_mapgen.utils.random import CoordinatedRandomGenerator, DeterministicIdGenerator


def build(context, seed=12345, size=(40, 40)):
    rng = CoordinatedRandomGenerator(seed)
    ids = DeterministicIdGenerator(seed)
    geology = GeologyGenerator().generate(size[0], size[1], context, rng)
    topography = TopographyGenerator().generate(geology, context, rng)
    hydrology = HydrologyGenerator().generate(geology, topography, context, rng, ids)
    vegetation = VegetationGenerator().generate(geology, topography, hydrology, context, rng, ids)
    structures = StructuresGenerator().generate(topography, hydrology, vegetation, context, rng, ids)
    return topography, hydrology, vegetation, structures


def flat_layers(width=12, height=12):
    """Dry, flat, open ground as minimal layer stand-ins."""
    topography = SimpleNamespace(
        width=width, height=height, slope=np.zeros((height, width))
    )
    hydrology = SimpleNamespace(
        width=width, height=height, water_depth=np.zeros((height, width))
    )
    vegetation = SimpleNamespace(
        width=width,
        height=height,
        vegetation_type=np.full((height, width), VegetationType.GRASS, dtype=object),
        clearings=[],
    )
    return topography, hydrology, vegetation


def make_building(x, y, building_type=BuildingType.COTTAGE):
    return Building(
        id="building_1",
        building_type=building_type,
        x=x,
        y=y,
        width=2,
        depth=2,
        material=MaterialType.WOOD,
        condition=StructureCondition.GOOD,
    )


class TestHelpers:
    def test_rasterise_horizontal(self):
        assert rasterise_line((0, 0), (3, 0)) == [(0, 0), (1, 0), (2, 0), (3, 0)]

    def test_rasterise_single_point(self):
        assert rasterise_line((2, 2), (2, 2)) == [(2, 2)]

    def test_rasterise_diagonal_is_connected(self):
        points = rasterise_line((0, 0), (5, 3))
        assert points[0] == (0, 0) and points[-1] == (5, 3)
        for (ax, ay), (bx, by) in zip(points, points[1:]):
            assert max(abs(bx - ax), abs(by - ay)) == 1

    def test_building_types(self):
        assert select_building_type(DevelopmentLevel.FRONTIER, 0.9) == BuildingType.HUT
        assert select_building_type(DevelopmentLevel.RURAL, 0.2) == BuildingType.COTTAGE
        assert select_building_type(DevelopmentLevel.RURAL, 0.7) == BuildingType.BARN
        assert select_building_type(DevelopmentLevel.SETTLED, 0.97) == BuildingType.CHURCH
        assert select_building_type(DevelopmentLevel.URBAN, 0.95) == BuildingType.TOWER

    def test_ruins_condition(self):
        context = TacticalMapContext(development=DevelopmentLevel.RUINS)
        assert building_condition(context, 0.1) == StructureCondition.RUINED
        assert building_condition(context, 0.9) == StructureCondition.POOR

    def test_building_height(self):
        tower = make_building(0, 0, BuildingType.TOWER)
        assert tower.height_ft == 30.0
        tower.condition = StructureCondition.RUINED
        assert tower.height_ft == 15.0
        assert make_building(0, 0).height_ft == 10.0


class TestSites:
    def test_sites_respect_margin_and_water(self):
        topography, hydrology, vegetation = flat_layers()
        hydrology.water_depth[5, 5] = 1.0
        sites = StructuresGenerator().identify_sites(topography, hydrology, vegetation)
        assert sites
        for site in sites:
            assert 2 <= site.x < 10 and 2 <= site.y < 10
            assert (site.x, site.y) != (5, 5)

    def test_sites_near_water_rank_first(self):
        topography, hydrology, vegetation = flat_layers()
        hydrology.water_depth[2, 2] = 1.0
        sites = StructuresGenerator().identify_sites(topography, hydrology, vegetation)
        qualities = [site.quality for site in sites]
        assert qualities == sorted(qualities, reverse=True)
        assert sites[0].quality == pytest.approx(1.7)

    def test_dense_trees_excluded(self):
        topography, hydrology, vegetation = flat_layers()
        vegetation.vegetation_type[:, :] = VegetationType.DENSE_TREES
        assert StructuresGenerator().identify_sites(topography, hydrology, vegetation) == []

    def test_spacing(self):
        topography, hydrology, vegetation = flat_layers(30, 30)
        generator = StructuresGenerator()
        sites = generator.identify_sites(topography, hydrology, vegetation)
        buildings = generator.place_buildings(
            sites,
            topography,
            hydrology,
            vegetation,
            TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.SETTLED),
            CoordinatedRandomGenerator(7),
            DeterministicIdGenerator(7),
        )
        assert 0 < len(buildings) <= BUILDING_COUNTS[DevelopmentLevel.SETTLED]
        for i, a in enumerate(buildings):
            for b in buildings[i + 1 :]:
                assert math.hypot(a.x - b.x, a.y - b.y) >= 5
                assert not set(a.tiles()) & set(b.tiles())


class TestRoads:
    def test_single_building_reaches_nearest_edge(self):
        roads = StructuresGenerator().road_network(
            [make_building(3, 8)],
            20,
            20,
            TacticalMapContext(development=DevelopmentLevel.RURAL),
            DeterministicIdGenerator(1),
        )
        assert len(roads.segments) == 1
        assert roads.segments[0].points == [(4, 9), (3, 9), (2, 9), (1, 9), (0, 9)]
        assert roads.segments[0].material == MaterialType.DIRT

    def test_spanning_tree(self):
        buildings = [make_building(2, 2), make_building(10, 2), make_building(2, 12)]
        roads = StructuresGenerator().road_network(
            buildings,
            20,
            20,
            TacticalMapContext(development=DevelopmentLevel.URBAN),
            DeterministicIdGenerator(1),
        )
        assert len(roads.segments) == 2
        assert all(segment.width == 2 for segment in roads.segments)
        assert all(segment.material == MaterialType.COBBLESTONE for segment in roads.segments)
        assert roads.total_length == sum(len(s.points) for s in roads.segments)
        assert (3, 3) in roads.intersections

    def test_wilderness_has_no_roads(self):
        roads = StructuresGenerator().road_network(
            [make_building(2, 2)], 20, 20, TacticalMapContext(), DeterministicIdGenerator(1)
        )
        assert roads.segments == []


class TestBridges:
    def test_bridge_spans_water_run(self):
        water = np.zeros((5, 8))
        water[:, 3:5] = 1.0
        roads = RoadNetwork(
            segments=[
                RoadSegment(
                    id="road_1",
                    points=[(x, 2) for x in range(8)],
                    width=1,
                    material=MaterialType.DIRT,
                )
            ]
        )
        bridges = StructuresGenerator().place_bridges(
            roads, SimpleNamespace(water_depth=water), NoiseField(1), DeterministicIdGenerator(1)
        )
        assert len(bridges) == 1
        bridge = bridges[0]
        assert bridge.start == (2, 2) and bridge.end == (5, 2)
        assert bridge.tiles == [(3, 2), (4, 2)]
        assert bridge.orientation == "horizontal"
        assert bridge.length == 3

    def test_road_ending_in_water_gets_no_bridge(self):
        water = np.zeros((5, 8))
        water[:, 6:] = 1.0
        roads = RoadNetwork(
            segments=[
                RoadSegment(
                    id="road_1",
                    points=[(x, 2) for x in range(8)],
                    width=1,
                    material=MaterialType.DIRT,
                )
            ]
        )
        bridges = StructuresGenerator().place_bridges(
            roads, SimpleNamespace(water_depth=water), NoiseField(1), DeterministicIdGenerator(1)
        )
        assert bridges == []

    def test_unbridged_water_not_paved(self):
        water = np.zeros((5, 8), dtype=bool)
        water[:, 6:] = True
        roads = RoadNetwork(
            segments=[
                RoadSegment(
                    id="road_1",
                    points=[(x, 2) for x in range(8)],
                    width=1,
                    material=MaterialType.DIRT,
                )
            ]
        )
        layer = StructuresGenerator()._tiles(8, 5, [], roads, [], [], water)
        assert [bool(layer.is_road[2, x]) for x in range(8)] == [True] * 6 + [False] * 2
        assert layer.structure_type[2, 6] is None
        assert layer.structure_type[2, 5] == StructureType.ROAD

    def test_bridged_water_is_bridge(self):
        water = np.zeros((5, 8), dtype=bool)
        water[:, 3:5] = True
        roads = RoadNetwork(
            segments=[
                RoadSegment(
                    id="road_1",
                    points=[(x, 2) for x in range(8)],
                    width=1,
                    material=MaterialType.DIRT,
                )
            ]
        )
        generator = StructuresGenerator()
        bridges = generator.place_bridges(
            roads, SimpleNamespace(water_depth=water.astype(float)), NoiseField(1),
            DeterministicIdGenerator(1),
        )
        layer = generator._tiles(8, 5, [], roads, bridges, [], water)
        assert layer.is_road[2, :].all()
        assert layer.structure_type[2, 3] == StructureType.BRIDGE
        assert layer.structure_type[2, 2] == StructureType.ROAD


class TestStructuresGenerator:
    @pytest.fixture
    def layers(self):
        return build(TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.SETTLED))

    def test_buildings_on_dry_ground(self, layers):
        _, hydrology, _, structures = layers
        for building in structures.buildings:
            for x, y in building.tiles():
                assert hydrology.water_depth[y, x] <= 0

    def test_tile_grid_matches_buildings(self, layers):
        *_, structures = layers
        mask = structures.building_mask()
        for building in structures.buildings:
            x, y = building.tiles()[0]
            assert structures.structure_type[y, x] in (
                StructureType.HOUSE,
                StructureType.BARN,
                StructureType.TOWER,
                StructureType.RUIN,
            )
            assert mask[y, x]

    def test_bridges_over_water(self, layers):
        _, hydrology, _, structures = layers
        for bridge in structures.bridges:
            for x, y in bridge.tiles:
                assert hydrology.water_depth[y, x] > 0
                assert structures.structure_type[y, x] == StructureType.BRIDGE

    def test_roads_never_paved_over_water(self, layers):
        _, hydrology, _, structures = layers
        paved = structures.structure_type == StructureType.ROAD
        assert not (paved & (hydrology.water_depth > 0)).any()

    def test_total_count(self, layers):
        *_, structures = layers
        assert structures.total_structure_count == (
            len(structures.buildings) + len(structures.bridges) + len(structures.decorations)
        )

    def test_wilderness_is_empty(self):
        *_, structures = build(TacticalMapContext(BiomeType.FOREST), size=(20, 20))
        assert structures.buildings == []
        assert structures.roads.segments == []
        assert not structures.has_structure.any()

    def test_deterministic(self):
        context = TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.RURAL)
        *_, a = build(context)
        *_, b = build(context)
        assert [(s.id, s.x, s.y, s.building_type) for s in a.buildings] == [
            (s.id, s.x, s.y, s.building_type) for s in b.buildings
        ]

    def test_missing_vegetation(self, layers):
        topography, hydrology, _, _ = layers
        with pytest.raises(LayerDependencyError):
            StructuresGenerator().generate(
                topography,
                hydrology,
                None,
                TacticalMapContext(),
                CoordinatedRandomGenerator(1),
                DeterministicIdGenerator(1),
            )
