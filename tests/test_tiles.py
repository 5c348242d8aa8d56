"""Tests for tile conversion."""

import math

import pytest

from tactical_mapgen.core.compatibility import ArtificialFeatureType, TerrainType
from tactical_mapgen.core.context import (
    BiomeType,
    DevelopmentLevel,
    ElevationZone,
    Season,
    TacticalMapContext,
)
from tactical_mapgen.core.geology import TerrainFeature
from tactical_mapgen.core.pipeline import generate
from tactical_mapgen.core.structures import StructureType
from tactical_mapgen.core.tiles import (
    ConcealmentLevel,
    CoverLevel,
    TacticalMapConverter,
    Tile,
    concealment_level,
    cover_level,
    extract_features,
    ground_terrain,
    height_multiplier,
    max_cover,
    movement_cost,
    select_terrain,
)
from tactical_mapgen.core.vegetation import VegetationType
from tactical_mapgen.utils.random import DeterministicIdGenerator


class TestHeightMultiplier:
    @pytest.mark.parametrize(
        "elevation, expected",
        [(-5, 0.5), (0, 0.5), (50, 1.25), (100, 2.0), (200, 3.0)],
    )
    def test_values(self, elevation, expected):
        assert height_multiplier(elevation) == pytest.approx(expected)


class TestTerrainSelection:
    def select(self, **kwargs):
        args = dict(
            structure_type=None,
            is_road=False,
            is_water=False,
            vegetation_type=VegetationType.NONE,
            elevation=0.0,
            is_ridge=False,
        )
        args.update(kwargs)
        return select_terrain(**args)

    def test_structures_first(self):
        assert self.select(structure_type=StructureType.HOUSE, is_water=True) == TerrainType.BUILDING
        assert self.select(structure_type=StructureType.WALL) == TerrainType.WALL
        assert self.select(structure_type=StructureType.BRIDGE, is_water=True) == TerrainType.ROAD

    def test_water_before_trees(self):
        assert self.select(is_water=True, vegetation_type=VegetationType.DENSE_TREES) == TerrainType.WATER
        assert self.select(is_road=True, is_water=True) == TerrainType.ROAD

    def test_trees_before_mountains(self):
        assert self.select(vegetation_type=VegetationType.SPARSE_TREES, elevation=80) == TerrainType.FOREST

    def test_mountains(self):
        assert self.select(elevation=41) == TerrainType.MOUNTAIN
        assert self.select(is_ridge=True) == TerrainType.MOUNTAIN
        assert self.select(elevation=40) == TerrainType.GRASS

    def test_ground_by_biome(self):
        assert ground_terrain(TacticalMapContext(BiomeType.DESERT)) == TerrainType.DESERT
        assert ground_terrain(TacticalMapContext(BiomeType.SWAMP)) == TerrainType.SWAMP
        assert ground_terrain(TacticalMapContext(BiomeType.UNDERGROUND)) == TerrainType.CAVE
        assert ground_terrain(
            TacticalMapContext(BiomeType.MOUNTAIN, elevation=ElevationZone.ALPINE, season=Season.WINTER)
        ) == TerrainType.SNOW
        assert ground_terrain(TacticalMapContext(BiomeType.PLAINS)) == TerrainType.GRASS
        assert self.select(ground=TerrainType.DESERT) == TerrainType.DESERT


class TestMovementCost:
    def test_slope_bands(self):
        assert movement_cost(0, 0, VegetationType.NONE, ()) == 1.0
        assert movement_cost(10, 0, VegetationType.NONE, ()) == 1.5
        assert movement_cost(20, 0, VegetationType.NONE, ()) == 2.0
        assert movement_cost(50, 0, VegetationType.NONE, ()) == 4.0

    def test_water(self):
        assert movement_cost(0, 0.5, VegetationType.NONE, ()) == 2.0
        assert movement_cost(0, 2.5, VegetationType.NONE, ()) == 4.0
        assert math.isinf(movement_cost(0, 4, VegetationType.NONE, ()))

    def test_vegetation_and_rock(self):
        assert movement_cost(0, 0, VegetationType.DENSE_TREES, ()) == 1.5
        assert movement_cost(0, 0, VegetationType.UNDERGROWTH, ()) == 2.0
        assert movement_cost(0, 0, VegetationType.NONE, (TerrainFeature.TALUS,)) == 2.0
        assert math.isinf(movement_cost(0, 0, VegetationType.NONE, (TerrainFeature.SINKHOLE,)))


class TestCoverAndConcealment:
    def test_cover(self):
        assert cover_level(VegetationType.SHRUBS, 0.3, None, ()) == CoverLevel.LIGHT
        assert cover_level(VegetationType.SPARSE_TREES, 0.5, None, ()) == CoverLevel.PARTIAL
        assert cover_level(VegetationType.DENSE_TREES, 0.8, None, ()) == CoverLevel.HEAVY
        assert cover_level(VegetationType.NONE, 0.0, None, (TerrainFeature.TOWER,)) == CoverLevel.TOTAL
        assert cover_level(VegetationType.NONE, 0.0, StructureType.HOUSE, ()) == CoverLevel.TOTAL
        assert cover_level(VegetationType.NONE, 0.0, StructureType.BRIDGE, ()) == CoverLevel.HEAVY
        assert cover_level(VegetationType.GRASS, 0.1, None, ()) == CoverLevel.NONE

    def test_cover_takes_the_better_source(self):
        assert cover_level(
            VegetationType.SHRUBS, 0.3, None, (TerrainFeature.LEDGE,)
        ) == CoverLevel.PARTIAL
        assert max_cover(CoverLevel.HEAVY, CoverLevel.LIGHT) == CoverLevel.HEAVY

    def test_concealment(self):
        assert concealment_level(VegetationType.NONE, 0.0, (TerrainFeature.CAVE,)) == ConcealmentLevel.TOTAL
        assert concealment_level(VegetationType.DENSE_TREES, 0.95, ()) == ConcealmentLevel.TOTAL
        assert concealment_level(VegetationType.DENSE_TREES, 0.8, ()) == ConcealmentLevel.HEAVY
        assert concealment_level(VegetationType.UNDERGROWTH, 0.3, ()) == ConcealmentLevel.HEAVY
        assert concealment_level(VegetationType.SHRUBS, 0.3, ()) == ConcealmentLevel.MODERATE
        assert concealment_level(VegetationType.TALL_GRASS, 0.1, ()) == ConcealmentLevel.LIGHT
        assert concealment_level(VegetationType.GRASS, 0.1, ()) == ConcealmentLevel.NONE


class TestTile:
    def test_impassable_serialises_as_none(self):
        tile = Tile(
            x=0, y=0, terrain=TerrainType.BUILDING, elevation=3.0,
            height_multiplier=0.545, movement_cost=math.inf, is_blocked=True,
        )
        assert not tile.is_passable
        data = tile.to_dict()
        assert data["movement_cost"] is None
        assert data["terrain"] == "building"
        assert data["structure"] is None

    def test_passable(self):
        tile = Tile(x=0, y=0, terrain=TerrainType.GRASS, elevation=0.0,
                    height_multiplier=0.5, movement_cost=1.0)
        assert tile.is_passable


class TestConverter:
    @pytest.fixture(scope="class")
    def bundle(self):
        return generate(
            30, 30, TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.SETTLED), 12345
        )

    @pytest.fixture(scope="class")
    def tiles(self, bundle):
        context = TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.SETTLED)
        return TacticalMapConverter().convert(30, 30, bundle, context, 12345)

    def test_grid_shape(self, tiles):
        assert len(tiles) == 30
        for y, row in enumerate(tiles):
            assert len(row) == 30
            for x, tile in enumerate(row):
                assert (tile.x, tile.y) == (x, y)

    def test_buildings_block(self, tiles):
        for row in tiles:
            for tile in row:
                if tile.terrain == TerrainType.BUILDING:
                    assert tile.is_blocked
                    assert math.isinf(tile.movement_cost)
                if tile.structure_type == StructureType.ROAD:
                    assert tile.movement_cost == 0.5
                    assert not tile.is_blocked

    def test_mixing_bookkeeping(self, tiles):
        for row in tiles:
            for tile in row:
                if tile.primary_feature_id is None:
                    assert tile.mixed_feature_ids == []
                    continue
                assert tile.mixed_feature_ids[0] == tile.primary_feature_id
                assert len(tile.mixed_feature_ids) <= 3
                assert not set(tile.suppressed_feature_ids) & set(tile.mixed_feature_ids)

    def test_elevation_from_topography(self, bundle, tiles):
        tile = tiles[4][7]
        assert tile.elevation == pytest.approx(float(bundle.topography.elevation[4, 7]))

    def test_extracted_features(self, bundle):
        features = extract_features(bundle, DeterministicIdGenerator(12345))
        ids = [feature.id for feature in features]
        assert len(ids) == len(set(ids))
        for feature in features:
            if feature.type == ArtificialFeatureType.BRIDGE:
                assert feature.priority == 5
            if feature.type == ArtificialFeatureType.ROAD_NETWORK:
                assert feature.properties["movement_cost"] == 0.5

    def test_deterministic(self, bundle, tiles):
        context = TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.SETTLED)
        again = TacticalMapConverter().convert(30, 30, bundle, context, 12345)
        assert [[t.to_dict() for t in row] for row in again] == [
            [t.to_dict() for t in row] for row in tiles
        ]
