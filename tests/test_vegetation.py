"""Tests for the vegetation layer."""

import math

import numpy as np
import pydantic
import pytest

from tactical_mapgen.core.context import BiomeType, TacticalMapContext
from tactical_mapgen.core.geology import GeologyGenerator
from tactical_mapgen.core.hydrology import HydrologyGenerator, MoistureLevel
from tactical_mapgen.core.topography import TopographyGenerator
from tactical_mapgen.core.vegetation import (
    SQ_FT_PER_ACRE,
    DensityClass,
    Plant,
    PlantCategory,
    PlantSize,
    PlantSpecies,
    TreeArena,
    VegetationConfig,
    VegetationGenerator,
    VegetationType,
    basal_area,
    classify_density,
    smooth_forest_mask,
    survey_basal_area,
    tile_roll,
    tree_species,
)
from tactical_mapgen.errors import LayerDependencyError
from tactical_mapgen.utils.random import CoordinatedRandomGenerator, DeterministicIdGenerator


def build(context, seed=12345, size=(30, 30)):
    rng = CoordinatedRandomGenerator(seed)
    ids = DeterministicIdGenerator(seed)
    geology = GeologyGenerator().generate(size[0], size[1], context, rng)
    topography = TopographyGenerator().generate(geology, context, rng)
    hydrology = HydrologyGenerator().generate(geology, topography, context, rng, ids)
    vegetation = VegetationGenerator().generate(
        geology, topography, hydrology, context, rng, ids
    )
    return geology, topography, hydrology, vegetation


def make_tree(tree_id, x=0, y=0, species=PlantSpecies.OAK):
    return Plant(
        id=tree_id,
        category=PlantCategory.TREE,
        species=species,
        size=PlantSize.MEDIUM,
        x=x,
        y=y,
        offset_x=0.5,
        offset_y=0.5,
        trunk_diameter=1.0,
    )


class TestForestSmoothing:
    def test_ring_becomes_plus(self):
        """All tiles update from the previous pass at once."""
        ring = np.ones((3, 3), dtype=bool)
        ring[1, 1] = False
        result = smooth_forest_mask(ring, passes=1)
        expected = np.array(
            [[False, True, False], [True, True, True], [False, True, False]]
        )
        np.testing.assert_array_equal(result, expected)

    def test_isolated_tile_cleared(self):
        mask = np.zeros((5, 5), dtype=bool)
        mask[2, 2] = True
        assert not smooth_forest_mask(mask, passes=1).any()

    def test_off_map_counts_as_open(self):
        row = np.ones((1, 3), dtype=bool)
        assert not smooth_forest_mask(row, passes=1).any()

    def test_stable_block(self):
        mask = np.zeros((5, 5), dtype=bool)
        mask[1:4, 1:4] = True
        np.testing.assert_array_equal(smooth_forest_mask(mask), mask)


class TestBasalArea:
    def test_trunk_cross_section(self):
        assert basal_area(1.0) == pytest.approx(math.pi / 4)
        assert basal_area(2.0) == pytest.approx(math.pi)

    def test_density_classes(self):
        assert classify_density(200) == DensityClass.DENSE
        assert classify_density(150) == DensityClass.DENSE
        assert classify_density(100) == DensityClass.MODERATE
        assert classify_density(50) == DensityClass.SPARSE
        assert classify_density(49.9) == DensityClass.NONE

    def test_survey_window(self):
        trunks = np.zeros((9, 9))
        trunks[4, 4] = 2.0
        surveyed = survey_basal_area(trunks, radius=3)
        expected = 2.0 / (math.pi * 15 * 15) * SQ_FT_PER_ACRE
        assert surveyed[4, 4] == pytest.approx(expected)
        assert surveyed[1, 1] == pytest.approx(expected)
        assert surveyed[0, 0] == 0.0


class TestVegetationConfig:
    def test_biome_multipliers(self):
        assert VegetationConfig.for_biome(BiomeType.FOREST).density_multiplier == 1.5
        assert VegetationConfig.for_biome(BiomeType.DESERT).density_multiplier == 0.2
        assert VegetationConfig.for_biome(BiomeType.FOREST, 2.0).density_multiplier == 2.0

    def test_target_basal_area(self):
        assert VegetationConfig(density_multiplier=0.0).target_basal_area == 50.0
        assert VegetationConfig(density_multiplier=2.0).target_basal_area == 200.0

    def test_tree_probability_grows_with_density(self):
        sparse = VegetationConfig(density_multiplier=0.5)
        dense = VegetationConfig(density_multiplier=2.0)
        assert 0 < sparse.tree_probability < dense.tree_probability < 1

    def test_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            VegetationConfig(density_multiplier=3.0)


class TestTreeArena:
    @pytest.fixture
    def arena(self):
        arena = TreeArena()
        arena.add(make_tree("tree_b", 1, 1))
        arena.add(make_tree("tree_a", 1, 1))
        arena.add(make_tree("tree_c", 4, 2))
        return arena

    def test_lookup(self, arena):
        assert len(arena) == 3
        assert "tree_a" in arena
        assert [tree.id for tree in arena.at(1, 1)] == ["tree_b", "tree_a"]
        assert arena.at(0, 0) == []

    def test_graft_pairs_are_sorted_and_unique(self, arena):
        arena.graft("tree_b", "tree_a")
        arena.graft("tree_a", "tree_b")
        assert arena.grafts == [("tree_a", "tree_b")]
        assert arena.grafted_with("tree_b") == ["tree_a"]
        assert arena.grafted_with("tree_c") == []

    def test_graft_unknown_tree(self, arena):
        with pytest.raises(KeyError):
            arena.graft("tree_a", "tree_z")

    def test_only_trees(self, arena):
        shrub = make_tree("shrub_1")
        shrub.category = PlantCategory.SHRUB
        with pytest.raises(ValueError):
            arena.add(shrub)


class TestHelpers:
    def test_tile_roll_range_and_determinism(self):
        for x, y in ((0, 0), (3, 7), (199, 199)):
            roll = tile_roll(x, y, 12345, 374761393, 668265263)
            assert 0.0 <= roll < 1.0
            assert roll == tile_roll(x, y, 12345, 374761393, 668265263)

    def test_tree_species(self):
        assert tree_species(BiomeType.SWAMP, MoistureLevel.WET, 0.9) == PlantSpecies.WILLOW
        assert tree_species(BiomeType.MOUNTAIN, MoistureLevel.DRY, 0.1) == PlantSpecies.PINE
        assert tree_species(BiomeType.FOREST, MoistureLevel.WET, 0.1) == PlantSpecies.WILLOW

    def test_saturated_forest_has_no_willows(self):
        assert tree_species(BiomeType.FOREST, MoistureLevel.SATURATED, 0.1) == PlantSpecies.OAK
        assert tree_species(BiomeType.FOREST, MoistureLevel.SATURATED, 0.9) == PlantSpecies.PINE


class TestClearings:
    def test_clearing_inside_forest(self):
        has_tree = np.ones((15, 15), dtype=bool)
        ys, xs = np.mgrid[0:15, 0:15]
        has_tree[np.hypot(xs - 7, ys - 7) <= 2.5] = False

        clearings = VegetationGenerator().find_clearings(has_tree, DeterministicIdGenerator(1))
        assert len(clearings) == 1
        assert (clearings[0].x, clearings[0].y, clearings[0].radius) == (7, 7, 2)

    def test_no_clearings_in_open_ground(self):
        has_tree = np.zeros((12, 12), dtype=bool)
        assert VegetationGenerator().find_clearings(has_tree, DeterministicIdGenerator(1)) == []


class TestVegetationGenerator:
    @pytest.fixture
    def layers(self):
        return build(TacticalMapContext(BiomeType.FOREST))

    def test_trees_match_arena(self, layers):
        *_, vegetation = layers
        assert vegetation.total_tree_count == len(vegetation.trees)
        for tree in vegetation.trees:
            assert tree in vegetation.plants_at(tree.x, tree.y)

    def test_grafts_reference_arena_trees(self, layers):
        *_, vegetation = layers
        for first, second in vegetation.trees.grafts:
            assert first < second
            assert first in vegetation.trees and second in vegetation.trees
            assert vegetation.trees.get(first).species == vegetation.trees.get(second).species

    def test_deep_water_has_no_plants(self, layers):
        _, _, hydrology, vegetation = layers
        for (x, y) in vegetation.plants:
            assert hydrology.water_depth[y, x] <= 1

    def test_forest_patches(self, layers):
        *_, vegetation = layers
        cover = vegetation.is_tree_cover()
        for patch in vegetation.forest_patches:
            assert len(patch.tiles) >= 3
            assert patch.forest_type in ("deciduous", "coniferous", "mixed")
            assert all(cover[y, x] for x, y in patch.tiles)

    def test_dense_trees_block_movement(self, layers):
        *_, vegetation = layers
        dense = vegetation.vegetation_type == VegetationType.DENSE_TREES
        assert not vegetation.is_passable[dense].any()

    def test_deterministic(self):
        context = TacticalMapContext(BiomeType.FOREST)
        *_, a = build(context)
        *_, b = build(context)
        assert [tree.id for tree in a.trees] == [tree.id for tree in b.trees]
        assert a.trees.grafts == b.trees.grafts
        np.testing.assert_array_equal(a.basal_area, b.basal_area)

    def test_missing_hydrology(self, layers):
        geology, topography, _, _ = layers
        with pytest.raises(LayerDependencyError):
            VegetationGenerator().generate(
                geology,
                topography,
                None,
                TacticalMapContext(),
                CoordinatedRandomGenerator(1),
                DeterministicIdGenerator(1),
            )
