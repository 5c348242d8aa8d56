"""Tests for the geology layer."""

import numpy as np
import pytest

from tactical_mapgen.core.context import BiomeType, TacticalMapContext
from tactical_mapgen.core.geology import (
    BASALT_COLUMNS,
    BIOME_FORMATIONS,
    GRANITE_DOME,
    LIMESTONE_KARST,
    VOLCANIC_TUFF,
    ErosionPattern,
    GeologyGenerator,
    GeologyOptions,
    RockType,
    TerrainFeature,
    micro_terrain_features,
    soil_depth_for,
    weathering_features,
)
from tactical_mapgen.utils.random import CoordinatedRandomGenerator


class TestFormations:
    def test_erosion_patterns(self):
        assert LIMESTONE_KARST.erosion_pattern() == ErosionPattern.KARST
        assert BASALT_COLUMNS.erosion_pattern() == ErosionPattern.COLUMNAR

    def test_karst_features(self):
        features = LIMESTONE_KARST.possible_features()
        assert TerrainFeature.CAVE in features
        assert TerrainFeature.TALUS in features

    def test_tuff_on_non_columnar_volcanics(self):
        assert TerrainFeature.TUFF in micro_terrain_features(
            RockType.VOLCANIC, ErosionPattern.SPHEROIDAL
        )
        assert TerrainFeature.TUFF not in micro_terrain_features(
            RockType.VOLCANIC, ErosionPattern.COLUMNAR
        )

    def test_caves_need_soluble_permeable_rock(self):
        assert LIMESTONE_KARST.properties.allows_caves()
        assert not GRANITE_DOME.properties.allows_caves()

    def test_soil_depth_range(self):
        low, high = VOLCANIC_TUFF.soil_depth_range()
        assert 0 <= low < high

    def test_every_biome_has_formations(self):
        for biome in BiomeType:
            assert BIOME_FORMATIONS[biome]


class TestWeathering:
    def test_bands(self):
        products = LIMESTONE_KARST.weathering.products
        assert weathering_features(0.9, products) == (TerrainFeature.TOWER,)
        assert weathering_features(0.0, products) == ()
        assert weathering_features(-0.8, products) == (TerrainFeature.SINKHOLE,)

    def test_slot_canyon_is_negative(self):
        products = (TerrainFeature.SLOT_CANYON, TerrainFeature.FIN)
        assert weathering_features(-0.9, products) == (TerrainFeature.SLOT_CANYON,)
        assert weathering_features(0.9, products) == (TerrainFeature.FIN,)

    def test_talus_added_above_threshold(self):
        products = (TerrainFeature.TALUS,)
        assert weathering_features(0.3, products) == (TerrainFeature.TALUS,)
        assert weathering_features(0.1, products) == ()

    def test_soil_depth_modifiers(self):
        assert soil_depth_for(2.0, (TerrainFeature.GRUS,)) == 5.0
        assert soil_depth_for(2.0, (TerrainFeature.DOME,)) == 0.5
        assert soil_depth_for(2.0, (TerrainFeature.SINKHOLE,)) == 7.0


class TestGeologyGenerator:
    @pytest.fixture
    def layer(self):
        generator = GeologyGenerator(GeologyOptions(secondary_probability=1.0))
        return generator.generate(
            30, 20, TacticalMapContext(BiomeType.MOUNTAIN), CoordinatedRandomGenerator(12345)
        )

    def test_shapes(self, layer):
        assert layer.formation_index.shape == (20, 30)
        assert layer.soil_depth.shape == (20, 30)
        assert layer.features.shape == (20, 30)
        assert layer.weathering.min() >= -1.0 and layer.weathering.max() <= 1.0

    def test_secondary_formation(self, layer):
        assert len(layer.formations) == 2
        assert layer.secondary_formation is not None
        assert set(np.unique(layer.formation_index)) <= {0, 1}

    def test_transition_zones_are_interior_boundaries(self, layer):
        for x, y in layer.transition_zones:
            assert 0 < x < layer.width - 1 and 0 < y < layer.height - 1
            here = layer.formation_index[y, x]
            neighbours = [
                layer.formation_index[y - 1, x],
                layer.formation_index[y + 1, x],
                layer.formation_index[y, x - 1],
                layer.formation_index[y, x + 1],
            ]
            assert any(n != here for n in neighbours)

    def test_tile_view(self, layer):
        tile = layer.tile(3, 4)
        assert tile.formation == layer.formation_at(3, 4)
        assert tile.soil_depth == layer.soil_depth[4, 3]
        assert isinstance(tile.features, tuple)

    def test_deterministic(self):
        context = TacticalMapContext(BiomeType.FOREST)
        a = GeologyGenerator().generate(20, 20, context, CoordinatedRandomGenerator(12345))
        b = GeologyGenerator().generate(20, 20, context, CoordinatedRandomGenerator(12345))
        assert a.formation == b.formation
        np.testing.assert_array_equal(a.formation_index, b.formation_index)
        np.testing.assert_array_equal(a.soil_depth, b.soil_depth)

    def test_formation_from_biome_candidates(self):
        for seed in (1, 2, 3, 4, 5):
            layer = GeologyGenerator().generate(
                10, 10, TacticalMapContext(BiomeType.DESERT), CoordinatedRandomGenerator(seed)
            )
            assert layer.formation in BIOME_FORMATIONS[BiomeType.DESERT]

    @pytest.mark.parametrize("biome", list(BiomeType))
    def test_tile_features_come_from_formation_lookup(self, biome):
        generator = GeologyGenerator(GeologyOptions(secondary_probability=1.0))
        for seed in (1, 12345):
            layer = generator.generate(
                25, 25, TacticalMapContext(biome), CoordinatedRandomGenerator(seed)
            )
            for y in range(layer.height):
                for x in range(layer.width):
                    allowed = layer.formation_at(x, y).possible_features()
                    assert set(layer.features[y, x]) <= set(allowed)

    def test_statistics(self, layer):
        assert 0.0 <= layer.statistics["primary_coverage"] <= 1.0
        assert layer.statistics["transition_tiles"] == len(layer.transition_zones)
