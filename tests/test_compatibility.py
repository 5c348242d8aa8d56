"""Tests for feature compatibility and mixing."""

import pydantic
import pytest

from tactical_mapgen.core.compatibility import (
    COMPATIBILITY_TABLE,
    ArtificialFeature,
    ArtificialFeatureType,
    BlendMode,
    Bounds,
    CompatibilityLevel,
    CulturalFeature,
    CulturalFeatureType,
    FeatureCategory,
    FeatureMixer,
    InteractionAspect,
    MixingSettings,
    NaturalFeature,
    NaturalFeatureType,
    ReliefFeature,
    ReliefFeatureType,
    TerrainType,
    blend_height,
    calculate_interaction,
    compatible_features,
    covers,
    feature_category,
    feature_tiles,
    get_compatibility,
    validate_settings,
)
from tactical_mapgen.core.lcg_prng import LCGRandom
from tactical_mapgen.core.tiles import Tile

AREA = Bounds(0, 0, 4, 4)


def relief(kind, feature_id=None, height=None):
    return ReliefFeature(id=feature_id or kind.value, type=kind, bounds=AREA, height=height)


def natural(kind, feature_id=None, height=None):
    return NaturalFeature(id=feature_id or kind.value, type=kind, bounds=AREA, height=height)


def artificial(kind, feature_id=None, **kwargs):
    return ArtificialFeature(id=feature_id or kind.value, type=kind, bounds=AREA, **kwargs)


def water_tile():
    return Tile(
        x=1, y=1, terrain=TerrainType.WATER, elevation=0.0, height_multiplier=0.5, movement_cost=2.0
    )


class TestBounds:
    def test_around(self):
        assert Bounds.around([(2, 3), (4, 1)]) == Bounds(2, 1, 3, 3)

    def test_around_empty(self):
        with pytest.raises(ValueError):
            Bounds.around([])

    def test_covers(self):
        shaped = NaturalFeature(
            id="pond_1",
            type=NaturalFeatureType.POND,
            bounds=Bounds(0, 0, 2, 2),
            tiles=frozenset({(0, 0), (1, 1)}),
        )
        assert covers(shaped, 1, 1)
        assert not covers(shaped, 1, 0)
        assert covers(relief(ReliefFeatureType.HILL), 3, 3)
        assert feature_tiles(shaped) == [(0, 0), (1, 1)]
        assert len(feature_tiles(relief(ReliefFeatureType.HILL))) == 16


class TestCompatibility:
    @pytest.mark.parametrize(
        "a, b, level",
        [
            (relief(ReliefFeatureType.MOUNTAIN), natural(NaturalFeatureType.FOREST), CompatibilityLevel.SYNERGISTIC),
            (relief(ReliefFeatureType.VALLEY), natural(NaturalFeatureType.RIVER), CompatibilityLevel.SYNERGISTIC),
            (relief(ReliefFeatureType.VALLEY), natural(NaturalFeatureType.STREAM), CompatibilityLevel.SYNERGISTIC),
            (relief(ReliefFeatureType.BASIN), natural(NaturalFeatureType.LAKE), CompatibilityLevel.SYNERGISTIC),
            (relief(ReliefFeatureType.HILL), natural(NaturalFeatureType.FOREST), CompatibilityLevel.COMPATIBLE),
            (relief(ReliefFeatureType.PLATEAU), natural(NaturalFeatureType.CLEARING), CompatibilityLevel.COMPATIBLE),
            (relief(ReliefFeatureType.VALLEY), natural(NaturalFeatureType.CAVE_SYSTEM), CompatibilityLevel.INCOMPATIBLE),
            (relief(ReliefFeatureType.BASIN), natural(NaturalFeatureType.CAVE_SYSTEM), CompatibilityLevel.INCOMPATIBLE),
            (relief(ReliefFeatureType.MOUNTAIN), artificial(ArtificialFeatureType.FORTIFICATION), CompatibilityLevel.SYNERGISTIC),
            (relief(ReliefFeatureType.HILL), artificial(ArtificialFeatureType.TOWER), CompatibilityLevel.SYNERGISTIC),
            (relief(ReliefFeatureType.PLATEAU), artificial(ArtificialFeatureType.BUILDING_COMPLEX), CompatibilityLevel.COMPATIBLE),
            (relief(ReliefFeatureType.CLIFF), artificial(ArtificialFeatureType.ROAD_NETWORK), CompatibilityLevel.INCOMPATIBLE),
            (relief(ReliefFeatureType.CLIFF), artificial(ArtificialFeatureType.BUILDING_COMPLEX), CompatibilityLevel.INCOMPATIBLE),
            (natural(NaturalFeatureType.RIVER), artificial(ArtificialFeatureType.BRIDGE), CompatibilityLevel.SYNERGISTIC),
            (natural(NaturalFeatureType.CLEARING), artificial(ArtificialFeatureType.BUILDING_COMPLEX), CompatibilityLevel.SYNERGISTIC),
            (natural(NaturalFeatureType.LAKE), artificial(ArtificialFeatureType.WALL_SYSTEM), CompatibilityLevel.INCOMPATIBLE),
            (natural(NaturalFeatureType.POND), artificial(ArtificialFeatureType.BUILDING_COMPLEX), CompatibilityLevel.INCOMPATIBLE),
            (natural(NaturalFeatureType.STREAM), artificial(ArtificialFeatureType.BUILDING_COMPLEX), CompatibilityLevel.INCOMPATIBLE),
        ],
    )
    def test_listed_pairs(self, a, b, level):
        assert get_compatibility(a, b) == level
        assert get_compatibility(b, a) == level

    def test_unlisted_pairs_are_neutral(self):
        assert get_compatibility(
            relief(ReliefFeatureType.MOUNTAIN), natural(NaturalFeatureType.LAKE)
        ) == CompatibilityLevel.NEUTRAL
        assert get_compatibility(
            relief(ReliefFeatureType.HILL), relief(ReliefFeatureType.HILL)
        ) == CompatibilityLevel.NEUTRAL

    def test_table_keys_are_unordered_pairs(self):
        for pair in COMPATIBILITY_TABLE:
            assert len(pair) == 2

    def test_category(self):
        site = CulturalFeature(id="site_1", type=CulturalFeatureType.SACRED_SITE, bounds=AREA)
        assert feature_category(site) == FeatureCategory.CULTURAL
        assert site.priority == 1
        with pytest.raises(TypeError):
            feature_category("mountain")

    def test_compatible_features(self):
        building = artificial(ArtificialFeatureType.BUILDING_COMPLEX)
        candidates = [
            natural(NaturalFeatureType.POND),
            natural(NaturalFeatureType.CLEARING),
            relief(ReliefFeatureType.HILL),
        ]
        kept = compatible_features(building, candidates)
        assert [f.type for f in kept] == [NaturalFeatureType.CLEARING, ReliefFeatureType.HILL]


class TestInteraction:
    def test_mountain_forest(self):
        mountain = relief(ReliefFeatureType.MOUNTAIN, height=0.6)
        forest = natural(NaturalFeatureType.FOREST, height=0.2)
        interaction = calculate_interaction(mountain, forest)
        assert interaction.dominant(InteractionAspect.TERRAIN) is forest
        assert interaction.dominant(InteractionAspect.HEIGHT) is mountain
        assert interaction.dominant(InteractionAspect.VISUAL) is mountain
        assert interaction.blending == BlendMode.ADD
        assert interaction.terrain_modification == TerrainType.FOREST
        assert interaction.movement_modification == 3.0
        assert blend_height(interaction) == pytest.approx(0.8)

    def test_hill_forest_takes_max(self):
        interaction = calculate_interaction(
            natural(NaturalFeatureType.FOREST, height=0.2),
            relief(ReliefFeatureType.HILL, height=0.5),
        )
        assert interaction.blending == BlendMode.MAX
        assert blend_height(interaction) == 0.5

    def test_valley_river_averages(self):
        interaction = calculate_interaction(
            natural(NaturalFeatureType.RIVER, height=0.2),
            relief(ReliefFeatureType.VALLEY, height=0.6),
        )
        assert interaction.blending == BlendMode.AVERAGE
        assert interaction.terrain_modification == TerrainType.WATER
        assert blend_height(interaction) == pytest.approx(0.4)

    def test_default_primary_dominates(self):
        primary = relief(ReliefFeatureType.MOUNTAIN, height=0.3)
        secondary = natural(NaturalFeatureType.LAKE, height=0.9)
        interaction = calculate_interaction(primary, secondary)
        assert interaction.blending == BlendMode.DOMINANT
        assert all(feature_id == primary.id for feature_id in interaction.dominance.values())
        assert blend_height(interaction) == 0.3

    def test_bridge_over_stream(self):
        interaction = calculate_interaction(
            artificial(ArtificialFeatureType.BRIDGE, priority=5),
            natural(NaturalFeatureType.STREAM),
        )
        assert interaction.terrain_modification == TerrainType.ROAD
        assert interaction.special_properties == {"bridge": True, "crosses_water": True}


class TestMixingSettings:
    def test_defaults(self):
        settings = MixingSettings()
        assert settings.enable_feature_mixing
        assert settings.mixing_probability == 0.7
        assert settings.max_mixing_depth == 3

    def test_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            MixingSettings(mixing_probability=1.5)
        with pytest.raises(pydantic.ValidationError):
            MixingSettings(max_mixing_depth=0)

    def test_validate_settings(self):
        assert validate_settings({}) == []
        assert validate_settings({"mixing_probability": -0.1}) == [
            "Mixing probability must be between 0 and 1"
        ]
        assert validate_settings({"max_mixing_depth": 0}) == ["Max mixing depth must be at least 1"]
        assert len(validate_settings({"mixing_probability": "high", "max_mixing_depth": True})) == 2


class TestFeatureMixer:
    @pytest.fixture
    def crossing(self):
        bridge = artificial(
            ArtificialFeatureType.BRIDGE,
            priority=5,
            height=0.1,
            properties={"blocking": False, "movement_cost": 1.0},
        )
        stream = natural(NaturalFeatureType.STREAM)
        valley = relief(ReliefFeatureType.VALLEY)
        return [valley, stream, bridge]

    def mixer(self, **settings):
        return FeatureMixer(LCGRandom(12345), MixingSettings(**settings))

    def test_bridge_crossing(self, crossing):
        tile = self.mixer(mixing_probability=1.0).apply(water_tile(), crossing)
        assert tile.primary_feature_id == "bridge"
        assert tile.mixed_feature_ids == ["bridge", "stream", "valley"]
        assert tile.terrain == TerrainType.ROAD
        assert tile.movement_cost == 1.0
        assert not tile.is_blocked
        assert tile.height_multiplier == pytest.approx(0.6)
        assert tile.properties["bridge"] is True
        assert tile.properties["visual"] == "bridge"

    def test_depth_cap(self, crossing):
        tile = self.mixer(mixing_probability=1.0, max_mixing_depth=2).apply(water_tile(), crossing)
        assert tile.mixed_feature_ids == ["bridge", "stream"]

    def test_zero_probability_never_blends(self, crossing):
        mixer = self.mixer(mixing_probability=0.0)
        tile = mixer.apply(water_tile(), crossing)
        assert tile.mixed_feature_ids == ["bridge"]
        assert tile.terrain == TerrainType.WATER
        assert tile.height_multiplier == 0.5
        assert mixer.blend_count == 0

    def test_disabled(self, crossing):
        tile = self.mixer(enable_feature_mixing=False).apply(water_tile(), crossing)
        assert tile.primary_feature_id == "bridge"
        assert tile.mixed_feature_ids == ["bridge"]

    def test_incompatible_pairs_never_blend(self):
        building = artificial(
            ArtificialFeatureType.BUILDING_COMPLEX, properties={"blocking": True}
        )
        stream = natural(NaturalFeatureType.STREAM)
        clearing = natural(NaturalFeatureType.CLEARING)
        tile = self.mixer(mixing_probability=1.0).apply(water_tile(), [stream, clearing, building])
        assert tile.primary_feature_id == "building_complex"
        assert "stream" not in tile.mixed_feature_ids
        assert tile.suppressed_feature_ids == ["stream"]
        assert tile.mixed_feature_ids == ["building_complex", "clearing"]

    def test_ties_broken_by_id(self):
        a = relief(ReliefFeatureType.HILL, feature_id="hill_a")
        b = relief(ReliefFeatureType.RIDGE, feature_id="hill_b")
        tile = self.mixer(enable_feature_mixing=False).apply(water_tile(), [b, a])
        assert tile.primary_feature_id == "hill_a"

    def test_no_features(self):
        tile = self.mixer().apply(water_tile(), [])
        assert tile.primary_feature_id is None
        assert tile.mixed_feature_ids == []

    def test_deterministic(self, crossing):
        first = self.mixer().apply(water_tile(), crossing)
        second = self.mixer().apply(water_tile(), crossing)
        assert first.mixed_feature_ids == second.mixed_feature_ids
