"""Tests for the generation pipeline and command line entry point."""

import json

import numpy as np
import pytest

from tactical_mapgen.cli import main
from tactical_mapgen.core.context import BiomeType, DevelopmentLevel, TacticalMapContext
from tactical_mapgen.core.pipeline import (
    STAGES,
    GenerationOptions,
    TacticalMapGenerator,
    convert_to_tiles,
    generate,
)
from tactical_mapgen.errors import (
    InvalidContextError,
    InvalidDimensionsError,
    LayerDependencyError,
    LayerGenerationError,
)


@pytest.fixture
def generator():
    return TacticalMapGenerator()


class TestDeterminism:
    def test_same_inputs_same_layers(self):
        context = TacticalMapContext(BiomeType.FOREST)
        a = generate(20, 20, context, 12345)
        b = generate(20, 20, context, 12345)
        assert a.fingerprint() == b.fingerprint()
        assert a.geology.formation == b.geology.formation

    def test_different_seeds_differ(self):
        context = TacticalMapContext(BiomeType.FOREST)
        assert generate(20, 20, context, 1).fingerprint() != generate(20, 20, context, 2).fingerprint()

    def test_forest_scenario(self):
        bundle = generate(20, 20, TacticalMapContext(BiomeType.FOREST), 12345)
        assert bundle.metadata.counts["forest_patches"] > 0
        assert bundle.metadata.seed == 12345

    def test_numeric_string_seed(self):
        context = {"biome": "plains"}
        assert generate(15, 15, context, "12345").fingerprint() == generate(
            15, 15, context, 12345
        ).fingerprint()

    def test_missing_seed_derived_from_parameters(self):
        a = generate(15, 15, {"biome": "mountain"})
        b = generate(15, 15, {"biome": "mountain"})
        assert a.metadata.seed == b.metadata.seed
        assert a.fingerprint() == b.fingerprint()
        c = generate(16, 15, {"biome": "mountain"})
        assert c.metadata.seed != a.metadata.seed

    def test_seed_warnings_recorded(self):
        bundle = generate(12, 12, TacticalMapContext(), 0)
        assert bundle.metadata.seed == 1
        assert bundle.metadata.seed_warnings


class TestValidation:
    @pytest.mark.parametrize("width", [9, 201, 20.5, True, "20"])
    def test_invalid_width(self, generator, monkeypatch, width):
        def never(*args):
            raise AssertionError("generation started")

        monkeypatch.setattr(generator.geology, "generate", never)
        with pytest.raises(InvalidDimensionsError) as excinfo:
            generator.generate(width, 20, TacticalMapContext(), 1)
        assert excinfo.value.valid_range == (10, 200)
        assert excinfo.value.dimension == "width"

    def test_invalid_height(self, generator):
        with pytest.raises(InvalidDimensionsError) as excinfo:
            generator.generate(20, 201, TacticalMapContext(), 1)
        assert excinfo.value.dimension == "height"

    def test_bounds_accepted(self, generator):
        bundle = generator.generate(10, 10, TacticalMapContext(), 1)
        assert bundle.geology.formation_index.shape == (10, 10)

    def test_numpy_integer_dimensions(self, generator):
        shape = np.zeros((12, 14)).shape
        bundle = generator.generate(np.int64(shape[1]), np.int32(shape[0]), TacticalMapContext(), 1)
        assert bundle.geology.formation_index.shape == (12, 14)
        assert generator.validate_dimensions(np.int64(14), np.int16(12)) == (14, 12)
        assert type(generator.validate_dimensions(np.int64(14), 12)[0]) is int

    def test_numpy_bool_rejected(self, generator):
        with pytest.raises(InvalidDimensionsError):
            generator.validate_dimensions(np.bool_(True), 20)

    def test_custom_bounds(self):
        generator = TacticalMapGenerator(GenerationOptions(min_dimension=5, max_dimension=8))
        with pytest.raises(InvalidDimensionsError):
            generator.generate(10, 10, TacticalMapContext(), 1)

    def test_invalid_context(self, generator):
        with pytest.raises(InvalidContextError):
            generator.generate(20, 20, {"biome": "desert", "hydrology": "river"}, 1)


class TestStageFailures:
    def test_failure_tagged_with_stage(self, generator, monkeypatch):
        def boom(*args):
            raise ZeroDivisionError("bad flow")

        monkeypatch.setattr(generator.hydrology, "generate", boom)
        with pytest.raises(LayerGenerationError) as excinfo:
            generator.generate(20, 20, TacticalMapContext(), 1)
        error = excinfo.value
        assert error.stage == "hydrology"
        assert error.code == "LAYER_GENERATION_FAILED"
        assert isinstance(error.__cause__, ZeroDivisionError)
        assert error.to_dict()["details"]["stage"] == "hydrology"

    def test_dependency_error_not_wrapped(self, generator, monkeypatch):
        monkeypatch.setattr(generator.geology, "generate", lambda *args: None)
        with pytest.raises(LayerDependencyError) as excinfo:
            generator.generate(20, 20, TacticalMapContext(), 1)
        assert excinfo.value.stage == "topography"
        assert excinfo.value.required == "geology"


class TestMetadata:
    def test_timings_and_counts(self, generator):
        bundle = generator.generate(
            25, 25, TacticalMapContext(BiomeType.PLAINS, DevelopmentLevel.RURAL), 99
        )
        metadata = bundle.metadata
        assert list(metadata.stage_timings) == list(STAGES)
        assert all(value >= 0 for value in metadata.stage_timings.values())
        assert metadata.counts["buildings"] == len(bundle.structures.buildings)
        assert metadata.counts["trees"] == bundle.vegetation.total_tree_count
        assert metadata.context == ("plains", "rural", "lowland", "stream", "summer")

    def test_fingerprint_ignores_timings(self, generator):
        bundle = generator.generate(12, 12, TacticalMapContext(), 5)
        before = bundle.fingerprint()
        bundle.metadata.stage_timings["geology"] = 1e9
        assert bundle.fingerprint() == before


class TestMapGrid:
    def test_generate_map(self, generator):
        grid = generator.generate_map(15, 12, {"biome": "swamp"}, 777)
        assert (grid.width, grid.height, grid.cell_size) == (15, 12, 5)
        assert len(grid.tiles) == 12 and len(grid.tiles[0]) == 15
        assert grid.id.startswith("map-")
        assert len(grid.terrain_rows()) == 12

    def test_replay(self, generator):
        grid = generator.generate_map(15, 15, {"biome": "forest", "season": "autumn"}, 4242)
        parameters = grid.parameters()
        assert parameters["seed"] == 4242
        assert parameters["context"]["season"] == "autumn"
        replayed = TacticalMapGenerator().replay(parameters)
        assert replayed.id == grid.id
        assert [[t.to_dict() for t in row] for row in replayed.tiles] == [
            [t.to_dict() for t in row] for row in grid.tiles
        ]

    def test_assemble_matches_convert(self, generator):
        context = TacticalMapContext(BiomeType.MOUNTAIN)
        bundle = generator.generate(14, 14, context, 31)
        grid = generator.assemble(bundle, context)
        tiles = convert_to_tiles(14, 14, bundle, context, 31)
        assert [[t.to_dict() for t in row] for row in tiles] == [
            [t.to_dict() for t in row] for row in grid.tiles
        ]


class TestCommandLine:
    def test_summary(self, capsys):
        code = main(
            ["--width", "12", "--height", "11", "--seed", "42", "--tiles", "--log-level", "ERROR"]
        )
        assert code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["seed"] == 42
        assert (summary["width"], summary["height"]) == (12, 11)
        assert len(summary["terrain"]) == 11
        assert summary["context"]["biome"] == "forest"
        assert len(summary["fingerprint"]) == 64

    def test_invalid_dimensions(self, capsys):
        code = main(["--width", "5", "--log-level", "CRITICAL"])
        assert code == 2
        error = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert error["error"]["code"] == "MAP_INVALID_DIMENSIONS"
