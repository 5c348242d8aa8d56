"""
Tactical map generation pipeline.

This module implements:
- TacticalMapGenerator, running the six layer stages in dependency order
- LayerBundle with a content fingerprint for replay checks
- Generation metadata (stage timings and entity counts)
- MapGrid assembly through the tile converter
"""

import dataclasses
import hashlib
import numbers
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np
import structlog
from pydantic import BaseModel

from ..config import settings
from ..errors import InvalidDimensionsError, LayerDependencyError, LayerGenerationError
from ..utils.random import CoordinatedRandomGenerator, DeterministicIdGenerator
from .compatibility import MixingSettings
from .context import ContextInput, TacticalMapContext, coerce_context
from .features import FeaturesGenerator, FeaturesLayer, FeaturesOptions
from .geology import GeologyGenerator, GeologyLayer, GeologyOptions
from .hydrology import HydrologyConfig, HydrologyGenerator, HydrologyLayer
from .seed import SeedInput, SeedPolicy, validate_seed
from .structures import StructuresGenerator, StructuresLayer, StructuresOptions
from .tiles import TacticalMapConverter, Tile
from .topography import TopographyConfig, TopographyGenerator, TopographyLayer
from .vegetation import TreeArena, VegetationConfig, VegetationGenerator, VegetationLayer

logger = structlog.get_logger()

GENERATOR_VERSION = "0.1.0"

STAGES = ("geology", "topography", "hydrology", "vegetation", "structures", "features")


def _default_mixing() -> MixingSettings:
    return MixingSettings(
        enable_feature_mixing=settings.enable_feature_mixing,
        mixing_probability=settings.mixing_probability,
        max_mixing_depth=settings.max_mixing_depth,
    )


@dataclass
class GenerationOptions:
    """Per-stage options. None lets a stage derive its config from the context."""

    geology: Optional[GeologyOptions] = None
    topography: Optional[TopographyConfig] = None
    hydrology: Optional[HydrologyConfig] = None
    vegetation: Optional[VegetationConfig] = None
    structures: Optional[StructuresOptions] = None
    features: Optional[FeaturesOptions] = None
    mixing: MixingSettings = field(default_factory=_default_mixing)
    seed_policy: SeedPolicy = field(default_factory=SeedPolicy)
    min_dimension: int = settings.min_dimension
    max_dimension: int = settings.max_dimension


@dataclass
class GenerationMetadata:
    seed: int
    width: int
    height: int
    context: Tuple[str, ...]
    seed_warnings: List[str] = field(default_factory=list)
    stage_timings: Dict[str, float] = field(default_factory=dict)  # milliseconds
    counts: Dict[str, int] = field(default_factory=dict)
    total_time_ms: float = 0.0
    version: str = GENERATOR_VERSION


@dataclass
class LayerBundle:
    """The six layers of one map, in generation order."""

    geology: GeologyLayer
    topography: TopographyLayer
    hydrology: HydrologyLayer
    vegetation: VegetationLayer
    structures: StructuresLayer
    features: FeaturesLayer
    metadata: GenerationMetadata

    def layers(self) -> List[Tuple[str, Any]]:
        return [(name, getattr(self, name)) for name in STAGES]

    def fingerprint(self) -> str:
        """SHA-256 over every layer. Metadata (timings) is excluded."""
        digest = hashlib.sha256()
        for name, layer in self.layers():
            digest.update(name.encode())
            _feed(digest, layer)
        return digest.hexdigest()


def _feed(digest, value: Any) -> None:
    """Stream a canonical encoding of `value` into `digest`."""
    if value is None or isinstance(value, (bool, int, float, str)):
        digest.update(repr(value).encode())
    elif isinstance(value, Enum):
        digest.update(f"{type(value).__name__}.{value.value!r}".encode())
    elif isinstance(value, np.ndarray):
        digest.update(f"{value.dtype.str}{value.shape}".encode())
        if value.dtype == object:
            for item in value.ravel():
                _feed(digest, item)
        else:
            digest.update(np.ascontiguousarray(value).tobytes())
    elif isinstance(value, np.generic):
        digest.update(repr(value.item()).encode())
    elif isinstance(value, TreeArena):
        digest.update(b"arena")
        for tree in value:
            _feed(digest, tree)
        _feed(digest, value.grafts)
    elif dataclasses.is_dataclass(value):
        digest.update(type(value).__name__.encode())
        for f in dataclasses.fields(value):
            digest.update(f.name.encode())
            _feed(digest, getattr(value, f.name))
    elif isinstance(value, BaseModel):
        _feed(digest, value.model_dump())
    elif isinstance(value, dict):
        digest.update(b"{")
        for key in sorted(value, key=repr):
            _feed(digest, key)
            _feed(digest, value[key])
        digest.update(b"}")
    elif isinstance(value, (list, tuple, frozenset, set)):
        items = sorted(value, key=repr) if isinstance(value, (set, frozenset)) else value
        digest.update(b"[")
        for item in items:
            _feed(digest, item)
        digest.update(b"]")
    else:
        raise TypeError(f"Cannot fingerprint {type(value).__name__}")


@dataclass
class MapGrid:
    id: str
    width: int
    height: int
    cell_size: int  # feet
    tiles: List[List[Tile]]
    seed: int
    context: TacticalMapContext
    metadata: GenerationMetadata

    def parameters(self) -> Dict[str, Any]:
        """Everything needed to regenerate this map."""
        biome, development, elevation, hydrology, season = self.context.as_tuple()
        return {
            "width": self.width,
            "height": self.height,
            "seed": self.seed,
            "context": {
                "biome": biome,
                "development": development,
                "elevation": elevation,
                "hydrology": hydrology,
                "season": season,
            },
        }

    def terrain_rows(self) -> List[str]:
        return [" ".join(tile.terrain.value[0] for tile in row) for row in self.tiles]


class TacticalMapGenerator:
    """
    Runs the layer stages as one synchronous chain.

    Every call builds its own random hierarchy from the seed, so a generator
    instance holds no state between requests.
    """

    def __init__(self, options: Optional[GenerationOptions] = None, logger=None):
        self.options = options or GenerationOptions()
        self.logger = (logger or structlog.get_logger()).bind(component="pipeline")
        self.geology = GeologyGenerator(self.options.geology, logger=self.logger)
        self.topography = TopographyGenerator(self.options.topography, logger=self.logger)
        self.hydrology = HydrologyGenerator(self.options.hydrology, logger=self.logger)
        self.vegetation = VegetationGenerator(self.options.vegetation, logger=self.logger)
        self.structures = StructuresGenerator(self.options.structures, logger=self.logger)
        self.features = FeaturesGenerator(self.options.features, logger=self.logger)
        self.converter = TacticalMapConverter(self.options.mixing, logger=self.logger)

    def validate_dimensions(self, width: Any, height: Any) -> Tuple[int, int]:
        """Checked dimensions as plain ints. Accepts numpy integers, never bools."""
        low, high = self.options.min_dimension, self.options.max_dimension
        for name, value in (("width", width), ("height", height)):
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise InvalidDimensionsError(name, value, low, high)
            if not low <= value <= high:
                raise InvalidDimensionsError(name, value, low, high)
        return int(width), int(height)

    def resolve_seed(
        self, seed: SeedInput, width: int, height: int, context: TacticalMapContext
    ) -> Tuple[int, List[str]]:
        """Normalised seed and any warnings. Never fails."""
        if seed is None:
            parameters = {"width": width, "height": height, "context": list(context.as_tuple())}
            return self.options.seed_policy.ensure_seed(None, parameters), []
        result = validate_seed(seed)
        for warning in result.warnings:
            self.logger.warning("Seed adjusted", detail=warning, codes=result.codes)
        return result.normalized_seed, list(result.warnings)

    def generate(
        self,
        width: int,
        height: int,
        context: ContextInput,
        seed: SeedInput = None,
    ) -> LayerBundle:
        """
        Generate all six layers.

        Args:
            width: Map width in tiles (10-200)
            height: Map height in tiles (10-200)
            context: TacticalMapContext or a mapping of its fields
            seed: Integer, numeric string or text seed

        Returns:
            LayerBundle with generation metadata

        Raises:
            InvalidDimensionsError: width or height out of bounds
            InvalidContextError: impossible context combination
            LayerGenerationError: a stage failed, tagged with its name
        """
        width, height = self.validate_dimensions(width, height)
        context = coerce_context(context)
        seed, warnings = self.resolve_seed(seed, width, height, context)

        rng = CoordinatedRandomGenerator(seed)
        ids = DeterministicIdGenerator(seed)
        metadata = GenerationMetadata(
            seed=seed,
            width=width,
            height=height,
            context=context.as_tuple(),
            seed_warnings=warnings,
        )
        self.logger.info(
            "Starting tactical map generation",
            width=width,
            height=height,
            seed=seed,
            context=context.description(),
        )
        started = time.perf_counter()

        geology = self._run_stage(
            "geology", metadata, self.geology.generate, width, height, context, rng
        )
        topography = self._run_stage(
            "topography", metadata, self.topography.generate, geology, context, rng
        )
        hydrology = self._run_stage(
            "hydrology",
            metadata,
            self.hydrology.generate,
            geology,
            topography,
            context,
            rng,
            ids.create_sub_generator("hydrology"),
        )
        vegetation = self._run_stage(
            "vegetation",
            metadata,
            self.vegetation.generate,
            geology,
            topography,
            hydrology,
            context,
            rng,
            ids.create_sub_generator("vegetation"),
        )
        structures = self._run_stage(
            "structures",
            metadata,
            self.structures.generate,
            topography,
            hydrology,
            vegetation,
            context,
            rng,
            ids.create_sub_generator("structures"),
        )
        features = self._run_stage(
            "features",
            metadata,
            self.features.generate,
            geology,
            topography,
            hydrology,
            vegetation,
            structures,
            context,
            rng,
            ids.create_sub_generator("features"),
        )

        metadata.total_time_ms = round((time.perf_counter() - started) * 1000, 3)
        metadata.counts = {
            "formations": len(geology.formations),
            "springs": len(hydrology.springs),
            "streams": len(hydrology.streams),
            "trees": vegetation.total_tree_count,
            "forest_patches": len(vegetation.forest_patches),
            "clearings": len(vegetation.clearings),
            "buildings": len(structures.buildings),
            "road_segments": len(structures.roads.segments),
            "bridges": len(structures.bridges),
            "hazards": len(features.hazards),
            "resources": len(features.resources),
            "landmarks": len(features.landmarks),
            "tactical_features": len(features.tactical_features),
        }
        self.logger.info(
            "Tactical map generation completed",
            seed=seed,
            total_time_ms=metadata.total_time_ms,
            **metadata.counts,
        )
        return LayerBundle(
            geology=geology,
            topography=topography,
            hydrology=hydrology,
            vegetation=vegetation,
            structures=structures,
            features=features,
            metadata=metadata,
        )

    def _run_stage(self, name: str, metadata: GenerationMetadata, func: Callable, *args):
        started = time.perf_counter()
        try:
            layer = func(*args)
        except LayerDependencyError:
            raise
        except Exception as e:
            self.logger.error("Layer generation failed", layer=name, error=str(e))
            raise LayerGenerationError(name, e) from e
        elapsed = round((time.perf_counter() - started) * 1000, 3)
        metadata.stage_timings[name] = elapsed
        self.logger.debug("Layer generated", layer=name, duration_ms=elapsed)
        return layer

    def convert_to_tiles(
        self,
        width: int,
        height: int,
        bundle: LayerBundle,
        context: ContextInput,
        seed: SeedInput,
    ) -> List[List[Tile]]:
        width, height = self.validate_dimensions(width, height)
        context = coerce_context(context)
        seed, _ = self.resolve_seed(seed, width, height, context)
        return self.converter.convert(width, height, bundle, context, seed)

    def generate_map(
        self,
        width: int,
        height: int,
        context: ContextInput,
        seed: SeedInput = None,
    ) -> MapGrid:
        """Generate the layers and flatten them into a MapGrid."""
        context = coerce_context(context)
        return self.assemble(self.generate(width, height, context, seed), context)

    def assemble(self, bundle: LayerBundle, context: ContextInput) -> MapGrid:
        """MapGrid for an already generated bundle."""
        context = coerce_context(context)
        width, height = bundle.metadata.width, bundle.metadata.height
        resolved = bundle.metadata.seed
        tiles = self.converter.convert(width, height, bundle, context, resolved)
        return MapGrid(
            id=DeterministicIdGenerator(resolved).map_id(),
            width=width,
            height=height,
            cell_size=settings.cell_size_ft,
            tiles=tiles,
            seed=resolved,
            context=context,
            metadata=bundle.metadata,
        )

    def replay(self, parameters: Mapping[str, Any]) -> MapGrid:
        """Regenerate a map from the output of MapGrid.parameters()."""
        return self.generate_map(
            parameters["width"],
            parameters["height"],
            parameters["context"],
            parameters["seed"],
        )


def generate(
    width: int,
    height: int,
    context: ContextInput,
    seed: SeedInput = None,
    options: Optional[GenerationOptions] = None,
) -> LayerBundle:
    return TacticalMapGenerator(options).generate(width, height, context, seed)


def convert_to_tiles(
    width: int,
    height: int,
    bundle: LayerBundle,
    context: ContextInput,
    seed: SeedInput,
    options: Optional[GenerationOptions] = None,
) -> List[List[Tile]]:
    return TacticalMapGenerator(options).convert_to_tiles(width, height, bundle, context, seed)
