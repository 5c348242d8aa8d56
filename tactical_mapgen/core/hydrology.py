"""
Hydrology layer: surface water on the tactical map.

This module implements:
- D8 steepest-descent flow directions
- Flow accumulation by descending elevation
- Stream channels with Strahler stream order
- Springs on spring-capable bedrock
- Pools in valleys and low ground
- Moisture classification from water proximity, flow and permeability
- Stream segment tracing
"""

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field
from scipy import ndimage

from ..errors import LayerDependencyError
from ..utils.grid import D8_DISTANCES, D8_OFFSETS
from ..utils.random import RIVERS, CoordinatedRandomGenerator, DeterministicIdGenerator
from .context import HydrologyType, TacticalMapContext
from .geology import GeologyLayer, PermeabilityLevel
from .noise import NoiseField
from .seed import LAYER_PRIMES, mix_seed
from .topography import TopographyLayer

logger = structlog.get_logger()

DEFAULT_SPRING_THRESHOLD = 0.80
DEFAULT_POOL_THRESHOLD = 0.70
DEFAULT_SLOPE_BONUS = 0.3

STREAM_THRESHOLDS: Dict[HydrologyType, float] = {
    HydrologyType.ARID: 25,
    HydrologyType.SEASONAL: 15,
    HydrologyType.STREAM: 8,
    HydrologyType.RIVER: 5,
    HydrologyType.WETLAND: 3,
}
DEFAULT_STREAM_THRESHOLD = 10

STREAM_DEPTH_FACTORS: Dict[HydrologyType, float] = {
    HydrologyType.RIVER: 2.0,
    HydrologyType.STREAM: 1.5,
    HydrologyType.SEASONAL: 0.5,
}

# Wetness score of dry ground for each water regime
BASE_WETNESS: Dict[HydrologyType, float] = {
    HydrologyType.ARID: 0.05,
    HydrologyType.SEASONAL: 0.3,
    HydrologyType.STREAM: 0.45,
    HydrologyType.RIVER: 0.5,
    HydrologyType.LAKE: 0.5,
    HydrologyType.COASTAL: 0.5,
    HydrologyType.WETLAND: 0.75,
}


class MoistureLevel(IntEnum):
    ARID = 0
    DRY = 1
    MODERATE = 2
    MOIST = 3
    WET = 4
    SATURATED = 5


# Upper score bound of each class below SATURATED
MOISTURE_BANDS: Tuple[Tuple[float, MoistureLevel], ...] = (
    (0.15, MoistureLevel.ARID),
    (0.30, MoistureLevel.DRY),
    (0.55, MoistureLevel.MODERATE),
    (0.70, MoistureLevel.MOIST),
    (0.85, MoistureLevel.WET),
)


def classify_moisture(score: float) -> MoistureLevel:
    for bound, level in MOISTURE_BANDS:
        if score < bound:
            return level
    return MoistureLevel.SATURATED


def _interpolate(abundance: float, low: float, mid: float, high: float) -> float:
    """Piecewise linear: low at 0.5, mid at 1.0, high at 2.0."""
    if abundance <= 1.0:
        t = (abundance - 0.5) / 0.5
        return low - t * (low - mid)
    t = (abundance - 1.0) / 1.0
    return mid - t * (mid - high)


class HydrologyConfig(BaseModel):
    """Water abundance tuning. Lower abundance means fewer streams, springs and pools."""

    model_config = ConfigDict(frozen=True)

    water_abundance: float = Field(
        default=1.0, ge=0.5, le=2.0, description="0.5 dry, 1.0 normal, 2.0 very wet"
    )

    @property
    def stream_threshold_multiplier(self) -> float:
        return max(0.5, 2.0 - self.water_abundance)

    @property
    def spring_threshold(self) -> float:
        return _interpolate(self.water_abundance, 0.95, DEFAULT_SPRING_THRESHOLD, 0.65)

    @property
    def pool_threshold(self) -> float:
        return _interpolate(self.water_abundance, 0.85, DEFAULT_POOL_THRESHOLD, 0.55)

    @property
    def slope_spring_bonus(self) -> float:
        return DEFAULT_SLOPE_BONUS * self.water_abundance


@dataclass
class Spring:
    id: str
    x: int
    y: int
    flow_rate: float  # relative, 0-1


@dataclass
class StreamSegment:
    id: str
    points: List[Tuple[int, int]]
    order: int
    width: int  # tiles


@dataclass
class HydrologyTile:
    flow_direction: int
    flow_accumulation: int
    water_depth: float
    moisture: MoistureLevel
    stream_order: int
    is_stream: bool
    is_pool: bool
    is_spring: bool


@dataclass
class HydrologyLayer:
    """Hydrology layer output. Depths in feet, grids indexed [y, x]."""

    width: int
    height: int
    flow_direction: np.ndarray  # D8 index 0-7, -1 for sinks
    flow_accumulation: np.ndarray
    water_depth: np.ndarray
    moisture: np.ndarray  # MoistureLevel codes
    stream_order: np.ndarray
    is_stream: np.ndarray
    is_pool: np.ndarray
    is_spring: np.ndarray
    springs: List[Spring] = field(default_factory=list)
    streams: List[StreamSegment] = field(default_factory=list)
    total_water_coverage: float = 0.0  # percent of tiles with water

    @property
    def has_water(self) -> np.ndarray:
        return self.water_depth > 0

    def tile(self, x: int, y: int) -> HydrologyTile:
        return HydrologyTile(
            flow_direction=int(self.flow_direction[y, x]),
            flow_accumulation=int(self.flow_accumulation[y, x]),
            water_depth=float(self.water_depth[y, x]),
            moisture=MoistureLevel(int(self.moisture[y, x])),
            stream_order=int(self.stream_order[y, x]),
            is_stream=bool(self.is_stream[y, x]),
            is_pool=bool(self.is_pool[y, x]),
            is_spring=bool(self.is_spring[y, x]),
        )


class HydrologyGenerator:
    """Handles water flow simulation and stream generation."""

    def __init__(self, options: Optional[HydrologyConfig] = None, logger=None):
        self.options = options or HydrologyConfig()
        self.logger = (logger or structlog.get_logger()).bind(stage="hydrology")

    def generate(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
        ids: DeterministicIdGenerator,
    ) -> HydrologyLayer:
        """
        Generate the hydrology layer.

        Args:
            geology: Geology layer (permeability, spring-capable bedrock)
            topography: Topography layer (elevation, slope, valleys)
            context: Generation context
            rng: Per-request random hierarchy
            ids: Identifier generator for this layer

        Returns:
            HydrologyLayer
        """
        if geology is None:
            raise LayerDependencyError("hydrology", "geology")
        if topography is None:
            raise LayerDependencyError("hydrology", "topography")

        width, height = topography.width, topography.height
        base_seed = rng.sub_seed(RIVERS)
        self.logger.info(
            "Generating hydrology",
            hydrology=context.hydrology.value,
            water_abundance=self.options.water_abundance,
        )

        flow_direction = self.flow_directions(topography.elevation)
        accumulation = self.flow_accumulation(topography.elevation, flow_direction)
        threshold = self.stream_threshold(context)
        is_stream = accumulation >= threshold
        stream_order = self.strahler_order(topography.elevation, flow_direction, is_stream)

        self.logger.debug(
            "Flow routed",
            stream_threshold=threshold,
            stream_tiles=int(is_stream.sum()),
            max_accumulation=int(accumulation.max()),
        )

        depth_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["hydrology.streams"]))
        water_depth, is_pool = self._water_depths(
            topography, context, is_stream, stream_order, depth_noise
        )

        spring_noise = NoiseField(mix_seed(base_seed, LAYER_PRIMES["hydrology.springs"]))
        springs = self._place_springs(geology, topography, spring_noise, ids)
        is_spring = np.zeros((height, width), dtype=bool)
        for spring in springs:
            is_spring[spring.y, spring.x] = True
            water_depth[spring.y, spring.x] = max(water_depth[spring.y, spring.x], 0.5)

        moisture = self.moisture(water_depth, accumulation, topography, geology, context)
        streams = self._trace_segments(
            topography.elevation, flow_direction, is_stream, stream_order, ids
        )

        coverage = float(np.count_nonzero(water_depth > 0)) / (width * height) * 100

        layer = HydrologyLayer(
            width=width,
            height=height,
            flow_direction=flow_direction,
            flow_accumulation=accumulation,
            water_depth=water_depth,
            moisture=moisture,
            stream_order=stream_order,
            is_stream=is_stream,
            is_pool=is_pool,
            is_spring=is_spring,
            springs=springs,
            streams=streams,
            total_water_coverage=coverage,
        )
        self.logger.info(
            "Hydrology generated",
            streams=len(streams),
            springs=len(springs),
            pools=int(is_pool.sum()),
            water_coverage=round(coverage, 2),
        )
        return layer

    @staticmethod
    def flow_directions(elevation: np.ndarray) -> np.ndarray:
        """Steepest downslope neighbour per tile; -1 where nothing is lower."""
        height, width = elevation.shape
        directions = np.full((height, width), -1, dtype=np.int8)
        best = np.zeros((height, width), dtype=np.float64)
        padded = np.pad(elevation, 1, mode="constant", constant_values=np.inf)
        for index, ((dx, dy), distance) in enumerate(zip(D8_OFFSETS, D8_DISTANCES)):
            neighbour = padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
            slope = (elevation - neighbour) / distance
            steeper = slope > best
            best = np.where(steeper, slope, best)
            directions = np.where(steeper, index, directions).astype(np.int8)
        return directions

    @staticmethod
    def _processing_order(elevation: np.ndarray) -> np.ndarray:
        """Flat indices from highest to lowest, ties in row-major order."""
        return np.argsort(-elevation.ravel(), kind="stable")

    def flow_accumulation(self, elevation: np.ndarray, directions: np.ndarray) -> np.ndarray:
        """Number of tiles (self included) draining through each tile."""
        height, width = elevation.shape
        accumulation = np.ones(height * width, dtype=np.int64)
        flat_dirs = directions.ravel()
        for index in self._processing_order(elevation):
            direction = flat_dirs[index]
            if direction < 0:
                continue
            y, x = divmod(int(index), width)
            dx, dy = D8_OFFSETS[direction]
            accumulation[(y + dy) * width + (x + dx)] += accumulation[index]
        return accumulation.reshape(height, width)

    def stream_threshold(self, context: TacticalMapContext) -> float:
        base = STREAM_THRESHOLDS.get(context.hydrology, DEFAULT_STREAM_THRESHOLD)
        return base * self.options.stream_threshold_multiplier

    def strahler_order(
        self, elevation: np.ndarray, directions: np.ndarray, is_stream: np.ndarray
    ) -> np.ndarray:
        """
        Strahler order of every stream tile.

        Flow always goes strictly downhill, so visiting tiles from high to low
        finishes every tributary before the tile it drains into.
        """
        height, width = elevation.shape
        order = np.zeros(height * width, dtype=np.int32)
        stream_flat = is_stream.ravel()
        dirs_flat = directions.ravel()
        inflow: Dict[int, List[int]] = {}

        for index in self._processing_order(elevation):
            index = int(index)
            if not stream_flat[index]:
                continue
            tributaries = inflow.get(index, [])
            if tributaries:
                top = max(tributaries)
                order[index] = top + 1 if tributaries.count(top) >= 2 else top
            else:
                order[index] = 1

            direction = dirs_flat[index]
            if direction >= 0:
                y, x = divmod(index, width)
                dx, dy = D8_OFFSETS[direction]
                target = (y + dy) * width + (x + dx)
                if stream_flat[target]:
                    inflow.setdefault(target, []).append(int(order[index]))
        return order.reshape(height, width)

    def _water_depths(
        self,
        topography: TopographyLayer,
        context: TacticalMapContext,
        is_stream: np.ndarray,
        stream_order: np.ndarray,
        noise: NoiseField,
    ) -> Tuple[np.ndarray, np.ndarray]:
        width, height = topography.width, topography.height
        factor = STREAM_DEPTH_FACTORS.get(context.hydrology, 1.0)

        variation = noise.grid(width, height, 0.3)
        depth = np.where(
            is_stream, stream_order * 0.5 * factor * (0.8 + variation * 0.4), 0.0
        )
        depth = np.where(is_stream & topography.is_valley, depth * 1.5, depth)

        span = topography.max_elevation - topography.min_elevation
        low_ground = topography.elevation <= topography.min_elevation + span * 0.3
        pool_site = (topography.is_valley | low_ground) & (topography.slope < 5)
        if context.hydrology == HydrologyType.ARID:
            pool_site = np.zeros_like(pool_site)

        chance = noise.grid(width, height, 0.2)
        is_pool = pool_site & (chance > self.options.pool_threshold)
        depth = np.where(is_pool, np.maximum(depth, 1 + chance * 2), depth)
        return depth.astype(np.float64), is_pool

    def _place_springs(
        self,
        geology: GeologyLayer,
        topography: TopographyLayer,
        noise: NoiseField,
        ids: DeterministicIdGenerator,
    ) -> List[Spring]:
        """Springs where water-bearing rock reaches the surface."""
        capable = geology.spring_capable()
        transition = geology.transition_mask()
        median = float(np.median(topography.elevation))
        threshold = self.options.spring_threshold
        bonus = self.options.slope_spring_bonus

        springs = []
        for y in range(topography.height):
            for x in range(topography.width):
                if not capable[y, x]:
                    continue
                score = noise.generate_at(x * 0.5, y * 0.5)
                if topography.slope[y, x] > 15:
                    score += bonus
                if topography.elevation[y, x] > median:
                    score += 0.1
                if transition[y, x]:
                    score += 0.15
                if score > threshold:
                    springs.append(
                        Spring(
                            id=ids.feature_id("spring"),
                            x=x,
                            y=y,
                            flow_rate=min(1.0, score - threshold + 0.1),
                        )
                    )
        return springs

    def moisture(
        self,
        water_depth: np.ndarray,
        accumulation: np.ndarray,
        topography: TopographyLayer,
        geology: GeologyLayer,
        context: TacticalMapContext,
    ) -> np.ndarray:
        """MoistureLevel code per tile."""
        water = water_depth > 0
        if water.any():
            distance = ndimage.distance_transform_edt(~water)
        else:
            distance = np.full(water.shape, np.inf)

        span = topography.max_elevation - topography.min_elevation
        if span > 0:
            normalised = (topography.elevation - topography.min_elevation) / span
        else:
            normalised = np.zeros_like(topography.elevation)

        score = (
            BASE_WETNESS.get(context.hydrology, 0.45)
            + 0.5 * np.exp(-distance / 3)
            + np.where(accumulation > 10, 0.1, 0.0)
            + np.where(accumulation > 20, 0.1, 0.0)
            - 0.1 * normalised
        )

        permeability = geology.permeability
        levels = np.zeros(water.shape, dtype=np.int8)
        for y in range(water.shape[0]):
            for x in range(water.shape[1]):
                if water[y, x]:
                    levels[y, x] = MoistureLevel.SATURATED
                    continue
                level = classify_moisture(float(score[y, x]))
                if permeability[y, x] == PermeabilityLevel.IMPERMEABLE:
                    if level != MoistureLevel.SATURATED:
                        level = MoistureLevel(level + 1)
                elif permeability[y, x] == PermeabilityLevel.HIGH:
                    level = MoistureLevel(max(0, level - 1))
                levels[y, x] = level
        return levels

    def _trace_segments(
        self,
        elevation: np.ndarray,
        directions: np.ndarray,
        is_stream: np.ndarray,
        stream_order: np.ndarray,
        ids: DeterministicIdGenerator,
    ) -> List[StreamSegment]:
        """Follow flow from stream heads, highest first, then any leftovers."""
        height, width = elevation.shape
        has_stream_inflow = np.zeros((height, width), dtype=bool)
        for y in range(height):
            for x in range(width):
                direction = directions[y, x]
                if is_stream[y, x] and direction >= 0:
                    dx, dy = D8_OFFSETS[direction]
                    has_stream_inflow[y + dy, x + dx] = True

        heads = []
        rest = []
        for index in self._processing_order(elevation):
            y, x = divmod(int(index), width)
            if is_stream[y, x]:
                (rest if has_stream_inflow[y, x] else heads).append((x, y))

        visited = np.zeros((height, width), dtype=bool)
        segments = []
        for start in heads + rest:
            points = []
            max_order = 0
            x, y = start
            while 0 <= x < width and 0 <= y < height:
                if visited[y, x] or not is_stream[y, x]:
                    break
                visited[y, x] = True
                points.append((x, y))
                max_order = max(max_order, int(stream_order[y, x]))
                direction = directions[y, x]
                if direction < 0:
                    break
                dx, dy = D8_OFFSETS[direction]
                x, y = x + dx, y + dy
            if len(points) > 2:
                segments.append(
                    StreamSegment(
                        id=ids.feature_id("stream"),
                        points=points,
                        order=max_order,
                        width=int(math.ceil(max_order / 2)),
                    )
                )
        return segments
