"""
Topography layer: elevation emerging from geology.

This module implements:
- Three-layer elevation (macro gradient, tactical undulations, rock texture)
- Differential erosion driven by rock resistance, slope, fractures and climate
- Rock-specific relief features for rugged terrain
- Variable smoothing by erosion susceptibility and topographic position
- Slope, aspect, ridge and valley classification
"""

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from ..errors import LayerDependencyError
from ..utils.grid import D4_OFFSETS, D8_OFFSETS, shifted
from ..utils.random import ELEVATION, CoordinatedRandomGenerator
from .context import ElevationZone, HydrologyType, TacticalMapContext
from .geology import GeologyLayer, RockType
from .noise import NoiseField
from .seed import LAYER_PRIMES, mix_seed

logger = structlog.get_logger()

DEFAULT_RELIEF = 0.4  # share of the smallest map dimension used as relief

ZONE_MULTIPLIERS: Dict[ElevationZone, float] = {
    ElevationZone.LOWLAND: 0.3,
    ElevationZone.FOOTHILLS: 0.6,
    ElevationZone.HIGHLAND: 0.8,
    ElevationZone.ALPINE: 1.0,
}

TEXTURE_INTENSITY: Dict[RockType, float] = {
    RockType.CARBONATE: 0.8,
    RockType.VOLCANIC: 0.7,
    RockType.METAMORPHIC: 0.5,
    RockType.GRANITIC: 0.6,
    RockType.CLASTIC: 0.3,
    RockType.EVAPORITE: 0.2,
}

CLIMATE_WETNESS: Dict[HydrologyType, float] = {
    HydrologyType.ARID: 0.3,
    HydrologyType.SEASONAL: 0.6,
    HydrologyType.STREAM: 0.7,
    HydrologyType.RIVER: 0.8,
    HydrologyType.LAKE: 0.75,
    HydrologyType.COASTAL: 0.9,
    HydrologyType.WETLAND: 1.0,
}


class AspectDirection(IntEnum):
    FLAT = 0
    NORTH = 1
    NORTHEAST = 2
    EAST = 3
    SOUTHEAST = 4
    SOUTH = 5
    SOUTHWEST = 6
    WEST = 7
    NORTHWEST = 8


class TopographyConfig(BaseModel):
    """Topography tuning. Out-of-range values raise pydantic.ValidationError."""

    model_config = ConfigDict(frozen=True)

    ruggedness: float = Field(
        default=1.0, ge=0.5, le=2.0, description="0.5 smooth, 1.0 moderate, 2.0 broken terrain"
    )
    elevation_variance: float = Field(
        default=1.0, ge=0.5, le=2.0, description="0.5 flat, 1.0 hills, 2.0 mountainous"
    )
    elevation_multiplier: float = Field(
        default=1.0, ge=0.1, le=5.0, description="Final scale applied to every elevation"
    )
    add_height_noise: bool = Field(default=False, description="Add extra fine height noise")
    height_noise_amplitude: float = Field(
        default=2.0, ge=0.0, description="Amplitude in feet of the extra height noise"
    )


def max_elevation_for(
    width: int, height: int, zone: ElevationZone, config: TopographyConfig
) -> float:
    """Relief ceiling in feet for a map of the given size and zone."""
    min_dimension_ft = min(width, height) * 5
    ruggedness_factor = 0.4 + config.ruggedness * 0.6
    return (
        min_dimension_ft
        * DEFAULT_RELIEF
        * ZONE_MULTIPLIERS.get(zone, 0.5)
        * config.elevation_variance
        * ruggedness_factor
    )


MACRO_SCALE = 0.001


def macro_relief(width: int, height: int, seed: int) -> np.ndarray:
    """
    Continent-scale height in [0, 1].

    Not normalised: a map spans a small fraction of one noise cell, so the
    layer is close to level.
    """
    ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
    return NoiseField(seed).octaves(xs * MACRO_SCALE, ys * MACRO_SCALE, 2, 0.6)


def slope_degrees(elevation: np.ndarray) -> np.ndarray:
    """Central-difference slope in degrees; run is two 5 ft tiles."""
    dx = (shifted(elevation, 1, 0) - shifted(elevation, -1, 0)) / 10
    dy = (shifted(elevation, 0, 1) - shifted(elevation, 0, -1)) / 10
    return np.minimum(90.0, np.degrees(np.arctan(np.hypot(dx, dy))))


def aspect_for(dx: float, dy: float) -> AspectDirection:
    """8-way direction of a gradient; screen y grows southward."""
    if dx == 0 and dy == 0:
        return AspectDirection.FLAT
    angle = (math.degrees(math.atan2(dy, dx)) + 360) % 360
    if angle < 22.5 or angle >= 337.5:
        return AspectDirection.EAST
    if angle < 67.5:
        return AspectDirection.SOUTHEAST
    if angle < 112.5:
        return AspectDirection.SOUTH
    if angle < 157.5:
        return AspectDirection.SOUTHWEST
    if angle < 202.5:
        return AspectDirection.WEST
    if angle < 247.5:
        return AspectDirection.NORTHWEST
    if angle < 292.5:
        return AspectDirection.NORTH
    return AspectDirection.NORTHEAST


def _neighbour_comparison(elevation: np.ndarray):
    """(lower, higher, valid) neighbour counts over the in-bounds 8-neighbourhood."""
    height, width = elevation.shape
    padded = np.pad(elevation, 1, mode="constant", constant_values=np.nan)
    lower = np.zeros((height, width), dtype=np.int32)
    higher = np.zeros((height, width), dtype=np.int32)
    valid = np.zeros((height, width), dtype=np.int32)
    for dx, dy in D8_OFFSETS:
        neighbour = padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
        present = ~np.isnan(neighbour)
        valid += present
        lower += present & (neighbour < elevation)
        higher += present & (neighbour > elevation)
    return lower, higher, valid


@dataclass
class TopographyTile:
    elevation: float
    slope: float
    aspect: AspectDirection
    relative_elevation: float
    is_ridge: bool
    is_valley: bool


@dataclass
class TopographyLayer:
    """Topography layer output. Elevations are in feet, grids indexed [y, x]."""

    width: int
    height: int
    elevation: np.ndarray
    slope: np.ndarray
    aspect: np.ndarray  # AspectDirection codes
    relative_elevation: np.ndarray
    is_ridge: np.ndarray
    is_valley: np.ndarray
    min_elevation: float = 0.0
    max_elevation: float = 0.0
    average_slope: float = 0.0
    statistics: Dict[str, float] = field(default_factory=dict)

    def tile(self, x: int, y: int) -> TopographyTile:
        return TopographyTile(
            elevation=float(self.elevation[y, x]),
            slope=float(self.slope[y, x]),
            aspect=AspectDirection(int(self.aspect[y, x])),
            relative_elevation=float(self.relative_elevation[y, x]),
            is_ridge=bool(self.is_ridge[y, x]),
            is_valley=bool(self.is_valley[y, x]),
        )


class TopographyGenerator:
    """Builds elevation from the geology layer through erosion and smoothing."""

    def __init__(self, options: Optional[TopographyConfig] = None, logger=None):
        self.options = options or TopographyConfig()
        self.logger = (logger or structlog.get_logger()).bind(stage="topography")

    def generate(
        self,
        geology: GeologyLayer,
        context: TacticalMapContext,
        rng: CoordinatedRandomGenerator,
    ) -> TopographyLayer:
        """
        Generate the topography layer.

        Args:
            geology: Geology layer this terrain is carved from
            context: Generation context
            rng: Per-request random hierarchy

        Returns:
            TopographyLayer
        """
        if geology is None:
            raise LayerDependencyError("topography", "geology")

        width, height = geology.width, geology.height
        config = self.options
        base_seed = rng.sub_seed(ELEVATION)
        max_elevation = max_elevation_for(width, height, context.elevation, config)

        self.logger.info(
            "Generating topography",
            width=width,
            height=height,
            zone=context.elevation.value,
            max_elevation=round(max_elevation, 2),
        )

        elevation = self._base_elevations(geology, base_seed, max_elevation)
        elevation = self._differential_erosion(elevation, geology, context, base_seed)
        if config.ruggedness >= 1.5:
            self._geological_relief(elevation, geology, base_seed, max_elevation)
        elevation = self._variable_smoothing(elevation, geology, context)

        elevation = elevation * config.elevation_multiplier
        if config.add_height_noise:
            extra = NoiseField(mix_seed(base_seed, 13)).grid(width, height, 0.2)
            extra = extra * config.height_noise_amplitude
            elevation = elevation + np.where(extra > 0.5, np.floor(extra), 0.0)
        elevation = np.maximum(0.0, elevation)

        layer = self._derive(elevation)
        self.logger.info(
            "Topography generated",
            min_elevation=round(layer.min_elevation, 2),
            max_elevation=round(layer.max_elevation, 2),
            average_slope=round(layer.average_slope, 2),
            ridges=int(layer.is_ridge.sum()),
            valleys=int(layer.is_valley.sum()),
        )
        return layer

    def _base_elevations(
        self, geology: GeologyLayer, base_seed: int, max_elevation: float
    ) -> np.ndarray:
        """Macro gradient + tactical undulations + rock texture."""
        width, height = geology.width, geology.height
        r = self.options.ruggedness
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)

        tactical_scale = 0.015 * (0.7 + 0.6 * r)
        texture_scale = 0.02 * (0.5 + 0.75 * r)

        tactical_noise = NoiseField(mix_seed(base_seed, 3))
        texture_noise = NoiseField(mix_seed(base_seed, 7))

        macro = macro_relief(width, height, mix_seed(base_seed, LAYER_PRIMES["topography"]))
        macro = macro * max_elevation * (0.7 - (r - 0.5) * 0.2)

        octaves = int(round(1 + r * 1.5))
        tactical = _normalise(
            tactical_noise.octaves(xs * tactical_scale, ys * tactical_scale, octaves, 0.5)
        )
        tactical = (tactical - 0.5) * max_elevation * (0.15 + (r - 0.5) * 0.267)

        texture = texture_noise.octaves(xs * texture_scale, ys * texture_scale, 2, 0.5) - 0.5
        intensity = np.array(
            [TEXTURE_INTENSITY.get(f.rock_type, 0.4) * r for f in geology.formations]
        )[geology.formation_index]
        texture = texture * intensity * max_elevation * (0.02 + (r - 0.5) * 0.053)

        return np.maximum(0.0, macro + tactical + texture)

    def _susceptibility(
        self, elevation: np.ndarray, geology: GeologyLayer, context: TacticalMapContext
    ) -> np.ndarray:
        """Erosion susceptibility in [0, 1] per tile."""
        wetness = CLIMATE_WETNESS.get(context.hydrology, 0.6)
        slope = slope_degrees(elevation)
        rock_factor = 1 - geology.erosion_resistance()
        slope_factor = np.minimum(1.5, 1 + slope / 60)
        fracture_factor = 1 + geology.fracture_intensity * 0.5
        age_factor = 2.0 - self.options.ruggedness
        susceptibility = (
            0.3 * rock_factor
            + 0.2 * (slope_factor - 1)
            + 0.2 * (fracture_factor - 1)
            + 0.15 * (wetness - 0.5)
            + 0.15 * (age_factor - 1)
        )
        return np.clip(susceptibility, 0.0, 1.0)

    def _differential_erosion(
        self,
        elevation: np.ndarray,
        geology: GeologyLayer,
        context: TacticalMapContext,
        base_seed: int,
    ) -> np.ndarray:
        susceptibility = self._susceptibility(elevation, geology, context)
        variation = 0.7 + NoiseField(mix_seed(base_seed, 5)).grid(
            geology.width, geology.height, 0.1
        ) * 0.6
        peak = float(elevation.max()) if elevation.size else 0.0
        # ~8 ft of erosion at 50 ft of relief
        erosion = susceptibility * variation * (peak / 50) * 8
        return np.maximum(0.0, elevation - erosion)

    def _geological_relief(
        self,
        elevation: np.ndarray,
        geology: GeologyLayer,
        base_seed: int,
        max_elevation: float,
    ) -> None:
        """Rock-specific relief, applied in place tile by tile."""
        if max_elevation <= 0:
            return
        height, width = elevation.shape
        noise = NoiseField(mix_seed(base_seed, 11))
        scale = max_elevation / 50

        for y in range(height):
            for x in range(width):
                formation = geology.formation_at(x, y)
                fracture = float(geology.fracture_intensity[y, x])
                rock = formation.rock_type

                if rock == RockType.CARBONATE:
                    strength = noise.generate_at(x * 0.12, y * 0.12)
                    if fracture > 0.6 and strength > 0.65:
                        depth = (8 + strength * 15) * scale
                        elevation[y, x] = max(0.0, elevation[y, x] - depth)
                    if fracture > 0.7 and strength > 0.80:
                        dolina = (10 + strength * 20) * scale
                        for dy in range(-2, 3):
                            for dx in range(-2, 3):
                                nx, ny = x + dx, y + dy
                                if 0 <= nx < width and 0 <= ny < height:
                                    dist = math.sqrt(dx * dx + dy * dy)
                                    if dist < 3:
                                        falloff = (3 - dist) / 3
                                        elevation[ny, nx] = max(
                                            0.0, elevation[ny, nx] - dolina * falloff
                                        )

                elif rock == RockType.GRANITIC:
                    strength = noise.generate_at(x * 0.15, y * 0.15)
                    ratio = elevation[y, x] / max_elevation
                    if ratio > 0.7 and fracture > 0.6 and strength > 0.75:
                        elevation[y, x] += (10 + strength * 20) * scale
                    elif ratio < 0.4 and fracture < 0.4:
                        y0, y1 = max(0, y - 2), min(height, y + 3)
                        x0, x1 = max(0, x - 2), min(width, x + 3)
                        window = elevation[y0:y1, x0:x1]
                        elevation[y, x] = (elevation[y, x] + window.sum()) / (window.size + 1)

                elif rock == RockType.CLASTIC:
                    strength = noise.generate_at(x * 0.08, y * 0.08)
                    resistance = formation.properties.erosion_resistance()
                    if resistance < 0.3 and strength > 0.70:
                        depth = (5 + strength * 10 * (1.0 - resistance)) * scale
                        elevation[y, x] = max(0.0, elevation[y, x] - depth)

                elif rock == RockType.METAMORPHIC:
                    layering = noise.generate_at(x * 0.20, y * 0.20)
                    if layering > 0.65:
                        tooth = (3 + layering * 5) * scale
                        elevation[y, x] += tooth if (x + y) % 3 == 0 else -tooth * 0.5

    def _variable_smoothing(
        self, elevation: np.ndarray, geology: GeologyLayer, context: TacticalMapContext
    ) -> np.ndarray:
        """
        Smooth soft, eroded ground more than hard, young ground.

        A tile receives floor(susceptibility * max_passes) passes, one more in
        valleys and one fewer on ridges.
        """
        max_passes = max(0, round(6 - self.options.ruggedness * 3))
        susceptibility = self._susceptibility(elevation, geology, context)

        lower, higher, valid = _neighbour_comparison(elevation)
        valley = higher >= valid * 0.6
        ridge = ~valley & (lower >= valid * 0.6)

        passes = np.floor(susceptibility * max_passes).astype(np.int32)
        passes = np.where(valley, passes + 1, passes)
        passes = np.where(ridge, np.maximum(0, passes - 1), passes)

        height, width = elevation.shape
        inside = np.pad(np.ones((height, width)), 1, mode="constant")
        count = 4 + sum(
            inside[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width] for dx, dy in D4_OFFSETS
        )

        result = elevation
        for current in range(max_passes + 1):
            padded = np.pad(result, 1, mode="constant")
            total = result * 4 + sum(
                padded[1 + dy : 1 + dy + height, 1 + dx : 1 + dx + width]
                for dx, dy in D4_OFFSETS
            )
            result = np.where(passes > current, total / count, result)
        return result

    def _derive(self, elevation: np.ndarray) -> TopographyLayer:
        height, width = elevation.shape
        north = shifted(elevation, 0, -1)
        south = shifted(elevation, 0, 1)
        east = shifted(elevation, 1, 0)
        west = shifted(elevation, -1, 0)
        dx = (east - west) / 10
        dy = (south - north) / 10
        slope = np.minimum(90.0, np.degrees(np.arctan(np.hypot(dx, dy))))

        aspect = np.zeros((height, width), dtype=np.int8)
        for y in range(height):
            for x in range(width):
                aspect[y, x] = aspect_for(float(dx[y, x]), float(dy[y, x]))

        relative = np.clip((elevation - (north + south + east + west) / 4) / 10, -1.0, 1.0)

        lower, higher, _ = _neighbour_comparison(elevation)
        interior = np.zeros((height, width), dtype=bool)
        interior[1:-1, 1:-1] = True
        is_ridge = interior & (lower >= 6)
        is_valley = interior & ~is_ridge & (higher >= 6)

        return TopographyLayer(
            width=width,
            height=height,
            elevation=elevation,
            slope=slope,
            aspect=aspect,
            relative_elevation=relative,
            is_ridge=is_ridge,
            is_valley=is_valley,
            min_elevation=float(elevation.min()),
            max_elevation=float(elevation.max()),
            average_slope=float(slope.mean()),
            statistics={
                "ridge_tiles": int(is_ridge.sum()),
                "valley_tiles": int(is_valley.sum()),
                "steep_tiles": int((slope > 30).sum()),
            },
        )


def _normalise(values: np.ndarray) -> np.ndarray:
    low, high = float(values.min()), float(values.max())
    if high - low <= 0:
        return np.zeros_like(values)
    return (values - low) / (high - low)
