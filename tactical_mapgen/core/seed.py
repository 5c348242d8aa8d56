"""
Seed validation and derivation.

This module implements:
- Normalisation of numeric and string seeds into [1, 2**31 - 1]
- A Seed value object
- SeedPolicy, deterministic fallback seeds from generation parameters
- LayeredSeed, prime-mixed seeds per generation layer
"""

import json
import math
import re
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog

from ..errors import SeedError
from .lcg_prng import MAX_SEED, string_hash

logger = structlog.get_logger()

MIN_SEED = 1

SeedInput = Union[int, float, str, "Seed", None]

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class SeedValidationResult:
    """Outcome of seed validation. normalized_seed is always usable."""

    is_valid: bool
    normalized_seed: int
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    codes: List[str] = field(default_factory=list)
    original: Any = None


def generate_default_seed() -> int:
    """Fresh seed for callers that supplied none. Not reproducible."""
    return secrets.randbelow(MAX_SEED - MIN_SEED + 1) + MIN_SEED


def hash_string_to_seed(text: str) -> int:
    """Hash lower-cased, trimmed text into the seed range."""
    return abs(string_hash(text.lower().strip())) % MAX_SEED + 1


def _validate_number(value: Union[int, float], original: Any) -> SeedValidationResult:
    if isinstance(value, float) and not math.isfinite(value):
        return SeedValidationResult(
            is_valid=False,
            normalized_seed=MIN_SEED,
            warnings=[f"Seed {value!r} is not finite, substituted {MIN_SEED}"],
            error="Seed must be a finite number",
            codes=[SeedError.NOT_FINITE],
            original=original,
        )

    normalized = math.floor(abs(value))
    if normalized < MIN_SEED:
        return SeedValidationResult(
            is_valid=True,
            normalized_seed=MIN_SEED,
            warnings=[f"Seed {value} was too small, normalized to {MIN_SEED}"],
            codes=[SeedError.OUT_OF_RANGE],
            original=original,
        )
    if normalized > MAX_SEED:
        wrapped = normalized % MAX_SEED + 1
        return SeedValidationResult(
            is_valid=True,
            normalized_seed=wrapped,
            warnings=[f"Seed {value} was too large, wrapped to {wrapped}"],
            codes=[SeedError.OUT_OF_RANGE],
            original=original,
        )
    return SeedValidationResult(
        is_valid=True, normalized_seed=normalized, original=original
    )


def validate_seed(seed: SeedInput) -> SeedValidationResult:
    """
    Validate and normalise a seed.

    Numbers are floored, made positive and wrapped into range. Strings that
    start with an integer are read as that integer; other strings are hashed.
    A missing or blank seed gets a freshly generated default, the only
    non-deterministic path in the package. Invalid input never raises: a safe
    substitute is returned with is_valid=False.

    Args:
        seed: int, float, str, Seed or None

    Returns:
        SeedValidationResult
    """
    if isinstance(seed, Seed):
        return SeedValidationResult(
            is_valid=True, normalized_seed=seed.value, original=seed
        )

    if seed is None:
        return SeedValidationResult(
            is_valid=True,
            normalized_seed=generate_default_seed(),
            warnings=["No seed provided, generated random seed"],
            codes=[SeedError.RANDOM_FALLBACK],
            original=seed,
        )

    if isinstance(seed, str):
        if not seed.strip():
            return SeedValidationResult(
                is_valid=True,
                normalized_seed=generate_default_seed(),
                warnings=["Empty seed string provided, generated random seed"],
                codes=[SeedError.EMPTY_STRING, SeedError.RANDOM_FALLBACK],
                original=seed,
            )
        match = _LEADING_INT.match(seed)
        if match:
            result = _validate_number(int(match.group(1)), seed)
            return result
        hashed = hash_string_to_seed(seed)
        return SeedValidationResult(
            is_valid=True,
            normalized_seed=hashed,
            warnings=[f'String seed "{seed}" converted to numeric seed {hashed}'],
            original=seed,
        )

    # bool is an int subclass but never a meaningful seed
    if isinstance(seed, bool) or not isinstance(seed, (int, float)):
        return SeedValidationResult(
            is_valid=False,
            normalized_seed=MIN_SEED,
            warnings=[f"Invalid seed type {type(seed).__name__}, substituted {MIN_SEED}"],
            error=f"Invalid seed type: {type(seed).__name__}. Expected number or string.",
            codes=[SeedError.INVALID_TYPE],
            original=seed,
        )

    return _validate_number(seed, seed)


def normalize_seed(seed: SeedInput) -> int:
    """Normalised seed, logging any warnings."""
    result = validate_seed(seed)
    for warning in result.warnings:
        logger.warning("Seed adjusted", detail=warning, codes=result.codes)
    return result.normalized_seed


def seeds_are_equivalent(seed_a: SeedInput, seed_b: SeedInput) -> bool:
    return validate_seed(seed_a).normalized_seed == validate_seed(seed_b).normalized_seed


def describe_seed(seed: SeedInput) -> str:
    result = validate_seed(seed)
    if not result.is_valid:
        return f"Invalid seed: {result.error}"
    description = f"Seed: {result.normalized_seed}"
    if result.warnings:
        description += f" ({', '.join(result.warnings)})"
    return description


def seed_report(master_seed: int, sub_seeds: Optional[Mapping[str, int]] = None) -> str:
    """Human readable report of a master seed and its derived sub-seeds."""
    lines = [
        "=== Seed Report ===",
        f"Master Seed: {master_seed}",
        f"Validation: {describe_seed(master_seed)}",
    ]
    if sub_seeds:
        lines.extend(["", "Sub-Seeds:"])
        for context, value in sub_seeds.items():
            lines.append(f"  {context}: {value}")
    lines.append("==================")
    return "\n".join(lines)


@dataclass(frozen=True)
class Seed:
    """Validated seed in [1, 2**31 - 1]."""

    value: int

    def __post_init__(self):
        if not isinstance(self.value, int) or not MIN_SEED <= self.value <= MAX_SEED:
            raise ValueError(
                f"Seed value {self.value!r} outside [{MIN_SEED}, {MAX_SEED}]; "
                "use Seed.from_input to normalise"
            )

    @classmethod
    def from_number(cls, value: Union[int, float]) -> "Seed":
        return cls(validate_seed(value).normalized_seed)

    @classmethod
    def from_string(cls, text: str) -> "Seed":
        return cls(validate_seed(text).normalized_seed)

    @classmethod
    def from_input(cls, seed: SeedInput) -> "Seed":
        return cls(normalize_seed(seed))

    @classmethod
    def from_map_name(cls, name: str, version: int = 1) -> "Seed":
        return cls(hash_string_to_seed(f"{name.lower().strip()}-v{version}"))

    def __int__(self) -> int:
        return self.value


@dataclass(frozen=True)
class SeedPolicy:
    """
    Seed policy passed explicitly to whoever needs it.

    When no user seed is supplied the seed is derived from the generation
    parameters, so identical requests stay reproducible.
    """

    allow_random_fallback: bool = False

    def generate_seed(self, parameters: Mapping[str, Any]) -> int:
        """Deterministic seed from a parameter mapping (key order irrelevant)."""
        seed_input = self._parameter_hash(parameters)
        seed = hash_string_to_seed(seed_input)
        logger.debug(
            "Deterministic seed generated", seed=seed, input_preview=seed_input[:100]
        )
        return seed

    def validate(self, seed: SeedInput) -> SeedValidationResult:
        return validate_seed(seed)

    def ensure_seed(
        self,
        user_seed: SeedInput,
        fallback_parameters: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """User seed when usable, otherwise the parameter-derived seed."""
        if user_seed is not None and not (
            isinstance(user_seed, str) and not user_seed.strip()
        ):
            result = validate_seed(user_seed)
            if result.is_valid:
                return result.normalized_seed
            logger.warning("Unusable seed, falling back", error=result.error)

        if fallback_parameters is not None:
            return self.generate_seed(fallback_parameters)
        if self.allow_random_fallback:
            return generate_default_seed()
        raise SeedError(
            SeedError.GENERATION_FAILED,
            "No usable seed and no fallback parameters; random seeds are disabled",
        )

    @staticmethod
    def _parameter_hash(parameters: Mapping[str, Any]) -> str:
        parts = []
        for key in sorted(parameters):
            value = parameters[key]
            if value is None:
                serialized = "null"
            elif isinstance(value, (dict, list, tuple)):
                serialized = json.dumps(value, sort_keys=True, default=str)
            elif hasattr(value, "value"):
                serialized = str(value.value)
            else:
                serialized = str(value)
            parts.append(f"{key}:{serialized}")
        return "deterministic:" + "|".join(parts)


# Primes used to mix layer seeds
LAYER_PRIMES: Dict[str, int] = {
    "geology": 31,
    "topography": 37,
    "hydrology": 41,
    "vegetation": 43,
    "structures": 47,
    "features": 53,
    "geology.formations": 59,
    "geology.weathering": 61,
    "topography.erosion": 67,
    "hydrology.springs": 71,
    "hydrology.streams": 73,
    "vegetation.trees": 79,
    "vegetation.undergrowth": 83,
    "structures.buildings": 89,
    "structures.roads": 97,
    "features.hazards": 101,
    "features.resources": 103,
    "features.landmarks": 107,
    "features.tactical": 109,
}

LAYERS = ("geology", "topography", "hydrology", "vegetation", "structures", "features")


def mix_seed(seed: int, prime: int) -> int:
    """Avalanche-mix a seed with a prime, staying within 31 bits."""
    mixed = abs(int(seed)) & 0xFFFFFFFF
    mixed = (mixed * prime) & 0x7FFFFFFF
    mixed ^= mixed >> 16
    mixed = (mixed * 0x85EBCA6B) & 0x7FFFFFFF
    mixed ^= mixed >> 13
    mixed = (mixed * 0xC2B2AE35) & 0x7FFFFFFF
    mixed ^= mixed >> 16
    return mixed or MIN_SEED


def _djb2(text: str) -> int:
    h = 5381
    for char in text:
        h = ((h << 5) + h + ord(char)) & 0x7FFFFFFF
    return h


def _cantor_pair(x: int, y: int) -> int:
    x, y = abs(int(x)), abs(int(y))
    return (x + y) * (x + y + 1) // 2 + y


class LayeredSeed:
    """Per-layer, per-sub-layer and per-tile seeds derived from one base seed."""

    def __init__(self, base_seed: Union[int, Seed]):
        self.base_seed = int(base_seed)
        self.layer_seeds = {
            name: mix_seed(self.base_seed, prime) for name, prime in LAYER_PRIMES.items()
        }

    def layer_seed(self, layer: str) -> int:
        if layer not in self.layer_seeds:
            raise KeyError(f"Unknown layer: {layer}")
        return self.layer_seeds[layer]

    def sub_layer_seed(self, layer: str, sub_layer: str) -> int:
        key = f"{layer}.{sub_layer}"
        if key in self.layer_seeds:
            return self.layer_seeds[key]
        return mix_seed(self.layer_seed(layer), _djb2(sub_layer))

    def tile_seed(self, layer: str, x: int, y: int) -> int:
        return mix_seed(self.layer_seed(layer), _cantor_pair(x, y))

    def region_seed(self, layer: str, x: int, y: int, region_size: int = 16) -> int:
        region = _cantor_pair(x // region_size, y // region_size) * region_size
        return mix_seed(self.layer_seed(layer), region)
