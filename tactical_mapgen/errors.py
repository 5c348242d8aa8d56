"""
Exception hierarchy for tactical map generation.

Validation problems are raised before any generation work starts. Failures
inside a layer generator are wrapped in LayerGenerationError carrying the
failing stage name. Seed problems are reported as warnings and never abort.
"""

from typing import Any, Dict, Optional, Sequence


class TacticalMapError(Exception):
    """Base class for all errors raised by the generator."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(TacticalMapError, ValueError):
    """Invalid user input. Carries the offending value and the valid range."""

    def __init__(
        self,
        code: str,
        message: str,
        value: Any = None,
        valid_range: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"value": value, "valid_range": valid_range}
        merged.update(details or {})
        super().__init__(code, message, merged)
        self.value = value
        self.valid_range = valid_range


class InvalidDimensionsError(ValidationError):
    """Width or height outside the supported bounds."""

    def __init__(self, name: str, value: Any, minimum: int, maximum: int):
        super().__init__(
            "MAP_INVALID_DIMENSIONS",
            f"Invalid map {name}: {value}. Dimensions must be between "
            f"{minimum} and {maximum} tiles",
            value=value,
            valid_range=(minimum, maximum),
            details={"dimension": name},
        )
        self.dimension = name


class InvalidContextError(ValidationError):
    """Context combination that cannot exist (e.g. an alpine underground map)."""

    def __init__(self, message: str, value: Any, allowed: Sequence[Any]):
        super().__init__(
            "MAP_INVALID_CONTEXT",
            message,
            value=value,
            valid_range=tuple(allowed),
        )


class SeedError(TacticalMapError):
    """Seed normalisation issue. Reported as a warning, never raised by the pipeline."""

    EMPTY_STRING = "SEED_EMPTY_STRING"
    INVALID_TYPE = "SEED_INVALID_TYPE"
    NOT_FINITE = "SEED_NOT_FINITE"
    OUT_OF_RANGE = "SEED_OUT_OF_RANGE"
    NON_DETERMINISTIC = "SEED_NON_DETERMINISTIC"
    RANDOM_FALLBACK = "SEED_RANDOM_FALLBACK"
    GENERATION_FAILED = "SEED_GENERATION_FAILED"


class LayerGenerationError(TacticalMapError):
    """A layer generator failed. The whole pipeline is aborted."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(
            "LAYER_GENERATION_FAILED",
            f"Failed to generate {stage} layer: {cause}",
            {"stage": stage, "original_error": repr(cause)},
        )
        self.stage = stage
        self.cause = cause


class LayerDependencyError(TacticalMapError, RuntimeError):
    """A stage was handed a missing prerequisite layer. Programmer error."""

    def __init__(self, stage: str, required: str):
        super().__init__(
            "INVALID_LAYER_DEPENDENCY",
            f"{stage} layer requires {required} layer data",
            {"stage": stage, "required": required},
        )
        self.stage = stage
        self.required = required
