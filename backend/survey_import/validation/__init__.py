"""Multi-level validation of staged packages."""

from survey_import.validation.base import BoundingBox, Findings, ValidationContext, Validator
from survey_import.validation.pipeline import LevelResult, ValidationPipeline, ValidationSummary, default_validators

__all__ = [
    "BoundingBox",
    "Findings",
    "LevelResult",
    "ValidationContext",
    "ValidationPipeline",
    "ValidationSummary",
    "Validator",
    "default_validators",
]
