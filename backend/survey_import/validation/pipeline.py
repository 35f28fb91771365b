"""Ordered execution of the validation levels over one package."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from time import perf_counter

from sqlalchemy.orm import Session

from survey_import.enums import ValidationStatus
from survey_import.services.staging_repository import StagingBatch, load_batch
from survey_import.validation.base import Findings, ValidationContext, Validator
from survey_import.validation.codes import BuildingUnitCodeValidator, VocabularyVersionValidator
from survey_import.validation.consistency import CrossEntityRelationValidator, DataConsistencyValidator
from survey_import.validation.domain_rules import (
    ClaimLifecycleValidator,
    HouseholdStructureValidator,
    OwnershipEvidenceValidator,
)
from survey_import.validation.spatial import SpatialGeometryValidator

logger = logging.getLogger(__name__)

# Recorded as a level's error count when the validator itself crashed.
FAILED_LEVEL_ERROR_COUNT = -1


@dataclass(slots=True)
class LevelResult:
    level: int
    name: str
    error_count: int
    warning_count: int
    records_checked: int
    duration_ms: float
    failure: str | None = None


@dataclass(slots=True)
class ValidationSummary:
    """Aggregate outcome of one pipeline run."""

    package_id: int
    total: int = 0
    valid: int = 0
    invalid: int = 0
    warning: int = 0
    skipped: int = 0
    pending: int = 0
    levels: list[LevelResult] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def is_clean(self) -> bool:
        return self.invalid == 0

    @property
    def failed_levels(self) -> list[LevelResult]:
        return [level for level in self.levels if level.error_count == FAILED_LEVEL_ERROR_COUNT]


def default_validators() -> list[Validator]:
    return [
        DataConsistencyValidator(),
        CrossEntityRelationValidator(),
        OwnershipEvidenceValidator(),
        HouseholdStructureValidator(),
        SpatialGeometryValidator(),
        ClaimLifecycleValidator(),
        VocabularyVersionValidator(),
        BuildingUnitCodeValidator(),
    ]


class ValidationPipeline:
    """Runs validators in ascending level order and finalizes record states."""

    def __init__(self, validators: list[Validator] | None = None) -> None:
        self.validators = sorted(validators or default_validators(), key=lambda validator: validator.level)

    def run(self, db: Session, package_id: int, context: ValidationContext) -> ValidationSummary:
        started = perf_counter()
        batch = load_batch(db, package_id)
        for record in batch.all_records():
            record.reset_validation()

        summary = ValidationSummary(package_id=package_id)
        for validator in self.validators:
            summary.levels.append(self._run_level(validator, batch, context))

        for record in batch.all_records():
            record.finalize_validation()
        db.flush()

        self._apply_counts(summary, batch.status_counts())
        summary.duration_ms = (perf_counter() - started) * 1000.0
        logger.info(
            (
                "import.validation_timing package_id=%s total=%d valid=%d invalid=%d "
                "warning=%d skipped=%d failed_levels=%d total_ms=%.2f"
            ),
            package_id,
            summary.total,
            summary.valid,
            summary.invalid,
            summary.warning,
            summary.skipped,
            len(summary.failed_levels),
            summary.duration_ms,
        )
        return summary

    def _run_level(self, validator: Validator, batch: StagingBatch, context: ValidationContext) -> LevelResult:
        findings = Findings()
        started = perf_counter()
        try:
            validator.validate(batch, context, findings)
        except Exception as exc:
            logger.exception(
                "import.validator_failed package_id=%s level=%d name=%s",
                batch.package_id,
                validator.level,
                validator.name,
            )
            return LevelResult(
                level=validator.level,
                name=validator.name,
                error_count=FAILED_LEVEL_ERROR_COUNT,
                warning_count=findings.warnings,
                records_checked=findings.records_checked,
                duration_ms=(perf_counter() - started) * 1000.0,
                failure=str(exc),
            )
        duration_ms = (perf_counter() - started) * 1000.0
        logger.debug(
            "import.validator_timing package_id=%s level=%d name=%s errors=%d warnings=%d total_ms=%.2f",
            batch.package_id,
            validator.level,
            validator.name,
            findings.errors,
            findings.warnings,
            duration_ms,
        )
        return LevelResult(
            level=validator.level,
            name=validator.name,
            error_count=findings.errors,
            warning_count=findings.warnings,
            records_checked=findings.records_checked,
            duration_ms=duration_ms,
        )

    @staticmethod
    def _apply_counts(summary: ValidationSummary, counts: Counter[str]) -> None:
        summary.valid = counts.get(ValidationStatus.VALID.value, 0)
        summary.invalid = counts.get(ValidationStatus.INVALID.value, 0)
        summary.warning = counts.get(ValidationStatus.WARNING.value, 0)
        summary.skipped = counts.get(ValidationStatus.SKIPPED.value, 0)
        summary.pending = counts.get(ValidationStatus.PENDING.value, 0)
        summary.total = sum(counts.values())
