"""Validator contract and per-level bookkeeping."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from survey_import.config import Settings
from survey_import.models.staging import StagingRecordMixin
from survey_import.services.staging_repository import StagingBatch
from survey_import.services.vocabulary import VocabularyCache


@dataclass(slots=True)
class BoundingBox:
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_latitude <= latitude <= self.max_latitude
            and self.min_longitude <= longitude <= self.max_longitude
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> BoundingBox:
        return cls(
            min_latitude=settings.min_latitude,
            max_latitude=settings.max_latitude,
            min_longitude=settings.min_longitude,
            max_longitude=settings.max_longitude,
        )


@dataclass(slots=True)
class ValidationContext:
    """Collaborators shared by every validator in one pipeline run."""

    vocabulary: VocabularyCache
    bounding_box: BoundingBox
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class Findings:
    """Counts what one validator recorded on the batch."""

    errors: int = 0
    warnings: int = 0
    records_checked: int = 0

    def error(self, record: StagingRecordMixin, message: str) -> None:
        record.add_error(message)
        self.errors += 1

    def warning(self, record: StagingRecordMixin, message: str) -> None:
        record.add_warning(message)
        self.warnings += 1

    def checked(self, count: int = 1) -> None:
        self.records_checked += count


class Validator(ABC):
    """One ordered validation level over a staged batch."""

    level: int
    name: str

    @abstractmethod
    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        """Append errors/warnings to eligible (non-skipped) records."""
