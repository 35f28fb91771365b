"""Package-scoped queries over the staging tables."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field

from sqlalchemy import case, delete, func, select
from sqlalchemy.orm import Session

from survey_import.enums import ValidationStatus
from survey_import.models.staging import STAGING_MODEL_BY_TYPE, STAGING_MODELS, StagingRecordMixin


@dataclass(slots=True)
class StagingBatch:
    """All staging records of one package, indexed by entity type and original id."""

    package_id: int
    records_by_type: dict[str, list[StagingRecordMixin]] = field(default_factory=dict)
    _index: dict[str, dict[str, StagingRecordMixin]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for entity_type, records in self.records_by_type.items():
            self._index[entity_type] = {record.original_entity_id: record for record in records}

    def records(self, entity_type: str, *, include_skipped: bool = True) -> list[StagingRecordMixin]:
        records = self.records_by_type.get(entity_type, [])
        if include_skipped:
            return list(records)
        return [record for record in records if not record.is_skipped]

    def get(self, entity_type: str, original_entity_id: str | None) -> StagingRecordMixin | None:
        if not original_entity_id:
            return None
        return self._index.get(entity_type, {}).get(original_entity_id)

    def contains(self, entity_type: str, original_entity_id: str | None) -> bool:
        return self.get(entity_type, original_entity_id) is not None

    def all_records(self) -> Iterator[StagingRecordMixin]:
        for model in STAGING_MODELS:
            yield from self.records_by_type.get(model.ENTITY_TYPE, [])

    def status_counts(self) -> Counter[str]:
        return Counter(record.validation_status for record in self.all_records())


def load_batch(db: Session, package_id: int) -> StagingBatch:
    """Bulk-read every staging record of a package."""

    records_by_type: dict[str, list[StagingRecordMixin]] = {}
    for model in STAGING_MODELS:
        records_by_type[model.ENTITY_TYPE] = list(
            db.scalars(
                select(model).where(model.import_package_id == package_id).order_by(model.id.asc())
            ).all()
        )
    return StagingBatch(package_id=package_id, records_by_type=records_by_type)


def load_records(
    db: Session,
    entity_type: str,
    package_id: int,
    *,
    statuses: tuple[ValidationStatus, ...] | None = None,
) -> list[StagingRecordMixin]:
    model = STAGING_MODEL_BY_TYPE[entity_type]
    stmt = select(model).where(model.import_package_id == package_id)
    if statuses is not None:
        stmt = stmt.where(model.validation_status.in_([status.value for status in statuses]))
    return list(db.scalars(stmt.order_by(model.id.asc())).all())


def find_by_original_id(
    db: Session,
    entity_type: str,
    package_id: int,
    original_entity_id: str,
) -> StagingRecordMixin | None:
    model = STAGING_MODEL_BY_TYPE[entity_type]
    return db.scalar(
        select(model).where(
            model.import_package_id == package_id,
            model.original_entity_id == original_entity_id,
        )
    )


def count_by_status(db: Session, package_id: int) -> Counter[str]:
    """Sum validation statuses across all eight staging tables."""

    counts: Counter[str] = Counter()
    for model in STAGING_MODELS:
        rows = db.execute(
            select(model.validation_status, func.count())
            .where(model.import_package_id == package_id)
            .group_by(model.validation_status)
        ).all()
        for status, count in rows:
            counts[status] += int(count)
    return counts


@dataclass(slots=True)
class EntityTypeSummary:
    entity_type: str
    total: int = 0
    valid: int = 0
    invalid: int = 0
    warning: int = 0
    skipped: int = 0
    pending: int = 0
    approved: int = 0
    committed: int = 0


@dataclass(slots=True)
class StagingSummary:
    """Per-type status counts of a package's staging rows, in commit order."""

    package_id: int
    entities: list[EntityTypeSummary] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(entity.total for entity in self.entities)

    @property
    def total_invalid(self) -> int:
        return sum(entity.invalid for entity in self.entities)

    @property
    def total_pending(self) -> int:
        return sum(entity.pending for entity in self.entities)

    @property
    def is_clean(self) -> bool:
        return self.total_invalid == 0


def summarize_staging(db: Session, package_id: int) -> StagingSummary:
    summary = StagingSummary(package_id=package_id)
    for model in STAGING_MODELS:
        entity = EntityTypeSummary(entity_type=model.ENTITY_TYPE)
        rows = db.execute(
            select(
                model.validation_status,
                func.count(),
                func.sum(case((model.is_approved_for_commit.is_(True), 1), else_=0)),
                func.count(model.committed_entity_id),
            )
            .where(model.import_package_id == package_id)
            .group_by(model.validation_status)
        ).all()
        for status, count, approved, committed in rows:
            field_name = ValidationStatus(status).name.lower()
            setattr(entity, field_name, getattr(entity, field_name) + int(count))
            entity.total += int(count)
            entity.approved += int(approved or 0)
            entity.committed += int(committed or 0)
        summary.entities.append(entity)
    return summary


def delete_package_staging(db: Session, package_id: int) -> dict[str, int]:
    """Delete staging rows in reverse dependency order; returns rows removed per type."""

    removed: dict[str, int] = {}
    for model in reversed(STAGING_MODELS):
        result = db.execute(delete(model).where(model.import_package_id == package_id))
        removed[model.ENTITY_TYPE] = int(result.rowcount or 0)
    db.flush()
    return removed
