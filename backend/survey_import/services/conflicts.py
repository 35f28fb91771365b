"""Conflict persistence and order-independent pair lookups."""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from survey_import.enums import ConfidenceLevel, ConflictAction, ConflictStatus
from survey_import.errors import ConflictAlreadyEscalatedError, ConflictAlreadyResolvedError, ConflictNotFoundError
from survey_import.models.conflict import Conflict


def get_conflict(db: Session, conflict_id: int) -> Conflict:
    conflict = db.scalar(select(Conflict).where(Conflict.id == conflict_id))
    if conflict is None:
        raise ConflictNotFoundError(f"Conflict {conflict_id} not found")
    return conflict


def find_by_entity_pair(
    db: Session,
    entity_type: str,
    first_id: str,
    second_id: str,
    *,
    import_package_id: int | None = None,
) -> Conflict | None:
    """Look up a conflict for the unordered pair ``{first_id, second_id}``."""

    stmt = select(Conflict).where(
        Conflict.entity_type == entity_type,
        or_(
            and_(Conflict.first_entity_id == first_id, Conflict.second_entity_id == second_id),
            and_(Conflict.first_entity_id == second_id, Conflict.second_entity_id == first_id),
        ),
    )
    if import_package_id is not None:
        stmt = stmt.where(Conflict.import_package_id == import_package_id)
    return db.scalar(stmt.limit(1))


def create_conflict(
    db: Session,
    *,
    conflict_type: str,
    entity_type: str,
    first_entity_id: str,
    second_entity_id: str,
    first_identifier: str | None,
    second_identifier: str | None,
    score: float,
    confidence: ConfidenceLevel,
    description: str,
    criteria: dict[str, object],
    import_package_id: int | None,
) -> Conflict:
    conflict = Conflict(
        conflict_number=_conflict_number(),
        conflict_type=conflict_type,
        entity_type=entity_type,
        first_entity_id=first_entity_id,
        second_entity_id=second_entity_id,
        first_entity_identifier=first_identifier,
        second_entity_identifier=second_identifier,
        similarity_score=score,
        confidence_level=confidence.value,
        description=description,
        matching_criteria_json=criteria,
        is_auto_detected=True,
        status=ConflictStatus.PENDING_REVIEW.value,
        import_package_id=import_package_id,
    )
    db.add(conflict)
    db.flush()
    return conflict


def list_package_conflicts(db: Session, package_id: int, *, unresolved_only: bool = False) -> list[Conflict]:
    stmt = select(Conflict).where(Conflict.import_package_id == package_id)
    if unresolved_only:
        stmt = stmt.where(Conflict.status == ConflictStatus.PENDING_REVIEW.value)
    return list(db.scalars(stmt.order_by(Conflict.id.asc())).all())


def count_unresolved(db: Session, package_id: int) -> int:
    return int(
        db.scalar(
            select(func.count())
            .select_from(Conflict)
            .where(
                Conflict.import_package_id == package_id,
                Conflict.status == ConflictStatus.PENDING_REVIEW.value,
            )
        )
        or 0
    )


def mark_resolved(
    conflict: Conflict,
    *,
    action: ConflictAction,
    reason: str | None,
    resolved_by: str | None,
    master_entity_id: str | None = None,
    discarded_entity_id: str | None = None,
    merge_mapping: dict[str, object] | None = None,
) -> None:
    """Conflicts are resolved exactly once."""

    if conflict.is_resolved:
        raise ConflictAlreadyResolvedError(f"Conflict {conflict.conflict_number} is already resolved")
    conflict.status = ConflictStatus.RESOLVED.value
    conflict.resolution_action = action.value
    conflict.resolution_reason = reason
    conflict.resolved_by = resolved_by
    conflict.resolved_at = datetime.now(timezone.utc)
    conflict.master_entity_id = master_entity_id
    conflict.discarded_entity_id = discarded_entity_id
    conflict.merge_mapping_json = merge_mapping


def mark_escalated(conflict: Conflict, *, reason: str, escalated_by: str | None) -> None:
    """Flag a pending conflict for senior review; it stays pending and still blocks commit."""

    if conflict.is_resolved:
        raise ConflictAlreadyResolvedError(
            f"Conflict {conflict.conflict_number} is already resolved and cannot be escalated"
        )
    if conflict.is_escalated:
        raise ConflictAlreadyEscalatedError(f"Conflict {conflict.conflict_number} has already been escalated")
    conflict.is_escalated = True
    conflict.escalation_reason = reason
    conflict.escalated_by = escalated_by
    conflict.escalated_at = datetime.now(timezone.utc)


@dataclass(slots=True)
class ConflictSummary:
    package_id: int
    total: int = 0
    pending: int = 0
    resolved: int = 0
    escalated_pending: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    pending_by_type: dict[str, int] = field(default_factory=dict)
    by_confidence: dict[str, int] = field(default_factory=dict)
    by_resolution: dict[str, int] = field(default_factory=dict)


def summarize_conflicts(db: Session, package_id: int) -> ConflictSummary:
    conflicts = list_package_conflicts(db, package_id)
    pending = [conflict for conflict in conflicts if not conflict.is_resolved]
    return ConflictSummary(
        package_id=package_id,
        total=len(conflicts),
        pending=len(pending),
        resolved=len(conflicts) - len(pending),
        escalated_pending=sum(1 for conflict in pending if conflict.is_escalated),
        by_type=dict(Counter(conflict.conflict_type for conflict in conflicts)),
        pending_by_type=dict(Counter(conflict.conflict_type for conflict in pending)),
        by_confidence=dict(Counter(conflict.confidence_level for conflict in conflicts)),
        by_resolution=dict(
            Counter(conflict.resolution_action for conflict in conflicts if conflict.resolution_action)
        ),
    )


def _conflict_number() -> str:
    return f"CNF-{datetime.now(timezone.utc):%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"
