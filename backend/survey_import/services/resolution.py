"""Apply reviewer decisions to detected conflicts."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from survey_import.enums import ConflictAction
from survey_import.errors import ConflictAlreadyResolvedError
from survey_import.models.conflict import Conflict
from survey_import.services.conflicts import get_conflict, mark_resolved
from survey_import.services.merge import MergeRegistry, MergeResult

logger = logging.getLogger(__name__)


def resolve_by_merge(
    db: Session,
    registry: MergeRegistry,
    conflict_id: int,
    *,
    master_entity_id: str,
    resolved_by: str | None = None,
    reason: str | None = None,
) -> tuple[Conflict, MergeResult]:
    """Merge the other side of the conflict into ``master_entity_id``.

    Re-submitting the same merge for an already merged conflict re-runs the
    (idempotent) merge and leaves the conflict untouched.
    """

    conflict = get_conflict(db, conflict_id)
    if not conflict.involves(master_entity_id):
        raise ValueError(f"Entity {master_entity_id} is not part of conflict {conflict.conflict_number}")
    discarded_entity_id = (
        conflict.second_entity_id if master_entity_id == conflict.first_entity_id else conflict.first_entity_id
    )

    if conflict.is_resolved:
        same_merge = (
            conflict.resolution_action == ConflictAction.MERGED.value
            and conflict.master_entity_id == master_entity_id
        )
        if not same_merge:
            raise ConflictAlreadyResolvedError(f"Conflict {conflict.conflict_number} is already resolved")

    result = registry.merge(
        db,
        conflict.entity_type,
        master_entity_id,
        discarded_entity_id,
        conflict.import_package_id,
        production_ids=production_side(conflict),
    )
    if not conflict.is_resolved:
        mark_resolved(
            conflict,
            action=ConflictAction.MERGED,
            reason=reason or conflict.description,
            resolved_by=resolved_by,
            master_entity_id=master_entity_id,
            discarded_entity_id=discarded_entity_id,
            merge_mapping=result.merge_mapping,
        )
    db.flush()
    logger.info(
        "import.conflict_merged conflict=%s master=%s discarded=%s",
        conflict.conflict_number,
        master_entity_id,
        discarded_entity_id,
    )
    return conflict, result


def resolve_keep_separate(
    db: Session,
    conflict_id: int,
    *,
    resolved_by: str | None = None,
    reason: str | None = None,
) -> Conflict:
    """Record that both entities are distinct; no records change."""

    conflict = get_conflict(db, conflict_id)
    mark_resolved(
        conflict,
        action=ConflictAction.KEPT_SEPARATE,
        reason=reason or "Reviewed as distinct entities",
        resolved_by=resolved_by,
    )
    db.flush()
    logger.info("import.conflict_kept_separate conflict=%s", conflict.conflict_number)
    return conflict


def production_side(conflict: Conflict) -> frozenset[str]:
    """Entity ids of the conflict that name production rows.

    Within-batch pairs are both staged; production pairs put the staged
    record first and the production row second.
    """

    if conflict.import_package_id is None:
        return frozenset({conflict.first_entity_id, conflict.second_entity_id})
    scope = (conflict.matching_criteria_json or {}).get("scope")
    if scope == "within_batch" or conflict.conflict_type.endswith("_WithinBatch"):
        return frozenset()
    return frozenset({conflict.second_entity_id})
