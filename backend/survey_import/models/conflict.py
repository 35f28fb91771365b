"""Duplicate conflict ORM model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from survey_import.enums import ConflictStatus
from survey_import.models.base import Base, CreatedAtMixin, IdMixin


class Conflict(Base, IdMixin, CreatedAtMixin):
    """Suspected duplicate pair awaiting a merge or keep-separate decision."""

    __tablename__ = "conflicts"

    conflict_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    conflict_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    first_entity_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    second_entity_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    first_entity_identifier: Mapped[str | None] = mapped_column(String(512), nullable=True)
    second_entity_identifier: Mapped[str | None] = mapped_column(String(512), nullable=True)
    import_package_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_packages.id", ondelete="CASCADE"),
        index=True,
        nullable=True,
    )

    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    confidence_level: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    matching_criteria_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    is_auto_detected: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    status: Mapped[str] = mapped_column(
        String(32), default=ConflictStatus.PENDING_REVIEW.value, index=True, nullable=False
    )
    resolution_action: Mapped[str | None] = mapped_column(String(32), nullable=True)
    resolution_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    master_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discarded_entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    merge_mapping_json: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_escalated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    escalated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_resolved(self) -> bool:
        return self.status == ConflictStatus.RESOLVED.value

    def involves(self, entity_id: str) -> bool:
        return entity_id in (self.first_entity_id, self.second_entity_id)
