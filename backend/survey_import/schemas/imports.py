"""Schemas for import packages, stage summaries and conflict decisions."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class UnpackResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    package_id: int
    record_counts: dict[str, int]
    total_records: int
    attachment_count: int
    attachment_bytes: int
    duration_ms: float


class LevelResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: int
    name: str
    error_count: int
    warning_count: int
    records_checked: int
    duration_ms: float
    failure: str | None = None


class ValidationSummaryRead(BaseModel):
    """Aggregate validation outcome for one package."""

    model_config = ConfigDict(from_attributes=True)

    package_id: int
    total: int
    valid: int
    invalid: int
    warning: int
    skipped: int
    pending: int
    is_clean: bool
    levels: list[LevelResultRead]
    duration_ms: float


class DetectionResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    package_id: int
    persons_scanned: int
    property_units_scanned: int
    person_duplicates_found: int
    property_duplicates_found: int
    duplicates_found: int
    existing_conflicts: int
    new_conflict_ids: list[int]
    duration_ms: float


class EntityCommitSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: str
    approved: int
    committed: int
    failed: int
    skipped: int
    id_mappings: dict[str, int]


class CommitErrorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: str
    message: str
    staging_id: int | None = None
    original_entity_id: str | None = None


class CommitReportRead(BaseModel):
    """Serialized commit report."""

    model_config = ConfigDict(from_attributes=True)

    package_id: int
    package_number: str
    status: str
    committed_by: str | None
    committed_at: datetime | None
    duration_ms: float
    entities: dict[str, EntityCommitSummaryRead]
    total_approved: int
    total_committed: int
    total_failed: int
    total_skipped: int
    success_rate: float
    is_fully_successful: bool
    duplicate_attachments_found: int
    deduplication_bytes_saved: int
    conflict_resolutions_applied: int
    merges_performed: int
    is_archived: bool
    archive_path: str | None
    errors: list[CommitErrorRead]


class ImportPackageRead(BaseModel):
    """Serialized import package."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    package_id: str
    package_number: str
    file_name: str
    status: str
    schema_version: str | None
    device_id: str | None
    exported_by_user_id: str | None
    exported_at: datetime | None
    imported_by: str | None
    vocabulary_versions_json: dict[str, str]
    manifest_warnings_json: list[str]
    record_counts_json: dict[str, int]
    attachment_count: int
    valid_count: int
    invalid_count: int
    warning_count: int
    skipped_count: int
    conflict_count: int
    are_conflicts_resolved: bool
    committed_count: int
    failed_count: int
    error_message: str | None
    failed_stage: str | None
    archive_path: str | None
    is_archived: bool
    validation_summary_json: dict[str, object] | None
    detection_summary_json: dict[str, object] | None
    commit_report_json: dict[str, object] | None
    created_at: datetime
    updated_at: datetime


class ConflictRead(BaseModel):
    """Serialized conflict."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    conflict_number: str
    conflict_type: str
    entity_type: str
    first_entity_id: str
    second_entity_id: str
    first_entity_identifier: str | None
    second_entity_identifier: str | None
    import_package_id: int | None
    similarity_score: float
    confidence_level: str
    description: str
    matching_criteria_json: dict[str, object]
    is_auto_detected: bool
    status: str
    resolution_action: str | None
    resolution_reason: str | None
    master_entity_id: str | None
    discarded_entity_id: str | None
    resolved_by: str | None
    resolved_at: datetime | None
    is_escalated: bool
    escalation_reason: str | None
    escalated_by: str | None
    escalated_at: datetime | None


class ConflictSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    package_id: int
    total: int
    pending: int
    resolved: int
    escalated_pending: int
    by_type: dict[str, int]
    pending_by_type: dict[str, int]
    by_confidence: dict[str, int]
    by_resolution: dict[str, int]


class StagedRecordRead(BaseModel):
    """One staged row with the findings a reviewer needs before approving."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    original_entity_id: str
    validation_status: str
    validation_errors: list[str]
    validation_warnings: list[str]
    mapping_issues: list[str]
    is_approved_for_commit: bool
    committed_entity_id: int | None
    merged_into_original_id: str | None
    skip_reason: str | None


class EntityTypeSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: str
    total: int
    valid: int
    invalid: int
    warning: int
    skipped: int
    pending: int
    approved: int
    committed: int


class StagingSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    package_id: int
    entities: list[EntityTypeSummaryRead]
    total_records: int
    total_invalid: int
    total_pending: int
    is_clean: bool


class MergeResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: str
    master_entity_id: str
    discarded_entity_id: str
    already_merged: bool
    master_production_id: int | None
    updated_records: list[str]
    references_updated: int
    references_by_type: dict[str, int]


class MergeOutcomeRead(BaseModel):
    conflict: ConflictRead
    merge: MergeResultRead


class IngestRequest(BaseModel):
    container_path: str = Field(min_length=1)
    imported_by: str | None = None


class ActorRequest(BaseModel):
    """Caller identity for mutating operations."""

    actor_id: str | None = None


class MergeConflictRequest(BaseModel):
    master_entity_id: str = Field(min_length=1)
    resolved_by: str | None = None
    reason: str | None = None

    @model_validator(mode="after")
    def validate_master_id(self) -> "MergeConflictRequest":
        self.master_entity_id = self.master_entity_id.strip()
        if not self.master_entity_id:
            raise ValueError("master_entity_id cannot be blank.")
        return self


class KeepSeparateRequest(BaseModel):
    resolved_by: str | None = None
    reason: str | None = None


class EscalateConflictRequest(BaseModel):
    reason: str = Field(min_length=1)
    escalated_by: str | None = None

    @model_validator(mode="after")
    def validate_reason(self) -> "EscalateConflictRequest":
        self.reason = self.reason.strip()
        if not self.reason:
            raise ValueError("An escalation reason is required.")
        return self


class ResetCommitRequest(BaseModel):
    reason: str = Field(min_length=1)
    actor_id: str | None = None

    @model_validator(mode="after")
    def validate_reason(self) -> "ResetCommitRequest":
        if not self.reason.strip():
            raise ValueError("A reset reason is required.")
        return self
