"""Import package ORM model."""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from survey_import.enums import ImportStatus
from survey_import.models.base import Base, CreatedAtMixin, IdMixin


class ImportPackage(Base, IdMixin, CreatedAtMixin):
    """One ingested field-survey container and its pipeline state."""

    __tablename__ = "import_packages"

    package_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    package_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    file_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), default=ImportStatus.PENDING.value, index=True, nullable=False
    )

    schema_version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    exported_by_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    exported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    manifest_checksum: Mapped[str | None] = mapped_column(String(128), nullable=True)
    vocabulary_versions_json: Mapped[dict[str, str]] = mapped_column(JSON, default=dict, nullable=False)
    manifest_warnings_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    imported_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    record_counts_json: Mapped[dict[str, int]] = mapped_column(JSON, default=dict, nullable=False)
    attachment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attachment_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    valid_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    invalid_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    warning_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    conflict_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    are_conflicts_resolved: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    committed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    committed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    failed_stage: Mapped[str | None] = mapped_column(String(32), nullable=True)
    archive_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    validation_summary_json: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    detection_summary_json: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    commit_report_json: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)

    staged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    committed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def import_status(self) -> ImportStatus:
        return ImportStatus(self.status)
