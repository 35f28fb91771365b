"""Package state machine driving unpack, validation, detection, resolution and commit."""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from time import perf_counter
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from survey_import.cancellation import CancellationToken
from survey_import.config import Settings, get_settings
from survey_import.container import Container
from survey_import.enums import COMMITTABLE_STATUSES, TERMINAL_STATUSES, ImportStatus, ValidationStatus
from survey_import.errors import (
    ContainerFormatError,
    DuplicatePackageError,
    InvalidStateTransitionError,
    OperationCancelled,
    PackageNotFoundError,
    PipelineStageError,
    UnknownEntityTypeError,
)
from survey_import.manifest import check_vocabulary_compatibility, read_manifest, verify_content_checksum
from survey_import.matching.person import PersonMatcher
from survey_import.models.conflict import Conflict
from survey_import.models.import_package import ImportPackage
from survey_import.models.staging import STAGING_MODEL_BY_TYPE, STAGING_MODELS, StagingRecordMixin
from survey_import.schemas.imports import (
    CommitReportRead,
    DetectionResultRead,
    UnpackResultRead,
    ValidationSummaryRead,
)
from survey_import.services.commit import CommitEngine, CommitReport
from survey_import.services.conflicts import (
    ConflictSummary,
    count_unresolved,
    get_conflict,
    list_package_conflicts,
    mark_escalated,
    summarize_conflicts,
)
from survey_import.services.duplicate_detection import DetectionResult, DuplicateDetectionService
from survey_import.services.merge import MergeRegistry, MergeResult, default_merge_registry
from survey_import.services.resolution import resolve_by_merge, resolve_keep_separate
from survey_import.services.staging_repository import (
    StagingSummary,
    delete_package_staging,
    load_records,
    summarize_staging,
)
from survey_import.services.unpacker import PackageUnpacker, UnpackResult
from survey_import.services.vocabulary import VocabularyCache
from survey_import.storage.archive import ArchiveStore
from survey_import.storage.file_storage import FileStorage, LocalFileStorage
from survey_import.validation.base import BoundingBox, ValidationContext
from survey_import.validation.pipeline import ValidationPipeline, ValidationSummary

logger = logging.getLogger(__name__)

StageResult = TypeVar("StageResult")

STAGE_UNPACK = "unpack"
STAGE_VALIDATE = "validate"
STAGE_DETECT = "detect"
STAGE_COMMIT = "commit"

_RESETTABLE_STATUSES = frozenset(
    {ImportStatus.FAILED.value, ImportStatus.COMMITTING.value, ImportStatus.PARTIALLY_COMPLETED.value}
)


class ImportCoordinator:
    """Owns the collaborators and persists every package status transition."""

    def __init__(
        self,
        *,
        settings: Settings,
        file_storage: FileStorage,
        archive_store: ArchiveStore,
        vocabulary: VocabularyCache | None = None,
        merge_registry: MergeRegistry | None = None,
        person_matcher: PersonMatcher | None = None,
        validation_pipeline: ValidationPipeline | None = None,
    ) -> None:
        self.settings = settings
        self.file_storage = file_storage
        self.archive_store = archive_store
        self.vocabulary = vocabulary or VocabularyCache()
        self.merge_registry = merge_registry or default_merge_registry()
        self.unpacker = PackageUnpacker(file_storage)
        self.validation_pipeline = validation_pipeline or ValidationPipeline()
        self.detector = DuplicateDetectionService(
            person_matcher
            or PersonMatcher(
                high_threshold=settings.person_high_confidence_threshold,
                medium_threshold=settings.person_medium_confidence_threshold,
            )
        )
        self.commit_engine = CommitEngine(
            file_storage,
            archive_store,
            cleanup_staging=settings.cleanup_staging_after_commit,
        )

    # Ingestion -----------------------------------------------------------

    def ingest(self, db: Session, container_path: str, imported_by: str | None = None) -> ImportPackage:
        """Register a container after manifest, checksum and vocabulary checks."""

        path = Path(container_path)
        if not path.is_absolute():
            path = Path(self.settings.package_storage_path) / path
        if path.is_file() and path.stat().st_size > self.settings.max_upload_size_mb * 1024 * 1024:
            raise ContainerFormatError(
                f"Container {path.name} exceeds the {self.settings.max_upload_size_mb} MB upload limit"
            )
        with Container(path) as container:
            manifest = read_manifest(container)
            existing = db.scalar(select(ImportPackage).where(ImportPackage.package_id == manifest.package_id))
            if existing is not None:
                raise DuplicatePackageError(manifest.package_id, existing.package_number)
            verify_content_checksum(container, manifest)

        package = ImportPackage(
            package_id=manifest.package_id,
            package_number=_pending_package_number(),
            file_name=path.name,
            file_path=str(path),
            file_size_bytes=path.stat().st_size,
            file_sha256=_file_sha256(path),
            status=ImportStatus.PENDING.value,
            schema_version=manifest.schema_version,
            device_id=manifest.device_id,
            exported_by_user_id=manifest.exported_by_user_id,
            exported_at=manifest.exported_date_utc,
            manifest_checksum=manifest.checksum,
            vocabulary_versions_json=dict(manifest.vocab_versions),
            manifest_warnings_json=[],
            imported_by=imported_by,
            record_counts_json={},
        )
        db.add(package)
        try:
            db.flush()
            package.package_number = _package_number(package.id)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            # Only a concurrent ingest of the same manifest id is a duplicate.
            existing = db.scalar(select(ImportPackage).where(ImportPackage.package_id == manifest.package_id))
            if existing is None:
                raise
            raise DuplicatePackageError(manifest.package_id, existing.package_number) from exc

        server_versions = {**self.vocabulary.versions, **self.settings.server_vocabulary_versions}
        compatibility = check_vocabulary_compatibility(manifest.vocab_versions, server_versions)
        package.manifest_warnings_json = compatibility.warnings + compatibility.errors
        if not compatibility.is_compatible:
            package.status = ImportStatus.QUARANTINED.value
            package.error_message = "; ".join(compatibility.errors)
            logger.warning(
                "import.quarantined package_id=%s reasons=%s", package.package_id, package.error_message
            )
        else:
            self._transition(package, ImportStatus.VALIDATING)
        db.commit()
        logger.info(
            "import.ingested package_id=%s number=%s status=%s imported_by=%s",
            package.package_id,
            package.package_number,
            package.status,
            imported_by,
        )
        return package

    # Stages --------------------------------------------------------------

    def stage(
        self,
        db: Session,
        package_id: int,
        *,
        cancellation: CancellationToken | None = None,
    ) -> UnpackResult:
        package = self.get_package(db, package_id)
        self._require(package, STAGE_UNPACK, ImportStatus.VALIDATING, ImportStatus.STAGING)

        def run() -> UnpackResult:
            result = self.unpacker.unpack(db, package.id, package.file_path, cancellation=cancellation)
            package.record_counts_json = dict(result.record_counts)
            package.attachment_count = result.attachment_count
            package.attachment_bytes = result.attachment_bytes
            package.staged_at = datetime.now(timezone.utc)
            package.validated_at = None
            self._transition(package, ImportStatus.STAGING)
            return result

        result = self._run_stage(db, package, STAGE_UNPACK, run)
        self.unpacker.discard_files(result.replaced_files)
        return result

    def validate(self, db: Session, package_id: int) -> ValidationSummary:
        package = self.get_package(db, package_id)
        self._require(package, STAGE_VALIDATE, ImportStatus.STAGING, ImportStatus.VALIDATION_FAILED)

        def run() -> ValidationSummary:
            if not self.vocabulary.is_loaded:
                self.vocabulary.warmup(db)
            context = ValidationContext(
                vocabulary=self.vocabulary,
                bounding_box=BoundingBox.from_settings(self.settings),
            )
            summary = self.validation_pipeline.run(db, package.id, context)
            package.valid_count = summary.valid
            package.invalid_count = summary.invalid
            package.warning_count = summary.warning
            package.skipped_count = summary.skipped
            package.validation_summary_json = ValidationSummaryRead.model_validate(summary).model_dump(mode="json")
            package.validated_at = datetime.now(timezone.utc)
            if self.settings.require_clean_validation and not summary.is_clean:
                self._transition(package, ImportStatus.VALIDATION_FAILED)
            else:
                self._transition(package, ImportStatus.STAGING)
            return summary

        return self._run_stage(db, package, STAGE_VALIDATE, run)

    def detect_duplicates(
        self,
        db: Session,
        package_id: int,
        *,
        cancellation: CancellationToken | None = None,
    ) -> DetectionResult:
        package = self.get_package(db, package_id)
        self._require(package, STAGE_DETECT, ImportStatus.STAGING, ImportStatus.REVIEWING_CONFLICTS)
        if package.validated_at is None:
            raise InvalidStateTransitionError(
                f"Package {package.package_number} must be validated before duplicate detection"
            )

        def run() -> DetectionResult:
            result = self.detector.detect(db, package.id, cancellation=cancellation)
            package.detection_summary_json = DetectionResultRead.model_validate(result).model_dump(mode="json")
            self._transition(package, ImportStatus.REVIEWING_CONFLICTS)
            self._refresh_conflict_state(db, package)
            return result

        return self._run_stage(db, package, STAGE_DETECT, run)

    # Conflict review -----------------------------------------------------

    def resolve_conflict_merge(
        self,
        db: Session,
        conflict_id: int,
        *,
        master_entity_id: str,
        resolved_by: str | None = None,
        reason: str | None = None,
    ) -> tuple[Conflict, MergeResult]:
        package = self._conflict_package(db, conflict_id)
        try:
            conflict, result = resolve_by_merge(
                db,
                self.merge_registry,
                conflict_id,
                master_entity_id=master_entity_id,
                resolved_by=resolved_by,
                reason=reason,
            )
            if package is not None:
                self._refresh_conflict_state(db, package)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return conflict, result

    def resolve_conflict_keep_separate(
        self,
        db: Session,
        conflict_id: int,
        *,
        resolved_by: str | None = None,
        reason: str | None = None,
    ) -> Conflict:
        package = self._conflict_package(db, conflict_id)
        try:
            conflict = resolve_keep_separate(db, conflict_id, resolved_by=resolved_by, reason=reason)
            if package is not None:
                self._refresh_conflict_state(db, package)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return conflict

    def escalate_conflict(
        self,
        db: Session,
        conflict_id: int,
        *,
        reason: str,
        escalated_by: str | None = None,
    ) -> Conflict:
        """Hand a pending conflict to senior review without resolving it."""

        self._conflict_package(db, conflict_id)
        conflict = get_conflict(db, conflict_id)
        mark_escalated(conflict, reason=reason, escalated_by=escalated_by)
        db.commit()
        logger.warning(
            "import.conflict_escalated conflict=%s package_id=%s actor=%s reason=%s",
            conflict.conflict_number,
            conflict.import_package_id,
            escalated_by,
            reason,
        )
        return conflict

    def list_conflicts(self, db: Session, package_id: int, *, unresolved_only: bool = False) -> list[Conflict]:
        self.get_package(db, package_id)
        return list_package_conflicts(db, package_id, unresolved_only=unresolved_only)

    def conflict_summary(self, db: Session, package_id: int) -> ConflictSummary:
        self.get_package(db, package_id)
        return summarize_conflicts(db, package_id)

    # Staging review ------------------------------------------------------

    def list_staged_records(
        self,
        db: Session,
        package_id: int,
        *,
        entity_type: str | None = None,
        status: str | None = None,
    ) -> list[StagingRecordMixin]:
        """Staged rows with their findings, in commit order, optionally narrowed to one type or status."""

        package = self.get_package(db, package_id)
        if entity_type is not None and entity_type not in STAGING_MODEL_BY_TYPE:
            raise UnknownEntityTypeError(f"Unknown staging entity type {entity_type!r}")
        statuses = None if status is None else (ValidationStatus(status),)
        entity_types = [entity_type] if entity_type else [model.ENTITY_TYPE for model in STAGING_MODELS]
        records: list[StagingRecordMixin] = []
        for name in entity_types:
            records.extend(load_records(db, name, package.id, statuses=statuses))
        return records

    def staging_summary(self, db: Session, package_id: int) -> StagingSummary:
        package = self.get_package(db, package_id)
        return summarize_staging(db, package.id)

    # Commit --------------------------------------------------------------

    def approve(self, db: Session, package_id: int, approve_all_valid: bool = True) -> int:
        """Approve committable staging records; returns the number newly approved.

        With ``approve_all_valid`` off only records without warnings are approved,
        leaving Warning records for individual review.
        """

        package = self.get_package(db, package_id)
        self._require(package, "approve", ImportStatus.READY_TO_COMMIT)
        statuses = COMMITTABLE_STATUSES if approve_all_valid else (ValidationStatus.VALID,)
        approved = 0
        for model in STAGING_MODELS:
            for record in load_records(db, model.ENTITY_TYPE, package.id, statuses=statuses):
                if not record.is_approved_for_commit:
                    record.approve_for_commit()
                    approved += 1
        db.commit()
        logger.info("import.approved package_id=%s records=%d", package.id, approved)
        return approved

    def commit(self, db: Session, package_id: int, committed_by: str | None = None) -> CommitReport:
        package = self.get_package(db, package_id)
        report = self.commit_engine.commit(db, package, committed_by=committed_by)
        package = self.get_package(db, package_id)
        package.commit_report_json = CommitReportRead.model_validate(report).model_dump(mode="json")
        if report.status != ImportStatus.COMPLETED.value:
            package.failed_stage = STAGE_COMMIT
        db.commit()
        return report

    def reset_commit(self, db: Session, package_id: int, reason: str, actor_id: str | None = None) -> ImportPackage:
        """Return a stuck or failed commit to ReadyToCommit; staging and resolutions are kept."""

        package = self.get_package(db, package_id)
        commit_failure = package.status == ImportStatus.COMMITTING.value or package.failed_stage == STAGE_COMMIT
        if package.status not in _RESETTABLE_STATUSES or not commit_failure:
            raise InvalidStateTransitionError(
                f"Package {package.package_number} in status {package.status} cannot be reset to ReadyToCommit"
            )
        previous = package.status
        package.status = ImportStatus.READY_TO_COMMIT.value
        package.error_message = None
        package.failed_stage = None
        db.commit()
        logger.warning(
            "import.commit_reset package_id=%s from=%s actor=%s reason=%s",
            package.id,
            previous,
            actor_id,
            reason,
        )
        return package

    # Housekeeping --------------------------------------------------------

    def cancel(self, db: Session, package_id: int, reason: str | None = None) -> ImportPackage:
        package = self.get_package(db, package_id)
        if package.import_status in TERMINAL_STATUSES or package.status == ImportStatus.COMMITTING.value:
            raise InvalidStateTransitionError(
                f"Package {package.package_number} in status {package.status} cannot be cancelled"
            )
        package.status = ImportStatus.CANCELLED.value
        package.error_message = reason
        db.commit()
        logger.info("import.cancelled package_id=%s reason=%s", package.id, reason)
        return package

    def cleanup_staging(self, db: Session, package_id: int) -> dict[str, int]:
        """Purge staging rows of a finished or abandoned package."""

        package = self.get_package(db, package_id)
        if package.import_status not in TERMINAL_STATUSES:
            raise InvalidStateTransitionError(
                f"Package {package.package_number} is still {package.status}; staging is in use"
            )
        removed = delete_package_staging(db, package.id)
        db.commit()
        logger.info("import.staging_cleaned package_id=%s removed=%s", package.id, removed)
        return removed

    def purge_expired_staging(self, db: Session, now: datetime | None = None) -> dict[int, int]:
        """Clean staging of terminal packages untouched for ``staging_retention_days``."""

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=self.settings.staging_retention_days)
        expired = db.scalars(
            select(ImportPackage)
            .where(
                ImportPackage.status.in_([status.value for status in TERMINAL_STATUSES]),
                ImportPackage.updated_at < cutoff,
            )
            .order_by(ImportPackage.id.asc())
        ).all()
        purged: dict[int, int] = {}
        for package in expired:
            removed = delete_package_staging(db, package.id)
            if any(removed.values()):
                purged[package.id] = sum(removed.values())
        db.commit()
        logger.info(
            "import.staging_purged packages=%d rows=%d retention_days=%d",
            len(purged),
            sum(purged.values()),
            self.settings.staging_retention_days,
        )
        return purged

    def run(self, db: Session, container_path: str, imported_by: str | None = None) -> ImportPackage:
        """Ingest, stage, validate and detect duplicates in one call."""

        package = self.ingest(db, container_path, imported_by=imported_by)
        if package.status == ImportStatus.QUARANTINED.value:
            return package
        self.stage(db, package.id)
        self.validate(db, package.id)
        package = self.get_package(db, package.id)
        if package.status == ImportStatus.STAGING.value:
            self.detect_duplicates(db, package.id)
        return self.get_package(db, package.id)

    def get_package(self, db: Session, package_id: int) -> ImportPackage:
        package = db.get(ImportPackage, package_id)
        if package is None:
            raise PackageNotFoundError(f"Import package {package_id} not found")
        return package

    # Internals -----------------------------------------------------------

    def _run_stage(
        self,
        db: Session,
        package: ImportPackage,
        stage: str,
        run: Callable[[], StageResult],
    ) -> StageResult:
        started = perf_counter()
        package_id = package.id
        try:
            result = run()
            package.error_message = None
            package.failed_stage = None
            db.commit()
        except OperationCancelled:
            db.rollback()
            logger.warning("import.stage_cancelled package_id=%s stage=%s", package_id, stage)
            raise
        except Exception as exc:
            db.rollback()
            logger.exception(
                "import.stage_failed package_id=%s stage=%s elapsed_ms=%.2f",
                package_id,
                stage,
                (perf_counter() - started) * 1000.0,
            )
            failed = self.get_package(db, package_id)
            failed.status = ImportStatus.FAILED.value
            failed.error_message = str(exc)
            failed.failed_stage = stage
            db.commit()
            raise PipelineStageError(stage, package_id, str(exc)) from exc
        logger.info(
            "import.stage_timing package_id=%s stage=%s status=%s total_ms=%.2f",
            package_id,
            stage,
            package.status,
            (perf_counter() - started) * 1000.0,
        )
        return result

    def _require(self, package: ImportPackage, stage: str, *allowed: ImportStatus) -> None:
        """Allow ``stage`` from the listed statuses, or from Failed when that stage failed."""

        if package.status in {status.value for status in allowed}:
            return
        if package.status == ImportStatus.FAILED.value and package.failed_stage == stage:
            return
        raise InvalidStateTransitionError(
            f"Package {package.package_number} is {package.status}; {stage} requires "
            + " or ".join(status.value for status in allowed)
        )

    def _transition(self, package: ImportPackage, status: ImportStatus) -> None:
        if package.status != status.value:
            logger.info(
                "import.status_changed package_id=%s from=%s to=%s", package.id, package.status, status.value
            )
        package.status = status.value

    def _refresh_conflict_state(self, db: Session, package: ImportPackage) -> None:
        db.flush()
        unresolved = count_unresolved(db, package.id)
        package.conflict_count = len(list_package_conflicts(db, package.id))
        package.are_conflicts_resolved = unresolved == 0
        if unresolved == 0 and package.status == ImportStatus.REVIEWING_CONFLICTS.value:
            self._transition(package, ImportStatus.READY_TO_COMMIT)

    def _conflict_package(self, db: Session, conflict_id: int) -> ImportPackage | None:
        conflict = db.get(Conflict, conflict_id)
        if conflict is None or conflict.import_package_id is None:
            return None
        package = self.get_package(db, conflict.import_package_id)
        self._require(package, "resolve", ImportStatus.REVIEWING_CONFLICTS, ImportStatus.READY_TO_COMMIT)
        return package


def build_coordinator(settings: Settings | None = None, vocabulary: VocabularyCache | None = None) -> ImportCoordinator:
    """Wire the coordinator with local-disk storage from settings."""

    settings = settings or get_settings()
    return ImportCoordinator(
        settings=settings,
        file_storage=LocalFileStorage(settings.file_storage_path),
        archive_store=ArchiveStore(settings.archive_base_path),
        vocabulary=vocabulary,
    )


@lru_cache
def get_coordinator() -> ImportCoordinator:
    """Process-wide coordinator shared by request handlers."""

    return build_coordinator()


def _file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _pending_package_number() -> str:
    return f"PENDING-{uuid.uuid4().hex[:24]}"


def _package_number(row_id: int) -> str:
    """Human-readable number derived from the row id, unique without a counter query."""

    return f"PKG-{datetime.now(timezone.utc):%Y}-{row_id:04d}"
