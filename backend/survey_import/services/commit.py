"""Write approved staging records into production, one transaction per entity type."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.orm import Session

from survey_import.enums import ClaimStatus, ImportStatus
from survey_import.errors import CommitPreconditionError, PackageNotFoundError
from survey_import.models.import_package import ImportPackage
from survey_import.models.production import PRODUCTION_MODEL_BY_TYPE, Claim, Evidence, StoredFile
from survey_import.models.staging import STAGING_MODELS, StagingEvidence, StagingRecordMixin
from survey_import.services.conflicts import count_unresolved, list_package_conflicts
from survey_import.services.field_copy import shared_data_columns
from survey_import.services.staging_repository import StagingBatch, delete_package_staging, load_batch
from survey_import.services.unpacker import is_staged_attachment
from survey_import.storage.archive import ArchiveStore
from survey_import.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)

COMMIT_ORDER: tuple[str, ...] = tuple(model.ENTITY_TYPE for model in STAGING_MODELS)


class UnresolvedReferenceError(ValueError):
    pass


@dataclass(slots=True)
class EntityCommitSummary:
    entity_type: str
    approved: int = 0
    committed: int = 0
    failed: int = 0
    skipped: int = 0
    id_mappings: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class CommitError:
    entity_type: str
    message: str
    staging_id: int | None = None
    original_entity_id: str | None = None


@dataclass(slots=True)
class CommitReport:
    """Outcome of one commit attempt."""

    package_id: int
    package_number: str
    status: str = ImportStatus.COMMITTING.value
    committed_by: str | None = None
    committed_at: datetime | None = None
    duration_ms: float = 0.0
    entities: dict[str, EntityCommitSummary] = field(default_factory=dict)
    duplicate_attachments_found: int = 0
    deduplication_bytes_saved: int = 0
    conflict_resolutions_applied: int = 0
    merges_performed: int = 0
    is_archived: bool = False
    archive_path: str | None = None
    errors: list[CommitError] = field(default_factory=list)

    @property
    def total_approved(self) -> int:
        return sum(summary.approved for summary in self.entities.values())

    @property
    def total_committed(self) -> int:
        return sum(summary.committed for summary in self.entities.values())

    @property
    def total_failed(self) -> int:
        return sum(summary.failed for summary in self.entities.values())

    @property
    def total_skipped(self) -> int:
        return sum(summary.skipped for summary in self.entities.values())

    @property
    def success_rate(self) -> float:
        if not self.total_approved:
            return 0.0
        return round(self.total_committed / self.total_approved * 100, 2)

    @property
    def is_fully_successful(self) -> bool:
        return not self.errors and self.total_failed == 0


@dataclass(slots=True)
class _DeferredReference:
    production_model: type
    production_id: int
    column: str
    original_id: str


class CommitEngine:
    """Commits a ReadyToCommit package and archives its container."""

    def __init__(
        self,
        file_storage: FileStorage,
        archive_store: ArchiveStore,
        *,
        cleanup_staging: bool = False,
    ) -> None:
        self.file_storage = file_storage
        self.archive_store = archive_store
        self.cleanup_staging = cleanup_staging

    def commit(self, db: Session, package: ImportPackage, committed_by: str | None = None) -> CommitReport:
        if package.status != ImportStatus.READY_TO_COMMIT.value:
            raise CommitPreconditionError(
                f"Package {package.package_number} is {package.status}; expected {ImportStatus.READY_TO_COMMIT.value}"
            )
        unresolved = count_unresolved(db, package.id)
        if unresolved:
            raise CommitPreconditionError(
                f"Package {package.package_number} has {unresolved} unresolved conflict(s)"
            )

        started = perf_counter()
        package_id = package.id
        report = CommitReport(
            package_id=package_id,
            package_number=package.package_number,
            committed_by=committed_by,
            committed_at=datetime.now(timezone.utc),
        )
        resolved = [conflict for conflict in list_package_conflicts(db, package_id) if conflict.is_resolved]
        report.conflict_resolutions_applied = len(resolved)
        report.merges_performed = sum(1 for conflict in resolved if conflict.resolution_action == "Merged")

        package.status = ImportStatus.COMMITTING.value
        package.error_message = None
        db.commit()

        id_map: dict[str, dict[str, int]] = {entity_type: {} for entity_type in COMMIT_ORDER}
        deferred: dict[str, list[_DeferredReference]] = {entity_type: [] for entity_type in COMMIT_ORDER}
        failed_batch: str | None = None
        for index, entity_type in enumerate(COMMIT_ORDER):
            batch_started = perf_counter()
            try:
                summary, orphaned_files = self._commit_entity_type(
                    db, package_id, index, id_map, deferred, report
                )
                db.commit()
            except Exception as exc:
                db.rollback()
                logger.exception(
                    "import.commit_batch_failed package_id=%s entity_type=%s", package_id, entity_type
                )
                failed_batch = entity_type
                report.entities[entity_type] = EntityCommitSummary(entity_type=entity_type)
                report.errors.append(CommitError(entity_type=entity_type, message=f"Batch failed: {exc}"))
                break
            report.entities[entity_type] = summary
            self._delete_orphaned_files(orphaned_files)
            logger.info(
                "import.commit_batch package_id=%s entity_type=%s committed=%d failed=%d skipped=%d total_ms=%.2f",
                package_id,
                entity_type,
                summary.committed,
                summary.failed,
                summary.skipped,
                (perf_counter() - batch_started) * 1000.0,
            )

        package = db.get(ImportPackage, package_id)
        if package is None:
            raise PackageNotFoundError(f"Import package {package_id} not found")
        if failed_batch is not None and report.total_committed == 0:
            status = ImportStatus.FAILED
        elif failed_batch is not None or report.total_failed:
            status = ImportStatus.PARTIALLY_COMPLETED
        else:
            status = ImportStatus.COMPLETED
        report.status = status.value

        package.status = status.value
        package.committed_count = report.total_committed
        package.failed_count = report.total_failed
        package.committed_by = committed_by
        package.committed_at = report.committed_at
        if failed_batch is not None:
            package.error_message = f"Commit failed at {failed_batch}: {report.errors[-1].message}"
        db.commit()

        if status is ImportStatus.COMPLETED:
            self._archive(db, package, report)
            if self.cleanup_staging:
                delete_package_staging(db, package_id)
                db.commit()

        report.duration_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "import.commit_timing package_id=%s status=%s committed=%d failed=%d skipped=%d total_ms=%.2f",
            package_id,
            report.status,
            report.total_committed,
            report.total_failed,
            report.total_skipped,
            report.duration_ms,
        )
        return report

    def _commit_entity_type(
        self,
        db: Session,
        package_id: int,
        index: int,
        id_map: dict[str, dict[str, int]],
        deferred: dict[str, list[_DeferredReference]],
        report: CommitReport,
    ) -> tuple[EntityCommitSummary, list[str]]:
        staging_model = STAGING_MODELS[index]
        entity_type = staging_model.ENTITY_TYPE
        production_model = PRODUCTION_MODEL_BY_TYPE[entity_type]
        columns = shared_data_columns(staging_model, production_model)
        batch = load_batch(db, package_id)
        summary = EntityCommitSummary(entity_type=entity_type)
        orphaned_files: list[str] = []

        for record in batch.records(entity_type):
            if record.is_skipped:
                summary.skipped += 1
                continue
            if not (record.is_committable and record.is_approved_for_commit):
                continue
            summary.approved += 1
            if record.committed_entity_id is not None:
                id_map[entity_type][record.original_entity_id] = record.committed_entity_id
                summary.committed += 1
                continue

            try:
                references, later = self._translate_references(batch, record, index, id_map)
            except UnresolvedReferenceError as exc:
                summary.failed += 1
                report.errors.append(
                    CommitError(
                        entity_type=entity_type,
                        message=str(exc),
                        staging_id=record.id,
                        original_entity_id=record.original_entity_id,
                    )
                )
                continue

            production = production_model(
                **{name: getattr(record, name) for name in columns},
                **references,
                source_package_id=package_id,
            )
            if isinstance(record, StagingEvidence):
                orphan = self._attach_stored_file(db, record, production, report)
                if orphan:
                    orphaned_files.append(orphan)
            if isinstance(production, Claim) and production.claim_status is None:
                production.claim_status = int(ClaimStatus.DRAFT)
            db.add(production)
            db.flush()
            if isinstance(production, Claim):
                production.claim_number = f"CLM-{datetime.now(timezone.utc):%Y}-{production.id:06d}"

            record.set_committed_entity_id(production.id)
            id_map[entity_type][record.original_entity_id] = production.id
            summary.committed += 1
            for column, target_type, original_id in later:
                deferred[target_type].append(
                    _DeferredReference(production_model, production.id, column, original_id)
                )

        # Back-fill references from earlier entity types to the rows just written.
        for pending in deferred[entity_type]:
            target_id = _resolve_original_id(batch, entity_type, pending.original_id, id_map)
            if target_id is None:
                continue
            row = db.get(pending.production_model, pending.production_id)
            if row is not None:
                setattr(row, pending.column, target_id)

        summary.id_mappings = dict(id_map[entity_type])
        db.flush()
        return summary, orphaned_files

    def _translate_references(
        self,
        batch: StagingBatch,
        record: StagingRecordMixin,
        index: int,
        id_map: dict[str, dict[str, int]],
    ) -> tuple[dict[str, int | None], list[tuple[str, str, str]]]:
        production_model = PRODUCTION_MODEL_BY_TYPE[record.ENTITY_TYPE]
        production_columns = sa_inspect(production_model).columns
        references: dict[str, int | None] = {}
        later: list[tuple[str, str, str]] = []
        for column, target_type in record.REFERENCES.items():
            original_id = getattr(record, column)
            references[column] = None
            if not original_id:
                continue
            if COMMIT_ORDER.index(target_type) > index:
                later.append((column, target_type, original_id))
                continue
            target_id = _resolve_original_id(batch, target_type, original_id, id_map)
            if target_id is None and not production_columns[column].nullable:
                raise UnresolvedReferenceError(
                    f"{record.ENTITY_TYPE} {record.original_entity_id}: {target_type} {original_id} "
                    "was not committed"
                )
            references[column] = target_id
        return references, later

    def _attach_stored_file(
        self,
        db: Session,
        record: StagingEvidence,
        production: Evidence,
        report: CommitReport,
    ) -> str | None:
        """Link the evidence to a content-addressed file; returns a staged path made redundant."""

        # Device paths without an uploaded blob stay as plain metadata.
        if not is_staged_attachment(record.file_path, record.import_package_id):
            return None
        if not self.file_storage.exists(record.file_path):
            return None
        file_hash = record.file_hash
        if not file_hash:
            file_hash = self.file_storage.compute_hash(self.file_storage.read(record.file_path))
            production.file_hash = file_hash

        stored = db.scalar(select(StoredFile).where(StoredFile.sha256 == file_hash))
        if stored is None:
            stored = StoredFile(
                sha256=file_hash,
                storage_path=record.file_path,
                size_bytes=record.file_size_bytes or 0,
                reference_count=1,
            )
            db.add(stored)
            db.flush()
            production.stored_file_id = stored.id
            return None

        stored.reference_count += 1
        production.stored_file_id = stored.id
        production.file_path = stored.storage_path
        report.duplicate_attachments_found += 1
        report.deduplication_bytes_saved += record.file_size_bytes or 0
        if stored.storage_path != record.file_path:
            return record.file_path
        return None

    def _delete_orphaned_files(self, paths: list[str]) -> None:
        for path in paths:
            try:
                self.file_storage.delete(path)
            except OSError:
                logger.warning("import.orphan_delete_failed path=%s", path, exc_info=True)

    def _archive(self, db: Session, package: ImportPackage, report: CommitReport) -> None:
        try:
            archived = self.archive_store.archive(
                package.package_id,
                package.file_path,
                package.created_at or datetime.now(timezone.utc),
            )
        except OSError:
            logger.warning(
                "import.archive_failed package_id=%s path=%s", package.id, package.file_path, exc_info=True
            )
            return
        package.archive_path = str(archived)
        package.is_archived = True
        db.commit()
        report.is_archived = True
        report.archive_path = str(archived)


def _resolve_original_id(
    batch: StagingBatch,
    target_type: str,
    original_id: str,
    id_map: dict[str, dict[str, int]],
) -> int | None:
    """Production id for a staged reference, following merge links of skipped records."""

    seen: set[str] = set()
    current: str | None = original_id
    while current and current not in seen:
        seen.add(current)
        committed = id_map.get(target_type, {}).get(current)
        if committed is not None:
            return committed
        target = batch.get(target_type, current)
        if target is None:
            return None
        if target.committed_entity_id is not None:
            return target.committed_entity_id
        current = target.merged_into_original_id if target.is_skipped else None
    return None
