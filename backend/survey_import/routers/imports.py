"""Import package and conflict review routes."""

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy.orm import Session

from survey_import.db.dependencies import get_db
from survey_import.errors import (
    CommitPreconditionError,
    ConflictAlreadyEscalatedError,
    ConflictAlreadyResolvedError,
    ConflictNotFoundError,
    ContainerFormatError,
    DuplicatePackageError,
    ImportPipelineError,
    InvalidStateTransitionError,
    MergeTargetNotFoundError,
    PackageNotFoundError,
    PipelineStageError,
    UnknownEntityTypeError,
)
from survey_import.schemas.common import ApiResponse
from survey_import.schemas.imports import (
    ActorRequest,
    CommitReportRead,
    ConflictRead,
    ConflictSummaryRead,
    DetectionResultRead,
    EscalateConflictRequest,
    ImportPackageRead,
    IngestRequest,
    KeepSeparateRequest,
    MergeConflictRequest,
    MergeOutcomeRead,
    MergeResultRead,
    ResetCommitRequest,
    StagedRecordRead,
    StagingSummaryRead,
    UnpackResultRead,
    ValidationSummaryRead,
)
from survey_import.services.coordinator import ImportCoordinator, get_coordinator

router = APIRouter()

_NOT_FOUND = (PackageNotFoundError, ConflictNotFoundError, MergeTargetNotFoundError)
_CONFLICT = (
    DuplicatePackageError,
    InvalidStateTransitionError,
    CommitPreconditionError,
    ConflictAlreadyResolvedError,
    ConflictAlreadyEscalatedError,
)
_UNPROCESSABLE = (ContainerFormatError, UnknownEntityTypeError, ValueError)


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, _NOT_FOUND):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, _CONFLICT):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, _UNPROCESSABLE):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, PipelineStageError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/imports", response_model=ApiResponse[ImportPackageRead])
def create_import(
    payload: IngestRequest,
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ImportPackageRead]:
    """Register a container already placed on server storage."""

    try:
        package = coordinator.ingest(db, payload.container_path, imported_by=payload.imported_by)
    except (ImportPipelineError, ValueError) as exc:
        raise _http_error(exc) from exc
    return ApiResponse(
        data=ImportPackageRead.model_validate(package),
        warnings=list(package.manifest_warnings_json or []),
    )


@router.get("/imports/{package_id}", response_model=ApiResponse[ImportPackageRead])
def get_import(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ImportPackageRead]:
    try:
        package = coordinator.get_package(db, package_id)
    except PackageNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Import package not found") from exc
    return ApiResponse(data=ImportPackageRead.model_validate(package))


@router.post("/imports/{package_id}/stage", response_model=ApiResponse[UnpackResultRead])
def stage_import(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[UnpackResultRead]:
    """Unpack the container into staging tables."""

    try:
        result = coordinator.stage(db, package_id)
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=UnpackResultRead.model_validate(result))


@router.post("/imports/{package_id}/validate", response_model=ApiResponse[ValidationSummaryRead])
def validate_import(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ValidationSummaryRead]:
    """Run all validation levels over the staged records."""

    try:
        summary = coordinator.validate(db, package_id)
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ValidationSummaryRead.model_validate(summary))


@router.post("/imports/{package_id}/detect", response_model=ApiResponse[DetectionResultRead])
def detect_import_duplicates(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[DetectionResultRead]:
    """Detect person and property unit duplicates."""

    try:
        result = coordinator.detect_duplicates(db, package_id)
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=DetectionResultRead.model_validate(result))


@router.get("/imports/{package_id}/conflicts", response_model=ApiResponse[list[ConflictRead]])
def get_import_conflicts(
    package_id: int = Path(..., ge=1),
    unresolved_only: bool = False,
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[list[ConflictRead]]:
    try:
        conflicts = coordinator.list_conflicts(db, package_id, unresolved_only=unresolved_only)
    except PackageNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Import package not found") from exc
    return ApiResponse(data=[ConflictRead.model_validate(conflict) for conflict in conflicts])


@router.get("/imports/{package_id}/conflict-summary", response_model=ApiResponse[ConflictSummaryRead])
def get_import_conflict_summary(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ConflictSummaryRead]:
    try:
        summary = coordinator.conflict_summary(db, package_id)
    except PackageNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Import package not found") from exc
    return ApiResponse(data=ConflictSummaryRead.model_validate(summary))


@router.get("/imports/{package_id}/staged", response_model=ApiResponse[list[StagedRecordRead]])
def get_staged_records(
    package_id: int = Path(..., ge=1),
    entity_type: str | None = None,
    status: str | None = None,
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[list[StagedRecordRead]]:
    """Staged records with their validation findings."""

    try:
        records = coordinator.list_staged_records(db, package_id, entity_type=entity_type, status=status)
    except (ImportPipelineError, ValueError) as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=[StagedRecordRead.model_validate(record) for record in records])


@router.get("/imports/{package_id}/staging-summary", response_model=ApiResponse[StagingSummaryRead])
def get_staging_summary(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[StagingSummaryRead]:
    try:
        summary = coordinator.staging_summary(db, package_id)
    except PackageNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Import package not found") from exc
    return ApiResponse(data=StagingSummaryRead.model_validate(summary))


@router.post("/conflicts/{conflict_id}/merge", response_model=ApiResponse[MergeOutcomeRead])
def merge_conflict(
    payload: MergeConflictRequest,
    conflict_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[MergeOutcomeRead]:
    """Resolve a conflict by merging into the chosen master entity."""

    try:
        conflict, result = coordinator.resolve_conflict_merge(
            db,
            conflict_id,
            master_entity_id=payload.master_entity_id,
            resolved_by=payload.resolved_by,
            reason=payload.reason,
        )
    except (ImportPipelineError, ValueError) as exc:
        raise _http_error(exc) from exc
    return ApiResponse(
        data=MergeOutcomeRead(
            conflict=ConflictRead.model_validate(conflict),
            merge=MergeResultRead.model_validate(result),
        )
    )


@router.post("/conflicts/{conflict_id}/keep-separate", response_model=ApiResponse[ConflictRead])
def keep_conflict_separate(
    payload: KeepSeparateRequest,
    conflict_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ConflictRead]:
    """Resolve a conflict by keeping both entities."""

    try:
        conflict = coordinator.resolve_conflict_keep_separate(
            db, conflict_id, resolved_by=payload.resolved_by, reason=payload.reason
        )
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ConflictRead.model_validate(conflict))


@router.post("/conflicts/{conflict_id}/escalate", response_model=ApiResponse[ConflictRead])
def escalate_conflict(
    payload: EscalateConflictRequest,
    conflict_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ConflictRead]:
    """Send a pending conflict to senior review; it keeps blocking the commit."""

    try:
        conflict = coordinator.escalate_conflict(
            db, conflict_id, reason=payload.reason, escalated_by=payload.escalated_by
        )
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ConflictRead.model_validate(conflict))


@router.post("/imports/{package_id}/approve", response_model=ApiResponse[ImportPackageRead])
def approve_import(
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ImportPackageRead]:
    """Approve every committable staging record."""

    try:
        coordinator.approve(db, package_id)
        package = coordinator.get_package(db, package_id)
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ImportPackageRead.model_validate(package))


@router.post("/imports/{package_id}/commit", response_model=ApiResponse[CommitReportRead])
def commit_import(
    payload: ActorRequest,
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[CommitReportRead]:
    """Commit approved staging records into production."""

    try:
        report = coordinator.commit(db, package_id, committed_by=payload.actor_id)
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=CommitReportRead.model_validate(report))


@router.post("/imports/{package_id}/reset", response_model=ApiResponse[ImportPackageRead])
def reset_import_commit(
    payload: ResetCommitRequest,
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ImportPackageRead]:
    """Return a stuck or failed commit to ReadyToCommit."""

    try:
        package = coordinator.reset_commit(db, package_id, payload.reason, actor_id=payload.actor_id)
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ImportPackageRead.model_validate(package))


@router.post("/imports/{package_id}/cancel", response_model=ApiResponse[ImportPackageRead])
def cancel_import(
    payload: ActorRequest,
    package_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    coordinator: ImportCoordinator = Depends(get_coordinator),
) -> ApiResponse[ImportPackageRead]:
    try:
        package = coordinator.cancel(db, package_id, reason=f"Cancelled by {payload.actor_id or 'unknown'}")
    except ImportPipelineError as exc:
        raise _http_error(exc) from exc
    return ApiResponse(data=ImportPackageRead.model_validate(package))
