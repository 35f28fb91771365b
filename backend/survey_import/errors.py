"""Exception hierarchy for the import pipeline."""


class ImportPipelineError(RuntimeError):
    """Base class for pipeline failures surfaced to callers."""


class PackageNotFoundError(ImportPipelineError):
    pass


class DuplicatePackageError(ImportPipelineError):
    """A package with the same manifest id was already ingested."""

    def __init__(self, package_id: str, existing_package_number: str | None = None) -> None:
        self.package_id = package_id
        self.existing_package_number = existing_package_number
        suffix = f" as {existing_package_number}" if existing_package_number else ""
        super().__init__(f"Package {package_id} has already been imported{suffix}")


class ContainerFormatError(ImportPipelineError):
    """The container is unreadable or structurally invalid."""


class InvalidStateTransitionError(ImportPipelineError):
    pass


class CommitPreconditionError(ImportPipelineError):
    pass


class ConflictNotFoundError(ImportPipelineError):
    pass


class ConflictAlreadyResolvedError(ImportPipelineError):
    pass


class MergeTargetNotFoundError(ImportPipelineError):
    pass


class ConflictAlreadyEscalatedError(ImportPipelineError):
    pass


class UnknownEntityTypeError(ImportPipelineError):
    pass


class PipelineStageError(ImportPipelineError):
    """A pipeline stage failed and the package was marked Failed."""

    def __init__(self, stage: str, package_id: int, message: str) -> None:
        self.stage = stage
        self.package_id = package_id
        super().__init__(f"{stage} failed for package {package_id}: {message}")


class OperationCancelled(ImportPipelineError):
    """Cooperative cancellation was requested for a long-running step."""
