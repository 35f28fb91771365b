"""External storage collaborators used by the pipeline."""

from survey_import.storage.archive import ArchiveStore
from survey_import.storage.file_storage import FileStorage, LocalFileStorage, compute_sha256

__all__ = ["ArchiveStore", "FileStorage", "LocalFileStorage", "compute_sha256"]
