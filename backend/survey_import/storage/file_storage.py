"""File storage interface and local-disk implementation."""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


def compute_sha256(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``."""

    return hashlib.sha256(data).hexdigest()


class FileStorage(ABC):
    """Abstract blob store addressed by relative paths."""

    @abstractmethod
    def save(self, data: bytes, file_name: str, category: str, scope_id: str) -> str:
        """Persist ``data`` and return a stable relative path."""

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Return the bytes stored at ``path``."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return whether ``path`` exists."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove ``path`` if present."""

    def compute_hash(self, data: bytes) -> str:
        return compute_sha256(data)

    def guess_mime_type(self, file_name: str) -> str:
        mime_type, _ = mimetypes.guess_type(file_name)
        return mime_type or "application/octet-stream"


class LocalFileStorage(FileStorage):
    """Store blobs under ``root/category/scope_id/<uuid><ext>``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, data: bytes, file_name: str, category: str, scope_id: str) -> str:
        suffix = Path(file_name).suffix.lower() if file_name else ""
        relative = PurePosixPath(category) / str(scope_id) / f"{uuid.uuid4().hex}{suffix}"
        target = self._resolve(str(relative))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("storage.saved path=%s bytes=%d", relative, len(data))
        return str(relative)

    def read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return target.read_bytes()

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target.is_file():
            target.unlink()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return target
