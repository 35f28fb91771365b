"""Immutable, date-partitioned archive of ingested containers."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = ".uhc"


class ArchiveStore:
    """Copies containers to ``{root}/{year}/{month}/{package_id}.uhc``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, package_id: str, imported_at: datetime) -> Path:
        return self.root / f"{imported_at.year:04d}" / f"{imported_at.month:02d}" / f"{package_id}{ARCHIVE_EXTENSION}"

    def archive(self, package_id: str, source_path: str | Path, imported_at: datetime) -> Path:
        """Copy the container into the archive; existing archives are never overwritten."""

        target = self.path_for(package_id, imported_at)
        if target.exists():
            logger.info("archive.already_present package_id=%s path=%s", package_id, target)
            return target
        source = Path(source_path)
        if not source.is_file():
            raise FileNotFoundError(f"Container not found for archiving: {source}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        target.chmod(0o444)
        logger.info("archive.stored package_id=%s path=%s bytes=%d", package_id, target, target.stat().st_size)
        return target
