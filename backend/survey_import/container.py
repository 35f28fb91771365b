"""Read-only access to field-device containers (sqlite files with named tables)."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from survey_import.errors import ContainerFormatError

logger = logging.getLogger(__name__)


class Container:
    """Thin wrapper over a read-only sqlite connection."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        if not self.path.is_file():
            raise ContainerFormatError(f"Container file not found: {self.path}")
        try:
            self._conn = sqlite3.connect(f"file:{self.path.as_posix()}?mode=ro", uri=True)
            self._conn.row_factory = sqlite3.Row
            self._tables = {
                row[0]
                for row in self._conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        except sqlite3.DatabaseError as exc:
            raise ContainerFormatError(f"Container is not a readable database: {exc}") from exc

    def __enter__(self) -> Container:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    @property
    def tables(self) -> list[str]:
        return sorted(self._tables)

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def columns(self, table: str) -> list[str]:
        return [row[1] for row in self._conn.execute(f'PRAGMA table_info("{table}")')]

    def iter_rows(self, table: str) -> Iterator[dict[str, Any]]:
        """Yield rows in rowid order; a missing table yields nothing."""

        if not self.has_table(table):
            return
        try:
            cursor = self._conn.execute(f'SELECT * FROM "{table}" ORDER BY rowid')
            for row in cursor:
                yield dict(row)
        except sqlite3.DatabaseError as exc:
            raise ContainerFormatError(f"Failed reading table {table}: {exc}") from exc

    def count_rows(self, table: str) -> int:
        if not self.has_table(table):
            return 0
        return int(self._conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0])

    def attachment_for(self, evidence_id: str) -> bytes | None:
        """Return the blob stored for an evidence row, if the attachments table has one."""

        if not self.has_table("attachments"):
            return None
        row = self._conn.execute(
            "SELECT data FROM attachments WHERE evidence_id = ? LIMIT 1",
            (evidence_id,),
        ).fetchone()
        if row is None or row[0] is None:
            return None
        return bytes(row[0])
