"""Shared builders for survey containers and in-memory databases used by the tests."""

from __future__ import annotations

import copy
import sqlite3
import tempfile
import unittest
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from survey_import.config import Settings
from survey_import.container import Container
from survey_import.db.base import Base
from survey_import.manifest import compute_content_checksum
from survey_import.services.coordinator import ImportCoordinator
from survey_import.services.vocabulary import VocabularyCache
from survey_import.storage.archive import ArchiveStore
from survey_import.storage.file_storage import LocalFileStorage

CLEAN_TABLES: dict[str, list[dict[str, Any]]] = {
    "buildings": [
        {
            "id": "B1",
            "governorate_code": "01",
            "district_code": "02",
            "sub_district_code": "03",
            "community_code": "004",
            "neighborhood_code": "005",
            "building_number": "00006",
            "building_type": 1,
            "building_status": 1,
            "damage_level": 1,
            "number_of_property_units": 1,
            "latitude": 34.5,
            "longitude": 38.2,
        }
    ],
    "property_units": [
        {"id": "U1", "building_id": "B1", "unit_identifier": "A-1", "unit_type": 1, "unit_status": 1},
    ],
    "persons": [
        {
            "id": "P1",
            "first_name_arabic": "محمد",
            "father_name_arabic": "أحمد",
            "family_name_arabic": "الخطيب",
            "national_id": "01234567890",
            "year_of_birth": 1980,
            "gender": 1,
            "household_id": "H1",
        }
    ],
    "households": [
        {
            "id": "H1",
            "property_unit_id": "U1",
            "head_of_household_person_id": "P1",
            "household_size": 5,
            "male_count": 1,
            "female_count": 1,
            "male_child_count": 2,
        }
    ],
    "person_property_relations": [
        {"id": "R1", "person_id": "P1", "property_unit_id": "U1", "relation_type": 1, "ownership_share": 100},
    ],
    "evidences": [
        {
            "id": "E1",
            "person_property_relation_id": "R1",
            "evidence_type": 2,
            "original_file_name": "deed.pdf",
        }
    ],
    "claims": [
        {
            "id": "C1",
            "property_unit_id": "U1",
            "primary_claimant_id": "P1",
            "claim_type": 1,
            "claim_source": 1,
            "claim_status": 1,
            "lifecycle_stage": 1,
        }
    ],
    "surveys": [
        {"id": "S1", "building_id": "B1", "property_unit_id": "U1", "survey_date": "2026-01-15T10:00:00Z"},
    ],
}

CLEAN_ATTACHMENTS: dict[str, bytes] = {"E1": b"%PDF-1.4 deed scan"}


def clean_tables() -> dict[str, list[dict[str, Any]]]:
    """A fresh, fully valid one-household dataset."""

    return copy.deepcopy(CLEAN_TABLES)


def build_container(
    path: Path,
    *,
    package_id: str,
    tables: dict[str, list[dict[str, Any]]],
    attachments: dict[str, bytes] | None = None,
    manifest: dict[str, str] | None = None,
    with_checksum: bool = True,
) -> Path:
    """Write a container file with a manifest, data tables and optional attachments."""

    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE manifest (key TEXT, value TEXT)")
        for table, rows in tables.items():
            columns = sorted({column for row in rows for column in row}) or ["id"]
            conn.execute(f'CREATE TABLE "{table}" ({", ".join(columns)})')
            for row in rows:
                conn.execute(
                    f'INSERT INTO "{table}" ({", ".join(columns)}) VALUES ({", ".join("?" for _ in columns)})',
                    [row.get(column) for column in columns],
                )
        if attachments:
            conn.execute("CREATE TABLE attachments (evidence_id TEXT, data BLOB)")
            conn.executemany("INSERT INTO attachments VALUES (?, ?)", list(attachments.items()))
        values = {
            "package_id": package_id,
            "schema_version": "1.2.0",
            "device_id": "tablet-07",
            "exported_by_user_id": "collector-3",
            "exported_date_utc": "2026-01-16T08:30:00Z",
            **(manifest or {}),
        }
        conn.executemany("INSERT INTO manifest VALUES (?, ?)", list(values.items()))
        conn.commit()
    finally:
        conn.close()

    if with_checksum:
        with Container(path) as container:
            checksum = compute_content_checksum(container)
        conn = sqlite3.connect(path)
        try:
            conn.execute("INSERT INTO manifest VALUES ('checksum', ?)", (checksum,))
            conn.commit()
        finally:
            conn.close()
    return path


class PipelineTestCase(unittest.TestCase):
    """In-memory database, temp storage roots and a wired coordinator per test."""

    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)

    @classmethod
    def tearDownClass(cls) -> None:
        cls.engine.dispose()

    def setUp(self) -> None:
        Base.metadata.create_all(self.engine)
        self.db: Session = self.SessionLocal()
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "incoming").mkdir()
        self.settings = self.make_settings()
        self.file_storage = LocalFileStorage(self.root / "files")
        self.archive_store = ArchiveStore(self.root / "archive")
        self.coordinator = ImportCoordinator(
            settings=self.settings,
            file_storage=self.file_storage,
            archive_store=self.archive_store,
            vocabulary=VocabularyCache({}),
        )

    def tearDown(self) -> None:
        self.db.close()
        Base.metadata.drop_all(self.engine)
        self._tmp.cleanup()

    def make_settings(self, **overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "database_url": "sqlite+pysqlite:///:memory:",
            "file_storage_path": str(self.root / "files"),
            "archive_base_path": str(self.root / "archive"),
            "package_storage_path": str(self.root / "incoming"),
        }
        values.update(overrides)
        return Settings(**values)

    def write_container(
        self,
        package_id: str,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        **kwargs: Any,
    ) -> Path:
        return build_container(
            self.root / "incoming" / f"{package_id}.uhc",
            package_id=package_id,
            tables=clean_tables() if tables is None else tables,
            **kwargs,
        )

    def run_to_review(
        self,
        package_id: str,
        tables: dict[str, list[dict[str, Any]]] | None = None,
        **kwargs: Any,
    ) -> int:
        """Ingest, stage, validate and detect; returns the package row id."""

        path = self.write_container(package_id, tables, **kwargs)
        package = self.coordinator.run(self.db, str(path), imported_by="tester")
        return package.id
