"""Tests for container access, manifest parsing, checksums and file/archive storage."""

from __future__ import annotations

import json
import sqlite3
import stat
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from survey_import.container import Container
from survey_import.errors import ContainerFormatError
from survey_import.manifest import (
    check_vocabulary_compatibility,
    compare_versions,
    compute_content_checksum,
    read_manifest,
    verify_content_checksum,
)
from survey_import.storage.archive import ArchiveStore
from survey_import.storage.file_storage import LocalFileStorage, compute_sha256

from survey_fixtures import build_container, clean_tables


class ContainerManifestTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_manifest_fields_and_declared_counts_are_parsed(self) -> None:
        path = build_container(
            self.root / "pkg.uhc",
            package_id="PKG-A",
            tables=clean_tables(),
            manifest={
                "vocab_versions": json.dumps({"gender": "1.0.0", "relation_type": "2.1.0"}),
                "buildings_count": "1",
                "persons_count": "not-a-number",
            },
        )

        with Container(path) as container:
            manifest = read_manifest(container)
            self.assertEqual(verify_content_checksum(container, manifest), manifest.checksum)

        self.assertEqual(manifest.package_id, "PKG-A")
        self.assertEqual(manifest.device_id, "tablet-07")
        self.assertEqual(manifest.exported_date_utc, datetime(2026, 1, 16, 8, 30, tzinfo=timezone.utc))
        self.assertEqual(manifest.vocab_versions, {"gender": "1.0.0", "relation_type": "2.1.0"})
        self.assertEqual(manifest.declared_counts, {"buildings_count": 1})

    def test_missing_package_id_is_rejected(self) -> None:
        path = self.root / "broken.uhc"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE manifest (key TEXT, value TEXT)")
        conn.execute("INSERT INTO manifest VALUES ('device_id', 'tablet-07')")
        conn.commit()
        conn.close()

        with Container(path) as container:
            with self.assertRaises(ContainerFormatError):
                read_manifest(container)

    def test_non_database_file_is_a_format_error(self) -> None:
        path = self.root / "garbage.uhc"
        path.write_bytes(b"this is not sqlite at all" * 100)

        with self.assertRaises(ContainerFormatError):
            Container(path)
        with self.assertRaises(ContainerFormatError):
            Container(self.root / "missing.uhc")

    def test_checksum_mismatch_after_tampering(self) -> None:
        path = build_container(self.root / "pkg.uhc", package_id="PKG-B", tables=clean_tables())
        conn = sqlite3.connect(path)
        conn.execute("UPDATE persons SET family_name_arabic = 'العلي' WHERE id = 'P1'")
        conn.commit()
        conn.close()

        with Container(path) as container:
            manifest = read_manifest(container)
            with self.assertRaises(ContainerFormatError):
                verify_content_checksum(container, manifest)

    def test_checksum_ignores_manifest_and_attachments(self) -> None:
        plain = build_container(self.root / "a.uhc", package_id="PKG-C", tables=clean_tables())
        with_blobs = build_container(
            self.root / "b.uhc",
            package_id="PKG-D",
            tables=clean_tables(),
            attachments={"E1": b"scan"},
        )

        with Container(plain) as left, Container(with_blobs) as right:
            self.assertEqual(compute_content_checksum(left), compute_content_checksum(right))

    def test_missing_tables_read_as_empty(self) -> None:
        path = build_container(self.root / "pkg.uhc", package_id="PKG-E", tables={"buildings": []})

        with Container(path) as container:
            self.assertEqual(list(container.iter_rows("surveys")), [])
            self.assertEqual(container.count_rows("surveys"), 0)
            self.assertIsNone(container.attachment_for("E1"))


class VocabularyCompatibilityTests(unittest.TestCase):
    def test_version_levels(self) -> None:
        self.assertEqual(compare_versions("1.2.3", "1.2.3"), "identical")
        self.assertEqual(compare_versions("1.2.3", "1.2.9"), "patch")
        self.assertEqual(compare_versions("1.2.0", "1.4.0"), "minor")
        self.assertEqual(compare_versions("2.0.0", "1.9.9"), "major")
        self.assertEqual(compare_versions("v1.2", "1.2.0"), "identical")

    def test_major_mismatch_is_incompatible(self) -> None:
        result = check_vocabulary_compatibility(
            {"gender": "2.0.0", "relation_type": "1.1.0", "legacy": "1.0.0"},
            {"gender": "1.0.0", "relation_type": "1.0.0"},
        )

        self.assertFalse(result.is_compatible)
        self.assertEqual(len(result.errors), 1)
        self.assertIn("gender", result.errors[0])
        self.assertEqual(len(result.warnings), 2)

    def test_minor_and_unknown_domains_only_warn(self) -> None:
        result = check_vocabulary_compatibility({"gender": "1.3.0", "extra": "1.0.0"}, {"gender": "1.0.0"})

        self.assertTrue(result.is_compatible)
        self.assertEqual(result.errors, [])
        self.assertEqual(len(result.warnings), 2)


class StorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_local_storage_round_trip_and_path_escape(self) -> None:
        storage = LocalFileStorage(self.root / "files")

        path = storage.save(b"deed", "Deed.PDF", "import-attachments", "7")

        self.assertTrue(path.startswith("import-attachments/7/"))
        self.assertTrue(path.endswith(".pdf"))
        self.assertEqual(storage.read(path), b"deed")
        self.assertEqual(storage.compute_hash(b"deed"), compute_sha256(b"deed"))
        self.assertEqual(storage.guess_mime_type("deed.pdf"), "application/pdf")
        storage.delete(path)
        self.assertFalse(storage.exists(path))
        with self.assertRaises(ValueError):
            storage.read("../outside.txt")

    def test_archive_is_date_partitioned_read_only_and_never_overwritten(self) -> None:
        source = self.root / "incoming.uhc"
        source.write_bytes(b"container-v1")
        store = ArchiveStore(self.root / "archive")
        imported_at = datetime(2026, 3, 9, tzinfo=timezone.utc)

        target = store.archive("PKG-F", source, imported_at)
        source.write_bytes(b"container-v2")
        again = store.archive("PKG-F", source, imported_at)

        self.assertEqual(target, self.root / "archive" / "2026" / "03" / "PKG-F.uhc")
        self.assertEqual(again, target)
        self.assertEqual(target.read_bytes(), b"container-v1")
        self.assertFalse(target.stat().st_mode & stat.S_IWUSR)


if __name__ == "__main__":
    unittest.main()
