"""Integration-style tests for staging a container and the validation levels."""

from __future__ import annotations

import unittest

from sqlalchemy import func, select

from survey_import.enums import ImportStatus, ValidationStatus
from survey_import.errors import InvalidStateTransitionError, PipelineStageError, UnknownEntityTypeError
from survey_import.models.staging import STAGING_MODELS, StagingBuilding
from survey_import.services.staging_repository import count_by_status, find_by_original_id
from survey_import.services.unpacker import ATTACHMENT_CATEGORY
from survey_import.services.vocabulary import VocabularyCache
from survey_import.storage.file_storage import compute_sha256
from survey_import.validation.base import Validator
from survey_import.validation.pipeline import FAILED_LEVEL_ERROR_COUNT, ValidationPipeline, default_validators

from survey_fixtures import CLEAN_ATTACHMENTS, PipelineTestCase, clean_tables


class _ExplodingValidator(Validator):
    level = 4
    name = "Exploding"

    def validate(self, batch, context, findings) -> None:
        raise RuntimeError("validator bug")


class UnpackTests(PipelineTestCase):
    def test_stage_maps_every_table_and_attachment(self) -> None:
        path = self.write_container("PKG-U1", attachments=CLEAN_ATTACHMENTS)
        package = self.coordinator.ingest(self.db, str(path), imported_by="tester")

        result = self.coordinator.stage(self.db, package.id)

        self.assertEqual(result.total_records, 8)
        self.assertEqual(set(result.record_counts.values()), {1})
        self.assertEqual(result.attachment_count, 1)
        self.assertEqual(result.attachment_bytes, len(CLEAN_ATTACHMENTS["E1"]))
        self.assertEqual(self.coordinator.get_package(self.db, package.id).status, ImportStatus.STAGING.value)

        building = find_by_original_id(self.db, "Building", package.id, "B1")
        self.assertEqual(building.building_code, "01020300400500006")
        evidence = find_by_original_id(self.db, "Evidence", package.id, "E1")
        self.assertTrue(evidence.file_path.startswith(f"{ATTACHMENT_CATEGORY}/{package.id}/"))
        self.assertEqual(evidence.file_hash, compute_sha256(CLEAN_ATTACHMENTS["E1"]))
        self.assertEqual(evidence.mime_type, "application/pdf")
        self.assertEqual(self.file_storage.read(evidence.file_path), CLEAN_ATTACHMENTS["E1"])

    def test_restaging_replaces_previous_rows(self) -> None:
        package = self.coordinator.ingest(self.db, str(self.write_container("PKG-U2")))

        self.coordinator.stage(self.db, package.id)
        self.coordinator.stage(self.db, package.id)

        for model in STAGING_MODELS:
            count = self.db.scalar(
                select(func.count()).select_from(model).where(model.import_package_id == package.id)
            )
            self.assertEqual(count, 1, model.__name__)

    def test_restaging_removes_attachments_of_replaced_rows(self) -> None:
        path = self.write_container("PKG-U7", attachments=CLEAN_ATTACHMENTS)
        package = self.coordinator.ingest(self.db, str(path))
        self.coordinator.stage(self.db, package.id)
        first_path = find_by_original_id(self.db, "Evidence", package.id, "E1").file_path

        self.coordinator.stage(self.db, package.id)

        second_path = find_by_original_id(self.db, "Evidence", package.id, "E1").file_path
        self.assertNotEqual(first_path, second_path)
        self.assertFalse(self.file_storage.exists(first_path))
        self.assertTrue(self.file_storage.exists(second_path))

    def test_failed_stage_leaves_no_attachment_files_behind(self) -> None:
        tables = clean_tables()
        tables["evidences"].append(dict(tables["evidences"][0]))
        path = self.write_container("PKG-U8", tables, attachments=CLEAN_ATTACHMENTS)
        package = self.coordinator.ingest(self.db, str(path))

        with self.assertRaises(PipelineStageError):
            self.coordinator.stage(self.db, package.id)

        attachment_dir = self.root / "files" / ATTACHMENT_CATEGORY / str(package.id)
        self.assertEqual([entry for entry in attachment_dir.rglob("*") if entry.is_file()], [])

    def test_missing_required_column_fails_the_stage(self) -> None:
        tables = clean_tables()
        for row in tables["households"]:
            del row["property_unit_id"]
        package = self.coordinator.ingest(self.db, str(self.write_container("PKG-U3", tables)))

        with self.assertRaises(PipelineStageError) as raised:
            self.coordinator.stage(self.db, package.id)

        self.assertEqual(raised.exception.stage, "unpack")
        failed = self.coordinator.get_package(self.db, package.id)
        self.assertEqual(failed.status, ImportStatus.FAILED.value)
        self.assertEqual(failed.failed_stage, "unpack")
        self.assertIn("property_unit_id", failed.error_message)
        self.assertEqual(self.db.scalar(select(func.count()).select_from(StagingBuilding)), 0)

    def test_duplicate_ids_within_a_table_fail_the_stage(self) -> None:
        tables = clean_tables()
        tables["persons"].append(dict(tables["persons"][0]))
        package = self.coordinator.ingest(self.db, str(self.write_container("PKG-U4", tables)))

        with self.assertRaises(PipelineStageError):
            self.coordinator.stage(self.db, package.id)

    def test_unrecognized_coded_value_becomes_a_validation_error(self) -> None:
        tables = clean_tables()
        tables["persons"][0]["gender"] = "martian"
        tables["property_units"][0]["unit_type"] = "apartment"
        package = self.coordinator.ingest(self.db, str(self.write_container("PKG-U5", tables)))
        self.coordinator.stage(self.db, package.id)

        person = find_by_original_id(self.db, "Person", package.id, "P1")
        unit = find_by_original_id(self.db, "PropertyUnit", package.id, "U1")
        self.assertEqual(person.gender, 0)
        self.assertEqual(person.mapping_issues, ["Unrecognized gender value 'martian'"])
        self.assertEqual(unit.unit_type, 1)
        self.assertEqual(unit.mapping_issues, [])

        self.coordinator.validate(self.db, package.id)

        self.assertEqual(person.validation_status, ValidationStatus.INVALID.value)


class ValidationTests(PipelineTestCase):
    def _validate(self, package_id: str, tables=None, **kwargs):
        path = self.write_container(package_id, tables, **kwargs)
        package = self.coordinator.ingest(self.db, str(path))
        self.coordinator.stage(self.db, package.id)
        summary = self.coordinator.validate(self.db, package.id)
        return package, summary

    def _status(self, package_id: int, entity_type: str, original_id: str) -> str:
        return find_by_original_id(self.db, entity_type, package_id, original_id).validation_status

    def _errors(self, package_id: int, entity_type: str, original_id: str) -> list[str]:
        return find_by_original_id(self.db, entity_type, package_id, original_id).validation_errors

    def test_clean_package_is_fully_valid_and_nothing_stays_pending(self) -> None:
        package, summary = self._validate("PKG-V1")

        self.assertEqual(summary.total, 8)
        self.assertEqual(summary.valid, 8)
        self.assertTrue(summary.is_clean)
        self.assertEqual([level.level for level in summary.levels], [1, 2, 3, 4, 5, 6, 7, 8])
        self.assertNotIn(ValidationStatus.PENDING.value, count_by_status(self.db, package.id))
        stored = self.coordinator.get_package(self.db, package.id)
        self.assertEqual(stored.valid_count, 8)
        self.assertEqual(stored.validation_summary_json["valid"], 8)

    def test_household_size_must_match_head_plus_members(self) -> None:
        tables = clean_tables()
        second = dict(tables["households"][0], id="H2", head_of_household_person_id=None, household_size=4)
        tables["households"].append(second)

        package, _ = self._validate("PKG-V2", tables)

        self.assertEqual(self._status(package.id, "Household", "H1"), ValidationStatus.VALID.value)
        self.assertEqual(self._status(package.id, "Household", "H2"), ValidationStatus.INVALID.value)
        self.assertIn(
            "household_size 4 does not match demographic breakdown (head + 4 members = 5)",
            self._errors(package.id, "Household", "H2"),
        )

    def test_dangling_reference_is_reported_with_both_ids(self) -> None:
        tables = clean_tables()
        tables["property_units"].append({"id": "U2", "building_id": "B9", "unit_identifier": "A-2"})

        package, _ = self._validate("PKG-V3", tables)

        self.assertEqual(
            self._errors(package.id, "PropertyUnit", "U2"),
            ["PropertyUnit references Building B9 which does not exist in batch"],
        )
        self.assertEqual(self._status(package.id, "PropertyUnit", "U1"), ValidationStatus.VALID.value)

    def test_ownership_without_evidence_is_blocking(self) -> None:
        tables = clean_tables()
        tables["evidences"] = []

        package, summary = self._validate("PKG-V4", tables)

        self.assertFalse(summary.is_clean)
        self.assertEqual(
            self._errors(package.id, "PersonPropertyRelation", "R1"),
            ["Owner relation requires at least one supporting evidence"],
        )
        ownership = next(level for level in summary.levels if level.name == "OwnershipEvidence")
        self.assertEqual((ownership.level, ownership.error_count), (3, 1))

    def test_staged_records_and_summary_show_what_blocks_approval(self) -> None:
        tables = clean_tables()
        tables["evidences"] = []
        package, _ = self._validate("PKG-V11", tables)

        invalid = self.coordinator.list_staged_records(self.db, package.id, status="Invalid")
        persons = self.coordinator.list_staged_records(self.db, package.id, entity_type="Person")
        everything = self.coordinator.list_staged_records(self.db, package.id)
        summary = self.coordinator.staging_summary(self.db, package.id)

        relation = next(record for record in invalid if record.entity_type == "PersonPropertyRelation")
        self.assertEqual(relation.original_entity_id, "R1")
        self.assertEqual(relation.validation_errors, ["Owner relation requires at least one supporting evidence"])
        self.assertEqual([record.original_entity_id for record in persons], ["P1"])
        self.assertEqual(len(everything), 7)
        self.assertEqual([entity.entity_type for entity in summary.entities], [m.ENTITY_TYPE for m in STAGING_MODELS])
        self.assertEqual(summary.total_records, 7)
        self.assertEqual(summary.total_invalid, len(invalid))
        self.assertEqual(summary.total_pending, 0)
        self.assertFalse(summary.is_clean)
        by_type = {entity.entity_type: entity for entity in summary.entities}
        self.assertEqual(by_type["PersonPropertyRelation"].invalid, 1)
        self.assertEqual(by_type["Evidence"].total, 0)
        with self.assertRaises(UnknownEntityTypeError):
            self.coordinator.list_staged_records(self.db, package.id, entity_type="Vehicle")
        with self.assertRaises(ValueError):
            self.coordinator.list_staged_records(self.db, package.id, status="Unknown")

    def test_coordinates_outside_region_and_bad_geometry(self) -> None:
        tables = clean_tables()
        tables["buildings"][0].update(
            {"latitude": 51.5, "longitude": -0.12, "building_geometry_wkt": "POLYGON((1 2"}
        )

        package, _ = self._validate("PKG-V5", tables)

        errors = self._errors(package.id, "Building", "B1")
        self.assertTrue(any("outside the allowed region" in error for error in errors))
        self.assertTrue(any(error.startswith("invalid building_geometry_wkt") for error in errors))

    def test_claim_lifecycle_and_code_rules(self) -> None:
        tables = clean_tables()
        tables["claims"][0]["claim_status"] = 4
        tables["buildings"][0]["building_code"] = "01020300400599999"
        tables["property_units"].append({"id": "U2", "building_id": "B1", "unit_identifier": "a-1"})

        package, _ = self._validate("PKG-V6", tables)

        self.assertIn(
            "Claim status APPROVED is not valid for an imported claim",
            self._errors(package.id, "Claim", "C1"),
        )
        self.assertIn(
            "building code '01020300400599999' does not match its administrative parts",
            self._errors(package.id, "Building", "B1"),
        )
        self.assertEqual(self._status(package.id, "PropertyUnit", "U2"), ValidationStatus.INVALID.value)
        self.assertEqual(self._status(package.id, "PropertyUnit", "U1"), ValidationStatus.INVALID.value)

    def test_missing_claim_status_and_unknown_vocabulary_code_only_warn(self) -> None:
        self.coordinator.vocabulary = VocabularyCache({"gender": {1, 2}, "claim_type": {2, 3}})
        tables = clean_tables()
        tables["claims"][0]["claim_status"] = None
        tables["claims"][0]["lifecycle_stage"] = None

        package, summary = self._validate("PKG-V7", tables)

        claim = find_by_original_id(self.db, "Claim", package.id, "C1")
        self.assertEqual(claim.validation_status, ValidationStatus.WARNING.value)
        self.assertIn("claim_status missing; claim will be committed as Draft", claim.validation_warnings)
        self.assertIn("claim_type code 1 is not in the active claim_type vocabulary", claim.validation_warnings)
        self.assertTrue(summary.is_clean)

    def test_crashing_validator_is_recorded_and_other_levels_still_run(self) -> None:
        path = self.write_container("PKG-V8")
        package = self.coordinator.ingest(self.db, str(path))
        self.coordinator.stage(self.db, package.id)
        self.coordinator.validation_pipeline = ValidationPipeline([*default_validators(), _ExplodingValidator()])

        summary = self.coordinator.validate(self.db, package.id)

        failed = summary.failed_levels
        self.assertEqual(len(failed), 1)
        self.assertEqual(failed[0].name, "Exploding")
        self.assertEqual(failed[0].error_count, FAILED_LEVEL_ERROR_COUNT)
        self.assertEqual(failed[0].failure, "validator bug")
        self.assertEqual(summary.valid, 8)

    def test_require_clean_validation_moves_package_to_validation_failed(self) -> None:
        self.coordinator.settings = self.make_settings(require_clean_validation=True)
        tables = clean_tables()
        tables["persons"][0]["first_name_arabic"] = None

        package, _ = self._validate("PKG-V9", tables)

        stored = self.coordinator.get_package(self.db, package.id)
        self.assertEqual(stored.status, ImportStatus.VALIDATION_FAILED.value)
        self.assertEqual(stored.invalid_count, 1)

    def test_invalid_records_cannot_be_approved(self) -> None:
        tables = clean_tables()
        tables["persons"][0]["family_name_arabic"] = None
        package, _ = self._validate("PKG-V10", tables)
        person = find_by_original_id(self.db, "Person", package.id, "P1")

        with self.assertRaises(InvalidStateTransitionError):
            person.approve_for_commit()
        self.assertFalse(person.is_approved_for_commit)


if __name__ == "__main__":
    unittest.main()
