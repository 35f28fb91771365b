"""Tests for duplicate detection, conflict bookkeeping and merge resolution."""

from __future__ import annotations

import unittest

from sqlalchemy import func, select

from survey_import.enums import ConfidenceLevel, ConflictAction, ImportStatus, ValidationStatus
from survey_import.errors import (
    CommitPreconditionError,
    ConflictAlreadyEscalatedError,
    ConflictAlreadyResolvedError,
    ConflictNotFoundError,
    UnknownEntityTypeError,
)
from survey_import.models.conflict import Conflict
from survey_import.models.production import Person, PropertyUnit
from survey_import.services.conflicts import count_unresolved, list_package_conflicts
from survey_import.services.merge import default_merge_registry
from survey_import.services.staging_repository import find_by_original_id

from survey_fixtures import PipelineTestCase, clean_tables


def _tables_with_twin_person() -> dict:
    tables = clean_tables()
    tables["persons"].append(
        {
            "id": "P2",
            "first_name_arabic": "سامر",
            "father_name_arabic": "خالد",
            "family_name_arabic": "الحلبي",
            "national_id": "01234567890",
            "year_of_birth": 1985,
            "gender": 1,
        }
    )
    tables["person_property_relations"].append(
        {"id": "R2", "person_id": "P2", "property_unit_id": "U1", "relation_type": 2}
    )
    return tables


class WithinBatchDetectionTests(PipelineTestCase):
    def test_identical_national_id_creates_one_high_confidence_conflict(self) -> None:
        package_id = self.run_to_review("PKG-D1", _tables_with_twin_person())

        package = self.coordinator.get_package(self.db, package_id)
        conflicts = list_package_conflicts(self.db, package_id)
        self.assertEqual(package.status, ImportStatus.REVIEWING_CONFLICTS.value)
        self.assertEqual(package.conflict_count, 1)
        self.assertFalse(package.are_conflicts_resolved)
        self.assertEqual(len(conflicts), 1)
        conflict = conflicts[0]
        self.assertEqual(conflict.conflict_type, "PersonDuplicate_WithinBatch")
        self.assertEqual(conflict.entity_type, "Person")
        self.assertEqual({conflict.first_entity_id, conflict.second_entity_id}, {"P1", "P2"})
        self.assertEqual(conflict.similarity_score, 100.0)
        self.assertEqual(conflict.confidence_level, ConfidenceLevel.HIGH.value)
        self.assertEqual(conflict.description, "National ID exact match detected (NID: 01234567890)")
        self.assertTrue(conflict.conflict_number.startswith("CNF-"))

    def test_rerunning_detection_never_duplicates_conflicts(self) -> None:
        package_id = self.run_to_review("PKG-D2", _tables_with_twin_person())

        result = self.coordinator.detect_duplicates(self.db, package_id)

        self.assertEqual(result.new_conflict_ids, [])
        self.assertEqual(result.existing_conflicts, 1)
        self.assertEqual(self.db.scalar(select(func.count()).select_from(Conflict)), 1)

    def test_merge_skips_discarded_record_and_repoints_references(self) -> None:
        package_id = self.run_to_review("PKG-D3", _tables_with_twin_person())
        conflict = list_package_conflicts(self.db, package_id)[0]

        resolved, result = self.coordinator.resolve_conflict_merge(
            self.db, conflict.id, master_entity_id="P1", resolved_by="reviewer"
        )

        self.assertEqual(resolved.resolution_action, ConflictAction.MERGED.value)
        self.assertEqual(resolved.discarded_entity_id, "P2")
        self.assertEqual(result.references_updated, 1)
        twin = find_by_original_id(self.db, "Person", package_id, "P2")
        self.assertEqual(twin.validation_status, ValidationStatus.SKIPPED.value)
        self.assertEqual(twin.merged_into_original_id, "P1")
        relation = find_by_original_id(self.db, "PersonPropertyRelation", package_id, "R2")
        self.assertEqual(relation.person_id, "P1")
        package = self.coordinator.get_package(self.db, package_id)
        self.assertEqual(package.status, ImportStatus.READY_TO_COMMIT.value)
        self.assertTrue(package.are_conflicts_resolved)

    def test_resubmitted_merge_is_idempotent_and_other_decisions_are_refused(self) -> None:
        package_id = self.run_to_review("PKG-D4", _tables_with_twin_person())
        conflict = list_package_conflicts(self.db, package_id)[0]
        self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="P1")
        resolved_at = self.db.get(Conflict, conflict.id).resolved_at

        _, again = self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="P1")

        self.assertTrue(again.already_merged)
        self.assertEqual(again.references_updated, 0)
        self.assertEqual(self.db.get(Conflict, conflict.id).resolved_at, resolved_at)
        with self.assertRaises(ConflictAlreadyResolvedError):
            self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="P2")
        with self.assertRaises(ConflictAlreadyResolvedError):
            self.coordinator.resolve_conflict_keep_separate(self.db, conflict.id)

    def test_master_must_belong_to_the_conflict(self) -> None:
        package_id = self.run_to_review("PKG-D5", _tables_with_twin_person())
        conflict = list_package_conflicts(self.db, package_id)[0]

        with self.assertRaises(ValueError):
            self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="P9")
        with self.assertRaises(ConflictNotFoundError):
            self.coordinator.resolve_conflict_keep_separate(self.db, 9999)

    def test_keep_separate_leaves_both_records_committable(self) -> None:
        package_id = self.run_to_review("PKG-D6", _tables_with_twin_person())
        conflict = list_package_conflicts(self.db, package_id)[0]

        resolved = self.coordinator.resolve_conflict_keep_separate(
            self.db, conflict.id, resolved_by="reviewer", reason="Different people sharing a typo'd id"
        )

        self.assertEqual(resolved.resolution_action, ConflictAction.KEPT_SEPARATE.value)
        for original_id in ("P1", "P2"):
            person = find_by_original_id(self.db, "Person", package_id, original_id)
            self.assertEqual(person.validation_status, ValidationStatus.VALID.value)

    def test_numeric_original_ids_never_resolve_to_production_rows(self) -> None:
        self.db.add_all(
            [
                Person(first_name_arabic="ليلى", family_name_arabic="حداد", national_id="99999999991"),
                Person(first_name_arabic="يوسف", family_name_arabic="نجار", national_id="99999999992"),
            ]
        )
        self.db.commit()
        tables = clean_tables()
        for original_id in ("1", "2"):
            tables["persons"].append(
                {
                    "id": original_id,
                    "first_name_arabic": "سامر",
                    "father_name_arabic": "خالد",
                    "family_name_arabic": "الحلبي",
                    "national_id": "05555555555",
                    "year_of_birth": 1985,
                    "gender": 1,
                }
            )
        package_id = self.run_to_review("PKG-D7", tables)
        conflict = list_package_conflicts(self.db, package_id)[0]
        self.assertEqual(conflict.conflict_type, "PersonDuplicate_WithinBatch")

        _, result = self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="1")

        self.assertIsNone(result.master_production_id)
        twin = find_by_original_id(self.db, "Person", package_id, "2")
        self.assertEqual(twin.validation_status, ValidationStatus.SKIPPED.value)
        self.assertEqual(twin.merged_into_original_id, "1")
        production = self.db.scalars(select(Person).order_by(Person.id)).all()
        self.assertEqual([person.is_deleted for person in production], [False, False])
        self.assertEqual([person.first_name_arabic for person in production], ["ليلى", "يوسف"])

    def test_unknown_entity_type_has_no_merge_strategy(self) -> None:
        self.assertEqual(default_merge_registry().entity_types, ["Person", "PropertyUnit"])
        with self.assertRaises(UnknownEntityTypeError):
            default_merge_registry().get("Household")


class ProductionDetectionTests(PipelineTestCase):
    def _commit_first_package(self) -> None:
        package_id = self.run_to_review("PKG-P0")
        self.coordinator.approve(self.db, package_id)
        self.coordinator.commit(self.db, package_id, committed_by="reviewer")

    def test_second_import_matches_production_person_and_unit(self) -> None:
        self._commit_first_package()
        person_id = self.db.scalar(select(Person.id))
        unit_id = self.db.scalar(select(PropertyUnit.id))

        package_id = self.run_to_review("PKG-P1")

        conflicts = {conflict.conflict_type: conflict for conflict in list_package_conflicts(self.db, package_id)}
        self.assertEqual(set(conflicts), {"PersonDuplicate", "PropertyDuplicate"})
        self.assertEqual(conflicts["PersonDuplicate"].first_entity_id, "P1")
        self.assertEqual(conflicts["PersonDuplicate"].second_entity_id, str(person_id))
        self.assertEqual(conflicts["PropertyDuplicate"].second_entity_id, str(unit_id))
        self.assertEqual(
            conflicts["PropertyDuplicate"].description,
            "PropertyUnit composite key exact match (BuildingCode: 01020300400500006, UnitIdentifier: a-1)",
        )

    def test_merge_into_production_fills_gaps_and_links_staging_record(self) -> None:
        self._commit_first_package()
        person_id = self.db.scalar(select(Person.id))
        tables = clean_tables()
        tables["persons"][0]["mobile_number"] = "+963 944 123 456"
        package_id = self.run_to_review("PKG-P2", tables)
        conflict = next(c for c in list_package_conflicts(self.db, package_id) if c.entity_type == "Person")

        _, result = self.coordinator.resolve_conflict_merge(
            self.db, conflict.id, master_entity_id=str(person_id)
        )

        self.assertEqual(result.master_production_id, person_id)
        self.assertEqual(self.db.get(Person, person_id).mobile_number, "+963 944 123 456")
        staged = find_by_original_id(self.db, "Person", package_id, "P1")
        self.assertTrue(staged.is_skipped)
        self.assertEqual(staged.committed_entity_id, person_id)

    def test_staged_master_overwrites_production_record(self) -> None:
        self._commit_first_package()
        person_id = self.db.scalar(select(Person.id))
        tables = clean_tables()
        tables["persons"][0]["father_name_arabic"] = "احمد"
        tables["persons"][0]["email"] = "m.khatib@example.org"
        package_id = self.run_to_review("PKG-P3", tables)
        conflict = next(c for c in list_package_conflicts(self.db, package_id) if c.entity_type == "Person")

        self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="P1")

        production = self.db.get(Person, person_id)
        self.assertEqual(production.father_name_arabic, "احمد")
        self.assertEqual(production.email, "m.khatib@example.org")
        self.assertFalse(production.is_deleted)
        staged = find_by_original_id(self.db, "Person", package_id, "P1")
        self.assertEqual(staged.committed_entity_id, person_id)


class ConflictEscalationTests(PipelineTestCase):
    def test_escalated_conflict_stays_pending_and_blocks_commit(self) -> None:
        package_id = self.run_to_review("PKG-E1", _tables_with_twin_person())
        conflict = list_package_conflicts(self.db, package_id)[0]

        escalated = self.coordinator.escalate_conflict(
            self.db, conflict.id, reason="Same NID, different names", escalated_by="reviewer"
        )

        self.assertTrue(escalated.is_escalated)
        self.assertFalse(escalated.is_resolved)
        self.assertEqual(escalated.escalation_reason, "Same NID, different names")
        self.assertEqual(escalated.escalated_by, "reviewer")
        self.assertIsNotNone(escalated.escalated_at)
        self.assertEqual(count_unresolved(self.db, package_id), 1)
        self.assertEqual(
            self.coordinator.get_package(self.db, package_id).status, ImportStatus.REVIEWING_CONFLICTS.value
        )
        with self.assertRaises(CommitPreconditionError):
            self.coordinator.commit(self.db, package_id, committed_by="reviewer")
        with self.assertRaises(ConflictAlreadyEscalatedError):
            self.coordinator.escalate_conflict(self.db, conflict.id, reason="again")

        self.coordinator.resolve_conflict_keep_separate(self.db, conflict.id, resolved_by="supervisor")

        self.assertEqual(
            self.coordinator.get_package(self.db, package_id).status, ImportStatus.READY_TO_COMMIT.value
        )
        with self.assertRaises(ConflictAlreadyResolvedError):
            self.coordinator.escalate_conflict(self.db, conflict.id, reason="too late")

    def test_conflict_summary_counts_pending_escalated_and_resolved(self) -> None:
        package_id = self.run_to_review("PKG-E2", _tables_with_twin_person())
        conflict = list_package_conflicts(self.db, package_id)[0]
        self.coordinator.escalate_conflict(self.db, conflict.id, reason="needs supervisor")

        summary = self.coordinator.conflict_summary(self.db, package_id)

        self.assertEqual((summary.total, summary.pending, summary.resolved), (1, 1, 0))
        self.assertEqual(summary.escalated_pending, 1)
        self.assertEqual(summary.by_type, {"PersonDuplicate_WithinBatch": 1})
        self.assertEqual(summary.pending_by_type, {"PersonDuplicate_WithinBatch": 1})
        self.assertEqual(summary.by_confidence, {ConfidenceLevel.HIGH.value: 1})
        self.assertEqual(summary.by_resolution, {})

        self.coordinator.resolve_conflict_merge(self.db, conflict.id, master_entity_id="P1")
        summary = self.coordinator.conflict_summary(self.db, package_id)

        self.assertEqual((summary.pending, summary.resolved, summary.escalated_pending), (0, 1, 0))
        self.assertEqual(summary.pending_by_type, {})
        self.assertEqual(summary.by_resolution, {ConflictAction.MERGED.value: 1})


if __name__ == "__main__":
    unittest.main()
