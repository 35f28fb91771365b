"""HTTP contract tests for the import review routes."""

from __future__ import annotations

import json
import unittest

from fastapi.testclient import TestClient

from survey_import.db.dependencies import get_db
from survey_import.main import app
from survey_import.services.coordinator import get_coordinator

from survey_fixtures import PipelineTestCase, clean_tables


class ImportsApiTests(PipelineTestCase):
    def setUp(self) -> None:
        super().setUp()

        def override_db():
            yield self.db

        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_coordinator] = lambda: self.coordinator
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        super().tearDown()

    def _create(self, package_id: str, tables=None) -> dict:
        path = self.write_container(package_id, tables)
        response = self.client.post("/imports", json={"container_path": str(path), "imported_by": "clerk"})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["data"]

    def test_full_review_flow_over_http(self) -> None:
        package = self._create("PKG-A1")
        self.assertEqual(package["status"], "Validating")
        package_id = package["id"]

        staged = self.client.post(f"/imports/{package_id}/stage")
        self.assertEqual(staged.json()["data"]["total_records"], 8)
        validated = self.client.post(f"/imports/{package_id}/validate")
        self.assertTrue(validated.json()["data"]["is_clean"])
        detected = self.client.post(f"/imports/{package_id}/detect")
        self.assertEqual(detected.json()["data"]["new_conflict_ids"], [])
        self.assertEqual(self.client.get(f"/imports/{package_id}").json()["data"]["status"], "ReadyToCommit")

        self.client.post(f"/imports/{package_id}/approve")
        committed = self.client.post(f"/imports/{package_id}/commit", json={"actor_id": "reviewer"})

        self.assertEqual(committed.status_code, 200, committed.text)
        report = committed.json()["data"]
        self.assertEqual(report["status"], "Completed")
        self.assertEqual(report["total_committed"], 8)
        self.assertTrue(report["is_archived"])
        reset = self.client.post(f"/imports/{package_id}/reset", json={"reason": "retry", "actor_id": "admin"})
        self.assertEqual(reset.status_code, 409)

    def test_conflicts_are_listed_and_merged(self) -> None:
        tables = clean_tables()
        tables["persons"].append(
            {
                "id": "P2",
                "first_name_arabic": "محمد",
                "father_name_arabic": "احمد",
                "family_name_arabic": "الخطيب",
                "national_id": "01234567890",
                "year_of_birth": 1980,
                "gender": 1,
            }
        )
        package_id = self.run_to_review("PKG-A2", tables)

        listed = self.client.get(f"/imports/{package_id}/conflicts", params={"unresolved_only": True})
        conflicts = listed.json()["data"]
        self.assertEqual(len(conflicts), 1)
        conflict_id = conflicts[0]["id"]

        merged = self.client.post(
            f"/conflicts/{conflict_id}/merge",
            json={"master_entity_id": "P1", "resolved_by": "reviewer"},
        )

        self.assertEqual(merged.status_code, 200, merged.text)
        body = merged.json()["data"]
        self.assertEqual(body["conflict"]["status"], "Resolved")
        self.assertEqual(body["merge"]["discarded_entity_id"], "P2")
        again = self.client.post(f"/conflicts/{conflict_id}/keep-separate", json={})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(self.client.get(f"/imports/{package_id}/conflicts").json()["data"][0]["id"], conflict_id)

    def test_review_views_and_escalation_over_http(self) -> None:
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
        package_id = self.run_to_review("PKG-A4", tables)

        staged = self.client.get(f"/imports/{package_id}/staged", params={"entity_type": "Person"})
        self.assertEqual(staged.status_code, 200, staged.text)
        self.assertEqual([row["original_entity_id"] for row in staged.json()["data"]], ["P1", "P2"])
        self.assertEqual(staged.json()["data"][0]["validation_errors"], [])
        summary = self.client.get(f"/imports/{package_id}/staging-summary").json()["data"]
        self.assertEqual(summary["total_records"], 9)
        self.assertEqual(summary["total_pending"], 0)
        bad_status = self.client.get(f"/imports/{package_id}/staged", params={"status": "Nope"})
        self.assertEqual(bad_status.status_code, 422)
        self.assertEqual(
            self.client.get(f"/imports/{package_id}/staged", params={"entity_type": "Vehicle"}).status_code, 422
        )

        conflict_id = self.client.get(f"/imports/{package_id}/conflicts").json()["data"][0]["id"]
        escalated = self.client.post(
            f"/conflicts/{conflict_id}/escalate", json={"reason": "Different names", "escalated_by": "reviewer"}
        )

        self.assertEqual(escalated.status_code, 200, escalated.text)
        body = escalated.json()["data"]
        self.assertTrue(body["is_escalated"])
        self.assertEqual(body["status"], "PendingReview")
        self.assertEqual(body["escalated_by"], "reviewer")
        again = self.client.post(f"/conflicts/{conflict_id}/escalate", json={"reason": "again"})
        self.assertEqual(again.status_code, 409)
        blank = self.client.post(f"/conflicts/{conflict_id}/escalate", json={"reason": " "})
        self.assertEqual(blank.status_code, 422)
        counts = self.client.get(f"/imports/{package_id}/conflict-summary").json()["data"]
        self.assertEqual(counts["pending"], 1)
        self.assertEqual(counts["escalated_pending"], 1)

    def test_ingest_response_carries_manifest_warnings(self) -> None:
        path = self.write_container("PKG-A5", manifest={"vocab_versions": json.dumps({"tenure_kind": "1.0.0"})})

        response = self.client.post("/imports", json={"container_path": str(path)})

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["warnings"], ["Unknown vocabulary domain 'tenure_kind' (v1.0.0)"])
        self.assertEqual(self.client.get(f"/imports/{response.json()['data']['id']}").json()["warnings"], [])

    def test_errors_map_to_status_codes(self) -> None:
        self.assertEqual(self.client.get("/imports/999").status_code, 404)
        self.assertEqual(self.client.post("/conflicts/999/keep-separate", json={}).status_code, 404)
        self.assertEqual(self.client.post("/imports", json={"container_path": "missing.uhc"}).status_code, 422)

        package = self._create("PKG-A3")
        duplicate = self.client.post("/imports", json={"container_path": "PKG-A3.uhc"})
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(self.client.post(f"/imports/{package['id']}/commit", json={}).status_code, 409)
        self.assertEqual(self.client.post(f"/imports/{package['id']}/reset", json={"reason": " "}).status_code, 422)

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
