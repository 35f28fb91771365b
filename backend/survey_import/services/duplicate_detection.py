"""Detect Person and PropertyUnit duplicates for a validated package."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from itertools import combinations
from time import perf_counter

from sqlalchemy import select
from sqlalchemy.orm import Session

from survey_import.cancellation import CancellationToken
from survey_import.enums import COMMITTABLE_STATUSES, ConfidenceLevel
from survey_import.matching.person import PersonMatch, PersonMatcher, describe_person
from survey_import.matching.property import PropertyKey, property_key
from survey_import.models.production import Building, Person, PropertyUnit
from survey_import.models.staging import StagingBuilding, StagingPerson, StagingPropertyUnit
from survey_import.services.conflicts import create_conflict, find_by_entity_pair
from survey_import.services.staging_repository import load_records

logger = logging.getLogger(__name__)

PERSON_ENTITY = "Person"
PROPERTY_ENTITY = "PropertyUnit"
_PRODUCTION_SCAN_CHUNK = 500


@dataclass(slots=True)
class DetectionResult:
    """Counts scanned/found per entity type and the conflicts created."""

    package_id: int
    persons_scanned: int = 0
    property_units_scanned: int = 0
    person_duplicates_found: int = 0
    property_duplicates_found: int = 0
    existing_conflicts: int = 0
    new_conflict_ids: list[int] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def duplicates_found(self) -> int:
        return self.person_duplicates_found + self.property_duplicates_found


class DuplicateDetectionService:
    """Runs both matchers over Valid/Warning staging records."""

    def __init__(self, person_matcher: PersonMatcher | None = None) -> None:
        self.person_matcher = person_matcher or PersonMatcher()

    def detect(
        self,
        db: Session,
        package_id: int,
        *,
        cancellation: CancellationToken | None = None,
    ) -> DetectionResult:
        cancellation = cancellation or CancellationToken()
        started = perf_counter()
        result = DetectionResult(package_id=package_id)
        self._detect_persons(db, package_id, result, cancellation)
        self._detect_property_units(db, package_id, result, cancellation)
        db.flush()
        result.duration_ms = (perf_counter() - started) * 1000.0
        logger.info(
            (
                "import.duplicate_detection_timing package_id=%s persons=%d units=%d "
                "person_duplicates=%d property_duplicates=%d new_conflicts=%d total_ms=%.2f"
            ),
            package_id,
            result.persons_scanned,
            result.property_units_scanned,
            result.person_duplicates_found,
            result.property_duplicates_found,
            len(result.new_conflict_ids),
            result.duration_ms,
        )
        return result

    def _detect_persons(
        self,
        db: Session,
        package_id: int,
        result: DetectionResult,
        cancellation: CancellationToken,
    ) -> None:
        staged: list[StagingPerson] = load_records(db, PERSON_ENTITY, package_id, statuses=COMMITTABLE_STATUSES)
        result.persons_scanned = len(staged)
        if not staged:
            return

        for left, right in combinations(staged, 2):
            cancellation.raise_if_cancelled("duplicate detection")
            match = self.person_matcher.match(left, right)
            if match is None:
                continue
            result.person_duplicates_found += 1
            self._register(
                db,
                result,
                conflict_type="PersonDuplicate_WithinBatch",
                entity_type=PERSON_ENTITY,
                first=(left.original_entity_id, describe_person(left)),
                second=(right.original_entity_id, describe_person(right)),
                score=match.score,
                confidence=match.confidence,
                description=_person_description(match),
                criteria={**match.criteria, "scope": "within_batch"},
            )

        already_committed = {person.committed_entity_id for person in staged if person.committed_entity_id}
        production = db.scalars(
            select(Person)
            .where(Person.is_deleted.is_(False))
            .order_by(Person.id.asc())
            .execution_options(yield_per=_PRODUCTION_SCAN_CHUNK)
        )
        matches: list[tuple[StagingPerson, Person, PersonMatch]] = []
        for index, existing in enumerate(production):
            if index % _PRODUCTION_SCAN_CHUNK == 0:
                cancellation.raise_if_cancelled("duplicate detection")
            if existing.id in already_committed:
                continue
            for person in staged:
                if not self.person_matcher.is_candidate(person, existing):
                    continue
                match = self.person_matcher.match(person, existing)
                if match is not None:
                    matches.append((person, existing, match))

        for person, existing, match in matches:
            result.person_duplicates_found += 1
            self._register(
                db,
                result,
                conflict_type="PersonDuplicate",
                entity_type=PERSON_ENTITY,
                first=(person.original_entity_id, describe_person(person)),
                second=(str(existing.id), describe_person(existing)),
                score=match.score,
                confidence=match.confidence,
                description=_person_description(match),
                criteria={**match.criteria, "scope": "production"},
            )

    def _detect_property_units(
        self,
        db: Session,
        package_id: int,
        result: DetectionResult,
        cancellation: CancellationToken,
    ) -> None:
        units: list[StagingPropertyUnit] = load_records(
            db, PROPERTY_ENTITY, package_id, statuses=COMMITTABLE_STATUSES
        )
        result.property_units_scanned = len(units)
        if not units:
            return

        building_codes = {
            building.original_entity_id: building.building_code
            for building in load_records(db, StagingBuilding.ENTITY_TYPE, package_id)
        }
        keyed: dict[PropertyKey, list[StagingPropertyUnit]] = defaultdict(list)
        for unit in units:
            key = property_key(building_codes.get(unit.building_id or ""), unit.unit_identifier)
            if key is not None:
                keyed[key].append(unit)

        for key, group in keyed.items():
            for left, right in combinations(group, 2):
                cancellation.raise_if_cancelled("duplicate detection")
                result.property_duplicates_found += 1
                self._register(
                    db,
                    result,
                    conflict_type="PropertyDuplicate_WithinBatch",
                    entity_type=PROPERTY_ENTITY,
                    first=(left.original_entity_id, _unit_identifier(key)),
                    second=(right.original_entity_id, _unit_identifier(key)),
                    score=100.0,
                    confidence=ConfidenceLevel.HIGH,
                    description=_property_description(key),
                    criteria=_property_criteria(key, "within_batch"),
                )

        committed_ids = {unit.committed_entity_id for unit in units if unit.committed_entity_id}
        codes = sorted({key.building_code for key in keyed})
        if not codes:
            return
        cancellation.raise_if_cancelled("duplicate detection")
        rows = db.execute(
            select(PropertyUnit, Building.building_code)
            .join(Building, PropertyUnit.building_id == Building.id)
            .where(
                Building.building_code.in_(codes),
                Building.is_deleted.is_(False),
                PropertyUnit.is_deleted.is_(False),
            )
            .order_by(PropertyUnit.id.asc())
        ).all()
        for existing, building_code in rows:
            if existing.id in committed_ids:
                continue
            key = property_key(building_code, existing.unit_identifier)
            if key is None:
                continue
            for unit in keyed.get(key, []):
                result.property_duplicates_found += 1
                self._register(
                    db,
                    result,
                    conflict_type="PropertyDuplicate",
                    entity_type=PROPERTY_ENTITY,
                    first=(unit.original_entity_id, _unit_identifier(key)),
                    second=(str(existing.id), _unit_identifier(key)),
                    score=100.0,
                    confidence=ConfidenceLevel.HIGH,
                    description=_property_description(key),
                    criteria=_property_criteria(key, "production"),
                )

    def _register(
        self,
        db: Session,
        result: DetectionResult,
        *,
        conflict_type: str,
        entity_type: str,
        first: tuple[str, str],
        second: tuple[str, str],
        score: float,
        confidence: ConfidenceLevel,
        description: str,
        criteria: dict[str, object],
    ) -> None:
        existing = find_by_entity_pair(
            db,
            entity_type,
            first[0],
            second[0],
            import_package_id=result.package_id,
        )
        if existing is not None:
            result.existing_conflicts += 1
            return
        conflict = create_conflict(
            db,
            conflict_type=conflict_type,
            entity_type=entity_type,
            first_entity_id=first[0],
            second_entity_id=second[0],
            first_identifier=first[1],
            second_identifier=second[1],
            score=score,
            confidence=confidence,
            description=description,
            criteria=criteria,
            import_package_id=result.package_id,
        )
        result.new_conflict_ids.append(conflict.id)


def _person_description(match: PersonMatch) -> str:
    if match.is_national_id_match:
        return f"National ID exact match detected (NID: {match.criteria['national_id']})"
    return f"Composite similarity score {match.score:.0f}% ({match.confidence.value} confidence)"


def _property_description(key: PropertyKey) -> str:
    return (
        "PropertyUnit composite key exact match "
        f"(BuildingCode: {key.building_code}, UnitIdentifier: {key.unit_identifier})"
    )


def _property_criteria(key: PropertyKey, scope: str) -> dict[str, object]:
    return {
        "method": "composite_key_exact",
        "building_code": key.building_code,
        "unit_identifier": key.unit_identifier,
        "scope": scope,
    }


def _unit_identifier(key: PropertyKey) -> str:
    return f"{key.building_code}/{key.unit_identifier}"
