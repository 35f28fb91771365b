"""Level 1 (field consistency) and level 2 (intra-batch references)."""

from __future__ import annotations

import re
from datetime import datetime, timezone

from survey_import.models.staging import (
    STAGING_MODELS,
    StagingBuilding,
    StagingEvidence,
    StagingHousehold,
    StagingPerson,
    StagingPersonPropertyRelation,
    StagingPropertyUnit,
    StagingSurvey,
)
from survey_import.services.staging_repository import StagingBatch
from survey_import.validation.base import Findings, ValidationContext, Validator

ADMINISTRATIVE_CODE_WIDTHS: tuple[tuple[str, int], ...] = (
    ("governorate_code", 2),
    ("district_code", 2),
    ("sub_district_code", 2),
    ("community_code", 3),
    ("neighborhood_code", 3),
    ("building_number", 5),
)
NATIONAL_ID_LENGTH = 11
_DIGITS_RE = re.compile(r"^\d+$")

_BUILDING_COUNT_FIELDS = ("number_of_property_units", "number_of_apartments", "number_of_shops")
_HOUSEHOLD_COUNT_FIELDS = (
    "household_size",
    "male_count",
    "female_count",
    "male_child_count",
    "female_child_count",
    "male_elderly_count",
    "female_elderly_count",
    "male_disabled_count",
    "female_disabled_count",
)


def _as_utc(value: datetime) -> datetime:
    # Naive values come back from backends without timezone support.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class DataConsistencyValidator(Validator):
    """Required fields, formats, ranges and recognized coded values."""

    level = 1
    name = "DataConsistency"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        for model in STAGING_MODELS:
            for record in batch.records(model.ENTITY_TYPE, include_skipped=False):
                findings.checked()
                for issue in record.mapping_issues or []:
                    findings.error(record, issue)

        for building in batch.records(StagingBuilding.ENTITY_TYPE, include_skipped=False):
            for field_name, width in ADMINISTRATIVE_CODE_WIDTHS:
                value = getattr(building, field_name)
                if not value:
                    findings.error(building, f"{field_name} is required")
                elif not _DIGITS_RE.match(value) or len(value) != width:
                    findings.error(building, f"{field_name} must be exactly {width} digits (got '{value}')")
            for field_name in _BUILDING_COUNT_FIELDS:
                if (getattr(building, field_name) or 0) < 0:
                    findings.error(building, f"{field_name} cannot be negative")

        for unit in batch.records(StagingPropertyUnit.ENTITY_TYPE, include_skipped=False):
            if not unit.unit_identifier:
                findings.error(unit, "unit_identifier is required")
            if unit.area_square_meters is not None and unit.area_square_meters <= 0:
                findings.warning(unit, "area_square_meters should be positive")

        for person in batch.records(StagingPerson.ENTITY_TYPE, include_skipped=False):
            if not person.first_name_arabic:
                findings.error(person, "first_name_arabic is required")
            if not person.family_name_arabic:
                findings.error(person, "family_name_arabic is required")
            if person.national_id:
                if not _DIGITS_RE.match(person.national_id):
                    findings.error(person, "national_id must contain digits only")
                elif len(person.national_id) != NATIONAL_ID_LENGTH:
                    findings.warning(person, f"national_id should be {NATIONAL_ID_LENGTH} digits")
            if person.year_of_birth is not None and not 1900 <= person.year_of_birth <= context.now.year:
                findings.error(person, f"year_of_birth {person.year_of_birth} is out of range")

        for household in batch.records(StagingHousehold.ENTITY_TYPE, include_skipped=False):
            for field_name in _HOUSEHOLD_COUNT_FIELDS:
                if (getattr(household, field_name) or 0) < 0:
                    findings.error(household, f"{field_name} cannot be negative")

        for relation in batch.records(StagingPersonPropertyRelation.ENTITY_TYPE, include_skipped=False):
            if relation.relation_type is None:
                findings.error(relation, "relation_type is required")
            if relation.ownership_share is not None and not 0 <= relation.ownership_share <= 100:
                findings.error(relation, "ownership_share must be between 0 and 100")

        for evidence in batch.records(StagingEvidence.ENTITY_TYPE, include_skipped=False):
            if not evidence.original_file_name:
                findings.error(evidence, "original_file_name is required")
            if evidence.file_size_bytes is not None and evidence.file_size_bytes < 0:
                findings.error(evidence, "file_size_bytes cannot be negative")

        for survey in batch.records(StagingSurvey.ENTITY_TYPE, include_skipped=False):
            if survey.survey_date is None:
                findings.error(survey, "survey_date is required")
            elif _as_utc(survey.survey_date) > context.now:
                findings.warning(survey, "survey_date is in the future")


class CrossEntityRelationValidator(Validator):
    """Every intra-batch reference resolves to a staged record of the same package."""

    level = 2
    name = "CrossEntityRelation"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        for model in STAGING_MODELS:
            for record in batch.records(model.ENTITY_TYPE, include_skipped=False):
                findings.checked()
                for column, target_type in model.REFERENCES.items():
                    reference = getattr(record, column)
                    if not reference:
                        if column in model.REQUIRED_REFERENCES:
                            findings.error(record, f"{model.ENTITY_TYPE} is missing required reference {column}")
                        continue
                    if not batch.contains(target_type, reference):
                        findings.error(
                            record,
                            f"{model.ENTITY_TYPE} references {target_type} {reference} "
                            "which does not exist in batch",
                        )
