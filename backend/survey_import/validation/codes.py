"""Level 7 (vocabulary currency) and level 8 (building/unit codes)."""

from __future__ import annotations

from collections import defaultdict

from survey_import.models.staging import STAGING_MODELS, StagingBuilding, StagingPropertyUnit
from survey_import.services.staging_repository import StagingBatch
from survey_import.services.unpacker import compose_building_code
from survey_import.validation.base import Findings, ValidationContext, Validator

BUILDING_CODE_LENGTH = 17
_CODE_PARTS = (
    "governorate_code",
    "district_code",
    "sub_district_code",
    "community_code",
    "neighborhood_code",
    "building_number",
)


class VocabularyVersionValidator(Validator):
    """Coded values must exist in the active vocabulary."""

    level = 7
    name = "VocabularyVersion"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        for model in STAGING_MODELS:
            if not model.CODED_FIELDS:
                continue
            for record in batch.records(model.ENTITY_TYPE, include_skipped=False):
                findings.checked()
                for attr, (_enum_cls, vocabulary_name) in model.CODED_FIELDS.items():
                    code = getattr(record, attr)
                    # 0 is the unmapped fallback, already reported at level 1.
                    if code is None or code == 0:
                        continue
                    if context.vocabulary.get(vocabulary_name) is None:
                        continue
                    if not context.vocabulary.is_valid_code(vocabulary_name, code):
                        findings.warning(
                            record,
                            f"{attr} code {code} is not in the active {vocabulary_name} vocabulary",
                        )


class BuildingUnitCodeValidator(Validator):
    """17-digit building codes unique in the batch; unit identifiers unique per building."""

    level = 8
    name = "BuildingUnitCode"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        buildings_by_code: dict[str, list[StagingBuilding]] = defaultdict(list)
        for building in batch.records(StagingBuilding.ENTITY_TYPE, include_skipped=False):
            findings.checked()
            code = building.building_code
            if not code:
                findings.error(building, "building code is missing")
                continue
            if len(code) != BUILDING_CODE_LENGTH or not code.isdigit():
                findings.error(building, f"building code '{code}' must be {BUILDING_CODE_LENGTH} digits")
                continue
            composed = compose_building_code(
                {name: getattr(building, name) for name in _CODE_PARTS}
            )
            if composed is not None and composed != code:
                findings.error(building, f"building code '{code}' does not match its administrative parts")
            buildings_by_code[code].append(building)

        for code, duplicates in buildings_by_code.items():
            if len(duplicates) < 2:
                continue
            for building in duplicates:
                findings.error(building, f"building code {code} is duplicated in batch")

        units_by_key: dict[tuple[str, str], list[StagingPropertyUnit]] = defaultdict(list)
        for unit in batch.records(StagingPropertyUnit.ENTITY_TYPE, include_skipped=False):
            findings.checked()
            if unit.building_id and unit.unit_identifier:
                units_by_key[(unit.building_id, unit.unit_identifier.strip().lower())].append(unit)
        for (building_id, identifier), duplicates in units_by_key.items():
            if len(duplicates) < 2:
                continue
            for unit in duplicates:
                findings.error(
                    unit,
                    f"unit identifier '{identifier}' is duplicated within building {building_id}",
                )
