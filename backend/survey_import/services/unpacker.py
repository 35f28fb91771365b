"""Stage container rows into the package-scoped staging tables."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from sqlalchemy.orm import Session

from survey_import.cancellation import CancellationToken
from survey_import.container import Container
from survey_import.enums import ValidationStatus, parse_coded_value
from survey_import.errors import ContainerFormatError
from survey_import.models.staging import (
    StagingBuilding,
    StagingClaim,
    StagingEvidence,
    StagingHousehold,
    StagingPerson,
    StagingPersonPropertyRelation,
    StagingPropertyUnit,
    StagingRecordMixin,
    StagingSurvey,
)
from survey_import.services.staging_repository import delete_package_staging, load_records
from survey_import.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)

ATTACHMENT_CATEGORY = "import-attachments"
_BULK_CHUNK = 500


def is_staged_attachment(path: str | None, package_id: int) -> bool:
    """Whether ``path`` is a blob the unpacker stored for ``package_id``."""

    return bool(path) and path.startswith(f"{ATTACHMENT_CATEGORY}/{package_id}/")

Converter = Callable[[Any], Any]


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _int(value: Any) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _count(value: Any) -> int:
    parsed = _int(value)
    return 0 if parsed is None else parsed


def _float(value: Any) -> float | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class TableMapping:
    """How one container table maps onto a staging model.

    ``fields`` maps a staging attribute to its candidate source columns and
    converter; the first candidate present in the table wins.
    """

    table: str
    model: type[StagingRecordMixin]
    fields: dict[str, tuple[tuple[str, ...], Converter]]
    required_columns: tuple[str, ...] = ("id",)


def _f(converter: Converter, *columns: str) -> tuple[tuple[str, ...], Converter]:
    return columns, converter


TABLE_MAPPINGS: tuple[TableMapping, ...] = (
    TableMapping(
        table="buildings",
        model=StagingBuilding,
        fields={
            "governorate_code": _f(_text, "governorate_code"),
            "district_code": _f(_text, "district_code"),
            "sub_district_code": _f(_text, "sub_district_code"),
            "community_code": _f(_text, "community_code"),
            "neighborhood_code": _f(_text, "neighborhood_code"),
            "building_number": _f(_text, "building_number"),
            "building_code": _f(_text, "building_code", "building_id"),
            "number_of_property_units": _f(_count, "number_of_property_units"),
            "number_of_apartments": _f(_count, "number_of_apartments"),
            "number_of_shops": _f(_count, "number_of_shops"),
            "latitude": _f(_float, "latitude"),
            "longitude": _f(_float, "longitude"),
            "building_geometry_wkt": _f(_text, "building_geometry_wkt", "geometry_wkt"),
            "address": _f(_text, "address"),
            "notes": _f(_text, "notes", "general_description"),
        },
    ),
    TableMapping(
        table="property_units",
        model=StagingPropertyUnit,
        fields={
            "building_id": _f(_text, "building_id"),
            "unit_identifier": _f(_text, "unit_identifier"),
            "floor_number": _f(_int, "floor_number"),
            "area_square_meters": _f(_float, "area_square_meters"),
            "number_of_rooms": _f(_int, "number_of_rooms"),
            "description": _f(_text, "description"),
        },
        required_columns=("id", "building_id"),
    ),
    TableMapping(
        table="persons",
        model=StagingPerson,
        fields={
            "first_name_arabic": _f(_text, "first_name_arabic"),
            "father_name_arabic": _f(_text, "father_name_arabic"),
            "family_name_arabic": _f(_text, "family_name_arabic"),
            "mother_name_arabic": _f(_text, "mother_name_arabic"),
            "national_id": _f(_text, "national_id"),
            "year_of_birth": _f(_int, "year_of_birth"),
            "mobile_number": _f(_text, "mobile_number"),
            "email": _f(_text, "email"),
            "household_id": _f(_text, "household_id"),
        },
    ),
    TableMapping(
        table="households",
        model=StagingHousehold,
        fields={
            "property_unit_id": _f(_text, "property_unit_id"),
            "head_of_household_name": _f(_text, "head_of_household_name"),
            "head_of_household_person_id": _f(_text, "head_of_household_person_id"),
            "household_size": _f(_count, "household_size"),
            "male_count": _f(_count, "male_count"),
            "female_count": _f(_count, "female_count"),
            "male_child_count": _f(_count, "male_child_count"),
            "female_child_count": _f(_count, "female_child_count"),
            "male_elderly_count": _f(_count, "male_elderly_count"),
            "female_elderly_count": _f(_count, "female_elderly_count"),
            "male_disabled_count": _f(_count, "male_disabled_count"),
            "female_disabled_count": _f(_count, "female_disabled_count"),
        },
        required_columns=("id", "property_unit_id"),
    ),
    TableMapping(
        table="person_property_relations",
        model=StagingPersonPropertyRelation,
        fields={
            "person_id": _f(_text, "person_id"),
            "property_unit_id": _f(_text, "property_unit_id"),
            "ownership_share": _f(_float, "ownership_share"),
            "contract_details": _f(_text, "contract_details"),
            "start_date": _f(_datetime, "start_date"),
        },
        required_columns=("id", "person_id", "property_unit_id"),
    ),
    TableMapping(
        table="claims",
        model=StagingClaim,
        fields={
            "property_unit_id": _f(_text, "property_unit_id"),
            "primary_claimant_id": _f(_text, "primary_claimant_id"),
            "tenure_description": _f(_text, "tenure_description"),
            "notes": _f(_text, "notes"),
        },
        required_columns=("id", "property_unit_id"),
    ),
    TableMapping(
        table="surveys",
        model=StagingSurvey,
        fields={
            "building_id": _f(_text, "building_id"),
            "property_unit_id": _f(_text, "property_unit_id"),
            "survey_date": _f(_datetime, "survey_date"),
            "surveyed_by": _f(_text, "surveyed_by", "field_collector_id"),
            "notes": _f(_text, "notes"),
        },
        required_columns=("id", "building_id"),
    ),
    TableMapping(
        table="evidences",
        model=StagingEvidence,
        fields={
            "description": _f(_text, "description"),
            "original_file_name": _f(_text, "original_file_name"),
            "file_path": _f(_text, "file_path"),
            "file_size_bytes": _f(_int, "file_size_bytes"),
            "file_hash": _f(_text, "file_hash"),
            "mime_type": _f(_text, "mime_type"),
            "person_id": _f(_text, "person_id"),
            "person_property_relation_id": _f(_text, "person_property_relation_id"),
            "claim_id": _f(_text, "claim_id"),
        },
    ),
)

# Coded columns sometimes arrive under a shorter source name.
_CODED_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "unit_status": ("unit_status", "status"),
    "claim_status": ("claim_status", "status"),
}


@dataclass(slots=True)
class UnpackResult:
    """Per-type staged counts and attachment totals for one package."""

    package_id: int
    record_counts: dict[str, int] = field(default_factory=dict)
    attachment_count: int = 0
    attachment_bytes: int = 0
    duration_ms: float = 0.0
    # Blobs written by this run, and blobs of the staging rows it replaced.
    saved_files: list[str] = field(default_factory=list)
    replaced_files: list[str] = field(default_factory=list)

    @property
    def total_records(self) -> int:
        return sum(self.record_counts.values())


class PackageUnpacker:
    """Maps container rows into staging records; never touches production tables."""

    def __init__(self, file_storage: FileStorage) -> None:
        self.file_storage = file_storage

    def unpack(
        self,
        db: Session,
        package_id: int,
        container_path: str,
        *,
        cancellation: CancellationToken | None = None,
    ) -> UnpackResult:
        """Stage every known table of the container for ``package_id``."""

        cancellation = cancellation or CancellationToken()
        started = perf_counter()
        result = UnpackResult(package_id=package_id)
        result.replaced_files = [
            record.file_path
            for record in load_records(db, StagingEvidence.ENTITY_TYPE, package_id)
            if is_staged_attachment(record.file_path, package_id)
        ]
        removed = delete_package_staging(db, package_id)
        if any(removed.values()):
            logger.info("import.staging_reset package_id=%s removed=%s", package_id, removed)

        try:
            with Container(container_path) as container:
                for mapping in TABLE_MAPPINGS:
                    cancellation.raise_if_cancelled("unpack")
                    count = self._stage_table(db, container, mapping, package_id, result, cancellation)
                    result.record_counts[mapping.model.ENTITY_TYPE] = count
            db.flush()
        except Exception:
            # Staging rows roll back with the session; the blobs have to go by hand.
            self.discard_files(result.saved_files)
            raise

        result.duration_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "import.unpack_timing package_id=%s records=%d attachments=%d attachment_bytes=%d total_ms=%.2f",
            package_id,
            result.total_records,
            result.attachment_count,
            result.attachment_bytes,
            result.duration_ms,
        )
        return result

    def discard_files(self, paths: list[str]) -> None:
        for path in paths:
            try:
                self.file_storage.delete(path)
            except OSError:
                logger.warning("import.attachment_delete_failed path=%s", path, exc_info=True)

    def _stage_table(
        self,
        db: Session,
        container: Container,
        mapping: TableMapping,
        package_id: int,
        result: UnpackResult,
        cancellation: CancellationToken,
    ) -> int:
        if not container.has_table(mapping.table):
            logger.debug("import.table_missing package_id=%s table=%s", package_id, mapping.table)
            return 0

        columns = set(container.columns(mapping.table))
        missing = [column for column in mapping.required_columns if column not in columns]
        if missing:
            raise ContainerFormatError(
                f"Table {mapping.table} is missing required column(s): {', '.join(missing)}"
            )

        pending: list[StagingRecordMixin] = []
        seen_ids: set[str] = set()
        count = 0
        for row in container.iter_rows(mapping.table):
            cancellation.raise_if_cancelled("unpack")
            record = self._build_record(mapping, row, columns, package_id)
            if record.original_entity_id in seen_ids:
                raise ContainerFormatError(
                    f"Table {mapping.table} contains duplicate id {record.original_entity_id}"
                )
            seen_ids.add(record.original_entity_id)
            if isinstance(record, StagingEvidence):
                self._attach_blob(container, record, package_id, result)
            pending.append(record)
            count += 1
            if len(pending) >= _BULK_CHUNK:
                db.add_all(pending)
                db.flush()
                pending = []
        if pending:
            db.add_all(pending)
            db.flush()
        return count

    def _build_record(
        self,
        mapping: TableMapping,
        row: dict[str, Any],
        columns: set[str],
        package_id: int,
    ) -> StagingRecordMixin:
        original_id = _text(row.get("id"))
        if original_id is None:
            raise ContainerFormatError(f"Table {mapping.table} has a row without id")

        values: dict[str, Any] = {}
        for attr, (candidates, converter) in mapping.fields.items():
            source = next((column for column in candidates if column in columns), None)
            converted = converter(row.get(source)) if source is not None else None
            values[attr] = 0 if converted is None and converter is _count else converted

        issues: list[str] = []
        for attr, (enum_cls, _vocabulary) in mapping.model.CODED_FIELDS.items():
            source = next(
                (column for column in _CODED_COLUMN_ALIASES.get(attr, (attr,)) if column in columns),
                None,
            )
            if source is None:
                values[attr] = None
                continue
            raw = row.get(source)
            member, recognized = parse_coded_value(enum_cls, raw)
            values[attr] = None if member is None else int(member)
            if not recognized:
                issues.append(f"Unrecognized {attr} value '{raw}'")

        if mapping.model is StagingBuilding and not values.get("building_code"):
            values["building_code"] = compose_building_code(values)

        record = mapping.model(
            import_package_id=package_id,
            original_entity_id=original_id,
            validation_status=ValidationStatus.PENDING.value,
            validation_errors=[],
            validation_warnings=[],
            mapping_issues=issues,
            is_approved_for_commit=False,
            **values,
        )
        return record

    def _attach_blob(
        self,
        container: Container,
        record: StagingEvidence,
        package_id: int,
        result: UnpackResult,
    ) -> None:
        data = container.attachment_for(record.original_entity_id)
        if data is None:
            return
        file_name = record.original_file_name or f"{record.original_entity_id}.bin"
        record.file_path = self.file_storage.save(data, file_name, ATTACHMENT_CATEGORY, str(package_id))
        result.saved_files.append(record.file_path)
        record.file_size_bytes = len(data)
        record.file_hash = self.file_storage.compute_hash(data)
        if not record.mime_type:
            record.mime_type = self.file_storage.guess_mime_type(file_name)
        result.attachment_count += 1
        result.attachment_bytes += len(data)


def compose_building_code(values: dict[str, Any]) -> str | None:
    """Join the administrative code parts when all of them are present."""

    parts = [
        values.get("governorate_code"),
        values.get("district_code"),
        values.get("sub_district_code"),
        values.get("community_code"),
        values.get("neighborhood_code"),
        values.get("building_number"),
    ]
    if any(part is None for part in parts):
        return None
    return "".join(str(part) for part in parts)
