"""Column sets shared by staging and production tables of the same entity."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column


class BuildingFields:
    governorate_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    district_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    sub_district_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    community_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    neighborhood_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    building_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    building_code: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    building_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    building_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    damage_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    number_of_property_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    number_of_apartments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    number_of_shops: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    building_geometry_wkt: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class PropertyUnitFields:
    unit_identifier: Mapped[str | None] = mapped_column(String(64), nullable=True)
    unit_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    unit_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    floor_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    area_square_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    number_of_rooms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class PersonFields:
    first_name_arabic: Mapped[str | None] = mapped_column(String(128), nullable=True)
    father_name_arabic: Mapped[str | None] = mapped_column(String(128), nullable=True)
    family_name_arabic: Mapped[str | None] = mapped_column(String(128), index=True, nullable=True)
    mother_name_arabic: Mapped[str | None] = mapped_column(String(128), nullable=True)
    national_id: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    year_of_birth: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gender: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mobile_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)


class HouseholdFields:
    head_of_household_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    household_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    male_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    male_child_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female_child_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    male_elderly_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female_elderly_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    male_disabled_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    female_disabled_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class PersonPropertyRelationFields:
    relation_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ownership_share: Mapped[float | None] = mapped_column(Float, nullable=True)
    contract_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class EvidenceFields:
    evidence_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_file_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    file_hash: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(128), nullable=True)


class ClaimFields:
    claim_type: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claim_source: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claim_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lifecycle_stage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tenure_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class SurveyFields:
    survey_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    surveyed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
