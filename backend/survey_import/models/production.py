"""System-of-record tables written by the commit engine."""

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from survey_import.models.base import Base, CreatedAtMixin, IdMixin
from survey_import.models.fields import (
    BuildingFields,
    ClaimFields,
    EvidenceFields,
    HouseholdFields,
    PersonFields,
    PersonPropertyRelationFields,
    PropertyUnitFields,
    SurveyFields,
)


class ProductionRecordMixin:
    """Provenance and soft-delete columns for production rows."""

    source_package_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_packages.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    merged_into_id: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Building(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, BuildingFields):
    __tablename__ = "buildings"


class PropertyUnit(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, PropertyUnitFields):
    __tablename__ = "property_units"

    building_id: Mapped[int] = mapped_column(ForeignKey("buildings.id"), index=True, nullable=False)


class Household(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, HouseholdFields):
    __tablename__ = "households"

    property_unit_id: Mapped[int] = mapped_column(ForeignKey("property_units.id"), index=True, nullable=False)
    head_of_household_person_id: Mapped[int | None] = mapped_column(
        ForeignKey("persons.id", use_alter=True, name="fk_households_head_person"),
        nullable=True,
    )


class Person(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, PersonFields):
    __tablename__ = "persons"

    household_id: Mapped[int | None] = mapped_column(
        ForeignKey("households.id", use_alter=True, name="fk_persons_household"),
        nullable=True,
    )


class PersonPropertyRelation(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, PersonPropertyRelationFields):
    __tablename__ = "person_property_relations"

    person_id: Mapped[int] = mapped_column(ForeignKey("persons.id"), index=True, nullable=False)
    property_unit_id: Mapped[int] = mapped_column(ForeignKey("property_units.id"), index=True, nullable=False)


class StoredFile(Base, IdMixin, CreatedAtMixin):
    """Content-addressed attachment shared by every evidence with the same hash."""

    __tablename__ = "stored_files"

    sha256: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    storage_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    reference_count: Mapped[int] = mapped_column(default=1, nullable=False)


class Evidence(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, EvidenceFields):
    __tablename__ = "evidences"

    stored_file_id: Mapped[int | None] = mapped_column(ForeignKey("stored_files.id"), nullable=True)
    person_id: Mapped[int | None] = mapped_column(ForeignKey("persons.id"), nullable=True)
    person_property_relation_id: Mapped[int | None] = mapped_column(
        ForeignKey("person_property_relations.id"),
        nullable=True,
    )
    claim_id: Mapped[int | None] = mapped_column(ForeignKey("claims.id"), nullable=True)


class Claim(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, ClaimFields):
    __tablename__ = "claims"

    claim_number: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    property_unit_id: Mapped[int] = mapped_column(ForeignKey("property_units.id"), index=True, nullable=False)
    primary_claimant_id: Mapped[int | None] = mapped_column(ForeignKey("persons.id"), nullable=True)


class Survey(Base, IdMixin, CreatedAtMixin, ProductionRecordMixin, SurveyFields):
    __tablename__ = "surveys"

    building_id: Mapped[int] = mapped_column(ForeignKey("buildings.id"), index=True, nullable=False)
    property_unit_id: Mapped[int | None] = mapped_column(ForeignKey("property_units.id"), nullable=True)


PRODUCTION_MODEL_BY_TYPE: dict[str, type[Base]] = {
    "Building": Building,
    "PropertyUnit": PropertyUnit,
    "Person": Person,
    "Household": Household,
    "PersonPropertyRelation": PersonPropertyRelation,
    "Evidence": Evidence,
    "Claim": Claim,
    "Survey": Survey,
}
