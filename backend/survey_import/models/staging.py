"""Package-scoped staging tables mirroring the eight production entities."""

from datetime import datetime
from typing import ClassVar

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from survey_import.enums import (
    BuildingStatus,
    BuildingType,
    CasePriority,
    ClaimSource,
    ClaimStatus,
    ClaimType,
    DamageLevel,
    EvidenceType,
    Gender,
    LifecycleStage,
    PropertyUnitStatus,
    PropertyUnitType,
    RelationType,
    ValidationStatus,
)
from survey_import.errors import InvalidStateTransitionError
from survey_import.models.base import Base, IdMixin
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


class StagingRecordMixin:
    """Validation and commit lifecycle shared by every staging table.

    ``REFERENCES`` maps a column holding another record's
    ``original_entity_id`` to that record's entity type. ``CODED_FIELDS``
    maps a column to its closed enum and vocabulary name.
    """

    ENTITY_TYPE: ClassVar[str]
    REFERENCES: ClassVar[dict[str, str]] = {}
    REQUIRED_REFERENCES: ClassVar[frozenset[str]] = frozenset()
    CODED_FIELDS: ClassVar[dict[str, tuple[type, str]]] = {}

    import_package_id: Mapped[int] = mapped_column(
        ForeignKey("import_packages.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    original_entity_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    validation_status: Mapped[str] = mapped_column(
        String(16), default=ValidationStatus.PENDING.value, index=True, nullable=False
    )
    validation_errors: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    validation_warnings: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    mapping_issues: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    is_approved_for_commit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    committed_entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    merged_into_original_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    skip_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    staged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    @property
    def entity_type(self) -> str:
        return self.ENTITY_TYPE

    @property
    def status(self) -> ValidationStatus:
        return ValidationStatus(self.validation_status or ValidationStatus.PENDING.value)

    @property
    def is_skipped(self) -> bool:
        return self.status is ValidationStatus.SKIPPED

    @property
    def is_committable(self) -> bool:
        return self.status in (ValidationStatus.VALID, ValidationStatus.WARNING)

    def add_error(self, message: str) -> None:
        self.validation_errors = [*(self.validation_errors or []), message]

    def add_warning(self, message: str) -> None:
        self.validation_warnings = [*(self.validation_warnings or []), message]

    def finalize_validation(self) -> ValidationStatus:
        """Settle the terminal validation state from accumulated findings."""

        if self.is_skipped:
            return self.status
        if self.validation_errors:
            self.validation_status = ValidationStatus.INVALID.value
            self.is_approved_for_commit = False
        elif self.status is ValidationStatus.INVALID:
            pass
        elif self.validation_warnings:
            self.validation_status = ValidationStatus.WARNING.value
        else:
            self.validation_status = ValidationStatus.VALID.value
        return self.status

    def mark_skipped(self, reason: str) -> None:
        self.validation_status = ValidationStatus.SKIPPED.value
        self.skip_reason = reason
        self.is_approved_for_commit = False

    def approve_for_commit(self) -> None:
        if not self.is_committable:
            raise InvalidStateTransitionError(
                f"{self.ENTITY_TYPE} {self.original_entity_id} is {self.validation_status} "
                "and cannot be approved for commit"
            )
        self.is_approved_for_commit = True

    def set_committed_entity_id(self, entity_id: int) -> None:
        self.committed_entity_id = entity_id

    def reset_validation(self) -> None:
        """Return the record to Pending, keeping merge skips intact."""

        if self.is_skipped:
            return
        self.validation_status = ValidationStatus.PENDING.value
        self.validation_errors = []
        self.validation_warnings = []
        self.is_approved_for_commit = False


def _staging_key(table_name: str) -> tuple[UniqueConstraint]:
    return (
        UniqueConstraint(
            "import_package_id",
            "original_entity_id",
            name=f"uq_{table_name}_package_original",
        ),
    )


class StagingBuilding(Base, IdMixin, StagingRecordMixin, BuildingFields):
    __tablename__ = "staging_buildings"
    __table_args__ = _staging_key("staging_buildings")

    ENTITY_TYPE = "Building"
    CODED_FIELDS = {
        "building_type": (BuildingType, "building_type"),
        "building_status": (BuildingStatus, "building_status"),
        "damage_level": (DamageLevel, "damage_level"),
    }


class StagingPropertyUnit(Base, IdMixin, StagingRecordMixin, PropertyUnitFields):
    __tablename__ = "staging_property_units"
    __table_args__ = _staging_key("staging_property_units")

    ENTITY_TYPE = "PropertyUnit"
    REFERENCES = {"building_id": "Building"}
    REQUIRED_REFERENCES = frozenset({"building_id"})
    CODED_FIELDS = {
        "unit_type": (PropertyUnitType, "property_unit_type"),
        "unit_status": (PropertyUnitStatus, "property_unit_status"),
    }

    building_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)


class StagingPerson(Base, IdMixin, StagingRecordMixin, PersonFields):
    __tablename__ = "staging_persons"
    __table_args__ = _staging_key("staging_persons")

    ENTITY_TYPE = "Person"
    REFERENCES = {"household_id": "Household"}
    CODED_FIELDS = {"gender": (Gender, "gender")}

    household_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class StagingHousehold(Base, IdMixin, StagingRecordMixin, HouseholdFields):
    __tablename__ = "staging_households"
    __table_args__ = _staging_key("staging_households")

    ENTITY_TYPE = "Household"
    REFERENCES = {"property_unit_id": "PropertyUnit", "head_of_household_person_id": "Person"}
    REQUIRED_REFERENCES = frozenset({"property_unit_id"})

    property_unit_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    head_of_household_person_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class StagingPersonPropertyRelation(Base, IdMixin, StagingRecordMixin, PersonPropertyRelationFields):
    __tablename__ = "staging_person_property_relations"
    __table_args__ = _staging_key("staging_person_property_relations")

    ENTITY_TYPE = "PersonPropertyRelation"
    REFERENCES = {"person_id": "Person", "property_unit_id": "PropertyUnit"}
    REQUIRED_REFERENCES = frozenset({"person_id", "property_unit_id"})
    CODED_FIELDS = {"relation_type": (RelationType, "relation_type")}

    person_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    property_unit_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)


class StagingEvidence(Base, IdMixin, StagingRecordMixin, EvidenceFields):
    __tablename__ = "staging_evidences"
    __table_args__ = _staging_key("staging_evidences")

    ENTITY_TYPE = "Evidence"
    REFERENCES = {
        "person_id": "Person",
        "person_property_relation_id": "PersonPropertyRelation",
        "claim_id": "Claim",
    }
    CODED_FIELDS = {"evidence_type": (EvidenceType, "evidence_type")}

    person_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    person_property_relation_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    claim_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class StagingClaim(Base, IdMixin, StagingRecordMixin, ClaimFields):
    __tablename__ = "staging_claims"
    __table_args__ = _staging_key("staging_claims")

    ENTITY_TYPE = "Claim"
    REFERENCES = {"property_unit_id": "PropertyUnit", "primary_claimant_id": "Person"}
    REQUIRED_REFERENCES = frozenset({"property_unit_id"})
    CODED_FIELDS = {
        "claim_type": (ClaimType, "claim_type"),
        "claim_source": (ClaimSource, "claim_source"),
        "claim_status": (ClaimStatus, "claim_status"),
        "lifecycle_stage": (LifecycleStage, "lifecycle_stage"),
        "priority": (CasePriority, "case_priority"),
    }

    property_unit_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    primary_claimant_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


class StagingSurvey(Base, IdMixin, StagingRecordMixin, SurveyFields):
    __tablename__ = "staging_surveys"
    __table_args__ = _staging_key("staging_surveys")

    ENTITY_TYPE = "Survey"
    REFERENCES = {"building_id": "Building", "property_unit_id": "PropertyUnit"}
    REQUIRED_REFERENCES = frozenset({"building_id"})

    building_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    property_unit_id: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Commit dependency order; cleanup runs it in reverse.
STAGING_MODELS: tuple[type[StagingRecordMixin], ...] = (
    StagingBuilding,
    StagingPropertyUnit,
    StagingPerson,
    StagingHousehold,
    StagingPersonPropertyRelation,
    StagingEvidence,
    StagingClaim,
    StagingSurvey,
)

STAGING_MODEL_BY_TYPE: dict[str, type[StagingRecordMixin]] = {
    model.ENTITY_TYPE: model for model in STAGING_MODELS
}
