"""Merge strategies for duplicate Person and PropertyUnit records.

The conflict scope says which ids name production rows; the rest resolve
against the staging records of the owning package. A discarded staging record is skipped and
linked to its master; a discarded production record is folded into the
master, its dependents re-pointed and the row soft-deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from survey_import.errors import MergeTargetNotFoundError, UnknownEntityTypeError
from survey_import.models.production import (
    Claim,
    Evidence,
    Household,
    Person,
    PersonPropertyRelation,
    PropertyUnit,
    Survey,
)
from survey_import.models.staging import (
    STAGING_MODELS,
    StagingPerson,
    StagingPropertyUnit,
    StagingRecordMixin,
)
from survey_import.services.field_copy import gap_fill, overwrite, shared_data_columns
from survey_import.services.staging_repository import find_by_original_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResolvedEntity:
    entity_id: str
    production: Any | None = None
    staging: StagingRecordMixin | None = None

    @property
    def is_production(self) -> bool:
        return self.production is not None


@dataclass(slots=True)
class MergeResult:
    """What one merge changed."""

    entity_type: str
    master_entity_id: str
    discarded_entity_id: str
    already_merged: bool = False
    master_production_id: int | None = None
    updated_records: list[str] = field(default_factory=list)
    references_updated: int = 0
    references_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def merge_mapping(self) -> dict[str, object]:
        return {
            "entity_type": self.entity_type,
            "master_entity_id": self.master_entity_id,
            "discarded_entity_id": self.discarded_entity_id,
            "master_production_id": self.master_production_id,
            "updated_records": list(self.updated_records),
            "references_updated": self.references_updated,
            "references_by_type": dict(self.references_by_type),
        }


class MergeStrategy:
    """Entity-agnostic merge; subclasses name the models and production dependents."""

    entity_type: str
    production_model: type
    staging_model: type[StagingRecordMixin]
    # (model, column) pairs holding a production foreign key to this entity.
    production_dependents: tuple[tuple[type, str], ...] = ()

    def merge(
        self,
        db: Session,
        master_id: str,
        discarded_id: str,
        package_id: int | None,
        *,
        production_ids: frozenset[str] = frozenset(),
    ) -> MergeResult:
        """Merge ``discarded_id`` into ``master_id``.

        Ids listed in ``production_ids`` name production rows; every other id is
        an original id staged in ``package_id``.
        """

        if master_id == discarded_id:
            raise ValueError("master and discarded entity must differ")
        master = self._resolve(db, master_id, package_id, master_id in production_ids)
        discarded = self._resolve(db, discarded_id, package_id, discarded_id in production_ids)
        result = MergeResult(
            entity_type=self.entity_type,
            master_entity_id=master_id,
            discarded_entity_id=discarded_id,
        )

        if discarded.staging is not None:
            self._merge_staging_discarded(db, master, discarded, result, package_id)
        elif master.is_production:
            self._merge_production_pair(db, master, discarded, result)
        else:
            self._merge_staging_into_production(master, discarded, result)
        db.flush()

        logger.info(
            "import.merge entity_type=%s master=%s discarded=%s already_merged=%s references_updated=%d",
            self.entity_type,
            master_id,
            discarded_id,
            result.already_merged,
            result.references_updated,
        )
        return result

    def _resolve(self, db: Session, entity_id: str, package_id: int | None, in_production: bool) -> ResolvedEntity:
        resolved = ResolvedEntity(entity_id=entity_id)
        if in_production:
            if entity_id.isdigit():
                resolved.production = db.get(self.production_model, int(entity_id))
            if resolved.production is None:
                raise MergeTargetNotFoundError(f"{self.entity_type} {entity_id} not found in production")
            return resolved
        if package_id is not None:
            resolved.staging = find_by_original_id(db, self.entity_type, package_id, entity_id)
        if resolved.staging is None:
            raise MergeTargetNotFoundError(f"{self.entity_type} {entity_id} not found in staging")
        return resolved

    def _merge_staging_discarded(
        self,
        db: Session,
        master: ResolvedEntity,
        discarded: ResolvedEntity,
        result: MergeResult,
        package_id: int | None,
    ) -> None:
        record = discarded.staging
        assert record is not None
        if master.is_production:
            production = master.production
            result.master_production_id = production.id
            if record.is_skipped and record.committed_entity_id == production.id:
                result.already_merged = True
                return
            filled = gap_fill(production, record, self._columns)
            if filled:
                result.updated_records.append(f"{self.entity_type}:{production.id}")
            record.mark_skipped(f"Merged into existing production record {production.id}")
            record.set_committed_entity_id(production.id)
            record.merged_into_original_id = None
        else:
            target = master.staging
            assert target is not None
            if record.is_skipped and record.merged_into_original_id == target.original_entity_id:
                result.already_merged = True
                return
            record.mark_skipped(f"Merged into staged record {target.original_entity_id}")
            record.merged_into_original_id = target.original_entity_id
            if target.committed_entity_id is not None:
                record.set_committed_entity_id(target.committed_entity_id)
                result.master_production_id = target.committed_entity_id
            self._repoint_staging(db, package_id, record.original_entity_id, target.original_entity_id, result)
        result.updated_records.append(f"staging:{self.entity_type}:{record.original_entity_id}")

    def _merge_production_pair(
        self,
        db: Session,
        master: ResolvedEntity,
        discarded: ResolvedEntity,
        result: MergeResult,
    ) -> None:
        keep, drop = master.production, discarded.production
        result.master_production_id = keep.id
        if drop.is_deleted and drop.merged_into_id == keep.id:
            result.already_merged = True
            return
        gap_fill(keep, drop, self._columns)
        for model, column in self.production_dependents:
            attribute = getattr(model, column)
            updated = db.execute(
                update(model).where(attribute == drop.id).values({column: keep.id})
            ).rowcount or 0
            if updated:
                result.references_by_type[model.__name__] = result.references_by_type.get(model.__name__, 0) + updated
                result.references_updated += updated
        drop.is_deleted = True
        drop.merged_into_id = keep.id
        result.updated_records.extend([f"{self.entity_type}:{keep.id}", f"{self.entity_type}:{drop.id}"])

    def _merge_staging_into_production(
        self,
        master: ResolvedEntity,
        discarded: ResolvedEntity,
        result: MergeResult,
    ) -> None:
        # The staged master's data wins but the production row keeps its identity.
        record, production = master.staging, discarded.production
        assert record is not None
        result.master_production_id = production.id
        if record.is_skipped and record.committed_entity_id == production.id:
            result.already_merged = True
            return
        overwrite(production, record, self._columns)
        record.mark_skipped(f"Applied to existing production record {production.id}")
        record.set_committed_entity_id(production.id)
        result.updated_records.extend(
            [f"{self.entity_type}:{production.id}", f"staging:{self.entity_type}:{record.original_entity_id}"]
        )

    def _repoint_staging(
        self,
        db: Session,
        package_id: int | None,
        old_id: str,
        new_id: str,
        result: MergeResult,
    ) -> None:
        if package_id is None:
            return
        for model in STAGING_MODELS:
            for column, target_type in model.REFERENCES.items():
                if target_type != self.entity_type:
                    continue
                attribute = getattr(model, column)
                updated = db.execute(
                    update(model)
                    .where(model.import_package_id == package_id, attribute == old_id)
                    .values({column: new_id})
                    .execution_options(synchronize_session="fetch")
                ).rowcount or 0
                if updated:
                    key = f"staging:{model.ENTITY_TYPE}"
                    result.references_by_type[key] = result.references_by_type.get(key, 0) + updated
                    result.references_updated += updated

    @property
    def _columns(self) -> tuple[str, ...]:
        return shared_data_columns(self.staging_model, self.production_model)


class PersonMergeStrategy(MergeStrategy):
    entity_type = "Person"
    production_model = Person
    staging_model = StagingPerson
    production_dependents = (
        (PersonPropertyRelation, "person_id"),
        (Claim, "primary_claimant_id"),
        (Evidence, "person_id"),
        (Household, "head_of_household_person_id"),
    )


class PropertyUnitMergeStrategy(MergeStrategy):
    entity_type = "PropertyUnit"
    production_model = PropertyUnit
    staging_model = StagingPropertyUnit
    production_dependents = (
        (Household, "property_unit_id"),
        (PersonPropertyRelation, "property_unit_id"),
        (Claim, "property_unit_id"),
        (Survey, "property_unit_id"),
    )


class MergeRegistry:
    """Entity-type tag -> merge strategy, built once at startup."""

    def __init__(self, strategies: list[MergeStrategy]) -> None:
        self._strategies = {strategy.entity_type: strategy for strategy in strategies}

    @property
    def entity_types(self) -> list[str]:
        return sorted(self._strategies)

    def get(self, entity_type: str) -> MergeStrategy:
        strategy = self._strategies.get(entity_type)
        if strategy is None:
            raise UnknownEntityTypeError(f"No merge strategy registered for entity type {entity_type!r}")
        return strategy

    def merge(
        self,
        db: Session,
        entity_type: str,
        master_id: str,
        discarded_id: str,
        package_id: int | None,
        *,
        production_ids: frozenset[str] = frozenset(),
    ) -> MergeResult:
        return self.get(entity_type).merge(
            db, master_id, discarded_id, package_id, production_ids=production_ids
        )


def default_merge_registry() -> MergeRegistry:
    return MergeRegistry([PersonMergeStrategy(), PropertyUnitMergeStrategy()])
