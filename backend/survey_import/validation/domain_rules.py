"""Levels 3, 4 and 6: ownership evidence, household structure, claim lifecycle."""

from __future__ import annotations

from survey_import.enums import (
    OWNERSHIP_RELATION_TYPES,
    ClaimSource,
    ClaimStatus,
    LifecycleStage,
    RelationType,
)
from survey_import.models.staging import (
    StagingClaim,
    StagingEvidence,
    StagingHousehold,
    StagingPersonPropertyRelation,
)
from survey_import.services.staging_repository import StagingBatch
from survey_import.validation.base import Findings, ValidationContext, Validator

# Demographic sub-counts describe the members other than the head.
HOUSEHOLD_MEMBER_FIELDS = (
    "male_count",
    "female_count",
    "male_child_count",
    "female_child_count",
    "male_elderly_count",
    "female_elderly_count",
)
HOUSEHOLD_DISABLED_FIELDS = ("male_disabled_count", "female_disabled_count")

IMPORTABLE_CLAIM_STATES: frozenset[tuple[ClaimStatus, LifecycleStage | None]] = frozenset(
    {
        (ClaimStatus.DRAFT, None),
        (ClaimStatus.DRAFT, LifecycleStage.DRAFT_PENDING_SUBMISSION),
        (ClaimStatus.SUBMITTED, None),
        (ClaimStatus.SUBMITTED, LifecycleStage.SUBMITTED),
        (ClaimStatus.SUBMITTED, LifecycleStage.DRAFT_PENDING_SUBMISSION),
    }
)


class OwnershipEvidenceValidator(Validator):
    """Ownership and heir relations must carry at least one supporting evidence."""

    level = 3
    name = "OwnershipEvidence"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        evidenced_relations = {
            evidence.person_property_relation_id
            for evidence in batch.records(StagingEvidence.ENTITY_TYPE, include_skipped=False)
            if evidence.person_property_relation_id
        }
        for relation in batch.records(StagingPersonPropertyRelation.ENTITY_TYPE, include_skipped=False):
            findings.checked()
            if relation.relation_type not in OWNERSHIP_RELATION_TYPES:
                continue
            label = RelationType(relation.relation_type).name.title()
            if relation.original_entity_id not in evidenced_relations:
                findings.error(relation, f"{label} relation requires at least one supporting evidence")
            if relation.relation_type == RelationType.OWNER and relation.ownership_share == 0:
                findings.warning(relation, "Owner relation has an ownership share of 0")


class HouseholdStructureValidator(Validator):
    """Declared household size agrees with its demographic breakdown."""

    level = 4
    name = "HouseholdStructure"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        for household in batch.records(StagingHousehold.ENTITY_TYPE, include_skipped=False):
            findings.checked()
            size = household.household_size or 0
            if size < 1:
                findings.error(household, "household_size must be at least 1")
                continue

            members = sum(getattr(household, name) or 0 for name in HOUSEHOLD_MEMBER_FIELDS)
            if members:
                expected = members + 1
                if size != expected:
                    findings.error(
                        household,
                        f"household_size {size} does not match demographic breakdown "
                        f"(head + {members} members = {expected})",
                    )
            disabled = sum(getattr(household, name) or 0 for name in HOUSEHOLD_DISABLED_FIELDS)
            if disabled > size:
                findings.error(household, f"disabled members ({disabled}) exceed household_size {size}")

            head_id = household.head_of_household_person_id
            if head_id and not batch.contains("Person", head_id):
                findings.error(household, f"head_of_household_person_id {head_id} does not resolve to a staged person")
            if not head_id and not household.head_of_household_name:
                findings.warning(household, "household has no head of household")


class ClaimLifecycleValidator(Validator):
    """Freshly imported claims may only be drafts or submissions."""

    level = 6
    name = "ClaimLifecycle"

    def validate(self, batch: StagingBatch, context: ValidationContext, findings: Findings) -> None:
        for claim in batch.records(StagingClaim.ENTITY_TYPE, include_skipped=False):
            findings.checked()
            self._check_claim(claim, findings)

    def _check_claim(self, claim: StagingClaim, findings: Findings) -> None:
        if claim.claim_status is None:
            findings.warning(claim, "claim_status missing; claim will be committed as Draft")
            status = ClaimStatus.DRAFT
        else:
            status = ClaimStatus(claim.claim_status)
        stage = LifecycleStage(claim.lifecycle_stage) if claim.lifecycle_stage is not None else None

        if status not in (ClaimStatus.DRAFT, ClaimStatus.SUBMITTED):
            findings.error(claim, f"Claim status {status.name} is not valid for an imported claim")
        elif (status, stage) not in IMPORTABLE_CLAIM_STATES:
            findings.error(
                claim,
                f"Lifecycle stage {stage.name if stage else None} is not reachable from claim status {status.name}",
            )

        if claim.claim_source is not None and claim.claim_source != ClaimSource.FIELD_COLLECTION:
            findings.warning(
                claim, f"Unexpected claim_source {ClaimSource(claim.claim_source).name} for a field import"
            )
        if not claim.primary_claimant_id:
            findings.warning(claim, "Claim has no primary claimant")
