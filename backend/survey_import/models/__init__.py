"""ORM models package exports."""

from survey_import.models.conflict import Conflict
from survey_import.models.import_package import ImportPackage
from survey_import.models.production import (
    PRODUCTION_MODEL_BY_TYPE,
    Building,
    Claim,
    Evidence,
    Household,
    Person,
    PersonPropertyRelation,
    PropertyUnit,
    StoredFile,
    Survey,
)
from survey_import.models.staging import (
    STAGING_MODEL_BY_TYPE,
    STAGING_MODELS,
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
from survey_import.models.vocabulary import Vocabulary

__all__ = [
    "ImportPackage",
    "Conflict",
    "Vocabulary",
    "Building",
    "PropertyUnit",
    "Person",
    "Household",
    "PersonPropertyRelation",
    "Evidence",
    "StoredFile",
    "Claim",
    "Survey",
    "PRODUCTION_MODEL_BY_TYPE",
    "StagingRecordMixin",
    "StagingBuilding",
    "StagingPropertyUnit",
    "StagingPerson",
    "StagingHousehold",
    "StagingPersonPropertyRelation",
    "StagingEvidence",
    "StagingClaim",
    "StagingSurvey",
    "STAGING_MODELS",
    "STAGING_MODEL_BY_TYPE",
]
