"""Closed enumerations for package lifecycle and coded survey values."""

from __future__ import annotations

import re
from enum import Enum, IntEnum
from typing import TypeVar


class ImportStatus(str, Enum):
    """Lifecycle status of an import package."""

    PENDING = "Pending"
    VALIDATING = "Validating"
    STAGING = "Staging"
    VALIDATION_FAILED = "ValidationFailed"
    QUARANTINED = "Quarantined"
    REVIEWING_CONFLICTS = "ReviewingConflicts"
    READY_TO_COMMIT = "ReadyToCommit"
    COMMITTING = "Committing"
    COMPLETED = "Completed"
    PARTIALLY_COMPLETED = "PartiallyCompleted"
    FAILED = "Failed"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = frozenset(
    {
        ImportStatus.COMPLETED,
        ImportStatus.PARTIALLY_COMPLETED,
        ImportStatus.FAILED,
        ImportStatus.CANCELLED,
        ImportStatus.QUARANTINED,
    }
)


class ValidationStatus(str, Enum):
    """Validation state of one staging record."""

    PENDING = "Pending"
    VALID = "Valid"
    INVALID = "Invalid"
    WARNING = "Warning"
    SKIPPED = "Skipped"


COMMITTABLE_STATUSES = (ValidationStatus.VALID, ValidationStatus.WARNING)


class ConflictStatus(str, Enum):
    PENDING_REVIEW = "PendingReview"
    RESOLVED = "Resolved"


class ConflictAction(str, Enum):
    MERGED = "Merged"
    KEPT_SEPARATE = "KeptSeparate"


class ConfidenceLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"


class BuildingType(IntEnum):
    UNKNOWN = 0
    RESIDENTIAL = 1
    COMMERCIAL = 2
    MIXED_USE = 3
    INDUSTRIAL = 4
    PUBLIC = 5
    OTHER = 99


class BuildingStatus(IntEnum):
    UNKNOWN = 0
    INTACT = 1
    MINOR_DAMAGE = 2
    MAJOR_DAMAGE = 3
    DESTROYED = 4
    UNDER_CONSTRUCTION = 5


class DamageLevel(IntEnum):
    UNKNOWN = 0
    NONE = 1
    MINOR = 2
    MODERATE = 3
    SEVERE = 4
    DESTROYED = 5


class PropertyUnitType(IntEnum):
    UNKNOWN = 0
    APARTMENT = 1
    HOUSE = 2
    SHOP = 3
    OFFICE = 4
    WAREHOUSE = 5
    OTHER = 99


class PropertyUnitStatus(IntEnum):
    UNKNOWN = 0
    OCCUPIED = 1
    VACANT = 2
    DAMAGED = 3
    DESTROYED = 4


class Gender(IntEnum):
    UNKNOWN = 0
    MALE = 1
    FEMALE = 2


class RelationType(IntEnum):
    UNKNOWN = 0
    OWNER = 1
    TENANT = 2
    OCCUPANT = 3
    HEIR = 4
    GUEST = 5
    OTHER = 99


OWNERSHIP_RELATION_TYPES = frozenset({RelationType.OWNER, RelationType.HEIR})


class EvidenceType(IntEnum):
    UNKNOWN = 0
    IDENTIFICATION_DOCUMENT = 1
    OWNERSHIP_DEED = 2
    RENTAL_CONTRACT = 3
    INHERITANCE_DOCUMENT = 4
    COURT_ORDER = 5
    UTILITY_BILL = 6
    PHOTO = 7
    OTHER = 99


class ClaimType(IntEnum):
    UNKNOWN = 0
    OWNERSHIP = 1
    TENANCY = 2
    OCCUPANCY = 3
    INHERITANCE = 4


class ClaimStatus(IntEnum):
    UNKNOWN = 0
    DRAFT = 1
    SUBMITTED = 2
    UNDER_REVIEW = 3
    APPROVED = 4
    REJECTED = 5


class ClaimSource(IntEnum):
    UNKNOWN = 0
    FIELD_COLLECTION = 1
    OFFICE_SUBMISSION = 2
    SYSTEM_IMPORT = 3


class LifecycleStage(IntEnum):
    UNKNOWN = 0
    DRAFT_PENDING_SUBMISSION = 1
    SUBMITTED = 2
    INITIAL_SCREENING = 3
    UNDER_REVIEW = 4
    AWAITING_DOCUMENTS = 5
    CONFLICT_DETECTED = 6
    IN_ADJUDICATION = 7
    PENDING_APPROVAL = 8
    APPROVED = 9
    REJECTED = 10
    ON_HOLD = 11
    REASSIGNED = 12
    CERTIFICATE_ISSUED = 13
    ARCHIVED = 99


class CasePriority(IntEnum):
    UNKNOWN = 0
    LOW = 1
    NORMAL = 2
    HIGH = 3
    URGENT = 4


CodedEnum = TypeVar("CodedEnum", bound=IntEnum)

_NAME_KEY_RE = re.compile(r"[\s_\-]+")


def _name_key(value: str) -> str:
    return _NAME_KEY_RE.sub("", value.strip().lower())


def parse_coded_value(enum_cls: type[CodedEnum], raw: object) -> tuple[CodedEnum | None, bool]:
    """Map a raw container value onto a closed enum.

    Accepts integer codes, numeric strings and member names in any casing or
    separator style. Returns ``(member, recognized)``; an empty value yields
    ``(None, True)`` and an unrecognized one ``(UNKNOWN, False)``.
    """

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None, True
    if isinstance(raw, bool):
        return enum_cls(0), False
    if isinstance(raw, (int, float)) or (isinstance(raw, str) and raw.strip().lstrip("-").isdigit()):
        try:
            return enum_cls(int(raw)), True
        except ValueError:
            return enum_cls(0), False
    key = _name_key(str(raw))
    for member in enum_cls:
        if _name_key(member.name) == key:
            return member, True
    return enum_cls(0), False
