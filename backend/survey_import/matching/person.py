"""Weighted person matching over national id and Arabic name parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from survey_import.enums import ConfidenceLevel
from survey_import.matching.similarity import name_similarity, normalize_name, normalize_national_id

FULL_NAME_WEIGHT = 50.0
FATHER_NAME_WEIGHT = 20.0
FAMILY_NAME_WEIGHT = 20.0
BIRTH_YEAR_MATCH_BONUS = 10.0
BIRTH_YEAR_MISMATCH_PENALTY = 15.0
MAX_SCORE = 100.0


class PersonLike(Protocol):
    first_name_arabic: str | None
    father_name_arabic: str | None
    family_name_arabic: str | None
    national_id: str | None
    year_of_birth: int | None


@dataclass(slots=True)
class PersonMatch:
    """One scored candidate pair."""

    score: float
    confidence: ConfidenceLevel
    reason: str
    criteria: dict[str, object] = field(default_factory=dict)

    @property
    def is_national_id_match(self) -> bool:
        return self.reason == "national_id"


def full_name(person: PersonLike) -> str:
    parts = (person.first_name_arabic, person.father_name_arabic, person.family_name_arabic)
    return " ".join(part for part in parts if part)


class PersonMatcher:
    """Scores person pairs; pairs under the medium threshold are discarded."""

    def __init__(self, high_threshold: float = 85.0, medium_threshold: float = 70.0) -> None:
        if medium_threshold > high_threshold:
            raise ValueError("medium_threshold cannot exceed high_threshold")
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold

    def match(self, left: PersonLike, right: PersonLike) -> PersonMatch | None:
        left_nid = normalize_national_id(left.national_id)
        right_nid = normalize_national_id(right.national_id)
        if left_nid and left_nid == right_nid:
            return PersonMatch(
                score=MAX_SCORE,
                confidence=ConfidenceLevel.HIGH,
                reason="national_id",
                criteria={"national_id": left_nid, "method": "national_id_exact"},
            )

        score, criteria = self.composite_score(left, right)
        if score >= self.high_threshold:
            confidence = ConfidenceLevel.HIGH
        elif score >= self.medium_threshold:
            confidence = ConfidenceLevel.MEDIUM
        else:
            return None
        return PersonMatch(score=score, confidence=confidence, reason="composite", criteria=criteria)

    def composite_score(self, left: PersonLike, right: PersonLike) -> tuple[float, dict[str, object]]:
        """Weighted name similarity plus a birth-year bonus or penalty, clamped to [0, 100]."""

        full = name_similarity(full_name(left), full_name(right))
        father = name_similarity(left.father_name_arabic, right.father_name_arabic)
        family = name_similarity(left.family_name_arabic, right.family_name_arabic)

        score = full * FULL_NAME_WEIGHT + father * FATHER_NAME_WEIGHT + family * FAMILY_NAME_WEIGHT
        year_component = 0.0
        if left.year_of_birth is not None and right.year_of_birth is not None:
            if left.year_of_birth == right.year_of_birth:
                year_component = BIRTH_YEAR_MATCH_BONUS
            else:
                year_component = -BIRTH_YEAR_MISMATCH_PENALTY
        score = round(min(MAX_SCORE, max(0.0, score + year_component)), 2)

        criteria: dict[str, object] = {
            "method": "composite",
            "full_name_similarity": round(full, 4),
            "father_name_similarity": round(father, 4),
            "family_name_similarity": round(family, 4),
            "birth_year_adjustment": year_component,
            "score": score,
        }
        return score, criteria

    def is_candidate(self, left: PersonLike, right: PersonLike, min_family_similarity: float = 0.6) -> bool:
        """Cheap prefilter applied before full scoring against large tables."""

        left_nid = normalize_national_id(left.national_id)
        if left_nid and left_nid == normalize_national_id(right.national_id):
            return True
        left_family = normalize_name(left.family_name_arabic)
        right_family = normalize_name(right.family_name_arabic)
        if not left_family or not right_family:
            return False
        return name_similarity(left_family, right_family) >= min_family_similarity


def describe_person(person: PersonLike) -> str:
    """Display identifier of the form ``first father family (NID: x)``."""

    name = full_name(person)
    if person.national_id:
        return f"{name} (NID: {person.national_id})"
    return name
