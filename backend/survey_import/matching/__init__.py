"""Person and property matching used by duplicate detection."""

from survey_import.matching.person import PersonMatch, PersonMatcher
from survey_import.matching.property import PropertyKey, property_key

__all__ = ["PersonMatch", "PersonMatcher", "PropertyKey", "property_key"]
