"""Unit tests for name normalization and weighted person matching."""

import unittest
from types import SimpleNamespace

from survey_import.enums import ConfidenceLevel
from survey_import.matching.person import PersonMatcher, describe_person
from survey_import.matching.property import property_key
from survey_import.matching.similarity import (
    levenshtein_distance,
    name_similarity,
    normalize_name,
    normalize_national_id,
)


def _person(first, father, family, national_id=None, year_of_birth=None):
    return SimpleNamespace(
        first_name_arabic=first,
        father_name_arabic=father,
        family_name_arabic=family,
        national_id=national_id,
        year_of_birth=year_of_birth,
    )


class NameNormalizationTests(unittest.TestCase):
    def test_alef_variants_tatweel_and_diacritics_are_unified(self) -> None:
        self.assertEqual(normalize_name("أحمد"), normalize_name("احمد"))
        self.assertEqual(normalize_name("إبراهيم"), normalize_name("ابراهيم"))
        self.assertEqual(normalize_name("مـحـمـد"), "محمد")
        self.assertEqual(normalize_name("مُحَمَّد"), "محمد")
        self.assertEqual(normalize_name("فاطمة"), normalize_name("فاطمه"))
        self.assertEqual(normalize_name("مصطفى"), normalize_name("مصطفي"))

    def test_empty_names_have_zero_similarity(self) -> None:
        self.assertEqual(normalize_name(None), "")
        self.assertEqual(name_similarity("", "محمد"), 0.0)
        self.assertEqual(name_similarity("محمد", "محمد"), 1.0)

    def test_identifier_normalizers(self) -> None:
        self.assertEqual(normalize_national_id(" 012-345 678 90 "), "01234567890")
        self.assertEqual(normalize_national_id(None), "")
        self.assertEqual(levenshtein_distance("kitten", "sitting"), 3)

    def test_property_key_is_case_insensitive_and_requires_both_parts(self) -> None:
        self.assertEqual(property_key("01020300400500006", " A-1 "), property_key("01020300400500006", "a-1"))
        self.assertIsNone(property_key("01020300400500006", None))
        self.assertIsNone(property_key(None, "A-1"))


class PersonMatcherTests(unittest.TestCase):
    def setUp(self) -> None:
        self.matcher = PersonMatcher(high_threshold=85.0, medium_threshold=70.0)

    def test_identical_national_id_scores_full_high_confidence(self) -> None:
        left = _person("محمد", "أحمد", "الخطيب", national_id="01234567890")
        right = _person("سامر", "خالد", "الحلبي", national_id="012 3456 7890")

        match = self.matcher.match(left, right)

        self.assertIsNotNone(match)
        self.assertEqual(match.score, 100.0)
        self.assertEqual(match.confidence, ConfidenceLevel.HIGH)
        self.assertTrue(match.is_national_id_match)

    def test_same_name_and_birth_year_caps_at_hundred(self) -> None:
        match = self.matcher.match(
            _person("محمد", "أحمد", "الخطيب", year_of_birth=1980),
            _person("محمد", "احمد", "الخطيب", year_of_birth=1980),
        )

        self.assertIsNotNone(match)
        self.assertEqual(match.score, 100.0)
        self.assertEqual(match.confidence, ConfidenceLevel.HIGH)
        self.assertFalse(match.is_national_id_match)

    def test_same_name_without_birth_years_is_high_at_ninety(self) -> None:
        match = self.matcher.match(
            _person("محمد", "أحمد", "الخطيب"),
            _person("محمد", "أحمد", "الخطيب"),
        )

        self.assertEqual(match.score, 90.0)
        self.assertEqual(match.confidence, ConfidenceLevel.HIGH)

    def test_birth_year_mismatch_drops_to_medium(self) -> None:
        match = self.matcher.match(
            _person("محمد", "أحمد", "الخطيب", year_of_birth=1980),
            _person("محمد", "أحمد", "الخطيب", year_of_birth=1975),
        )

        self.assertEqual(match.score, 75.0)
        self.assertEqual(match.confidence, ConfidenceLevel.MEDIUM)
        self.assertEqual(match.criteria["birth_year_adjustment"], -15.0)

    def test_unrelated_people_do_not_match(self) -> None:
        left = _person("محمد", "أحمد", "الخطيب", year_of_birth=1980)
        right = _person("ليلى", "يوسف", "العلي", year_of_birth=1992)

        self.assertIsNone(self.matcher.match(left, right))
        self.assertFalse(self.matcher.is_candidate(left, right))

    def test_thresholds_must_be_ordered(self) -> None:
        with self.assertRaises(ValueError):
            PersonMatcher(high_threshold=60.0, medium_threshold=70.0)

    def test_display_identifier_includes_national_id(self) -> None:
        person = _person("محمد", "أحمد", "الخطيب", national_id="01234567890")

        self.assertEqual(describe_person(person), "محمد أحمد الخطيب (NID: 01234567890)")


if __name__ == "__main__":
    unittest.main()
