from __future__ import annotations

from src.normalize.schema import (
    GPA_MIN,
    LANGUAGE,
    NATIONALITY,
    GpaRule,
    LanguageRule,
    NationalityRule,
    UnknownRule,
    UserProfile,
    WorkYearsRule,
)
from src.rank.rules import evaluate_rule, gpa_band_to_number, rules_pass


def test_gpa_band_to_number_handles_open_and_closed_bands() -> None:
    assert gpa_band_to_number(">=90") == 90.0
    assert gpa_band_to_number("80-89") == 84.5
    assert gpa_band_to_number("70-79") == 74.5
    assert gpa_band_to_number("<70") == 69.0
    assert gpa_band_to_number("3.7") == 3.7
    assert gpa_band_to_number(None) is None
    assert gpa_band_to_number("excellent") is None


def test_nationality_rule_is_exact_and_case_sensitive() -> None:
    rule = NationalityRule(allowed=("Egyptian", "Sudanese"))

    assert evaluate_rule(rule, UserProfile(nationality="Sudanese")) is True
    assert evaluate_rule(rule, UserProfile(nationality="sudanese")) is False
    assert evaluate_rule(rule, UserProfile(nationality=None)) is False


def test_work_years_rule_uses_inclusive_minimum() -> None:
    rule = WorkYearsRule(value=2.0)

    assert evaluate_rule(rule, UserProfile(work_years=2.0)) is True
    assert evaluate_rule(rule, UserProfile(work_years=1.5)) is False


def test_gpa_rule_fails_closed_for_missing_or_unparsable_band() -> None:
    rule = GpaRule(value=80.0)

    assert evaluate_rule(rule, UserProfile(gpa_band="80-89")) is True
    assert evaluate_rule(rule, UserProfile(gpa_band="70-79")) is False
    assert evaluate_rule(rule, UserProfile(gpa_band=None)) is False
    assert evaluate_rule(rule, UserProfile(gpa_band="top of class")) is False


def test_language_rule_requires_overlap_unless_optional_and_uncertified() -> None:
    required = LanguageRule(values=("IELTS 6.5", "TOEFL 90"))
    optional = LanguageRule(values=("IELTS 6.5",), optional=True)
    certified = UserProfile(language_certifications=frozenset({"TOEFL 90"}))
    other_cert = UserProfile(language_certifications=frozenset({"DELF B2"}))
    uncertified = UserProfile()

    assert evaluate_rule(required, certified) is True
    assert evaluate_rule(required, uncertified) is False
    assert evaluate_rule(optional, uncertified) is True
    assert evaluate_rule(optional, other_cert) is False


def test_unknown_rule_kinds_pass() -> None:
    rule = UnknownRule(kind="residency", payload=(("countries", ("Kenya",)),))

    assert evaluate_rule(rule, UserProfile(nationality="Sudanese")) is True


def test_rules_pass_requires_every_rule_of_the_kind() -> None:
    profile = UserProfile(nationality="Sudanese", gpa_band="<70")
    rules = (
        NationalityRule(allowed=("Sudanese",)),
        NationalityRule(allowed=("Egyptian",)),
        LanguageRule(values=("IELTS 6.5",), optional=True),
    )

    assert rules_pass(rules, NATIONALITY, profile) is False
    assert rules_pass(rules, LANGUAGE, profile) is True
    assert rules_pass(rules, GPA_MIN, profile) is True


def test_malformed_known_kind_stored_as_unknown_still_passes() -> None:
    rules = (UnknownRule(kind=GPA_MIN, payload=(("value", "high"),)),)

    assert rules_pass(rules, GPA_MIN, UserProfile(gpa_band=None)) is True


def test_rule_evaluation_is_deterministic() -> None:
    rule = LanguageRule(values=("IELTS 6.5", "TOEFL 90"))
    profile = UserProfile(language_certifications=frozenset({"TOEFL 90", "IELTS 7.0"}))

    assert {evaluate_rule(rule, profile) for _ in range(20)} == {True}
