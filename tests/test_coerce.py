from __future__ import annotations

from datetime import date, datetime, timezone

from src.normalize.coerce import (
    parse_deadline,
    parse_work_years,
    profile_from_mapping,
    rule_from_mapping,
    scholarship_from_mapping,
)
from src.normalize.schema import (
    ROLLING_DEADLINE,
    GpaRule,
    LanguageRule,
    NationalityRule,
    UnknownRule,
    WorkYearsRule,
)


def test_parse_deadline_handles_dates_datetimes_and_rolling() -> None:
    assert parse_deadline("2026-11-01") == date(2026, 11, 1)
    assert parse_deadline("2026-11-01T12:00:00Z") == datetime(2026, 11, 1, 12, tzinfo=timezone.utc)
    assert parse_deadline("varies") == ROLLING_DEADLINE
    assert parse_deadline(None) == ROLLING_DEADLINE
    assert parse_deadline("") == ROLLING_DEADLINE
    assert parse_deadline("sometime in spring") == ROLLING_DEADLINE


def test_parse_work_years_accepts_numbers_and_bands() -> None:
    assert parse_work_years(3) == 3.0
    assert parse_work_years("2-3") == 2.0
    assert parse_work_years("4+") == 4.0
    assert parse_work_years(None) == 0.0
    assert parse_work_years("none") == 0.0


def test_rule_from_mapping_builds_typed_rules() -> None:
    assert rule_from_mapping({"rule": "nationality", "allowed": ["Sudanese", "Egyptian"]}) == NationalityRule(
        allowed=("Egyptian", "Sudanese")
    )
    assert rule_from_mapping({"rule": "work_years_min", "value": 2}) == WorkYearsRule(value=2.0)
    assert rule_from_mapping({"rule": "gpa_min", "value": "80"}) == GpaRule(value=80.0)
    assert rule_from_mapping({"rule": "language", "values": ["IELTS 6.5"], "optional": True}) == LanguageRule(
        values=("IELTS 6.5",), optional=True
    )


def test_rule_from_mapping_keeps_malformed_and_unknown_kinds_as_unknown() -> None:
    malformed = rule_from_mapping({"rule": "gpa_min", "value": "high"})
    unknown = rule_from_mapping({"rule": "residency", "countries": ["Kenya"]})

    assert isinstance(malformed, UnknownRule)
    assert malformed.kind == "gpa_min"
    assert isinstance(unknown, UnknownRule)
    assert unknown.to_dict() == {"rule": "residency", "countries": ["Kenya"]}


def test_scholarship_from_mapping_accepts_camel_case_and_generates_id() -> None:
    record = scholarship_from_mapping(
        {
            "name": "Chevening Scholarship",
            "country": "UK",
            "degreeLevels": ["master"],
            "fields": ["public policy", "economics"],
            "deadline": "2026-11-05",
            "tuitionCovered": True,
            "stipend": 1500,
            "sourceUrl": "https://www.chevening.org/apply",
            "eligibilityRules": [{"rule": "work_years_min", "value": 2}],
        }
    )

    assert record.scholarship_id
    assert record.degree_levels == frozenset({"master"})
    assert record.deadline == date(2026, 11, 5)
    assert record.tuition_covered is True
    assert record.has_stipend is True
    assert record.eligibility_rules == (WorkYearsRule(value=2.0),)


def test_profile_from_mapping_normalizes_sets_and_bands() -> None:
    profile = profile_from_mapping(
        {
            "nationality": "Sudanese",
            "degreeTarget": "master",
            "fields": ["economics", " ", "public policy"],
            "gpaBand": "80-89",
            "workYears": "2-3",
            "languageProofs": ["IELTS 7.0"],
        }
    )

    assert profile.fields == frozenset({"economics", "public policy"})
    assert profile.work_years == 2.0
    assert profile.language_certifications == frozenset({"IELTS 7.0"})
    assert profile.special_statuses == frozenset()
