from __future__ import annotations

import pytest

from src.normalize.schema import (
    LanguageRule,
    NationalityRule,
    ScholarshipRecord,
    UnknownRule,
    UserProfile,
    WorkYearsRule,
)
from src.rank.stage1_eligibility import (
    build_candidate_frame,
    compute_acceptance_score,
    score_eligibility,
)
from src.rank.weights import AcceptanceWeights


def _record(scholarship_id: str, **overrides) -> ScholarshipRecord:
    values = {
        "scholarship_id": scholarship_id,
        "name": f"Scholarship {scholarship_id}",
        "country": "UK",
        "degree_levels": frozenset({"master"}),
        "fields": frozenset({"economics"}),
        "deadline": "varies",
    }
    values.update(overrides)
    return ScholarshipRecord(**values)


def _profile(**overrides) -> UserProfile:
    values = {
        "nationality": "Sudanese",
        "degree_target": "master",
        "fields": frozenset({"economics", "public policy"}),
        "gpa_band": "80-89",
        "work_years": 2.0,
        "language_certifications": frozenset({"IELTS 7.0"}),
    }
    values.update(overrides)
    return UserProfile(**values)


def test_chevening_style_record_scores_at_least_three_quarters() -> None:
    record = _record(
        "chevening",
        eligibility_rules=(
            WorkYearsRule(value=2.0),
            NationalityRule(allowed=("Sudanese", "Egyptian", "Moroccan")),
            LanguageRule(values=("IELTS 6.5",), optional=False),
        ),
    )

    assert compute_acceptance_score(record, _profile()) >= 0.75


def test_acceptance_score_is_clamped_to_unit_interval() -> None:
    best = _record("best")
    worst = _record(
        "worst",
        country="USA",
        degree_levels=frozenset({"phd"}),
        fields=frozenset({"music"}),
        eligibility_rules=(
            NationalityRule(allowed=("Chilean",)),
            WorkYearsRule(value=10.0),
            LanguageRule(values=("DELF B2",)),
        ),
    )
    zero_base = AcceptanceWeights(
        base=0.0,
        degree=0.25,
        field=0.25,
        nationality=0.2,
        work_years=0.1,
        gpa=0.1,
        language=0.1,
        conflict_penalty=0.15,
    )

    assert compute_acceptance_score(best, _profile()) == 1.0
    assert compute_acceptance_score(worst, _profile(), weights=zero_base) == 0.0


def test_conflict_penalty_applies_only_to_non_us_applicants_for_us_awards() -> None:
    # Degree and field miss so the penalty is not absorbed by the upper clamp.
    us_record = _record("us", country="USA", degree_levels=frozenset({"phd"}), fields=frozenset({"music"}))

    foreign = compute_acceptance_score(us_record, _profile())
    domestic = compute_acceptance_score(us_record, _profile(nationality="USA"))

    assert domestic == pytest.approx(0.5 + 0.2 + 0.1 + 0.1 + 0.1)
    assert foreign == pytest.approx(domestic - 0.15)


def test_score_eligibility_adds_components_and_reason_codes() -> None:
    records = [
        _record("match"),
        _record(
            "miss",
            degree_levels=frozenset({"phd"}),
            eligibility_rules=(NationalityRule(allowed=("Egyptian",)),),
        ),
    ]

    scored = score_eligibility(build_candidate_frame(records), _profile())

    assert scored["scholarship_id"].tolist() == ["match", "miss"]
    assert scored.loc[0, "reasons"] == []
    assert scored.loc[1, "reasons"] == ["DEGREE_LEVEL_MISMATCH", "NATIONALITY_NOT_ALLOWED"]
    assert scored.loc[1, "degree_match"] == 0
    assert scored.loc[1, "nationality_pass"] == 0
    assert scored["acceptance_score"].between(0.0, 1.0).all()


def test_unknown_rules_do_not_reduce_the_score() -> None:
    plain = _record("plain", degree_levels=frozenset({"phd"}), fields=frozenset({"music"}))
    with_unknown = _record(
        "unknown",
        degree_levels=frozenset({"phd"}),
        fields=frozenset({"music"}),
        eligibility_rules=(UnknownRule(kind="residency", payload=(("countries", ("Kenya",)),)),),
    )

    assert compute_acceptance_score(with_unknown, _profile()) == compute_acceptance_score(plain, _profile())


def test_malformed_record_scores_zero_and_batch_continues() -> None:
    broken = _record("broken", degree_levels=None, fields=42)

    scored = score_eligibility(build_candidate_frame([broken, _record("ok")]), _profile())

    assert scored.loc[0, "acceptance_score"] == 0.0
    assert scored.loc[0, "reasons"] == ["MALFORMED_RECORD"]
    assert scored.loc[1, "acceptance_score"] == 1.0


def test_missing_profile_sets_fail_only_their_own_component() -> None:
    record = _record(
        "language",
        eligibility_rules=(
            NationalityRule(allowed=("Sudanese",)),
            LanguageRule(values=("IELTS 6.5",)),
        ),
    )
    profile = _profile(language_certifications=None, fields=None)

    scored = score_eligibility(build_candidate_frame([record]), profile)

    assert scored.loc[0, "reasons"] == ["NO_FIELD_OVERLAP", "LANGUAGE_CERT_MISSING"]
    assert scored.loc[0, "nationality_pass"] == 1
    assert scored.loc[0, "acceptance_score"] == compute_acceptance_score(
        record, _profile(language_certifications=frozenset(), fields=frozenset())
    )
