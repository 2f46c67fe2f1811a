from __future__ import annotations

from src.normalize.schema import ROLLING_DEADLINE, ScholarshipRecord, ScoredScholarship
from src.rank.explain import explain_scored, format_funding


def _scored(**overrides) -> ScoredScholarship:
    record = ScholarshipRecord(
        scholarship_id="s1",
        name="Scholarship",
        country="UK",
        degree_levels=frozenset({"master"}),
        fields=frozenset({"economics"}),
        deadline=ROLLING_DEADLINE,
    )
    values = {
        "record": record,
        "acceptance_score": 1.0,
        "deadline_urgency": 0.0,
        "funding_strength": 0.5,
        "fit_score": 0.725,
    }
    values.update(overrides)
    return ScoredScholarship(**values)


def test_explain_scored_is_stable_and_prioritizes_strong_signals() -> None:
    item = _scored(funding_strength=1.0, deadline_urgency=1.0)

    assert explain_scored(item) == [
        "Fully funded",
        "Deadline soon",
        "Matches your degree and field",
    ]


def test_explain_scored_includes_ai_boost_and_respects_reasons() -> None:
    item = _scored(boost=0.15, reasons=("DEGREE_LEVEL_MISMATCH", "NATIONALITY_NOT_ALLOWED"))

    assert explain_scored(item) == ["Matches your field of study", "Boosted by AI review of your profile"]


def test_explain_scored_handles_malformed_and_empty_signals() -> None:
    malformed = _scored(reasons=("MALFORMED_RECORD",))
    nothing = _scored(reasons=("NO_FIELD_OVERLAP", "JURISDICTION_CONFLICT"))

    assert explain_scored(malformed) == ["Listing could not be fully evaluated"]
    assert explain_scored(nothing) == ["Balanced profile fit after scoring"]


def test_format_funding_handles_missing_and_combined_values() -> None:
    assert format_funding(False, None) == "Partial or unspecified"
    assert format_funding(True, None) == "Tuition covered"
    assert format_funding(False, 1200) == "$1,200 stipend"
    assert format_funding(True, 1200.0) == "Tuition + $1,200 stipend"
