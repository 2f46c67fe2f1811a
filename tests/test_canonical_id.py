from __future__ import annotations

from datetime import date

from src.normalize.canonical_id import generate_scholarship_id


def _base_payload() -> dict:
    return {
        "name": "Chevening Scholarship",
        "country": "UK",
        "deadline": date(2026, 11, 5),
        "source_url": "https://www.chevening.org/apply",
    }


def test_generate_scholarship_id_is_stable_for_same_input() -> None:
    payload = _base_payload()

    assert generate_scholarship_id(**payload) == generate_scholarship_id(**payload)


def test_generate_scholarship_id_ignores_case_whitespace_and_www() -> None:
    original = generate_scholarship_id(**_base_payload())
    variant = generate_scholarship_id(
        **{
            **_base_payload(),
            "name": "  chevening   SCHOLARSHIP ",
            "source_url": "https://chevening.org/other-page",
        }
    )

    assert original == variant


def test_generate_scholarship_id_changes_when_deadline_changes() -> None:
    original = generate_scholarship_id(**_base_payload())
    changed = generate_scholarship_id(**{**_base_payload(), "deadline": date(2027, 11, 5)})
    rolling = generate_scholarship_id(**{**_base_payload(), "deadline": "varies"})

    assert original != changed
    assert original != rolling
