from __future__ import annotations

from typing import Callable, Iterable

from src.normalize.schema import (
    EligibilityRule,
    GpaRule,
    LanguageRule,
    NationalityRule,
    UserProfile,
    WorkYearsRule,
)


def gpa_band_to_number(band: str | None) -> float | None:
    """Representative value of a GPA band: ">=90" -> 90, "80-89" -> 84.5, "<70" -> 69."""
    if band is None:
        return None
    cleaned = band.strip().replace(" ", "")
    if not cleaned:
        return None
    try:
        if cleaned.startswith(">="):
            return float(cleaned[2:])
        if cleaned.startswith("<"):
            return float(cleaned[1:]) - 1.0
        if "-" in cleaned[1:]:
            low, high = cleaned.split("-", 1)
            return (float(low) + float(high)) / 2.0
        return float(cleaned)
    except ValueError:
        return None


def _eval_nationality(rule: NationalityRule, profile: UserProfile) -> bool:
    return profile.nationality is not None and profile.nationality in rule.allowed


def _eval_work_years(rule: WorkYearsRule, profile: UserProfile) -> bool:
    return float(profile.work_years or 0.0) >= rule.value


def _eval_gpa(rule: GpaRule, profile: UserProfile) -> bool:
    gpa = gpa_band_to_number(profile.gpa_band)
    if gpa is None:
        return False
    return gpa >= rule.value


def _eval_language(rule: LanguageRule, profile: UserProfile) -> bool:
    certifications = profile.language_certifications
    if certifications.intersection(rule.values):
        return True
    return rule.optional and not certifications


_EVALUATORS: dict[type, Callable[..., bool]] = {
    NationalityRule: _eval_nationality,
    WorkYearsRule: _eval_work_years,
    GpaRule: _eval_gpa,
    LanguageRule: _eval_language,
}


def evaluate_rule(rule: EligibilityRule, profile: UserProfile) -> bool:
    # Unknown kinds pass until an evaluator is registered for them.
    evaluator = _EVALUATORS.get(type(rule))
    if evaluator is None:
        return True
    return evaluator(rule, profile)


def rules_pass(rules: Iterable[EligibilityRule], kind: str, profile: UserProfile) -> bool:
    return all(evaluate_rule(rule, profile) for rule in rules if rule.kind == kind)
