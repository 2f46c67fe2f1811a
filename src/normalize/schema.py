from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Final, Literal, Optional, Union

ROLLING_DEADLINE: Final[str] = "varies"

NATIONALITY: Final[str] = "nationality"
WORK_YEARS_MIN: Final[str] = "work_years_min"
GPA_MIN: Final[str] = "gpa_min"
LANGUAGE: Final[str] = "language"

Deadline = Union[date, datetime, Literal["varies"]]


@dataclass(frozen=True, slots=True)
class NationalityRule:
    allowed: tuple[str, ...]
    kind: str = field(default=NATIONALITY, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.kind, "allowed": list(self.allowed)}


@dataclass(frozen=True, slots=True)
class WorkYearsRule:
    value: float
    kind: str = field(default=WORK_YEARS_MIN, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.kind, "value": self.value}


@dataclass(frozen=True, slots=True)
class GpaRule:
    value: float
    kind: str = field(default=GPA_MIN, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.kind, "value": self.value}


@dataclass(frozen=True, slots=True)
class LanguageRule:
    values: tuple[str, ...]
    optional: bool = False
    kind: str = field(default=LANGUAGE, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.kind, "values": list(self.values), "optional": self.optional}


@dataclass(frozen=True, slots=True)
class UnknownRule:
    """Any rule kind the evaluator does not understand yet; always evaluated as a pass."""

    kind: str
    payload: tuple[tuple[str, Any], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"rule": self.kind, **dict(self.payload)}


EligibilityRule = Union[NationalityRule, WorkYearsRule, GpaRule, LanguageRule, UnknownRule]


@dataclass(frozen=True, slots=True)
class ScholarshipRecord:
    """Normalized scholarship record as supplied at the engine boundary."""

    scholarship_id: str
    name: str
    country: Optional[str]
    degree_levels: frozenset[str]
    fields: frozenset[str]
    deadline: Deadline
    tuition_covered: bool = False
    stipend: Optional[float] = None
    eligibility_summary: Optional[str] = None
    eligibility_rules: tuple[EligibilityRule, ...] = ()
    source_url: Optional[str] = None

    @property
    def has_stipend(self) -> bool:
        return self.stipend is not None and self.stipend > 0

    @property
    def is_rolling(self) -> bool:
        return self.deadline == ROLLING_DEADLINE


@dataclass(frozen=True, slots=True)
class UserProfile:
    nationality: Optional[str] = None
    degree_target: Optional[str] = None
    fields: frozenset[str] = frozenset()
    gpa_band: Optional[str] = None
    work_years: float = 0.0
    special_statuses: frozenset[str] = frozenset()
    language_certifications: frozenset[str] = frozenset()
    deadline_window: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ScoredScholarship:
    record: ScholarshipRecord
    acceptance_score: float
    deadline_urgency: float
    funding_strength: float
    fit_score: float
    boost: float = 0.0
    reasons: tuple[str, ...] = ()

    @property
    def scholarship_id(self) -> str:
        return self.record.scholarship_id

    def to_dict(self) -> dict[str, Any]:
        deadline = self.record.deadline
        return {
            "scholarship_id": self.record.scholarship_id,
            "name": self.record.name,
            "country": self.record.country,
            "deadline": deadline if isinstance(deadline, str) else deadline.isoformat(),
            "source_url": self.record.source_url,
            "acceptance_score": self.acceptance_score,
            "deadline_urgency": self.deadline_urgency,
            "funding_strength": self.funding_strength,
            "fit_score": self.fit_score,
            "boost": self.boost,
            "reasons": list(self.reasons),
        }
