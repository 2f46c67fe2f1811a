from __future__ import annotations

import math
from dataclasses import dataclass

WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True, slots=True)
class AcceptanceWeights:
    """Additive contributions on top of `base`; the result is clamped to [0, 1]."""

    base: float
    degree: float
    field: float
    nationality: float
    work_years: float
    gpa: float
    language: float
    conflict_penalty: float

    def __post_init__(self) -> None:
        for field_name in (
            "base",
            "degree",
            "field",
            "nationality",
            "work_years",
            "gpa",
            "language",
            "conflict_penalty",
        ):
            value = float(getattr(self, field_name))
            if not math.isfinite(value):
                raise ValueError(f"Acceptance weight '{field_name}' must be finite.")
            if value < 0.0 or value > 1.0:
                raise ValueError(f"Acceptance weight '{field_name}' must be between 0.0 and 1.0.")

    @classmethod
    def baseline(cls) -> AcceptanceWeights:
        return cls(
            base=0.50,
            degree=0.25,
            field=0.25,
            nationality=0.20,
            work_years=0.10,
            gpa=0.10,
            language=0.10,
            conflict_penalty=0.15,
        )


@dataclass(frozen=True, slots=True)
class FitWeights:
    acceptance: float
    funding: float
    urgency: float

    def __post_init__(self) -> None:
        for field_name in ("acceptance", "funding", "urgency"):
            value = float(getattr(self, field_name))
            if not math.isfinite(value):
                raise ValueError(f"Fit weight '{field_name}' must be finite.")
            if value < 0.0 or value > 1.0:
                raise ValueError(f"Fit weight '{field_name}' must be between 0.0 and 1.0.")

        total = self.acceptance + self.funding + self.urgency
        if not math.isclose(total, 1.0, abs_tol=WEIGHT_TOLERANCE):
            raise ValueError(
                "Fit weights must sum to 1.0 "
                f"(received {total:.6f}, tolerance={WEIGHT_TOLERANCE})."
            )

    @classmethod
    def baseline(cls) -> FitWeights:
        return cls(acceptance=0.60, funding=0.25, urgency=0.15)

    def to_dict(self) -> dict[str, float]:
        return {
            "acceptance": self.acceptance,
            "funding": self.funding,
            "urgency": self.urgency,
        }


ACCEPTANCE_WEIGHTS = AcceptanceWeights.baseline()
FIT_WEIGHTS = FitWeights.baseline()
