from __future__ import annotations

import math

import pytest

from src.rank.weights import ACCEPTANCE_WEIGHTS, FIT_WEIGHTS, AcceptanceWeights, FitWeights


def test_fit_weights_require_sum_of_one() -> None:
    with pytest.raises(ValueError):
        FitWeights(acceptance=0.60, funding=0.25, urgency=0.10)


def test_fit_weights_reject_non_finite_values() -> None:
    with pytest.raises(ValueError):
        FitWeights(acceptance=math.nan, funding=0.25, urgency=0.15)


def test_acceptance_weights_reject_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        AcceptanceWeights(
            base=0.5,
            degree=1.5,
            field=0.25,
            nationality=0.2,
            work_years=0.1,
            gpa=0.1,
            language=0.1,
            conflict_penalty=0.15,
        )


def test_policy_constants_match_baseline() -> None:
    assert FIT_WEIGHTS.to_dict() == {"acceptance": 0.60, "funding": 0.25, "urgency": 0.15}
    assert ACCEPTANCE_WEIGHTS == AcceptanceWeights.baseline()
    assert ACCEPTANCE_WEIGHTS.conflict_penalty == 0.15
