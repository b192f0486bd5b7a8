"""Tests for the probability distribution engine."""

import math

import numpy as np
import pytest

from cardgrade.grading.models import GradeOutcome
from cardgrade.grading.probability import (
    distribution_from_range,
    map_outcomes_to_bgs,
    map_outcomes_to_psa,
    map_psa_to_bgs,
    normalize_distribution,
    psa_outcomes,
)


def probability_for(outcomes, label: str) -> float:
    return next((o.probability for o in outcomes if o.label == label), 0.0)


class TestNormalizeDistribution:
    """Rescaling, rounding and remainder handling."""

    @pytest.mark.parametrize("values", [
        [1, 1, 1],
        [0.2, 0.3, 0.1],
        [10, 60, 25, 5],
        [1, 2, 3, 4, 5, 6, 7],
        [0.333, 0.333, 0.334],
    ])
    def test_sums_to_one(self, values) -> None:
        outcomes = [GradeOutcome(label=f"g{i}", probability=v) for i, v in enumerate(values)]
        normalized = normalize_distribution(outcomes)
        assert math.isclose(sum(o.probability for o in normalized), 1.0, abs_tol=1e-9)
        assert all(0.0 <= o.probability <= 1.0 for o in normalized)

    def test_random_inputs_sum_to_one(self) -> None:
        rng = np.random.default_rng(7)
        for _ in range(200):
            size = int(rng.integers(1, 8))
            values = rng.uniform(0, 100, size=size)
            normalized = normalize_distribution([
                GradeOutcome(label=f"g{i}", probability=float(v)) for i, v in enumerate(values)
            ])
            assert abs(sum(o.probability for o in normalized) - 1.0) <= 1e-9
            assert all(o.probability >= 0 for o in normalized)

    def test_rounds_to_four_decimals(self) -> None:
        normalized = normalize_distribution([
            GradeOutcome(label=label, probability=1) for label in ("a", "b", "c")
        ])
        for outcome in normalized:
            assert round(outcome.probability, 4) == pytest.approx(outcome.probability)

    def test_drops_negative_and_non_finite(self) -> None:
        normalized = normalize_distribution([
            GradeOutcome(label="good", probability=0.5),
            GradeOutcome(label="neg", probability=-1),
            GradeOutcome(label="nan", probability=float("nan")),
        ])
        assert [o.label for o in normalized] == ["good"]
        assert normalized[0].probability == 1.0

    def test_empty_input(self) -> None:
        assert normalize_distribution([]) == []

    def test_all_zero_stays_zero(self) -> None:
        normalized = normalize_distribution([GradeOutcome(label="a", probability=0)])
        assert normalized[0].probability == 0.0


class TestDistributionFromRange:
    """Range text to two-bucket PSA distribution."""

    def test_psa_8_9_medium(self) -> None:
        outcomes = distribution_from_range("PSA 8-9")
        assert probability_for(outcomes, "PSA 8") == pytest.approx(0.35, abs=1e-4)
        assert probability_for(outcomes, "PSA 9") == pytest.approx(0.65, abs=1e-4)

    def test_psa_9_10_by_confidence(self) -> None:
        low = distribution_from_range("PSA 9-10", "low")
        assert probability_for(low, "PSA 9") == pytest.approx(0.6, abs=1e-4)
        assert probability_for(low, "PSA 10") == pytest.approx(0.4, abs=1e-4)

        high = distribution_from_range("PSA 9-10", "high")
        assert probability_for(high, "PSA 9") == pytest.approx(0.8, abs=1e-4)
        assert probability_for(high, "PSA 10") == pytest.approx(0.2, abs=1e-4)

    def test_single_psa_10_is_capped(self) -> None:
        outcomes = distribution_from_range("PSA 10")
        assert probability_for(outcomes, "PSA 10") == pytest.approx(0.6, abs=1e-4)
        assert probability_for(outcomes, "PSA 9") == pytest.approx(0.4, abs=1e-4)

    def test_single_grade_leans_on_itself(self) -> None:
        outcomes = distribution_from_range("PSA 9")
        assert probability_for(outcomes, "PSA 9") == pytest.approx(0.7, abs=1e-4)
        assert probability_for(outcomes, "PSA 8") == pytest.approx(0.3, abs=1e-4)

    def test_weird_formatting(self) -> None:
        spaced = distribution_from_range("8 – 9")
        assert probability_for(spaced, "PSA 8") == pytest.approx(0.35, abs=1e-4)

        compact = distribution_from_range("PSA8-9")
        assert probability_for(compact, "PSA 9") == pytest.approx(0.65, abs=1e-4)

    def test_reversed_range(self) -> None:
        outcomes = distribution_from_range("PSA 9-8")
        assert probability_for(outcomes, "PSA 8") == pytest.approx(0.35, abs=1e-4)

    def test_low_grades_fold_into_seven_or_lower(self) -> None:
        outcomes = distribution_from_range("PSA 5-7")
        assert outcomes == [GradeOutcome(label="PSA 7 or lower", probability=1.0)]

    def test_unparseable_range_is_empty(self) -> None:
        assert distribution_from_range("") == []
        assert distribution_from_range("unknown") == []


class TestBucketMapping:
    """PSA and BGS bucket mapping."""

    def test_map_outcomes_to_psa(self) -> None:
        psa = map_outcomes_to_psa([
            GradeOutcome(label="PSA 10", probability=0.1),
            GradeOutcome(label="PSA 9", probability=0.5),
            GradeOutcome(label="PSA 8", probability=0.3),
            GradeOutcome(label="PSA 6", probability=0.05),
            GradeOutcome(label="PSA 7 or lower", probability=0.05),
        ])
        assert set(psa) == {"10", "9", "8", "7_or_lower"}
        assert psa["7_or_lower"] == pytest.approx(0.1)
        assert sum(psa.values()) == pytest.approx(1.0)

    def test_map_outcomes_to_bgs_prefers_nine_point_five(self) -> None:
        bgs = map_outcomes_to_bgs([
            GradeOutcome(label="BGS 9.5", probability=0.2),
            GradeOutcome(label="BGS 9", probability=0.5),
            GradeOutcome(label="BGS 8.5", probability=0.2),
            GradeOutcome(label="BGS 8", probability=0.1),
        ])
        assert bgs == pytest.approx({"9.5": 0.2, "9": 0.5, "8.5": 0.2, "8_or_lower": 0.1})

    def test_map_psa_to_bgs_uses_fixed_correspondence(self) -> None:
        bgs = map_psa_to_bgs({"10": 0.1, "9": 0.6, "8": 0.2, "7_or_lower": 0.1})
        assert bgs == pytest.approx({"9.5": 0.1, "9": 0.6, "8.5": 0.2, "8_or_lower": 0.1})

    def test_psa_outcomes_labels(self) -> None:
        outcomes = psa_outcomes({"10": 0.25, "9": 0.25, "8": 0.25, "7_or_lower": 0.25})
        assert [o.label for o in outcomes] == ["PSA 10", "PSA 9", "PSA 8", "PSA 7 or lower"]
        assert sum(o.probability for o in outcomes) == pytest.approx(1.0)
