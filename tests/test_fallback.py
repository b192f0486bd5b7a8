"""Tests for the conservative fallback estimate."""

import pytest

from cardgrade.grading.fallback import (
    FALLBACK_CENTERING,
    FALLBACK_NOTES,
    apply_jitter,
    build_fallback_estimate,
    build_image_stats,
    confidence_for_quality,
    jitter_from_stats,
    photo_quality,
    range_for_quality,
)
from cardgrade.grading.models import AnalysisStatus, Confidence, ImageStats, WarningCode


class TestImageStats:
    def test_build_image_stats(self) -> None:
        stats = build_image_stats([100, 300])
        assert stats.count == 2
        assert stats.avg_bytes == 200
        assert stats.min_bytes == 100
        assert stats.max_bytes == 300

    def test_empty_sizes(self) -> None:
        assert build_image_stats([]) == ImageStats()


class TestPhotoQuality:
    """Quality score, range and confidence bands."""

    def test_no_images_is_poor_quality(self) -> None:
        assert photo_quality(ImageStats()) == pytest.approx(0.35)

    def test_many_large_images_is_good_quality(self) -> None:
        stats = build_image_stats([2_000_000] * 5)
        assert photo_quality(stats) == pytest.approx(1.0)

    @pytest.mark.parametrize("quality,expected", [
        (0.95, (8, 9)),
        (0.8, (8, 9)),
        (0.7, (7, 9)),
        (0.5, (6, 8)),
        (0.1, (5, 7)),
    ])
    def test_range_for_quality(self, quality, expected) -> None:
        assert range_for_quality(quality) == expected

    @pytest.mark.parametrize("quality", [0.0, 0.3, 0.45, 0.8, 1.0])
    def test_confidence_never_high(self, quality) -> None:
        assert confidence_for_quality(quality) in (Confidence.LOW, Confidence.MEDIUM)

    def test_confidence_bands(self) -> None:
        assert confidence_for_quality(0.44) == Confidence.LOW
        assert confidence_for_quality(0.45) == Confidence.MEDIUM


class TestJitter:
    def test_jitter_is_bounded_and_deterministic(self) -> None:
        stats = build_image_stats([812_345, 903_210])
        jitter = jitter_from_stats(stats)
        assert -0.04 <= jitter <= 0.04
        assert jitter_from_stats(stats) == jitter

    def test_zero_jitter_is_identity(self) -> None:
        psa = {"10": 0.0, "9": 0.65, "8": 0.35, "7_or_lower": 0.0}
        assert apply_jitter(psa, 0.0) == psa

    def test_positive_jitter_moves_mass_up(self) -> None:
        psa = {"10": 0.0, "9": 0.65, "8": 0.35, "7_or_lower": 0.0}
        adjusted = apply_jitter(psa, 0.03)
        assert adjusted["9"] == pytest.approx(0.68)
        assert adjusted["8"] == pytest.approx(0.32)
        assert sum(adjusted.values()) == pytest.approx(1.0)


class TestBuildFallbackEstimate:
    """Fallback estimate structure."""

    def test_no_images(self) -> None:
        estimate = build_fallback_estimate(ImageStats())
        assert estimate.analysis_status == AnalysisStatus.UNABLE
        assert estimate.analysis_warning_code == WarningCode.UNABLE
        assert (estimate.estimated_grade_low, estimate.estimated_grade_high) == (5, 7)
        assert estimate.centering == FALLBACK_CENTERING
        assert estimate.grade_notes == FALLBACK_NOTES

        probs = estimate.grade_probabilities
        assert probs.confidence == Confidence.LOW
        assert probs.psa["7_or_lower"] == pytest.approx(1.0)
        assert probs.bgs["8_or_lower"] == pytest.approx(1.0)

    def test_good_photos(self) -> None:
        stats = build_image_stats([2_000_000] * 4)
        estimate = build_fallback_estimate(stats, reason="Model unavailable")
        probs = estimate.grade_probabilities

        assert (estimate.estimated_grade_low, estimate.estimated_grade_high) == (8, 9)
        assert estimate.analysis_reason == "Model unavailable"
        assert probs.confidence == Confidence.MEDIUM
        assert set(probs.psa) == {"10", "9", "8", "7_or_lower"}
        assert set(probs.bgs) == {"9.5", "9", "8.5", "8_or_lower"}
        assert sum(probs.psa.values()) == pytest.approx(1.0)
        assert sum(probs.bgs.values()) == pytest.approx(1.0)
        assert 0.6 <= probs.psa["9"] <= 0.7
        assert probs.bgs["9"] == pytest.approx(probs.psa["9"])

    def test_is_deterministic(self) -> None:
        stats = build_image_stats([500_000, 700_000])
        assert build_fallback_estimate(stats) == build_fallback_estimate(stats)
