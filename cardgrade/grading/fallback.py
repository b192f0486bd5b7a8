"""Conservative fallback estimate built from image statistics alone.

Used whenever the condition model gives no usable signal. The only
variable input is photo quality (image count and average byte size), and
the result never claims more than medium confidence.
"""

from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from cardgrade.grading.models import (
    AnalysisStatus,
    Confidence,
    GradeEstimate,
    GradeProbabilities,
    ImageStats,
    PsaTier,
    WarningCode,
)
from cardgrade.grading.probability import (
    distribution_from_range,
    map_outcomes_to_psa,
    map_psa_to_bgs,
    normalize_bucket_map,
)

# Average image size at which the size component of photo quality saturates.
FULL_QUALITY_BYTES = 1.2 * 1024 * 1024
MAX_JITTER = 0.05

FALLBACK_CENTERING = "Image quality limits a precise centering read; estimate is conservative."
FALLBACK_CORNERS = "Corner detail is partially obscured; estimate reflects potential wear."
FALLBACK_SURFACE = "Surface clarity is limited; estimate assumes potential defects."
FALLBACK_EDGES = "Edges are difficult to confirm at this resolution; estimate is cautious."
FALLBACK_NOTES = (
    "Conservative probability estimate due to limited clarity or uncertainty in the analysis."
)


def build_image_stats(sizes: Iterable[int]) -> ImageStats:
    arr = np.asarray(list(sizes), dtype=np.float64)
    if arr.size == 0:
        return ImageStats()
    return ImageStats(
        count=int(arr.size),
        avg_bytes=float(arr.mean()),
        min_bytes=int(arr.min()),
        max_bytes=int(arr.max()),
    )


def photo_quality(stats: ImageStats) -> float:
    if stats.count == 0:
        return 0.35
    count_score = np.clip((stats.count - 1) / 4, 0.0, 1.0)
    size_score = np.clip(stats.avg_bytes / FULL_QUALITY_BYTES, 0.0, 1.0)
    return float(np.clip(0.45 * count_score + 0.55 * size_score, 0.0, 1.0))


def confidence_for_quality(quality: float) -> Confidence:
    # Capped at medium: a fallback never claims high confidence.
    if quality >= 0.45:
        return Confidence.MEDIUM
    return Confidence.LOW


def range_for_quality(quality: float) -> Tuple[int, int]:
    if quality >= 0.8:
        return 8, 9
    if quality >= 0.6:
        return 7, 9
    if quality >= 0.4:
        return 6, 8
    return 5, 7


def jitter_from_stats(stats: ImageStats) -> float:
    """Deterministic offset in [-0.04, 0.04] derived from the image stats."""
    seed = round(stats.avg_bytes) + stats.count * 97 + round(stats.max_bytes / 1024)
    value = np.sin(seed) * 10000
    fraction = value - np.floor(value)
    return float((fraction - 0.5) * 0.08)


def _shift(psa: Dict[str, float], up: str, down: str, jitter: float, delta: float) -> None:
    if jitter > 0:
        moved = min(delta, psa[down])
        psa[down] -= moved
        psa[up] += moved
    else:
        moved = min(delta, psa[up])
        psa[up] -= moved
        psa[down] += moved


def apply_jitter(psa: Dict[str, float], jitter: float) -> Dict[str, float]:
    if jitter == 0:
        return psa
    adjusted = dict(psa)
    delta = float(np.clip(abs(jitter), 0.0, MAX_JITTER))

    p9, p8, p7 = PsaTier.PSA_9.value, PsaTier.PSA_8.value, PsaTier.PSA_7_OR_LOWER.value
    if adjusted[p9] > 0 and adjusted[p8] > 0:
        _shift(adjusted, p9, p8, jitter, delta)
    elif adjusted[p8] > 0 and adjusted[p7] > 0:
        _shift(adjusted, p8, p7, jitter, delta)
    return normalize_bucket_map(adjusted)


def build_fallback_estimate(
    image_stats: ImageStats,
    status: AnalysisStatus = AnalysisStatus.UNABLE,
    reason: Optional[str] = None,
    warning_code: Optional[WarningCode] = WarningCode.UNABLE,
) -> GradeEstimate:
    quality = photo_quality(image_stats)
    confidence = confidence_for_quality(quality)
    low, high = range_for_quality(quality)

    outcomes = distribution_from_range(f"PSA {low}-{high}", confidence)
    psa = apply_jitter(map_outcomes_to_psa(outcomes), jitter_from_stats(image_stats))

    return GradeEstimate(
        estimated_grade_low=low,
        estimated_grade_high=high,
        centering=FALLBACK_CENTERING,
        corners=FALLBACK_CORNERS,
        surface=FALLBACK_SURFACE,
        edges=FALLBACK_EDGES,
        grade_notes=FALLBACK_NOTES,
        analysis_status=status,
        analysis_reason=reason,
        analysis_warning_code=warning_code,
        grade_probabilities=GradeProbabilities(
            psa=psa,
            bgs=map_psa_to_bgs(psa),
            confidence=confidence,
        ),
    )
