"""Turn the condition model's free-form text into a validated GradeEstimate."""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cardgrade.grading.fallback import build_fallback_estimate
from cardgrade.grading.json_repair import parse_json_with_repair
from cardgrade.grading.models import (
    AnalysisStatus,
    Confidence,
    Evidence,
    GradeEstimate,
    GradeOutcome,
    GradeProbabilities,
    ImageStats,
    WarningCode,
)
from cardgrade.grading.probability import (
    distribution_from_range,
    map_outcomes_to_bgs,
    map_outcomes_to_psa,
    map_psa_to_bgs,
    normalize_distribution,
    psa_outcomes,
)

logger = logging.getLogger(__name__)

NO_RESPONSE_REASON = "No response from condition model."
UNPARSEABLE_REASON = "Unable to parse model response."
INCOMPLETE_REASON = "Fallback estimate used due to incomplete data."


@dataclass
class ModelParseResult:
    estimate: GradeEstimate
    probabilities: Optional[List[GradeOutcome]]
    evidence: Evidence
    preliminary_range: Optional[str]


def _status(value: Any) -> AnalysisStatus:
    try:
        return AnalysisStatus(value)
    except ValueError:
        return AnalysisStatus.OK


def _confidence(value: Any) -> Optional[Confidence]:
    try:
        return Confidence(value)
    except ValueError:
        return None


def _to_number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    if not isinstance(value, (int, float, str)):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def _to_text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _outcome_array(value: Any) -> Optional[List[GradeOutcome]]:
    """Validate a model probability array; percentages are auto-detected.

    Returns None when the array is missing, empty, or all zero.
    """
    if not isinstance(value, list):
        return None

    raw = []
    for item in value:
        if not isinstance(item, dict):
            continue
        label = item.get("label")
        probability = _to_number(item.get("probability"), math.nan)
        if isinstance(label, str) and label and math.isfinite(probability):
            raw.append((label, probability))
    if not raw:
        return None

    uses_percent = any(p > 1 for _, p in raw)
    scaled = [
        GradeOutcome(
            label=label,
            probability=min(1.0, max(0.0, p / 100 if uses_percent else p)),
        )
        for label, p in raw
    ]
    outcomes = normalize_distribution(scaled)
    if not any(o.probability > 0 for o in outcomes):
        return None
    return outcomes


def build_range_label(low: float, high: float) -> Optional[str]:
    if not (math.isfinite(low) and math.isfinite(high)):
        return None

    def fmt(value: float) -> str:
        return str(int(value)) if float(value).is_integer() else f"{value:.1f}"

    if low == high:
        return f"PSA {fmt(low)}"
    return f"PSA {fmt(low)}-{fmt(high)}"


def build_grade_estimate(
    result: Dict[str, Any],
    image_stats: ImageStats,
    repaired: bool,
) -> GradeEstimate:
    status = _status(result.get("status"))
    reason = result.get("reason") if isinstance(result.get("reason"), str) else None

    if status == AnalysisStatus.UNABLE:
        return build_fallback_estimate(
            image_stats,
            status=status,
            reason=reason,
            warning_code=WarningCode.UNABLE,
        )

    fallback = build_fallback_estimate(
        image_stats,
        status=AnalysisStatus.UNABLE,
        reason=INCOMPLETE_REASON,
        warning_code=WarningCode.PARSE_ERROR,
    )

    est_low = _to_number(result.get("estimated_grade_low"), fallback.estimated_grade_low)
    est_high = _to_number(result.get("estimated_grade_high"), fallback.estimated_grade_high)
    low, high = min(est_low, est_high), max(est_low, est_high)

    if repaired:
        warning_code = WarningCode.PARSE_ERROR
    elif status == AnalysisStatus.LOW_CONFIDENCE:
        warning_code = WarningCode.LOW_CONFIDENCE
    else:
        warning_code = None

    if status == AnalysisStatus.LOW_CONFIDENCE:
        confidence = Confidence.LOW
    else:
        confidence = (
            _confidence(result.get("confidence"))
            or fallback.grade_probabilities.confidence
        )

    psa_given = _outcome_array(result.get("probabilities"))
    bgs_given = _outcome_array(result.get("bgs_probabilities"))
    if psa_given:
        psa = map_outcomes_to_psa(psa_given)
        bgs = map_outcomes_to_bgs(bgs_given) if bgs_given else map_psa_to_bgs(psa)
    else:
        psa = map_outcomes_to_psa(
            distribution_from_range(build_range_label(low, high) or "", confidence)
        )
        bgs = map_psa_to_bgs(psa)

    return GradeEstimate(
        estimated_grade_low=low,
        estimated_grade_high=high,
        centering=_to_text(result.get("centering"), fallback.centering),
        corners=_to_text(result.get("corners"), fallback.corners),
        surface=_to_text(result.get("surface"), fallback.surface),
        edges=_to_text(result.get("edges"), fallback.edges),
        grade_notes=_to_text(result.get("grade_notes"), fallback.grade_notes),
        analysis_status=status,
        analysis_reason=reason,
        analysis_warning_code=warning_code,
        grade_probabilities=GradeProbabilities(psa=psa, bgs=bgs, confidence=confidence),
    )


def _result_for(estimate: GradeEstimate) -> ModelParseResult:
    probabilities = None
    if estimate.grade_probabilities is not None:
        probabilities = psa_outcomes(estimate.grade_probabilities.psa)
    return ModelParseResult(
        estimate=estimate,
        probabilities=probabilities,
        evidence=Evidence.from_estimate(estimate),
        preliminary_range=build_range_label(
            estimate.estimated_grade_low, estimate.estimated_grade_high
        ),
    )


def parse_model_output(
    model_text: Optional[str],
    image_stats: ImageStats,
) -> ModelParseResult:
    if not model_text:
        return _result_for(build_fallback_estimate(
            image_stats,
            status=AnalysisStatus.UNABLE,
            reason=NO_RESPONSE_REASON,
            warning_code=WarningCode.UNABLE,
        ))

    parsed = parse_json_with_repair(model_text)
    if parsed is None or not isinstance(parsed.value, dict):
        logger.warning("Condition model output was not a JSON object (%d chars)", len(model_text))
        return _result_for(build_fallback_estimate(
            image_stats,
            status=AnalysisStatus.UNABLE,
            reason=UNPARSEABLE_REASON,
            warning_code=WarningCode.PARSE_ERROR,
        ))

    if parsed.warning:
        logger.info("Condition model output needed JSON repair")
    return _result_for(build_grade_estimate(parsed.value, image_stats, parsed.warning))
