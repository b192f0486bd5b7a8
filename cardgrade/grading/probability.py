"""Probability distribution engine for grade outcomes.

Every estimate must carry two complete, normalized distributions (PSA and
BGS) no matter how much structure the upstream model returned. This module
is where that guarantee is enforced:

- ``normalize_distribution`` rescales labelled outcomes to sum to 1
- ``distribution_from_range`` turns a textual range ("PSA 8-9") into a
  small deterministic distribution
- ``map_outcomes_to_psa`` / ``map_outcomes_to_bgs`` bucket labelled
  outcomes into the four tiers of each scheme
- ``map_psa_to_bgs`` derives BGS buckets through ``PSA_TO_BGS``
"""

import re
from collections import OrderedDict
from typing import Dict, List, Optional

import numpy as np

from cardgrade.grading.models import (
    PSA_TO_BGS,
    BgsTier,
    Confidence,
    GradeOutcome,
    PsaTier,
)

CONFIDENCE_SHIFT = 0.1
ROUND_DECIMALS = 4

_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_OR_LOWER = re.compile(r"or\s+lower", re.IGNORECASE)

PSA_LABELS = OrderedDict([
    (PsaTier.PSA_10, "PSA 10"),
    (PsaTier.PSA_9, "PSA 9"),
    (PsaTier.PSA_8, "PSA 8"),
    (PsaTier.PSA_7_OR_LOWER, "PSA 7 or lower"),
])


def normalize_distribution(outcomes: List[GradeOutcome]) -> List[GradeOutcome]:
    """Rescale outcomes so probabilities sum to 1.

    Negative, NaN and infinite entries are dropped. Values are rounded to
    four decimals and the rounding remainder goes to the largest bucket.
    """
    kept = [
        outcome for outcome in outcomes
        if np.isfinite(outcome.probability) and outcome.probability >= 0
    ]
    if not kept:
        return []

    probs = np.array([o.probability for o in kept], dtype=np.float64)
    total = probs.sum()
    if total <= 0:
        return [GradeOutcome(label=o.label, probability=0.0) for o in kept]

    rounded = np.round(probs / total, ROUND_DECIMALS)
    diff = round(1.0 - float(rounded.sum()), ROUND_DECIMALS)
    if diff != 0:
        idx = int(np.argmax(rounded))
        rounded[idx] = np.clip(rounded[idx] + diff, 0.0, 1.0)

    return [
        GradeOutcome(label=o.label, probability=float(p))
        for o, p in zip(kept, rounded)
    ]


def normalize_bucket_map(buckets: Dict[str, float]) -> Dict[str, float]:
    total = sum(buckets.values())
    if not total:
        return dict(buckets)
    return {key: value / total for key, value in buckets.items()}


def _format_grade(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.1f}"


def _psa_label(value: float) -> str:
    if value <= 7:
        return PSA_LABELS[PsaTier.PSA_7_OR_LOWER]
    return f"PSA {_format_grade(value)}"


def _toward_half(value: float, delta: float) -> float:
    if value > 0.5:
        return max(0.5, value - delta)
    if value < 0.5:
        return min(0.5, value + delta)
    return value


def _away_from_half(value: float, delta: float) -> float:
    if value > 0.5:
        return min(1.0, value + delta)
    if value < 0.5:
        return max(0.0, value - delta)
    return float(np.clip(0.5 + delta, 0.0, 1.0))


def _apply_confidence(low_share: float, confidence: Optional[str]) -> float:
    if confidence == Confidence.LOW:
        return _toward_half(low_share, CONFIDENCE_SHIFT)
    if confidence == Confidence.HIGH:
        return _away_from_half(low_share, CONFIDENCE_SHIFT)
    return low_share


def _collapse(outcomes: List[GradeOutcome]) -> List[GradeOutcome]:
    totals: "OrderedDict[str, float]" = OrderedDict()
    for outcome in outcomes:
        totals[outcome.label] = totals.get(outcome.label, 0.0) + outcome.probability
    return [GradeOutcome(label=label, probability=p) for label, p in totals.items()]


def _base_low_share(low: float, high: float) -> float:
    if low == 8 and high == 9:
        return 0.35
    if low == 9 and high == 10:
        return 0.7
    return 0.5


def distribution_from_range(
    range_label: str,
    confidence: Optional[str] = None,
) -> List[GradeOutcome]:
    """Map a textual grade range to a two-bucket PSA distribution.

    - 8-9: 0.35 on 8, 0.65 on 9 (low confidence 0.45/0.55, high 0.25/0.75)
    - 9-10: 0.70 on 9, 0.30 on 10 (low 0.60/0.40, high 0.80/0.20)
    - a lone 10 is capped at 0.60, the rest on 9
    - any other lone grade: 0.70 on it, 0.30 on the grade below
    - "PSA 7 or lower" style labels put everything on that tier
    """
    text = (range_label or "").strip()
    if not text:
        return []

    values = [float(v) for v in _NUMBER.findall(text)]
    values = [v for v in values if np.isfinite(v)]
    if not values:
        return []

    low = values[0]
    high = values[1] if len(values) > 1 else values[0]
    if len(values) >= 2:
        low, high = min(low, high), max(low, high)

    if _OR_LOWER.search(text) and len(values) == 1:
        return normalize_distribution([GradeOutcome(label=_psa_label(low), probability=1.0)])

    if low == high:
        if high >= 10:
            return normalize_distribution([
                GradeOutcome(label=PSA_LABELS[PsaTier.PSA_10], probability=0.6),
                GradeOutcome(label=PSA_LABELS[PsaTier.PSA_9], probability=0.4),
            ])
        low_share = _apply_confidence(0.3, confidence)
        return normalize_distribution(_collapse([
            GradeOutcome(label=_psa_label(high - 1), probability=low_share),
            GradeOutcome(label=_psa_label(high), probability=1 - low_share),
        ]))

    low_share = _apply_confidence(_base_low_share(low, high), confidence)
    return normalize_distribution(_collapse([
        GradeOutcome(label=_psa_label(low), probability=low_share),
        GradeOutcome(label=_psa_label(high), probability=1 - low_share),
    ]))


def map_outcomes_to_psa(outcomes: List[GradeOutcome]) -> Dict[str, float]:
    buckets = {tier.value: 0.0 for tier in PsaTier}
    for outcome in outcomes:
        label = outcome.label.upper()
        if "10" in label:
            tier = PsaTier.PSA_10
        elif "9" in label:
            tier = PsaTier.PSA_9
        elif "8" in label:
            tier = PsaTier.PSA_8
        else:
            tier = PsaTier.PSA_7_OR_LOWER
        buckets[tier.value] += outcome.probability
    return normalize_bucket_map(buckets)


def map_outcomes_to_bgs(outcomes: List[GradeOutcome]) -> Dict[str, float]:
    buckets = {tier.value: 0.0 for tier in BgsTier}
    for outcome in outcomes:
        label = outcome.label.upper()
        if "9.5" in label:
            tier = BgsTier.BGS_9_5
        elif "9" in label:
            tier = BgsTier.BGS_9
        elif "8.5" in label:
            tier = BgsTier.BGS_8_5
        else:
            tier = BgsTier.BGS_8_OR_LOWER
        buckets[tier.value] += outcome.probability
    return normalize_bucket_map(buckets)


def map_psa_to_bgs(psa: Dict[str, float]) -> Dict[str, float]:
    return normalize_bucket_map({
        bgs_tier.value: psa.get(psa_tier.value, 0.0)
        for psa_tier, bgs_tier in PSA_TO_BGS.items()
    })


def psa_outcomes(psa: Dict[str, float]) -> List[GradeOutcome]:
    """PSA buckets as labelled outcomes, normalized for display."""
    return normalize_distribution([
        GradeOutcome(label=label, probability=psa.get(tier.value, 0.0))
        for tier, label in PSA_LABELS.items()
    ])
