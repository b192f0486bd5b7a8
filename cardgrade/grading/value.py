"""Post-grading value: is the card worth sending to a grader?

``compute_worth_grading`` folds a grade probability distribution into an
expected value per grading company, then nets out the raw price and the
grading fee. ``PostGradingValueService`` feeds it with market values built
from an injected price source.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import numpy as np

from cardgrade.grading.models import (
    BgsTier,
    CardInput,
    Confidence,
    GradeCmv,
    GradeEstimate,
    GradeProbabilities,
    GradingOptionValue,
    PsaTier,
    WorthGradingResult,
)
from cardgrade.grading.probability import normalize_bucket_map

logger = logging.getLogger(__name__)

# Rating thresholds: (min net gain, min ROI)
STRONG_YES = (60.0, 0.25)
YES = (30.0, 0.15)
MAYBE_NET_GAIN = 10.0
MAYBE_ROI = 0.08

MIN_RAW_COMPS = 5
MIN_GRADED_COMPS = 3
TRIM_PCT = 0.15

# Tier -> search grade label. None is the raw (ungraded) card.
GRADE_KEYS: Dict[str, Optional[str]] = {
    "raw": None,
    "psa10": "PSA 10",
    "psa9": "PSA 9",
    "psa8": "PSA 8",
    "bgs95": "BGS 9.5",
    "bgs9": "BGS 9",
    "bgs85": "BGS 8.5",
}

# (card, grade label or None for raw, window days) -> recent sold prices
PriceLookup = Callable[[CardInput, Optional[str], int], Awaitable[List[float]]]


def build_grade_cmv(prices: List[float], last_sold_at: Optional[str] = None) -> GradeCmv:
    """Median with three or more comps, otherwise a trimmed mean."""
    arr = np.asarray([p for p in prices if np.isfinite(p)], dtype=np.float64)
    if arr.size >= 3:
        return GradeCmv(
            price=round(float(np.median(arr)), 2),
            n=int(arr.size),
            method="median",
            last_sold_at=last_sold_at,
        )
    if arr.size > 0:
        ordered = np.sort(arr)
        trim = int(ordered.size * TRIM_PCT)
        kept = ordered[trim:ordered.size - trim]
        if kept.size:
            return GradeCmv(
                price=round(float(kept.mean()), 2),
                n=int(arr.size),
                method="trimmed_mean",
                last_sold_at=last_sold_at,
            )
    return GradeCmv(price=None, n=int(arr.size), method="none", last_sold_at=last_sold_at)


def _pick_price(
    target: float,
    grade_prices: Dict[float, Optional[float]],
    raw_price: float,
) -> Tuple[float, bool]:
    """Price for a tier, borrowing from the nearest priced tier when missing."""
    direct = grade_prices.get(target)
    if direct is not None:
        return direct, False
    for grade in sorted(grade_prices, key=lambda g: abs(g - target)):
        if grade_prices[grade] is not None:
            return grade_prices[grade], True
    return raw_price, True


def compute_rating(net_gain: float, roi: float) -> str:
    if net_gain >= STRONG_YES[0] and roi >= STRONG_YES[1]:
        return "strong_yes"
    if net_gain >= YES[0] and roi >= YES[1]:
        return "yes"
    if net_gain >= MAYBE_NET_GAIN or roi >= MAYBE_ROI:
        return "maybe"
    return "no"


def _explanation(option: str, rating: str, net_gain: float, roi: float) -> str:
    if option == "none":
        return "Insufficient comps to estimate post-grading value."
    if rating == "no":
        return "Not worth grading: expected net gain is low after fees."
    gain = f"+${net_gain:.0f}" if net_gain >= 0 else f"-${abs(net_gain):.0f}"
    return f"{option.upper()} looks best: expected {gain} net gain ({roi * 100:.0f}% ROI) after fees."


def compute_worth_grading(
    raw: GradeCmv,
    psa: Dict[str, GradeCmv],
    bgs: Dict[str, GradeCmv],
    probabilities: GradeProbabilities,
    estimator_confidence: Confidence = Confidence.MEDIUM,
    fees: Optional[Dict[str, float]] = None,
) -> WorthGradingResult:
    """Expected value, net gain and ROI for PSA and BGS submissions.

    ``psa`` is keyed by "10"/"9"/"8" and ``bgs`` by "9.5"/"9"/"8.5". The
    lowest bucket of each scheme is valued at the raw price.
    """
    fees = fees or {"psa": 40.0, "bgs": 55.0}

    if raw.price is None:
        return WorthGradingResult(
            raw=raw,
            psa=GradingOptionValue(tiers=psa),
            bgs=GradingOptionValue(tiers=bgs),
            best_option="none",
            rating="no",
            confidence=Confidence.LOW,
            explanation="Insufficient raw comps to estimate post-grading value.",
        )

    raw_price = raw.price
    psa_prices = {float(tier): cmv.price for tier, cmv in psa.items()}
    bgs_prices = {float(tier): cmv.price for tier, cmv in bgs.items()}

    psa_picks = {tier: _pick_price(float(tier), psa_prices, raw_price) for tier in psa}
    bgs_picks = {tier: _pick_price(float(tier), bgs_prices, raw_price) for tier in bgs}

    psa_ev = probabilities.psa.get(PsaTier.PSA_7_OR_LOWER.value, 0.0) * raw_price + sum(
        probabilities.psa.get(tier, 0.0) * price for tier, (price, _) in psa_picks.items()
    )
    bgs_ev = probabilities.bgs.get(BgsTier.BGS_8_OR_LOWER.value, 0.0) * raw_price + sum(
        probabilities.bgs.get(tier, 0.0) * price for tier, (price, _) in bgs_picks.items()
    )

    psa_net = psa_ev - raw_price - fees["psa"]
    bgs_net = bgs_ev - raw_price - fees["bgs"]
    psa_roi = psa_net / (raw_price + fees["psa"]) if raw_price + fees["psa"] > 0 else 0.0
    bgs_roi = bgs_net / (raw_price + fees["bgs"]) if raw_price + fees["bgs"] > 0 else 0.0

    if psa_net >= bgs_net:
        best_option, best_net, best_roi, best_tiers = "psa", psa_net, psa_roi, psa
    else:
        best_option, best_net, best_roi, best_tiers = "bgs", bgs_net, bgs_roi, bgs

    confidence = Confidence(estimator_confidence)
    best_comps = max((cmv.n for cmv in best_tiers.values()), default=0)
    if raw.n < MIN_RAW_COMPS or best_comps < MIN_GRADED_COMPS:
        confidence = Confidence.LOW

    borrowed = any(used for _, used in list(psa_picks.values()) + list(bgs_picks.values()))
    if borrowed and confidence == Confidence.HIGH:
        confidence = Confidence.MEDIUM

    rating = compute_rating(best_net, best_roi)
    if confidence == Confidence.LOW and rating != "no":
        rating = "maybe"

    return WorthGradingResult(
        raw=raw,
        psa=GradingOptionValue(
            tiers=psa, ev=round(psa_ev, 2), net_gain=round(psa_net, 2), roi=round(psa_roi, 3),
        ),
        bgs=GradingOptionValue(
            tiers=bgs, ev=round(bgs_ev, 2), net_gain=round(bgs_net, 2), roi=round(bgs_roi, 3),
        ),
        best_option=best_option,
        rating=rating,
        confidence=confidence,
        explanation=_explanation(best_option, rating, best_net, best_roi),
    )


def normalize_probabilities(probabilities: GradeProbabilities) -> GradeProbabilities:
    return GradeProbabilities(
        psa=normalize_bucket_map(probabilities.psa),
        bgs=normalize_bucket_map(probabilities.bgs),
        confidence=probabilities.confidence,
    )


def card_fingerprint(card: CardInput) -> str:
    parts = [
        card.year, card.set_name, card.player_name, card.variation,
        card.card_number, card.parallel_type, card.insert,
    ]
    return " ".join(p.strip().lower() for p in parts if p and p.strip())


class PostGradingValueService:
    """Price a card at each tier and compute the worth-grading result.

    Market values are cached in memory per card fingerprint and tier.
    """

    def __init__(
        self,
        price_lookup: PriceLookup,
        fees: Optional[Dict[str, float]] = None,
        window_days: int = 90,
        cache_ttl_seconds: float = 3600.0,
    ):
        self._price_lookup = price_lookup
        self._fees = fees or {"psa": 40.0, "bgs": 55.0}
        self._window_days = window_days
        self._cache_ttl = cache_ttl_seconds
        self._cache: Dict[str, Tuple[float, GradeCmv]] = {}

    def evict_expired(self, now: Optional[float] = None) -> int:
        """Drop cached market values older than the cache TTL."""
        now = time.monotonic() if now is None else now
        stale = [
            key for key, (stored_at, _) in self._cache.items()
            if now - stored_at >= self._cache_ttl
        ]
        for key in stale:
            del self._cache[key]
        return len(stale)

    async def fetch_grade_cmv(self, card: CardInput, grade_key: str) -> GradeCmv:
        key = f"{card_fingerprint(card)}|{grade_key}|{self._window_days}d"
        now = time.monotonic()
        hit = self._cache.get(key)
        if hit and now - hit[0] < self._cache_ttl:
            return hit[1]

        prices = await self._price_lookup(card, GRADE_KEYS[grade_key], self._window_days)
        cmv = build_grade_cmv(prices)
        self._cache[key] = (now, cmv)
        return cmv

    async def __call__(self, card: CardInput, grade_estimate: GradeEstimate) -> WorthGradingResult:
        if grade_estimate.grade_probabilities is None:
            raise ValueError("Grade estimate has no probabilities")
        self.evict_expired()
        probabilities = normalize_probabilities(grade_estimate.grade_probabilities)

        keys = list(GRADE_KEYS)
        cmvs = await asyncio.gather(*(self.fetch_grade_cmv(card, k) for k in keys))
        by_key = dict(zip(keys, cmvs))
        logger.info(
            "Priced %s: raw=%s n=%d", card.player_name, by_key["raw"].price, by_key["raw"].n,
        )

        return compute_worth_grading(
            by_key["raw"],
            {"10": by_key["psa10"], "9": by_key["psa9"], "8": by_key["psa8"]},
            {"9.5": by_key["bgs95"], "9": by_key["bgs9"], "8.5": by_key["bgs85"]},
            probabilities,
            grade_estimate.grade_probabilities.confidence,
            self._fees,
        )
