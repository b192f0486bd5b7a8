"""Domain types for grade estimation."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PsaTier(str, Enum):
    PSA_10 = "10"
    PSA_9 = "9"
    PSA_8 = "8"
    PSA_7_OR_LOWER = "7_or_lower"


class BgsTier(str, Enum):
    BGS_9_5 = "9.5"
    BGS_9 = "9"
    BGS_8_5 = "8.5"
    BGS_8_OR_LOWER = "8_or_lower"


# Fixed tier correspondence used whenever BGS buckets are derived from PSA.
PSA_TO_BGS: Dict[PsaTier, BgsTier] = {
    PsaTier.PSA_10: BgsTier.BGS_9_5,
    PsaTier.PSA_9: BgsTier.BGS_9,
    PsaTier.PSA_8: BgsTier.BGS_8_5,
    PsaTier.PSA_7_OR_LOWER: BgsTier.BGS_8_OR_LOWER,
}


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AnalysisStatus(str, Enum):
    OK = "ok"
    LOW_CONFIDENCE = "low_confidence"
    UNABLE = "unable"


class WarningCode(str, Enum):
    PARSE_ERROR = "parse_error"
    LOW_CONFIDENCE = "low_confidence"
    UNABLE = "unable"


class GradeOutcome(BaseModel):
    label: str
    probability: float


class GradeProbabilities(BaseModel):
    """Parallel PSA and BGS distributions. Each mapping sums to 1."""
    psa: Dict[str, float]
    bgs: Dict[str, float]
    confidence: Confidence


class GradeEstimate(BaseModel):
    estimated_grade_low: float
    estimated_grade_high: float
    centering: str
    corners: str
    surface: str
    edges: str
    grade_notes: str
    analysis_status: AnalysisStatus = AnalysisStatus.OK
    analysis_reason: Optional[str] = None
    analysis_warning_code: Optional[WarningCode] = None
    grade_probabilities: Optional[GradeProbabilities] = None


class Evidence(BaseModel):
    centering: str
    corners: str
    surface: str
    edges: str
    grade_notes: str

    @classmethod
    def from_estimate(cls, estimate: GradeEstimate) -> "Evidence":
        return cls(
            centering=estimate.centering,
            corners=estimate.corners,
            surface=estimate.surface,
            edges=estimate.edges,
            grade_notes=estimate.grade_notes,
        )


class ImageStats(BaseModel):
    count: int = 0
    avg_bytes: float = 0.0
    min_bytes: int = 0
    max_bytes: int = 0


class ResolvedImage(BaseModel):
    base64_image: str
    media_type: str
    bytes: int
    source: str  # "url" | "base64"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CardIdentity(CamelModel):
    """Card identity as produced by the identity-extraction collaborator."""
    player: Optional[str] = None
    year: Optional[int] = None
    brand: Optional[str] = None
    set_name: Optional[str] = None
    subset: Optional[str] = None
    sport: Optional[str] = None
    league: Optional[str] = None
    card_number: Optional[str] = None
    rookie: Optional[bool] = None
    parallel: Optional[str] = None
    card_stock: str = "unknown"  # "paper" | "chromium" | "unknown"
    confidence: Confidence = Confidence.LOW
    field_confidence: Dict[str, Confidence] = Field(default_factory=dict)
    sources: Dict[str, str] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)
    evidence_summary: Optional[str] = None


class CardInput(CamelModel):
    """Identity fields a caller already knows; enough to price the card."""
    player_name: str
    year: Optional[str] = None
    set_name: Optional[str] = None
    card_number: Optional[str] = None
    parallel_type: Optional[str] = None
    variation: Optional[str] = None
    insert: Optional[str] = None

    @classmethod
    def from_identity(cls, identity: Optional[CardIdentity]) -> Optional["CardInput"]:
        if identity is None or not identity.player:
            return None
        return cls(
            player_name=identity.player,
            year=str(identity.year) if identity.year else None,
            set_name=identity.set_name,
            card_number=identity.card_number,
            parallel_type=identity.parallel,
        )

    def to_identity(self) -> CardIdentity:
        year = int(self.year) if self.year and self.year.strip().isdigit() else None
        provided = {
            "player": self.player_name,
            "year": year,
            "set_name": self.set_name,
            "card_number": self.card_number,
            "parallel": self.parallel_type,
        }
        known = [name for name, value in provided.items() if value is not None]
        return CardIdentity(
            **provided,
            confidence=Confidence.HIGH,
            field_confidence={name: Confidence.HIGH for name in known},
            sources={name: "user" for name in known},
        )


class GradeCmv(BaseModel):
    """Current market value for one grade tier, built from sold comps."""
    price: Optional[float] = None
    n: int = 0
    method: str = "none"  # "median" | "trimmed_mean" | "none"
    last_sold_at: Optional[str] = None


class GradingOptionValue(BaseModel):
    tiers: Dict[str, GradeCmv]
    ev: float = 0.0
    net_gain: float = 0.0
    roi: float = 0.0


class WorthGradingResult(BaseModel):
    raw: GradeCmv
    psa: GradingOptionValue
    bgs: GradingOptionValue
    best_option: str  # "psa" | "bgs" | "none"
    rating: str  # "strong_yes" | "yes" | "maybe" | "no"
    confidence: Confidence
    explanation: str
