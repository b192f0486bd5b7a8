"""Card identity extraction via the Anthropic Messages API."""

import logging
from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic

from cardgrade.config import settings
from cardgrade.grading.condition_model import first_text, image_blocks
from cardgrade.grading.json_repair import parse_json_with_repair
from cardgrade.grading.models import CardIdentity, Confidence, ResolvedImage

logger = logging.getLogger(__name__)

IDENTITY_PROMPT = """Identify the sports trading card in these photos (front and possibly back).

Return ONLY valid JSON (no prose):
{
  "player": "", "year": 0, "brand": "", "setName": "", "subset": "",
  "sport": "", "league": "", "cardNumber": "", "rookie": false,
  "parallel": "", "cardStock": "paper" | "chromium" | "unknown",
  "confidence": "high" | "medium" | "low",
  "fieldConfidence": { "player": "high", "year": "medium" },
  "warnings": [],
  "evidenceSummary": "one sentence on what text/logos you read"
}

Use null for any field you cannot read. Prefer the copyright year on the back
for "year"."""

IDENTITY_FIELDS = {
    "player": "player",
    "year": "year",
    "brand": "brand",
    "setName": "set_name",
    "subset": "subset",
    "sport": "sport",
    "league": "league",
    "cardNumber": "card_number",
    "rookie": "rookie",
    "parallel": "parallel",
}


class IdentityExtractionError(RuntimeError):
    """The identity model gave no usable answer."""


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _year(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        year = int(str(value).strip()[:4])
    except (TypeError, ValueError):
        return None
    return year if 1860 <= year <= 2100 else None


def _confidence(value: Any, default: Confidence = Confidence.LOW) -> Confidence:
    try:
        return Confidence(value)
    except ValueError:
        return default


def identity_from_payload(payload: Dict[str, Any]) -> CardIdentity:
    """Coerce a loosely-typed model payload into a CardIdentity."""
    fields: Dict[str, Any] = {}
    for key, name in IDENTITY_FIELDS.items():
        value = _blank_to_none(payload.get(key))
        if name == "year":
            value = _year(value)
        elif name == "rookie":
            value = value if isinstance(value, bool) else None
        elif value is not None:
            value = str(value)
        fields[name] = value

    field_confidence = payload.get("fieldConfidence")
    if not isinstance(field_confidence, dict):
        field_confidence = {}
    card_stock = payload.get("cardStock")
    warnings = payload.get("warnings")

    return CardIdentity(
        **fields,
        card_stock=card_stock if card_stock in ("paper", "chromium") else "unknown",
        confidence=_confidence(payload.get("confidence")),
        field_confidence={str(k): _confidence(v) for k, v in field_confidence.items()},
        sources={name: "vision" for name, value in fields.items() if value is not None},
        warnings=[str(w) for w in warnings] if isinstance(warnings, list) else [],
        evidence_summary=_blank_to_none(payload.get("evidenceSummary")),
    )


class IdentityExtractor:
    def __init__(self, client: Optional[AsyncAnthropic] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.identity_model

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not settings.anthropic_api_key:
                raise RuntimeError("ANTHROPIC_API_KEY must be set")
            self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._client

    async def extract(self, images: List[ResolvedImage]) -> CardIdentity:
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=settings.identity_model_max_tokens,
            messages=[{
                "role": "user",
                "content": image_blocks(images) + [{"type": "text", "text": IDENTITY_PROMPT}],
            }],
        )
        text = first_text(message)
        parsed = parse_json_with_repair(text) if text else None
        if parsed is None or not isinstance(parsed.value, dict):
            raise IdentityExtractionError("Could not read card identity from images")

        identity = identity_from_payload(parsed.value)
        logger.info("Identified card: player=%s year=%s set=%s",
                    identity.player, identity.year, identity.set_name)
        return identity
