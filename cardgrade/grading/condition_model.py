"""Condition assessment via the Anthropic Messages API."""

import logging
from typing import Any, Dict, List, Optional

from anthropic import AsyncAnthropic

from cardgrade.config import settings
from cardgrade.grading.models import ResolvedImage

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional sports trading card grader who reasons like a PSA, BGS, "
    "SGC or CGC grader. Evaluate the type, severity, quantity and location of every "
    "defect on both the front and the back of the card, and their combined impact on "
    "the likely grade."
)

USER_PROMPT = """Analyze these photos of the SAME raw (unslabbed) sports trading card and estimate its grade.

Evaluate every image. Defects on the back count as much as defects on the front.
For each defect give a severity: minor, moderate or major.

Inspect:
1. Centering (front): left/right and top/bottom ratios, e.g. "55/45".
2. Corners (front and back): whitening, dings, softness, fraying.
3. Surface (front and back): print lines, scratches, scuffs, dents, stains, fingerprints.
4. Edges (front and back): chipping, rough cuts, whitening.

Defects compound: several minor defects approximate one moderate defect, and any
major defect caps the grade. Any confirmed defect should reduce the PSA 10 share.

Use "low_confidence" when photos are blurry, poorly lit, cropped, front-only, or
when a defect cannot be told apart from a photo artifact. Be conservative and
give a range (e.g. 7-9) that reflects your uncertainty.

Return ONLY valid JSON with this structure (no prose):
{
  "status": "ok" | "low_confidence" | "unable",
  "reason": "short reason",
  "confidence": "high" | "medium" | "low",
  "estimated_grade_low": 0,
  "estimated_grade_high": 0,
  "centering": "",
  "corners": "",
  "surface": "",
  "edges": "",
  "grade_notes": "",
  "probabilities": [
    { "label": "PSA 10", "probability": 0.0 },
    { "label": "PSA 9", "probability": 0.0 },
    { "label": "PSA 8", "probability": 0.0 },
    { "label": "PSA 7 or lower", "probability": 0.0 }
  ],
  "bgs_probabilities": [
    { "label": "BGS 9.5", "probability": 0.0 },
    { "label": "BGS 9", "probability": 0.0 },
    { "label": "BGS 8.5", "probability": 0.0 },
    { "label": "BGS 8 or lower", "probability": 0.0 }
  ]
}

Each probability array must sum to 1.0. If the status is low_confidence or unable,
still return conservative probabilities weighted toward lower grades."""


def image_blocks(images: List[ResolvedImage]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": image.media_type,
                "data": image.base64_image,
            },
        }
        for image in images
    ]


def first_text(message: Any) -> Optional[str]:
    for block in getattr(message, "content", None) or []:
        if getattr(block, "type", None) == "text":
            return block.text
    return None


class ConditionModelClient:
    """Invokes the condition model and returns its raw text (or None)."""

    def __init__(self, client: Optional[AsyncAnthropic] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.grade_model

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not settings.anthropic_api_key:
                raise RuntimeError("ANTHROPIC_API_KEY must be set")
            self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        return self._client

    async def invoke(self, images: List[ResolvedImage]) -> Optional[str]:
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=settings.grade_model_max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": image_blocks(images) + [{"type": "text", "text": USER_PROMPT}],
            }],
        )
        text = first_text(message)
        logger.debug("Condition model returned %s chars", len(text) if text else 0)
        return text
