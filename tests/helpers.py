"""Builders and stubs shared across test modules."""

import base64
import io
import json
from typing import List, Optional

from PIL import Image

from cardgrade.grading.fallback import build_image_stats
from cardgrade.grading.models import CardIdentity, ResolvedImage
from cardgrade.grading.pipeline import PipelineDependencies


def make_image_bytes(fmt: str = "PNG", size=(32, 44), color=(200, 30, 30)) -> bytes:
    """Encode a small solid-colour image with Pillow."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_data_url(fmt: str = "PNG", mime: str = "image/png") -> str:
    payload = base64.b64encode(make_image_bytes(fmt)).decode("ascii")
    return f"data:{mime};base64,{payload}"


GOOD_MODEL_JSON = json.dumps({
    "status": "ok",
    "reason": "Clear photos of front and back",
    "confidence": "medium",
    "estimated_grade_low": 8,
    "estimated_grade_high": 9,
    "centering": "55/45 left to right",
    "corners": "Sharp, one minor soft corner on the back",
    "surface": "Clean",
    "edges": "Minor chipping on the bottom edge",
    "grade_notes": "Solid PSA 8-9 candidate",
    "probabilities": [
        {"label": "PSA 10", "probability": 0.1},
        {"label": "PSA 9", "probability": 0.5},
        {"label": "PSA 8", "probability": 0.3},
        {"label": "PSA 7 or lower", "probability": 0.1},
    ],
})


class StubCollaborators:
    """Records calls and returns canned results for the pipeline."""

    def __init__(self, identity: CardIdentity, model_text: Optional[str] = GOOD_MODEL_JSON):
        self.identity = identity
        self.model_text = model_text
        self.resolve_calls = 0
        self.identity_calls = 0
        self.model_calls = 0

    async def resolve_images(self, refs: List[str]):
        self.resolve_calls += 1
        images = [
            ResolvedImage(base64_image="AAAA", media_type="image/jpeg", bytes=900_000, source="url")
            for _ in refs
        ]
        return images, build_image_stats([img.bytes for img in images])

    async def extract_identity(self, images):
        self.identity_calls += 1
        return self.identity

    async def invoke_condition_model(self, images):
        self.model_calls += 1
        return self.model_text

    def dependencies(self, **overrides) -> PipelineDependencies:
        fields = dict(
            resolve_images=self.resolve_images,
            extract_identity=self.extract_identity,
            invoke_condition_model=self.invoke_condition_model,
        )
        fields.update(overrides)
        return PipelineDependencies(**fields)
