"""Image reference validation and resolution.

Requests carry up to eight image references, each either an HTTPS URL or a
``data:image/...;base64,`` URL. ``validate_image_references`` runs the cheap
checks synchronously so bad requests are rejected before a job exists;
``ImageResolver.resolve`` then fetches/decodes the bytes inside the job.

Usage:
    resolver = ImageResolver()
    images, stats = await resolver.resolve(["https://.../front.jpg"])
"""

import base64
import binascii
import io
import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from cardgrade.config import settings
from cardgrade.grading.fallback import build_image_stats
from cardgrade.grading.models import ImageStats, ResolvedImage

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")

# Pillow format name -> mime type
PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}

_DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)


class ImageValidationError(ValueError):
    """An image reference was rejected (type, size, count, or format)."""


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.1f}MB"


def _max_mb(max_bytes: int) -> str:
    return f"{max_bytes / 1024 / 1024:.0f}MB"


def is_data_url(ref: str) -> bool:
    return ref.startswith("data:image/")


def parse_data_url(ref: str, max_bytes: int) -> Tuple[str, str, int]:
    """Validate a data URL. Returns (mime_type, base64_payload, estimated_bytes)."""
    match = _DATA_URL.match(ref)
    if not match:
        raise ImageValidationError("Invalid base64 data URL format")

    mime_type, payload = match.group(1), match.group(2)
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ImageValidationError(
            f"Invalid image type: {mime_type}. Allowed: {', '.join(ALLOWED_MIME_TYPES)}"
        )

    size = (len(payload) * 3 + 3) // 4
    if size > max_bytes:
        raise ImageValidationError(f"Image too large: {_mb(size)}. Maximum: {_max_mb(max_bytes)}")
    return mime_type, payload, size


def validate_image_url(ref: str) -> None:
    if not ref.startswith("https://"):
        raise ImageValidationError("Image URL must use HTTPS")
    parsed = urlparse(ref)
    if not parsed.netloc or " " in ref:
        raise ImageValidationError("Invalid URL format")


def validate_image_references(
    refs: List[str],
    max_images: Optional[int] = None,
    max_bytes: Optional[int] = None,
) -> None:
    """Reject a request's image list before any job is created."""
    max_images = max_images or settings.max_images_per_job
    max_bytes = max_bytes or settings.max_image_bytes

    if not refs:
        raise ImageValidationError("Missing image URL")
    if len(refs) > max_images:
        raise ImageValidationError(f"Too many images: maximum {max_images} allowed")

    for index, ref in enumerate(refs, start=1):
        try:
            if is_data_url(ref):
                parse_data_url(ref, max_bytes)
            else:
                validate_image_url(ref)
        except ImageValidationError as exc:
            raise ImageValidationError(f"Image {index}: {exc}") from exc


def sniff_media_type(data: bytes) -> str:
    """Decode the image header with Pillow and return its mime type."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageValidationError("Image data could not be decoded") from exc

    mime_type = PIL_FORMATS.get(fmt or "")
    if mime_type is None:
        raise ImageValidationError(
            f"Invalid image type: {fmt}. Allowed: {', '.join(ALLOWED_MIME_TYPES)}"
        )
    return mime_type


class ImageResolver:
    """Fetches and decodes image references into ``ResolvedImage`` objects."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_images: Optional[int] = None,
        max_bytes: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._client = client
        self.max_images = max_images or settings.max_images_per_job
        self.max_bytes = max_bytes or settings.max_image_bytes
        self.timeout_seconds = timeout_seconds or settings.image_fetch_timeout_seconds

    async def resolve(self, refs: List[str]) -> Tuple[List[ResolvedImage], ImageStats]:
        validate_image_references(refs, self.max_images, self.max_bytes)

        resolved: List[ResolvedImage] = []
        for index, ref in enumerate(refs, start=1):
            try:
                if is_data_url(ref):
                    image = self._decode_data_url(ref)
                else:
                    image = await self._fetch(ref)
            except ImageValidationError as exc:
                raise ImageValidationError(f"Image {index}: {exc}") from exc
            resolved.append(image)

        return resolved, build_image_stats([img.bytes for img in resolved])

    def _decode_data_url(self, ref: str) -> ResolvedImage:
        _, payload, _ = parse_data_url(ref, self.max_bytes)
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ImageValidationError("Invalid base64 image data") from exc

        return ResolvedImage(
            base64_image=payload,
            media_type=sniff_media_type(data),
            bytes=len(data),
            source="base64",
        )

    async def _fetch(self, url: str) -> ResolvedImage:
        try:
            if self._client is not None:
                data = await self._download(self._client, url)
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_seconds),
                    follow_redirects=True,
                ) as client:
                    data = await self._download(client, url)
        except httpx.HTTPError as exc:
            raise ImageValidationError("Image URL is not accessible") from exc

        return ResolvedImage(
            base64_image=base64.b64encode(data).decode("ascii"),
            media_type=sniff_media_type(data),
            bytes=len(data),
            source="url",
        )

    async def _download(self, client: httpx.AsyncClient, url: str) -> bytes:
        """Stream the body, stopping as soon as it exceeds ``max_bytes``."""
        async with client.stream("GET", url) as response:
            if response.status_code >= 400:
                raise ImageValidationError("Image URL is not accessible")

            content_type = response.headers.get("content-type", "").split(";")[0].strip()
            if content_type not in ALLOWED_MIME_TYPES:
                raise ImageValidationError(
                    f"Invalid image type: {content_type or 'unknown'}. "
                    f"Allowed: {', '.join(ALLOWED_MIME_TYPES)}"
                )

            declared = response.headers.get("content-length", "").strip()
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise ImageValidationError(
                    f"Image is {_mb(int(declared))}. Maximum: {_max_mb(self.max_bytes)}"
                )

            data = bytearray()
            async for chunk in response.aiter_bytes():
                data.extend(chunk)
                if len(data) > self.max_bytes:
                    raise ImageValidationError(f"Image too large. Maximum: {_max_mb(self.max_bytes)}")
        return bytes(data)
