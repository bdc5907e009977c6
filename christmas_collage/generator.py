"""
generator.py — One Gemini call per scenario: reference photos in, one
Christmas portrait out.

Request layout (single user turn):
  [ref 1 .. ref 4 as inline JPEG bytes]  +  [composed text instruction]
Config: IMAGE response modality, aspect ratio 1:1, image size tier "1K".

No retries here. Any SDK / transport / timeout failure, or a response with no
image part, becomes a GenerationError and the orchestrator substitutes a
fallback tile.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from google import genai
from google.genai import types

from .errors import GenerationError
from .models import EncodedImage, PortraitImage
from .scenarios import Scenario

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-3-pro-image-preview"
DEFAULT_IMAGE_SIZE = "1K"
ASPECT_RATIO = "1:1"
MAX_REFERENCE_IMAGES = 4


class PortraitGenerator(Protocol):
    """Interface for single-scenario portrait generation."""

    def generate(
        self,
        reference_images: Sequence[EncodedImage],
        scenario: Scenario,
    ) -> PortraitImage:
        """Return one generated portrait or raise GenerationError."""


def build_prompt(scenario: Scenario) -> str:
    """Text instruction sent after the reference images."""
    return (
        "Generate a high-quality, photorealistic Christmas-themed baby portrait.\n"
        "Subject: A baby resembling the features in the provided reference images.\n"
        "Style: Professional photography, soft bokeh, warm pastel tones, "
        "magical Christmas atmosphere, sharp focus on eyes.\n"
        f"Scenario: {scenario.text}\n"
        "Ensure the baby's identity (hair, skin tone, general features) is consistent "
        "with the reference photos provided.\n"
        "Output a clean, unframed, full-bleed square image: no borders, no frames, "
        f"no collage. Do not include text or watermarks. Aspect Ratio {ASPECT_RATIO}."
    )


def _reference_parts(reference_images: Sequence[EncodedImage]) -> list:
    parts = []
    for img in list(reference_images)[:MAX_REFERENCE_IMAGES]:
        parts.append(
            types.Part.from_bytes(
                data=base64.b64decode(img.payload),
                mime_type=img.media_type,
            )
        )
    return parts


def extract_image(response: Any) -> Optional[PortraitImage]:
    """
    Return the first inline image part of a generate_content response.

    Raises:
        ValueError: if a string payload is not valid base64.
    """
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline and inline.data:
                data = inline.data
                if isinstance(data, str):
                    data = base64.b64decode(data, validate=True)
                return PortraitImage(data=data, media_type=inline.mime_type or "image/png")
    return None


@dataclass
class GeminiPortraitClient:
    """PortraitGenerator backed by the google-genai SDK."""

    client: Any
    model: str = DEFAULT_MODEL
    image_size: str = DEFAULT_IMAGE_SIZE

    @classmethod
    def create(
        cls,
        api_key: str,
        model: str = DEFAULT_MODEL,
        image_size: str = DEFAULT_IMAGE_SIZE,
        timeout_seconds: float = 120,
    ) -> "GeminiPortraitClient":
        """Create a client with a per-request HTTP timeout."""
        client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
        )
        return cls(client=client, model=model, image_size=image_size)

    def generate(
        self,
        reference_images: Sequence[EncodedImage],
        scenario: Scenario,
    ) -> PortraitImage:
        parts = _reference_parts(reference_images)
        parts.append(types.Part.from_text(text=build_prompt(scenario)))

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=parts,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                    image_config=types.ImageConfig(
                        aspect_ratio=ASPECT_RATIO,
                        image_size=self.image_size,
                    ),
                ),
            )
        except Exception as exc:
            raise GenerationError(
                f"scenario {scenario.index} request failed: {exc}",
                scenario_index=scenario.index,
            ) from exc

        try:
            image = extract_image(response)
        except ValueError as exc:
            raise GenerationError(
                "malformed image payload", scenario_index=scenario.index
            ) from exc
        if image is None:
            raise GenerationError("no image returned", scenario_index=scenario.index)
        logger.debug("Scenario %s generated (%s bytes)", scenario.index, len(image.data))
        return image
