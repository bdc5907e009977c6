"""
models.py — Plain data carried through the collage pipeline.

  RawPhoto        — uploaded file bytes, consumed by the preprocessor
  EncodedImage    — resized JPEG reference, shared read-only by every generation call
  PortraitImage   — one image returned by the generation client
  GeneratedImage  — one collage slot result (real portrait or fallback)
  RunState        — status + progress + results of one generation attempt
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class RawPhoto:
    name: str
    data: bytes
    media_type: str = ""


@dataclass(frozen=True)
class EncodedImage:
    id: str
    display_url: str          # data:image/jpeg;base64,...
    payload: str              # pure base64, sent to the API
    media_type: str
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class PortraitImage:
    data: bytes
    media_type: str = "image/png"


@dataclass(frozen=True)
class GeneratedImage:
    id: str
    display_url: str
    scenario_index: int
    prompt: str
    succeeded: bool
    image_data: Optional[bytes] = field(default=None, repr=False)   # None for fallbacks


class RunStatus(str, Enum):
    IDLE = "IDLE"
    GENERATING = "GENERATING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


@dataclass
class RunState:
    """Mutable state of one generation attempt. Replaced wholesale on reset."""

    status: RunStatus = RunStatus.IDLE
    completed_count: int = 0
    results: List[GeneratedImage] = field(default_factory=list)
    error: str = ""
