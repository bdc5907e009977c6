"""
session.py — Owns the RunState of one user's collage and walks it through

  IDLE ──generate()──▶ GENERATING ──▶ COMPLETE
                                  └─▶ FAILED      (unexpected orchestration error)
  any ──reset()──▶ IDLE (fresh RunState)

Gates applied before any network call:
  - 3 to 10 photos per upload
  - an API key must be available (requested once, then re-checked)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .credentials import CredentialProvider
from .errors import DecodeError, MissingCredentialError, RunError, UploadError
from .models import EncodedImage, GeneratedImage, RawPhoto, RunState, RunStatus
from .orchestrator import CollageOrchestrator, ProgressCallback
from .preprocessor import JPEG_QUALITY, MAX_DIMENSION, preprocess_batch
from .scenarios import SCENARIO_COUNT

logger = logging.getLogger(__name__)

MIN_PHOTOS = 3
MAX_PHOTOS = 10


def check_upload_count(count: int) -> None:
    """Raise UploadError if `count` is outside MIN_PHOTOS..MAX_PHOTOS."""
    if count < MIN_PHOTOS:
        raise UploadError(f"Please select at least {MIN_PHOTOS} photos for best results.")
    if count > MAX_PHOTOS:
        raise UploadError(f"Please select at most {MAX_PHOTOS} photos.")


@dataclass
class CollageSession:
    orchestrator: CollageOrchestrator
    credentials: CredentialProvider
    max_dimension: int = MAX_DIMENSION
    quality: int = JPEG_QUALITY
    state: RunState = field(default_factory=RunState)

    @property
    def progress_percent(self) -> int:
        return round(self.state.completed_count * 100 / SCENARIO_COUNT)

    def prepare(self, photos: Sequence[RawPhoto]) -> Tuple[List[EncodedImage], List[DecodeError]]:
        """
        Apply the upload gate and preprocess every photo.

        Unreadable files are returned as DecodeErrors alongside the usable
        images. Raises UploadError if the count is out of range or nothing
        could be decoded.
        """
        check_upload_count(len(photos))
        encoded, failures = preprocess_batch(
            photos, max_dimension=self.max_dimension, quality=self.quality
        )
        if not encoded:
            raise UploadError("None of the selected files could be read as an image.")
        return encoded, failures

    def ensure_credential(self) -> None:
        if self.credentials.has_credential():
            return
        self.credentials.request_credential()
        if not self.credentials.has_credential():
            raise MissingCredentialError("API Key is required to generate images.")

    def generate(
        self,
        reference_images: Sequence[EncodedImage],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[GeneratedImage]:
        if self.state.status is RunStatus.GENERATING:
            raise RunError("A generation run is already in progress.")

        # State stays IDLE if the key is missing: nothing has started.
        self.ensure_credential()

        self.state = RunState(status=RunStatus.GENERATING)
        state = self.state

        def _progress(count: int) -> None:
            state.completed_count = count
            if on_progress is not None:
                on_progress(count)

        try:
            results = self.orchestrator.run(reference_images, on_progress=_progress)
        except MissingCredentialError:
            self.state = RunState()
            raise
        except Exception as exc:
            logger.exception("Generation run failed")
            state.status = RunStatus.FAILED
            state.error = str(exc)
            raise RunError(f"Generation failed: {exc}") from exc

        state.results = list(results)
        state.completed_count = len(results)
        state.status = RunStatus.COMPLETE
        return state.results

    def reset(self) -> None:
        self.state = RunState()


def build_session(settings, credentials: CredentialProvider) -> CollageSession:
    """Wire a session with the Gemini client and the configured policy."""
    from .generator import GeminiPortraitClient
    from .orchestrator import ConcurrencyPolicy

    def _factory(api_key: str) -> GeminiPortraitClient:
        return GeminiPortraitClient.create(
            api_key,
            model=settings.model,
            image_size=settings.image_size,
            timeout_seconds=settings.timeout_seconds,
        )

    orchestrator = CollageOrchestrator(
        credentials=credentials,
        generator_factory=_factory,
        policy=ConcurrencyPolicy.from_settings(settings),
    )
    return CollageSession(
        orchestrator=orchestrator,
        credentials=credentials,
        max_dimension=settings.image_max_size,
        quality=settings.image_quality,
    )
