"""Error kinds raised by the collage pipeline."""

from __future__ import annotations

from typing import Optional


class CollageError(Exception):
    """Base class for every pipeline error."""


class MissingCredentialError(CollageError):
    """No API key available; the run is never started."""


class DecodeError(CollageError):
    """An uploaded file is not a readable image."""

    def __init__(self, filename: str, reason: str = "") -> None:
        self.filename = filename
        self.reason = reason
        message = f"{filename} is not a readable image"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class GenerationError(CollageError):
    """One scenario's generation request failed."""

    def __init__(self, message: str, scenario_index: Optional[int] = None) -> None:
        self.scenario_index = scenario_index
        super().__init__(message)


class UploadError(CollageError):
    """The upload batch is outside the accepted photo count."""


class RunError(CollageError):
    """Unexpected failure outside the per-scenario boundary."""
