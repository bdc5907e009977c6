"""
config.py — Runtime settings loaded from the environment (.env supported).

All knobs have working defaults; only the API key (read through a
CredentialProvider, not here) and the Telegram token are external.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONCURRENCY_MODES = ("sequential", "batched", "parallel")


@dataclass
class Settings:
    model: str = "gemini-3-pro-image-preview"
    image_size: str = "1K"
    timeout_seconds: int = 120
    concurrency: str = "parallel"
    batch_size: int = 3
    max_workers: int = 4
    image_max_size: int = 800
    image_quality: int = 85
    output_dir: Path = Path("outputs")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", name, value, default)
        return default
    if parsed < 1:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, value, default)
        return default
    return parsed


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from `env`, or from os.environ after loading .env."""
    if env is None:
        load_dotenv()
        env = os.environ

    defaults = Settings()
    concurrency = (env.get("COLLAGE_CONCURRENCY") or defaults.concurrency).strip().lower()
    if concurrency not in CONCURRENCY_MODES:
        logger.warning(
            "Unknown COLLAGE_CONCURRENCY=%r, falling back to %s", concurrency, defaults.concurrency
        )
        concurrency = defaults.concurrency

    return Settings(
        model=env.get("GEMINI_IMAGE_MODEL") or defaults.model,
        image_size=env.get("GEMINI_IMAGE_SIZE") or defaults.image_size,
        timeout_seconds=_int_env(env, "GENERATION_TIMEOUT", defaults.timeout_seconds),
        concurrency=concurrency,
        batch_size=_int_env(env, "COLLAGE_BATCH_SIZE", defaults.batch_size),
        max_workers=_int_env(env, "COLLAGE_MAX_WORKERS", defaults.max_workers),
        image_max_size=_int_env(env, "IMAGE_MAX_SIZE", defaults.image_max_size),
        image_quality=min(95, _int_env(env, "IMAGE_QUALITY", defaults.image_quality)),
        output_dir=Path(env.get("COLLAGE_OUTPUT_DIR") or defaults.output_dir),
    )
