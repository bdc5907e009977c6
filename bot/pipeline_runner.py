"""
pipeline_runner.py — Runs the collage pipeline for the Telegram bot.

The pipeline is blocking (thread pool + Pillow), so it runs in the default
executor and the bot stays responsive. Progress is reported through a sync
callback invoked from the worker thread.

Steps:
  1. Upload gate + preprocess photos
  2. Generate 10 portraits (credential checked first)
  3. Compose the tree collage and export PNG
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from christmas_collage.compositor import compose_collage, export_collage
from christmas_collage.errors import CollageError
from christmas_collage.models import GeneratedImage, RawPhoto
from christmas_collage.session import CollageSession

logger = logging.getLogger(__name__)


# ── Result model ──────────────────────────────────────────────────────────────

@dataclass
class CollageResult:
    """Output from one bot pipeline run."""
    success: bool
    output_dir: Path
    collage_path: Optional[Path] = None
    images: List[GeneratedImage] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)
    error: str = ""
    elapsed_seconds: float = 0.0

    @property
    def succeeded_count(self) -> int:
        return sum(1 for img in self.images if img.succeeded)


# ── Progress callback type ────────────────────────────────────────────────────

ProgressCallback = Callable[[int], None]   # sync, called from worker thread


# ── Runner ────────────────────────────────────────────────────────────────────

class CollageRunner:
    """Runs preprocess → generate → compose for one session."""

    def __init__(self, session: CollageSession, output_root: Path = Path("outputs")) -> None:
        self.session = session
        self.output_root = output_root

    async def run(
        self,
        photos: Sequence[RawPhoto],
        on_progress: Optional[ProgressCallback] = None,
    ) -> CollageResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._run_sync, list(photos), on_progress)

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _progress(self, cb: Optional[ProgressCallback], count: int) -> None:
        if cb:
            try:
                cb(count)
            except Exception:
                logger.warning("Progress callback failed", exc_info=True)

    def _run_sync(
        self,
        photos: List[RawPhoto],
        on_progress: Optional[ProgressCallback],
    ) -> CollageResult:
        start = time.time()
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        output_dir = self.output_root / f"bot_{timestamp}"

        try:
            references, failures = self.session.prepare(photos)
            images = self.session.generate(
                references,
                on_progress=lambda count: self._progress(on_progress, count),
            )
            collage_path = export_collage(compose_collage(images), output_dir)
        except CollageError as e:
            logger.warning("Collage pipeline stopped: %s", e)
            return CollageResult(
                success=False,
                output_dir=output_dir,
                error=str(e),
                elapsed_seconds=time.time() - start,
            )
        except Exception as e:
            logger.exception("Collage pipeline crashed")
            return CollageResult(
                success=False,
                output_dir=output_dir,
                error=f"{type(e).__name__}: {e}",
                elapsed_seconds=time.time() - start,
            )

        return CollageResult(
            success=True,
            output_dir=output_dir,
            collage_path=collage_path,
            images=images,
            skipped_files=[f.filename for f in failures],
            elapsed_seconds=time.time() - start,
        )
