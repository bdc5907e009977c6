"""
zip_exporter.py — Bundle the finished collage and its portraits into a ZIP.

  collage/     — the composed tree collage PNG
  portraits/   — portrait_01.png … portrait_10.png (successful scenarios only)
"""

from __future__ import annotations

import logging
import time
import zipfile
from pathlib import Path
from typing import Optional, Sequence

from .models import GeneratedImage

logger = logging.getLogger(__name__)

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}


def _extension(display_url: str) -> str:
    media_type = display_url[5:].split(";", 1)[0] if display_url.startswith("data:") else ""
    return _EXTENSIONS.get(media_type, "png")


def create_collage_zip(
    collage_path: Path,
    images: Sequence[GeneratedImage],
    output_dir: Path,
) -> Optional[Path]:
    """
    Write collage + individual portraits to one ZIP.

    Returns:
        Path to the ZIP, or None if it could not be written.
    """
    zip_path = output_dir / f"christmas-collage-{int(time.time() * 1000)}.zip"
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
            if collage_path.exists():
                zf.write(collage_path, f"collage/{collage_path.name}")

            for image in sorted(images, key=lambda i: i.scenario_index):
                if not image.succeeded or not image.image_data:
                    continue
                name = f"portraits/portrait_{image.scenario_index + 1:02d}.{_extension(image.display_url)}"
                zf.writestr(name, image.image_data)
    except OSError as e:
        logger.warning("ZIP creation failed: %s", e)
        return None

    logger.info("ZIP created: %s (%s KB)", zip_path.name, zip_path.stat().st_size // 1024)
    return zip_path
