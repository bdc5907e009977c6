"""
preprocessor.py — Shrink and re-encode uploaded photos before they are sent
as generation references.

  longer edge  ≤ IMAGE_MAX_SIZE (800)   aspect ratio preserved, never upscaled
  format       JPEG @ quality 85
"""

from __future__ import annotations

import base64
import io
import logging
import time
from typing import List, Sequence, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError
from .models import EncodedImage, RawPhoto

logger = logging.getLogger(__name__)

MAX_DIMENSION = 800
JPEG_QUALITY = 85
OUTPUT_MEDIA_TYPE = "image/jpeg"


def scaled_size(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> Tuple[int, int]:
    """Target size with the longer edge clamped to max_dimension."""
    if width >= height:
        scale = min(1.0, max_dimension / width)
    else:
        scale = min(1.0, max_dimension / height)
    return max(1, round(width * scale)), max(1, round(height * scale))


def preprocess(
    photo: RawPhoto,
    max_dimension: int = MAX_DIMENSION,
    quality: int = JPEG_QUALITY,
) -> EncodedImage:
    """
    Decode, downscale and JPEG-encode one photo.

    Raises:
        DecodeError: if the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(photo.data)) as im:
            im.load()
            im = ImageOps.exif_transpose(im)
            if im.mode in ("RGBA", "LA", "P"):
                im = im.convert("RGBA")
                flat = Image.new("RGB", im.size, (255, 255, 255))
                flat.paste(im, mask=im.split()[3])
                im = flat
            else:
                im = im.convert("RGB")

            w, h = im.size
            target = scaled_size(w, h, max_dimension)
            if target != (w, h):
                im = im.resize(target, Image.LANCZOS)

            buf = io.BytesIO()
            im.save(buf, format="JPEG", quality=quality, optimize=True)
            final_w, final_h = im.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise DecodeError(photo.name, str(exc)) from exc

    payload = base64.b64encode(buf.getvalue()).decode("ascii")
    return EncodedImage(
        id=f"{photo.name}-{int(time.time() * 1000)}",
        display_url=f"data:{OUTPUT_MEDIA_TYPE};base64,{payload}",
        payload=payload,
        media_type=OUTPUT_MEDIA_TYPE,
        width=final_w,
        height=final_h,
    )


def preprocess_batch(
    photos: Sequence[RawPhoto],
    max_dimension: int = MAX_DIMENSION,
    quality: int = JPEG_QUALITY,
) -> Tuple[List[EncodedImage], List[DecodeError]]:
    """Preprocess every photo; unreadable files are collected, not raised."""
    encoded: List[EncodedImage] = []
    failures: List[DecodeError] = []
    for photo in photos:
        try:
            encoded.append(preprocess(photo, max_dimension=max_dimension, quality=quality))
        except DecodeError as exc:
            logger.warning("Skipping %s: %s", photo.name, exc.reason or exc)
            failures.append(exc)
    return encoded, failures
