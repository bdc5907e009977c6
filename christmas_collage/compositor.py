"""
compositor.py — Places the 10 portraits on a Christmas-tree template and
exports a single flat PNG (2160×2700, i.e. 2× a 1080×1350 print layout).

Slot layout (percent of canvas, tile width 17.2 % of canvas width, square):

                 [0]                    Row 1  top 12.8 %
             [1]     [2]                Row 2  top 26.8 %
          [3]    [4]    [5]             Row 3  top 40.8 %
       [6]   [7]     [8]    [9]         Row 4  top 54.8 %

Slot N always holds scenario N. Failed scenarios get a placeholder tile so the
tree stays complete.
"""

from __future__ import annotations

import io
import logging
import math
import random
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from .models import GeneratedImage

logger = logging.getLogger(__name__)

# ── Canvas geometry ───────────────────────────────────────────────────────────

CANVAS_W = 2160
CANVAS_H = 2700
TILE_WIDTH_PCT = 17.2
TILE_BORDER = 12

SKY_TOP = (224, 247, 250)       # #E0F7FA
SKY_BOTTOM = (255, 255, 255)
TREE_GREENS = [(22, 101, 52), (21, 128, 61), (22, 163, 74), (34, 139, 84)]
TRUNK = (120, 72, 40)
STAR = (250, 204, 21)
PLACEHOLDER_BG = (203, 213, 225)

# (top %, left %, rotation degrees, clockwise positive)
SLOT_POSITIONS: List[Tuple[float, float, float]] = [
    # Row 1
    (12.8, 41.3, -2),
    # Row 2
    (26.8, 31.2, -3),
    (26.8, 51.3, 2),
    # Row 3
    (40.8, 21.0, -2),
    (40.8, 41.3, 1),
    (40.8, 61.6, -2),
    # Row 4
    (54.8, 10.8, -3),
    (54.8, 31.2, 2),
    (54.8, 51.4, -2),
    (54.8, 71.8, 3),
]


def tile_size(canvas_w: int = CANVAS_W) -> int:
    return round(canvas_w * TILE_WIDTH_PCT / 100)


def slot_box(slot: int, canvas_w: int = CANVAS_W, canvas_h: int = CANVAS_H) -> Tuple[int, int, int]:
    """(x, y, size) of the unrotated square for `slot`."""
    top, left, _ = SLOT_POSITIONS[slot]
    return round(canvas_w * left / 100), round(canvas_h * top / 100), tile_size(canvas_w)


# ── Font helpers ─────────────────────────────────────────────────────────────

def _load_font(size: int) -> ImageFont.ImageFont:
    for path in [
        "/usr/share/fonts/truetype/dejavu/DejaVuSerif-Bold.ttf",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Helvetica.ttc",
        "/Library/Fonts/Georgia.ttf",
    ]:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            continue
    return ImageFont.load_default(size)


def _text_width(draw: ImageDraw.ImageDraw, text: str, font) -> int:
    tb = draw.textbbox((0, 0), text, font=font)
    return tb[2] - tb[0]


# ── Template ─────────────────────────────────────────────────────────────────

def _star_points(cx: int, cy: int, radius: int) -> List[Tuple[float, float]]:
    points = []
    for i in range(10):
        r = radius if i % 2 == 0 else radius * 0.45
        angle = math.pi / 5 * i - math.pi / 2
        points.append((cx + r * math.cos(angle), cy + r * math.sin(angle)))
    return points


def render_tree_template(w: int = CANVAS_W, h: int = CANVAS_H) -> Image.Image:
    """Draw the default backdrop: pale sky, snow, a four-tier tree, star, title."""
    img = Image.new("RGB", (w, h), SKY_BOTTOM)
    draw = ImageDraw.Draw(img)

    for y in range(h):
        t = y / max(1, h - 1)
        color = tuple(round(a + (b - a) * t) for a, b in zip(SKY_TOP, SKY_BOTTOM))
        draw.line([(0, y), (w, y)], fill=color)

    rng = random.Random(1225)
    for _ in range(260):
        x, y, r = rng.randrange(w), rng.randrange(h), rng.randint(3, 9)
        draw.ellipse([x - r, y - r, x + r, y + r], fill=(186, 230, 253))

    # Tiers grow downward and overlap; each one sits behind a row of tiles.
    cx = w // 2
    tiers = [
        (0.06, 0.30, 0.16),
        (0.20, 0.44, 0.27),
        (0.34, 0.58, 0.37),
        (0.48, 0.73, 0.46),
    ]
    for (apex, base, half_width), green in zip(tiers, TREE_GREENS):
        draw.polygon(
            [(cx, round(h * apex)), (cx + round(w * half_width), round(h * base)),
             (cx - round(w * half_width), round(h * base))],
            fill=green,
        )

    trunk_w = round(w * 0.10)
    draw.rectangle(
        [cx - trunk_w // 2, round(h * 0.73), cx + trunk_w // 2, round(h * 0.80)],
        fill=TRUNK,
    )

    draw.polygon(_star_points(cx, round(h * 0.06), round(w * 0.04)), fill=STAR)

    font = _load_font(round(h * 0.05))
    title = "Merry Christmas"
    draw.text(((w - _text_width(draw, title, font)) // 2, round(h * 0.85)),
              title, fill=(12, 74, 110), font=font)
    return img


def _load_template(path: Path, w: int, h: int) -> Image.Image:
    with Image.open(path) as im:
        return _fit_cover(im.convert("RGB"), w, h)


def verify_template(path: Path) -> None:
    """Raise FileNotFoundError or ValueError unless `path` is a readable image."""
    if not path.is_file():
        raise FileNotFoundError(f"Template not found: {path}")
    try:
        with Image.open(path) as im:
            im.verify()
    except (OSError, SyntaxError) as exc:
        raise ValueError(f"Template is not a readable image: {path}") from exc


# ── Tiles ─────────────────────────────────────────────────────────────────────

def _fit_cover(img: Image.Image, w: int, h: int) -> Image.Image:
    """Resize to cover (w×h), center-crop the excess."""
    iw, ih = img.size
    scale = max(w / iw, h / ih)
    nw = max(w, round(iw * scale))
    nh = max(h, round(ih * scale))
    img = img.resize((nw, nh), Image.LANCZOS)
    cx = (nw - w) // 2
    cy = (nh - h) // 2
    return img.crop((cx, cy, cx + w, cy + h))


def placeholder_tile(size: int, slot: int) -> Image.Image:
    """Neutral tile used where generation failed."""
    img = Image.new("RGB", (size, size), PLACEHOLDER_BG)
    draw = ImageDraw.Draw(img)
    font = _load_font(size // 4)
    text = str(slot + 1)
    tb = draw.textbbox((0, 0), text, font=font)
    draw.text(((size - (tb[2] - tb[0])) // 2, (size - (tb[3] - tb[1])) // 2 - tb[1]),
              text, fill=(148, 163, 184), font=font)
    return img


def _tile_image(image: GeneratedImage, size: int) -> Image.Image:
    if image.succeeded and image.image_data:
        try:
            with Image.open(io.BytesIO(image.image_data)) as im:
                return _fit_cover(im.convert("RGB"), size, size)
        except (UnidentifiedImageError, OSError) as exc:
            logger.warning("Slot %s image unreadable, using placeholder: %s", image.scenario_index, exc)
    return placeholder_tile(size, image.scenario_index)


def _paste_tile(canvas: Image.Image, tile: Image.Image, x: int, y: int, rotation: float) -> None:
    """Frame the tile, rotate it about its center and paste at slot (x, y)."""
    size = tile.size[0]
    framed = Image.new("RGBA", (size + 2 * TILE_BORDER, size + 2 * TILE_BORDER), (255, 255, 255, 255))
    framed.paste(tile, (TILE_BORDER, TILE_BORDER))
    # PIL rotates counter-clockwise; slot angles are clockwise.
    rotated = framed.rotate(-rotation, resample=Image.BICUBIC, expand=True)
    cx, cy = x + size // 2, y + size // 2
    canvas.paste(rotated, (cx - rotated.width // 2, cy - rotated.height // 2), rotated)


# ── Public entry points ───────────────────────────────────────────────────────

def compose_collage(
    images: Sequence[GeneratedImage],
    template: Optional[Path] = None,
) -> Image.Image:
    """
    Place each image in the slot matching its scenario_index.

    Args:
        images:   Generated results (any order, fallbacks included).
        template: Optional background image; the drawn tree is used otherwise
                  or when the template cannot be read.
    """
    canvas: Optional[Image.Image] = None
    if template:
        try:
            canvas = _load_template(template, CANVAS_W, CANVAS_H)
        except OSError as exc:
            logger.warning("Template %s unusable, drawing the default tree: %s", template, exc)
    if canvas is None:
        canvas = render_tree_template()
    by_slot: Dict[int, GeneratedImage] = {img.scenario_index: img for img in images}

    for slot, (_, _, rotation) in enumerate(SLOT_POSITIONS):
        image = by_slot.get(slot)
        if image is None:
            continue
        x, y, size = slot_box(slot)
        _paste_tile(canvas, _tile_image(image, size), x, y, rotation)

    return canvas


def export_collage(
    canvas: Image.Image,
    output_dir: Path,
    filename: Optional[str] = None,
) -> Path:
    """Save the composed collage as a flat PNG and return its path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    out_path = output_dir / (filename or f"teddyy-christmas-{int(time.time() * 1000)}.png")
    canvas.convert("RGB").save(str(out_path), format="PNG")
    logger.info("Collage saved → %s", out_path)
    return out_path
