"""
scenarios.py — The fixed catalog of 10 Christmas scenes.

Order is meaningful: scenario N always lands in tree slot N
(row 1 = slot 0, row 2 = slots 1-2, row 3 = slots 3-5, row 4 = slots 6-9).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Scenario:
    index: int
    text: str


_SCENARIO_TEXTS = (
    "A close-up portrait of the baby smiling warmly, soft festive lighting, blurred Christmas tree in background.",
    "The baby wrapped snugly in a soft, chunky knit Christmas blanket, looking cozy and safe.",
    "The baby sitting beside a miniature Christmas tree, looking at the ornaments with wonder.",
    "The baby playing with safe, soft Christmas plush toys, joyful expression.",
    "The baby wearing a cute red and white Christmas onesie or elf costume.",
    "The baby crawling on a soft rug with twinkling fairy lights in the background (safe distance).",
    "The baby holding a small, beautifully wrapped gift box with a bow.",
    "The baby sitting in front of a window with a snowy winter glow outside, soft interior lighting.",
    "The baby clapping hands or laughing, celebrating the festive spirit.",
    "A magical portrait of the baby with subtle, golden festive sparkles floating in the air.",
)

SCENARIOS: Tuple[Scenario, ...] = tuple(
    Scenario(index=i, text=text) for i, text in enumerate(_SCENARIO_TEXTS)
)

SCENARIO_COUNT = len(SCENARIOS)
