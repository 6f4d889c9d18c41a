"""Palette colors for tags and projects."""

from __future__ import annotations

import random

TAG_PALETTE: tuple[str, ...] = (
    "#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4",
    "#FFEAA7", "#DDA0DD", "#98D8C8", "#FFB6C1",
)

PROJECT_PALETTE: tuple[str, ...] = (
    "#3B82F6", "#10B981", "#F59E0B", "#EF4444",
    "#8B5CF6", "#EC4899", "#06B6D4", "#84CC16",
)


def pick_color(
    palette: tuple[str, ...] = TAG_PALETTE,
    rng: random.Random | None = None,
) -> str:
    """Pick a palette color. Pass a seeded ``rng`` for deterministic output."""
    chooser = rng or random
    return chooser.choice(palette)


def is_hex_color(value: str) -> bool:
    if not isinstance(value, str) or len(value) != 7 or not value.startswith("#"):
        return False
    try:
        int(value[1:], 16)
    except ValueError:
        return False
    return True
