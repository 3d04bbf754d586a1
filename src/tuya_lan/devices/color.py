"""Unit remapping and color naming helpers."""

from __future__ import annotations

import colorsys
from decimal import ROUND_HALF_UP, Decimal

Number = int | float | Decimal

_ONE_DECIMAL = Decimal("0.1")

# Inclusive degree range of each hue bucket
_COLOR_NAMES: tuple[tuple[int, int, str], ...] = (
    (0, 15, "Red"),
    (16, 45, "Orange"),
    (46, 75, "Yellow"),
    (76, 105, "Chartreuse"),
    (106, 135, "Green"),
    (136, 165, "Spring"),
    (166, 195, "Cyan"),
    (196, 225, "Azure"),
    (226, 255, "Blue"),
    (256, 285, "Violet"),
    (286, 315, "Magenta"),
    (316, 345, "Rose"),
    (346, 360, "Red"),
)


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def remap(value: Number, old_min: Number, old_max: Number, new_min: Number, new_max: Number) -> Decimal:
    """Linearly map ``value`` from [old_min, old_max] onto [new_min, new_max].

    The input is clamped to the old range first, so the result never leaves
    the new range. The result is rounded to one decimal place, half up.
    """
    v, lo, hi = _dec(value), _dec(old_min), _dec(old_max)
    new_lo, new_hi = _dec(new_min), _dec(new_max)
    if hi == lo:
        return new_lo.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
    v = min(max(v, lo), hi)
    result = (v - lo) / (hi - lo) * (new_hi - new_lo) + new_lo
    return result.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)


def color_name(hue: Number, saturation: Number) -> str:
    """Return a human color name for a 0-100 hue/saturation pair."""
    if saturation < 1:
        return "White"
    degrees = int(_dec(hue) * Decimal("3.6"))
    for low, high, name in _COLOR_NAMES:
        if low <= degrees <= high:
            return name
    return ""


def hsv_to_rgb_hex(hue: Number, saturation: Number, level: Number) -> str:
    """Render a 0-100 HSV triple as a 6-digit lowercase RGB hex string."""
    r, g, b = colorsys.hsv_to_rgb(
        min(max(float(hue), 0.0), 100.0) / 100,
        min(max(float(saturation), 0.0), 100.0) / 100,
        min(max(float(level), 0.0), 100.0) / 100,
    )
    return "".join(f"{round(channel * 255):02x}" for channel in (r, g, b))
