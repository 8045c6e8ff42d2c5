"""Colour conversions between After Effects linear RGB triples and hex strings."""

from __future__ import annotations

import re
from typing import Any, List, Optional, Sequence

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


def is_hex_color(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("#") and bool(_HEX_RE.match(value))


def _channel(value: float) -> int:
    return max(0, min(255, int(round(value))))


def rgb_to_hex(rgb: Sequence[float]) -> str:
    """[r, g, b(, a)] in 0..1 (or 0..255 when any channel exceeds 1) to #RRGGBB."""
    channels = [float(c) for c in list(rgb)[:3]]
    scale = 1.0 if any(c > 1.0 for c in channels) else 255.0
    return "#" + "".join(f"{_channel(c * scale):02X}" for c in channels)


def hex_to_rgb(value: str) -> List[float]:
    match = _HEX_RE.match(value.strip())
    if not match:
        raise ValueError(f"Not a hex colour: {value!r}")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return [round(int(digits[i:i + 2], 16) / 255.0, 6) for i in (0, 2, 4)]


def normalize_color(value: Any, fallback: Optional[str] = None) -> Optional[str]:
    """Accept hex strings, RGB lists or {r,g,b} mappings; return #RRGGBB or the fallback."""
    if value is None:
        return fallback
    if isinstance(value, str):
        match = _HEX_RE.match(value.strip())
        if not match:
            return fallback
        digits = match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return "#" + digits[:6].upper()
    if isinstance(value, dict):
        try:
            return rgb_to_hex([value.get("r", 0), value.get("g", 0), value.get("b", 0)])
        except (TypeError, ValueError):
            return fallback
    if isinstance(value, (list, tuple)) and len(value) >= 3:
        try:
            return rgb_to_hex(value)
        except (TypeError, ValueError):
            return fallback
    return fallback


def to_linear_rgb(value: Any, fallback: Sequence[float] = (0.0, 0.0, 0.0)) -> List[float]:
    """Normalize any accepted colour form to an [r, g, b] triple in 0..1."""
    hex_value = normalize_color(value)
    if hex_value is None:
        return [float(c) for c in fallback]
    return hex_to_rgb(hex_value)
