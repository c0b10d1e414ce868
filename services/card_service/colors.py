import re
from typing import Optional, Tuple

_HEX_DIGITS = "0123456789abcdefABCDEF"
_RGB_FUNC = re.compile(r"^rgba?\(\s*([^)]*)\)$", re.IGNORECASE)

NAMED_COLORS = {
    "black": "#000000",
    "white": "#ffffff",
    "red": "#ff0000",
    "green": "#008000",
    "blue": "#0000ff",
    "yellow": "#ffff00",
    "gray": "#808080",
    "grey": "#808080",
}


def normalize_hex_color(c: Optional[str]) -> Optional[str]:
    """Normalize a CSS hex color string to #rrggbb. Returns None if invalid.
    Accepts #rgb or #rrggbb (case-insensitive), with or without leading '#'."""
    if not isinstance(c, str):
        return None
    s = c.strip()
    if s.startswith('#'):
        s = s[1:]
    if len(s) == 3 and all(ch in _HEX_DIGITS for ch in s):
        s = ''.join(ch * 2 for ch in s)
    if len(s) == 6 and all(ch in _HEX_DIGITS for ch in s):
        return '#' + s.lower()
    return None


def parse_color(value: str) -> Tuple[str, float]:
    """Parse a CSS color into (#rrggbb, alpha).

    Supports hex (#rgb, #rrggbb, #rrggbbaa), rgb()/rgba(), 'transparent' and a
    handful of named colors. Raises ValueError for anything else.
    """
    s = (value or "").strip().lower()
    if s == "transparent":
        return "#000000", 0.0
    if s in NAMED_COLORS:
        return NAMED_COLORS[s], 1.0
    if s.startswith("#") and len(s) == 9 and all(ch in _HEX_DIGITS for ch in s[1:]):
        return s[:7], round(int(s[7:9], 16) / 255.0, 4)
    hex_color = normalize_hex_color(s) if s.startswith("#") else None
    if hex_color:
        return hex_color, 1.0
    m = _RGB_FUNC.match(s)
    if m:
        parts = [p.strip() for p in m.group(1).split(",")]
        if len(parts) in (3, 4):
            r, g, b = (max(0, min(255, int(float(p)))) for p in parts[:3])
            alpha = float(parts[3]) if len(parts) == 4 else 1.0
            return f"#{r:02x}{g:02x}{b:02x}", max(0.0, min(1.0, alpha))
    raise ValueError(f"Unsupported color: {value!r}")


def hex_to_rgb(h: str) -> Tuple[int, int, int]:
    h = (normalize_hex_color(h) or "#000000")[1:]
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def is_light_color(hex_color: str) -> bool:
    """Return True if the color is perceptually light."""
    r, g, b = hex_to_rgb(hex_color)
    brightness = (r * 299 + g * 587 + b * 114) / 1000.0
    return brightness >= 145


def contrast_text_color(base_hex: str) -> str:
    """Choose a strong contrasting text fill against the base color.
    If base is light, return near-black; else return near-white."""
    return '#0a0a0a' if is_light_color(base_hex) else '#ffffff'
