import os
from pathlib import Path
from typing import List, NamedTuple, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class FontSpec(NamedTuple):
    family: str
    filename: str
    weight: int = 400
    style: str = "normal"


def _optional_float(name: str) -> Optional[float]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    return float(raw)


HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "45444"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

# Font files are looked up in FONTS_DIR at startup; a missing file only disables
# the endpoint that needs it.
FONTS_DIR = Path((os.getenv("FONTS_DIR", "") or str(Path(__file__).resolve().parent / "fonts")).strip()).resolve()

CARD_FONT_FAMILY = "Roboto"
CARD_FONT_FILE = os.getenv("CARD_FONT_FILE", "Roboto-Bold.ttf")
COVER_FONT_FAMILY = "Bebas Neue"
COVER_FONT_FILE = os.getenv("COVER_FONT_FILE", "BebasNeue-Regular.ttf")

FONT_SPECS: List[FontSpec] = [
    FontSpec(CARD_FONT_FAMILY, CARD_FONT_FILE, 700, "normal"),
    FontSpec(COVER_FONT_FAMILY, COVER_FONT_FILE, 400, "normal"),
]

# None means "whatever requests does by default" (no timeout)
ASSET_FETCH_TIMEOUT_S = _optional_float("ASSET_FETCH_TIMEOUT_S")

RENDER_BACKGROUND = os.getenv("RENDER_BACKGROUND", "#000000")
MAX_CANVAS_PX = 4096

# Comma-separated; defaults to allowing any origin
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()] or ["*"]
