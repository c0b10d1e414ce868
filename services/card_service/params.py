"""Parameter records for the two templates.

Each record is built once per request from the JSON body; anything the caller
leaves out falls back to the documented default. Records are frozen so the
template builders can treat them as plain values.
"""
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .colors import normalize_hex_color
from .config import MAX_CANVAS_PX

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1350
DEFAULT_IMAGE_URL = "https://images.unsplash.com/photo-1440404653325-ab127d49abc1?w=1080"

_WHITESPACE = re.compile(r"\s+")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-z0-9._-]")


class CardParams(BaseModel):
    main_title: str = Field("Popular Movies 2026", alias="mainTitle")
    title: str = "Movie Title"
    image: str = DEFAULT_IMAGE_URL
    rating: int = 4
    year: Optional[int] = 2026
    genre: str = "Action"
    description: str = "An amazing movie experience."
    width: int = Field(DEFAULT_WIDTH, gt=0, le=MAX_CANVAS_PX)
    height: int = Field(DEFAULT_HEIGHT, gt=0, le=MAX_CANVAS_PX)

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def rating_label(self) -> str:
        return f"{self.rating}/10"

    @property
    def year_label(self) -> str:
        return "" if self.year is None else str(self.year)


class CoverParams(BaseModel):
    title: str = "Movies You Need To Watch"
    background_color: Optional[str] = Field(None, alias="backgroundColor")
    # Pins the pseudo-random accent pick when no background color is given
    accent_seed: Optional[int] = Field(None, alias="accentSeed")
    width: int = Field(DEFAULT_WIDTH, gt=0, le=MAX_CANVAS_PX)
    height: int = Field(DEFAULT_HEIGHT, gt=0, le=MAX_CANVAS_PX)

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("background_color")
    @classmethod
    def _check_background_color(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        norm = normalize_hex_color(v)
        if not norm:
            raise ValueError("backgroundColor must be a hex color like #1e90ff")
        return norm


def card_filename(title: str) -> str:
    """Attachment filename for a movie card: slugified title + suffix."""
    slug = _WHITESPACE.sub("-", (title or "").strip().lower())
    slug = _UNSAFE_FILENAME_CHARS.sub("", slug)
    return f"{slug or 'movie'}-movie-card.png"


COVER_FILENAME = "cover-slide.png"
