"""Template builders: parameter record -> layout tree.

Builders are pure. The only randomness is the cover accent pick, which goes
through ``pick_accent_color`` and can be pinned with a seed or an explicit
color.
"""
import random
from typing import Optional, Tuple

from .assets import EmbeddedImage
from .colors import contrast_text_color
from .config import CARD_FONT_FAMILY, COVER_FONT_FAMILY
from .layout import (
    Box,
    BoxStyle,
    Edges,
    GradientStop,
    Image,
    LinearGradient,
    Shadow,
    Text,
    TextStyle,
)
from .params import CardParams, CoverParams

# (name, hex) pairs the cover accent is drawn from
COVER_PALETTE: Tuple[Tuple[str, str], ...] = (
    ("crimson", "#dc143c"),
    ("tomato", "#ff6347"),
    ("coral", "#ff7f50"),
    ("orange", "#ff8c00"),
    ("gold", "#ffd700"),
    ("amber", "#ffbf00"),
    ("lime", "#32cd32"),
    ("emerald", "#2ecc71"),
    ("teal", "#008080"),
    ("turquoise", "#40e0d0"),
    ("dodgerblue", "#1e90ff"),
    ("royalblue", "#4169e1"),
    ("indigo", "#4b0082"),
    ("violet", "#8a2be2"),
    ("hotpink", "#ff69b4"),
)
COVER_PALETTE_HEX = tuple(hex_value for _, hex_value in COVER_PALETTE)

STAR_PATH = "M12 2l3.09 6.26L22 9.27l-5 4.87 1.18 6.88L12 17.77l-6.18 3.25L7 14.14 2 9.27l6.91-1.01L12 2z"
STAR_YELLOW = "#facc15"
STAR_GRAY = "#6b7280"

# Blur is not rasterized, so the hard offset copy is kept faint
TITLE_SHADOW = Shadow(0, 4, 8, "rgba(0,0,0,0.2)")

CARD_TEXT = TextStyle(font_family=CARD_FONT_FAMILY, font_weight=700, font_style="normal", color="#ffffff")


def pick_accent_color(seed: Optional[int] = None) -> str:
    """Uniform pick from COVER_PALETTE. A fresh generator per call; pass a seed to pin it."""
    return random.Random(seed).choice(COVER_PALETTE_HEX)


def star_icon(filled: bool, size: float = 32) -> Image:
    fill = STAR_YELLOW if filled else "none"
    stroke = STAR_YELLOW if filled else STAR_GRAY
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="24" height="24" viewBox="0 0 24 24" '
        f'fill="{fill}" stroke="{stroke}" stroke-width="2"><path d="{STAR_PATH}"/></svg>'
    )
    return Image(
        source=EmbeddedImage(content_type="image/svg+xml", data=svg.encode("utf-8")),
        style=BoxStyle(width=size, height=size),
        object_fit="contain",
    )


def _full_bleed(**kwargs) -> BoxStyle:
    return BoxStyle(position="absolute", top=0, left=0, right=0, bottom=0, **kwargs)


def _pill(children, *, gap: float, padding: Edges, background: str, border: str, align_self: Optional[str] = None) -> Box:
    return Box(
        style=BoxStyle(
            flex_direction="row",
            align_items="center",
            align_self=align_self,
            gap=gap,
            padding=padding,
            background=background,
            border_radius=9999,
            border_width=1,
            border_color=border,
        ),
        children=tuple(children),
    )


def build_card(params: CardParams, image: EmbeddedImage) -> Box:
    """Movie card: poster background, dark gradient, header and footer blocks.

    ``image`` is the already-fetched payload for ``params.image``.
    """
    background = Box(
        style=_full_bleed(),
        children=(Image(source=image, style=BoxStyle(width="100%", height="100%"), object_fit="cover"),),
    )
    overlay = Box(
        style=_full_bleed(
            background=LinearGradient(
                direction="to bottom",
                stops=(
                    GradientStop("rgba(0,0,0,0.7)", 0.0),
                    GradientStop("transparent", 0.4),
                    GradientStop("rgba(0,0,0,0.9)", 1.0),
                ),
            )
        )
    )

    header = Box(
        style=BoxStyle(flex_direction="row", justify_content="space-between", align_items="flex-start"),
        children=(
            Box(
                style=BoxStyle(flex_direction="column"),
                children=(
                    Text("NOW PLAYING", TextStyle(font_size=24, opacity=0.8)),
                    Text(params.main_title, TextStyle(font_size=36), margin=Edges(top=8)),
                ),
            ),
        ),
    )

    genre_pill = _pill(
        (
            Text(params.genre, TextStyle(font_size=22)),
            Text("-", TextStyle(font_size=22, opacity=0.5)),
            Text(params.year_label, TextStyle(font_size=22)),
        ),
        gap=12,
        padding=Edges.symmetric(12, 24),
        background="rgba(255,255,255,0.1)",
        border="rgba(255,255,255,0.2)",
        align_self="flex-start",
    )
    rating_row = Box(
        style=BoxStyle(flex_direction="row", align_items="center", gap=16),
        children=(
            _pill(
                (star_icon(True), Text(params.rating_label, TextStyle(font_size=24, color=STAR_YELLOW))),
                gap=8,
                padding=Edges.symmetric(8, 16),
                background="rgba(250,204,21,0.2)",
                border="rgba(250,204,21,0.3)",
            ),
            Text("Audience Score", TextStyle(font_size=22, opacity=0.6)),
        ),
    )
    footer = Box(
        style=BoxStyle(flex_direction="column", gap=16),
        children=(
            genre_pill,
            Text(params.title, TextStyle(font_size=72, shadow=TITLE_SHADOW)),
            Text(params.description, TextStyle(font_size=28, opacity=0.9, line_height=1.5), max_width=900),
            rating_row,
        ),
    )

    content = Box(
        style=BoxStyle(
            flex_direction="column",
            justify_content="space-between",
            height="100%",
            padding=Edges.all(40),
            position="relative",
        ),
        children=(header, footer),
    )

    return Box(
        style=BoxStyle(
            flex_direction="column",
            width="100%",
            height="100%",
            background="#000000",
            position="relative",
        ),
        children=(background, overlay, content),
        text=CARD_TEXT,
    )


def build_cover(params: CoverParams, accent: Optional[str] = None) -> Box:
    """Cover slide: solid accent background, big uppercase title, swipe hint.

    Accent precedence: ``params.background_color``, then ``accent``, then a
    palette pick seeded with ``params.accent_seed``.
    """
    color = params.background_color or accent or pick_accent_color(params.accent_seed)
    ink = contrast_text_color(color)

    title = Text(
        params.title,
        TextStyle(font_size=180, line_height=0.95, text_transform="uppercase", letter_spacing=2),
    )
    caption_row = Box(
        style=BoxStyle(flex_direction="row", justify_content="flex-end", margin=Edges(top=48)),
        children=(Text("SWIPE >>", TextStyle(font_size=44, letter_spacing=4, opacity=0.85)),),
    )
    return Box(
        style=BoxStyle(
            flex_direction="column",
            width="100%",
            height="100%",
            padding=Edges.all(80),
            background=color,
        ),
        children=(
            Box(style=BoxStyle(flex_grow=1)),
            title,
            caption_row,
        ),
        text=TextStyle(font_family=COVER_FONT_FAMILY, font_weight=400, font_style="normal", color=ink),
    )
