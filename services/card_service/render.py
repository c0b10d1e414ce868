"""End-to-end render pipeline: params -> layout tree -> SVG -> PNG.

These functions are synchronous and CPU-bound; the HTTP layer runs them in a
worker thread.
"""
import logging
from time import perf_counter
from typing import Optional

from .assets import EmbeddedImage
from .compositor import render_tree
from .config import CARD_FONT_FAMILY, COVER_FONT_FAMILY, CARD_FONT_FILE, COVER_FONT_FILE, RENDER_BACKGROUND
from .errors import ConfigurationError
from .fonts import FontRegistry
from .params import CardParams, CoverParams
from .rasterizer import rasterize
from .templates import build_card, build_cover

logger = logging.getLogger(__name__)


def require_fonts(fonts: Optional[FontRegistry], family: str, filename: str) -> FontRegistry:
    if fonts is None or not fonts.has_family(family):
        raise ConfigurationError(f"Font not configured. Add {filename} to the fonts directory")
    return fonts


def render_card_png(
    params: CardParams,
    image: EmbeddedImage,
    fonts: FontRegistry,
    *,
    background: str = RENDER_BACKGROUND,
) -> bytes:
    require_fonts(fonts, CARD_FONT_FAMILY, CARD_FONT_FILE)
    t0 = perf_counter()
    tree = build_card(params, image)
    doc = render_tree(tree, fonts, params.width, params.height)
    png = rasterize(doc, params.width, background)
    logger.info(f"render_card: {params.width}x{params.height} title={params.title!r} elapsed={perf_counter() - t0:.3f}s")
    return png


def render_cover_png(
    params: CoverParams,
    fonts: FontRegistry,
    *,
    background: str = RENDER_BACKGROUND,
    accent: Optional[str] = None,
) -> bytes:
    require_fonts(fonts, COVER_FONT_FAMILY, COVER_FONT_FILE)
    t0 = perf_counter()
    tree = build_cover(params, accent=accent)
    doc = render_tree(tree, fonts, params.width, params.height)
    png = rasterize(doc, params.width, background)
    logger.info(f"render_cover: {params.width}x{params.height} title={params.title!r} elapsed={perf_counter() - t0:.3f}s")
    return png
