import io
import os

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from PIL import Image

from card_service.assets import EmbeddedImage
from card_service.config import CARD_FONT_FAMILY, CARD_FONT_FILE, COVER_FONT_FAMILY, COVER_FONT_FILE
from card_service.fonts import FontRegistry, load_font_face

# Every printable ASCII glyph is a 400x700 box with a 500 unit advance; space
# is empty with a 250 unit advance. 1000 units per em makes pixel math easy.
GLYPH_ADVANCE = 500
SPACE_ADVANCE = 250
UNITS_PER_EM = 1000


def _box_glyph():
    pen = TTGlyphPen(None)
    pen.moveTo((50, 0))
    pen.lineTo((50, 700))
    pen.lineTo((450, 700))
    pen.lineTo((450, 0))
    pen.closePath()
    return pen.glyph()


def build_test_font(family: str, style_name: str = "Regular", weight: int = 400) -> bytes:
    chars = [chr(c) for c in range(0x21, 0x7F)]
    glyph_order = [".notdef", "space"] + [f"uni{ord(c):04X}" for c in chars]
    cmap = {0x20: "space"}
    cmap.update({ord(c): f"uni{ord(c):04X}" for c in chars})

    glyphs = {name: _box_glyph() for name in glyph_order}
    glyphs["space"] = TTGlyphPen(None).glyph()
    metrics = {name: (GLYPH_ADVANCE, 50) for name in glyph_order}
    metrics["space"] = (SPACE_ADVANCE, 0)

    fb = FontBuilder(UNITS_PER_EM, isTTF=True)
    fb.setupGlyphOrder(glyph_order)
    fb.setupCharacterMap(cmap)
    fb.setupGlyf(glyphs)
    fb.setupHorizontalMetrics(metrics)
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": family, "styleName": style_name})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200, usWeightClass=weight)
    fb.setupPost()
    buf = io.BytesIO()
    fb.save(buf)
    return buf.getvalue()


@pytest.fixture(scope="session")
def font_bytes() -> bytes:
    return build_test_font("Test Sans", "Bold", 700)


@pytest.fixture(scope="session")
def registry(font_bytes) -> FontRegistry:
    return FontRegistry([
        load_font_face(font_bytes, "Test Sans", 400, "normal"),
        load_font_face(font_bytes, CARD_FONT_FAMILY, 700, "normal"),
        load_font_face(font_bytes, COVER_FONT_FAMILY, 400, "normal"),
    ])


@pytest.fixture
def fonts_dir(tmp_path, font_bytes):
    d = tmp_path / "fonts"
    d.mkdir()
    (d / CARD_FONT_FILE).write_bytes(font_bytes)
    (d / COVER_FONT_FILE).write_bytes(font_bytes)
    return d


@pytest.fixture(scope="session")
def poster() -> EmbeddedImage:
    im = Image.new("RGB", (60, 90), (200, 30, 30))
    buf = io.BytesIO()
    im.save(buf, format="PNG")
    return EmbeddedImage(content_type="image/png", data=buf.getvalue())


@pytest.fixture
def cairo():
    """CairoSVG, for the tests that check real PNG output (pixel size, opaque
    background).

    They skip when the native cairo library cannot be loaded. Set
    REQUIRE_CAIRO=1 (as CI should) to fail instead, so those checks can never
    be skipped silently.
    """
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        if os.getenv("REQUIRE_CAIRO"):
            pytest.fail(f"REQUIRE_CAIRO is set but CairoSVG is unavailable: {e}")
        pytest.skip(f"CairoSVG unavailable: {e}")
    return cairosvg
