"""Embedded font faces.

Font files are parsed once at startup into immutable outline recordings, so
render threads only ever read from them. Text is measured with the glyph
advances and drawn as SVG paths; nothing depends on fonts installed on the
host.
"""
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from fontTools.misc.transform import Transform
from fontTools.pens.recordingPen import DecomposingRecordingPen, replayRecording
from fontTools.pens.svgPathPen import SVGPathPen
from fontTools.pens.transformPen import TransformPen
from fontTools.ttLib import TTFont, TTLibError

from .config import FontSpec
from .errors import RenderError

logger = logging.getLogger(__name__)

FontKey = Tuple[str, int, str]


def format_number(v: float) -> str:
    """Two-decimal formatting without trailing zeros; keeps SVG output stable."""
    s = f"{v:.2f}".rstrip("0").rstrip(".")
    return "0" if s in ("-0", "") else s


@dataclass(frozen=True)
class Glyph:
    advance: int
    # fontTools pen operations, e.g. ("moveTo", ((x, y),))
    operations: Tuple[Tuple[str, tuple], ...]


@dataclass(frozen=True, eq=False)
class FontFace:
    family: str
    weight: int
    style: str
    units_per_em: int
    ascender: int
    descender: int
    glyphs: Mapping[str, Glyph] = field(repr=False)
    cmap: Mapping[int, str] = field(repr=False)

    @property
    def key(self) -> FontKey:
        return (self.family, self.weight, self.style)

    def glyph_for(self, ch: str) -> Glyph:
        name = self.cmap.get(ord(ch), ".notdef")
        glyph = self.glyphs.get(name)
        if glyph is None:
            glyph = self.glyphs.get(".notdef") or Glyph(advance=self.units_per_em // 2, operations=())
        return glyph

    def scale(self, size: float) -> float:
        return size / float(self.units_per_em)

    def measure(self, text: str, size: float, letter_spacing: float = 0.0) -> float:
        """Advance width of ``text`` in pixels at ``size``."""
        if not text:
            return 0.0
        units = sum(self.glyph_for(ch).advance for ch in text)
        return units * self.scale(size) + letter_spacing * len(text)

    def line_box(self, size: float) -> Tuple[float, float]:
        """(ascent, descent) in pixels, both positive."""
        s = self.scale(size)
        return self.ascender * s, -self.descender * s

    def outline_path(self, text: str, x: float, baseline: float, size: float, letter_spacing: float = 0.0) -> str:
        """SVG path data for ``text`` with its baseline starting at (x, baseline)."""
        s = self.scale(size)
        pen = SVGPathPen(None, ntos=format_number)
        cursor = x
        for ch in text:
            glyph = self.glyph_for(ch)
            if glyph.operations:
                # Font units are y-up; flip onto the SVG canvas
                transform = Transform(s, 0, 0, -s, cursor, baseline)
                tpen = TransformPen(pen, transform)
                replayRecording(glyph.operations, tpen)
            cursor += glyph.advance * s + letter_spacing
        return pen.getCommands()


def load_font_face(data: bytes, family: str, weight: int = 400, style: str = "normal") -> FontFace:
    """Parse a TrueType/OpenType program into a FontFace. Raises ValueError if unreadable."""
    try:
        font = TTFont(io.BytesIO(data), lazy=False)
    except (TTLibError, OSError, AssertionError, KeyError) as e:
        raise ValueError(f"Unreadable font program for {family}: {e}") from e

    glyph_set = font.getGlyphSet()
    hmtx = font["hmtx"]
    glyphs: Dict[str, Glyph] = {}
    for name in font.getGlyphOrder():
        rec = DecomposingRecordingPen(glyph_set)
        glyph_set[name].draw(rec)
        advance = hmtx[name][0] if name in hmtx.metrics else 0
        glyphs[name] = Glyph(advance=advance, operations=tuple((op, tuple(args)) for op, args in rec.value))

    hhea = font["hhea"]
    ascender, descender = hhea.ascent, hhea.descent
    if "OS/2" in font and getattr(font["OS/2"], "sTypoAscender", 0):
        os2 = font["OS/2"]
        ascender, descender = os2.sTypoAscender, os2.sTypoDescender

    return FontFace(
        family=family,
        weight=weight,
        style=style,
        units_per_em=font["head"].unitsPerEm,
        ascender=ascender,
        descender=descender,
        glyphs=MappingProxyType(glyphs),
        cmap=MappingProxyType(dict(font.getBestCmap() or {})),
    )


class FontRegistry:
    """Read-only set of faces keyed by (family, weight, style)."""

    def __init__(self, faces: Iterable[FontFace] = ()):
        self._faces: Mapping[FontKey, FontFace] = MappingProxyType({f.key: f for f in faces})

    def __len__(self) -> int:
        return len(self._faces)

    def __contains__(self, key: FontKey) -> bool:
        return key in self._faces

    @property
    def families(self) -> List[str]:
        return sorted({k[0] for k in self._faces})

    def has_family(self, family: str) -> bool:
        return any(k[0] == family for k in self._faces)

    def get(self, family: str, weight: int, style: str = "normal") -> FontFace:
        face = self._faces.get((family, int(weight), style))
        if face is None:
            registered = ", ".join(f"{f}/{w}/{s}" for f, w, s in sorted(self._faces)) or "none"
            raise RenderError(
                "Font not available",
                details=f"No font registered for family={family!r} weight={weight} style={style!r} (registered: {registered})",
            )
        return face


@dataclass(frozen=True)
class FontLoadReport:
    registry: FontRegistry
    loaded: Tuple[FontSpec, ...]
    missing: Tuple[FontSpec, ...]

    @property
    def ok(self) -> bool:
        return not self.missing


def load_font_registry(fonts_dir: Path, specs: Iterable[FontSpec]) -> FontLoadReport:
    """Load every FontSpec from ``fonts_dir``. Missing or unreadable files are reported, not raised."""
    faces: List[FontFace] = []
    loaded: List[FontSpec] = []
    missing: List[FontSpec] = []
    for spec in specs:
        path = Path(fonts_dir) / spec.filename
        try:
            data = path.read_bytes()
            faces.append(load_font_face(data, spec.family, spec.weight, spec.style))
            loaded.append(spec)
            logger.info(f"Loaded font {spec.family} {spec.weight} {spec.style} from {path}")
        except (OSError, ValueError) as e:
            missing.append(spec)
            logger.warning(f"Font file not available: {path} ({e}). Add {spec.filename} to {fonts_dir}/")
    return FontLoadReport(registry=FontRegistry(faces), loaded=tuple(loaded), missing=tuple(missing))
