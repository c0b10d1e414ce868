"""Layout tree -> SVG document.

Two passes over a resolved tree:

1. layout: a flexbox subset (row/column, justify, align, gap, padding,
   margins, px/% sizes, flex-grow, absolute positioning) produces a tree of
   ``Frame`` boxes in canvas coordinates. Text is wrapped with real glyph
   advances from the registered faces.
2. paint: frames become flat SVG primitives (rects, outline paths, clipped
   images, opacity groups) rendered through a Jinja2 template.

The output is deterministic: numbers are formatted to two decimals and defs
ids are numbered in paint order.
"""
import io
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment
from PIL import Image as PILImage

from .assets import EmbeddedImage
from .colors import parse_color
from .errors import RenderError
from .fonts import FontFace, FontRegistry, format_number as _num
from .layout import (
    Box,
    BoxStyle,
    Edges,
    Image,
    Length,
    LayoutNode,
    LinearGradient,
    Text,
    TextStyle,
    iter_nodes,
    resolve_text_styles,
)

logger = logging.getLogger(__name__)

_DIRECTION_ANGLES = {"to top": 0.0, "to right": 90.0, "to bottom": 180.0, "to left": 270.0}

_SVG_TEMPLATE = """<svg width="{{ width }}" height="{{ height }}" viewBox="0 0 {{ width }} {{ height }}" xmlns="http://www.w3.org/2000/svg" xmlns:xlink="http://www.w3.org/1999/xlink">
<defs>
{%- for g in gradients %}
<linearGradient id="{{ g.id }}" x1="{{ g.x1 }}" y1="{{ g.y1 }}" x2="{{ g.x2 }}" y2="{{ g.y2 }}">
{%- for s in g.stops %}
<stop offset="{{ s.offset }}" stop-color="{{ s.color }}" stop-opacity="{{ s.opacity }}"/>
{%- endfor %}
</linearGradient>
{%- endfor %}
{%- for c in clips %}
<clipPath id="{{ c.id }}"><rect x="{{ c.x }}" y="{{ c.y }}" width="{{ c.w }}" height="{{ c.h }}" rx="{{ c.rx }}" ry="{{ c.rx }}"/></clipPath>
{%- endfor %}
</defs>
{%- for op in ops recursive %}
{%- if op.kind == "group" %}
<g opacity="{{ op.opacity }}">{{ loop(op.children) }}
</g>
{%- elif op.kind == "rect" %}
<rect x="{{ op.x }}" y="{{ op.y }}" width="{{ op.w }}" height="{{ op.h }}" rx="{{ op.rx }}" ry="{{ op.rx }}" fill="{{ op.fill }}" fill-opacity="{{ op.fill_opacity }}"
{%- if op.stroke %} stroke="{{ op.stroke }}" stroke-opacity="{{ op.stroke_opacity }}" stroke-width="{{ op.stroke_width }}"{% endif %}/>
{%- elif op.kind == "path" %}
<path d="{{ op.d }}" fill="{{ op.fill }}" fill-opacity="{{ op.fill_opacity }}"/>
{%- elif op.kind == "image" %}
<image x="{{ op.x }}" y="{{ op.y }}" width="{{ op.w }}" height="{{ op.h }}" preserveAspectRatio="none"
{%- if op.clip %} clip-path="url(#{{ op.clip }})"{% endif %} xlink:href="{{ op.href }}"/>
{%- endif %}
{%- endfor %}
</svg>
"""

_env = Environment(autoescape=True, keep_trailing_newline=True)
_template = _env.from_string(_SVG_TEMPLATE)


@dataclass(frozen=True)
class VectorDocument:
    svg: str
    width: int
    height: int


@dataclass
class Frame:
    """A laid-out node: border box in canvas coordinates."""

    node: LayoutNode
    x: float
    y: float
    w: float
    h: float
    children: List["Frame"] = field(default_factory=list)
    lines: Tuple[str, ...] = ()


def _resolve(length: Optional[Length], base: Optional[float]) -> Optional[float]:
    if length is None:
        return None
    if isinstance(length, (int, float)):
        return float(length)
    s = str(length).strip()
    if s.endswith("%"):
        if base is None:
            return None
        return base * float(s[:-1]) / 100.0
    if s.endswith("px"):
        s = s[:-2]
    return float(s)


def _box_style(node: LayoutNode) -> Optional[BoxStyle]:
    if isinstance(node, (Box, Image)):
        return node.style
    return None


def _margin(node: LayoutNode) -> Edges:
    if isinstance(node, Text):
        return node.margin
    return node.style.margin


def _align_self(node: LayoutNode) -> Optional[str]:
    if isinstance(node, Text):
        return node.align_self
    return node.style.align_self


def _is_absolute(node: LayoutNode) -> bool:
    style = _box_style(node)
    return style is not None and style.position == "absolute"


def _insets(style: BoxStyle) -> Edges:
    p, b = style.padding, style.border_width
    return Edges(p.top + b, p.right + b, p.bottom + b, p.left + b)


class _LayoutEngine:
    def __init__(self, fonts: FontRegistry):
        self.fonts = fonts
        self._intrinsic: Dict[EmbeddedImage, Tuple[float, float]] = {}

    # -- text ---------------------------------------------------------------

    def face_for(self, style: TextStyle) -> FontFace:
        return self.fonts.get(style.font_family, style.font_weight, style.font_style)

    def wrap(self, node: Text, limit: Optional[float]) -> Tuple[List[str], float]:
        """Greedy word wrap. Returns (lines, widest line in px)."""
        style = node.style
        face = self.face_for(style)
        size, spacing = style.font_size, style.letter_spacing
        if node.max_width is not None:
            limit = node.max_width if limit is None else min(limit, node.max_width)

        lines: List[str] = []
        for paragraph in node.display_text.split("\n"):
            words = paragraph.split()
            if not words:
                lines.append("")
                continue
            current = words[0]
            for word in words[1:]:
                candidate = f"{current} {word}"
                if limit is None or face.measure(candidate, size, spacing) <= limit + 0.01:
                    current = candidate
                else:
                    lines.append(current)
                    current = word
            lines.append(current)
        widest = max((face.measure(line, size, spacing) for line in lines), default=0.0)
        return lines, widest

    def line_height(self, style: TextStyle) -> float:
        return style.font_size * style.line_height

    # -- images -------------------------------------------------------------

    def intrinsic_size(self, source: EmbeddedImage) -> Tuple[float, float]:
        if source not in self._intrinsic:
            self._intrinsic[source] = _probe_image(source)
        return self._intrinsic[source]

    # -- measuring ----------------------------------------------------------

    def measure(self, node: LayoutNode, avail_w: float, avail_h: Optional[float]) -> Tuple[float, float]:
        """Natural border-box size of ``node`` within the available space."""
        avail_w = max(0.0, avail_w)
        if isinstance(node, Text):
            lines, widest = self.wrap(node, avail_w)
            return widest, len(lines) * self.line_height(node.style)

        if isinstance(node, Image):
            w = _resolve(node.style.width, avail_w)
            h = _resolve(node.style.height, avail_h)
            if w is None or h is None:
                iw, ih = self.intrinsic_size(node.source)
                if w is None and h is None:
                    w, h = iw, ih
                elif w is None:
                    w = h * iw / ih
                else:
                    h = w * ih / iw
            return w, h

        style = node.style
        inset = _insets(style)
        w = _resolve(style.width, avail_w)
        h = _resolve(style.height, avail_h)
        if w is not None and style.max_width is not None:
            w = min(w, style.max_width)
        outer_w = w if w is not None else min(avail_w, style.max_width if style.max_width is not None else avail_w)
        inner_w = max(0.0, outer_w - inset.horizontal)
        inner_h = None if h is None else max(0.0, h - inset.vertical)
        content_w, content_h = self._measure_content(node, inner_w, inner_h)
        if w is None:
            w = content_w + inset.horizontal
        if h is None:
            h = content_h + inset.vertical
        return w, h

    def _measure_content(self, box: Box, inner_w: float, inner_h: Optional[float]) -> Tuple[float, float]:
        flow = [c for c in box.children if not _is_absolute(c)]
        if not flow:
            return 0.0, 0.0
        gaps = box.style.gap * (len(flow) - 1)
        if box.style.flex_direction == "column":
            widest, total = 0.0, gaps
            for child in flow:
                m = _margin(child)
                cw, ch = self.measure(child, inner_w - m.horizontal, inner_h)
                widest = max(widest, cw + m.horizontal)
                total += ch + m.vertical
            return widest, total
        remaining, total, tallest = inner_w, gaps, 0.0
        for child in flow:
            m = _margin(child)
            cw, ch = self.measure(child, remaining - m.horizontal, inner_h)
            total += cw + m.horizontal
            tallest = max(tallest, ch + m.vertical)
            remaining -= cw + m.horizontal + box.style.gap
        return total, tallest

    # -- placing ------------------------------------------------------------

    def layout_root(self, tree: LayoutNode, width: float, height: float) -> Frame:
        style = _box_style(tree)
        if style is not None:
            w = _resolve(style.width, width)
            h = _resolve(style.height, height)
        else:
            w = h = None
        if w is None or h is None:
            nw, nh = self.measure(tree, width, height)
            w = nw if w is None else w
            h = nh if h is None else h
        canvas = (0.0, 0.0, float(width), float(height))
        return self.place(tree, 0.0, 0.0, w, h, canvas)

    def place(self, node: LayoutNode, x: float, y: float, w: float, h: float, cb) -> Frame:
        if isinstance(node, Text):
            lines, _ = self.wrap(node, w)
            return Frame(node, x, y, w, h, lines=tuple(lines))
        if isinstance(node, Image):
            return Frame(node, x, y, w, h)

        style = node.style
        inset = _insets(style)
        cx, cy = x + inset.left, y + inset.top
        cw, ch = max(0.0, w - inset.horizontal), max(0.0, h - inset.vertical)
        if style.is_positioned:
            b = style.border_width
            child_cb = (x + b, y + b, max(0.0, w - 2 * b), max(0.0, h - 2 * b))
        else:
            child_cb = cb

        frame = Frame(node, x, y, w, h)
        flow = [c for c in node.children if not _is_absolute(c)]
        flow_frames = iter(self._place_flow(node, flow, cx, cy, cw, ch, child_cb))
        # Keep document order so later siblings paint on top
        for child in node.children:
            if _is_absolute(child):
                frame.children.append(self._place_absolute(child, cx, cy, child_cb))
            else:
                frame.children.append(next(flow_frames))
        return frame

    def _place_flow(self, box: Box, flow: List[LayoutNode], cx: float, cy: float, cw: float, ch: float, cb) -> List[Frame]:
        style = box.style
        if not flow:
            return []
        column = style.flex_direction == "column"
        content_main = ch if column else cw
        content_cross = cw if column else ch

        mains: List[float] = []
        crosses: List[float] = []
        used = 0.0
        for child in flow:
            m = _margin(child)
            m_main = m.vertical if column else m.horizontal
            m_cross = m.horizontal if column else m.vertical
            cstyle = _box_style(child)
            align = _align_self(child) or style.align_items

            if column:
                main = _resolve(cstyle.height, ch) if cstyle else None
                cross = _resolve(cstyle.width, cw) if cstyle else None
                if cross is None and align == "stretch" and not isinstance(child, Image):
                    cross = cw - m_cross
                if cross is not None and cstyle is not None and cstyle.max_width is not None:
                    cross = min(cross, cstyle.max_width)
                if main is None or cross is None:
                    nw, nh = self.measure(child, cross if cross is not None else cw - m_cross, ch)
                    cross = nw if cross is None else cross
                    main = nh if main is None else main
            else:
                main = _resolve(cstyle.width, cw) if cstyle else None
                cross = _resolve(cstyle.height, ch) if cstyle else None
                avail = main if main is not None else max(0.0, cw - used - m_main)
                if main is None or cross is None:
                    nw, nh = self.measure(child, avail, ch)
                    main = nw if main is None else main
                    cross = nh if cross is None else cross
                if align == "stretch" and (cstyle is None or cstyle.height is None) and not isinstance(child, Image):
                    cross = max(cross, ch - m_cross)
            mains.append(main)
            crosses.append(cross)
            used += main + m_main + style.gap

        margins_main = [(_margin(c).vertical if column else _margin(c).horizontal) for c in flow]
        gaps = style.gap * (len(flow) - 1)
        free = content_main - sum(mains) - sum(margins_main) - gaps

        grows = [(_box_style(c).flex_grow if _box_style(c) else 0.0) for c in flow]
        total_grow = sum(grows)
        if free > 0 and total_grow > 0:
            mains = [m + free * g / total_grow for m, g in zip(mains, grows)]
            free = 0.0

        offset, spacing = 0.0, style.gap
        if free > 0:
            if style.justify_content == "center":
                offset = free / 2
            elif style.justify_content == "flex-end":
                offset = free
            elif style.justify_content == "space-between" and len(flow) > 1:
                spacing += free / (len(flow) - 1)

        results = []
        cursor = offset
        for i, child in enumerate(flow):
            m = _margin(child)
            lead_main = m.top if column else m.left
            lead_cross = m.left if column else m.top
            m_cross = m.horizontal if column else m.vertical
            align = _align_self(child) or style.align_items
            cross_free = content_cross - crosses[i] - m_cross
            if align == "center":
                cross_off = lead_cross + cross_free / 2
            elif align == "flex-end":
                cross_off = lead_cross + cross_free
            else:
                cross_off = lead_cross
            main_pos = cursor + lead_main
            if column:
                fx, fy, fw, fh = cx + cross_off, cy + main_pos, crosses[i], mains[i]
            else:
                fx, fy, fw, fh = cx + main_pos, cy + cross_off, mains[i], crosses[i]
            results.append(self.place(child, fx, fy, fw, fh, cb))
            cursor += mains[i] + margins_main[i] + spacing
        return results

    def _place_absolute(self, node: LayoutNode, cx: float, cy: float, cb) -> Frame:
        style = node.style
        m = style.margin
        bx, by, bw, bh = cb
        w = _resolve(style.width, bw)
        h = _resolve(style.height, bh)
        if w is None and style.left is not None and style.right is not None:
            w = max(0.0, bw - style.left - style.right - m.horizontal)
        if h is None and style.top is not None and style.bottom is not None:
            h = max(0.0, bh - style.top - style.bottom - m.vertical)
        if w is None or h is None:
            avail_w = w if w is not None else bw - (style.left or 0) - (style.right or 0) - m.horizontal
            nw, nh = self.measure(node, avail_w, h if h is not None else bh)
            w = nw if w is None else w
            h = nh if h is None else h

        if style.left is not None:
            x = bx + style.left + m.left
        elif style.right is not None:
            x = bx + bw - style.right - m.right - w
        else:
            x = cx + m.left
        if style.top is not None:
            y = by + style.top + m.top
        elif style.bottom is not None:
            y = by + bh - style.bottom - m.bottom - h
        else:
            y = cy + m.top
        return self.place(node, x, y, w, h, cb)


def _probe_image(source: EmbeddedImage) -> Tuple[float, float]:
    """Intrinsic (width, height) of an embedded payload; RenderError if it does not decode."""
    if source.is_svg:
        try:
            root = ET.fromstring(source.data)
        except ET.ParseError as e:
            raise RenderError("Invalid embedded image", details=f"SVG payload does not parse: {e}") from e
        w, h = _resolve(root.get("width"), None), _resolve(root.get("height"), None)
        if (w is None or h is None) and root.get("viewBox"):
            parts = root.get("viewBox").replace(",", " ").split()
            if len(parts) == 4:
                w, h = float(parts[2]), float(parts[3])
        if not w or not h:
            raise RenderError("Invalid embedded image", details="SVG payload has no usable size")
        return w, h
    try:
        with PILImage.open(io.BytesIO(source.data)) as im:
            im.load()
            w, h = im.size
    except (OSError, ValueError, PILImage.DecompressionBombError) as e:
        raise RenderError("Invalid embedded image", details=f"{source.content_type} payload does not decode: {e}") from e
    if not w or not h:
        raise RenderError("Invalid embedded image", details="Image has no pixels")
    return float(w), float(h)


def _gradient_vector(direction) -> Tuple[float, float, float, float]:
    angle = _DIRECTION_ANGLES.get(direction) if isinstance(direction, str) else float(direction)
    if angle is None:
        raise RenderError("Unsupported gradient", details=f"direction {direction!r}")
    rad = math.radians(angle)
    dx, dy = math.sin(rad) / 2, -math.cos(rad) / 2
    return 0.5 - dx, 0.5 - dy, 0.5 + dx, 0.5 + dy


def _color(value: str) -> Tuple[str, float]:
    try:
        return parse_color(value)
    except ValueError as e:
        raise RenderError("Unsupported color", details=str(e)) from e


class _Painter:
    """Turns frames into template-ready primitives."""

    def __init__(self, engine: _LayoutEngine):
        self.engine = engine
        self.ops: List[Dict[str, Any]] = []
        self.gradients: List[Dict[str, Any]] = []
        self.clips: List[Dict[str, Any]] = []

    def paint(self, frame: Frame, out: Optional[List[Dict[str, Any]]] = None) -> None:
        out = self.ops if out is None else out
        node = frame.node
        if isinstance(node, Text):
            self._paint_text(frame, out)
        elif isinstance(node, Image):
            self._paint_image(frame, out)
        else:
            self._paint_box(frame, out)

    def _paint_box(self, frame: Frame, out: List[Dict[str, Any]]) -> None:
        style = frame.node.style
        target = out
        if style.opacity < 1:
            group = {"kind": "group", "opacity": _num(style.opacity), "children": []}
            out.append(group)
            target = group["children"]

        radius = min(style.border_radius, frame.w / 2, frame.h / 2)
        if style.background is not None:
            if isinstance(style.background, LinearGradient):
                fill, fill_opacity = f"url(#{self._gradient(style.background)})", 1.0
            else:
                fill, fill_opacity = _color(style.background)
            target.append(self._rect(frame.x, frame.y, frame.w, frame.h, radius, fill, fill_opacity))
        if style.border_width > 0 and style.border_color:
            bw = style.border_width
            stroke, stroke_opacity = _color(style.border_color)
            rect = self._rect(
                frame.x + bw / 2, frame.y + bw / 2, frame.w - bw, frame.h - bw,
                max(0.0, radius - bw / 2), "none", 0.0,
            )
            rect.update(stroke=stroke, stroke_opacity=_num(stroke_opacity), stroke_width=_num(bw))
            target.append(rect)

        for child in frame.children:
            self.paint(child, target)

    def _paint_text(self, frame: Frame, out: List[Dict[str, Any]]) -> None:
        node: Text = frame.node
        style = node.style
        face = self.engine.face_for(style)
        size, spacing = style.font_size, style.letter_spacing
        lh = self.engine.line_height(style)
        ascent, descent = face.line_box(size)
        opacity = 1.0 if style.opacity is None else style.opacity

        def outline(dx: float, dy: float) -> str:
            parts = []
            for i, line in enumerate(frame.lines):
                if not line:
                    continue
                width = face.measure(line, size, spacing)
                if style.text_align == "center":
                    x = frame.x + (frame.w - width) / 2
                elif style.text_align == "right":
                    x = frame.x + frame.w - width
                else:
                    x = frame.x
                baseline = frame.y + i * lh + (lh - (ascent + descent)) / 2 + ascent
                d = face.outline_path(line, x + dx, baseline + dy, size, spacing)
                if d:
                    parts.append(d)
            return " ".join(parts)

        if style.shadow is not None:
            d = outline(style.shadow.dx, style.shadow.dy)
            if d:
                color, alpha = _color(style.shadow.color)
                out.append({"kind": "path", "d": d, "fill": color, "fill_opacity": _num(alpha * opacity)})
        d = outline(0.0, 0.0)
        if d:
            color, alpha = _color(style.color)
            out.append({"kind": "path", "d": d, "fill": color, "fill_opacity": _num(alpha * opacity)})

    def _paint_image(self, frame: Frame, out: List[Dict[str, Any]]) -> None:
        node: Image = frame.node
        iw, ih = self.engine.intrinsic_size(node.source)
        if frame.w <= 0 or frame.h <= 0:
            return
        if node.object_fit == "fill":
            dw, dh = frame.w, frame.h
        else:
            pick = max if node.object_fit == "cover" else min
            scale = pick(frame.w / iw, frame.h / ih)
            dw, dh = iw * scale, ih * scale
        dx = frame.x + (frame.w - dw) / 2
        dy = frame.y + (frame.h - dh) / 2

        radius = min(node.style.border_radius, frame.w / 2, frame.h / 2)
        clip = None
        if dw > frame.w + 0.01 or dh > frame.h + 0.01 or radius > 0:
            clip = f"clip{len(self.clips) + 1}"
            self.clips.append({
                "id": clip, "x": _num(frame.x), "y": _num(frame.y),
                "w": _num(frame.w), "h": _num(frame.h), "rx": _num(radius),
            })
        out.append({
            "kind": "image", "x": _num(dx), "y": _num(dy), "w": _num(dw), "h": _num(dh),
            "clip": clip, "href": node.source.data_uri,
        })

    def _gradient(self, gradient: LinearGradient) -> str:
        gid = f"grad{len(self.gradients) + 1}"
        x1, y1, x2, y2 = _gradient_vector(gradient.direction)
        stops = []
        for stop in gradient.stops:
            color, alpha = _color(stop.color)
            stops.append({"offset": _num(stop.offset), "color": color, "opacity": _num(alpha)})
        self.gradients.append({"id": gid, "x1": _num(x1), "y1": _num(y1), "x2": _num(x2), "y2": _num(y2), "stops": stops})
        return gid

    @staticmethod
    def _rect(x, y, w, h, rx, fill, fill_opacity) -> Dict[str, Any]:
        return {
            "kind": "rect", "x": _num(x), "y": _num(y), "w": _num(max(0.0, w)), "h": _num(max(0.0, h)),
            "rx": _num(rx), "fill": fill, "fill_opacity": _num(fill_opacity), "stroke": None,
        }


def _check_text_styles(tree: LayoutNode, fonts: FontRegistry) -> None:
    for node in iter_nodes(tree):
        if isinstance(node, Text):
            missing = node.style.missing()
            if missing:
                raise RenderError("Unresolved text style", details=f"{node.content[:32]!r} has no {', '.join(missing)}")
            fonts.get(node.style.font_family, node.style.font_weight, node.style.font_style)


def _layout(tree: LayoutNode, fonts: FontRegistry, width: int, height: int) -> Tuple[_LayoutEngine, Frame]:
    if width <= 0 or height <= 0:
        raise RenderError("Invalid canvas size", details=f"{width}x{height}")
    resolved = resolve_text_styles(tree)
    _check_text_styles(resolved, fonts)
    engine = _LayoutEngine(fonts)
    return engine, engine.layout_root(resolved, width, height)


def compute_layout(tree: LayoutNode, fonts: FontRegistry, width: int, height: int) -> Frame:
    """Resolve styles and lay ``tree`` out on a width x height canvas."""
    return _layout(tree, fonts, int(width), int(height))[1]


def render_tree(tree: LayoutNode, fonts: FontRegistry, width: int, height: int) -> VectorDocument:
    """Lay out ``tree`` and emit an SVG whose viewport is exactly width x height."""
    width, height = int(width), int(height)
    engine, root = _layout(tree, fonts, width, height)
    painter = _Painter(engine)
    painter.paint(root)
    svg = _template.render(
        width=width,
        height=height,
        gradients=painter.gradients,
        clips=painter.clips,
        ops=painter.ops,
    )
    logger.debug(f"render_tree: {width}x{height} ops={len(painter.ops)} svg_len={len(svg)}")
    return VectorDocument(svg=svg, width=width, height=height)
