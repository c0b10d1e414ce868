import xml.etree.ElementTree as ET

import pytest

from card_service.assets import EmbeddedImage
from card_service.compositor import compute_layout, render_tree
from card_service.errors import RenderError
from card_service.layout import Box, BoxStyle, Edges, GradientStop, Image, LinearGradient, Text, TextStyle
from card_service.params import CardParams, CoverParams
from card_service.templates import build_card, build_cover

SVG_NS = "{http://www.w3.org/2000/svg}"
SANS = TextStyle(font_family="Test Sans", font_size=10, line_height=1.0)


def _root(*children, **style):
    style.setdefault("width", "100%")
    style.setdefault("height", "100%")
    return Box(style=BoxStyle(**style), children=children, text=SANS)


def test_svg_viewport_matches_canvas(registry):
    doc = render_tree(_root(Text("Hello")), registry, 200, 100)
    root = ET.fromstring(doc.svg)
    assert root.tag == f"{SVG_NS}svg"
    assert root.get("width") == "200"
    assert root.get("height") == "100"
    assert root.get("viewBox") == "0 0 200 100"
    assert (doc.width, doc.height) == (200, 100)


def test_render_is_deterministic(registry, poster):
    tree = build_card(CardParams(title="Heat"), poster)
    first = render_tree(tree, registry, 1080, 1350)
    second = render_tree(tree, registry, 1080, 1350)
    assert first.svg == second.svg


def test_text_is_drawn_as_outlines(registry):
    doc = render_tree(_root(Text("AB")), registry, 200, 100)
    paths = ET.fromstring(doc.svg).findall(f"{SVG_NS}path")
    assert len(paths) == 1
    assert paths[0].get("d").startswith("M")
    assert "<text" not in doc.svg


def test_markup_characters_do_not_break_document(registry):
    doc = render_tree(_root(Text('<&"é> </svg>')), registry, 200, 100)
    ET.fromstring(doc.svg)
    assert doc.svg.count("</svg>") == 1


def test_full_card_and_cover_render(registry, poster):
    card = render_tree(build_card(CardParams(), poster), registry, 1080, 1350)
    ET.fromstring(card.svg)
    assert 'id="grad1"' in card.svg
    assert "data:image/png;base64," in card.svg
    assert "data:image/svg+xml;base64," in card.svg

    cover = render_tree(build_cover(CoverParams(backgroundColor="#1e90ff")), registry, 1080, 1350)
    rects = ET.fromstring(cover.svg).findall(f"{SVG_NS}rect")
    assert rects[0].get("fill") == "#1e90ff"


def test_missing_font_face_is_an_error(registry):
    tree = Box(children=(Text("x"),), text=TextStyle(font_family="Nope"))
    with pytest.raises(RenderError) as exc:
        render_tree(tree, registry, 100, 100)
    assert exc.value.message == "Font not available"


def test_unresolved_family_is_an_error(registry):
    with pytest.raises(RenderError) as exc:
        render_tree(Box(children=(Text("x"),)), registry, 100, 100)
    assert exc.value.message == "Unresolved text style"
    assert "font_family" in exc.value.details


def test_malformed_image_payload_is_an_error(registry):
    bad = EmbeddedImage(content_type="image/png", data=b"definitely not a png")
    tree = _root(Image(source=bad, style=BoxStyle(width=50, height=50)))
    with pytest.raises(RenderError) as exc:
        render_tree(tree, registry, 100, 100)
    assert exc.value.message == "Invalid embedded image"


def test_invalid_canvas_size(registry):
    with pytest.raises(RenderError):
        render_tree(_root(), registry, 0, 100)


def test_column_space_between_with_padding(registry):
    tree = _root(
        Text("A"),
        Text("B"),
        flex_direction="column",
        justify_content="space-between",
        padding=Edges.all(10),
    )
    frame = compute_layout(tree, registry, 200, 100)
    first, second = frame.children
    assert (first.x, first.y, first.w, first.h) == pytest.approx((10, 10, 180, 10))
    assert (second.x, second.y) == pytest.approx((10, 80))


def test_row_gap_offsets_children(registry):
    frame = compute_layout(_root(Text("A"), Text("BB"), gap=5), registry, 200, 100)
    first, second = frame.children
    assert (first.x, first.w) == pytest.approx((0, 5))
    assert (second.x, second.w) == pytest.approx((10, 10))


def test_align_items_center(registry):
    tree = _root(Text("AB"), flex_direction="column", align_items="center")
    child = compute_layout(tree, registry, 200, 100).children[0]
    assert (child.x, child.w) == pytest.approx((95, 10))


def test_column_stretch_respects_max_width(registry):
    capped = Box(style=BoxStyle(max_width=50, height=10))
    wide = Box(style=BoxStyle(width=120, max_width=80, height=10))
    first, second = compute_layout(_root(capped, wide, flex_direction="column"), registry, 200, 100).children
    assert first.w == pytest.approx(50)
    assert second.w == pytest.approx(80)


def test_flex_grow_takes_free_space(registry):
    tree = _root(Box(style=BoxStyle(flex_grow=1)), Text("A"), flex_direction="column")
    spacer, text = compute_layout(tree, registry, 200, 100).children
    assert spacer.h == pytest.approx(90)
    assert text.y == pytest.approx(90)


def test_absolute_right_bottom(registry):
    child = Box(style=BoxStyle(position="absolute", right=10, bottom=10, width=20, height=20))
    frame = compute_layout(_root(child, position="relative"), registry, 200, 100)
    placed = frame.children[0]
    assert (placed.x, placed.y, placed.w, placed.h) == pytest.approx((170, 70, 20, 20))


def test_absolute_children_keep_document_order(registry):
    overlay = Box(style=BoxStyle(position="absolute", top=0, left=0, right=0, bottom=0))
    frame = compute_layout(_root(Text("A"), overlay, Text("B"), position="relative"), registry, 200, 100)
    kinds = [type(c.node).__name__ for c in frame.children]
    assert kinds == ["Text", "Box", "Text"]
    assert (frame.children[1].w, frame.children[1].h) == pytest.approx((200, 100))


def test_text_wraps_at_available_width(registry):
    tree = _root(Box(style=BoxStyle(flex_direction="column", width=30), children=(Text("aaaa bbbb"),)))
    frame = compute_layout(tree, registry, 200, 100)
    text = frame.children[0].children[0]
    assert text.lines == ("aaaa", "bbbb")
    assert text.h == pytest.approx(20)


def test_gradient_and_clip_are_emitted(registry, poster):
    gradient = LinearGradient(stops=(GradientStop("rgba(0,0,0,0.7)", 0), GradientStop("transparent", 1)))
    tree = _root(
        Box(style=BoxStyle(width=100, height=100, background=gradient)),
        Image(source=poster, style=BoxStyle(width=100, height=100), object_fit="cover"),
    )
    doc = render_tree(tree, registry, 200, 100)
    root = ET.fromstring(doc.svg)
    grad = root.find(f"{SVG_NS}defs/{SVG_NS}linearGradient")
    assert grad.get("id") == "grad1"
    assert (grad.get("x1"), grad.get("y1"), grad.get("x2"), grad.get("y2")) == ("0.5", "0", "0.5", "1")
    stops = grad.findall(f"{SVG_NS}stop")
    assert stops[0].get("stop-opacity") == "0.7"
    assert stops[1].get("stop-opacity") == "0"
    image = root.find(f"{SVG_NS}image")
    assert image.get("clip-path") == "url(#clip1)"
    # 60x90 poster covering a 100x100 box is scaled to 100x150
    assert (image.get("width"), image.get("height")) == ("100", "150")
