"""Layout tree vocabulary.

A template is described as a tree of three node kinds:

- ``Box``: a flex container with paint (background, border, radius) and an
  optional inheritable ``TextStyle`` for the text below it.
- ``Text``: a run of text; its style may leave fields unset to inherit them.
- ``Image``: an embedded image payload placed with an object-fit rule.

All nodes and styles are frozen dataclasses, so two trees built from the same
parameters compare equal.
"""
from dataclasses import dataclass, field, fields, replace
from typing import Optional, Tuple, Union

from .assets import EmbeddedImage

# A length is either pixels or a percentage string like "100%"
Length = Union[float, int, str]


@dataclass(frozen=True)
class Edges:
    top: float = 0
    right: float = 0
    bottom: float = 0
    left: float = 0

    @classmethod
    def all(cls, v: float) -> "Edges":
        return cls(v, v, v, v)

    @classmethod
    def symmetric(cls, vertical: float, horizontal: float) -> "Edges":
        return cls(vertical, horizontal, vertical, horizontal)

    @property
    def horizontal(self) -> float:
        return self.left + self.right

    @property
    def vertical(self) -> float:
        return self.top + self.bottom


NO_EDGES = Edges()


@dataclass(frozen=True)
class GradientStop:
    color: str
    offset: float  # 0..1


@dataclass(frozen=True)
class LinearGradient:
    stops: Tuple[GradientStop, ...]
    # CSS direction keyword ("to bottom") or an angle in degrees
    direction: Union[str, float] = "to bottom"


Background = Union[str, LinearGradient]


@dataclass(frozen=True)
class Shadow:
    dx: float
    dy: float
    blur: float = 0
    color: str = "rgba(0,0,0,0.5)"


@dataclass(frozen=True)
class BoxStyle:
    display: str = "flex"
    flex_direction: str = "row"
    justify_content: str = "flex-start"
    align_items: str = "stretch"
    align_self: Optional[str] = None
    gap: float = 0
    padding: Edges = NO_EDGES
    margin: Edges = NO_EDGES
    position: str = "static"
    top: Optional[float] = None
    right: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    width: Optional[Length] = None
    height: Optional[Length] = None
    max_width: Optional[float] = None
    flex_grow: float = 0
    background: Optional[Background] = None
    border_radius: float = 0
    border_width: float = 0
    border_color: Optional[str] = None
    opacity: float = 1.0

    @property
    def is_positioned(self) -> bool:
        return self.position in ("relative", "absolute")


@dataclass(frozen=True)
class TextStyle:
    """Text properties; None means "inherit from the enclosing Box"."""

    font_family: Optional[str] = None
    font_size: Optional[float] = None
    font_weight: Optional[int] = None
    font_style: Optional[str] = None
    color: Optional[str] = None
    opacity: Optional[float] = None
    line_height: Optional[float] = None
    letter_spacing: Optional[float] = None
    text_transform: Optional[str] = None
    text_align: Optional[str] = None
    shadow: Optional[Shadow] = None

    def inherit(self, parent: Optional["TextStyle"]) -> "TextStyle":
        """Fill unset fields from ``parent``.

        Opacity and shadow are never inherited; they apply only to the Text
        that declares them.
        """
        if parent is None:
            return self
        updates = {}
        for f in fields(self):
            if f.name in ("opacity", "shadow"):
                continue
            if getattr(self, f.name) is None:
                updates[f.name] = getattr(parent, f.name)
        return replace(self, **updates) if updates else self

    def missing(self) -> Tuple[str, ...]:
        return tuple(
            f.name for f in fields(self)
            if getattr(self, f.name) is None and f.name not in ("opacity", "shadow")
        )


# Root-level fallbacks for everything but the font family, which a template
# must always name explicitly.
BASE_TEXT_STYLE = TextStyle(
    font_size=16,
    font_weight=400,
    font_style="normal",
    color="#000000",
    line_height=1.2,
    letter_spacing=0,
    text_transform="none",
    text_align="left",
)


@dataclass(frozen=True)
class Text:
    content: str
    style: TextStyle = TextStyle()
    margin: Edges = NO_EDGES
    max_width: Optional[float] = None
    align_self: Optional[str] = None

    @property
    def display_text(self) -> str:
        transform = self.style.text_transform or "none"
        if transform == "uppercase":
            return self.content.upper()
        if transform == "lowercase":
            return self.content.lower()
        if transform == "capitalize":
            return " ".join(w[:1].upper() + w[1:] for w in self.content.split(" "))
        return self.content


@dataclass(frozen=True)
class Image:
    source: EmbeddedImage
    style: BoxStyle = BoxStyle()
    object_fit: str = "cover"


@dataclass(frozen=True)
class Box:
    style: BoxStyle = BoxStyle()
    children: Tuple["LayoutNode", ...] = field(default_factory=tuple)
    text: Optional[TextStyle] = None


LayoutNode = Union[Box, Text, Image]


def resolve_text_styles(node: LayoutNode, inherited: TextStyle = BASE_TEXT_STYLE) -> LayoutNode:
    """Return a copy of the tree where every Text carries a concrete style."""
    if isinstance(node, Text):
        return replace(node, style=node.style.inherit(inherited))
    if isinstance(node, Box):
        scope = node.text.inherit(inherited) if node.text else inherited
        children = tuple(resolve_text_styles(child, scope) for child in node.children)
        return replace(node, children=children)
    return node


def iter_nodes(node: LayoutNode):
    yield node
    if isinstance(node, Box):
        for child in node.children:
            yield from iter_nodes(child)
