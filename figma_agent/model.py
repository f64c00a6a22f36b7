"""
Pipeline data model

  ExtractedNode (+ variants)  ← Extractor
  LayoutSpec                  ← Layout Interpreter
  VisualStyle                 ← Visual Resolver
  TokenBinding                ← Token Engine
  GeneratedElement            ← Semantic Generator

Everything a stage hands to the next one is a frozen dataclass; downstream
stages derive new objects (``dataclasses.replace``) instead of mutating.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Iterator, Mapping, Optional, Union


# ════════════════════════════════════════════════════════════
# Enums
# ════════════════════════════════════════════════════════════

class NodeKind(str, Enum):
    FRAME = "FRAME"
    GROUP = "GROUP"
    TEXT = "TEXT"
    VECTOR = "VECTOR"
    INSTANCE = "INSTANCE"
    VECTOR_CONTAINER = "VECTOR_CONTAINER"
    PLACEHOLDER = "PLACEHOLDER"


class LayoutMode(str, Enum):
    NONE = "NONE"
    HORIZONTAL = "HORIZONTAL"
    VERTICAL = "VERTICAL"


class SizingMode(str, Enum):
    FIXED = "FIXED"
    HUG = "HUG"
    FILL = "FILL"


class StrokeAlign(str, Enum):
    INSIDE = "INSIDE"
    CENTER = "CENTER"
    OUTSIDE = "OUTSIDE"


class PaintType(str, Enum):
    SOLID = "SOLID"
    GRADIENT_LINEAR = "GRADIENT_LINEAR"
    GRADIENT_RADIAL = "GRADIENT_RADIAL"
    GRADIENT_ANGULAR = "GRADIENT_ANGULAR"
    GRADIENT_DIAMOND = "GRADIENT_DIAMOND"
    IMAGE = "IMAGE"


class EffectType(str, Enum):
    DROP_SHADOW = "DROP_SHADOW"
    INNER_SHADOW = "INNER_SHADOW"
    LAYER_BLUR = "LAYER_BLUR"
    BACKGROUND_BLUR = "BACKGROUND_BLUR"


class Provenance(str, Enum):
    RAW = "raw"
    TOKEN = "token"
    VARIABLE = "variable"


class TokenCategory(str, Enum):
    COLOR = "color"
    SPACING = "spacing"
    TYPOGRAPHY = "typography"
    RADIUS = "radius"
    SHADOW = "shadow"

    @property
    def prefix(self) -> str:
        return _TOKEN_PREFIXES[self]


_TOKEN_PREFIXES = {
    TokenCategory.COLOR: "color",
    TokenCategory.SPACING: "spacing",
    TokenCategory.TYPOGRAPHY: "text",
    TokenCategory.RADIUS: "radius",
    TokenCategory.SHADOW: "shadow",
}


def category_for_token_name(name: str) -> Optional[TokenCategory]:
    """Map a ``color-*`` / ``spacing-*`` / ... identifier back to its category."""
    for category, prefix in _TOKEN_PREFIXES.items():
        if name == prefix or name.startswith(prefix + "-"):
            return category
    return None


# ════════════════════════════════════════════════════════════
# Number formatting
# ════════════════════════════════════════════════════════════

def format_number(value: float) -> str:
    """8.0 → "8", 1.504 → "1.5", -0.0 → "0"."""
    rounded = round(float(value), 2)
    if rounded == 0:
        return "0"
    return f"{rounded:g}"


def px(value: float) -> str:
    text = format_number(value)
    return "0" if text == "0" else f"{text}px"


# ════════════════════════════════════════════════════════════
# Value types
# ════════════════════════════════════════════════════════════

_HEX_RE = re.compile(r"^#?([0-9A-Fa-f]{6})([0-9A-Fa-f]{2})?$")


@dataclass(frozen=True)
class Color:
    """Figma RGBA color, channels in 0‒1."""
    r: float
    g: float
    b: float
    a: float = 1.0

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["Color"]:
        if isinstance(raw, Color):
            return raw
        if isinstance(raw, str):
            return cls.from_hex(raw)
        if not isinstance(raw, dict):
            return None
        try:
            return cls(
                r=float(raw.get("r", 0)),
                g=float(raw.get("g", 0)),
                b=float(raw.get("b", 0)),
                a=float(raw.get("a", 1.0)),
            )
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_hex(cls, value: str) -> Optional["Color"]:
        match = _HEX_RE.match(value.strip())
        if not match:
            return None
        rgb, alpha = match.group(1), match.group(2)
        return cls(
            r=int(rgb[0:2], 16) / 255,
            g=int(rgb[2:4], 16) / 255,
            b=int(rgb[4:6], 16) / 255,
            a=int(alpha, 16) / 255 if alpha else 1.0,
        )

    def channels(self) -> tuple[int, int, int, int]:
        def q(c: float) -> int:
            return max(0, min(255, round(c * 255)))
        return q(self.r), q(self.g), q(self.b), q(self.a)

    def with_alpha(self, factor: float) -> "Color":
        return replace(self, a=self.a * factor)

    def to_hex(self) -> str:
        r, g, b, a = self.channels()
        out = f"#{r:02X}{g:02X}{b:02X}"
        if a < 255:
            out += f"{a:02X}"
        return out


@dataclass(frozen=True)
class BindingRef:
    """Reference from a node property (or a single paint entry) to a design
    variable or a shared style, resolved through the variable table."""
    id: str
    kind: str = "variable"  # "variable" | "style"

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["BindingRef"]:
        if isinstance(raw, BindingRef):
            return raw
        if isinstance(raw, str) and raw:
            return cls(id=raw)
        if isinstance(raw, dict) and raw.get("id"):
            return cls(id=str(raw["id"]))
        return None


@dataclass(frozen=True)
class ColorStop:
    color: Color
    position: float
    binding: Optional[BindingRef] = None


@dataclass(frozen=True)
class Paint:
    type: PaintType
    color: Optional[Color] = None
    opacity: float = 1.0
    visible: bool = True
    stops: tuple[ColorStop, ...] = ()
    # (a, b, c, d) of the 2×2 gradient transform
    matrix: Optional[tuple[float, float, float, float]] = None
    image_ref: Optional[str] = None
    scale_mode: str = "FILL"
    blend_mode: str = "NORMAL"
    binding: Optional[BindingRef] = None


@dataclass(frozen=True)
class Effect:
    type: EffectType
    color: Optional[Color] = None
    offset_x: float = 0.0
    offset_y: float = 0.0
    radius: float = 0.0
    spread: float = 0.0
    visible: bool = True
    binding: Optional[BindingRef] = None


@dataclass(frozen=True)
class Geometry:
    """Position is relative to the parent node's box."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0


@dataclass(frozen=True)
class CornerRadii:
    top_left: float = 0.0
    top_right: float = 0.0
    bottom_right: float = 0.0
    bottom_left: float = 0.0

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)

    @property
    def is_uniform(self) -> bool:
        return len(set(self.as_tuple())) == 1

    @property
    def is_zero(self) -> bool:
        return not any(self.as_tuple())


@dataclass(frozen=True)
class StrokeConfig:
    weight: float = 0.0
    align: StrokeAlign = StrokeAlign.INSIDE
    # (top, right, bottom, left) when the source sets individual weights
    side_weights: Optional[tuple[float, float, float, float]] = None
    dashes: tuple[float, ...] = ()


@dataclass(frozen=True)
class LayoutConfig:
    mode: LayoutMode = LayoutMode.NONE
    primary_align: str = "MIN"
    counter_align: str = "MIN"
    gap: float = 0.0
    counter_gap: Optional[float] = None
    padding: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    wrap: bool = False

    @property
    def is_auto_layout(self) -> bool:
        return self.mode != LayoutMode.NONE


@dataclass(frozen=True)
class ChildSizing:
    horizontal: SizingMode = SizingMode.FIXED
    vertical: SizingMode = SizingMode.FIXED
    absolute: bool = False
    min_width: Optional[float] = None
    max_width: Optional[float] = None
    min_height: Optional[float] = None
    max_height: Optional[float] = None


@dataclass(frozen=True)
class TypeStyle:
    font_family: str = "Inter"
    font_size: float = 14.0
    font_weight: int = 400
    line_height: Optional[float] = None  # px; None = normal
    letter_spacing: float = 0.0
    text_align: str = "LEFT"
    text_case: str = "ORIGINAL"
    text_decoration: str = "NONE"
    italic: bool = False


# ════════════════════════════════════════════════════════════
# ExtractedNode: closed set of variants over a shared base
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True, kw_only=True)
class ExtractedNode:
    kind: ClassVar[NodeKind]

    id: str
    name: str = ""
    source_type: str = ""
    geometry: Geometry = field(default_factory=Geometry)
    sizing: ChildSizing = field(default_factory=ChildSizing)
    fills: tuple[Paint, ...] = ()
    strokes: tuple[Paint, ...] = ()
    stroke: StrokeConfig = field(default_factory=StrokeConfig)
    effects: tuple[Effect, ...] = ()
    radii: CornerRadii = field(default_factory=CornerRadii)
    opacity: float = 1.0
    blend_mode: str = "PASS_THROUGH"
    bindings: Mapping[str, BindingRef] = field(default_factory=dict)
    children: tuple["ExtractedNode", ...] = ()
    truncated: bool = False
    interactive: bool = False

    def walk(self) -> Iterator["ExtractedNode"]:
        """Pre-order traversal."""
        stack = [self]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    @property
    def layout_config(self) -> LayoutConfig:
        return LayoutConfig()


@dataclass(frozen=True, kw_only=True)
class FrameNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.FRAME
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    clips_content: bool = False
    is_component: bool = False
    variant_properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def layout_config(self) -> LayoutConfig:
        return self.layout


@dataclass(frozen=True, kw_only=True)
class GroupNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.GROUP


@dataclass(frozen=True, kw_only=True)
class TextNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.TEXT
    characters: str = ""
    style: TypeStyle = field(default_factory=TypeStyle)


@dataclass(frozen=True, kw_only=True)
class VectorNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.VECTOR
    vector_paths: tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class InstanceNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.INSTANCE
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    clips_content: bool = False
    # index into the extraction arena / component cache, never the master object
    component_id: Optional[str] = None
    variant_properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def layout_config(self) -> LayoutConfig:
        return self.layout


@dataclass(frozen=True, kw_only=True)
class VectorContainerNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.VECTOR_CONTAINER


@dataclass(frozen=True, kw_only=True)
class PlaceholderNode(ExtractedNode):
    kind: ClassVar[NodeKind] = NodeKind.PLACEHOLDER
    original_type: str = ""


AnyNode = Union[
    FrameNode, GroupNode, TextNode, VectorNode,
    InstanceNode, VectorContainerNode, PlaceholderNode,
]

# Document-level wrappers: no visual meaning, their frames are pages
DOCUMENT_WRAPPERS = frozenset({"DOCUMENT", "CANVAS"})

# Leaf vector shapes that render as plain boxes rather than exported graphics
BOX_SHAPES = frozenset({"RECTANGLE", "ELLIPSE"})


def exports_as_asset(node: ExtractedNode) -> bool:
    if isinstance(node, VectorContainerNode):
        return True
    return isinstance(node, VectorNode) and node.source_type not in BOX_SHAPES


def image_fill(node: ExtractedNode) -> Optional[Paint]:
    """Topmost visible IMAGE paint of a leaf node (an image-replacing node)."""
    if node.children:
        return None
    for paint in reversed(node.fills):
        if paint.visible and paint.type == PaintType.IMAGE and paint.image_ref:
            return paint
    return None


# ════════════════════════════════════════════════════════════
# Resolved values
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StyleValue:
    """A single resolved value with its provenance.

    ``key`` is the canonical literal used for token matching; values without a
    key (placeholders, composites) never take part in promotion.
    """
    css: str
    category: Optional[TokenCategory] = None
    provenance: Provenance = Provenance.RAW
    key: Optional[str] = None
    token: Optional[str] = None
    variable_id: Optional[str] = None
    variable_name: Optional[str] = None

    def render(self) -> str:
        if self.token:
            return f"var(--{self.token})"
        return self.css

    def with_token(self, name: str) -> "StyleValue":
        provenance = self.provenance
        if provenance == Provenance.RAW:
            provenance = Provenance.TOKEN
        return replace(self, token=name, provenance=provenance)


@dataclass(frozen=True)
class Declaration:
    property: str
    value: str
    tokens: tuple[str, ...] = ()
    layout: bool = False


def declaration(prop: str, *values: Union[StyleValue, str], sep: str = " ", layout: bool = False) -> Declaration:
    """Join literal strings and StyleValues into a declaration, remembering
    which token names the rendered value consumes."""
    parts = []
    tokens = []
    for value in values:
        if isinstance(value, StyleValue):
            parts.append(value.render())
            if value.token and value.token not in tokens:
                tokens.append(value.token)
        else:
            parts.append(value)
    return Declaration(prop, sep.join(parts), tuple(tokens), layout)


@dataclass(frozen=True)
class AxisSizing:
    mode: SizingMode = SizingMode.FIXED
    role: Optional[str] = None  # "primary" | "counter" | None outside flex flow
    size: float = 0.0
    minimum: Optional[float] = None
    maximum: Optional[float] = None


@dataclass(frozen=True)
class LayoutSpec:
    node_id: str
    display: Optional[str] = None
    direction: Optional[str] = None  # "row" | "column"
    justify: Optional[str] = None
    align: Optional[str] = None
    wrap: bool = False
    gap: Optional[StyleValue] = None
    row_gap: Optional[StyleValue] = None
    column_gap: Optional[StyleValue] = None
    padding: tuple[StyleValue, ...] = ()
    width: AxisSizing = field(default_factory=AxisSizing)
    height: AxisSizing = field(default_factory=AxisSizing)
    position: Optional[str] = None
    offset: Optional[tuple[float, float]] = None
    clip: bool = False
    breakpoint: Optional[str] = None

    def values(self) -> Iterator[tuple[str, StyleValue]]:
        for prop in ("gap", "row_gap", "column_gap"):
            value = getattr(self, prop)
            if value is not None:
                yield prop, value
        if self.padding and len(set(self.padding)) == 1:
            # one uniform padding is one authored value
            sides = [("padding", self.padding[0])]
        else:
            sides = zip(("padding-top", "padding-right", "padding-bottom", "padding-left"), self.padding)
        for side, value in sides:
            if value.provenance == Provenance.RAW and value.key == "0":
                continue
            yield side, value

    def map_values(self, fn: Callable[[StyleValue], StyleValue]) -> "LayoutSpec":
        def opt(value: Optional[StyleValue]) -> Optional[StyleValue]:
            return fn(value) if value is not None else None
        return replace(
            self,
            gap=opt(self.gap),
            row_gap=opt(self.row_gap),
            column_gap=opt(self.column_gap),
            padding=tuple(fn(v) for v in self.padding),
        )


@dataclass(frozen=True)
class BackgroundLayer:
    kind: str  # "solid" | "gradient" | "image"
    value: StyleValue
    blend_mode: Optional[str] = None


@dataclass(frozen=True)
class ShadowLayer:
    """One box-shadow entry. ``template`` holds a ``{color}`` slot; effect
    shadows also carry the whole shadow as a promotable value."""
    inset: bool
    template: str
    color: StyleValue
    whole: Optional[StyleValue] = None

    def literal(self) -> str:
        return self.template.format(color=self.color.css)

    def render(self) -> StyleValue:
        if self.whole is not None and self.whole.token:
            return self.whole
        return StyleValue(self.template.format(color=self.color.render()), token=None)

    def tokens(self) -> tuple[str, ...]:
        if self.whole is not None and self.whole.token:
            return (self.whole.token,)
        return (self.color.token,) if self.color.token else ()


@dataclass(frozen=True)
class BorderSpec:
    width: float
    style: str  # "solid" | "dashed"
    color: StyleValue
    sides: Optional[tuple[float, float, float, float]] = None
    outline: bool = False
    offset: float = 0.0


@dataclass(frozen=True)
class VisualStyle:
    node_id: str
    backgrounds: tuple[BackgroundLayer, ...] = ()
    image: Optional[str] = None  # asset path of an image-replacing node
    image_fit: Optional[str] = None
    text_color: Optional[StyleValue] = None
    typography: Optional[StyleValue] = None
    text_extras: tuple[tuple[str, str], ...] = ()
    border: Optional[BorderSpec] = None
    shadows: tuple[ShadowLayer, ...] = ()
    text_shadows: tuple[str, ...] = ()
    radius: tuple[StyleValue, ...] = ()
    opacity: Optional[float] = None
    blend_mode: Optional[str] = None
    filters: tuple[str, ...] = ()
    backdrop_filters: tuple[str, ...] = ()
    fidelity_notes: tuple[str, ...] = ()

    def values(self) -> Iterator[tuple[str, StyleValue]]:
        for layer in self.backgrounds:
            if layer.kind == "solid":
                yield "background", layer.value
        if self.text_color is not None:
            yield "color", self.text_color
        if self.typography is not None:
            yield "font", self.typography
        if self.border is not None:
            yield "border-color", self.border.color
        for shadow in self.shadows:
            if shadow.whole is not None:
                yield "box-shadow", shadow.whole
            else:
                yield "box-shadow-color", shadow.color
        for i, value in enumerate(self.radius):
            yield ("border-radius" if len(self.radius) == 1 else f"border-radius-{i}"), value

    def map_values(self, fn: Callable[[StyleValue], StyleValue]) -> "VisualStyle":
        border = self.border
        if border is not None:
            border = replace(border, color=fn(border.color))
        return replace(
            self,
            backgrounds=tuple(
                replace(layer, value=fn(layer.value)) if layer.kind == "solid" else layer
                for layer in self.backgrounds
            ),
            text_color=fn(self.text_color) if self.text_color is not None else None,
            typography=fn(self.typography) if self.typography is not None else None,
            border=border,
            shadows=tuple(
                replace(s, whole=fn(s.whole)) if s.whole is not None else replace(s, color=fn(s.color))
                for s in self.shadows
            ),
            radius=tuple(fn(v) for v in self.radius),
        )


# ════════════════════════════════════════════════════════════
# Responsive rule sets (Layout Interpreter output)
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BreakpointOverride:
    breakpoint: str
    min_width: int
    # base-family node id → declarations that differ at this breakpoint
    rules: Mapping[str, tuple[Declaration, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponsiveRuleSet:
    stem: str
    base_id: str
    base_breakpoint: str
    member_ids: tuple[str, ...] = ()
    overrides: tuple[BreakpointOverride, ...] = ()


# ════════════════════════════════════════════════════════════
# Tokens
# ════════════════════════════════════════════════════════════

@dataclass
class TokenBinding:
    """One promoted token. Built incrementally while the Token Engine walks
    the tree, then treated as read-only once the set is finalized."""
    name: str
    category: TokenCategory
    value: str
    values_by_mode: dict[str, str] = field(default_factory=dict)
    references: set[tuple[str, str]] = field(default_factory=set)
    source: str = "threshold"  # "variable" | "threshold"
    variable_id: Optional[str] = None
    key: str = ""

    def value_for(self, mode: Optional[str]) -> str:
        if mode is None:
            return self.value
        return self.values_by_mode.get(mode, self.value)


# ════════════════════════════════════════════════════════════
# Generated elements (Semantic Generator output)
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AssetRef:
    key: str
    kind: str  # "vector" | "image"
    path: str
    source_node_id: str = ""
    image_ref: Optional[str] = None


@dataclass(frozen=True)
class ElementRules:
    utility: tuple[tuple[str, Declaration], ...] = ()
    custom: tuple[Declaration, ...] = ()
    scoped: tuple[Declaration, ...] = ()


@dataclass(frozen=True)
class GeneratedElement:
    node_id: str
    name: str
    tag: str
    class_name: str = ""
    attributes: tuple[tuple[str, str], ...] = ()
    utility_classes: tuple[str, ...] = ()
    text: Optional[str] = None
    children: tuple["GeneratedElement", ...] = ()
    rules: ElementRules = field(default_factory=ElementRules)
    assets: tuple[tuple[AssetRef, str], ...] = ()  # (asset, "src" | "background")
    fidelity_notes: tuple[str, ...] = ()

    @property
    def classes(self) -> tuple[str, ...]:
        head = (self.class_name,) if self.class_name else ()
        return head + self.utility_classes

    def walk(self) -> Iterator["GeneratedElement"]:
        stack = [self]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))
