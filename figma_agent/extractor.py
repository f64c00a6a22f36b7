"""
extractor.py — Figma node JSON → ExtractedNode tree

Handles:
  ✅ REST responses (GET /files, GET /files/:key/nodes) and bare node dicts
  ✅ Absolute bounding boxes and plugin-style parent-relative x/y
  ✅ Group / boolean-operation coordinate frames → parent-relative geometry
  ✅ Vector-container detection (bottom-up, short-circuiting)
  ✅ Depth cap → truncated opaque leaves
  ✅ boundVariables (whole-property and per-paint) + shared style references
  ✅ Instances → component id + component-name cache (no master aliasing)
"""

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional

from .context import PipelineContext
from .errors import DiagnosticKind, InvalidRootError
from .model import (
    DOCUMENT_WRAPPERS, BindingRef, ChildSizing, Color, ColorStop, CornerRadii, Effect, EffectType,
    ExtractedNode, FrameNode, Geometry, GroupNode, InstanceNode, LayoutConfig,
    LayoutMode, NodeKind, Paint, PaintType, PlaceholderNode, SizingMode,
    StrokeAlign, StrokeConfig, TextNode, TypeStyle, VectorContainerNode, VectorNode,
)

logger = logging.getLogger(__name__)

_FRAME_TYPES = frozenset({"FRAME", "COMPONENT", "COMPONENT_SET", "SECTION"})
_VECTOR_TYPES = frozenset({
    "VECTOR", "BOOLEAN_OPERATION", "RECTANGLE", "ELLIPSE",
    "LINE", "STAR", "REGULAR_POLYGON",
})
_VECTOR_COMPATIBLE = _VECTOR_TYPES | {"GROUP"}
# Grouping constructs without their own coordinate frame
_GROUPING_TYPES = frozenset({"GROUP", "BOOLEAN_OPERATION"})


_STYLE_PROPERTIES = {
    "fill": "fills", "fills": "fills",
    "stroke": "strokes", "strokes": "strokes",
    "effect": "effects", "effects": "effects",
    "text": "text",
    "grid": "grid",
}

_SIZING_VALUES = {"FIXED": SizingMode.FIXED, "HUG": SizingMode.HUG, "FILL": SizingMode.FILL}


@dataclass(frozen=True)
class ExtractionResult:
    root: ExtractedNode
    # id → node; instances refer to masters through this index only
    arena: Mapping[str, ExtractedNode]


class _Parent(NamedTuple):
    origin: tuple[float, float]
    # origin of the nearest ancestor that defines a coordinate frame
    frame_origin: tuple[float, float]
    layout_mode: LayoutMode


def _num(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return default


def unwrap_figma_response(data: dict) -> tuple[dict, dict[str, str]]:
    """Return (root node, component id → name) for any supported input shape."""
    components: dict[str, str] = {}

    def collect(meta: dict, sets: dict) -> None:
        for cid, info in (meta or {}).items():
            if not isinstance(info, dict):
                continue
            set_id = info.get("componentSetId")
            name = (sets.get(set_id) or {}).get("name") if set_id else None
            components[cid] = name or info.get("name", "")

    if "document" in data and isinstance(data["document"], dict):
        collect(data.get("components", {}), data.get("componentSets", {}) or {})
        return data["document"], components

    if "nodes" in data and isinstance(data["nodes"], dict):
        for entry in data["nodes"].values():
            if isinstance(entry, dict) and isinstance(entry.get("document"), dict):
                collect(entry.get("components", {}), entry.get("componentSets", {}) or {})
                return entry["document"], components
        raise InvalidRootError("nodes response contains no document")

    return data, components


class Extractor:

    def __init__(self, ctx: Optional[PipelineContext] = None):
        self.ctx = ctx or PipelineContext()
        self.max_depth = self.ctx.config.max_depth
        self.include_hidden = self.ctx.config.include_hidden
        self.arena: dict[str, ExtractedNode] = {}
        self._auto_ids = 0

    def extract(self, raw_tree: Any) -> ExtractionResult:
        if raw_tree is None or not isinstance(raw_tree, dict):
            raise InvalidRootError(f"root must be a node object, got {type(raw_tree).__name__}")
        root_raw, components = unwrap_figma_response(raw_tree)
        if not isinstance(root_raw, dict) or not root_raw:
            raise InvalidRootError("root node is empty")
        for cid, name in components.items():
            self.ctx.register_component(cid, name)

        self.arena = {}
        self._auto_ids = 0
        root = self._convert_node(root_raw, parent=None, depth=0)
        logger.debug("extracted %d nodes", len(self.arena))
        return ExtractionResult(root=root, arena=MappingProxyType(dict(self.arena)))

    # ════════════════════════════════════════════════════════════
    # Node Conversion
    # ════════════════════════════════════════════════════════════

    def _convert_node(self, raw: dict, parent: Optional[_Parent], depth: int) -> ExtractedNode:
        node_id = self._node_id(raw)
        node_type = raw.get("type")
        if not isinstance(node_type, str) or not node_type:
            self._report(DiagnosticKind.MALFORMED_INPUT, "missing node type, treated as FRAME", raw)
            node_type = "FRAME"
        name = raw.get("name") if isinstance(raw.get("name"), str) else node_type.title()

        # ─── Geometry ───
        origin, width, height = self._absolute_box(raw, parent)
        if parent is None:
            x, y = 0.0, 0.0
        else:
            x, y = origin[0] - parent.origin[0], origin[1] - parent.origin[1]
        geometry = Geometry(
            x=round(x, 2), y=round(y, 2),
            width=round(width, 2), height=round(height, 2),
            rotation=self._rotation(raw),
        )

        layout = self._layout_config(raw) if node_type in _FRAME_TYPES or node_type == "INSTANCE" else LayoutConfig()
        parent_mode = parent.layout_mode if parent else LayoutMode.NONE

        common = dict(
            id=node_id,
            name=name,
            source_type=node_type,
            geometry=geometry,
            sizing=self._child_sizing(raw, parent_mode, layout),
            fills=self._paints(raw, "fills"),
            strokes=self._paints(raw, "strokes"),
            stroke=self._stroke_config(raw, node_type),
            effects=self._effects(raw),
            radii=self._corner_radii(raw),
            opacity=max(0.0, min(1.0, _num(raw.get("opacity"), 1.0))),
            blend_mode=str(raw.get("blendMode") or "PASS_THROUGH"),
            bindings=MappingProxyType(self._bindings(raw)),
            interactive=bool(raw.get("reactions") or raw.get("interactions")),
        )

        # ─── Unsupported types → inert placeholder ───
        known = node_type in _FRAME_TYPES or node_type in _VECTOR_TYPES or node_type in (
            "GROUP", "TEXT", "INSTANCE", *DOCUMENT_WRAPPERS,
        )
        if not known:
            self._report(
                DiagnosticKind.UNSUPPORTED_NODE_TYPE,
                f"node type {node_type} has no markup equivalent, emitted as placeholder", raw,
            )
            return self._register(PlaceholderNode(original_type=node_type, **common))

        # ─── Children ───
        raw_children = [c for c in raw.get("children", None) or [] if isinstance(c, dict)]
        if not self.include_hidden:
            raw_children = [c for c in raw_children if c.get("visible", True) is not False]

        truncated = False
        children: tuple[ExtractedNode, ...] = ()
        if raw_children and depth >= self.max_depth:
            truncated = True
            self._report(
                DiagnosticKind.DEPTH_EXCEEDED,
                f"{len(raw_children)} children dropped below depth {self.max_depth}", raw,
            )
        elif raw_children:
            child_parent = _Parent(
                origin=origin,
                frame_origin=parent.frame_origin if parent and node_type in _GROUPING_TYPES else origin,
                layout_mode=layout.mode,
            )
            children = tuple(self._convert_node(c, child_parent, depth + 1) for c in raw_children)
        common["children"] = children
        common["truncated"] = truncated

        # ─── Variant ───
        if self._is_vector_container(node_type, children):
            logger.debug("vector container %s (%s)", node_id, name)
            return self._register(VectorContainerNode(**common))

        if node_type == "TEXT":
            style = self._type_style(raw)
            self.ctx.register_typeface(style.font_family, style.font_weight)
            return self._register(TextNode(
                characters=str(raw.get("characters") or ""), style=style, **common,
            ))

        if node_type in _VECTOR_TYPES:
            return self._register(VectorNode(vector_paths=self._vector_paths(raw), **common))

        if node_type == "GROUP":
            return self._register(GroupNode(**common))

        if node_type == "INSTANCE":
            component_id = raw.get("componentId")
            return self._register(InstanceNode(
                layout=layout,
                clips_content=bool(raw.get("clipsContent", False)),
                component_id=str(component_id) if component_id else None,
                variant_properties=MappingProxyType(self._variant_properties(raw)),
                **common,
            ))

        if node_type == "COMPONENT":
            self.ctx.register_component(node_id, name)
        return self._register(FrameNode(
            layout=layout,
            clips_content=bool(raw.get("clipsContent", False)),
            is_component=node_type in ("COMPONENT", "COMPONENT_SET"),
            variant_properties=MappingProxyType(self._variant_properties(raw)),
            **common,
        ))

    def _node_id(self, raw: dict) -> str:
        node_id = raw.get("id")
        if not isinstance(node_id, str) or not node_id:
            self._auto_ids += 1
            node_id = f"auto:{self._auto_ids}"
            self._report(DiagnosticKind.MALFORMED_INPUT, f"missing id, assigned {node_id}", raw)
        elif node_id in self.arena:
            self._auto_ids += 1
            duplicate, node_id = node_id, f"{node_id}~{self._auto_ids}"
            self._report(DiagnosticKind.MALFORMED_INPUT, f"duplicate id {duplicate}, renamed {node_id}", raw)
        return node_id

    def _register(self, node: ExtractedNode) -> ExtractedNode:
        self.arena[node.id] = node
        return node

    def _report(self, kind: DiagnosticKind, message: str, raw: Any, prop: Optional[str] = None) -> None:
        self.ctx.report(kind, message, raw, prop)

    # ════════════════════════════════════════════════════════════
    # Vector containers
    # ════════════════════════════════════════════════════════════

    @staticmethod
    def _is_vector_container(node_type: str, children: tuple[ExtractedNode, ...]) -> bool:
        """Children are already classified, so a compatible child is either a
        vector leaf or a vector container itself; ``all`` stops at the first
        child that is neither."""
        if not children or node_type not in _VECTOR_COMPATIBLE:
            return False
        return all(
            child.kind in (NodeKind.VECTOR, NodeKind.VECTOR_CONTAINER) and not child.truncated
            for child in children
        )

    @staticmethod
    def _vector_paths(raw: dict) -> tuple[str, ...]:
        paths = []
        for geom in (raw.get("fillGeometry") or []) + (raw.get("vectorPaths") or []):
            if isinstance(geom, dict):
                data = geom.get("path") or geom.get("data")
                if data:
                    paths.append(str(data))
        return tuple(paths)

    # ════════════════════════════════════════════════════════════
    # Geometry
    # ════════════════════════════════════════════════════════════

    def _absolute_box(self, raw: dict, parent: Optional[_Parent]) -> tuple[tuple[float, float], float, float]:
        bbox = raw.get("absoluteBoundingBox")
        if isinstance(bbox, dict) and "x" in bbox and "y" in bbox:
            return (
                (_num(bbox.get("x")), _num(bbox.get("y"))),
                max(0.0, _num(bbox.get("width"))),
                max(0.0, _num(bbox.get("height"))),
            )

        # Plugin / relative coordinates: children of a group are positioned in
        # the coordinate frame of the nearest non-group ancestor.
        transform = raw.get("relativeTransform")
        tx = ty = 0.0
        if _is_matrix(transform):
            tx, ty = _num(transform[0][2]), _num(transform[1][2])
        x = _num(raw.get("x"), tx)
        y = _num(raw.get("y"), ty)
        base = parent.frame_origin if parent else (0.0, 0.0)

        size = raw.get("size") if isinstance(raw.get("size"), dict) else {}
        width = _num(raw.get("width"), _num(size.get("x")))
        height = _num(raw.get("height"), _num(size.get("y")))
        return (base[0] + x, base[1] + y), max(0.0, width), max(0.0, height)

    @staticmethod
    def _rotation(raw: dict) -> float:
        if isinstance(raw.get("rotation"), (int, float)):
            return round(_num(raw["rotation"]), 4)
        transform = raw.get("relativeTransform")
        if _is_matrix(transform):
            a, b = _num(transform[0][0], 1.0), _num(transform[1][0])
            angle = round(math.degrees(math.atan2(-b, a)), 4)
            return 0.0 if angle == 0 else angle
        return 0.0

    def _corner_radii(self, raw: dict) -> CornerRadii:
        per_corner = raw.get("rectangleCornerRadii")
        if isinstance(per_corner, list) and len(per_corner) == 4:
            values = [_num(v) for v in per_corner]
        elif any(k in raw for k in ("topLeftRadius", "topRightRadius", "bottomRightRadius", "bottomLeftRadius")):
            values = [_num(raw.get(k)) for k in ("topLeftRadius", "topRightRadius", "bottomRightRadius", "bottomLeftRadius")]
        else:
            radius = _num(raw.get("cornerRadius"))
            values = [radius] * 4
        if any(v < 0 for v in values):
            self._report(DiagnosticKind.MALFORMED_INPUT, "negative corner radius clamped to 0", raw, "cornerRadius")
            values = [max(0.0, v) for v in values]
        return CornerRadii(*values)

    # ════════════════════════════════════════════════════════════
    # Layout
    # ════════════════════════════════════════════════════════════

    def _layout_config(self, raw: dict) -> LayoutConfig:
        mode_raw = raw.get("layoutMode") or "NONE"
        try:
            mode = LayoutMode(mode_raw)
        except ValueError:
            self._report(DiagnosticKind.MALFORMED_INPUT, f"unknown layoutMode {mode_raw}", raw, "layoutMode")
            mode = LayoutMode.NONE
        if mode == LayoutMode.NONE:
            return LayoutConfig()

        counter_gap = raw.get("counterAxisSpacing")
        return LayoutConfig(
            mode=mode,
            primary_align=str(raw.get("primaryAxisAlignItems") or "MIN"),
            counter_align=str(raw.get("counterAxisAlignItems") or "MIN"),
            gap=max(0.0, _num(raw.get("itemSpacing"))),
            counter_gap=_num(counter_gap) if isinstance(counter_gap, (int, float)) else None,
            padding=(
                _num(raw.get("paddingTop")), _num(raw.get("paddingRight")),
                _num(raw.get("paddingBottom")), _num(raw.get("paddingLeft")),
            ),
            wrap=raw.get("layoutWrap") == "WRAP",
        )

    def _child_sizing(self, raw: dict, parent_mode: LayoutMode, own: LayoutConfig) -> ChildSizing:
        horizontal = self._sizing_value(raw, "layoutSizingHorizontal")
        vertical = self._sizing_value(raw, "layoutSizingVertical")

        # Legacy fields (files saved before layoutSizing* existed)
        if horizontal is None or vertical is None:
            grow = _num(raw.get("layoutGrow")) >= 1
            stretch = raw.get("layoutAlign") == "STRETCH"
            legacy_h = legacy_v = None
            if parent_mode == LayoutMode.HORIZONTAL:
                legacy_h = SizingMode.FILL if grow else None
                legacy_v = SizingMode.FILL if stretch else None
            elif parent_mode == LayoutMode.VERTICAL:
                legacy_v = SizingMode.FILL if grow else None
                legacy_h = SizingMode.FILL if stretch else None

            if own.is_auto_layout:
                primary_auto = raw.get("primaryAxisSizingMode") == "AUTO"
                counter_auto = raw.get("counterAxisSizingMode") == "AUTO"
                if own.mode == LayoutMode.HORIZONTAL:
                    legacy_h = legacy_h or (SizingMode.HUG if primary_auto else None)
                    legacy_v = legacy_v or (SizingMode.HUG if counter_auto else None)
                else:
                    legacy_v = legacy_v or (SizingMode.HUG if primary_auto else None)
                    legacy_h = legacy_h or (SizingMode.HUG if counter_auto else None)

            auto_resize = raw.get("textAutoResize")
            if auto_resize == "WIDTH_AND_HEIGHT":
                legacy_h = legacy_h or SizingMode.HUG
                legacy_v = legacy_v or SizingMode.HUG
            elif auto_resize == "HEIGHT":
                legacy_v = legacy_v or SizingMode.HUG

            horizontal = horizontal or legacy_h or SizingMode.FIXED
            vertical = vertical or legacy_v or SizingMode.FIXED

        def bound(key: str) -> Optional[float]:
            value = raw.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
                return float(value)
            return None

        return ChildSizing(
            horizontal=horizontal,
            vertical=vertical,
            absolute=raw.get("layoutPositioning") == "ABSOLUTE",
            min_width=bound("minWidth"),
            max_width=bound("maxWidth"),
            min_height=bound("minHeight"),
            max_height=bound("maxHeight"),
        )

    def _sizing_value(self, raw: dict, key: str) -> Optional[SizingMode]:
        value = raw.get(key)
        if value is None:
            return None
        mode = _SIZING_VALUES.get(value)
        if mode is None:
            self._report(DiagnosticKind.MALFORMED_INPUT, f"unknown {key} {value!r}, using FIXED", raw, key)
            return SizingMode.FIXED
        return mode

    # ════════════════════════════════════════════════════════════
    # Paints / strokes / effects
    # ════════════════════════════════════════════════════════════

    def _paints(self, raw: dict, prop: str) -> tuple[Paint, ...]:
        entries = raw.get(prop)
        if not isinstance(entries, list):
            return ()
        # A list under boundVariables[prop] binds entries one by one
        per_entry = (raw.get("boundVariables") or {}).get(prop)
        per_entry = per_entry if isinstance(per_entry, list) else []

        paints = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                continue
            try:
                paint_type = PaintType(entry.get("type"))
            except ValueError:
                self._report(
                    DiagnosticKind.MALFORMED_INPUT,
                    f"unsupported paint type {entry.get('type')!r} skipped", raw, prop,
                )
                continue

            binding = BindingRef.from_raw((entry.get("boundVariables") or {}).get("color"))
            if binding is None and index < len(per_entry):
                binding = BindingRef.from_raw(per_entry[index])

            paints.append(Paint(
                type=paint_type,
                color=Color.from_raw(entry.get("color")),
                opacity=max(0.0, min(1.0, _num(entry.get("opacity"), 1.0))),
                visible=entry.get("visible", True) is not False,
                stops=self._gradient_stops(entry),
                matrix=self._gradient_matrix(entry),
                image_ref=entry.get("imageRef") or entry.get("imageHash"),
                scale_mode=str(entry.get("scaleMode") or "FILL"),
                blend_mode=str(entry.get("blendMode") or "NORMAL"),
                binding=binding,
            ))
        return tuple(paints)

    @staticmethod
    def _gradient_stops(entry: dict) -> tuple[ColorStop, ...]:
        stops = []
        for stop in entry.get("gradientStops") or []:
            color = Color.from_raw(stop.get("color")) if isinstance(stop, dict) else None
            if color is None:
                continue
            stops.append(ColorStop(
                color=color,
                position=max(0.0, min(1.0, _num(stop.get("position")))),
                binding=BindingRef.from_raw((stop.get("boundVariables") or {}).get("color")),
            ))
        return tuple(stops)

    @staticmethod
    def _gradient_matrix(entry: dict) -> Optional[tuple[float, float, float, float]]:
        handles = entry.get("gradientHandlePositions")
        if isinstance(handles, list) and len(handles) >= 2:
            start, end = handles[0], handles[1]
            if isinstance(start, dict) and isinstance(end, dict):
                dx = _num(end.get("x")) - _num(start.get("x"))
                dy = _num(end.get("y")) - _num(start.get("y"))
                if dx or dy:
                    return (dx, dy, -dy, dx)
        transform = entry.get("gradientTransform")
        if _is_matrix(transform):
            return (
                _num(transform[0][0], 1.0), _num(transform[1][0]),
                _num(transform[0][1]), _num(transform[1][1], 1.0),
            )
        return None

    def _stroke_config(self, raw: dict, node_type: str) -> StrokeConfig:
        default_align = StrokeAlign.CENTER if node_type in _VECTOR_TYPES and node_type not in ("RECTANGLE",) else StrokeAlign.INSIDE
        align_raw = raw.get("strokeAlign")
        try:
            align = StrokeAlign(align_raw) if align_raw else default_align
        except ValueError:
            self._report(DiagnosticKind.MALFORMED_INPUT, f"unknown strokeAlign {align_raw!r}", raw, "strokeAlign")
            align = default_align

        sides = None
        individual = raw.get("individualStrokeWeights")
        if isinstance(individual, dict):
            sides = tuple(_num(individual.get(k)) for k in ("top", "right", "bottom", "left"))
        elif any(k in raw for k in ("strokeTopWeight", "strokeRightWeight", "strokeBottomWeight", "strokeLeftWeight")):
            sides = tuple(_num(raw.get(k)) for k in (
                "strokeTopWeight", "strokeRightWeight", "strokeBottomWeight", "strokeLeftWeight",
            ))

        dashes = raw.get("strokeDashes") or raw.get("dashPattern") or []
        return StrokeConfig(
            weight=max(0.0, _num(raw.get("strokeWeight"))),
            align=align,
            side_weights=sides,
            dashes=tuple(_num(d) for d in dashes if isinstance(d, (int, float))),
        )

    def _effects(self, raw: dict) -> tuple[Effect, ...]:
        effects = []
        for entry in raw.get("effects") or []:
            if not isinstance(entry, dict):
                continue
            try:
                effect_type = EffectType(entry.get("type"))
            except ValueError:
                logger.debug("skipping effect %s on %s", entry.get("type"), raw.get("id"))
                continue
            offset = entry.get("offset") if isinstance(entry.get("offset"), dict) else {}
            effects.append(Effect(
                type=effect_type,
                color=Color.from_raw(entry.get("color")),
                offset_x=_num(offset.get("x")),
                offset_y=_num(offset.get("y")),
                radius=max(0.0, _num(entry.get("radius"))),
                spread=_num(entry.get("spread")),
                visible=entry.get("visible", True) is not False,
                binding=BindingRef.from_raw((entry.get("boundVariables") or {}).get("color")),
            ))
        return tuple(effects)

    # ════════════════════════════════════════════════════════════
    # Bindings / text / variants
    # ════════════════════════════════════════════════════════════

    @staticmethod
    def _bindings(raw: dict) -> dict[str, BindingRef]:
        bindings: dict[str, BindingRef] = {}
        for prop, ref in (raw.get("boundVariables") or {}).items():
            if isinstance(ref, list):
                continue  # per-entry, attached to the paint itself
            binding = BindingRef.from_raw(ref)
            if binding is not None:
                bindings[prop] = binding
        for key, style_id in (raw.get("styles") or {}).items():
            prop = _STYLE_PROPERTIES.get(key, key)
            if prop not in bindings and style_id:
                bindings[prop] = BindingRef(id=str(style_id), kind="style")
        return bindings

    @staticmethod
    def _type_style(raw: dict) -> TypeStyle:
        style = raw.get("style") if isinstance(raw.get("style"), dict) else {}
        line_height = None
        if style.get("lineHeightUnit") != "INTRINSIC_%" and isinstance(style.get("lineHeightPx"), (int, float)):
            line_height = round(float(style["lineHeightPx"]), 2)
        font_name = raw.get("fontName") if isinstance(raw.get("fontName"), dict) else {}
        family = style.get("fontFamily") or font_name.get("family") or "Inter"
        italic = bool(style.get("italic")) or "italic" in str(font_name.get("style", "")).lower()
        return TypeStyle(
            font_family=str(family),
            font_size=_num(style.get("fontSize"), _num(raw.get("fontSize"), 14.0)),
            font_weight=int(_num(style.get("fontWeight"), _num(raw.get("fontWeight"), 400))),
            line_height=line_height,
            letter_spacing=_num(style.get("letterSpacing")),
            text_align=str(style.get("textAlignHorizontal") or "LEFT"),
            text_case=str(style.get("textCase") or "ORIGINAL"),
            text_decoration=str(style.get("textDecoration") or "NONE"),
            italic=italic,
        )

    @staticmethod
    def _variant_properties(raw: dict) -> dict[str, str]:
        props = {}
        for key, value in (raw.get("componentProperties") or {}).items():
            if isinstance(value, dict):
                if value.get("type", "VARIANT") == "VARIANT":
                    props[key.split("#")[0]] = str(value.get("value", ""))
            elif isinstance(value, (str, int, float, bool)):
                props[key.split("#")[0]] = str(value)
        if not props and raw.get("type") == "COMPONENT" and "=" in str(raw.get("name", "")):
            # variant component names look like "Breakpoint=Tablet, State=Default"
            for part in str(raw["name"]).split(","):
                if "=" in part:
                    key, _, value = part.partition("=")
                    props[key.strip()] = value.strip()
        return props


def _is_matrix(value: Any) -> bool:
    return (
        isinstance(value, list) and len(value) == 2
        and all(isinstance(row, list) and len(row) == 3 for row in value)
    )


def extract(raw_tree: Any, ctx: Optional[PipelineContext] = None) -> ExtractionResult:
    return Extractor(ctx).extract(raw_tree)
