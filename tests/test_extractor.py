"""
Extractor unit tests: raw Figma JSON → ExtractedNode tree.
No network; every input is a hand-built node dict.
"""
import pytest

from figma_agent.config import PipelineConfig
from figma_agent.context import PipelineContext
from figma_agent.errors import DiagnosticKind, InvalidRootError
from figma_agent.extractor import Extractor, extract, unwrap_figma_response
from figma_agent.model import (
    FrameNode, InstanceNode, LayoutMode, NodeKind, PaintType,
    PlaceholderNode, SizingMode, StrokeAlign, TextNode, VectorContainerNode,
)


# ─── helpers ────────────────────────────────────────────────────────────────

def box(x, y, w, h):
    return {"x": x, "y": y, "width": w, "height": h}


def frame(node_id, x=0, y=0, w=100, h=100, children=None, **extra):
    node = {
        "id": node_id,
        "name": extra.pop("name", node_id),
        "type": extra.pop("type", "FRAME"),
        "absoluteBoundingBox": box(x, y, w, h),
        "children": children or [],
    }
    node.update(extra)
    return node


def vector(node_id, node_type="VECTOR", **extra):
    node = {"id": node_id, "name": node_id, "type": node_type,
            "absoluteBoundingBox": box(0, 0, 16, 16)}
    node.update(extra)
    return node


# ─── geometry ───────────────────────────────────────────────────────────────

class TestGeometry:

    def setup_method(self):
        self.ctx = PipelineContext()

    def test_root_sits_at_origin(self):
        result = extract(frame("1:1", x=500, y=300, w=1440, h=900), self.ctx)
        geo = result.root.geometry
        assert (geo.x, geo.y, geo.width, geo.height) == (0, 0, 1440, 900)

    def test_child_position_relative_to_parent(self):
        raw = frame("1:1", x=100, y=200, w=400, h=400, children=[
            frame("1:2", x=120, y=260, w=50, h=40),
        ])
        child = extract(raw, self.ctx).root.children[0]
        assert (child.geometry.x, child.geometry.y) == (20, 60)
        assert (child.geometry.width, child.geometry.height) == (50, 40)

    def test_grandchild_relative_to_direct_parent(self):
        raw = frame("1:1", x=0, y=0, w=400, h=400, children=[
            frame("1:2", x=50, y=50, w=200, h=200, children=[
                frame("1:3", x=60, y=70, w=10, h=10),
            ]),
        ])
        grandchild = extract(raw, self.ctx).root.children[0].children[0]
        assert (grandchild.geometry.x, grandchild.geometry.y) == (10, 20)

    def test_plugin_coordinates_inside_group(self):
        # group children use the nearest frame's coordinate space
        raw = {
            "id": "1:1", "type": "FRAME", "name": "Root", "x": 0, "y": 0, "width": 300, "height": 300,
            "children": [{
                "id": "1:2", "type": "GROUP", "name": "Group", "x": 40, "y": 40, "width": 100, "height": 100,
                "children": [
                    {"id": "1:3", "type": "TEXT", "name": "Label", "x": 50, "y": 60,
                     "width": 20, "height": 10, "characters": "Hi"},
                ],
            }],
        }
        text = extract(raw, self.ctx).root.children[0].children[0]
        assert (text.geometry.x, text.geometry.y) == (10, 20)


# ─── variants / placeholders ────────────────────────────────────────────────

class TestNodeVariants:

    def setup_method(self):
        self.ctx = PipelineContext()

    def test_unknown_type_becomes_placeholder_with_diagnostic(self):
        raw = frame("1:1", children=[{"id": "1:2", "name": "Sticky", "type": "STICKY"}])
        child = extract(raw, self.ctx).root.children[0]

        assert isinstance(child, PlaceholderNode)
        assert child.kind == NodeKind.PLACEHOLDER
        assert child.original_type == "STICKY"
        diags = self.ctx.diagnostics.of_kind(DiagnosticKind.UNSUPPORTED_NODE_TYPE)
        assert len(diags) == 1
        assert diags[0].node_id == "1:2"

    def test_text_node_style(self):
        raw = frame("1:1", children=[{
            "id": "1:2", "name": "Title", "type": "TEXT", "characters": "Hello",
            "absoluteBoundingBox": box(0, 0, 80, 20),
            "style": {"fontFamily": "Roboto", "fontSize": 24, "fontWeight": 700, "lineHeightPx": 32},
        }])
        text = extract(raw, self.ctx).root.children[0]
        assert isinstance(text, TextNode)
        assert text.characters == "Hello"
        assert text.style.font_family == "Roboto"
        assert text.style.font_size == 24
        assert text.style.font_weight == 700
        assert text.style.line_height == 32
        assert self.ctx.typefaces == {"Roboto": [700]}

    def test_group_of_vectors_is_vector_container(self):
        raw = frame("1:1", children=[{
            "id": "1:2", "name": "Icon", "type": "GROUP",
            "absoluteBoundingBox": box(0, 0, 24, 24),
            "children": [vector("1:3"), vector("1:4", "BOOLEAN_OPERATION", children=[vector("1:5")])],
        }])
        icon = extract(raw, self.ctx).root.children[0]
        assert isinstance(icon, VectorContainerNode)

    def test_group_with_text_is_not_vector_container(self):
        raw = frame("1:1", children=[{
            "id": "1:2", "name": "Badge", "type": "GROUP",
            "absoluteBoundingBox": box(0, 0, 24, 24),
            "children": [vector("1:3"), {"id": "1:4", "type": "TEXT", "name": "n", "characters": "3"}],
        }])
        badge = extract(raw, self.ctx).root.children[0]
        assert badge.kind == NodeKind.GROUP

    def test_instance_keeps_component_reference(self):
        raw = {
            "document": frame("0:1", children=[
                frame("1:2", type="INSTANCE", componentId="9:1", name="Primary Button"),
            ]),
            "components": {"9:1": {"name": "Button"}},
        }
        result = extract(raw, self.ctx)
        instance = result.root.children[0]
        assert isinstance(instance, InstanceNode)
        assert instance.component_id == "9:1"
        assert self.ctx.component_name("9:1") == "Button"

    def test_component_variant_properties_from_name(self):
        raw = frame("1:1", type="COMPONENT", name="Breakpoint=Tablet, State=Default")
        root = extract(raw, self.ctx).root
        assert isinstance(root, FrameNode)
        assert root.is_component
        assert dict(root.variant_properties) == {"Breakpoint": "Tablet", "State": "Default"}


# ─── filtering / depth / ids ────────────────────────────────────────────────

class TestTreeShape:

    def test_hidden_nodes_dropped_by_default(self):
        raw = frame("1:1", children=[frame("1:2"), frame("1:3", visible=False)])
        root = extract(raw, PipelineContext()).root
        assert [c.id for c in root.children] == ["1:2"]

    def test_hidden_nodes_kept_when_configured(self):
        ctx = PipelineContext(PipelineConfig(include_hidden=True))
        raw = frame("1:1", children=[frame("1:2"), frame("1:3", visible=False)])
        assert len(extract(raw, ctx).root.children) == 2

    def test_depth_cap_truncates(self):
        ctx = PipelineContext(PipelineConfig(max_depth=1))
        raw = frame("1:1", children=[frame("1:2", children=[frame("1:3")])])
        root = extract(raw, ctx).root

        capped = root.children[0]
        assert capped.truncated
        assert capped.children == ()
        assert len(ctx.diagnostics.of_kind(DiagnosticKind.DEPTH_EXCEEDED)) == 1

    def test_duplicate_id_renamed(self):
        ctx = PipelineContext()
        raw = frame("1:1", children=[frame("1:2"), frame("1:2")])
        result = extract(raw, ctx)
        ids = [c.id for c in result.root.children]
        assert ids[0] == "1:2"
        assert ids[1] != "1:2" and ids[1].startswith("1:2~")
        assert set(ids) <= set(result.arena)
        assert ctx.diagnostics.of_kind(DiagnosticKind.MALFORMED_INPUT)

    def test_missing_id_assigned(self):
        ctx = PipelineContext()
        raw = frame("1:1", children=[{"type": "RECTANGLE", "name": "Box"}])
        child = extract(raw, ctx).root.children[0]
        assert child.id.startswith("auto:")

    def test_walk_is_preorder(self):
        raw = frame("1:1", children=[frame("1:2", children=[frame("1:3")]), frame("1:4")])
        root = extract(raw, PipelineContext()).root
        assert [n.id for n in root.walk()] == ["1:1", "1:2", "1:3", "1:4"]


# ─── invalid roots ──────────────────────────────────────────────────────────

class TestInvalidRoot:

    @pytest.mark.parametrize("raw", [None, [], "FRAME", {}])
    def test_unusable_root_raises(self, raw):
        with pytest.raises(InvalidRootError):
            Extractor().extract(raw)

    def test_nodes_response_without_document(self):
        with pytest.raises(InvalidRootError):
            unwrap_figma_response({"nodes": {"1:1": None}})

    def test_nodes_response_unwrapped(self):
        raw = {"nodes": {"1:2": {"document": frame("1:2", name="Hero"), "components": {}}}}
        root, components = unwrap_figma_response(raw)
        assert root["id"] == "1:2"
        assert components == {}


# ─── layout / paints / strokes ──────────────────────────────────────────────

class TestProperties:

    def setup_method(self):
        self.ctx = PipelineContext()

    def test_auto_layout_config(self):
        raw = frame(
            "1:1", layoutMode="HORIZONTAL", itemSpacing=8,
            paddingTop=8, paddingRight=16, paddingBottom=8, paddingLeft=16,
            primaryAxisAlignItems="SPACE_BETWEEN", counterAxisAlignItems="CENTER",
        )
        layout = extract(raw, self.ctx).root.layout
        assert layout.mode == LayoutMode.HORIZONTAL
        assert layout.gap == 8
        assert layout.padding == (8, 16, 8, 16)
        assert layout.primary_align == "SPACE_BETWEEN"
        assert layout.is_auto_layout

    def test_legacy_layout_grow_means_fill(self):
        raw = frame("1:1", layoutMode="HORIZONTAL", children=[
            frame("1:2", layoutGrow=1, layoutAlign="STRETCH"),
        ])
        child = extract(raw, self.ctx).root.children[0]
        assert child.sizing.horizontal == SizingMode.FILL
        assert child.sizing.vertical == SizingMode.FILL

    def test_explicit_sizing_wins(self):
        raw = frame("1:1", layoutMode="VERTICAL", children=[
            frame("1:2", layoutSizingHorizontal="HUG", layoutSizingVertical="FILL"),
        ])
        child = extract(raw, self.ctx).root.children[0]
        assert child.sizing.horizontal == SizingMode.HUG
        assert child.sizing.vertical == SizingMode.FILL

    def test_paint_order_and_bindings(self):
        raw = frame(
            "1:1",
            fills=[
                {"type": "SOLID", "color": {"r": 1, "g": 1, "b": 1, "a": 1}},
                {"type": "SOLID", "color": {"r": 0, "g": 0, "b": 0, "a": 1}, "opacity": 0.5,
                 "boundVariables": {"color": {"type": "VARIABLE_ALIAS", "id": "VariableID:1"}}},
            ],
        )
        fills = extract(raw, self.ctx).root.fills
        assert [p.type for p in fills] == [PaintType.SOLID, PaintType.SOLID]
        assert fills[0].color.to_hex() == "#FFFFFF"
        assert fills[1].opacity == 0.5
        assert fills[1].binding.id == "VariableID:1"

    def test_unknown_paint_type_skipped(self):
        raw = frame("1:1", fills=[{"type": "PATTERN"}, {"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0}}])
        fills = extract(raw, self.ctx).root.fills
        assert len(fills) == 1
        assert self.ctx.diagnostics.of_kind(DiagnosticKind.MALFORMED_INPUT)

    def test_gradient_handles_to_matrix(self):
        raw = frame("1:1", fills=[{
            "type": "GRADIENT_LINEAR",
            "gradientHandlePositions": [{"x": 0, "y": 0.5}, {"x": 1, "y": 0.5}, {"x": 0, "y": 1}],
            "gradientStops": [
                {"position": 0, "color": {"r": 1, "g": 0, "b": 0, "a": 1}},
                {"position": 1, "color": {"r": 0, "g": 0, "b": 1, "a": 1}},
            ],
        }])
        paint = extract(raw, self.ctx).root.fills[0]
        assert paint.matrix == (1, 0, 0, 1)
        assert len(paint.stops) == 2

    def test_stroke_align_defaults(self):
        raw = frame("1:1", children=[vector("1:2", "RECTANGLE"), vector("1:3", "ELLIPSE")])
        rect, ellipse = extract(raw, self.ctx).root.children
        assert rect.stroke.align == StrokeAlign.INSIDE
        assert ellipse.stroke.align == StrokeAlign.CENTER

    def test_whole_property_binding_and_style(self):
        raw = frame(
            "1:1",
            boundVariables={"itemSpacing": {"type": "VARIABLE_ALIAS", "id": "VariableID:gap"}},
            styles={"fill": "S:abc"},
        )
        bindings = extract(raw, self.ctx).root.bindings
        assert bindings["itemSpacing"].id == "VariableID:gap"
        assert bindings["fills"].kind == "style"

    def test_negative_radius_clamped(self):
        raw = frame("1:1", cornerRadius=-4)
        root = extract(raw, self.ctx).root
        assert root.radii.is_zero
        assert self.ctx.diagnostics.of_kind(DiagnosticKind.MALFORMED_INPUT)
