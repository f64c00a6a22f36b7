"""
Visual Resolver unit tests: paints, strokes, effects, radii, typography.
"""
import pytest

from figma_agent.context import PipelineContext, VariableTable
from figma_agent.errors import DiagnosticKind
from figma_agent.extractor import extract
from figma_agent.model import Provenance
from figma_agent.visual import (
    VisualResolver, font_shorthand, gradient_angle, image_asset_path, visual_declarations,
)


# ─── helpers ────────────────────────────────────────────────────────────────

RED = {"r": 1, "g": 0, "b": 0, "a": 1}
BLUE = {"r": 0, "g": 0, "b": 1, "a": 1}
WHITE = {"r": 1, "g": 1, "b": 1, "a": 1}


def shape(node_type="RECTANGLE", **extra):
    raw = {
        "id": "1:1", "name": "Shape", "type": node_type,
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 100},
    }
    raw.update(extra)
    return raw


def resolve(raw, ctx=None):
    ctx = ctx or PipelineContext()
    root = extract(raw, ctx).root
    return VisualResolver(ctx).resolve(root)


def css(raw, ctx=None):
    return {d.property: d.value for d in visual_declarations(resolve(raw, ctx))}


# ─── gradient angle ─────────────────────────────────────────────────────────

class TestGradientAngle:

    @pytest.mark.parametrize("matrix, expected", [
        ((1, 0, 0, 1), 90),     # left → right
        ((0, 1, -1, 0), 180),   # top → bottom
        ((-1, 0, 0, -1), 270),  # right → left
        ((0, -1, 1, 0), 0),     # bottom → top
    ])
    def test_cardinal_directions(self, matrix, expected):
        assert gradient_angle(matrix) == expected

    def test_diagonal(self):
        assert gradient_angle((1, 1, -1, 1)) == 135

    def test_linear_gradient_css(self):
        raw = shape(fills=[{
            "type": "GRADIENT_LINEAR",
            "gradientHandlePositions": [{"x": 0, "y": 0.5}, {"x": 1, "y": 0.5}, {"x": 0, "y": 1}],
            "gradientStops": [{"position": 0, "color": RED}, {"position": 1, "color": BLUE}],
        }])
        assert css(raw)["background"] == "linear-gradient(90deg, #FF0000 0%, #0000FF 100%)"

    def test_diamond_gradient_leaves_note(self):
        raw = shape(fills=[{
            "type": "GRADIENT_DIAMOND",
            "gradientStops": [{"position": 0, "color": RED}, {"position": 1, "color": BLUE}],
        }])
        style = resolve(raw)
        assert style.backgrounds[0].value.css.startswith("radial-gradient(")
        assert style.fidelity_notes


# ─── fills ──────────────────────────────────────────────────────────────────

class TestFills:

    def test_single_solid_is_background_color(self):
        assert css(shape(fills=[{"type": "SOLID", "color": RED}]))["background-color"] == "#FF0000"

    def test_paint_opacity_folds_into_alpha(self):
        decls = css(shape(fills=[{"type": "SOLID", "color": RED, "opacity": 0.5}]))
        assert decls["background-color"] == "#FF000080"

    def test_paint_stack_reversed_top_first(self):
        raw = shape(fills=[
            {"type": "SOLID", "color": WHITE},
            {"type": "GRADIENT_LINEAR",
             "gradientStops": [{"position": 0, "color": RED}, {"position": 1, "color": BLUE}]},
        ])
        style = resolve(raw)
        assert [layer.kind for layer in style.backgrounds] == ["gradient", "solid"]
        background = css(raw)["background"]
        assert background.startswith("linear-gradient(")
        assert background.endswith("#FFFFFF")

    def test_hidden_paint_skipped(self):
        raw = shape(fills=[{"type": "SOLID", "color": RED, "visible": False}])
        assert resolve(raw).backgrounds == ()

    def test_image_fill_on_leaf_becomes_image(self):
        raw = shape(fills=[{"type": "IMAGE", "imageRef": "abc123", "scaleMode": "FIT"}])
        style = resolve(raw)
        assert style.image == image_asset_path("abc123") == "assets/abc123.png"
        assert style.image_fit == "contain"

    def test_image_fill_on_container_is_background(self):
        raw = shape("FRAME", fills=[{"type": "IMAGE", "imageRef": "hero"}], children=[
            {"id": "1:2", "type": "TEXT", "name": "Title", "characters": "Hi"},
        ])
        background = css(raw)["background"]
        assert background.startswith('url("assets/hero.png")')

    def test_bound_fill_resolves_variable(self):
        variables = VariableTable.from_dict({"variables": {
            "VariableID:1": {"name": "color/brand", "values": {"light": "#3366FF", "dark": "#99BBFF"}},
        }})
        raw = shape(fills=[{
            "type": "SOLID", "color": RED,
            "boundVariables": {"color": {"type": "VARIABLE_ALIAS", "id": "VariableID:1"}},
        }])
        value = resolve(raw, PipelineContext(variables=variables)).backgrounds[0].value
        assert value.css == "#3366FF"
        assert value.provenance == Provenance.VARIABLE

    def test_unresolvable_fill_falls_back_to_transparent(self):
        ctx = PipelineContext()
        raw = shape(fills=[{
            "type": "SOLID",
            "boundVariables": {"color": {"type": "VARIABLE_ALIAS", "id": "VariableID:missing"}},
        }])
        decls = css(raw, ctx)
        assert decls["background-color"] == "transparent"

        (diag,) = ctx.diagnostics.of_kind(DiagnosticKind.RESOLUTION_EXHAUSTED)
        assert diag.node_id == "1:1"
        assert diag.property == "fills"
        assert "transparent" in diag.message

    def test_unresolvable_fill_is_never_promoted(self):
        ctx = PipelineContext()
        style = resolve(shape(fills=[{"type": "SOLID"}]), ctx)
        value = style.backgrounds[0].value
        assert value.key is None
        assert list(style.values()) == [("background", value)]
        assert len(ctx.diagnostics.of_kind(DiagnosticKind.RESOLUTION_EXHAUSTED)) == 1


# ─── strokes ────────────────────────────────────────────────────────────────

class TestStrokes:

    def test_inside_stroke_is_inset_shadow_without_border(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}], strokeWeight=2, strokeAlign="INSIDE")
        decls = css(raw)
        assert decls["box-shadow"] == "inset 0 0 0 2px #FF0000"
        assert "border" not in decls
        assert "background-color" not in decls

    def test_outside_stroke_is_outer_ring(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}], strokeWeight=1, strokeAlign="OUTSIDE")
        assert css(raw)["box-shadow"] == "0 0 0 1px #FF0000"

    def test_center_stroke_is_border(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}], strokeWeight=1, strokeAlign="CENTER")
        decls = css(raw)
        assert decls["border"] == "1px solid #FF0000"
        assert "box-shadow" not in decls

    def test_dashed_stroke_is_outline(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}], strokeWeight=2,
                    strokeAlign="INSIDE", strokeDashes=[4, 4])
        decls = css(raw)
        assert decls["outline"] == "2px dashed #FF0000"
        assert decls["outline-offset"] == "-2px"

    def test_per_side_weights(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}], strokeWeight=1, strokeAlign="CENTER",
                    individualStrokeWeights={"top": 0, "right": 0, "bottom": 1, "left": 0})
        decls = css(raw)
        assert decls["border-bottom"] == "1px solid #FF0000"
        assert "border-top" not in decls

    def test_zero_weight_stroke_ignored(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}], strokeWeight=0)
        assert resolve(raw).border is None
        assert resolve(raw).shadows == ()

    def test_stacked_strokes_note(self):
        raw = shape(strokes=[{"type": "SOLID", "color": RED}, {"type": "SOLID", "color": BLUE}],
                    strokeWeight=1, strokeAlign="CENTER")
        style = resolve(raw)
        assert style.border.color.css == "#0000FF"
        assert any("stacked strokes" in n for n in style.fidelity_notes)


# ─── effects / radius ───────────────────────────────────────────────────────

class TestEffectsAndRadius:

    def test_drop_shadow(self):
        raw = shape(effects=[{
            "type": "DROP_SHADOW", "color": {"r": 0, "g": 0, "b": 0, "a": 0.25},
            "offset": {"x": 0, "y": 4}, "radius": 8, "spread": 0,
        }])
        assert css(raw)["box-shadow"] == "0 4px 8px 0 #00000040"

    def test_stroke_ring_above_effect_shadow(self):
        raw = shape(
            strokes=[{"type": "SOLID", "color": RED}], strokeWeight=1, strokeAlign="INSIDE",
            effects=[{"type": "DROP_SHADOW", "color": {"r": 0, "g": 0, "b": 0, "a": 1},
                      "offset": {"x": 0, "y": 2}, "radius": 4}],
        )
        shadow = css(raw)["box-shadow"]
        assert shadow.index("inset") < shadow.index("2px 4px")

    def test_layer_blur_is_filter(self):
        raw = shape(effects=[{"type": "LAYER_BLUR", "radius": 6}])
        assert css(raw)["filter"] == "blur(6px)"

    def test_uniform_radius_collapses(self):
        assert css(shape(cornerRadius=8))["border-radius"] == "8px"

    def test_mixed_radius(self):
        decls = css(shape(rectangleCornerRadii=[8, 8, 0, 0]))
        assert decls["border-radius"] == "8px 8px 0 0"

    def test_ellipse_is_round(self):
        assert css(shape("ELLIPSE"))["border-radius"] == "50%"

    def test_node_opacity_and_blend(self):
        decls = css(shape(opacity=0.5, blendMode="MULTIPLY"))
        assert decls["opacity"] == "0.5"
        assert decls["mix-blend-mode"] == "multiply"

    def test_vector_asset_shadow_uses_drop_shadow_filter(self):
        raw = shape("VECTOR", effects=[{
            "type": "DROP_SHADOW", "color": {"r": 0, "g": 0, "b": 0, "a": 1},
            "offset": {"x": 1, "y": 2}, "radius": 3,
        }])
        style = resolve(raw)
        assert style.shadows == ()
        assert style.filters == ("drop-shadow(1px 2px 3px #000000)",)


# ─── text ───────────────────────────────────────────────────────────────────

class TestText:

    def text(self, **style):
        return {
            "id": "1:1", "type": "TEXT", "name": "Title", "characters": "Hello",
            "fills": [{"type": "SOLID", "color": {"r": 0.2, "g": 0.2, "b": 0.2, "a": 1}}],
            "style": {"fontFamily": "Inter", "fontSize": 24, "fontWeight": 600, **style},
        }

    def test_text_color_and_font(self):
        decls = css(self.text())
        assert decls["color"] == "#333333"
        assert decls["font"] == '600 24px/normal "Inter", sans-serif'
        assert "background-color" not in decls

    def test_text_extras(self):
        decls = css(self.text(textAlignHorizontal="CENTER", textCase="UPPER", letterSpacing=1))
        assert decls["text-align"] == "center"
        assert decls["text-transform"] == "uppercase"
        assert decls["letter-spacing"] == "1px"

    def test_font_shorthand_with_line_height(self):
        root = extract(self.text(lineHeightPx=32, italic=True), PipelineContext()).root
        assert font_shorthand(root.style) == 'italic 600 24px/32px "Inter", sans-serif'
