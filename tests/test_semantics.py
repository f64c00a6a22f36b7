"""
Semantic Generator unit tests: tags, flat BEM classes, headings,
accessibility attributes and style-layer placement.
"""
from types import MappingProxyType
from unittest.mock import patch

from figma_agent import semantics
from figma_agent.context import PipelineContext
from figma_agent.errors import DiagnosticKind
from figma_agent.extractor import extract
from figma_agent.layout import LayoutInterpreter
from figma_agent.model import Declaration
from figma_agent.semantics import (
    HeadingTracker, SemanticGenerator, assign_semantics, preview_tree,
    split_layers, utility_class,
)
from figma_agent.tokens import TokenEngine
from figma_agent.visual import VisualResolver


# ─── helpers ────────────────────────────────────────────────────────────────

def frame(node_id, name, x=0, y=0, w=100, h=100, children=None, **extra):
    raw = {
        "id": node_id, "name": name, "type": extra.pop("type", "FRAME"),
        "absoluteBoundingBox": {"x": x, "y": y, "width": w, "height": h},
        "children": children or [],
    }
    raw.update(extra)
    return raw


def text(node_id, name, characters, size=16, weight=400, **extra):
    raw = {
        "id": node_id, "name": name, "type": "TEXT", "characters": characters,
        "absoluteBoundingBox": {"x": 0, "y": 0, "width": 100, "height": 20},
        "style": {"fontFamily": "Inter", "fontSize": size, "fontWeight": weight},
    }
    raw.update(extra)
    return raw


def generate(raw, ctx=None):
    ctx = ctx or PipelineContext()
    root = extract(raw, ctx).root
    layout = LayoutInterpreter(ctx).interpret(root)
    resolver = VisualResolver(ctx)
    visuals = {n.id: resolver.resolve(n) for n in root.walk()}
    tokens = TokenEngine(ctx).collect(root.walk(), layout.specs, visuals)
    layout = layout.map_values(tokens.bind)
    visuals = MappingProxyType({k: v.map_values(tokens.bind) for k, v in visuals.items()})
    return SemanticGenerator(ctx).generate(root, layout, visuals, tokens)


def by_id(tree, node_id):
    return next(e for e in tree.walk() if e.node_id == node_id)


# ─── class naming ───────────────────────────────────────────────────────────

class TestClassNames:

    def test_flat_bem_never_nests(self):
        tree = generate(frame("1:1", "Landing Page", children=[
            frame("1:2", "Hero", children=[
                frame("1:3", "Card", children=[text("1:4", "Title", "Hello")]),
            ]),
        ]))
        assert tree.class_name == "landing-page"
        assert by_id(tree, "1:2").class_name == "landing-page__hero"
        for element in tree.walk():
            assert element.class_name.count("__") <= 1

    def test_instance_starts_new_block(self):
        raw = {
            "document": frame("1:1", "Page", children=[
                frame("1:2", "Primary Button", type="INSTANCE", componentId="9:1", children=[
                    text("1:3", "Label", "Buy now"),
                ]),
            ]),
            "components": {"9:1": {"name": "Button"}},
        }
        tree = generate(raw)
        button = by_id(tree, "1:2")
        assert button.tag == "button"
        assert button.class_name == "button"
        assert dict(button.attributes)["type"] == "button"
        label = by_id(tree, "1:3")
        assert label.tag == "span"
        assert label.class_name == "button__label"

    def test_auto_names_use_tag_role(self):
        tree = generate(frame("1:1", "Page", children=[frame("1:2", "Frame 12", fills=[
            {"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0}},
        ])]))
        assert by_id(tree, "1:2").class_name == "page__container"

    def test_identical_rules_share_class_and_different_rules_split(self):
        tree = generate(frame("1:1", "Page", children=[
            text("1:2", "Note", "a", size=14),
            text("1:3", "Note", "b", size=14),
            text("1:4", "Note", "c", size=18),
        ]))
        assert by_id(tree, "1:2").class_name == by_id(tree, "1:3").class_name == "page__note"
        assert by_id(tree, "1:4").class_name == "page__note-2"

    def test_block_prefix(self):
        ctx = PipelineContext()
        ctx.config.block_prefix = "acme"
        tree = generate(frame("1:1", "Page"), ctx)
        assert tree.class_name == "acme-page"


# ─── tags ───────────────────────────────────────────────────────────────────

class TestTags:

    def test_name_keywords(self):
        tree = generate(frame("1:1", "Page", children=[
            frame("1:2", "Main Nav", children=[text("1:3", "Home Link", "Home")]),
            frame("1:4", "Feature List", children=[frame("1:5", "Row"), frame("1:6", "Row")]),
        ]))
        nav = by_id(tree, "1:2")
        assert nav.tag == "nav"
        assert dict(nav.attributes)["aria-label"] == "Main Nav"
        assert by_id(tree, "1:3").tag == "a"
        assert dict(by_id(tree, "1:3").attributes)["href"] == "#"
        assert by_id(tree, "1:4").tag == "ul"
        assert by_id(tree, "1:5").tag == "li"

    def test_only_one_main(self):
        tree = generate(frame("1:1", "Page", w=1440, h=900, children=[
            frame("1:2", "Main Content"), frame("1:3", "Main Content", y=200),
        ]))
        assert [by_id(tree, i).tag for i in ("1:2", "1:3")] == ["main", "div"]

    def test_interactive_frame_becomes_button(self):
        tree = generate(frame("1:1", "Page", children=[
            frame("1:2", "Tile", reactions=[{"action": {"type": "NODE"}}]),
        ]))
        assert by_id(tree, "1:2").tag == "button"

    def test_interactive_non_native_gets_role(self):
        tree = generate(frame("1:1", "Page", children=[
            frame("1:2", "Product Card", reactions=[{"action": {"type": "NODE"}}]),
        ]))
        card = by_id(tree, "1:2")
        assert card.tag == "article"
        assert dict(card.attributes)["role"] == "button"
        assert dict(card.attributes)["tabindex"] == "0"

    def test_header_and_footer_landmarks(self):
        tree = generate(frame("1:1", "Page", w=1440, h=900, children=[
            frame("1:2", "Top Bar", x=0, y=0, w=1440, h=80),
            frame("1:3", "Body", x=0, y=80, w=1440, h=740),
            frame("1:4", "Bottom Bar", x=0, y=820, w=1440, h=80),
        ]))
        assert [by_id(tree, i).tag for i in ("1:2", "1:3", "1:4")] == ["header", "div", "footer"]

    def test_narrow_first_child_is_not_header(self):
        tree = generate(frame("1:1", "Page", w=1440, h=900, children=[
            frame("1:2", "Top Bar", x=0, y=0, w=400, h=80),
            frame("1:3", "Body", x=0, y=80, w=1440, h=820),
        ]))
        assert by_id(tree, "1:2").tag == "div"

    def test_document_children_are_pages(self):
        raw = {
            "id": "0:0", "name": "Document", "type": "DOCUMENT",
            "children": [
                frame("1:1", "Home", children=[text("1:2", "Headline", "Welcome", size=40, weight=700)]),
                frame("2:1", "About", children=[text("2:2", "Headline", "About us", size=40, weight=700)]),
            ],
        }
        tree = generate(raw)
        assert [c.class_name for c in tree.children] == ["home", "about"]
        # heading state restarts per page
        assert by_id(tree, "1:2").tag == "h1"
        assert by_id(tree, "2:2").tag == "h1"

    def test_canvas_pages_get_landmarks(self):
        raw = {"id": "0:0", "name": "Document", "type": "DOCUMENT", "children": [
            {"id": "0:1", "name": "Page 1", "type": "CANVAS", "children": [
                frame("1:1", "Home", w=1440, h=900, children=[
                    frame("1:2", "Top Bar", x=0, y=0, w=1440, h=80),
                    frame("1:3", "Body", x=0, y=80, w=1440, h=740),
                    frame("1:4", "Bottom Bar", x=0, y=820, w=1440, h=80),
                ]),
            ]},
        ]}
        tree = generate(raw)
        assert [by_id(tree, i).tag for i in ("1:2", "1:3", "1:4")] == ["header", "div", "footer"]
        (canvas,) = tree.children
        assert [c.node_id for c in canvas.children] == ["1:1"]
        assert canvas.children[0].class_name == "home"

    def test_placeholder_for_unsupported_node(self):
        tree = generate(frame("1:1", "Page", children=[{"id": "1:2", "name": "Note", "type": "STICKY"}]))
        placeholder = by_id(tree, "1:2")
        attrs = dict(placeholder.attributes)
        assert placeholder.tag == "div"
        assert placeholder.class_name == "page__placeholder"
        assert attrs["data-figma-type"] == "STICKY"
        assert "inert" in attrs
        assert attrs["aria-hidden"] == "true"

    def test_folded_family_members_not_emitted(self):
        tree = generate(frame("1:1", "Page", w=3000, children=[
            frame("1:2", "Card", w=360, layoutMode="VERTICAL"),
            frame("1:3", "Card#tablet", w=768, layoutMode="HORIZONTAL"),
        ]))
        assert [c.node_id for c in tree.children] == ["1:2"]
        assert tree.children[0].class_name == "card"


# ─── headings ───────────────────────────────────────────────────────────────

class TestHeadings:

    def test_single_h1_and_no_skipped_levels(self):
        tree = generate(frame("1:1", "Page", children=[
            text("1:2", "Headline", "Big", size=40, weight=700),
            text("1:3", "Headline", "Also big", size=40, weight=700),
            frame("1:4", "Section", children=[text("1:5", "h4", "Deep")]),
        ]))
        assert by_id(tree, "1:2").tag == "h1"
        assert by_id(tree, "1:3").tag == "h2"
        assert by_id(tree, "1:5").tag == "h3"

    def test_body_text_is_paragraph(self):
        tree = generate(frame("1:1", "Page", children=[text("1:2", "Description", "Lorem ipsum")]))
        element = by_id(tree, "1:2")
        assert element.tag == "p"
        assert element.text == "Lorem ipsum"

    def test_tracker_floor_from_enclosing_scope(self):
        tracker = HeadingTracker()
        assert tracker.assign(2) == 1
        tracker.enter()
        assert tracker.assign(1) == 2
        assert tracker.assign(5) == 3
        tracker.exit()
        assert tracker.assign(1) == 2


# ─── accessibility ──────────────────────────────────────────────────────────

class TestAccessibility:

    def test_vector_asset_is_img_with_alt(self):
        tree = generate(frame("1:1", "Page", children=[
            {"id": "1:2", "name": "Company Logo", "type": "VECTOR",
             "absoluteBoundingBox": {"x": 0, "y": 0, "width": 24, "height": 24}},
            {"id": "1:3", "name": "Vector 3", "type": "VECTOR",
             "absoluteBoundingBox": {"x": 0, "y": 0, "width": 12, "height": 12}},
        ]))
        logo = by_id(tree, "1:2")
        attrs = dict(logo.attributes)
        assert logo.tag == "img"
        assert attrs["alt"] == "Company Logo"
        assert attrs["src"].startswith("assets/") and attrs["src"].endswith(".svg")
        assert logo.assets[0][1] == "src"
        # auto-named graphics are decorative
        assert dict(by_id(tree, "1:3").attributes)["alt"] == ""

    def test_image_fill_is_img(self):
        tree = generate(frame("1:1", "Page", children=[
            frame("1:2", "Avatar", type="RECTANGLE", fills=[{"type": "IMAGE", "imageRef": "face"}]),
        ]))
        avatar = by_id(tree, "1:2")
        assert avatar.tag == "img"
        assert dict(avatar.attributes)["src"] == "assets/face.png"

    def test_image_named_box_without_asset_keeps_fill(self):
        red = [{"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0}}]
        tree = generate(frame("1:1", "Page", children=[
            frame("1:2", "Image", type="RECTANGLE", w=320, h=180, fills=red),
        ]))
        box = by_id(tree, "1:2")
        attrs = dict(box.attributes)
        assert box.tag == "div"
        assert attrs["role"] == "img"
        assert attrs["aria-label"] == "Image"
        assert "src" not in attrs
        decls = {d.property: d.value for d in box.rules.custom + box.rules.scoped}
        assert decls["background-color"] == "#FF0000"

    def test_text_before_input_becomes_label(self):
        tree = generate(frame("1:1", "Page", children=[
            text("1:2", "Email", "Email address"),
            frame("1:3", "Input", children=[text("1:4", "Hint", "you@example.com")]),
        ]))
        label = by_id(tree, "1:2")
        field = by_id(tree, "1:3")
        field_attrs = dict(field.attributes)
        assert field.tag == "input"
        assert field.children == ()
        assert field_attrs["placeholder"] == "you@example.com"
        assert "aria-label" not in field_attrs
        assert label.tag == "label"
        assert dict(label.attributes)["for"] == field_attrs["id"]

    def test_lone_input_keeps_aria_label(self):
        tree = generate(frame("1:1", "Page", children=[frame("1:2", "Search Bar")]))
        attrs = dict(by_id(tree, "1:2").attributes)
        assert attrs["type"] == "search"
        assert attrs["aria-label"] == "Search Bar"

    def test_truncated_node_marked(self):
        ctx = PipelineContext()
        ctx.config.max_depth = 1
        tree = generate(frame("1:1", "Page", children=[frame("1:2", "Deep", children=[frame("1:3", "Lost")])]), ctx)
        assert dict(by_id(tree, "1:2").attributes)["data-truncated"] == "true"


# ─── style layers ───────────────────────────────────────────────────────────

class TestStyleLayers:

    def test_layout_rules_become_utilities(self):
        tree = generate(frame("1:1", "Page", layoutMode="VERTICAL", itemSpacing=8))
        assert {"flex", "flex-col", "gap-[8px]"} <= set(tree.utility_classes)

    def test_token_rules_go_to_custom_layer(self):
        red = [{"type": "SOLID", "color": {"r": 1, "g": 0, "b": 0}}]
        tree = generate(frame("1:1", "Page", children=[
            frame("1:2", "Box A", fills=red), frame("1:3", "Box B", fills=red),
        ]))
        box = by_id(tree, "1:2")
        (decl,) = box.rules.custom
        assert decl.property == "background-color"
        assert decl.value.startswith("var(--color-")
        assert box.rules.scoped == ()

    def test_split_layers(self):
        rules = split_layers([
            Declaration("display", "flex", layout=True),
            Declaration("color", "var(--color-brand)", tokens=("color-brand",)),
            Declaration("border", "1px solid #000000"),
        ])
        assert [cls for cls, _ in rules.utility] == ["flex"]
        assert [d.property for d in rules.custom] == ["color"]
        assert [d.property for d in rules.scoped] == ["border"]

    def test_utility_class_names(self):
        assert utility_class(Declaration("padding", "8px 16px", layout=True)) == "p-[8px_16px]"
        assert utility_class(Declaration("width", "320px", layout=True)) == "w-[320px]"
        assert utility_class(Declaration("flex-grow", "1", layout=True)) == "grow"
        assert utility_class(Declaration("z-index", "2", layout=True)) == "[z-index:2]"


# ─── failure isolation / helpers ────────────────────────────────────────────

class TestFailureIsolation:

    def test_failing_subtree_becomes_placeholder(self):
        real = semantics.visual_declarations

        def flaky(style):
            if style.node_id == "1:2":
                raise RuntimeError("boom")
            return real(style)

        ctx = PipelineContext()
        with patch.object(semantics, "visual_declarations", side_effect=flaky):
            tree = generate(frame("1:1", "Page", children=[
                frame("1:2", "Broken"), text("1:3", "Fine", "still here"),
            ]), ctx)

        assert dict(by_id(tree, "1:2").attributes)["data-figma-id"] == "1:2"
        assert by_id(tree, "1:3").text == "still here"
        assert ctx.diagnostics.of_kind(DiagnosticKind.EMISSION_FAILURE)


def test_assign_semantics_single_node():
    ctx = PipelineContext()
    root = extract(text("1:1", "Caption", "Small print", size=12), ctx).root
    layout = LayoutInterpreter(ctx).interpret(root)
    element = assign_semantics(root, layout.specs["1:1"], VisualResolver(ctx).resolve(root), ctx=ctx)
    assert element.tag == "p"
    assert element.class_name == "caption"
    assert element.rules.scoped


def test_preview_tree_lines():
    tree = generate(frame("1:1", "Page", children=[text("1:2", "Body", "Hi")]))
    lines = preview_tree(tree).splitlines()
    assert lines[0].startswith("├─ <div> .page  [Page]")
    assert lines[1].startswith("  ├─ <p> .page__body  [Body]")


def test_fresh_generator_assigns_without_a_tree_pass():
    ctx = PipelineContext()
    root = extract(frame("1:1", "Hero Image", type="RECTANGLE"), ctx).root
    layout = LayoutInterpreter(ctx).interpret(root)
    generator = SemanticGenerator(ctx)
    element = generator.assign_semantics(root, layout.specs["1:1"], VisualResolver(ctx).resolve(root))
    assert element.tag == "div"
    assert dict(element.attributes)["role"] == "img"
