"""
Semantic Generator — tag, flat BEM class, accessibility attributes and style
layer placement for every emitted node.

Tag priority: naming keyword → interactive affordance → page landmark →
text / asset defaults → div
"""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .context import PipelineContext
from .errors import DiagnosticKind, PipelineCancelled
from .assets import asset_for_node, image_asset
from .layout import LayoutResult, layout_declarations
from .model import (
    DOCUMENT_WRAPPERS, Declaration, ElementRules, ExtractedNode, FrameNode, GeneratedElement,
    InstanceNode, LayoutSpec, PaintType, PlaceholderNode, TextNode,
    VisualStyle, exports_as_asset, image_fill,
)
from .tokens import TokenSet
from .visual import visual_declarations

logger = logging.getLogger(__name__)


@dataclass
class SemanticConfig:
    """Semantic generator settings."""
    block_prefix: str = ""
    # ordered: the first keyword group matching a name word wins
    tag_keywords: list = field(default_factory=lambda: [
        (("button", "btn", "cta"), "button"),
        (("link",), "a"),
        (("nav", "navbar", "navigation", "menu"), "nav"),
        (("header",), "header"),
        (("footer",), "footer"),
        (("sidebar", "aside"), "aside"),
        (("main", "content"), "main"),
        (("section", "hero"), "section"),
        (("card", "article"), "article"),
        (("list",), "ul"),
        (("item",), "li"),
        (("input", "textfield", "searchbar", "search"), "input"),
        (("form",), "form"),
        (("image", "img", "photo", "avatar", "picture"), "img"),
        (("label",), "label"),
    ])
    interactive_states: set = field(default_factory=lambda: {
        "hover", "hovered", "pressed", "focus", "focused", "active", "disabled",
    })
    heading_words: set = field(default_factory=lambda: {"heading", "title", "headline"})
    # auto-generated layer names carry no meaning
    auto_name_pattern: str = (
        r"^(frame|group|rectangle|vector|ellipse|text|instance|component|line|"
        r"union|subtract|intersect|exclude|polygon|star|layer|image|auto layout)\s*\d*$"
    )


_INTERACTIVE_TAGS = {"button", "a", "input", "label", "select", "textarea"}
_VOID_TAGS = {"img", "input"}
_TAG_ELEMENT_NAMES = {
    "div": "container", "p": "text", "span": "text", "img": "image",
    "h1": "heading", "h2": "heading", "h3": "heading",
    "h4": "heading", "h5": "heading", "h6": "heading",
}


def _words(name: str) -> list[str]:
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name)
    words = [w for w in re.split(r"[^a-zA-Z0-9]+", spaced.lower()) if w]
    # compounds written as two words ("Text Field" → "textfield")
    return words + [a + b for a, b in zip(words, words[1:])]


def slugify(name: str) -> str:
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    slug = re.sub(r"[^a-z0-9]+", "-", spaced.lower()).strip("-")
    if slug and slug[0].isdigit():
        slug = f"x-{slug}"
    return slug


def humanize(name: str) -> str:
    return " ".join(re.split(r"[\s/_\-#@]+", name)).strip()


# ════════════════════════════════════════════════════════════
# Style layers
# ════════════════════════════════════════════════════════════

_UTILITY_EXACT = {
    ("display", "flex"): "flex",
    ("display", "block"): "block",
    ("flex-direction", "row"): "flex-row",
    ("flex-direction", "column"): "flex-col",
    ("flex-wrap", "wrap"): "flex-wrap",
    ("flex-wrap", "nowrap"): "flex-nowrap",
    ("justify-content", "flex-start"): "justify-start",
    ("justify-content", "center"): "justify-center",
    ("justify-content", "flex-end"): "justify-end",
    ("justify-content", "space-between"): "justify-between",
    ("justify-content", "normal"): "justify-normal",
    ("align-items", "flex-start"): "items-start",
    ("align-items", "center"): "items-center",
    ("align-items", "flex-end"): "items-end",
    ("align-items", "baseline"): "items-baseline",
    ("align-items", "stretch"): "items-stretch",
    ("align-self", "stretch"): "self-stretch",
    ("align-self", "auto"): "self-auto",
    ("flex-grow", "1"): "grow",
    ("flex-grow", "0"): "grow-0",
    ("flex-shrink", "1"): "shrink",
    ("flex-shrink", "0"): "shrink-0",
    ("flex-basis", "0"): "basis-0",
    ("flex-basis", "auto"): "basis-auto",
    ("position", "relative"): "relative",
    ("position", "absolute"): "absolute",
    ("position", "static"): "static",
    ("overflow", "hidden"): "overflow-hidden",
    ("overflow", "visible"): "overflow-visible",
    ("width", "fit-content"): "w-fit",
    ("width", "100%"): "w-full",
    ("width", "auto"): "w-auto",
    ("height", "fit-content"): "h-fit",
    ("height", "100%"): "h-full",
    ("height", "auto"): "h-auto",
    ("min-width", "0"): "min-w-0",
    ("min-height", "0"): "min-h-0",
}

_UTILITY_PREFIX = {
    "width": "w", "height": "h",
    "min-width": "min-w", "max-width": "max-w",
    "min-height": "min-h", "max-height": "max-h",
    "gap": "gap", "row-gap": "gap-y", "column-gap": "gap-x",
    "padding": "p", "left": "left", "top": "top",
}


def utility_class(decl: Declaration) -> str:
    """Tailwind-style class for one layout declaration: ``gap-[8px]``, ``grow``…"""
    exact = _UTILITY_EXACT.get((decl.property, decl.value))
    if exact:
        return exact
    value = decl.value.replace(" ", "_")
    prefix = _UTILITY_PREFIX.get(decl.property)
    if prefix:
        return f"{prefix}-[{value}]"
    return f"[{decl.property}:{value}]"


def split_layers(decls: list[Declaration]) -> ElementRules:
    """Layout-only → utility classes; token-carrying → custom-property layer;
    the rest → scoped layer."""
    utility, custom, scoped = [], [], []
    for decl in decls:
        if decl.tokens:
            custom.append(decl)
        elif decl.layout:
            utility.append((utility_class(decl), decl))
        else:
            scoped.append(decl)
    return ElementRules(tuple(utility), tuple(custom), tuple(scoped))


# ════════════════════════════════════════════════════════════
# Running state
# ════════════════════════════════════════════════════════════

@dataclass
class _Scope:
    floor: int = 0
    last: Optional[int] = None


class HeadingTracker:
    """Heading levels along a depth-first walk: one h1 per page, never deeper
    than one level below the nearest preceding heading in scope, never
    shallower than an ancestor scope's heading."""

    def __init__(self):
        self.h1_used = False
        self._scopes = [_Scope()]

    def enter(self) -> None:
        parent = self._scopes[-1]
        self._scopes.append(_Scope(floor=parent.last or parent.floor))

    def exit(self) -> None:
        if len(self._scopes) > 1:
            self._scopes.pop()

    def assign(self, requested: int) -> int:
        scope = self._scopes[-1]
        context = scope.last or scope.floor
        level = min(requested, context + 1)
        level = max(level, scope.floor, 1)
        if level == 1 and self.h1_used:
            level = 2
        level = min(level, 6)
        scope.last = level
        if level == 1:
            self.h1_used = True
        return level


class ClassNamer:
    """Flat BEM: ``block`` / ``block__element``. A class name is reused only
    by elements whose scoped + custom rules are identical."""

    def __init__(self, prefix: str = ""):
        self.prefix = slugify(prefix) if prefix else ""
        self._owners: dict[str, tuple] = {}

    def block(self, name: str) -> str:
        base = slugify(name) or "block"
        return f"{self.prefix}-{base}" if self.prefix else base

    def element(self, block: str, name: str) -> str:
        return f"{block}__{slugify(name) or 'element'}"

    def claim(self, base: str, signature: tuple) -> str:
        candidate, n = base, 1
        while True:
            owner = self._owners.get(candidate)
            if owner is None:
                self._owners[candidate] = signature
                return candidate
            if owner == signature:
                return candidate
            n += 1
            candidate = f"{base}-{n}"


@dataclass
class _Walk:
    block: str
    parent_tag: str = "div"
    inline: bool = False  # inside button / a / label
    page_root: Optional[ExtractedNode] = None
    depth_in_page: int = 0


# ════════════════════════════════════════════════════════════
# Generator
# ════════════════════════════════════════════════════════════

class SemanticGenerator:

    def __init__(self, ctx: Optional[PipelineContext] = None, config: Optional[SemanticConfig] = None):
        self.ctx = ctx or PipelineContext()
        self.config = config or SemanticConfig(block_prefix=self.ctx.config.block_prefix)
        self._auto_name = re.compile(self.config.auto_name_pattern, re.IGNORECASE)
        self.namer = ClassNamer(self.config.block_prefix)
        self.headings = HeadingTracker()
        self._main_used = False
        self._input_ids = 0
        self._family_stems: dict[str, str] = {}
        self._folded: frozenset[str] = frozenset()
        self._specs: Mapping[str, LayoutSpec] = {}
        self._visuals: Mapping[str, VisualStyle] = {}
        self._tokens: Optional[TokenSet] = None

    # ─── public ───

    def generate(
        self,
        root: ExtractedNode,
        layout: LayoutResult,
        visuals: Mapping[str, VisualStyle],
        tokens: Optional[TokenSet] = None,
    ) -> GeneratedElement:
        self._family_stems = {rs.base_id: rs.stem for rs in layout.responsive}
        self._folded = layout.folded
        self._specs = layout.specs
        self._visuals = visuals
        self._tokens = tokens

        if root.source_type in DOCUMENT_WRAPPERS:
            return self._wrapper(root)

        walk = _Walk(block=self._block_name(root), page_root=root)
        return self._element(root, walk, top_level=True)

    def _wrapper(self, node: ExtractedNode) -> GeneratedElement:
        """Document / canvas: every top-level frame is a page of its own."""
        children = []
        for child in node.children:
            if child.id in self._folded:
                continue
            self.ctx.check_cancelled()
            if child.source_type in DOCUMENT_WRAPPERS:
                children.append(self._wrapper(child))
                continue
            self.headings = HeadingTracker()
            self._main_used = False
            walk = _Walk(block=self._block_name(child), page_root=child)
            children.append(self._guarded(child, walk))
        return GeneratedElement(
            node_id=node.id, name=node.name, tag="div",
            class_name=self.namer.block(node.name or "page"), children=tuple(children),
        )

    def assign_semantics(
        self,
        node: ExtractedNode,
        layout: LayoutSpec,
        visual: VisualStyle,
        tokens: Optional[TokenSet] = None,
        children: tuple[GeneratedElement, ...] = (),
        walk: Optional[_Walk] = None,
        tag: Optional[str] = None,
    ) -> GeneratedElement:
        """Element for a single node whose children are already generated."""
        walk = walk or _Walk(block=self._block_name(node), page_root=node)
        if tokens is not None:
            layout = layout.map_values(tokens.bind)
            visual = visual.map_values(tokens.bind)

        if isinstance(node, PlaceholderNode):
            return self._placeholder(node, walk.block)

        tag = tag or self._choose_tag(node, walk)
        if tag in ("h1", "h2", "h3", "h4", "h5", "h6"):
            tag = f"h{self.headings.assign(int(tag[1]))}"

        rules = split_layers(layout_declarations(layout) + visual_declarations(visual))
        signature = tuple((d.property, d.value) for d in rules.custom + rules.scoped)
        if walk.page_root is node:
            class_name = self.namer.claim(walk.block, signature)
        elif self._starts_block(node):
            class_name = self.namer.claim(self._block_name(node), signature)
        else:
            class_name = self.namer.claim(self.namer.element(walk.block, self._element_name(node, tag)), signature)

        assets = []
        asset = asset_for_node(node, self.ctx.config.export_format)
        if asset is not None and tag == "img":
            assets.append((asset, "src"))
        src_paint = image_fill(node) if tag == "img" else None
        for paint in node.fills:
            if paint.visible and paint.type == PaintType.IMAGE and paint.image_ref and paint is not src_paint:
                assets.append((image_asset(paint.image_ref, node.id), "background"))

        attributes = self._attributes(node, tag, asset if tag == "img" else None, walk)
        text = node.characters if isinstance(node, TextNode) else None
        if tag in _VOID_TAGS:
            children, text = (), None

        return GeneratedElement(
            node_id=node.id,
            name=node.name,
            tag=tag,
            class_name=class_name,
            attributes=tuple(attributes.items()),
            utility_classes=tuple(dict.fromkeys(cls for cls, _ in rules.utility)),
            text=text,
            children=children,
            rules=rules,
            assets=tuple(assets),
            fidelity_notes=visual.fidelity_notes,
        )

    # ─── traversal ───

    def _element(self, node: ExtractedNode, walk: _Walk, top_level: bool = False) -> GeneratedElement:
        layout = self._specs.get(node.id) or LayoutSpec(node_id=node.id)
        visual = self._visuals.get(node.id) or VisualStyle(node_id=node.id)

        tag = None if isinstance(node, PlaceholderNode) else self._choose_tag(node, walk)
        children: tuple[GeneratedElement, ...] = ()
        if tag is not None and tag not in _VOID_TAGS and not exports_as_asset(node):
            child_walk = _Walk(
                block=self._block_name(node) if self._starts_block(node) else walk.block,
                parent_tag=tag,
                inline=walk.inline or tag in ("button", "a", "label"),
                page_root=walk.page_root,
                depth_in_page=walk.depth_in_page + 1,
            )
            self.headings.enter()
            try:
                generated = []
                for child in node.children:
                    if child.id in self._folded:
                        continue
                    if top_level:
                        self.ctx.check_cancelled()
                    generated.append(self._guarded(child, child_walk))
            finally:
                self.headings.exit()
            children = self._associate_labels(tuple(generated))

        return self.assign_semantics(node, layout, visual, self._tokens, children, walk, tag)

    def _guarded(self, node: ExtractedNode, walk: _Walk) -> GeneratedElement:
        """A failing subtree becomes an inert placeholder; siblings continue."""
        try:
            return self._element(node, walk)
        except PipelineCancelled:
            raise
        except Exception as exc:
            logger.exception("semantic generation failed for %s", node.id)
            self.ctx.report(DiagnosticKind.EMISSION_FAILURE, f"subtree not generated: {exc}", node)
            return self._placeholder(node, walk.block)

    # ─── decisions ───

    def _choose_tag(self, node: ExtractedNode, walk: _Walk) -> str:
        if isinstance(node, TextNode):
            return self._text_tag(node, walk)
        if exports_as_asset(node) or image_fill(node) is not None:
            return "img"
        if walk.parent_tag in ("ul", "ol"):
            return "li"

        names = [node.name]
        if isinstance(node, InstanceNode):
            names.append(self.ctx.component_name(node.component_id) or "")
        keyword_tag = self._keyword_tag(" ".join(names), node, walk)
        if keyword_tag:
            return keyword_tag

        if self._is_interactive(node) and not walk.inline:
            return "button"

        landmark = self._landmark(node, walk)
        if landmark:
            return landmark
        return "div"

    def _keyword_tag(self, name: str, node: ExtractedNode, walk: _Walk) -> Optional[str]:
        words = set(_words(name))
        for keywords, tag in self.config.tag_keywords:
            if not words.intersection(keywords):
                continue
            if tag == "li" and walk.parent_tag not in ("ul", "ol"):
                continue
            if tag == "ul" and not node.children:
                continue
            if tag == "img" and (node.children or asset_for_node(node) is None):
                # an image-named box with nothing to export keeps its fill
                continue
            if tag in ("button", "a") and walk.inline:
                continue
            if tag == "main":
                if self._main_used:
                    continue
                self._main_used = True
            return tag
        return None

    def _text_tag(self, node: TextNode, walk: _Walk) -> str:
        words = set(_words(node.name))
        if "link" in words and not walk.inline:
            return "a"
        if walk.inline or walk.parent_tag in ("p", "li", "label"):
            return "span"
        if "label" in words:
            return "label"
        level = self._requested_heading(node, words)
        if level:
            return f"h{level}"
        return "p"

    def _requested_heading(self, node: TextNode, words: set[str]) -> Optional[int]:
        for word in words:
            if re.fullmatch(r"h[1-6]", word):
                return int(word[1])
        size = node.style.font_size
        if words.intersection(self.config.heading_words) or (size >= 24 and node.style.font_weight >= 600):
            if size >= 32:
                return 1
            if size >= 24:
                return 2
            if size >= 20:
                return 3
            return 4
        return None

    def _is_interactive(self, node: ExtractedNode) -> bool:
        if node.interactive:
            return True
        props = getattr(node, "variant_properties", None) or {}
        for key, value in props.items():
            if key.lower() in ("state", "status", "interaction") and str(value).lower() in self.config.interactive_states:
                return True
        return False

    def _landmark(self, node: ExtractedNode, walk: _Walk) -> Optional[str]:
        page = walk.page_root
        if page is None or walk.depth_in_page != 1 or not page.children:
            return None
        visible = [c for c in page.children if c.id not in self._folded]
        if not visible or page.geometry.width <= 0:
            return None
        full_width = node.geometry.width >= 0.9 * page.geometry.width
        if not full_width or len(visible) < 2:
            return None
        if node is visible[0] and node.geometry.y <= 1:
            return "header"
        if node is visible[-1] and abs(node.geometry.y + node.geometry.height - page.geometry.height) <= 1:
            return "footer"
        return None

    def _names_image(self, node: ExtractedNode) -> bool:
        words = set(_words(node.name))
        return any(tag == "img" and words.intersection(keywords) for keywords, tag in self.config.tag_keywords)

    def _starts_block(self, node: ExtractedNode) -> bool:
        if node.id in self._family_stems:
            return True
        if isinstance(node, InstanceNode):
            return True
        return isinstance(node, FrameNode) and node.is_component

    def _block_name(self, node: ExtractedNode) -> str:
        if node.id in self._family_stems:
            return self.namer.block(self._family_stems[node.id])
        if isinstance(node, InstanceNode):
            return self.namer.block(self.ctx.component_name(node.component_id) or node.name)
        name = node.name.split("=")[-1] if "=" in node.name else node.name
        return self.namer.block(name or "page")

    def _element_name(self, node: ExtractedNode, tag: str) -> str:
        name = node.name.strip()
        if not name or self._auto_name.match(name):
            return _TAG_ELEMENT_NAMES.get(tag, tag)
        return name

    # ─── accessibility ───

    def _attributes(self, node: ExtractedNode, tag: str, asset, walk: _Walk) -> dict[str, str]:
        attrs: dict[str, str] = {}
        meaningful = bool(node.name.strip()) and not self._auto_name.match(node.name.strip())

        if tag == "img":
            attrs["src"] = asset.path if asset is not None else ""
            # auto-named graphics are decorative
            attrs["alt"] = humanize(node.name) if meaningful else ""
        elif tag == "a":
            attrs["href"] = "#"
        elif tag == "button":
            attrs["type"] = "button"
        elif tag == "input":
            self._input_ids += 1
            attrs["id"] = f"input-{self._input_ids}"
            attrs["type"] = "search" if "search" in _words(node.name) else "text"
            placeholder = next((n.characters for n in node.walk() if isinstance(n, TextNode) and n.characters), "")
            if placeholder:
                attrs["placeholder"] = placeholder
            attrs["aria-label"] = placeholder or humanize(node.name)
        elif tag == "nav" and meaningful:
            attrs["aria-label"] = humanize(node.name)
        elif tag == "div" and not node.children and self._names_image(node):
            attrs["role"] = "img"
            attrs["aria-label"] = humanize(node.name)

        if self._is_interactive(node) and tag not in _INTERACTIVE_TAGS:
            attrs["role"] = "button"
            attrs["tabindex"] = "0"
        if node.truncated:
            attrs["data-truncated"] = "true"
        return attrs

    @staticmethod
    def _associate_labels(children: tuple[GeneratedElement, ...]) -> tuple[GeneratedElement, ...]:
        """A text element right before an input becomes that input's label."""
        out = list(children)
        for i in range(1, len(out)):
            current, previous = out[i], out[i - 1]
            if current.tag != "input" or previous.tag not in ("p", "span", "label") or previous.text is None:
                continue
            attrs = dict(current.attributes)
            input_id = attrs.get("id", "")
            attrs.pop("aria-label", None)
            out[i] = replace(current, attributes=tuple(attrs.items()))
            out[i - 1] = replace(
                previous, tag="label",
                attributes=tuple({**dict(previous.attributes), "for": input_id}.items()),
            )
        return tuple(out)

    def _placeholder(self, node: ExtractedNode, block: str) -> GeneratedElement:
        original = node.original_type if isinstance(node, PlaceholderNode) else node.source_type
        return GeneratedElement(
            node_id=node.id,
            name=node.name,
            tag="div",
            class_name=self.namer.element(block, "placeholder"),
            attributes=(
                ("inert", ""),
                ("aria-hidden", "true"),
                ("data-figma-type", original),
                ("data-figma-name", node.name),
                ("data-figma-id", node.id),
            ),
        )


def assign_semantics(
    node: ExtractedNode,
    layout: LayoutSpec,
    visual: VisualStyle,
    tokens: Optional[TokenSet] = None,
    ctx: Optional[PipelineContext] = None,
) -> GeneratedElement:
    generator = SemanticGenerator(ctx)
    return generator.assign_semantics(node, layout, visual, tokens)


def preview_tree(element: GeneratedElement, indent: int = 0) -> str:
    """Debug view of the generated element tree."""
    lines = []
    prefix = "  " * indent
    classes = " ".join(element.classes)
    label = f"{prefix}├─ <{element.tag}> .{element.class_name}  [{element.name}]"
    if classes != element.class_name:
        label += f"  {classes}"
    lines.append(label)
    for child in element.children:
        lines.append(preview_tree(child, indent + 1))
    return "\n".join(lines)
