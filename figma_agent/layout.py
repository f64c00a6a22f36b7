"""
Layout Interpreter

Per node: auto-layout container settings + the node's own sizing mode inside
its parent → LayoutSpec (flex rules). Per sibling group: breakpoint frame
families → one base rule set plus ascending min-width overrides.

Axis decision table (role is relative to the *parent's* flex direction):

            primary axis                     counter axis
  FIXED     <dim>: Npx; flex-shrink: 0       <dim>: Npx
  HUG       fit-content / auto               fit-content / auto
  FILL      grow 1, shrink 1, basis 0        align-self: stretch
"""

import logging
import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from .config import PipelineConfig
from .context import PipelineContext
from .errors import DiagnosticKind
from .model import (
    DOCUMENT_WRAPPERS, AxisSizing, BreakpointOverride, Declaration, ExtractedNode, InstanceNode,
    LayoutMode, LayoutSpec, NodeKind, ResponsiveRuleSet, SizingMode, StyleValue,
    TokenCategory, declaration, px,
)
from .resolver import BindingResolver, TokenLookup

logger = logging.getLogger(__name__)

_JUSTIFY = {
    "MIN": "flex-start",
    "CENTER": "center",
    "MAX": "flex-end",
    "SPACE_BETWEEN": "space-between",
}
_ALIGN = {
    "MIN": "flex-start",
    "CENTER": "center",
    "MAX": "flex-end",
    "BASELINE": "baseline",
}

# Re-emitted whenever flex direction changes between breakpoints
RESET_PROPERTIES = ("align-items", "align-self", "flex-grow", "flex-shrink", "flex-basis")

CSS_INITIAL = {
    "display": "block",
    "flex-direction": "row",
    "flex-wrap": "nowrap",
    "justify-content": "normal",
    "align-items": "normal",
    "align-self": "auto",
    "flex-grow": "0",
    "flex-shrink": "1",
    "flex-basis": "auto",
    "gap": "normal",
    "row-gap": "normal",
    "column-gap": "normal",
    "padding": "0",
    "width": "auto",
    "height": "auto",
    "min-width": "auto",
    "min-height": "auto",
    "max-width": "none",
    "max-height": "none",
    "position": "static",
    "left": "auto",
    "top": "auto",
    "overflow": "visible",
}

_PADDING_BINDINGS = ("paddingTop", "paddingRight", "paddingBottom", "paddingLeft")


@dataclass(frozen=True)
class SiblingContext:
    """What a node needs to know about where it sits."""
    parent_mode: LayoutMode = LayoutMode.NONE
    has_parent: bool = False
    breakpoint: Optional[str] = None


def _axis_role(horizontal: bool, parent_mode: LayoutMode) -> Optional[str]:
    if parent_mode == LayoutMode.NONE:
        return None
    if (parent_mode == LayoutMode.HORIZONTAL) == horizontal:
        return "primary"
    return "counter"


# ════════════════════════════════════════════════════════════
# Per-node interpretation
# ════════════════════════════════════════════════════════════

def interpret_layout(
    node: ExtractedNode,
    sibling_context: Optional[SiblingContext] = None,
    ctx: Optional[PipelineContext] = None,
    tokens: Optional[TokenLookup] = None,
) -> LayoutSpec:
    sibling_context = sibling_context or SiblingContext()
    if node.source_type in DOCUMENT_WRAPPERS:
        # pages stack in normal flow; canvas coordinates mean nothing in markup
        return LayoutSpec(
            node_id=node.id,
            width=AxisSizing(mode=SizingMode.FILL),
            height=AxisSizing(mode=SizingMode.HUG),
        )
    resolver = BindingResolver(ctx or PipelineContext(), tokens)
    sizing = node.sizing
    in_flow = sibling_context.parent_mode != LayoutMode.NONE and not sizing.absolute

    parent_mode = sibling_context.parent_mode if in_flow else LayoutMode.NONE
    width = AxisSizing(
        mode=sizing.horizontal,
        role=_axis_role(True, parent_mode),
        size=node.geometry.width,
        minimum=sizing.min_width,
        maximum=sizing.max_width,
    )
    height = AxisSizing(
        mode=sizing.vertical,
        role=_axis_role(False, parent_mode),
        size=node.geometry.height,
        minimum=sizing.min_height,
        maximum=sizing.max_height,
    )

    spec = LayoutSpec(node_id=node.id, width=width, height=height, breakpoint=sibling_context.breakpoint)

    if sibling_context.has_parent and not in_flow:
        spec = replace(spec, position="absolute", offset=(node.geometry.x, node.geometry.y))

    config = node.layout_config
    if config.is_auto_layout:
        gap = row_gap = column_gap = None
        # space-between distributes free space itself; the fixed gap is ignored
        if config.primary_align != "SPACE_BETWEEN":
            if config.wrap and config.counter_gap is not None:
                cross = resolver.resolve(node, "counterAxisSpacing", config.counter_gap, TokenCategory.SPACING)
                main = resolver.resolve(node, "itemSpacing", config.gap, TokenCategory.SPACING)
                if config.mode == LayoutMode.HORIZONTAL:
                    row_gap, column_gap = cross, main
                else:
                    row_gap, column_gap = main, cross
            elif config.gap or "itemSpacing" in node.bindings:
                gap = resolver.resolve(node, "itemSpacing", config.gap, TokenCategory.SPACING)

        padding: tuple[StyleValue, ...] = ()
        if any(config.padding) or any(b in node.bindings for b in _PADDING_BINDINGS):
            padding = tuple(
                resolver.resolve(node, binding, value, TokenCategory.SPACING)
                for binding, value in zip(_PADDING_BINDINGS, config.padding)
            )

        spec = replace(
            spec,
            display="flex",
            direction="row" if config.mode == LayoutMode.HORIZONTAL else "column",
            justify=_JUSTIFY.get(config.primary_align, "flex-start"),
            align=_ALIGN.get(config.counter_align, "flex-start"),
            wrap=config.wrap,
            gap=gap,
            row_gap=row_gap,
            column_gap=column_gap,
            padding=padding,
        )
    elif node.children and node.kind != NodeKind.VECTOR_CONTAINER and spec.position is None:
        # children of a non-layout container are placed absolutely inside it
        spec = replace(spec, position="relative")

    if getattr(node, "clips_content", False):
        spec = replace(spec, clip=True)
    return spec


def _collapse_box(values: tuple[StyleValue, ...]) -> list[StyleValue]:
    top, right, bottom, left = values
    rendered = [v.render() for v in values]
    if len(set(rendered)) == 1:
        return [top]
    if rendered[0] == rendered[2] and rendered[1] == rendered[3]:
        return [top, right]
    return [top, right, bottom, left]


def _axis_rules(axis: AxisSizing, dim: str) -> list[Declaration]:
    rules = []

    def add(prop: str, value: str) -> None:
        rules.append(Declaration(prop, value, layout=True))

    if axis.mode == SizingMode.FIXED:
        add(dim, px(axis.size))
        if axis.role == "primary":
            add("flex-shrink", "0")
    elif axis.mode == SizingMode.HUG:
        add(dim, "fit-content" if dim == "width" else "auto")
    elif axis.role == "primary":
        # zero basis: free space is split evenly regardless of content size
        add("flex-grow", "1")
        add("flex-shrink", "1")
        add("flex-basis", "0")
        if axis.minimum is None:
            add(f"min-{dim}", "0")
    elif axis.role == "counter":
        add("align-self", "stretch")
    else:
        add(dim, "100%")

    if axis.minimum is not None:
        add(f"min-{dim}", px(axis.minimum))
    if axis.maximum is not None:
        add(f"max-{dim}", px(axis.maximum))
    return rules


def layout_declarations(spec: LayoutSpec) -> list[Declaration]:
    """Ordered CSS for a LayoutSpec. All declarations are layout-only; those
    consuming a token carry its name."""
    decls: list[Declaration] = []

    def add(prop: str, *values) -> None:
        decls.append(declaration(prop, *values, layout=True))

    if spec.position:
        add("position", spec.position)
    if spec.offset is not None:
        add("left", px(spec.offset[0]))
        add("top", px(spec.offset[1]))
    if spec.display:
        add("display", spec.display)
        add("flex-direction", spec.direction or "row")
        if spec.wrap:
            add("flex-wrap", "wrap")
        if spec.justify and spec.justify != "flex-start":
            add("justify-content", spec.justify)
        if spec.align:
            add("align-items", spec.align)
        if spec.gap is not None:
            add("gap", spec.gap)
        if spec.row_gap is not None:
            add("row-gap", spec.row_gap)
        if spec.column_gap is not None:
            add("column-gap", spec.column_gap)
    if spec.padding:
        add("padding", *_collapse_box(spec.padding))

    # per-axis rules; a property set by both axes keeps its first value
    seen = {d.property for d in decls}
    for rule in _axis_rules(spec.width, "width") + _axis_rules(spec.height, "height"):
        if rule.property not in seen:
            seen.add(rule.property)
            decls.append(rule)

    if spec.clip:
        add("overflow", "hidden")
    return decls


# ════════════════════════════════════════════════════════════
# Breakpoint family matching (pluggable)
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FamilyMember:
    node: ExtractedNode
    breakpoint: str
    min_width: int


@dataclass(frozen=True)
class BreakpointFamily:
    stem: str
    # ascending by frame width; members[0] is the base
    members: tuple[FamilyMember, ...]


# Device words only; size words like sm / md / lg name component variants.
_BREAKPOINT_ALIASES = {
    "phone": "mobile", "ipad": "tablet", "pc": "desktop",
}

# Numeric tags below this are ordinals ("Step / 2"), not viewport widths
MIN_VIEWPORT_TAG = 320


class BreakpointMatcher:
    """Identifies (stem, breakpoint tag) for sibling frames. Subclasses only
    decide identity; grouping and ordering live here."""

    def __init__(self, breakpoints: Optional[Mapping[str, int]] = None):
        self.breakpoints = {k.lower(): int(v) for k, v in (breakpoints or PipelineConfig().breakpoints).items()}

    def identify(self, node: ExtractedNode) -> Optional[tuple[str, Optional[str]]]:
        raise NotImplementedError

    def canonical(self, tag: str) -> str:
        tag = tag.strip().lower()
        if tag in self.breakpoints:
            return tag
        return _BREAKPOINT_ALIASES.get(tag, tag)

    def is_breakpoint(self, tag: str) -> bool:
        return self.canonical(tag) in self.breakpoints or _viewport_width(tag) is not None

    def threshold(self, tag: Optional[str], node: ExtractedNode) -> int:
        if tag:
            key = self.canonical(tag)
            if key in self.breakpoints:
                return self.breakpoints[key]
            width = _viewport_width(tag)
            if width is not None:
                return width
        return int(round(node.geometry.width))

    def name_for_width(self, width: float) -> str:
        name = None
        for key, min_width in sorted(self.breakpoints.items(), key=lambda kv: kv[1]):
            if name is None or width >= min_width:
                name = key
        return name or "base"

    def group(self, siblings: Iterable[ExtractedNode]) -> list[BreakpointFamily]:
        buckets: dict[str, list[tuple[int, ExtractedNode, str, Optional[str]]]] = {}
        for index, node in enumerate(siblings):
            if node.kind not in (NodeKind.FRAME, NodeKind.INSTANCE):
                continue
            identity = self.identify(node)
            if identity is None:
                continue
            stem, tag = identity
            buckets.setdefault(stem.strip().lower(), []).append((index, node, stem.strip(), tag))

        families = []
        for entries in buckets.values():
            tags = [self.canonical(tag) for _, _, _, tag in entries if tag]
            if len(entries) < 2 or not tags:
                continue
            if len(set(tags)) != len(tags):
                logger.debug("ambiguous breakpoint family %r: duplicate tags %s", entries[0][2], tags)
                continue
            ordered = sorted(entries, key=lambda e: (e[1].geometry.width, e[0]))
            if not self._widths_follow_tags(ordered):
                logger.debug("breakpoint family %r skipped: frame widths do not grow with tags", entries[0][2])
                continue
            members = []
            for position, (_, node, _, tag) in enumerate(ordered):
                label = self.canonical(tag) if tag else self.name_for_width(node.geometry.width)
                min_width = 0 if position == 0 else self.threshold(tag, node)
                members.append(FamilyMember(node=node, breakpoint=label, min_width=min_width))
            families.append(BreakpointFamily(stem=ordered[0][2], members=tuple(members)))
        return families

    def _widths_follow_tags(self, ordered: list) -> bool:
        """Members sorted by width must have strictly growing widths and, for
        tagged members, strictly growing thresholds."""
        widths = [node.geometry.width for _, node, _, _ in ordered]
        if any(b <= a for a, b in zip(widths, widths[1:])):
            return False
        thresholds = [self.threshold(tag, node) for _, node, _, tag in ordered if tag]
        return all(b > a for a, b in zip(thresholds, thresholds[1:]))


def _viewport_width(tag: str) -> Optional[int]:
    tag = tag.strip()
    if tag.isdigit() and int(tag) >= MIN_VIEWPORT_TAG:
        return int(tag)
    return None


class NameSuffixMatcher(BreakpointMatcher):
    """``Card``, ``Card#tablet``, ``Card@desktop``, ``Card / 1280`` ..."""

    _SUFFIX_RE = re.compile(r"^(?P<stem>.*?\S)\s*(?:#|@|/|--|\s-\s)\s*(?P<tag>[A-Za-z0-9]+)\s*$")

    def identify(self, node: ExtractedNode) -> Optional[tuple[str, Optional[str]]]:
        name = node.name.strip()
        if not name:
            return None
        match = self._SUFFIX_RE.match(name)
        if match and self.is_breakpoint(match.group("tag")):
            return match.group("stem"), match.group("tag")
        return name, None


class VariantPropertyMatcher(BreakpointMatcher):
    """Instances / variant components carrying a ``Breakpoint=…`` style property."""

    _KEYS = {"breakpoint", "device", "viewport", "screen"}

    def identify(self, node: ExtractedNode) -> Optional[tuple[str, Optional[str]]]:
        props = getattr(node, "variant_properties", None) or {}
        for key, value in props.items():
            if key.strip().lower() in self._KEYS and value:
                others = ", ".join(f"{k}={v}" for k, v in sorted(props.items()) if k != key)
                if isinstance(node, InstanceNode) or "=" not in node.name:
                    stem = node.name
                else:
                    stem = others or "variant"
                return stem, str(value)
        return None


class CompositeMatcher(BreakpointMatcher):
    """First matcher that finds a breakpoint tag wins; otherwise the first
    untagged identity is used so a bare base frame still joins its family."""

    def __init__(self, matchers: Iterable[BreakpointMatcher], breakpoints: Optional[Mapping[str, int]] = None):
        super().__init__(breakpoints)
        self.matchers = list(matchers)

    def identify(self, node: ExtractedNode) -> Optional[tuple[str, Optional[str]]]:
        fallback = None
        for matcher in self.matchers:
            identity = matcher.identify(node)
            if identity is None:
                continue
            if identity[1]:
                return identity
            fallback = fallback or identity
        return fallback


def make_matcher(config: PipelineConfig) -> BreakpointMatcher:
    if config.matching == "name-suffix":
        return NameSuffixMatcher(config.breakpoints)
    if config.matching == "variant":
        return VariantPropertyMatcher(config.breakpoints)
    return CompositeMatcher(
        [VariantPropertyMatcher(config.breakpoints), NameSuffixMatcher(config.breakpoints)],
        config.breakpoints,
    )


# ════════════════════════════════════════════════════════════
# Responsive synthesis
# ════════════════════════════════════════════════════════════

def _pair_nodes(base: ExtractedNode, other: ExtractedNode, pairs: dict[str, ExtractedNode]) -> None:
    """Match counterparts by name first, then by position."""
    pairs[base.id] = other
    used: set[str] = set()
    for index, child in enumerate(base.children):
        match = next((c for c in other.children if c.name == child.name and c.id not in used), None)
        if match is None and index < len(other.children) and other.children[index].id not in used:
            match = other.children[index]
        if match is None:
            logger.debug("no counterpart for %s in %s", child.name, other.name)
            continue
        used.add(match.id)
        _pair_nodes(child, match, pairs)


def _declaration_map(spec: LayoutSpec, family_root: bool) -> dict[str, Declaration]:
    decls = {d.property: d for d in layout_declarations(spec)}
    if family_root:
        # canvas placement of the design frames is not part of the component
        for prop in ("position", "left", "top"):
            decls.pop(prop, None)
    return decls


def synthesize_responsive(family: BreakpointFamily, specs: Mapping[str, LayoutSpec]) -> ResponsiveRuleSet:
    base = family.members[0].node
    parents = {child.id: node.id for node in base.walk() for child in node.children}
    state = {
        node.id: _declaration_map(specs[node.id], node.id == base.id)
        for node in base.walk() if node.id in specs
    }

    overrides = []
    for member in sorted(family.members[1:], key=lambda m: m.min_width):
        pairs: dict[str, ExtractedNode] = {}
        _pair_nodes(base, member.node, pairs)
        current = {
            base_id: _declaration_map(specs[other.id], base_id == base.id)
            for base_id, other in pairs.items()
            if other.id in specs and base_id in state
        }
        mode_changed = {
            base_id for base_id, decls in current.items()
            if _direction(decls) != _direction(state[base_id])
        }

        rules: dict[str, tuple[Declaration, ...]] = {}
        for base_id, new in current.items():
            previous = state[base_id]
            changed = [d for prop, d in new.items() if prop not in previous or previous[prop].value != d.value]
            changed += [
                Declaration(prop, CSS_INITIAL.get(prop, "initial"), layout=True)
                for prop in previous if prop not in new
            ]
            if base_id in mode_changed or parents.get(base_id) in mode_changed:
                present = {d.property for d in changed}
                for prop in RESET_PROPERTIES:
                    if prop not in present:
                        changed.append(new.get(prop) or Declaration(prop, CSS_INITIAL[prop], layout=True))
            if changed:
                rules[base_id] = tuple(changed)
            state[base_id] = new

        overrides.append(BreakpointOverride(
            breakpoint=member.breakpoint,
            min_width=member.min_width,
            rules=MappingProxyType(rules),
        ))

    return ResponsiveRuleSet(
        stem=family.stem,
        base_id=base.id,
        base_breakpoint=family.members[0].breakpoint,
        member_ids=tuple(m.node.id for m in family.members),
        overrides=tuple(overrides),
    )


def _direction(decls: Mapping[str, Declaration]) -> tuple[Optional[str], Optional[str]]:
    display = decls.get("display")
    direction = decls.get("flex-direction")
    return (display.value if display else None, direction.value if direction else None)


# ════════════════════════════════════════════════════════════
# Whole-tree interpretation
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LayoutResult:
    specs: Mapping[str, LayoutSpec]
    responsive: tuple[ResponsiveRuleSet, ...] = ()
    families: tuple[BreakpointFamily, ...] = ()
    # non-base family members: resolved, but not emitted as markup
    folded: frozenset[str] = field(default_factory=frozenset)

    def map_values(self, fn: Callable[[StyleValue], StyleValue]) -> "LayoutResult":
        """Re-derive specs (and the responsive rules built from them) after
        token names are assigned."""
        specs = MappingProxyType({node_id: spec.map_values(fn) for node_id, spec in self.specs.items()})
        responsive = tuple(synthesize_responsive(f, specs) for f in self.families)
        return replace(self, specs=specs, responsive=responsive)


class LayoutInterpreter:

    def __init__(
        self,
        ctx: Optional[PipelineContext] = None,
        matcher: Optional[BreakpointMatcher] = None,
        tokens: Optional[TokenLookup] = None,
    ):
        self.ctx = ctx or PipelineContext()
        self.matcher = matcher or make_matcher(self.ctx.config)
        self.tokens = tokens

    def interpret(self, root: ExtractedNode) -> LayoutResult:
        specs: dict[str, LayoutSpec] = {}
        families: list[BreakpointFamily] = []
        self._walk(root, SiblingContext(), specs, families)

        responsive = tuple(synthesize_responsive(f, specs) for f in families)
        folded = frozenset(m.node.id for f in families for m in f.members[1:])
        logger.debug("layout: %d specs, %d responsive families", len(specs), len(families))
        return LayoutResult(
            specs=MappingProxyType(specs),
            responsive=responsive,
            families=tuple(families),
            folded=folded,
        )

    def _walk(
        self,
        node: ExtractedNode,
        sibling: SiblingContext,
        specs: dict[str, LayoutSpec],
        families: list[BreakpointFamily],
    ) -> None:
        try:
            specs[node.id] = interpret_layout(node, sibling, self.ctx, self.tokens)
        except Exception as exc:
            logger.exception("layout interpretation failed for %s", node.id)
            self.ctx.report(DiagnosticKind.MALFORMED_INPUT, f"layout could not be interpreted: {exc}", node)
            specs[node.id] = LayoutSpec(node_id=node.id)

        if not node.children:
            return
        found = self.matcher.group(node.children)
        tags = {m.node.id: m.breakpoint for family in found for m in family.members}
        families.extend(found)

        mode = node.layout_config.mode
        # frames directly inside a document wrapper are page roots
        has_parent = node.source_type not in DOCUMENT_WRAPPERS
        for child in node.children:
            child_context = SiblingContext(parent_mode=mode, has_parent=has_parent, breakpoint=tags.get(child.id))
            self._walk(child, child_context, specs, families)


def interpret_tree(
    root: ExtractedNode,
    ctx: Optional[PipelineContext] = None,
    matcher: Optional[BreakpointMatcher] = None,
) -> LayoutResult:
    return LayoutInterpreter(ctx, matcher).interpret(root)
