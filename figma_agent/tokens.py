"""
Token Engine

collect  : one pass over every resolved value in document order; variable-bound
           values become tokens unconditionally, raw literals once they occur
           ``threshold`` times.
bind     : upgrades a resolved value to reference its token.
render   : css custom properties | tailwind config | json, all from the same set.
"""

import colorsys
import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional

from .context import PipelineContext
from .model import (
    Color, ExtractedNode, LayoutSpec, Provenance, StyleValue, TokenBinding,
    TokenCategory, VisualStyle, category_for_token_name, format_number,
)
from .resolver import literal_for

logger = logging.getLogger(__name__)

_CATEGORY_ORDER = [
    TokenCategory.COLOR, TokenCategory.SPACING, TokenCategory.TYPOGRAPHY,
    TokenCategory.RADIUS, TokenCategory.SHADOW,
]

# leading name segments that just restate the category
_CATEGORY_WORDS = {
    TokenCategory.COLOR: {"color", "colors", "colour", "colours", "palette"},
    TokenCategory.SPACING: {"spacing", "space", "spaces", "gap", "gaps"},
    TokenCategory.TYPOGRAPHY: {"text", "typography", "font", "fonts", "type"},
    TokenCategory.RADIUS: {"radius", "radii", "corner", "corners", "rounded"},
    TokenCategory.SHADOW: {"shadow", "shadows", "elevation", "effect", "effects"},
}

_LIGHTNESS_STEPS = (50, 100, 200, 300, 400, 500, 600, 700, 800, 900)

_TEXT_SIZES = (
    (12, "xs"), (14, "sm"), (16, "base"), (18, "lg"), (20, "xl"),
    (24, "2xl"), (30, "3xl"), (36, "4xl"),
)

_FONT_RE = re.compile(
    r"^(?:italic\s+)?(?P<weight>\d+)\s+(?P<size>[\d.]+px)/(?P<line>\S+)\s+(?P<family>.+)$"
)


def _slug(text: str) -> str:
    text = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", text)
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


# ════════════════════════════════════════════════════════════
# Naming
# ════════════════════════════════════════════════════════════

def color_token_name(hex_value: str) -> str:
    """Hue band + lightness step: ``color-primary-500``, ``color-neutral-900``."""
    color = Color.from_hex(hex_value)
    if color is None:
        return "color-custom"
    hue, lightness, saturation = colorsys.rgb_to_hls(color.r, color.g, color.b)
    degrees = hue * 360
    if saturation < 0.12:
        band = "neutral"
    elif 180 <= degrees < 260:
        band = "primary"
    elif 70 <= degrees < 180 or 260 <= degrees < 330:
        band = "secondary"
    else:
        band = "accent"
    step = _LIGHTNESS_STEPS[min(9, max(0, round((1 - lightness) * 9)))]
    return f"color-{band}-{step}"


def _text_bucket(key: str) -> tuple[str, str]:
    match = _FONT_RE.match(key)
    if not match:
        return "body", ""
    size = float(match.group("size").removesuffix("px"))
    bucket = next((name for limit, name in _TEXT_SIZES if size <= limit), "5xl")
    return bucket, match.group("weight")


def _variable_token_name(name: str, category: TokenCategory) -> str:
    segments = [s for s in _slug(name).split("-") if s]
    if segments and segments[0] in _CATEGORY_WORDS[category]:
        segments = segments[1:]
    return "-".join([category.prefix] + segments) if segments else category.prefix


# ════════════════════════════════════════════════════════════
# TokenSet
# ════════════════════════════════════════════════════════════

class TokenSet:
    """Finalized, read-only result of a collect pass."""

    def __init__(
        self,
        tokens: Iterable[TokenBinding] = (),
        aliases: Optional[Mapping[tuple[TokenCategory, str], str]] = None,
    ):
        self._tokens: dict[str, TokenBinding] = {}
        self._by_key: dict[tuple[TokenCategory, str], str] = {}
        self._by_variable: dict[tuple[str, TokenCategory], str] = {}
        self._aliases = dict(aliases or {})
        for token in tokens:
            self._tokens[token.name] = token
            self._by_key.setdefault((token.category, token.key), token.name)
            if token.variable_id:
                self._by_variable[(token.variable_id, token.category)] = token.name

    def __iter__(self) -> Iterator[TokenBinding]:
        return iter(self._tokens.values())

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, name: str) -> bool:
        return name in self._tokens

    def get(self, name: str) -> Optional[TokenBinding]:
        return self._tokens.get(name)

    @property
    def modes(self) -> list[str]:
        seen: list[str] = []
        for token in self._tokens.values():
            for mode in token.values_by_mode:
                if mode not in seen:
                    seen.append(mode)
        return seen

    def ordered(self) -> list[TokenBinding]:
        return sorted(self._tokens.values(), key=lambda t: (_CATEGORY_ORDER.index(t.category), t.name))

    def match(self, category: TokenCategory, key: str) -> Optional[TokenBinding]:
        canonical = self._aliases.get((category, key), key)
        name = self._by_key.get((category, canonical))
        return self._tokens.get(name) if name else None

    def bind(self, value: StyleValue) -> StyleValue:
        if value.token or value.category is None:
            return value
        if value.provenance == Provenance.VARIABLE and value.variable_id:
            name = self._by_variable.get((value.variable_id, value.category))
            if name:
                return value.with_token(name)
        if value.key is None:
            return value
        token = self.match(value.category, value.key)
        return value.with_token(token.name) if token else value

    def signature(self) -> tuple:
        return tuple(
            (t.name, t.category.value, t.value, tuple(sorted(t.values_by_mode.items())))
            for t in self.ordered()
        )


# ════════════════════════════════════════════════════════════
# Collection
# ════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Occurrence:
    order: int
    node_id: str
    property: str
    value: StyleValue


class TokenCollector:
    """Single aggregation point: occurrences may arrive from several workers;
    token identity is decided only in ``finalize`` from document order."""

    def __init__(self, ctx: Optional[PipelineContext] = None):
        self.ctx = ctx or PipelineContext()
        self._occurrences: list[Occurrence] = []
        self._lock = threading.Lock()

    def add(self, order: int, node_id: str, prop: str, value: StyleValue) -> None:
        if value.category is None or value.key is None:
            return
        with self._lock:
            self._occurrences.append(Occurrence(order, node_id, prop, value))

    def finalize(self) -> TokenSet:
        with self._lock:
            occurrences = sorted(self._occurrences, key=lambda o: o.order)

        config = self.ctx.config
        used_names: set[str] = set()
        tokens: list[TokenBinding] = []
        by_variable: dict[tuple[str, TokenCategory], TokenBinding] = {}
        by_key: dict[tuple[TokenCategory, str], TokenBinding] = {}

        def unique(name: str) -> str:
            candidate, n = name, 1
            while candidate in used_names:
                n += 1
                candidate = f"{name}-{n}"
            used_names.add(candidate)
            return candidate

        # ─── 1. variable-bound values: unconditional ───
        for occ in occurrences:
            value = occ.value
            if value.provenance != Provenance.VARIABLE or not value.variable_id:
                continue
            ident = (value.variable_id, value.category)
            token = by_variable.get(ident)
            if token is None:
                token = TokenBinding(
                    name=unique(_variable_token_name(value.variable_name or value.variable_id, value.category)),
                    category=value.category,
                    value=value.css,
                    values_by_mode=self._mode_values(value),
                    source="variable",
                    variable_id=value.variable_id,
                    key=value.key,
                )
                by_variable[ident] = token
                by_key.setdefault((value.category, value.key), token)
                tokens.append(token)
            token.references.add((occ.node_id, occ.property))

        # ─── 2. raw literals: threshold ───
        aliases: dict[tuple[TokenCategory, str], str] = {}
        canon_colors: list[tuple[str, tuple[int, int, int, int]]] = []
        counts: dict[tuple[TokenCategory, str], list[Occurrence]] = {}
        for occ in occurrences:
            value = occ.value
            if value.provenance == Provenance.VARIABLE and value.variable_id:
                continue
            key = self._canonical(value.category, value.key, canon_colors, config.color_tolerance)
            if key != value.key:
                aliases[(value.category, value.key)] = key
            ident = (value.category, key)
            if ident in by_key:
                by_key[ident].references.add((occ.node_id, occ.property))
                continue
            counts.setdefault(ident, []).append(occ)

        shadow_index = 0
        for (category, key), group in counts.items():
            if len(group) < config.token_threshold:
                continue
            if category == TokenCategory.SHADOW:
                shadow_index += 1
            token = TokenBinding(
                name=unique(self._threshold_name(category, key, shadow_index, used_names)),
                category=category,
                value=group[0].value.css,
                source="threshold",
                key=key,
            )
            token.references.update((o.node_id, o.property) for o in group)
            by_key[(category, key)] = token
            tokens.append(token)

        logger.debug("promoted %d tokens from %d occurrences", len(tokens), len(occurrences))
        return TokenSet(tokens, aliases)

    def _mode_values(self, value: StyleValue) -> dict[str, str]:
        modes = {}
        for mode, raw in self.ctx.variables.resolve_modes(value.variable_id).items():
            converted = literal_for(value.category, raw)
            if converted is not None:
                modes[mode] = converted[0]
        return modes

    @staticmethod
    def _canonical(
        category: TokenCategory,
        key: str,
        canon_colors: list[tuple[str, tuple[int, int, int, int]]],
        tolerance: int,
    ) -> str:
        """Colors within ``tolerance`` per 8-bit channel collapse into the
        first-seen one; everything else compares exactly."""
        if category != TokenCategory.COLOR or tolerance <= 0:
            return key
        color = Color.from_hex(key)
        if color is None:
            return key
        channels = color.channels()
        for canonical, other in canon_colors:
            if all(abs(a - b) <= tolerance for a, b in zip(channels, other)):
                return canonical
        canon_colors.append((key, channels))
        return key

    @staticmethod
    def _threshold_name(category: TokenCategory, key: str, shadow_index: int, used: set[str]) -> str:
        if category == TokenCategory.COLOR:
            return color_token_name(key)
        if category in (TokenCategory.SPACING, TokenCategory.RADIUS):
            if key.endswith("%"):
                suffix = "full" if key == "50%" else _slug(key)
            else:
                suffix = format_number(float(key)).replace(".", "-") if _is_number(key) else _slug(key)
            return f"{category.prefix}-{suffix}"
        if category == TokenCategory.SHADOW:
            return f"shadow-{shadow_index}"
        bucket, weight = _text_bucket(key)
        name = f"text-{bucket}"
        if name in used and weight:
            name = f"{name}-{weight}"
        return name


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


class TokenEngine:

    def __init__(self, ctx: Optional[PipelineContext] = None):
        self.ctx = ctx or PipelineContext()

    def collect(
        self,
        nodes: Iterable[ExtractedNode],
        layouts: Mapping[str, LayoutSpec],
        visuals: Mapping[str, VisualStyle],
    ) -> TokenSet:
        """``nodes`` in document (pre-)order; every resolved value they carry
        is an occurrence."""
        collector = TokenCollector(self.ctx)
        order = 0
        for node in nodes:
            sources = []
            if node.id in layouts:
                sources.append(layouts[node.id].values())
            if node.id in visuals:
                sources.append(visuals[node.id].values())
            for source in sources:
                for prop, value in source:
                    collector.add(order, node.id, prop, value)
                    order += 1
        return collector.finalize()

    def render(self, tokens: TokenSet, fmt: str = "css", mode: Optional[str] = None) -> str:
        return render(tokens, fmt, mode, self.ctx.config.breakpoints, self.ctx.config.mode_selector)


def collect(
    nodes: Iterable[ExtractedNode],
    layouts: Mapping[str, LayoutSpec],
    visuals: Mapping[str, VisualStyle],
    ctx: Optional[PipelineContext] = None,
) -> TokenSet:
    return TokenEngine(ctx).collect(nodes, layouts, visuals)


# ════════════════════════════════════════════════════════════
# Rendering
# ════════════════════════════════════════════════════════════

def render(
    tokens: TokenSet,
    fmt: str = "css",
    mode: Optional[str] = None,
    breakpoints: Optional[Mapping[str, int]] = None,
    mode_selector: str = '[data-theme="{mode}"]',
) -> str:
    if fmt == "css":
        return render_css(tokens, mode, breakpoints, mode_selector)
    if fmt == "tailwind":
        return render_tailwind(tokens, mode)
    if fmt == "json":
        return render_json(tokens)
    raise ValueError(f"unknown token format: {fmt}")


def _block(selector: str, entries: list[tuple[str, str]], indent: str = "") -> list[str]:
    lines = [f"{indent}{selector} {{"]
    lines += [f"{indent}  --{name}: {value};" for name, value in entries]
    lines.append(f"{indent}}}")
    return lines


def render_css(
    tokens: TokenSet,
    mode: Optional[str] = None,
    breakpoints: Optional[Mapping[str, int]] = None,
    mode_selector: str = '[data-theme="{mode}"]',
) -> str:
    ordered = tokens.ordered()
    lines = _block(":root", [(t.name, t.value_for(mode)) for t in ordered])
    if mode is not None:
        return "\n".join(lines) + "\n"

    breakpoints = {k.lower(): v for k, v in (breakpoints or {}).items()}
    theme_modes = [m for m in tokens.modes if m not in breakpoints]
    breakpoint_modes = sorted((m for m in tokens.modes if m in breakpoints), key=lambda m: breakpoints[m])

    for theme in theme_modes:
        entries = [(t.name, t.values_by_mode[theme]) for t in ordered
                   if theme in t.values_by_mode and t.values_by_mode[theme] != t.value]
        if entries:
            lines.append("")
            lines += _block(mode_selector.format(mode=theme), entries)

    # mobile-first: ascending min-width
    for bp in breakpoint_modes:
        entries = [(t.name, t.values_by_mode[bp]) for t in ordered
                   if bp in t.values_by_mode and t.values_by_mode[bp] != t.value]
        if entries and breakpoints[bp] > 0:
            lines.append("")
            lines.append(f"@media (min-width: {breakpoints[bp]}px) {{")
            lines += _block(":root", entries, indent="  ")
            lines.append("}")
    return "\n".join(lines) + "\n"


def _nest(target: dict, path: list[str], value) -> None:
    head = path[0]
    if len(path) == 1:
        if isinstance(target.get(head), dict):
            target[head]["DEFAULT"] = value
        else:
            target[head] = value
        return
    existing = target.get(head)
    if not isinstance(existing, dict):
        target[head] = {"DEFAULT": existing} if existing is not None else {}
    _nest(target[head], path[1:], value)


def _tailwind_extend(tokens: TokenSet, mode: Optional[str] = None) -> dict:
    extend: dict[str, dict] = {}
    for token in tokens.ordered():
        rest = token.name[len(token.category.prefix) + 1:] or "DEFAULT"
        ref = f"var(--{token.name})"
        if token.category == TokenCategory.COLOR:
            _nest(extend.setdefault("colors", {}), rest.split("-", 1), ref)
        elif token.category == TokenCategory.SPACING:
            extend.setdefault("spacing", {})[rest] = ref
        elif token.category == TokenCategory.RADIUS:
            extend.setdefault("borderRadius", {})[rest] = ref
        elif token.category == TokenCategory.SHADOW:
            extend.setdefault("boxShadow", {})[rest] = ref
        else:
            match = _FONT_RE.match(token.value_for(mode))
            if match:
                extend.setdefault("fontSize", {})[rest] = [
                    match.group("size"),
                    {"lineHeight": match.group("line"), "fontWeight": match.group("weight")},
                ]
                families = [f.strip().strip('"') for f in match.group("family").split(",")]
                extend.setdefault("fontFamily", {})[rest] = families
            else:
                extend.setdefault("font", {})[rest] = ref
    return extend


def render_tailwind(tokens: TokenSet, mode: Optional[str] = None) -> str:
    body = json.dumps(_tailwind_extend(tokens, mode), indent=2, ensure_ascii=False)
    body = "\n".join(("    " + line) if i else line for i, line in enumerate(body.splitlines()))
    return (
        "/** @type {import('tailwindcss').Config} */\n"
        "module.exports = {\n"
        "  theme: {\n"
        f"    extend: {body},\n"
        "  },\n"
        "};\n"
    )


_JSON_TYPES = {
    TokenCategory.COLOR: "color",
    TokenCategory.SPACING: "dimension",
    TokenCategory.RADIUS: "dimension",
    TokenCategory.SHADOW: "shadow",
    TokenCategory.TYPOGRAPHY: "typography",
}


def render_json(tokens: TokenSet) -> str:
    doc: dict[str, dict] = {}
    for token in tokens.ordered():
        entry: dict = {"$type": _JSON_TYPES[token.category], "$value": token.value}
        if token.values_by_mode:
            entry["$extensions"] = {"modes": dict(token.values_by_mode)}
        doc.setdefault(token.category.value, {})[token.name] = entry
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"


_ROOT_BLOCK_RE = re.compile(r":root\s*\{(?P<body>[^}]*)\}")
_PROPERTY_RE = re.compile(r"--(?P<name>[A-Za-z0-9_-]+)\s*:\s*(?P<value>[^;]+);")


def parse_custom_properties(css: str) -> list[tuple[TokenCategory, str, str]]:
    """(category, name, value) triples from the first ``:root`` block."""
    match = _ROOT_BLOCK_RE.search(css)
    if not match:
        return []
    triples = []
    for prop in _PROPERTY_RE.finditer(match.group("body")):
        name = prop.group("name")
        category = category_for_token_name(name)
        if category is None:
            logger.debug("custom property --%s has no token category", name)
            continue
        triples.append((category, name, prop.group("value").strip()))
    return triples
