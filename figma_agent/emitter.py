"""
Code Emitter — GeneratedElement tree → artifact set (html / react / vue).

Pure assembly: every tag, class, attribute and declaration was decided
upstream; this module only serializes them.

Stylesheets are split into three cascade layers:
  utilities   layout utility classes (``flex``, ``gap-[8px]``…)
  theme       declarations consuming tokens via ``var(--…)``
  components  node-specific visual declarations + responsive overrides
"""

import html
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .assets import AssetManifest, write_manifest
from .context import PipelineContext
from .errors import DiagnosticKind
from .model import Declaration, GeneratedElement, ResponsiveRuleSet
from .tokens import TokenSet, render as render_tokens

logger = logging.getLogger(__name__)

TARGETS = ("html", "react", "vue")
LAYER_ORDER = "@layer utilities, theme, components;"
TOKEN_FILES = {"css": "tokens.css", "tailwind": "tailwind.config.js", "json": "tokens.json"}

_VOID_TAGS = {"img", "input"}
_JSX_ATTRIBUTES = {"class": "className", "for": "htmlFor", "tabindex": "tabIndex"}


@dataclass
class Artifacts:
    markup: str
    markup_path: str
    styles: dict[str, str] = field(default_factory=dict)
    token_declarations: dict[str, str] = field(default_factory=dict)
    asset_manifest: dict = field(default_factory=dict)
    diagnostics: list = field(default_factory=list)

    def files(self) -> dict[str, str]:
        """Relative path → text content for everything but the manifest."""
        out = {self.markup_path: self.markup}
        out.update(self.styles)
        out.update(self.token_declarations)
        return out


def css_escape_class(name: str) -> str:
    """``gap-[8px]`` → ``gap-\\[8px\\]`` for use in a selector."""
    return re.sub(r"([^a-zA-Z0-9_-])", r"\\\1", name)


def _component_name(name: str) -> str:
    safe = "".join(ch if ch.isalnum() else " " for ch in name).strip()
    if not safe:
        return "Unnamed"
    parts = [p for p in safe.split() if p]
    pascal = "".join(p[:1].upper() + p[1:] for p in parts)
    return pascal if not pascal[0].isdigit() else f"C{pascal}"


# ════════════════════════════════════════════════════════════
# Stylesheets
# ════════════════════════════════════════════════════════════

class StyleSheet:
    """One cascade layer: selector → declarations, plus min-width media
    blocks emitted ascending."""

    def __init__(self, layer: str, asset_prefix: str = "../"):
        self.layer = layer
        self.asset_prefix = asset_prefix
        self.rules: dict[str, list[Declaration]] = {}
        self.media: dict[int, dict[str, list[Declaration]]] = {}

    def add(self, selector: str, decls: Iterable[Declaration]) -> None:
        decls = list(decls)
        if not decls or selector in self.rules:
            return
        self.rules[selector] = decls

    def add_media(self, min_width: int, selector: str, decls: Iterable[Declaration]) -> None:
        decls = list(decls)
        if not decls:
            return
        block = self.media.setdefault(min_width, {})
        block.setdefault(selector, []).extend(decls)

    def __bool__(self) -> bool:
        return bool(self.rules or self.media)

    def _value(self, decl: Declaration) -> str:
        # asset urls are relative to the output root; stylesheets live one level down
        return decl.value.replace('url("assets/', f'url("{self.asset_prefix}assets/')

    def _block(self, selector: str, decls: list[Declaration], pad: str) -> str:
        body = "\n".join(f"{pad}  {d.property}: {self._value(d)};" for d in decls)
        return f"{pad}{selector} {{\n{body}\n{pad}}}"

    def to_css(self, with_layer_order: bool = True) -> str:
        blocks = [self._block(sel, decls, "  ") for sel, decls in self.rules.items()]
        for min_width in sorted(self.media):
            inner = "\n\n".join(self._block(sel, decls, "    ") for sel, decls in self.media[min_width].items())
            blocks.append(f"  @media (min-width: {min_width}px) {{\n{inner}\n  }}")
        head = f"{LAYER_ORDER}\n\n" if with_layer_order else ""
        if not blocks:
            return f"{head}@layer {self.layer} {{}}\n"
        return f"{head}@layer {self.layer} {{\n" + "\n\n".join(blocks) + "\n}\n"


def build_stylesheets(
    tree: GeneratedElement,
    responsive: Iterable[ResponsiveRuleSet] = (),
    asset_prefix: str = "../",
) -> tuple[StyleSheet, StyleSheet, StyleSheet]:
    utilities = StyleSheet("utilities", asset_prefix)
    theme = StyleSheet("theme", asset_prefix)
    components = StyleSheet("components", asset_prefix)

    class_for: dict[str, str] = {}
    for element in tree.walk():
        class_for[element.node_id] = element.class_name
        for cls, decl in element.rules.utility:
            utilities.add(f".{css_escape_class(cls)}", [decl])
        if element.class_name:
            theme.add(f".{element.class_name}", element.rules.custom)
            components.add(f".{element.class_name}", element.rules.scoped)

    for rule_set in responsive:
        for override in sorted(rule_set.overrides, key=lambda o: o.min_width):
            for node_id, decls in override.rules.items():
                class_name = class_for.get(node_id)
                if not class_name:
                    logger.debug("override for %s has no emitted element", node_id)
                    continue
                components.add_media(override.min_width, f".{class_name}", decls)
    return utilities, theme, components


# ════════════════════════════════════════════════════════════
# Markup
# ════════════════════════════════════════════════════════════

def _html_attrs(element: GeneratedElement) -> str:
    parts = []
    if element.classes:
        parts.append(f'class="{html.escape(" ".join(element.classes))}"')
    for name, value in element.attributes:
        if name == "inert":
            parts.append("inert")
        else:
            parts.append(f'{name}="{html.escape(value)}"')
    return (" " + " ".join(parts)) if parts else ""


def _html_text(text: str) -> str:
    return html.escape(text).replace("\n", "<br>")


def _render_html(element: GeneratedElement, indent: int = 0) -> str:
    pad = "  " * indent
    tag = element.tag
    attrs = _html_attrs(element)
    if tag in _VOID_TAGS:
        return f"{pad}<{tag}{attrs}>"
    if not element.children:
        text = _html_text(element.text) if element.text else ""
        return f"{pad}<{tag}{attrs}>{text}</{tag}>"
    inner = "\n".join(_render_html(child, indent + 1) for child in element.children)
    return f"{pad}<{tag}{attrs}>\n{inner}\n{pad}</{tag}>"


def _render_vue(element: GeneratedElement, indent: int = 0) -> str:
    pad = "  " * indent
    tag = element.tag
    attrs = _html_attrs(element)
    if tag in _VOID_TAGS:
        return f"{pad}<{tag}{attrs} />"
    if not element.children:
        # mustache braces in design copy are literal text
        text = _html_text(element.text).replace("{{", "&#123;&#123;") if element.text else ""
        return f"{pad}<{tag}{attrs}>{text}</{tag}>"
    inner = "\n".join(_render_vue(child, indent + 1) for child in element.children)
    return f"{pad}<{tag}{attrs}>\n{inner}\n{pad}</{tag}>"


def _jsx_attrs(element: GeneratedElement) -> str:
    parts = []
    if element.classes:
        parts.append(f'className="{html.escape(" ".join(element.classes))}"')
    for name, value in element.attributes:
        name = _JSX_ATTRIBUTES.get(name, name)
        if name == "src" and value.startswith("assets/"):
            value = f"/{value}"
        parts.append(f"{name}={json.dumps(value, ensure_ascii=False)}")
    return (" " + " ".join(parts)) if parts else ""


def _render_react(element: GeneratedElement, indent: int = 0) -> str:
    pad = "  " * indent
    tag = element.tag
    attrs = _jsx_attrs(element)
    if tag in _VOID_TAGS or (not element.children and not element.text):
        return f"{pad}<{tag}{attrs} />"
    if not element.children:
        return f"{pad}<{tag}{attrs}>{{{json.dumps(element.text, ensure_ascii=False)}}}</{tag}>"
    inner = "\n".join(_render_react(child, indent + 1) for child in element.children)
    return f"{pad}<{tag}{attrs}>\n{inner}\n{pad}</{tag}>"


def _build_html_page(title: str, body: str, stylesheets: list[str]) -> str:
    links = "".join(f'  <link rel="stylesheet" href="{href}">\n' for href in stylesheets)
    return (
        "<!doctype html>\n"
        "<html lang=\"en\">\n<head>\n  <meta charset=\"utf-8\">\n"
        "  <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">\n"
        f"  <title>{html.escape(title)}</title>\n"
        + links
        + "</head>\n<body>\n" + body + "\n</body>\n</html>\n"
    )


# ════════════════════════════════════════════════════════════
# emit
# ════════════════════════════════════════════════════════════

def _asset_manifest(tree: GeneratedElement, ctx: PipelineContext) -> dict:
    manifest = AssetManifest(ctx.config.export_format)
    for element in tree.walk():
        for asset, usage in element.assets:
            manifest.add(asset, element.node_id, element.name, usage)
    manifest.fonts = ctx.typefaces
    return manifest.to_dict()


def emit(
    tree: GeneratedElement,
    tokens: TokenSet,
    target_format: str = "html",
    *,
    ctx: Optional[PipelineContext] = None,
    responsive: Iterable[ResponsiveRuleSet] = (),
    title: Optional[str] = None,
    token_formats: Optional[list[str]] = None,
) -> Artifacts:
    ctx = ctx or PipelineContext()
    target = target_format.lower()
    if target not in TARGETS:
        raise ValueError(f"Unsupported target: {target_format} (expected one of {', '.join(TARGETS)})")

    for element in tree.walk():
        for note in element.fidelity_notes:
            ctx.diagnostics.add(
                DiagnosticKind.EMISSION_FAILURE, note,
                node_id=element.node_id, node_name=element.name,
            )

    formats = list(dict.fromkeys(["css"] + list(token_formats or ctx.config.token_formats)))
    token_declarations = {
        TOKEN_FILES[fmt]: render_tokens(
            tokens, fmt,
            breakpoints=ctx.config.breakpoints,
            mode_selector=ctx.config.mode_selector,
        )
        for fmt in formats if fmt in TOKEN_FILES
    }

    utilities, theme, components = build_stylesheets(tree, responsive)
    title = title or tree.name or "Page"
    styles = {
        "styles/utilities.css": utilities.to_css(),
        "styles/theme.css": theme.to_css(),
    }

    if target == "html":
        styles["styles/components.css"] = components.to_css()
        body = _render_html(tree, 1)
        markup = _build_html_page(
            title, body,
            ["./tokens.css", "./styles/utilities.css", "./styles/theme.css", "./styles/components.css"],
        )
        markup_path = "index.html"

    elif target == "react":
        name = _component_name(title)
        styles["styles/components.css"] = components.to_css()
        body = _render_react(tree, 2)
        markup = (
            "import '../tokens.css';\n"
            "import '../styles/utilities.css';\n"
            "import '../styles/theme.css';\n"
            "import '../styles/components.css';\n\n"
            f"export const {name} = () => (\n{body}\n);\n\n"
            f"export default {name};\n"
        )
        markup_path = f"components/{name}.tsx"

    else:
        name = _component_name(title)
        body = _render_vue(tree, 1)
        markup = (
            f"<template>\n{body}\n</template>\n\n"
            "<script setup lang=\"ts\">\n"
            "import '../tokens.css';\n"
            "import '../styles/utilities.css';\n"
            "import '../styles/theme.css';\n"
            "</script>\n\n"
            f"<style scoped>\n{components.to_css()}</style>\n"
        )
        markup_path = f"components/{name}.vue"

    logger.debug("emitted %s (%d stylesheets, %d token files)", markup_path, len(styles), len(token_declarations))
    return Artifacts(
        markup=markup,
        markup_path=markup_path,
        styles=styles,
        token_declarations=token_declarations,
        asset_manifest=_asset_manifest(tree, ctx),
        diagnostics=ctx.diagnostics.to_list(),
    )


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def write_artifacts(artifacts: Artifacts, output_dir: str) -> list[str]:
    """Write the artifact set under ``output_dir``; returns written paths."""
    base = Path(output_dir)
    written = []
    for rel_path, content in artifacts.files().items():
        _write(base / rel_path, content)
        written.append(str(base / rel_path))
    written.append(write_manifest(str(base), artifacts.asset_manifest))

    diagnostics_path = os.path.join(str(base), "diagnostics.json")
    with open(diagnostics_path, "w", encoding="utf-8") as f:
        json.dump(artifacts.diagnostics, f, indent=2, ensure_ascii=False)
    written.append(diagnostics_path)
    return written
