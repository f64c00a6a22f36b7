"""
Value resolution shared by the layout and visual stages.

Chain, first success wins:
  1. binding on the specific paint / stroke / effect entry
  2. binding on the node-level property
  3. an already promoted token whose value matches exactly
  4. the raw literal
Exhausting all four yields a neutral placeholder and a ResolutionExhausted
diagnostic.
"""

import logging
from typing import Any, Optional, Protocol

from .context import PipelineContext
from .errors import DiagnosticKind
from .model import (
    BindingRef, Color, ExtractedNode, Provenance, StyleValue, TokenCategory,
    TokenBinding, format_number, px,
)

logger = logging.getLogger(__name__)

NEUTRAL_VALUES = {
    TokenCategory.COLOR: "transparent",
    TokenCategory.SPACING: "0",
    TokenCategory.RADIUS: "0",
    TokenCategory.SHADOW: "none",
    TokenCategory.TYPOGRAPHY: "inherit",
}


class TokenLookup(Protocol):
    def match(self, category: TokenCategory, key: str) -> Optional[TokenBinding]: ...


def literal_for(category: TokenCategory, value: Any) -> Optional[tuple[str, str]]:
    """(css, canonical key) for a raw value of the given category, or None when
    the value cannot represent that category."""
    if category == TokenCategory.COLOR:
        color = Color.from_raw(value)
        if color is None:
            return None
        hex_value = color.to_hex()
        return hex_value, hex_value
    if category in (TokenCategory.SPACING, TokenCategory.RADIUS):
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return px(value), format_number(value)
        if isinstance(value, str) and value.strip():
            text = value.strip()
            return text, text.removesuffix("px") if text.endswith("px") else text
        return None
    if isinstance(value, str) and value.strip():
        return value.strip(), value.strip()
    return None


def raw_value(css: str, category: TokenCategory, key: Optional[str] = None) -> StyleValue:
    return StyleValue(css=css, category=category, provenance=Provenance.RAW, key=key if key is not None else css)


class BindingResolver:

    def __init__(self, ctx: PipelineContext, tokens: Optional[TokenLookup] = None):
        self.ctx = ctx
        self.tokens = tokens

    def resolve(
        self,
        node: ExtractedNode,
        prop: str,
        literal: Any,
        category: TokenCategory,
        *,
        entry_binding: Optional[BindingRef] = None,
    ) -> StyleValue:
        # 1 / 2: explicit bindings
        for binding in (entry_binding, node.bindings.get(prop)):
            if binding is None:
                continue
            value = self._from_binding(binding, category)
            if value is not None:
                return value
            logger.debug("binding %s on %s.%s did not resolve", binding.id, node.id, prop)

        converted = literal_for(category, literal) if literal is not None else None

        # 3: exact-value token
        if converted is not None and self.tokens is not None:
            token = self.tokens.match(category, converted[1])
            if token is not None:
                return raw_value(converted[0], category, converted[1]).with_token(token.name)

        # 4: literal
        if converted is not None:
            return raw_value(converted[0], category, converted[1])

        self.ctx.report(
            DiagnosticKind.RESOLUTION_EXHAUSTED,
            f"no binding, token or literal for {prop}, using {NEUTRAL_VALUES[category]}",
            node, prop,
        )
        return StyleValue(css=NEUTRAL_VALUES[category], category=category, key=None)

    def _from_binding(self, binding: BindingRef, category: TokenCategory) -> Optional[StyleValue]:
        definition = self.ctx.variables.get(binding.id)
        if definition is None:
            return None
        converted = literal_for(category, self.ctx.variables.resolve(binding.id))
        if converted is None:
            return None
        return StyleValue(
            css=converted[0],
            category=category,
            provenance=Provenance.VARIABLE,
            key=converted[1],
            variable_id=definition.id,
            variable_name=definition.name,
        )

    def resolve_color(self, binding: Optional[BindingRef], fallback: Optional[Color]) -> Optional[Color]:
        """Concrete color for a bound gradient stop or effect color, without
        token tracking."""
        if binding is not None:
            color = Color.from_raw(self.ctx.variables.resolve(binding.id))
            if color is not None:
                return color
        return fallback
