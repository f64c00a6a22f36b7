"""
Visual Resolver — fills / strokes / effects / radii / typography → VisualStyle

Paint stacks arrive bottom-to-top and are reversed (CSS lists top layer
first). Strokes:

  INSIDE   inset box-shadow ring (box size unchanged)
  CENTER   border
  OUTSIDE  outer box-shadow ring
"""

import logging
import math
from typing import Optional

from .context import PipelineContext
from .model import (
    BackgroundLayer, BorderSpec, Color, Declaration, Effect, EffectType,
    ExtractedNode, NodeKind, Paint, PaintType, ShadowLayer, StrokeAlign,
    StyleValue, TextNode, TokenCategory, TypeStyle, VisualStyle, declaration,
    exports_as_asset, format_number, image_fill, px,
)
from .resolver import BindingResolver, TokenLookup

logger = logging.getLogger(__name__)

_SCALE_MODES = {"FILL": "cover", "CROP": "cover", "FIT": "contain", "STRETCH": "100% 100%"}

_TEXT_ALIGN = {"LEFT": "left", "CENTER": "center", "RIGHT": "right", "JUSTIFIED": "justify"}
_TEXT_CASE = {"UPPER": "uppercase", "LOWER": "lowercase", "TITLE": "capitalize"}
_TEXT_DECORATION = {"UNDERLINE": "underline", "STRIKETHROUGH": "line-through"}

_NEUTRAL_BLENDS = {"PASS_THROUGH", "NORMAL"}


def image_asset_path(image_ref: str) -> str:
    return f"assets/{image_ref}.png"


def _blend_css(mode: str) -> str:
    """"COLOR_DODGE" → "color-dodge"; Figma's LINEAR_* modes have no CSS twin."""
    mode = mode.upper()
    return {"LINEAR_BURN": "color-burn", "LINEAR_DODGE": "color-dodge"}.get(mode, mode.lower().replace("_", "-"))


def gradient_angle(matrix: tuple[float, float, float, float]) -> float:
    """CSS angle (deg, [0, 360)) for a gradient transform (a, b, c, d).

    atan2(-b, a) gives the design-tool angle; CSS measures clockwise from
    "to top", hence ``90 - angle``.
    """
    a, b = matrix[0], matrix[1]
    design_angle = math.degrees(math.atan2(-b, a))
    angle = round((90 - design_angle) % 360, 4) % 360
    return 0.0 if angle == 0 else angle


class VisualResolver:

    def __init__(self, ctx: Optional[PipelineContext] = None, tokens: Optional[TokenLookup] = None):
        self.ctx = ctx or PipelineContext()
        self.resolver = BindingResolver(self.ctx, tokens)

    def resolve(self, node: ExtractedNode) -> VisualStyle:
        notes: list[str] = []
        style = dict(node_id=node.id)

        if node.kind == NodeKind.PLACEHOLDER or exports_as_asset(node):
            # placeholders are inert; vector assets carry their own paint
            style.update(self._node_effects(node, notes))
            return VisualStyle(fidelity_notes=tuple(notes), **style)

        if isinstance(node, TextNode):
            style.update(self._text(node, notes))
        else:
            image = image_fill(node)
            fills = [p for p in node.fills if p is not image]
            if image is not None:
                style["image"] = image_asset_path(image.image_ref)
                style["image_fit"] = _SCALE_MODES.get(image.scale_mode, "cover")
            style["backgrounds"] = self._backgrounds(node, fills, notes)
            style.update(self._strokes(node, notes))
            style["radius"] = self._radius(node)

        effects = self._node_effects(node, notes)
        if "shadows" in style and "shadows" in effects:
            # stroke rings sit above effect shadows
            effects["shadows"] = style["shadows"] + effects["shadows"]
        style.update(effects)
        return VisualStyle(fidelity_notes=tuple(notes), **style)

    # ════════════════════════════════════════════════════════════
    # Fills
    # ════════════════════════════════════════════════════════════

    def _backgrounds(self, node: ExtractedNode, fills: list[Paint], notes: list[str]) -> tuple[BackgroundLayer, ...]:
        layers = []
        for paint in reversed([p for p in fills if p.visible and p.opacity > 0]):
            layer = self._paint_layer(node, paint, notes)
            if layer is not None:
                layers.append(layer)
        return tuple(layers)

    def _paint_layer(self, node: ExtractedNode, paint: Paint, notes: list[str]) -> Optional[BackgroundLayer]:
        blend = _blend_css(paint.blend_mode) if paint.blend_mode not in _NEUTRAL_BLENDS else None
        if paint.type == PaintType.SOLID:
            color = paint.color.with_alpha(paint.opacity) if paint.color else None
            value = self.resolver.resolve(node, "fills", color, TokenCategory.COLOR, entry_binding=paint.binding)
            return BackgroundLayer("solid", value, blend)
        if paint.type == PaintType.IMAGE:
            if not paint.image_ref:
                return None
            url = f'url("{image_asset_path(paint.image_ref)}")'
            if paint.scale_mode == "TILE":
                css = f"{url} repeat"
            else:
                css = f"{url} center / {_SCALE_MODES.get(paint.scale_mode, 'cover')} no-repeat"
            return BackgroundLayer("image", StyleValue(css), blend)
        css = self._gradient_css(node, paint, notes)
        if css is None:
            return None
        return BackgroundLayer("gradient", StyleValue(css), blend)

    def _gradient_css(self, node: ExtractedNode, paint: Paint, notes: list[str]) -> Optional[str]:
        if not paint.stops:
            logger.debug("gradient without stops on %s", node.id)
            return None
        stops = ", ".join(
            f"{self.resolver.resolve_color(stop.binding, stop.color).with_alpha(paint.opacity).to_hex()} "
            f"{format_number(stop.position * 100)}%"
            for stop in paint.stops
        )
        angle = gradient_angle(paint.matrix) if paint.matrix else 180.0
        if paint.type == PaintType.GRADIENT_LINEAR:
            return f"linear-gradient({format_number(angle)}deg, {stops})"
        if paint.type == PaintType.GRADIENT_RADIAL:
            return f"radial-gradient(ellipse at center, {stops})"
        if paint.type == PaintType.GRADIENT_ANGULAR:
            return f"conic-gradient(from {format_number(angle)}deg at center, {stops})"
        notes.append("diamond gradient approximated as radial-gradient")
        return f"radial-gradient(ellipse at center, {stops})"

    # ════════════════════════════════════════════════════════════
    # Strokes
    # ════════════════════════════════════════════════════════════

    def _strokes(self, node: ExtractedNode, notes: list[str]) -> dict:
        visible = [p for p in node.strokes if p.visible and p.opacity > 0]
        weights = node.stroke.side_weights
        if not visible or (node.stroke.weight <= 0 and not (weights and any(weights))):
            return {}
        if len(visible) > 1:
            notes.append(f"{len(visible)} stacked strokes reduced to the top one")
        paint = visible[-1]

        color = paint.color
        if paint.type != PaintType.SOLID:
            notes.append(f"{paint.type.value.lower()} stroke rendered with its first stop color")
            color = paint.stops[0].color if paint.stops else None
        if color is not None:
            color = color.with_alpha(paint.opacity)
        value = self.resolver.resolve(node, "strokes", color, TokenCategory.COLOR, entry_binding=paint.binding)

        align = node.stroke.align
        width = node.stroke.weight
        if weights and len(set(weights)) == 1:
            width, weights = weights[0], None

        if node.stroke.dashes:
            if weights:
                notes.append("dashed per-side stroke rendered with a uniform outline")
                width = max(weights)
            if align == StrokeAlign.CENTER:
                return {"border": BorderSpec(width, "dashed", value)}
            offset = -width if align == StrokeAlign.INSIDE else 0.0
            return {"border": BorderSpec(width, "dashed", value, outline=True, offset=offset)}

        if align == StrokeAlign.CENTER:
            return {"border": BorderSpec(width, "solid", value, sides=weights)}

        inset = align == StrokeAlign.INSIDE
        sign = 1 if inset else -1
        prefix = "inset " if inset else ""
        if weights:
            top, right, bottom, left = weights
            offsets = [
                (0, sign * top, top), (-sign * right, 0, right),
                (0, -sign * bottom, bottom), (sign * left, 0, left),
            ]
            shadows = tuple(
                ShadowLayer(inset, f"{prefix}{px(x)} {px(y)} 0 0 {{color}}", value)
                for x, y, w in offsets if w > 0
            )
        else:
            shadows = (ShadowLayer(inset, f"{prefix}0 0 0 {px(width)} {{color}}", value),)
        return {"shadows": shadows}

    # ════════════════════════════════════════════════════════════
    # Effects / radius / node-level compositing
    # ════════════════════════════════════════════════════════════

    def _node_effects(self, node: ExtractedNode, notes: list[str]) -> dict:
        out: dict = {}
        shadows: list[ShadowLayer] = []
        text_shadows: list[str] = []
        filters: list[str] = []
        backdrop: list[str] = []
        is_text = isinstance(node, TextNode)
        is_asset = exports_as_asset(node)

        for effect in node.effects:
            if not effect.visible:
                continue
            if effect.type == EffectType.LAYER_BLUR:
                filters.append(f"blur({px(effect.radius)})")
            elif effect.type == EffectType.BACKGROUND_BLUR:
                backdrop.append(f"blur({px(effect.radius)})")
            elif is_asset:
                # drop-shadow() follows the graphic's alpha instead of its box
                if effect.type == EffectType.DROP_SHADOW:
                    color = self._effect_color(effect)
                    filters.append(f"drop-shadow({px(effect.offset_x)} {px(effect.offset_y)} {px(effect.radius)} {color.to_hex()})")
                else:
                    notes.append("inner shadow on an exported vector is left to the asset")
            elif is_text:
                if effect.type == EffectType.DROP_SHADOW:
                    color = self._effect_color(effect)
                    text_shadows.append(f"{px(effect.offset_x)} {px(effect.offset_y)} {px(effect.radius)} {color.to_hex()}")
                    if effect.spread:
                        notes.append("text-shadow has no spread; spread dropped")
                else:
                    notes.append("inner shadow on text has no CSS equivalent; dropped")
            else:
                shadows.append(self._shadow_layer(node, effect))

        if shadows:
            out["shadows"] = tuple(shadows)
        if text_shadows:
            out["text_shadows"] = tuple(text_shadows)
        if filters:
            out["filters"] = tuple(filters)
        if backdrop:
            out["backdrop_filters"] = tuple(backdrop)
        if node.opacity < 1:
            out["opacity"] = round(node.opacity, 4)
        if node.blend_mode not in _NEUTRAL_BLENDS:
            out["blend_mode"] = _blend_css(node.blend_mode)
        return out

    def _effect_color(self, effect: Effect) -> Color:
        return self.resolver.resolve_color(effect.binding, effect.color) or Color(0, 0, 0, 0.25)

    def _shadow_layer(self, node: ExtractedNode, effect: Effect) -> ShadowLayer:
        inset = effect.type == EffectType.INNER_SHADOW
        template = (
            f"{'inset ' if inset else ''}{px(effect.offset_x)} {px(effect.offset_y)} "
            f"{px(effect.radius)} {px(effect.spread)} {{color}}"
        )
        color = StyleValue(self._effect_color(effect).to_hex(), TokenCategory.COLOR)
        layer = ShadowLayer(inset, template, color)
        whole = self.resolver.resolve(node, "effects", layer.literal(), TokenCategory.SHADOW)
        return ShadowLayer(inset, template, color, whole)

    def _radius(self, node: ExtractedNode) -> tuple[StyleValue, ...]:
        if node.source_type == "ELLIPSE":
            return (StyleValue("50%"),)
        radii = node.radii
        corner_props = ("topLeftRadius", "topRightRadius", "bottomRightRadius", "bottomLeftRadius")
        corner_bindings = [node.bindings.get(p) for p in corner_props]
        if radii.is_zero and not any(corner_bindings) and "cornerRadius" not in node.bindings:
            return ()
        if radii.is_uniform and len(set(corner_bindings)) == 1:
            return (self.resolver.resolve(
                node, "cornerRadius", radii.top_left, TokenCategory.RADIUS, entry_binding=corner_bindings[0],
            ),)
        return tuple(
            self.resolver.resolve(node, "cornerRadius", value, TokenCategory.RADIUS, entry_binding=binding)
            for value, binding in zip(radii.as_tuple(), corner_bindings)
        )

    # ════════════════════════════════════════════════════════════
    # Text
    # ════════════════════════════════════════════════════════════

    def _text(self, node: TextNode, notes: list[str]) -> dict:
        out: dict = {}
        visible = [p for p in node.fills if p.visible and p.opacity > 0]
        if visible:
            top = visible[-1]
            color = top.color
            if top.type != PaintType.SOLID:
                notes.append("gradient text color rendered with its first stop")
                color = top.stops[0].color if top.stops else None
            if color is not None:
                color = color.with_alpha(top.opacity)
            out["text_color"] = self.resolver.resolve(
                node, "fills", color, TokenCategory.COLOR, entry_binding=top.binding,
            )
        if node.strokes:
            notes.append("text stroke dropped")

        out["typography"] = self.resolver.resolve(node, "text", font_shorthand(node.style), TokenCategory.TYPOGRAPHY)
        out["text_extras"] = tuple(_text_extras(node.style))
        return out


def font_shorthand(style: TypeStyle) -> str:
    line_height = px(style.line_height) if style.line_height else "normal"
    italic = "italic " if style.italic else ""
    return f'{italic}{style.font_weight} {px(style.font_size)}/{line_height} "{style.font_family}", sans-serif'


def _text_extras(style: TypeStyle) -> list[tuple[str, str]]:
    extras = []
    if style.letter_spacing:
        extras.append(("letter-spacing", px(style.letter_spacing)))
    align = _TEXT_ALIGN.get(style.text_align)
    if align and align != "left":
        extras.append(("text-align", align))
    if style.text_case in _TEXT_CASE:
        extras.append(("text-transform", _TEXT_CASE[style.text_case]))
    if style.text_decoration in _TEXT_DECORATION:
        extras.append(("text-decoration", _TEXT_DECORATION[style.text_decoration]))
    return extras


def resolve_visual(
    node: ExtractedNode,
    ctx: Optional[PipelineContext] = None,
    tokens: Optional[TokenLookup] = None,
) -> VisualStyle:
    return VisualResolver(ctx, tokens).resolve(node)


# ════════════════════════════════════════════════════════════
# VisualStyle → declarations
# ════════════════════════════════════════════════════════════

def visual_declarations(style: VisualStyle) -> list[Declaration]:
    decls: list[Declaration] = []

    layers = style.backgrounds
    if len(layers) == 1 and layers[0].kind == "solid":
        decls.append(declaration("background-color", layers[0].value))
    elif layers:
        parts = []
        for index, layer in enumerate(layers):
            if layer.kind == "solid" and index < len(layers) - 1:
                # only the bottom layer may be a plain color in the shorthand
                parts.append(declaration("", "linear-gradient(", layer.value, ", ", layer.value, ")", sep=""))
            else:
                parts.append(declaration("", layer.value))
        decls.append(Declaration(
            "background",
            ", ".join(p.value for p in parts),
            tuple(dict.fromkeys(t for p in parts for t in p.tokens)),
        ))
        if any(layer.blend_mode for layer in layers):
            decls.append(Declaration(
                "background-blend-mode", ", ".join(layer.blend_mode or "normal" for layer in layers),
            ))

    if style.image:
        decls.append(Declaration("object-fit", style.image_fit or "cover"))

    if style.text_color is not None:
        decls.append(declaration("color", style.text_color))
    if style.typography is not None:
        decls.append(declaration("font", style.typography))
    for prop, value in style.text_extras:
        decls.append(Declaration(prop, value))
    if style.text_shadows:
        decls.append(Declaration("text-shadow", ", ".join(style.text_shadows)))

    border = style.border
    if border is not None:
        if border.outline:
            decls.append(declaration("outline", f"{px(border.width)} {border.style}", border.color))
            if border.offset:
                decls.append(Declaration("outline-offset", px(border.offset)))
        elif border.sides:
            for side, width in zip(("top", "right", "bottom", "left"), border.sides):
                if width > 0:
                    decls.append(declaration(f"border-{side}", f"{px(width)} {border.style}", border.color))
        else:
            decls.append(declaration("border", f"{px(border.width)} {border.style}", border.color))

    if style.shadows:
        rendered = [shadow.render() for shadow in style.shadows]
        decls.append(Declaration(
            "box-shadow",
            ", ".join(value.render() for value in rendered),
            tuple(dict.fromkeys(t for shadow in style.shadows for t in shadow.tokens())),
        ))

    if style.radius:
        decls.append(declaration("border-radius", *style.radius))
    if style.opacity is not None:
        decls.append(Declaration("opacity", format_number(style.opacity)))
    if style.blend_mode:
        decls.append(Declaration("mix-blend-mode", style.blend_mode))
    if style.filters:
        decls.append(Declaration("filter", " ".join(style.filters)))
    if style.backdrop_filters:
        decls.append(Declaration("backdrop-filter", " ".join(style.backdrop_filters)))
    return decls
