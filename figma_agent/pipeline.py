"""
Pipeline — strict state machine driving the six stages.

  Pending → Extracted → LayoutResolved → VisualResolved → TokensCollected
          → SemanticsAssigned → Emitted

No state is revisited. A failure inside a subtree becomes a diagnostic and a
neutral/placeholder result for that subtree; a failure at the root propagates.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from .config import PipelineConfig
from .context import PipelineContext, VariableTable
from .emitter import Artifacts, emit
from .errors import DiagnosticKind, DiagnosticReport
from .extractor import ExtractionResult, Extractor
from .layout import BreakpointMatcher, LayoutInterpreter, LayoutResult
from .model import ExtractedNode, GeneratedElement, VisualStyle
from .semantics import SemanticGenerator
from .tokens import TokenEngine, TokenSet
from .visual import VisualResolver

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    PENDING = "Pending"
    EXTRACTED = "Extracted"
    LAYOUT_RESOLVED = "LayoutResolved"
    VISUAL_RESOLVED = "VisualResolved"
    TOKENS_COLLECTED = "TokensCollected"
    SEMANTICS_ASSIGNED = "SemanticsAssigned"
    EMITTED = "Emitted"


_STATE_ORDER = list(PipelineState)


@dataclass(frozen=True)
class PipelineResult:
    artifacts: Artifacts
    extraction: ExtractionResult
    layout: LayoutResult
    visuals: Mapping[str, VisualStyle]
    tokens: TokenSet
    tree: GeneratedElement
    diagnostics: DiagnosticReport
    states: tuple[PipelineState, ...]


class Pipeline:
    """One run per instance. ``max_workers > 1`` resolves top-level sibling
    subtrees of the visual stage in parallel."""

    def __init__(
        self,
        ctx: Optional[PipelineContext] = None,
        matcher: Optional[BreakpointMatcher] = None,
        max_workers: int = 1,
    ):
        self.ctx = ctx or PipelineContext()
        self.matcher = matcher
        self.max_workers = max(1, max_workers)
        self.state = PipelineState.PENDING
        self.history: list[PipelineState] = [PipelineState.PENDING]

    def _advance(self, state: PipelineState) -> None:
        if _STATE_ORDER.index(state) != _STATE_ORDER.index(self.state) + 1:
            raise RuntimeError(f"pipeline cannot move from {self.state.value} to {state.value}")
        self.state = state
        self.history.append(state)
        logger.debug("pipeline → %s", state.value)

    def run(self, raw_tree: Any, target: Optional[str] = None) -> PipelineResult:
        if self.state != PipelineState.PENDING:
            raise RuntimeError("a Pipeline instance runs only once")
        ctx = self.ctx

        # ─── 1. extract ───
        extraction = Extractor(ctx).extract(raw_tree)
        root = extraction.root
        self._advance(PipelineState.EXTRACTED)
        ctx.check_cancelled()

        # ─── 2. layout ───
        layout = LayoutInterpreter(ctx, self.matcher).interpret(root)
        self._advance(PipelineState.LAYOUT_RESOLVED)
        ctx.check_cancelled()

        # ─── 3. visuals ───
        visuals = self._resolve_visuals(root)
        self._advance(PipelineState.VISUAL_RESOLVED)

        # ─── 4. tokens: whole-tree pass, then every value is rebound ───
        tokens = TokenEngine(ctx).collect(root.walk(), layout.specs, visuals)
        layout = layout.map_values(tokens.bind)
        visuals = MappingProxyType({node_id: style.map_values(tokens.bind) for node_id, style in visuals.items()})
        self._advance(PipelineState.TOKENS_COLLECTED)
        ctx.check_cancelled()

        # ─── 5. semantics ───
        tree = SemanticGenerator(ctx).generate(root, layout, visuals, tokens)
        self._advance(PipelineState.SEMANTICS_ASSIGNED)

        # ─── 6. emit ───
        artifacts = emit(
            tree, tokens, target or ctx.config.target,
            ctx=ctx, responsive=layout.responsive,
        )
        self._advance(PipelineState.EMITTED)

        logger.info(
            "generated %s: %d tokens, %d assets, %d diagnostics",
            artifacts.markup_path, len(tokens),
            len(artifacts.asset_manifest.get("assets", [])), len(ctx.diagnostics),
        )
        return PipelineResult(
            artifacts=artifacts,
            extraction=extraction,
            layout=layout,
            visuals=visuals,
            tokens=tokens,
            tree=tree,
            diagnostics=ctx.diagnostics,
            states=tuple(self.history),
        )

    # ════════════════════════════════════════════════════════════
    # Visual stage
    # ════════════════════════════════════════════════════════════

    def _resolve_visuals(self, root: ExtractedNode) -> Mapping[str, VisualStyle]:
        resolver = VisualResolver(self.ctx)
        visuals = {root.id: resolver.resolve(root)}

        siblings = list(root.children)
        if self.max_workers == 1:
            for subtree in siblings:
                self.ctx.check_cancelled()
                visuals.update(self._resolve_subtree(resolver, subtree))
            return MappingProxyType(visuals)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for start in range(0, len(siblings), self.max_workers):
                self.ctx.check_cancelled()
                batch = siblings[start:start + self.max_workers]
                # results merge in sibling order whatever the completion order
                for result in pool.map(lambda s: self._resolve_subtree(resolver, s), batch):
                    visuals.update(result)
        return MappingProxyType(visuals)

    def _resolve_subtree(self, resolver: VisualResolver, subtree: ExtractedNode) -> dict[str, VisualStyle]:
        out = {}
        for node in subtree.walk():
            try:
                out[node.id] = resolver.resolve(node)
            except Exception as exc:
                logger.exception("visual resolution failed for %s", node.id)
                self.ctx.report(DiagnosticKind.MALFORMED_INPUT, f"visual style could not be resolved: {exc}", node)
                out[node.id] = VisualStyle(node_id=node.id)
        return out


def run_pipeline(
    raw_tree: Any,
    config: Optional[PipelineConfig] = None,
    variables: Optional[VariableTable] = None,
    target: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    max_workers: int = 1,
) -> PipelineResult:
    ctx = PipelineContext(config, variables, cancel_event)
    return Pipeline(ctx, max_workers=max_workers).run(raw_tree, target)
