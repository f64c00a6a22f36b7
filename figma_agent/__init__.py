"""
figma-agent — Figma design tree → semantic markup, layered stylesheets,
design tokens and an asset manifest.

Extractor → Layout Interpreter → Visual Resolver → Token Engine →
Semantic Generator → Code Emitter
"""

__version__ = "0.5.0"

from .config import PipelineConfig, load_config, validate_config
from .context import PipelineContext, VariableTable
from .errors import (
    Diagnostic,
    DiagnosticKind,
    DiagnosticReport,
    InvalidRootError,
    PipelineCancelled,
)
from .extractor import ExtractionResult, Extractor, extract
from .layout import (
    BreakpointMatcher,
    CompositeMatcher,
    LayoutInterpreter,
    LayoutResult,
    NameSuffixMatcher,
    VariantPropertyMatcher,
    interpret_layout,
    interpret_tree,
)
from .visual import VisualResolver, gradient_angle, resolve_visual
from .tokens import TokenEngine, TokenSet, collect, parse_custom_properties, render
from .semantics import SemanticConfig, SemanticGenerator, assign_semantics, preview_tree
from .emitter import Artifacts, emit, write_artifacts
from .pipeline import Pipeline, PipelineResult, PipelineState, run_pipeline
from .figma_source import FigmaAPIClient, export_assets, fetch_design

__all__ = [
    "__version__",
    "PipelineConfig",
    "load_config",
    "validate_config",
    "PipelineContext",
    "VariableTable",
    "Diagnostic",
    "DiagnosticKind",
    "DiagnosticReport",
    "InvalidRootError",
    "PipelineCancelled",
    "ExtractionResult",
    "Extractor",
    "extract",
    "BreakpointMatcher",
    "CompositeMatcher",
    "LayoutInterpreter",
    "LayoutResult",
    "NameSuffixMatcher",
    "VariantPropertyMatcher",
    "interpret_layout",
    "interpret_tree",
    "VisualResolver",
    "gradient_angle",
    "resolve_visual",
    "TokenEngine",
    "TokenSet",
    "collect",
    "parse_custom_properties",
    "render",
    "SemanticConfig",
    "SemanticGenerator",
    "assign_semantics",
    "preview_tree",
    "Artifacts",
    "emit",
    "write_artifacts",
    "Pipeline",
    "PipelineResult",
    "PipelineState",
    "run_pipeline",
    "FigmaAPIClient",
    "export_assets",
    "fetch_design",
]
