#!/usr/bin/env python3
"""
figma-agent CLI — Figma design tree → front-end code

  figma-agent generate design.json [--target react]    # write the artifact set
  figma-agent generate --file-key KEY [--node-ids 1:2] # fetch from Figma first
  figma-agent tokens design.json [--format tailwind]   # token declarations only
  figma-agent layout design.json                       # resolved layout rules
  figma-agent preview design.json                      # generated element tree
  figma-agent watch design.json                        # regenerate on change
"""

import argparse
import json
import logging
import os
import sys
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

import requests
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from figma_agent import __version__

from .config import PipelineConfig, load_config
from .context import PipelineContext, VariableTable
from .emitter import write_artifacts
from .errors import InvalidRootError
from .extractor import Extractor
from .figma_source import FigmaAPIClient, export_assets, fetch_design
from .layout import LayoutInterpreter, layout_declarations
from .pipeline import Pipeline, PipelineResult
from .semantics import preview_tree
from .tokens import TokenEngine, render as render_tokens
from .visual import VisualResolver


def _count_nodes(node) -> int:
    return sum(1 for _ in node.walk())


def _report_http_error(exc: requests.HTTPError, file_key: str) -> None:
    status = getattr(getattr(exc, "response", None), "status_code", None)
    if status == 403:
        print("❌ Figma API 403: the token is invalid or expired. Create a new FIGMA_TOKEN.")
    elif status == 404:
        print(f"❌ Figma API 404: file '{file_key}' not found. Check the file key.")
    else:
        print(f"❌ Figma API error: {exc}")


def _load_variables(path: Optional[str]) -> VariableTable:
    if not path:
        return VariableTable()
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if "meta" in data:
        return VariableTable.from_figma_response(data)
    return VariableTable.from_dict(data)


def _load_design(args, config: PipelineConfig) -> Optional[tuple[dict, VariableTable]]:
    """(raw tree, variables) from a JSON file or the Figma API; None on failure."""
    if getattr(args, "input", None):
        if not os.path.exists(args.input):
            print(f"❌ Input file not found: {args.input}")
            return None
        with open(args.input, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return raw, _load_variables(getattr(args, "variables", None))

    file_key = getattr(args, "file_key", None) or config.file_key
    if not config.access_token:
        print("❌ Set the FIGMA_TOKEN environment variable or figma.personalAccessToken in the config.")
        print("   Figma → Settings → Personal access tokens → Generate new token")
        return None
    if not file_key:
        print("❌ Pass an input JSON file, --file-key, or set figma.fileKey in the config.")
        return None

    print(f"📥 Fetching from Figma: {file_key}")
    client = FigmaAPIClient(config.access_token)
    node_ids = [n for n in (getattr(args, "node_ids", None) or "").split(",") if n]
    try:
        raw, variables = fetch_design(client, file_key, node_ids or None)
    except requests.HTTPError as e:
        _report_http_error(e, file_key)
        return None
    print(f"   ✅ Fetched design ({len(variables)} variables)")
    return raw, variables


def _run(args, config: PipelineConfig, design: tuple[dict, VariableTable], target: Optional[str] = None) -> Optional[PipelineResult]:
    raw, variables = design
    ctx = PipelineContext(config, variables)
    try:
        return Pipeline(ctx, max_workers=getattr(args, "workers", 1) or 1).run(raw, target)
    except InvalidRootError as e:
        print(f"❌ Invalid design tree: {e}")
        return None


# ════════════════════════════════════════════════════════════
# Commands
# ════════════════════════════════════════════════════════════

def cmd_generate(args, config: PipelineConfig) -> int:
    """Generate: design tree → markup + stylesheets + tokens + asset manifest."""
    target = (args.target or config.target).lower()
    output_dir = args.output or config.output_dir
    design = _load_design(args, config)
    if design is None:
        return 1

    print(f"🚀 Generating {target} ...")
    result = _run(args, config, design, target)
    if result is None:
        return 1

    artifacts = result.artifacts
    file_key = getattr(args, "file_key", None) or config.file_key
    if args.export_assets:
        if not (config.access_token and file_key):
            print("   ⚠️  --export-assets needs a Figma token and file key; skipped.")
        else:
            print(f"   📦 Exporting {len(artifacts.asset_manifest.get('assets', []))} assets ...")
            export_assets(
                artifacts.asset_manifest,
                FigmaAPIClient(config.access_token),
                file_key,
                batch_size=config.export_batch_size,
                max_workers=config.export_max_workers,
                retries=config.export_retries,
                fmt=config.export_format,
                download_dir=output_dir,
            )

    written = write_artifacts(artifacts, output_dir)
    for path in written:
        print(f"   📄 {path}")
    if len(result.diagnostics):
        print(f"   ⚠️  {len(result.diagnostics)} diagnostics (see diagnostics.json)")
    print(f"✅ Generated {target} output to {output_dir} ({_count_nodes(result.extraction.root)} nodes, {len(result.tokens)} tokens)")
    return 0


def cmd_tokens(args, config: PipelineConfig) -> int:
    """Tokens: collect and render token declarations only."""
    design = _load_design(args, config)
    if design is None:
        return 1
    raw, variables = design
    ctx = PipelineContext(config, variables)
    try:
        root = Extractor(ctx).extract(raw).root
    except InvalidRootError as e:
        print(f"❌ Invalid design tree: {e}")
        return 1

    layout = LayoutInterpreter(ctx).interpret(root)
    resolver = VisualResolver(ctx)
    visuals = {node.id: resolver.resolve(node) for node in root.walk()}
    tokens = TokenEngine(ctx).collect(root.walk(), layout.specs, visuals)
    text = render_tokens(tokens, args.format, args.mode, config.breakpoints, config.mode_selector)

    if args.output:
        os.makedirs(os.path.dirname(os.path.abspath(args.output)), exist_ok=True)
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"✅ {len(tokens)} tokens written to {args.output}")
    else:
        print(text)
    return 0


def cmd_layout(args, config: PipelineConfig) -> int:
    """Layout: print resolved layout declarations per node."""
    design = _load_design(args, config)
    if design is None:
        return 1
    raw, variables = design
    ctx = PipelineContext(config, variables)
    try:
        root = Extractor(ctx).extract(raw).root
    except InvalidRootError as e:
        print(f"❌ Invalid design tree: {e}")
        return 1

    result = LayoutInterpreter(ctx).interpret(root)
    for node in root.walk():
        spec = result.specs.get(node.id)
        if spec is None:
            continue
        decls = "; ".join(f"{d.property}: {d.value}" for d in layout_declarations(spec))
        marker = "  (folded)" if node.id in result.folded else ""
        print(f"├─ {node.name or node.id} [{node.kind.value}]{marker}")
        if decls:
            print(f"│    {decls}")
    for rule_set in result.responsive:
        print(f"\n📐 {rule_set.stem}: base {rule_set.base_breakpoint}")
        for override in rule_set.overrides:
            count = sum(len(d) for d in override.rules.values())
            print(f"   @media (min-width: {override.min_width}px) [{override.breakpoint}] {count} declarations")
    return 0


def cmd_preview(args, config: PipelineConfig) -> int:
    """Preview the generated element tree."""
    design = _load_design(args, config)
    if design is None:
        return 1
    print(f"👁️  Preview element tree: {args.input or args.file_key}")
    result = _run(args, config, design)
    if result is None:
        return 1
    print(preview_tree(result.tree))
    print(f"\nTotal nodes: {_count_nodes(result.extraction.root)}")
    return 0


_WATCHED_EXTENSIONS = (".json",)


class ChangeHandler(FileSystemEventHandler):
    """File change handler with debounce; regeneration runs on ``executor``
    so the observer thread never blocks."""

    def __init__(self, callback, executor: Executor, debounce: float = 1.0, paths: Optional[set] = None):
        self.callback = callback
        self.executor = executor
        self.last_trigger = 0.0
        self.debounce_seconds = debounce
        self.paths = {os.path.abspath(p) for p in paths} if paths else None

    def on_modified(self, event):
        if event.is_directory:
            return
        if not event.src_path.endswith(_WATCHED_EXTENSIONS):
            return
        if self.paths is not None and os.path.abspath(event.src_path) not in self.paths:
            return
        current_time = time.time()
        if current_time - self.last_trigger < self.debounce_seconds:
            return
        self.last_trigger = current_time
        print(f"\n🔄 File changed: {event.src_path}")
        self.executor.submit(self.callback)


def cmd_watch(args, config: PipelineConfig) -> int:
    """Watch: regenerate whenever the input (or variables) file changes."""
    watched = {args.input} | ({args.variables} if args.variables else set())
    watch_dir = os.path.dirname(os.path.abspath(args.input)) or "."
    print(f"👀 Watching '{args.input}' for changes...")
    print("   Press Ctrl+C to stop.")

    def regenerate():
        try:
            cmd_generate(args, config)
        except Exception as e:
            print(f"   ⚠️  Generate failed: {e}")

    executor = ThreadPoolExecutor(max_workers=1)
    executor.submit(regenerate).result()

    event_handler = ChangeHandler(regenerate, executor, paths=watched)
    observer = Observer()
    observer.schedule(event_handler, path=watch_dir, recursive=False)
    observer.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n👋 Stopping watch...")
        observer.stop()
    finally:
        observer.join()
        executor.shutdown(wait=True)
    return 0


# ════════════════════════════════════════════════════════════
# main
# ════════════════════════════════════════════════════════════

def _add_source_args(p: argparse.ArgumentParser, input_required: bool = False) -> None:
    if input_required:
        p.add_argument("input", help="Design JSON (Figma REST response or node)")
    else:
        p.add_argument("input", nargs="?", help="Design JSON (Figma REST response or node)")
        p.add_argument("--file-key", help="Figma file key (fetch instead of reading a file)")
        p.add_argument("--node-ids", help="Comma separated node ids to fetch")
    p.add_argument("--variables", help="Variable table JSON")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="figma-agent",
        description="figma-agent: Figma design tree → front-end code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", "-c", default="figma-agent.config.json", help="Config path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    gen_p = sub.add_parser("generate", help="Design → markup, styles, tokens, asset manifest")
    _add_source_args(gen_p)
    gen_p.add_argument("--target", choices=["html", "react", "vue"], help="Output target")
    gen_p.add_argument("--output", help="Output directory")
    gen_p.add_argument("--workers", type=int, default=1, help="Parallel workers for the visual stage")
    gen_p.add_argument("--export-assets", action="store_true", help="Render and download manifest assets")

    tok_p = sub.add_parser("tokens", help="Token declarations only")
    _add_source_args(tok_p)
    tok_p.add_argument("--format", choices=["css", "tailwind", "json"], default="css", help="Token format")
    tok_p.add_argument("--mode", help="Render a single mode (e.g. dark)")
    tok_p.add_argument("--output", help="Write to file instead of stdout")

    lay_p = sub.add_parser("layout", help="Print resolved layout rules")
    _add_source_args(lay_p)

    prev_p = sub.add_parser("preview", help="Preview the generated element tree")
    _add_source_args(prev_p)

    watch_p = sub.add_parser("watch", help="Regenerate when the design JSON changes")
    _add_source_args(watch_p, input_required=True)
    watch_p.add_argument("--target", choices=["html", "react", "vue"], help="Output target")
    watch_p.add_argument("--output", help="Output directory")
    watch_p.set_defaults(export_assets=False, workers=1, file_key=None, node_ids=None)
    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = PipelineConfig.from_dict(load_config(args.config))

    if args.command == "generate":
        return cmd_generate(args, config)
    if args.command == "tokens":
        return cmd_tokens(args, config)
    if args.command == "layout":
        return cmd_layout(args, config)
    if args.command == "preview":
        return cmd_preview(args, config)
    if args.command == "watch":
        return cmd_watch(args, config)
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
