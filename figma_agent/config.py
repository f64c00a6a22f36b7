"""Config file loading, basic validation and the typed pipeline config."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

# Known top-level sections
_KNOWN_TOP_KEYS = {"figma", "extract", "layout", "tokens", "generate", "export"}

# Known keys per section (used for typo hints)
_KNOWN_SECTION_KEYS = {
    "figma": {"personalAccessToken", "fileKey"},
    "extract": {"maxDepth", "includeHidden"},
    "layout": {"breakpoints", "matching"},
    "tokens": {"threshold", "colorTolerance", "formats", "modeSelector"},
    "generate": {"target", "outputDir", "blockPrefix"},
    "export": {"batchSize", "maxWorkers", "retries", "format"},
}

_VALID_TARGETS = {"html", "react", "vue"}
_VALID_TOKEN_FORMATS = {"css", "tailwind", "json"}
_VALID_MATCHING = {"name-suffix", "variant", "both"}
_VALID_EXPORT_FORMATS = {"svg", "png", "jpg", "pdf"}

_NUMERIC_KEYS = {
    "extract": ("maxDepth",),
    "tokens": ("threshold", "colorTolerance"),
    "export": ("batchSize", "maxWorkers", "retries"),
}

DEFAULT_BREAKPOINTS = {"mobile": 0, "tablet": 768, "desktop": 1280}


def _warn(msg: str) -> None:
    print(f"   ⚠️  [config] {msg}")


def validate_config(cfg: dict) -> None:
    """Basic field validation: prints warnings, never raises."""
    if not cfg:
        return

    for key in cfg:
        if key not in _KNOWN_TOP_KEYS:
            known = ", ".join(sorted(_KNOWN_TOP_KEYS))
            _warn(f"unknown top-level key '{key}' (known: {known})")

    for section, known_keys in _KNOWN_SECTION_KEYS.items():
        section_cfg = cfg.get(section, {})
        if not isinstance(section_cfg, dict):
            _warn(f"section '{section}' should be an object, got {type(section_cfg).__name__}")
            continue
        for key in section_cfg:
            if key not in known_keys:
                known = ", ".join(sorted(known_keys))
                _warn(f"[{section}] unknown key '{key}' (known: {known})")

    target = _section(cfg, "generate").get("target")
    if target and target not in _VALID_TARGETS:
        valid = ", ".join(sorted(_VALID_TARGETS))
        _warn(f"generate.target '{target}' is not a known value ({valid})")

    formats = _section(cfg, "tokens").get("formats")
    if formats is not None:
        if not isinstance(formats, list):
            _warn(f"tokens.formats should be a list, got {type(formats).__name__}")
        else:
            for fmt in formats:
                if fmt not in _VALID_TOKEN_FORMATS:
                    valid = ", ".join(sorted(_VALID_TOKEN_FORMATS))
                    _warn(f"tokens.formats entry '{fmt}' is not a known value ({valid})")

    matching = _section(cfg, "layout").get("matching")
    if matching and matching not in _VALID_MATCHING:
        valid = ", ".join(sorted(_VALID_MATCHING))
        _warn(f"layout.matching '{matching}' is not a known value ({valid})")

    breakpoints = _section(cfg, "layout").get("breakpoints")
    if breakpoints is not None:
        if not isinstance(breakpoints, dict):
            _warn("layout.breakpoints should be an object of name → min-width px")
        else:
            for name, width in breakpoints.items():
                if not isinstance(width, (int, float)) or isinstance(width, bool):
                    _warn(f"layout.breakpoints.{name} should be a number, got {type(width).__name__}")

    export_format = _section(cfg, "export").get("format")
    if export_format and export_format not in _VALID_EXPORT_FORMATS:
        valid = ", ".join(sorted(_VALID_EXPORT_FORMATS))
        _warn(f"export.format '{export_format}' is not a known value ({valid})")

    for section, keys in _NUMERIC_KEYS.items():
        for key in keys:
            val = _section(cfg, section).get(key)
            if val is not None and (not isinstance(val, (int, float)) or isinstance(val, bool)):
                _warn(f"{section}.{key} should be a number, got {type(val).__name__}")


def load_config(config_path: str = "figma-agent.config.json") -> dict:
    """Load the JSON config file; a missing file yields {}. Validates what it loads."""
    path = Path(config_path)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        cfg: Any = json.load(f)
    if not isinstance(cfg, dict):
        print(f"   ⚠️  [config] '{config_path}' is not a JSON object, using an empty config.")
        return {}
    validate_config(cfg)
    return cfg


def _section(cfg: dict, name: str) -> dict:
    value = cfg.get(name, {})
    return value if isinstance(value, dict) else {}


def _number(value: Any, default: int) -> int:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return default


@dataclass
class PipelineConfig:
    """Typed view of the config file with defaults for every field."""
    # extract
    max_depth: int = 30
    include_hidden: bool = False
    # layout
    breakpoints: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_BREAKPOINTS))
    matching: str = "both"
    # tokens
    token_threshold: int = 2
    color_tolerance: int = 0
    token_formats: list[str] = field(default_factory=lambda: ["css", "tailwind"])
    mode_selector: str = '[data-theme="{mode}"]'
    # generate
    target: str = "html"
    output_dir: str = "./generated"
    block_prefix: str = ""
    # export
    export_batch_size: int = 50
    export_max_workers: int = 4
    export_retries: int = 2
    export_format: str = "svg"
    # figma
    access_token: Optional[str] = None
    file_key: Optional[str] = None

    @classmethod
    def from_dict(cls, cfg: Optional[dict]) -> "PipelineConfig":
        cfg = cfg or {}
        extract = _section(cfg, "extract")
        layout = _section(cfg, "layout")
        tokens = _section(cfg, "tokens")
        generate = _section(cfg, "generate")
        export = _section(cfg, "export")
        figma = _section(cfg, "figma")

        defaults = cls()

        breakpoints = dict(DEFAULT_BREAKPOINTS)
        raw_breakpoints = layout.get("breakpoints")
        if isinstance(raw_breakpoints, dict) and raw_breakpoints:
            breakpoints = {
                str(name): int(width)
                for name, width in raw_breakpoints.items()
                if isinstance(width, (int, float)) and not isinstance(width, bool)
            }

        matching = layout.get("matching", defaults.matching)
        if matching not in _VALID_MATCHING:
            matching = defaults.matching

        formats = tokens.get("formats")
        if isinstance(formats, list):
            formats = [f for f in formats if f in _VALID_TOKEN_FORMATS] or ["css"]
        else:
            formats = list(defaults.token_formats)

        target = generate.get("target", defaults.target)
        if target not in _VALID_TARGETS:
            target = defaults.target

        return cls(
            max_depth=max(1, _number(extract.get("maxDepth"), defaults.max_depth)),
            include_hidden=bool(extract.get("includeHidden", defaults.include_hidden)),
            breakpoints=breakpoints,
            matching=matching,
            token_threshold=max(1, _number(tokens.get("threshold"), defaults.token_threshold)),
            color_tolerance=max(0, _number(tokens.get("colorTolerance"), defaults.color_tolerance)),
            token_formats=formats,
            mode_selector=str(tokens.get("modeSelector", defaults.mode_selector)),
            target=target,
            output_dir=str(generate.get("outputDir", defaults.output_dir)),
            block_prefix=str(generate.get("blockPrefix", defaults.block_prefix)),
            export_batch_size=max(1, _number(export.get("batchSize"), defaults.export_batch_size)),
            export_max_workers=max(1, _number(export.get("maxWorkers"), defaults.export_max_workers)),
            export_retries=max(0, _number(export.get("retries"), defaults.export_retries)),
            export_format=str(export.get("format", defaults.export_format)),
            access_token=figma.get("personalAccessToken") or os.environ.get("FIGMA_TOKEN"),
            file_key=figma.get("fileKey"),
        )
