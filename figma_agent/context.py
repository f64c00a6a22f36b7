"""
Run-scoped lookup tables passed explicitly through the pipeline.

VariableTable — binding reference → value-by-mode (resolves alias chains)
PipelineContext — config, variables, component-name cache, typeface cache,
                  diagnostics and the cooperative cancellation flag
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from .config import PipelineConfig
from .errors import DiagnosticKind, DiagnosticReport, PipelineCancelled

logger = logging.getLogger(__name__)


def _mode_key(name: str) -> str:
    """"Dark Mode" → "dark-mode"."""
    return re.sub(r"[^a-z0-9]+", "-", str(name).strip().lower()).strip("-") or "default"


@dataclass(frozen=True)
class VariableDefinition:
    id: str
    name: str
    resolved_type: str = "COLOR"  # COLOR | FLOAT | STRING | BOOLEAN
    values_by_mode: Mapping[str, Any] = field(default_factory=dict)
    default_mode: str = "default"


def _is_alias(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") == "VARIABLE_ALIAS" and "id" in value


class VariableTable:
    """Companion table supplied by the design source; the pipeline never
    fetches it on its own."""

    def __init__(self, definitions: Optional[Iterable[VariableDefinition]] = None):
        self._defs: dict[str, VariableDefinition] = {}
        for definition in definitions or ():
            self._defs[definition.id] = definition

    def __len__(self) -> int:
        return len(self._defs)

    def __contains__(self, ref_id: str) -> bool:
        return ref_id in self._defs

    def get(self, ref_id: str) -> Optional[VariableDefinition]:
        return self._defs.get(ref_id)

    @property
    def modes(self) -> list[str]:
        seen: list[str] = []
        for definition in self._defs.values():
            for mode in definition.values_by_mode:
                if mode not in seen:
                    seen.append(mode)
        return seen

    def resolve(self, ref_id: str, mode: Optional[str] = None) -> Optional[Any]:
        """Follow alias chains to a concrete value. Cycles and dangling
        aliases resolve to None."""
        visited: set[str] = set()
        current = ref_id
        while True:
            if current in visited:
                logger.debug("variable alias cycle at %s", current)
                return None
            visited.add(current)
            definition = self._defs.get(current)
            if definition is None:
                return None
            values = definition.values_by_mode
            key = mode if mode in values else definition.default_mode
            value = values.get(key)
            if value is None and values:
                value = next(iter(values.values()))
            if _is_alias(value):
                current = str(value["id"])
                continue
            return value

    def resolve_modes(self, ref_id: str) -> dict[str, Any]:
        definition = self._defs.get(ref_id)
        if definition is None:
            return {}
        resolved = {}
        for mode in definition.values_by_mode:
            value = self.resolve(ref_id, mode)
            if value is not None:
                resolved[mode] = value
        return resolved

    # ─── construction ───

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "VariableTable":
        """Simple JSON shape:

        {"variables": {"<id>": {"name": "color/primary", "type": "COLOR",
                                "values": {"light": "#3366FF", "dark": "#99BBFF"},
                                "defaultMode": "light"}}}

        A single ``"value"`` instead of ``"values"`` means one default mode.
        """
        if not data:
            return cls()
        entries = data.get("variables", data)
        definitions = []
        for ref_id, entry in entries.items():
            if not isinstance(entry, dict):
                continue
            if "values" in entry and isinstance(entry["values"], dict):
                values = {_mode_key(m): v for m, v in entry["values"].items()}
            else:
                values = {"default": entry.get("value")}
            default_mode = _mode_key(entry.get("defaultMode", next(iter(values), "default")))
            definitions.append(VariableDefinition(
                id=str(ref_id),
                name=str(entry.get("name", ref_id)),
                resolved_type=str(entry.get("type", "COLOR")).upper(),
                values_by_mode=values,
                default_mode=default_mode,
            ))
        return cls(definitions)

    @classmethod
    def from_figma_response(cls, data: dict) -> "VariableTable":
        """Build from ``GET /v1/files/:key/variables/local``. Mode ids are
        replaced by their slugified names."""
        meta = data.get("meta", data)
        collections = meta.get("variableCollections", {}) or {}
        mode_names: dict[str, str] = {}
        default_modes: dict[str, str] = {}
        for collection_id, collection in collections.items():
            for mode in collection.get("modes", []):
                mode_names[mode.get("modeId")] = _mode_key(mode.get("name", mode.get("modeId")))
            default_id = collection.get("defaultModeId")
            if default_id:
                default_modes[collection_id] = mode_names.get(default_id, _mode_key(default_id))

        definitions = []
        for var_id, variable in (meta.get("variables", {}) or {}).items():
            if variable.get("remote") and not variable.get("valuesByMode"):
                continue
            values = {
                mode_names.get(mode_id, _mode_key(mode_id)): value
                for mode_id, value in (variable.get("valuesByMode") or {}).items()
            }
            default_mode = default_modes.get(variable.get("variableCollectionId"), next(iter(values), "default"))
            definitions.append(VariableDefinition(
                id=str(variable.get("id", var_id)),
                name=str(variable.get("name", var_id)),
                resolved_type=str(variable.get("resolvedType", "COLOR")),
                values_by_mode=values,
                default_mode=default_mode,
            ))
        return cls(definitions)


class PipelineContext:
    """Everything a run shares across stages. One instance per run, so
    concurrent runs never see each other's caches."""

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        variables: Optional[VariableTable] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = config or PipelineConfig()
        self.variables = variables or VariableTable()
        self.diagnostics = DiagnosticReport()
        self.cancel_event = cancel_event
        self._components: dict[str, str] = {}
        self._typefaces: dict[str, set[int]] = {}
        self._lock = threading.Lock()

    # ─── component-name cache ───

    def register_component(self, component_id: str, name: str) -> None:
        if not component_id or not name:
            return
        with self._lock:
            self._components.setdefault(component_id, name)

    def component_name(self, component_id: Optional[str]) -> Optional[str]:
        if not component_id:
            return None
        with self._lock:
            return self._components.get(component_id)

    # ─── typeface cache ───

    def register_typeface(self, family: str, weight: int) -> None:
        with self._lock:
            self._typefaces.setdefault(family, set()).add(int(weight))

    @property
    def typefaces(self) -> dict[str, list[int]]:
        with self._lock:
            return {family: sorted(weights) for family, weights in sorted(self._typefaces.items())}

    # ─── diagnostics / cancellation ───

    def report(self, kind: DiagnosticKind, message: str, node: Any = None, prop: Optional[str] = None) -> None:
        """``node`` may be an ExtractedNode or a raw node dict."""
        if isinstance(node, dict):
            node_id, node_name = node.get("id", ""), node.get("name", "")
        else:
            node_id, node_name = getattr(node, "id", ""), getattr(node, "name", "")
        self.diagnostics.add(
            kind, message,
            node_id=str(node_id or ""), node_name=str(node_name or ""), property=prop,
        )

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled("generation cancelled by host")
