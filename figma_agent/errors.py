"""Diagnostics and the two fatal pipeline errors."""

import logging
import threading
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    MALFORMED_INPUT = "MalformedInput"
    UNSUPPORTED_NODE_TYPE = "UnsupportedNodeType"
    RESOLUTION_EXHAUSTED = "ResolutionExhausted"
    DEPTH_EXCEEDED = "DepthExceeded"
    EMISSION_FAILURE = "EmissionFailure"


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    node_id: str = ""
    node_name: str = ""
    property: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class DiagnosticReport:
    """Non-fatal problems collected across a run. Safe to append from worker
    threads."""

    def __init__(self):
        self._items: list[Diagnostic] = []
        self._lock = threading.Lock()

    def add(
        self,
        kind: DiagnosticKind,
        message: str,
        *,
        node_id: str = "",
        node_name: str = "",
        property: Optional[str] = None,
    ) -> Diagnostic:
        item = Diagnostic(kind, message, node_id, node_name, property)
        with self._lock:
            self._items.append(item)
        logger.warning("%s [%s %s] %s", kind.value, node_id or "-", node_name, message)
        return item

    def of_kind(self, kind: DiagnosticKind) -> list[Diagnostic]:
        with self._lock:
            return [d for d in self._items if d.kind == kind]

    def to_list(self) -> list[dict]:
        with self._lock:
            return [d.to_dict() for d in self._items]

    def __iter__(self) -> Iterator[Diagnostic]:
        with self._lock:
            return iter(list(self._items))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class InvalidRootError(ValueError):
    """The input tree has no usable root node; nothing can be generated."""


class PipelineCancelled(RuntimeError):
    """The host asked the run to stop between top-level sibling batches."""
