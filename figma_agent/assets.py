"""
Exportable asset identity and the asset manifest.

Identity is content-based: two vector subtrees with the same geometry and
paint share one manifest entry, whichever nodes they came from.
"""

import hashlib
import json
import os
from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .model import AssetRef, ExtractedNode, exports_as_asset, image_fill
from .visual import image_asset_path

# Fields that identify a node rather than describe what it looks like
_IDENTITY_FIELDS = {"id", "name", "bindings", "interactive"}
# How the asset root sits in its parent; the exported file does not carry these
_PLACEMENT_FIELDS = {"sizing", "opacity", "blend_mode"}


def _canonical(value: Any, skip: frozenset = frozenset(_PLACEMENT_FIELDS)) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, ExtractedNode):
        data = {
            f.name: _canonical(getattr(value, f.name))
            for f in fields(value)
            if f.name not in _IDENTITY_FIELDS
            and f.name not in skip
            and f.name not in ("geometry", "children")
        }
        data["kind"] = type(value).__name__
        # where the asset root sits in its parent is placement, not content
        data["size"] = [round(value.geometry.width, 2), round(value.geometry.height, 2)]
        data["children"] = [_canonical_child(c) for c in value.children]
        return dict(sorted(data.items()))
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _canonical(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, float):
        return round(value, 3)
    return value


def _canonical_child(node: ExtractedNode) -> Any:
    # child opacity and blending are drawn into the exported file
    data = _canonical(node, skip=frozenset({"sizing"}))
    # inside the subtree relative placement is part of the drawing
    data["offset"] = (round(node.geometry.x, 2), round(node.geometry.y, 2), round(node.geometry.rotation, 3))
    return data


def content_key(node: ExtractedNode) -> str:
    payload = json.dumps(_canonical(node), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]


def asset_for_node(node: ExtractedNode, fmt: str = "svg") -> Optional[AssetRef]:
    """AssetRef for an image-replacing node, or None."""
    if exports_as_asset(node):
        key = content_key(node)
        return AssetRef(key=key, kind="vector", path=f"assets/{key}.{fmt}", source_node_id=node.id)
    paint = image_fill(node)
    if paint is not None:
        return image_asset(paint.image_ref, node.id)
    return None


def image_asset(image_ref: str, node_id: str = "") -> AssetRef:
    return AssetRef(
        key=image_ref, kind="image", path=image_asset_path(image_ref),
        source_node_id=node_id, image_ref=image_ref,
    )


class AssetManifest:
    """Entries keyed by content identity, each with its reference sites."""

    def __init__(self, fmt: str = "svg"):
        self.format = fmt
        self.entries: dict[str, dict] = {}
        self.fonts: dict[str, list[int]] = {}

    def add(self, asset: AssetRef, node_id: str, node_name: str = "", usage: str = "src") -> dict:
        entry = self.entries.get(asset.key)
        if entry is None:
            entry = {
                "key": asset.key,
                "kind": asset.kind,
                "path": asset.path,
                "format": self.format if asset.kind == "vector" else "png",
                "sourceNodeId": asset.source_node_id or node_id,
                "references": [],
            }
            if asset.image_ref:
                entry["imageRef"] = asset.image_ref
            self.entries[asset.key] = entry
        site = {"nodeId": node_id, "nodeName": node_name, "usage": usage}
        if site not in entry["references"]:
            entry["references"].append(site)
        return entry

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict:
        return {
            "assets": list(self.entries.values()),
            "fonts": [{"family": family, "weights": weights} for family, weights in self.fonts.items()],
        }


def write_manifest(output_dir: str, manifest: dict) -> str:
    """The timestamp is stamped on the written file only; ``manifest`` itself
    is left as emitted."""
    path = os.path.join(output_dir, "asset-manifest.json")
    os.makedirs(output_dir, exist_ok=True)
    stamped = {"generatedAt": datetime.now(timezone.utc).isoformat(), **manifest}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(stamped, f, indent=2, ensure_ascii=False)
    return path
