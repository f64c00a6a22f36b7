"""
Figma REST design source: file / node fetch, local variables and asset export.

The pipeline itself never touches the network; the CLI uses this module to
obtain the node tree and variable table, and to export manifest assets.
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, TypeVar

import requests

from .context import VariableTable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FigmaAPIClient:
    """Read-only Figma REST API wrapper."""

    BASE_URL = "https://api.figma.com/v1"

    def __init__(self, token: str, timeout: float = 30.0):
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "X-Figma-Token": token,
            "Content-Type": "application/json",
        })

    def _get(self, url: str, params: Optional[dict] = None) -> dict:
        resp = self.session.get(url, params=params or {}, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def get_file(self, file_key: str, node_ids: Optional[list] = None) -> dict:
        params = {}
        if node_ids:
            params["ids"] = ",".join(node_ids)
        return self._get(f"{self.BASE_URL}/files/{file_key}", params)

    def get_file_nodes(self, file_key: str, node_ids: list) -> dict:
        return self._get(f"{self.BASE_URL}/files/{file_key}/nodes", {"ids": ",".join(node_ids)})

    def get_local_variables(self, file_key: str) -> dict:
        return self._get(f"{self.BASE_URL}/files/{file_key}/variables/local")

    def get_images(self, file_key: str, node_ids: list, format: str = "svg", scale: int = 2) -> dict:
        params = {"ids": ",".join(node_ids), "format": format}
        if format != "svg":
            params["scale"] = scale
        return self._get(f"{self.BASE_URL}/images/{file_key}", params)

    def get_image_fills(self, file_key: str) -> dict:
        return self._get(f"{self.BASE_URL}/files/{file_key}/images")

    def download(self, url: str) -> bytes:
        # rendered image urls are pre-signed; no Figma token needed
        resp = requests.get(url, timeout=self.timeout)
        resp.raise_for_status()
        return resp.content


def fetch_design(
    client: FigmaAPIClient,
    file_key: str,
    node_ids: Optional[list] = None,
) -> tuple[dict, VariableTable]:
    """Node tree + variable table for a file (or a node selection)."""
    raw = client.get_file_nodes(file_key, node_ids) if node_ids else client.get_file(file_key)
    try:
        variables = VariableTable.from_figma_response(client.get_local_variables(file_key))
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else None
        if status not in (403, 404):
            raise
        # the variables endpoint needs a plan / scope the token may lack
        logger.warning("local variables unavailable for %s (HTTP %s); continuing without them", file_key, status)
        variables = VariableTable()
    return raw, variables


# ════════════════════════════════════════════════════════════
# Asset export
# ════════════════════════════════════════════════════════════

def _with_retries(
    fn: Callable[[], T],
    retries: int,
    backoff: float,
    cancel_event: Optional[threading.Event] = None,
) -> T:
    attempt = 0
    while True:
        try:
            return fn()
        except requests.RequestException as exc:
            if attempt >= retries or (cancel_event is not None and cancel_event.is_set()):
                raise
            wait = backoff * (2 ** attempt)
            logger.warning("request failed (%s), retry %d/%d in %.1fs", exc, attempt + 1, retries, wait)
            time.sleep(wait)
            attempt += 1


def _batches(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def export_assets(
    manifest: dict,
    client: FigmaAPIClient,
    file_key: str,
    *,
    batch_size: int = 50,
    max_workers: int = 4,
    retries: int = 2,
    fmt: str = "svg",
    download_dir: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    backoff: float = 1.0,
) -> dict:
    """Resolve (and optionally download) every manifest entry.

    Vector entries are rendered through ``/images`` in batches of
    ``batch_size`` node ids with at most ``max_workers`` requests in flight;
    image fills come from one ``/files/:key/images`` call. A failing batch is
    retried, then recorded as ``error`` on its entries; other batches carry on.
    """
    entries = manifest.get("assets", [])
    vectors = [e for e in entries if e.get("kind") == "vector"]
    images = [e for e in entries if e.get("kind") == "image"]

    def render_batch(batch: list[dict]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            for entry in batch:
                entry["error"] = "cancelled"
            return
        ids = [e["sourceNodeId"] for e in batch]
        try:
            data = _with_retries(lambda: client.get_images(file_key, ids, fmt), retries, backoff, cancel_event)
        except requests.RequestException as exc:
            logger.warning("asset export failed for %d nodes: %s", len(ids), exc)
            for entry in batch:
                entry["error"] = str(exc)
            return
        urls = data.get("images") or {}
        for entry in batch:
            url = urls.get(entry["sourceNodeId"])
            if url:
                entry["url"] = url
            else:
                entry["error"] = data.get("err") or "no image rendered"

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        list(pool.map(render_batch, _batches(vectors, max(1, batch_size))))

    if images:
        try:
            data = _with_retries(lambda: client.get_image_fills(file_key), retries, backoff, cancel_event)
            fills = (data.get("meta") or {}).get("images") or {}
        except requests.RequestException as exc:
            logger.warning("image fill lookup failed: %s", exc)
            fills, error = {}, str(exc)
        else:
            error = "image fill not found"
        for entry in images:
            url = fills.get(entry.get("imageRef"))
            if url:
                entry["url"] = url
            else:
                entry["error"] = error

    if download_dir:
        _download_all([e for e in entries if e.get("url")], client, download_dir, max_workers, retries, backoff, cancel_event)

    exported = sum(1 for e in entries if "error" not in e)
    logger.info("exported %d/%d assets", exported, len(entries))
    return manifest


def _download_all(
    entries: list[dict],
    client: FigmaAPIClient,
    download_dir: str,
    max_workers: int,
    retries: int,
    backoff: float,
    cancel_event: Optional[threading.Event],
) -> None:
    def fetch(entry: dict) -> None:
        if cancel_event is not None and cancel_event.is_set():
            return
        try:
            content = _with_retries(lambda: client.download(entry["url"]), retries, backoff, cancel_event)
        except requests.RequestException as exc:
            entry["error"] = str(exc)
            return
        path = os.path.join(download_dir, entry["path"])
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        list(pool.map(fetch, entries))
