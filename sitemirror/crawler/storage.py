"""Filesystem-backed storage for the site mirror and persisted run state.

Storage owns the on-disk layout. Other modules should use this API instead of
building paths manually.
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import unquote, urlsplit

from .constants import JSON_INDENT
from .types import AssetKind, ErrorRecord, JSONDict, Progress, RunStatus, utc_now_iso
from .url import output_folder_name, url_to_folder_name

_FILENAME_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9\-_.]")


def sanitize_filename(name: str) -> str:
    """Replace characters that are unsafe in file names."""

    return _FILENAME_UNSAFE_RE.sub("-", name)


class Storage:
    """Persist crawl outputs under `<output_dir>/<run folder>`.

    Layout::

        sitemap.json, metadata.json, errors.jsonl
        <page-folder>/index.html
        <page-folder>/page-metadata.json
        <page-folder>/screenshot-{desktop,mobile}.png
        assets/{images,css,js,fonts}/<digest8>-<filename>
    """

    def __init__(
        self,
        output_dir: str | Path,
        *,
        start_url: str | None = None,
        folder_name: str | None = None,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.folder_name = folder_name or output_folder_name(start_url or "")
        self.root = self.output_dir / self.folder_name

        self.assets_dir = self.root / "assets"
        self.sitemap_path = self.root / "sitemap.json"
        self.summary_path = self.root / "metadata.json"
        self.errors_path = self.root / "errors.jsonl"
        self.crawl_config_path = self.root / "crawl_config.json"

        self._jsonl_lock = threading.Lock()
        self._asset_lock = threading.Lock()

        self._ensure_layout()

    @property
    def paths(self) -> JSONDict:
        """Return important output paths for logging/CLI status messages."""

        return {
            "output_dir": str(self.output_dir),
            "output_folder": str(self.root),
            "sitemap": str(self.sitemap_path),
            "summary": str(self.summary_path),
            "errors": str(self.errors_path),
            "assets_dir": str(self.assets_dir),
        }

    def _ensure_layout(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        for kind in AssetKind:
            (self.assets_dir / kind.subfolder).mkdir(parents=True, exist_ok=True)

    def page_dir_for(self, url: str) -> Path:
        """Folder holding one page's artifacts."""

        return self.root / url_to_folder_name(url)

    def asset_path_for(self, url: str, kind: AssetKind) -> Path:
        """Deterministic asset path; the digest prefix keeps same-named files apart."""

        path = unquote(urlsplit(url).path)
        filename = sanitize_filename(path.rsplit("/", 1)[-1]) or "asset"
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:8]
        return self.assets_dir / kind.subfolder / f"{digest}-{filename}"

    def write_page_artifact(
        self,
        url: str,
        *,
        html: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[Path]:
        """Write `index.html` and/or `page-metadata.json` for a page."""

        page_dir = self.page_dir_for(url)
        page_dir.mkdir(parents=True, exist_ok=True)

        written: list[Path] = []
        if html is not None:
            html_path = page_dir / "index.html"
            self._atomic_write_bytes(html_path, html.encode("utf-8"))
            written.append(html_path)
        if metadata is not None:
            meta_path = page_dir / "page-metadata.json"
            self._atomic_write_json(meta_path, dict(metadata))
            written.append(meta_path)
        return written

    def write_screenshot(self, url: str, image: bytes, variant: str) -> Path:
        """Write `screenshot-<variant>.png` into the page folder."""

        if not isinstance(image, (bytes, bytearray)):
            raise TypeError("write_screenshot expects `image` as bytes")

        page_dir = self.page_dir_for(url)
        page_dir.mkdir(parents=True, exist_ok=True)
        path = page_dir / f"screenshot-{sanitize_filename(variant)}.png"
        self._atomic_write_bytes(path, bytes(image))
        return path

    def write_asset(self, url: str, data: bytes, kind: AssetKind) -> Path:
        """Persist downloaded asset bytes atomically."""

        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("write_asset expects `data` as bytes")

        path = self.asset_path_for(url, kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._asset_lock:
            self._atomic_write_bytes(path, bytes(data))
        return path

    def write_sitemap(self, sitemap: Mapping[str, Any]) -> Path:
        self._atomic_write_json(self.sitemap_path, dict(sitemap))
        return self.sitemap_path

    def write_run_summary(self, summary: Mapping[str, Any]) -> Path:
        self._atomic_write_json(self.summary_path, dict(summary))
        return self.summary_path

    def save_crawl_config(self, config: Mapping[str, Any]) -> None:
        self._atomic_write_json(self.crawl_config_path, dict(config))

    def save_error(self, record: ErrorRecord) -> None:
        """Append error record to `errors.jsonl`."""

        self._append_jsonl(self.errors_path, record.to_json())

    def _append_jsonl(self, path: Path, payload: Mapping[str, Any]) -> None:
        line = json.dumps(payload, ensure_ascii=False, sort_keys=True)
        with self._jsonl_lock:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    @staticmethod
    def _atomic_write_bytes(path: Path, data: bytes) -> None:
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=".tmp",
        )
        try:
            with os.fdopen(tmp_fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    @classmethod
    def _atomic_write_json(cls, path: Path, payload: Mapping[str, Any]) -> None:
        content = json.dumps(payload, ensure_ascii=False, indent=JSON_INDENT, sort_keys=True) + "\n"
        cls._atomic_write_bytes(path, content.encode("utf-8"))


class RunStateStore:
    """Last known `{status, progress, timestamp}` of the crawl service.

    Survives process restarts so a UI can reattach to (or report on) a run.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def save(self, status: RunStatus, progress: Progress | None = None, **extra: Any) -> JSONDict:
        payload: JSONDict = {
            "status": status.value,
            "progress": None if progress is None else progress.to_json(),
            "timestamp": utc_now_iso(),
        }
        payload.update(extra)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            Storage._atomic_write_json(self.path, payload)
        return payload

    def load(self) -> JSONDict | None:
        """Return the persisted state, or None when missing or unreadable."""

        with self._lock:
            if not self.path.exists():
                return None
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                return None
        return payload if isinstance(payload, dict) else None


__all__ = ["RunStateStore", "Storage", "sanitize_filename"]
