"""Core type definitions for the site mirror crawler.

This module is intentionally dependency-light so other crawler modules can import
shared records without introducing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Mapping


class FetchBackend(str, Enum):
    """Backend used to load pages."""

    REQUESTS = "requests"
    SELENIUM = "selenium"


class AssetKind(str, Enum):
    """Asset categories tracked by the download scheduler."""

    IMAGE = "image"
    STYLESHEET = "css"
    SCRIPT = "script"
    FONT = "font"

    @property
    def subfolder(self) -> str:
        return _ASSET_SUBFOLDERS[self]


_ASSET_SUBFOLDERS = {
    AssetKind.IMAGE: "images",
    AssetKind.STYLESHEET: "css",
    AssetKind.SCRIPT: "js",
    AssetKind.FONT: "fonts",
}


class EntryStatus(str, Enum):
    """Lifecycle of one sitemap entry. Transitions only PENDING -> VISITED."""

    PENDING = "pending"
    VISITED = "visited"


class CrawlStage(str, Enum):
    """Crawl stage names for error reporting."""

    FRONTIER = "frontier"
    FETCH = "fetch"
    SCREENSHOT = "screenshot"
    ASSET = "asset"
    STORE = "store"


class RunStatus(str, Enum):
    """Persisted run status values."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class EventType(str, Enum):
    """Event kinds published to crawl listeners."""

    STATUS = "status"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


JSONPrimitive = str | int | float | bool | None
JSONValue = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]
JSONDict = dict[str, JSONValue]


def utc_now_iso() -> str:
    """Return an RFC3339-like UTC timestamp string for manifests/JSONL."""

    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True, slots=True)
class LinkRecord:
    """One anchor discovered on a page."""

    url: str
    text: str = ""
    title: str = ""

    def to_json(self) -> JSONDict:
        return {"url": self.url, "text": self.text, "title": self.title}


@dataclass(slots=True)
class PageAssets:
    """Asset URLs referenced by one page, grouped by kind."""

    images: list[str] = field(default_factory=list)
    stylesheets: list[str] = field(default_factory=list)
    scripts: list[str] = field(default_factory=list)
    fonts: list[str] = field(default_factory=list)

    def iter_records(self) -> Iterator[tuple[str, AssetKind]]:
        """Yield `(url, kind)` pairs in category then document order."""

        for url in self.images:
            yield url, AssetKind.IMAGE
        for url in self.stylesheets:
            yield url, AssetKind.STYLESHEET
        for url in self.scripts:
            yield url, AssetKind.SCRIPT
        for url in self.fonts:
            yield url, AssetKind.FONT

    def __len__(self) -> int:
        return len(self.images) + len(self.stylesheets) + len(self.scripts) + len(self.fonts)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "PageAssets":
        # Client payloads name stylesheets "css".
        stylesheets = payload.get("stylesheets", payload.get("css", []))
        return cls(
            images=[str(url) for url in payload.get("images", []) or []],
            stylesheets=[str(url) for url in stylesheets or []],
            scripts=[str(url) for url in payload.get("scripts", []) or []],
            fonts=[str(url) for url in payload.get("fonts", []) or []],
        )

    def to_json(self) -> JSONDict:
        return {
            "images": list(self.images),
            "stylesheets": list(self.stylesheets),
            "scripts": list(self.scripts),
            "fonts": list(self.fonts),
        }


@dataclass(slots=True)
class PageData:
    """Result of loading and extracting one page."""

    url: str
    final_url: str | None
    html: str
    links: list[LinkRecord] = field(default_factory=list)
    assets: PageAssets = field(default_factory=PageAssets)
    metadata: dict[str, JSONValue] = field(default_factory=dict)
    navigation: list[dict[str, JSONValue]] = field(default_factory=list)

    @property
    def title(self) -> str:
        value = self.metadata.get("title")
        return value if isinstance(value, str) else ""


@dataclass(slots=True)
class FrontierEntry:
    """One sitemap node, keyed by the raw URL as first discovered."""

    url: str
    depth: int
    parent_url: str | None = None
    children: list[str] = field(default_factory=list)
    status: EntryStatus = EntryStatus.PENDING
    link_text: str | None = None

    def to_json(self) -> JSONDict:
        return {
            "url": self.url,
            "depth": self.depth,
            "parent": self.parent_url,
            "status": self.status.value,
            "link_text": self.link_text,
        }


@dataclass(frozen=True, slots=True)
class FrontierItem:
    """A queued crawl candidate."""

    url: str
    depth: int
    parent_url: str | None = None
    discovered_at: str = field(default_factory=utc_now_iso)


@dataclass(frozen=True, slots=True)
class AssetRecord:
    """One deduplicated asset scheduled for download."""

    url: str
    kind: AssetKind


@dataclass(slots=True)
class DownloadStats:
    """Running asset counters for one crawl run."""

    total: int = 0
    images: int = 0
    stylesheets: int = 0
    scripts: int = 0
    fonts: int = 0
    failed: int = 0

    def record_success(self, kind: AssetKind) -> None:
        if kind == AssetKind.IMAGE:
            self.images += 1
        elif kind == AssetKind.STYLESHEET:
            self.stylesheets += 1
        elif kind == AssetKind.SCRIPT:
            self.scripts += 1
        elif kind == AssetKind.FONT:
            self.fonts += 1

    @property
    def downloaded(self) -> int:
        return self.images + self.stylesheets + self.scripts + self.fonts

    def copy(self) -> "DownloadStats":
        return DownloadStats(
            total=self.total,
            images=self.images,
            stylesheets=self.stylesheets,
            scripts=self.scripts,
            fonts=self.fonts,
            failed=self.failed,
        )

    def to_json(self) -> JSONDict:
        return {
            "total": self.total,
            "images": self.images,
            "stylesheets": self.stylesheets,
            "scripts": self.scripts,
            "fonts": self.fonts,
            "failed": self.failed,
        }


@dataclass(slots=True)
class ScreenshotSet:
    """PNG bytes captured for one page."""

    desktop: bytes | None = None
    mobile: bytes | None = None

    @property
    def count(self) -> int:
        return int(self.desktop is not None) + int(self.mobile is not None)

    def items(self) -> Iterator[tuple[str, bytes]]:
        if self.desktop is not None:
            yield "desktop", self.desktop
        if self.mobile is not None:
            yield "mobile", self.mobile


@dataclass(slots=True)
class Progress:
    """Progress counters reported after each page."""

    processed: int = 0
    total: int = 0
    current_url: str | None = None

    def to_json(self) -> JSONDict:
        return {
            "processed": self.processed,
            "total": self.total,
            "current_url": self.current_url,
        }


@dataclass(frozen=True, slots=True)
class CrawlEvent:
    """One event published to crawl listeners."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)

    def to_json(self) -> JSONDict:
        return {
            "type": self.type.value,
            "data": dict(self.data),
            "created_at": self.created_at,
        }


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One error row written to errors.jsonl."""

    stage: CrawlStage
    url: str
    message: str
    error_type: str | None = None
    referrer: str | None = None
    status_code: int | None = None
    created_at: str = field(default_factory=utc_now_iso)
    metadata: dict[str, JSONValue] = field(default_factory=dict)

    @classmethod
    def from_exception(
        cls,
        *,
        stage: CrawlStage,
        url: str,
        exc: Exception,
        **kwargs: Any,
    ) -> "ErrorRecord":
        return cls(
            stage=stage,
            url=url,
            message=str(exc),
            error_type=exc.__class__.__name__,
            **kwargs,
        )

    def to_json(self) -> JSONDict:
        return {
            "stage": self.stage.value,
            "url": self.url,
            "message": self.message,
            "error_type": self.error_type,
            "referrer": self.referrer,
            "status_code": self.status_code,
            "created_at": self.created_at,
            "metadata": self.metadata,
        }


__all__ = [
    "AssetKind",
    "AssetRecord",
    "CrawlEvent",
    "CrawlStage",
    "DownloadStats",
    "EntryStatus",
    "ErrorRecord",
    "EventType",
    "FetchBackend",
    "FrontierEntry",
    "FrontierItem",
    "JSONDict",
    "JSONPrimitive",
    "JSONValue",
    "LinkRecord",
    "PageAssets",
    "PageData",
    "Progress",
    "RunStatus",
    "ScreenshotSet",
    "utc_now_iso",
]
