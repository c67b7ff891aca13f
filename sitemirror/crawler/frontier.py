"""Breadth-first crawl frontier with sitemap bookkeeping.

The frontier owns three pieces of state for one crawl run:

- the FIFO queue of pages waiting to be loaded,
- the visited set of normalized URLs,
- the sitemap: one `FrontierEntry` per accepted raw URL, linked parent -> children.

Only the orchestrator's crawl loop mutates it. `cancel()` may arrive from another
thread, so queue and sitemap access go through one lock.
"""

from __future__ import annotations

import copy
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from .config import CrawlConfig
from .types import EntryStatus, FrontierEntry, FrontierItem, JSONDict, LinkRecord, utc_now_iso
from .url import is_excluded, is_internal, normalize_url, origin_of


class EnqueueStatus(str, Enum):
    """Result status for one discovered link."""

    ENQUEUED = "enqueued"
    SKIPPED_DEPTH = "skipped_depth"
    SKIPPED_VISITED = "skipped_visited"
    SKIPPED_EXTERNAL = "skipped_external"
    SKIPPED_EXCLUDED = "skipped_excluded"
    SKIPPED_KNOWN = "skipped_known"
    SKIPPED_CANCELLED = "skipped_cancelled"


@dataclass(frozen=True, slots=True)
class EnqueueResult:
    """Outcome of one discovered link."""

    status: EnqueueStatus
    url: str
    item: FrontierItem | None = None

    @property
    def accepted(self) -> bool:
        return self.status == EnqueueStatus.ENQUEUED


def _coerce_link(link: LinkRecord | str | dict[str, Any]) -> LinkRecord:
    if isinstance(link, LinkRecord):
        return link
    if isinstance(link, str):
        return LinkRecord(url=link)
    return LinkRecord(
        url=str(link.get("url", "")),
        text=str(link.get("text") or ""),
        title=str(link.get("title") or ""),
    )


class Frontier:
    """BFS queue, visited set, and sitemap graph for a single-site crawl."""

    def __init__(self, config: CrawlConfig) -> None:
        self.max_depth = config.max_depth
        self.exclude_patterns = list(config.exclude_patterns)

        self._lock = threading.Lock()
        self._cancelled = threading.Event()

        self.start_url: str | None = None
        self.base_origin: str | None = None

        self._queue: deque[FrontierItem] = deque()
        self._visited: set[str] = set()
        self._entries: dict[str, FrontierEntry] = {}

    def initialize(self, start_url: str) -> None:
        """Reset all state and seed the root entry at depth 0."""

        base_origin = origin_of(start_url)
        if base_origin is None:
            raise ValueError(f"Start URL is not absolute: {start_url!r}")

        with self._lock:
            self.start_url = start_url
            self.base_origin = base_origin
            self._cancelled.clear()
            self._queue.clear()
            self._visited.clear()
            self._entries.clear()

            self._queue.append(FrontierItem(url=start_url, depth=0, parent_url=None))
            self._entries[start_url] = FrontierEntry(url=start_url, depth=0)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def cancel_event(self) -> threading.Event:
        """Shared flag other components wait on for cooperative cancellation."""

        return self._cancelled

    def has_next(self) -> bool:
        with self._lock:
            return bool(self._queue) and not self._cancelled.is_set()

    def next(self) -> FrontierItem | None:
        """Pop the oldest queued item, or None when the queue is empty."""

        with self._lock:
            if not self._queue:
                return None
            return self._queue.popleft()

    def mark_visited(self, url: str) -> None:
        """Record `url` as visited. Idempotent."""

        with self._lock:
            self._visited.add(normalize_url(url))
            entry = self._entries.get(url)
            if entry is not None:
                entry.status = EntryStatus.VISITED

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return normalize_url(url) in self._visited

    def add_discovered(
        self,
        parent_url: str,
        links: Iterable[LinkRecord | str | dict[str, Any]],
        parent_depth: int,
    ) -> list[EnqueueResult]:
        """Accept links found on `parent_url`, preserving their order."""

        records = [_coerce_link(link) for link in links]
        if parent_depth >= self.max_depth:
            return [EnqueueResult(EnqueueStatus.SKIPPED_DEPTH, record.url) for record in records]

        results: list[EnqueueResult] = []
        with self._lock:
            parent = self._entries.get(parent_url)
            depth = parent_depth + 1

            for record in records:
                url = record.url
                if self._cancelled.is_set():
                    results.append(EnqueueResult(EnqueueStatus.SKIPPED_CANCELLED, url))
                    continue
                if normalize_url(url) in self._visited:
                    results.append(EnqueueResult(EnqueueStatus.SKIPPED_VISITED, url))
                    continue
                if not is_internal(url, self.base_origin or ""):
                    results.append(EnqueueResult(EnqueueStatus.SKIPPED_EXTERNAL, url))
                    continue
                if is_excluded(url, self.exclude_patterns):
                    results.append(EnqueueResult(EnqueueStatus.SKIPPED_EXCLUDED, url))
                    continue
                if url in self._entries:
                    results.append(EnqueueResult(EnqueueStatus.SKIPPED_KNOWN, url))
                    continue

                item = FrontierItem(url=url, depth=depth, parent_url=parent_url)
                self._entries[url] = FrontierEntry(
                    url=url,
                    depth=depth,
                    parent_url=parent_url,
                    link_text=record.text,
                )
                if parent is not None:
                    parent.children.append(url)
                self._queue.append(item)
                results.append(EnqueueResult(EnqueueStatus.ENQUEUED, url, item))

        return results

    def cancel(self) -> None:
        """Stop dequeuing: set the cancelled flag and drop pending items."""

        self._cancelled.set()
        with self._lock:
            self._queue.clear()

    def build_hierarchy(self) -> JSONDict:
        """Rebuild the nested page tree from the flat entry map."""

        with self._lock:
            return self._build_hierarchy_locked()

    def _build_hierarchy_locked(self) -> JSONDict:
        start_url = self.start_url or ""
        root = self._entries.get(start_url)
        if root is None:
            return {"url": start_url, "depth": 0, "link_text": "", "children": []}

        seen: set[str] = set()

        def build_node(url: str) -> JSONDict | None:
            entry = self._entries.get(url)
            # Missing entries are dangling references; repeats mean a cycle.
            if entry is None or url in seen:
                return None
            seen.add(url)

            children: list[JSONDict] = []
            for child_url in entry.children:
                child = build_node(child_url)
                if child is not None:
                    children.append(child)

            return {
                "url": entry.url,
                "depth": entry.depth,
                "link_text": entry.link_text or "",
                "children": children,
            }

        return build_node(root.url) or {"url": start_url, "depth": 0, "link_text": "", "children": []}

    def progress(self) -> dict[str, int]:
        """Return `{total, processed, remaining}` counters."""

        with self._lock:
            return {
                "total": len(self._entries),
                "processed": len(self._visited),
                "remaining": len(self._queue),
            }

    def visited_urls(self) -> set[str]:
        """Return snapshot of normalized visited URLs."""

        with self._lock:
            return set(self._visited)

    def entries(self) -> list[FrontierEntry]:
        """Return deep copies of all sitemap entries in discovery order."""

        with self._lock:
            return [copy.deepcopy(entry) for entry in self._entries.values()]

    def get_entry(self, url: str) -> FrontierEntry | None:
        with self._lock:
            entry = self._entries.get(url)
            return None if entry is None else copy.deepcopy(entry)

    def qsize(self) -> int:
        with self._lock:
            return len(self._queue)

    def snapshot(self) -> JSONDict:
        """Point-in-time sitemap export, detached from later mutation."""

        with self._lock:
            return {
                "start_url": self.start_url,
                "base_origin": self.base_origin,
                "total_visited": len(self._visited),
                "max_depth": self.max_depth,
                "timestamp": utc_now_iso(),
                "hierarchy": self._build_hierarchy_locked(),
                "pages": [entry.to_json() for entry in self._entries.values()],
            }


__all__ = [
    "EnqueueResult",
    "EnqueueStatus",
    "Frontier",
]
