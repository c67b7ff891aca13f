"""Thread-safe crawl statistics aggregation utilities."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
import threading
from typing import Any, Iterable, Mapping

from .frontier import EnqueueResult, EnqueueStatus
from .types import CrawlStage, DownloadStats, utc_now_iso


class StatsCollector:
    """Collect and summarize statistics for one crawl run.

    The crawl loop is single-threaded, but asset workers report failures
    concurrently, so every update goes through one lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        self.started_at = utc_now_iso()
        self.finished_at: str | None = None

        self._pages_ok = 0
        self._pages_error = 0
        self._screenshots = 0
        self._screenshot_errors = 0
        self._page_write_errors = 0
        self._assets_queued = 0
        self._links_seen = 0

        self._enqueue_counts: dict[str, int] = defaultdict(int)
        self._error_type_counts: dict[str, int] = defaultdict(int)
        self._error_stage_counts: dict[str, int] = defaultdict(int)
        self._depth_counts: dict[str, int] = defaultdict(int)

        self._downloads = DownloadStats()
        self._frontier_progress: dict[str, int] = {}

    def record_enqueue(self, result_or_status: EnqueueResult | EnqueueStatus) -> None:
        """Record one discovered-link outcome."""

        if isinstance(result_or_status, EnqueueResult):
            status = result_or_status.status
        else:
            status = result_or_status

        with self._lock:
            self._links_seen += 1
            self._enqueue_counts[status.value] += 1

    def record_enqueue_many(self, results: Iterable[EnqueueResult]) -> None:
        for result in results:
            self.record_enqueue(result)

    def record_page(self, *, ok: bool, depth: int | None = None) -> None:
        with self._lock:
            if ok:
                self._pages_ok += 1
                if depth is not None:
                    self._depth_counts[str(depth)] += 1
            else:
                self._pages_error += 1

    def record_screenshots(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._screenshots += count

    def record_assets_queued(self, count: int) -> None:
        if count <= 0:
            return
        with self._lock:
            self._assets_queued += count

    def record_error(self, stage: CrawlStage, error_type: str | None) -> None:
        """Record one contained failure by stage and exception type."""

        with self._lock:
            self._error_stage_counts[stage.value] += 1
            self._error_type_counts[error_type or "Unknown"] += 1
            if stage == CrawlStage.SCREENSHOT:
                self._screenshot_errors += 1
            elif stage == CrawlStage.STORE:
                self._page_write_errors += 1

    def record_downloads(self, stats: DownloadStats) -> None:
        with self._lock:
            self._downloads = stats.copy()

    def record_frontier_progress(self, progress: Mapping[str, int]) -> None:
        with self._lock:
            self._frontier_progress = dict(progress)

    @property
    def screenshots(self) -> int:
        with self._lock:
            return self._screenshots

    def finish(self) -> None:
        with self._lock:
            self.finished_at = utc_now_iso()

    def to_json(self) -> dict[str, Any]:
        """Return the full stats payload."""

        with self._lock:
            duration = None
            if self.finished_at is not None:
                started = datetime.fromisoformat(self.started_at)
                finished = datetime.fromisoformat(self.finished_at)
                duration = (finished - started).total_seconds()

            return {
                "pages_ok": self._pages_ok,
                "pages_error": self._pages_error,
                "screenshots": self._screenshots,
                "screenshot_errors": self._screenshot_errors,
                "page_write_errors": self._page_write_errors,
                "links_seen": self._links_seen,
                "assets_queued": self._assets_queued,
                "assets": self._downloads.to_json(),
                "enqueue": dict(sorted(self._enqueue_counts.items())),
                "pages_by_depth": dict(sorted(self._depth_counts.items())),
                "errors_by_stage": dict(sorted(self._error_stage_counts.items())),
                "errors_by_type": dict(sorted(self._error_type_counts.items())),
                "frontier": dict(self._frontier_progress),
                "started_at": self.started_at,
                "finished_at": self.finished_at,
                "duration_seconds": duration,
            }


__all__ = ["StatsCollector"]
