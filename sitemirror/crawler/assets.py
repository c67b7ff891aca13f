"""Asset deduplication and bounded-concurrency download scheduling."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Mapping

from .errors import DownloadFailure
from .types import AssetKind, AssetRecord, DownloadStats, PageAssets
from .url import asset_dedup_key

LOGGER = logging.getLogger(__name__)

AssetDownload = Callable[[AssetRecord], None]
FailureHook = Callable[[AssetRecord, Exception], None]


class AssetScheduler:
    """Queue distinct asset URLs and drain them with a fixed-size worker pool.

    - `submit` dedups by origin + path; each key is queued at most once per run.
    - `drain` runs `max_concurrent` worker threads over a FIFO queue, so no more
      than `max_concurrent` downloads are ever in flight.
    - One failed download is logged and counted; the drain keeps going.
    """

    def __init__(
        self,
        download: AssetDownload,
        *,
        max_concurrent: int = 3,
        on_failure: FailureHook | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be > 0")

        self._download = download
        self._on_failure = on_failure
        self.max_concurrent = max_concurrent
        self._cancel_event = cancel_event or threading.Event()

        self._queue: queue.Queue[AssetRecord] = queue.Queue()
        self._lock = threading.Lock()
        self._seen: set[str] = set()
        self._stats = DownloadStats()

        self._in_flight = 0
        self._peak_in_flight = 0
        self._attempted = 0

    def submit(self, page_assets: PageAssets | Mapping[str, Any]) -> int:
        """Queue unseen assets from one page. Returns how many were newly queued."""

        if not isinstance(page_assets, PageAssets):
            page_assets = PageAssets.from_mapping(page_assets)

        queued = 0
        for url, kind in page_assets.iter_records():
            if self.add(url, kind):
                queued += 1
        return queued

    def add(self, url: str, kind: AssetKind) -> bool:
        """Queue one asset URL. Returns False for duplicates and skipped URLs."""

        key = asset_dedup_key(url)
        if key is None:
            return False

        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
            self._stats.total += 1

        self._queue.put(AssetRecord(url=key, kind=kind))
        return True

    def drain(self, max_concurrent: int | None = None) -> DownloadStats:
        """Download everything queued; return once all downloads have settled."""

        workers_count = max_concurrent or self.max_concurrent
        if workers_count <= 0:
            raise ValueError("max_concurrent must be > 0")

        pending = self._queue.qsize()
        if pending == 0:
            return self.stats()

        LOGGER.info("Draining %d assets with %d workers", pending, workers_count)

        workers = [
            threading.Thread(
                target=self._worker,
                name=f"asset-worker-{idx}",
                daemon=True,
            )
            for idx in range(min(workers_count, pending))
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        return self.stats()

    def _worker(self) -> None:
        while not self._cancel_event.is_set():
            try:
                record = self._queue.get(block=False)
            except queue.Empty:
                return

            with self._lock:
                self._in_flight += 1
                self._attempted += 1
                self._peak_in_flight = max(self._peak_in_flight, self._in_flight)

            try:
                self._download(record)
            except Exception as exc:
                self._record_failure(record, exc)
            else:
                with self._lock:
                    self._stats.record_success(record.kind)
            finally:
                with self._lock:
                    self._in_flight -= 1
                self._queue.task_done()

    def _record_failure(self, record: AssetRecord, exc: Exception) -> None:
        if isinstance(exc, DownloadFailure):
            LOGGER.warning("Failed to download asset %s: %s", record.url, exc)
        else:
            LOGGER.exception("Unexpected error downloading asset %s", record.url)

        with self._lock:
            self._stats.failed += 1

        if self._on_failure is not None:
            try:
                self._on_failure(record, exc)
            except Exception:
                LOGGER.exception("Asset failure hook raised for %s", record.url)

    def cancel(self) -> int:
        """Drop queued assets that have not started. Returns how many were dropped."""

        self._cancel_event.set()
        dropped = 0
        while True:
            try:
                self._queue.get(block=False)
            except queue.Empty:
                break
            self._queue.task_done()
            dropped += 1
        return dropped

    def stats(self) -> DownloadStats:
        with self._lock:
            return self._stats.copy()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def peak_in_flight(self) -> int:
        with self._lock:
            return self._peak_in_flight

    @property
    def attempted(self) -> int:
        with self._lock:
            return self._attempted

    def is_known(self, url: str) -> bool:
        key = asset_dedup_key(url)
        if key is None:
            return False
        with self._lock:
            return key in self._seen


__all__ = ["AssetScheduler"]
