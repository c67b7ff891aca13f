"""Crawl orchestration: the sequential BFS loop, cancellation, and final assembly."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .assets import AssetScheduler
from .config import CrawlConfig
from .errors import AlreadyRunning, ExtractionError
from .events import EventBus
from .fetcher import AssetFetcher, PageLoader, build_page_loader
from .frontier import Frontier
from .screenshot import ScreenshotCapturer
from .stats import StatsCollector
from .storage import RunStateStore, Storage
from .types import (
    AssetRecord,
    CrawlStage,
    ErrorRecord,
    EventType,
    FrontierItem,
    JSONDict,
    PageData,
    Progress,
    RunStatus,
    utc_now_iso,
)

LOGGER = logging.getLogger(__name__)

PageLoaderFactory = Callable[[CrawlConfig], PageLoader]
AssetFetcherFactory = Callable[[CrawlConfig], Any]
StorageFactory = Callable[[CrawlConfig], Storage]


def _default_storage(config: CrawlConfig) -> Storage:
    return Storage(config.output_dir, start_url=config.url)


@dataclass(slots=True)
class CrawlState:
    """Everything owned by one active crawl run."""

    config: CrawlConfig
    frontier: Frontier
    stats: StatsCollector
    storage: Storage | None = None
    scheduler: AssetScheduler | None = None
    page_loader: PageLoader | None = None
    progress: Progress = field(default_factory=Progress)
    pages: dict[str, JSONDict] = field(default_factory=dict)
    running: bool = True
    cancel_requested: bool = False

    @property
    def current_url(self) -> str | None:
        return self.progress.current_url


class CrawlOrchestrator:
    """Runs one crawl at a time: frontier, page loader, assets, screenshots, storage.

    `start` blocks until the run finishes; `cancel` may be called from another
    thread and takes effect at the next loop iteration. The page in flight is
    finished first and the navigation surface is released by the run thread.
    """

    def __init__(
        self,
        *,
        events: EventBus | None = None,
        page_loader_factory: PageLoaderFactory | None = None,
        asset_fetcher_factory: AssetFetcherFactory | None = None,
        storage_factory: StorageFactory | None = None,
        screenshot_capturer: ScreenshotCapturer | None = None,
        state_store: RunStateStore | None = None,
    ) -> None:
        self.events = events or EventBus()
        self.page_loader_factory = page_loader_factory or build_page_loader
        self.asset_fetcher_factory = asset_fetcher_factory or AssetFetcher
        self.storage_factory = storage_factory or _default_storage
        self.screenshot_capturer = screenshot_capturer or ScreenshotCapturer()
        self.state_store = state_store

        self._guard = threading.Lock()
        self._state: CrawlState | None = None
        self._last_summary: JSONDict | None = None

    @property
    def running(self) -> bool:
        with self._guard:
            return self._state is not None and self._state.running

    @property
    def state(self) -> CrawlState | None:
        return self._state

    @property
    def last_summary(self) -> JSONDict | None:
        return self._last_summary

    def start(self, config: CrawlConfig | Mapping[str, Any]) -> JSONDict:
        """Run a crawl to completion (or cancellation) and return its summary."""

        if not isinstance(config, CrawlConfig):
            config = CrawlConfig.from_dict(config)

        with self._guard:
            if self._state is not None and self._state.running:
                raise AlreadyRunning()
            state = CrawlState(
                config=config,
                frontier=Frontier(config),
                stats=StatsCollector(),
            )
            self._state = state

        try:
            summary = self._run(state)
        except Exception as exc:
            LOGGER.exception("Scraping error")
            self.events.publish(EventType.ERROR, error=str(exc))
            self._save_state(RunStatus.ERROR, state.progress, error=str(exc))
            raise
        finally:
            self._cleanup(state)

        self._last_summary = summary
        return summary

    def _run(self, state: CrawlState) -> JSONDict:
        config = state.config

        state.frontier.initialize(config.url)
        if state.cancel_requested:
            state.frontier.cancel()

        state.storage = self.storage_factory(config)
        state.storage.save_crawl_config(config.to_dict())

        asset_fetcher = self.asset_fetcher_factory(config)
        storage = state.storage

        def download(record: AssetRecord) -> None:
            storage.write_asset(record.url, asset_fetcher.fetch(record.url), record.kind)

        state.scheduler = AssetScheduler(
            download,
            max_concurrent=config.max_concurrent_downloads,
            on_failure=lambda record, exc: self._record_error(state, CrawlStage.ASSET, record.url, exc),
            cancel_event=state.frontier.cancel_event,
        )
        state.page_loader = self.page_loader_factory(config)

        self.events.status("Scraping initialized...")
        self._save_state(RunStatus.RUNNING, state.progress)

        self._crawl_pages(state)

        if state.cancel_requested:
            summary = self._finalize(state, RunStatus.CANCELLED)
            self._save_state(RunStatus.CANCELLED, state.progress)
            return summary

        self.events.status("Downloading assets...")
        downloads = state.scheduler.drain(config.max_concurrent_downloads)
        state.stats.record_downloads(downloads)

        with self._guard:
            cancelled = state.cancel_requested
        if cancelled:
            summary = self._finalize(state, RunStatus.CANCELLED)
            self._save_state(RunStatus.CANCELLED, state.progress)
            return summary

        summary = self._finalize(state, RunStatus.COMPLETED)
        self.events.publish(
            EventType.COMPLETE,
            total_pages=summary["total_pages"],
            total_assets=summary["total_assets"],
            screenshot_count=summary["total_screenshots"],
            output_folder=summary["output_folder"],
        )
        self._save_state(RunStatus.COMPLETED, state.progress)
        return summary

    def _crawl_pages(self, state: CrawlState) -> None:
        frontier = state.frontier
        delay = state.config.crawl_delay_seconds

        # has_next() is the one cancellation checkpoint per iteration.
        while frontier.has_next():
            item = frontier.next()
            if item is None:
                break

            state.progress.current_url = item.url
            self._process_page(state, item)

            progress = frontier.progress()
            state.progress.processed = progress["processed"]
            state.progress.total = progress["total"]
            self.events.publish(EventType.PROGRESS, **state.progress.to_json())
            self._save_state(RunStatus.RUNNING, state.progress)

            if delay > 0 and frontier.has_next():
                frontier.cancel_event.wait(delay)

        state.stats.record_frontier_progress(frontier.progress())

    def _process_page(self, state: CrawlState, item: FrontierItem) -> bool:
        url = item.url
        self.events.status(f"Scraping: {url}")

        try:
            page = state.page_loader.fetch_and_extract(url)
        except ExtractionError as exc:
            return self._page_failed(state, item, exc)
        except Exception as exc:
            LOGGER.exception("Unexpected error extracting %s", url)
            return self._page_failed(state, item, exc)

        state.frontier.mark_visited(url)
        state.stats.record_page(ok=True, depth=item.depth)
        state.pages[url] = {"url": url, "title": page.title, "depth": item.depth}

        enqueue_results = state.frontier.add_discovered(url, page.links, item.depth)
        state.stats.record_enqueue_many(enqueue_results)

        queued = state.scheduler.submit(page.assets)
        state.stats.record_assets_queued(queued)

        if state.config.wants_screenshots:
            self._capture_screenshots(state, url)

        self._write_page(state, url, page)
        return True

    def _page_failed(self, state: CrawlState, item: FrontierItem, exc: Exception) -> bool:
        LOGGER.warning("Error scraping %s: %s", item.url, exc)
        state.stats.record_page(ok=False)
        self._record_error(state, CrawlStage.FETCH, item.url, exc, referrer=item.parent_url)
        self.events.status(f"Error scraping {item.url}: {exc}")
        return False

    def _capture_screenshots(self, state: CrawlState, url: str) -> None:
        config = state.config
        try:
            shots = self.screenshot_capturer.capture(
                state.page_loader.page_handle,
                desktop=config.screenshot_desktop,
                mobile=config.screenshot_mobile,
            )
        except Exception as exc:
            LOGGER.warning("Screenshot capture failed for %s: %s", url, exc)
            self._record_error(state, CrawlStage.SCREENSHOT, url, exc)
            self.events.status(f"Warning: Screenshot capture failed for {url}")
            return

        for variant, image in shots.items():
            try:
                state.storage.write_screenshot(url, image, variant)
            except OSError as exc:
                self._record_error(state, CrawlStage.STORE, url, exc)
                continue
            state.stats.record_screenshots(1)

    def _write_page(self, state: CrawlState, url: str, page: PageData) -> None:
        metadata = dict(page.metadata)
        metadata["final_url"] = page.final_url
        metadata["links"] = [link.to_json() for link in page.links]
        metadata["assets"] = page.assets.to_json()
        metadata["navigation"] = page.navigation
        try:
            state.storage.write_page_artifact(url, html=page.html, metadata=metadata)
        except OSError as exc:
            LOGGER.warning("Failed to write page artifacts for %s: %s", url, exc)
            self._record_error(state, CrawlStage.STORE, url, exc)

    def _finalize(self, state: CrawlState, status: RunStatus) -> JSONDict:
        self.events.status("Generating sitemap...")
        state.storage.write_sitemap(state.frontier.snapshot())

        self.events.status("Generating metadata...")
        state.stats.finish()
        summary = self._build_summary(state, status)
        state.storage.write_run_summary(summary)
        return summary

    def _build_summary(self, state: CrawlState, status: RunStatus) -> JSONDict:
        frontier = state.frontier
        downloads = state.scheduler.stats() if state.scheduler else None
        pages: list[JSONDict] = []
        for entry in frontier.entries():
            page = state.pages.get(entry.url)
            if page is not None:
                pages.append(page)

        return {
            "status": status.value,
            "scraped_at": utc_now_iso(),
            "start_url": frontier.start_url,
            "base_url": frontier.base_origin,
            "total_pages": len(frontier.visited_urls()),
            "max_depth": frontier.max_depth,
            "total_screenshots": state.stats.screenshots,
            "total_assets": 0 if downloads is None else downloads.total,
            "assets": None if downloads is None else downloads.to_json(),
            "output_folder": state.storage.folder_name,
            "paths": state.storage.paths,
            "pages": pages,
            "stats": state.stats.to_json(),
        }

    def cancel(self) -> bool:
        """Request cancellation of the active run. Returns False when idle."""

        with self._guard:
            state = self._state
            if state is None or not state.running or state.cancel_requested:
                return False
            state.cancel_requested = True

        state.frontier.cancel()
        if state.scheduler is not None:
            dropped = state.scheduler.cancel()
            if dropped:
                LOGGER.info("Dropped %d queued assets on cancel", dropped)

        self.events.status("Cancelling scraping...")

        self._save_state(RunStatus.CANCELLED, state.progress)
        self.events.publish(EventType.CANCELLED)
        return True

    def status(self) -> JSONDict:
        """Return `{status, running, progress}` for the control surface."""

        with self._guard:
            state = self._state
            running = state is not None and state.running
            return {
                "status": RunStatus.RUNNING.value if running else RunStatus.IDLE.value,
                "running": running,
                "progress": state.progress.to_json() if running else None,
            }

    def _cleanup(self, state: CrawlState) -> None:
        self._release_page_loader(state)
        with self._guard:
            state.running = False

    @staticmethod
    def _release_page_loader(state: CrawlState) -> None:
        loader = state.page_loader
        if loader is None:
            return
        try:
            loader.close()
        except Exception:
            LOGGER.exception("Failed to release navigation surface")

    def _record_error(
        self,
        state: CrawlState,
        stage: CrawlStage,
        url: str,
        exc: Exception,
        **kwargs: Any,
    ) -> None:
        state.stats.record_error(stage, exc.__class__.__name__)
        if state.storage is None:
            return
        record = ErrorRecord.from_exception(
            stage=stage,
            url=url,
            exc=exc,
            status_code=getattr(exc, "status_code", None),
            **kwargs,
        )
        try:
            state.storage.save_error(record)
        except OSError:
            LOGGER.exception("Failed to persist error row for %s", url)

    def _save_state(self, status: RunStatus, progress: Progress, **extra: Any) -> None:
        if self.state_store is None:
            return
        try:
            self.state_store.save(status, progress, **extra)
        except OSError:
            LOGGER.exception("Failed to persist run state")


__all__ = ["CrawlOrchestrator", "CrawlState"]
