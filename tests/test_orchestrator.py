import json

import pytest

from conftest import FakeAssetFetcher, FakeCapturer, FakePageLoader
from sitemirror.crawler.config import CrawlConfig
from sitemirror.crawler.errors import AlreadyRunning, LoadTimeout
from sitemirror.crawler.events import EventBus
from sitemirror.crawler.orchestrator import CrawlOrchestrator
from sitemirror.crawler.storage import RunStateStore
from sitemirror.crawler.types import EventType


def _config(**overrides):
    payload = {"url": "https://site.test/", "crawl_delay_ms": 0}
    payload.update(overrides)
    return CrawlConfig.from_dict(payload)


def _orchestrator(loader, storage_factory, *, fetcher=None, capturer=None, state_store=None):
    events = EventBus()
    received = []
    events.subscribe(received.append)
    orchestrator = CrawlOrchestrator(
        events=events,
        page_loader_factory=lambda config: loader,
        asset_fetcher_factory=lambda config: fetcher or FakeAssetFetcher(),
        storage_factory=storage_factory,
        screenshot_capturer=capturer or FakeCapturer(),
        state_store=state_store,
    )
    return orchestrator, received


def _types(events):
    return [event.type for event in events]


def test_full_crawl_writes_mirror(tmp_path, site_pages, storage_factory):
    loader = FakePageLoader(site_pages)
    fetcher = FakeAssetFetcher()
    state_store = RunStateStore(tmp_path / "state.json")
    orchestrator, events = _orchestrator(loader, storage_factory, fetcher=fetcher, state_store=state_store)

    summary = orchestrator.start(_config())

    assert loader.fetched == [
        "https://site.test/",
        "https://site.test/a",
        "https://site.test/b",
        "https://site.test/a/deep",
    ]
    assert loader.closed
    assert summary["status"] == "completed"
    assert summary["total_pages"] == 4
    assert summary["total_screenshots"] == 8
    assert summary["total_assets"] == 3
    assert sorted(fetcher.fetched) == [
        "https://cdn.test/a.jpg",
        "https://cdn.test/logo.png",
        "https://site.test/style.css",
    ]
    assert [page["title"] for page in summary["pages"]] == ["Home", "A", "B", "Deep"]

    root = tmp_path / "out" / "run"
    assert (root / "home" / "index.html").exists()
    assert (root / "a" / "deep" / "screenshot-desktop.png").read_bytes() == b"desktop-png"
    assert len(list((root / "assets" / "images").iterdir())) == 2
    sitemap = json.loads((root / "sitemap.json").read_text(encoding="utf-8"))
    assert [child["url"] for child in sitemap["hierarchy"]["children"]] == [
        "https://site.test/a",
        "https://site.test/b",
    ]

    complete = [event for event in events if event.type == EventType.COMPLETE]
    assert len(complete) == 1
    assert complete[0].data == {
        "total_pages": 4,
        "total_assets": 3,
        "screenshot_count": 8,
        "output_folder": "run",
    }
    progress = [event.data for event in events if event.type == EventType.PROGRESS]
    assert progress[-1] == {"processed": 4, "total": 4, "current_url": "https://site.test/a/deep"}
    assert _types(events)[-1] == EventType.COMPLETE
    assert EventType.CANCELLED not in _types(events)

    assert state_store.load()["status"] == "completed"
    assert orchestrator.status() == {"status": "idle", "running": False, "progress": None}


def test_failed_page_is_skipped_and_crawl_continues(tmp_path, site_pages, storage_factory):
    site_pages["https://site.test/a"] = LoadTimeout("https://site.test/a", 30)
    loader = FakePageLoader(site_pages)
    orchestrator, events = _orchestrator(loader, storage_factory)

    summary = orchestrator.start(_config())

    assert loader.fetched == ["https://site.test/", "https://site.test/a", "https://site.test/b"]
    assert summary["status"] == "completed"
    assert summary["total_pages"] == 2
    assert summary["stats"]["pages_error"] == 1

    errors_path = tmp_path / "out" / "run" / "errors.jsonl"
    rows = [json.loads(line) for line in errors_path.read_text(encoding="utf-8").splitlines()]
    assert rows[0]["stage"] == "fetch"
    assert rows[0]["error_type"] == "LoadTimeout"
    assert rows[0]["referrer"] == "https://site.test/"

    messages = [event.data.get("message", "") for event in events if event.type == EventType.STATUS]
    assert any(message.startswith("Error scraping https://site.test/a") for message in messages)
    assert _types(events)[-1] == EventType.COMPLETE


def test_screenshots_disabled_skips_capture(site_pages, storage_factory):
    capturer = FakeCapturer()
    orchestrator, _ = _orchestrator(FakePageLoader(site_pages), storage_factory, capturer=capturer)

    summary = orchestrator.start(_config(screenshot_desktop=False, screenshot_mobile=False))

    assert capturer.calls == 0
    assert summary["total_screenshots"] == 0


def test_screenshot_failure_is_not_fatal(site_pages, storage_factory):
    class BrokenCapturer:
        def capture(self, page_handle, *, desktop=True, mobile=True):
            raise RuntimeError("devtools unavailable")

    orchestrator, events = _orchestrator(FakePageLoader(site_pages), storage_factory, capturer=BrokenCapturer())

    summary = orchestrator.start(_config(max_depth=0))

    assert summary["total_pages"] == 1
    assert summary["stats"]["screenshot_errors"] == 1
    messages = [event.data.get("message", "") for event in events if event.type == EventType.STATUS]
    assert "Warning: Screenshot capture failed for https://site.test/" in messages


def test_failed_asset_downloads_are_counted(site_pages, storage_factory):
    fetcher = FakeAssetFetcher(failing={"https://site.test/style.css"})
    orchestrator, _ = _orchestrator(FakePageLoader(site_pages), storage_factory, fetcher=fetcher)

    summary = orchestrator.start(_config())

    assert summary["assets"]["failed"] == 1
    assert summary["assets"]["images"] == 2
    assert summary["stats"]["errors_by_stage"] == {"asset": 1}


def test_cancel_mid_crawl(tmp_path, site_pages, storage_factory):
    state_store = RunStateStore(tmp_path / "state.json")
    holder = {}

    def on_fetch(url):
        if url == "https://site.test/a":
            holder["first"] = holder["orchestrator"].cancel()
            holder["second"] = holder["orchestrator"].cancel()

    loader = FakePageLoader(site_pages, on_fetch=on_fetch)
    fetcher = FakeAssetFetcher()
    orchestrator, events = _orchestrator(loader, storage_factory, fetcher=fetcher, state_store=state_store)
    holder["orchestrator"] = orchestrator

    summary = orchestrator.start(_config())

    assert holder == {"orchestrator": orchestrator, "first": True, "second": False}
    assert loader.fetched == ["https://site.test/", "https://site.test/a"]
    assert loader.closed
    assert summary["status"] == "cancelled"
    assert summary["total_pages"] == 2
    assert fetcher.fetched == []

    types = _types(events)
    assert types.count(EventType.CANCELLED) == 1
    assert EventType.COMPLETE not in types

    sitemap = json.loads((tmp_path / "out" / "run" / "sitemap.json").read_text(encoding="utf-8"))
    statuses = {page["url"]: page["status"] for page in sitemap["pages"]}
    assert statuses["https://site.test/"] == "visited"
    assert statuses["https://site.test/a"] == "visited"
    assert statuses["https://site.test/b"] == "pending"
    assert state_store.load()["status"] == "cancelled"


def test_cancel_when_idle_is_a_no_op(storage_factory):
    orchestrator, events = _orchestrator(FakePageLoader({}), storage_factory)

    assert orchestrator.cancel() is False
    assert events == []


def test_second_start_while_running_is_rejected(site_pages, storage_factory):
    holder = {}

    def on_fetch(url):
        if url == "https://site.test/":
            holder["status"] = holder["orchestrator"].status()
            try:
                holder["orchestrator"].start(_config())
            except AlreadyRunning as exc:
                holder["error"] = str(exc)

    orchestrator, _ = _orchestrator(FakePageLoader(site_pages, on_fetch=on_fetch), storage_factory)
    holder["orchestrator"] = orchestrator

    orchestrator.start(_config(max_depth=0))

    assert holder["error"] == "Scraping is already in progress"
    assert holder["status"]["running"] is True
    assert holder["status"]["progress"]["current_url"] == "https://site.test/"
    assert not orchestrator.running


def test_outer_failure_emits_error_event_and_persists_state(tmp_path):
    loader = FakePageLoader({})

    def broken_storage(config):
        raise OSError("read-only file system")

    state_store = RunStateStore(tmp_path / "state.json")
    orchestrator, events = _orchestrator(loader, broken_storage, state_store=state_store)

    with pytest.raises(OSError):
        orchestrator.start(_config())

    assert events[-1].type == EventType.ERROR
    assert events[-1].data == {"error": "read-only file system"}
    assert state_store.load()["status"] == "error"
    assert not orchestrator.running


def test_loader_is_closed_after_run(site_pages, storage_factory):
    loader = FakePageLoader(site_pages)
    orchestrator, _ = _orchestrator(loader, storage_factory)

    orchestrator.start({"url": "https://site.test/", "crawlDelayMs": 0, "maxDepth": 0})

    assert loader.closed
    assert orchestrator.last_summary["total_pages"] == 1


def test_cancel_during_asset_downloads_finishes_as_cancelled(tmp_path, site_pages, storage_factory):
    state_store = RunStateStore(tmp_path / "state.json")
    holder = {}

    class CancellingFetcher(FakeAssetFetcher):
        def fetch(self, url):
            if "cancelled" not in holder:
                holder["cancelled"] = holder["orchestrator"].cancel()
            return super().fetch(url)

    fetcher = CancellingFetcher()
    orchestrator, events = _orchestrator(
        FakePageLoader(site_pages), storage_factory, fetcher=fetcher, state_store=state_store
    )
    holder["orchestrator"] = orchestrator

    summary = orchestrator.start(_config(max_concurrent_downloads=1))

    assert holder["cancelled"] is True
    assert len(fetcher.fetched) == 1
    assert summary["status"] == "cancelled"

    types = _types(events)
    assert types.count(EventType.CANCELLED) == 1
    assert EventType.COMPLETE not in types
    assert state_store.load()["status"] == "cancelled"

    written = json.loads((tmp_path / "out" / "run" / "metadata.json").read_text(encoding="utf-8"))
    assert written["status"] == "cancelled"


def test_cancel_lets_in_flight_page_keep_its_browser(tmp_path, site_pages, storage_factory):
    holder = {}

    def on_fetch(url):
        if url == "https://site.test/a":
            holder["orchestrator"].cancel()
            holder["closed_after_cancel"] = loader.closed

    loader = FakePageLoader(site_pages, on_fetch=on_fetch)
    capturer = FakeCapturer()
    orchestrator, _ = _orchestrator(loader, storage_factory, capturer=capturer)
    holder["orchestrator"] = orchestrator

    summary = orchestrator.start(_config())

    assert holder["closed_after_cancel"] is False
    assert len(capturer.handles) == 2
    assert all(handle is not None for handle in capturer.handles)
    assert summary["total_screenshots"] == 4
    page_dir = tmp_path / "out" / "run" / "a"
    assert (page_dir / "screenshot-desktop.png").read_bytes() == b"desktop-png"
    assert (page_dir / "screenshot-mobile.png").read_bytes() == b"mobile-png"
    assert loader.closed
