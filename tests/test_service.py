import json
import threading

import pytest

from conftest import FakeAssetFetcher, FakeCapturer, FakePageLoader
from sitemirror.crawler.errors import AlreadyRunning, ConfigValidationError
from sitemirror.crawler.service import CrawlService
from sitemirror.crawler.types import EventType


def _service(tmp_path, loader, storage_factory):
    return CrawlService(
        state_path=tmp_path / "scraper_state.json",
        page_loader_factory=lambda config: loader,
        asset_fetcher_factory=lambda config: FakeAssetFetcher(),
        storage_factory=storage_factory,
        screenshot_capturer=FakeCapturer(),
    )


def test_start_crawl_runs_in_background(tmp_path, site_pages, storage_factory):
    service = _service(tmp_path, FakePageLoader(site_pages), storage_factory)
    received = []
    service.subscribe(received.append)

    config = service.start_crawl({"url": "https://site.test/", "maxDepth": 1, "crawlDelayMs": 0})
    summary = service.wait(timeout=10)

    assert config.max_depth == 1
    assert summary["status"] == "completed"
    assert summary["total_pages"] == 3
    assert received[-1].type == EventType.COMPLETE

    status = service.get_status()
    assert status["running"] is False
    assert status["progress"] is None
    assert status["last_run"]["status"] == "completed"


def test_invalid_config_starts_nothing(tmp_path, storage_factory):
    service = _service(tmp_path, FakePageLoader({}), storage_factory)

    with pytest.raises(ConfigValidationError):
        service.start_crawl({"url": "not-a-url"})

    assert not service.running
    assert service.wait() is None


def test_already_running_and_surface_closed(tmp_path, site_pages, storage_factory):
    entered = threading.Event()
    release = threading.Event()

    def on_fetch(url):
        if url == "https://site.test/":
            entered.set()
            release.wait(timeout=10)

    loader = FakePageLoader(site_pages, on_fetch=on_fetch)
    service = _service(tmp_path, loader, storage_factory)
    received = []
    service.subscribe(received.append)

    service.start_crawl({"url": "https://site.test/", "crawlDelayMs": 0})
    assert entered.wait(timeout=10)

    with pytest.raises(AlreadyRunning):
        service.start_crawl({"url": "https://site.test/"})

    status = service.get_status()
    assert status["running"] is True
    assert status["progress"]["current_url"] == "https://site.test/"

    assert service.on_navigation_surface_closed() is True
    assert service.cancel_crawl() is False
    release.set()

    summary = service.wait(timeout=10)
    assert summary["status"] == "cancelled"
    assert summary["total_pages"] == 1
    assert loader.fetched == ["https://site.test/"]
    assert [event.type for event in received].count(EventType.CANCELLED) == 1
    assert service.get_status()["last_run"]["status"] == "cancelled"


def test_failed_run_is_reraised_by_wait(tmp_path):
    def broken_storage(config):
        raise OSError("disk gone")

    service = _service(tmp_path, FakePageLoader({}), broken_storage)
    service.start_crawl({"url": "https://site.test/"})

    with pytest.raises(OSError):
        service.wait(timeout=10)
    assert service.get_status()["last_run"]["status"] == "error"


def test_stale_running_state_is_reset(tmp_path, storage_factory):
    state_path = tmp_path / "scraper_state.json"
    state_path.write_text(
        json.dumps({"status": "running", "progress": {"processed": 3, "total": 9}, "timestamp": "x"}),
        encoding="utf-8",
    )

    service = _service(tmp_path, FakePageLoader({}), storage_factory)

    assert service.get_status()["last_run"]["status"] == "idle"
