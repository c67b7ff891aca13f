import threading
import time

import pytest

from sitemirror.crawler.assets import AssetScheduler
from sitemirror.crawler.errors import DownloadFailure
from sitemirror.crawler.types import AssetKind, PageAssets


def test_same_origin_and_path_downloads_once():
    downloaded = []
    scheduler = AssetScheduler(downloaded.append)

    assert scheduler.submit(PageAssets(images=["https://cdn.test/a.png?v=1"])) == 1
    assert scheduler.submit({"images": ["https://cdn.test/a.png?v=2"]}) == 0

    stats = scheduler.drain()

    assert [record.url for record in downloaded] == ["https://cdn.test/a.png"]
    assert stats.total == 1
    assert stats.images == 1
    assert scheduler.is_known("https://cdn.test/a.png#x")


def test_in_flight_never_exceeds_max_concurrent():
    lock = threading.Lock()
    state = {"current": 0, "peak": 0}

    def slow_download(record):
        with lock:
            state["current"] += 1
            state["peak"] = max(state["peak"], state["current"])
        time.sleep(0.02)
        with lock:
            state["current"] -= 1

    scheduler = AssetScheduler(slow_download, max_concurrent=3)
    for idx in range(12):
        scheduler.add(f"https://cdn.test/img-{idx}.png", AssetKind.IMAGE)

    stats = scheduler.drain()

    assert stats.images == 12
    assert scheduler.attempted == 12
    assert 1 <= state["peak"] <= 3
    assert scheduler.peak_in_flight <= 3


def test_failed_download_is_counted_and_others_continue():
    failures = []

    def download(record):
        if record.url.endswith("broken.js"):
            raise DownloadFailure(record.url, "HTTP status 404", status_code=404)

    scheduler = AssetScheduler(download, on_failure=lambda record, exc: failures.append((record.url, exc)))
    scheduler.submit(
        PageAssets(
            stylesheets=["https://site.test/main.css"],
            scripts=["https://site.test/broken.js", "https://site.test/app.js"],
            fonts=["https://site.test/font.woff2"],
        )
    )

    stats = scheduler.drain(max_concurrent=2)

    assert stats.total == 4
    assert stats.failed == 1
    assert stats.stylesheets == 1
    assert stats.scripts == 1
    assert stats.fonts == 1
    assert failures[0][0] == "https://site.test/broken.js"
    assert failures[0][1].status_code == 404


def test_unexpected_errors_and_failing_hook_do_not_break_drain():
    def download(record):
        raise RuntimeError("disk full")

    def hook(record, exc):
        raise ValueError("hook broke")

    scheduler = AssetScheduler(download, on_failure=hook)
    scheduler.add("https://site.test/a.png", AssetKind.IMAGE)
    scheduler.add("https://site.test/b.png", AssetKind.IMAGE)

    stats = scheduler.drain()
    assert stats.failed == 2
    assert stats.downloaded == 0


def test_skips_inline_and_blob_urls():
    scheduler = AssetScheduler(lambda record: None)

    queued = scheduler.submit(
        {
            "images": ["data:image/png;base64,AAAA", "blob:https://site.test/1", "https://site.test/ok.png"],
            "css": ["https://site.test/theme.css"],
        }
    )

    assert queued == 2
    assert scheduler.pending == 2


def test_cancel_drops_queued_assets():
    downloaded = []
    scheduler = AssetScheduler(downloaded.append)
    for idx in range(5):
        scheduler.add(f"https://cdn.test/{idx}.png", AssetKind.IMAGE)

    assert scheduler.cancel() == 5
    stats = scheduler.drain()

    assert downloaded == []
    assert stats.total == 5
    assert stats.downloaded == 0


def test_empty_drain_returns_immediately():
    scheduler = AssetScheduler(lambda record: None)
    assert scheduler.drain().total == 0


def test_rejects_non_positive_concurrency():
    with pytest.raises(ValueError):
        AssetScheduler(lambda record: None, max_concurrent=0)
