import threading

import pytest

from sitemirror.crawler.errors import DownloadFailure, ExtractionError
from sitemirror.crawler.storage import Storage
from sitemirror.crawler.types import LinkRecord, PageAssets, PageData, ScreenshotSet


def make_page(url, *, links=(), images=(), stylesheets=(), title="Page"):
    return PageData(
        url=url,
        final_url=url,
        html=f"<html><head><title>{title}</title></head><body>{url}</body></html>",
        links=[LinkRecord(url=link, text=link.rsplit("/", 1)[-1]) for link in links],
        assets=PageAssets(images=list(images), stylesheets=list(stylesheets)),
        metadata={"title": title},
    )


class FakePageLoader:
    """Serves canned pages; values that are exceptions are raised instead."""

    def __init__(self, pages, *, on_fetch=None):
        self.pages = pages
        self.on_fetch = on_fetch
        self.fetched = []
        self.closed = False

    @property
    def page_handle(self):
        return None if self.closed else object()

    def fetch_and_extract(self, url):
        self.fetched.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)
        page = self.pages.get(url)
        if page is None:
            raise ExtractionError(url, "Failed to extract page data")
        if isinstance(page, Exception):
            raise page
        return page

    def close(self):
        self.closed = True


class FakeCapturer:
    def __init__(self):
        self.calls = 0
        self.handles = []

    def capture(self, page_handle, *, desktop=True, mobile=True):
        self.calls += 1
        self.handles.append(page_handle)
        return ScreenshotSet(
            desktop=b"desktop-png" if desktop else None,
            mobile=b"mobile-png" if mobile else None,
        )


class FakeAssetFetcher:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.fetched = []
        self._lock = threading.Lock()

    def fetch(self, url):
        with self._lock:
            self.fetched.append(url)
        if url in self.failing:
            raise DownloadFailure(url, "HTTP status 404", status_code=404)
        return f"asset:{url}".encode("utf-8")


@pytest.fixture
def site_pages():
    return {
        "https://site.test/": make_page(
            "https://site.test/",
            links=["https://site.test/a", "https://site.test/b", "https://other.test/x"],
            images=["https://cdn.test/logo.png?v=1"],
            title="Home",
        ),
        "https://site.test/a": make_page(
            "https://site.test/a",
            links=["https://site.test/", "https://site.test/a/deep"],
            images=["https://cdn.test/logo.png?v=2", "https://cdn.test/a.jpg"],
            stylesheets=["https://site.test/style.css"],
            title="A",
        ),
        "https://site.test/b": make_page("https://site.test/b", title="B"),
        "https://site.test/a/deep": make_page("https://site.test/a/deep", title="Deep"),
    }


@pytest.fixture
def storage_factory(tmp_path):
    def factory(config):
        return Storage(tmp_path / "out", start_url=config.url, folder_name="run")

    return factory
