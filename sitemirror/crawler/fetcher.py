"""Page loaders (selenium / requests) and the asset fetcher."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Protocol

import requests
from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.firefox.options import Options as FirefoxOptions
from selenium.webdriver.support.ui import WebDriverWait

from .config import CrawlConfig
from .errors import DownloadFailure, ExtractionError, LoadTimeout
from .parsers import HTMLParser
from .types import FetchBackend, PageData

LOGGER = logging.getLogger(__name__)


class PageLoader(Protocol):
    """Navigate to one URL, wait for it to load, and extract its data."""

    def fetch_and_extract(self, url: str) -> PageData:
        ...

    @property
    def page_handle(self) -> Any:
        ...

    def close(self) -> None:
        ...


class BrowserPageLoader:
    """Load pages in one shared Selenium browser session.

    The session is the crawl's single navigation surface: pages are loaded
    strictly one at a time and the same window is reused for screenshots.
    """

    def __init__(self, config: CrawlConfig, *, parser: HTMLParser | None = None) -> None:
        self.config = config
        self.parser = parser or HTMLParser()

        self._driver_lock = threading.Lock()
        self._driver = None
        self._closed = False

    @property
    def page_handle(self):
        return self._driver

    @property
    def closed(self) -> bool:
        return self._closed

    def fetch_and_extract(self, url: str) -> PageData:
        if self._closed:
            raise ExtractionError(url, "Page loader is closed")

        with self._driver_lock:
            try:
                driver = self._get_or_create_driver()
            except Exception as exc:
                raise ExtractionError(url, f"Failed to initialize selenium driver: {exc}") from exc

            timeout = self.config.page_load_timeout_seconds
            try:
                driver.set_page_load_timeout(max(1, int(timeout)))
                driver.get(url)
                WebDriverWait(driver, timeout).until(
                    lambda d: d.execute_script("return document.readyState") == "complete"
                )
            except TimeoutException as exc:
                raise LoadTimeout(url, timeout) from exc
            except WebDriverException as exc:
                raise ExtractionError(url, f"{exc.__class__.__name__}: {exc.msg or exc}") from exc

            # Let client-side scripts finish rendering after the load event.
            if self.config.page_settle_seconds > 0:
                time.sleep(self.config.page_settle_seconds)

            try:
                final_url = driver.current_url or url
                html = driver.page_source or ""
            except WebDriverException as exc:
                raise ExtractionError(url, f"Failed to extract page data: {exc.msg or exc}") from exc

        if not html.strip():
            raise ExtractionError(url, "Failed to extract page data")
        return self.parser.parse(url=url, html=html, final_url=final_url)

    def close(self) -> None:
        """Quit the browser session. Safe to call more than once."""

        self._closed = True
        with self._driver_lock:
            if self._driver is None:
                return
            try:
                self._driver.quit()
            except WebDriverException as exc:
                LOGGER.debug("Browser already gone while closing: %s", exc)
            finally:
                self._driver = None

    def __enter__(self) -> "BrowserPageLoader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _get_or_create_driver(self):
        if self._driver is not None:
            return self._driver

        errors: list[str] = []

        # Try Chrome first: screenshots rely on its DevTools commands.
        try:
            chrome_options = ChromeOptions()
            if self.config.headless:
                chrome_options.add_argument("--headless=new")
            chrome_options.add_argument("--disable-gpu")
            chrome_options.add_argument("--no-sandbox")
            chrome_options.add_argument("--disable-dev-shm-usage")
            chrome_options.add_argument("--window-size=1920,1080")
            chrome_options.add_argument(f"--user-agent={self.config.user_agent}")
            self._driver = webdriver.Chrome(options=chrome_options)
            return self._driver
        except Exception as exc:
            errors.append(f"Chrome: {exc}")

        try:
            firefox_options = FirefoxOptions()
            if self.config.headless:
                firefox_options.add_argument("-headless")
            firefox_options.set_preference("general.useragent.override", self.config.user_agent)
            self._driver = webdriver.Firefox(options=firefox_options)
            self._driver.set_window_size(1920, 1080)
            return self._driver
        except Exception as exc:
            errors.append(f"Firefox: {exc}")

        raise RuntimeError("; ".join(errors) or "No usable Selenium driver found")


class RequestsPageLoader:
    """Load raw HTML over HTTP without a browser (no JS, no screenshots)."""

    def __init__(
        self,
        config: CrawlConfig,
        *,
        parser: HTMLParser | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.parser = parser or HTMLParser()
        self._session = session or requests.Session()
        self._owns_session = session is None

    @property
    def page_handle(self) -> None:
        return None

    def fetch_and_extract(self, url: str) -> PageData:
        timeout = self.config.page_load_timeout_seconds
        try:
            response = self._session.get(
                url,
                headers=self.config.headers(),
                timeout=timeout,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            raise LoadTimeout(url, timeout) from exc
        except requests.RequestException as exc:
            raise ExtractionError(url, f"{exc.__class__.__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise ExtractionError(url, f"HTTP status {response.status_code}")

        content_type = (response.headers.get("Content-Type") or "").lower()
        if content_type and "html" not in content_type:
            raise ExtractionError(url, f"Unsupported content type: {content_type}")

        return self.parser.parse(url=url, html=response.content or b"", final_url=response.url or url)

    def close(self) -> None:
        if self._owns_session:
            self._session.close()


class AssetFetcher:
    """Download asset bytes with one requests session per worker thread."""

    def __init__(self, config: CrawlConfig) -> None:
        self.config = config
        self._thread_local = threading.local()

    def fetch(self, url: str) -> bytes:
        session = self._thread_local_session()
        try:
            response = session.get(
                url,
                headers=self.config.headers(),
                timeout=self.config.asset_timeout_seconds,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            raise DownloadFailure(url, f"{exc.__class__.__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise DownloadFailure(
                url,
                f"HTTP status {response.status_code}",
                status_code=response.status_code,
            )
        return response.content or b""

    def _thread_local_session(self) -> requests.Session:
        session = getattr(self._thread_local, "session", None)
        if session is None:
            session = requests.Session()
            self._thread_local.session = session
        return session


def build_page_loader(config: CrawlConfig) -> BrowserPageLoader | RequestsPageLoader:
    """Return the page loader for the configured backend."""

    if config.backend == FetchBackend.REQUESTS:
        return RequestsPageLoader(config)
    return BrowserPageLoader(config)


__all__ = [
    "AssetFetcher",
    "BrowserPageLoader",
    "PageLoader",
    "RequestsPageLoader",
    "build_page_loader",
]
