"""Default values shared by config, fetchers, and storage."""

from __future__ import annotations

from .types import FetchBackend

DEFAULT_MAX_DEPTH = 5
DEFAULT_CRAWL_DELAY_MS = 500
DEFAULT_SCREENSHOT_DESKTOP = True
DEFAULT_SCREENSHOT_MOBILE = True
DEFAULT_MAX_CONCURRENT_DOWNLOADS = 3

DEFAULT_FETCH_BACKEND = FetchBackend.SELENIUM
DEFAULT_PAGE_LOAD_TIMEOUT_SECONDS = 30.0
DEFAULT_PAGE_SETTLE_SECONDS = 1.0
DEFAULT_ASSET_TIMEOUT_SECONDS = 30.0
DEFAULT_HEADLESS = True

DEFAULT_OUTPUT_DIR = "mirror_output"
DEFAULT_STATE_FILENAME = "scraper_state.json"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36 sitemirror/0.1"
)
DEFAULT_HTTP_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.8",
}

DESKTOP_VIEWPORT = (1920, 1080, 1.0)
MOBILE_VIEWPORT = (375, 812, 2.0)

JSON_INDENT = 2
SUPPORTED_CONFIG_SUFFIXES = (".json", ".yaml", ".yml")
