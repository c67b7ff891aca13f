"""Crawler package: config, shared types, and crawl components."""

from .assets import AssetScheduler
from .config import CrawlConfig, load_config, save_config, validate_start_url
from .constants import DEFAULT_OUTPUT_DIR, DEFAULT_STATE_FILENAME
from .errors import (
    AlreadyRunning,
    ConfigValidationError,
    CrawlError,
    DownloadFailure,
    ExtractionError,
    LoadTimeout,
)
from .events import EventBus
from .fetcher import AssetFetcher, BrowserPageLoader, PageLoader, RequestsPageLoader, build_page_loader
from .frontier import EnqueueResult, EnqueueStatus, Frontier
from .orchestrator import CrawlOrchestrator, CrawlState
from .parsers import HTMLParser, HTMLParserConfig
from .screenshot import ScreenshotCapturer
from .service import CrawlService
from .stats import StatsCollector
from .storage import RunStateStore, Storage
from .types import (
    AssetKind,
    AssetRecord,
    CrawlEvent,
    CrawlStage,
    DownloadStats,
    EntryStatus,
    ErrorRecord,
    EventType,
    FetchBackend,
    FrontierEntry,
    FrontierItem,
    LinkRecord,
    PageAssets,
    PageData,
    Progress,
    RunStatus,
    ScreenshotSet,
    utc_now_iso,
)
from .url import (
    asset_dedup_key,
    classify_asset_url,
    extract_links_from_html,
    host_from_url,
    is_excluded,
    is_internal,
    normalize_url,
    resolve_url,
    url_to_folder_name,
)

__all__ = [
    "AlreadyRunning",
    "AssetFetcher",
    "AssetKind",
    "AssetRecord",
    "AssetScheduler",
    "BrowserPageLoader",
    "ConfigValidationError",
    "CrawlConfig",
    "CrawlError",
    "CrawlEvent",
    "CrawlOrchestrator",
    "CrawlService",
    "CrawlStage",
    "CrawlState",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_STATE_FILENAME",
    "DownloadFailure",
    "DownloadStats",
    "EnqueueResult",
    "EnqueueStatus",
    "EntryStatus",
    "ErrorRecord",
    "EventBus",
    "EventType",
    "ExtractionError",
    "FetchBackend",
    "Frontier",
    "FrontierEntry",
    "FrontierItem",
    "HTMLParser",
    "HTMLParserConfig",
    "LinkRecord",
    "LoadTimeout",
    "PageAssets",
    "PageData",
    "PageLoader",
    "Progress",
    "RequestsPageLoader",
    "RunStateStore",
    "RunStatus",
    "ScreenshotCapturer",
    "ScreenshotSet",
    "StatsCollector",
    "Storage",
    "asset_dedup_key",
    "build_page_loader",
    "classify_asset_url",
    "extract_links_from_html",
    "host_from_url",
    "is_excluded",
    "is_internal",
    "load_config",
    "normalize_url",
    "resolve_url",
    "save_config",
    "url_to_folder_name",
    "utc_now_iso",
    "validate_start_url",
]
