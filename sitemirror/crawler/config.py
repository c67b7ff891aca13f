"""Typed crawl configuration with JSON/YAML load/save helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlsplit

import yaml  # type: ignore

from .constants import (
    DEFAULT_ASSET_TIMEOUT_SECONDS,
    DEFAULT_CRAWL_DELAY_MS,
    DEFAULT_FETCH_BACKEND,
    DEFAULT_HEADLESS,
    DEFAULT_HTTP_HEADERS,
    DEFAULT_MAX_CONCURRENT_DOWNLOADS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PAGE_LOAD_TIMEOUT_SECONDS,
    DEFAULT_PAGE_SETTLE_SECONDS,
    DEFAULT_SCREENSHOT_DESKTOP,
    DEFAULT_SCREENSHOT_MOBILE,
    DEFAULT_USER_AGENT,
    JSON_INDENT,
    SUPPORTED_CONFIG_SUFFIXES,
)
from .errors import ConfigValidationError
from .types import FetchBackend, JSONDict

# camelCase keys sent by UI clients, mapped onto dataclass fields.
CAMEL_CASE_ALIASES = {
    "maxDepth": "max_depth",
    "crawlDelayMs": "crawl_delay_ms",
    "crawlDelay": "crawl_delay_ms",
    "screenshotDesktop": "screenshot_desktop",
    "screenshotMobile": "screenshot_mobile",
    "excludePatterns": "exclude_patterns",
    "outputDir": "output_dir",
    "maxConcurrentDownloads": "max_concurrent_downloads",
    "pageLoadTimeoutSeconds": "page_load_timeout_seconds",
}


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"Invalid float for '{key}': {value!r}") from exc


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigValidationError(f"Invalid int for '{key}': {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"Invalid int for '{key}': {value!r}") from exc


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigValidationError(f"Invalid bool for '{key}': {value!r}")


def _to_backend(value: Any) -> FetchBackend:
    if isinstance(value, FetchBackend):
        return value
    if isinstance(value, str):
        try:
            return FetchBackend(value.strip().lower())
        except ValueError as exc:
            raise ConfigValidationError(f"Invalid backend value: {value!r}") from exc
    raise ConfigValidationError(f"Invalid backend value: {value!r}")


def _as_patterns(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        # Form input: comma-separated list.
        value = value.split(",")
    return [str(item).strip() for item in value if str(item).strip()]


def validate_start_url(url: Any) -> str:
    """Return the stripped start URL or raise ConfigValidationError."""

    if not isinstance(url, str) or not url.strip():
        raise ConfigValidationError("Please enter a URL")

    candidate = url.strip()
    try:
        parsed = urlsplit(candidate)
    except ValueError as exc:
        raise ConfigValidationError(f"Please enter a valid URL: {candidate!r}") from exc

    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise ConfigValidationError(f"Please enter a valid URL: {candidate!r}")
    return candidate


@dataclass(slots=True)
class CrawlConfig:
    """Configuration for one crawl run."""

    url: str

    max_depth: int = DEFAULT_MAX_DEPTH
    crawl_delay_ms: int = DEFAULT_CRAWL_DELAY_MS
    screenshot_desktop: bool = DEFAULT_SCREENSHOT_DESKTOP
    screenshot_mobile: bool = DEFAULT_SCREENSHOT_MOBILE
    exclude_patterns: list[str] = field(default_factory=list)

    output_dir: str = DEFAULT_OUTPUT_DIR
    state_path: str | None = None
    backend: FetchBackend = DEFAULT_FETCH_BACKEND
    headless: bool = DEFAULT_HEADLESS
    page_load_timeout_seconds: float = DEFAULT_PAGE_LOAD_TIMEOUT_SECONDS
    page_settle_seconds: float = DEFAULT_PAGE_SETTLE_SECONDS
    max_concurrent_downloads: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS
    asset_timeout_seconds: float = DEFAULT_ASSET_TIMEOUT_SECONDS

    user_agent: str = DEFAULT_USER_AGENT
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HTTP_HEADERS))

    def __post_init__(self) -> None:
        self.url = validate_start_url(self.url)
        self.exclude_patterns = _as_patterns(self.exclude_patterns)
        self.backend = _to_backend(self.backend)

        if self.max_depth < 0:
            raise ConfigValidationError("max_depth must be >= 0")
        if self.crawl_delay_ms < 0:
            raise ConfigValidationError("crawl_delay_ms must be >= 0")
        if self.max_concurrent_downloads <= 0:
            raise ConfigValidationError("max_concurrent_downloads must be > 0")
        if self.page_load_timeout_seconds <= 0:
            raise ConfigValidationError("page_load_timeout_seconds must be > 0")
        if self.page_settle_seconds < 0:
            raise ConfigValidationError("page_settle_seconds must be >= 0")
        if self.asset_timeout_seconds <= 0:
            raise ConfigValidationError("asset_timeout_seconds must be > 0")

    @property
    def crawl_delay_seconds(self) -> float:
        return self.crawl_delay_ms / 1000.0

    @property
    def wants_screenshots(self) -> bool:
        return self.screenshot_desktop or self.screenshot_mobile

    def headers(self) -> dict[str, str]:
        """Return request headers for asset and requests-backend fetches."""

        merged = dict(self.default_headers)
        merged.setdefault("User-Agent", self.user_agent)
        return merged

    def to_dict(self) -> JSONDict:
        """Serialize config for manifests and reproducibility."""

        return {
            "url": self.url,
            "max_depth": self.max_depth,
            "crawl_delay_ms": self.crawl_delay_ms,
            "screenshot_desktop": self.screenshot_desktop,
            "screenshot_mobile": self.screenshot_mobile,
            "exclude_patterns": list(self.exclude_patterns),
            "output_dir": self.output_dir,
            "state_path": self.state_path,
            "backend": self.backend.value,
            "headless": self.headless,
            "page_load_timeout_seconds": self.page_load_timeout_seconds,
            "page_settle_seconds": self.page_settle_seconds,
            "max_concurrent_downloads": self.max_concurrent_downloads,
            "asset_timeout_seconds": self.asset_timeout_seconds,
            "user_agent": self.user_agent,
            "default_headers": dict(self.default_headers),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "CrawlConfig":
        """Build config from a parsed dictionary (snake_case or camelCase keys)."""

        data: dict[str, Any] = {}
        for key, value in payload.items():
            data[CAMEL_CASE_ALIASES.get(key, key)] = value

        if "url" not in data:
            raise ConfigValidationError("Config missing required key: 'url'")

        state_path = data.get("state_path")

        return cls(
            url=data["url"],
            max_depth=_as_int(data.get("max_depth", DEFAULT_MAX_DEPTH), "max_depth"),
            crawl_delay_ms=_as_int(data.get("crawl_delay_ms", DEFAULT_CRAWL_DELAY_MS), "crawl_delay_ms"),
            screenshot_desktop=_as_bool(
                data.get("screenshot_desktop", DEFAULT_SCREENSHOT_DESKTOP),
                "screenshot_desktop",
            ),
            screenshot_mobile=_as_bool(
                data.get("screenshot_mobile", DEFAULT_SCREENSHOT_MOBILE),
                "screenshot_mobile",
            ),
            exclude_patterns=_as_patterns(data.get("exclude_patterns")),
            output_dir=str(data.get("output_dir", DEFAULT_OUTPUT_DIR)),
            state_path=None if state_path is None else str(state_path),
            backend=_to_backend(data.get("backend", DEFAULT_FETCH_BACKEND)),
            headless=_as_bool(data.get("headless", DEFAULT_HEADLESS), "headless"),
            page_load_timeout_seconds=_as_float(
                data.get("page_load_timeout_seconds", DEFAULT_PAGE_LOAD_TIMEOUT_SECONDS),
                "page_load_timeout_seconds",
            ),
            page_settle_seconds=_as_float(
                data.get("page_settle_seconds", DEFAULT_PAGE_SETTLE_SECONDS),
                "page_settle_seconds",
            ),
            max_concurrent_downloads=_as_int(
                data.get("max_concurrent_downloads", DEFAULT_MAX_CONCURRENT_DOWNLOADS),
                "max_concurrent_downloads",
            ),
            asset_timeout_seconds=_as_float(
                data.get("asset_timeout_seconds", DEFAULT_ASSET_TIMEOUT_SECONDS),
                "asset_timeout_seconds",
            ),
            user_agent=str(data.get("user_agent", DEFAULT_USER_AGENT)),
            default_headers={
                str(k): str(v)
                for k, v in dict(data.get("default_headers", DEFAULT_HTTP_HEADERS)).items()
            },
        )


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigValidationError(f"YAML config at {path} must be a mapping at top level")
    return data


def load_config(path: str | Path) -> CrawlConfig:
    """Load CrawlConfig from JSON/YAML path."""

    config_path = Path(path)
    suffix = config_path.suffix.lower()
    if suffix not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigValidationError(
            f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
        )

    if suffix == ".json":
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    else:
        payload = _load_yaml(config_path)

    if not isinstance(payload, dict):
        raise ConfigValidationError(f"Config at {config_path} must be a mapping")

    return CrawlConfig.from_dict(payload)


def save_config(config: CrawlConfig, path: str | Path) -> None:
    """Save CrawlConfig as JSON or YAML based on file extension."""

    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    suffix = out_path.suffix.lower()
    payload = config.to_dict()

    if suffix == ".json":
        out_path.write_text(
            json.dumps(payload, indent=JSON_INDENT, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return

    if suffix in {".yaml", ".yml"}:
        out_path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
        return

    raise ConfigValidationError(
        f"Unsupported config suffix '{suffix}'. Supported: {SUPPORTED_CONFIG_SUFFIXES}"
    )


__all__ = [
    "CAMEL_CASE_ALIASES",
    "CrawlConfig",
    "load_config",
    "save_config",
    "validate_start_url",
]
