"""Exception taxonomy for crawl runs.

Per-page and per-asset errors are recovered by the orchestrator and scheduler;
only `AlreadyRunning` and `ConfigValidationError` reach callers of the control
surface. Cancellation is not an exception: it is an event flag on the frontier.
"""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for crawler errors."""


class AlreadyRunning(CrawlError):
    """A crawl run is already active."""

    def __init__(self, message: str = "Scraping is already in progress") -> None:
        super().__init__(message)


class ConfigValidationError(CrawlError, ValueError):
    """Crawl configuration is missing or invalid."""


class ExtractionError(CrawlError):
    """One page could not be loaded or extracted."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class LoadTimeout(ExtractionError):
    """Page did not finish loading within the configured timeout."""

    def __init__(self, url: str, timeout_seconds: float) -> None:
        super().__init__(url, f"Page load timeout after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds


class DownloadFailure(CrawlError):
    """One asset download failed."""

    def __init__(self, url: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


__all__ = [
    "AlreadyRunning",
    "ConfigValidationError",
    "CrawlError",
    "DownloadFailure",
    "ExtractionError",
    "LoadTimeout",
]
