"""Control surface: start, cancel, and inspect a background crawl."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Mapping

from .config import CrawlConfig
from .constants import DEFAULT_OUTPUT_DIR, DEFAULT_STATE_FILENAME
from .errors import AlreadyRunning
from .events import EventBus, Listener
from .orchestrator import CrawlOrchestrator
from .storage import RunStateStore
from .types import JSONDict, RunStatus

LOGGER = logging.getLogger(__name__)


class CrawlService:
    """Runs at most one crawl on a background thread.

    `start_crawl` returns as soon as the run thread is started; callers follow
    the run through `subscribe` or `get_status`, and may block on `wait`.
    """

    def __init__(
        self,
        *,
        state_path: str | Path | None = None,
        orchestrator: CrawlOrchestrator | None = None,
        **orchestrator_kwargs: Any,
    ) -> None:
        if state_path is None:
            state_path = Path(DEFAULT_OUTPUT_DIR) / DEFAULT_STATE_FILENAME
        self.state_store = RunStateStore(state_path)

        if orchestrator is None:
            orchestrator_kwargs.setdefault("events", EventBus())
            orchestrator = CrawlOrchestrator(state_store=self.state_store, **orchestrator_kwargs)
        elif orchestrator.state_store is None:
            orchestrator.state_store = self.state_store
        self.orchestrator = orchestrator

        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._result: JSONDict | None = None
        self._error: BaseException | None = None

        self._reset_stale_state()

    @property
    def events(self) -> EventBus:
        return self.orchestrator.events

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _reset_stale_state(self) -> None:
        # A "running" state left by a dead process cannot be resumed.
        persisted = self.state_store.load()
        if persisted and persisted.get("status") == RunStatus.RUNNING.value:
            LOGGER.info("Resetting stale running state in %s", self.state_store.path)
            self.state_store.save(RunStatus.IDLE)

    def start_crawl(self, config: CrawlConfig | Mapping[str, Any]) -> CrawlConfig:
        """Validate `config` and start a run in the background.

        Raises `ConfigValidationError` for bad input and `AlreadyRunning` when a
        run is active; in both cases nothing is started.
        """

        if not isinstance(config, CrawlConfig):
            config = CrawlConfig.from_dict(config)

        with self._lock:
            if self.running or self.orchestrator.running:
                raise AlreadyRunning()

            if config.state_path:
                self.state_store = RunStateStore(config.state_path)
                self.orchestrator.state_store = self.state_store

            self._result = None
            self._error = None
            self._thread = threading.Thread(
                target=self._run,
                args=(config,),
                name="crawl-run",
                daemon=True,
            )
            self._thread.start()

        LOGGER.info("Started crawl of %s (max_depth=%d)", config.url, config.max_depth)
        return config

    def _run(self, config: CrawlConfig) -> None:
        try:
            self._result = self.orchestrator.start(config)
        except Exception as exc:
            # Already logged and published as an error event by the orchestrator.
            self._error = exc

    def cancel_crawl(self) -> bool:
        """Request cancellation. Returns False when no run is active."""

        cancelled = self.orchestrator.cancel()
        if cancelled:
            LOGGER.info("Crawl cancellation requested")
        return cancelled

    def on_navigation_surface_closed(self) -> bool:
        """External signal that the browser window went away; cancels the run."""

        LOGGER.warning("Navigation surface closed; cancelling crawl")
        return self.cancel_crawl()

    def get_status(self) -> JSONDict:
        status = self.orchestrator.status()
        if not status["running"]:
            status["last_run"] = self.state_store.load()
        return status

    def wait(self, timeout: float | None = None) -> JSONDict | None:
        """Block until the run thread exits; re-raise the run's failure if any.

        Returns the run summary, or None when there is no run or `timeout`
        expired first.
        """

        thread = self._thread
        if thread is None:
            return None
        thread.join(timeout)
        if thread.is_alive():
            return None
        if self._error is not None:
            raise self._error
        return self._result

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.events.subscribe(listener)


__all__ = ["CrawlService"]
