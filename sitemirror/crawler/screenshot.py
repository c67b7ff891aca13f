"""Desktop and mobile screenshots of the page currently loaded in the browser."""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass

from selenium.common.exceptions import WebDriverException

from .constants import DESKTOP_VIEWPORT, MOBILE_VIEWPORT
from .types import ScreenshotSet

LOGGER = logging.getLogger(__name__)

_CAPTURE_ERRORS = (WebDriverException, AttributeError, KeyError, TypeError, ValueError)


@dataclass(frozen=True, slots=True)
class Viewport:
    width: int
    height: int
    scale: float
    mobile: bool

    @property
    def label(self) -> str:
        return "mobile" if self.mobile else "desktop"


DESKTOP = Viewport(*DESKTOP_VIEWPORT, mobile=False)
MOBILE = Viewport(*MOBILE_VIEWPORT, mobile=True)


class ScreenshotCapturer:
    """Capture full-page PNGs through Chrome DevTools commands.

    `Page.captureScreenshot` with `captureBeyondViewport` renders the whole
    document in one image, so no scrolling or stitching is needed. Drivers
    without DevTools support fall back to a viewport-sized capture.
    """

    def __init__(self, *, settle_seconds: float = 1.0) -> None:
        self.settle_seconds = settle_seconds

    def capture(self, page_handle, *, desktop: bool = True, mobile: bool = True) -> ScreenshotSet:
        """Return PNG bytes for each requested variant; failures yield None."""

        result = ScreenshotSet()
        if page_handle is None or not (desktop or mobile):
            return result

        try:
            if desktop:
                result.desktop = self._capture_variant(page_handle, DESKTOP, fallback=True)
            if mobile:
                result.mobile = self._capture_variant(page_handle, MOBILE, fallback=False)
        finally:
            self._reset_viewport(page_handle)

        return result

    def _capture_variant(self, driver, viewport: Viewport, *, fallback: bool) -> bytes | None:
        try:
            return self._capture_full_page(driver, viewport)
        except _CAPTURE_ERRORS as exc:
            LOGGER.debug("Full-page %s capture failed: %s", viewport.label, exc)

        if not fallback:
            return None

        try:
            driver.set_window_size(viewport.width, viewport.height)
            return driver.get_screenshot_as_png()
        except WebDriverException as exc:
            LOGGER.warning("Viewport %s capture failed: %s", viewport.label, exc)
            return None

    def _capture_full_page(self, driver, viewport: Viewport) -> bytes:
        driver.execute_cdp_cmd(
            "Emulation.setDeviceMetricsOverride",
            {
                "width": viewport.width,
                "height": viewport.height,
                "deviceScaleFactor": viewport.scale,
                "mobile": viewport.mobile,
            },
        )
        if self.settle_seconds > 0:
            time.sleep(self.settle_seconds)

        metrics = driver.execute_cdp_cmd("Page.getLayoutMetrics", {})
        content = metrics.get("cssContentSize") or metrics["contentSize"]
        height = max(int(content["height"]), viewport.height)

        shot = driver.execute_cdp_cmd(
            "Page.captureScreenshot",
            {
                "format": "png",
                "captureBeyondViewport": True,
                "clip": {
                    "x": 0,
                    "y": 0,
                    "width": viewport.width,
                    "height": height,
                    "scale": 1,
                },
            },
        )
        return base64.b64decode(shot["data"])

    @staticmethod
    def _reset_viewport(driver) -> None:
        try:
            driver.execute_cdp_cmd("Emulation.clearDeviceMetricsOverride", {})
        except _CAPTURE_ERRORS as exc:
            LOGGER.debug("Could not clear device metrics override: %s", exc)


__all__ = ["DESKTOP", "MOBILE", "ScreenshotCapturer", "Viewport"]
