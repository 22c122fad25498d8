from __future__ import annotations

import logging
import re
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Sequence

import mss
import numpy as np
from PIL import Image

from .config import ScreenshotConfig
from .errors import ScreenshotError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScreenshotResult:
    path: Path
    captured_at: float
    monitor_index: int


class ScreenshotTaker:
    """Capture desktop monitors using mss and persist each one as a PNG."""

    def __init__(self, config: ScreenshotConfig) -> None:
        self._config = config

    def capture(self) -> list[ScreenshotResult]:
        results: list[ScreenshotResult] = []
        with mss.mss() as sct:
            # monitors[0] is the union of all displays; 1..n are the real ones.
            monitors = sct.monitors
            if len(monitors) < 2:
                raise ScreenshotError("No monitors detected for screenshot capture.")
            for index in self._resolve_monitor_indexes(monitors):
                monitor = monitors[index]
                raw = sct.grab(monitor)
                pixels = np.array(raw, dtype=np.uint8)
                pixels = pixels[:, :, :3]
                pixels = pixels[:, :, ::-1]
                path = self._prepare_output_path(index, monitor["width"], monitor["height"])
                Image.fromarray(pixels).save(path)
                results.append(ScreenshotResult(path=path, captured_at=time.time(), monitor_index=index))
        return results

    def _resolve_monitor_indexes(self, monitors: list[dict[str, int]]) -> list[int]:
        requested = self._config.monitor
        if requested is None:
            return list(range(1, len(monitors)))
        if requested < 1 or requested >= len(monitors):
            raise ScreenshotError(f"Monitor index {requested} is out of range (found {len(monitors) - 1}).")
        return [requested]

    def _prepare_output_path(self, index: int, width: int, height: int) -> Path:
        directory = self._config.output_dir or Path(tempfile.gettempdir())
        directory = directory.expanduser()
        directory.mkdir(parents=True, exist_ok=True)
        prefix = f"screenshot_{index}_{width}x{height}-"
        with NamedTemporaryFile(prefix=prefix, suffix=".png", dir=directory, delete=False) as tmp:
            return Path(tmp.name)


class SiteScreenshotter:
    """Capture web pages with a headless Chromium driven by Playwright."""

    def __init__(self, output_dir: Path | None = None, timeout_ms: int = 30000) -> None:
        self._output_dir = output_dir
        self._timeout_ms = timeout_ms

    def capture(self, urls: Sequence[str]) -> list[Path]:
        from playwright.sync_api import Error as PlaywrightError
        from playwright.sync_api import sync_playwright

        directory = self._output_dir or Path(tempfile.mkdtemp(prefix="lm-screenshots-"))
        directory.mkdir(parents=True, exist_ok=True)
        paths: list[Path] = []
        with sync_playwright() as p:
            browser = p.chromium.launch()
            try:
                page = browser.new_page()
                for position, url in enumerate(urls):
                    path = directory / f"{position:02d}-{_slug(url)}.png"
                    try:
                        page.goto(url, timeout=self._timeout_ms)
                        page.screenshot(path=str(path), full_page=True)
                    except PlaywrightError as exc:
                        logger.warning("Could not screenshot %s: %s", url, exc)
                        continue
                    paths.append(path)
            finally:
                browser.close()

        if not paths:
            raise ScreenshotError(f"Could not screenshot any of: {', '.join(urls)}")
        if len(paths) != len(urls):
            logger.warning("Expected %d site screenshots, got %d", len(urls), len(paths))
        return paths


def _slug(url: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "-", url).strip("-")[:60] or "page"
