from __future__ import annotations

import contextlib
from typing import Any, Dict

from playwright.async_api import Browser, BrowserContext

from ero_automation.common.json_logger import JsonLogger, log_event

__all__ = ["BrowserManager", "launch_browser", "CONTEXT_OPTIONS", "LAUNCH_ARGS"]

LAUNCH_ARGS = [
    "--start-maximized",
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]

CONTEXT_OPTIONS: Dict[str, Any] = {
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "viewport": {"width": 1280, "height": 720},
}

HIDE_WEBDRIVER_SCRIPT = "Object.defineProperty(navigator, 'webdriver', { get: () => false });"


async def launch_browser(*, playwright: Any, logger: JsonLogger, headless: bool) -> Browser:
    log_event(
        logger=logger,
        phase="init",
        message="Launching Playwright with bundled Chromium",
        headless=headless,
    )
    return await playwright.chromium.launch(headless=headless, args=LAUNCH_ARGS)


class BrowserManager:
    """Own the single browser and every context opened on it.

    Contexts are tracked until released so shutdown can close whatever is still
    open before the browser itself goes away.
    """

    def __init__(self, browser: Browser, logger: JsonLogger) -> None:
        self.browser = browser
        self.logger = logger
        self._contexts: set[BrowserContext] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def open_contexts(self) -> int:
        return len(self._contexts)

    async def new_context(self) -> BrowserContext:
        context = await self.browser.new_context(**CONTEXT_OPTIONS)
        try:
            await context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
        except Exception:
            with contextlib.suppress(Exception):
                await context.close()
            raise
        self._contexts.add(context)
        return context

    async def release(self, context: BrowserContext) -> None:
        self._contexts.discard(context)
        with contextlib.suppress(Exception):
            await context.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for context in list(self._contexts):
            await self.release(context)
        try:
            await self.browser.close()
        except Exception as exc:
            log_event(
                logger=self.logger,
                phase="shutdown",
                status="error",
                message="Error closing browser",
                error=str(exc),
            )
            return
        log_event(logger=self.logger, phase="shutdown", message="Browser closed")
