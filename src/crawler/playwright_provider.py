"""
Playwright-based browser launcher for spydr.

Implements the BrowserLauncher protocol: starts the Playwright driver,
launches one of chromium/firefox/webkit and exposes Playwright's device
descriptors. The driver starts lazily on first use, so a crawl that is
answered from the ledger never starts it. Use as an async context manager so
the driver is always stopped.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

from src.crawler.browser_provider import BrowserEngine
from src.utils.logging import get_logger

logger = get_logger(__name__)


class PlaywrightLauncher:
    """BrowserLauncher backed by playwright.async_api."""

    def __init__(self) -> None:
        self._playwright: "Playwright | None" = None

    async def __aenter__(self) -> "PlaywrightLauncher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self) -> None:
        """Ensure Playwright is initialized."""
        if self._playwright is None:
            try:
                from playwright.async_api import async_playwright
            except ImportError as e:
                raise RuntimeError("Playwright not installed") from e

            self._playwright = await async_playwright().start()
            logger.debug("Playwright initialized")

    async def _started(self) -> "Playwright":
        await self.start()
        assert self._playwright is not None  # Guaranteed by start()
        return self._playwright

    async def launch(self, engine: BrowserEngine, options: dict[str, Any]) -> "Browser":
        """Launch a browser of the given engine."""
        playwright = await self._started()
        browser_type = getattr(playwright, engine.value)
        browser = await browser_type.launch(**options)
        logger.info(
            "Browser launched",
            engine=engine.value,
            headless=options.get("headless"),
            args_count=len(options.get("args", [])),
        )
        return browser

    async def device(self, name: str) -> dict[str, Any] | None:
        """Return Playwright's descriptor for a device name, or None if unknown."""
        playwright = await self._started()
        descriptor = playwright.devices.get(name)
        if descriptor is None:
            return None
        # Launch-time hint, not a context option
        return {k: v for k, v in descriptor.items() if k != "default_browser_type"}

    async def close(self) -> None:
        """Stop the Playwright driver."""
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning("Failed to stop Playwright", error=str(e))
            self._playwright = None
            logger.debug("Playwright stopped")
