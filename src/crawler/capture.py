"""
Capture pipeline for spydr.

Runs one crawl end to end against a BrowserLauncher:

    IDLE -> DEDUPED                                     (already in the ledger)
    IDLE -> SESSION_READY -> PRELOADED? -> NAVIGATED -> EXTRACTED
         -> SCROLLED -> CAPTURED -> PERSISTED
    any step after launch -> FAILED                     (error re-raised)

Only the dedup lookup happens before a browser is launched. The browser
context and browser are closed on every exit path once launched.
"""

import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from src.crawler.browser_provider import BrowserLauncher, Cookie, PageLike
from src.crawler.cookie_jar import CookieJar, domain_for_url
from src.crawler.crawl_config import CrawlConfig
from src.crawler.layout import ArtifactKind, OutputLayout
from src.crawler.session_options import (
    build_context_options,
    build_launch_options,
    resolve_device,
)
from src.crawler.stealth import build_init_script
from src.storage.database import Database
from src.storage.schemas import CrawlRecord
from src.utils.config import CaptureConfig, Settings, get_settings
from src.utils.errors import CaptureError, NavigationError
from src.utils.identity import identify
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

TEXT_TRUNCATION_MARKER = "\n\n[... text truncated ...]"

EXTRACT_LINKS_JS = """
() => Array.from(document.querySelectorAll('a[href]'))
    .map(anchor => anchor.href)
    .filter(href => href)
"""

# innerText skips non-rendered nodes (script, style); textContent fallback
# works on a clone so the live DOM is left untouched.
EXTRACT_TEXT_JS = """
() => {
    const body = document.body;
    if (!body) {
        return '';
    }
    if (typeof body.innerText === 'string' && body.innerText.length > 0) {
        return body.innerText;
    }
    const clone = body.cloneNode(true);
    clone.querySelectorAll('script, style, noscript').forEach(el => el.remove());
    return clone.textContent || '';
}
"""

SCROLL_STEP_JS = """
(step) => {
    window.scrollBy(0, step);
    return document.body ? document.body.scrollHeight : 0;
}
"""


class CaptureState(str, Enum):
    """Pipeline states."""

    IDLE = "idle"
    DEDUPED = "deduped"
    SESSION_READY = "session_ready"
    PRELOADED = "preloaded"
    NAVIGATED = "navigated"
    EXTRACTED = "extracted"
    SCROLLED = "scrolled"
    CAPTURED = "captured"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass
class CaptureResult:
    """
    Outcome of one crawl invocation.

    Attributes:
        url: URL as given.
        url_hash: URL identity.
        state: Terminal state (PERSISTED or DEDUPED).
        crawl_id: Ledger id of the record.
        timestamp: Record completion time (ISO-8601).
        http_code: Navigation status, 0 if unknown.
        file_directory: Hour bucket of the artifacts.
        already_crawled: True when the ledger short-circuited the crawl.
        links: Extracted outbound links (empty when deduplicated).
        text_content: Stored plain text (possibly truncated).
        screenshot_path: Screenshot file, None if both attempts failed.
        artifacts: Written artifact paths by kind.
    """

    url: str
    url_hash: str
    state: CaptureState = CaptureState.IDLE
    crawl_id: int | None = None
    timestamp: str | None = None
    http_code: int = 0
    file_directory: str | None = None
    already_crawled: bool = False
    raw_html: str = ""
    rendered_html: str = ""
    text_content: str = ""
    links: list[str] = field(default_factory=list)
    screenshot_path: str | None = None
    artifacts: dict[str, str] = field(default_factory=dict)

    @classmethod
    def deduplicated(cls, url: str, record: CrawlRecord) -> "CaptureResult":
        """Result for a URL that is already in the ledger."""
        return cls(
            url=url,
            url_hash=record.url_hash,
            state=CaptureState.DEDUPED,
            crawl_id=record.id,
            timestamp=record.timestamp,
            http_code=record.http_code,
            file_directory=record.file_directory,
            already_crawled=True,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (without page bodies)."""
        return {
            "url": self.url,
            "url_hash": self.url_hash,
            "state": self.state.value,
            "crawl_id": self.crawl_id,
            "timestamp": self.timestamp,
            "http_code": self.http_code,
            "file_directory": self.file_directory,
            "already_crawled": self.already_crawled,
            "links_count": len(self.links),
            "screenshot_path": self.screenshot_path,
            "artifacts": dict(self.artifacts),
        }


@dataclass
class ScrollOutcome:
    distance: int
    iterations: int
    elapsed: float
    stop_reason: str  # bottom, distance, iterations, time


# =============================================================================
# Pure helpers
# =============================================================================


def normalize_text(text: str) -> str:
    """Collapse whitespace within lines, drop blank lines."""
    lines = (" ".join(line.split()) for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text to max_chars and append the truncation marker if it was longer."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TEXT_TRUNCATION_MARKER


def unique_links(links: list[Any]) -> list[str]:
    """Keep the first occurrence of each non-empty link, in page order."""
    return list(dict.fromkeys(str(link) for link in links if link))


def root_origin(url: str) -> str | None:
    """Return ``scheme://host[:port]/`` for a URL, or None if it has no host."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    host = parts.netloc.rsplit("@", 1)[-1]
    return f"{parts.scheme}://{host}/"


async def auto_scroll(
    page: PageLike,
    *,
    step_px: int,
    interval_ms: int,
    max_distance_px: int,
    max_iterations: int,
    max_seconds: float,
    clock: Callable[[], float] = time.monotonic,
) -> ScrollOutcome:
    """Scroll down in steps to trigger lazy loading.

    Stops at the page bottom or at whichever cap (distance, iterations,
    wall-clock seconds) is reached first, so pages that keep growing
    cannot hang the crawl.
    """
    started = clock()
    distance = 0
    iterations = 0

    while True:
        scroll_height = await page.evaluate(SCROLL_STEP_JS, step_px)
        distance += step_px
        iterations += 1
        elapsed = clock() - started

        if distance >= (scroll_height or 0):
            reason = "bottom"
        elif distance >= max_distance_px:
            reason = "distance"
        elif iterations >= max_iterations:
            reason = "iterations"
        elif elapsed >= max_seconds:
            reason = "time"
        else:
            await page.wait_for_timeout(interval_ms)
            continue

        return ScrollOutcome(
            distance=distance,
            iterations=iterations,
            elapsed=elapsed,
            stop_reason=reason,
        )


async def _write_text(path: Path, text: str) -> None:
    await asyncio.to_thread(path.write_text, text, encoding="utf-8")


# =============================================================================
# Pipeline
# =============================================================================


class CapturePipeline:
    """Drives one crawl from dedup check to ledger commit."""

    def __init__(
        self,
        database: Database,
        launcher: BrowserLauncher,
        settings: Settings | None = None,
        *,
        cookie_jar: CookieJar | None = None,
        layout: OutputLayout | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self._settings = settings or get_settings()
        self.database = database
        self.launcher = launcher
        self.cookie_jar = cookie_jar or CookieJar(self._settings.storage.cookies_dir)
        self.layout = layout or OutputLayout(self._settings.storage.output_dir)
        self._now = now or (lambda: datetime.now(UTC))

    @property
    def capture_settings(self) -> CaptureConfig:
        return self._settings.capture

    async def crawl(self, url: str, config: CrawlConfig) -> CaptureResult:
        """Crawl a URL, or return the existing record if it was crawled before.

        Raises:
            InvalidConfigurationError: Unknown device (before launch).
            NavigationError: The target URL could not be loaded.
            CaptureError: No screenshot and capture.screenshot_required is set.
            DuplicateKeyError: Another invocation committed the same URL first.
        """
        url_hash = identify(url)

        with LogContext(url_hash=url_hash):
            existing = await self.database.find_by_hash(url_hash)
            if existing is not None and not config.overwrite:
                logger.info(
                    "URL already crawled",
                    url=url,
                    crawl_id=existing.id,
                    previous_crawl=existing.timestamp,
                )
                return CaptureResult.deduplicated(url, existing)

            result = CaptureResult(url=url, url_hash=url_hash)
            try:
                # Options are validated before the previous record is touched
                launch_options, context_options = await self._session_options(config)

                if existing is not None:
                    logger.info("Overwriting previous crawl", url=url, crawl_id=existing.id)
                    await self.database.delete_by_hash(url_hash)

                await self._run(url, config, result, launch_options, context_options)
            except Exception as e:
                failed_at = result.state
                result.state = CaptureState.FAILED
                logger.error(
                    "Crawl failed",
                    url=url,
                    failed_after=failed_at.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            return result

    async def _session_options(
        self, config: CrawlConfig
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        device = await resolve_device(self.launcher, config.device) if config.device else None
        launch_options = build_launch_options(config)
        context_options = build_context_options(config, device)

        if config.debug:
            logger.debug(
                "Browser options",
                engine=config.engine.value,
                launch_options={k: v for k, v in launch_options.items() if k != "proxy"},
                context_options=sorted(context_options),
                stealth=config.stealth.enabled_features(),
            )
        return launch_options, context_options

    async def _run(
        self,
        url: str,
        config: CrawlConfig,
        result: CaptureResult,
        launch_options: dict[str, Any],
        context_options: dict[str, Any],
    ) -> None:
        browser = await self.launcher.launch(config.engine, launch_options)
        context = None
        try:
            context = await browser.new_context(**context_options)
            domain = domain_for_url(url)

            if config.persist_cookies:
                await self._hydrate_cookies(context, domain)

            init_script = build_init_script(config.stealth)
            if init_script is not None:
                await context.add_init_script(script=init_script)
                logger.debug("Stealth init script registered")

            page = await context.new_page()
            if config.timeout_ms:
                page.set_default_timeout(config.timeout_ms)
            result.state = CaptureState.SESSION_READY

            if config.stealth.root_domain_preload:
                await self._preload_root(page, url, config)
                result.state = CaptureState.PRELOADED

            result.http_code = await self._navigate(page, url, config)
            result.state = CaptureState.NAVIGATED

            await self._extract(page, result)
            result.state = CaptureState.EXTRACTED

            cap = self.capture_settings
            outcome = await auto_scroll(
                page,
                step_px=cap.scroll_step_px,
                interval_ms=cap.scroll_interval_ms,
                max_distance_px=cap.max_scroll_distance_px,
                max_iterations=cap.max_scroll_iterations,
                max_seconds=cap.max_scroll_seconds,
            )
            logger.debug(
                "Scroll finished",
                distance=outcome.distance,
                iterations=outcome.iterations,
                stop_reason=outcome.stop_reason,
            )
            result.state = CaptureState.SCROLLED

            captured_at = self._now()
            directory = self.layout.directory_for(captured_at)
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            result.file_directory = self.layout.hour_bucket(captured_at)

            screenshot_path = self.layout.artifact_path(
                directory, ArtifactKind.SCREENSHOT, result.url_hash
            )
            result.screenshot_path = await self._screenshot(page, screenshot_path)
            if result.screenshot_path is not None:
                result.artifacts[ArtifactKind.SCREENSHOT.value] = result.screenshot_path
            result.state = CaptureState.CAPTURED

            await self._persist(directory, result)

            if config.persist_cookies:
                await self._store_cookies(context, domain)

            result.state = CaptureState.PERSISTED
            logger.info(
                "Crawl completed",
                url=url,
                crawl_id=result.crawl_id,
                http_code=result.http_code,
                links=len(result.links),
                directory=str(directory),
            )
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.warning("Failed to close browser context", error=str(e))
            try:
                await browser.close()
            except Exception as e:
                logger.warning("Failed to close browser", error=str(e))

    async def _hydrate_cookies(self, context: Any, domain: str) -> None:
        cookies = await asyncio.to_thread(self.cookie_jar.load, domain)
        if not cookies:
            return
        try:
            await context.add_cookies([c.to_dict() for c in cookies])
            logger.info("Cookies restored", domain=domain, count=len(cookies))
        except Exception as e:
            logger.warning("Failed to restore cookies", domain=domain, error=str(e))

    async def _store_cookies(self, context: Any, domain: str) -> None:
        try:
            raw_cookies = await context.cookies()
        except Exception as e:
            logger.warning("Failed to read cookies", domain=domain, error=str(e))
            return
        cookies = [Cookie.from_dict(dict(c)) for c in raw_cookies]
        if await asyncio.to_thread(self.cookie_jar.save, domain, cookies):
            logger.info("Cookies saved", domain=domain, count=len(cookies))

    async def _preload_root(self, page: PageLike, url: str, config: CrawlConfig) -> None:
        """Visit the bare origin first so origin-level cookies and redirects settle."""
        origin = root_origin(url)
        if origin is None or origin == url:
            logger.debug("Root domain preload skipped", origin=origin)
            return

        logger.debug("Preloading root domain", origin=origin)
        try:
            kwargs: dict[str, Any] = {"wait_until": "domcontentloaded"}
            if config.timeout_ms:
                kwargs["timeout"] = config.timeout_ms
            await page.goto(origin, **kwargs)
            await page.wait_for_timeout(self.capture_settings.preload_wait_ms)
        except Exception as e:
            logger.warning("Root domain preload failed", origin=origin, error=str(e))

    async def _navigate(self, page: PageLike, url: str, config: CrawlConfig) -> int:
        # DOM ready rather than network idle: long-lived connections never go idle
        kwargs: dict[str, Any] = {"wait_until": "domcontentloaded"}
        if config.timeout_ms:
            kwargs["timeout"] = config.timeout_ms

        logger.debug("Navigating", url=url, **kwargs)
        try:
            response = await page.goto(url, **kwargs)
        except Exception as e:
            raise NavigationError(url, str(e)) from e

        http_code = response.status if response is not None else 0
        logger.debug("Navigation completed", http_code=http_code)
        return http_code

    async def _extract(self, page: PageLike, result: CaptureResult) -> None:
        result.raw_html = await page.content()

        # Script-driven pages keep mutating the DOM after first paint
        await page.wait_for_timeout(self.capture_settings.settle_ms)
        result.rendered_html = await page.content()

        result.links = unique_links(await page.evaluate(EXTRACT_LINKS_JS) or [])
        text = normalize_text(await page.evaluate(EXTRACT_TEXT_JS) or "")
        result.text_content = truncate_text(text, self.capture_settings.max_text_chars)

        logger.debug(
            "Content extracted",
            raw_length=len(result.raw_html),
            rendered_length=len(result.rendered_html),
            links=len(result.links),
            text_length=len(text),
            text_truncated=len(text) > self.capture_settings.max_text_chars,
        )

    async def _screenshot(self, page: PageLike, path: Path) -> str | None:
        """Full-page screenshot, falling back once to a viewport-only one."""
        cap = self.capture_settings
        try:
            await page.screenshot(
                path=str(path), full_page=True, timeout=cap.screenshot_timeout_ms
            )
            return str(path)
        except Exception as e:
            logger.warning("Full-page screenshot failed, retrying viewport only", error=str(e))

        try:
            await page.screenshot(
                path=str(path), full_page=False, timeout=cap.screenshot_fallback_timeout_ms
            )
            return str(path)
        except Exception as e:
            if cap.screenshot_required:
                raise CaptureError(str(path), str(e)) from e
            logger.error("Screenshot failed", path=str(path), error=str(e))
            return None

    async def _persist(self, directory: Path, result: CaptureResult) -> None:
        """Write artifacts, then the ledger record and its links."""
        files = {
            ArtifactKind.RAW_HTML: result.raw_html,
            ArtifactKind.RENDERED_HTML: result.rendered_html,
            ArtifactKind.LINKS: json.dumps(result.links, indent=2),
            ArtifactKind.TEXT: result.text_content,
        }
        for kind, content in files.items():
            path = self.layout.artifact_path(directory, kind, result.url_hash)
            await _write_text(path, content)
            result.artifacts[kind.value] = str(path)

        result.timestamp = self._now().isoformat()
        record = CrawlRecord(
            timestamp=result.timestamp,
            url=result.url,
            url_hash=result.url_hash,
            http_code=result.http_code,
            file_directory=result.file_directory or "",
        )
        result.crawl_id = await self.database.insert_crawled_site(record)
        await self.database.insert_links(result.crawl_id, result.links)
