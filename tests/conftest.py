"""
Pytest fixtures and configuration for spydr tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers:
- @pytest.mark.unit: Single class/function, no external dependencies
  - Fast (<1s per test)
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components wired together
  - Real SQLite ledger on a temp file, real filesystem under a temp dir
  - Browser replaced by the fakes below

=============================================================================
Mock Strategy
=============================================================================

- No test launches a real browser
- Browser: FakeLauncher / FakeBrowser / FakeContext / FakePage implement the
  capability protocols in src/crawler/browser_provider.py
- File I/O: temp_dir fixture
- Database: temp file SQLite via test_database
- Clock: fixed datetime passed as ``now`` to the pipeline
"""

import os
import tempfile
from collections.abc import Generator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

# Set test environment before importing anything else
os.environ["SPYDR_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["SPYDR_GENERAL__LOG_LEVEL"] = "DEBUG"

from src.crawler.capture import EXTRACT_LINKS_JS, EXTRACT_TEXT_JS, SCROLL_STEP_JS  # noqa: E402
from src.utils.config import (  # noqa: E402
    CaptureConfig,
    GeneralConfig,
    Settings,
    StorageConfig,
)

FIXED_NOW = datetime(2024, 3, 15, 9, 42, 7, tzinfo=UTC)


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with a real ledger and fake browser"
    )


def pytest_collection_modifyitems(config, items):
    """Tests without explicit markers are assumed to be unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)



# =============================================================================
# Filesystem / settings / ledger
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Get path for temporary test database."""
    return temp_dir / "test_spydr.db"


@pytest_asyncio.fixture
async def test_database(temp_db_path: Path):
    """Create a temporary crawl ledger with the schema applied."""
    from src.storage.database import Database

    db = Database(temp_db_path)
    await db.connect()
    await db.initialize_schema()

    yield db

    await db.close()


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Settings rooted in temp_dir with all capture waits set to zero."""
    return Settings(
        general=GeneralConfig(logs_dir=str(temp_dir / "logs")),
        storage=StorageConfig(
            database_path=str(temp_dir / "test_spydr.db"),
            output_dir=str(temp_dir / "crawl-output"),
            cookies_dir=str(temp_dir / "cookies"),
        ),
        capture=CaptureConfig(
            settle_ms=0,
            preload_wait_ms=0,
            scroll_interval_ms=0,
            max_scroll_seconds=5.0,
        ),
    )


# =============================================================================
# Fake browser
# =============================================================================


class FakeResponse:
    def __init__(self, status: int):
        self.status = status


class FakePage:
    """Scriptable stand-in for a Playwright page.

    ``content()`` returns ``raw_html`` on the first call and
    ``rendered_html`` afterwards. ``goto_errors`` maps URLs to exceptions
    raised on navigation.
    """

    def __init__(
        self,
        *,
        status: int | None = 200,
        raw_html: str = "<html><body><h1>Example Domain</h1></body></html>",
        rendered_html: str = "<html><body><h1>Example Domain</h1><p>ready</p></body></html>",
        links: list[str] | None = None,
        text: str = "Example Domain\n\nThis domain is for use in examples.",
        scroll_height: int = 300,
        fail_full_page: bool = False,
        fail_viewport: bool = False,
        goto_errors: dict[str, Exception] | None = None,
    ):
        self.status = status
        self.raw_html = raw_html
        self.rendered_html = rendered_html
        self.links = links if links is not None else ["https://www.iana.org/domains/example"]
        self.text = text
        self.scroll_height = scroll_height
        self.fail_full_page = fail_full_page
        self.fail_viewport = fail_viewport
        self.goto_errors = goto_errors or {}

        self.goto_calls: list[tuple[str, dict[str, Any]]] = []
        self.screenshot_calls: list[dict[str, Any]] = []
        self.scroll_calls = 0
        self.waits: list[float] = []
        self.default_timeout: float | None = None
        self._content_calls = 0

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse | None:
        self.goto_calls.append((url, kwargs))
        if url in self.goto_errors:
            raise self.goto_errors[url]
        return FakeResponse(self.status) if self.status is not None else None

    async def content(self) -> str:
        self._content_calls += 1
        return self.raw_html if self._content_calls == 1 else self.rendered_html

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if expression == SCROLL_STEP_JS:
            self.scroll_calls += 1
            return self.scroll_height
        if expression == EXTRACT_LINKS_JS:
            return list(self.links)
        if expression == EXTRACT_TEXT_JS:
            return self.text
        raise AssertionError(f"Unexpected script: {expression[:40]}")

    async def screenshot(self, **kwargs: Any) -> bytes:
        self.screenshot_calls.append(kwargs)
        if kwargs.get("full_page") and self.fail_full_page:
            raise TimeoutError("Timeout 30000ms exceeded while taking screenshot")
        if not kwargs.get("full_page") and self.fail_viewport:
            raise TimeoutError("Timeout 10000ms exceeded while taking screenshot")
        data = b"\x89PNG\r\n\x1a\nfake"
        if kwargs.get("path"):
            Path(kwargs["path"]).write_bytes(data)
        return data

    async def wait_for_timeout(self, timeout: float) -> None:
        self.waits.append(timeout)

    def set_default_timeout(self, timeout: float) -> None:
        self.default_timeout = timeout


class FakeContext:
    def __init__(self, page: FakePage, cookies: list[dict[str, Any]] | None = None):
        self.page = page
        self.init_scripts: list[str] = []
        self.added_cookies: list[dict[str, Any]] = []
        self.browser_cookies = cookies or []
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def add_init_script(self, script: str | None = None, **kwargs: Any) -> None:
        self.init_scripts.append(script or "")

    async def cookies(self, urls: Any = None) -> list[dict[str, Any]]:
        return list(self.browser_cookies)

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        self.added_cookies.extend(cookies)

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, context: FakeContext):
        self.context = context
        self.context_options: dict[str, Any] | None = None
        self.closed = False

    async def new_context(self, **kwargs: Any) -> FakeContext:
        self.context_options = kwargs
        return self.context

    async def close(self) -> None:
        self.closed = True


class FakeLauncher:
    """BrowserLauncher that hands out one FakeBrowser and records launches."""

    def __init__(
        self,
        page: FakePage | None = None,
        *,
        devices: dict[str, dict[str, Any]] | None = None,
        cookies: list[dict[str, Any]] | None = None,
    ):
        self.page = page or FakePage()
        self.context = FakeContext(self.page, cookies)
        self.browser = FakeBrowser(self.context)
        self.devices = devices or {}
        self.launches: list[tuple[Any, dict[str, Any]]] = []

    async def launch(self, engine: Any, options: dict[str, Any]) -> FakeBrowser:
        self.launches.append((engine, options))
        return self.browser

    async def device(self, name: str) -> dict[str, Any] | None:
        return self.devices.get(name)


@pytest.fixture
def fake_page() -> FakePage:
    return FakePage()


@pytest.fixture
def fake_launcher(fake_page: FakePage) -> FakeLauncher:
    return FakeLauncher(fake_page)
