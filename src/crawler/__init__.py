"""
spydr crawler module.

Provides URL identity, stealth profile composition, cookie persistence,
output layout and the capture pipeline.
"""

from src.crawler.browser_provider import BrowserEngine, BrowserLauncher, Cookie
from src.crawler.capture import CapturePipeline, CaptureResult, CaptureState
from src.crawler.cookie_jar import CookieJar, sanitize_domain
from src.crawler.crawl_config import CrawlConfig, build_crawl_config
from src.crawler.layout import ArtifactKind, OutputLayout
from src.crawler.playwright_provider import PlaywrightLauncher
from src.crawler.stealth import StealthOptions, StealthProfile, resolve_stealth
from src.utils.errors import (
    CaptureError,
    DuplicateKeyError,
    InvalidConfigurationError,
    NavigationError,
    SpydrError,
    SpydrErrorCode,
)
from src.utils.identity import identify

__all__ = [
    "ArtifactKind",
    "BrowserEngine",
    "BrowserLauncher",
    "CaptureError",
    "CapturePipeline",
    "CaptureResult",
    "CaptureState",
    "Cookie",
    "CookieJar",
    "CrawlConfig",
    "DuplicateKeyError",
    "InvalidConfigurationError",
    "NavigationError",
    "OutputLayout",
    "PlaywrightLauncher",
    "SpydrError",
    "SpydrErrorCode",
    "StealthOptions",
    "StealthProfile",
    "build_crawl_config",
    "identify",
    "resolve_stealth",
    "sanitize_domain",
]
