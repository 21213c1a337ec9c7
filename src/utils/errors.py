"""
Error definitions for spydr.

Error codes follow the pattern:
- INVALID_*: configuration errors, raised before any browser is launched
- *_FAILED: failures of a pipeline step against the browser
- DUPLICATE_*: ledger constraint violations
"""

from enum import Enum
from typing import Any


class SpydrErrorCode(str, Enum):
    """Error codes for crawl failures."""

    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    """Unknown browser engine, unknown device, or malformed stealth option.
    Action: fix the invocation; nothing was launched."""

    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    """Timeout or network error while navigating to the target URL."""

    CAPTURE_FAILED = "CAPTURE_FAILED"
    """Both the full-page and the viewport screenshot failed."""

    DUPLICATE_KEY = "DUPLICATE_KEY"
    """A crawl record with the same URL hash already exists.
    Action: rerun with overwrite if the page should be captured again."""


class SpydrError(Exception):
    """Base exception for crawl errors."""

    code: SpydrErrorCode

    def __init__(
        self,
        code: SpydrErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        result: dict[str, Any] = {
            "error_code": self.code.value,
            "error": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class InvalidConfigurationError(SpydrError):
    """Raised when the crawl configuration cannot be resolved."""

    def __init__(self, message: str, *, option: str | None = None, value: Any = None):
        details = {}
        if option is not None:
            details["option"] = option
        if value is not None:
            details["value"] = value
        super().__init__(SpydrErrorCode.INVALID_CONFIGURATION, message, details=details)


class NavigationError(SpydrError):
    """Raised when navigating to the target URL fails."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            SpydrErrorCode.NAVIGATION_FAILED,
            f"Navigation to {url} failed: {reason}",
            details={"url": url},
        )


class CaptureError(SpydrError):
    """Raised when no screenshot could be taken and one is required."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            SpydrErrorCode.CAPTURE_FAILED,
            f"Screenshot failed: {reason}",
            details={"path": path},
        )


class DuplicateKeyError(SpydrError):
    """Raised when inserting a crawl record whose URL hash already exists."""

    def __init__(self, url_hash: str):
        super().__init__(
            SpydrErrorCode.DUPLICATE_KEY,
            f"Crawl record already exists for hash {url_hash}",
            details={"url_hash": url_hash},
        )
        self.url_hash = url_hash
