"""
Browser capability interface for spydr.

The capture pipeline never drives a browser directly; it talks to the small
set of operations declared here. PlaywrightLauncher (playwright_provider.py)
is the production implementation, tests substitute fakes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from src.utils.errors import InvalidConfigurationError


class BrowserEngine(str, Enum):
    """Supported browser engines."""

    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    @classmethod
    def parse(cls, value: "str | BrowserEngine") -> "BrowserEngine":
        """Parse an engine name.

        Raises:
            InvalidConfigurationError: Unknown engine.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(e.value for e in cls)
            raise InvalidConfigurationError(
                f"Invalid browser: {value}. Must be one of: {names}",
                option="browser",
                value=value,
            ) from None


@dataclass
class Cookie:
    """
    Browser cookie data structure.

    Attributes:
        name: Cookie name.
        value: Cookie value.
        domain: Cookie domain.
        path: Cookie path.
        expires: Expiration timestamp (-1 or None for session cookies).
        http_only: HTTP only flag.
        secure: Secure flag.
        same_site: SameSite attribute.
    """

    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: float | None = None
    http_only: bool = False
    secure: bool = False
    same_site: str = "Lax"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary in Playwright's cookie format."""
        result = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "httpOnly": self.http_only,
            "secure": self.secure,
            "sameSite": self.same_site,
        }
        if self.expires is not None:
            result["expires"] = self.expires
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cookie":
        """Create from a Playwright or snake_case dictionary."""
        return cls(
            name=data.get("name", ""),
            value=data.get("value", ""),
            domain=data.get("domain", ""),
            path=data.get("path", "/"),
            expires=data.get("expires"),
            http_only=data.get("httpOnly", data.get("http_only", False)),
            secure=data.get("secure", False),
            same_site=data.get("sameSite", data.get("same_site", "Lax")),
        )


# ============================================================================
# Capability protocols
# ============================================================================


@runtime_checkable
class ResponseLike(Protocol):
    @property
    def status(self) -> int: ...


@runtime_checkable
class PageLike(Protocol):
    """Subset of playwright.async_api.Page used by the pipeline."""

    async def goto(self, url: str, **kwargs: Any) -> ResponseLike | None: ...

    async def content(self) -> str: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def screenshot(self, **kwargs: Any) -> bytes: ...

    async def wait_for_timeout(self, timeout: float) -> None: ...

    def set_default_timeout(self, timeout: float) -> None: ...


@runtime_checkable
class ContextLike(Protocol):
    """Subset of playwright.async_api.BrowserContext used by the pipeline."""

    async def new_page(self) -> PageLike: ...

    async def add_init_script(self, script: str | None = None, **kwargs: Any) -> None: ...

    async def cookies(self, urls: Any = None) -> list[dict[str, Any]]: ...

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class BrowserLike(Protocol):
    """Subset of playwright.async_api.Browser used by the pipeline."""

    async def new_context(self, **kwargs: Any) -> ContextLike: ...

    async def close(self) -> None: ...


@runtime_checkable
class BrowserLauncher(Protocol):
    """Launches browsers and resolves device descriptors."""

    async def launch(self, engine: BrowserEngine, options: dict[str, Any]) -> BrowserLike: ...

    async def device(self, name: str) -> dict[str, Any] | None: ...
