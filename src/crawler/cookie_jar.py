"""
Per-domain cookie persistence.

Snapshots live at ``<cookies_dir>/<sanitized-domain>.json`` as a JSON array of
Playwright-format cookie objects. Cookies are best-effort: load() never raises
and save() only logs failures.
"""

import json
import os
import re
import tempfile
import time
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from src.crawler.browser_provider import Cookie
from src.utils.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9.\-]")


def sanitize_domain(domain: str) -> str:
    """Map a domain to a filesystem-safe token.

    Lowercases, strips leading/trailing dots and replaces anything other than
    ``[a-z0-9.-]`` with ``_``.
    """
    token = _UNSAFE_CHARS.sub("_", domain.strip().lower()).strip(".")
    return token or "_"


def domain_for_url(url: str) -> str:
    """Return the host part of a URL, used as the cookie snapshot key."""
    return urlsplit(url).hostname or ""


class CookieJar:
    """Loads and saves cookie snapshots keyed by domain."""

    def __init__(self, cookies_dir: str | Path):
        self.cookies_dir = Path(cookies_dir)

    def path_for(self, domain: str) -> Path:
        return self.cookies_dir / f"{sanitize_domain(domain)}.json"

    def load(self, domain: str) -> list[Cookie]:
        """Read the snapshot for a domain. Missing or malformed files yield []."""
        path = self.path_for(domain)
        if not path.exists():
            logger.debug("No cookie snapshot", domain=domain)
            return []

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("cookie snapshot is not a list")
            cookies = [_parse_cookie(item) for item in data if isinstance(item, dict)]
            now = time.time()
            live = [c for c in cookies if c.name and not _is_expired(c, now)]
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable cookie snapshot", path=str(path), error=str(e))
            return []

        logger.debug(
            "Cookies loaded",
            domain=domain,
            count=len(live),
            expired=len(cookies) - len(live),
        )
        return live

    def save(self, domain: str, cookies: list[Cookie]) -> bool:
        """Overwrite the snapshot for a domain.

        The file is replaced atomically so readers never see a partial write.

        Returns:
            True if the snapshot was written.
        """
        path = self.path_for(domain)
        payload = json.dumps([c.to_dict() for c in cookies], indent=2)

        try:
            self.cookies_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cookies_dir, prefix=f".{path.stem}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Failed to save cookies", path=str(path), error=str(e))
            return False

        logger.debug("Cookies saved", domain=domain, count=len(cookies), path=str(path))
        return True


def _parse_cookie(item: dict[str, Any]) -> Cookie:
    cookie = Cookie.from_dict(item)
    if not isinstance(cookie.name, str) or not isinstance(cookie.value, str):
        raise TypeError(f"cookie name and value must be strings: {cookie.name!r}")
    if cookie.expires is not None:
        cookie.expires = float(cookie.expires)
    return cookie


def _is_expired(cookie: Cookie, now: float) -> bool:
    # Playwright reports session cookies with expires == -1
    if cookie.expires is None or cookie.expires < 0:
        return False
    return cookie.expires < now
