"""
Browser stealth profile for spydr.

Composes the user's stealth request (a bare flag or a partial set of toggles)
into a fully resolved StealthProfile, and provides the launch arguments,
headers, context overrides and init script each toggle turns on.

Composition rules:
- None / False: every toggle off
- True: every toggle on
- options with all=True: every toggle on, then explicitly set fields override
- options without all: only explicitly set fields are on
"""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from src.utils.errors import InvalidConfigurationError
from src.utils.logging import get_logger

logger = get_logger(__name__)


STEALTH_TOGGLES: tuple[str, ...] = (
    "webdriver",
    "plugins",
    "languages",
    "permissions",
    "chrome",
    "headers_realistic",
    "launch_args",
    "context_options",
    "root_domain_preload",
)

# Toggles patched inside the page by the init script
DOM_TOGGLES: tuple[str, ...] = ("webdriver", "plugins", "languages", "permissions", "chrome")


class StealthOptions(BaseModel):
    """Partial stealth request. None means "not set"."""

    model_config = ConfigDict(extra="forbid")

    all: bool | None = None
    webdriver: bool | None = None
    plugins: bool | None = None
    languages: bool | None = None
    permissions: bool | None = None
    chrome: bool | None = None
    headers_realistic: bool | None = None
    launch_args: bool | None = None
    context_options: bool | None = None
    root_domain_preload: bool | None = None

    def explicit_fields(self) -> dict[str, bool]:
        """Toggles that were explicitly set, excluding ``all``."""
        return {
            name: value
            for name in STEALTH_TOGGLES
            if (value := getattr(self, name)) is not None
        }


class StealthProfile(BaseModel):
    """Fully resolved stealth toggles."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    webdriver: bool = False
    plugins: bool = False
    languages: bool = False
    permissions: bool = False
    chrome: bool = False
    headers_realistic: bool = False
    launch_args: bool = False
    context_options: bool = False
    root_domain_preload: bool = False

    @property
    def all(self) -> bool:
        return all(getattr(self, name) for name in STEALTH_TOGGLES)

    @property
    def enabled(self) -> bool:
        return any(getattr(self, name) for name in STEALTH_TOGGLES)

    @property
    def needs_init_script(self) -> bool:
        return any(getattr(self, name) for name in DOM_TOGGLES)

    def enabled_features(self) -> list[str]:
        return [name for name in STEALTH_TOGGLES if getattr(self, name)]

    @classmethod
    def everything(cls) -> "StealthProfile":
        return cls(**{name: True for name in STEALTH_TOGGLES})


def resolve_stealth(
    value: bool | StealthOptions | StealthProfile | Mapping[str, Any] | None,
) -> StealthProfile:
    """Resolve a stealth request into a StealthProfile.

    Resolving an already resolved profile returns it unchanged. Mappings are
    read as StealthOptions; unknown keys in a mapping are ignored with a
    warning so that composition never raises.
    """
    if isinstance(value, StealthProfile):
        return value

    if value is None or value is False:
        return StealthProfile()

    if value is True:
        return StealthProfile.everything()

    if isinstance(value, Mapping):
        known = {k: v for k, v in value.items() if k == "all" or k in STEALTH_TOGGLES}
        unknown = sorted(set(value) - set(known))
        if unknown:
            logger.warning("Ignoring unknown stealth keys", keys=unknown)
        try:
            value = StealthOptions(**known)
        except ValidationError as e:
            logger.warning("Ignoring malformed stealth options", error=str(e))
            return StealthProfile()

    if not isinstance(value, StealthOptions):
        logger.warning("Unsupported stealth value, stealth disabled", type=type(value).__name__)
        return StealthProfile()

    base = {name: bool(value.all) for name in STEALTH_TOGGLES}
    base.update(value.explicit_fields())
    return StealthProfile(**base)


# =============================================================================
# Option string parsing (key=on|off)
# =============================================================================

_OPTION_KEYS: dict[str, str] = {
    "all": "all",
    "webdriver": "webdriver",
    "plugins": "plugins",
    "languages": "languages",
    "permissions": "permissions",
    "chrome": "chrome",
    "headersrealistic": "headers_realistic",
    "headers-realistic": "headers_realistic",
    "headers_realistic": "headers_realistic",
    "launchargs": "launch_args",
    "launch-args": "launch_args",
    "launch_args": "launch_args",
    "contextoptions": "context_options",
    "context-options": "context_options",
    "context_options": "context_options",
    "rootdomainpreload": "root_domain_preload",
    "root-domain-preload": "root_domain_preload",
    "root_domain_preload": "root_domain_preload",
}

_TRUE_VALUES = frozenset({"on", "true", "1", "yes"})
_FALSE_VALUES = frozenset({"off", "false", "0", "no"})


def parse_stealth_options(
    options: Iterable[str],
    *,
    stealth_flag: bool = False,
) -> bool | StealthOptions:
    """Turn ``--stealth`` and ``-o key=value`` arguments into a stealth request.

    Args:
        options: Raw ``key=value`` strings, e.g. ``["webdriver=on"]``.
        stealth_flag: Whether the blanket ``--stealth`` flag was given.

    Returns:
        ``True``/``False`` for a bare flag, otherwise StealthOptions.

    Raises:
        InvalidConfigurationError: Malformed pair, unknown key or value.
    """
    options = list(options)
    if not options:
        return stealth_flag

    fields: dict[str, bool] = {}
    if stealth_flag:
        fields["all"] = True

    for raw in options:
        key, sep, value = raw.partition("=")
        key = key.strip()
        value = value.strip().lower()
        if not sep or not key or not value:
            raise InvalidConfigurationError(
                f"Invalid option format: {raw}. Use key=value format.",
                option=raw,
            )

        field = _OPTION_KEYS.get(key.lower())
        if field is None:
            raise InvalidConfigurationError(f"Unknown stealth option: {key}", option=key)

        if value in _TRUE_VALUES:
            fields[field] = True
        elif value in _FALSE_VALUES:
            fields[field] = False
        else:
            raise InvalidConfigurationError(
                f"Invalid value for stealth option {key}: {value} (use on or off)",
                option=key,
                value=value,
            )

    return StealthOptions(**fields)


# =============================================================================
# Toggle effects
# =============================================================================

STEALTH_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-blink-features=AutomationControlled",
    "--disable-ipc-flooding-protection",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
    "--disable-background-timer-throttling",
    "--disable-features=TranslateUI",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-component-extensions-with-background-pages",
    "--disable-background-networking",
    "--no-first-run",
    "--no-default-browser-check",
    "--no-pings",
    "--password-store=basic",
    "--use-mock-keychain",
)

REALISTIC_HEADERS: dict[str, str] = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
    "Cache-Control": "max-age=0",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
    "sec-ch-ua": '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
    "sec-ch-ua-mobile": "?0",
    "sec-ch-ua-platform": '"Windows"',
}

# New York City, matching the default timezone
STEALTH_CONTEXT_OVERRIDES: dict[str, Any] = {
    "permissions": ["geolocation"],
    "geolocation": {"latitude": 40.7128, "longitude": -74.0060},
    "color_scheme": "light",
    "reduced_motion": "no-preference",
    "forced_colors": "none",
}

# Function expression applied to a JSON toggle map by build_init_script()
STEALTH_JS = """
(config) => {
    if (config.webdriver) {
        Object.defineProperty(navigator, 'webdriver', {
            get: () => undefined,
            configurable: true
        });
    }

    if (config.plugins) {
        Object.defineProperty(navigator, 'plugins', {
            get: () => [
                {
                    0: {
                        type: 'application/x-google-chrome-pdf',
                        suffixes: 'pdf',
                        description: 'Portable Document Format',
                        enabledPlugin: null
                    },
                    description: 'Portable Document Format',
                    filename: 'internal-pdf-viewer',
                    length: 1,
                    name: 'Chrome PDF Plugin'
                }
            ],
            configurable: true
        });
    }

    if (config.languages) {
        Object.defineProperty(navigator, 'languages', {
            get: () => ['en-US', 'en'],
            configurable: true
        });
    }

    if (config.permissions && navigator.permissions && navigator.permissions.query) {
        const originalQuery = navigator.permissions.query.bind(navigator.permissions);
        navigator.permissions.query = (parameters) => (
            parameters.name === 'notifications'
                ? Promise.resolve({ state: Notification.permission })
                : originalQuery(parameters)
        );
    }

    if (config.chrome) {
        window.chrome = window.chrome || {};
        window.chrome.runtime = window.chrome.runtime || {};
        Object.defineProperty(navigator, 'maxTouchPoints', {
            get: () => 1,
            configurable: true
        });
    }
}
"""


def build_init_script(profile: StealthProfile) -> str | None:
    """Return the init script for the profile's DOM toggles, or None if none are on."""
    if not profile.needs_init_script:
        return None
    flags = {name: getattr(profile, name) for name in DOM_TOGGLES}
    return f"({STEALTH_JS.strip()})({json.dumps(flags)});"


def get_stealth_args(profile: StealthProfile) -> list[str]:
    """Return browser launch arguments for the profile (empty unless launch_args)."""
    return list(STEALTH_LAUNCH_ARGS) if profile.launch_args else []
