"""
Launch and context option composition.

Turns a CrawlConfig (with its resolved StealthProfile) into the keyword
arguments handed to ``BrowserType.launch`` and ``Browser.new_context``.
"""

from typing import Any

from src.crawler.browser_provider import BrowserLauncher
from src.crawler.crawl_config import CrawlConfig
from src.crawler.stealth import REALISTIC_HEADERS, STEALTH_CONTEXT_OVERRIDES, get_stealth_args
from src.utils.errors import InvalidConfigurationError


def build_launch_options(config: CrawlConfig) -> dict[str, Any]:
    """Return ``launch()`` keyword arguments.

    Stealth arguments are only added when the launch_args toggle is on;
    otherwise the engine's defaults apply. The network interface hint is
    appended as ``--bind-to-interface``.
    """
    options: dict[str, Any] = {"headless": config.headless}

    if config.proxy is not None:
        options["proxy"] = config.proxy.to_dict()

    args = get_stealth_args(config.stealth)
    if config.network_interface:
        args.append(f"--bind-to-interface={config.network_interface}")
    if args:
        options["args"] = args

    return options


async def resolve_device(launcher: BrowserLauncher, name: str) -> dict[str, Any]:
    """Look up a device descriptor by name.

    Raises:
        InvalidConfigurationError: Unknown device.
    """
    descriptor = await launcher.device(name)
    if descriptor is None:
        raise InvalidConfigurationError(f"Unknown device: {name}", option="device", value=name)
    return descriptor


def build_context_options(
    config: CrawlConfig,
    device: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Return ``new_context()`` keyword arguments.

    A device descriptor is applied last and wins over the user agent and
    viewport; without one the configured viewport is used.
    """
    options: dict[str, Any] = {}

    if config.user_agent:
        options["user_agent"] = config.user_agent
    if config.locale:
        options["locale"] = config.locale
    if config.timezone:
        options["timezone_id"] = config.timezone

    if config.stealth.context_options:
        options.update(STEALTH_CONTEXT_OVERRIDES)

    if config.stealth.headers_realistic:
        options["extra_http_headers"] = dict(REALISTIC_HEADERS)

    if device is not None:
        options.update(device)
    elif config.viewport is not None:
        options["viewport"] = config.viewport.to_dict()

    return options
