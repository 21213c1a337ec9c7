"""
Configuration management for spydr.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "spydr"
    version: str = "1.0.0"
    log_level: str = "INFO"
    logs_dir: str = "logs"
    log_format: str = "console"  # console or json


class BrowserConfig(BaseModel):
    """Browser defaults used when the CLI does not override them."""

    engine: str = "chromium"
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    headless: bool = True
    timeout_ms: int = 30000
    viewport: str | None = "1920x1080"
    device: str | None = None
    locale: str = "en-US"
    timezone: str = "America/New_York"
    proxy: str | None = None
    network_interface: str | None = None


class StorageConfig(BaseModel):
    """Storage configuration."""

    database_path: str = "crawl.db"
    output_dir: str = "crawl-output"
    cookies_dir: str = "cookies"


class CaptureConfig(BaseModel):
    """Capture pipeline timings and caps.

    Scrolling stops at whichever of distance, iteration count or
    wall-clock time is reached first.
    """

    model_config = ConfigDict(extra="forbid")

    settle_ms: int = 2000
    preload_wait_ms: int = 1500

    scroll_step_px: int = 100
    scroll_interval_ms: int = 100
    max_scroll_distance_px: int = 50000
    max_scroll_iterations: int = 500
    max_scroll_seconds: float = 30.0

    screenshot_timeout_ms: int = 30000
    screenshot_fallback_timeout_ms: int = 10000
    screenshot_required: bool = False  # raise if the viewport fallback also fails

    max_text_chars: int = 1_000_000


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides.

    local.yaml holds developer-specific overrides and is not committed.
    Its top-level keys mirror settings.yaml.

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _load_yaml_file(config_dir / "settings.yaml")
    local_overrides = _load_yaml_file(config_dir / "local.yaml")
    return _deep_merge(config, local_overrides)


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with SPYDR_ and use
    double underscores for nested keys.

    Example:
        SPYDR_BROWSER__ENGINE=firefox

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "SPYDR_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "SPYDR_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")
        if len(key_path) < 2:
            continue

        current = config
        for part in key_path[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("SPYDR_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)

    return Settings(**config)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at src/utils/config.py
    return Path(__file__).parent.parent.parent


def ensure_directories(settings: Settings | None = None) -> None:
    """Ensure all required directories exist."""
    settings = settings or get_settings()

    dirs = [
        Path(settings.general.logs_dir),
        Path(settings.storage.output_dir),
        Path(settings.storage.cookies_dir),
        Path(settings.storage.database_path).parent,
    ]

    for dir_path in dirs:
        dir_path.mkdir(parents=True, exist_ok=True)
