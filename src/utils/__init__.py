"""
spydr utilities module.
"""

from src.utils.config import Settings, ensure_directories, get_project_root, get_settings
from src.utils.logging import (
    LogContext,
    bind_context,
    configure_logging,
    get_logger,
    unbind_context,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_project_root",
    "ensure_directories",
    "get_logger",
    "configure_logging",
    "bind_context",
    "unbind_context",
    "LogContext",
]
