"""
Configuration module: Settings, logging, correlation.
"""

from shared.config.settings import Settings, settings, get_settings
from shared.config.logging import get_logger, setup_logging, shutdown_logging

__all__ = [
    # settings
    "Settings",
    "settings",
    "get_settings",
    # logging
    "get_logger",
    "setup_logging",
    "shutdown_logging",
]
