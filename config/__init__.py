"""
Configuration Management Module
"""
from .settings import (
    ClientSettings,
    LoggingSettings,
    Settings,
    get_settings,
    get_client_settings,
    get_logging_settings,
)

__all__ = [
    "ClientSettings",
    "LoggingSettings",
    "Settings",
    "get_settings",
    "get_client_settings",
    "get_logging_settings",
]
