"""Configuration package."""

from lifesync.config.settings import (
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
