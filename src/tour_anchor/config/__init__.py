"""
Configuration module - Centralized settings management.

This module provides type-safe configuration management using Pydantic,
supporting environment variables, YAML files, and keyword overrides.

Usage:
    from tour_anchor.config import get_settings, load_config
    
    # Get global settings (loaded once)
    settings = get_settings()
    
    # Or load fresh settings with overrides
    settings = load_config(locator={"wait_timeout_ms": 2000})

Environment Variables:
    TOUR_ANCHOR__LOCATOR__WAIT_TIMEOUT_MS=2000
    TOUR_ANCHOR__OBSERVERS__STALE_AFTER_MS=10000
    TOUR_ANCHOR__BROWSER__HEADLESS=false
"""

from tour_anchor.config.settings import (
    Settings,
    BrowserSettings,
    LocatorSettings,
    ObserverSettings,
    MonitorSettings,
    ScoringSettings,
    LoggingSettings,
)
from tour_anchor.config.loader import ConfigLoader, load_config

# Global settings singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).
    
    Settings are loaded once from environment variables and config files.
    Call reset_settings() to reload.
    
    Returns:
        Global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def reset_settings() -> None:
    """Reset the global settings (forces reload on next get_settings())."""
    global _settings
    _settings = None


__all__ = [
    "Settings",
    "BrowserSettings",
    "LocatorSettings",
    "ObserverSettings",
    "MonitorSettings",
    "ScoringSettings",
    "LoggingSettings",
    "ConfigLoader",
    "load_config",
    "get_settings",
    "reset_settings",
]
