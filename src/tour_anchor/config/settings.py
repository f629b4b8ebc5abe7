"""
Settings - Pydantic models for type-safe configuration.

This module defines all configuration settings as Pydantic models,
providing validation, type hints, and automatic environment variable loading.

Example:
    >>> from tour_anchor.config import Settings, load_config
    >>> settings = load_config()  # Loads from env, yaml, and defaults
    >>> print(settings.locator.wait_timeout_ms)
    5000
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def deep_merge(base: dict, updates: dict) -> dict:
    """Merge ``updates`` into ``base`` section by section (mutates ``base``)."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class BrowserSettings(BaseModel):
    """
    Browser settings used by the CLI and environment detection.

    Attributes:
        headless: Run browser in headless mode
        browser_type: Playwright browser to launch
        viewport_width: Browser viewport width in pixels
        viewport_height: Browser viewport height in pixels
        navigation_timeout_ms: Timeout for page navigation
        navigation_retries: Extra navigation attempts after a failed load
    """
    headless: bool = True
    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    viewport_width: int = Field(default=1280, ge=320, le=3840)
    viewport_height: int = Field(default=720, ge=240, le=2160)
    navigation_timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    navigation_retries: int = Field(default=1, ge=0, le=5)


class LocatorSettings(BaseModel):
    """
    Element resolution and waiting settings.

    Attributes:
        wait_timeout_ms: Default bounded-wait timeout for find_element
        invalid_timeout_fallback_ms: Timeout used when a caller passes an
            unusable timeout (negative, NaN, infinite, non-numeric)
        step_validation_timeout_ms: Shorter timeout used per tour step
        require_visible: Only accept elements that pass the visibility check
        retries: Retry count for find_tour_element
        retry_delay_ms: Delay between find_tour_element retries
        fallback_retries: Retry count for execute_with_fallback_strategies
        fallback_retry_delay_ms: Delay between fallback-strategy retries
    """
    wait_timeout_ms: int = Field(default=5000, ge=0, le=120000)
    invalid_timeout_fallback_ms: int = Field(default=100, ge=0, le=10000)
    step_validation_timeout_ms: int = Field(default=1000, ge=0, le=60000)
    require_visible: bool = True
    retries: int = Field(default=3, ge=0, le=10)
    retry_delay_ms: int = Field(default=1000, ge=0, le=30000)
    fallback_retries: int = Field(default=3, ge=0, le=10)
    fallback_retry_delay_ms: int = Field(default=500, ge=0, le=30000)


class ObserverSettings(BaseModel):
    """
    Observer lifecycle registry thresholds.

    Attributes:
        default_timeout_ms: Timeout for create_element_observer
        stale_after_ms: Age after which emergency cleanup may disconnect
        leak_risk_count: Live registrations above this count flag a leak risk
        leak_risk_age_ms: A registration older than this flags a leak risk
        high_count_warning: Live registrations above this count get logged
    """
    default_timeout_ms: int = Field(default=10000, ge=0, le=600000)
    stale_after_ms: int = Field(default=5000, ge=0)
    leak_risk_count: int = Field(default=20, ge=1)
    leak_risk_age_ms: int = Field(default=600000, ge=0)
    high_count_warning: int = Field(default=10, ge=1)


class MonitorSettings(BaseModel):
    """
    Performance monitor settings.

    Attributes:
        slow_search_ms: Searches slower than this count as slow
        retention_ms: Samples older than this are pruned
        slow_step_ms: Tour steps slower than this are reported
    """
    slow_search_ms: int = Field(default=1000, ge=1)
    retention_ms: int = Field(default=300000, ge=1000)
    slow_step_ms: int = Field(default=1000, ge=1)


class ScoringSettings(BaseModel):
    """
    Accessibility score deductions used by the comprehensive validator.

    Every value is the number of points removed from a perfect 100.
    """
    not_visible: int = Field(default=30, ge=0, le=100)
    zero_size: int = Field(default=20, ge=0, le=100)
    outside_viewport: int = Field(default=15, ge=0, le=100)
    per_accessibility_issue: int = Field(default=10, ge=0, le=100)
    per_interactivity_issue: int = Field(default=15, ge=0, le=100)
    per_performance_issue: int = Field(default=5, ge=0, le=100)
    max_selector_complexity: int = Field(default=10, ge=1)
    max_dom_depth: int = Field(default=20, ge=1)


class LoggingSettings(BaseModel):
    """
    Logging configuration.

    Attributes:
        level: Log level
        file: Log file path (None for console only)
        json_format: Use JSON format for logs
    """
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    file: Optional[str] = None
    json_format: bool = False


class Settings(BaseSettings):
    """
    Root settings container - single source of truth for all configuration.

    Settings are loaded in this priority order (highest to lowest):
    1. Explicit values passed to constructor
    2. Environment variables (prefixed with TOUR_ANCHOR__)
    3. Config file (YAML)
    4. Default values

    Example:
        >>> settings = Settings()  # Load from env vars
        >>> settings = Settings(locator=LocatorSettings(wait_timeout_ms=2000))
    """

    model_config = SettingsConfigDict(
        env_prefix="TOUR_ANCHOR__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    locator: LocatorSettings = Field(default_factory=LocatorSettings)
    observers: ObserverSettings = Field(default_factory=ObserverSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    debug: bool = False

    def merge_with(self, overrides: dict) -> "Settings":
        """
        Create a new Settings instance with overrides applied.

        Args:
            overrides: Dictionary of values to override

        Returns:
            New Settings instance with overrides applied
        """
        return Settings(**deep_merge(self.model_dump(), overrides))
