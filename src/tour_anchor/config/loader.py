"""
Config Loader - Build Settings from config files, environment and overrides.

Precedence, highest first:
1. Keyword overrides (the CLI passes --timeout, --visible this way)
2. TOUR_ANCHOR__* environment variables, including ones from a .env file
3. The config file (YAML, or JSON by suffix)
4. Defaults

The config file is the explicit ``config_path``, else the file named by
``TOUR_ANCHOR_CONFIG``, else the first of DEFAULT_CONFIG_PATHS that exists.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from tour_anchor.config.settings import Settings, deep_merge
from tour_anchor.exceptions.base import ConfigurationError

logger = logging.getLogger(__name__)


CONFIG_PATH_ENV = "TOUR_ANCHOR_CONFIG"

DEFAULT_ENV_FILES = [Path(".env"), Path(".env.local")]


class ConfigLoader:
    """
    Loads one Settings instance from every configuration source.

    Example:
        >>> loader = ConfigLoader("tour-anchor.yaml")
        >>> settings = loader.load(overrides={"locator": {"wait_timeout_ms": 2000}})
        >>> loader.source
        PosixPath('tour-anchor.yaml')
    """

    DEFAULT_CONFIG_PATHS = [
        Path("tour-anchor.yaml"),
        Path("tour-anchor.yml"),
        Path("config/tour-anchor.yaml"),
        Path.home() / ".config" / "tour-anchor" / "config.yaml",
    ]

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None
        self.source: Optional[Path] = None

    def find_config_file(self) -> Optional[Path]:
        """
        Resolve the config file to read.

        An explicitly requested file (argument or TOUR_ANCHOR_CONFIG) must
        exist; the default locations are optional.

        Raises:
            ConfigurationError: If an explicitly requested file is missing
        """
        requested = self.config_path or (
            Path(os.environ[CONFIG_PATH_ENV]) if os.environ.get(CONFIG_PATH_ENV) else None
        )
        if requested is not None:
            if not requested.is_file():
                raise ConfigurationError(f"Config file not found: {requested}", {"path": str(requested)})
            return requested

        return next((path for path in self.DEFAULT_CONFIG_PATHS if path.is_file()), None)

    def read_config_file(self, path: Path) -> Dict[str, Any]:
        """
        Parse a config file into a mapping of settings sections.

        An empty file is an empty mapping.
        """
        text = path.read_text()
        try:
            if path.suffix.lower() == ".json":
                data = json.loads(text) if text.strip() else None
            else:
                data = yaml.safe_load(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}", {"path": str(path)}) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", {"path": str(path)}) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping", {"path": str(path)})
        return data

    def load_env_file(self, env_file: Optional[Union[str, Path]] = None) -> None:
        """Export variables from ``env_file``, or the first default .env found."""
        if env_file:
            load_dotenv(env_file)
            return
        for env_path in DEFAULT_ENV_FILES:
            if env_path.is_file():
                load_dotenv(env_path)
                return

    def load(
        self,
        env_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Settings:
        """
        Load settings from all sources.

        Args:
            env_file: Optional path to a .env file
            overrides: Sections and values that win over everything else

        Returns:
            Validated Settings

        Raises:
            ConfigurationError: If a file is missing or unreadable, or a value is invalid
        """
        self.load_env_file(env_file)

        self.source = self.find_config_file()
        file_config = self.read_config_file(self.source) if self.source else {}
        if self.source:
            logger.debug(f"Loaded configuration from {self.source}")

        try:
            # Constructor values outrank the environment, so layer env over file here
            env_config = Settings().model_dump(exclude_unset=True)
            merged = deep_merge(deep_merge(file_config, env_config), overrides or {})
            return Settings(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}", {"source": str(self.source)}) from e


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> Settings:
    """
    Convenience function to load configuration.

    Example:
        >>> settings = load_config()
        >>> settings = load_config(config_path="tour-anchor.yaml")
        >>> settings = load_config(locator={"wait_timeout_ms": 2000})
    """
    return ConfigLoader(config_path).load(env_file=env_file, overrides=overrides or None)
