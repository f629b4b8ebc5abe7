"""
Logging setup for the command line tool and applications embedding the engine.

The engine logs through module loggers under ``tour_anchor`` and configures
nothing on import. Call ``setup_logging`` once from the application; the CLI
does it per command from the ``logging`` settings section.
"""

import json
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from tour_anchor.config.settings import LoggingSettings

# Chatty at DEBUG and unrelated to anchors
NOISY_LOGGERS = ("asyncio",)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log files read by other tools."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(settings: Optional[LoggingSettings] = None, level: Optional[str] = None) -> None:
    """
    Configure logging for the application.

    Args:
        settings: Logging section of the settings; defaults when omitted
        level: Overrides ``settings.level`` (the CLI passes DEBUG for --verbose)
    """
    settings = settings or LoggingSettings()
    log_level = getattr(logging, (level or settings.level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # Console output goes to stderr so JSON on stdout stays parseable
    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    if settings.file:
        file_handler = logging.FileHandler(settings.file)
        file_handler.setLevel(log_level)
        if settings.json_format:
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))
