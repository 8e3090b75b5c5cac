"""
Logging configuration.

Text output by default; LOG_FORMAT=json switches to python-json-logger so
the structured fields passed through `extra` end up as JSON keys.
"""

import logging
import logging.config
import sys
from typing import Any

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def get_logging_config(level: str = "INFO", fmt: str = "text") -> dict[str, Any]:
    """Build a dictConfig for the bot."""
    if fmt == "json":
        formatter = {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "fmt": JSON_FORMAT,
        }
    else:
        formatter = {
            "format": TEXT_FORMAT,
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "slack_bolt": {"level": "WARNING"},
            "slack_sdk": {"level": "WARNING"},
            "urllib3": {"level": "WARNING"},
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
    }


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure logging once at startup."""
    logging.config.dictConfig(get_logging_config(level.upper(), fmt))
    logging.getLogger(__name__).info(f"Logging configured (level={level}, format={fmt})")
