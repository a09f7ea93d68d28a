"""Structured logging configuration for GraphDialog."""

import logging
import logging.config
from pathlib import Path
from typing import Any


def setup_logging(
    level: str = "INFO",
    json_file: str | Path | None = None,
    console_level: str | None = None,
) -> None:
    """
    Configure structured logging for GraphDialog.

    Args:
        level: Level of the graphdialog logger and of the JSON file
        json_file: When given, also write JSON records to this rotating file
        console_level: Console threshold (defaults to ``level``)
    """
    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "structured",
                "level": console_level or level,
            },
        },
        "loggers": {
            "graphdialog": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    }

    if json_file is not None:
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(json_file),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "formatter": "json",
            "level": level,
        }
        config["loggers"]["graphdialog"]["handlers"].append("file")

    logging.config.dictConfig(config)


class ContextLogger:
    """Logger with contextual information."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def with_context(self, **context: Any) -> logging.LoggerAdapter:
        """
        Add context to log messages.

        Args:
            **context: Context key-value pairs (e.g. session_id, node_id)

        Returns:
            LoggerAdapter with context
        """
        return logging.LoggerAdapter(self.logger, context)
