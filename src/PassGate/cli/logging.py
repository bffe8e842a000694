"""Logging utilities for the PassGate CLI."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = "PassGate"


def configure_logging(
    log_format: str = "text",
    verbose: bool = False,
    log_path: Optional[Path] = None,
) -> logging.Logger:
    if log_format not in {"text", "json"}:
        raise ValueError("log_format must be 'text' or 'json'")
    formatter = "json" if log_format == "json" else "text"
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": formatter,
            "level": "DEBUG" if verbose else "WARNING",
        }
    }
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "filename": str(log_path),
            "mode": "a",
            "encoding": "utf-8",
            "formatter": formatter,
            "level": "DEBUG",
        }

    formatters = {
        "text": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": handlers,
            "loggers": {
                LOGGER_NAME: {
                    "handlers": list(handlers.keys()),
                    "level": "DEBUG",
                    "propagate": False,
                }
            },
        }
    )
    logger = logging.getLogger(LOGGER_NAME)
    logger.debug(
        "Logging configured",
        extra={"log_path": str(log_path) if log_path else None, "log_format": log_format},
    )
    return logger
