"""Centralised logging configuration for Query Scrubber."""

import logging
import logging.config
import os
from typing import Dict

LOG_LEVEL_ENV = "QUERY_SCRUBBER_LOG_LEVEL"

_LOGGING_CONFIGURED = False


def _resolve_level(value: str, default: str) -> str:
    value = (value or "").strip().upper()
    if value and isinstance(getattr(logging, value, None), int):
        return value
    return default


def setup_logging(force: bool = False) -> None:
    """Configure the package and uvicorn loggers for console output."""

    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED and not force:
        return

    log_level = _resolve_level(os.environ.get(LOG_LEVEL_ENV, ""), "INFO")

    config: Dict[str, object] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s %(levelname)s [%(name)s] - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard",
                "stream": "ext://sys.stdout",
            },
        },
        # Records propagate to the root handler; only levels are set here.
        "loggers": {
            "query_scrubber": {"level": log_level},
            "uvicorn": {"level": log_level},
            "httpx": {"level": "WARNING"},
            "openai": {"level": "WARNING"},
        },
        "root": {"handlers": ["console"], "level": "WARNING"},
    }

    logging.config.dictConfig(config)
    _LOGGING_CONFIGURED = True
