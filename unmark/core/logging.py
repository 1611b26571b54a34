"""Logging configuration utilities."""

import logging
import logging.config
import sys
from typing import Optional

from loguru import logger as loguru_logger

from unmark.core.config import settings

LOGURU_FORMAT = "{level} | {time:YYYY-MM-DD HH:mm:ss} | {name} | {message}"


def get_logging_config(level: Optional[str] = None, json_logs: Optional[bool] = None) -> dict:
    """Return a dictConfig-compatible logging configuration."""

    log_level = (level or settings.LOG_LEVEL).upper()
    use_json = json_logs if json_logs is not None else settings.LOG_JSON

    formatter = (
        {
            "format": "%(levelname)s %(asctime)s %(name)s %(message)s",
            "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
        }
        if use_json
        else {
            "format": "%(levelname)s | %(asctime)s | %(name)s | %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }
    )

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": formatter,
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "": {
                "handlers": ["default"],
                "level": log_level,
            },
            "unmark": {"handlers": ["default"], "level": log_level, "propagate": False},
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["default"], "level": "INFO", "propagate": False},
        },
    }


def configure_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """Configure stdlib logging and loguru for the application."""

    logging.config.dictConfig(get_logging_config(level=level, json_logs=json_logs))

    # Pipeline stages and service clients log through loguru; keep it on the same level.
    use_json = json_logs if json_logs is not None else settings.LOG_JSON
    loguru_logger.remove()
    loguru_logger.add(
        sys.stdout,
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOGURU_FORMAT,
        serialize=use_json,
    )
