"""Logging setup shared by the API and CLI entry points."""

import logging
import logging.config
from typing import Optional


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Console logging, plus a rotating file when log_file is given.

    Library modules only call logging.getLogger(__name__); handlers are
    installed here by whichever entry point runs.
    """
    handlers = {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "simple",
            "filename": log_file,
            "maxBytes": 10_000_000,
            "backupCount": 5,
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"}
        },
        "handlers": handlers,
        "loggers": {
            "httpx": {"level": "WARNING"},
        },
        "root": {"level": level.upper(), "handlers": list(handlers)},
    })
