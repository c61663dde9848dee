"""
Logging setup shared by the API process and the maintenance scripts.

Import execution runs in the server's threadpool, so log lines carry the
thread name to keep interleaved jobs readable.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s"

# Third-party loggers that drown out import progress at INFO
_NOISY_LOGGERS = ("sqlalchemy.engine", "multipart", "python_multipart")

_is_configured = False


def configure_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Install the console handler and levels once per process.

    Args:
        level: Log level name for the root and ``advisor_crm`` loggers
            (defaults to INFO).
        force: Re-apply the configuration even if it was already installed,
            e.g. when a script wants a different level than the app default.
    """
    global _is_configured

    if _is_configured and not force:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": LOG_FORMAT,
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": log_level,
                }
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
            "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        }
    )

    logging.getLogger("advisor_crm").setLevel(log_level)

    _is_configured = True
