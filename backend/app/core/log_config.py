from __future__ import annotations

import logging
import logging.config


def configure_logging(level: str = "info") -> None:
    log_level = level.upper()
    if not isinstance(logging.getLevelName(log_level), int):
        log_level = "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
            "loggers": {
                # per-request lines from the upstream client are logged by LocalAIService
                "httpx": {"level": "WARNING"},
            },
        }
    )
