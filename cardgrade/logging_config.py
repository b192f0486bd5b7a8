"""Logging setup for the service (stdlib dictConfig)."""

import logging
import logging.config


def build_logging_config(level: str = "INFO") -> dict:
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,  # keep uvicorn/fastapi loggers
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "cardgrade": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
            # httpx logs every request at INFO
            "httpx": {
                "level": "WARNING",
            },
        },
    }


def setup_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(build_logging_config(level))
