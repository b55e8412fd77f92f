"""Logging configuration for the command line."""

from __future__ import annotations

import logging
import logging.config

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {
            "format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            "datefmt": "%H:%M:%S",
        },
    },
    "handlers": {
        "stderr": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "skillconsole": {"handlers": ["stderr"], "level": "WARNING", "propagate": False},
        "httpx": {"handlers": ["stderr"], "level": "WARNING", "propagate": False},
    },
}


def configure_logging(level: str = "WARNING") -> None:
    name = level.strip().upper()
    if name not in LOG_LEVELS:
        name = "WARNING"
    cfg = {**BASE_LOG_CFG, "loggers": {k: {**v} for k, v in BASE_LOG_CFG["loggers"].items()}}
    cfg["loggers"]["skillconsole"]["level"] = name
    logging.config.dictConfig(cfg)
