"""Configuration centrale du logging : un handler stdout sur la racine."""
from __future__ import annotations
import logging
from logging.config import dictConfig

_DICT_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s:%(name)s:%(message)s",
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "default",
            "stream": "ext://sys.stdout",
        }
    },
    "root": {"level": "INFO", "handlers": ["console"]},
}

def configure_logging(level: str = "INFO") -> None:
    """Ne fait rien si la racine a déjà des handlers (évite les doublons)."""
    root = logging.getLogger()
    if root.handlers:
        return
    config = dict(_DICT_CONFIG)
    config["root"] = {"level": level, "handlers": ["console"]}
    dictConfig(config)
