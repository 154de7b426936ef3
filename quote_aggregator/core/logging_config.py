"""
Logging configuration for Quote Aggregator Service.
Supports both JSON and text logging formats.
"""

import logging
import logging.config
import sys
from typing import Any, Dict, Optional
from pythonjsonlogger.json import JsonFormatter

from .config import Settings, settings as default_settings


NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "redis", "yfinance", "peewee")


def setup_logging(config: Optional[Settings] = None) -> None:
    """Setup structured logging for the application."""
    config = config or default_settings

    if config.log_format == "json":
        logging_config = get_json_logging_config(config.log_level)
    else:
        logging_config = get_text_logging_config(config.log_level)

    logging.config.dictConfig(logging_config)

    # Set log level for the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.log_level))

    # Reduce noise from external libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_json_logging_config(log_level: str) -> Dict[str, Any]:
    """Get JSON logging configuration."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": JsonFormatter,
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(module)s %(funcName)s %(lineno)d",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "json",
                "stream": sys.stdout
            }
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False
            },
            "app": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False
            }
        }
    }


def get_text_logging_config(log_level: str) -> Dict[str, Any]:
    """Get text logging configuration."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s (%(filename)s:%(lineno)d)",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            },
            "detailed": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s [in %(pathname)s:%(lineno)d]",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "standard" if log_level == "INFO" else "detailed",
                "stream": sys.stdout
            }
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False
            },
            "app": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False
            }
        }
    }


def create_logger(module_name: str) -> logging.Logger:
    """Create a logger for a specific module."""
    return logging.getLogger(f"app.{module_name}")
