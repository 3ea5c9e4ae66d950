"""
Logging configuration for the Signup OTP API

This module sets up the logging configuration for the entire application.
Call setup_logging() at application startup to configure logging.
"""

import logging
import logging.config
import sys
from typing import Dict, Any


def get_logging_config(log_level: str = "INFO") -> Dict[str, Any]:
    """
    Get logging configuration dictionary

    Args:
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logging configuration dict
    """
    app_logger = {
        "level": log_level,
        "handlers": ["console"],
        "propagate": False,
    }
    quiet_logger = {
        "level": "WARNING",
        "handlers": ["console"],
        "propagate": False,
    }
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(levelname)s:     %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "detailed",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            # Application loggers
            "routers": dict(app_logger),
            "services": dict(app_logger),
            "stores": dict(app_logger),
            "clients": dict(app_logger),
            "middleware": dict(app_logger),
            "utils": dict(app_logger),
            # Third-party library loggers (set to WARNING to reduce noise)
            "uvicorn": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": dict(quiet_logger),  # Reduce access log noise
            "sqlalchemy": dict(quiet_logger),
            "alembic": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "urllib3": dict(quiet_logger),
            "google.auth": dict(quiet_logger),
            "python_http_client": dict(quiet_logger),
        },
        # Root logger - catches everything not caught by specific loggers
        "root": {
            "level": log_level,
            "handlers": ["console"],
        },
    }


def setup_logging(log_level: str = "INFO"):
    """
    Configure logging for the application

    Args:
        log_level: Log level to use (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    config = get_logging_config(log_level)
    logging.config.dictConfig(config)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")
