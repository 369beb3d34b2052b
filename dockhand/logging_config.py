"""
Logging configuration for the agent.

Executor output echoed under --debug goes through its own handler with a
bare formatter, so multi-line script output stays readable.
"""

import logging
import logging.config
from typing import Any, Dict


class BlankLineFilter(logging.Filter):
    """Filter to suppress empty executor output lines."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Drop records whose message is only whitespace."""
        return bool(record.getMessage().strip())


def get_logging_config(debug: bool = False) -> Dict[str, Any]:
    """Get logging configuration; debug lowers every dockhand logger to DEBUG."""
    level = "DEBUG" if debug else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "blank_line_filter": {
                "()": BlankLineFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "output": {
                "format": "%(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            },
            "output": {
                "class": "logging.StreamHandler",
                "formatter": "output",
                "stream": "ext://sys.stdout",
                "filters": ["blank_line_filter"]
            }
        },
        "loggers": {
            "dockhand": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            },
            "dockhand.executor.output": {
                "handlers": ["output"],
                "level": level,
                "propagate": False
            },
            "httpx": {
                "handlers": ["default"],
                "level": "WARNING",
                "propagate": False
            }
        },
        "root": {
            "level": "INFO",
            "handlers": ["default"]
        }
    }
