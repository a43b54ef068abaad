# SPDX-License-Identifier: Apache-2.0.
# Copyright (c) 2024 - 2026 Waldiez and contributors.
"""Logging configuration module."""

import logging.config
import os
import sys
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, get_args

from .config import ENV_PREFIX

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(str, Enum):
    """The log level type."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


LogLevelType = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]
"""Possible log levels."""


def get_logging_config(log_level: str) -> Dict[str, Any]:
    """Get logging config dict.

    Parameters
    ----------
    log_level : str
        The log level

    Returns
    -------
    Dict[str, Any]
        The logging config dict
    """
    # third party loggers that should not follow --log-level DEBUG
    modules_to_have_level_info = [
        "urllib3",
        "asyncio",
    ]
    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": LOG_FORMAT,
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": False,
            },
            "sentry_ops": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": False,
            },
        },
    }
    for module in modules_to_have_level_info:
        logging_config["loggers"][module] = {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        }
    return logging_config


def setup_logging(log_level: str) -> None:
    """Apply the logging config for a log level.

    Parameters
    ----------
    log_level : str
        The log level
    """
    logging.config.dictConfig(get_logging_config(log_level.upper()))


# pyright: reportInvalidTypeForm=false
def get_log_level(argv: Optional[List[str]] = None) -> LogLevelType:
    """Get the default log level.

    Parameters
    ----------
    argv : Optional[List[str]]
        The arguments to inspect, defaults to ``sys.argv``.

    Returns
    -------
    LogLevel
        The default log level
    """
    args = sys.argv if argv is None else argv
    if "--debug" in args:
        os.environ[f"{ENV_PREFIX}LOG_LEVEL"] = "DEBUG"
        return "DEBUG"
    possible_log_levels: Tuple[LogLevelType, ...] = get_args(LogLevelType)
    if "--log-level" in args:
        log_level_index = args.index("--log-level") + 1
        if log_level_index < len(args):
            log_level = args[log_level_index].upper()
            if log_level in possible_log_levels:
                os.environ[f"{ENV_PREFIX}LOG_LEVEL"] = log_level
                return log_level  # type: ignore[return-value]
    for_env = os.environ.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO").upper()
    if for_env in possible_log_levels:
        return for_env  # type: ignore[return-value]
    os.environ[f"{ENV_PREFIX}LOG_LEVEL"] = "INFO"
    return "INFO"
