import logging
import os
from typing import Any, Dict, Optional

import httpx
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from errors import InvalidRequestError


# Set up logging with environment variable
log_level_str = os.environ.get("LOG_LEVEL", "INFO")
log_level = getattr(logging, log_level_str, logging.INFO)

# Errors that are expected during normal operation and only add noise in Sentry
TRANSIENT_ERROR_TYPES = (
    InvalidRequestError,
    httpx.TimeoutException,
    httpx.ConnectError,
    RedisConnectionError,
    RedisTimeoutError,
    TimeoutError,
)


def get_logger(name: str) -> logging.Logger:
    """Simple logger function"""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(log_level)
    return logger


def filter_transient_errors(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Sentry before_send hook that drops client errors and transient network faults.

    Cache and hash lookups are fail-open, so their timeouts are logged locally
    but never worth an alert.

    Args:
        event: Sentry event payload
        hint: Sentry hint dict, contains "exc_info" for exception events

    Returns:
        The event to send, or None to drop it
    """
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], TRANSIENT_ERROR_TYPES):
        return None
    return event
