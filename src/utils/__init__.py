"""
Utils package for lock-userinfo

Store access, Redis and disk cache clients, the race evaluator and shared
logging/metrics helpers.
"""

from .common_utils import get_logger

__all__ = [
    "get_logger",
]

__version__ = "1.0.0"
