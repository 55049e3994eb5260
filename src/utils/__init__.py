"""Shared utilities: environment configuration helpers and structured logging."""

from .config import get_env_bool, get_env_float, get_env_int, get_env_list, get_env_str
from .logging import StructuredFormatter, get_logger, setup_logging

__all__ = [
    "get_env_str",
    "get_env_int",
    "get_env_float",
    "get_env_bool",
    "get_env_list",
    "setup_logging",
    "get_logger",
    "StructuredFormatter",
]
