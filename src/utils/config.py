"""
Type-safe environment variable helpers.

Every helper returns the default when the variable is unset or blank and
raises ValueError when a value is present but cannot be converted, so
misconfiguration surfaces at startup instead of at first use.
"""

import os
from typing import List, Optional

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _raw(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def get_env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a string environment variable."""
    value = _raw(name)
    return default if value is None else value


def get_env_int(name: str, default: int) -> int:
    """Read an integer environment variable.

    Raises:
        ValueError: If the variable is set but is not an integer.
    """
    value = _raw(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


def get_env_float(name: str, default: float) -> float:
    """Read a float environment variable.

    Raises:
        ValueError: If the variable is set but is not a number.
    """
    value = _raw(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment variable (1/0, true/false, yes/no, on/off)."""
    value = _raw(name)
    if value is None:
        return default
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def get_env_list(name: str, default: Optional[List[str]] = None, separator: str = ",") -> List[str]:
    """Read a separated list, dropping empty items."""
    value = _raw(name)
    if value is None:
        return list(default or [])
    return [item.strip() for item in value.split(separator) if item.strip()]
