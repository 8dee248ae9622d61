"""
Configuration package for partitables.

This package provides centralized configuration management with
environment-based settings, validation, and constants.
"""

from partitables.config.settings import get_settings, reload_settings, Settings
from partitables.config.constants import (
    LIBRARY_NAME,
    LIBRARY_VERSION,
    MAX_BATCH_SIZE,
    MAX_ROW_KEY_BYTES,
    OperationType,
    UpdateMode,
    MatchStrategy,
)

__all__ = [
    "get_settings",
    "reload_settings",
    "Settings",
    "LIBRARY_NAME",
    "LIBRARY_VERSION",
    "MAX_BATCH_SIZE",
    "MAX_ROW_KEY_BYTES",
    "OperationType",
    "UpdateMode",
    "MatchStrategy",
]
