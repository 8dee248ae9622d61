"""Shared utilities for partitables."""

from partitables.utils.logger import setup_logging, get_logger

__all__ = ["setup_logging", "get_logger"]
