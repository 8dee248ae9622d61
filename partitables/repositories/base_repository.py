"""
Base Repository
===============

Shared plumbing for the partition client and the partition repository:

- structured logging of completed and failed operations
- timing of operations
- retry with exponential backoff for retryable store errors
"""

import asyncio
from abc import ABC
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog

from partitables.config.settings import Settings, get_settings
from partitables.core.exceptions import StoreError


class BaseRepository(ABC):
    """
    Abstract base for components that talk to a partition store

    Features:
        - Async/await support
        - Structured logging
        - Operation timing
        - Retry policy for transient store faults
    """

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize repository with settings and logger"""
        self.settings = settings or get_settings()
        self.logger = structlog.get_logger(self.__class__.__name__)

    def _log_operation(
            self,
            operation: str,
            duration_ms: Optional[float] = None,
            **kwargs
    ) -> None:
        """
        Log repository operation with structured data

        Args:
            operation: Operation name (find, save, delete, ...)
            duration_ms: Operation duration in milliseconds
            **kwargs: Additional context data
        """
        log_data = {
            "operation": operation,
            "repository": self.__class__.__name__,
            **kwargs
        }

        if duration_ms is not None:
            log_data["duration_ms"] = round(duration_ms, 2)

        self.logger.info("Repository operation completed", **log_data)

    def _log_error(
            self,
            operation: str,
            error: BaseException,
            **kwargs
    ) -> None:
        """
        Log repository error with context

        Args:
            operation: Failed operation name
            error: Exception that occurred
            **kwargs: Additional context data
        """
        self.logger.error(
            f"Repository operation failed: {operation}",
            error=str(error),
            error_type=type(error).__name__,
            repository=self.__class__.__name__,
            **kwargs
        )

    @asynccontextmanager
    async def _timed_operation(self, operation: str, **context):
        """
        Context manager for timing and logging operations

        Args:
            operation: Operation name for logging
            **context: Context logged with the outcome

        Yields:
            Dictionary the caller may add result details to
        """
        details: Dict[str, Any] = {}
        start_time = asyncio.get_running_loop().time()
        try:
            yield details
        except BaseException as e:
            self._log_error(operation, e, **context)
            raise
        duration_ms = (asyncio.get_running_loop().time() - start_time) * 1000
        self._log_operation(operation, duration_ms, **context, **details)

    async def _execute_with_retry(self, operation_func, *args, **kwargs) -> Any:
        """
        Execute a store call, retrying retryable store errors

        Delays grow as ``STORE_RETRY_BACKOFF_SECONDS * 2 ** attempt``.
        Other exceptions propagate immediately.

        Args:
            operation_func: Coroutine function to execute
            *args: Arguments for operation function
            **kwargs: Keyword arguments for operation function

        Returns:
            Operation result

        Raises:
            Last exception if all retries fail
        """
        max_retries = self.settings.STORE_MAX_RETRIES
        backoff = self.settings.STORE_RETRY_BACKOFF_SECONDS

        for attempt in range(max_retries + 1):
            try:
                return await operation_func(*args, **kwargs)
            except StoreError as e:
                if not e.retryable or attempt >= max_retries:
                    if e.retryable:
                        self.logger.error(
                            "Operation failed after all retries",
                            attempts=attempt + 1,
                            final_error=str(e)
                        )
                    raise

                delay = backoff * (2 ** attempt)
                self.logger.warning(
                    "Operation failed, retrying",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=delay,
                    error=str(e)
                )
                await asyncio.sleep(delay)
