"""
Partition mapping exceptions
============================

Defines the exception hierarchy raised by the schema, codec, batch planner
and repository layers.

Exception Hierarchy:
    PartiTablesError (base)
    ├── ConfigurationError
    ├── ValidationError
    │   ├── InvalidPartitionKeyError
    │   ├── InvalidRowKeyError
    │   ├── DuplicateRowKeyError
    │   ├── BatchLimitExceededError
    │   └── RowKeyAlreadyAssignedError
    ├── StoreError
    │   └── ConflictError
    ├── EntityNotFoundError
    └── RollbackError

Configuration and validation errors are raised before any I/O and are
never retried. Store errors carry a ``retryable`` flag consulted by the
partition client's retry policy.
"""

from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
import traceback


class PartiTablesError(Exception):
    """
    Base exception for all partitables operations

    Provides common functionality for error context and serialization.
    """

    def __init__(
            self,
            message: str,
            original_error: Optional[BaseException] = None,
            error_code: Optional[str] = None,
            context: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize partitables error

        Args:
            message: Human-readable error message
            original_error: Original exception that caused this error
            error_code: Machine-readable error code
            context: Additional context about the error
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.error_code = error_code or self.__class__.__name__.upper()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        self.traceback = traceback.format_exc() if original_error else None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for serialization

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "original_error": str(self.original_error) if self.original_error else None
        }

    def add_context(self, key: str, value: Any) -> "PartiTablesError":
        """
        Add context information to the error

        Args:
            key: Context key
            value: Context value

        Returns:
            Self for method chaining
        """
        self.context[key] = value
        return self

    def __str__(self) -> str:
        """String representation with context"""
        base_msg = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" (Context: {context_str})"
        return base_msg


class ConfigurationError(PartiTablesError):
    """
    Exception raised when a schema declaration is invalid

    Used for missing partition key properties, malformed key templates,
    unresolvable placeholders and invalid table names. Raised when a
    repository is constructed or on first use.
    """

    def __init__(
            self,
            message: str,
            entity_type: Optional[str] = None,
            property_name: Optional[str] = None
    ):
        """
        Initialize configuration error

        Args:
            message: Configuration error message
            entity_type: Type whose declaration is invalid
            property_name: Property involved, if any
        """
        self.entity_type = entity_type
        self.property_name = property_name

        context = {}
        if entity_type:
            context["entity_type"] = entity_type
        if property_name:
            context["property_name"] = property_name

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            context=context
        )


class ValidationError(PartiTablesError):
    """
    Exception raised when an operation fails validation before any I/O
    """

    def __init__(
            self,
            message: str,
            field: Optional[str] = None,
            error_code: str = "VALIDATION_ERROR",
            context: Optional[Dict[str, Any]] = None
    ):
        self.field = field
        context = dict(context or {})
        if field:
            context.setdefault("field", field)

        super().__init__(
            message=message,
            error_code=error_code,
            context=context
        )


class InvalidPartitionKeyError(ValidationError):
    """Raised for empty partition keys or keys that do not match a batch."""

    def __init__(self, message: str, partition_key: Optional[str] = None):
        self.partition_key = partition_key
        super().__init__(
            message=message,
            field="partition_key",
            error_code="INVALID_PARTITION_KEY",
            context={"partition_key": partition_key}
        )


class InvalidRowKeyError(ValidationError):
    """Raised when a row key is empty, too long or has forbidden characters."""

    def __init__(self, message: str, row_key: Optional[str] = None):
        self.row_key = row_key
        super().__init__(
            message=message,
            field="row_key",
            error_code="INVALID_ROW_KEY",
            context={"row_key": row_key}
        )


class DuplicateRowKeyError(ValidationError):
    """Raised when an insert or update repeats a row key within one batch."""

    def __init__(self, row_key: str):
        self.row_key = row_key
        super().__init__(
            message=(
                f"Duplicate row key '{row_key}' detected in batch. "
                "Each entity must have a unique row key."
            ),
            field="row_key",
            error_code="DUPLICATE_ROW_KEY",
            context={"row_key": row_key}
        )


class BatchLimitExceededError(ValidationError):
    """Raised when a batch would hold more operations than the store allows."""

    def __init__(self, current_count: int, max_count: int):
        self.current_count = current_count
        self.max_count = max_count
        super().__init__(
            message=f"Batch limit exceeded. Current: {current_count}, Max: {max_count}",
            error_code="BATCH_LIMIT_EXCEEDED",
            context={"current_count": current_count, "max_count": max_count}
        )


class RowKeyAlreadyAssignedError(ValidationError):
    """Raised when a record's row key would be changed after assignment."""

    def __init__(self, current_row_key: str, new_row_key: str):
        self.current_row_key = current_row_key
        self.new_row_key = new_row_key
        super().__init__(
            message=(
                f"Row key already assigned as '{current_row_key}', "
                f"cannot reassign to '{new_row_key}'"
            ),
            field="row_key",
            error_code="ROW_KEY_ALREADY_ASSIGNED",
            context={"current_row_key": current_row_key, "new_row_key": new_row_key}
        )


class StoreError(PartiTablesError):
    """
    Exception raised when the partition store rejects or fails an operation

    Used for batch submission failures and row-level I/O failures. The
    ``retryable`` flag marks transient faults.
    """

    def __init__(
            self,
            message: str,
            operation: Optional[str] = None,
            partition_key: Optional[str] = None,
            retryable: bool = False,
            original_error: Optional[BaseException] = None,
            error_code: str = "STORE_ERROR"
    ):
        """
        Initialize store error

        Args:
            message: Store error message
            operation: Store operation that failed
            partition_key: Partition involved
            retryable: Whether the operation may succeed if retried
            original_error: Original backend exception
            error_code: Machine-readable error code
        """
        self.operation = operation
        self.partition_key = partition_key
        self.retryable = retryable

        context = {
            "operation": operation,
            "partition_key": partition_key,
            "retryable": retryable
        }

        super().__init__(
            message=message,
            original_error=original_error,
            error_code=error_code,
            context=context
        )


class ConflictError(StoreError):
    """
    Exception raised when an insert targets an existing row or an update
    targets an absent one. The whole batch is rejected.
    """

    def __init__(
            self,
            partition_key: str,
            row_key: str,
            reason: str,
            operation: Optional[str] = None
    ):
        self.row_key = row_key
        self.reason = reason
        super().__init__(
            message=f"Conflict on row '{row_key}' in partition '{partition_key}': {reason}",
            operation=operation,
            partition_key=partition_key,
            error_code="CONFLICT"
        )
        self.context["row_key"] = row_key


class EntityNotFoundError(PartiTablesError):
    """
    Exception raised by get-or-throw variants when nothing exists

    Plain lookups return None instead.
    """

    def __init__(
            self,
            entity_type: str,
            partition_key: str,
            row_key: Optional[str] = None
    ):
        """
        Initialize entity not found error

        Args:
            entity_type: Type of entity that was not found
            partition_key: Partition that was searched
            row_key: Row key that was searched, for row-level lookups
        """
        self.entity_type = entity_type
        self.partition_key = partition_key
        self.row_key = row_key

        message = f"{entity_type} not found: PartitionKey='{partition_key}'"
        if row_key is not None:
            message += f", RowKey='{row_key}'"

        super().__init__(
            message=message,
            error_code="ENTITY_NOT_FOUND",
            context={
                "entity_type": entity_type,
                "partition_key": partition_key,
                "row_key": row_key
            }
        )


class RollbackError(PartiTablesError):
    """
    Exception raised when compensating a failed save itself fails

    Supersedes the original save error: one or more rollback batches could
    not be applied, so rows written by the save may remain in the store.
    """

    def __init__(
            self,
            partition_key: str,
            errors: List[BaseException],
            original_error: Optional[BaseException] = None
    ):
        """
        Initialize rollback error

        Args:
            partition_key: Partition being saved
            errors: One exception per failed rollback batch
            original_error: The save failure that triggered the rollback
        """
        self.partition_key = partition_key
        self.errors = list(errors)

        super().__init__(
            message=(
                f"Rollback failed for {len(self.errors)} batch(es). "
                "Data may be in an inconsistent state."
            ),
            original_error=original_error,
            error_code="ROLLBACK_FAILED",
            context={
                "partition_key": partition_key,
                "failed_batches": len(self.errors),
                "errors": [f"{type(e).__name__}: {e}" for e in self.errors]
            }
        )
