"""
Core mapping machinery for partitables.

Row key codec, schema registrar, collection classifier, batch planner and
entity mapper. Submodules are imported directly; only the exception
hierarchy is re-exported here.
"""

from partitables.core.exceptions import (
    PartiTablesError,
    ConfigurationError,
    ValidationError,
    InvalidPartitionKeyError,
    InvalidRowKeyError,
    DuplicateRowKeyError,
    BatchLimitExceededError,
    RowKeyAlreadyAssignedError,
    StoreError,
    ConflictError,
    EntityNotFoundError,
    RollbackError,
)

__all__ = [
    "PartiTablesError",
    "ConfigurationError",
    "ValidationError",
    "InvalidPartitionKeyError",
    "InvalidRowKeyError",
    "DuplicateRowKeyError",
    "BatchLimitExceededError",
    "RowKeyAlreadyAssignedError",
    "StoreError",
    "ConflictError",
    "EntityNotFoundError",
    "RollbackError",
]
