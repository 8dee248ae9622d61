"""
partitables
===========

Maps a root entity and its child collections onto one partition of a
partitioned table store, with template-based row keys, typed collection
hydration and batched saves with compensating rollback.
"""

from partitables.config.constants import LIBRARY_VERSION, OperationType, UpdateMode
from partitables.config.settings import Settings, get_settings, reload_settings
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
from partitables.core.batch import BatchOperation, PartitionBatch
from partitables.core.row_key import KeyTemplate, RowKeyRange, compile_template
from partitables.core.schema import SchemaRegistrar
from partitables.database import InMemoryPartitionStore, PartitionStore, RedisPartitionStore
from partitables.models import (
    PartitionRoot,
    RowEntity,
    RowKeyBuilder,
    RowKeyContext,
    RowKeyPattern,
    TablePartition,
    TableRow,
    row_collection,
)
from partitables.repositories import PartitionClient, PartitionRepository
from partitables.utils.logger import get_logger, setup_logging

__version__ = LIBRARY_VERSION

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "OperationType",
    "UpdateMode",
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
    "BatchOperation",
    "PartitionBatch",
    "KeyTemplate",
    "RowKeyRange",
    "compile_template",
    "SchemaRegistrar",
    "PartitionStore",
    "InMemoryPartitionStore",
    "RedisPartitionStore",
    "PartitionRoot",
    "RowEntity",
    "RowKeyBuilder",
    "RowKeyContext",
    "RowKeyPattern",
    "TablePartition",
    "TableRow",
    "row_collection",
    "PartitionClient",
    "PartitionRepository",
    "get_logger",
    "setup_logging",
]
