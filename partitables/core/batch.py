"""
Partition Batch
===============

Size-bounded, single-partition unit of write operations. The table store
applies one batch atomically; everything bigger is split by the batch
planner in ``partitables.core.transaction``.

Rules:
- every row must carry the batch's partition key
- row keys are checked against the store's key constraints when added
- an upsert or delete for a row key already in the batch replaces the
  earlier operation in place
- an insert or update for a row key already in the batch is rejected
- adding a new row key to a full batch raises ``BatchLimitExceededError``
"""

from dataclasses import dataclass
from typing import Dict, List, Union

from partitables.config.constants import (
    MAX_BATCH_SIZE,
    MAX_ROW_KEY_BYTES,
    OperationType,
    UpdateMode,
)
from partitables.core.exceptions import (
    BatchLimitExceededError,
    DuplicateRowKeyError,
    InvalidPartitionKeyError,
)
from partitables.core.row_key import validate_partition_key, validate_row_key
from partitables.models.table_row import TableRow


@dataclass(frozen=True)
class BatchOperation:
    """
    One write operation inside a batch

    Attributes:
        operation: Kind of write
        row: Row to write; only the keys matter for deletes
        mode: Merge or replace semantics for upserts and updates
    """
    operation: OperationType
    row: TableRow
    mode: UpdateMode = UpdateMode.MERGE

    @property
    def row_key(self) -> str:
        return self.row.row_key

    @property
    def partition_key(self) -> str:
        return self.row.partition_key


class PartitionBatch:
    """Ordered operations against one partition, applied atomically by the store."""

    def __init__(
            self,
            partition_key: str,
            max_size: int = MAX_BATCH_SIZE,
            max_row_key_bytes: int = MAX_ROW_KEY_BYTES
    ):
        """
        Initialize an empty batch

        Args:
            partition_key: Partition every operation must target
            max_size: Maximum number of operations
            max_row_key_bytes: Maximum UTF-8 size of a row key

        Raises:
            InvalidPartitionKeyError: If the partition key is invalid
        """
        self.partition_key = validate_partition_key(partition_key)
        self.max_size = max_size
        self.max_row_key_bytes = max_row_key_bytes
        self._operations: Dict[str, BatchOperation] = {}

    def upsert(self, row: TableRow, mode: UpdateMode = UpdateMode.MERGE) -> "PartitionBatch":
        """Insert or update a row, replacing any earlier operation on its key."""
        self._add(BatchOperation(OperationType.UPSERT, row, mode), replace=True)
        return self

    def insert(self, row: TableRow) -> "PartitionBatch":
        """Insert a row that must not exist yet."""
        self._add(BatchOperation(OperationType.INSERT, row), replace=False)
        return self

    def update(self, row: TableRow, mode: UpdateMode = UpdateMode.MERGE) -> "PartitionBatch":
        """Update a row that must already exist."""
        self._add(BatchOperation(OperationType.UPDATE, row, mode), replace=False)
        return self

    def delete(self, row_or_key: Union[TableRow, str]) -> "PartitionBatch":
        """Delete a row by key, replacing any earlier operation on its key."""
        if isinstance(row_or_key, TableRow):
            row = TableRow(partition_key=row_or_key.partition_key, row_key=row_or_key.row_key)
        else:
            row = TableRow(partition_key=self.partition_key, row_key=row_or_key)
        self._add(BatchOperation(OperationType.DELETE, row), replace=True)
        return self

    def clear(self) -> None:
        self._operations.clear()

    @property
    def operations(self) -> List[BatchOperation]:
        """Operations in the order they were first added."""
        return list(self._operations.values())

    @property
    def row_keys(self) -> List[str]:
        return list(self._operations)

    @property
    def count(self) -> int:
        return len(self._operations)

    @property
    def is_full(self) -> bool:
        return len(self._operations) >= self.max_size

    @property
    def is_empty(self) -> bool:
        return not self._operations

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self):
        return iter(self.operations)

    def __repr__(self) -> str:
        return f"PartitionBatch(partition_key={self.partition_key!r}, count={self.count})"

    def _add(self, operation: BatchOperation, replace: bool) -> None:
        self._validate_row(operation.row)
        row_key = operation.row_key

        if row_key in self._operations:
            if not replace:
                raise DuplicateRowKeyError(row_key)
            self._operations[row_key] = operation
            return

        if len(self._operations) >= self.max_size:
            raise BatchLimitExceededError(len(self._operations) + 1, self.max_size)

        self._operations[row_key] = operation

    def _validate_row(self, row: TableRow) -> None:
        if row.partition_key != self.partition_key:
            raise InvalidPartitionKeyError(
                f"Entity partition key '{row.partition_key}' does not match "
                f"batch partition key '{self.partition_key}'",
                partition_key=row.partition_key
            )
        validate_row_key(row.row_key, self.max_row_key_bytes)
