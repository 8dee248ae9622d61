"""
In-memory partition store.

Process-local store used by tests and embedded callers. Batches are
validated completely before anything is applied, so a rejected batch
leaves the partition unchanged.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from partitables.config.constants import MAX_BATCH_SIZE, OperationType, UpdateMode
from partitables.core.batch import BatchOperation
from partitables.core.exceptions import (
    BatchLimitExceededError,
    ConflictError,
    DuplicateRowKeyError,
    InvalidPartitionKeyError,
)
from partitables.database.base_store import PartitionStore
from partitables.models.table_row import TableRow


class InMemoryPartitionStore(PartitionStore):
    """Dictionary backed store holding partitions of a single table."""

    def __init__(self, table_name: Optional[str] = None):
        super().__init__(table_name)
        self._partitions: Dict[str, Dict[str, TableRow]] = {}
        self._lock = asyncio.Lock()

    async def get_partition(self, partition_key: str) -> List[TableRow]:
        async with self._lock:
            partition = self._partitions.get(partition_key, {})
            return [partition[k].copy() for k in sorted(partition)]

    async def query_range(
            self,
            partition_key: str,
            from_key: str,
            to_key: str
    ) -> List[TableRow]:
        async with self._lock:
            partition = self._partitions.get(partition_key, {})
            if from_key == to_key:
                keys = [from_key] if from_key in partition else []
            else:
                keys = [k for k in sorted(partition) if from_key <= k < to_key]
            return [partition[k].copy() for k in keys]

    async def submit_batch(
            self,
            partition_key: str,
            operations: Sequence[BatchOperation]
    ) -> None:
        if not operations:
            return

        async with self._lock:
            partition = self._partitions.get(partition_key, {})
            self._validate_batch(partition_key, operations, partition)

            updated = dict(partition)
            for op in operations:
                if op.operation == OperationType.DELETE:
                    updated.pop(op.row_key, None)
                else:
                    updated[op.row_key] = self._write(updated.get(op.row_key), op.row, op.mode)

            if updated:
                self._partitions[partition_key] = updated
            else:
                self._partitions.pop(partition_key, None)

        self.logger.debug(
            "Batch applied",
            table_name=self.table_name,
            partition_key=partition_key,
            operations=len(operations)
        )

    async def get_row(self, partition_key: str, row_key: str) -> Optional[TableRow]:
        async with self._lock:
            row = self._partitions.get(partition_key, {}).get(row_key)
            return row.copy() if row is not None else None

    async def put_row(
            self,
            row: TableRow,
            operation: OperationType = OperationType.UPSERT,
            mode: UpdateMode = UpdateMode.MERGE
    ) -> TableRow:
        async with self._lock:
            existing = self._partitions.get(row.partition_key, {}).get(row.row_key)
            self._check_precondition(row.partition_key, row.row_key, operation, existing)
            stored = self._write(existing, row, mode)
            self._partitions.setdefault(row.partition_key, {})[row.row_key] = stored
            return stored.copy()

    async def delete_row(self, partition_key: str, row_key: str) -> bool:
        async with self._lock:
            partition = self._partitions.get(partition_key)
            if not partition or row_key not in partition:
                return False
            del partition[row_key]
            if not partition:
                del self._partitions[partition_key]
            return True

    def row_count(self, partition_key: Optional[str] = None) -> int:
        """Number of rows in one partition, or in the whole table."""
        if partition_key is not None:
            return len(self._partitions.get(partition_key, {}))
        return sum(len(p) for p in self._partitions.values())

    def _validate_batch(
            self,
            partition_key: str,
            operations: Sequence[BatchOperation],
            partition: Dict[str, TableRow]
    ) -> None:
        if len(operations) > MAX_BATCH_SIZE:
            raise BatchLimitExceededError(len(operations), MAX_BATCH_SIZE)

        seen = set()
        for op in operations:
            if op.partition_key != partition_key:
                raise InvalidPartitionKeyError(
                    f"Operation partition key '{op.partition_key}' does not match "
                    f"batch partition key '{partition_key}'",
                    partition_key=op.partition_key
                )
            if op.row_key in seen:
                raise DuplicateRowKeyError(op.row_key)
            seen.add(op.row_key)

        for op in operations:
            self._check_precondition(partition_key, op.row_key, op.operation, partition.get(op.row_key))

    @staticmethod
    def _check_precondition(
            partition_key: str,
            row_key: str,
            operation: OperationType,
            existing: Optional[TableRow]
    ) -> None:
        if operation == OperationType.INSERT and existing is not None:
            raise ConflictError(partition_key, row_key, "row already exists", operation.value)
        if operation == OperationType.UPDATE and existing is None:
            raise ConflictError(partition_key, row_key, "row does not exist", operation.value)

    @staticmethod
    def _write(existing: Optional[TableRow], row: TableRow, mode: UpdateMode) -> TableRow:
        attributes = {}
        if existing is not None and mode == UpdateMode.MERGE:
            attributes.update(existing.attributes)
        attributes.update(row.attributes)

        return TableRow(
            partition_key=row.partition_key,
            row_key=row.row_key,
            attributes=attributes,
            etag=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc),
        )
