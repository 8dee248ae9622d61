"""
Partition Client
================

Row-level access to a partition store with key validation and a retry
policy for transient store faults. The partition repository submits its
batches through this client.
"""

from typing import List, Optional, Sequence

from partitables.config.constants import OperationType, UpdateMode
from partitables.config.settings import Settings
from partitables.core.batch import BatchOperation, PartitionBatch
from partitables.core.exceptions import EntityNotFoundError
from partitables.core.row_key import RowKeyRange, validate_partition_key, validate_row_key
from partitables.database.base_store import PartitionStore
from partitables.models.table_row import TableRow
from partitables.repositories.base_repository import BaseRepository


class PartitionClient(BaseRepository):
    """Validated, retrying facade over a ``PartitionStore``."""

    def __init__(self, store: PartitionStore, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.store = store

    @property
    def table_name(self) -> Optional[str]:
        return self.store.table_name

    def create_batch(self, partition_key: str) -> PartitionBatch:
        """Empty batch sized by the configured limits."""
        return PartitionBatch(
            partition_key,
            self.settings.MAX_BATCH_SIZE,
            self.settings.MAX_ROW_KEY_BYTES
        )

    async def get_partition(self, partition_key: str) -> List[TableRow]:
        """
        Fetch every row of a partition

        Raises:
            InvalidPartitionKeyError: If the partition key is invalid
            StoreError: If the read fails after retries
        """
        partition_key = validate_partition_key(partition_key)
        return await self._execute_with_retry(self.store.get_partition, partition_key)

    async def try_get(self, partition_key: str, row_key: str) -> Optional[TableRow]:
        """Fetch one row, or None when absent."""
        partition_key = validate_partition_key(partition_key)
        validate_row_key(row_key, self.settings.MAX_ROW_KEY_BYTES)
        return await self._execute_with_retry(self.store.get_row, partition_key, row_key)

    async def get(self, partition_key: str, row_key: str) -> TableRow:
        """
        Fetch one row

        Raises:
            EntityNotFoundError: If the row does not exist
        """
        row = await self.try_get(partition_key, row_key)
        if row is None:
            raise EntityNotFoundError("TableRow", partition_key, row_key)
        return row

    async def exists(self, partition_key: str, row_key: str) -> bool:
        return await self.try_get(partition_key, row_key) is not None

    async def query_by_prefix(self, partition_key: str, prefix: str) -> List[TableRow]:
        """Rows whose keys start with ``prefix``."""
        from_key, to_key = RowKeyRange.for_prefix(prefix)
        return await self.query_range(partition_key, from_key, to_key)

    async def query_range(self, partition_key: str, from_key: str, to_key: str) -> List[TableRow]:
        """Rows whose keys fall in ``[from_key, to_key)``, or exactly ``from_key``."""
        partition_key = validate_partition_key(partition_key)
        return await self._execute_with_retry(
            self.store.query_range, partition_key, from_key, to_key
        )

    async def upsert(self, row: TableRow, mode: UpdateMode = UpdateMode.MERGE) -> TableRow:
        """Insert or update one row."""
        return await self._put(row, OperationType.UPSERT, mode)

    async def insert(self, row: TableRow) -> TableRow:
        """
        Insert a row that must not exist yet

        Raises:
            ConflictError: If the row exists
        """
        return await self._put(row, OperationType.INSERT, UpdateMode.REPLACE)

    async def update(self, row: TableRow, mode: UpdateMode = UpdateMode.MERGE) -> TableRow:
        """
        Update a row that must already exist

        Raises:
            ConflictError: If the row does not exist
        """
        return await self._put(row, OperationType.UPDATE, mode)

    async def delete(self, partition_key: str, row_key: str) -> bool:
        """Delete one row; returns False when it did not exist."""
        partition_key = validate_partition_key(partition_key)
        validate_row_key(row_key, self.settings.MAX_ROW_KEY_BYTES)
        return await self._execute_with_retry(self.store.delete_row, partition_key, row_key)

    async def submit(self, batch: PartitionBatch) -> int:
        """
        Submit one batch atomically

        Returns:
            Number of operations submitted
        """
        if batch.is_empty:
            return 0
        await self.submit_batch(batch.partition_key, batch.operations)
        return len(batch)

    async def submit_batch(self, partition_key: str, operations: Sequence[BatchOperation]) -> None:
        """Submit already validated operations, retrying transient faults."""
        await self._execute_with_retry(self.store.submit_batch, partition_key, operations)

    async def _put(self, row: TableRow, operation: OperationType, mode: UpdateMode) -> TableRow:
        row.partition_key = validate_partition_key(row.partition_key)
        validate_row_key(row.row_key, self.settings.MAX_ROW_KEY_BYTES)
        return await self._execute_with_retry(self.store.put_row, row, operation, mode)
