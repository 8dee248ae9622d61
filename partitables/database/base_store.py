"""
Partition Store Contract
========================

Abstract interface of the table store the mapping layer runs on. A store
is scoped to one table and offers only:

- fetch every row of a partition, or a row key range of it
- atomic submission of one size-bounded batch of operations
- single-row get, put and delete

Implementations translate backend failures into ``StoreError`` (with
``retryable`` set for transient faults) and rejected preconditions into
``ConflictError``.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import structlog

from partitables.config.constants import OperationType, UpdateMode
from partitables.core.batch import BatchOperation
from partitables.models.table_row import TableRow


class PartitionStore(ABC):
    """
    Abstract table store scoped to one table

    Attributes:
        table_name: Table this store reads and writes
    """

    def __init__(self, table_name: Optional[str] = None):
        self.table_name = table_name
        self.logger = structlog.get_logger(self.__class__.__name__)

    @abstractmethod
    async def get_partition(self, partition_key: str) -> List[TableRow]:
        """
        Fetch every row of a partition

        Args:
            partition_key: Partition to read

        Returns:
            Rows ordered by row key; empty when the partition has no rows

        Raises:
            StoreError: If the read fails
        """
        pass

    @abstractmethod
    async def query_range(
            self,
            partition_key: str,
            from_key: str,
            to_key: str
    ) -> List[TableRow]:
        """
        Fetch rows whose keys fall in ``[from_key, to_key)``

        When ``from_key == to_key`` only that exact row key is returned.

        Raises:
            StoreError: If the read fails
        """
        pass

    @abstractmethod
    async def submit_batch(
            self,
            partition_key: str,
            operations: Sequence[BatchOperation]
    ) -> None:
        """
        Apply operations against one partition atomically

        Either every operation is applied or none is.

        Args:
            partition_key: Partition every operation targets
            operations: At most ``MAX_BATCH_SIZE`` operations, distinct row keys

        Raises:
            ConflictError: If an insert targets an existing row or an
                update targets an absent one
            StoreError: If the submission fails
        """
        pass

    @abstractmethod
    async def get_row(self, partition_key: str, row_key: str) -> Optional[TableRow]:
        """Fetch one row, or None when absent."""
        pass

    @abstractmethod
    async def put_row(
            self,
            row: TableRow,
            operation: OperationType = OperationType.UPSERT,
            mode: UpdateMode = UpdateMode.MERGE
    ) -> TableRow:
        """
        Write one row

        Returns:
            The row as stored, with its new etag and timestamp

        Raises:
            ConflictError: If the operation's precondition fails
            StoreError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_row(self, partition_key: str, row_key: str) -> bool:
        """
        Delete one row

        Returns:
            True if a row was deleted, False if it did not exist
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
