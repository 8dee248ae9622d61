"""
Batch Planner and Transactional Save
====================================

Turns a partition root into size-bounded batches and submits them one
after another. The store only guarantees atomicity per batch, so a save
spanning several batches is made all-or-nothing on a best-effort basis:
when a batch fails, every batch committed before it is compensated.

Compensation per committed operation:
- upsert of a row that existed when the root was loaded: restore that row
- upsert of a new row: delete it
- delete of a loaded row: restore that row

Every row key is generated and validated while planning, so invalid keys
fail the save before anything is written.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from partitables.config.constants import (
    MAX_BATCH_SIZE,
    MAX_ROW_KEY_BYTES,
    OperationType,
    UpdateMode,
)
from partitables.core.batch import BatchOperation, PartitionBatch
from partitables.core.exceptions import RollbackError
from partitables.core.row_key import validate_row_key
from partitables.core.schema import PartitionDescriptor
from partitables.models.table_row import TableRow

logger = structlog.get_logger(__name__)


def plan_batches(
        partition_key: str,
        operations: Iterable[BatchOperation],
        max_size: int = MAX_BATCH_SIZE,
        max_row_key_bytes: int = MAX_ROW_KEY_BYTES
) -> List[PartitionBatch]:
    """
    Split operations into batches of at most ``max_size``

    Operation order is preserved. A batch is sealed as soon as it is full.

    Raises:
        InvalidRowKeyError: If any row key breaks the store's key constraints
        InvalidPartitionKeyError: If any row targets another partition
    """
    batches = []
    current = PartitionBatch(partition_key, max_size, max_row_key_bytes)

    for op in operations:
        if current.is_full:
            batches.append(current)
            current = PartitionBatch(partition_key, max_size, max_row_key_bytes)

        if op.operation == OperationType.DELETE:
            current.delete(op.row)
        elif op.operation == OperationType.INSERT:
            current.insert(op.row)
        elif op.operation == OperationType.UPDATE:
            current.update(op.row, op.mode)
        else:
            current.upsert(op.row, op.mode)

    if not current.is_empty:
        batches.append(current)
    return batches


def collect_rows(
        descriptor: PartitionDescriptor,
        root: Any,
        partition_key: str,
        max_row_key_bytes: int = MAX_ROW_KEY_BYTES
) -> Dict[str, TableRow]:
    """
    Build the rows of every collection item, keyed by row key

    Missing row keys are generated and assigned to the items. When two
    items produce the same row key the later one wins.

    Raises:
        ConfigurationError: If an item type cannot produce a row key
        InvalidRowKeyError: If a row key is empty or invalid
    """
    rows: Dict[str, TableRow] = {}
    for collection in descriptor.collections:
        for item in getattr(root, collection.name, None) or []:
            row_key = collection.resolve_row_key(item, root, partition_key)
            validate_row_key(row_key, max_row_key_bytes)
            item.assign_row_key(row_key)
            rows[row_key] = item.to_table_row(partition_key)
    return rows


@dataclass
class SavePlan:
    """
    Everything one save will write

    Attributes:
        partition_key: Partition being saved
        rows: Rows to upsert, in collection order
        removed: Loaded rows no longer present in memory
        snapshot: Rows as they were when the root was loaded
        batches: Planned batches, upserts first, then deletes
    """
    partition_key: str
    rows: List[TableRow]
    removed: List[TableRow] = field(default_factory=list)
    snapshot: Dict[str, TableRow] = field(default_factory=dict)
    batches: List[PartitionBatch] = field(default_factory=list)


def plan_save(
        descriptor: PartitionDescriptor,
        root: Any,
        max_batch_size: int = MAX_BATCH_SIZE,
        max_row_key_bytes: int = MAX_ROW_KEY_BYTES,
        prune_removed: bool = True
) -> SavePlan:
    """
    Plan the batches that persist ``root``

    Args:
        descriptor: Registered schema of the root type
        root: Root instance to save
        max_batch_size: Operations per batch
        max_row_key_bytes: Row key size limit
        prune_removed: Delete loaded rows whose items were removed

    Returns:
        The save plan

    Raises:
        InvalidPartitionKeyError: If the root's partition key is empty
        ConfigurationError: If an item cannot produce a row key
        InvalidRowKeyError: If any row key is invalid
    """
    partition_key = descriptor.extract_partition_key(root)
    rows = collect_rows(descriptor, root, partition_key, max_row_key_bytes)

    snapshot = {}
    loaded = getattr(root, "_loaded_rows", None) or {}
    for row_key, row in loaded.items():
        if row.partition_key == partition_key:
            snapshot[row_key] = row

    removed = []
    if prune_removed:
        removed = [
            row for row_key, row in snapshot.items()
            if row_key not in rows and descriptor.owns_row_key(row_key)
        ]

    operations = [
        BatchOperation(OperationType.UPSERT, row, UpdateMode.REPLACE)
        for row in rows.values()
    ]
    operations.extend(BatchOperation(OperationType.DELETE, row) for row in removed)

    return SavePlan(
        partition_key=partition_key,
        rows=list(rows.values()),
        removed=removed,
        snapshot=snapshot,
        batches=plan_batches(partition_key, operations, max_batch_size, max_row_key_bytes),
    )


class SaveTransaction:
    """
    One save: sequential batch submission with compensating rollback

    Tracks committed batches so that a failure in batch n undoes batches
    1..n-1. A failed rollback surfaces as ``RollbackError``, chained from
    the save failure; otherwise the save failure is re-raised unchanged.
    """

    def __init__(
            self,
            store,
            batches: List[PartitionBatch],
            snapshot: Optional[Mapping[str, TableRow]] = None,
            max_batch_size: int = MAX_BATCH_SIZE,
            max_row_key_bytes: int = MAX_ROW_KEY_BYTES
    ):
        self.store = store
        self.batches = list(batches)
        self.snapshot = dict(snapshot or {})
        self.max_batch_size = max_batch_size
        self.max_row_key_bytes = max_row_key_bytes
        self.committed: List[PartitionBatch] = []

    @property
    def partition_key(self) -> Optional[str]:
        return self.batches[0].partition_key if self.batches else None

    async def execute(self) -> int:
        """
        Submit every batch in order

        Returns:
            Number of operations applied

        Raises:
            RollbackError: If the save failed and compensation also failed
            Exception: The save failure, when compensation succeeded
        """
        try:
            for index, batch in enumerate(self.batches, 1):
                await self.store.submit_batch(batch.partition_key, batch.operations)
                self.committed.append(batch)
                logger.debug(
                    "Batch submitted",
                    partition_key=batch.partition_key,
                    batch=index,
                    total_batches=len(self.batches),
                    operations=len(batch)
                )
        except (Exception, asyncio.CancelledError) as error:
            logger.warning(
                "Save failed, rolling back committed batches",
                partition_key=self.partition_key,
                committed_batches=len(self.committed),
                error=str(error),
                error_type=type(error).__name__
            )
            failures = await self.rollback()
            if failures:
                raise RollbackError(self.partition_key, failures, error) from error
            raise

        return sum(len(b) for b in self.committed)

    def compensation_batches(self) -> List[PartitionBatch]:
        """Batches undoing every committed operation, newest first."""
        operations = []
        for batch in reversed(self.committed):
            for op in reversed(batch.operations):
                compensation = self._compensate(op)
                if compensation is not None:
                    operations.append(compensation)

        if not operations:
            return []
        return plan_batches(
            self.partition_key,
            operations,
            self.max_batch_size,
            self.max_row_key_bytes
        )

    async def rollback(self) -> List[BaseException]:
        """
        Apply compensation batches, collecting failures

        Returns:
            One exception per compensation batch that failed
        """
        if not self.committed:
            return []

        start_time = time.perf_counter()
        failures: List[BaseException] = []
        batches = self.compensation_batches()

        for batch in batches:
            try:
                await self.store.submit_batch(batch.partition_key, batch.operations)
            except Exception as e:
                failures.append(e)
                logger.error(
                    "Rollback batch failed",
                    partition_key=batch.partition_key,
                    operations=len(batch),
                    error=str(e),
                    error_type=type(e).__name__
                )

        duration_ms = (time.perf_counter() - start_time) * 1000
        if failures:
            logger.error(
                "Rollback incomplete",
                partition_key=self.partition_key,
                failed_batches=len(failures),
                total_batches=len(batches),
                duration_ms=round(duration_ms, 2)
            )
        else:
            logger.info(
                "Rollback completed",
                partition_key=self.partition_key,
                batches=len(batches),
                duration_ms=round(duration_ms, 2)
            )
        return failures

    def _compensate(self, op: BatchOperation) -> Optional[BatchOperation]:
        previous = self.snapshot.get(op.row_key)
        if previous is not None:
            return BatchOperation(OperationType.UPSERT, previous.copy(), UpdateMode.REPLACE)
        if op.operation == OperationType.DELETE:
            return None
        return BatchOperation(OperationType.DELETE, TableRow(op.partition_key, op.row_key))
