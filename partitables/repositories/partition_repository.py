"""
Partition Repository
====================

Aggregate-level facade: one partition root per partition key, saved and
loaded as a whole.

Example:
    repository = PartitionRepository(Customer, InMemoryPartitionStore())
    await repository.save(customer)
    loaded = await repository.find(customer.tenant_id)
"""

from typing import Callable, Generic, List, Optional, Type, TypeVar

from partitables.config.constants import MatchStrategy, OperationType
from partitables.config.settings import Settings, get_settings
from partitables.core.batch import BatchOperation
from partitables.core.exceptions import EntityNotFoundError
from partitables.core.mapper import EntityMapper
from partitables.core.row_key import validate_partition_key
from partitables.core.schema import PartitionDescriptor, SchemaRegistrar
from partitables.core.transaction import SaveTransaction, plan_batches, plan_save
from partitables.database.base_store import PartitionStore
from partitables.database.redis_client import get_redis
from partitables.database.redis_store import RedisPartitionStore
from partitables.models.row_entity import RowEntity
from partitables.repositories.base_repository import BaseRepository
from partitables.repositories.partition_client import PartitionClient

T = TypeVar("T")


class PartitionRepository(BaseRepository, Generic[T]):
    """
    Repository for one partition root type

    Type Parameters:
        T: Partition root type this repository manages

    The root type's schema is registered on construction, so declaration
    errors surface as ``ConfigurationError`` before any I/O.
    """

    def __init__(
            self,
            root_type: Type[T],
            store: PartitionStore,
            settings: Optional[Settings] = None
    ):
        """
        Initialize repository

        Args:
            root_type: Partition root model class
            store: Store scoped to the root's table
            settings: Library settings (uses the cached settings if None)

        Raises:
            ConfigurationError: If the root type's declarations are invalid
        """
        super().__init__(settings)
        self.root_type = root_type
        self.descriptor: PartitionDescriptor = SchemaRegistrar.describe(root_type)

        if store.table_name is None:
            store.table_name = self.descriptor.table_name
        elif store.table_name != self.descriptor.table_name:
            self.logger.warning(
                "Store table differs from declared table",
                store_table=store.table_name,
                declared_table=self.descriptor.table_name
            )

        self.store = store
        self.client = PartitionClient(store, self.settings)
        self.mapper = EntityMapper(self.descriptor)

    @classmethod
    async def for_redis(
            cls,
            root_type: Type[T],
            settings: Optional[Settings] = None,
            redis=None
    ) -> "PartitionRepository[T]":
        """
        Repository backed by the Redis partition store

        Args:
            root_type: Partition root model class
            settings: Library settings (uses the cached settings if None)
            redis: Client to use instead of the shared connection
        """
        settings = settings or get_settings()
        if redis is None:
            redis = await get_redis(settings)
        descriptor = SchemaRegistrar.describe(root_type)
        store = RedisPartitionStore(redis, descriptor.table_name, settings)
        return cls(root_type, store, settings)

    @property
    def table_name(self) -> str:
        return self.descriptor.table_name

    async def find(self, partition_key: str) -> Optional[T]:
        """
        Load the root stored under ``partition_key``

        Returns:
            The hydrated root, or None when the partition has no rows

        Raises:
            InvalidPartitionKeyError: If the partition key is empty or invalid
            StoreError: If the read fails
        """
        partition_key = validate_partition_key(partition_key)

        async with self._timed_operation("find", partition_key=partition_key) as details:
            rows = await self.client.get_partition(partition_key)
            details["rows"] = len(rows)

        if not rows:
            return None
        return self.mapper.map_to_entity(rows, partition_key)

    async def get(self, partition_key: str) -> T:
        """
        Load the root stored under ``partition_key``

        Raises:
            EntityNotFoundError: If the partition has no rows
        """
        root = await self.find(partition_key)
        if root is None:
            raise EntityNotFoundError(self.root_type.__name__, partition_key)
        return root

    async def exists(self, partition_key: str) -> bool:
        partition_key = validate_partition_key(partition_key)
        rows = await self.client.get_partition(partition_key)
        return bool(rows)

    async def query(
            self,
            partition_key: str,
            predicate: Optional[Callable[[T], bool]] = None
    ) -> List[T]:
        """
        Roots of a partition matching ``predicate``

        A partition holds at most one root, so the result has zero or one
        element.
        """
        root = await self.find(partition_key)
        if root is None:
            return []
        if predicate is not None and not predicate(root):
            return []
        return [root]

    async def query_collection(self, partition_key: str, collection_name: str) -> List[RowEntity]:
        """
        Items of one collection without assembling the root

        Collections classified by prefix are read with a row key range
        scan; others read the whole partition.

        Raises:
            ConfigurationError: If ``collection_name`` is not a collection
        """
        partition_key = validate_partition_key(partition_key)
        collection = self.descriptor.collection(collection_name)

        async with self._timed_operation(
                "query_collection",
                partition_key=partition_key,
                collection=collection_name
        ) as details:
            if collection.matcher.strategy == MatchStrategy.PREFIX:
                rows = await self.client.query_by_prefix(partition_key, collection.prefix)
            else:
                rows = await self.client.get_partition(partition_key)
            items = self.mapper.map_collection(rows, collection)
            details["items"] = len(items)

        return items

    async def save(self, root: T) -> T:
        """
        Persist a root and all of its collections

        Rows are written in batches of at most ``MAX_BATCH_SIZE``. When a
        batch fails, batches already committed by this save are
        compensated and the failure is re-raised.

        Returns:
            The same root, with every item's row key assigned

        Raises:
            InvalidPartitionKeyError: If the root's partition key is empty
            InvalidRowKeyError: If any generated row key is invalid
            ConfigurationError: If an item cannot produce a row key
            RollbackError: If compensation of a failed save also failed
            StoreError: If the save failed and was rolled back
        """
        plan = plan_save(
            self.descriptor,
            root,
            self.settings.MAX_BATCH_SIZE,
            self.settings.MAX_ROW_KEY_BYTES,
            self.settings.PRUNE_REMOVED_ROWS
        )

        self.logger.debug(
            "Saving partition",
            partition_key=plan.partition_key,
            rows=len(plan.rows),
            removed=len(plan.removed),
            batches=len(plan.batches)
        )

        async with self._timed_operation(
                "save",
                partition_key=plan.partition_key,
                batches=len(plan.batches)
        ) as details:
            transaction = SaveTransaction(
                self.client,
                plan.batches,
                plan.snapshot,
                self.settings.MAX_BATCH_SIZE,
                self.settings.MAX_ROW_KEY_BYTES
            )
            details["operations"] = await transaction.execute()

        remember = getattr(root, "remember_rows", None)
        if callable(remember):
            remember(plan.rows)
        return root

    async def delete(self, partition_key: str) -> int:
        """
        Delete every row of a partition

        Batches are submitted in order without rollback.

        Returns:
            Number of rows deleted
        """
        partition_key = validate_partition_key(partition_key)

        async with self._timed_operation("delete", partition_key=partition_key) as details:
            rows = await self.client.get_partition(partition_key)
            batches = plan_batches(
                partition_key,
                [BatchOperation(OperationType.DELETE, row) for row in rows],
                self.settings.MAX_BATCH_SIZE,
                self.settings.MAX_ROW_KEY_BYTES
            )
            for batch in batches:
                await self.client.submit(batch)
            details["rows"] = len(rows)
            details["batches"] = len(batches)

        return len(rows)
