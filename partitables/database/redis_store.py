"""
Redis Partition Store
=====================

Table store backed by Redis. Each partition is one hash:

    {REDIS_KEY_PREFIX}:{table_name}:{partition_key}  ->  {row_key: row document}

A row document is JSON text holding the row's attributes, etag and
timestamp. Every attribute value is itself encoded as JSON text, with
datetimes, bytes and UUIDs tagged so they come back with their type.

Batches run as one Lua script, which Redis executes atomically: all
insert/update preconditions are checked first, then every operation is
applied.
"""

import base64
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
    ResponseError,
    RedisError,
)

from partitables.config.constants import MAX_BATCH_SIZE, OperationType, UpdateMode
from partitables.config.settings import Settings, get_settings
from partitables.core.batch import BatchOperation
from partitables.core.exceptions import BatchLimitExceededError, ConflictError, StoreError
from partitables.database.base_store import PartitionStore
from partitables.models.table_row import TableRow

CONFLICT_PREFIX = "CONFLICT|"

APPLY_BATCH_SCRIPT = """
local ops = cjson.decode(ARGV[1])
for _, op in ipairs(ops) do
    local exists = redis.call('HEXISTS', KEYS[1], op.rk) == 1
    if op.op == 'insert' and exists then
        return redis.error_reply('CONFLICT|' .. op.rk .. '|row already exists')
    end
    if op.op == 'update' and not exists then
        return redis.error_reply('CONFLICT|' .. op.rk .. '|row does not exist')
    end
end
local applied = 0
for _, op in ipairs(ops) do
    if op.op == 'delete' then
        applied = applied + redis.call('HDEL', KEYS[1], op.rk)
    else
        local attributes = op.attributes
        if op.mode == 'merge' then
            local current = redis.call('HGET', KEYS[1], op.rk)
            if current then
                local merged = cjson.decode(current).attributes
                for name, value in pairs(attributes) do
                    merged[name] = value
                end
                attributes = merged
            end
        end
        local doc = {attributes = attributes, etag = op.etag, timestamp = op.timestamp}
        redis.call('HSET', KEYS[1], op.rk, cjson.encode(doc))
        applied = applied + 1
    end
end
return applied
"""


class RedisPartitionStore(PartitionStore):
    """Partition store keeping one Redis hash per partition."""

    def __init__(
            self,
            redis: Redis,
            table_name: str,
            settings: Optional[Settings] = None
    ):
        """
        Initialize the store

        Args:
            redis: Client created with ``decode_responses=True``
            table_name: Table this store serves
            settings: Library settings (uses the cached settings if None)
        """
        super().__init__(table_name)
        self.redis = redis
        self.settings = settings or get_settings()

    def partition_hash_key(self, partition_key: str) -> str:
        return self.settings.get_partition_hash_key(self.table_name, partition_key)

    async def get_partition(self, partition_key: str) -> List[TableRow]:
        async with self._translate_errors("get_partition", partition_key):
            documents = await self.redis.hgetall(self.partition_hash_key(partition_key))

        return [
            decode_row(partition_key, row_key, documents[row_key])
            for row_key in sorted(documents)
        ]

    async def query_range(
            self,
            partition_key: str,
            from_key: str,
            to_key: str
    ) -> List[TableRow]:
        if from_key == to_key:
            row = await self.get_row(partition_key, from_key)
            return [row] if row is not None else []

        rows = await self.get_partition(partition_key)
        return [row for row in rows if from_key <= row.row_key < to_key]

    async def submit_batch(
            self,
            partition_key: str,
            operations: Sequence[BatchOperation]
    ) -> None:
        if not operations:
            return
        if len(operations) > MAX_BATCH_SIZE:
            raise BatchLimitExceededError(len(operations), MAX_BATCH_SIZE)

        await self._apply(partition_key, [encode_operation(op) for op in operations], "submit_batch")

        self.logger.debug(
            "Batch applied",
            table_name=self.table_name,
            partition_key=partition_key,
            operations=len(operations)
        )

    async def get_row(self, partition_key: str, row_key: str) -> Optional[TableRow]:
        async with self._translate_errors("get_row", partition_key):
            document = await self.redis.hget(self.partition_hash_key(partition_key), row_key)

        if document is None:
            return None
        return decode_row(partition_key, row_key, document)

    async def put_row(
            self,
            row: TableRow,
            operation: OperationType = OperationType.UPSERT,
            mode: UpdateMode = UpdateMode.MERGE
    ) -> TableRow:
        payload = encode_operation(BatchOperation(operation, row, mode))
        await self._apply(row.partition_key, [payload], operation.value)

        stored = await self.get_row(row.partition_key, row.row_key)
        if stored is None:
            raise StoreError(
                f"Row '{row.row_key}' missing after write",
                operation=operation.value,
                partition_key=row.partition_key
            )
        return stored

    async def delete_row(self, partition_key: str, row_key: str) -> bool:
        async with self._translate_errors("delete_row", partition_key):
            removed = await self.redis.hdel(self.partition_hash_key(partition_key), row_key)
        return bool(removed)

    async def close(self) -> None:
        await self.redis.aclose()

    async def _apply(self, partition_key: str, payload: List[Dict[str, Any]], operation: str) -> int:
        async with self._translate_errors(operation, partition_key):
            return await self.redis.eval(
                APPLY_BATCH_SCRIPT,
                1,
                self.partition_hash_key(partition_key),
                json.dumps(payload)
            )

    @asynccontextmanager
    async def _translate_errors(self, operation: str, partition_key: str):
        """Map redis exceptions onto the store error hierarchy."""
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            self.logger.warning(
                "Redis operation failed",
                operation=operation,
                partition_key=partition_key,
                error=str(e),
                error_type=type(e).__name__
            )
            raise StoreError(
                f"Redis {operation} failed: {e}",
                operation=operation,
                partition_key=partition_key,
                retryable=True,
                original_error=e
            ) from e
        except ResponseError as e:
            message = str(e)
            if message.startswith(CONFLICT_PREFIX):
                row_key, _, reason = message[len(CONFLICT_PREFIX):].rpartition("|")
                raise ConflictError(partition_key, row_key, reason, operation) from e
            raise StoreError(
                f"Redis {operation} rejected: {e}",
                operation=operation,
                partition_key=partition_key,
                original_error=e
            ) from e
        except RedisError as e:
            raise StoreError(
                f"Redis {operation} failed: {e}",
                operation=operation,
                partition_key=partition_key,
                original_error=e
            ) from e


def encode_operation(op: BatchOperation) -> Dict[str, Any]:
    """Script payload for one batch operation."""
    payload = {"op": op.operation.value, "rk": op.row_key}
    if op.operation != OperationType.DELETE:
        payload.update({
            "mode": op.mode.value,
            "attributes": {name: encode_value(v) for name, v in op.row.attributes.items()},
            "etag": uuid.uuid4().hex,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
    return payload


def decode_row(partition_key: str, row_key: str, document: str) -> TableRow:
    """Table row from a stored row document."""
    doc = json.loads(document)
    attributes = doc.get("attributes") or {}
    timestamp = doc.get("timestamp")
    return TableRow(
        partition_key=partition_key,
        row_key=row_key,
        attributes={name: decode_value(v) for name, v in attributes.items()},
        etag=doc.get("etag"),
        timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
    )


def encode_value(value: Any) -> str:
    """Encode one attribute value as JSON text, tagging non-JSON types."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return json.dumps({"$datetime": value.isoformat()})
    if isinstance(value, bytes):
        return json.dumps({"$bytes": base64.b64encode(value).decode("ascii")})
    if isinstance(value, UUID):
        return json.dumps({"$uuid": str(value)})
    return json.dumps(value)


def decode_value(encoded: str) -> Any:
    """Inverse of ``encode_value``."""
    value = json.loads(encoded)
    if isinstance(value, dict) and len(value) == 1:
        if "$datetime" in value:
            return datetime.fromisoformat(value["$datetime"])
        if "$bytes" in value:
            return base64.b64decode(value["$bytes"])
        if "$uuid" in value:
            return UUID(value["$uuid"])
    return value
