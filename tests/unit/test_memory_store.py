from __future__ import annotations

import pytest

from partitables.config.constants import OperationType, UpdateMode
from partitables.core.batch import BatchOperation
from partitables.core.exceptions import (
    BatchLimitExceededError,
    ConflictError,
    DuplicateRowKeyError,
    InvalidPartitionKeyError,
)
from partitables.database.memory_store import InMemoryPartitionStore
from partitables.models import TableRow


def upsert(row_key: str, partition_key: str = "p1", mode: UpdateMode = UpdateMode.MERGE, **attributes):
    return BatchOperation(OperationType.UPSERT, TableRow(partition_key, row_key, attributes), mode)


@pytest.mark.asyncio
async def test_partition_rows_are_sorted_copies() -> None:
    store = InMemoryPartitionStore("Things")
    await store.submit_batch("p1", [upsert("b", v=2), upsert("a", v=1)])

    rows = await store.get_partition("p1")
    assert [r.row_key for r in rows] == ["a", "b"]
    assert rows[0].etag and rows[0].timestamp is not None

    rows[0].attributes["v"] = 99
    assert (await store.get_row("p1", "a")).attributes == {"v": 1}
    assert await store.get_partition("other") == []


@pytest.mark.asyncio
async def test_merge_and_replace_semantics() -> None:
    store = InMemoryPartitionStore()
    await store.submit_batch("p1", [upsert("a", x=1, y=1)])

    await store.submit_batch("p1", [upsert("a", y=2)])
    assert (await store.get_row("p1", "a")).attributes == {"x": 1, "y": 2}

    await store.submit_batch("p1", [upsert("a", mode=UpdateMode.REPLACE, z=3)])
    assert (await store.get_row("p1", "a")).attributes == {"z": 3}


@pytest.mark.asyncio
async def test_conflicting_batch_is_rejected_whole() -> None:
    store = InMemoryPartitionStore()
    await store.submit_batch("p1", [upsert("a")])

    with pytest.raises(ConflictError) as exc:
        await store.submit_batch("p1", [
            upsert("b"),
            BatchOperation(OperationType.INSERT, TableRow("p1", "a")),
        ])
    assert exc.value.row_key == "a"
    assert [r.row_key for r in await store.get_partition("p1")] == ["a"]

    with pytest.raises(ConflictError):
        await store.submit_batch("p1", [BatchOperation(OperationType.UPDATE, TableRow("p1", "zzz"))])


@pytest.mark.asyncio
async def test_batch_shape_is_validated() -> None:
    store = InMemoryPartitionStore()

    with pytest.raises(BatchLimitExceededError):
        await store.submit_batch("p1", [upsert(f"k{i}") for i in range(101)])
    with pytest.raises(DuplicateRowKeyError):
        await store.submit_batch("p1", [upsert("a"), upsert("a")])
    with pytest.raises(InvalidPartitionKeyError):
        await store.submit_batch("p1", [upsert("a", partition_key="p2")])

    assert store.row_count() == 0


@pytest.mark.asyncio
async def test_deletes_are_idempotent() -> None:
    store = InMemoryPartitionStore()
    await store.submit_batch("p1", [upsert("a")])

    await store.submit_batch("p1", [
        BatchOperation(OperationType.DELETE, TableRow("p1", "a")),
        BatchOperation(OperationType.DELETE, TableRow("p1", "missing")),
    ])

    assert store.row_count("p1") == 0
    assert await store.delete_row("p1", "a") is False


@pytest.mark.asyncio
async def test_single_row_operations() -> None:
    store = InMemoryPartitionStore()

    stored = await store.put_row(TableRow("p1", "a", {"v": 1}), OperationType.INSERT)
    assert stored.attributes == {"v": 1}

    with pytest.raises(ConflictError):
        await store.put_row(TableRow("p1", "a"), OperationType.INSERT)
    with pytest.raises(ConflictError):
        await store.put_row(TableRow("p2", "a"), OperationType.UPDATE)
    assert await store.get_partition("p2") == []

    updated = await store.put_row(TableRow("p1", "a", {"w": 2}), OperationType.UPDATE)
    assert updated.attributes == {"v": 1, "w": 2}
    assert updated.etag != stored.etag

    assert await store.delete_row("p1", "a") is True
    assert await store.get_row("p1", "a") is None


@pytest.mark.asyncio
async def test_query_range() -> None:
    store = InMemoryPartitionStore()
    await store.submit_batch("p1", [upsert(k) for k in ("a-1", "a-2", "b-1", "a")])

    rows = await store.query_range("p1", "a-", "a-\uffff")
    assert [r.row_key for r in rows] == ["a-1", "a-2"]

    exact = await store.query_range("p1", "a", "a")
    assert [r.row_key for r in exact] == ["a"]
    assert await store.query_range("p1", "zz", "zz") == []
