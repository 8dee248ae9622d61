from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import List, Tuple

import pytest

from partitables.core.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    InvalidPartitionKeyError,
    InvalidRowKeyError,
    RollbackError,
    StoreError,
)
from partitables.repositories.partition_repository import PartitionRepository

from conftest import (
    AuditEntry,
    Clinic,
    Consent,
    Customer,
    DeviceLink,
    FailingStore,
    Journal,
    Patient,
    PatientMeta,
    ProjectData,
    RecordingStore,
    Setting,
    TaskItem,
    Visit,
    Workspace,
    make_customer,
    make_project,
)


class RangeRecordingStore(RecordingStore):
    """Records every range query."""

    def __init__(self):
        super().__init__()
        self.ranges: List[Tuple[str, str, str]] = []

    async def query_range(self, partition_key: str, from_key: str, to_key: str):
        self.ranges.append((partition_key, from_key, to_key))
        return await super().query_range(partition_key, from_key, to_key)


@pytest.fixture
def projects(store, settings) -> PartitionRepository[ProjectData]:
    return PartitionRepository(ProjectData, store, settings)


@pytest.mark.asyncio
async def test_store_is_bound_to_declared_table(store, projects) -> None:
    assert store.table_name == "CrudTestTable"
    assert projects.table_name == "CrudTestTable"


@pytest.mark.asyncio
async def test_save_and_find_project(store, projects) -> None:
    await projects.save(make_project())

    loaded = await projects.find("p1")

    assert loaded.project_id == "p1"
    assert [t.task_id for t in loaded.tasks] == ["task-001", "task-002", "task-003"]
    assert [c.text for c in loaded.comments] == ["Comment 1", "Comment 2"]
    assert loaded.tasks[0].row_key == "p1-task-task-001"
    assert loaded.comments[0].author == "alice"
    assert store.row_count("p1") == 5


@pytest.mark.asyncio
async def test_removed_items_are_deleted_on_save(store, projects) -> None:
    await projects.save(make_project())
    loaded = await projects.find("p1")

    loaded.tasks.pop(1)
    loaded.tasks[0].title = "Renamed"
    await projects.save(loaded)

    reloaded = await projects.find("p1")
    assert [t.task_id for t in reloaded.tasks] == ["task-001", "task-003"]
    assert reloaded.tasks[0].title == "Renamed"
    assert len(reloaded.comments) == 2
    assert store.row_count("p1") == 4


@pytest.mark.asyncio
async def test_saving_twice_is_idempotent(store, projects) -> None:
    project = make_project()

    await projects.save(project)
    await projects.save(project)

    assert store.row_count("p1") == 5
    assert len((await projects.find("p1")).tasks) == 3


@pytest.mark.asyncio
async def test_large_saves_are_split_into_batches(store, projects) -> None:
    await projects.save(make_project(tasks=250, comments=0))

    assert store.batch_sizes == [100, 100, 50]
    assert len((await projects.find("p1")).tasks) == 250


@pytest.mark.asyncio
async def test_failed_save_rolls_back_committed_batches(settings) -> None:
    store = FailingStore(fail_on=3)
    repository = PartitionRepository(ProjectData, store, settings)

    with pytest.raises(StoreError) as exc:
        await repository.save(make_project(tasks=250, comments=0))

    assert not isinstance(exc.value, RollbackError)
    assert store.row_count() == 0
    assert await repository.find("p1") is None


@pytest.mark.asyncio
async def test_failed_rollback_raises_rollback_error(settings) -> None:
    store = FailingStore(fail_on=3, fail_rollback=True)
    repository = PartitionRepository(ProjectData, store, settings)

    with pytest.raises(RollbackError) as exc:
        await repository.save(make_project(tasks=250, comments=0))

    assert exc.value.partition_key == "p1"
    assert len(exc.value.errors) == 2
    assert "submission 3" in str(exc.value.original_error)
    assert store.row_count("p1") == 200


@pytest.mark.asyncio
async def test_cancelled_save_rolls_back(settings) -> None:
    store = FailingStore(fail_on=2, error=asyncio.CancelledError())
    repository = PartitionRepository(ProjectData, store, settings)

    with pytest.raises(asyncio.CancelledError):
        await repository.save(make_project(tasks=150, comments=0))

    assert store.row_count() == 0


@pytest.mark.asyncio
async def test_rollback_restores_previously_loaded_rows(settings) -> None:
    store = FailingStore(fail_on=3)
    repository = PartitionRepository(ProjectData, store, settings)
    await repository.save(make_project(tasks=1, comments=0))
    loaded = await repository.find("p1")

    loaded.tasks[0].title = "Changed"
    loaded.tasks.extend(TaskItem(task_id=f"extra-{i:03d}") for i in range(150))
    with pytest.raises(StoreError):
        await repository.save(loaded)

    restored = await repository.find("p1")
    assert [(t.task_id, t.title) for t in restored.tasks] == [("task-001", "Task 1")]


@pytest.mark.asyncio
async def test_invalid_row_key_writes_nothing(store, projects) -> None:
    project = make_project(tasks=150, comments=0)
    project.tasks[100].task_id = "bad/id"

    with pytest.raises(InvalidRowKeyError):
        await projects.save(project)

    assert store.submitted == []
    assert await projects.find("p1") is None


@pytest.mark.asyncio
async def test_empty_partition_key_is_rejected(projects) -> None:
    with pytest.raises(InvalidPartitionKeyError):
        await projects.save(make_project(project_id=""))
    with pytest.raises(InvalidPartitionKeyError):
        await projects.find("")


@pytest.mark.asyncio
async def test_delete_removes_every_row(store, projects) -> None:
    await projects.save(make_project(tasks=1000, comments=0))

    assert await projects.delete("p1") == 1000

    assert await projects.find("p1") is None
    assert await projects.query_collection("p1", "tasks") == []
    assert not await projects.exists("p1")
    assert await projects.delete("p1") == 0


@pytest.mark.asyncio
async def test_get_and_exists(projects) -> None:
    with pytest.raises(EntityNotFoundError) as exc:
        await projects.get("missing")
    assert exc.value.partition_key == "missing"

    await projects.save(make_project())
    assert await projects.exists("p1")
    assert (await projects.get("p1")).project_id == "p1"


@pytest.mark.asyncio
async def test_query_applies_predicate(projects) -> None:
    await projects.save(make_project())

    assert len(await projects.query("p1")) == 1
    assert len(await projects.query("p1", lambda p: len(p.tasks) == 3)) == 1
    assert await projects.query("p1", lambda p: len(p.tasks) > 3) == []
    assert await projects.query("other") == []


@pytest.mark.asyncio
async def test_query_collection(projects) -> None:
    await projects.save(make_project())

    comments = await projects.query_collection("p1", "comments")
    assert [c.comment_id for c in comments] == ["comment-001", "comment-002"]

    with pytest.raises(ConfigurationError):
        await projects.query_collection("p1", "milestones")


@pytest.mark.asyncio
async def test_customer_round_trip_recovers_parent_values(settings) -> None:
    repository = PartitionRepository(Customer, RecordingStore(), settings)
    await repository.save(make_customer())

    loaded = await repository.find("tenant-1")

    assert loaded.tenant_id == "tenant-1"
    assert loaded.customer_id == "cust-1"
    assert [o.row_key for o in loaded.orders] == ["cust-1-order-55", "cust-1-order-56"]
    assert [o.amount for o in loaded.orders] == [Decimal("12.50"), Decimal("99.99")]
    assert loaded.orders[0].tags == ["gift"]
    assert loaded.orders[1].status == "Shipped"
    assert loaded.orders[0].order_date.tzinfo is not None
    assert loaded.profiles[0].email == "ada@example.com"
    assert loaded.addresses[0].city == "London"


@pytest.mark.asyncio
async def test_self_keying_items_round_trip(settings) -> None:
    repository = PartitionRepository(Patient, RecordingStore(), settings)
    patient = Patient(
        tenant_id="clinic-1",
        patient_id="p-100",
        meta=[PatientMeta(email="p@example.com", first_name="Pat")],
        consents=[Consent(consent_id="c1", version=1), Consent(consent_id="c1", version=2)],
        devices=[DeviceLink(device_id="d1", model="Pump")],
    )

    await repository.save(patient)
    loaded = await repository.find("clinic-1")

    assert patient.consents[1].row_key == "p-100-consent-c1-v2"
    assert [m.first_name for m in loaded.meta] == ["Pat"]
    assert [c.version for c in loaded.consents] == [1, 2]
    assert [d.model for d in loaded.devices] == ["Pump"]


@pytest.mark.asyncio
async def test_prefix_and_keyword_collections(settings) -> None:
    store = RangeRecordingStore()
    repository = PartitionRepository(Workspace, store, settings)
    audit = [AuditEntry(entry_id=str(i), message=f"event {i}") for i in range(2)]
    for index, entry in enumerate(audit):
        entry.assign_row_key(f"audit-{index:04d}")
    workspace = Workspace(
        workspace_id="w1",
        audit=audit,
        settings=[Setting(name="theme", value="dark")],
    )

    await repository.save(workspace)

    loaded = await repository.find("w1")
    assert loaded.workspace_id == "w1"
    assert [e.message for e in loaded.audit] == ["event 0", "event 1"]
    assert [(s.name, s.value) for s in loaded.settings] == [("theme", "dark")]

    entries = await repository.query_collection("w1", "audit")
    assert [e.row_key for e in entries] == ["audit-0000", "audit-0001"]
    assert store.ranges == [("w1", "audit-", "audit-\uffff")]


@pytest.mark.asyncio
async def test_date_parent_values_are_recovered_from_row_keys(settings) -> None:
    repository = PartitionRepository(Clinic, RecordingStore(), settings)
    clinic = Clinic(
        clinic_id="c1",
        ward="north",
        visit_day=date(2024, 5, 17),
        visits=[Visit(visit_id="v1", notes="checkup")],
    )

    await repository.save(clinic)
    loaded = await repository.find("c1")

    assert [v.row_key for v in loaded.visits] == ["north-2024-05-17-visit-v1"]
    assert loaded.ward == "north"
    assert loaded.visit_day == date(2024, 5, 17)
    assert loaded.visits[0].notes == "checkup"


@pytest.mark.asyncio
async def test_id_property_keys_prefix_collections(settings) -> None:
    repository = PartitionRepository(Journal, RecordingStore(), settings)
    journal = Journal(
        journal_id="j1",
        entries=[AuditEntry(entry_id="1", message="opened"), AuditEntry(entry_id="2", message="closed")],
    )

    await repository.save(journal)
    loaded = await repository.find("j1")

    assert [e.row_key for e in loaded.entries] == ["entry-1", "entry-2"]
    assert [e.message for e in loaded.entries] == ["opened", "closed"]
