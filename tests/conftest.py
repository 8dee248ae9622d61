"""
Shared models, stores and fixtures for the partitables test-suite.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar, List, Optional, Sequence

import pytest

from partitables.config.settings import Environment, Settings
from partitables.core.batch import BatchOperation
from partitables.core.exceptions import StoreError
from partitables.database.memory_store import InMemoryPartitionStore
from partitables.models import (
    PartitionRoot,
    RowEntity,
    RowKeyContext,
    RowKeyPattern,
    TablePartition,
    row_collection,
)


# Project tracking: two templated collections sharing the root's project_id

class TaskItem(RowEntity):
    __row_key_pattern__ = RowKeyPattern("{project_id}-task-{task_id}")

    task_id: str = ""
    title: str = ""
    status: str = "New"


class CommentItem(RowEntity):
    __row_key_pattern__ = RowKeyPattern("{project_id}-comment-{comment_id}")

    comment_id: str = ""
    text: str = ""
    author: Optional[str] = None


class ProjectData(PartitionRoot):
    __table_partition__ = TablePartition("CrudTestTable", "{project_id}")

    project_id: str = ""
    project_name: str = ""
    tasks: List[TaskItem] = row_collection()
    comments: List[CommentItem] = row_collection()


# Multi-tenant customers: customer_id lives only on the root and in row keys

class CustomerProfile(RowEntity):
    __row_key_pattern__ = RowKeyPattern("{customer_id}-profile")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class Order(RowEntity):
    __row_key_pattern__ = RowKeyPattern("{customer_id}-order-{order_id}")

    order_id: str = ""
    amount: Decimal = Decimal("0")
    status: str = "Pending"
    order_date: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)
    tags: List[str] = []


class Address(RowEntity):
    __row_key_pattern__ = RowKeyPattern("{customer_id}-address-{address_id}")

    address_id: str = ""
    street: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class Customer(PartitionRoot):
    __table_partition__ = TablePartition("CustomersTable", "{tenant_id}")

    tenant_id: str = ""
    customer_id: str = ""
    profiles: List[CustomerProfile] = row_collection()
    orders: List[Order] = row_collection()
    addresses: List[Address] = row_collection()


# Healthcare patients: item types build their own row keys

class PatientMeta(RowEntity):
    email: Optional[str] = None
    first_name: Optional[str] = None

    def build_row_key(self, context: RowKeyContext) -> str:
        return f"{context.get_parent_property('patient_id')}-meta"


class Consent(RowEntity):
    consent_id: str = ""
    version: int = 1
    status: str = "Granted"

    def build_row_key(self, context: RowKeyContext) -> str:
        patient_id = context.get_parent_property("patient_id")
        return f"{patient_id}-consent-{self.consent_id}-v{self.version}"


class DeviceLink(RowEntity):
    device_id: str = ""
    model: Optional[str] = None

    def build_row_key(self, context: RowKeyContext) -> str:
        return f"{context.get_parent_property('patient_id')}-device-{self.device_id}"


class Patient(PartitionRoot):
    __table_partition__ = TablePartition("PatientData", "{tenant_id}")

    tenant_id: str = ""
    patient_id: str = ""
    meta: List[PatientMeta] = row_collection()
    consents: List[Consent] = row_collection()
    devices: List[DeviceLink] = row_collection()


# Prefix and explicit keyword classification

class AuditEntry(RowEntity):
    entry_id: str = ""
    message: str = ""


class Setting(RowEntity):
    TYPE_KEYWORD: ClassVar[str] = "setting"
    __row_key_pattern__ = RowKeyPattern("setting-{name}")

    name: str = ""
    value: str = ""


class Workspace(PartitionRoot):
    __table_partition__ = TablePartition("Workspaces", "{workspace_id}")

    workspace_id: str = ""
    audit: List[AuditEntry] = row_collection(prefix="audit-")
    settings: List[Setting] = row_collection()


class Journal(PartitionRoot):
    __table_partition__ = TablePartition("Journals", "{journal_id}")

    journal_id: str = ""
    entries: List[AuditEntry] = row_collection(prefix="entry-", id_property="entry_id")


# Parent values that are not strings

class Visit(RowEntity):
    __row_key_pattern__ = RowKeyPattern("{ward}-{visit_day}-visit-{visit_id}")

    visit_id: str = ""
    notes: str = ""


class Clinic(PartitionRoot):
    __table_partition__ = TablePartition("Clinics", "{clinic_id}")

    clinic_id: str = ""
    ward: str = ""
    visit_day: date = date(2000, 1, 1)
    visits: List[Visit] = row_collection()


class RecordingStore(InMemoryPartitionStore):
    """In-memory store remembering every submitted batch."""

    def __init__(self, table_name: Optional[str] = None):
        super().__init__(table_name)
        self.submitted: List[List[BatchOperation]] = []

    async def submit_batch(self, partition_key: str, operations: Sequence[BatchOperation]) -> None:
        await super().submit_batch(partition_key, operations)
        self.submitted.append(list(operations))

    @property
    def batch_sizes(self) -> List[int]:
        return [len(ops) for ops in self.submitted]


class FailingStore(RecordingStore):
    """
    Store failing the n-th batch submission

    With ``fail_rollback`` every submission after the failing one fails
    too. ``error`` is raised as given, so tests can inject cancellation.
    """

    def __init__(
            self,
            fail_on: int,
            fail_rollback: bool = False,
            error: Optional[BaseException] = None
    ):
        super().__init__()
        self.fail_on = fail_on
        self.fail_rollback = fail_rollback
        self.error = error
        self.calls = 0

    async def submit_batch(self, partition_key: str, operations: Sequence[BatchOperation]) -> None:
        self.calls += 1
        if self.calls == self.fail_on or (self.fail_rollback and self.calls > self.fail_on):
            if self.error is not None and self.calls == self.fail_on:
                raise self.error
            raise StoreError(
                f"Injected failure on submission {self.calls}",
                operation="submit_batch",
                partition_key=partition_key
            )
        await super().submit_batch(partition_key, operations)


def make_project(project_id: str = "p1", tasks: int = 3, comments: int = 2) -> ProjectData:
    return ProjectData(
        project_id=project_id,
        project_name="Website Redesign",
        tasks=[TaskItem(task_id=f"task-{i:03d}", title=f"Task {i}") for i in range(1, tasks + 1)],
        comments=[
            CommentItem(comment_id=f"comment-{i:03d}", text=f"Comment {i}", author="alice")
            for i in range(1, comments + 1)
        ],
    )


def make_customer() -> Customer:
    return Customer(
        tenant_id="tenant-1",
        customer_id="cust-1",
        profiles=[CustomerProfile(first_name="Ada", last_name="Lovelace", email="ada@example.com")],
        orders=[
            Order(order_id="55", amount=Decimal("12.50"), tags=["gift"]),
            Order(order_id="56", amount=Decimal("99.99"), status="Shipped"),
        ],
        addresses=[Address(address_id="home", street="1 Main St", city="London", country="UK")],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(ENVIRONMENT=Environment.TESTING)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()
