from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

import pytest
from pydantic import BaseModel

from partitables.core.exceptions import RowKeyAlreadyAssignedError
from partitables.models import RowEntity, TableRow
from partitables.models.row_entity import coerce_key_value

from conftest import Order


class Priority(str, Enum):
    LOW = "low"
    HIGH = "high"


class Dimensions(BaseModel):
    width: int
    height: int


class Shipment(RowEntity):
    shipment_id: str = ""
    weight: float = 0.0
    fragile: bool = False
    tracking: Optional[UUID] = None
    shipped_at: Optional[datetime] = None
    priority: Priority = Priority.LOW
    labels: List[str] = []
    dimensions: Optional[Dimensions] = None
    extra: Dict[str, int] = {}
    note: Optional[str] = None


def test_row_key_is_assigned_once() -> None:
    order = Order(order_id="1")
    assert not order.has_row_key

    order.assign_row_key("c-order-1")
    order.assign_row_key("c-order-1")
    assert order.row_key == "c-order-1"

    with pytest.raises(RowKeyAlreadyAssignedError):
        order.assign_row_key("c-order-2")
    assert order.row_key == "c-order-1"


def test_row_key_is_not_serialized() -> None:
    order = Order(order_id="1")
    order.assign_row_key("c-order-1")

    assert "row_key" not in order.model_dump()
    assert "_row_key" not in order.to_row_attributes()


def test_to_row_attributes_keeps_native_values_and_encodes_the_rest() -> None:
    tracking = UUID("12345678-1234-5678-1234-567812345678")
    shipment = Shipment(
        shipment_id="s1",
        weight=2.5,
        fragile=True,
        tracking=tracking,
        shipped_at=datetime(2024, 5, 1, 12, 0),
        priority=Priority.HIGH,
        labels=["a", "b"],
        dimensions=Dimensions(width=3, height=4),
        extra={"x": 1},
    )

    attributes = shipment.to_row_attributes()

    assert attributes["shipment_id"] == "s1"
    assert attributes["weight"] == 2.5
    assert attributes["fragile"] is True
    assert attributes["tracking"] == tracking
    assert attributes["shipped_at"] == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert attributes["priority"] == "high"
    assert attributes["labels"] == '["a","b"]'
    assert attributes["dimensions"] == '{"width":3,"height":4}'
    assert attributes["extra"] == '{"x":1}'
    assert "note" not in attributes


def test_from_table_row_restores_typed_values() -> None:
    source = Shipment(
        shipment_id="s1",
        priority=Priority.HIGH,
        labels=["a"],
        dimensions=Dimensions(width=1, height=2),
    )
    stored = source.to_table_row("p1")
    stored.row_key = "shipment-s1"
    stored.etag = "etag-1"

    restored = Shipment.from_table_row(stored)

    assert restored.row_key == "shipment-s1"
    assert restored.etag == "etag-1"
    assert restored.priority is Priority.HIGH
    assert restored.labels == ["a"]
    assert restored.dimensions == Dimensions(width=1, height=2)
    assert restored.note is None


def test_decimal_round_trip() -> None:
    order = Order(order_id="55", amount=Decimal("12.50"))
    order.assign_row_key("c-order-55")

    restored = Order.from_table_row(order.to_table_row("t1"))

    assert restored.amount == Decimal("12.50")
    assert restored.order_id == "55"


def test_unrestorable_attributes_are_skipped_one_at_a_time() -> None:
    stored = TableRow(
        partition_key="p1",
        row_key="shipment-s1",
        attributes={
            "shipment_id": "s1",
            "weight": "heavy",
            "labels": "not json",
            "fragile": True,
            "unknown": "ignored",
        },
    )

    restored = Shipment.from_table_row(stored)

    assert restored.shipment_id == "s1"
    assert restored.fragile is True
    assert restored.weight == 0.0
    assert restored.labels == []


def test_coerce_key_value_reads_key_text() -> None:
    assert coerce_key_value(date, "2024-05-17") == date(2024, 5, 17)
    assert coerce_key_value(Decimal, "12.50") == Decimal("12.50")
    assert coerce_key_value(Optional[int], "7") == 7
    assert coerce_key_value(Priority, "high") is Priority.HIGH
