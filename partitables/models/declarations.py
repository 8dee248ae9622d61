"""
Schema declarations for partition roots and row entities.

A root type names its table and partition key property with
``TablePartition`` and marks its child collections with ``row_collection``;
row entity types declare how their row keys look with ``RowKeyPattern``,
or build keys themselves by implementing ``build_row_key``::

    class Customer(PartitionRoot):
        __table_partition__ = TablePartition("Customers", "{tenant_id}")

        tenant_id: str = ""
        customer_id: str = ""
        orders: List[Order] = row_collection()

    class Order(RowEntity):
        __row_key_pattern__ = RowKeyPattern("{customer_id}-order-{order_id}")

        order_id: str = ""
        amount: float = 0.0
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from pydantic import Field

from partitables.core.exceptions import ConfigurationError

# Key under which row_collection stores its settings on the pydantic field
ROW_COLLECTION_MARKER = "x-partitables-row-key-prefix"
ROW_COLLECTION_ID_PROPERTY = "x-partitables-id-property"


@dataclass(frozen=True)
class TablePartition:
    """
    Marks a root type as a table partition entity

    Attributes:
        table_name: Table the root's rows are stored in
        partition_key_template: ``"{property}"`` naming the partition key source
    """
    table_name: str
    partition_key_template: str


@dataclass(frozen=True)
class RowKeyPattern:
    """
    Declares the row key template for a row entity type

    Attributes:
        pattern: Template such as ``"{customer_id}-order-{order_id}"``;
            placeholders resolve against the item, then against the root
        type_keyword: Literal token that uniquely identifies this type's row
            keys; derived from the pattern when omitted
    """
    pattern: str
    type_keyword: Optional[str] = None

    def __post_init__(self):
        if not self.pattern or not self.pattern.strip():
            raise ConfigurationError("Pattern cannot be null or empty")


def row_collection(prefix: str = "", id_property: Optional[str] = None) -> Any:
    """
    Declare a root field as a collection of row entities

    Args:
        prefix: Literal row key prefix shared by the collection's rows, used
            for classification when the item type declares no keyword
        id_property: Optional name of the item property holding its id

    Returns:
        A pydantic field defaulting to an empty list
    """
    return Field(
        default_factory=list,
        json_schema_extra={
            ROW_COLLECTION_MARKER: prefix or "",
            ROW_COLLECTION_ID_PROPERTY: id_property,
        },
    )


@dataclass(frozen=True)
class RowKeyContext:
    """
    Information available to item types that build their own row keys

    Attributes:
        parent_entity: Root that owns the item
        prefix: The collection's declared prefix
        partition_key: Partition the item is being saved into
    """
    parent_entity: Any
    prefix: str
    partition_key: str

    def get_parent_property(self, name: str, default: Any = None) -> Any:
        """Read a property of the parent root, or ``default`` when absent."""
        return getattr(self.parent_entity, name, default)


@runtime_checkable
class RowKeyBuilder(Protocol):
    """Row entity types that compute their own row keys."""

    def build_row_key(self, context: RowKeyContext) -> str:
        ...
