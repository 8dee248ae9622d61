"""
Model layer for partitables.

Declarations, base classes for roots and row entities, and the store-level
row type.
"""

from partitables.models.table_row import TableRow
from partitables.models.declarations import (
    TablePartition,
    RowKeyPattern,
    RowKeyContext,
    RowKeyBuilder,
    row_collection,
)
from partitables.models.row_entity import RowEntity
from partitables.models.partition_root import PartitionRoot

__all__ = [
    "TableRow",
    "TablePartition",
    "RowKeyPattern",
    "RowKeyContext",
    "RowKeyBuilder",
    "row_collection",
    "RowEntity",
    "PartitionRoot",
]
