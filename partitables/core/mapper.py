"""
Entity Mapper
=============

Rebuilds a partition root from the flat rows of its partition:

1. create the root and set its partition key property
2. classify the rows into the root's collections
3. restore each item and decode the parent-level placeholders of its row key
4. apply decoded parent values to the root, first value seen wins
5. attach the collections

Rows and attributes that cannot be restored are skipped, never raised.
"""

from typing import Any, Dict, List, Sequence

import structlog
from pydantic import ValidationError as PydanticValidationError

from partitables.core.schema import CollectionDescriptor, PartitionDescriptor
from partitables.models.row_entity import RowEntity, coerce_key_value
from partitables.models.table_row import TableRow

logger = structlog.get_logger(__name__)


class EntityMapper:
    """Hydrates roots and collections of one registered root type."""

    def __init__(self, descriptor: PartitionDescriptor):
        self.descriptor = descriptor

    def map_to_entity(self, rows: Sequence[TableRow], partition_key: str) -> Any:
        """
        Assemble a root from its partition's rows

        Args:
            rows: Every row of the partition
            partition_key: The partition's key

        Returns:
            The root, remembering ``rows`` as its load snapshot
        """
        root_type = self.descriptor.root_type
        root = root_type.model_construct()
        self._set_root_property(root, self.descriptor.partition_key_property, partition_key)

        parent_values: Dict[str, str] = {}
        collections: Dict[str, List[RowEntity]] = {}

        for collection in self.descriptor.collections:
            items = []
            for row in rows:
                if not collection.matches(row.row_key):
                    continue
                items.append(self._restore_item(collection, row))
                decoded = collection.parent_values(
                    row.row_key,
                    self.descriptor.partition_key_property
                )
                for name, value in decoded.items():
                    parent_values.setdefault(name, value)
            collections[collection.name] = items

        for name, value in parent_values.items():
            self._set_root_property(root, name, value)

        for name, items in collections.items():
            setattr(root, name, items)

        remember = getattr(root, "remember_rows", None)
        if callable(remember):
            remember(rows)

        logger.debug(
            "Partition mapped",
            root_type=root_type.__name__,
            partition_key=partition_key,
            rows=len(rows),
            collections={name: len(items) for name, items in collections.items()}
        )
        return root

    def map_collection(
            self,
            rows: Sequence[TableRow],
            collection: CollectionDescriptor
    ) -> List[RowEntity]:
        """Restore the items of one collection without assembling the root."""
        return [
            self._restore_item(collection, row)
            for row in rows
            if collection.matches(row.row_key)
        ]

    @staticmethod
    def _restore_item(collection: CollectionDescriptor, row: TableRow) -> RowEntity:
        return collection.item_type.from_table_row(row)

    def _set_root_property(self, root: Any, name: str, raw: Any) -> None:
        field = type(root).model_fields.get(name)
        if field is None:
            return
        try:
            value = coerce_key_value(field.annotation, raw)
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.debug(
                "Skipping root property that could not be restored",
                root_type=type(root).__name__,
                property_name=name,
                error=str(e)
            )
            return
        setattr(root, name, value)
