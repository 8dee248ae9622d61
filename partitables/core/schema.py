"""
Schema Registrar
================

Reads a partition root type's declarations once and produces immutable
descriptors used by the batch planner, the entity mapper and the
repository:

- the table name and the partition key property
- one ``CollectionDescriptor`` per ``row_collection`` field, holding the
  item type, prefix, compiled row key template and the classifier chosen
  for it

All declaration problems raise ``ConfigurationError`` here, before any
I/O happens.
"""

import typing
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional, Tuple

import structlog

from partitables.config.constants import MIN_TABLE_NAME_LENGTH, MAX_TABLE_NAME_LENGTH
from partitables.core.classifier import RowKeyMatcher, build_matcher
from partitables.core.exceptions import ConfigurationError, InvalidRowKeyError
from partitables.core.row_key import (
    KeyTemplate,
    compile_template,
    format_key_value,
    model_property_names,
    type_has_property,
    validate_partition_key,
)
from partitables.models.declarations import (
    ROW_COLLECTION_ID_PROPERTY,
    ROW_COLLECTION_MARKER,
    RowKeyBuilder,
    RowKeyContext,
    RowKeyPattern,
    TablePartition,
)
from partitables.models.row_entity import RowEntity, unwrap_optional

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CollectionDescriptor:
    """
    Registered child collection of a partition root

    Attributes:
        name: Field name on the root
        item_type: Row entity type of the items
        prefix: Declared row key prefix ("" when none)
        id_property: Declared id property of the items, if any
        pattern: Item type's row key pattern declaration, if any
        template: Compiled ``pattern``
        matcher: Classifier deciding which row keys belong here
        item_properties: Field and property names of the item type
    """
    name: str
    item_type: type
    prefix: str
    id_property: Optional[str]
    pattern: Optional[RowKeyPattern]
    template: Optional[KeyTemplate]
    matcher: RowKeyMatcher
    item_properties: FrozenSet[str]

    @property
    def builds_own_key(self) -> bool:
        return self.template is None and issubclass(self.item_type, RowKeyBuilder)

    def matches(self, row_key: str) -> bool:
        return self.matcher.matches(row_key)

    def resolve_row_key(self, item: RowEntity, root: Any, partition_key: str) -> str:
        """
        Row key for ``item``: the assigned one, else the template's, else
        the one the item builds itself, else ``prefix`` followed by the
        value of ``id_property``.

        Raises:
            InvalidRowKeyError: If the id property is empty
            ConfigurationError: If the item type has no way to build a key
        """
        if item.has_row_key:
            return item.row_key

        if self.template is not None:
            return self.template.encode(item, root)

        if self.builds_own_key:
            context = RowKeyContext(root, self.prefix, partition_key)
            return item.build_row_key(context)

        if self.id_property:
            value = format_key_value(getattr(item, self.id_property, None))
            if not value:
                raise InvalidRowKeyError(
                    f"{self.item_type.__name__}.{self.id_property} is empty, cannot key "
                    f"item of collection {self.name}"
                )
            return self.prefix + value

        raise ConfigurationError(
            f"Cannot generate a row key for {self.item_type.__name__}: declare "
            "__row_key_pattern__, implement build_row_key, set id_property, or "
            "assign the row key",
            entity_type=self.item_type.__name__
        )

    def parent_values(self, row_key: str, partition_key_property: str) -> Dict[str, str]:
        """Parent-level placeholder values encoded in ``row_key``."""
        if self.template is None:
            return {}
        return self.template.parent_values(row_key, self.item_properties, partition_key_property)


@dataclass(frozen=True)
class PartitionDescriptor:
    """
    Registered partition root type

    Attributes:
        root_type: The root model class
        table_name: Table holding the root's partitions
        partition_key_property: Root field that is the partition key source
        collections: Registered collections in declaration order
    """
    root_type: type
    table_name: str
    partition_key_property: str
    collections: Tuple[CollectionDescriptor, ...]

    def collection(self, name: str) -> CollectionDescriptor:
        """
        Look up a collection by field name

        Raises:
            ConfigurationError: If the field is not a registered collection
        """
        for collection in self.collections:
            if collection.name == name:
                return collection
        raise ConfigurationError(
            f"Property {name} is not a row collection of {self.root_type.__name__}",
            entity_type=self.root_type.__name__,
            property_name=name
        )

    def extract_partition_key(self, root: Any) -> str:
        """
        Read and validate the partition key of a root instance

        Raises:
            InvalidPartitionKeyError: If the value is empty or invalid
        """
        return validate_partition_key(getattr(root, self.partition_key_property, None))

    def owns_row_key(self, row_key: str) -> bool:
        """True when any collection classifies ``row_key`` as its own."""
        return any(c.matches(row_key) for c in self.collections)


class SchemaRegistrar:
    """
    Builds and caches descriptors per root type

    Descriptors are immutable and safe to share between concurrently
    running repository calls.
    """

    _descriptors: Dict[type, PartitionDescriptor] = {}

    @classmethod
    def describe(cls, root_type: type) -> PartitionDescriptor:
        """Cached descriptor for ``root_type``."""
        descriptor = cls._descriptors.get(root_type)
        if descriptor is None:
            descriptor = cls.build(root_type)
            cls._descriptors[root_type] = descriptor
        return descriptor

    @classmethod
    def build(cls, root_type: type) -> PartitionDescriptor:
        """
        Register a root type

        Args:
            root_type: Pydantic model declaring ``__table_partition__``

        Returns:
            The root's descriptor

        Raises:
            ConfigurationError: For any invalid declaration
        """
        fields = getattr(root_type, "model_fields", None)
        if fields is None:
            raise ConfigurationError(
                f"Type {root_type.__name__} must be a pydantic model",
                entity_type=root_type.__name__
            )

        table = getattr(root_type, "__table_partition__", None)
        if not isinstance(table, TablePartition):
            raise ConfigurationError(
                f"Type {root_type.__name__} must declare __table_partition__",
                entity_type=root_type.__name__
            )
        _validate_table_name(table.table_name)

        partition_key_property = _partition_key_property(root_type, table)

        collections = []
        for name, field in fields.items():
            extra = field.json_schema_extra
            if not isinstance(extra, dict) or ROW_COLLECTION_MARKER not in extra:
                continue
            collections.append(
                _describe_collection(
                    root_type,
                    name,
                    field.annotation,
                    extra.get(ROW_COLLECTION_MARKER) or "",
                    extra.get(ROW_COLLECTION_ID_PROPERTY)
                )
            )

        descriptor = PartitionDescriptor(
            root_type=root_type,
            table_name=table.table_name,
            partition_key_property=partition_key_property,
            collections=tuple(collections),
        )

        logger.debug(
            "Partition schema registered",
            root_type=root_type.__name__,
            table_name=table.table_name,
            partition_key=partition_key_property,
            collections={c.name: c.matcher.strategy.value for c in collections}
        )
        return descriptor


def _validate_table_name(table_name: str) -> None:
    if (
            not table_name
            or not MIN_TABLE_NAME_LENGTH <= len(table_name) <= MAX_TABLE_NAME_LENGTH
            or not table_name[0].isalpha()
            or not table_name.isalnum()
            or not table_name.isascii()
    ):
        raise ConfigurationError(
            f"Invalid table name '{table_name}'. Must be {MIN_TABLE_NAME_LENGTH}-"
            f"{MAX_TABLE_NAME_LENGTH} characters, start with letter, alphanumeric only."
        )


def _partition_key_property(root_type: type, table: TablePartition) -> str:
    template = table.partition_key_template.strip()
    if "{" in template or "}" in template:
        compiled = compile_template(template)
        if len(compiled.placeholders) != 1 or compiled.literals:
            raise ConfigurationError(
                f"Partition key template '{template}' must be a single "
                "placeholder such as '{tenant_id}'",
                entity_type=root_type.__name__
            )
        name = compiled.placeholders[0]
    else:
        name = template

    if name not in root_type.model_fields:
        raise ConfigurationError(
            f"Property {name} not found on {root_type.__name__}",
            entity_type=root_type.__name__,
            property_name=name
        )
    return name


def _describe_collection(
        root_type: type,
        name: str,
        annotation: Any,
        prefix: str,
        id_property: Optional[str]
) -> CollectionDescriptor:
    item_type = _collection_item_type(annotation)
    if item_type is None:
        raise ConfigurationError(
            f"Collection {root_type.__name__}.{name} must be typed List[RowEntity subclass]",
            entity_type=root_type.__name__,
            property_name=name
        )

    pattern = getattr(item_type, "__row_key_pattern__", None)
    if pattern is not None and not isinstance(pattern, RowKeyPattern):
        raise ConfigurationError(
            f"{item_type.__name__}.__row_key_pattern__ must be a RowKeyPattern",
            entity_type=item_type.__name__
        )

    template = None
    if pattern is not None:
        template = compile_template(pattern.pattern)
        for placeholder in template.placeholders:
            if not (type_has_property(item_type, placeholder)
                    or type_has_property(root_type, placeholder)):
                raise ConfigurationError(
                    f"Placeholder '{{{placeholder}}}' in pattern '{pattern.pattern}' is "
                    f"not a property of {item_type.__name__} or {root_type.__name__}",
                    entity_type=item_type.__name__,
                    property_name=placeholder
                )

    if id_property is not None and not type_has_property(item_type, id_property):
        raise ConfigurationError(
            f"id_property '{id_property}' of {root_type.__name__}.{name} is not a "
            f"property of {item_type.__name__}",
            entity_type=item_type.__name__,
            property_name=id_property
        )

    matcher = build_matcher(root_type, item_type, prefix, pattern, template)

    return CollectionDescriptor(
        name=name,
        item_type=item_type,
        prefix=prefix,
        id_property=id_property,
        pattern=pattern,
        template=template,
        matcher=matcher,
        item_properties=model_property_names(item_type),
    )


def _collection_item_type(annotation: Any) -> Optional[type]:
    annotation = unwrap_optional(annotation)
    if typing.get_origin(annotation) is not list:
        return None
    args = typing.get_args(annotation)
    if len(args) != 1:
        return None
    item_type = args[0]
    if isinstance(item_type, type) and issubclass(item_type, RowEntity):
        return item_type
    return None
