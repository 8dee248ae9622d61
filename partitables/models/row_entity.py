"""
Base model for row entities stored inside a partition.

Provides the once-assignable row key and the conversion between a model's
fields and the flat attribute map of a table row. Primitive values are
stored as-is; everything else is serialized to JSON text and restored by
validating against the field's annotation.
"""

import types
import typing
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, ClassVar, Dict, Optional, Tuple, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, PrivateAttr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from partitables.core.exceptions import RowKeyAlreadyAssignedError
from partitables.models.table_row import TableRow

logger = structlog.get_logger(__name__)

# Types the table store holds natively
NATIVE_TYPES: Tuple[type, ...] = (str, bytes, bool, int, float, datetime, UUID)


class RowEntity(BaseModel):
    """
    Base class for row entities within a partition.

    Subclasses declare their attributes as pydantic fields and either a
    ``__row_key_pattern__`` or a ``build_row_key(context)`` method.
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    __row_key_pattern__: ClassVar[Optional[Any]] = None

    _row_key: Optional[str] = PrivateAttr(default=None)
    _etag: Optional[str] = PrivateAttr(default=None)
    _timestamp: Optional[datetime] = PrivateAttr(default=None)

    @property
    def row_key(self) -> Optional[str]:
        """Assigned row key, or None until assigned."""
        return self._row_key

    @property
    def etag(self) -> Optional[str]:
        return self._etag

    @property
    def timestamp(self) -> Optional[datetime]:
        return self._timestamp

    @property
    def has_row_key(self) -> bool:
        return bool(self._row_key)

    def assign_row_key(self, row_key: str) -> None:
        """
        Assign the row key exactly once

        Re-assigning the same value is a no-op.

        Raises:
            RowKeyAlreadyAssignedError: If a different key is already set
        """
        if self._row_key and self._row_key != row_key:
            raise RowKeyAlreadyAssignedError(self._row_key, row_key)
        self._row_key = row_key

    def to_row_attributes(self) -> Dict[str, Any]:
        """
        Convert fields to a flat map of store-native values.

        None values are omitted and naive datetimes are stored as UTC.
        """
        attributes = {}
        for name, field in type(self).model_fields.items():
            value = getattr(self, name)
            if value is None:
                continue

            if is_complex_annotation(field.annotation):
                attributes[name] = _adapter(field.annotation).dump_json(value).decode("utf-8")
                continue

            if isinstance(value, Enum):
                value = value.value
            if isinstance(value, datetime) and value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            attributes[name] = value

        return attributes

    def to_table_row(self, partition_key: str) -> TableRow:
        """Build the table row for this entity; the row key must be assigned."""
        return TableRow(
            partition_key=partition_key,
            row_key=self._row_key,
            attributes=self.to_row_attributes(),
            etag=self._etag,
        )

    @classmethod
    def from_table_row(cls, row: TableRow) -> "RowEntity":
        """
        Create an entity from a stored row.

        Attributes that cannot be restored are skipped one at a time; the
        field keeps its default.
        """
        restored = {}
        for name, field in cls.model_fields.items():
            raw = row.attributes.get(name)
            if raw is None:
                continue
            try:
                restored[name] = restore_attribute(field.annotation, raw)
            except (PydanticValidationError, ValueError, TypeError) as e:
                logger.debug(
                    "Skipping attribute that could not be restored",
                    entity_type=cls.__name__,
                    attribute=name,
                    row_key=row.row_key,
                    error=str(e)
                )

        entity = cls.model_construct(**restored)
        entity._row_key = row.row_key
        entity._etag = row.etag
        entity._timestamp = row.timestamp
        return entity


def restore_attribute(annotation: Any, raw: Any) -> Any:
    """Validate a stored value back into the type of its field."""
    adapter = _adapter(annotation)
    if is_complex_annotation(annotation) and isinstance(raw, (str, bytes)):
        return adapter.validate_json(raw)
    return adapter.validate_python(raw)


def coerce_key_value(annotation: Any, raw: str) -> Any:
    """
    Validate text decoded from a row key into the type of its field.

    Key text is the rendered value itself, never JSON, so ``2024-05-17``
    becomes a ``date`` and ``12.50`` a ``Decimal``.
    """
    return _adapter(annotation).validate_python(raw)


def is_complex_annotation(annotation: Any) -> bool:
    """True when values of this annotation need JSON serialization."""
    annotation = unwrap_optional(annotation)
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return False
        return not issubclass(annotation, NATIVE_TYPES)
    return True


def unwrap_optional(annotation: Any) -> Any:
    """``Optional[X]`` -> ``X``; other annotations unchanged."""
    origin = typing.get_origin(annotation)
    if origin is Union or origin is getattr(types, "UnionType", None):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


@lru_cache(maxsize=512)
def _adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)
