"""
Row Key Codec
=============

Compiles row key templates such as ``"{customer_id}-order-{order_id}"`` and
converts between records and row keys:

- encode: resolve every ``{name}`` placeholder against the item first and
  the parent root second, copying literal text verbatim
- decode: match an observed row key against an anchored regular expression
  built from the template and return the captured placeholder values

Templates must put literal text between any two placeholders; adjacent
placeholders cannot be split back apart and are rejected when compiled.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, Optional, Pattern, Tuple, Union

from partitables.config.constants import (
    FORBIDDEN_KEY_CHARACTERS,
    MAX_ROW_KEY_BYTES,
    MAX_PARTITION_KEY_BYTES,
    RANGE_UPPER_SENTINEL,
)
from partitables.core.exceptions import (
    ConfigurationError,
    InvalidPartitionKeyError,
    InvalidRowKeyError,
)

_MISSING = object()


@dataclass(frozen=True)
class TemplateSegment:
    """One literal run or placeholder of a compiled template."""
    text: str
    is_placeholder: bool


@dataclass(frozen=True)
class KeyTemplate:
    """
    Compiled row key template

    Attributes:
        pattern: Source template string
        segments: Literal and placeholder segments in template order
        regex: Anchored decode expression with one named group per placeholder
    """
    pattern: str
    segments: Tuple[TemplateSegment, ...]
    regex: Pattern

    @classmethod
    def compile(cls, pattern: str) -> "KeyTemplate":
        """
        Parse and validate a template

        Args:
            pattern: Template string with ``{name}`` placeholders

        Returns:
            Compiled template

        Raises:
            ConfigurationError: If the template is empty, has unbalanced
                braces, invalid or repeated placeholder names, or two
                placeholders with no literal text between them
        """
        if not pattern or not pattern.strip():
            raise ConfigurationError("Row key template cannot be null or empty")

        segments = []
        literal = []
        index = 0
        while index < len(pattern):
            char = pattern[index]
            if char == "{":
                end = pattern.find("}", index + 1)
                if end == -1:
                    raise ConfigurationError(f"Unclosed placeholder in template '{pattern}'")
                name = pattern[index + 1:end]
                if not name.isidentifier():
                    raise ConfigurationError(
                        f"Invalid placeholder '{{{name}}}' in template '{pattern}'"
                    )
                if literal:
                    segments.append(TemplateSegment("".join(literal), False))
                    literal = []
                elif segments and segments[-1].is_placeholder:
                    raise ConfigurationError(
                        f"Template '{pattern}' has adjacent placeholders "
                        f"'{{{segments[-1].text}}}{{{name}}}' with no literal separator; "
                        "such row keys cannot be decoded"
                    )
                segments.append(TemplateSegment(name, True))
                index = end + 1
                continue
            if char == "}":
                raise ConfigurationError(f"Unbalanced '}}' in template '{pattern}'")
            literal.append(char)
            index += 1

        if literal:
            segments.append(TemplateSegment("".join(literal), False))

        names = [s.text for s in segments if s.is_placeholder]
        if len(names) != len(set(names)):
            raise ConfigurationError(f"Template '{pattern}' repeats a placeholder")

        regex_parts = [
            f"(?P<{s.text}>.+?)" if s.is_placeholder else re.escape(s.text)
            for s in segments
        ]
        regex = re.compile("^" + "".join(regex_parts) + "$", re.DOTALL)

        return cls(pattern=pattern, segments=tuple(segments), regex=regex)

    @property
    def placeholders(self) -> Tuple[str, ...]:
        """Placeholder names in template order."""
        return tuple(s.text for s in self.segments if s.is_placeholder)

    @property
    def literals(self) -> Tuple[str, ...]:
        """Literal segments in template order."""
        return tuple(s.text for s in self.segments if not s.is_placeholder)

    def encode(self, item: Any, parent: Any = None) -> str:
        """
        Build a row key for ``item`` owned by ``parent``

        Args:
            item: Record whose properties are consulted first
            parent: Root whose properties are consulted second

        Returns:
            The encoded row key

        Raises:
            ConfigurationError: If a placeholder is a property of neither
            InvalidRowKeyError: If a placeholder resolves to an empty value
        """
        parts = []
        for segment in self.segments:
            if not segment.is_placeholder:
                parts.append(segment.text)
                continue

            value = lookup_property(item, segment.text)
            if value is _MISSING:
                value = lookup_property(parent, segment.text)
            if value is _MISSING:
                raise ConfigurationError(
                    f"Placeholder '{{{segment.text}}}' in template '{self.pattern}' "
                    f"is not a property of {type(item).__name__} or {type(parent).__name__}",
                    entity_type=type(item).__name__,
                    property_name=segment.text
                )

            rendered = format_key_value(value)
            if not rendered:
                raise InvalidRowKeyError(
                    f"Placeholder '{{{segment.text}}}' in template '{self.pattern}' "
                    f"resolved to an empty value for {type(item).__name__}"
                )
            parts.append(rendered)

        return "".join(parts)

    def decode(self, row_key: str) -> Optional[Dict[str, str]]:
        """
        Recover placeholder values from an observed row key

        Returns:
            Mapping of placeholder name to captured text, or None when the
            row key does not follow this template
        """
        if row_key is None:
            return None
        match = self.regex.match(row_key)
        if match is None:
            return None
        return match.groupdict()

    def parent_values(
            self,
            row_key: str,
            item_properties: Iterable[str],
            partition_key_property: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Decode only the placeholders that belong to the parent root

        Placeholders that are properties of the item type are dropped (the
        item restores them from its own stored attributes), as is the
        partition key property (known from the store's partition key).
        """
        values = self.decode(row_key)
        if not values:
            return {}

        excluded = set(item_properties)
        if partition_key_property:
            excluded.add(partition_key_property)

        return {name: value for name, value in values.items() if name not in excluded}


@lru_cache(maxsize=256)
def compile_template(pattern: str) -> KeyTemplate:
    """Compile a template, caching the result."""
    return KeyTemplate.compile(pattern)


def encode(template: Union[str, KeyTemplate], item: Any, parent: Any = None) -> str:
    """Encode a row key from a template string or compiled template."""
    if isinstance(template, str):
        template = compile_template(template)
    return template.encode(item, parent)


def decode(template: Union[str, KeyTemplate], row_key: str) -> Optional[Dict[str, str]]:
    """Decode a row key against a template string or compiled template."""
    if isinstance(template, str):
        template = compile_template(template)
    return template.decode(row_key)


def lookup_property(obj: Any, name: str) -> Any:
    """
    Read a declared property of ``obj``

    Pydantic models expose their fields and read-only properties; other
    objects expose any attribute. Returns a private sentinel when absent.
    """
    if obj is None:
        return _MISSING
    if type_has_property(type(obj), name):
        return getattr(obj, name)
    if getattr(type(obj), "model_fields", None) is None:
        return getattr(obj, name, _MISSING)
    return _MISSING


def type_has_property(cls: type, name: str) -> bool:
    """Check whether a type declares ``name`` as a field or property."""
    fields = getattr(cls, "model_fields", None)
    if fields is not None and name in fields:
        return True
    return isinstance(getattr(cls, name, None), property)


def model_property_names(cls: type) -> FrozenSet[str]:
    """Declared field and property names of a type."""
    names = set(getattr(cls, "model_fields", {}) or {})
    for klass in cls.__mro__:
        names.update(k for k, v in vars(klass).items() if isinstance(v, property))
    return frozenset(names)


def format_key_value(value: Any) -> str:
    """Render a property value as row key text."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        value = value.value
    return str(value)


def validate_row_key(row_key: str, max_bytes: int = MAX_ROW_KEY_BYTES) -> str:
    """
    Check a row key against the table store's key constraints

    Raises:
        InvalidRowKeyError: If empty, longer than ``max_bytes`` in UTF-8, or
            containing ``/ \\ # ?`` or control characters
    """
    if row_key is None or not str(row_key).strip():
        raise InvalidRowKeyError("Row key cannot be null or empty.", row_key=row_key)

    if any(c in FORBIDDEN_KEY_CHARACTERS or _is_control(c) for c in row_key):
        raise InvalidRowKeyError(
            f"Row key '{row_key}' contains invalid characters "
            "(/, \\, #, ? or control characters).",
            row_key=row_key
        )

    if len(row_key.encode("utf-8")) > max_bytes:
        raise InvalidRowKeyError(
            f"Row key '{row_key[:64]}...' exceeds maximum size of {max_bytes} bytes.",
            row_key=row_key
        )

    return row_key


def validate_partition_key(partition_key: Any) -> str:
    """
    Normalize and check a partition key value

    Raises:
        InvalidPartitionKeyError: If empty or violating the key constraints
    """
    if partition_key is None:
        raise InvalidPartitionKeyError("Partition key cannot be null or empty.")

    text = format_key_value(partition_key)
    if not text.strip():
        raise InvalidPartitionKeyError("Partition key cannot be null or empty.", partition_key=text)

    if any(c in FORBIDDEN_KEY_CHARACTERS or _is_control(c) for c in text):
        raise InvalidPartitionKeyError(
            f"Partition key '{text}' contains invalid characters "
            "(/, \\, #, ? or control characters).",
            partition_key=text
        )

    if len(text.encode("utf-8")) > MAX_PARTITION_KEY_BYTES:
        raise InvalidPartitionKeyError(
            f"Partition key exceeds maximum size of {MAX_PARTITION_KEY_BYTES} bytes.",
            partition_key=text
        )

    return text


def _is_control(char: str) -> bool:
    code = ord(char)
    return code < 0x20 or 0x7F <= code <= 0x9F


class RowKeyRange:
    """Row key ranges (inclusive start, exclusive end) for range scans."""

    @staticmethod
    def for_prefix(prefix: Optional[str]) -> Tuple[str, str]:
        """
        Range covering every row key starting with ``prefix``

        Example:
            RowKeyRange.for_prefix("patient-123-")
            -> ("patient-123-", "patient-123-\\uffff")
        """
        prefix = prefix or ""
        return prefix, prefix + RANGE_UPPER_SENTINEL

    @staticmethod
    def exact(row_key: str) -> Tuple[str, str]:
        """Range for a single row key."""
        if not row_key or not row_key.strip():
            raise InvalidRowKeyError("Row key cannot be null or empty.", row_key=row_key)
        return row_key, row_key

    @staticmethod
    def between(from_key: str, to_key: str) -> Tuple[str, str]:
        """Range between two row keys."""
        if not from_key or not from_key.strip():
            raise InvalidRowKeyError("From row key cannot be null or empty.", row_key=from_key)
        if not to_key or not to_key.strip():
            raise InvalidRowKeyError("To row key cannot be null or empty.", row_key=to_key)
        return from_key, to_key
