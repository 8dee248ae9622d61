"""
Collection Classifier
=====================

Decides which typed collection an observed row key belongs to. One matcher
is chosen per collection when the schema is registered, by priority:

1. explicit keyword declared by the item type
2. keyword derived from the item type's row key template
3. sample key built by the item type's own ``build_row_key``
4. the collection's literal prefix
5. catch-all (only sensible for roots with a single collection)

Every strategy exposes the same ``matches(row_key) -> bool`` interface.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, FrozenSet, List, Optional

import structlog

from partitables.config.constants import (
    MatchStrategy,
    MIN_KEYWORD_LENGTH,
    SAMPLE_ID_VALUE,
    SAMPLE_KEY_IGNORED_TOKENS,
    SAMPLE_PARTITION_KEY,
    TYPE_KEYWORD_ATTRIBUTE,
)
from partitables.core.row_key import KeyTemplate
from partitables.models.declarations import RowKeyBuilder, RowKeyContext, RowKeyPattern
from partitables.models.row_entity import unwrap_optional

logger = structlog.get_logger(__name__)

_TOKEN_SPLIT = re.compile(r"[^0-9A-Za-z\u00c0-\uffff]+")


class RowKeyMatcher(ABC):
    """Predicate deciding whether a row key belongs to a collection."""

    strategy: MatchStrategy

    @abstractmethod
    def matches(self, row_key: str) -> bool:
        pass

    def __call__(self, row_key: str) -> bool:
        return self.matches(row_key)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(strategy={self.strategy.value})"


class KeywordMatcher(RowKeyMatcher):
    """Case-insensitive containment of a keyword token."""

    def __init__(self, keyword: str, strategy: MatchStrategy = MatchStrategy.EXPLICIT_KEYWORD):
        self.keyword = keyword.lower()
        self.strategy = strategy

    def matches(self, row_key: str) -> bool:
        return self.keyword in row_key.lower()

    def __repr__(self) -> str:
        return f"KeywordMatcher(keyword={self.keyword!r}, strategy={self.strategy.value})"


class SampleKeyMatcher(RowKeyMatcher):
    """
    Matches row keys containing every static token of a sample key.

    The sample key comes from running an item type's ``build_row_key``
    against a throwaway root filled with placeholder ids.
    """

    strategy = MatchStrategy.SAMPLE_KEY

    def __init__(self, sample_key: str):
        self.sample_key = sample_key
        self.static_tokens = static_tokens(sample_key)

    def matches(self, row_key: str) -> bool:
        if not self.static_tokens:
            return True
        row_tokens = set(tokenize(row_key))
        return self.static_tokens.issubset(row_tokens)

    def __repr__(self) -> str:
        return f"SampleKeyMatcher(tokens={sorted(self.static_tokens)})"


class PrefixMatcher(RowKeyMatcher):
    """Row keys starting with a literal prefix."""

    strategy = MatchStrategy.PREFIX

    def __init__(self, prefix: str):
        self.prefix = prefix

    def matches(self, row_key: str) -> bool:
        return row_key.startswith(self.prefix)

    def __repr__(self) -> str:
        return f"PrefixMatcher(prefix={self.prefix!r})"


class CatchAllMatcher(RowKeyMatcher):
    """Matches every row key."""

    strategy = MatchStrategy.CATCH_ALL

    def matches(self, row_key: str) -> bool:
        return True


def build_matcher(
        root_type: type,
        item_type: type,
        prefix: str = "",
        pattern: Optional[RowKeyPattern] = None,
        template: Optional[KeyTemplate] = None
) -> RowKeyMatcher:
    """
    Choose the matcher for one collection

    Args:
        root_type: Partition root type owning the collection
        item_type: Row entity type of the collection
        prefix: The collection's declared prefix
        pattern: The item type's row key pattern declaration, if any
        template: The compiled form of ``pattern``

    Returns:
        The highest priority matcher that applies
    """
    keyword = explicit_keyword(item_type, pattern)
    if keyword:
        return KeywordMatcher(keyword, MatchStrategy.EXPLICIT_KEYWORD)

    if template is not None:
        keyword = derive_keyword(template)
        if keyword:
            return KeywordMatcher(keyword, MatchStrategy.DERIVED_KEYWORD)

    if template is None and issubclass(item_type, RowKeyBuilder):
        sample_key = build_sample_key(root_type, item_type, prefix)
        if sample_key:
            return SampleKeyMatcher(sample_key)

    if prefix:
        return PrefixMatcher(prefix)

    logger.warning(
        "No classification rule for collection item type, matching every row",
        root_type=root_type.__name__,
        item_type=item_type.__name__
    )
    return CatchAllMatcher()


def explicit_keyword(item_type: type, pattern: Optional[RowKeyPattern]) -> Optional[str]:
    """Keyword declared on the pattern or as a ``TYPE_KEYWORD`` class attribute."""
    if pattern is not None and pattern.type_keyword:
        return pattern.type_keyword

    keyword = getattr(item_type, TYPE_KEYWORD_ATTRIBUTE, None)
    if isinstance(keyword, str) and keyword:
        return keyword
    return None


def derive_keyword(template: KeyTemplate) -> Optional[str]:
    """
    First all-alphabetic literal token longer than two characters

    Example:
        "{customer_id}-order-{order_id}" -> "order"
    """
    for literal in template.literals:
        for token in tokenize(literal):
            if token.isalpha() and len(token) >= MIN_KEYWORD_LENGTH:
                return token
    return None


def build_sample_key(root_type: type, item_type: type, prefix: str = "") -> Optional[str]:
    """
    Run ``item_type.build_row_key`` against a dummy root

    Every string field of the root whose name contains "id" is set to a
    placeholder value. Returns None when the sample cannot be built.
    """
    try:
        dummy_parent = root_type.model_construct()
        for name, field in root_type.model_fields.items():
            if "id" in name.lower() and unwrap_optional(field.annotation) is str:
                setattr(dummy_parent, name, SAMPLE_ID_VALUE)

        sample_item = _instantiate(item_type)
        context = RowKeyContext(dummy_parent, prefix, SAMPLE_PARTITION_KEY)
        sample_key = sample_item.build_row_key(context)
    except Exception as e:
        logger.debug(
            "Could not build sample row key",
            root_type=root_type.__name__,
            item_type=item_type.__name__,
            error=str(e)
        )
        return None

    return sample_key or None


def tokenize(row_key: str) -> List[str]:
    """Lower-case alphanumeric tokens of a row key."""
    return [t for t in _TOKEN_SPLIT.split(row_key.lower()) if t]


def static_tokens(sample_key: str) -> FrozenSet[str]:
    """Tokens of a sample key that identify the type rather than an id."""
    return frozenset(
        token for token in tokenize(sample_key)
        if len(token) >= MIN_KEYWORD_LENGTH
        and token.isalpha()
        and token not in SAMPLE_KEY_IGNORED_TOKENS
    )


def _instantiate(item_type: type) -> Any:
    try:
        return item_type()
    except Exception:
        return item_type.model_construct()
