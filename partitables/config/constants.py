"""
Library constants and enumerations.

This module defines the table store limits, key constraints and the
tokens used by the row key heuristics throughout partitables.
"""

from enum import Enum
from typing import FrozenSet

# Library Information
LIBRARY_NAME = "partitables"
LIBRARY_VERSION = "1.0.0"

# Table Store Limits
MAX_BATCH_SIZE = 100
MAX_ROW_KEY_BYTES = 1024
MAX_PARTITION_KEY_BYTES = 1024
MIN_TABLE_NAME_LENGTH = 3
MAX_TABLE_NAME_LENGTH = 63

# Characters the table store refuses in partition and row keys
FORBIDDEN_KEY_CHARACTERS: FrozenSet[str] = frozenset({"/", "\\", "#", "?"})

# Upper bound used for row key prefix range scans
RANGE_UPPER_SENTINEL = "\uffff"

# Row Key Heuristics
SAMPLE_ID_VALUE = "SAMPLE-ID"
SAMPLE_PARTITION_KEY = "dummy-partition"
SAMPLE_KEY_IGNORED_TOKENS: FrozenSet[str] = frozenset({"id", "sample", "dummy"})
MIN_KEYWORD_LENGTH = 3

# Name of the static attribute item types may use to declare their keyword
TYPE_KEYWORD_ATTRIBUTE = "TYPE_KEYWORD"

# Retry Configuration
DEFAULT_STORE_MAX_RETRIES = 3
DEFAULT_STORE_RETRY_BACKOFF_SECONDS = 0.2


class OperationType(str, Enum):
    """Write operations accepted by a partition batch."""
    UPSERT = "upsert"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class UpdateMode(str, Enum):
    """How upserts and updates combine with an existing row."""
    MERGE = "merge"
    REPLACE = "replace"


class MatchStrategy(str, Enum):
    """Row key classification strategies, in priority order."""
    EXPLICIT_KEYWORD = "explicit_keyword"
    DERIVED_KEYWORD = "derived_keyword"
    SAMPLE_KEY = "sample_key"
    PREFIX = "prefix"
    CATCH_ALL = "catch_all"
