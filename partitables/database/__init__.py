"""
Store layer for partitables.

The abstract partition store and its in-memory and Redis implementations.
"""

from partitables.database.base_store import PartitionStore
from partitables.database.memory_store import InMemoryPartitionStore
from partitables.database.redis_store import RedisPartitionStore
from partitables.database.redis_client import get_redis, close_redis, RedisConnectionManager

__all__ = [
    "PartitionStore",
    "InMemoryPartitionStore",
    "RedisPartitionStore",
    "RedisConnectionManager",
    "get_redis",
    "close_redis",
]
