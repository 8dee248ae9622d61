"""
Repository layer for partitables.

Row-level client and aggregate-level repository over a partition store.
"""

from partitables.repositories.base_repository import BaseRepository
from partitables.repositories.partition_client import PartitionClient
from partitables.repositories.partition_repository import PartitionRepository

__all__ = [
    "BaseRepository",
    "PartitionClient",
    "PartitionRepository",
]
