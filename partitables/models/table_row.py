"""
Store-level row representation shared by the stores, the batch planner
and the entity mapper.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class TableRow:
    """
    One row of a partition as the table store sees it

    Attributes:
        partition_key: Partition the row lives in
        row_key: Identity of the row within its partition
        attributes: Flat map of store-native attribute values
        etag: Store-assigned version tag, if known
        timestamp: Store-assigned last write time, if known
    """
    partition_key: str
    row_key: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    etag: Optional[str] = None
    timestamp: Optional[datetime] = None

    def copy(self) -> "TableRow":
        """Copy with an independent attribute map."""
        return TableRow(
            partition_key=self.partition_key,
            row_key=self.row_key,
            attributes=dict(self.attributes),
            etag=self.etag,
            timestamp=self.timestamp,
        )

    def get(self, name: str, default: Any = None) -> Any:
        """Read one attribute."""
        return self.attributes.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.attributes[name]

    def __contains__(self, name: str) -> bool:
        return name in self.attributes
