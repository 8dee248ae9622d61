"""
Base model for partition roots.
"""

from typing import ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr

from partitables.models.declarations import TablePartition
from partitables.models.table_row import TableRow


class PartitionRoot(BaseModel):
    """
    Base class for entities that own one table partition.

    Subclasses set ``__table_partition__`` and declare their collections
    with ``row_collection()``. A root remembers the rows it was last loaded
    from or saved as, so that items removed in memory can be deleted from
    the store on the next save.
    """

    model_config = ConfigDict(populate_by_name=True)

    __table_partition__: ClassVar[Optional[TablePartition]] = None

    _loaded_rows: Dict[str, TableRow] = PrivateAttr(default_factory=dict)

    def remember_rows(self, rows) -> None:
        """Replace the load snapshot."""
        self._loaded_rows = {row.row_key: row.copy() for row in rows}
