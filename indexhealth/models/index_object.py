"""
Scanned index/heap/missing-index object model
"""

from typing import Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime

from indexhealth.core.constants import (
    IndexKind,
    IndexOperation,
    WarningType,
    DataCompression,
    PAGES_PER_MB,
)


def split_columns(value: Optional[str]) -> Tuple[str, ...]:
    """Split a catalog column list ("[a], [b] DESC") into a tuple"""
    if not value:
        return ()
    return tuple(c.strip() for c in str(value).split(",") if c.strip())


@dataclass
class IndexObject:
    """
    One scanned unit: an index, a heap or a missing-index recommendation.

    Intrinsic fields are populated by the catalog loader; `warning`,
    `operation`, `error` and `pages_count_before` are set by the engine
    during classification, operation selection and reconciliation.
    """

    database_name: str
    object_id: int
    index_id: int
    index_name: str
    schema_name: str
    object_name: str
    kind: IndexKind

    partition_number: int = 1
    pages_count: int = 0
    unused_pages_count: int = 0
    rows_count: int = 0
    fill_factor: int = 0
    filegroup_name: str = "PRIMARY"

    # Null until the physical stats are scanned
    fragmentation: Optional[float] = None
    page_space_used: Optional[float] = None
    data_compression: DataCompression = DataCompression.NONE

    # Usage counters (null when the index was never touched since restart)
    total_writes: Optional[int] = None
    total_reads: Optional[int] = None
    total_seeks: Optional[int] = None
    total_scans: Optional[int] = None
    total_lookups: Optional[int] = None
    last_usage: Optional[datetime] = None
    stats_date: Optional[datetime] = None

    index_columns: Tuple[str, ...] = ()
    included_columns: Tuple[str, ...] = ()

    is_partitioned: bool = False
    is_unique: bool = False
    is_pk: bool = False
    is_filtered: bool = False
    is_lob: bool = False
    is_lob_legacy: bool = False

    # Capability flags computed at load time
    allow_reorganize: bool = False
    allow_online_rebuild: bool = False
    allow_compression: bool = False

    # Engine state
    warning: Optional[WarningType] = None
    operation: Optional[IndexOperation] = None
    error: Optional[str] = None
    pages_count_before: Optional[int] = None

    # Tuples keep column comparisons hashable and order-sensitive
    def __post_init__(self):
        if isinstance(self.index_columns, str):
            self.index_columns = split_columns(self.index_columns)
        else:
            self.index_columns = tuple(self.index_columns or ())
        if isinstance(self.included_columns, str):
            self.included_columns = split_columns(self.included_columns)
        else:
            self.included_columns = tuple(self.included_columns or ())

    @property
    def key(self) -> Tuple[str, int, int, int]:
        """Identity of the maintained unit within a scan"""
        return (self.database_name, self.object_id, self.index_id, self.partition_number)

    @property
    def table_key(self) -> Tuple[str, int]:
        return (self.database_name, self.object_id)

    @property
    def full_object_name(self) -> str:
        return f"{self.schema_name}.{self.object_name}"

    @property
    def display_name(self) -> str:
        if self.kind == IndexKind.HEAP:
            return f"{self.full_object_name} (heap)"
        return f"{self.full_object_name}.{self.index_name}"

    @property
    def is_columnstore(self) -> bool:
        return self.kind.is_columnstore

    @property
    def total_reads_or_zero(self) -> int:
        return self.total_reads or 0

    @property
    def size_mb(self) -> float:
        return round(self.pages_count / PAGES_PER_MB, 2)

    @property
    def has_error(self) -> bool:
        return bool(self.error)
