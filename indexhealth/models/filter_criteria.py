"""
Immutable scan and maintenance inputs
"""

from typing import Optional, Tuple, FrozenSet
from dataclasses import dataclass, field

from indexhealth.core.constants import (
    IndexKind,
    IndexOperation,
    DataCompression,
    ScanMode,
    AbortAfterWait,
)


DEFAULT_SCAN_KINDS: FrozenSet[IndexKind] = frozenset({
    IndexKind.HEAP,
    IndexKind.CLUSTERED,
    IndexKind.NONCLUSTERED,
    IndexKind.CLUSTERED_COLUMNSTORE,
    IndexKind.NONCLUSTERED_COLUMNSTORE,
})


@dataclass(frozen=True)
class FilterCriteria:
    """
    User-selected scan filters. Sizes are in MB; the predicate builder
    converts them to pages.
    """

    first_threshold: float = 15.0
    second_threshold: float = 30.0
    min_index_size_mb: float = 6.0
    max_index_size_mb: float = 8192.0
    predescribe_size_mb: float = 25.0

    include_schemas: Tuple[str, ...] = ()
    exclude_schemas: Tuple[str, ...] = ()
    include_objects: Tuple[str, ...] = ()
    exclude_objects: Tuple[str, ...] = ()

    scan_mode: ScanMode = ScanMode.LIMITED
    index_kinds: FrozenSet[IndexKind] = field(default_factory=lambda: DEFAULT_SCAN_KINDS)
    scan_missing_index: bool = False
    ignore_read_only_filegroups: bool = True
    ignore_permissions: bool = True


@dataclass(frozen=True)
class MaintenancePolicy:
    """
    Global operation preferences for the two fragmentation tiers plus
    the DDL options used when rendering operations.
    """

    first_threshold: float = 15.0
    second_threshold: float = 30.0
    first_operation: IndexOperation = IndexOperation.REORGANIZE
    second_operation: IndexOperation = IndexOperation.REBUILD

    data_compression: DataCompression = DataCompression.NONE
    online: bool = False

    max_dop: int = 0
    fill_factor: int = 0
    pad_index: bool = False
    sort_in_tempdb: bool = False
    lob_compaction: bool = True
    stats_sample_percent: int = 100
    no_recompute: bool = False

    # ONLINE = ON (WAIT_AT_LOW_PRIORITY (...)); 2014+ only
    wait_at_low_priority: bool = False
    max_duration: int = 1
    abort_after_wait: AbortAfterWait = AbortAfterWait.NONE

    scan_mode: ScanMode = ScanMode.LIMITED

    def operation_for(self, fragmentation: Optional[float]) -> IndexOperation:
        """
        Pick the tier operation for a fragmentation level.

        Objects below the second threshold use the first operation; an
        unscanned object (no fragmentation yet) is not "below" anything and
        falls into the second tier.
        """
        if fragmentation is not None and fragmentation < self.second_threshold:
            return self.first_operation
        return self.second_operation
