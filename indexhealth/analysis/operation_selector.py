"""
Capability-aware operation selector
"""

from typing import Sequence, Dict

from indexhealth.core.constants import (
    IndexKind,
    IndexOperation,
    DataCompression,
)
from indexhealth.core.logger import get_logger
from indexhealth.models.index_object import IndexObject
from indexhealth.models.filter_criteria import MaintenancePolicy
from indexhealth.models.server_capabilities import ServerCapabilities

logger = get_logger('analysis.selector')


_REBUILD_BY_COMPRESSION = {
    DataCompression.ROW: IndexOperation.REBUILD_ROW,
    DataCompression.PAGE: IndexOperation.REBUILD_PAGE,
}


def allows_online_rebuild(kind: IndexKind, is_lob: bool, is_lob_legacy: bool,
                          capabilities: ServerCapabilities) -> bool:
    """
    Whether an object can be rebuilt with ONLINE = ON.

    Legacy LOB storage (text/ntext/image) and columnstore kinds always block
    it. On the oldest tier any LOB column blocks it as well.
    """
    if not capabilities.is_online_rebuild_available:
        return False
    if is_lob_legacy or kind.is_columnstore:
        return False
    if capabilities.is_legacy_tier:
        return not is_lob
    return True


def allows_reorganize(kind: IndexKind, allow_page_locks: bool) -> bool:
    return allow_page_locks and kind != IndexKind.HEAP


def allows_compression(is_sparse: bool, capabilities: ServerCapabilities) -> bool:
    return capabilities.is_compression_available and not is_sparse


def select_operation(op: IndexOperation, ix: IndexObject, policy: MaintenancePolicy) -> IndexOperation:
    """
    Map a preferred operation onto what the object actually supports.

    Never raises; REBUILD is the fallback for every combination that
    matches no earlier rule.
    """
    if ix.kind == IndexKind.MISSING_INDEX:
        return IndexOperation.CREATE_INDEX

    if op == IndexOperation.REORGANIZE and (ix.allow_reorganize or ix.is_columnstore):
        return IndexOperation.REORGANIZE

    if op == IndexOperation.REBUILD and not ix.is_columnstore and ix.allow_compression:
        if policy.data_compression == DataCompression.NONE and ix.data_compression != DataCompression.NONE:
            return IndexOperation.REBUILD_NONE
        if policy.data_compression in _REBUILD_BY_COMPRESSION:
            return _REBUILD_BY_COMPRESSION[policy.data_compression]

    # Statistics are only valid on non-partitioned b-trees; others fall through
    if op.is_statistics and not ix.is_partitioned and ix.kind.is_btree:
        return op

    if policy.online and ix.allow_online_rebuild and op in (IndexOperation.REBUILD, IndexOperation.REORGANIZE):
        return IndexOperation.REBUILD_ONLINE
    return IndexOperation.REBUILD


def assign_operations(indexes: Sequence[IndexObject], policy: MaintenancePolicy) -> Dict[IndexOperation, int]:
    """
    Pick the tier operation by fragmentation, then resolve it per object.

    Returns:
        Number of objects per selected operation
    """
    counts: Dict[IndexOperation, int] = {}
    for ix in indexes:
        ix.operation = select_operation(policy.operation_for(ix.fragmentation), ix, policy)
        counts[ix.operation] = counts.get(ix.operation, 0) + 1

    summary = ", ".join(f"{op.value}={n}" for op, n in counts.items())
    logger.debug(f"Operations selected: {summary or 'none'}")
    return counts
