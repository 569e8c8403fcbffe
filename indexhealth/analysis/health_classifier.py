"""
Health classifier - unused, duplicate and overlapping index detection.

Three ordered passes over the scanned population of a database. A pass
only looks at objects that are still untagged, so a warning set by an
earlier pass is never replaced.
"""

from typing import List, Dict, Tuple, Sequence
from dataclasses import dataclass

from indexhealth.core.constants import (
    IndexKind,
    WarningType,
    UNUSED_WRITES_FLOOR,
    UNUSED_READS_DIVISOR,
)
from indexhealth.core.logger import get_logger
from indexhealth.models.index_object import IndexObject

logger = get_logger('analysis.classifier')


UNUSED_KINDS = (IndexKind.HEAP, IndexKind.CLUSTERED, IndexKind.NONCLUSTERED)
COMPARABLE_KINDS = (IndexKind.CLUSTERED, IndexKind.NONCLUSTERED)


@dataclass
class ClassificationSummary:
    unused: int = 0
    duplicate: int = 0
    overlap: int = 0

    @property
    def total(self) -> int:
        return self.unused + self.duplicate + self.overlap


def is_unused(ix: IndexObject) -> bool:
    """Heavily written, rarely read, non-partitioned rowstore object"""
    if ix.is_partitioned or ix.warning is not None or ix.kind not in UNUSED_KINDS:
        return False
    writes = ix.total_writes
    if writes is None or writes <= UNUSED_WRITES_FLOOR:
        return False
    return ix.total_reads_or_zero < writes // UNUSED_READS_DIVISOR


def is_duplicate_pair(a: IndexObject, b: IndexObject) -> bool:
    """Same ordered key columns and the same included columns in any order"""
    return (
        a.index_columns == b.index_columns
        and sorted(a.included_columns) == sorted(b.included_columns)
    )


def is_overlap_pair(a: IndexObject, b: IndexObject) -> bool:
    """One key column list is a (case-sensitive) prefix of the other"""
    length = min(len(a.index_columns), len(b.index_columns))
    return (
        a.index_columns == b.index_columns
        or a.index_columns[:length] == b.index_columns[:length]
    )


def group_by_table(indexes: Sequence[IndexObject]) -> List[List[IndexObject]]:
    """
    Untagged, non-partitioned b-tree indexes grouped by (database, object id),
    keeping only groups with more than one member. Members keep scan order.
    """
    candidates = [
        ix for ix in indexes
        if not ix.is_partitioned and ix.warning is None and ix.kind in COMPARABLE_KINDS
    ]

    groups: Dict[Tuple[str, int], List[IndexObject]] = {}
    for ix in candidates:
        groups.setdefault(ix.table_key, []).append(ix)

    return [members for members in groups.values() if len(members) > 1]


def find_unused(indexes: Sequence[IndexObject]) -> int:
    count = 0
    for ix in indexes:
        if is_unused(ix):
            ix.warning = WarningType.UNUSED
            count += 1
    return count


def find_duplicates(groups: List[List[IndexObject]]) -> int:
    count = 0
    for members in groups:
        for a in members:
            if a.warning is not None:
                continue
            for b in members:
                if a is not b and b.warning is None and is_duplicate_pair(a, b):
                    if a.warning is None:
                        count += 1
                    a.warning = b.warning = WarningType.DUPLICATE
                    count += 1
    return count


def find_overlaps(groups: List[List[IndexObject]]) -> int:
    """
    Pairwise prefix check; the later member of an overlapping pair is
    tagged. Not transitively closed: in a chain the first member can stay
    untagged.
    """
    count = 0
    for members in groups:
        for a in members:
            for b in members:
                if a is b or a.warning is not None or b.warning is not None:
                    continue
                if is_overlap_pair(a, b):
                    b.warning = WarningType.OVERLAP
                    count += 1
    return count


def classify(indexes: Sequence[IndexObject]) -> ClassificationSummary:
    """
    Assign at most one Warning per object: unused, then duplicate, then
    overlap. Re-running on an already classified population changes nothing.

    Args:
        indexes: Full scanned population (may span several databases)

    Returns:
        Counts of newly tagged objects per warning type
    """
    summary = ClassificationSummary()
    summary.unused = find_unused(indexes)

    # Grouping happens once: duplicates found below stay in their group
    # and are skipped by the overlap pass through their warning.
    groups = group_by_table(indexes)
    summary.duplicate = find_duplicates(groups)
    summary.overlap = find_overlaps(groups)

    if summary.total:
        logger.info(
            f"Classified {len(indexes)} objects: {summary.unused} unused, "
            f"{summary.duplicate} duplicate, {summary.overlap} overlap"
        )
    return summary
