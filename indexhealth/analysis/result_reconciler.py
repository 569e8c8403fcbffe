"""
Result reconciler - folds post-operation metrics back into an IndexObject.

Only the object passed in is mutated, so reconciliation is safe to run from
concurrent workers handling different objects.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime

from indexhealth.core.constants import IndexOperation, DataCompression
from indexhealth.core.exceptions import InconsistentResultError
from indexhealth.core.logger import get_logger
from indexhealth.models.index_object import IndexObject

logger = get_logger('analysis.reconciler')


def single_row(rows: Optional[List[Dict[str, Any]]], ix: Optional[IndexObject] = None) -> Dict[str, Any]:
    """Return the only row of a result set or raise InconsistentResultError"""
    rows = rows or []
    if len(rows) != 1:
        raise InconsistentResultError(len(rows), index=ix.display_name if ix else None)
    return rows[0]


def record_failure(ix: IndexObject, message: str) -> None:
    """Record an execution failure; metrics stay untouched"""
    ix.error = message or "Unknown error"
    logger.warning(f"{ix.display_name}: {ix.operation.value if ix.operation else 'operation'} failed: {ix.error}")


def _merge_metrics(ix: IndexObject, row: Dict[str, Any]) -> None:
    new_pages = int(row.get('pages_count') or 0)

    ix.pages_count_before = ix.pages_count - new_pages
    ix.fragmentation = float(row.get('fragmentation') or 0.0)
    page_space_used = row.get('page_space_used')
    ix.page_space_used = float(page_space_used) if page_space_used is not None else None
    ix.pages_count = new_pages
    ix.unused_pages_count = int(row.get('unused_pages_count') or 0)
    ix.rows_count = int(row.get('rows_count') or 0)
    ix.data_compression = DataCompression(int(row.get('data_compression') or 0))
    ix.stats_date = row.get('stats_date')


def reconcile(ix: IndexObject, operation: IndexOperation,
              rows: Optional[List[Dict[str, Any]]] = None,
              now: Optional[datetime] = None) -> bool:
    """
    Merge the outcome of a successful operation into the object.

    Args:
        ix: Object the operation ran against
        operation: Operation that ran
        rows: Post-operation metrics rows returned by the executor
        now: Timestamp for statistics-only and create operations

    Returns:
        True when the object's state was updated
    """
    now = now or datetime.now()
    ix.error = None

    if operation.is_statistics:
        ix.stats_date = now
        return True

    if operation == IndexOperation.CREATE_INDEX:
        ix.stats_date = now
        ix.fragmentation = 0.0
        return True

    if operation.is_destructive:
        ix.pages_count_before = ix.pages_count
        ix.fragmentation = 0.0
        ix.pages_count = 0
        ix.unused_pages_count = 0
        ix.rows_count = 0
        return True

    try:
        row = single_row(rows, ix)
    except InconsistentResultError as e:
        logger.warning(f"{ix.display_name}: no metrics to reconcile ({e.message})")
        return False

    _merge_metrics(ix, row)
    return True
