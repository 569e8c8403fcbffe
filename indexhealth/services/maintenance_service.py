"""
Maintenance Service - runs selected operations with bounded concurrency
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, List, Dict, Any, Sequence, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from indexhealth.analysis.operation_selector import select_operation
from indexhealth.analysis.result_reconciler import reconcile, record_failure
from indexhealth.core.constants import IndexOperation, ServerVersion, DEFAULT_MAX_WORKERS
from indexhealth.core.exceptions import (
    IndexHealthError,
    ExecutionError,
    QueryExecutionError,
    TaskCancelledError,
)
from indexhealth.core.logger import get_logger, LogContext
from indexhealth.database.queries.maintenance_queries import render_batch
from indexhealth.models.filter_criteria import MaintenancePolicy
from indexhealth.models.index_object import IndexObject
from indexhealth.services.contracts import IOperationExecutor

logger = get_logger('services.maintenance')


class OperationOutcome(str, Enum):
    """Result of running one object's operation"""
    SUCCEEDED = "succeeded"
    NO_METRICS = "no_metrics"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class BatchSummary:
    """Aggregated outcome of one maintenance run"""
    total: int = 0
    succeeded: int = 0
    no_metrics: int = 0
    failed: int = 0
    cancelled: int = 0
    pages_saved: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    failures: List[IndexObject] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if not self.started_at or not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def add(self, ix: IndexObject, outcome: OperationOutcome) -> None:
        if outcome == OperationOutcome.SUCCEEDED:
            self.succeeded += 1
            self.pages_saved += ix.pages_count_before or 0
        elif outcome == OperationOutcome.NO_METRICS:
            self.no_metrics += 1
        elif outcome == OperationOutcome.FAILED:
            self.failed += 1
            self.failures.append(ix)
        else:
            self.cancelled += 1


class SqlServerExecutor(IOperationExecutor):
    """Renders an operation batch and runs it on a database connection"""

    def __init__(self, connection, policy: MaintenancePolicy,
                 major_version: int = ServerVersion.SQL2016):
        self.connection = connection
        self.policy = policy
        self.major_version = major_version

    def execute(self, ix: IndexObject, operation: IndexOperation,
                timeout: Optional[int] = None) -> List[Dict[str, Any]]:
        sql, params = render_batch(ix, operation, self.policy, self.major_version)
        logger.debug(f"{ix.display_name}: {sql}")
        try:
            return self.connection.execute_batch(sql, params, timeout=timeout)
        except QueryExecutionError as e:
            raise ExecutionError(e.message, index=ix.display_name, operation=operation.value) from e


class MaintenanceService:
    """
    Runs each object's operation through an executor.

    At most `max_workers` operations run at once, and operations on the same
    object never overlap. A failure is recorded on its object and does not
    stop the batch. Cancellation stops objects that have not started yet;
    running operations finish normally.
    """

    def __init__(self, executor: IOperationExecutor, policy: Optional[MaintenancePolicy] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.executor = executor
        self.policy = policy or MaintenancePolicy()
        self.max_workers = max_workers
        self._locks: Dict[Tuple[str, int, int, int], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, ix: IndexObject) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(ix.key, threading.Lock())

    def _run_one(self, ix: IndexObject, cancel_event: threading.Event,
                 timeout: Optional[int]) -> OperationOutcome:
        if cancel_event.is_set():
            raise TaskCancelledError(f"{ix.display_name} cancelled before start")

        with self._lock_for(ix):
            if ix.operation is None:
                ix.operation = select_operation(self.policy.operation_for(ix.fragmentation), ix, self.policy)
            operation = ix.operation

            try:
                rows = self.executor.execute(ix, operation, timeout)
            except ExecutionError as e:
                record_failure(ix, e.message)
                return OperationOutcome.FAILED

            if reconcile(ix, operation, rows):
                logger.info(f"{ix.display_name}: {operation.value} done")
                return OperationOutcome.SUCCEEDED
            return OperationOutcome.NO_METRICS

    def _run_guarded(self, ix: IndexObject, cancel_event: threading.Event,
                     timeout: Optional[int]) -> OperationOutcome:
        try:
            return self._run_one(ix, cancel_event, timeout)
        except TaskCancelledError as e:
            logger.debug(e.message)
            return OperationOutcome.CANCELLED
        except IndexHealthError as e:
            # Any other application error fails only this object
            record_failure(ix, e.message)
            return OperationOutcome.FAILED

    def run(self, indexes: Sequence[IndexObject], cancel_event: Optional[threading.Event] = None,
            timeout: Optional[int] = None) -> BatchSummary:
        """
        Run the selected operation of every object.

        Args:
            indexes: Objects to maintain; objects without a selected
                operation get one from the policy
            cancel_event: Set it to stop objects that have not started
            timeout: Per-operation timeout in seconds

        Returns:
            BatchSummary with per-outcome counts
        """
        cancel_event = cancel_event or threading.Event()
        summary = BatchSummary(total=len(indexes), started_at=datetime.now())

        with LogContext(logger, f"Maintenance of {len(indexes)} objects"):
            if self.max_workers == 1:
                outcomes = [self._run_guarded(ix, cancel_event, timeout) for ix in indexes]
            else:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    outcomes = list(pool.map(
                        lambda ix: self._run_guarded(ix, cancel_event, timeout), indexes
                    ))

        for ix, outcome in zip(indexes, outcomes):
            summary.add(ix, outcome)
        summary.finished_at = datetime.now()

        logger.info(
            f"Maintenance finished: {summary.succeeded} succeeded, {summary.failed} failed, "
            f"{summary.no_metrics} without metrics, {summary.cancelled} cancelled"
        )
        return summary
