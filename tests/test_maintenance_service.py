"""Maintenance execution tests."""

import threading
import time

import pytest

from conftest import FakeConnection, make_index

from indexhealth.core.constants import IndexOperation
from indexhealth.core.exceptions import ExecutionError, QueryExecutionError, QueryTimeoutError
from indexhealth.models.filter_criteria import MaintenancePolicy
from indexhealth.services.contracts import IOperationExecutor
from indexhealth.services.maintenance_service import (
    MaintenanceService,
    SqlServerExecutor,
    OperationOutcome,
)


METRICS = {
    "pages_count": 700,
    "fragmentation": 1.0,
    "page_space_used": 95.0,
    "unused_pages_count": 0,
    "rows_count": 1000,
    "data_compression": 0,
    "stats_date": None,
}


class RecordingExecutor(IOperationExecutor):
    def __init__(self, rows=None, fail_on=(), delay=0.0, on_call=None):
        self.rows = [METRICS] if rows is None else rows
        self.fail_on = set(fail_on)
        self.delay = delay
        self.on_call = on_call
        self.calls = []
        self.active = 0
        self.max_active = 0
        self.active_keys = set()
        self.key_overlap = False
        self._guard = threading.Lock()

    def execute(self, ix, operation, timeout=None):
        with self._guard:
            self.calls.append((ix.index_name, operation, timeout))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            if ix.key in self.active_keys:
                self.key_overlap = True
            self.active_keys.add(ix.key)
        try:
            if self.on_call:
                self.on_call(ix)
            if self.delay:
                time.sleep(self.delay)
            if ix.index_name in self.fail_on:
                raise ExecutionError("Deadlock victim", index=ix.display_name, operation=operation.value)
            return list(self.rows)
        finally:
            with self._guard:
                self.active -= 1
                self.active_keys.discard(ix.key)


def planned(name, index_id, operation=IndexOperation.REBUILD, **kwargs):
    return make_index(name, index_id=index_id, operation=operation, **kwargs)


class TestRun:
    def test_success_reconciles(self):
        ix = planned("IX_a", 2, pages_count=1000)
        summary = MaintenanceService(RecordingExecutor()).run([ix])
        assert summary.succeeded == 1
        assert summary.pages_saved == 300
        assert ix.pages_count == 700
        assert ix.error is None

    def test_failure_does_not_stop_batch(self):
        a = planned("IX_a", 2, pages_count=1000)
        b = planned("IX_b", 3, pages_count=1000)
        c = planned("IX_c", 4, pages_count=1000)
        executor = RecordingExecutor(fail_on={"IX_b"})
        summary = MaintenanceService(executor).run([a, b, c])

        assert len(executor.calls) == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.failures == [b]
        assert b.error == "Deadlock victim"
        assert b.pages_count == 1000
        assert a.pages_count == 700 and c.pages_count == 700

    def test_other_application_error_does_not_stop_batch(self):
        class TimingOutExecutor(RecordingExecutor):
            def execute(self, ix, operation, timeout=None):
                if ix.index_name == "IX_b":
                    raise QueryTimeoutError("Batch timed out after 30s")
                return super().execute(ix, operation, timeout)

        a = planned("IX_a", 2, pages_count=1000)
        b = planned("IX_b", 3, pages_count=1000)
        c = planned("IX_c", 4, pages_count=1000)
        summary = MaintenanceService(TimingOutExecutor(), max_workers=2).run([a, b, c])

        assert summary.total == 3
        assert summary.succeeded == 2
        assert summary.failures == [b]
        assert b.error == "Batch timed out after 30s"
        assert b.pages_count == 1000

    def test_missing_metrics(self):
        ix = planned("IX_a", 2, pages_count=1000)
        summary = MaintenanceService(RecordingExecutor(rows=[])).run([ix])
        assert summary.no_metrics == 1
        assert ix.pages_count == 1000
        assert not ix.has_error

    def test_statistics_need_no_metrics(self):
        ix = planned("IX_a", 2, operation=IndexOperation.UPDATE_STATISTICS_FULL)
        summary = MaintenanceService(RecordingExecutor(rows=[])).run([ix])
        assert summary.succeeded == 1
        assert ix.stats_date is not None

    def test_unplanned_object_gets_operation(self):
        ix = make_index("IX_a", fragmentation=80.0)
        executor = RecordingExecutor()
        MaintenanceService(executor, MaintenancePolicy(first_threshold=30, second_threshold=60)).run([ix])
        assert ix.operation == IndexOperation.REBUILD
        assert executor.calls[0][1] == IndexOperation.REBUILD

    def test_timeout_passed_through(self):
        executor = RecordingExecutor()
        MaintenanceService(executor).run([planned("IX_a", 2)], timeout=30)
        assert executor.calls[0][2] == 30

    def test_empty_batch(self):
        summary = MaintenanceService(RecordingExecutor()).run([])
        assert summary.total == 0
        assert summary.succeeded == 0

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            MaintenanceService(RecordingExecutor(), max_workers=0)


class TestCancellation:
    def test_cancelled_before_start(self):
        cancel = threading.Event()
        cancel.set()
        executor = RecordingExecutor()
        indexes = [planned("IX_a", 2), planned("IX_b", 3)]
        summary = MaintenanceService(executor).run(indexes, cancel_event=cancel)
        assert executor.calls == []
        assert summary.cancelled == 2
        assert all(ix.error is None for ix in indexes)

    def test_running_operation_finishes(self):
        cancel = threading.Event()
        executor = RecordingExecutor(on_call=lambda ix: cancel.set())
        a = planned("IX_a", 2, pages_count=1000)
        b = planned("IX_b", 3, pages_count=1000)
        summary = MaintenanceService(executor, max_workers=1).run([a, b], cancel_event=cancel)
        assert summary.succeeded == 1
        assert summary.cancelled == 1
        assert a.pages_count == 700
        assert b.pages_count == 1000


class TestConcurrency:
    def test_bounded_by_max_workers(self):
        executor = RecordingExecutor(delay=0.05)
        indexes = [planned(f"IX_{i}", i) for i in range(2, 10)]
        summary = MaintenanceService(executor, max_workers=3).run(indexes)
        assert summary.succeeded == 8
        assert 1 <= executor.max_active <= 3

    def test_same_object_never_overlaps(self):
        executor = RecordingExecutor(delay=0.05)
        a = planned("IX_a", 2)
        b = planned("IX_a", 2)
        c = planned("IX_c", 3)
        MaintenanceService(executor, max_workers=3).run([a, b, c])
        assert len(executor.calls) == 3
        assert not executor.key_overlap

    def test_outcomes_in_input_order(self):
        executor = RecordingExecutor(fail_on={"IX_3"})
        indexes = [planned(f"IX_{i}", i) for i in range(2, 6)]
        summary = MaintenanceService(executor, max_workers=4).run(indexes)
        assert summary.failures == [indexes[1]]


class TestSqlServerExecutor:
    def test_runs_rendered_batch(self):
        conn = FakeConnection(batch_results=[METRICS])
        executor = SqlServerExecutor(conn, MaintenancePolicy())
        rows = executor.execute(make_index("IX_a", object_id=9), IndexOperation.REBUILD, timeout=60)
        sql, params, timeout = conn.batches[0]
        assert sql.startswith("ALTER INDEX [IX_a] ON [dbo].[Orders] REBUILD")
        assert params == ("LIMITED", 9, 2, 1)
        assert timeout == 60
        assert rows == [METRICS]

    def test_query_error_becomes_execution_error(self):
        conn = FakeConnection(batch_error=QueryExecutionError("Batch failed: lock timeout"))
        executor = SqlServerExecutor(conn, MaintenancePolicy())
        with pytest.raises(ExecutionError) as exc:
            executor.execute(make_index("IX_a"), IndexOperation.REORGANIZE)
        assert exc.value.operation == "reorganize"
        assert "lock timeout" in exc.value.message

    def test_end_to_end_failure_recorded(self):
        conn = FakeConnection(batch_error=QueryExecutionError("Batch failed: login timeout"))
        ix = planned("IX_a", 2)
        summary = MaintenanceService(SqlServerExecutor(conn, MaintenancePolicy())).run([ix])
        assert summary.failed == 1
        assert ix.error == "Batch failed: login timeout"


def test_outcome_values():
    assert {o.value for o in OperationOutcome} == {"succeeded", "no_metrics", "failed", "cancelled"}
