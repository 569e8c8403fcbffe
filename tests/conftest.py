"""Shared test fixtures."""

import pytest

from indexhealth.core.constants import IndexKind
from indexhealth.models.filter_criteria import MaintenancePolicy
from indexhealth.models.index_object import IndexObject
from indexhealth.models.server_capabilities import ServerCapabilities


def make_index(name="IX_a", kind=IndexKind.NONCLUSTERED, object_id=100, index_id=2,
               columns="[a]", **kwargs) -> IndexObject:
    defaults = dict(
        database_name="Sales",
        schema_name="dbo",
        object_name="Orders",
        pages_count=1000,
    )
    defaults.update(kwargs)
    return IndexObject(
        object_id=object_id,
        index_id=index_id,
        index_name=name,
        kind=kind,
        index_columns=columns,
        **defaults,
    )


class FakeConnection:
    """Records queries and replays canned results."""

    def __init__(self, database="Sales", query_results=None, batch_results=None, batch_error=None):
        self.database = database
        self.query_results = list(query_results or [])
        self.batch_results = batch_results if batch_results is not None else []
        self.batch_error = batch_error
        self.queries = []
        self.batches = []

    def execute_query(self, query, params=None, timeout=None):
        self.queries.append((query, params))
        return self.query_results.pop(0) if self.query_results else []

    def execute_batch(self, sql, params=(), timeout=None):
        self.batches.append((sql, params, timeout))
        if self.batch_error:
            raise self.batch_error
        return self.batch_results


@pytest.fixture
def enterprise():
    return ServerCapabilities.from_server_properties(
        major_version=15, edition="Enterprise Edition (64-bit)", engine_edition=3, product_level="RTM",
    )


@pytest.fixture
def standard_2014():
    return ServerCapabilities.from_server_properties(
        major_version=12, edition="Standard Edition (64-bit)", engine_edition=2, product_level="SP3",
    )


@pytest.fixture
def policy():
    return MaintenancePolicy(first_threshold=30, second_threshold=60)
