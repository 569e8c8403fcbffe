"""Catalog query rendering tests."""

import pytest

from conftest import make_index

from indexhealth.analysis.predicate_builder import build_predicate, FilterPredicate
from indexhealth.core.constants import IndexKind, ScanMode
from indexhealth.database.queries.index_queries import (
    build_fragmentation_query,
    build_index_query,
    build_missing_index_query,
    render_filter_clause,
)
from indexhealth.models.filter_criteria import FilterCriteria


def predicate(**kwargs):
    return build_predicate(FilterCriteria(**kwargs))


class TestFilterClause:
    def test_no_filters(self):
        exclude_list, include_list, params = render_filter_clause(predicate())
        assert exclude_list == ""
        assert include_list == ""
        assert params == {}

    def test_exclude_terms_are_ored(self):
        exclude_list, _, params = render_filter_clause(
            predicate(exclude_schemas=("staging",), exclude_objects=("tmp%", "dbo.Log", "77"))
        )
        assert exclude_list == (
            " OR [schema_id] = SCHEMA_ID(:exclude_schema_0)"
            " OR [name] LIKE :exclude_pattern_0"
            " OR [object_id] = OBJECT_ID(:exclude_name_0)"
            " OR [object_id] = :exclude_id_0"
        )
        assert params == {
            "exclude_schema_0": "staging",
            "exclude_pattern_0": "tmp%",
            "exclude_name_0": "dbo.Log",
            "exclude_id_0": 77,
        }

    def test_include_schema_and_objects_are_anded(self):
        _, include_list, params = render_filter_clause(
            predicate(include_schemas=("sales", "hr"), include_objects=("Orders",))
        )
        assert include_list == (
            "AND ( [schema_id] = SCHEMA_ID(:include_schema_0) OR [schema_id] = SCHEMA_ID(:include_schema_1) ) "
            "AND ( 1 = 0 OR [object_id] = OBJECT_ID(:include_name_0) )"
        )
        assert params["include_schema_1"] == "hr"

    def test_schema_patterns(self):
        exclude_list, include_list, params = render_filter_clause(
            predicate(exclude_schemas=("stag%",), include_schemas=("sales", "sales_%"))
        )
        assert exclude_list == " OR SCHEMA_NAME([schema_id]) LIKE :exclude_schema_pattern_0"
        assert include_list == (
            "AND ( [schema_id] = SCHEMA_ID(:include_schema_0)"
            " OR SCHEMA_NAME([schema_id]) LIKE :include_schema_pattern_0 )"
        )
        assert params["exclude_schema_pattern_0"] == "stag%"
        assert params["include_schema_pattern_0"] == "sales_%"

    def test_values_never_inlined(self):
        _, include_list, _ = render_filter_clause(predicate(include_objects=("x'; DROP TABLE t; --",)))
        assert "DROP TABLE" not in include_list


class TestIndexQuery:
    def test_kinds_are_bound(self):
        query, params = build_index_query(
            predicate(index_kinds=frozenset({IndexKind.NONCLUSTERED, IndexKind.HEAP}))
        )
        assert "i.[type] IN (:kind_0, :kind_1)" in query
        assert params["kind_0"] == 0
        assert params["kind_1"] == 2

    def test_thresholds_and_sizes_bound(self):
        query, params = build_index_query(predicate(
            first_threshold=10, second_threshold=40, min_index_size_mb=1, max_index_size_mb=2,
            scan_mode=ScanMode.SAMPLED,
        ))
        assert params["fragmentation"] == 10.0
        assert params["min_index_pages"] == 128
        assert params["max_index_pages"] == 256
        assert params["predescribe_pages"] == 3200
        assert params["scan_mode"] == "SAMPLED"
        assert ":min_index_pages" in query

    def test_optional_filters_off_by_default(self):
        query, _ = build_index_query(predicate())
        assert "is_read_only" not in query
        assert "PERMISSIONS(" not in query

    def test_optional_filters_on(self):
        query, _ = build_index_query(predicate(ignore_read_only_filegroups=False, ignore_permissions=False))
        assert "ISNULL(fg.is_read_only, 0) = 0" in query
        assert "PERMISSIONS(i.[object_id]) & 2 = 2" in query

    def test_no_kinds_rejected(self):
        with pytest.raises(ValueError):
            build_index_query(FilterPredicate())

    def test_no_unrendered_placeholders(self):
        query, _ = build_index_query(predicate(exclude_objects=("a",), include_schemas=("dbo",)))
        for placeholder in ("{exclude_list}", "{include_list}", "{index_kinds}", "{read_only_filter}"):
            assert placeholder not in query


class TestMissingIndexQuery:
    def test_params(self):
        query, params = build_missing_index_query(predicate(first_threshold=20, second_threshold=50))
        assert "sys.dm_db_missing_index_details" in query
        assert params["fragmentation"] == 20.0
        assert params["min_index_pages"] == 768


class TestFragmentationQuery:
    def test_rowstore(self):
        ix = make_index(object_id=7, index_id=4, partition_number=2)
        query, params = build_fragmentation_query(ix, ScanMode.DETAILED)
        assert "sys.dm_db_index_physical_stats(DB_ID(), :object_id, :index_id, :partition_number, :scan_mode)" in query
        assert params == {"object_id": 7, "index_id": 4, "partition_number": 2, "scan_mode": "DETAILED"}

    def test_columnstore(self):
        ix = make_index(kind=IndexKind.NONCLUSTERED_COLUMNSTORE, object_id=7, index_id=5)
        query, params = build_fragmentation_query(ix, ScanMode.LIMITED)
        assert "sys.column_store_row_groups" in query
        assert params == {"object_id": 7, "index_id": 5, "partition_number": 1}
