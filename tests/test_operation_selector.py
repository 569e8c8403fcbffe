"""Operation selection tests."""

import pytest

from conftest import make_index

from indexhealth.analysis.operation_selector import (
    allows_online_rebuild,
    allows_reorganize,
    allows_compression,
    select_operation,
    assign_operations,
)
from indexhealth.core.constants import IndexKind, IndexOperation, DataCompression
from indexhealth.models.filter_criteria import MaintenancePolicy
from indexhealth.models.server_capabilities import ServerCapabilities


class TestCapabilityFlags:
    def test_online_on_enterprise(self, enterprise):
        assert allows_online_rebuild(IndexKind.NONCLUSTERED, False, False, enterprise)

    def test_online_blocked_by_legacy_lob(self, enterprise):
        assert not allows_online_rebuild(IndexKind.CLUSTERED, True, True, enterprise)

    def test_online_allowed_with_modern_lob(self, enterprise):
        assert allows_online_rebuild(IndexKind.CLUSTERED, True, False, enterprise)

    def test_online_blocked_for_columnstore(self, enterprise):
        assert not allows_online_rebuild(IndexKind.CLUSTERED_COLUMNSTORE, False, False, enterprise)

    def test_any_lob_blocks_online_on_2008(self):
        caps = ServerCapabilities.from_server_properties(10, "Enterprise Edition", 3, "SP4")
        assert not allows_online_rebuild(IndexKind.CLUSTERED, True, False, caps)
        assert allows_online_rebuild(IndexKind.CLUSTERED, False, False, caps)

    def test_online_unavailable_on_standard(self, standard_2014):
        assert not allows_online_rebuild(IndexKind.NONCLUSTERED, False, False, standard_2014)

    def test_reorganize_needs_page_locks(self):
        assert allows_reorganize(IndexKind.NONCLUSTERED, True)
        assert not allows_reorganize(IndexKind.NONCLUSTERED, False)

    def test_heap_never_reorganized(self):
        assert not allows_reorganize(IndexKind.HEAP, True)

    def test_sparse_blocks_compression(self, enterprise):
        assert allows_compression(False, enterprise)
        assert not allows_compression(True, enterprise)


class TestSelectOperation:
    def test_missing_index_created(self, policy):
        ix = make_index(kind=IndexKind.MISSING_INDEX)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.CREATE_INDEX

    def test_reorganize_kept_when_allowed(self, policy):
        ix = make_index(allow_reorganize=True)
        assert select_operation(IndexOperation.REORGANIZE, ix, policy) == IndexOperation.REORGANIZE

    def test_reorganize_falls_back_to_rebuild(self, policy):
        ix = make_index(allow_reorganize=False)
        assert select_operation(IndexOperation.REORGANIZE, ix, policy) == IndexOperation.REBUILD

    def test_columnstore_always_reorganizable(self, policy):
        ix = make_index(kind=IndexKind.CLUSTERED_COLUMNSTORE, allow_reorganize=False)
        assert select_operation(IndexOperation.REORGANIZE, ix, policy) == IndexOperation.REORGANIZE

    def test_rebuild_with_row_compression(self):
        policy = MaintenancePolicy(data_compression=DataCompression.ROW)
        ix = make_index(allow_compression=True)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD_ROW

    def test_rebuild_with_page_compression(self):
        policy = MaintenancePolicy(data_compression=DataCompression.PAGE)
        ix = make_index(allow_compression=True)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD_PAGE

    def test_rebuild_removes_compression(self, policy):
        ix = make_index(allow_compression=True, data_compression=DataCompression.PAGE)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD_NONE

    def test_compression_ignored_when_not_allowed(self):
        policy = MaintenancePolicy(data_compression=DataCompression.ROW)
        ix = make_index(allow_compression=False)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD

    def test_compression_ignored_for_columnstore(self):
        policy = MaintenancePolicy(data_compression=DataCompression.ROW)
        ix = make_index(kind=IndexKind.NONCLUSTERED_COLUMNSTORE, allow_compression=True)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD

    @pytest.mark.parametrize("op", [
        IndexOperation.UPDATE_STATISTICS_FULL,
        IndexOperation.UPDATE_STATISTICS_RESAMPLE,
        IndexOperation.UPDATE_STATISTICS_SAMPLE,
    ])
    def test_statistics_kept_for_btree(self, policy, op):
        assert select_operation(op, make_index(), policy) == op

    def test_statistics_on_partitioned_falls_through(self, policy):
        ix = make_index(is_partitioned=True)
        assert select_operation(IndexOperation.UPDATE_STATISTICS_FULL, ix, policy) == IndexOperation.REBUILD

    def test_statistics_on_heap_falls_through(self, policy):
        ix = make_index(kind=IndexKind.HEAP)
        assert select_operation(IndexOperation.UPDATE_STATISTICS_FULL, ix, policy) == IndexOperation.REBUILD

    def test_online_rebuild(self):
        policy = MaintenancePolicy(online=True)
        ix = make_index(allow_online_rebuild=True)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD_ONLINE

    def test_online_not_allowed_for_object(self):
        policy = MaintenancePolicy(online=True)
        ix = make_index(allow_online_rebuild=False)
        assert select_operation(IndexOperation.REBUILD, ix, policy) == IndexOperation.REBUILD

    def test_unreorganizable_goes_online(self):
        policy = MaintenancePolicy(online=True)
        ix = make_index(allow_reorganize=False, allow_online_rebuild=True)
        assert select_operation(IndexOperation.REORGANIZE, ix, policy) == IndexOperation.REBUILD_ONLINE

    def test_partitioned_statistics_never_online(self):
        policy = MaintenancePolicy(online=True)
        ix = make_index(is_partitioned=True, allow_online_rebuild=True)
        assert select_operation(IndexOperation.UPDATE_STATISTICS_FULL, ix, policy) == IndexOperation.REBUILD


class TestAssignOperations:
    def test_tiers(self, policy):
        low = make_index("IX_low", index_id=2, fragmentation=45.0, allow_reorganize=True)
        high = make_index("IX_high", index_id=3, fragmentation=75.0, allow_reorganize=True)
        counts = assign_operations([low, high], policy)
        assert low.operation == IndexOperation.REORGANIZE
        assert high.operation == IndexOperation.REBUILD
        assert counts == {IndexOperation.REORGANIZE: 1, IndexOperation.REBUILD: 1}

    def test_second_threshold_is_exclusive(self, policy):
        ix = make_index(fragmentation=60.0, allow_reorganize=True)
        assign_operations([ix], policy)
        assert ix.operation == IndexOperation.REBUILD

    def test_unscanned_fragmentation_uses_second_tier(self, policy):
        ix = make_index(fragmentation=None, allow_reorganize=True)
        assign_operations([ix], policy)
        assert ix.operation == IndexOperation.REBUILD

    def test_every_object_gets_an_operation(self, policy):
        members = [
            make_index("IX_a", index_id=2, fragmentation=10.0),
            make_index("IX_b", index_id=0, kind=IndexKind.HEAP, fragmentation=90.0),
            make_index("IX_c", index_id=5, kind=IndexKind.MISSING_INDEX, fragmentation=80.0),
        ]
        assign_operations(members, policy)
        assert all(ix.operation is not None for ix in members)
        assert members[2].operation == IndexOperation.CREATE_INDEX
