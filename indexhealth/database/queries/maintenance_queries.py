"""
Maintenance Queries - DDL for each index operation
"""

from typing import List, Tuple, Any

from indexhealth.core.constants import (
    IndexKind,
    IndexOperation,
    DataCompression,
    ServerVersion,
)
from indexhealth.database.queries.index_queries import IndexQueries
from indexhealth.models.filter_criteria import MaintenancePolicy
from indexhealth.models.index_object import IndexObject


_COMPRESSION_BY_OPERATION = {
    IndexOperation.REBUILD_NONE: DataCompression.NONE,
    IndexOperation.REBUILD_ROW: DataCompression.ROW,
    IndexOperation.REBUILD_PAGE: DataCompression.PAGE,
}


def quote_name(name: str) -> str:
    """T-SQL QUOTENAME equivalent for identifiers"""
    return "[" + str(name).replace("]", "]]") + "]"


def _on_off(value: bool) -> str:
    return "ON" if value else "OFF"


def _object_ref(ix: IndexObject) -> str:
    return f"{quote_name(ix.schema_name)}.{quote_name(ix.object_name)}"


def _partition_clause(ix: IndexObject) -> str:
    return f" PARTITION = {int(ix.partition_number)}" if ix.is_partitioned else ""


def _online_clause(policy: MaintenancePolicy, major_version: int) -> str:
    if policy.wait_at_low_priority and major_version >= ServerVersion.SQL2014:
        return (
            "ONLINE = ON (WAIT_AT_LOW_PRIORITY ("
            f"MAX_DURATION = {int(policy.max_duration)} MINUTES, "
            f"ABORT_AFTER_WAIT = {policy.abort_after_wait.value}))"
        )
    return "ONLINE = ON"


def _use_online(ix: IndexObject, op: IndexOperation, policy: MaintenancePolicy, major_version: int) -> bool:
    if op == IndexOperation.REBUILD_ONLINE:
        online = True
    else:
        online = op in _COMPRESSION_BY_OPERATION and policy.online and ix.allow_online_rebuild
    # Single partition online rebuild arrived in 2014
    if online and ix.is_partitioned and major_version < ServerVersion.SQL2014:
        return False
    return online


def _rebuild_options(ix: IndexObject, op: IndexOperation, policy: MaintenancePolicy,
                     major_version: int) -> List[str]:
    options: List[str] = []

    if ix.is_columnstore:
        if policy.max_dop:
            options.append(f"MAXDOP = {int(policy.max_dop)}")
        return options

    options.append(f"SORT_IN_TEMPDB = {_on_off(policy.sort_in_tempdb)}")
    if _use_online(ix, op, policy, major_version):
        options.append(_online_clause(policy, major_version))
    if policy.max_dop:
        options.append(f"MAXDOP = {int(policy.max_dop)}")
    # FILLFACTOR and PAD_INDEX are not allowed on single partition rebuilds
    if ix.kind != IndexKind.HEAP and not ix.is_partitioned:
        if policy.fill_factor:
            options.append(f"FILLFACTOR = {int(policy.fill_factor)}")
        if policy.pad_index:
            options.append("PAD_INDEX = ON")
    if op in _COMPRESSION_BY_OPERATION:
        options.append(f"DATA_COMPRESSION = {_COMPRESSION_BY_OPERATION[op].name}")
    return options


def _with(options: List[str]) -> str:
    return f" WITH ({', '.join(options)})" if options else ""


def render_operation(ix: IndexObject, op: IndexOperation, policy: MaintenancePolicy,
                     major_version: int = ServerVersion.SQL2016) -> str:
    """
    Render the DDL statement for one operation on one object.

    Identifiers are bracket-quoted; numeric options come from validated
    settings and are cast to int before they reach the statement.
    """
    obj = _object_ref(ix)
    index = quote_name(ix.index_name)

    if op.is_rebuild:
        options = _with(_rebuild_options(ix, op, policy, major_version))
        if ix.kind == IndexKind.HEAP:
            return f"ALTER TABLE {obj} REBUILD{_partition_clause(ix)}{options};"
        return f"ALTER INDEX {index} ON {obj} REBUILD{_partition_clause(ix)}{options};"

    if op == IndexOperation.REORGANIZE:
        options = "" if ix.is_columnstore else _with([f"LOB_COMPACTION = {_on_off(policy.lob_compaction)}"])
        return f"ALTER INDEX {index} ON {obj} REORGANIZE{_partition_clause(ix)}{options};"

    if op.is_statistics:
        if op == IndexOperation.UPDATE_STATISTICS_FULL:
            options = ["FULLSCAN"]
        elif op == IndexOperation.UPDATE_STATISTICS_RESAMPLE:
            options = ["RESAMPLE"]
        else:
            options = [f"SAMPLE {int(policy.stats_sample_percent)} PERCENT"]
        if policy.no_recompute:
            options.append("NORECOMPUTE")
        return f"UPDATE STATISTICS {obj} {index} WITH {', '.join(options)};"

    if op == IndexOperation.CREATE_INDEX:
        options = [f"SORT_IN_TEMPDB = {_on_off(policy.sort_in_tempdb)}"]
        if policy.online and ix.allow_online_rebuild:
            options.append("ONLINE = ON")
        if policy.max_dop:
            options.append(f"MAXDOP = {int(policy.max_dop)}")
        if policy.fill_factor:
            options.append(f"FILLFACTOR = {int(policy.fill_factor)}")
        if policy.pad_index:
            options.append("PAD_INDEX = ON")
        if ix.allow_compression and policy.data_compression != DataCompression.NONE:
            options.append(f"DATA_COMPRESSION = {policy.data_compression.name}")
        include = f" INCLUDE ({', '.join(ix.included_columns)})" if ix.included_columns else ""
        return (
            f"CREATE NONCLUSTERED INDEX {index} ON {obj} ({', '.join(ix.index_columns)})"
            f"{include}{_with(options)};"
        )

    if op == IndexOperation.DISABLE_INDEX:
        return f"ALTER INDEX {index} ON {obj} DISABLE;"

    if op == IndexOperation.DROP_INDEX:
        return f"DROP INDEX {index} ON {obj};"

    if op == IndexOperation.DROP_TABLE:
        return f"DROP TABLE {obj};"

    raise ValueError(f"Unsupported operation: {op}")


def after_fix_query(ix: IndexObject, policy: MaintenancePolicy) -> Tuple[str, Tuple[Any, ...]]:
    """Metrics query for the object after the operation ran"""
    keys = (int(ix.object_id), int(ix.index_id), int(ix.partition_number))
    if ix.is_columnstore:
        return IndexQueries.AFTER_FIX_COLUMNSTORE, keys
    return IndexQueries.AFTER_FIX_INDEX, (policy.scan_mode.value,) + keys


def render_batch(ix: IndexObject, op: IndexOperation, policy: MaintenancePolicy,
                 major_version: int = ServerVersion.SQL2016) -> Tuple[str, Tuple[Any, ...]]:
    """DDL, followed by the metrics query when the operation reports metrics"""
    statement = render_operation(ix, op, policy, major_version)
    if not op.returns_metrics:
        return statement, ()
    metrics_sql, params = after_fix_query(ix, policy)
    return f"{statement}\n{metrics_sql}", params
