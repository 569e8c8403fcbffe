"""
Index Catalog Queries - scan candidates for maintenance

Query text only contains fixed fragments; every user supplied value is a
named bind parameter (SQLAlchemy `text()` style).
"""

from typing import Dict, Any, List, Tuple

from indexhealth.analysis.predicate_builder import FilterPredicate, ObjectMatchers, SchemaMatchers
from indexhealth.core.constants import ScanMode
from indexhealth.models.index_object import IndexObject


class IndexQueries:
    """SQL queries for the index catalog snapshot"""

    # Rowstore and columnstore indexes / heaps with usage and physical stats.
    # Rowstore objects above :predescribe_pages come back without
    # fragmentation and are described one by one afterwards.
    INDEXES = """
    WITH obj AS (
        SELECT o.[object_id], o.[schema_id], o.[name]
        FROM sys.objects o WITH(NOLOCK)
        WHERE o.[type] IN ('U', 'V')
            AND o.is_ms_shipped = 0
            AND NOT ( 1 = 0 {exclude_list})
            {include_list}
    ),
    idx AS (
        SELECT
            i.[object_id], i.index_id, i.[name], i.[type], i.fill_factor,
            i.is_unique, i.is_primary_key, i.has_filter, i.allow_page_locks,
            i.data_space_id, o.[schema_id], o.[name] AS object_name,
            p.partition_number, p.data_compression,
            ps.used_page_count, ps.reserved_page_count, ps.row_count,
            CASE WHEN ds.[type] = 'PS' THEN 1 ELSE 0 END AS is_partitioned
        FROM obj o
        JOIN sys.indexes i WITH(NOLOCK) ON i.[object_id] = o.[object_id]
        JOIN sys.partitions p WITH(NOLOCK) ON p.[object_id] = i.[object_id] AND p.index_id = i.index_id
        JOIN sys.dm_db_partition_stats ps WITH(NOLOCK) ON ps.[partition_id] = p.[partition_id]
        JOIN sys.data_spaces ds WITH(NOLOCK) ON ds.data_space_id = i.data_space_id
        LEFT JOIN sys.filegroups fg WITH(NOLOCK) ON fg.data_space_id = i.data_space_id
        WHERE i.[type] IN ({index_kinds})
            AND i.is_disabled = 0
            AND i.is_hypothetical = 0
            AND ps.used_page_count BETWEEN :min_index_pages AND :max_index_pages
            {read_only_filter}
            {permission_filter}
    )
    SELECT
        x.[object_id] AS object_id,
        x.index_id,
        ISNULL(x.[name], '') AS index_name,
        SCHEMA_NAME(x.[schema_id]) AS schema_name,
        x.object_name,
        x.[type] AS index_type,
        x.partition_number,
        x.used_page_count AS pages_count,
        x.reserved_page_count - x.used_page_count AS unused_pages_count,
        x.row_count AS rows_count,
        ISNULL(FILEGROUP_NAME(x.data_space_id), 'PARTITIONED') AS filegroup_name,
        CAST(x.is_partitioned AS BIT) AS is_partitioned,
        x.is_unique,
        x.is_primary_key AS is_pk,
        x.has_filter AS is_filtered,
        x.allow_page_locks,
        x.fill_factor,
        x.data_compression,
        STATS_DATE(x.[object_id], x.index_id) AS stats_date,
        u.user_updates AS total_writes,
        u.user_seeks + u.user_scans + u.user_lookups AS total_reads,
        u.user_seeks AS total_seeks,
        u.user_scans AS total_scans,
        u.user_lookups AS total_lookups,
        (SELECT MAX(v) FROM (VALUES (u.last_user_seek), (u.last_user_scan), (u.last_user_lookup)) t(v)) AS last_usage,
        COALESCE(cs.fragmentation, f.avg_fragmentation_in_percent) AS fragmentation,
        f.avg_page_space_used_in_percent AS page_space_used,
        CAST(CASE WHEN EXISTS (
            SELECT 1 FROM sys.columns c WITH(NOLOCK)
            WHERE c.[object_id] = x.[object_id] AND c.is_sparse = 1
        ) THEN 1 ELSE 0 END AS BIT) AS is_sparse,
        CAST(CASE WHEN EXISTS (
            SELECT 1 FROM sys.columns c WITH(NOLOCK)
            WHERE c.[object_id] = x.[object_id]
                AND c.system_type_id IN (34, 35, 99)
                AND (x.index_id <= 1 OR EXISTS (
                    SELECT 1 FROM sys.index_columns ic WITH(NOLOCK)
                    WHERE ic.[object_id] = x.[object_id] AND ic.index_id = x.index_id AND ic.column_id = c.column_id))
        ) THEN 1 ELSE 0 END AS BIT) AS is_lob_legacy,
        CAST(CASE WHEN EXISTS (
            SELECT 1 FROM sys.columns c WITH(NOLOCK)
            WHERE c.[object_id] = x.[object_id]
                AND (c.max_length = -1 OR c.system_type_id IN (34, 35, 99, 241))
                AND (x.index_id <= 1 OR EXISTS (
                    SELECT 1 FROM sys.index_columns ic WITH(NOLOCK)
                    WHERE ic.[object_id] = x.[object_id] AND ic.index_id = x.index_id AND ic.column_id = c.column_id))
        ) THEN 1 ELSE 0 END AS BIT) AS is_lob,
        STUFF((
            SELECT ', ' + QUOTENAME(c.[name]) + CASE WHEN ic.is_descending_key = 1 THEN ' DESC' ELSE '' END
            FROM sys.index_columns ic WITH(NOLOCK)
            JOIN sys.columns c WITH(NOLOCK) ON c.[object_id] = ic.[object_id] AND c.column_id = ic.column_id
            WHERE ic.[object_id] = x.[object_id] AND ic.index_id = x.index_id
                AND ic.is_included_column = 0 AND ic.key_ordinal > 0
            ORDER BY ic.key_ordinal
            FOR XML PATH(''), TYPE).value('.', 'NVARCHAR(MAX)'), 1, 2, '') AS index_columns,
        STUFF((
            SELECT ', ' + QUOTENAME(c.[name])
            FROM sys.index_columns ic WITH(NOLOCK)
            JOIN sys.columns c WITH(NOLOCK) ON c.[object_id] = ic.[object_id] AND c.column_id = ic.column_id
            WHERE ic.[object_id] = x.[object_id] AND ic.index_id = x.index_id
                AND ic.is_included_column = 1
            ORDER BY ic.index_column_id
            FOR XML PATH(''), TYPE).value('.', 'NVARCHAR(MAX)'), 1, 2, '') AS included_columns
    FROM idx x
    LEFT JOIN sys.dm_db_index_usage_stats u
        ON u.database_id = DB_ID() AND u.[object_id] = x.[object_id] AND u.index_id = x.index_id
    OUTER APPLY (
        SELECT s.avg_fragmentation_in_percent, s.avg_page_space_used_in_percent
        FROM sys.dm_db_index_physical_stats(DB_ID(), x.[object_id], x.index_id, x.partition_number, :scan_mode) s
        WHERE x.[type] IN (0, 1, 2)
            AND x.used_page_count <= :predescribe_pages
            AND s.index_level = 0
            AND s.alloc_unit_type_desc = 'IN_ROW_DATA'
    ) f
    OUTER APPLY (
        SELECT CAST(SUM(rg.deleted_rows) * 100. / NULLIF(SUM(rg.total_rows), 0) AS FLOAT) AS fragmentation
        FROM sys.column_store_row_groups rg WITH(NOLOCK)
        WHERE x.[type] IN (5, 6)
            AND rg.[object_id] = x.[object_id]
            AND rg.index_id = x.index_id
            AND rg.partition_number = x.partition_number
    ) cs
    WHERE COALESCE(cs.fragmentation, f.avg_fragmentation_in_percent) IS NULL
        OR COALESCE(cs.fragmentation, f.avg_fragmentation_in_percent) >= :fragmentation
    """

    # Missing index recommendations; the expected improvement stands in for
    # fragmentation so the same threshold applies.
    MISSING_INDEXES = """
    SELECT
        d.[object_id] AS object_id,
        SCHEMA_NAME(o.[schema_id]) AS schema_name,
        o.[name] AS object_name,
        ISNULL(d.equality_columns + ISNULL(', ' + d.inequality_columns, ''), d.inequality_columns) AS index_columns,
        d.included_columns,
        s.user_seeks + s.user_scans AS total_reads,
        s.user_seeks AS total_seeks,
        s.user_scans AS total_scans,
        ISNULL(s.last_user_seek, s.last_user_scan) AS last_usage,
        CAST(s.avg_user_impact AS FLOAT) AS fragmentation,
        p.pages_count,
        p.rows_count,
        STATS_DATE(d.[object_id], 1) AS stats_date
    FROM sys.dm_db_missing_index_details d WITH(NOLOCK)
    JOIN sys.dm_db_missing_index_groups g WITH(NOLOCK) ON g.index_handle = d.index_handle
    JOIN sys.dm_db_missing_index_group_stats s WITH(NOLOCK) ON s.group_handle = g.index_group_handle
    JOIN sys.objects o WITH(NOLOCK) ON o.[object_id] = d.[object_id]
    CROSS APPLY (
        SELECT SUM(ps.used_page_count) AS pages_count,
               SUM(CASE WHEN ps.index_id IN (0, 1) THEN ps.row_count ELSE 0 END) AS rows_count
        FROM sys.dm_db_partition_stats ps WITH(NOLOCK)
        WHERE ps.[object_id] = d.[object_id] AND ps.index_id IN (0, 1)
    ) p
    WHERE d.database_id = DB_ID()
        AND s.avg_user_impact >= :fragmentation
        AND p.pages_count BETWEEN :min_index_pages AND :max_index_pages
    """

    # Post-operation metrics, appended to the maintenance batch (qmark params)
    # Physical stats for one object that was too large to describe inline
    INDEX_FRAGMENTATION = """
    SELECT
        s.avg_fragmentation_in_percent AS fragmentation,
        s.avg_page_space_used_in_percent AS page_space_used
    FROM sys.dm_db_index_physical_stats(DB_ID(), :object_id, :index_id, :partition_number, :scan_mode) s
    WHERE s.index_level = 0
        AND s.alloc_unit_type_desc = 'IN_ROW_DATA'
    """

    # Deleted-rows ratio of one columnstore partition
    COLUMNSTORE_FRAGMENTATION = """
    SELECT
        CAST(ISNULL(SUM(rg.deleted_rows) * 100. / NULLIF(SUM(rg.total_rows), 0), 0) AS FLOAT) AS fragmentation,
        CAST(NULL AS FLOAT) AS page_space_used
    FROM sys.column_store_row_groups rg WITH(NOLOCK)
    WHERE rg.[object_id] = :object_id
        AND rg.index_id = :index_id
        AND rg.partition_number = :partition_number
    """

    AFTER_FIX_INDEX = """
    SELECT
        f.avg_fragmentation_in_percent AS fragmentation,
        f.avg_page_space_used_in_percent AS page_space_used,
        ps.used_page_count AS pages_count,
        ps.reserved_page_count - ps.used_page_count AS unused_pages_count,
        ps.row_count AS rows_count,
        p.data_compression,
        STATS_DATE(p.[object_id], p.index_id) AS stats_date
    FROM sys.partitions p WITH(NOLOCK)
    JOIN sys.dm_db_partition_stats ps WITH(NOLOCK) ON ps.[partition_id] = p.[partition_id]
    OUTER APPLY (
        SELECT s.avg_fragmentation_in_percent, s.avg_page_space_used_in_percent
        FROM sys.dm_db_index_physical_stats(DB_ID(), p.[object_id], p.index_id, p.partition_number, ?) s
        WHERE s.index_level = 0 AND s.alloc_unit_type_desc = 'IN_ROW_DATA'
    ) f
    WHERE p.[object_id] = ? AND p.index_id = ? AND p.partition_number = ?
    """

    AFTER_FIX_COLUMNSTORE = """
    SELECT
        CAST(ISNULL(SUM(rg.deleted_rows) * 100. / NULLIF(SUM(rg.total_rows), 0), 0) AS FLOAT) AS fragmentation,
        CAST(NULL AS FLOAT) AS page_space_used,
        MAX(ps.used_page_count) AS pages_count,
        MAX(ps.reserved_page_count - ps.used_page_count) AS unused_pages_count,
        MAX(ps.row_count) AS rows_count,
        MAX(p.data_compression) AS data_compression,
        STATS_DATE(MAX(p.[object_id]), MAX(p.index_id)) AS stats_date
    FROM sys.partitions p WITH(NOLOCK)
    JOIN sys.dm_db_partition_stats ps WITH(NOLOCK) ON ps.[partition_id] = p.[partition_id]
    LEFT JOIN sys.column_store_row_groups rg WITH(NOLOCK)
        ON rg.[object_id] = p.[object_id] AND rg.index_id = p.index_id AND rg.partition_number = p.partition_number
    WHERE p.[object_id] = ? AND p.index_id = ? AND p.partition_number = ?
    """


def _object_terms(matchers: ObjectMatchers, prefix: str, params: Dict[str, Any]) -> List[str]:
    terms: List[str] = []
    for i, pattern in enumerate(matchers.patterns):
        name = f"{prefix}_pattern_{i}"
        params[name] = pattern
        terms.append(f"[name] LIKE :{name}")
    for i, object_name in enumerate(matchers.names):
        name = f"{prefix}_name_{i}"
        params[name] = object_name
        terms.append(f"[object_id] = OBJECT_ID(:{name})")
    for i, object_id in enumerate(matchers.ids):
        name = f"{prefix}_id_{i}"
        params[name] = int(object_id)
        terms.append(f"[object_id] = :{name}")
    return terms


def _schema_terms(matchers: SchemaMatchers, prefix: str, params: Dict[str, Any]) -> List[str]:
    terms: List[str] = []
    for i, schema in enumerate(matchers.names):
        name = f"{prefix}_schema_{i}"
        params[name] = schema
        terms.append(f"[schema_id] = SCHEMA_ID(:{name})")
    for i, pattern in enumerate(matchers.patterns):
        name = f"{prefix}_schema_pattern_{i}"
        params[name] = pattern
        terms.append(f"SCHEMA_NAME([schema_id]) LIKE :{name}")
    return terms


def render_filter_clause(predicate: FilterPredicate) -> Tuple[str, str, Dict[str, Any]]:
    """
    Render the exclude and include fragments of the object filter.

    Returns:
        (exclude_list, include_list, params) - exclude_list continues
        "NOT ( 1 = 0 ...", include_list is empty when nothing is included
        explicitly (match everything).
    """
    params: Dict[str, Any] = {}

    exclude_terms = (
        _schema_terms(predicate.exclude_schemas, "exclude", params)
        + _object_terms(predicate.exclude_objects, "exclude", params)
    )
    exclude_list = "".join(f" OR {term}" for term in exclude_terms)

    include_list = ""
    schema_terms = _schema_terms(predicate.include_schemas, "include", params)
    if schema_terms:
        include_list += f"AND ( {' OR '.join(schema_terms)} ) "

    object_terms = _object_terms(predicate.include_objects, "include", params)
    if object_terms:
        include_list += f"AND ( 1 = 0 {''.join(f'OR {term} ' for term in object_terms)})"

    return exclude_list, include_list.strip(), params


def build_index_query(predicate: FilterPredicate) -> Tuple[str, Dict[str, Any]]:
    """
    Build the catalog query and its bind parameters

    Raises:
        ValueError: When the predicate selects no index kinds
    """
    kinds = sorted(int(kind) for kind in predicate.index_kinds)
    if not kinds:
        raise ValueError("No index kinds selected")

    exclude_list, include_list, params = render_filter_clause(predicate)

    kind_names = []
    for i, kind in enumerate(kinds):
        params[f"kind_{i}"] = kind
        kind_names.append(f":kind_{i}")

    query = IndexQueries.INDEXES.format(
        exclude_list=exclude_list,
        include_list=include_list,
        index_kinds=", ".join(kind_names),
        read_only_filter="" if predicate.ignore_read_only_filegroups else "AND ISNULL(fg.is_read_only, 0) = 0",
        permission_filter="" if predicate.ignore_permissions else "AND PERMISSIONS(i.[object_id]) & 2 = 2",
    )

    params.update({
        "fragmentation": float(predicate.fragmentation_threshold),
        "min_index_pages": int(predicate.min_index_pages),
        "max_index_pages": int(predicate.max_index_pages),
        "predescribe_pages": int(predicate.predescribe_pages),
        "scan_mode": predicate.scan_mode.value,
    })
    return query, params


def build_missing_index_query(predicate: FilterPredicate) -> Tuple[str, Dict[str, Any]]:
    return IndexQueries.MISSING_INDEXES, {
        "fragmentation": float(predicate.fragmentation_threshold),
        "min_index_pages": int(predicate.min_index_pages),
        "max_index_pages": int(predicate.max_index_pages),
    }


def build_fragmentation_query(ix: IndexObject, scan_mode: ScanMode) -> Tuple[str, Dict[str, Any]]:
    """Per-object fragmentation query for objects the catalog query left undescribed"""
    params: Dict[str, Any] = {
        "object_id": int(ix.object_id),
        "index_id": int(ix.index_id),
        "partition_number": int(ix.partition_number),
    }
    if ix.is_columnstore:
        return IndexQueries.COLUMNSTORE_FRAGMENTATION, params

    params["scan_mode"] = scan_mode.value
    return IndexQueries.INDEX_FRAGMENTATION, params
