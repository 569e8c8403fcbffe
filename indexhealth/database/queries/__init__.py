"""
SQL query templates for the index catalog and maintenance batches
"""

from indexhealth.database.queries.index_queries import (
    IndexQueries,
    build_index_query,
    build_missing_index_query,
    build_fragmentation_query,
    render_filter_clause,
)
from indexhealth.database.queries.maintenance_queries import (
    quote_name,
    render_operation,
    render_batch,
    after_fix_query,
)

__all__ = [
    "IndexQueries",
    "build_index_query",
    "build_missing_index_query",
    "build_fragmentation_query",
    "render_filter_clause",
    "quote_name",
    "render_operation",
    "render_batch",
    "after_fix_query",
]
