"""
Catalog Service - loads the index snapshot of one database
"""

import re
import uuid
from typing import List, Dict, Any, Optional
from dataclasses import replace

from indexhealth.analysis.operation_selector import (
    allows_online_rebuild,
    allows_reorganize,
    allows_compression,
)
from indexhealth.analysis.predicate_builder import FilterPredicate
from indexhealth.core.constants import (
    IndexKind,
    DataCompression,
    MASTER_DATABASE,
    MISSING_INDEX_NAME_LIMIT,
)
from indexhealth.core.logger import get_logger, LogContext
from indexhealth.database.queries.index_queries import (
    build_index_query,
    build_missing_index_query,
    build_fragmentation_query,
)
from indexhealth.database.version_detector import VersionDetector
from indexhealth.models.index_object import IndexObject
from indexhealth.models.server_capabilities import ServerCapabilities
from indexhealth.services.contracts import ICatalogFetcher, ICapabilityProvider

logger = get_logger('services.catalog')


_NAME_STRIP = re.compile(r"[\[\]\s]")


def missing_index_name(object_name: str, index_columns: str) -> str:
    """IX_<5 random hex>_<object>_<columns> without brackets, spaces or commas"""
    raw = f"IX_{uuid.uuid4().hex[:5]}_{object_name}_{index_columns or ''}".replace(",", "_")
    return _NAME_STRIP.sub("", raw)[:MISSING_INDEX_NAME_LIMIT]


def _int(row: Dict[str, Any], key: str, default: int = 0) -> int:
    value = row.get(key)
    return int(value) if value is not None else default


def _opt_int(row: Dict[str, Any], key: str) -> Optional[int]:
    value = row.get(key)
    return int(value) if value is not None else None


def _opt_float(row: Dict[str, Any], key: str) -> Optional[float]:
    value = row.get(key)
    return float(value) if value is not None else None


class CatalogService(ICatalogFetcher, ICapabilityProvider):
    """
    Fetches scanned objects and server capabilities over a database
    connection (anything exposing `execute_query(query, params, timeout)`
    and a `database` name).
    """

    def __init__(self, connection, timeout: Optional[int] = None):
        self.connection = connection
        self.timeout = timeout

    @property
    def database_name(self) -> str:
        return getattr(self.connection, 'database', '') or ''

    def fetch_capabilities(self) -> ServerCapabilities:
        return VersionDetector.detect(self.connection)

    def scan_kinds(self, predicate: FilterPredicate, capabilities: ServerCapabilities) -> List[IndexKind]:
        """Selected kinds narrowed by what the server supports"""
        kinds = [k for k in predicate.index_kinds if k != IndexKind.MISSING_INDEX]
        if not capabilities.is_columnstore_available:
            kinds = [k for k in kinds if not k.is_columnstore]
        return sorted(kinds)

    def fetch(self, predicate: FilterPredicate, capabilities: ServerCapabilities) -> List[IndexObject]:
        indexes: List[IndexObject] = []

        kinds = self.scan_kinds(predicate, capabilities)
        if kinds:
            narrowed = replace(predicate, index_kinds=frozenset(kinds))
            query, params = build_index_query(narrowed)
            with LogContext(logger, f"Scanning indexes in {self.database_name}"):
                rows = self.connection.execute_query(query, params, timeout=self.timeout)
            scanned = [self.map_index_row(row, capabilities) for row in rows]
            indexes.extend(self.describe_large_objects(scanned, predicate))

        skip_missing = capabilities.is_azure and self.database_name.lower() == MASTER_DATABASE
        if predicate.scan_missing_index and not skip_missing:
            query, params = build_missing_index_query(predicate)
            rows = self.connection.execute_query(query, params, timeout=self.timeout)
            # The recommendation DMVs know nothing of the object filter
            indexes.extend(
                self.map_missing_index_row(row, capabilities) for row in rows
                if predicate.matches(row.get('schema_name') or '', row.get('object_name') or '',
                                     _int(row, 'object_id'))
            )

        logger.info(f"{self.database_name}: {len(indexes)} objects loaded")
        return indexes

    def describe_large_objects(self, indexes: List[IndexObject],
                               predicate: FilterPredicate) -> List[IndexObject]:
        """
        Measure fragmentation for objects the catalog query skipped
        (larger than the predescribe size) and drop those below the
        fragmentation threshold.
        """
        pending = [ix for ix in indexes if ix.fragmentation is None]
        if not pending:
            return indexes

        with LogContext(logger, f"Describing {len(pending)} large objects in {self.database_name}"):
            for ix in pending:
                query, params = build_fragmentation_query(ix, predicate.scan_mode)
                rows = self.connection.execute_query(query, params, timeout=self.timeout)
                if len(rows) == 1 and rows[0].get('fragmentation') is not None:
                    ix.fragmentation = float(rows[0]['fragmentation'])
                    ix.page_space_used = _opt_float(rows[0], 'page_space_used')
                else:
                    # No in-row data to measure
                    ix.fragmentation = 0.0

        kept = [ix for ix in indexes if ix.fragmentation >= predicate.fragmentation_threshold]
        if len(kept) < len(indexes):
            logger.debug(f"{len(indexes) - len(kept)} large objects below {predicate.fragmentation_threshold}%")
        return kept

    def map_index_row(self, row: Dict[str, Any], capabilities: ServerCapabilities) -> IndexObject:
        kind = IndexKind(_int(row, 'index_type'))
        is_lob = bool(row.get('is_lob'))
        is_lob_legacy = bool(row.get('is_lob_legacy'))

        return IndexObject(
            database_name=self.database_name,
            object_id=_int(row, 'object_id'),
            index_id=_int(row, 'index_id'),
            index_name=row.get('index_name') or '',
            schema_name=row.get('schema_name') or '',
            object_name=row.get('object_name') or '',
            kind=kind,
            partition_number=_int(row, 'partition_number', 1),
            pages_count=_int(row, 'pages_count'),
            unused_pages_count=_int(row, 'unused_pages_count'),
            rows_count=_int(row, 'rows_count'),
            fill_factor=_int(row, 'fill_factor'),
            filegroup_name=row.get('filegroup_name') or '',
            fragmentation=_opt_float(row, 'fragmentation'),
            page_space_used=_opt_float(row, 'page_space_used'),
            data_compression=DataCompression(_int(row, 'data_compression')),
            total_writes=_opt_int(row, 'total_writes'),
            total_reads=_opt_int(row, 'total_reads'),
            total_seeks=_opt_int(row, 'total_seeks'),
            total_scans=_opt_int(row, 'total_scans'),
            total_lookups=_opt_int(row, 'total_lookups'),
            last_usage=row.get('last_usage'),
            stats_date=row.get('stats_date'),
            index_columns=row.get('index_columns') or '',
            included_columns=row.get('included_columns') or '',
            is_partitioned=bool(row.get('is_partitioned')),
            is_unique=bool(row.get('is_unique')),
            is_pk=bool(row.get('is_pk')),
            is_filtered=bool(row.get('is_filtered')),
            is_lob=is_lob,
            is_lob_legacy=is_lob_legacy,
            allow_reorganize=allows_reorganize(kind, bool(row.get('allow_page_locks'))),
            allow_online_rebuild=allows_online_rebuild(kind, is_lob, is_lob_legacy, capabilities),
            allow_compression=allows_compression(bool(row.get('is_sparse')), capabilities),
        )

    def map_missing_index_row(self, row: Dict[str, Any], capabilities: ServerCapabilities) -> IndexObject:
        object_name = row.get('object_name') or ''
        index_columns = row.get('index_columns') or ''

        return IndexObject(
            database_name=self.database_name,
            object_id=_int(row, 'object_id'),
            index_id=0,
            index_name=missing_index_name(object_name, index_columns),
            schema_name=row.get('schema_name') or '',
            object_name=object_name,
            kind=IndexKind.MISSING_INDEX,
            pages_count=_int(row, 'pages_count'),
            rows_count=_int(row, 'rows_count'),
            filegroup_name="PRIMARY",
            fragmentation=_opt_float(row, 'fragmentation') or 0.0,
            total_reads=_opt_int(row, 'total_reads'),
            total_seeks=_opt_int(row, 'total_seeks'),
            total_scans=_opt_int(row, 'total_scans'),
            last_usage=row.get('last_usage'),
            stats_date=row.get('stats_date'),
            index_columns=index_columns,
            included_columns=row.get('included_columns') or '',
            allow_online_rebuild=False,
            allow_compression=capabilities.is_compression_available,
        )
