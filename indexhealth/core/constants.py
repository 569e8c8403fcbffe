"""
Application constants and enumerations
"""

from enum import Enum, IntEnum
from typing import Final

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: Final[str] = "SQL Index Health"

# =============================================================================
# File Paths
# =============================================================================

CONFIG_FILE: Final[str] = "settings.json"
LOG_FILE: Final[str] = "indexhealth.log"

# =============================================================================
# Database Constants
# =============================================================================

DEFAULT_COMMAND_TIMEOUT: Final[int] = 120  # seconds
DEFAULT_CONNECTION_TIMEOUT: Final[int] = 15  # seconds

# ODBC Driver preferences (newest to oldest)
ODBC_DRIVER_PREFERENCES: Final[list[str]] = [
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "SQL Server Native Client 11.0",
    "SQL Server",
]

AZURE_ENGINE_EDITIONS: Final[tuple[int, ...]] = (5, 6, 8)
MASTER_DATABASE: Final[str] = "master"

# =============================================================================
# Engine Constants
# =============================================================================

# Data pages are 8 KB
PAGES_PER_MB: Final[int] = 128

# Unused index detection: writes must exceed this floor
UNUSED_WRITES_FLOOR: Final[int] = 50_000
UNUSED_READS_DIVISOR: Final[int] = 10

# Pattern marker for object/schema filters (T-SQL LIKE)
PATTERN_MARKER: Final[str] = "%"

MISSING_INDEX_NAME_LIMIT: Final[int] = 240

DEFAULT_MAX_WORKERS: Final[int] = 1

# =============================================================================
# Enumerations
# =============================================================================


class IndexKind(IntEnum):
    """Index kinds as reported by sys.indexes.type (MISSING_INDEX is synthetic)"""
    HEAP = 0
    CLUSTERED = 1
    NONCLUSTERED = 2
    CLUSTERED_COLUMNSTORE = 5
    NONCLUSTERED_COLUMNSTORE = 6
    MISSING_INDEX = 99

    @property
    def is_columnstore(self) -> bool:
        return self in (IndexKind.CLUSTERED_COLUMNSTORE, IndexKind.NONCLUSTERED_COLUMNSTORE)

    @property
    def is_btree(self) -> bool:
        return self in (IndexKind.CLUSTERED, IndexKind.NONCLUSTERED)


class DataCompression(IntEnum):
    """sys.partitions.data_compression values used by maintenance"""
    NONE = 0
    ROW = 1
    PAGE = 2
    COLUMNSTORE = 3
    COLUMNSTORE_ARCHIVE = 4

    @property
    def is_rowstore(self) -> bool:
        return self <= DataCompression.PAGE


class WarningType(str, Enum):
    """Structural health finding"""
    UNUSED = "unused"
    DUPLICATE = "duplicate"
    OVERLAP = "overlap"


class IndexOperation(str, Enum):
    """Maintenance operations the engine can decide on"""
    REBUILD = "rebuild"
    REBUILD_ONLINE = "rebuild_online"
    REBUILD_NONE = "rebuild_none"
    REBUILD_ROW = "rebuild_row"
    REBUILD_PAGE = "rebuild_page"
    REORGANIZE = "reorganize"
    UPDATE_STATISTICS_FULL = "update_statistics_full"
    UPDATE_STATISTICS_RESAMPLE = "update_statistics_resample"
    UPDATE_STATISTICS_SAMPLE = "update_statistics_sample"
    CREATE_INDEX = "create_index"
    DISABLE_INDEX = "disable_index"
    DROP_INDEX = "drop_index"
    DROP_TABLE = "drop_table"

    @property
    def is_statistics(self) -> bool:
        return self in STATISTICS_OPERATIONS

    @property
    def is_destructive(self) -> bool:
        return self in DESTRUCTIVE_OPERATIONS

    @property
    def is_rebuild(self) -> bool:
        return self in REBUILD_OPERATIONS

    @property
    def returns_metrics(self) -> bool:
        """Whether a post-operation metrics row is expected"""
        return not (self.is_statistics or self.is_destructive or self == IndexOperation.CREATE_INDEX)


STATISTICS_OPERATIONS: Final[frozenset] = frozenset({
    IndexOperation.UPDATE_STATISTICS_FULL,
    IndexOperation.UPDATE_STATISTICS_RESAMPLE,
    IndexOperation.UPDATE_STATISTICS_SAMPLE,
})

DESTRUCTIVE_OPERATIONS: Final[frozenset] = frozenset({
    IndexOperation.DISABLE_INDEX,
    IndexOperation.DROP_INDEX,
    IndexOperation.DROP_TABLE,
})

REBUILD_OPERATIONS: Final[frozenset] = frozenset({
    IndexOperation.REBUILD,
    IndexOperation.REBUILD_ONLINE,
    IndexOperation.REBUILD_NONE,
    IndexOperation.REBUILD_ROW,
    IndexOperation.REBUILD_PAGE,
})


class ScanMode(str, Enum):
    """sys.dm_db_index_physical_stats scan modes"""
    LIMITED = "LIMITED"
    SAMPLED = "SAMPLED"
    DETAILED = "DETAILED"


class AbortAfterWait(str, Enum):
    """WAIT_AT_LOW_PRIORITY abort behaviour"""
    NONE = "NONE"
    SELF = "SELF"
    BLOCKERS = "BLOCKERS"


class AuthMethod(str, Enum):
    """Authentication methods"""
    SQL_SERVER = "sql_server"
    WINDOWS = "windows"


class ServerVersion(IntEnum):
    """SQL Server major versions"""
    SQL2008 = 10
    SQL2012 = 11
    SQL2014 = 12
    SQL2016 = 13
    SQL2017 = 14
    SQL2019 = 15
    SQL2022 = 16


# =============================================================================
# SQL Server Version Mapping
# =============================================================================

SQL_SERVER_VERSIONS: Final[dict[int, str]] = {
    16: "SQL Server 2022",
    15: "SQL Server 2019",
    14: "SQL Server 2017",
    13: "SQL Server 2016",
    12: "SQL Server 2014",
    11: "SQL Server 2012",
    10: "SQL Server 2008/2008 R2",
}

# Editions that ship online index operations and (pre-2016 SP1) compression
ENTERPRISE_EDITION_MARKERS: Final[tuple[str, ...]] = ("Enterprise", "Developer", "Evaluation")
