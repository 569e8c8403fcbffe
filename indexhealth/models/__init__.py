"""
Data models module
"""

from indexhealth.models.index_object import IndexObject, split_columns
from indexhealth.models.server_capabilities import ServerCapabilities
from indexhealth.models.filter_criteria import (
    FilterCriteria,
    MaintenancePolicy,
    DEFAULT_SCAN_KINDS,
)

__all__ = [
    "IndexObject",
    "split_columns",
    "ServerCapabilities",
    "FilterCriteria",
    "MaintenancePolicy",
    "DEFAULT_SCAN_KINDS",
]
