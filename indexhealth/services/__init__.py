"""
Services module - scan and maintenance workflows
"""

from indexhealth.services.contracts import (
    ICapabilityProvider,
    ICatalogFetcher,
    IOperationExecutor,
)
from indexhealth.services.catalog_service import CatalogService, missing_index_name
from indexhealth.services.index_health_service import IndexHealthService, ScanResult
from indexhealth.services.maintenance_service import (
    MaintenanceService,
    SqlServerExecutor,
    BatchSummary,
    OperationOutcome,
)

__all__ = [
    "ICapabilityProvider",
    "ICatalogFetcher",
    "IOperationExecutor",
    "CatalogService",
    "missing_index_name",
    "IndexHealthService",
    "ScanResult",
    "MaintenanceService",
    "SqlServerExecutor",
    "BatchSummary",
    "OperationOutcome",
]
