"""
Index Health Service - scan, classify and plan maintenance for one database
"""

from typing import Optional, List, Dict
from dataclasses import dataclass, field

from indexhealth.analysis.health_classifier import classify, ClassificationSummary
from indexhealth.analysis.operation_selector import assign_operations
from indexhealth.analysis.predicate_builder import build_predicate, FilterPredicate
from indexhealth.core.constants import IndexOperation, WarningType
from indexhealth.core.logger import get_logger
from indexhealth.models.filter_criteria import FilterCriteria, MaintenancePolicy
from indexhealth.models.index_object import IndexObject
from indexhealth.models.server_capabilities import ServerCapabilities
from indexhealth.services.contracts import ICatalogFetcher, ICapabilityProvider

logger = get_logger('services.index_health')


@dataclass
class ScanResult:
    """Classified and planned snapshot of one scan"""
    predicate: FilterPredicate
    capabilities: ServerCapabilities
    indexes: List[IndexObject] = field(default_factory=list)
    classification: ClassificationSummary = field(default_factory=ClassificationSummary)
    operations: Dict[IndexOperation, int] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return sum(ix.pages_count for ix in self.indexes)

    def with_warning(self, warning: WarningType) -> List[IndexObject]:
        return [ix for ix in self.indexes if ix.warning == warning]


class IndexHealthService:
    """
    Orchestrates one scan: the predicate is validated before anything is
    fetched, then the snapshot is classified and an operation is selected
    for every object.
    """

    def __init__(self, catalog: ICatalogFetcher, capabilities: Optional[ServerCapabilities] = None):
        self.catalog = catalog
        self._capabilities = capabilities

    @property
    def capabilities(self) -> ServerCapabilities:
        if self._capabilities is None:
            if not isinstance(self.catalog, ICapabilityProvider):
                raise ValueError("Server capabilities are required for this catalog")
            self._capabilities = self.catalog.fetch_capabilities()
            logger.info(f"Server: {self._capabilities.get_version_string()}")
        return self._capabilities

    def scan(self, criteria: FilterCriteria, policy: MaintenancePolicy) -> ScanResult:
        """
        Raises:
            ValidationError: Malformed criteria; nothing is fetched
        """
        predicate = build_predicate(criteria)
        capabilities = self.capabilities

        indexes = self.catalog.fetch(predicate, capabilities)
        classification = classify(indexes)
        operations = assign_operations(indexes, policy)

        logger.info(
            f"Scan complete: {len(indexes)} objects, "
            f"{classification.total} with warnings"
        )
        return ScanResult(
            predicate=predicate,
            capabilities=capabilities,
            indexes=indexes,
            classification=classification,
            operations=operations,
        )
