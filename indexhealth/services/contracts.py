"""
Collaborator contracts for the index health engine

The engine consumes these; the SQL Server implementations live in
catalog_service and maintenance_service, and tests provide in-memory ones.
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any

from indexhealth.analysis.predicate_builder import FilterPredicate
from indexhealth.core.constants import IndexOperation
from indexhealth.models.index_object import IndexObject
from indexhealth.models.server_capabilities import ServerCapabilities


class ICapabilityProvider(ABC):
    """Supplies server capabilities, once per session"""

    @abstractmethod
    def fetch_capabilities(self) -> ServerCapabilities:
        ...


class ICatalogFetcher(ABC):
    """Returns scanned objects with every intrinsic field populated"""

    @abstractmethod
    def fetch(self, predicate: FilterPredicate, capabilities: ServerCapabilities) -> List[IndexObject]:
        ...


class IOperationExecutor(ABC):
    """Runs one operation against the server"""

    @abstractmethod
    def execute(self, ix: IndexObject, operation: IndexOperation,
                timeout: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Returns:
            Post-operation metrics rows (empty for operations that report none)

        Raises:
            ExecutionError: The operation failed on the server
        """
        ...
