"""
Analysis module - index health decision engine
"""

from indexhealth.analysis.predicate_builder import (
    FilterPredicate,
    ObjectMatchers,
    SchemaMatchers,
    build_predicate,
    validate_criteria,
    mb_to_pages,
)
from indexhealth.analysis.health_classifier import (
    ClassificationSummary,
    classify,
)
from indexhealth.analysis.operation_selector import (
    select_operation,
    assign_operations,
    allows_online_rebuild,
    allows_reorganize,
    allows_compression,
)
from indexhealth.analysis.result_reconciler import (
    reconcile,
    record_failure,
    single_row,
)

__all__ = [
    "FilterPredicate",
    "ObjectMatchers",
    "SchemaMatchers",
    "build_predicate",
    "validate_criteria",
    "mb_to_pages",
    "ClassificationSummary",
    "classify",
    "select_operation",
    "assign_operations",
    "allows_online_rebuild",
    "allows_reorganize",
    "allows_compression",
    "reconcile",
    "record_failure",
    "single_row",
]
