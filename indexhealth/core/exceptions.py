"""
Custom exceptions for SQL Index Health
"""

from typing import Optional, Any


class IndexHealthError(Exception):
    """Base exception for all application errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(IndexHealthError):
    """Configuration related errors"""
    pass


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(IndexHealthError):
    """Base database error"""
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str, server: Optional[str] = None,
                 database: Optional[str] = None, **kwargs):
        details = {"server": server, "database": database, **kwargs}
        super().__init__(message, details)


class ConnectionTimeoutError(ConnectionError):
    """Connection timed out"""
    pass


class AuthenticationError(ConnectionError):
    """Authentication failed"""
    pass


class QueryExecutionError(DatabaseError):
    """Query execution failed"""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        details = {"query": query[:500] if query else None, **kwargs}
        super().__init__(message, details)


class QueryTimeoutError(QueryExecutionError):
    """Query execution timed out"""
    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(IndexHealthError):
    """Filter criteria or settings are malformed; raised before any fetch"""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        details = {"field": field, "value": value} if field else None
        super().__init__(message, details)
        self.field = field
        self.value = value


# =============================================================================
# Maintenance Errors
# =============================================================================


class MaintenanceError(IndexHealthError):
    """Base error for maintenance operations"""
    pass


class ExecutionError(MaintenanceError):
    """One maintenance operation failed against the server"""

    def __init__(self, message: str, index: Optional[str] = None,
                 operation: Optional[str] = None, **kwargs):
        details = {"index": index, "operation": operation, **kwargs}
        super().__init__(message, details)
        self.index = index
        self.operation = operation


class InconsistentResultError(MaintenanceError):
    """Expected exactly one metrics row, got something else"""

    def __init__(self, row_count: int, index: Optional[str] = None):
        message = f"Expected exactly one result row, got {row_count}"
        super().__init__(message, {"row_count": row_count, "index": index})
        self.row_count = row_count


# =============================================================================
# Task Errors
# =============================================================================


class TaskError(IndexHealthError):
    """Batch task errors"""
    pass


class TaskCancelledError(TaskError):
    """Task was cancelled before it started"""
    pass
