"""
Database module - SQL Server connection and query execution

The pyodbc-backed DatabaseConnection lives in indexhealth.database.connection
and is imported explicitly by the entry point.
"""

from indexhealth.database.version_detector import VersionDetector

__all__ = [
    "VersionDetector",
]
