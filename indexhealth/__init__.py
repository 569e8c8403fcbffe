"""
SQL Index Health - index fragmentation and redundancy analysis for SQL Server
"""

__version__ = "1.0.0"
__app_name__ = "SQL Index Health"
