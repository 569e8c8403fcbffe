"""
SQL Server version detection and maintenance capability flags
"""

from indexhealth.core.logger import get_logger
from indexhealth.models.server_capabilities import ServerCapabilities

logger = get_logger('database.version')


class VersionDetector:
    """
    Detects SQL Server version, edition and the maintenance features the
    edition allows (online rebuild, compression, columnstore)
    """

    VERSION_QUERY = """
    SELECT
        CAST(SERVERPROPERTY('ProductVersion') AS NVARCHAR(128)) AS product_version,
        CAST(SERVERPROPERTY('ProductLevel') AS NVARCHAR(128)) AS product_level,
        CAST(SERVERPROPERTY('Edition') AS NVARCHAR(128)) AS edition,
        CAST(SERVERPROPERTY('EngineEdition') AS INT) AS engine_edition,
        CAST(ISNULL(IS_SRVROLEMEMBER(N'sysadmin'), 0) AS BIT) AS is_sysadmin
    """

    @staticmethod
    def parse_major_version(product_version: str) -> int:
        """'15.0.2000.5' -> 15"""
        try:
            return int(str(product_version or "0").split('.')[0])
        except ValueError:
            return 0

    @classmethod
    def detect(cls, connection) -> ServerCapabilities:
        """
        Detect server capabilities from a database connection

        Args:
            connection: DatabaseConnection instance

        Returns:
            ServerCapabilities for the session; called once per connection
        """
        results = connection.execute_query(cls.VERSION_QUERY)

        if not results:
            logger.warning("Could not detect SQL Server version; assuming no optional features")
            return ServerCapabilities(major_version=0)

        row = results[0]
        capabilities = ServerCapabilities.from_server_properties(
            major_version=cls.parse_major_version(row.get('product_version')),
            edition=str(row.get('edition') or ''),
            engine_edition=int(row.get('engine_edition') or 0),
            product_level=str(row.get('product_level') or ''),
            is_sysadmin=bool(row.get('is_sysadmin')),
        )

        logger.info(f"Detected: {capabilities.get_version_string()}")
        logger.info(
            f"Online rebuild: {capabilities.is_online_rebuild_available}, "
            f"compression: {capabilities.is_compression_available}, "
            f"columnstore: {capabilities.is_columnstore_available}"
        )
        return capabilities
