"""
SQL Server connectivity

One pooled SQLAlchemy engine over pyodbc per scanned database. Catalog
reads use named binds through SQLAlchemy; maintenance batches are sent
through the raw pyodbc cursor because they mix DDL with a trailing
SELECT and need autocommit.
"""

from typing import Optional, List, Dict, Any, Sequence
from urllib.parse import quote_plus

import pyodbc
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError

from indexhealth.core.config import ConnectionSettings, DatabaseSettings
from indexhealth.core.constants import ODBC_DRIVER_PREFERENCES, AuthMethod
from indexhealth.core.logger import get_logger
from indexhealth.core.exceptions import (
    ConnectionError,
    ConnectionTimeoutError,
    AuthenticationError,
    QueryExecutionError,
    QueryTimeoutError,
)

logger = get_logger('database.connection')

IDENTITY_QUERY = """
SELECT
    CAST(SERVERPROPERTY('ServerName') AS NVARCHAR(255)) AS server_name,
    CAST(DB_NAME() AS NVARCHAR(128)) AS database_name
"""


def get_best_odbc_driver() -> Optional[str]:
    """Preferred installed SQL Server driver, or None when there is none"""
    try:
        installed = [d for d in pyodbc.drivers() if 'SQL Server' in d]
    except pyodbc.Error as e:
        logger.error(f"Could not list ODBC drivers: {e}")
        return None

    ranked = [d for d in ODBC_DRIVER_PREFERENCES if d in installed]
    if ranked:
        return ranked[0]
    return installed[0] if installed else None


def _is_timeout(error: Exception) -> bool:
    # HYT00 / HYT01 are the ODBC timeout states
    detail = str(getattr(error, 'orig', error))
    return "HYT0" in detail or "timeout" in detail.lower()


def build_connection_string(profile: ConnectionSettings, options: DatabaseSettings,
                            driver: Optional[str] = None) -> str:
    """ODBC connection string for a profile. Raises if no driver or password is available."""
    driver = driver or profile.driver or get_best_odbc_driver()
    if not driver:
        raise ConnectionError("No SQL Server ODBC driver installed", server=profile.server)

    # A named instance resolves its own port through the browser service
    address = profile.server
    if "\\" not in address or profile.port != 1433:
        address = f"{address},{profile.port}"

    attributes = {
        "DRIVER": f"{{{driver}}}",
        "SERVER": address,
        "DATABASE": profile.database,
        "APP": f"{{{profile.application_name}}}",
        "Connect Timeout": str(options.connection_timeout),
        "Encrypt": "yes" if profile.encrypt else "no",
    }
    if profile.trust_server_certificate:
        attributes["TrustServerCertificate"] = "yes"

    if profile.auth_method == AuthMethod.SQL_SERVER:
        secret = profile.password.get_secret_value()
        if not secret:
            raise AuthenticationError(
                "SQL Server authentication needs INDEXHEALTH_CONNECTION__PASSWORD",
                server=profile.server,
            )
        attributes["UID"] = profile.username
        attributes["PWD"] = "{" + secret.replace("}", "}}") + "}"
    else:
        attributes["Trusted_Connection"] = "yes"

    return ";".join(f"{key}={value}" for key, value in attributes.items())


class DatabaseConnection:
    """
    Connection to one database on one server

    Usable as a context manager; the engine is disposed on exit.
    """

    def __init__(self, profile: ConnectionSettings, options: Optional[DatabaseSettings] = None):
        self.profile = profile
        self.options = options or DatabaseSettings()
        self.server_name: str = ""
        self._database: str = ""
        self._engine: Optional[Engine] = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def database(self) -> str:
        """Database the session actually landed in (DB_NAME())"""
        return self._database or self.profile.database

    def connect(self) -> None:
        """
        Create the engine and verify it with an identity query.

        Raises:
            AuthenticationError: login was rejected
            ConnectionTimeoutError: server did not answer in time
            ConnectionError: anything else
        """
        if self.is_connected:
            return

        engine = create_engine(
            "mssql+pyodbc:///?odbc_connect="
            + quote_plus(build_connection_string(self.profile, self.options)),
            pool_size=self.options.max_pool_size,
            pool_recycle=self.options.pool_recycle,
            pool_pre_ping=True,
            echo=self.options.echo_sql,
        )

        try:
            with engine.connect() as conn:
                identity = conn.execute(text(IDENTITY_QUERY)).mappings().one()
        except (DBAPIError, pyodbc.Error) as e:
            engine.dispose()
            raise self._connect_error(e) from e

        self._engine = engine
        self.server_name = identity['server_name'] or self.profile.server
        self._database = identity['database_name'] or self.profile.database
        logger.info(f"Connected to {self.server_name}/{self._database}")

    def _connect_error(self, error: Exception) -> ConnectionError:
        detail = str(getattr(error, 'orig', error))
        if "Login failed" in detail or "28000" in detail:
            exc_class, prefix = AuthenticationError, "Authentication failed"
        elif _is_timeout(error):
            exc_class, prefix = ConnectionTimeoutError, "Connection timed out"
        else:
            exc_class, prefix = ConnectionError, "Connection failed"
        logger.error(f"{prefix}: {detail}")
        return exc_class(f"{prefix}: {detail}", server=self.profile.server,
                         database=self.profile.database)

    def disconnect(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info(f"Disconnected from {self.server_name or self.profile.server}")

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise QueryExecutionError("Not connected to database")
        return self._engine

    def _timeout(self, timeout: Optional[int]) -> int:
        return int(self.options.command_timeout if timeout is None else timeout)

    def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Run a read query with :named binds and return rows as dicts.
        `timeout` (seconds, 0 = none) is applied as the session LOCK_TIMEOUT.
        """
        engine = self._require_engine()
        seconds = self._timeout(timeout)

        try:
            with engine.connect() as conn:
                if seconds:
                    conn.execute(text(f"SET LOCK_TIMEOUT {seconds * 1000}"))
                result = conn.execute(text(query), params or {})
                if not result.returns_rows:
                    return []
                return [dict(row) for row in result.mappings()]
        except DBAPIError as e:
            if _is_timeout(e):
                raise QueryTimeoutError(f"Query timed out after {seconds}s", query=query) from e
            raise QueryExecutionError(f"Query failed: {e.orig}", query=query) from e

    def execute_batch(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Run a multi-statement batch (qmark params) in autocommit mode.
        Returns the first result set that carries rows, or [].
        """
        engine = self._require_engine()
        seconds = self._timeout(timeout)

        try:
            with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
                dbapi_conn = conn.connection.dbapi_connection
                dbapi_conn.timeout = seconds
                cursor = dbapi_conn.cursor()
                try:
                    cursor.execute("SET NOCOUNT ON")
                    cursor.execute(sql, *params)
                    return _first_rowset(cursor)
                finally:
                    cursor.close()
        except (DBAPIError, pyodbc.Error) as e:
            if _is_timeout(e):
                raise QueryTimeoutError(f"Batch timed out after {seconds}s", query=sql) from e
            raise QueryExecutionError(f"Batch failed: {e}", query=sql) from e

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False


def _first_rowset(cursor) -> List[Dict[str, Any]]:
    # DDL statements leave rowless result sets ahead of the metrics SELECT
    while cursor.description is None:
        if not cursor.nextset():
            return []
    columns = [col[0] for col in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]
