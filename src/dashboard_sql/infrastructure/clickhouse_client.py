"""
ClickHouse client over the HTTP interface.

This module provides a minimal async client for the ClickHouse HTTP
interface (port 8123, or 8443 for TLS) built on httpx.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..config import ClickHouseConfig
from ..domain.errors import ClickHouseConnectionError, ClickHouseQueryError
from ..domain.types import Rows
from ..utils.logging import get_module_logger
from ..utils.sql_text import is_plain_identifier, is_read_only_statement, strip_terminators
from ..utils.tracing import current_trace_id


logger = get_module_logger()

READ_ONLY_REJECTION = "Only SELECT queries are allowed"


@dataclass(frozen=True)
class StoreQueryResult:
    """Rows of a successful query, or the store's error text."""

    rows: Rows = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ClickHouseClient:
    """
    Minimal async ClickHouse client for read-only queries and introspection.

    This is a thin infrastructure layer: it sends SQL, returns rows and
    reports the server's error text verbatim. Statement construction and
    interpretation belong to the Repository layer.

    Core Features:
    - Read-only query execution (SELECT / WITH only, readonly=1 on the server)
    - Table listing via system.tables and column listing via DESCRIBE TABLE
    - Connection pooling through httpx.AsyncClient
    - Structured logging with trace IDs
    - Async-safe for concurrent requests

    Usage:
        client = ClickHouseClient(config)
        await client.connect()

        result = await client.run_read_only_query("SELECT count() FROM daily_worker_summary")
        if result.ok:
            print(result.rows)

        await client.close()
    """

    def __init__(self, config: ClickHouseConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize ClickHouse client with configuration.

        Args:
            config: ClickHouse configuration
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._is_connected = False

        logger.info(
            "ClickHouseClient initialized",
            url=config.url,
            database=config.database,
            enforce_read_only=config.enforce_read_only
        )

    async def connect(self) -> None:
        """
        Create the HTTP client and verify the server answers.

        Raises:
            ClickHouseConnectionError: If the server is unreachable or rejects the credentials
        """
        if self._is_connected:
            logger.warning("ClickHouse client already connected")
            return

        trace_id = current_trace_id()
        logger.info("Initializing ClickHouse client", trace_id=trace_id)

        try:
            self._client = httpx.AsyncClient(
                base_url=self.config.url,
                headers={
                    "X-ClickHouse-User": self.config.username,
                    "X-ClickHouse-Key": self.config.password,
                },
                timeout=httpx.Timeout(
                    connect=self.config.connect_timeout_seconds,
                    read=self.config.query_timeout_seconds,
                    write=self.config.query_timeout_seconds,
                    pool=self.config.pool_timeout_seconds
                ),
                limits=httpx.Limits(
                    max_connections=self.config.max_connections,
                    max_keepalive_connections=self.config.max_keepalive_connections
                ),
                transport=self._transport,
            )

            await self._test_connection()

            self._is_connected = True
            logger.info("ClickHouse client initialized successfully", trace_id=trace_id)

        except Exception as e:
            if self._client:
                await self._client.aclose()
                self._client = None
            error_msg = f"Failed to initialize ClickHouse client: {e}"
            logger.error(error_msg, error_type=type(e).__name__, trace_id=trace_id)
            raise ClickHouseConnectionError(error_msg) from e

    async def _test_connection(self) -> None:
        """Ping the server, then run SELECT version() to check the credentials."""
        trace_id = current_trace_id()
        if not self._client:
            raise ClickHouseConnectionError("HTTP client not initialized")

        ping = await self._client.get("/ping")
        if ping.status_code != 200:
            raise ClickHouseConnectionError(f"ClickHouse ping failed: {ping.text.strip()}")

        response = await self._post("SELECT version() AS version")
        if response.status_code != 200:
            raise ClickHouseConnectionError(f"ClickHouse rejected the connection: {response.text.strip()}")

        version = self._parse_rows(response)[0].get("version")
        logger.info("ClickHouse connection test successful", server_version=version, trace_id=trace_id)

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        trace_id = current_trace_id()
        logger.info("Closing ClickHouse client", trace_id=trace_id)

        if self._client:
            await self._client.aclose()
            logger.info("ClickHouse client closed", trace_id=trace_id)

        self._is_connected = False
        self._client = None

    def is_connected(self) -> bool:
        """Check if ClickHouse client is connected."""
        return self._is_connected and self._client is not None

    async def ping(self) -> bool:
        """True when GET /ping answers 200."""
        if not self._client:
            return False
        try:
            response = await self._client.get("/ping")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the ClickHouse connection.

        Returns:
            Dictionary with status and connection details

        Example:
            {
                "status": "healthy",
                "connected": True,
                "url": "http://localhost:8123",
                "database": "default"
            }
        """
        trace_id = current_trace_id()

        if not self.is_connected():
            return {
                "status": "unhealthy",
                "connected": False,
                "error": "ClickHouse client not connected"
            }

        if not await self.ping():
            logger.error("ClickHouse health check failed", trace_id=trace_id)
            return {
                "status": "unhealthy",
                "connected": True,
                "error": "ClickHouse did not answer /ping"
            }

        return {
            "status": "healthy",
            "connected": True,
            "url": self.config.url,
            "database": self.config.database
        }

    # =========================================================================
    # Queries
    # =========================================================================

    async def run_read_only_query(self, sql: str) -> StoreQueryResult:
        """
        Run one read-only statement.

        The statement is refused locally unless it starts with SELECT or WITH,
        and sent with readonly=1 when enforce_read_only is set. Server errors
        come back as StoreQueryResult.error, verbatim.

        Args:
            sql: Statement without a FORMAT clause

        Returns:
            StoreQueryResult with rows or error text

        Raises:
            ClickHouseConnectionError: If the client is not connected
        """
        if not self.is_connected():
            raise ClickHouseConnectionError("ClickHouse client is not connected")

        trace_id = current_trace_id()

        if not is_read_only_statement(sql):
            logger.warning("Refused non read-only statement", sql=sql, trace_id=trace_id)
            return StoreQueryResult(error=READ_ONLY_REJECTION)

        logger.info("Executing ClickHouse query", sql_length=len(sql), trace_id=trace_id)
        logger.debug("ClickHouse query text", sql=sql, trace_id=trace_id)

        try:
            response = await self._post(sql, read_only=self.config.enforce_read_only)
        except httpx.HTTPError as e:
            logger.error(
                "ClickHouse request failed",
                error=str(e),
                error_type=type(e).__name__,
                trace_id=trace_id
            )
            return StoreQueryResult(error=str(e) or type(e).__name__)

        if response.status_code != 200:
            error_text = response.text.strip()
            logger.info(
                "ClickHouse returned an error",
                status_code=response.status_code,
                error=error_text,
                trace_id=trace_id
            )
            return StoreQueryResult(error=error_text)

        try:
            rows = self._parse_rows(response)
        except ValueError as e:
            return StoreQueryResult(error=f"Invalid JSON response from ClickHouse: {e}")

        logger.info("ClickHouse query successful", row_count=len(rows), trace_id=trace_id)
        return StoreQueryResult(rows=rows)

    async def list_tables(self) -> List[Dict[str, Any]]:
        """
        List tables of the configured database from system.tables.

        Raises:
            ClickHouseConnectionError: If the client is not connected
            ClickHouseQueryError: If the query fails
        """
        sql = (
            "SELECT name, engine, total_rows, total_bytes "
            "FROM system.tables "
            "WHERE database = {database:String} "
            "ORDER BY name"
        )
        return await self._introspect(sql, params={"param_database": self.config.database})

    async def describe_table(self, table_name: str) -> List[Dict[str, Any]]:
        """
        Column list of one table via DESCRIBE TABLE.

        Raises:
            ClickHouseQueryError: If the name is not a plain identifier or the query fails
        """
        if not is_plain_identifier(table_name):
            raise ClickHouseQueryError(
                f"Invalid table name: {table_name!r}",
                details={"table_name": table_name}
            )
        return await self._introspect(f"DESCRIBE TABLE {table_name}")

    # =========================================================================
    # Internals
    # =========================================================================

    async def _introspect(self, sql: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        if not self.is_connected():
            raise ClickHouseConnectionError("ClickHouse client is not connected")

        trace_id = current_trace_id()
        try:
            response = await self._post(sql, read_only=True, extra_params=params)
        except httpx.HTTPError as e:
            raise ClickHouseQueryError(f"ClickHouse request failed: {e}") from e

        if response.status_code != 200:
            error_text = response.text.strip()
            logger.error("ClickHouse introspection failed", sql=sql, error=error_text, trace_id=trace_id)
            raise ClickHouseQueryError(error_text, details={"sql": sql})

        try:
            return self._parse_rows(response)
        except ValueError as e:
            raise ClickHouseQueryError(f"Invalid JSON response from ClickHouse: {e}") from e

    async def _post(
        self,
        sql: str,
        read_only: bool = True,
        extra_params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        if not self._client:
            raise ClickHouseConnectionError("HTTP client not initialized")

        params: Dict[str, str] = {"database": self.config.database}
        if read_only:
            params["readonly"] = "1"
        if extra_params:
            params.update(extra_params)

        return await self._client.post(
            "/",
            params=params,
            content=f"{strip_terminators(sql)} FORMAT JSON".encode("utf-8"),
        )

    @staticmethod
    def _parse_rows(response: httpx.Response) -> List[Dict[str, Any]]:
        """Extract the `data` array of a FORMAT JSON response."""
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError("expected a JSON object")
        return list(body.get("data") or [])
