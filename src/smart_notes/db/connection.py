"""
============================================================================
Smart Notes - Neo4j Connection Manager
============================================================================
Connection pooling with retry logic for the graph-backed note store
============================================================================
"""

import logging
from contextlib import contextmanager
from typing import Any, Generator

from neo4j import Driver, GraphDatabase, Session
from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Neo4jSettings

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (ServiceUnavailable, TransientError, SessionExpired)

_retry_transient = retry(
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class Neo4jConnection:
    """
    Pooled Neo4j driver wrapper. Reads and writes retry on transient
    cluster errors (3 attempts, exponential backoff).

    Example:
        ```python
        conn = Neo4jConnection(settings.neo4j)

        rows = conn.execute_read(
            "MATCH (n:Note {id: $id}) RETURN n",
            parameters={"id": note_id},
        )
        ```
    """

    def __init__(self, settings: Neo4jSettings):
        """
        Initialize Neo4j connection manager.

        Args:
            settings: Neo4j connection settings
        """
        self.settings = settings
        self._driver: Driver | None = None
        self._connect()

    def _connect(self) -> None:
        """Establish connection to Neo4j database."""
        config: dict[str, Any] = {
            "max_connection_pool_size": self.settings.max_connection_pool_size,
            "connection_timeout": self.settings.connection_timeout,
            "max_transaction_retry_time": self.settings.max_transaction_retry_time,
        }
        # Secure URI schemes configure encryption themselves
        if "+s" not in self.settings.uri:
            config["encrypted"] = self.settings.encrypted

        try:
            self._driver = GraphDatabase.driver(
                self.settings.uri,
                auth=(
                    self.settings.username,
                    self.settings.password.get_secret_value(),
                ),
                **config,
            )

            self._driver.verify_connectivity()
            logger.info(
                f"Successfully connected to Neo4j at {self.settings.uri}, "
                f"database: {self.settings.database}"
            )

        except ServiceUnavailable as e:
            logger.error(f"Failed to connect to Neo4j: {e}")
            raise
        except Exception as e:
            logger.error(f"Unexpected error connecting to Neo4j: {e}")
            raise

    @property
    def driver(self) -> Driver:
        """Get the Neo4j driver instance."""
        if self._driver is None:
            raise RuntimeError("Neo4j driver is closed")
        return self._driver

    @contextmanager
    def session(self, **kwargs: Any) -> Generator[Session, None, None]:
        """Context manager for Neo4j sessions on the configured database."""
        session_obj = self.driver.session(database=self.settings.database, **kwargs)
        try:
            yield session_obj
        finally:
            session_obj.close()

    @_retry_transient
    def execute_read(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a read query with automatic retry logic.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records as dictionaries
        """
        with self.session() as session:
            result = session.run(query, parameters or {})
            return [record.data() for record in result]

    @_retry_transient
    def execute_write(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a write query in a managed transaction with automatic retry logic.

        Args:
            query: Cypher query string
            parameters: Query parameters

        Returns:
            List of result records as dictionaries
        """
        with self.session() as session:
            return session.execute_write(
                lambda tx: [record.data() for record in tx.run(query, parameters or {})]
            )

    def health_check(self) -> dict[str, Any]:
        """
        Perform health check on Neo4j connection.

        Returns:
            Health status dictionary with connection info
        """
        try:
            with self.session() as session:
                result = session.run(
                    "CALL dbms.components() YIELD versions RETURN versions"
                )
                versions = result.single()["versions"]
                neo4j_version = versions[0] if versions else "unknown"

                count_result = session.run("MATCH (n:Note) RETURN count(n) AS notes")
                note_count = count_result.single()["notes"]

                return {
                    "status": "healthy",
                    "version": neo4j_version,
                    "database": self.settings.database,
                    "uri": self.settings.uri,
                    "note_count": note_count,
                }

        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    def close(self) -> None:
        """Close the Neo4j driver and release all connections."""
        if self._driver:
            self._driver.close()
            logger.info("Neo4j connection closed")
            self._driver = None

    def __enter__(self) -> "Neo4jConnection":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
