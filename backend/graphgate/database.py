"""
Graph store adapter for GraphGate
Neo4j async driver with an explicit open/close lifecycle

The driver (and its connection pool) is owned by whoever constructs the
GraphStore, normally the application lifespan. Every operation acquires its
own session and releases it on every exit path; each call is bounded by
``query_timeout_seconds`` so a slow or unreachable store never suspends a
request indefinitely.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from neo4j import READ_ACCESS, WRITE_ACCESS, AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable, SessionExpired

from .config import Settings, get_settings
from .services.authorization.exceptions import GraphStoreError, StoreUnavailableError
from .services.prometheus_metrics import get_metrics_instance

logger = logging.getLogger(__name__)


class GraphStore:
    """
    Read/write query interface over a Neo4j database.

    Example:
        store = GraphStore.from_settings(get_settings())
        await store.open()
        try:
            rows = await store.execute_read("MATCH (r:Role) RETURN r.name AS name")
        finally:
            await store.close()
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: Optional[str] = None,
        query_timeout_seconds: float = 2.0,
        max_connection_pool_size: int = 50,
        connection_acquisition_timeout: float = 5.0,
    ):
        self.uri = uri
        self.database = database
        self.query_timeout_seconds = query_timeout_seconds
        self._auth = (user, password)
        self._driver_kwargs = {
            "max_connection_pool_size": max_connection_pool_size,
            "connection_acquisition_timeout": connection_acquisition_timeout,
        }
        self._driver: Optional[AsyncDriver] = None
        self.metrics = get_metrics_instance()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "GraphStore":
        settings = settings or get_settings()
        return cls(
            uri=settings.neo4j_uri,
            user=settings.neo4j_user,
            password=settings.neo4j_password,
            database=settings.neo4j_database,
            query_timeout_seconds=settings.query_timeout_seconds,
            max_connection_pool_size=settings.neo4j_max_pool_size,
            connection_acquisition_timeout=settings.neo4j_connection_acquisition_timeout,
        )

    @property
    def is_open(self) -> bool:
        return self._driver is not None

    async def open(self) -> None:
        """Create the driver and its connection pool. Idempotent."""
        if self._driver is not None:
            return
        self._driver = AsyncGraphDatabase.driver(self.uri, auth=self._auth, **self._driver_kwargs)
        logger.info(f"Graph store driver created for {self.uri} (database={self.database})")

    async def close(self) -> None:
        """Close the driver and release all pooled connections."""
        if self._driver is None:
            return
        driver, self._driver = self._driver, None
        await driver.close()
        logger.info("Graph store driver closed")

    async def verify_connectivity(self) -> bool:
        try:
            rows = await self.execute_read("RETURN 1 AS ok")
            return bool(rows and rows[0].get("ok") == 1)
        except GraphStoreError as e:
            logger.warning(f"Graph store connectivity check failed: {e}")
            return False

    async def __aenter__(self) -> "GraphStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def execute_read(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a read-only traversal and return its rows as dicts."""
        return await self._execute(query, params or {}, mode="read")

    async def execute_write(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a write transaction and return its rows as dicts."""
        return await self._execute(query, params or {}, mode="write")

    async def _execute(self, query: str, params: Dict[str, Any], mode: str) -> List[Dict[str, Any]]:
        if self._driver is None:
            self.metrics.record_graph_store_error(mode, "not_open")
            raise StoreUnavailableError("Graph store is not open", mode=mode)

        access_mode = READ_ACCESS if mode == "read" else WRITE_ACCESS
        start_time = time.time()

        try:
            async with self._driver.session(database=self.database, default_access_mode=access_mode) as session:
                rows = await asyncio.wait_for(
                    self._run(session, query, params, mode),
                    timeout=self.query_timeout_seconds,
                )
        except asyncio.TimeoutError as e:
            self.metrics.record_graph_store_error(mode, "timeout")
            raise StoreUnavailableError(
                f"Graph {mode} timed out after {self.query_timeout_seconds}s", mode=mode
            ) from e
        except (ServiceUnavailable, SessionExpired) as e:
            self.metrics.record_graph_store_error(mode, "unavailable")
            raise StoreUnavailableError(f"Graph store unavailable: {e}", mode=mode) from e
        except (Neo4jError, DriverError) as e:
            self.metrics.record_graph_store_error(mode, "query")
            raise GraphStoreError(f"Graph {mode} failed: {e}", mode=mode) from e
        finally:
            self.metrics.record_graph_query(mode, time.time() - start_time)

        return rows

    @staticmethod
    async def _run(session, query: str, params: Dict[str, Any], mode: str) -> List[Dict[str, Any]]:
        async def work(tx):
            result = await tx.run(query, params)
            return await result.data()

        if mode == "read":
            return await session.execute_read(work)
        return await session.execute_write(work)
