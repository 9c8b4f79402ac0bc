"""
Graph database client for Cloud Atlas.

Owns the single long-lived Neo4j driver shared by every tool.  Each query
opens its own session, runs, and closes the session before returning, so no
session ever outlives the call that opened it.  Driver-native values (nodes,
relationships, paths, temporal types) are flattened into plain Python values
before they leave this module.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any

from neo4j import GraphDatabase
from neo4j.exceptions import DriverError, Neo4jError
from neo4j.graph import Node, Path, Relationship

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class GraphConnectionError(ConnectionError):
    """Raised when the driver cannot be created or the handshake fails."""


class QueryExecutionError(RuntimeError):
    """Raised when a single query fails.  The connection stays usable."""


class InvalidArgumentError(ValueError):
    """Raised when a caller-supplied value cannot be used at all."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

RISK_LEVELS = ("LOW", "MEDIUM", "HIGH", "CRITICAL")

HANDSHAKE_QUERY = "RETURN 1"


@dataclass(frozen=True)
class GraphSettings:
    uri: str = "bolt://localhost:7687"
    username: str = "neo4j"
    password: str = "password"
    database: str | None = None


@dataclass
class QueryResult:
    """Uniform envelope returned by every catalog query."""

    summary: str
    data: list = field(default_factory=list)
    risk_level: str | None = None  # LOW | MEDIUM | HIGH | CRITICAL

    def __post_init__(self) -> None:
        if self.risk_level is not None and self.risk_level not in RISK_LEVELS:
            raise ValueError(f"Invalid risk level: {self.risk_level}")

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "summary": self.summary,
            "data": [
                item.to_dict() if hasattr(item, "to_dict") else item
                for item in self.data
            ],
        }
        if self.risk_level is not None:
            out["riskLevel"] = self.risk_level
        return out


# ---------------------------------------------------------------------------
# Value normalization
# ---------------------------------------------------------------------------

def to_plain(value: Any) -> Any:
    """Recursively convert a driver-native value into plain Python data.

    Nodes and relationships are replaced by their property maps (never the
    opaque driver handle), paths by their node and relationship property
    maps, and temporal values by ISO-8601 strings.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (Node, Relationship)):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, Path):
        return {
            "nodes": [to_plain(n) for n in value.nodes],
            "relationships": [to_plain(r) for r in value.relationships],
        }
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(item) for item in value]
    if isinstance(value, bytes):
        return "<binary data omitted>"
    # neo4j.time.DateTime / Date / Time / Duration
    if hasattr(value, "iso_format"):
        return value.iso_format()
    return str(value)


def record_to_dict(record: Any) -> dict:
    """Convert one driver record into a plain ``{key: value}`` dict."""
    return {key: to_plain(record[key]) for key in record.keys()}


# ---------------------------------------------------------------------------
# GraphClient
# ---------------------------------------------------------------------------

class GraphClient:
    """Neo4j-backed, read-only access to the infrastructure graph.

    Construct once at process start and pass the instance to every component
    that queries the graph.
    """

    def __init__(self, settings: GraphSettings | None = None) -> None:
        self._settings = settings or GraphSettings()
        self._driver = None
        self._init_lock = threading.Lock()
        self._init_done = False
        self._init_error: GraphConnectionError | None = None

    @property
    def settings(self) -> GraphSettings:
        return self._settings

    @property
    def connected(self) -> bool:
        return self._driver is not None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """Create the driver and run the handshake query.

        Always attempts a fresh connection and clears any memoized failure
        from ``ensure_connected()``.  Raises ``GraphConnectionError`` on
        failure; the caller decides whether to try again.
        """
        with self._init_lock:
            self._connect_locked()

    def ensure_connected(self) -> None:
        """Connect exactly once per lifecycle.

        Concurrent callers before the first attempt completes wait on the same
        lock and observe the same outcome.  A failed attempt is remembered and
        re-raised until ``connect()`` is called explicitly.
        """
        if self._init_done and self._init_error is None:
            return
        with self._init_lock:
            if self._init_done:
                if self._init_error is not None:
                    raise self._init_error
                return
            self._connect_locked()

    def _connect_locked(self) -> None:
        self._close_driver()
        settings = self._settings
        driver = None
        try:
            driver = GraphDatabase.driver(
                settings.uri,
                auth=(settings.username, settings.password),
            )
            with driver.session(**self._session_kwargs()) as session:
                session.run(HANDSHAKE_QUERY).consume()
        except (DriverError, Neo4jError, OSError, ValueError) as exc:
            if driver is not None:
                driver.close()
            error = GraphConnectionError(
                f"Failed to connect to graph database at {settings.uri}: {exc}"
            )
            self._init_done = True
            self._init_error = error
            logger.warning("Graph connection failed (%s): %s", settings.uri, exc)
            raise error from exc

        self._driver = driver
        self._init_done = True
        self._init_error = None
        logger.info("Connected to graph database at %s", settings.uri)

    def disconnect(self) -> None:
        """Close the driver.  Safe to call when not connected."""
        with self._init_lock:
            was_connected = self._driver is not None
            self._close_driver()
            self._init_done = False
            self._init_error = None
        if was_connected:
            logger.info("Disconnected from graph database")

    def _close_driver(self) -> None:
        if self._driver is not None:
            try:
                self._driver.close()
            finally:
                self._driver = None

    def _session_kwargs(self) -> dict:
        if self._settings.database:
            return {"database": self._settings.database}
        return {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def run(self, query: str, parameters: dict | None = None) -> list[dict]:
        """Run *query* in a fresh session and return plain row dicts."""
        driver = self._driver
        if driver is None:
            raise GraphConnectionError("Graph client is not connected. Call connect() first.")

        try:
            with driver.session(**self._session_kwargs()) as session:
                result = session.run(query, parameters or {})
                return [record_to_dict(record) for record in result]
        except (DriverError, Neo4jError) as exc:
            logger.warning("Query execution failed: %s", exc)
            raise QueryExecutionError(str(exc)) from exc

    def execute_query(
        self,
        query: str,
        summary: str,
        risk_level: str | None = None,
        parameters: dict | None = None,
    ) -> QueryResult:
        """Run *query* and wrap the rows in a ``QueryResult``."""
        rows = self.run(query, parameters)
        return QueryResult(summary=summary, data=rows, risk_level=risk_level)

    def node_count(self) -> int:
        rows = self.run("MATCH (n) RETURN count(n) AS nodeCount")
        if not rows:
            return 0
        return int(rows[0].get("nodeCount") or 0)

    def test_connection(self) -> bool:
        """Connect and count nodes.  Returns False instead of raising."""
        try:
            self.connect()
            self.node_count()
            return True
        except (GraphConnectionError, QueryExecutionError) as exc:
            logger.warning("Connection test failed: %s", exc)
            return False
