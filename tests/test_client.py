"""
Tests for cloudgraph.client — connection lifecycle, the initialize-once
guard, per-query session handling and value normalization.

Uses unittest.mock to patch the neo4j driver (no real database).
"""

from __future__ import annotations

import logging
import os
import sys
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from neo4j.exceptions import ServiceUnavailable
from neo4j.graph import Node, Relationship
from neo4j.time import DateTime

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from cloudgraph.client import (
    GraphClient,
    GraphConnectionError,
    GraphSettings,
    QueryExecutionError,
    QueryResult,
    to_plain,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _Result(list):
    """Stands in for neo4j.Result: iterable records plus consume()."""

    def consume(self):
        return None


def _mock_driver(records=None):
    """Return (driver, session) mocks; session.run yields *records*."""
    session = MagicMock()
    session.run.return_value = _Result(records or [])
    driver = MagicMock()
    driver.session.return_value.__enter__.return_value = session
    return driver, session


def _connected_client(records=None):
    driver, session = _mock_driver(records)
    with patch("cloudgraph.client.GraphDatabase.driver", return_value=driver):
        client = GraphClient(GraphSettings(uri="bolt://test:7687", username="u", password="p"))
        client.connect()
    session.run.reset_mock()
    return client, driver, session


def _fake_node(props):
    node = MagicMock(spec=Node)
    node.items.return_value = list(props.items())
    return node


# =========================================================================
# Tests: connect / disconnect
# =========================================================================

class TestConnect:

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_connect_runs_handshake(self, mock_driver_fn):
        driver, session = _mock_driver()
        mock_driver_fn.return_value = driver

        client = GraphClient(GraphSettings(uri="bolt://db:7687", username="neo", password="pw"))
        client.connect()

        mock_driver_fn.assert_called_once_with("bolt://db:7687", auth=("neo", "pw"))
        session.run.assert_called_once_with("RETURN 1")
        assert client.connected

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_handshake_failure_raises_connection_error(self, mock_driver_fn):
        driver, session = _mock_driver()
        session.run.side_effect = ServiceUnavailable("no route")
        mock_driver_fn.return_value = driver

        client = GraphClient()
        with pytest.raises(GraphConnectionError):
            client.connect()

        driver.close.assert_called_once()
        assert not client.connected

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_database_setting_passed_to_sessions(self, mock_driver_fn):
        driver, _ = _mock_driver()
        mock_driver_fn.return_value = driver

        client = GraphClient(GraphSettings(database="cartography"))
        client.connect()

        driver.session.assert_called_with(database="cartography")

    def test_disconnect_is_idempotent(self):
        client = GraphClient()
        client.disconnect()
        client.disconnect()
        assert not client.connected

    def test_disconnect_closes_driver(self):
        client, driver, _ = _connected_client()
        client.disconnect()
        client.disconnect()
        driver.close.assert_called_once()
        assert not client.connected

    def test_default_settings(self):
        settings = GraphClient().settings
        assert settings.uri == "bolt://localhost:7687"
        assert settings.username == "neo4j"
        assert settings.password == "password"


# =========================================================================
# Tests: ensure_connected (initialize once)
# =========================================================================

class TestEnsureConnected:

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_connects_once(self, mock_driver_fn):
        driver, _ = _mock_driver()
        mock_driver_fn.return_value = driver

        client = GraphClient()
        client.ensure_connected()
        client.ensure_connected()

        assert mock_driver_fn.call_count == 1

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_concurrent_first_calls_share_one_connect(self, mock_driver_fn):
        driver, session = _mock_driver()

        def slow_run(*args, **kwargs):
            time.sleep(0.05)
            return MagicMock()

        session.run.side_effect = slow_run
        mock_driver_fn.return_value = driver

        client = GraphClient()
        errors = []

        def worker():
            try:
                client.ensure_connected()
            except Exception as exc:  # pragma: no cover - surfaced by assertion
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert mock_driver_fn.call_count == 1

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_failure_is_shared_and_not_retried(self, mock_driver_fn):
        driver, session = _mock_driver()
        session.run.side_effect = ServiceUnavailable("down")
        mock_driver_fn.return_value = driver

        client = GraphClient()
        with pytest.raises(GraphConnectionError) as first:
            client.ensure_connected()
        with pytest.raises(GraphConnectionError) as second:
            client.ensure_connected()

        assert first.value is second.value
        assert mock_driver_fn.call_count == 1

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_explicit_connect_clears_failure(self, mock_driver_fn):
        bad_driver, bad_session = _mock_driver()
        bad_session.run.side_effect = ServiceUnavailable("down")
        good_driver, _ = _mock_driver()
        mock_driver_fn.side_effect = [bad_driver, good_driver]

        client = GraphClient()
        with pytest.raises(GraphConnectionError):
            client.ensure_connected()

        client.connect()
        client.ensure_connected()
        assert client.connected
        assert mock_driver_fn.call_count == 2


# =========================================================================
# Tests: queries
# =========================================================================

class TestExecuteQuery:

    def test_rows_become_plain_dicts(self):
        records = [{"id": "i-1", "count": 3}, {"id": "i-2", "count": 5}]
        client, _, session = _connected_client(records)

        result = client.execute_query("MATCH (n) RETURN n", "All things", "HIGH")

        assert isinstance(result, QueryResult)
        assert result.summary == "All things"
        assert result.risk_level == "HIGH"
        assert result.data == records

    def test_parameters_forwarded(self):
        client, _, session = _connected_client([])
        client.run("MATCH (n) RETURN n LIMIT $limit", {"limit": 3})
        session.run.assert_called_once_with("MATCH (n) RETURN n LIMIT $limit", {"limit": 3})

    def test_node_values_replaced_by_properties(self):
        records = [{"seed": _fake_node({"id": "i-1", "state": "running"})}]
        client, _, _ = _connected_client(records)
        assert client.run("q") == [{"seed": {"id": "i-1", "state": "running"}}]

    def test_session_opened_and_closed_per_query(self):
        client, driver, _ = _connected_client([])
        driver.session.reset_mock()

        client.run("q1")
        client.run("q2")

        assert driver.session.call_count == 2
        assert driver.session.return_value.__exit__.call_count == 2

    def test_query_failure_closes_session_and_raises(self):
        client, driver, session = _connected_client()
        driver.session.reset_mock()
        session.run.side_effect = ServiceUnavailable("lost")

        with pytest.raises(QueryExecutionError):
            client.run("MATCH (n) RETURN n")

        driver.session.return_value.__exit__.assert_called_once()
        assert client.connected  # connection survives a failed query

    def test_query_before_connect_raises(self):
        with pytest.raises(GraphConnectionError):
            GraphClient().run("RETURN 1")

    def test_failure_logged(self, caplog):
        client, _, session = _connected_client()
        session.run.side_effect = ServiceUnavailable("lost")
        with caplog.at_level(logging.WARNING, logger="cloudgraph.client"):
            with pytest.raises(QueryExecutionError):
                client.run("q")
        assert any("query execution failed" in r.message.lower() for r in caplog.records)

    def test_node_count(self):
        client, _, _ = _connected_client([{"nodeCount": 12}])
        assert client.node_count() == 12

    def test_invalid_risk_level_rejected(self):
        with pytest.raises(ValueError):
            QueryResult(summary="x", risk_level="SEVERE")


class TestTestConnection:

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_returns_false_on_failure(self, mock_driver_fn):
        mock_driver_fn.side_effect = ServiceUnavailable("down")
        assert GraphClient().test_connection() is False

    @patch("cloudgraph.client.GraphDatabase.driver")
    def test_returns_true_on_success(self, mock_driver_fn):
        driver, session = _mock_driver()
        session.run.return_value = _Result([{"nodeCount": 1}])
        mock_driver_fn.return_value = driver
        assert GraphClient().test_connection() is True


# =========================================================================
# Tests: to_plain
# =========================================================================

class TestToPlain:

    def test_scalars_pass_through(self):
        for value in (None, True, 7, 2**70, 1.5, "s"):
            assert to_plain(value) == value

    def test_large_ints_stay_native(self):
        assert isinstance(to_plain(2**63 - 1), int)

    def test_nested_structures(self):
        node = _fake_node({"id": "i-1"})
        value = {"nodes": [node, {"x": (1, 2)}]}
        assert to_plain(value) == {"nodes": [{"id": "i-1"}, {"x": [1, 2]}]}

    def test_relationship_becomes_properties(self):
        rel = MagicMock(spec=Relationship)
        rel.items.return_value = [("weight", 2)]
        assert to_plain(rel) == {"weight": 2}

    def test_temporal_values_to_iso(self):
        assert to_plain(DateTime(2024, 1, 2, 3, 4, 5)).startswith("2024-01-02T03:04:05")

    def test_bytes_omitted(self):
        assert to_plain(b"\x00\x01") == "<binary data omitted>"
