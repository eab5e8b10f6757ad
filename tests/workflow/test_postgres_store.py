"""Tests for certbind.workflow.postgres against a mocked connection pool."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
from psycopg.conninfo import conninfo_to_dict

from certbind.config.settings import DatabaseSettings
from certbind.core.types import InstanceStatus, StepStatus
from certbind.workflow.postgres import PostgresStepStore, _conninfo
from certbind.workflow.steps import StepRecord, WorkflowInstance

NOW = datetime(2026, 1, 1, tzinfo=UTC)


@pytest.fixture()
def conn():
    return MagicMock()


@pytest.fixture()
def cursor(conn):
    cur = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cur
    return cur


@pytest.fixture()
def pool(conn):
    p = MagicMock()
    p.connection.return_value.__enter__.return_value = conn
    return p


@pytest.fixture()
def store(pool):
    return PostgresStepStore(pool)


def _instance_row(**overrides):
    row = {
        "id": "wf-1",
        "name": "issue_certificate",
        "input": {"a": 1},
        "status": "running",
        "custom_status": "OrderCreated",
        "output": None,
        "error": None,
        "parent_id": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


class TestSetup:
    def test_conninfo_skips_empty_values(self):
        settings = DatabaseSettings(
            host="db",
            port=5432,
            database="certbind",
            user="cb",
            password="",
            sslmode="require",
            min_connections=1,
            max_connections=4,
            connection_timeout=10,
            auto_setup=False,
        )
        info = _conninfo(settings)
        assert "password" not in info
        assert "dbname=certbind" in info
        assert "sslmode=require" in info

    def test_conninfo_quotes_special_characters(self):
        settings = DatabaseSettings(
            host="db",
            port=5432,
            database="certbind",
            user="cb",
            password="p@ss word's",
            sslmode="prefer",
            min_connections=1,
            max_connections=4,
            connection_timeout=30.0,
            auto_setup=False,
        )
        parsed = conninfo_to_dict(_conninfo(settings))
        assert parsed["password"] == "p@ss word's"
        assert parsed["user"] == "cb"
        assert parsed["connect_timeout"] == "30"

    def test_auto_setup_runs_schema(self, pool, conn):
        PostgresStepStore(pool, auto_setup=True)
        sql = conn.execute.call_args.args[0]
        assert "CREATE TABLE IF NOT EXISTS workflow_steps" in sql

    @patch("certbind.workflow.postgres.ConnectionPool")
    def test_from_settings(self, mock_pool_cls):
        settings = DatabaseSettings(
            host="db",
            port=5432,
            database="certbind",
            user="cb",
            password="pw",
            sslmode="prefer",
            min_connections=2,
            max_connections=8,
            connection_timeout=5,
            auto_setup=False,
        )
        store = PostgresStepStore.from_settings(settings)

        kwargs = mock_pool_cls.call_args.kwargs
        assert kwargs["min_size"] == 2
        assert kwargs["max_size"] == 8
        store.close()
        mock_pool_cls.return_value.close.assert_called_once()


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


class TestInstances:
    def test_duplicate_create(self, store, conn):
        conn.execute.return_value.rowcount = 0
        with pytest.raises(ValueError, match="already exists"):
            store.create_instance(WorkflowInstance(id="wf-1", name="x", input={}))

    def test_update_missing(self, store, conn):
        conn.execute.return_value.rowcount = 0
        with pytest.raises(KeyError):
            store.update_instance(WorkflowInstance(id="wf-1", name="x", input={}))

    def test_get_maps_row(self, store, cursor):
        cursor.fetchone.return_value = _instance_row()
        instance = store.get_instance("wf-1")

        assert instance.status == InstanceStatus.RUNNING
        assert instance.custom_status == "OrderCreated"
        assert instance.input == {"a": 1}

    def test_get_missing(self, store, cursor):
        cursor.fetchone.return_value = None
        assert store.get_instance("nope") is None

    def test_list_builds_filter(self, store, cursor):
        cursor.fetchall.return_value = [_instance_row(status="failed")]
        instances = store.list_instances(status=InstanceStatus.FAILED, limit=5)

        sql, params = cursor.execute.call_args.args
        assert "WHERE status = %s" in sql
        assert "ORDER BY created_at DESC LIMIT %s" in sql
        assert params == ["failed", 5]
        assert instances[0].status == InstanceStatus.FAILED


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


class TestSteps:
    def test_save_upserts(self, store, conn):
        store.save_step(
            "wf-1",
            StepRecord(index=3, kind="order", input_hash="h", status=StepStatus.COMPLETED, attempts=1),
        )
        sql, params = conn.execute.call_args.args
        assert "ON CONFLICT (instance_id, step_index) DO UPDATE" in sql
        assert params[:5] == ("wf-1", 3, "order", "h", "completed")

    def test_get_steps_maps_rows(self, store, cursor):
        cursor.fetchall.return_value = [
            {
                "step_index": 0,
                "kind": "get_site",
                "input_hash": "h0",
                "status": "failed",
                "result": None,
                "error": {"cause_type": "ClientError"},
                "attempts": 2,
                "updated_at": NOW,
            },
        ]
        steps = store.get_steps("wf-1")
        assert steps[0].status == StepStatus.FAILED
        assert steps[0].error == {"cause_type": "ClientError"}
