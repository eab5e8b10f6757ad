"""PostgreSQL step store (psycopg 3 + psycopg_pool).

Usage::

    from certbind.workflow.postgres import PostgresStepStore

    store = PostgresStepStore.from_settings(settings.workflow.database)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from certbind.core.types import InstanceStatus, StepStatus
from certbind.workflow.steps import StepRecord, WorkflowInstance, utcnow
from certbind.workflow.store import StepStore

if TYPE_CHECKING:
    from certbind.config.settings import DatabaseSettings

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"

log = logging.getLogger(__name__)


def _conninfo(settings: DatabaseSettings) -> str:
    parts = {
        "host": settings.host,
        "port": settings.port,
        "dbname": settings.database,
        "user": settings.user,
        "password": settings.password,
        "sslmode": settings.sslmode,
        "connect_timeout": int(settings.connection_timeout),
    }
    return make_conninfo(**{k: v for k, v in parts.items() if v not in (None, "")})


def _jsonb(value):
    return Jsonb(value) if value is not None else None


class PostgresStepStore(StepStore):
    """Step store backed by the ``workflow_instances`` / ``workflow_steps`` tables.

    Parameters
    ----------
    pool:
        An open psycopg connection pool.
    auto_setup:
        Run ``schema.sql`` on construction.

    """

    def __init__(self, pool: ConnectionPool, *, auto_setup: bool = False) -> None:
        self._pool = pool
        if auto_setup:
            self.setup_schema()

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> PostgresStepStore:
        log.info(
            "Connecting step store: %s@%s:%s/%s",
            settings.user,
            settings.host,
            settings.port,
            settings.database,
        )
        pool = ConnectionPool(
            _conninfo(settings),
            min_size=settings.min_connections,
            max_size=settings.max_connections,
            open=True,
        )
        return cls(pool, auto_setup=settings.auto_setup)

    def setup_schema(self) -> None:
        with self._pool.connection() as conn:
            conn.execute(_SCHEMA_PATH.read_text(encoding="utf-8"))
        log.info("Step store schema ensured")

    def close(self) -> None:
        self._pool.close()

    # -- row mapping ---------------------------------------------------------

    @staticmethod
    def _row_to_instance(row: dict) -> WorkflowInstance:
        return WorkflowInstance(
            id=row["id"],
            name=row["name"],
            input=row["input"],
            status=InstanceStatus(row["status"]),
            custom_status=row.get("custom_status"),
            output=row.get("output"),
            error=row.get("error"),
            parent_id=row.get("parent_id"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_step(row: dict) -> StepRecord:
        return StepRecord(
            index=row["step_index"],
            kind=row["kind"],
            input_hash=row["input_hash"],
            status=StepStatus(row["status"]),
            result=row.get("result"),
            error=row.get("error"),
            attempts=row["attempts"],
            updated_at=row["updated_at"],
        )

    # -- instances -----------------------------------------------------------

    def create_instance(self, instance: WorkflowInstance) -> None:
        with self._pool.connection() as conn:
            cur = conn.execute(
                "INSERT INTO workflow_instances "
                "(id, name, input, status, custom_status, output, error, "
                " parent_id, created_at, updated_at) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s) "
                "ON CONFLICT (id) DO NOTHING",
                (
                    instance.id,
                    instance.name,
                    _jsonb(instance.input),
                    instance.status.value,
                    instance.custom_status,
                    _jsonb(instance.output),
                    _jsonb(instance.error),
                    instance.parent_id,
                    instance.created_at,
                    instance.updated_at,
                ),
            )
            if cur.rowcount == 0:
                msg = f"Workflow instance {instance.id} already exists"
                raise ValueError(msg)

    def get_instance(self, instance_id: str) -> WorkflowInstance | None:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute("SELECT * FROM workflow_instances WHERE id = %s", (instance_id,))
            row = cur.fetchone()
        return self._row_to_instance(row) if row is not None else None

    def update_instance(self, instance: WorkflowInstance) -> None:
        instance.updated_at = utcnow()
        with self._pool.connection() as conn:
            cur = conn.execute(
                "UPDATE workflow_instances "
                "SET status = %s, custom_status = %s, output = %s, error = %s, "
                "    updated_at = %s "
                "WHERE id = %s",
                (
                    instance.status.value,
                    instance.custom_status,
                    _jsonb(instance.output),
                    _jsonb(instance.error),
                    instance.updated_at,
                    instance.id,
                ),
            )
            if cur.rowcount == 0:
                msg = f"Workflow instance {instance.id} does not exist"
                raise KeyError(msg)

    def list_instances(
        self,
        *,
        status: InstanceStatus | None = None,
        limit: int | None = None,
    ) -> list[WorkflowInstance]:
        sql = "SELECT * FROM workflow_instances"
        params: list = []
        if status is not None:
            sql += " WHERE status = %s"
            params.append(status.value)
        sql += " ORDER BY created_at DESC"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [self._row_to_instance(r) for r in rows]

    # -- steps ---------------------------------------------------------------

    def get_steps(self, instance_id: str) -> list[StepRecord]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT * FROM workflow_steps WHERE instance_id = %s ORDER BY step_index",
                (instance_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_step(r) for r in rows]

    def save_step(self, instance_id: str, record: StepRecord) -> None:
        record.updated_at = utcnow()
        with self._pool.connection() as conn:
            conn.execute(
                "INSERT INTO workflow_steps "
                "(instance_id, step_index, kind, input_hash, status, result, error, "
                " attempts, updated_at) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s) "
                "ON CONFLICT (instance_id, step_index) DO UPDATE SET "
                "    kind = EXCLUDED.kind, "
                "    input_hash = EXCLUDED.input_hash, "
                "    status = EXCLUDED.status, "
                "    result = EXCLUDED.result, "
                "    error = EXCLUDED.error, "
                "    attempts = EXCLUDED.attempts, "
                "    updated_at = EXCLUDED.updated_at",
                (
                    instance_id,
                    record.index,
                    record.kind,
                    record.input_hash,
                    record.status.value,
                    _jsonb(record.result),
                    _jsonb(record.error),
                    record.attempts,
                    record.updated_at,
                ),
            )
