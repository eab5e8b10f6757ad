"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from certbind.config import get_config

    retry = get_config().settings.retry
    print(retry.order_ready.max_attempts)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from certbind.workflow.retry import RetryPolicy

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server configuration (bind address, workers, timeouts)."""

    bind: str
    port: int
    workers: int
    threads: int
    timeout: int
    graceful_timeout: int


def _build_server(data: dict | None) -> ServerSettings:
    d = data or {}
    return ServerSettings(
        bind=d.get("bind", "0.0.0.0"),  # noqa: S104
        port=d.get("port", 8080),
        workers=d.get("workers", 1),
        threads=d.get("threads", 8),
        timeout=d.get("timeout", 30),
        graceful_timeout=d.get("graceful_timeout", 30),
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApiSettings:
    """HTTP entry points.

    ``wait_timeout_seconds`` bounds how long a start request waits for
    the workflow before answering 202 with a status URL.
    ``principal_header``, when set, must be present on every request.
    """

    base_path: str
    wait_timeout_seconds: float
    principal_header: str | None
    max_list: int


def _build_api(data: dict | None) -> ApiSettings:
    d = data or {}
    return ApiSettings(
        base_path=d.get("base_path", "/api").rstrip("/"),
        wait_timeout_seconds=d.get("wait_timeout_seconds", 5.0),
        principal_header=d.get("principal_header"),
        max_list=d.get("max_list", 100),
    )


# ---------------------------------------------------------------------------
# Collaborator clients
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientSettings:
    """A client class path plus its free-form options."""

    client: str
    options: dict[str, Any] = field(default_factory=dict)


def _build_client(data: dict | None) -> ClientSettings:
    d = data or {}
    return ClientSettings(
        client=d["client"],
        options=dict(d.get("options") or {}),
    )


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Http01Settings:
    virtual_path: str
    physical_path: str
    web_config_path: str
    timeout_seconds: int
    max_response_bytes: int


@dataclass(frozen=True)
class Dns01Settings:
    record_ttl: int
    resolvers: tuple[str, ...]
    timeout_seconds: int


@dataclass(frozen=True)
class ChallengeSettings:
    http01: Http01Settings
    dns01: Dns01Settings


def _build_http01(data: dict | None) -> Http01Settings:
    d = data or {}
    return Http01Settings(
        virtual_path=d.get("virtual_path", "/.well-known"),
        physical_path=d.get("physical_path", "site\\.well-known"),
        web_config_path=d.get("web_config_path", ".well-known/web.config"),
        timeout_seconds=d.get("timeout_seconds", 10),
        max_response_bytes=d.get("max_response_bytes", 65536),
    )


def _build_dns01(data: dict | None) -> Dns01Settings:
    d = data or {}
    return Dns01Settings(
        record_ttl=d.get("record_ttl", 60),
        resolvers=tuple(d.get("resolvers", ())),
        timeout_seconds=d.get("timeout_seconds", 10),
    )


def _build_challenges(data: dict | None) -> ChallengeSettings:
    d = data or {}
    return ChallengeSettings(
        http01=_build_http01(d.get("http01")),
        dns01=_build_dns01(d.get("dns01")),
    )


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetrySettings:
    """Retry policies: client calls, challenge checks, order readiness."""

    default: RetryPolicy
    challenge_verify: RetryPolicy
    order_ready: RetryPolicy


def _build_retry_policy(data: dict | None, defaults: RetryPolicy) -> RetryPolicy:
    d = data or {}
    return RetryPolicy(
        max_attempts=d.get("max_attempts", defaults.max_attempts),
        first_interval_seconds=d.get("first_interval_seconds", defaults.first_interval_seconds),
        backoff_coefficient=d.get("backoff_coefficient", defaults.backoff_coefficient),
        max_interval_seconds=d.get("max_interval_seconds", defaults.max_interval_seconds),
    )


_DEFAULT_RETRY = RetryPolicy(max_attempts=3, first_interval_seconds=5, backoff_coefficient=2)
_CHALLENGE_RETRY = RetryPolicy(
    max_attempts=12,
    first_interval_seconds=10,
    backoff_coefficient=1.5,
    max_interval_seconds=60,
)
_ORDER_RETRY = RetryPolicy(
    max_attempts=12,
    first_interval_seconds=5,
    backoff_coefficient=1.5,
    max_interval_seconds=60,
)


def _build_retry(data: dict | None) -> RetrySettings:
    d = data or {}
    return RetrySettings(
        default=_build_retry_policy(d.get("default"), _DEFAULT_RETRY),
        challenge_verify=_build_retry_policy(d.get("challenge_verify"), _CHALLENGE_RETRY),
        order_ready=_build_retry_policy(d.get("order_ready"), _ORDER_RETRY),
    )


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FinalizeSettings:
    """PKCS#12 bundle password and certificate download polling."""

    pfx_password: str = field(repr=False)
    poll_attempts: int = 10
    poll_interval_seconds: float = 3.0


def _build_finalize(data: dict | None) -> FinalizeSettings:
    d = data or {}
    return FinalizeSettings(
        pfx_password=d.get("pfx_password", ""),
        poll_attempts=d.get("poll_attempts", 10),
        poll_interval_seconds=d.get("poll_interval_seconds", 3.0),
    )


# ---------------------------------------------------------------------------
# Workflow engine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """PostgreSQL connection settings for the step store."""

    host: str
    port: int
    database: str
    user: str
    password: str = field(repr=False)
    sslmode: str
    min_connections: int
    max_connections: int
    connection_timeout: float
    auto_setup: bool


def _build_database(data: dict | None) -> DatabaseSettings | None:
    if not data:
        return None
    d = data
    return DatabaseSettings(
        host=d.get("host", "localhost"),
        port=d.get("port", 5432),
        database=d["database"],
        user=d["user"],
        password=d.get("password", ""),
        sslmode=d.get("sslmode", "prefer"),
        min_connections=d.get("min_connections", 1),
        max_connections=d.get("max_connections", 10),
        connection_timeout=d.get("connection_timeout", 30.0),
        auto_setup=d.get("auto_setup", True),
    )


@dataclass(frozen=True)
class WorkflowSettings:
    """Step store backend and execution pools."""

    store: str
    max_workers: int
    fanout_workers: int
    resume_on_startup: bool
    database: DatabaseSettings | None


def _build_workflow(data: dict | None) -> WorkflowSettings:
    d = data or {}
    return WorkflowSettings(
        store=d.get("store", "memory"),
        max_workers=d.get("max_workers", 4),
        fanout_workers=d.get("fanout_workers", 8),
        resume_on_startup=d.get("resume_on_startup", True),
        database=_build_database(d.get("database")),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertbindSettings:
    """Root settings tree."""

    server: ServerSettings
    api: ApiSettings
    acme: ClientSettings
    dns: ClientSettings
    hosting: ClientSettings
    challenges: ChallengeSettings
    retry: RetrySettings
    finalize: FinalizeSettings
    workflow: WorkflowSettings
    logging: LoggingSettings


def build_settings(data: dict) -> CertbindSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`CertbindConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return CertbindSettings(
        server=_build_server(data.get("server")),
        api=_build_api(data.get("api")),
        acme=_build_client(data.get("acme")),
        dns=_build_client(data.get("dns")),
        hosting=_build_client(data.get("hosting")),
        challenges=_build_challenges(data.get("challenges")),
        retry=_build_retry(data.get("retry")),
        finalize=_build_finalize(data.get("finalize")),
        workflow=_build_workflow(data.get("workflow")),
        logging=_build_logging(data.get("logging")),
    )
