"""Structured logging configuration for certbind.

Provides JSON and text formatters, a context filter that injects the
current workflow instance, step and HTTP request into every record,
and a one-call ``configure_logging`` function driven by config
settings.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import sys
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from flask import has_request_context, request

if TYPE_CHECKING:
    from certbind.config.settings import LoggingSettings

_instance_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "certbind_instance_id",
    default=None,
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "certbind_step",
    default=None,
)

_CONTEXT_FIELDS = ("instance_id", "step", "method", "path")

# Attributes every LogRecord carries; anything else was passed as extra.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("werkzeug", "gunicorn", "gunicorn.access", "gunicorn.error", "urllib3")


@contextlib.contextmanager
def workflow_log_context(instance_id: str, step: str | None = None) -> Iterator[None]:
    """Tag every record logged inside the block with *instance_id* / *step*."""
    id_token = _instance_id.set(instance_id)
    step_token = _step.set(step)
    try:
        yield
    finally:
        _step.reset(step_token)
        _instance_id.reset(id_token)


@contextlib.contextmanager
def step_log_context(step: str) -> Iterator[None]:
    token = _step.set(step)
    try:
        yield
    finally:
        _step.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Context fields appear only when set; ``extra`` attributes such as
    ``event`` or ``to_state`` are copied through unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        data.update(
            (name, getattr(record, name))
            for name in _CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        data.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
            and key not in _CONTEXT_FIELDS
            and not key.startswith("_")
        )

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Console format: ``time level [instance] logger: message``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(instance_id)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, "instance_id", None) is None:
            record.instance_id = "-"  # type: ignore[attr-defined]
        return super().format(record)


class WorkflowContextFilter(logging.Filter):
    """Fill ``instance_id`` / ``step`` from context variables and
    ``method`` / ``path`` from the active Flask request, if any.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        in_request = has_request_context()
        current = {
            "instance_id": _instance_id.get(),
            "step": _step.get(),
            "method": request.method if in_request else None,
            "path": request.path if in_request else None,
        }
        for name, value in current.items():
            if getattr(record, name, None) is None or (in_request and name in ("method", "path")):
                setattr(record, name, value)
        return True


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Install a single stderr handler on the ``certbind`` logger.

    Bootstrap handlers are dropped and the logger stops propagating to
    the root logger.
    """
    logger = logging.getLogger("certbind")
    logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(StructuredFormatter() if settings.format == "json" else TextFormatter())
    handler.addFilter(WorkflowContextFilter())
    logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
