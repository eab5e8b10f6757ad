"""Logging setup for certbind."""

from certbind.logging.setup import (
    StructuredFormatter,
    TextFormatter,
    WorkflowContextFilter,
    configure_logging,
    step_log_context,
    workflow_log_context,
)

__all__ = [
    "StructuredFormatter",
    "TextFormatter",
    "WorkflowContextFilter",
    "configure_logging",
    "step_log_context",
    "workflow_log_context",
]
