"""Durable workflow engine: step log, replay-safe context and runner."""

from certbind.workflow.retry import NO_RETRY, RetryPolicy

__all__ = ["NO_RETRY", "RetryPolicy"]
