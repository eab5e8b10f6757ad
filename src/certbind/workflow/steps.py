"""Persisted workflow state: instances and their step logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from certbind.core.types import InstanceStatus, StepStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class StepRecord:
    """One entry of a step log, keyed by (instance id, index).

    Attributes
    ----------
    index:
        Position of the step in the orchestration's call sequence.
    kind:
        Activity name, or ``sub_workflow:<name>`` for child workflows.
    input_hash:
        Digest of the encoded step arguments; a replay that schedules
        a different input at the same index is non-deterministic.
    status:
        ``pending`` while executing, then ``completed`` or ``failed``.
    result:
        Encoded return value of a completed step.
    error:
        Serialised :class:`~certbind.errors.StepFailedError` of a
        failed step.
    attempts:
        Executions so far.

    """

    index: int
    kind: str
    input_hash: str
    status: StepStatus = StepStatus.PENDING
    result: Any = None
    error: dict[str, Any] | None = None
    attempts: int = 0
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class WorkflowInstance:
    """A workflow run and its externally visible status."""

    id: str
    name: str
    input: Any
    status: InstanceStatus = InstanceStatus.PENDING
    custom_status: str | None = None
    output: Any = None
    error: dict[str, Any] | None = None
    parent_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_finished(self) -> bool:
        return self.status in (InstanceStatus.COMPLETED, InstanceStatus.FAILED)

    def to_status_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "custom_status": self.custom_status,
            "output": self.output,
            "error": self.error,
            "parent_id": self.parent_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
