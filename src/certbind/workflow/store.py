"""Step log storage.

:class:`StepStore` persists workflow instances and their step logs.
:class:`InMemoryStepStore` keeps them in process memory, which is
enough for a single process and for tests; use
:class:`~certbind.workflow.postgres.PostgresStepStore` to survive
restarts or to serve from several processes.
"""

from __future__ import annotations

import abc
import copy
import logging
import threading
from typing import TYPE_CHECKING

from certbind.core.types import InstanceStatus

if TYPE_CHECKING:
    from certbind.workflow.steps import StepRecord, WorkflowInstance

log = logging.getLogger(__name__)


class StepStore(abc.ABC):
    """Persistence for workflow instances and step records."""

    @abc.abstractmethod
    def create_instance(self, instance: WorkflowInstance) -> None:
        """Insert a new instance.

        Raises
        ------
        ValueError
            If an instance with the same id already exists.

        """

    @abc.abstractmethod
    def get_instance(self, instance_id: str) -> WorkflowInstance | None:
        """Return the instance, or ``None`` if unknown."""

    @abc.abstractmethod
    def update_instance(self, instance: WorkflowInstance) -> None:
        """Persist status, custom status, output and error of *instance*."""

    @abc.abstractmethod
    def list_instances(
        self,
        *,
        status: InstanceStatus | None = None,
        limit: int | None = None,
    ) -> list[WorkflowInstance]:
        """Return instances, newest first."""

    @abc.abstractmethod
    def get_steps(self, instance_id: str) -> list[StepRecord]:
        """Return the step log of an instance ordered by index."""

    @abc.abstractmethod
    def save_step(self, instance_id: str, record: StepRecord) -> None:
        """Insert or replace the record at ``record.index``."""

    def list_incomplete(self) -> list[WorkflowInstance]:
        """Top-level instances that were not finished (for resumption)."""
        return [
            inst
            for status in (InstanceStatus.PENDING, InstanceStatus.RUNNING)
            for inst in self.list_instances(status=status)
            if inst.parent_id is None
        ]

    def close(self) -> None:  # noqa: B027
        """Release resources.  Default is a no-op."""


class InMemoryStepStore(StepStore):
    """Thread-safe in-process store.  Returns copies, never live objects."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._instances: dict[str, WorkflowInstance] = {}
        self._steps: dict[str, dict[int, StepRecord]] = {}

    def create_instance(self, instance: WorkflowInstance) -> None:
        with self._lock:
            if instance.id in self._instances:
                msg = f"Workflow instance {instance.id} already exists"
                raise ValueError(msg)
            self._instances[instance.id] = copy.deepcopy(instance)
            self._steps[instance.id] = {}

    def get_instance(self, instance_id: str) -> WorkflowInstance | None:
        with self._lock:
            instance = self._instances.get(instance_id)
            return copy.deepcopy(instance) if instance is not None else None

    def update_instance(self, instance: WorkflowInstance) -> None:
        with self._lock:
            if instance.id not in self._instances:
                msg = f"Workflow instance {instance.id} does not exist"
                raise KeyError(msg)
            self._instances[instance.id] = copy.deepcopy(instance)

    def list_instances(
        self,
        *,
        status: InstanceStatus | None = None,
        limit: int | None = None,
    ) -> list[WorkflowInstance]:
        with self._lock:
            instances = [
                copy.deepcopy(i)
                for i in self._instances.values()
                if status is None or i.status == status
            ]
        instances.sort(key=lambda i: i.created_at, reverse=True)
        return instances[:limit] if limit is not None else instances

    def get_steps(self, instance_id: str) -> list[StepRecord]:
        with self._lock:
            steps = self._steps.get(instance_id, {})
            return [copy.deepcopy(steps[i]) for i in sorted(steps)]

    def save_step(self, instance_id: str, record: StepRecord) -> None:
        with self._lock:
            self._steps.setdefault(instance_id, {})[record.index] = copy.deepcopy(record)
