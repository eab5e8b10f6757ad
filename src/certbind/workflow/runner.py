"""Workflow runner: starts, executes, resumes and reports instances.

Each top-level instance executes on one thread of a bounded pool.
Starting a workflow only persists the instance and queues it, so the
caller gets the instance id back immediately and observes progress
through :meth:`WorkflowRunner.get_status`.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from certbind.core.types import InstanceStatus
from certbind.errors import CertbindError, StepFailedError
from certbind.logging.setup import workflow_log_context
from certbind.workflow import codec
from certbind.workflow.context import WorkflowContext
from certbind.workflow.steps import WorkflowInstance, utcnow

if TYPE_CHECKING:
    from certbind.config.settings import RetrySettings
    from certbind.workflow.activities import ActivityInterface
    from certbind.workflow.store import StepStore

log = logging.getLogger(__name__)

Orchestrator = Callable[[WorkflowContext], Any]


def _error_document(exc: BaseException, state: str | None) -> dict[str, Any]:
    if isinstance(exc, CertbindError):
        data = exc.to_dict()
    else:
        data = {"type": type(exc).__name__, "detail": str(exc), "retryable": False}
    data["state"] = state
    return data


class WorkflowRunner:
    """Execute orchestrator functions against a step store.

    Parameters
    ----------
    store:
        Step log storage.
    activities:
        Activity implementations shared by all instances.
    orchestrators:
        Workflow name -> orchestrator function.
    retry:
        Retry policies for scheduled activities.
    max_workers:
        Concurrently executing top-level instances.
    fanout_workers:
        Thread pool size of each fan-out group.
    sleep:
        Backoff delay function, injectable for tests.

    """

    def __init__(
        self,
        store: StepStore,
        activities: ActivityInterface,
        orchestrators: dict[str, Orchestrator],
        retry: RetrySettings,
        *,
        max_workers: int = 4,
        fanout_workers: int = 8,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._activities = activities
        self._orchestrators = dict(orchestrators)
        self._retry = retry
        self._fanout_workers = fanout_workers
        self._sleep = sleep
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="workflow",
        )
        self._done: dict[str, threading.Event] = {}
        self._done_lock = threading.Lock()

    @property
    def store(self) -> StepStore:
        return self._store

    # -- lifecycle -----------------------------------------------------------

    def _done_event(self, instance_id: str) -> threading.Event:
        with self._done_lock:
            event = self._done.get(instance_id)
            if event is None:
                event = self._done[instance_id] = threading.Event()
            return event

    def start_new(
        self,
        name: str,
        workflow_input: Any,
        *,
        instance_id: str | None = None,
    ) -> str:
        """Persist a new instance and queue it for execution.

        Raises
        ------
        KeyError
            If *name* is not a registered orchestrator.

        """
        if name not in self._orchestrators:
            msg = f"Unknown workflow '{name}'"
            raise KeyError(msg)
        instance = WorkflowInstance(
            id=instance_id or uuid.uuid4().hex,
            name=name,
            input=codec.encode(workflow_input),
        )
        self._store.create_instance(instance)
        self._done_event(instance.id)
        log.info("Started workflow %s (%s)", instance.id, name)
        self._executor.submit(self.run, instance.id)
        return instance.id

    def run(self, instance_id: str) -> WorkflowInstance:
        """Execute (or resume) an instance to completion on this thread."""
        instance = self._store.get_instance(instance_id)
        if instance is None:
            msg = f"Workflow instance {instance_id} does not exist"
            raise KeyError(msg)
        try:
            if instance.is_finished:
                return instance
            with workflow_log_context(instance.id):
                return self._execute(instance)
        finally:
            self._done_event(instance_id).set()

    def _execute(self, instance: WorkflowInstance) -> WorkflowInstance:
        orchestrator = self._orchestrators[instance.name]
        instance.status = InstanceStatus.RUNNING
        self._store.update_instance(instance)

        ctx = WorkflowContext(
            instance,
            self._store,
            self._activities,
            self._retry,
            run_child=self._run_child,
            sleep=self._sleep,
            fanout_workers=self._fanout_workers,
        )
        try:
            output = orchestrator(ctx)
        except CertbindError as exc:
            instance.status = InstanceStatus.FAILED
            instance.error = _error_document(exc, instance.custom_status)
            log.error("Workflow %s (%s) failed: %s", instance.id, instance.name, exc.detail)
        except Exception as exc:
            instance.status = InstanceStatus.FAILED
            instance.error = _error_document(exc, instance.custom_status)
            log.exception("Workflow %s (%s) crashed", instance.id, instance.name)
        else:
            instance.status = InstanceStatus.COMPLETED
            instance.output = codec.encode(output)
            log.info("Workflow %s (%s) completed", instance.id, instance.name)

        instance.updated_at = utcnow()
        self._store.update_instance(instance)
        return instance

    def _run_child(self, child_id: str, name: str, child_input: Any, parent_id: str) -> Any:
        child = self._store.get_instance(child_id)
        if child is None:
            child = WorkflowInstance(
                id=child_id,
                name=name,
                input=codec.encode(child_input),
                parent_id=parent_id,
            )
            self._store.create_instance(child)
            log.info("Started sub-workflow %s (%s)", child_id, name)

        if not child.is_finished:
            with workflow_log_context(child_id):
                child = self._execute(child)

        if child.status == InstanceStatus.FAILED:
            error = child.error or {}
            raise StepFailedError(
                f"sub_workflow:{name}",
                error.get("cause_type") or error.get("type", "CertbindError"),
                error.get("cause_detail") or error.get("detail", ""),
            )
        return codec.decode(child.output)

    def resume_incomplete(self) -> list[str]:
        """Queue every unfinished top-level instance found in the store."""
        ids = [instance.id for instance in self._store.list_incomplete()]
        for instance_id in ids:
            log.info("Resuming workflow %s", instance_id)
            self._done_event(instance_id)
            self._executor.submit(self.run, instance_id)
        return ids

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work.

        The store is closed only after queued instances have drained;
        with ``wait=False`` it stays open for the running threads.
        """
        self._executor.shutdown(wait=wait)
        if wait:
            self._store.close()

    # -- queries -------------------------------------------------------------

    def get_status(self, instance_id: str) -> WorkflowInstance | None:
        return self._store.get_instance(instance_id)

    def list_instances(
        self,
        *,
        status: InstanceStatus | None = None,
        limit: int | None = None,
    ) -> list[WorkflowInstance]:
        return self._store.list_instances(status=status, limit=limit)

    def wait_for_completion(
        self,
        instance_id: str,
        timeout: float | None,
    ) -> WorkflowInstance | None:
        """Wait up to *timeout* seconds, then return the current status."""
        self._done_event(instance_id).wait(timeout)
        return self._store.get_instance(instance_id)
