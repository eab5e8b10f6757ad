"""Replay-safe execution context handed to orchestrator functions.

Every externally visible operation an orchestrator performs goes
through :meth:`WorkflowContext.call_activity`,
:meth:`~WorkflowContext.call_activities` or
:meth:`~WorkflowContext.call_sub_workflow`.  Each call is assigned the
next step index and looked up in the instance's step log:

* completed record -> stored result returned, nothing executed
* failed record    -> stored failure raised again
* pending / none   -> executed (with retries) and recorded

A record whose kind or input digest differs from the call being made
means the orchestrator is not deterministic; replay stops with
:class:`~certbind.errors.NonDeterminismError`.
"""

from __future__ import annotations

import contextvars
import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from certbind.core.types import StepStatus
from certbind.errors import CertbindError, NonDeterminismError, StepFailedError
from certbind.logging.setup import step_log_context
from certbind.workflow import codec
from certbind.workflow.activities import ActivityProxy
from certbind.workflow.retry import NO_RETRY, RetryPolicy
from certbind.workflow.steps import StepRecord

if TYPE_CHECKING:
    from certbind.config.settings import RetrySettings
    from certbind.workflow.activities import ActivityInterface, ActivityName
    from certbind.workflow.steps import WorkflowInstance
    from certbind.workflow.store import StepStore

log = logging.getLogger(__name__)

SUB_WORKFLOW_PREFIX = "sub_workflow:"


class WorkflowContext:
    """Durable context for one workflow instance.

    Parameters
    ----------
    instance:
        The instance being executed.
    store:
        Step log storage.
    activities:
        Activity implementations.
    retry:
        Retry policies used by :attr:`activities_proxy`.
    run_child:
        Callback running a child workflow to completion and returning
        its encoded output: ``run_child(child_id, name, input, parent_id)``.
    sleep:
        Backoff delay function.
    fanout_workers:
        Thread pool size for :meth:`call_activities`.

    """

    def __init__(
        self,
        instance: WorkflowInstance,
        store: StepStore,
        activities: ActivityInterface,
        retry: RetrySettings,
        *,
        run_child: Callable[[str, str, Any, str], Any],
        sleep: Callable[[float], None],
        fanout_workers: int = 8,
    ) -> None:
        self._instance = instance
        self._store = store
        self._activities = activities
        self._run_child = run_child
        self._sleep = sleep
        self._fanout_workers = fanout_workers
        self._log = {r.index: r for r in store.get_steps(instance.id)}
        self._next_index = 0
        self._status_lock = threading.Lock()
        self.activities_proxy = ActivityProxy(self, retry)

    # -- identity ------------------------------------------------------------

    @property
    def instance_id(self) -> str:
        return self._instance.id

    @property
    def parent_instance_id(self) -> str | None:
        return self._instance.parent_id

    @property
    def owner_id(self) -> str:
        """The id used to tag shared resources: parent id when nested."""
        return self._instance.parent_id or self._instance.id

    @property
    def custom_status(self) -> str | None:
        return self._instance.custom_status

    def get_input(self) -> Any:
        return codec.decode(self._instance.input)

    def set_custom_status(self, status: str) -> None:
        with self._status_lock:
            if self._instance.custom_status == status:
                return
            self._instance.custom_status = status
            self._store.update_instance(self._instance)

    # -- step bookkeeping ----------------------------------------------------

    def _allocate(self, count: int = 1) -> int:
        start = self._next_index
        self._next_index += count
        return start

    def _replayed(self, index: int, kind: str, digest: str) -> StepRecord | None:
        record = self._log.get(index)
        if record is None:
            return None
        if record.kind != kind or record.input_hash != digest:
            msg = (
                f"Workflow {self.instance_id} step {index}: log records {record.kind} "
                f"but the orchestrator scheduled {kind} (or different input)"
            )
            raise NonDeterminismError(msg)
        return record

    def _save(self, record: StepRecord) -> None:
        self._log[record.index] = record
        self._store.save_step(self.instance_id, record)

    def _run_step(
        self,
        index: int,
        kind: str,
        args: tuple,
        execute: Callable[..., Any],
        retry: RetryPolicy,
        abort: threading.Event | None = None,
    ) -> Any:
        encoded_args = codec.encode(args)
        digest = codec.input_hash(kind, args)
        record = self._replayed(index, kind, digest)
        if record is not None:
            if record.status == StepStatus.COMPLETED:
                log.debug("Step %d (%s) replayed from log", index, kind)
                return codec.decode(record.result)
            if record.status == StepStatus.FAILED:
                raise StepFailedError.from_dict(kind, record.error or {})
            log.info("Step %d (%s) was interrupted, executing again", index, kind)
        else:
            record = StepRecord(index=index, kind=kind, input_hash=digest)

        with step_log_context(kind):
            while True:
                record.attempts += 1
                record.status = StepStatus.PENDING
                self._save(record)
                try:
                    # Fresh copies: steps must not mutate orchestrator state
                    result = execute(*codec.decode(encoded_args))
                except CertbindError as exc:
                    if (
                        exc.retryable
                        and retry.allows_retry(record.attempts)
                        and not (abort is not None and abort.is_set())
                    ):
                        delay = retry.delay(record.attempts)
                        log.warning(
                            "Step %s attempt %d/%d failed (%s), retrying in %.1fs",
                            kind,
                            record.attempts,
                            retry.max_attempts,
                            exc.detail,
                            delay,
                        )
                        self._sleep(delay)
                        continue
                    failure = StepFailedError.from_exception(kind, exc, record.attempts)
                except Exception as exc:
                    log.exception("Step %s raised an unexpected error", kind)
                    failure = StepFailedError.from_exception(kind, exc, record.attempts)

                else:
                    record.status = StepStatus.COMPLETED
                    record.result = codec.encode(result)
                    record.error = None
                    self._save(record)
                    return result

                record.status = StepStatus.FAILED
                record.error = failure.to_dict()
                self._save(record)
                log.error("Step %s failed: %s", kind, failure.detail)
                raise failure

    # -- scheduling API ------------------------------------------------------

    def call_activity(
        self,
        name: ActivityName,
        *args: Any,
        retry: RetryPolicy = NO_RETRY,
    ) -> Any:
        """Schedule one activity and wait for its result."""
        index = self._allocate()
        execute = getattr(self._activities, name.value)
        return self._run_step(index, name.value, args, execute, retry)

    def call_activities(
        self,
        name: ActivityName,
        arg_list: Sequence[tuple],
        *,
        retry: RetryPolicy = NO_RETRY,
    ) -> list[Any]:
        """Fan out one activity per argument tuple and join.

        Results are returned in the order of *arg_list*.  The first
        fatal failure stops further retries in the group and is raised
        once every started step has settled.
        """
        if not arg_list:
            return []
        start = self._allocate(len(arg_list))
        execute = getattr(self._activities, name.value)
        abort = threading.Event()

        def run(offset: int, args: tuple) -> Any:
            if abort.is_set():
                return None
            try:
                return self._run_step(start + offset, name.value, args, execute, retry, abort)
            except Exception:
                abort.set()
                raise

        workers = min(self._fanout_workers, len(arg_list))
        with ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"fanout-{name.value}",
        ) as pool:
            futures = [
                pool.submit(contextvars.copy_context().run, run, offset, args)
                for offset, args in enumerate(arg_list)
            ]
            errors: list[BaseException] = []
            results: list[Any] = []
            for future in futures:
                exc = future.exception()
                if exc is not None:
                    errors.append(exc)
                    results.append(None)
                else:
                    results.append(future.result())

        if errors:
            raise errors[0]
        return results

    def call_sub_workflow(self, name: str, workflow_input: Any) -> Any:
        """Run a child workflow to completion and return its output.

        The child id is derived from this instance's id and the step
        index, so a replay re-attaches to the same child.
        """
        index = self._allocate()
        child_id = f"{self.instance_id}:{index}"
        kind = f"{SUB_WORKFLOW_PREFIX}{name}"

        def execute(child_input: Any) -> Any:
            return self._run_child(child_id, name, child_input, self.instance_id)

        return self._run_step(index, kind, (workflow_input,), execute, NO_RETRY)
