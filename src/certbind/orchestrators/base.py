"""State tracking shared by the orchestrators."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING

from certbind.core.state import assert_transition, is_terminal, log_transition
from certbind.errors import CertbindError, StepFailedError

if TYPE_CHECKING:
    from enum import StrEnum

    from certbind.workflow.context import WorkflowContext

log = logging.getLogger(__name__)


def is_caused_by(exc: BaseException, error_type: type[CertbindError]) -> bool:
    """Whether *exc* is, or is a step failure rooted in, *error_type*."""
    if isinstance(exc, StepFailedError):
        return error_type is StepFailedError or exc.caused_by(error_type)
    return isinstance(exc, error_type)


class StateTracker:
    """Walks an orchestrator through its transition table.

    Every transition is validated, logged and published as the
    instance's custom status.

    Parameters
    ----------
    ctx:
        The workflow context.
    workflow:
        Orchestrator name used in log records.
    table:
        The transition table.
    initial:
        Starting state.

    """

    def __init__(self, ctx: WorkflowContext, workflow: str, table: dict, initial: StrEnum) -> None:
        self._ctx = ctx
        self._workflow = workflow
        self._table = table
        self.state = initial
        ctx.set_custom_status(initial.value)

    @property
    def is_finished(self) -> bool:
        return is_terminal(self.state, self._table)

    def advance(self, target: StrEnum, *, reason: str | None = None) -> None:
        assert_transition(self.state, target, self._table)
        log_transition(self._workflow, self._ctx.instance_id, self.state, target, reason=reason)
        self.state = target
        self._ctx.set_custom_status(target.value)

    def fail(self, target: StrEnum, error: CertbindError) -> None:
        """Move to terminal *target* and raise *error*."""
        if not is_terminal(target, self._table):
            msg = f"{target.value} is not a terminal state"
            raise ValueError(msg)
        self.advance(target, reason=error.detail)
        raise error

    @contextlib.contextmanager
    def failing_to(
        self,
        default: StrEnum,
        rules: Sequence[tuple[type[CertbindError], StrEnum]] = (),
    ) -> Iterator[None]:
        """Map a failure inside the block to a terminal state, then re-raise.

        The first rule whose error type matches the failure (directly or
        as the root cause of a step failure) picks the state; otherwise
        *default* is used.
        """
        try:
            yield
        except CertbindError as exc:
            target = next(
                (state for error_type, state in rules if is_caused_by(exc, error_type)),
                default,
            )
            # a nested block may already have moved to a terminal state
            if not self.is_finished:
                self.advance(target, reason=exc.detail)
            raise
