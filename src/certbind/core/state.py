"""Orchestrator state machines.

Defines the valid state transitions for the issuance and binding
workflows.  All transitions are enforced via :func:`assert_transition`.

Usage::

    from certbind.core.state import ISSUANCE_TRANSITIONS, assert_transition
    from certbind.core.types import IssuanceState

    assert_transition(
        IssuanceState.START, IssuanceState.SELECT_CHALLENGE_TYPE,
        ISSUANCE_TRANSITIONS,
    )
"""

from __future__ import annotations

import logging

from certbind.core.types import BindingState, IssuanceState

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Issuance: Start -> SelectChallengeType -> Precondition -> OrderCreated ->
#   AuthorizeAll -> AllAnswered -> PollReady -> Finalize -> Install ->
#   UpdateBindings -> Complete.  Install -> Complete skips binding for
#   certificates that are only uploaded (wildcard batches).
# ---------------------------------------------------------------------------

ISSUANCE_TRANSITIONS: dict[IssuanceState, frozenset[IssuanceState]] = {
    IssuanceState.START: frozenset(
        {IssuanceState.SELECT_CHALLENGE_TYPE, IssuanceState.PRECONDITION_FAILED}
    ),
    IssuanceState.SELECT_CHALLENGE_TYPE: frozenset({IssuanceState.PRECONDITION}),
    IssuanceState.PRECONDITION: frozenset(
        {
            IssuanceState.ORDER_CREATED,
            IssuanceState.PRECONDITION_FAILED,
            IssuanceState.FAILED,
        }
    ),
    IssuanceState.ORDER_CREATED: frozenset(
        {IssuanceState.AUTHORIZE_ALL, IssuanceState.FAILED}
    ),
    IssuanceState.AUTHORIZE_ALL: frozenset(
        {IssuanceState.ALL_ANSWERED, IssuanceState.CHALLENGE_FAILED}
    ),
    IssuanceState.ALL_ANSWERED: frozenset(
        {IssuanceState.POLL_READY, IssuanceState.FAILED}
    ),
    IssuanceState.POLL_READY: frozenset(
        {
            IssuanceState.FINALIZE,
            IssuanceState.ORDER_INVALID,
            IssuanceState.FAILED,
        }
    ),
    IssuanceState.FINALIZE: frozenset({IssuanceState.INSTALL, IssuanceState.FAILED}),
    IssuanceState.INSTALL: frozenset(
        {
            IssuanceState.UPDATE_BINDINGS,
            IssuanceState.COMPLETE,
            IssuanceState.FAILED,
        }
    ),
    IssuanceState.UPDATE_BINDINGS: frozenset(
        {IssuanceState.COMPLETE, IssuanceState.FAILED}
    ),
    IssuanceState.COMPLETE: frozenset(),
    IssuanceState.PRECONDITION_FAILED: frozenset(),
    IssuanceState.CHALLENGE_FAILED: frozenset(),
    IssuanceState.ORDER_INVALID: frozenset(),
    IssuanceState.FAILED: frozenset(),
}

# ---------------------------------------------------------------------------
# Binding: Start -> ResolveCertificate -> UpdateBindings -> Complete
# ---------------------------------------------------------------------------

BINDING_TRANSITIONS: dict[BindingState, frozenset[BindingState]] = {
    BindingState.START: frozenset({BindingState.RESOLVE_CERTIFICATE}),
    BindingState.RESOLVE_CERTIFICATE: frozenset(
        {BindingState.UPDATE_BINDINGS, BindingState.BINDING_FAILED}
    ),
    BindingState.UPDATE_BINDINGS: frozenset(
        {BindingState.COMPLETE, BindingState.BINDING_FAILED}
    ),
    BindingState.COMPLETE: frozenset(),
    BindingState.BINDING_FAILED: frozenset(),
}


def is_terminal(state: IssuanceState | BindingState, table: dict) -> bool:
    """Whether *state* has no outgoing transitions in *table*."""
    return not table.get(state)


def assert_transition(
    current: IssuanceState | BindingState,
    target: IssuanceState | BindingState,
    table: dict,
) -> None:
    """Raise :class:`ValueError` unless *table* allows *current* -> *target*."""
    if current not in table:
        msg = f"Unknown state {current!r}"
        raise ValueError(msg)

    allowed = table[current]
    if target in allowed:
        return
    targets = ", ".join(sorted(s.value for s in allowed)) or "none, state is terminal"
    msg = f"Invalid transition {current.value} -> {target.value} (allowed: {targets})"
    raise ValueError(msg)


def _state_name(state) -> str:
    return getattr(state, "value", str(state))


def log_transition(
    workflow: str,
    instance_id: str,
    from_state,
    to_state,
    *,
    reason: str | None = None,
) -> None:
    """Log a state change with ``event="state_transition"`` and both states as extra."""
    extra = {
        "event": "state_transition",
        "workflow": workflow,
        "instance_id": instance_id,
        "from_state": _state_name(from_state),
        "to_state": _state_name(to_state),
    }
    suffix = ""
    if reason:
        extra["reason"] = reason
        suffix = f" ({reason})"
    log.info(
        "%s %s: %s -> %s%s",
        workflow,
        instance_id,
        extra["from_state"],
        extra["to_state"],
        suffix,
        extra=extra,
    )
