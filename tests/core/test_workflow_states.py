"""Unit tests for certbind.core.state -- orchestrator state machines."""

from __future__ import annotations

import logging

import pytest

from certbind.core.state import (
    BINDING_TRANSITIONS,
    ISSUANCE_TRANSITIONS,
    assert_transition,
    is_terminal,
    log_transition,
)
from certbind.core.types import BindingState, IssuanceState

# ---------------------------------------------------------------------------
# TestIssuanceTransitions
# ---------------------------------------------------------------------------


class TestIssuanceTransitions:
    HAPPY_PATH = [
        IssuanceState.START,
        IssuanceState.SELECT_CHALLENGE_TYPE,
        IssuanceState.PRECONDITION,
        IssuanceState.ORDER_CREATED,
        IssuanceState.AUTHORIZE_ALL,
        IssuanceState.ALL_ANSWERED,
        IssuanceState.POLL_READY,
        IssuanceState.FINALIZE,
        IssuanceState.INSTALL,
        IssuanceState.UPDATE_BINDINGS,
        IssuanceState.COMPLETE,
    ]

    def test_happy_path_is_allowed(self):
        for current, target in zip(self.HAPPY_PATH, self.HAPPY_PATH[1:]):
            assert_transition(current, target, ISSUANCE_TRANSITIONS)

    def test_install_may_complete_without_binding(self):
        assert_transition(IssuanceState.INSTALL, IssuanceState.COMPLETE, ISSUANCE_TRANSITIONS)

    @pytest.mark.parametrize(
        "current,target",
        [
            (IssuanceState.START, IssuanceState.PRECONDITION_FAILED),
            (IssuanceState.PRECONDITION, IssuanceState.PRECONDITION_FAILED),
            (IssuanceState.AUTHORIZE_ALL, IssuanceState.CHALLENGE_FAILED),
            (IssuanceState.POLL_READY, IssuanceState.ORDER_INVALID),
            (IssuanceState.FINALIZE, IssuanceState.FAILED),
        ],
    )
    def test_failure_edges(self, current, target):
        assert_transition(current, target, ISSUANCE_TRANSITIONS)

    def test_skipping_a_state_is_rejected(self):
        with pytest.raises(ValueError, match="Invalid transition"):
            assert_transition(
                IssuanceState.ORDER_CREATED,
                IssuanceState.FINALIZE,
                ISSUANCE_TRANSITIONS,
            )

    @pytest.mark.parametrize(
        "terminal",
        [
            IssuanceState.COMPLETE,
            IssuanceState.PRECONDITION_FAILED,
            IssuanceState.CHALLENGE_FAILED,
            IssuanceState.ORDER_INVALID,
            IssuanceState.FAILED,
        ],
    )
    def test_terminal_states(self, terminal):
        assert is_terminal(terminal, ISSUANCE_TRANSITIONS)
        with pytest.raises(ValueError, match="terminal"):
            assert_transition(terminal, IssuanceState.START, ISSUANCE_TRANSITIONS)

    def test_every_state_has_an_entry(self):
        assert set(ISSUANCE_TRANSITIONS) == set(IssuanceState)


# ---------------------------------------------------------------------------
# TestBindingTransitions
# ---------------------------------------------------------------------------


class TestBindingTransitions:
    def test_happy_path(self):
        assert_transition(BindingState.START, BindingState.RESOLVE_CERTIFICATE, BINDING_TRANSITIONS)
        assert_transition(
            BindingState.RESOLVE_CERTIFICATE,
            BindingState.UPDATE_BINDINGS,
            BINDING_TRANSITIONS,
        )
        assert_transition(BindingState.UPDATE_BINDINGS, BindingState.COMPLETE, BINDING_TRANSITIONS)

    def test_start_cannot_fail_directly(self):
        with pytest.raises(ValueError):
            assert_transition(BindingState.START, BindingState.BINDING_FAILED, BINDING_TRANSITIONS)

    def test_unknown_state(self):
        with pytest.raises(ValueError, match="Unknown state"):
            assert_transition("bogus", BindingState.COMPLETE, BINDING_TRANSITIONS)


# ---------------------------------------------------------------------------
# TestLogTransition
# ---------------------------------------------------------------------------


class TestLogTransition:
    def test_emits_structured_extra(self, caplog):
        with caplog.at_level(logging.INFO, logger="certbind.core.state"):
            log_transition(
                "issue_certificate",
                "abc",
                IssuanceState.START,
                IssuanceState.SELECT_CHALLENGE_TYPE,
                reason="go",
            )
        record = caplog.records[-1]
        assert record.event == "state_transition"
        assert record.from_state == "Start"
        assert record.to_state == "SelectChallengeType"
        assert record.reason == "go"
        assert "(go)" in record.getMessage()

    def test_reason_omitted(self, caplog):
        with caplog.at_level(logging.INFO, logger="certbind.core.state"):
            log_transition("bind_certificate", "x", BindingState.START, BindingState.RESOLVE_CERTIFICATE)
        assert not hasattr(caplog.records[-1], "reason")
