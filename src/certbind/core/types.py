"""Enumerated types shared across certbind.

All enums inherit from ``StrEnum`` so their ``.value`` is a plain
string that JSON and psycopg round-trip naturally.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# ACME
# ---------------------------------------------------------------------------


class OrderStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class ChallengeType(StrEnum):
    HTTP_01 = "http-01"
    DNS_01 = "dns-01"


# ---------------------------------------------------------------------------
# Hosting
# ---------------------------------------------------------------------------


class SslState(StrEnum):
    DISABLED = "Disabled"
    SNI_ENABLED = "SniEnabled"
    IP_BASED_ENABLED = "IpBasedEnabled"


# ---------------------------------------------------------------------------
# Workflow engine
# ---------------------------------------------------------------------------


class InstanceStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Orchestrator states
# ---------------------------------------------------------------------------


class IssuanceState(StrEnum):
    START = "Start"
    SELECT_CHALLENGE_TYPE = "SelectChallengeType"
    PRECONDITION = "Precondition"
    ORDER_CREATED = "OrderCreated"
    AUTHORIZE_ALL = "AuthorizeAll"
    ALL_ANSWERED = "AllAnswered"
    POLL_READY = "PollReady"
    FINALIZE = "Finalize"
    INSTALL = "Install"
    UPDATE_BINDINGS = "UpdateBindings"
    COMPLETE = "Complete"
    PRECONDITION_FAILED = "PreconditionFailed"
    CHALLENGE_FAILED = "ChallengeFailed"
    ORDER_INVALID = "OrderInvalid"
    FAILED = "Failed"


class BindingState(StrEnum):
    START = "Start"
    RESOLVE_CERTIFICATE = "ResolveCertificate"
    UPDATE_BINDINGS = "UpdateBindings"
    COMPLETE = "Complete"
    BINDING_FAILED = "BindingFailed"
