"""Exception hierarchy shared by the orchestrators, steps and clients.

Every error carries a human-readable ``detail`` and a ``retryable``
flag.  The workflow engine retries a step only while the raised error
is retryable and the step's retry budget is not exhausted; everything
else aborts the workflow.
"""

from __future__ import annotations

from typing import Any


class CertbindError(Exception):
    """Base class for all certbind failures.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the step log and instance status documents."""
        return {
            "type": type(self).__name__,
            "detail": self.detail,
            "retryable": self.retryable,
        }


class InputValidationError(CertbindError):
    """A request is missing fields or has malformed values."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


class PreconditionError(CertbindError):
    """Site, binding or DNS zone preconditions are not met."""


class ChallengeError(CertbindError):
    """Publishing or verifying a challenge proof failed."""


class OrderInvalidError(CertbindError):
    """The CA marked the order invalid; a new request is required."""


class OrderPendingError(CertbindError):
    """The CA has not finished validating the order yet."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail, retryable=True)


class BindingError(CertbindError):
    """A certificate cannot be applied to the requested bindings."""


class ClientError(CertbindError):
    """Raised by ACME, DNS or hosting client implementations."""


class NonDeterminismError(CertbindError):
    """A replayed workflow scheduled a different step than its log records."""


class StepFailedError(CertbindError):
    """A scheduled step failed fatally or exhausted its retry budget.

    Parameters
    ----------
    step:
        The activity name of the failed step.
    cause_type:
        Class name of the underlying error.
    detail:
        Detail of the underlying error.
    attempts:
        How many times the step was executed.
    cause:
        The live exception, when the failure happened in this process
        (``None`` when rebuilt from the step log).

    """

    def __init__(
        self,
        step: str,
        cause_type: str,
        detail: str,
        *,
        attempts: int = 1,
        cause: BaseException | None = None,
    ) -> None:
        self.step = step
        self.cause_type = cause_type
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"{step} failed after {attempts} attempt(s): {detail}",
        )
        self.cause_detail = detail

    @classmethod
    def from_exception(
        cls,
        step: str,
        exc: BaseException,
        attempts: int,
    ) -> StepFailedError:
        if isinstance(exc, StepFailedError):
            return cls(
                step,
                exc.cause_type,
                exc.cause_detail,
                attempts=attempts,
                cause=exc,
            )
        detail = exc.detail if isinstance(exc, CertbindError) else str(exc)
        return cls(step, type(exc).__name__, detail, attempts=attempts, cause=exc)

    @classmethod
    def from_dict(cls, step: str, data: dict[str, Any]) -> StepFailedError:
        return cls(
            step,
            data.get("cause_type", "CertbindError"),
            data.get("cause_detail", ""),
            attempts=data.get("attempts", 1),
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "step": self.step,
                "cause_type": self.cause_type,
                "cause_detail": self.cause_detail,
                "attempts": self.attempts,
            }
        )
        return data

    def caused_by(self, error_type: type[CertbindError]) -> bool:
        """Whether the root cause is (a subclass of) *error_type*."""
        root = self.cause
        while isinstance(root, StepFailedError):
            root = root.cause
        if root is not None:
            return isinstance(root, error_type)
        return self.cause_type in _class_names(error_type)


def _class_names(error_type: type) -> set[str]:
    names = {error_type.__name__}
    for subclass in error_type.__subclasses__():
        names |= _class_names(subclass)
    return names
