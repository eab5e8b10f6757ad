"""RFC 7807 problem documents for the certbind HTTP API.

Every error leaving the API, including werkzeug routing errors and
unexpected exceptions, is answered with an ``application/problem+json``
body built from an :class:`ApiProblem`.

Usage::

    raise ApiProblem(NOT_FOUND, "No workflow instance 'abc'", 404)
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from certbind.errors import InputValidationError

log = logging.getLogger(__name__)

_URN = "urn:certbind:error:"

MALFORMED = _URN + "malformed"
NOT_FOUND = _URN + "notFound"
SERVER_INTERNAL = _URN + "serverInternal"
UNAUTHORIZED = _URN + "unauthorized"

PROBLEM_CONTENT_TYPE = "application/problem+json"


class ApiProblem(Exception):
    """A problem document raised from a view.

    ``errors`` carries the individual messages of a failed request
    validation; ``title`` is set for plain HTTP errors only.
    """

    def __init__(
        self,
        error_type: str,
        detail: str,
        status: int = 400,
        *,
        title: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(detail)
        self.error_type = error_type
        self.detail = detail
        self.status = status
        self.title = title
        self.errors = errors

    @classmethod
    def from_http_exception(cls, exc: HTTPException) -> ApiProblem:
        return cls(
            "about:blank",
            exc.description or exc.name,
            exc.code or 500,
            title=exc.name,
        )

    def to_dict(self) -> dict[str, Any]:
        optional = {"title": self.title, "errors": self.errors or None}
        return {
            "type": self.error_type,
            "detail": self.detail,
            "status": self.status,
            **{key: value for key, value in optional.items() if value is not None},
        }

    def to_response(self) -> Response:
        resp = jsonify(self.to_dict())
        resp.status_code = self.status
        resp.content_type = PROBLEM_CONTENT_TYPE
        resp.headers["Cache-Control"] = "no-store"
        return resp


def register_error_handlers(app: Flask) -> None:
    """Route API, validation, HTTP and unexpected errors to problem documents."""

    def render(exc: ApiProblem) -> Response:
        return exc.to_response()

    def render_validation(exc: InputValidationError) -> Response:
        log.info("Rejected request: %s", exc.detail)
        return render(ApiProblem(MALFORMED, "Request validation failed", errors=exc.errors))

    def render_http(exc: HTTPException) -> Response:
        return render(ApiProblem.from_http_exception(exc))

    def render_unexpected(exc: Exception) -> Response:
        # the exception text may carry client or database details
        log.exception("Unhandled exception during request")
        return render(ApiProblem(SERVER_INTERNAL, "Internal server error", 500))

    app.register_error_handler(ApiProblem, render)
    app.register_error_handler(InputValidationError, render_validation)
    app.register_error_handler(HTTPException, render_http)
    app.register_error_handler(Exception, render_unexpected)
