"""Workflow API.

- ``POST /add-certificate`` -- issue and bind a certificate for a site
- ``POST /create-wildcard-certificate`` -- wildcard certificates per zone
- ``POST /bind-certificate`` -- bind an existing certificate
- ``GET /instances`` -- list workflow instances
- ``GET /instances/<id>`` -- one instance status

Start requests wait up to ``api.wait_timeout_seconds`` for the workflow;
a finished instance is answered ``200`` with its status document, a
running one ``202`` with a ``Location`` header pointing at its status.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from certbind.api.serializers import (
    serialize_instance,
    serialize_instance_list,
    serialize_started,
    status_query_url,
)
from certbind.app.context import get_container
from certbind.app.errors import MALFORMED, NOT_FOUND, UNAUTHORIZED, ApiProblem
from certbind.core.types import InstanceStatus
from certbind.models.requests import BindingRequest, CertificateRequest, DnsZoneBatchRequest
from certbind.orchestrators import binding, issuance, wildcard

log = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.before_request
def _require_principal() -> None:
    header = current_app.config["CERTBIND_SETTINGS"].api.principal_header
    if header and not request.headers.get(header):
        raise ApiProblem(UNAUTHORIZED, f"Missing {header} header", 401)


def _json_body():
    body = request.get_json(silent=True)
    if body is None:
        raise ApiProblem(MALFORMED, "Request body is not valid JSON", 400)
    return body


def _start(workflow_name: str, workflow_input):
    container = get_container()
    instance_id = container.runner.start_new(workflow_name, workflow_input)
    principal_header = container.settings.api.principal_header
    log.info(
        "Accepted %s as %s%s",
        workflow_name,
        instance_id,
        f" for {request.headers[principal_header]}" if principal_header else "",
    )

    instance = container.runner.wait_for_completion(
        instance_id,
        container.settings.api.wait_timeout_seconds,
    )
    if instance is not None and instance.is_finished:
        return jsonify(serialize_instance(instance)), 200

    resp = jsonify(serialize_started(instance_id))
    resp.status_code = 202
    resp.headers["Location"] = status_query_url(instance_id)
    resp.headers["Retry-After"] = "10"
    return resp


@api_bp.route("/add-certificate", methods=["POST"])
def add_certificate():
    """Issue a certificate for domains bound to a site and apply it."""
    return _start(issuance.WORKFLOW_NAME, CertificateRequest.from_dict(_json_body()))


@api_bp.route("/create-wildcard-certificate", methods=["POST"])
def create_wildcard_certificate():
    return _start(wildcard.BATCH_WORKFLOW_NAME, DnsZoneBatchRequest.from_dict(_json_body()))


@api_bp.route("/bind-certificate", methods=["POST"])
def bind_certificate():
    return _start(binding.WORKFLOW_NAME, BindingRequest.from_dict(_json_body()))


@api_bp.route("/instances", methods=["GET"])
def list_instances():
    """List instances, newest first; ``?status=`` filters, ``?limit=`` caps."""
    container = get_container()
    max_list = container.settings.api.max_list

    status = request.args.get("status")
    if status is not None:
        try:
            status = InstanceStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in InstanceStatus)
            raise ApiProblem(MALFORMED, f"status must be one of: {allowed}", 400) from None

    try:
        limit = int(request.args.get("limit", max_list))
    except ValueError:
        raise ApiProblem(MALFORMED, "limit must be an integer", 400) from None
    limit = max(1, min(limit, max_list))

    instances = container.runner.list_instances(status=status, limit=limit)
    return jsonify(serialize_instance_list(instances)), 200


@api_bp.route("/instances/<instance_id>", methods=["GET"])
def get_instance(instance_id: str):
    instance = get_container().runner.get_status(instance_id)
    if instance is None:
        raise ApiProblem(NOT_FOUND, f"No workflow instance '{instance_id}'", 404)
    return jsonify(serialize_instance(instance)), 200
