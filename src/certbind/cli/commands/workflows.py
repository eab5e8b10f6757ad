"""Workflow subcommands -- run issuance and binding without the HTTP API.

Each start command runs the workflow in this process, prints the final
status document as JSON and exits 0 when the workflow completed, 1 when
it failed.  With ``--no-wait`` the instance id is printed as soon as the
instance is recorded; the process still runs it to the end before
exiting, so ``status`` from another shell can follow it.  ``status`` reads the configured step store, so it is only
useful across invocations with ``workflow.store: postgres``.

Usage::

    certbind -c config.yaml issue -g rg -s site -d www.example.com
    certbind -c config.yaml bind -t 3A0F... --target rg/site/www.example.com/staging
    certbind -c config.yaml status --status failed
"""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from certbind.app.context import Container
from certbind.core.types import InstanceStatus
from certbind.errors import InputValidationError
from certbind.models.requests import BindingRequest, CertificateRequest, DnsZoneBatchRequest
from certbind.orchestrators import binding, issuance, wildcard

if TYPE_CHECKING:
    import argparse

    from certbind.config.certbind_config import CertbindConfig

log = logging.getLogger(__name__)


def _emit(document: Any) -> None:
    sys.stdout.write(json.dumps(document, indent=2, default=str) + "\n")


def parse_target(value: str) -> dict[str, str]:
    """``rg/site/domain[/slot]`` -> binding target mapping."""
    parts = value.split("/")
    if len(parts) not in (3, 4) or not all(parts):
        msg = f"target '{value}' must look like RESOURCE_GROUP/SITE/DOMAIN[/SLOT]."
        raise InputValidationError([msg])
    target = {"resource_group": parts[0], "site": parts[1], "domain": parts[2]}
    if len(parts) == 4:
        target["slot"] = parts[3]
    return target


def _run(config: CertbindConfig, args: argparse.Namespace, name: str, request: Any) -> int:
    container = Container(config.settings)
    try:
        instance_id = container.runner.start_new(name, request)
        if args.no_wait:
            # shutdown below still drains the instance before exit
            _emit({"id": instance_id})
            sys.stdout.flush()
            return 0
        instance = container.runner.wait_for_completion(instance_id, timeout=None)
        _emit(instance.to_status_dict())
        return 0 if instance.status == InstanceStatus.COMPLETED else 1
    finally:
        container.runner.shutdown(wait=True)


def run_issue(config: CertbindConfig, args: argparse.Namespace) -> int:
    request = CertificateRequest.from_dict(
        {
            "resource_group": args.resource_group,
            "site": args.site,
            "slot": args.slot,
            "domains": args.domains,
            "use_ip_based_ssl": args.ip_based,
        },
    )
    return _run(config, args, issuance.WORKFLOW_NAME, request)


def run_wildcard(config: CertbindConfig, args: argparse.Namespace) -> int:
    request = DnsZoneBatchRequest.from_dict(
        {
            "domains": args.domains,
            "resource_group": args.resource_group,
            "location": args.location,
        },
    )
    return _run(config, args, wildcard.BATCH_WORKFLOW_NAME, request)


def run_bind(config: CertbindConfig, args: argparse.Namespace) -> int:
    request = BindingRequest.from_dict(
        {
            "cert_thumbprint": args.thumbprint,
            "targets": [parse_target(t) for t in args.targets],
        },
    )
    return _run(config, args, binding.WORKFLOW_NAME, request)


def run_status(config: CertbindConfig, args: argparse.Namespace) -> int:
    """Print one instance, or a list filtered by ``--status``."""
    container = Container(config.settings)
    try:
        runner = container.runner
        if args.instance_id:
            instance = runner.get_status(args.instance_id)
            if instance is None:
                sys.stderr.write(f"No workflow instance '{args.instance_id}'\n")
                return 1
            _emit(instance.to_status_dict())
            return 0
        status = InstanceStatus(args.status_filter) if args.status_filter else None
        _emit(
            [
                {
                    "id": i.id,
                    "name": i.name,
                    "status": i.status.value,
                    "custom_status": i.custom_status,
                    "updated_at": i.updated_at.isoformat(),
                }
                for i in runner.list_instances(status=status, limit=args.limit)
            ],
        )
        return 0
    finally:
        container.shutdown()
