"""Wildcard certificates for whole DNS zones.

The batch workflow runs one child workflow per zone apex; each child
orders ``*.{domain}`` plus ``{domain}``, proves both through DNS-01 and
uploads the certificate to the requested resource group and location.
Children tag their TXT records with the batch instance id.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from certbind.challenge.selection import select_challenge_type
from certbind.core.state import ISSUANCE_TRANSITIONS
from certbind.core.types import IssuanceState
from certbind.errors import OrderInvalidError, PreconditionError
from certbind.orchestrators.base import StateTracker
from certbind.services.installer import certificate_name

if TYPE_CHECKING:
    from certbind.models.requests import DnsZoneBatchRequest
    from certbind.workflow.context import WorkflowContext

log = logging.getLogger(__name__)

BATCH_WORKFLOW_NAME = "issue_wildcard_batch"
DOMAIN_WORKFLOW_NAME = "issue_wildcard_domain"


def issue_wildcard_batch(ctx: WorkflowContext) -> dict[str, Any]:
    """Issue one wildcard certificate per domain, sequentially.

    The first failing domain fails the batch; certificates already
    uploaded for earlier domains are kept.
    """
    request: DnsZoneBatchRequest = ctx.get_input()
    log.info(
        "Creating wildcard certificates for %s in %s (%s)",
        ", ".join(request.domains),
        request.resource_group,
        request.location,
    )

    certificates = []
    for index, domain in enumerate(request.domains, start=1):
        ctx.set_custom_status(f"Domain {index}/{len(request.domains)}: {domain}")
        certificates.append(
            ctx.call_sub_workflow(
                DOMAIN_WORKFLOW_NAME,
                {
                    "domain": domain,
                    "resource_group": request.resource_group,
                    "location": request.location,
                },
            )
        )
    ctx.set_custom_status(IssuanceState.COMPLETE.value)
    return {"certificates": certificates}


def issue_wildcard_domain(ctx: WorkflowContext) -> dict[str, Any]:
    """Issue and upload the ``*.{domain}`` + ``{domain}`` certificate."""
    job = ctx.get_input()
    domain = job["domain"]
    domains = [f"*.{domain}", domain]
    proxy = ctx.activities_proxy
    sm = StateTracker(ctx, DOMAIN_WORKFLOW_NAME, ISSUANCE_TRANSITIONS, IssuanceState.START)

    with sm.failing_to(IssuanceState.PRECONDITION_FAILED):
        zone = proxy.get_zone(domain)

    sm.advance(IssuanceState.SELECT_CHALLENGE_TYPE)
    challenge_type = select_challenge_type(domains, None)
    sm.advance(IssuanceState.PRECONDITION, reason=challenge_type.value)

    with sm.failing_to(IssuanceState.FAILED, [(PreconditionError, IssuanceState.PRECONDITION_FAILED)]):
        order = proxy.order(domains)
    sm.advance(IssuanceState.ORDER_CREATED, reason=order.url)

    sm.advance(IssuanceState.AUTHORIZE_ALL)
    with sm.failing_to(IssuanceState.CHALLENGE_FAILED):
        results = proxy.dns01_batch_authorization(order.authorizations, ctx.owner_id)
        proxy.check_challenges_all(results)
        proxy.answer_challenges(results)
    sm.advance(IssuanceState.ALL_ANSWERED)

    sm.advance(IssuanceState.POLL_READY)
    with sm.failing_to(IssuanceState.FAILED, [(OrderInvalidError, IssuanceState.ORDER_INVALID)]):
        order = proxy.check_is_ready(order)

    sm.advance(IssuanceState.FINALIZE)
    with sm.failing_to(IssuanceState.FAILED):
        bundle = proxy.finalize_order(order, domains)

    sm.advance(IssuanceState.INSTALL, reason=bundle.thumbprint)
    with sm.failing_to(IssuanceState.FAILED):
        proxy.upload_certificate(bundle, job["resource_group"], job["location"])

    sm.advance(IssuanceState.COMPLETE)
    return {
        "domain": domain,
        "zone": zone.name,
        "thumbprint": bundle.thumbprint,
        "certificate_name": certificate_name(domains, bundle.thumbprint),
    }
