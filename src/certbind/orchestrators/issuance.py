"""Certificate issuance for host names bound to one site."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from certbind.challenge.selection import select_challenge_type
from certbind.core.state import ISSUANCE_TRANSITIONS
from certbind.core.types import ChallengeType, IssuanceState, SslState
from certbind.errors import OrderInvalidError, PreconditionError
from certbind.orchestrators.base import StateTracker
from certbind.services.installer import certificate_name

if TYPE_CHECKING:
    from certbind.models.requests import CertificateRequest
    from certbind.workflow.context import WorkflowContext

log = logging.getLogger(__name__)

WORKFLOW_NAME = "issue_certificate"


def issue_certificate(ctx: WorkflowContext) -> dict[str, Any]:
    """Issue a certificate for a :class:`CertificateRequest` and bind it.

    Fails in ``PreconditionFailed`` without any external write when the
    site is missing or a domain is not bound on it.
    """
    request: CertificateRequest = ctx.get_input()
    proxy = ctx.activities_proxy
    sm = StateTracker(ctx, WORKFLOW_NAME, ISSUANCE_TRANSITIONS, IssuanceState.START)
    domains = list(request.domains)

    site = proxy.get_site(request.resource_group, request.site, request.slot)
    if site is None:
        sm.fail(
            IssuanceState.PRECONDITION_FAILED,
            PreconditionError(
                f"Site {request.resource_group}/{request.site} (slot {request.slot}) was not found"
            ),
        )
    missing = site.missing_domains(domains)
    if missing:
        sm.fail(
            IssuanceState.PRECONDITION_FAILED,
            PreconditionError(
                f"Domain(s) {', '.join(missing)} are not bound to site {site.display_name}"
            ),
        )

    sm.advance(IssuanceState.SELECT_CHALLENGE_TYPE)
    challenge_type = select_challenge_type(domains, site.kind)
    use_dns = challenge_type == ChallengeType.DNS_01
    sm.advance(IssuanceState.PRECONDITION, reason=challenge_type.value)

    with sm.failing_to(IssuanceState.FAILED, [(PreconditionError, IssuanceState.PRECONDITION_FAILED)]):
        if use_dns:
            proxy.dns01_precondition(domains)
        else:
            proxy.http01_precondition(site)
        order = proxy.order(domains)
    sm.advance(IssuanceState.ORDER_CREATED, reason=order.url)

    sm.advance(IssuanceState.AUTHORIZE_ALL)
    with sm.failing_to(IssuanceState.CHALLENGE_FAILED):
        if use_dns:
            results = proxy.dns01_authorization_all(order.authorizations, ctx.owner_id)
        else:
            results = proxy.http01_authorization_all(site, order.authorizations)
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
        proxy.upload_certificate(bundle, site.resource_group, site.location, site.server_farm_id)

    sm.advance(IssuanceState.UPDATE_BINDINGS)
    ssl_state = SslState.IP_BASED_ENABLED if request.use_ip_based_ssl else SslState.SNI_ENABLED
    with sm.failing_to(IssuanceState.FAILED):
        proxy.update_site_binding(site, domains, bundle.thumbprint, ssl_state)

    sm.advance(IssuanceState.COMPLETE)
    return {
        "site": site.display_name,
        "domains": domains,
        "challenge_type": challenge_type.value,
        "thumbprint": bundle.thumbprint,
        "certificate_name": certificate_name(domains, bundle.thumbprint),
        "ssl_state": ssl_state.value,
    }
