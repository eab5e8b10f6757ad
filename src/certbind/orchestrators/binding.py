"""Apply an already-issued certificate to host names across sites."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from certbind.core.state import BINDING_TRANSITIONS
from certbind.core.types import BindingState, SslState
from certbind.errors import BindingError
from certbind.orchestrators.base import StateTracker
from certbind.services.installer import find_certificate

if TYPE_CHECKING:
    from certbind.models.requests import BindingRequest, BindingTarget
    from certbind.models.site import Site
    from certbind.workflow.context import WorkflowContext

log = logging.getLogger(__name__)

WORKFLOW_NAME = "bind_certificate"


def bind_certificate(ctx: WorkflowContext) -> dict[str, Any]:
    """Set every target binding to SNI with the requested certificate.

    The certificate and every target site are resolved before any site
    is modified; an unknown thumbprint or a missing site fails the
    workflow with nothing changed.
    """
    request: BindingRequest = ctx.get_input()
    proxy = ctx.activities_proxy
    sm = StateTracker(ctx, WORKFLOW_NAME, BINDING_TRANSITIONS, BindingState.START)

    sm.advance(BindingState.RESOLVE_CERTIFICATE)
    with sm.failing_to(BindingState.BINDING_FAILED):
        certificates = proxy.get_all_certificates()
    certificate = find_certificate(certificates, request.cert_thumbprint)
    if certificate is None:
        sm.fail(
            BindingState.BINDING_FAILED,
            BindingError(f"Certificate with thumbprint {request.cert_thumbprint} was not found"),
        )

    groups: dict[tuple[str, str, str], list[BindingTarget]] = {}
    for target in request.targets:
        groups.setdefault(target.site_key, []).append(target)

    sites: list[tuple[Site, list[str]]] = []
    with sm.failing_to(BindingState.BINDING_FAILED):
        for (resource_group, name, slot), targets in groups.items():
            site = proxy.get_site(resource_group, name, slot)
            if site is None:
                msg = f"Site {resource_group}/{name} (slot {slot}) doesn't exist"
                raise BindingError(msg)
            sites.append((site, [t.domain for t in targets]))

    sm.advance(BindingState.UPDATE_BINDINGS, reason=certificate.thumbprint)
    with sm.failing_to(BindingState.BINDING_FAILED):
        for site, domains in sites:
            missing = site.missing_domains(domains)
            if missing:
                log.warning(
                    "Skipping %s on %s: no such host-name binding",
                    ", ".join(missing),
                    site.display_name,
                )
            proxy.update_site_binding(site, domains, certificate.thumbprint, SslState.SNI_ENABLED)

    sm.advance(BindingState.COMPLETE)
    return {
        "thumbprint": certificate.thumbprint,
        "certificate_name": certificate.name,
        "sites": [site.display_name for site, _ in sites],
    }
