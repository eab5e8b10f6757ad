"""Certificate naming and host-name binding updates."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from certbind.core.types import SslState

if TYPE_CHECKING:
    from certbind.models.certificate import HostedCertificate
    from certbind.models.site import HostNameBinding, Site

log = logging.getLogger(__name__)


def certificate_name(domains: Sequence[str], thumbprint: str) -> str:
    """Name of the certificate resource: first domain plus thumbprint.

    Including the thumbprint keeps earlier certificates for the same
    domain set from being overwritten.
    """
    return f"{domains[0]}-{thumbprint}"


def apply_certificate_to_bindings(
    site: Site,
    domains: Iterable[str],
    thumbprint: str,
    ssl_state: SslState = SslState.SNI_ENABLED,
) -> list[HostNameBinding]:
    """Point every binding of *site* matching *domains* at *thumbprint*.

    Bindings are changed in place and marked ``to_update``; the caller
    flushes them with one ``update_site_bindings`` call.
    """
    changed = site.find_bindings(domains)
    for binding in changed:
        binding.thumbprint = thumbprint
        binding.ssl_state = ssl_state
        binding.to_update = True
    log.debug(
        "Marked %d binding(s) on %s for thumbprint %s (%s)",
        len(changed),
        site.display_name,
        thumbprint,
        ssl_state.value,
    )
    return changed


def find_certificate(
    certificates: Iterable[HostedCertificate],
    thumbprint: str,
) -> HostedCertificate | None:
    """Return the certificate whose thumbprint equals *thumbprint*, ignoring case."""
    wanted = thumbprint.lower()
    for certificate in certificates:
        if certificate.thumbprint.lower() == wanted:
            return certificate
    return None
