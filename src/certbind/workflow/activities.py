"""Every side-effecting operation an orchestrator may schedule.

Orchestrators never call clients directly.  They go through an
:class:`ActivityProxy`, which routes each call through the workflow
context so it is executed once, retried per policy and recorded in the
step log.  :class:`ActivityName` is the closed list of schedulable
operations; :class:`ActivityInterface` is the matching method contract
implemented by :class:`Activities`.
"""

from __future__ import annotations

import abc
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from certbind.core.types import ChallengeType, OrderStatus, SslState
from certbind.errors import OrderInvalidError, OrderPendingError, PreconditionError
from certbind.services.installer import apply_certificate_to_bindings, certificate_name

if TYPE_CHECKING:
    from collections.abc import Sequence

    from certbind.challenge.dns01 import Dns01Handler
    from certbind.challenge.http01 import Http01Handler
    from certbind.clients.base import AcmeClient, DnsClient, HostingClient
    from certbind.config.settings import FinalizeSettings, RetrySettings
    from certbind.models.acme import ChallengeResult, Order
    from certbind.models.certificate import CertificateBundle, HostedCertificate
    from certbind.models.dns import DnsZone
    from certbind.models.site import Site
    from certbind.services.finalizer import Finalizer
    from certbind.workflow.context import WorkflowContext

log = logging.getLogger(__name__)


class ActivityName(StrEnum):
    GET_SITE = "get_site"
    GET_ZONE = "get_zone"
    HTTP01_PRECONDITION = "http01_precondition"
    HTTP01_AUTHORIZATION = "http01_authorization"
    CHECK_HTTP_CHALLENGE = "check_http_challenge"
    DNS01_PRECONDITION = "dns01_precondition"
    DNS01_AUTHORIZATION = "dns01_authorization"
    DNS01_BATCH_AUTHORIZATION = "dns01_batch_authorization"
    CHECK_DNS_CHALLENGE = "check_dns_challenge"
    ORDER = "order"
    ANSWER_CHALLENGES = "answer_challenges"
    CHECK_IS_READY = "check_is_ready"
    FINALIZE_ORDER = "finalize_order"
    UPLOAD_CERTIFICATE = "upload_certificate"
    UPDATE_SITE_BINDING = "update_site_binding"
    GET_ALL_CERTIFICATES = "get_all_certificates"


class ActivityInterface(abc.ABC):
    """Method contract: one method per :class:`ActivityName` member."""

    @abc.abstractmethod
    def get_site(self, resource_group: str, name: str, slot: str) -> Site | None: ...

    @abc.abstractmethod
    def get_zone(self, domain: str) -> DnsZone: ...

    @abc.abstractmethod
    def http01_precondition(self, site: Site) -> None: ...

    @abc.abstractmethod
    def http01_authorization(self, site: Site, authz_url: str) -> ChallengeResult: ...

    @abc.abstractmethod
    def check_http_challenge(self, result: ChallengeResult) -> None: ...

    @abc.abstractmethod
    def dns01_precondition(self, domains: list[str]) -> None: ...

    @abc.abstractmethod
    def dns01_authorization(self, authz_url: str, owner: str) -> ChallengeResult: ...

    @abc.abstractmethod
    def dns01_batch_authorization(
        self,
        authz_urls: list[str],
        owner: str,
    ) -> list[ChallengeResult]: ...

    @abc.abstractmethod
    def check_dns_challenge(self, result: ChallengeResult) -> None: ...

    @abc.abstractmethod
    def order(self, domains: list[str]) -> Order: ...

    @abc.abstractmethod
    def answer_challenges(self, results: list[ChallengeResult]) -> None: ...

    @abc.abstractmethod
    def check_is_ready(self, order: Order) -> Order: ...

    @abc.abstractmethod
    def finalize_order(self, order: Order, domains: list[str]) -> CertificateBundle: ...

    @abc.abstractmethod
    def upload_certificate(
        self,
        bundle: CertificateBundle,
        resource_group: str,
        location: str,
        server_farm_id: str | None,
    ) -> HostedCertificate: ...

    @abc.abstractmethod
    def update_site_binding(
        self,
        site: Site,
        domains: list[str],
        thumbprint: str,
        ssl_state: SslState,
    ) -> None: ...

    @abc.abstractmethod
    def get_all_certificates(self) -> list[HostedCertificate]: ...


class Activities(ActivityInterface):
    """Activity implementations over the injected clients and handlers.

    Parameters
    ----------
    acme, dns, hosting:
        Collaborator clients.
    http01, dns01:
        Challenge handlers.
    finalizer:
        Order finalizer.
    finalize_settings:
        Holds the bundle password passed to the hosting platform.

    """

    def __init__(
        self,
        *,
        acme: AcmeClient,
        dns: DnsClient,
        hosting: HostingClient,
        http01: Http01Handler,
        dns01: Dns01Handler,
        finalizer: Finalizer,
        finalize_settings: FinalizeSettings,
    ) -> None:
        self._acme = acme
        self._dns = dns
        self._hosting = hosting
        self._http01 = http01
        self._dns01 = dns01
        self._finalizer = finalizer
        self._finalize_settings = finalize_settings

    def get_site(self, resource_group, name, slot):
        return self._hosting.get_site(resource_group, name, slot)

    def get_zone(self, domain):
        wanted = domain.rstrip(".").lower()
        for zone in self._dns.list_zones():
            if zone.name.rstrip(".").lower() == wanted:
                return zone
        msg = f"DNS zone {domain} was not found"
        raise PreconditionError(msg)

    def http01_precondition(self, site):
        self._http01.precondition(site)

    def http01_authorization(self, site, authz_url):
        return self._http01.authorize(site, authz_url)

    def check_http_challenge(self, result):
        self._http01.verify(result)

    def dns01_precondition(self, domains):
        self._dns01.precondition(domains)

    def dns01_authorization(self, authz_url, owner):
        return self._dns01.authorize(authz_url, owner)

    def dns01_batch_authorization(self, authz_urls, owner):
        return self._dns01.authorize_batch(authz_urls, owner)

    def check_dns_challenge(self, result):
        self._dns01.verify(result)

    def order(self, domains):
        order = self._acme.create_order(list(domains))
        log.info(
            "Created order %s for %s (%d authorization(s))",
            order.url,
            ", ".join(domains),
            len(order.authorizations),
        )
        return order

    def answer_challenges(self, results):
        for result in results:
            self._acme.answer_challenge(result.url)
        log.info("Answered %d challenge(s)", len(results))

    def check_is_ready(self, order):
        current = self._acme.get_order(order.url)
        if current.status == OrderStatus.PENDING:
            msg = f"Order {order.url} is still pending validation"
            raise OrderPendingError(msg)
        if current.status == OrderStatus.INVALID:
            msg = f"Order {order.url} is invalid; submit a new request"
            raise OrderInvalidError(msg)
        log.info("Order %s is %s", order.url, current.status.value)
        return current

    def finalize_order(self, order, domains):
        return self._finalizer.finalize(order, list(domains))

    def upload_certificate(self, bundle, resource_group, location, server_farm_id):
        name = certificate_name(bundle.domains, bundle.thumbprint)
        hosted = self._hosting.upload_certificate(
            resource_group=resource_group,
            location=location,
            name=name,
            pfx_blob=bundle.pfx_blob,
            password=self._finalize_settings.pfx_password,
            server_farm_id=server_farm_id,
        )
        log.info("Uploaded certificate %s to %s (%s)", name, resource_group, location)
        return hosted

    def update_site_binding(self, site, domains, thumbprint, ssl_state):
        changed = apply_certificate_to_bindings(site, domains, thumbprint, ssl_state)
        self._hosting.update_site_bindings(site)
        log.info(
            "Updated %d binding(s) on %s to %s",
            len(changed),
            site.display_name,
            thumbprint,
        )

    def get_all_certificates(self):
        return self._hosting.list_certificates()


class ActivityProxy:
    """Typed front for scheduling activities through a workflow context.

    Each method maps to one :class:`ActivityName` and picks the retry
    policy for it; the ``*_all`` methods fan out one step per item and
    join on the results.
    """

    def __init__(self, context: WorkflowContext, retry: RetrySettings) -> None:
        self._ctx = context
        self._retry = retry

    def _call(self, name: ActivityName, *args, retry=None):
        return self._ctx.call_activity(name, *args, retry=retry or self._retry.default)

    def get_site(self, resource_group: str, name: str, slot: str) -> Site | None:
        return self._call(ActivityName.GET_SITE, resource_group, name, slot)

    def get_zone(self, domain: str) -> DnsZone:
        return self._call(ActivityName.GET_ZONE, domain)

    def http01_precondition(self, site: Site) -> None:
        self._call(ActivityName.HTTP01_PRECONDITION, site)

    def dns01_precondition(self, domains: Sequence[str]) -> None:
        self._call(ActivityName.DNS01_PRECONDITION, list(domains))

    def order(self, domains: Sequence[str]) -> Order:
        return self._call(ActivityName.ORDER, list(domains))

    def http01_authorization_all(
        self,
        site: Site,
        authz_urls: Sequence[str],
    ) -> list[ChallengeResult]:
        return self._ctx.call_activities(
            ActivityName.HTTP01_AUTHORIZATION,
            [(site, url) for url in authz_urls],
            retry=self._retry.default,
        )

    def dns01_authorization_all(
        self,
        authz_urls: Sequence[str],
        owner: str,
    ) -> list[ChallengeResult]:
        return self._ctx.call_activities(
            ActivityName.DNS01_AUTHORIZATION,
            [(url, owner) for url in authz_urls],
            retry=self._retry.default,
        )

    def dns01_batch_authorization(
        self,
        authz_urls: Sequence[str],
        owner: str,
    ) -> list[ChallengeResult]:
        return self._call(ActivityName.DNS01_BATCH_AUTHORIZATION, list(authz_urls), owner)

    def check_challenges_all(self, results: Sequence[ChallengeResult]) -> None:
        """Verify every published proof concurrently."""
        if not results:
            return
        name = (
            ActivityName.CHECK_DNS_CHALLENGE
            if results[0].challenge_type == ChallengeType.DNS_01
            else ActivityName.CHECK_HTTP_CHALLENGE
        )
        self._ctx.call_activities(
            name,
            [(r,) for r in results],
            retry=self._retry.challenge_verify,
        )

    def answer_challenges(self, results: Sequence[ChallengeResult]) -> None:
        self._call(ActivityName.ANSWER_CHALLENGES, list(results))

    def check_is_ready(self, order: Order) -> Order:
        return self._call(ActivityName.CHECK_IS_READY, order, retry=self._retry.order_ready)

    def finalize_order(self, order: Order, domains: Sequence[str]) -> CertificateBundle:
        return self._call(ActivityName.FINALIZE_ORDER, order, list(domains))

    def upload_certificate(
        self,
        bundle: CertificateBundle,
        resource_group: str,
        location: str,
        server_farm_id: str | None = None,
    ) -> HostedCertificate:
        return self._call(
            ActivityName.UPLOAD_CERTIFICATE,
            bundle,
            resource_group,
            location,
            server_farm_id,
        )

    def update_site_binding(
        self,
        site: Site,
        domains: Sequence[str],
        thumbprint: str,
        ssl_state: SslState,
    ) -> None:
        self._call(ActivityName.UPDATE_SITE_BINDING, site, list(domains), thumbprint, ssl_state)

    def get_all_certificates(self) -> list[HostedCertificate]:
        return self._call(ActivityName.GET_ALL_CERTIFICATES)
