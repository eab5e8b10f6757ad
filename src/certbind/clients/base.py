"""Capability interfaces for the external collaborators.

The orchestration core never talks to a CA, a DNS provider or the
hosting platform directly.  It is handed one implementation of each
interface below, loaded from configuration by
:func:`certbind.clients.registry.load_client`.

Implementations raise :class:`~certbind.errors.ClientError` on failure,
setting ``retryable=True`` for transient conditions (timeouts, 5xx,
throttling) so the workflow engine can retry the step.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any

from certbind.core.jws import dns01_txt_value, key_authorization
from certbind.core.types import ChallengeType
from certbind.models.acme import ChallengeDetails

if TYPE_CHECKING:
    from certbind.models.acme import AcmeChallenge, Authorization, Order
    from certbind.models.certificate import HostedCertificate
    from certbind.models.dns import DnsZone, TxtRecordSet
    from certbind.models.site import PublishingCredentials, Site, SiteConfig

log = logging.getLogger(__name__)

HTTP01_RESOURCE_PREFIX = ".well-known/acme-challenge/"
DNS01_RECORD_PREFIX = "_acme-challenge."


class _Client(abc.ABC):
    """Common constructor for configurable clients.

    Parameters
    ----------
    options:
        The client's ``options`` mapping from configuration, passed
        through unchanged.

    """

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self._options = dict(options or {})

    def startup_check(self) -> None:
        """Optional startup health check.  Default is a no-op.

        Raises
        ------
        ClientError
            If the client is misconfigured.

        """


class AcmeClient(_Client):
    """ACME wire-protocol capability (RFC 8555).

    JWS signing, nonces and account management are the implementation's
    concern.  The core only needs order and challenge operations.
    """

    @property
    @abc.abstractmethod
    def account_jwk(self) -> dict[str, Any]:
        """The account's public JWK, used to build key authorizations."""

    @abc.abstractmethod
    def create_order(self, domains: list[str]) -> Order:
        """Create a new order for *domains* (one authorization per identifier)."""

    @abc.abstractmethod
    def get_order(self, url: str) -> Order:
        """Fetch the current state of an order."""

    @abc.abstractmethod
    def get_authorization(self, url: str) -> Authorization:
        """Fetch an authorization and its offered challenges."""

    @abc.abstractmethod
    def answer_challenge(self, url: str) -> None:
        """Tell the CA the challenge at *url* is ready to be validated.

        Must be idempotent: answering an already-answered challenge is
        not an error.
        """

    @abc.abstractmethod
    def finalize_order(self, finalize_url: str, csr_der: bytes) -> Order:
        """Submit the DER-encoded CSR to the order's finalize endpoint."""

    @abc.abstractmethod
    def fetch_certificate(self, url: str) -> str:
        """Download the issued certificate chain as PEM (leaf first)."""

    def decode_challenge(
        self,
        authorization: Authorization,
        challenge: AcmeChallenge,
    ) -> ChallengeDetails:
        """Turn an offered challenge into the proof that must be published.

        HTTP-01 yields the resource path below the web root, its URL and
        the key authorization.  DNS-01 yields the fully-qualified TXT
        record name and the digest value.  Wildcard identifiers share the
        record name of their base domain.
        """
        identifier = authorization.identifier
        if challenge.type == ChallengeType.HTTP_01.value:
            path = f"{HTTP01_RESOURCE_PREFIX}{challenge.token}"
            return ChallengeDetails(
                challenge_type=ChallengeType.HTTP_01,
                http_resource_path=path,
                http_resource_url=f"http://{identifier}/{path}",
                http_resource_value=key_authorization(challenge.token, self.account_jwk),
            )
        if challenge.type == ChallengeType.DNS_01.value:
            base = identifier[2:] if identifier.startswith("*.") else identifier
            return ChallengeDetails(
                challenge_type=ChallengeType.DNS_01,
                dns_record_name=f"{DNS01_RECORD_PREFIX}{base}",
                dns_record_value=dns01_txt_value(challenge.token, self.account_jwk),
            )
        msg = f"Unsupported challenge type '{challenge.type}'"
        raise ValueError(msg)


class DnsClient(_Client):
    """Managed DNS zone capability."""

    @abc.abstractmethod
    def list_zones(self) -> list[DnsZone]:
        """Return every zone the operator manages."""

    @abc.abstractmethod
    def get_txt_record_set(self, zone: DnsZone, name: str) -> TxtRecordSet | None:
        """Return the TXT set at relative *name* in *zone*, or ``None`` if absent."""

    @abc.abstractmethod
    def upsert_txt_record_set(
        self,
        zone: DnsZone,
        name: str,
        record_set: TxtRecordSet,
    ) -> None:
        """Create or replace the TXT set at relative *name* in *zone*."""


class HostingClient(_Client):
    """Web hosting platform capability (sites, files and certificates)."""

    @abc.abstractmethod
    def get_site(self, resource_group: str, name: str, slot: str) -> Site | None:
        """Return the site (or deployment slot), or ``None`` if it does not exist."""

    @abc.abstractmethod
    def get_site_config(self, site: Site) -> SiteConfig:
        """Return the site's web configuration."""

    @abc.abstractmethod
    def update_site_config(self, site: Site, config: SiteConfig) -> None:
        """Write back the site's web configuration."""

    @abc.abstractmethod
    def get_publishing_credentials(self, site: Site) -> PublishingCredentials:
        """Return deployment credentials for :meth:`publish_file`."""

    @abc.abstractmethod
    def publish_file(
        self,
        site: Site,
        credentials: PublishingCredentials,
        path: str,
        content: str,
    ) -> None:
        """Write *content* to *path*, relative to the site's web root."""

    @abc.abstractmethod
    def upload_certificate(
        self,
        *,
        resource_group: str,
        location: str,
        name: str,
        pfx_blob: bytes,
        password: str,
        server_farm_id: str | None = None,
    ) -> HostedCertificate:
        """Create a certificate resource from a PKCS#12 bundle."""

    @abc.abstractmethod
    def update_site_bindings(self, site: Site) -> None:
        """Flush every host-name binding marked ``to_update`` in one call."""

    @abc.abstractmethod
    def list_certificates(self) -> list[HostedCertificate]:
        """Return every certificate resource visible to the client."""
