"""DNS-01 challenge handler (RFC 8555 §8.4).

Publishes ``_acme-challenge.{domain}`` TXT records in a zone managed
through the DNS client, merging values with the ownership-tag rule of
:mod:`certbind.challenge.dns_merge`, then resolves them with dnspython
to confirm they are visible.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

import dns.exception
import dns.resolver

from certbind.challenge.base import ChallengeHandler
from certbind.core.types import ChallengeType
from certbind.errors import ChallengeError, PreconditionError
from certbind.models.acme import ChallengeResult

if TYPE_CHECKING:
    from certbind.challenge.dns_merge import DnsRecordMerger
    from certbind.clients.base import AcmeClient, DnsClient
    from certbind.config.settings import Dns01Settings
    from certbind.models.dns import DnsZone

log = logging.getLogger(__name__)


def _normalise(name: str) -> str:
    return name.rstrip(".").lower()


def find_zone(zones: Iterable[DnsZone], domain: str) -> DnsZone | None:
    """Return the zone owning *domain*, or ``None``.

    Matches whole labels case-insensitively (``example.com`` owns
    ``www.example.com`` but not ``badexample.com``).  The longest
    matching zone wins, so a delegated child zone is preferred over its
    parent.
    """
    domain = _normalise(domain)
    if domain.startswith("*."):
        domain = domain[2:]
    best: DnsZone | None = None
    for zone in zones:
        zone_name = _normalise(zone.name)
        if domain == zone_name or domain.endswith("." + zone_name):
            if best is None or len(zone_name) > len(_normalise(best.name)):
                best = zone
    return best


def relative_record_name(record_name: str, zone_name: str) -> str:
    """Return *record_name* relative to *zone_name* (``@`` for the apex)."""
    record = record_name.rstrip(".")
    zone = _normalise(zone_name)
    if record.lower() == zone:
        return "@"
    suffix = "." + zone
    if record.lower().endswith(suffix):
        return record[: -len(suffix)]
    msg = f"{record_name} is not inside zone {zone_name}"
    raise ValueError(msg)


class Dns01Handler(ChallengeHandler):
    """DNS-01 handler for zones managed by the operator.

    Parameters
    ----------
    acme:
        ACME client.
    dns_client:
        DNS management client (zone listing).
    merger:
        TXT record merger sharing ``dns_client``.
    settings:
        The ``challenges.dns01`` configuration section.

    """

    challenge_type = ChallengeType.DNS_01

    def __init__(
        self,
        acme: AcmeClient,
        dns_client: DnsClient,
        merger: DnsRecordMerger,
        settings: Dns01Settings,
    ) -> None:
        super().__init__(acme)
        self._dns = dns_client
        self._merger = merger
        self._settings = settings

    def precondition(self, domains: Iterable[str]) -> None:
        """Every domain must fall inside a managed zone.

        Raises
        ------
        PreconditionError
            Naming every domain without a zone.

        """
        zones = self._dns.list_zones()
        missing = [d for d in domains if find_zone(zones, d) is None]
        if missing:
            msg = f"No managed DNS zone found for: {', '.join(missing)}"
            raise PreconditionError(msg)

    def _zone_for(self, zones: list[DnsZone], record_name: str) -> DnsZone:
        zone = find_zone(zones, record_name)
        if zone is None:
            msg = f"No managed DNS zone found for {record_name}"
            raise PreconditionError(msg)
        return zone

    def authorize(self, authz_url: str, owner: str) -> ChallengeResult:
        """Publish the DNS-01 proof for one authorization."""
        authorization, challenge, details = self._resolve(authz_url)
        zone = self._zone_for(self._dns.list_zones(), details.dns_record_name)
        name = relative_record_name(details.dns_record_name, zone.name)

        self._merger.merge(zone, name, details.dns_record_value, owner)
        log.info(
            "Published DNS-01 record %s in zone %s for %s",
            name,
            zone.name,
            authorization.identifier,
        )

        return ChallengeResult(
            url=challenge.url,
            domain=authorization.identifier,
            dns_record_name=details.dns_record_name,
            dns_record_value=details.dns_record_value,
        )

    def authorize_batch(self, authz_urls: Iterable[str], owner: str) -> list[ChallengeResult]:
        """Publish the proofs of several authorizations.

        All authorizations are resolved first and grouped by record so
        each record is written exactly once, holding every value that
        belongs at that name.  Results keep the order of *authz_urls*.
        """
        zones = self._dns.list_zones()
        results: list[ChallengeResult] = []
        groups: dict[tuple[str, str], tuple[DnsZone, str, list[str]]] = {}

        for authz_url in authz_urls:
            authorization, challenge, details = self._resolve(authz_url)
            zone = self._zone_for(zones, details.dns_record_name)
            name = relative_record_name(details.dns_record_name, zone.name)
            key = (_normalise(zone.name), name.lower())
            groups.setdefault(key, (zone, name, []))[2].append(details.dns_record_value)
            results.append(
                ChallengeResult(
                    url=challenge.url,
                    domain=authorization.identifier,
                    dns_record_name=details.dns_record_name,
                    dns_record_value=details.dns_record_value,
                )
            )

        for zone, name, values in groups.values():
            self._merger.merge_many(zone, name, values, owner)
            log.info(
                "Published %d DNS-01 value(s) at %s in zone %s",
                len(values),
                name,
                zone.name,
            )
        return results

    def _resolver(self) -> dns.resolver.Resolver:
        resolver = dns.resolver.Resolver()
        if self._settings.resolvers:
            resolver.nameservers = list(self._settings.resolvers)
        resolver.lifetime = self._settings.timeout_seconds
        return resolver

    def verify(self, result: ChallengeResult) -> None:
        """Resolve the TXT record and look for the expected value.

        Every failure is retryable: propagation delay looks the same as
        an empty, stale or missing record.
        """
        query_name = result.dns_record_name
        try:
            answer = self._resolver().resolve(query_name, "TXT")
        except dns.resolver.NXDOMAIN as exc:
            msg = f"DNS-01 check failed for {result.domain}: {query_name} does not exist (NXDOMAIN)"
            raise ChallengeError(msg, retryable=True) from exc
        except dns.resolver.NoAnswer as exc:
            msg = f"DNS-01 check failed for {result.domain}: {query_name} has no TXT records"
            raise ChallengeError(msg, retryable=True) from exc
        except dns.resolver.NoNameservers as exc:
            msg = f"DNS-01 check failed for {result.domain}: no nameservers available for {query_name}"
            raise ChallengeError(msg, retryable=True) from exc
        except dns.exception.Timeout as exc:
            msg = f"DNS-01 check failed for {result.domain}: query for {query_name} timed out"
            raise ChallengeError(msg, retryable=True) from exc
        except dns.exception.DNSException as exc:
            msg = f"DNS-01 check failed for {result.domain}: DNS error querying {query_name}: {exc}"
            raise ChallengeError(msg, retryable=True) from exc

        found = [b"".join(rdata.strings).decode("ascii", errors="replace") for rdata in answer]
        if result.dns_record_value in found:
            log.info("DNS-01 record verified for %s (%s)", result.domain, query_name)
            return

        msg = (
            f"DNS-01 check failed for {result.domain}: none of the {len(found)} "
            f"TXT value(s) at {query_name} match"
        )
        raise ChallengeError(msg, retryable=True)
