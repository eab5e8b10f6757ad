"""Challenge-type selection policy."""

from __future__ import annotations

from collections.abc import Iterable

from certbind.core.types import ChallengeType

# Site kinds that cannot serve the HTTP-01 web.config handler
_DNS_ONLY_KINDS = ("container", "linux")


def select_challenge_type(domains: Iterable[str], site_kind: str | None) -> ChallengeType:
    """Choose the challenge type for an issuance request.

    DNS-01 when any domain is a wildcard (the CA never offers HTTP-01
    for wildcards) or the site runs a container / non-Windows runtime;
    HTTP-01 otherwise.  Depends on nothing but its arguments.
    """
    if any(d.startswith("*.") for d in domains):
        return ChallengeType.DNS_01
    kind = (site_kind or "").lower()
    if any(marker in kind for marker in _DNS_ONLY_KINDS):
        return ChallengeType.DNS_01
    return ChallengeType.HTTP_01
