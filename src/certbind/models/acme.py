"""ACME order, authorization and challenge value objects."""

from __future__ import annotations

from dataclasses import dataclass

from certbind.core.types import ChallengeType, OrderStatus
from certbind.errors import ChallengeError


@dataclass(frozen=True)
class Order:
    """A CA order, scoped to one workflow run."""

    url: str
    status: OrderStatus
    authorizations: tuple[str, ...]
    finalize_url: str
    certificate_url: str | None = None


@dataclass(frozen=True)
class AcmeChallenge:
    type: str
    url: str
    token: str
    status: str = "pending"


@dataclass(frozen=True)
class Authorization:
    """A proof obligation for one identifier within an order."""

    url: str
    identifier: str
    challenges: tuple[AcmeChallenge, ...]
    wildcard: bool = False
    status: str = "pending"

    def get_challenge(self, challenge_type: ChallengeType) -> AcmeChallenge:
        """Return the offered challenge of *challenge_type*.

        Raises
        ------
        ChallengeError
            (fatal) if the CA did not offer that challenge type.

        """
        for challenge in self.challenges:
            if challenge.type == challenge_type.value:
                return challenge
        offered = sorted(c.type for c in self.challenges)
        msg = (
            f"Authorization for {self.identifier} does not offer "
            f"{challenge_type.value} (offered: {offered})"
        )
        raise ChallengeError(msg)


@dataclass(frozen=True)
class ChallengeDetails:
    """A challenge decoded into the proof that must be published."""

    challenge_type: ChallengeType
    http_resource_path: str | None = None
    http_resource_url: str | None = None
    http_resource_value: str | None = None
    dns_record_name: str | None = None
    dns_record_value: str | None = None


@dataclass(frozen=True)
class ChallengeResult:
    """A published proof, ready to be verified and answered."""

    url: str
    domain: str
    http_resource_url: str | None = None
    http_resource_value: str | None = None
    dns_record_name: str | None = None
    dns_record_value: str | None = None

    @property
    def challenge_type(self) -> ChallengeType:
        if self.dns_record_name is not None:
            return ChallengeType.DNS_01
        return ChallengeType.HTTP_01
