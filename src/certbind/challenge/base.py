"""Abstract base class for challenge handlers.

A handler owns one challenge type end to end: the precondition that
must hold before an order is created, publishing the proof for one
authorization, and checking that the published proof is visible the
way the CA will see it.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from certbind.clients.base import AcmeClient
    from certbind.core.types import ChallengeType
    from certbind.models.acme import (
        AcmeChallenge,
        Authorization,
        ChallengeDetails,
        ChallengeResult,
    )

log = logging.getLogger(__name__)


class ChallengeHandler(abc.ABC):
    """Base class for HTTP-01 and DNS-01 handlers.

    Subclasses must set :attr:`challenge_type` and implement
    :meth:`verify`.

    Parameters
    ----------
    acme:
        The ACME client used to fetch and decode authorizations.

    """

    challenge_type: ChallengeType

    def __init__(self, acme: AcmeClient) -> None:
        self._acme = acme

    def _resolve(
        self,
        authz_url: str,
    ) -> tuple[Authorization, AcmeChallenge, ChallengeDetails]:
        """Fetch an authorization and decode its challenge of our type."""
        authorization = self._acme.get_authorization(authz_url)
        challenge = authorization.get_challenge(self.challenge_type)
        details = self._acme.decode_challenge(authorization, challenge)
        log.debug(
            "Resolved %s challenge for %s: %s",
            self.challenge_type.value,
            authorization.identifier,
            challenge.url,
        )
        return authorization, challenge, details

    @abc.abstractmethod
    def verify(self, result: ChallengeResult) -> None:
        """Check the published proof is visible.

        Raises
        ------
        ChallengeError
            ``retryable=True`` while the proof may still appear,
            ``retryable=False`` when it never will.

        """
