"""Value objects and entities passed between workflow steps.

Immutable models are frozen dataclasses; use :func:`dataclasses.replace`
for modifications.  Site-side models are mutable because bindings are
edited in place before being flushed.
"""

from certbind.models.acme import (
    AcmeChallenge,
    Authorization,
    ChallengeDetails,
    ChallengeResult,
    Order,
)
from certbind.models.certificate import CertificateBundle, HostedCertificate
from certbind.models.dns import OWNER_TAG_KEY, DnsZone, TxtRecordSet
from certbind.models.requests import (
    BindingRequest,
    BindingTarget,
    CertificateRequest,
    DnsZoneBatchRequest,
)
from certbind.models.site import (
    HostNameBinding,
    PublishingCredentials,
    Site,
    SiteConfig,
    VirtualApplication,
)

__all__ = [
    "OWNER_TAG_KEY",
    "AcmeChallenge",
    "Authorization",
    "BindingRequest",
    "BindingTarget",
    "CertificateBundle",
    "CertificateRequest",
    "ChallengeDetails",
    "ChallengeResult",
    "DnsZone",
    "DnsZoneBatchRequest",
    "HostNameBinding",
    "HostedCertificate",
    "Order",
    "PublishingCredentials",
    "Site",
    "SiteConfig",
    "TxtRecordSet",
    "VirtualApplication",
]
