"""Issued certificate bundle and hosted certificate entities."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CertificateBundle:
    """Output of order finalization.

    Attributes
    ----------
    thumbprint:
        Uppercase hex SHA-1 digest of the leaf certificate's DER encoding.
    pfx_blob:
        PKCS#12 container (leaf + private key + chain), password protected.
    domains:
        The identifiers the certificate was issued for.

    """

    thumbprint: str
    pfx_blob: bytes
    domains: tuple[str, ...]

    def __repr__(self) -> str:
        return (
            f"CertificateBundle(thumbprint={self.thumbprint!r}, "
            f"domains={self.domains!r}, pfx_blob=<{len(self.pfx_blob)} bytes>)"
        )


@dataclass(frozen=True)
class HostedCertificate:
    """A certificate resource already installed on the hosting platform."""

    name: str
    thumbprint: str
    resource_group: str = ""
    issuer: str = ""
    host_names: tuple[str, ...] = ()
