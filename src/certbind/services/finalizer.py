"""Order finalization: key, CSR and PKCS#12 bundle.

A fresh P-256 key is generated per order; it never leaves this module
except inside the password-protected bundle handed to the hosting
platform.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from certbind.core.types import OrderStatus
from certbind.errors import ClientError, OrderInvalidError
from certbind.models.certificate import CertificateBundle

if TYPE_CHECKING:
    from certbind.clients.base import AcmeClient
    from certbind.config.settings import FinalizeSettings
    from certbind.models.acme import Order

log = logging.getLogger(__name__)


def generate_csr(key: ec.EllipticCurvePrivateKey, domains: Sequence[str]) -> bytes:
    """Build a DER-encoded CSR: CN is the first domain, SANs are all domains."""
    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
    )
    csr = builder.sign(key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.DER)


def compute_thumbprint(certificate: x509.Certificate) -> str:
    """Uppercase hex SHA-1 of the certificate's DER encoding."""
    der = certificate.public_bytes(serialization.Encoding.DER)
    return hashlib.sha1(der).hexdigest().upper()  # noqa: S324


def build_pkcs12(
    key: ec.EllipticCurvePrivateKey,
    chain: Sequence[x509.Certificate],
    password: str,
    friendly_name: str | None = None,
) -> bytes:
    """Bundle the leaf (``chain[0]``), its key and the intermediates."""
    if not chain:
        msg = "No certificates found in the issued chain"
        raise ValueError(msg)
    encryption = (
        serialization.BestAvailableEncryption(password.encode())
        if password
        else serialization.NoEncryption()
    )
    return pkcs12.serialize_key_and_certificates(
        name=friendly_name.encode() if friendly_name else None,
        key=key,
        cert=chain[0],
        cas=list(chain[1:]) or None,
        encryption_algorithm=encryption,
    )


def _public_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class Finalizer:
    """Finalize a ready order and assemble the certificate bundle.

    Parameters
    ----------
    acme:
        ACME client.
    settings:
        The ``finalize`` configuration section (bundle password and
        certificate polling).
    sleep:
        Delay function, injectable for tests.

    """

    def __init__(
        self,
        acme: AcmeClient,
        settings: FinalizeSettings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._acme = acme
        self._settings = settings
        self._sleep = sleep

    def _wait_for_certificate(self, order: Order) -> str:
        attempts = self._settings.poll_attempts
        for attempt in range(attempts + 1):
            if order.status == OrderStatus.INVALID:
                msg = f"Order {order.url} became invalid during finalization"
                raise OrderInvalidError(msg)
            if order.certificate_url:
                return order.certificate_url
            if attempt == attempts:
                break
            log.debug(
                "Certificate for order %s not ready (status %s), polling again",
                order.url,
                order.status.value,
            )
            self._sleep(self._settings.poll_interval_seconds)
            order = self._acme.get_order(order.url)

        msg = f"Certificate for order {order.url} not available after {attempts} poll(s)"
        raise ClientError(msg)

    def finalize(self, order: Order, domains: Sequence[str]) -> CertificateBundle:
        """Submit a CSR for *domains* and return the issued bundle."""
        key = ec.generate_private_key(ec.SECP256R1())
        csr_der = generate_csr(key, domains)

        log.info("Finalizing order %s for %s", order.url, ", ".join(domains))
        finalized = self._acme.finalize_order(order.finalize_url, csr_der)
        certificate_url = self._wait_for_certificate(finalized)

        pem_chain = self._acme.fetch_certificate(certificate_url)
        chain = x509.load_pem_x509_certificates(pem_chain.encode())
        if not chain:
            msg = f"CA returned an empty certificate chain for order {order.url}"
            raise ClientError(msg)
        leaf = chain[0]
        if _public_der(leaf.public_key()) != _public_der(key.public_key()):
            msg = f"Issued certificate for order {order.url} does not match the CSR key"
            raise ClientError(msg)

        thumbprint = compute_thumbprint(leaf)
        pfx_blob = build_pkcs12(
            key,
            chain,
            self._settings.pfx_password,
            friendly_name=f"{domains[0]}-{thumbprint}",
        )
        log.info(
            "Certificate issued for %s (thumbprint %s, %d chain certificate(s))",
            domains[0],
            thumbprint,
            len(chain),
        )
        return CertificateBundle(
            thumbprint=thumbprint,
            pfx_blob=pfx_blob,
            domains=tuple(domains),
        )
