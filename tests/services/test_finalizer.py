"""Tests for certbind.services.finalizer -- CSR, polling and PKCS#12 bundling."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12

from certbind.config.settings import FinalizeSettings
from certbind.core.types import OrderStatus
from certbind.errors import ClientError, OrderInvalidError
from certbind.services.finalizer import (
    Finalizer,
    build_pkcs12,
    compute_thumbprint,
    generate_csr,
)

DOMAINS = ["www.example.com", "example.com"]


@pytest.fixture()
def finalize_settings():
    return FinalizeSettings(pfx_password="bundle-pass", poll_attempts=2, poll_interval_seconds=1.5)


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def finalizer(fake_acme, finalize_settings, sleeps):
    return Finalizer(fake_acme, finalize_settings, sleep=sleeps.append)


# ---------------------------------------------------------------------------
# CSR
# ---------------------------------------------------------------------------


class TestGenerateCsr:
    def test_common_name_and_sans(self):
        key = ec.generate_private_key(ec.SECP256R1())
        csr = x509.load_der_x509_csr(generate_csr(key, DOMAINS))

        cn = csr.subject.get_attributes_for_oid(x509.oid.NameOID.COMMON_NAME)
        assert cn[0].value == "www.example.com"
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        assert san.get_values_for_type(x509.DNSName) == DOMAINS
        assert csr.is_signature_valid


# ---------------------------------------------------------------------------
# Bundle helpers
# ---------------------------------------------------------------------------


class TestBuildPkcs12:
    def test_empty_chain_rejected(self):
        key = ec.generate_private_key(ec.SECP256R1())
        with pytest.raises(ValueError, match="No certificates"):
            build_pkcs12(key, [], "pw")

    def test_empty_password_is_unencrypted(self, fake_acme):
        key = fake_acme.ca_key
        blob = build_pkcs12(key, [fake_acme.ca_cert], "")
        loaded_key, cert, extra = pkcs12.load_key_and_certificates(blob, None)
        assert cert == fake_acme.ca_cert
        assert extra == []
        assert loaded_key is not None


# ---------------------------------------------------------------------------
# Finalize
# ---------------------------------------------------------------------------


class TestFinalize:
    def test_bundle_round_trip(self, finalizer, fake_acme):
        order = fake_acme.create_order(DOMAINS)
        bundle = finalizer.finalize(order, DOMAINS)

        key, leaf, chain = pkcs12.load_key_and_certificates(bundle.pfx_blob, b"bundle-pass")
        assert compute_thumbprint(leaf) == bundle.thumbprint
        assert bundle.thumbprint == bundle.thumbprint.upper()
        assert len(bundle.thumbprint) == 40
        assert [c.subject for c in chain] == [fake_acme.ca_cert.subject]
        assert key.public_key().public_numbers() == leaf.public_key().public_numbers()
        assert bundle.domains == tuple(DOMAINS)
        assert fake_acme.finalized == [order.url]

    def test_wrong_password_rejected(self, finalizer, fake_acme):
        bundle = finalizer.finalize(fake_acme.create_order(DOMAINS), DOMAINS)
        with pytest.raises(ValueError):
            pkcs12.load_key_and_certificates(bundle.pfx_blob, b"wrong")

    def test_polls_until_certificate_url(self, finalizer, fake_acme, sleeps):
        order = fake_acme.create_order(DOMAINS)
        real_finalize = fake_acme.finalize_order

        def _processing(finalize_url, csr_der):
            done = real_finalize(finalize_url, csr_der)
            return replace(done, status=OrderStatus.PROCESSING, certificate_url=None)

        fake_acme.finalize_order = _processing
        bundle = finalizer.finalize(order, DOMAINS)

        assert bundle.thumbprint
        assert sleeps == [1.5]

    def test_certificate_never_available(self, finalizer, fake_acme, sleeps):
        order = fake_acme.create_order(DOMAINS)
        processing = replace(order, status=OrderStatus.PROCESSING)
        fake_acme.finalize_order = MagicMock(return_value=processing)
        fake_acme.get_order = MagicMock(return_value=processing)

        with pytest.raises(ClientError, match="not available after 2 poll"):
            finalizer.finalize(order, DOMAINS)
        assert fake_acme.get_order.call_count == 2
        assert len(sleeps) == 2

    def test_invalid_during_finalization(self, finalizer, fake_acme):
        order = fake_acme.create_order(DOMAINS)
        fake_acme.finalize_order = MagicMock(
            return_value=replace(order, status=OrderStatus.INVALID),
        )
        with pytest.raises(OrderInvalidError):
            finalizer.finalize(order, DOMAINS)

    def test_certificate_for_another_key(self, finalizer, fake_acme):
        order = fake_acme.create_order(DOMAINS)
        fake_acme.finalize_order = MagicMock(
            return_value=replace(
                order,
                status=OrderStatus.VALID,
                certificate_url="https://ca.test/foreign",
            ),
        )
        fake_acme.issued["https://ca.test/foreign"] = fake_acme.ca_cert.public_bytes(
            serialization.Encoding.PEM,
        ).decode()
        with pytest.raises(ClientError, match="does not match the CSR key"):
            finalizer.finalize(order, DOMAINS)
