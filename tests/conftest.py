"""Root conftest for the certbind test suite.

Provides in-memory fakes of the three collaborator clients and a
dependency container wired to them.  The fake CA issues real X.509
certificates for submitted CSRs, so finalization and PKCS#12 bundling
run unmodified.
"""

from __future__ import annotations

import copy
import datetime
import sys
import threading
from pathlib import Path

import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

from cryptography import x509  # noqa: E402
from cryptography.hazmat.primitives import hashes, serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import ec  # noqa: E402
from cryptography.x509.oid import NameOID  # noqa: E402

from certbind.clients.base import AcmeClient, DnsClient, HostingClient  # noqa: E402
from certbind.config.settings import build_settings  # noqa: E402
from certbind.core.types import OrderStatus, SslState  # noqa: E402
from certbind.models.acme import AcmeChallenge, Authorization, Order  # noqa: E402
from certbind.models.certificate import HostedCertificate  # noqa: E402
from certbind.models.dns import DnsZone  # noqa: E402
from certbind.models.site import (  # noqa: E402
    HostNameBinding,
    PublishingCredentials,
    Site,
    SiteConfig,
)

ACCOUNT_JWK = {
    "kty": "EC",
    "crv": "P-256",
    "x": "f83OJ3D2xF1Bg8vub9tLe1gHMzV76e8Tus9uPHvRVEU",
    "y": "x_FEzRu9m36HLN_tue659LNpXW6pCyStikYjKIWI5a0",
}


# ---------------------------------------------------------------------------
# Fake ACME CA
# ---------------------------------------------------------------------------


class FakeAcme(AcmeClient):
    """Single-process CA double.

    Orders turn ``ready`` once every authorization has an answered
    challenge, unless ``order_statuses`` scripts the statuses returned
    by :meth:`get_order` (consumed front to back, last one sticks).
    """

    def __init__(self, options=None) -> None:
        super().__init__(options)
        self._lock = threading.Lock()
        self._counter = 0
        self.orders: dict[str, dict] = {}
        self.authorizations: dict[str, Authorization] = {}
        self.answered: list[str] = []
        self.created: list[list[str]] = []
        self.finalized: list[str] = []
        self.order_statuses: list[OrderStatus] = []
        self.offer_http01 = True

        self.ca_key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Fake Test CA")])
        now = datetime.datetime.now(datetime.UTC)
        self.ca_cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=30))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(self.ca_key, hashes.SHA256())
        )
        self.issued: dict[str, str] = {}

    @property
    def account_jwk(self):
        return ACCOUNT_JWK

    def create_order(self, domains):
        with self._lock:
            self._counter += 1
            n = self._counter
            self.created.append(list(domains))
            authz_urls = []
            for i, domain in enumerate(domains):
                url = f"https://ca.test/authz/{n}/{i}"
                wildcard = domain.startswith("*.")
                challenges = [
                    AcmeChallenge("dns-01", f"https://ca.test/chall/{n}/{i}/dns", f"tok-{n}-{i}-dns"),
                ]
                if self.offer_http01 and not wildcard:
                    challenges.insert(
                        0,
                        AcmeChallenge(
                            "http-01",
                            f"https://ca.test/chall/{n}/{i}/http",
                            f"tok-{n}-{i}-http",
                        ),
                    )
                self.authorizations[url] = Authorization(
                    url=url,
                    identifier=domain,
                    challenges=tuple(challenges),
                    wildcard=wildcard,
                )
                authz_urls.append(url)
            order_url = f"https://ca.test/order/{n}"
            self.orders[order_url] = {
                "authorizations": tuple(authz_urls),
                "finalize_url": f"{order_url}/finalize",
                "status": OrderStatus.PENDING,
                "certificate_url": None,
            }
            return self._order(order_url)

    def _order(self, url):
        data = self.orders[url]
        return Order(
            url=url,
            status=data["status"],
            authorizations=data["authorizations"],
            finalize_url=data["finalize_url"],
            certificate_url=data["certificate_url"],
        )

    def get_order(self, url):
        with self._lock:
            data = self.orders[url]
            if data["status"] in (OrderStatus.PENDING, OrderStatus.READY):
                if self.order_statuses:
                    status = self.order_statuses[0]
                    if len(self.order_statuses) > 1:
                        self.order_statuses.pop(0)
                    data["status"] = status
                else:
                    answered = all(
                        any(c.url in self.answered for c in self.authorizations[a].challenges)
                        for a in data["authorizations"]
                    )
                    data["status"] = OrderStatus.READY if answered else OrderStatus.PENDING
            return self._order(url)

    def get_authorization(self, url):
        return self.authorizations[url]

    def answer_challenge(self, url):
        with self._lock:
            if url not in self.answered:
                self.answered.append(url)

    def finalize_order(self, finalize_url, csr_der):
        csr = x509.load_der_x509_csr(csr_der)
        now = datetime.datetime.now(datetime.UTC)
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        leaf = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(self.ca_cert.subject)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=30))
            .add_extension(san, critical=False)
            .sign(self.ca_key, hashes.SHA256())
        )
        pem = leaf.public_bytes(serialization.Encoding.PEM) + self.ca_cert.public_bytes(
            serialization.Encoding.PEM,
        )
        with self._lock:
            order_url = finalize_url.rsplit("/finalize", 1)[0]
            cert_url = f"{order_url}/cert"
            self.issued[cert_url] = pem.decode("ascii")
            self.finalized.append(order_url)
            data = self.orders[order_url]
            data["status"] = OrderStatus.VALID
            data["certificate_url"] = cert_url
            return self._order(order_url)

    def fetch_certificate(self, url):
        return self.issued[url]


# ---------------------------------------------------------------------------
# Fake DNS provider
# ---------------------------------------------------------------------------


class FakeDns(DnsClient):
    """Record sets keyed by (zone, relative name).

    ``read_barrier``, when set, makes every read wait on it after
    fetching; two readers then both see the old state before either
    writes.
    """

    def __init__(self, options=None, *, zones=()) -> None:
        super().__init__(options)
        zones = zones or self._options.get("zones", ())
        self.zones = [DnsZone(z) if isinstance(z, str) else z for z in zones]
        self.records: dict[tuple[str, str], object] = {}
        self.writes: list[tuple[str, str, object]] = []
        self.read_barrier: threading.Barrier | None = None
        self._lock = threading.Lock()

    def list_zones(self):
        return list(self.zones)

    def get_txt_record_set(self, zone, name):
        with self._lock:
            existing = self.records.get((zone.name, name))
        if self.read_barrier is not None:
            self.read_barrier.wait(timeout=5)
        return existing

    def upsert_txt_record_set(self, zone, name, record_set):
        with self._lock:
            self.records[(zone.name, name)] = record_set
            self.writes.append((zone.name, name, record_set))


# ---------------------------------------------------------------------------
# Fake hosting platform
# ---------------------------------------------------------------------------


class FakeHosting(HostingClient):
    def __init__(self, options=None) -> None:
        super().__init__(options)
        self._lock = threading.Lock()
        self.sites: dict[tuple[str, str, str], Site] = {}
        self.configs: dict[tuple[str, str, str], SiteConfig] = {}
        self.config_updates: list[tuple[str, SiteConfig]] = []
        self.published: list[tuple[str, str, str]] = []
        self.uploads: list[dict] = []
        self.certificates: list[HostedCertificate] = []
        self.binding_updates: list[str] = []

    @staticmethod
    def _key(site):
        return (site.resource_group, site.name, site.slot)

    def add_site(self, site: Site) -> Site:
        self.sites[self._key(site)] = site
        self.configs[self._key(site)] = SiteConfig()
        return site

    def get_site(self, resource_group, name, slot):
        with self._lock:
            site = self.sites.get((resource_group, name, slot))
            return copy.deepcopy(site)

    def get_site_config(self, site):
        return copy.deepcopy(self.configs[self._key(site)])

    def update_site_config(self, site, config):
        with self._lock:
            self.configs[self._key(site)] = copy.deepcopy(config)
            self.config_updates.append((site.display_name, copy.deepcopy(config)))

    def get_publishing_credentials(self, site):
        return PublishingCredentials(user_name=f"${site.name}", password="secret")

    def publish_file(self, site, credentials, path, content):
        with self._lock:
            self.published.append((site.display_name, path, content))

    def upload_certificate(
        self,
        *,
        resource_group,
        location,
        name,
        pfx_blob,
        password,
        server_farm_id=None,
    ):
        thumbprint = name.rsplit("-", 1)[1]
        hosted = HostedCertificate(
            name=name,
            thumbprint=thumbprint,
            resource_group=resource_group,
        )
        with self._lock:
            self.uploads.append(
                {
                    "resource_group": resource_group,
                    "location": location,
                    "name": name,
                    "pfx_blob": pfx_blob,
                    "password": password,
                    "server_farm_id": server_farm_id,
                }
            )
            self.certificates.append(hosted)
        return hosted

    def update_site_bindings(self, site):
        with self._lock:
            stored = self.sites[self._key(site)]
            for incoming in site.host_name_bindings:
                if not incoming.to_update:
                    continue
                for binding in stored.host_name_bindings:
                    if binding.name == incoming.name:
                        binding.thumbprint = incoming.thumbprint
                        binding.ssl_state = incoming.ssl_state
            self.binding_updates.append(site.display_name)

    def list_certificates(self):
        return list(self.certificates)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture()
def no_sleep():
    return _no_sleep


@pytest.fixture()
def fake_acme() -> FakeAcme:
    return FakeAcme()


@pytest.fixture()
def fake_dns() -> FakeDns:
    return FakeDns(zones=["example.com", "contoso.net"])


@pytest.fixture()
def fake_hosting() -> FakeHosting:
    return FakeHosting()


@pytest.fixture()
def make_dns():
    """Factory for additional :class:`FakeDns` instances."""
    return FakeDns


@pytest.fixture()
def make_site():
    """Factory building a :class:`Site` with the given bound host names."""

    def _make(
        *host_names,
        resource_group="rg",
        name="web",
        slot="production",
        kind="app",
    ):
        return Site(
            resource_group=resource_group,
            name=name,
            slot=slot,
            kind=kind,
            location="westeurope",
            server_farm_id=f"/farms/{name}-plan",
            host_name_bindings=[
                HostNameBinding(name=h, ssl_state=SslState.DISABLED) for h in host_names
            ],
        )

    return _make


@pytest.fixture()
def settings_data() -> dict:
    """Raw config with fast retry policies."""
    return {
        "acme": {"client": "conftest.FakeAcme"},
        "dns": {"client": "conftest.FakeDns"},
        "hosting": {"client": "conftest.FakeHosting"},
        "api": {"wait_timeout_seconds": 5},
        "retry": {
            "default": {"max_attempts": 2, "first_interval_seconds": 0},
            "challenge_verify": {"max_attempts": 3, "first_interval_seconds": 0},
            "order_ready": {"max_attempts": 3, "first_interval_seconds": 0},
        },
        "finalize": {"pfx_password": "bundle-pass", "poll_attempts": 2, "poll_interval_seconds": 0},
        "workflow": {"store": "memory", "max_workers": 2, "fanout_workers": 4},
        "logging": {"level": "DEBUG", "format": "text"},
    }


@pytest.fixture()
def settings(settings_data):
    return build_settings(settings_data)


@pytest.fixture()
def container(settings, fake_acme, fake_dns, fake_hosting, no_sleep):
    from certbind.app.context import Container
    from certbind.workflow.store import InMemoryStepStore

    c = Container(
        settings,
        acme=fake_acme,
        dns=fake_dns,
        hosting=fake_hosting,
        store=InMemoryStepStore(),
        sleep=no_sleep,
    )
    yield c
    c.runner.shutdown(wait=True)


@pytest.fixture()
def verified_challenges():
    """Make challenge verification succeed without network access."""
    from unittest.mock import patch

    with (
        patch("certbind.challenge.http01.Http01Handler.verify", return_value=None) as http,
        patch("certbind.challenge.dns01.Dns01Handler.verify", return_value=None) as dns_,
    ):
        yield http, dns_


@pytest.fixture()
def run_workflow(container):
    """Start a workflow and block until it finishes; returns the instance."""

    def _run(name, workflow_input, timeout=15):
        instance_id = container.runner.start_new(name, workflow_input)
        instance = container.runner.wait_for_completion(instance_id, timeout)
        assert instance is not None and instance.is_finished, "workflow did not finish"
        return instance

    return _run


@pytest.fixture()
def write_config(tmp_path):
    """Write a config mapping to a YAML file and return its path."""

    def _write(data: dict, name: str = "config.yaml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def fresh_config():
    """Reset the CertbindConfig singleton around every test."""
    from certbind.config.certbind_config import CertbindConfig

    CertbindConfig.reset()
    yield
    CertbindConfig.reset()


@pytest.fixture(autouse=True)
def restore_certbind_logger():
    """Undo ``configure_logging`` so caplog keeps seeing certbind records."""
    import logging

    logger = logging.getLogger("certbind")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
