"""Tests for certbind.workflow.activities run through a workflow context."""

from __future__ import annotations

import pytest

from certbind.core.types import OrderStatus, SslState
from certbind.errors import OrderInvalidError, OrderPendingError, PreconditionError, StepFailedError
from certbind.models.certificate import CertificateBundle
from certbind.workflow.context import WorkflowContext
from certbind.workflow.steps import WorkflowInstance
from certbind.workflow.store import InMemoryStepStore

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store():
    s = InMemoryStepStore()
    s.create_instance(WorkflowInstance(id="wf-1", name="test", input={}))
    return s


@pytest.fixture()
def make_proxy(container, store, settings, no_sleep):
    def _make():
        ctx = WorkflowContext(
            store.get_instance("wf-1"),
            store,
            container.activities,
            settings.retry,
            run_child=lambda *a: None,
            sleep=no_sleep,
        )
        return ctx.activities_proxy

    return _make


@pytest.fixture()
def order(fake_acme):
    return fake_acme.create_order(["www.example.com"])


# ---------------------------------------------------------------------------
# Order readiness
# ---------------------------------------------------------------------------


class TestCheckIsReady:
    def test_pending_until_budget_exhausted(self, make_proxy, fake_acme, order, store):
        fake_acme.order_statuses = [OrderStatus.PENDING]
        with pytest.raises(StepFailedError) as exc_info:
            make_proxy().check_is_ready(order)

        assert exc_info.value.caused_by(OrderPendingError)
        assert exc_info.value.attempts == 3
        assert store.get_steps("wf-1")[0].attempts == 3

    def test_invalid_fails_immediately(self, make_proxy, fake_acme, order):
        fake_acme.order_statuses = [OrderStatus.INVALID]
        with pytest.raises(StepFailedError) as exc_info:
            make_proxy().check_is_ready(order)

        assert exc_info.value.caused_by(OrderInvalidError)
        assert exc_info.value.attempts == 1

    def test_ready_after_pending(self, make_proxy, fake_acme, order):
        fake_acme.order_statuses = [OrderStatus.PENDING, OrderStatus.READY]
        ready = make_proxy().check_is_ready(order)
        assert ready.status == OrderStatus.READY

    def test_finalized_once_across_replays(self, make_proxy, fake_acme, order):
        fake_acme.order_statuses = [OrderStatus.READY]
        domains = ["www.example.com"]

        proxy = make_proxy()
        ready = proxy.check_is_ready(order)
        bundle = proxy.finalize_order(ready, domains)

        replay = make_proxy()
        again = replay.finalize_order(replay.check_is_ready(order), domains)

        assert fake_acme.finalized == [order.url]
        assert isinstance(again, CertificateBundle)
        assert again.thumbprint == bundle.thumbprint
        assert again.pfx_blob == bundle.pfx_blob


# ---------------------------------------------------------------------------
# Other activities
# ---------------------------------------------------------------------------


class TestActivities:
    def test_get_zone_exact_match(self, container):
        assert container.activities.get_zone("Example.com.").name == "example.com"

    def test_get_zone_missing(self, container):
        with pytest.raises(PreconditionError, match="nowhere.io was not found"):
            container.activities.get_zone("nowhere.io")

    def test_upload_uses_bundle_password(self, container, fake_hosting):
        bundle = CertificateBundle("ABCD", b"pfx", ("www.example.com",))
        hosted = container.activities.upload_certificate(bundle, "rg", "westeurope", "/farms/x")

        assert hosted.name == "www.example.com-ABCD"
        upload = fake_hosting.uploads[0]
        assert upload["password"] == "bundle-pass"
        assert upload["server_farm_id"] == "/farms/x"
        assert upload["pfx_blob"] == b"pfx"

    def test_update_site_binding_flushes_once(self, container, fake_hosting, make_site):
        site = fake_hosting.add_site(make_site("www.example.com", "example.com"))
        container.activities.update_site_binding(
            site,
            ["www.example.com"],
            "ABCD",
            SslState.SNI_ENABLED,
        )

        assert fake_hosting.binding_updates == ["rg/web"]
        stored = fake_hosting.sites[("rg", "web", "production")].host_name_bindings
        assert stored[0].thumbprint == "ABCD"
        assert stored[1].thumbprint is None

    def test_answer_challenges(self, container, fake_acme, order):
        from certbind.models.acme import ChallengeResult

        results = [ChallengeResult(url="https://ca.test/chall/1/0/http", domain="www.example.com")]
        container.activities.answer_challenges(results)
        assert fake_acme.answered == ["https://ca.test/chall/1/0/http"]
