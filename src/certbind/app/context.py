"""Dependency injection container for certbind.

Created once during application startup and stored on the Flask app
via ``app.extensions["container"]``.  Accessible from any request
context with :func:`get_container`.

Usage::

    from certbind.app.context import get_container

    c = get_container()
    instance_id = c.runner.start_new("issue_certificate", request)
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from flask import current_app

from certbind.challenge import DnsRecordMerger, Dns01Handler, Http01Handler
from certbind.clients import AcmeClient, DnsClient, HostingClient
from certbind.clients.registry import load_client
from certbind.orchestrators import ORCHESTRATORS
from certbind.services.finalizer import Finalizer
from certbind.workflow.activities import Activities
from certbind.workflow.runner import WorkflowRunner
from certbind.workflow.store import InMemoryStepStore, StepStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from certbind.config.settings import CertbindSettings, WorkflowSettings

log = logging.getLogger(__name__)


def build_store(settings: WorkflowSettings) -> StepStore:
    """Create the step store selected by ``workflow.store``."""
    if settings.store == "postgres":
        from certbind.workflow.postgres import PostgresStepStore  # noqa: PLC0415

        if settings.database is None:
            msg = "workflow.store 'postgres' requires a workflow.database section"
            raise RuntimeError(msg)
        return PostgresStepStore.from_settings(settings.database)
    return InMemoryStepStore()


class Container:
    """Application-wide dependency container.

    Loads the three collaborator clients from their configured class
    paths (unless given directly), builds the challenge handlers, the
    finalizer and the activity implementations over them, and owns the
    :class:`WorkflowRunner` with its step store.

    Parameters
    ----------
    settings:
        Typed settings tree.
    acme, dns, hosting:
        Pre-built clients; loaded from ``settings`` when ``None``.
    store:
        Pre-built step store; built from ``settings.workflow`` when ``None``.
    sleep:
        Delay function shared by retry backoff and certificate polling.

    """

    def __init__(  # noqa: PLR0913
        self,
        settings: CertbindSettings,
        *,
        acme: AcmeClient | None = None,
        dns: DnsClient | None = None,
        hosting: HostingClient | None = None,
        store: StepStore | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings

        # -- Collaborators --------------------------------------------------
        self.acme: AcmeClient = acme or load_client(settings.acme, AcmeClient)
        self.dns: DnsClient = dns or load_client(settings.dns, DnsClient)
        self.hosting: HostingClient = hosting or load_client(settings.hosting, HostingClient)

        # -- Challenge handlers ---------------------------------------------
        dns01_settings = settings.challenges.dns01
        self.merger = DnsRecordMerger(self.dns, ttl=dns01_settings.record_ttl)
        self.http01 = Http01Handler(self.acme, self.hosting, settings.challenges.http01)
        self.dns01 = Dns01Handler(self.acme, self.dns, self.merger, dns01_settings)

        # -- Services -------------------------------------------------------
        self.finalizer = Finalizer(self.acme, settings.finalize, sleep=sleep)
        self.activities = Activities(
            acme=self.acme,
            dns=self.dns,
            hosting=self.hosting,
            http01=self.http01,
            dns01=self.dns01,
            finalizer=self.finalizer,
            finalize_settings=settings.finalize,
        )

        # -- Workflow engine ------------------------------------------------
        self.store = store or build_store(settings.workflow)
        self.runner = WorkflowRunner(
            self.store,
            self.activities,
            ORCHESTRATORS,
            settings.retry,
            max_workers=settings.workflow.max_workers,
            fanout_workers=settings.workflow.fanout_workers,
            sleep=sleep,
        )
        log.debug("Container ready (store=%s)", type(self.store).__name__)

    def startup_check(self) -> None:
        """Run each client's startup check; raises on the first failure."""
        for client in (self.acme, self.dns, self.hosting):
            client.startup_check()

    def shutdown(self) -> None:
        self.runner.shutdown(wait=False)


def get_container() -> Container:
    """Return the :class:`Container` from the current Flask app.

    Raises :class:`RuntimeError` if ``create_app`` did not attach one.
    """
    container = current_app.extensions.get("container")
    if container is None:
        msg = "Dependency container not available -- was create_app() given settings?"
        raise RuntimeError(msg)
    return container
