"""Programmatic gunicorn runner for certbind.

Starts gunicorn with settings derived from the certbind config rather
than a separate gunicorn config file.  The Flask app is built inside
the worker process so the workflow thread pool lives where requests
are served.

Usage::

    from certbind.server.gunicorn_app import run_gunicorn

    run_gunicorn(lambda: create_app(config=config), settings.server)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gunicorn.app.base import BaseApplication

if TYPE_CHECKING:
    from collections.abc import Callable

    from flask import Flask

    from certbind.config.settings import ServerSettings

log = logging.getLogger(__name__)


class CertbindApplication(BaseApplication):
    """gunicorn application that loads the Flask app lazily per worker."""

    def __init__(self, app_factory: Callable[[], Flask], server: ServerSettings) -> None:
        self._app_factory = app_factory
        self._server = server
        super().__init__()

    def _options(self) -> dict:
        server = self._server
        return {
            "bind": f"{server.bind}:{server.port}",
            "workers": server.workers,
            "worker_class": "gthread",
            "threads": server.threads,
            "timeout": server.timeout,
            "graceful_timeout": server.graceful_timeout,
            "accesslog": None,
        }

    def load_config(self) -> None:
        for key, value in self._options().items():
            self.cfg.set(key, value)

    def load(self) -> Flask:
        return self._app_factory()


def run_gunicorn(app_factory: Callable[[], Flask], settings: ServerSettings) -> None:
    """Start a gunicorn server from :class:`ServerSettings`."""
    log.info(
        "Starting gunicorn on %s:%s (%d workers, %d threads)",
        settings.bind,
        settings.port,
        settings.workers,
        settings.threads,
    )
    CertbindApplication(app_factory, settings).run()
