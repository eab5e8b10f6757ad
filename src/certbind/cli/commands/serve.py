"""Serve subcommand -- start the certbind HTTP API."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def run_serve(config, *, dev: bool = False) -> None:
    """Start the API under gunicorn, or Flask's server with *dev*."""
    from certbind.app import create_app  # noqa: PLC0415

    if dev:
        log.info("Starting development server (not for production)")
        app = create_app(config=config)
        app.run(
            host=config.settings.server.bind,
            port=config.settings.server.port,
            debug=True,
            use_reloader=False,
            threaded=True,
        )
        return

    from certbind.server.gunicorn_app import run_gunicorn  # noqa: PLC0415

    run_gunicorn(lambda: create_app(config=config), config.settings.server)
