"""Flask application factory for certbind.

Usage::

    from certbind.app import create_app
    from certbind.config import get_config

    app = create_app(config=get_config())
"""

from __future__ import annotations

import atexit
import logging
from typing import TYPE_CHECKING

from flask import Flask, jsonify

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

    from certbind.app.context import Container
    from certbind.config.certbind_config import CertbindConfig

log = logging.getLogger(__name__)


def create_app(
    config: CertbindConfig | None = None,
    container: Container | None = None,
    *,
    resume: bool | None = None,
) -> Flask:
    """Create and configure the certbind Flask application.

    Parameters
    ----------
    config:
        Loaded :class:`CertbindConfig`.  Ignored when *container* is
        given; otherwise falls back to :func:`get_config`.
    container:
        Pre-built dependency container (tests inject fakes this way).
        Built from the config's settings when ``None``.
    resume:
        Whether to queue unfinished workflow instances found in the
        step store.  Defaults to ``workflow.resume_on_startup``.

    Returns
    -------
    Flask
        Fully configured WSGI application.

    """
    if container is None:
        if config is None:
            from certbind.config import get_config  # noqa: PLC0415

            config = get_config()

        from certbind.app.context import Container  # noqa: PLC0415

        container = Container(config.settings)
        atexit.register(container.shutdown)

    settings = container.settings

    app = Flask("certbind")
    app.config["CERTBIND_SETTINGS"] = settings
    app.config["CERTBIND_CONFIG"] = config
    app.extensions["container"] = container

    # -- Error handlers (RFC 7807) ------------------------------------------
    from certbind.app.errors import register_error_handlers  # noqa: PLC0415

    register_error_handlers(app)

    # -- Infrastructure endpoints -------------------------------------------
    _register_health(app)

    # -- API routes ---------------------------------------------------------
    from certbind.api import register_blueprints  # noqa: PLC0415

    register_blueprints(app)

    # -- Resume interrupted workflows ---------------------------------------
    if resume is None:
        resume = settings.workflow.resume_on_startup
    if resume:
        resumed = container.runner.resume_incomplete()
        if resumed:
            log.info("Resumed %d unfinished workflow(s)", len(resumed))

    log.info("Flask application created")
    return app


# ---------------------------------------------------------------------------
# Infrastructure endpoints
# ---------------------------------------------------------------------------


def _register_health(app: Flask) -> None:
    """Register ``/livez`` and ``/readyz`` probes."""
    from certbind import __version__  # noqa: PLC0415

    @app.route("/livez")
    def livez() -> ResponseReturnValue:
        return jsonify({"alive": True, "version": __version__}), 200

    @app.route("/readyz")
    def readyz() -> ResponseReturnValue:
        """Readiness: the step store answers and every client passes its check."""
        container = app.extensions["container"]
        try:
            container.store.list_instances(limit=1)
        except Exception:  # noqa: BLE001
            log.warning("Readiness check: step store unavailable", exc_info=True)
            return jsonify({"ready": False, "reason": "Step store not available"}), 503
        try:
            container.startup_check()
        except Exception:  # noqa: BLE001
            log.warning("Readiness check: client not ready", exc_info=True)
            return jsonify({"ready": False, "reason": "Client not ready"}), 503
        return jsonify({"ready": True}), 200
