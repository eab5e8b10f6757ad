"""HTTP entry points -- Flask blueprint registration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    """Mount the workflow API under ``api.base_path``."""
    from certbind.api.routes import api_bp  # noqa: PLC0415

    base = app.config["CERTBIND_SETTINGS"].api.base_path
    app.register_blueprint(api_bp, url_prefix=base)
    log.info("API registered at %s", base or "/")
