"""WSGI entry point for external servers (gunicorn, uWSGI, etc.).

The config file path is read from the ``CERTBIND_CONFIG`` environment
variable.

Example::

    export CERTBIND_CONFIG=/etc/certbind/config.yaml
    gunicorn "certbind.server.wsgi:app"
"""

from __future__ import annotations

import os
import sys

_config_path = os.environ.get("CERTBIND_CONFIG")
if _config_path is None:
    sys.stderr.write("CERTBIND_CONFIG is not set\n")
    sys.exit(1)

# Bootstrap the singleton before anything else imports it.
from certbind.config import CertbindConfig  # noqa: E402

_config = CertbindConfig(config_file=_config_path)

from certbind.logging import configure_logging  # noqa: E402

configure_logging(_config.settings.logging)

from certbind.app import create_app  # noqa: E402

app = create_app(config=_config)
