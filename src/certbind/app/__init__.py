"""Flask application package for certbind.

Public API::

    from certbind.app import create_app
"""

from certbind.app.factory import create_app

__all__ = ["create_app"]
