"""Load collaborator clients from configuration.

A client is named by fully-qualified class path, optionally prefixed
with ``ext:`` (accepted for symmetry with other pluggable settings)::

    acme:
      client: ext:mycompany.acme.LetsEncryptClient
      options:
        directory_url: https://acme-v02.api.letsencrypt.org/directory
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING, TypeVar

from certbind.errors import ClientError

if TYPE_CHECKING:
    from certbind.config.settings import ClientSettings

log = logging.getLogger(__name__)

T = TypeVar("T")


def load_client(settings: ClientSettings, base: type[T]) -> T:
    """Import, check and instantiate the client class named in *settings*.

    Parameters
    ----------
    settings:
        A client section (``client`` class path + ``options`` mapping).
    base:
        The capability interface the class must implement.

    Raises
    ------
    ClientError
        If the class cannot be imported or does not subclass *base*.

    """
    fqn = settings.client
    if fqn.startswith("ext:"):
        fqn = fqn[4:]

    module_path, _, cls_name = fqn.rpartition(".")
    if not module_path:
        msg = (
            f"Invalid client class '{fqn}': must be fully qualified "
            "(e.g. 'mypackage.module.ClassName')"
        )
        raise ClientError(msg)
    try:
        module = importlib.import_module(module_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load client class '{fqn}': {exc}"
        raise ClientError(msg) from exc

    if not (isinstance(cls, type) and issubclass(cls, base)):
        msg = f"Client class '{fqn}' must be a subclass of {base.__name__}"
        raise ClientError(msg)

    client = cls(settings.options)
    log.info("Loaded %s: %s", base.__name__, fqn)
    return client
