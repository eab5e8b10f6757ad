"""Configuration subsystem for certbind.

Public API::

    from certbind.config import get_config, CertbindConfig

    # At startup (CLI only):
    CertbindConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    store = cfg.settings.workflow.store    # typed access
    url = cfg.get("acme.options.directory_url")  # dynamic dot-path
"""

from certbind.config.certbind_config import (
    CertbindConfig,
    ConfigValidationError,
    get_config,
)
from certbind.config.settings import (
    ApiSettings,
    CertbindSettings,
    ChallengeSettings,
    ClientSettings,
    DatabaseSettings,
    Dns01Settings,
    FinalizeSettings,
    Http01Settings,
    LoggingSettings,
    RetrySettings,
    ServerSettings,
    WorkflowSettings,
    build_settings,
)

__all__ = [
    "ApiSettings",
    "CertbindConfig",
    "CertbindSettings",
    "ChallengeSettings",
    "ClientSettings",
    "ConfigValidationError",
    "DatabaseSettings",
    "Dns01Settings",
    "FinalizeSettings",
    "Http01Settings",
    "LoggingSettings",
    "RetrySettings",
    "ServerSettings",
    "WorkflowSettings",
    "build_settings",
    "get_config",
]
