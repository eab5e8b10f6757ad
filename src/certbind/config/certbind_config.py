"""certbind configuration loader (PyYAML + jsonschema).

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    CertbindConfig(config_file="/etc/certbind/config.yaml")

    # 2. Any module retrieves it afterwards
    from certbind.config import get_config
    cfg = get_config()
    cfg.settings.api.wait_timeout_seconds  # typed access

    # 3. Dynamic access
    cfg.get("acme.options.directory_url")
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from certbind.config.settings import CertbindSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MIN_PFX_PASSWORD_LENGTH = 8

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: CertbindConfig | None = None


def get_config() -> CertbindConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`CertbindConfig` has not been
    created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "CertbindConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(msg)
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# ${VAR} / ${VAR:-default} references
# ---------------------------------------------------------------------------


def _substitute(node: Any, path: str, missing: list[str]) -> Any:  # noqa: ANN401
    """Return a copy of *node* with env references in string leaves replaced.

    Unset variables without a default are appended to *missing* and
    left unresolved.
    """
    if isinstance(node, dict):
        return {
            key: _substitute(value, f"{path}.{key}" if path else str(key), missing)
            for key, value in node.items()
        }
    if isinstance(node, list):
        return [_substitute(item, f"{path}[{i}]", missing) for i, item in enumerate(node)]
    ref = _ENV_RE.match(node) if isinstance(node, str) else None
    if ref is None:
        return node

    name, default = ref.groups()
    value = os.environ.get(name, default)
    if value is None:
        missing.append(f"'{path}' references ${{{name}}}, which is not set and has no default")
        return node
    return value


def _resolve_env_vars(data: dict) -> dict:
    missing: list[str] = []
    resolved = _substitute(data, "", missing)
    if missing:
        raise ConfigValidationError(missing)
    return resolved


def _read_file(config_file: Path) -> dict:
    try:
        with config_file.open(encoding="utf-8") as f:
            if config_file.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except FileNotFoundError as exc:
        msg = f"Configuration file not found: {config_file}"
        raise ConfigValidationError([msg]) from exc
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        msg = f"Cannot parse {config_file}: {exc}"
        raise ConfigValidationError([msg]) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"{config_file} must contain a mapping at the top level"
        raise ConfigValidationError([msg])
    return data


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CertbindConfig:
    """Central configuration for certbind.

    Loads YAML (or JSON), resolves environment references, validates
    against the bundled ``config/schema.json`` and runs
    :meth:`additional_checks`.  All problems are collected and raised
    together as :class:`ConfigValidationError`.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(self, *, config_file: str | Path) -> None:
        global _instance  # noqa: PLW0603

        path = Path(config_file)
        self._data = _resolve_env_vars(_read_file(path))
        self._data["_source"] = str(path)

        self._validate_schema()
        self.additional_checks()

        self._settings: CertbindSettings = build_settings(self._data)
        _instance = self

    # -- access -------------------------------------------------------------

    @property
    def data(self) -> dict:
        return self._data

    @property
    def settings(self) -> CertbindSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    def get(self, dotted: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a raw value by dot-path, e.g. ``"workflow.store"``."""
        node: Any = self._data
        for part in dotted.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- validation ---------------------------------------------------------

    def _validate_schema(self) -> None:
        schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
        validator = jsonschema.Draft202012Validator(schema)
        errors = [
            f"{'.'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
            for err in sorted(validator.iter_errors(self._data), key=lambda e: list(e.path))
        ]
        if errors:
            raise ConfigValidationError(errors)

    def additional_checks(self) -> None:
        """Semantic & cross-field validation, run after schema validation."""
        errors: list[str] = []
        warnings: list[str] = []

        server = self._data.get("server") or {}
        workflow = self._data.get("workflow") or {}
        finalize = self._data.get("finalize") or {}
        retry = self._data.get("retry") or {}

        # -- workflow store --
        store = workflow.get("store", "memory")
        if store == "postgres" and not workflow.get("database"):
            errors.append("workflow.database is required when workflow.store is 'postgres'")
        if store == "memory" and server.get("workers", 1) > 1:
            errors.append(
                "server.workers must be 1 with workflow.store 'memory': "
                "each worker process would hold its own step log",
            )
        database = workflow.get("database") or {}
        if database and database.get("min_connections", 1) > database.get("max_connections", 10):
            errors.append("workflow.database.min_connections exceeds max_connections")

        # -- finalize --
        password = finalize.get("pfx_password", "")
        if not password:
            warnings.append("finalize.pfx_password is empty: PKCS#12 bundles will be unencrypted")
        elif len(password) < _MIN_PFX_PASSWORD_LENGTH:
            warnings.append(
                f"finalize.pfx_password is shorter than {_MIN_PFX_PASSWORD_LENGTH} characters",
            )

        # -- retry --
        for name, policy in retry.items():
            first = (policy or {}).get("first_interval_seconds")
            ceiling = (policy or {}).get("max_interval_seconds")
            if first is not None and ceiling is not None and ceiling < first:
                errors.append(
                    f"retry.{name}.max_interval_seconds ({ceiling}) is below "
                    f"first_interval_seconds ({first})",
                )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        source = self._data.get("_source", "?")
        return f"<CertbindConfig config_file={source}>"
