"""Tests for certbind.config -- loading, env resolution and validation."""

from __future__ import annotations

import copy
import json
import logging

import pytest

from certbind.config import CertbindConfig, ConfigValidationError, get_config
from certbind.config.settings import build_settings

# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoading:
    def test_yaml_file(self, settings_data, write_config):
        cfg = CertbindConfig(config_file=write_config(settings_data))

        assert cfg.settings.acme.client == "conftest.FakeAcme"
        assert cfg.settings.finalize.pfx_password == "bundle-pass"
        assert cfg.data["_source"].endswith("config.yaml")
        assert get_config() is cfg

    def test_json_file(self, settings_data, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(settings_data), encoding="utf-8")
        assert CertbindConfig(config_file=path).settings.workflow.max_workers == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not found"):
            CertbindConfig(config_file=tmp_path / "absent.yaml")

    def test_unparseable_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("acme: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="Cannot parse"):
            CertbindConfig(config_file=path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="mapping"):
            CertbindConfig(config_file=path)

    def test_get_before_init(self):
        with pytest.raises(RuntimeError, match="not initialised"):
            get_config()

    def test_dotted_get(self, settings_data, write_config):
        cfg = CertbindConfig(config_file=write_config(settings_data))
        assert cfg.get("retry.order_ready.max_attempts") == 3
        assert cfg.get("retry.nope.max_attempts", "fallback") == "fallback"


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


class TestEnvironment:
    def test_variable_and_default(self, settings_data, write_config, monkeypatch):
        monkeypatch.setenv("CERTBIND_PFX", "from-env-secret")
        data = copy.deepcopy(settings_data)
        data["finalize"]["pfx_password"] = "${CERTBIND_PFX}"
        data["dns"]["options"] = {"zones": ["${CERTBIND_ZONE:-example.com}"]}

        cfg = CertbindConfig(config_file=write_config(data))

        assert cfg.settings.finalize.pfx_password == "from-env-secret"
        assert cfg.settings.dns.options == {"zones": ["example.com"]}

    def test_unset_without_default(self, settings_data, write_config, monkeypatch):
        monkeypatch.delenv("CERTBIND_MISSING", raising=False)
        data = copy.deepcopy(settings_data)
        data["finalize"]["pfx_password"] = "${CERTBIND_MISSING}"

        with pytest.raises(ConfigValidationError, match="finalize.pfx_password"):
            CertbindConfig(config_file=write_config(data))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def test_schema_errors_are_collected(self, settings_data, write_config):
        data = copy.deepcopy(settings_data)
        data["server"] = {"port": 0}
        data["unknown"] = True
        del data["hosting"]

        with pytest.raises(ConfigValidationError) as exc_info:
            CertbindConfig(config_file=write_config(data))

        errors = exc_info.value.errors
        assert len(errors) == 3
        assert any(e.startswith("server.port:") for e in errors)
        assert any("hosting" in e for e in errors)

    def test_client_path_must_be_dotted(self, settings_data, write_config):
        data = copy.deepcopy(settings_data)
        data["acme"]["client"] = "FakeAcme"
        with pytest.raises(ConfigValidationError, match="acme.client"):
            CertbindConfig(config_file=write_config(data))

    def test_postgres_requires_database(self, settings_data, write_config):
        data = copy.deepcopy(settings_data)
        data["workflow"]["store"] = "postgres"
        with pytest.raises(ConfigValidationError, match="workflow.database is required"):
            CertbindConfig(config_file=write_config(data))

    def test_memory_store_single_worker(self, settings_data, write_config):
        data = copy.deepcopy(settings_data)
        data["server"] = {"workers": 3}
        with pytest.raises(ConfigValidationError, match="server.workers must be 1"):
            CertbindConfig(config_file=write_config(data))

    def test_connection_bounds(self, settings_data, write_config):
        data = copy.deepcopy(settings_data)
        data["workflow"].update(
            store="postgres",
            database={"database": "certbind", "user": "cb", "min_connections": 5, "max_connections": 2},
        )
        with pytest.raises(ConfigValidationError, match="min_connections exceeds"):
            CertbindConfig(config_file=write_config(data))

    def test_retry_ceiling_below_first_interval(self, settings_data, write_config):
        data = copy.deepcopy(settings_data)
        data["retry"]["default"] = {"first_interval_seconds": 10, "max_interval_seconds": 5}
        with pytest.raises(ConfigValidationError, match="retry.default.max_interval_seconds"):
            CertbindConfig(config_file=write_config(data))

    def test_weak_password_warns(self, settings_data, write_config, caplog):
        data = copy.deepcopy(settings_data)
        data["finalize"]["pfx_password"] = "short"
        with caplog.at_level(logging.WARNING, logger="certbind.config.certbind_config"):
            CertbindConfig(config_file=write_config(data))
        assert "shorter than 8" in caplog.text

    def test_empty_password_warns(self, settings_data, write_config, caplog):
        data = copy.deepcopy(settings_data)
        del data["finalize"]["pfx_password"]
        with caplog.at_level(logging.WARNING, logger="certbind.config.certbind_config"):
            cfg = CertbindConfig(config_file=write_config(data))
        assert "unencrypted" in caplog.text
        assert cfg.settings.finalize.pfx_password == ""


# ---------------------------------------------------------------------------
# Settings defaults
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_minimal_config(self):
        settings = build_settings(
            {
                "acme": {"client": "a.A"},
                "dns": {"client": "d.D"},
                "hosting": {"client": "h.H"},
            },
        )
        assert settings.api.base_path == "/api"
        assert settings.api.principal_header is None
        assert settings.workflow.store == "memory"
        assert settings.workflow.database is None
        assert settings.challenges.dns01.record_ttl == 60
        assert settings.retry.challenge_verify.max_attempts == 12
        assert settings.logging.format == "json"

    def test_base_path_trailing_slash_stripped(self):
        settings = build_settings(
            {
                "acme": {"client": "a.A"},
                "dns": {"client": "d.D"},
                "hosting": {"client": "h.H"},
                "api": {"base_path": "/certs/"},
            },
        )
        assert settings.api.base_path == "/certs"

    def test_password_not_in_repr(self, settings):
        assert "bundle-pass" not in repr(settings.finalize)
