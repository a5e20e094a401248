"""Unit tests for configuration parsing and validation.

Requirements covered:
- Defaults for every exporter option
- ${VAR} substitution from the environment
- Strict mode raises, permissive mode warns and falls back
- TLS paths are resolved relative to the config file
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from collector_exporter.config import (
    CONFIG_PATH_ENV,
    DEFAULT_SERVICE_NAME,
    ExporterConfig,
    ServiceConfig,
    TransportSecurity,
    load_config,
    resolve_config_path,
    validate_config,
)
from collector_exporter.exceptions import ConfigurationError

if TYPE_CHECKING:
    from pathlib import Path


def _write(tmp_path: "Path", content: str) -> "Path":
    config_path = tmp_path / "collector.yaml"
    config_path.write_text(content)
    return config_path


@pytest.mark.unit
class TestExporterConfigDefaults:
    """Tests for ExporterConfig defaults."""

    def test_defaults(self) -> None:
        config = ExporterConfig()

        assert config.endpoint is None
        assert config.transport == "auto"
        assert config.headers == {}
        assert config.metadata == {}
        assert config.security is None
        assert config.service.name == DEFAULT_SERVICE_NAME
        assert config.timeout == 10.0
        assert config.init_timeout == 10.0
        assert config.is_strict is False

    def test_minimal_file_uses_defaults(self, tmp_path: "Path") -> None:
        """
        GIVEN a config file with only a service section
        WHEN config is loaded
        THEN exporter options take their defaults
        """
        config = load_config(_write(tmp_path, "service:\n  name: web-ui\n"))

        assert config.service.name == "web-ui"
        assert config.transport == "auto"
        assert config.endpoint is None
        assert config.headers == {}


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config()."""

    def test_full_file(
        self, valid_config_file: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """
        GIVEN a config file referencing ${COLLECTOR_TOKEN}
        WHEN config is loaded with the variable set
        THEN the value is substituted and every section is parsed
        """
        monkeypatch.setenv("COLLECTOR_TOKEN", "secret")

        config = load_config(valid_config_file)

        assert config.service.name == "test-service"
        assert config.service.version == "1.0.0"
        assert config.endpoint == "http://localhost:55681/v1/trace"
        assert config.transport == "http"
        assert config.headers == {"authorization": "Bearer secret"}
        assert config.attributes == {"deployment.environment": "test"}

    def test_missing_env_var_in_permissive_mode_is_empty(
        self,
        valid_config_file: "Path",
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        monkeypatch.delenv("COLLECTOR_TOKEN", raising=False)
        caplog.set_level(logging.WARNING, logger="collector_exporter")

        config = load_config(valid_config_file)

        assert config.headers == {"authorization": "Bearer "}
        assert "COLLECTOR_TOKEN" in caplog.text

    def test_missing_env_var_in_strict_mode_raises(
        self, valid_config_file: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("COLLECTOR_TOKEN", raising=False)

        with pytest.raises(ConfigurationError, match="COLLECTOR_TOKEN"):
            load_config(valid_config_file, strict=True)

    def test_grpc_section(self, tmp_path: "Path") -> None:
        config = load_config(
            _write(
                tmp_path,
                """service:
  name: worker
exporter:
  endpoint: collector:55678
  transport: grpc
  metadata:
    tenant: blue
  timeout: 2
  init_timeout: 0.5
""",
            )
        )

        assert config.transport == "grpc"
        assert config.endpoint == "collector:55678"
        assert config.metadata == {"tenant": "blue"}
        assert config.timeout == 2.0
        assert config.init_timeout == 0.5

    def test_null_init_timeout_waits_until_close(self, tmp_path: "Path") -> None:
        config = load_config(
            _write(tmp_path, "exporter:\n  timeout: 2.5\n  init_timeout: null\n")
        )

        assert config.timeout == 2.5
        assert config.init_timeout is None
        assert validate_config(config) == []

    @pytest.mark.parametrize(
        ("content", "match"),
        [
            ("exporter:\n  timeout: soon\n", "exporter.timeout must be a number"),
            ("exporter:\n  timeout: null\n", "exporter.timeout must be a number"),
            ("exporter:\n  init_timeout: [1]\n", "exporter.init_timeout must be a number"),
        ],
    )
    def test_non_numeric_timeouts_raise(
        self, tmp_path: "Path", content: str, match: str
    ) -> None:
        """
        GIVEN a timeout that is not a number of seconds
        WHEN config is loaded
        THEN ConfigurationError names the offending key
        """
        with pytest.raises(ConfigurationError, match=match):
            load_config(_write(tmp_path, content))

    def test_unknown_transport_falls_back_to_auto(
        self, tmp_path: "Path", caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.WARNING, logger="collector_exporter")

        config = load_config(
            _write(tmp_path, "service:\n  name: s\nexporter:\n  transport: carrier-pigeon\n")
        )

        assert config.transport == "auto"
        assert "carrier-pigeon" in caplog.text

    def test_missing_file_raises(self, tmp_path: "Path") -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml_raises(self, tmp_path: "Path") -> None:
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(_write(tmp_path, "service: [unclosed\n"))

    def test_non_mapping_document_raises(self, tmp_path: "Path") -> None:
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(_write(tmp_path, "- just\n- a list\n"))

    def test_strict_mode_raises_on_validation_errors(self, tmp_path: "Path") -> None:
        """
        GIVEN a strict config without a service name
        WHEN config is loaded
        THEN ConfigurationError lists the problem
        """
        content = "exporter:\n  timeout: 0\nvalidation:\n  mode: strict\n"

        with pytest.raises(ConfigurationError, match="service.name is required"):
            load_config(_write(tmp_path, content))

    def test_permissive_mode_warns_and_defaults_service_name(
        self, tmp_path: "Path", caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.WARNING, logger="collector_exporter")

        config = load_config(_write(tmp_path, "exporter:\n  transport: http\n"))

        assert config.service.name == DEFAULT_SERVICE_NAME
        assert "service.name is required" in caplog.text

    def test_strict_argument_overrides_file_mode(self, tmp_path: "Path") -> None:
        with pytest.raises(ConfigurationError):
            load_config(_write(tmp_path, "exporter: {}\n"), strict=True)


@pytest.mark.unit
class TestTlsConfig:
    """Tests for the exporter.tls section."""

    def test_relative_paths_resolve_against_config_dir(self, tmp_path: "Path") -> None:
        (tmp_path / "ca.pem").write_text("ca")
        config = load_config(
            _write(
                tmp_path,
                "service:\n  name: s\nexporter:\n  tls:\n    certificate_file: ca.pem\n",
            )
        )

        assert config.security is not None
        assert config.security.certificate_file == str(tmp_path / "ca.pem")
        assert config.security.load() == (b"ca", None, None)

    def test_certificate_falls_back_to_env(
        self, tmp_path: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        ca = tmp_path / "env-ca.pem"
        ca.write_text("ca")
        monkeypatch.setenv("OTEL_EXPORTER_OTLP_CERTIFICATE", str(ca))

        config = load_config(_write(tmp_path, "service:\n  name: s\n"))

        assert config.security is not None
        assert config.security.certificate_file == str(ca)

    def test_no_tls_material_means_no_security(
        self, tmp_path: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_CERTIFICATE", raising=False)

        config = load_config(_write(tmp_path, "service:\n  name: s\n"))

        assert config.security is None


@pytest.mark.unit
class TestValidateConfig:
    """Tests for validate_config()."""

    def test_valid_config_has_no_errors(self) -> None:
        assert validate_config(ExporterConfig()) == []

    def test_collects_every_error(self, tmp_path: "Path") -> None:
        config = ExporterConfig(
            transport="smoke-signal",
            timeout=0,
            service=ServiceConfig(name=""),
            security=TransportSecurity(certificate_file=str(tmp_path / "missing.pem")),
        )

        errors = validate_config(config)

        assert len(errors) == 4
        assert any("certificate_file not found" in error for error in errors)

    def test_non_positive_init_timeout_is_an_error(self) -> None:
        errors = validate_config(ExporterConfig(init_timeout=-1))

        assert errors == ["exporter.init_timeout must be positive"]


@pytest.mark.unit
class TestResolveConfigPath:
    """Tests for resolve_config_path()."""

    def test_explicit_path_wins(
        self, tmp_path: "Path", monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv(CONFIG_PATH_ENV, "/elsewhere.yaml")

        assert resolve_config_path(tmp_path / "a.yaml") == tmp_path / "a.yaml"

    def test_env_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(CONFIG_PATH_ENV, "/etc/collector.yaml")

        assert str(resolve_config_path(None)) == "/etc/collector.yaml"

    def test_missing_path_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)

        with pytest.raises(ConfigurationError, match=CONFIG_PATH_ENV):
            resolve_config_path(None)
