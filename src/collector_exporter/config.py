"""Configuration types, loading, and validation for the collector exporter."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from collector_exporter.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable for config path fallback
CONFIG_PATH_ENV = "COLLECTOR_EXPORTER_CONFIG_PATH"

# Pattern for environment variable substitution: ${VAR_NAME}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

VALID_TRANSPORTS = ("auto", "http", "grpc")

DEFAULT_SERVICE_NAME = "collector-exporter"
DEFAULT_HTTP_TRACES_ENDPOINT = "http://localhost:55681/v1/trace"
DEFAULT_HTTP_METRICS_ENDPOINT = "http://localhost:55681/v1/metrics"
DEFAULT_GRPC_ENDPOINT = "localhost:55678"


@dataclass
class ServiceConfig:
    """Service identification configuration."""

    name: str = DEFAULT_SERVICE_NAME
    version: str | None = None


@dataclass
class TransportSecurity:
    """TLS material for the gRPC transport.

    Paths are read when the channel initializes, so a missing or unreadable
    file surfaces as an initialization failure rather than at construction.
    """

    # CA bundle used to verify the collector (.pem)
    # Fallback: OTEL_EXPORTER_OTLP_CERTIFICATE env var
    certificate_file: str | None = None
    client_key_file: str | None = None
    client_certificate_file: str | None = None

    def load(self) -> tuple[bytes | None, bytes | None, bytes | None]:
        """Read (root_certificates, private_key, certificate_chain).

        Raises:
            OSError: If any configured file cannot be read.
        """
        return (
            _read_optional(self.certificate_file),
            _read_optional(self.client_key_file),
            _read_optional(self.client_certificate_file),
        )


@dataclass
class ValidationConfig:
    """Validation mode configuration."""

    mode: str = "permissive"  # "strict" | "permissive"


@dataclass
class ExporterConfig:
    """Complete exporter configuration.

    ``endpoint`` is a URL for the HTTP/beacon transports and a
    ``host:port`` target for gRPC. When None, a default for the selected
    transport and signal is used.
    """

    endpoint: str | None = None
    # Transport: "auto" (default), "http" or "grpc"
    transport: str = "auto"
    # Custom HTTP headers; forces the request/response transport over beacon
    headers: dict[str, str] = field(default_factory=dict)
    # Per-call gRPC metadata
    metadata: dict[str, str] = field(default_factory=dict)
    security: TransportSecurity | None = None
    scope_name: str = ""
    service: ServiceConfig = field(default_factory=ServiceConfig)
    # Static resource attributes, override SDK resource attributes
    attributes: dict[str, Any] = field(default_factory=dict)
    # Per-request timeout in seconds
    timeout: float = 10.0
    # Upper bound in seconds for the gRPC channel to become ready
    init_timeout: float | None = 10.0
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    @property
    def is_strict(self) -> bool:
        """Return True if validation mode is strict."""
        return self.validation.mode == "strict"


def _read_optional(path: str | None) -> bytes | None:
    if not path:
        return None
    return Path(path).read_bytes()


def _substitute_env_vars(value: str, strict: bool) -> str:
    """Substitute ${VAR_NAME} patterns with environment variable values.

    Args:
        value: String potentially containing ${VAR_NAME} patterns.
        strict: If True, raise ConfigurationError for missing env vars.

    Returns:
        String with environment variables substituted.

    Raises:
        ConfigurationError: If strict=True and an env var is not set.
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            if strict:
                raise ConfigurationError(
                    f"Environment variable '{var_name}' is not set"
                )
            logger.warning(
                "Environment variable '%s' not set, using empty string", var_name
            )
            return ""
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any, strict: bool) -> Any:
    """Recursively substitute environment variables in a data structure."""
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v, strict) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item, strict) for item in data]
    elif isinstance(data, str):
        return _substitute_env_vars(data, strict)
    else:
        return data


def _parse_service_config(data: dict[str, Any]) -> ServiceConfig:
    """Parse service configuration section."""
    return ServiceConfig(
        name=data.get("name", ""),
        version=data.get("version"),
    )


def _parse_string_map(data: Any, section: str) -> dict[str, str]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring exporter.%s: expected a mapping", section)
        return {}
    return {str(k): str(v) for k, v in data.items()}


def _parse_security_config(
    data: dict[str, Any] | None, config_dir: Path | None = None
) -> TransportSecurity | None:
    """Parse TLS section.

    Relative paths are resolved against the config file directory.
    certificate_file falls back to OTEL_EXPORTER_OTLP_CERTIFICATE.
    """
    data = data or {}
    certificate_file = data.get(
        "certificate_file",
        os.environ.get("OTEL_EXPORTER_OTLP_CERTIFICATE"),
    )
    client_key_file = data.get("client_key_file")
    client_certificate_file = data.get("client_certificate_file")

    if not (certificate_file or client_key_file or client_certificate_file):
        return None

    def resolve(path: str | None) -> str | None:
        if path and config_dir and not Path(path).is_absolute():
            return str(config_dir / path)
        return path

    return TransportSecurity(
        certificate_file=resolve(certificate_file),
        client_key_file=resolve(client_key_file),
        client_certificate_file=resolve(client_certificate_file),
    )


def _parse_seconds(data: dict[str, Any], key: str, allow_none: bool) -> float | None:
    """Parse a duration in seconds; an explicit null means no limit if allowed."""
    if key not in data:
        return 10.0
    raw = data[key]
    if raw is None:
        if allow_none:
            return None
        raise ConfigurationError(f"exporter.{key} must be a number of seconds")
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"exporter.{key} must be a number of seconds, got {raw!r}"
        ) from e


def _parse_exporter_section(
    data: dict[str, Any], config_dir: Path | None
) -> dict[str, Any]:
    transport = data.get("transport", "auto")
    if transport not in VALID_TRANSPORTS:
        logger.warning("Unknown transport '%s', defaulting to 'auto'", transport)
        transport = "auto"

    return {
        "endpoint": data.get("endpoint") or None,
        "transport": transport,
        "headers": _parse_string_map(data.get("headers"), "headers"),
        "metadata": _parse_string_map(data.get("metadata"), "metadata"),
        "security": _parse_security_config(data.get("tls"), config_dir=config_dir),
        "scope_name": data.get("scope_name") or "",
        "attributes": dict(data.get("attributes") or {}),
        "timeout": _parse_seconds(data, "timeout", allow_none=False),
        "init_timeout": _parse_seconds(data, "init_timeout", allow_none=True),
    }


def _parse_validation_config(data: dict[str, Any]) -> ValidationConfig:
    """Parse validation configuration section."""
    mode = data.get("mode", "permissive")
    if mode not in ("strict", "permissive"):
        logger.warning("Unknown validation mode '%s', defaulting to permissive", mode)
        mode = "permissive"
    return ValidationConfig(mode=mode)


def validate_config(config: ExporterConfig) -> list[str]:
    """Validate configuration and return list of error messages.

    Args:
        config: Parsed configuration to validate.

    Returns:
        List of validation error messages. Empty if valid.
    """
    errors: list[str] = []

    if not config.service.name:
        errors.append("service.name is required")

    if config.transport not in VALID_TRANSPORTS:
        errors.append(
            f"exporter.transport must be one of {', '.join(VALID_TRANSPORTS)}"
        )

    if config.timeout <= 0:
        errors.append("exporter.timeout must be positive")

    if config.init_timeout is not None and config.init_timeout <= 0:
        errors.append("exporter.init_timeout must be positive")

    # Validate certificate files exist if specified
    if config.security is not None:
        for name in ("certificate_file", "client_key_file", "client_certificate_file"):
            path = getattr(config.security, name)
            if path and not Path(path).exists():
                errors.append(f"TLS {name} not found: {path}")

    return errors


def resolve_config_path(config_path: str | Path | None) -> Path:
    """Resolve configuration file path from argument or environment.

    Raises:
        ConfigurationError: If no path is given and the
                           COLLECTOR_EXPORTER_CONFIG_PATH env var is not set.
    """
    if config_path is not None:
        return Path(config_path)

    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)

    raise ConfigurationError(
        f"No configuration path provided. Either pass a config path "
        f"or set the {CONFIG_PATH_ENV} environment variable."
    )


def load_config(path: str | Path, strict: bool | None = None) -> ExporterConfig:
    """Load and parse configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
        strict: Override validation mode. If None, use mode from config file.

    Returns:
        Parsed and validated ExporterConfig.

    Raises:
        ConfigurationError: If file doesn't exist, YAML is invalid,
                           or validation fails in strict mode.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            raw_data = yaml.safe_load(f)
            if raw_data is None:
                raw_data = {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")

    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    # Determine validation mode early (needed for env var substitution)
    validation_data = raw_data.get("validation") or {}
    validation_mode = validation_data.get("mode", "permissive")
    is_strict = strict if strict is not None else (validation_mode == "strict")

    data = _substitute_env_vars_recursive(raw_data, strict=is_strict)

    config = ExporterConfig(
        service=_parse_service_config(data.get("service") or {}),
        validation=_parse_validation_config(data.get("validation") or {}),
        **_parse_exporter_section(data.get("exporter") or {}, config_dir=path.parent),
    )

    # Override validation mode if specified
    if strict is not None:
        config.validation.mode = "strict" if strict else "permissive"

    errors = validate_config(config)
    if errors:
        if config.is_strict:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            )
        for error in errors:
            logger.warning("Configuration problem ignored in permissive mode: %s", error)
        if not config.service.name:
            config.service.name = DEFAULT_SERVICE_NAME

    return config
