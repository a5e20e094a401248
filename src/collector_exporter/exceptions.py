"""Exception classes for the collector exporter."""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when exporter configuration is invalid.

    This exception is only raised while loading configuration in strict
    validation mode. In permissive mode, problems are logged and the
    exporter falls back to defaults.
    """


class ExportError(Exception):
    """Structured failure handed to an export call's error continuation.

    It is never raised by ``export()``; callers receive it as the single
    argument of ``on_error``.

    Attributes:
        message: Human readable description of the failure.
        code: Transport status code (HTTP status or gRPC status), if any.
        response_body: Body returned by the endpoint, if any.
    """

    def __init__(
        self,
        message: str,
        code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.response_body = response_body

    def __repr__(self) -> str:
        return (
            f"ExportError(message={self.message!r}, code={self.code!r}, "
            f"response_body={self.response_body!r})"
        )
