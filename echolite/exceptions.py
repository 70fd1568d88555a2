"""Typed exceptions for EchoLite.

Every exception carries a short stable ``category`` string (rendered as the
``error`` field of HTTP error bodies) and a free-text ``detail`` taken from the
lowest layer that detected the problem.

Hierarchy:
    EcholiteError (base)
    +-- ServiceNotConfiguredError
    +-- InvalidRequestError
    |   +-- AudioTooLargeError
    +-- ConfigError
    |   +-- MissingConfigError
    |   +-- UnsupportedConfigurationError
    |   +-- ConfigValidationError
    +-- EngineNotImplementedError
    +-- ProcessFailedError
    +-- BackendError
    |   +-- BackendUnreachableError
    |   +-- BackendRejectedError
    |   +-- MalformedBackendPayloadError
    +-- RequestCancelledError
"""

from __future__ import annotations


class EcholiteError(Exception):
    """Base for all EchoLite exceptions."""

    category = "internal_error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ServiceNotConfiguredError(EcholiteError):
    """A required service was not configured at startup.

    Raised by FastAPI dependencies when app.state is missing a component.
    Maps to HTTP 503.
    """

    category = "service_not_configured"

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"{service_name} not configured. Pass it to create_app().")


# --- Request ---


class InvalidRequestError(EcholiteError):
    """Missing or malformed client input."""

    category = "invalid_request"


class AudioTooLargeError(InvalidRequestError):
    """Uploaded audio exceeds the allowed limit."""

    category = "audio_too_large"

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        size_mb = size_bytes / (1024 * 1024)
        max_mb = max_bytes / (1024 * 1024)
        super().__init__(f"Audio file ({size_mb:.1f}MB) exceeds the {max_mb:.1f}MB limit")


# --- Configuration ---


class ConfigError(EcholiteError):
    """Profile configuration error."""

    category = "config_error"


class MissingConfigError(ConfigError):
    """A profile field required by the selected backend is empty."""

    category = "missing_required_config"

    def __init__(self, profile: str, field: str) -> None:
        self.profile = profile
        self.field = field
        super().__init__(f"Profile '{profile}' is missing required field '{field}'")


class UnsupportedConfigurationError(ConfigError):
    """The configured backend cannot serve this kind of request."""

    category = "unsupported_configuration"


class ConfigValidationError(ConfigError):
    """A candidate configuration was rejected on save."""

    category = "invalid_config"

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


class EngineNotImplementedError(EcholiteError):
    """The selected transcription engine has no implementation."""

    category = "engine_not_implemented"

    def __init__(self, engine: str) -> None:
        self.engine = engine
        super().__init__(f"Transcription engine '{engine}' is not implemented")


# --- External processes ---


class ProcessFailedError(EcholiteError):
    """An external executable could not start or exited non-zero."""

    category = "process_exit_nonzero"

    def __init__(self, executable: str, returncode: int | None, diagnostics: str) -> None:
        self.executable = executable
        self.returncode = returncode
        self.diagnostics = diagnostics
        if returncode is None:
            msg = f"{executable} failed to start"
        else:
            msg = f"{executable} exited with code {returncode}"
        if diagnostics:
            msg += f"\n{diagnostics}"
        super().__init__(msg)


# --- Backends ---


class BackendError(EcholiteError):
    """Inference backend failure (network, protocol, or rejection)."""

    category = "backend_error"


class BackendUnreachableError(BackendError):
    """The backend could not be reached or the connection dropped."""

    category = "network_unreachable"

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Backend at {url} unreachable: {reason}")


class BackendRejectedError(BackendError):
    """The backend answered the handshake with a failure status."""

    category = "backend_rejected"

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        msg = f"Backend returned {status_code}"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class MalformedBackendPayloadError(BackendError):
    """The backend stream violated its wire protocol."""

    category = "malformed_backend_payload"


# --- Cancellation ---


class RequestCancelledError(EcholiteError):
    """The caller went away while the request was in flight."""

    category = "request_cancelled"

    def __init__(self, detail: str = "Request cancelled by client") -> None:
        super().__init__(detail)
