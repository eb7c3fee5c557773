"""Error taxonomy for compiling and invoking OpenAPI tools."""

from typing import Optional


class OpenAPIMCPError(Exception):
    """Base class for all errors raised by the engine.

    Every subclass carries a stable ``kind`` string that callers can use to
    decide on retry or backoff without inspecting the message.
    """

    kind = "OpenAPIMCPError"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SpecError(OpenAPIMCPError):
    """The OpenAPI document is malformed or contains an unresolved reference."""

    kind = "SpecError"


class ToolCompilationError(OpenAPIMCPError):
    """An operation cannot be compiled into a tool (name collision, unsupported shape)."""

    kind = "ToolCompilationError"


class ArgumentValidationError(OpenAPIMCPError):
    """Tool arguments do not satisfy the compiled input schema."""

    kind = "ArgumentValidationError"


class AuthError(OpenAPIMCPError):
    """Authentication could not be rendered (missing secret, malformed template)."""

    kind = "AuthError"


class MultipartBuildError(OpenAPIMCPError):
    """A file field references a source that cannot be read."""

    kind = "MultipartBuildError"


class NetworkError(OpenAPIMCPError):
    """The HTTP exchange failed at the transport level."""

    kind = "NetworkError"


class UpstreamApiError(OpenAPIMCPError):
    """The API answered with a non-2xx status."""

    kind = "UpstreamApiError"

    def __init__(self, message: str, status_code: int, body: Optional[str] = None):
        super().__init__(message, status_code=status_code)
        self.body = body


class ToolNotFoundError(OpenAPIMCPError):
    """No tool with the requested name exists in the catalog."""

    kind = "ToolNotFoundError"
