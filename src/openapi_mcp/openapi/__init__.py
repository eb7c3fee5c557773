"""OpenAPI handling module for openapi-mcp."""

from .compiler import ToolCatalog, ToolCompiler, compile_catalog
from .errors import (
    ArgumentValidationError,
    AuthError,
    MultipartBuildError,
    NetworkError,
    OpenAPIMCPError,
    SpecError,
    ToolCompilationError,
    ToolNotFoundError,
    UpstreamApiError,
)
from .models import AuthConfig, RetryConfig, ToolDefinition, ToolResult
from .spec import OpenAPISpecParser, load_spec
from .tools import OpenAPIToolkit

__all__ = [
    "ArgumentValidationError",
    "AuthConfig",
    "AuthError",
    "MultipartBuildError",
    "NetworkError",
    "OpenAPIMCPError",
    "OpenAPISpecParser",
    "OpenAPIToolkit",
    "RetryConfig",
    "SpecError",
    "ToolCatalog",
    "ToolCompilationError",
    "ToolCompiler",
    "ToolDefinition",
    "ToolNotFoundError",
    "ToolResult",
    "UpstreamApiError",
    "compile_catalog",
    "load_spec",
]
