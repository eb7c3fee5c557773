"""
Name: OpenAPI tools.
Description: Implements the OpenAPIToolkit, which compiles an OpenAPI specification into a catalog of
tools and executes tool calls: it validates arguments, builds the HTTP request with authentication,
sends it with a shared httpx client, and maps the response into a ToolResult.
"""

import logging
from contextlib import ExitStack
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match
from referencing.exceptions import Unresolvable

from ..constants import (
    DEFAULT_LOCATION_PRECEDENCE,
    DEFAULT_MAX_ERROR_BODY_CHARS,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
)
from .auth import check_security_schemes, render_auth
from .auth.auth_helpers import Secret
from .compiler import ToolCatalog, compile_catalog
from .errors import (
    ArgumentValidationError,
    MultipartBuildError,
    OpenAPIMCPError,
    ToolCompilationError,
)
from .models import (
    AuthConfig,
    HttpRequestSpec,
    HttpResponse,
    RetryConfig,
    ToolDefinition,
    ToolResult,
)
from .request import build_request
from .response import map_response, network_error
from .spec import OpenAPISpecParser
from .utils import RetryHandler

logger = logging.getLogger(__name__)


class OpenAPIToolkit:
    """Toolkit for creating and calling tools from an OpenAPI specification."""

    def __init__(
        self,
        spec: Mapping[str, Any],
        auth_config: Optional[AuthConfig] = None,
        secret: Secret = None,
        retry_config: Optional[RetryConfig] = None,
        base_url: Optional[str] = None,
        static_headers: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_error_body_chars: int = DEFAULT_MAX_ERROR_BODY_CHARS,
        location_precedence: Sequence[str] = DEFAULT_LOCATION_PRECEDENCE,
        source_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize an OpenAPI toolkit.

        Args:
            spec: OpenAPI specification as a dictionary
            auth_config: Authentication configuration
            secret: Secret for ``auth_config``; defaults to ``auth_config.value``
            retry_config: Retry configuration for transport failures
            base_url: Base URL overriding the servers of the document
            static_headers: Headers attached to every request
            timeout: Request timeout in seconds
            max_error_body_chars: Limit for body snippets of failed calls
            location_precedence: Parameter locations, highest priority first
            source_url: URL the document was loaded from
            transport: Custom httpx transport (used by tests)

        Raises:
            SpecError: If the document is invalid
            ToolCompilationError: If an operation cannot be compiled
            AuthError: If authentication is invalid or does not fit the document
        """
        self.spec_parser = OpenAPISpecParser(spec, base_url=base_url, source_url=source_url)
        self.base_url = self.spec_parser.get_base_url()

        # Validate authentication requirements
        check_security_schemes(
            auth_config,
            self.spec_parser.get_security_schemes(),
            self.spec_parser.get_security_requirements(),
        )
        self.auth_config = auth_config
        self.auth = render_auth(auth_config, secret) if auth_config else None

        self.static_headers: List[Tuple[str, str]] = list((static_headers or {}).items())
        self.max_error_body_chars = max_error_body_chars
        self.retry_config = retry_config or RetryConfig()
        self._retry_handler = RetryHandler(self.retry_config)

        self.catalog: ToolCatalog = compile_catalog(
            self.spec_parser,
            location_precedence=location_precedence,
            static_headers=[name for name, _ in self.static_headers],
        )
        self._validators = MappingProxyType(
            {
                name: Draft202012Validator(tool.input_schema)
                for name, tool in self.catalog.items()
            }
        )

        self._client = httpx.AsyncClient(
            headers={"User-Agent": DEFAULT_USER_AGENT},
            timeout=timeout,
            transport=transport,
        )
        logger.info(
            f"Loaded {len(self.catalog)} tools for '{self.spec_parser.title}' at {self.base_url}"
        )

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "OpenAPIToolkit":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    def get_tools(self) -> List[ToolDefinition]:
        """Get all tools from the toolkit.

        Returns:
            A list of tool definitions in compilation order
        """
        return list(self.catalog.values())

    def get_tool(self, name: str) -> ToolDefinition:
        """Get a tool by name.

        Args:
            name: Name of the tool

        Returns:
            The tool definition

        Raises:
            ToolNotFoundError: If no tool has that name
        """
        return self.catalog.get_tool(name)

    def list_tools(self) -> List[Dict[str, Any]]:
        """Get the listing of all tools.

        Returns:
            A list of ``{name, description, inputSchema}`` dictionaries
        """
        return self.catalog.list_tools()

    def validate_arguments(self, tool: ToolDefinition, arguments: Any) -> Dict[str, Any]:
        """Validate arguments against a tool's input schema.

        Args:
            tool: The tool being called
            arguments: The arguments supplied by the caller

        Returns:
            The arguments as a dictionary

        Raises:
            ArgumentValidationError: If the arguments do not match the schema
            ToolCompilationError: If the input schema cannot be evaluated
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ArgumentValidationError(
                f"Arguments for '{tool.name}' must be an object, got {type(arguments).__name__}"
            )
        arguments = dict(arguments)
        try:
            error = best_match(self._validators[tool.name].iter_errors(arguments))
        except Unresolvable as e:
            raise ToolCompilationError(
                f"Input schema of '{tool.name}' has an unresolvable reference: {e}"
            ) from e
        if error is not None:
            location = "/".join(str(part) for part in error.absolute_path)
            prefix = f"'{location}': " if location else ""
            raise ArgumentValidationError(
                f"Invalid arguments for '{tool.name}': {prefix}{error.message}"
            )
        return arguments

    async def call(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> ToolResult:
        """Call a tool.

        Args:
            name: Name of the tool
            arguments: Arguments for the tool

        Returns:
            The ToolResult; failures are returned, never raised
        """
        return await self._retry_handler.run(self._call_once, name, arguments)

    async def _call_once(self, name: str, arguments: Optional[Mapping[str, Any]]) -> ToolResult:
        try:
            tool = self.catalog.get_tool(name)
            validated = self.validate_arguments(tool, arguments)
            request = build_request(tool, validated, self.auth, self.static_headers)
            logger.debug(f"Calling '{name}': {request.redacted()}")
            response = await self.send(request)
            result = map_response(tool, response, self.max_error_body_chars)
        except OpenAPIMCPError as e:
            result = ToolResult.from_error(e)

        if result.is_error:
            logger.error(f"Tool '{name}' failed with {result.error.kind}: {result.error.message}")
        return result

    async def send(self, request: HttpRequestSpec) -> HttpResponse:
        """Send a built request with the shared client.

        File parts are streamed from handles that stay open only for the
        duration of the exchange, including when the call is cancelled.

        Args:
            request: The request to send

        Returns:
            The HttpResponse with its body read

        Raises:
            NetworkError: On transport failures
            MultipartBuildError: If a file part cannot be opened
        """
        kwargs: Dict[str, Any] = {"headers": request.revealed_headers()}
        if request.has_json_body:
            kwargs["json"] = request.json_body

        with ExitStack() as stack:
            if request.multipart is not None:
                # Text fields go through files as well (without a filename) so the
                # body is always multipart and keeps the declared part order
                files = []
                for part in request.multipart:
                    if part.is_file:
                        try:
                            handle = stack.enter_context(open(part.file_path, "rb"))
                        except OSError as e:
                            raise MultipartBuildError(
                                f"Unable to open file for field '{part.name}': {e}"
                            ) from e
                        files.append((part.name, (part.filename, handle, part.content_type)))
                    else:
                        files.append((part.name, (None, part.value)))
                kwargs["files"] = files
            elif request.form is not None:
                form: Dict[str, List[str]] = {}
                for key, value in request.form:
                    form.setdefault(key, []).append(value)
                kwargs["data"] = form

            try:
                response = await self._client.request(
                    request.method, request.full_url(reveal=True), **kwargs
                )
            except httpx.TransportError as e:
                raise network_error(e) from e

        return HttpResponse(
            status_code=response.status_code,
            reason_phrase=response.reason_phrase,
            headers=dict(response.headers),
            body=response.content,
        )
