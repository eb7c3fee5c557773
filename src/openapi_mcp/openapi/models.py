"""Common models for OpenAPI tools."""

import json
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote, urlencode

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..constants import DEFAULT_BACKOFF_FACTOR, DEFAULT_MAX_RETRIES
from .errors import OpenAPIMCPError

REDACTED = "**********"

HeaderValue = Union[str, SecretStr]


class ApiParameter(BaseModel):
    """Parameter for an API request."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    location: str  # path, query, header, cookie
    description: str = ""
    required: bool = False
    # SchemaNode or NodeRef from the resolved schema graph
    schema_node: Any = None


class ApiRequestBody(BaseModel):
    """Request body of an operation, keyed by media type."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    required: bool = False
    description: str = ""
    content: Dict[str, Any] = Field(default_factory=dict)


class ApiResponse(BaseModel):
    """Declared response for one status code."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: str
    description: str = ""
    content: Dict[str, Any] = Field(default_factory=dict)


class ApiOperation(BaseModel):
    """A single operation (method + path) of the API."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    operation_id: Optional[str] = None
    summary: str = ""
    description: str = ""
    parameters: List[ApiParameter] = Field(default_factory=list)
    request_body: Optional[ApiRequestBody] = None
    responses: List[ApiResponse] = Field(default_factory=list)
    # None means the document-level requirement applies
    security: Optional[List[Dict[str, List[str]]]] = None
    base_url: str = ""


class ParameterBinding(BaseModel):
    """Where an input property is sent on the wire."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: str  # path, query, header, body


class ToolDefinition(BaseModel):
    """A compiled, callable tool derived from one operation."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any]
    requires_multipart: bool = False
    file_fields: List[str] = Field(default_factory=list)
    body_encoding: str = "none"  # none, json, multipart, form
    body_media_type: Optional[str] = None
    # True when the whole body is carried by a single "body" argument
    raw_body: bool = False
    bindings: Dict[str, ParameterBinding] = Field(default_factory=dict)
    dropped_bindings: List[ParameterBinding] = Field(default_factory=list)
    response_schemas: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    base_url: str = ""
    requires_auth: bool = True
    operation: ApiOperation

    def to_schema(self) -> Dict[str, Any]:
        """Convert the tool to the listing shape used by MCP clients.

        Returns:
            A dictionary with name, description and inputSchema
        """
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class AuthConfig(BaseModel):
    """Declarative authentication configuration.

    ``type`` is one of bearer, basic, api_key_header, api_key_query or
    custom_header. ``template`` must contain exactly one ``{value}``
    placeholder.
    """

    type: str
    name: Optional[str] = None  # header or query parameter name
    template: Optional[str] = None
    username: Optional[str] = None  # basic only
    value: Optional[SecretStr] = None  # secret, when supplied through config


class RenderedAuth(BaseModel):
    """Concrete auth pairs ready to attach to a request."""

    model_config = ConfigDict(frozen=True)

    headers: List[Tuple[str, SecretStr]] = Field(default_factory=list)
    query: List[Tuple[str, SecretStr]] = Field(default_factory=list)


class RetryConfig(BaseModel):
    """Retry configuration for transport failures.

    Only network-level failures are ever retried; HTTP error statuses are
    reported to the caller as-is.
    """

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES, description="Maximum number of retry attempts"
    )
    backoff_factor: float = Field(
        default=DEFAULT_BACKOFF_FACTOR,
        description="Exponential backoff factor (in seconds) between retries",
    )
    enabled: bool = Field(default=False, description="Whether retries are enabled")


class MultipartPart(BaseModel):
    """One part of a multipart/form-data body."""

    model_config = ConfigDict(frozen=True)

    name: str
    value: Optional[str] = None
    file_path: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.file_path is not None


class HttpRequestSpec(BaseModel):
    """A fully built HTTP request, independent of any client library."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    query: List[Tuple[str, HeaderValue]] = Field(default_factory=list)
    headers: List[Tuple[str, HeaderValue]] = Field(default_factory=list)
    json_body: Any = None
    has_json_body: bool = False
    multipart: Optional[List[MultipartPart]] = None
    form: Optional[List[Tuple[str, str]]] = None

    def header(self, name: str) -> Optional[str]:
        """Get a header value by case-insensitive name (secrets revealed)."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return _reveal(value)
        return None

    def full_url(self, reveal: bool = False) -> str:
        """Render the URL with its percent-encoded query string.

        Args:
            reveal: Whether to include secret query values in clear text

        Returns:
            The URL including the query string
        """
        if not self.query:
            return self.url
        pairs = [
            (key, _reveal(value) if reveal else _mask(value))
            for key, value in self.query
        ]
        separator = "&" if "?" in self.url else "?"
        # The mask stays readable in logs
        safe = "" if reveal else "*"
        return f"{self.url}{separator}{urlencode(pairs, safe=safe, quote_via=quote)}"

    def revealed_headers(self) -> List[Tuple[str, str]]:
        return [(key, _reveal(value)) for key, value in self.headers]

    def redacted(self) -> Dict[str, Any]:
        """Describe the request for logging with every secret masked."""
        described = {
            "method": self.method,
            "url": self.full_url(),
            "headers": [(key, _mask(value)) for key, value in self.headers],
        }
        if self.has_json_body:
            described["json"] = self.json_body
        if self.multipart is not None:
            described["multipart"] = [
                part.name + (f" <file {part.filename}>" if part.is_file else "")
                for part in self.multipart
            ]
        if self.form is not None:
            described["form"] = [key for key, _ in self.form]
        return described


class HttpResponse(BaseModel):
    """An HTTP response with its body fully read."""

    status_code: int
    reason_phrase: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.split(";", 1)[0].strip().lower()
        return ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class ToolFailure(BaseModel):
    """Structured failure returned to the caller."""

    kind: str
    message: str
    status_code: Optional[int] = None
    body: Optional[str] = None


class ToolResult(BaseModel):
    """Outcome of a tool call: content on success, a failure otherwise."""

    is_error: bool = False
    content: Any = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[ToolFailure] = None

    @classmethod
    def success(cls, content: Any, warnings: Optional[List[str]] = None) -> "ToolResult":
        return cls(content=content, warnings=warnings or [])

    @classmethod
    def from_error(cls, error: OpenAPIMCPError) -> "ToolResult":
        """Convert a raised engine error into a failure result.

        Args:
            error: The error to convert

        Returns:
            A failure ToolResult carrying the error's kind, message and status
        """
        return cls(
            is_error=True,
            error=ToolFailure(
                kind=error.kind,
                message=error.message,
                status_code=error.status_code,
                body=getattr(error, "body", None),
            ),
        )

    def to_text(self) -> str:
        """Serialize the result payload for text-only transports."""
        if self.is_error:
            return json.dumps(self.error.model_dump(exclude_none=True))
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content)


def _reveal(value: HeaderValue) -> str:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


def _mask(value: HeaderValue) -> str:
    if isinstance(value, SecretStr):
        return REDACTED
    return value
