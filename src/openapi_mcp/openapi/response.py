"""Maps HTTP responses and transport failures onto tool results."""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from referencing.exceptions import Unresolvable

from ..constants import DEFAULT_MAX_ERROR_BODY_CHARS, TRUNCATION_MARKER
from .errors import NetworkError, UpstreamApiError
from .models import HttpResponse, ToolDefinition, ToolResult
from .upload import is_json_media_type

logger = logging.getLogger(__name__)

# Schema mismatches reported per response
MAX_SCHEMA_WARNINGS = 5


def truncate(text: str, limit: int = DEFAULT_MAX_ERROR_BODY_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def response_schema_for(tool: ToolDefinition, status_code: int) -> Optional[Dict[str, Any]]:
    """Find the declared schema for a status: exact code, then its range, then default."""
    schemas = tool.response_schemas
    for key in (str(status_code), f"{status_code // 100}XX", f"{status_code // 100}xx", "default"):
        if key in schemas:
            return schemas[key]
    return None


def check_response_schema(schema: Dict[str, Any], content: Any) -> List[str]:
    """Validate content against a response schema without failing the call.

    Args:
        schema: The rendered JSON Schema of the response
        content: The parsed response body

    Returns:
        Warning messages, empty when the content matches
    """
    try:
        validator = Draft202012Validator(schema)
        errors = sorted(validator.iter_errors(content), key=lambda e: list(e.absolute_path))
    except SchemaError as e:
        return [f"Response schema could not be checked: {e.message}"]
    except Unresolvable as e:
        return [f"Response schema could not be checked: {e}"]
    warnings = []
    for error in errors[:MAX_SCHEMA_WARNINGS]:
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        warnings.append(f"Response does not match declared schema at {location}: {error.message}")
    return warnings


def parse_body(response: HttpResponse) -> Any:
    """Parse a response body: JSON when the content type says so, otherwise text."""
    if not response.body:
        return {"status": "Success", "status_code": response.status_code}
    if is_json_media_type(response.content_type):
        try:
            return json.loads(response.body)
        except ValueError:
            logger.debug("Response declared JSON but did not parse, returning text")
    return response.text


def upstream_error(
    response: HttpResponse, max_error_body_chars: int = DEFAULT_MAX_ERROR_BODY_CHARS
) -> UpstreamApiError:
    message = f"HTTP {response.status_code} {response.reason_phrase}".strip()
    body = truncate(response.text, max_error_body_chars) if response.body else None
    return UpstreamApiError(message, status_code=response.status_code, body=body)


def network_error(exc: httpx.TransportError) -> NetworkError:
    detail = str(exc) or "no detail"
    return NetworkError(f"{type(exc).__name__}: {detail}")


def map_response(
    tool: ToolDefinition,
    response: HttpResponse,
    max_error_body_chars: int = DEFAULT_MAX_ERROR_BODY_CHARS,
) -> ToolResult:
    """Convert an HTTP response into a tool result.

    Args:
        tool: The tool that made the request
        response: The response with its body read
        max_error_body_chars: Limit for the body snippet of failures

    Returns:
        A success ToolResult (with schema warnings) or an UpstreamApiError failure
    """
    if not response.is_success:
        return ToolResult.from_error(upstream_error(response, max_error_body_chars))

    content = parse_body(response)
    warnings: List[str] = []
    schema = response_schema_for(tool, response.status_code)
    if schema is not None and response.body and not isinstance(content, str):
        warnings = check_response_schema(schema, content)
        for warning in warnings:
            logger.warning(f"Tool '{tool.name}': {warning}")
    return ToolResult.success(content, warnings)
