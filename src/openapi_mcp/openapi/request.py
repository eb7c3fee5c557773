"""Builds concrete HTTP requests from a tool definition and its arguments."""

import json
import logging
import mimetypes
import os
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from pydantic import SecretStr

from .errors import ArgumentValidationError, MultipartBuildError
from .models import HeaderValue, HttpRequestSpec, MultipartPart, RenderedAuth, ToolDefinition
from .upload import MULTIPART_MEDIA_TYPE

logger = logging.getLogger(__name__)

_PATH_TOKEN = re.compile(r"\{([^{}]+)\}")
FILE_URL_PREFIX = "file://"
DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"


def format_scalar(value: Any) -> str:
    """Render an argument value for a path segment, query string or form field."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def _expand(name: str, value: Any) -> List[Tuple[str, str]]:
    if isinstance(value, (list, tuple)):
        return [(name, format_scalar(item)) for item in value if item is not None]
    return [(name, format_scalar(value))]


def _set_header(headers: List[Tuple[str, HeaderValue]], name: str, value: HeaderValue):
    lowered = name.lower()
    headers[:] = [(key, val) for key, val in headers if key.lower() != lowered]
    headers.append((name, value))


def resolve_file_path(reference: Any, field: str) -> str:
    """Turn a file reference argument into a readable local path.

    Args:
        reference: A local path, optionally prefixed with ``file://``
        field: Name of the file field, used in error messages

    Returns:
        The local path

    Raises:
        MultipartBuildError: If the reference is not a readable regular file
    """
    if not isinstance(reference, str) or not reference:
        raise MultipartBuildError(f"File field '{field}' expects a local file path")
    path = reference
    if path.startswith(FILE_URL_PREFIX):
        path = unquote(path[len(FILE_URL_PREFIX):])
    path = os.path.expanduser(path)
    if not os.path.isfile(path):
        raise MultipartBuildError(f"File for field '{field}' does not exist: {path}")
    if not os.access(path, os.R_OK):
        raise MultipartBuildError(f"File for field '{field}' is not readable: {path}")
    return path


def file_part(field: str, reference: Any) -> MultipartPart:
    path = resolve_file_path(reference, field)
    content_type, _ = mimetypes.guess_type(path)
    return MultipartPart(
        name=field,
        file_path=path,
        filename=os.path.basename(path),
        content_type=content_type or DEFAULT_FILE_CONTENT_TYPE,
    )


def build_request(
    tool: ToolDefinition,
    arguments: Mapping[str, Any],
    auth: Optional[RenderedAuth] = None,
    static_headers: Iterable[Tuple[str, str]] = (),
) -> HttpRequestSpec:
    """Build the HTTP request for one tool call.

    Args:
        tool: The compiled tool
        arguments: Arguments already validated against the tool's input schema
        auth: Rendered authentication pairs, attached unless the tool opts out
        static_headers: Headers attached to every request

    Returns:
        The HttpRequestSpec ready to send

    Raises:
        ArgumentValidationError: If a path parameter has no value
        MultipartBuildError: If a file field references an unreadable file
    """
    unknown = [name for name in arguments if name not in tool.bindings]
    if unknown:
        logger.warning(f"Tool '{tool.name}': ignoring unknown arguments {unknown}")

    by_location: Dict[str, List[Tuple[str, Any]]] = {
        "path": [],
        "query": [],
        "header": [],
        "body": [],
    }
    for name, binding in tool.bindings.items():
        if name in arguments and arguments[name] is not None:
            by_location[binding.location].append((name, arguments[name]))

    # 1. Path template
    path_values = dict(by_location["path"])

    def substitute(match):
        token = match.group(1)
        if token not in path_values:
            raise ArgumentValidationError(
                f"Tool '{tool.name}': missing value for path parameter '{token}'"
            )
        return quote(format_scalar(path_values[token]), safe="")

    path = _PATH_TOKEN.sub(substitute, tool.operation.path)
    url = f"{tool.base_url.rstrip('/')}{path}"

    # 2. Query string
    query: List[Tuple[str, HeaderValue]] = []
    for name, value in by_location["query"]:
        query.extend(_expand(name, value))

    # 3. Headers and auth
    headers: List[Tuple[str, HeaderValue]] = []
    for name, value in static_headers:
        _set_header(headers, name, SecretStr(value))
    if auth is not None and tool.requires_auth:
        for name, value in auth.headers:
            _set_header(headers, name, value)
        query.extend(auth.query)
    for name, value in by_location["header"]:
        _set_header(headers, name, format_scalar(value))

    # 4. Body
    body_args = by_location["body"]
    json_body = None
    has_json_body = False
    multipart = None
    form = None

    if tool.body_encoding == "json":
        if tool.raw_body:
            if body_args:
                json_body, has_json_body = body_args[0][1], True
        elif body_args or tool.operation.request_body.required:
            json_body, has_json_body = dict(body_args), True

    elif tool.body_encoding == "multipart":
        multipart = []
        for name, value in body_args:
            if name in tool.file_fields:
                references = value if isinstance(value, list) else [value]
                multipart.extend(file_part(name, reference) for reference in references)
            elif isinstance(value, str):
                multipart.append(MultipartPart(name=name, value=value))
            else:
                multipart.append(MultipartPart(name=name, value=json.dumps(value)))

    elif tool.body_encoding == "form":
        fields = []
        if tool.raw_body and body_args and isinstance(body_args[0][1], Mapping):
            body_args = list(body_args[0][1].items())
        for name, value in body_args:
            fields.extend(_expand(name, value))
        if tool.body_media_type == MULTIPART_MEDIA_TYPE:
            # Declared as multipart only, so the fields travel as text parts
            multipart = [MultipartPart(name=name, value=value) for name, value in fields]
        else:
            form = fields

    return HttpRequestSpec(
        method=tool.operation.method.upper(),
        url=url,
        query=query,
        headers=headers,
        json_body=json_body,
        has_json_body=has_json_body,
        multipart=multipart,
        form=form,
    )
