"""
Name: OpenAPI specification parser.
Description: Loads OpenAPI 3.x documents from dictionaries, text, files or URLs, validates their
structure, and extracts the operations (with parameters, request bodies and responses resolved
against the schema graph) that the tool compiler turns into tools.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import unquote, urljoin

import requests
import yaml
from fastapi.openapi.models import OpenAPI
from pydantic import ValidationError

from ..constants import HTTP_METHODS
from .errors import SpecError
from .models import ApiOperation, ApiParameter, ApiRequestBody, ApiResponse
from .schema import SchemaGraph, SchemaResolver, build_schema_graph

logger = logging.getLogger(__name__)

_SERVER_VARIABLE = re.compile(r"\{([^{}]+)\}")


def parse_spec_text(text: Union[str, bytes]) -> Dict[str, Any]:
    """Parse an OpenAPI document from JSON or YAML text.

    Args:
        text: The raw document

    Returns:
        Dict containing the OpenAPI spec

    Raises:
        SpecError: If the text is not UTF-8, or neither valid JSON nor valid YAML
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SpecError(f"OpenAPI document is not valid UTF-8: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SpecError(f"Unable to parse document as JSON or YAML: {e}") from e


def load_spec_from_file(file_path: str) -> Dict[str, Any]:
    """Load OpenAPI spec from a file.

    Args:
        file_path: Path to the OpenAPI spec file

    Returns:
        Dict containing the OpenAPI spec
    """
    _, ext = os.path.splitext(file_path)
    if ext.lower() not in (".json", ".yaml", ".yml"):
        raise SpecError(f"Unsupported file extension: {ext}")
    try:
        with open(file_path, "rb") as f:
            text = f.read()
    except OSError as e:
        raise SpecError(f"OpenAPI specification file not readable: {file_path}") from e
    return parse_spec_text(text)


def load_spec_from_url(url: str) -> Dict[str, Any]:
    """Load OpenAPI spec from a URL.

    Args:
        url: URL to the OpenAPI spec

    Returns:
        Dict containing the OpenAPI spec
    """
    try:
        response = requests.get(url, timeout=30)
        response.raise_for_status()
    except requests.RequestException as e:
        raise SpecError(f"Unable to fetch OpenAPI specification from {url}: {e}") from e
    return parse_spec_text(response.content)


def load_spec(source: Union[Mapping[str, Any], str, bytes]) -> Dict[str, Any]:
    """Load an OpenAPI document from any supported source.

    Args:
        source: A parsed document, raw JSON/YAML text or bytes, a file path, or an http(s) URL

    Returns:
        Dict containing the OpenAPI spec
    """
    if isinstance(source, Mapping):
        return dict(source)
    if isinstance(source, bytes):
        return parse_spec_text(source)
    if source.startswith(("http://", "https://")):
        return load_spec_from_url(source)
    if os.path.isfile(source):
        return load_spec_from_file(source)
    return parse_spec_text(source)


def validate_document(spec: Any) -> None:
    """Reject documents that are not structurally valid OpenAPI 3.x.

    Args:
        spec: The parsed document

    Raises:
        SpecError: If the document is malformed
    """
    if not isinstance(spec, Mapping):
        raise SpecError("OpenAPI document must be a mapping at the top level")
    if "swagger" in spec:
        raise SpecError("Swagger 2.0 documents are not supported; convert to OpenAPI 3.x")
    version = spec.get("openapi")
    if not isinstance(version, str) or not version.startswith("3."):
        raise SpecError(f"Unsupported or missing 'openapi' version: {version!r}")
    if not isinstance(spec.get("info"), Mapping):
        raise SpecError("OpenAPI document is missing the 'info' object")
    if not isinstance(spec.get("paths"), Mapping):
        raise SpecError("OpenAPI document is missing the 'paths' object")

    try:
        OpenAPI.model_validate(spec)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in error['loc'])}: {error['msg']}"
            for error in e.errors()[:5]
        )
        raise SpecError(f"Invalid OpenAPI document: {problems}") from e


def _render_server_url(server: Any) -> str:
    if not isinstance(server, Mapping):
        return ""
    url = server.get("url", "") or ""
    variables = server.get("variables") or {}

    def substitute(match):
        variable = variables.get(match.group(1)) or {}
        return str(variable.get("default", match.group(0)))

    return _SERVER_VARIABLE.sub(substitute, url)


class OpenAPISpecParser:
    """Parser for OpenAPI specifications."""

    def __init__(
        self,
        spec: Mapping[str, Any],
        base_url: Optional[str] = None,
        source_url: Optional[str] = None,
    ):
        """Initialize the parser with an OpenAPI spec.

        Args:
            spec: The OpenAPI spec as a dictionary
            base_url: Base URL overriding every server declared in the document
            source_url: URL the document was fetched from, used for relative servers

        Raises:
            SpecError: If the document is malformed or has unresolved references
        """
        validate_document(spec)
        self.spec = spec
        self.base_url_override = base_url.rstrip("/") if base_url else None
        self.source_url = source_url
        self.graph: SchemaGraph
        self.resolver: SchemaResolver
        self.graph, self.resolver = build_schema_graph(spec)

    @property
    def title(self) -> str:
        return self.spec.get("info", {}).get("title", "")

    @property
    def description(self) -> str:
        return self.spec.get("info", {}).get("description", "") or ""

    def get_base_url(self) -> str:
        """Get the base URL from the OpenAPI spec.

        Returns:
            The base URL for API requests
        """
        if self.base_url_override:
            return self.base_url_override
        return self._server_url(self.spec.get("servers"))

    def _server_url(self, servers: Any) -> str:
        if not isinstance(servers, list) or not servers:
            return ""

        # Use the first server URL
        url = _render_server_url(servers[0])
        if self.source_url and not url.startswith(("http://", "https://")):
            url = urljoin(self.source_url, url)

        # Remove trailing slash if present
        return url.rstrip("/")

    def get_security_schemes(self) -> Dict[str, Any]:
        """Extract security schemes defined in the specification.

        Returns:
            Dictionary of security schemes keyed by name
        """
        return dict((self.spec.get("components") or {}).get("securitySchemes") or {})

    def get_security_requirements(self) -> List[Dict[str, List[str]]]:
        """Extract global security requirements defined in the specification.

        Returns:
            List of security requirement objects
        """
        return list(self.spec.get("security") or [])

    def resolve_component(self, obj: Any, where: str) -> Mapping[str, Any]:
        """Resolve a non-schema component reference (parameter, request body, response).

        Args:
            obj: The object that may be a ``{"$ref": ...}``
            where: Human readable location used in error messages

        Returns:
            The referenced object, or ``obj`` itself when it is not a reference
        """
        seen = set()
        while isinstance(obj, Mapping) and "$ref" in obj:
            ref = obj["$ref"]
            if not isinstance(ref, str) or not ref.startswith("#/"):
                raise SpecError(f"Unsupported reference in {where}: {ref!r}")
            if ref in seen:
                raise SpecError(f"Circular reference in {where}: {ref}")
            seen.add(ref)
            current: Any = self.spec
            for part in ref[2:].split("/"):
                part = unquote(part).replace("~1", "/").replace("~0", "~")
                if not isinstance(current, Mapping) or part not in current:
                    raise SpecError(f"Unresolved reference in {where}: {ref}")
                current = current[part]
            obj = current
        if not isinstance(obj, Mapping):
            raise SpecError(f"Malformed {where}: expected an object")
        return obj

    def get_operations(self) -> List[ApiOperation]:
        """Extract every operation in document order.

        Returns:
            Operations with parameters, request bodies and responses resolved
        """
        operations = []
        for path, path_item in self.spec["paths"].items():
            path_item = self.resolve_component(path_item, f"path item '{path}'")
            path_parameters = path_item.get("parameters") or []
            path_servers = path_item.get("servers")

            for method in HTTP_METHODS:
                if method not in path_item:
                    continue
                where = f"{method.upper()} {path}"
                operation = path_item[method]
                if not isinstance(operation, Mapping):
                    raise SpecError(f"Malformed operation {where}")
                operations.append(
                    self._build_operation(method, path, operation, path_parameters, path_servers)
                )
        logger.debug(f"Extracted {len(operations)} operations from '{self.title}'")
        return operations

    def _build_operation(
        self,
        method: str,
        path: str,
        operation: Mapping[str, Any],
        path_parameters: List[Any],
        path_servers: Any,
    ) -> ApiOperation:
        where = f"{method.upper()} {path}"

        # Operation-level parameters replace path-level ones with the same name and location
        merged: Dict[tuple, ApiParameter] = {}
        for raw_param in list(path_parameters) + list(operation.get("parameters") or []):
            param = self._build_parameter(raw_param, where)
            merged[(param.name, param.location)] = param

        request_body = None
        if operation.get("requestBody") is not None:
            raw_body = self.resolve_component(operation["requestBody"], f"request body of {where}")
            content = {}
            for media_type, media in (raw_body.get("content") or {}).items():
                schema = (media or {}).get("schema")
                content[media_type] = (
                    self.resolver.resolve(schema) if schema is not None else None
                )
            request_body = ApiRequestBody(
                required=bool(raw_body.get("required", False)),
                description=raw_body.get("description", "") or "",
                content=content,
            )

        responses = []
        for status, raw_response in (operation.get("responses") or {}).items():
            raw_response = self.resolve_component(
                raw_response, f"response {status} of {where}"
            )
            content = {}
            for media_type, media in (raw_response.get("content") or {}).items():
                schema = (media or {}).get("schema")
                if schema is not None:
                    content[media_type] = self.resolver.resolve(schema)
            responses.append(
                ApiResponse(
                    status=str(status),
                    description=raw_response.get("description", "") or "",
                    content=content,
                )
            )

        if self.base_url_override:
            base_url = self.base_url_override
        else:
            base_url = (
                self._server_url(operation.get("servers"))
                or self._server_url(path_servers)
                or self.get_base_url()
            )

        security = operation.get("security")
        return ApiOperation(
            method=method,
            path=path,
            operation_id=operation.get("operationId") or None,
            summary=operation.get("summary", "") or "",
            description=operation.get("description", "") or "",
            parameters=list(merged.values()),
            request_body=request_body,
            responses=responses,
            security=list(security) if isinstance(security, list) else None,
            base_url=base_url,
        )

    def _build_parameter(self, raw_param: Any, where: str) -> ApiParameter:
        raw_param = self.resolve_component(raw_param, f"parameter of {where}")
        name = raw_param.get("name")
        location = raw_param.get("in")
        if not name or location not in ("path", "query", "header", "cookie"):
            raise SpecError(f"Malformed parameter of {where}: {dict(raw_param)!r}")

        schema = raw_param.get("schema")
        if schema is None and raw_param.get("content"):
            # Parameters may describe their value through a single media type
            media = next(iter(raw_param["content"].values())) or {}
            schema = media.get("schema")
        schema_node = self.resolver.resolve(schema) if schema is not None else None

        return ApiParameter(
            name=name,
            location=location,
            description=raw_param.get("description", "") or "",
            required=bool(raw_param.get("required", location == "path")),
            schema_node=schema_node,
        )
