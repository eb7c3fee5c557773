"""
Name: Tool compiler.
Description: Compiles the operations of a parsed OpenAPI document into ToolDefinitions (name,
description, merged JSON input schema, parameter bindings, body encoding) and assembles them
into an immutable, ordered ToolCatalog.
"""

import hashlib
import logging
import re
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from ..constants import (
    BODY_PROPERTY_NAME,
    DEFAULT_LOCATION_PRECEDENCE,
    MANAGED_HEADERS,
    MAX_TOOL_NAME_LENGTH,
    TOOL_NAME_DIGEST_LENGTH,
)
from .errors import ToolCompilationError, ToolNotFoundError
from .models import ApiOperation, ParameterBinding, ToolDefinition
from .schema import SchemaGraph
from .spec import OpenAPISpecParser
from .upload import BodyPlan, is_json_media_type, object_properties, plan_body

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_PATH_TOKEN = re.compile(r"\{([^{}]+)\}")


def synthesize_tool_name(method: str, path: str) -> str:
    """Build a tool name for an operation without an operationId.

    Args:
        method: HTTP method
        path: Path template, e.g. ``/pages/{page_id}``

    Returns:
        The name, e.g. ``get_pages_page_id``
    """
    normalized = _NON_ALNUM.sub("_", path).strip("_")
    return f"{method.lower()}_{normalized}" if normalized else method.lower()


def shorten_tool_name(name: str) -> str:
    """Shorten names over the MCP length limit, keeping them unique and stable."""
    if len(name) <= MAX_TOOL_NAME_LENGTH:
        return name
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:TOOL_NAME_DIGEST_LENGTH]
    return f"{name[:MAX_TOOL_NAME_LENGTH - TOOL_NAME_DIGEST_LENGTH - 1]}-{digest}"


def build_description(operation: ApiOperation) -> str:
    """Describe an operation, followed by its documented error responses."""
    description = (
        operation.summary
        or operation.description
        or f"{operation.method.upper()} {operation.path}"
    )
    error_lines = [
        f"{response.status}: {response.description}" if response.description else response.status
        for response in operation.responses
        if response.status[:1] in ("4", "5")
    ]
    if error_lines:
        description += "\nError Responses:\n" + "\n".join(error_lines)
    return description


class ToolCatalog(Mapping[str, ToolDefinition]):
    """Ordered, read-only collection of compiled tools keyed by name."""

    def __init__(self, tools: Iterable[ToolDefinition]):
        index: Dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in index:
                raise ToolCompilationError(f"Duplicate tool name '{tool.name}'")
            index[tool.name] = tool
        self._tools = MappingProxyType(index)

    def __getitem__(self, name: str) -> ToolDefinition:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def get_tool(self, name: str) -> ToolDefinition:
        """Get a tool by name.

        Args:
            name: Name of the tool

        Returns:
            The tool definition

        Raises:
            ToolNotFoundError: If no tool has that name
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(f"Unknown tool '{name}'") from None

    def list_tools(self) -> List[Dict[str, Any]]:
        """Get the listing of every tool in compilation order.

        Returns:
            A list of ``{name, description, inputSchema}`` dictionaries
        """
        return [tool.to_schema() for tool in self._tools.values()]


class _Candidate:
    __slots__ = ("name", "location", "schema", "required")

    def __init__(self, name: str, location: str, schema: Dict[str, Any], required: bool):
        self.name = name
        self.location = location
        self.schema = schema
        self.required = required


class ToolCompiler:
    """Compiles every operation of an OpenAPI document into a ToolDefinition."""

    def __init__(
        self,
        parser: OpenAPISpecParser,
        location_precedence: Sequence[str] = DEFAULT_LOCATION_PRECEDENCE,
        static_headers: Iterable[str] = (),
    ):
        """Initialize the compiler.

        Args:
            parser: Parser holding the validated document and its schema graph
            location_precedence: Parameter locations, highest priority first
            static_headers: Names of headers attached to every request by configuration
        """
        if sorted(location_precedence) != sorted(DEFAULT_LOCATION_PRECEDENCE):
            raise ToolCompilationError(
                f"location_precedence must order exactly {list(DEFAULT_LOCATION_PRECEDENCE)}"
            )
        self.parser = parser
        self.graph: SchemaGraph = parser.graph
        self.location_precedence = tuple(location_precedence)
        self.excluded_headers = set(MANAGED_HEADERS)
        self.excluded_headers.update(h.lower() for h in static_headers)
        for scheme in parser.get_security_schemes().values():
            if scheme.get("type") == "apiKey" and scheme.get("in") == "header":
                self.excluded_headers.add(str(scheme.get("name", "")).lower())

    def compile(self) -> ToolCatalog:
        """Compile the whole document.

        Returns:
            The ToolCatalog, in document order

        Raises:
            ToolCompilationError: On duplicate tool names
        """
        tools = []
        seen: Dict[str, str] = {}
        for operation in self.parser.get_operations():
            tool = self.compile_operation(operation)
            label = f"{operation.method.upper()} {operation.path}"
            if tool.name in seen:
                raise ToolCompilationError(
                    f"Tool name '{tool.name}' of {label} collides with {seen[tool.name]}"
                )
            seen[tool.name] = label
            tools.append(tool)
        logger.info(f"Compiled {len(tools)} tools from '{self.parser.title}'")
        return ToolCatalog(tools)

    def compile_operation(self, operation: ApiOperation) -> ToolDefinition:
        """Compile a single operation.

        Args:
            operation: The operation to compile

        Returns:
            The ToolDefinition for the operation
        """
        where = f"{operation.method.upper()} {operation.path}"
        name = shorten_tool_name(
            operation.operation_id
            or synthesize_tool_name(operation.method, operation.path)
        )

        plan = plan_body(operation.request_body, self.graph, where)
        file_paths = plan.requires_multipart
        needed: List[str] = []

        candidates = self._parameter_candidates(operation, needed, file_paths, where)
        body_candidates, raw_body = self._body_candidates(operation, plan, needed, file_paths)
        candidates.extend(body_candidates)

        properties: Dict[str, Dict[str, Any]] = {}
        required: List[str] = []
        bindings: Dict[str, ParameterBinding] = {}
        dropped: List[ParameterBinding] = []
        for candidate in self._resolve_collisions(candidates, name, dropped):
            properties[candidate.name] = candidate.schema
            bindings[candidate.name] = ParameterBinding(
                name=candidate.name, location=candidate.location
            )
            if candidate.required:
                required.append(candidate.name)

        input_schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            input_schema["required"] = required
        defs = self.graph.render_defs(needed, file_paths)
        if defs:
            input_schema["$defs"] = defs

        return ToolDefinition(
            name=name,
            description=build_description(operation),
            input_schema=input_schema,
            requires_multipart=plan.requires_multipart,
            file_fields=[
                field for field in plan.file_fields
                if field in bindings and bindings[field].location == "body"
            ],
            body_encoding=plan.encoding,
            body_media_type=plan.media_type,
            raw_body=raw_body,
            bindings=bindings,
            dropped_bindings=dropped,
            response_schemas=self._response_schemas(operation),
            base_url=operation.base_url,
            requires_auth=operation.security != [],
            operation=operation,
        )

    def _parameter_candidates(
        self, operation: ApiOperation, needed: List[str], file_paths: bool, where: str
    ) -> List[_Candidate]:
        candidates = []
        declared_path = set()
        for param in operation.parameters:
            if param.location == "cookie":
                logger.warning(f"{where}: skipping cookie parameter '{param.name}'")
                continue
            if param.location == "header" and param.name.lower() in self.excluded_headers:
                logger.debug(f"{where}: header '{param.name}' is managed, not exposed")
                continue

            if param.schema_node is None:
                schema: Dict[str, Any] = {"type": "string"}
            else:
                schema = self.graph.render_fragment(param.schema_node, needed, file_paths)
            if param.description:
                schema["description"] = param.description

            if param.location == "path":
                declared_path.add(param.name)
            candidates.append(
                _Candidate(
                    param.name,
                    param.location,
                    schema,
                    param.location == "path" or (param.required and param.location != "header"),
                )
            )

        # Path tokens with no declared parameter still need a value
        for token in _PATH_TOKEN.findall(operation.path):
            if token not in declared_path:
                logger.debug(f"{where}: undeclared path parameter '{token}'")
                candidates.append(_Candidate(token, "path", {"type": "string"}, True))
        return candidates

    def _body_candidates(
        self, operation: ApiOperation, plan: BodyPlan, needed: List[str], file_paths: bool
    ) -> Tuple[List[_Candidate], bool]:
        if plan.encoding == "none":
            return [], False
        body_required = operation.request_body.required

        if plan.schema is None:
            return [_Candidate(BODY_PROPERTY_NAME, "body", {}, body_required)], True

        node = self.graph.deref(plan.schema)
        properties = object_properties(plan.schema, self.graph)
        if not (node.is_object or properties):
            schema = self.graph.render_fragment(plan.schema, needed, file_paths)
            return [_Candidate(BODY_PROPERTY_NAME, "body", schema, body_required)], True

        required_names = set(node.required)
        if node.composition == "allOf":
            for variant in node.variants:
                required_names.update(self.graph.deref(variant).required)
        return [
            _Candidate(
                prop_name,
                "body",
                self.graph.render_fragment(prop_schema, needed, file_paths),
                prop_name in required_names,
            )
            for prop_name, prop_schema in properties.items()
        ], False

    def _resolve_collisions(
        self, candidates: List[_Candidate], tool_name: str, dropped: List[ParameterBinding]
    ) -> List[_Candidate]:
        rank = {location: i for i, location in enumerate(self.location_precedence)}
        winners: Dict[str, _Candidate] = {}
        for candidate in candidates:
            current = winners.get(candidate.name)
            if current is None:
                winners[candidate.name] = candidate
                continue
            if rank[candidate.location] < rank[current.location]:
                winners[candidate.name] = candidate
                loser = current
            else:
                loser = candidate
            dropped.append(ParameterBinding(name=loser.name, location=loser.location))
            logger.warning(
                f"Tool '{tool_name}': argument '{loser.name}' is declared in "
                f"{loser.location} and {winners[candidate.name].location}; "
                f"binding to {winners[candidate.name].location}"
            )
        return list(winners.values())

    def _response_schemas(self, operation: ApiOperation) -> Dict[str, Dict[str, Any]]:
        schemas = {}
        for response in operation.responses:
            for media_type, schema in response.content.items():
                if is_json_media_type(media_type):
                    schemas[response.status] = self.graph.render(schema, file_paths=False)
                    break
        return schemas


def compile_catalog(
    parser: OpenAPISpecParser,
    location_precedence: Sequence[str] = DEFAULT_LOCATION_PRECEDENCE,
    static_headers: Iterable[str] = (),
) -> ToolCatalog:
    """Compile a parsed document into a ToolCatalog.

    Args:
        parser: Parser holding the validated document
        location_precedence: Parameter locations, highest priority first
        static_headers: Names of headers attached to every request by configuration

    Returns:
        The compiled ToolCatalog
    """
    return ToolCompiler(parser, location_precedence, static_headers).compile()
