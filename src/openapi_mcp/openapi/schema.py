"""
Name: Schema resolver.
Description: Resolves the $ref nodes of an OpenAPI document into a cycle-safe graph of
immutable SchemaNode objects addressed by component name, and renders nodes of that
graph back into JSON Schema (with $defs) for tool input schemas and response checks.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple, Union
from urllib.parse import quote, unquote

from ..constants import FILE_FIELD_DESCRIPTION
from .errors import SpecError

logger = logging.getLogger(__name__)

SCHEMA_REF_PREFIX = "#/components/schemas/"
COMPOSITION_KEYWORDS = ("allOf", "oneOf", "anyOf")

# Keywords copied verbatim from the source schema
PASSTHROUGH_KEYWORDS = (
    "title",
    "default",
    "const",
    "multipleOf",
    "maximum",
    "minimum",
    "exclusiveMaximum",
    "exclusiveMinimum",
    "maxLength",
    "minLength",
    "pattern",
    "maxItems",
    "minItems",
    "uniqueItems",
    "maxProperties",
    "minProperties",
    "readOnly",
    "writeOnly",
    "deprecated",
    "examples",
)

_EMPTY = MappingProxyType({})


@dataclass(frozen=True, eq=False)
class SchemaNode:
    """A resolved schema. Identity semantics: two nodes are equal only if they are the same node."""

    name: Optional[str] = None
    type: Union[str, Tuple[str, ...], None] = None
    format: Optional[str] = None
    description: Optional[str] = None
    properties: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    required: Tuple[str, ...] = ()
    items: Any = None
    additional_properties: Any = None
    enum: Optional[Tuple[Any, ...]] = None
    nullable: bool = False
    composition: Optional[str] = None  # allOf, oneOf or anyOf
    variants: Tuple[Any, ...] = ()
    negation: Any = None
    keywords: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    @property
    def is_object(self) -> bool:
        if self.type == "object":
            return True
        if isinstance(self.type, tuple) and "object" in self.type:
            return True
        return self.type is None and bool(self.properties) and self.composition is None


class NodeRef:
    """A reference to a named node of a SchemaGraph.

    The target is looked up through the graph on every access, which is what
    lets a node refer to one of its own ancestors without being expanded.
    """

    __slots__ = ("name", "_graph")

    def __init__(self, name: str, graph: "SchemaGraph"):
        self.name = name
        self._graph = graph

    @property
    def node(self) -> SchemaNode:
        return self._graph.deref(self)

    def __repr__(self) -> str:
        return f"NodeRef({self.name!r})"


SchemaLike = Union[SchemaNode, NodeRef]


def ref_to_name(ref: Any) -> str:
    """Convert a local schema reference into a component name.

    Args:
        ref: The $ref value, e.g. ``#/components/schemas/Page``

    Returns:
        The component name

    Raises:
        SpecError: If the reference is not a local component schema reference
    """
    if not isinstance(ref, str) or not ref.startswith(SCHEMA_REF_PREFIX):
        raise SpecError(f"Unsupported schema reference: {ref!r}")
    name = ref[len(SCHEMA_REF_PREFIX):]
    if not name or "/" in name:
        raise SpecError(f"Unsupported schema reference: {ref!r}")
    return unquote(name).replace("~1", "/").replace("~0", "~")


def _def_pointer(name: str) -> str:
    escaped = name.replace("~", "~0").replace("/", "~1")
    return "#/$defs/" + quote(escaped, safe="~")


class SchemaGraph:
    """Arena of named schema nodes. Read-only once built."""

    def __init__(self):
        self._nodes: Mapping[str, SchemaLike] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __getitem__(self, name: str) -> SchemaLike:
        return self._nodes[name]

    def __len__(self) -> int:
        return len(self._nodes)

    def names(self) -> List[str]:
        return list(self._nodes)

    def deref(self, schema: SchemaLike) -> SchemaNode:
        """Follow references until a concrete node is reached.

        Args:
            schema: A node or a reference

        Returns:
            The concrete SchemaNode
        """
        seen = set()
        while isinstance(schema, NodeRef):
            if schema.name in seen:
                raise SpecError(f"Circular schema alias involving '{schema.name}'")
            seen.add(schema.name)
            schema = self._nodes[schema.name]
        return schema

    def render(self, schema: SchemaLike, file_paths: bool = True) -> Dict[str, Any]:
        """Render a node as a self-contained JSON Schema.

        Named nodes are emitted once under ``$defs`` and referenced with
        ``$ref``, so cyclic graphs render to a finite document.

        Args:
            schema: The node to render
            file_paths: Whether ``format: binary`` is presented as a local file path

        Returns:
            A JSON Schema dictionary
        """
        needed: List[str] = []
        rendered = self._render(schema, needed, file_paths)
        defs = self.render_defs(needed, file_paths)
        if defs:
            rendered["$defs"] = defs
        return rendered

    def render_fragment(
        self, schema: SchemaLike, needed: List[str], file_paths: bool = True
    ) -> Dict[str, Any]:
        """Render a node without $defs, collecting the names it references."""
        return self._render(schema, needed, file_paths)

    def render_defs(self, needed: List[str], file_paths: bool = True) -> Dict[str, Any]:
        """Render the definitions listed in ``needed`` and everything they reach."""
        defs: Dict[str, Any] = {}
        index = 0
        while index < len(needed):
            name = needed[index]
            defs[name] = self._render(self._nodes[name], needed, file_paths)
            index += 1
        return defs

    def _render(
        self, schema: SchemaLike, needed: List[str], file_paths: bool
    ) -> Dict[str, Any]:
        if isinstance(schema, NodeRef):
            if schema.name not in needed:
                needed.append(schema.name)
            return {"$ref": _def_pointer(schema.name)}

        node = schema
        result: Dict[str, Any] = {}

        if node.composition:
            result[node.composition] = [
                self._render(variant, needed, file_paths) for variant in node.variants
            ]

        if node.type is not None:
            types = list(node.type) if isinstance(node.type, tuple) else [node.type]
            if node.nullable and "null" not in types:
                types.append("null")
            result["type"] = types[0] if len(types) == 1 else types

        description = node.description
        if node.format == "binary" and file_paths:
            result["format"] = "uri-reference"
            description = (
                f"{description} ({FILE_FIELD_DESCRIPTION})"
                if description
                else FILE_FIELD_DESCRIPTION
            )
        elif node.format:
            result["format"] = node.format
        if description:
            result["description"] = description

        if node.properties:
            result["properties"] = {
                name: self._render(prop, needed, file_paths)
                for name, prop in node.properties.items()
            }
        if node.required:
            result["required"] = list(node.required)
        if node.items is not None:
            result["items"] = self._render(node.items, needed, file_paths)
        if isinstance(node.additional_properties, bool):
            result["additionalProperties"] = node.additional_properties
        elif node.additional_properties is not None:
            result["additionalProperties"] = self._render(
                node.additional_properties, needed, file_paths
            )
        if node.enum is not None:
            values = list(node.enum)
            if node.nullable and None not in values:
                values.append(None)
            result["enum"] = values
        if node.negation is not None:
            result["not"] = self._render(node.negation, needed, file_paths)

        for key, value in node.keywords.items():
            result[key] = value
        return result


class SchemaResolver:
    """Builds a SchemaGraph from ``components/schemas``.

    Resolution is a depth-first walk. A reference met while its target is
    still being resolved becomes a lazy NodeRef instead of being inlined.
    """

    def __init__(self, component_schemas: Optional[Mapping[str, Any]] = None):
        if component_schemas is not None and not isinstance(component_schemas, Mapping):
            raise SpecError("components.schemas must be a mapping")
        self._raw: Mapping[str, Any] = component_schemas or {}
        self._nodes: Dict[str, SchemaLike] = {}
        self._resolving: Set[str] = set()
        self.graph = SchemaGraph()
        self.graph._nodes = self._nodes

    def build(self) -> SchemaGraph:
        """Resolve every component schema and freeze the graph.

        Returns:
            The resolved SchemaGraph

        Raises:
            SpecError: On unresolved references or malformed schemas
        """
        for name in self._raw:
            self._resolve_named(name)
        for name in self._nodes:
            # Surfaces pure alias cycles (A -> B -> A) at build time
            self.graph.deref(self._nodes[name])
        self.graph._nodes = MappingProxyType({name: self._nodes[name] for name in self._raw})
        logger.debug(f"Resolved {len(self._nodes)} component schemas")
        return self.graph

    def resolve(self, raw: Any) -> SchemaLike:
        """Resolve an inline schema (parameter, body or response) against the graph."""
        return self._build(raw, None, "inline schema")

    def reference(self, ref: Any) -> NodeRef:
        name = ref_to_name(ref)
        if name not in self._raw:
            raise SpecError(f"Unresolved schema reference: {ref}")
        if name not in self._nodes and name not in self._resolving:
            self._resolve_named(name)
        return NodeRef(name, self.graph)

    def _resolve_named(self, name: str):
        if name in self._nodes or name in self._resolving:
            return
        self._resolving.add(name)
        try:
            self._nodes[name] = self._build(self._raw[name], name, f"schema '{name}'")
        finally:
            self._resolving.discard(name)

    def _build(self, raw: Any, name: Optional[str], where: str) -> SchemaLike:
        if raw is True:
            return SchemaNode(name=name)
        if raw is False:
            return SchemaNode(name=name, negation=SchemaNode())
        if not isinstance(raw, Mapping):
            raise SpecError(f"Malformed {where}: expected an object, got {type(raw).__name__}")

        if "$ref" in raw:
            return self.reference(raw["$ref"])

        composition = None
        variants: Tuple[SchemaLike, ...] = ()
        present = [keyword for keyword in COMPOSITION_KEYWORDS if keyword in raw]
        if len(present) == 1:
            composition = present[0]
            entries = raw[composition]
            if not isinstance(entries, list):
                raise SpecError(f"Malformed {where}: {composition} must be a list")
            variants = tuple(self._build(entry, None, where) for entry in entries)
        elif present:
            # One marker per node: several keywords become allOf over one node each
            composition = "allOf"
            variants = tuple(
                self._build({keyword: raw[keyword]}, None, where) for keyword in present
            )

        raw_type = raw.get("type")
        nullable = bool(raw.get("nullable", False))
        if isinstance(raw_type, list):
            if "null" in raw_type:
                nullable = True
            remaining = tuple(t for t in raw_type if t != "null")
            schema_type = remaining[0] if len(remaining) == 1 else (remaining or None)
        else:
            schema_type = raw_type

        properties = raw.get("properties") or {}
        if not isinstance(properties, Mapping):
            raise SpecError(f"Malformed {where}: properties must be a mapping")
        resolved_properties = {
            prop_name: self._build(prop_schema, None, f"{where} property '{prop_name}'")
            for prop_name, prop_schema in properties.items()
        }

        items = None
        if "items" in raw:
            items = self._build(raw["items"], None, f"{where} items")

        additional = raw.get("additionalProperties")
        if additional is not None and not isinstance(additional, bool):
            additional = self._build(additional, None, f"{where} additionalProperties")

        negation = None
        if "not" in raw:
            negation = self._build(raw["not"], None, f"{where} not")

        enum = raw.get("enum")
        required = raw.get("required") or []
        if not isinstance(required, list):
            # OpenAPI 3.0 allows a boolean here only on parameters
            required = []

        return SchemaNode(
            name=name,
            type=schema_type,
            format=raw.get("format"),
            description=raw.get("description"),
            properties=MappingProxyType(resolved_properties),
            required=tuple(required),
            items=items,
            additional_properties=additional,
            enum=tuple(enum) if isinstance(enum, list) else None,
            nullable=nullable,
            composition=composition,
            variants=variants,
            negation=negation,
            keywords=MappingProxyType(_normalize_keywords(raw)),
        )


def _normalize_keywords(raw: Mapping[str, Any]) -> Dict[str, Any]:
    keywords = {key: raw[key] for key in PASSTHROUGH_KEYWORDS if key in raw}
    # OpenAPI 3.0 boolean exclusive bounds become JSON Schema numeric bounds
    for exclusive, bound in (("exclusiveMinimum", "minimum"), ("exclusiveMaximum", "maximum")):
        value = keywords.get(exclusive)
        if isinstance(value, bool):
            del keywords[exclusive]
            if value and bound in keywords:
                keywords[exclusive] = keywords.pop(bound)
    if "example" in raw and "examples" not in keywords:
        keywords["examples"] = [raw["example"]]
    return keywords


def build_schema_graph(document: Mapping[str, Any]) -> Tuple[SchemaGraph, SchemaResolver]:
    """Build the schema graph of a loaded OpenAPI document.

    Args:
        document: The OpenAPI document as a dictionary

    Returns:
        The SchemaGraph and the resolver used for inline schemas
    """
    components = document.get("components") or {}
    resolver = SchemaResolver(components.get("schemas"))
    resolver.build()
    return resolver.graph, resolver
