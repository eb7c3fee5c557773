"""Detection of file-upload operations and request body encodings."""

import logging
from typing import Any, Dict, List, NamedTuple, Optional

from .models import ApiRequestBody
from .schema import SchemaGraph, SchemaLike

logger = logging.getLogger(__name__)

MULTIPART_MEDIA_TYPE = "multipart/form-data"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"
JSON_MEDIA_TYPE = "application/json"


class BodyPlan(NamedTuple):
    """How the request body of an operation is encoded."""

    encoding: str  # none, json, multipart, form
    media_type: Optional[str]
    schema: Optional[SchemaLike]
    file_fields: List[str]

    @property
    def requires_multipart(self) -> bool:
        return self.encoding == "multipart"


NO_BODY = BodyPlan("none", None, None, [])


def is_json_media_type(media_type: str) -> bool:
    media_type = media_type.split(";", 1)[0].strip().lower()
    return media_type == JSON_MEDIA_TYPE or media_type.endswith("+json")


def object_properties(schema: Optional[SchemaLike], graph: SchemaGraph) -> Dict[str, Any]:
    """Collect the properties of an object schema, including those merged in with allOf.

    Args:
        schema: The schema to inspect
        graph: Graph used to follow references

    Returns:
        Property name to schema, in declaration order
    """
    if schema is None:
        return {}
    node = graph.deref(schema)
    properties: Dict[str, Any] = {}
    if node.composition == "allOf":
        for variant in node.variants:
            properties.update(object_properties(variant, graph))
    properties.update(node.properties)
    return properties


def is_binary(schema: Optional[SchemaLike], graph: SchemaGraph) -> bool:
    """Whether a property holds a file (``format: binary`` or an array of them)."""
    if schema is None:
        return False
    node = graph.deref(schema)
    if node.format == "binary":
        return True
    if node.items is not None:
        return graph.deref(node.items).format == "binary"
    return False


def find_file_fields(schema: Optional[SchemaLike], graph: SchemaGraph) -> List[str]:
    """List the file fields of a multipart schema in declaration order."""
    return [
        name
        for name, prop in object_properties(schema, graph).items()
        if is_binary(prop, graph)
    ]


def plan_body(request_body: Optional[ApiRequestBody], graph: SchemaGraph, where: str) -> BodyPlan:
    """Decide how the request body of an operation is encoded.

    Multipart wins over JSON, which wins over URL-encoded forms. A multipart
    body without any binary property falls back to JSON when JSON is also
    declared, else to a form sent as multipart text fields. Operations that
    declare only other media types compile without a body.

    Args:
        request_body: The operation's request body, if any
        graph: Graph used to follow references
        where: Human readable operation label used in error messages

    Returns:
        The BodyPlan for the operation
    """
    if request_body is None or not request_body.content:
        return NO_BODY

    content = {
        media_type.split(";", 1)[0].strip().lower(): schema
        for media_type, schema in request_body.content.items()
    }
    json_type = next((m for m in content if is_json_media_type(m)), None)

    if MULTIPART_MEDIA_TYPE in content:
        schema = content[MULTIPART_MEDIA_TYPE]
        file_fields = find_file_fields(schema, graph)
        if file_fields:
            logger.debug(f"{where}: multipart upload with file fields {file_fields}")
            return BodyPlan("multipart", MULTIPART_MEDIA_TYPE, schema, file_fields)
        if json_type is None:
            return BodyPlan("form", MULTIPART_MEDIA_TYPE, schema, [])

    if json_type is not None:
        return BodyPlan("json", json_type, content[json_type], [])

    if FORM_MEDIA_TYPE in content:
        return BodyPlan("form", FORM_MEDIA_TYPE, content[FORM_MEDIA_TYPE], [])

    logger.warning(
        f"{where}: unsupported request body media types {sorted(content)}, compiling without a body"
    )
    return NO_BODY
