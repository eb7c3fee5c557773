"""Unit tests for mapping HTTP responses onto tool results."""

import json
import unittest

import httpx

from openapi_mcp.openapi.compiler import compile_catalog
from openapi_mcp.openapi.models import HttpResponse
from openapi_mcp.openapi.response import (
    check_response_schema,
    map_response,
    network_error,
    parse_body,
    response_schema_for,
    truncate,
)
from openapi_mcp.openapi.spec import OpenAPISpecParser
from tests.fixtures.specs import NOTION_SPEC, make_spec

JSON_HEADERS = {"Content-Type": "application/json; charset=utf-8"}


def json_response(status_code, payload, reason_phrase="OK"):
    return HttpResponse(
        status_code=status_code,
        reason_phrase=reason_phrase,
        headers=JSON_HEADERS,
        body=json.dumps(payload).encode("utf-8"),
    )


class TestMapResponse(unittest.TestCase):
    """Tests for map_response."""

    def setUp(self):
        self.catalog = compile_catalog(OpenAPISpecParser(NOTION_SPEC))
        self.tool = self.catalog["retrievePage"]

    def test_success(self):
        result = map_response(self.tool, json_response(200, {"object": "page", "id": "123456"}))

        self.assertFalse(result.is_error)
        self.assertEqual(result.content, {"object": "page", "id": "123456"})
        self.assertEqual(result.warnings, [])

    def test_schema_mismatch_is_a_warning(self):
        with self.assertLogs("openapi_mcp.openapi.response", level="WARNING"):
            result = map_response(self.tool, json_response(200, {"object": "page"}))

        self.assertFalse(result.is_error)
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("'id' is a required property", result.warnings[0])

    def test_upstream_error(self):
        response = json_response(404, {"message": "Page not found"}, reason_phrase="Not Found")
        result = map_response(self.tool, response)

        self.assertTrue(result.is_error)
        self.assertEqual(result.error.kind, "UpstreamApiError")
        self.assertEqual(result.error.message, "HTTP 404 Not Found")
        self.assertEqual(result.error.status_code, 404)
        self.assertIn("Page not found", result.error.body)

    def test_error_body_truncated(self):
        response = HttpResponse(status_code=500, reason_phrase="Server Error", body=b"x" * 600)
        result = map_response(self.tool, response, max_error_body_chars=512)
        self.assertEqual(result.error.body, "x" * 512 + "...")

    def test_empty_body(self):
        result = map_response(self.catalog["uploadFile"], HttpResponse(status_code=204))
        self.assertEqual(result.content, {"status": "Success", "status_code": 204})

    def test_text_body(self):
        response = HttpResponse(
            status_code=200, headers={"content-type": "text/plain"}, body=b"pong"
        )
        result = map_response(self.catalog["get_v1_users_me"], response)
        self.assertEqual(result.content, "pong")
        self.assertEqual(result.to_text(), "pong")


class TestResponseHelpers(unittest.TestCase):
    """Tests for the response helpers."""

    def test_schema_lookup_order(self):
        paths = {
            "/things": {
                "get": {
                    "operationId": "listThings",
                    "responses": {
                        "200": {"description": "OK", "content": {"application/json": {"schema": {"type": "array"}}}},
                        "2XX": {"description": "Other", "content": {"application/json": {"schema": {"type": "object"}}}},
                        "default": {"description": "Any", "content": {"application/json": {"schema": {"type": "string"}}}},
                    },
                }
            }
        }
        tool = compile_catalog(OpenAPISpecParser(make_spec(paths)))["listThings"]

        self.assertEqual(response_schema_for(tool, 200)["type"], "array")
        self.assertEqual(response_schema_for(tool, 201)["type"], "object")
        self.assertEqual(response_schema_for(tool, 500)["type"], "string")

    def test_invalid_json_falls_back_to_text(self):
        response = HttpResponse(status_code=200, headers=JSON_HEADERS, body=b"{not json")
        self.assertEqual(parse_body(response), "{not json")

    def test_check_response_schema_limits_warnings(self):
        schema = {"type": "array", "items": {"type": "integer"}}
        warnings = check_response_schema(schema, ["a", "b", "c", "d", "e", "f", "g"])
        self.assertEqual(len(warnings), 5)
        self.assertTrue(warnings[0].startswith("Response does not match declared schema at 0"))

    def test_check_response_schema_unresolvable_reference(self):
        warnings = check_response_schema({"$ref": "#/components/schemas/Page"}, {"id": "1"})
        self.assertEqual(len(warnings), 1)
        self.assertTrue(warnings[0].startswith("Response schema could not be checked"))

    def test_truncate(self):
        self.assertEqual(truncate("short", 10), "short")
        self.assertEqual(truncate("abcdef", 3), "abc...")

    def test_network_error(self):
        error = network_error(httpx.ConnectError("Connection refused"))
        self.assertEqual(error.kind, "NetworkError")
        self.assertEqual(error.message, "ConnectError: Connection refused")


if __name__ == "__main__":
    unittest.main()
