"""Unit tests for the OpenAPI spec parser."""

import json
import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import requests

from openapi_mcp.openapi.errors import SpecError
from openapi_mcp.openapi.spec import (
    OpenAPISpecParser,
    load_spec,
    load_spec_from_file,
    load_spec_from_url,
    parse_spec_text,
    validate_document,
)
from tests.fixtures.specs import NOTION_SPEC, SELF_REFERENCING_SPEC, make_spec


class TestLoadSpec(unittest.TestCase):
    """Tests for loading documents from the supported sources."""

    def test_parse_json_text(self):
        self.assertEqual(parse_spec_text('{"openapi": "3.0.0"}'), {"openapi": "3.0.0"})

    def test_parse_yaml_bytes(self):
        self.assertEqual(
            parse_spec_text(b"openapi: 3.0.0\ninfo:\n  title: T\n"),
            {"openapi": "3.0.0", "info": {"title": "T"}},
        )

    def test_parse_invalid_text(self):
        with self.assertRaises(SpecError):
            parse_spec_text("openapi: [unclosed")

    def test_load_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "spec.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(NOTION_SPEC, f)
            self.assertEqual(load_spec_from_file(path), NOTION_SPEC)
            self.assertEqual(load_spec(path), NOTION_SPEC)

    def test_non_utf8_document(self):
        with self.assertRaises(SpecError) as context:
            load_spec(b"\xff\xfe openapi: 3.0.0")
        self.assertIn("UTF-8", str(context.exception))

    def test_non_utf8_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "spec.yaml")
            with open(path, "wb") as f:
                f.write(b"openapi: 3.0.0\ninfo:\n  title: \xe9t\xe9\n")
            with self.assertRaises(SpecError):
                load_spec_from_file(path)

    def test_unsupported_extension(self):
        with self.assertRaises(SpecError):
            load_spec_from_file("spec.txt")

    def test_missing_file(self):
        with self.assertRaises(SpecError):
            load_spec_from_file("/nonexistent/spec.yaml")

    @patch("openapi_mcp.openapi.spec.requests.get")
    def test_load_from_url(self, mock_get):
        mock_response = MagicMock()
        mock_response.content = b"openapi: 3.0.0"
        mock_get.return_value = mock_response

        self.assertEqual(load_spec_from_url("https://example.com/openapi.yaml"), {"openapi": "3.0.0"})
        mock_get.assert_called_once_with("https://example.com/openapi.yaml", timeout=30)

    @patch("openapi_mcp.openapi.spec.requests.get")
    def test_load_from_url_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(SpecError):
            load_spec("https://example.com/openapi.json")


class TestValidateDocument(unittest.TestCase):
    """Tests for structural validation."""

    def test_valid_document(self):
        validate_document(NOTION_SPEC)

    def test_not_a_mapping(self):
        with self.assertRaises(SpecError):
            validate_document(["openapi"])

    def test_swagger_rejected(self):
        with self.assertRaises(SpecError) as context:
            validate_document({"swagger": "2.0", "info": {}, "paths": {}})
        self.assertIn("Swagger 2.0", str(context.exception))

    def test_missing_paths(self):
        with self.assertRaises(SpecError):
            validate_document({"openapi": "3.0.0", "info": {"title": "T", "version": "1"}})

    def test_model_validation_failure(self):
        spec = make_spec({})
        spec["info"] = {"description": "no title or version"}
        with self.assertRaises(SpecError) as context:
            validate_document(spec)
        self.assertIn("info", str(context.exception))


class TestOpenAPISpecParser(unittest.TestCase):
    """Tests for the OpenAPISpecParser class."""

    def test_get_base_url(self):
        parser = OpenAPISpecParser(NOTION_SPEC)
        self.assertEqual(parser.get_base_url(), "https://api.notion.com")

    def test_server_variables(self):
        parser = OpenAPISpecParser(SELF_REFERENCING_SPEC)
        self.assertEqual(parser.get_base_url(), "https://blocks.example.com/v2")

    def test_base_url_override(self):
        parser = OpenAPISpecParser(NOTION_SPEC, base_url="http://localhost:9000/")
        self.assertEqual(parser.get_base_url(), "http://localhost:9000")
        self.assertTrue(
            all(op.base_url == "http://localhost:9000" for op in parser.get_operations())
        )

    def test_relative_server_joined_to_source(self):
        spec = make_spec({}, servers=[{"url": "/api"}])
        parser = OpenAPISpecParser(spec, source_url="https://example.com/docs/openapi.json")
        self.assertEqual(parser.get_base_url(), "https://example.com/api")

    def test_operations_in_document_order(self):
        paths = {
            "/items": {
                "post": {"responses": {"201": {"description": "Created"}}},
                "get": {"responses": {"200": {"description": "OK"}}},
            },
            "/health": {"get": {"responses": {"200": {"description": "OK"}}}},
        }
        operations = OpenAPISpecParser(make_spec(paths)).get_operations()
        self.assertEqual(
            [(op.method, op.path) for op in operations],
            [("get", "/items"), ("post", "/items"), ("get", "/health")],
        )

    def test_path_level_parameters_merged(self):
        paths = {
            "/items/{item_id}": {
                "parameters": [
                    {"name": "item_id", "in": "path", "required": True, "schema": {"type": "string"}},
                    {"name": "verbose", "in": "query", "description": "path level"},
                ],
                "get": {
                    "parameters": [
                        {"name": "verbose", "in": "query", "description": "operation level"}
                    ],
                    "responses": {"200": {"description": "OK"}},
                },
            }
        }
        operation = OpenAPISpecParser(make_spec(paths)).get_operations()[0]
        by_name = {param.name: param for param in operation.parameters}

        self.assertEqual(sorted(by_name), ["item_id", "verbose"])
        self.assertEqual(by_name["verbose"].description, "operation level")
        self.assertTrue(by_name["item_id"].required)

    def test_component_references_resolved(self):
        paths = {
            "/items": {
                "post": {
                    "parameters": [{"$ref": "#/components/parameters/Limit"}],
                    "requestBody": {"$ref": "#/components/requestBodies/Item"},
                    "responses": {"404": {"$ref": "#/components/responses/NotFound"}},
                }
            }
        }
        spec = make_spec(paths)
        spec["components"] = {
            "parameters": {"Limit": {"name": "limit", "in": "query", "schema": {"type": "integer"}}},
            "requestBodies": {
                "Item": {
                    "required": True,
                    "content": {"application/json": {"schema": {"type": "object"}}},
                }
            },
            "responses": {"NotFound": {"description": "Not found"}},
        }
        operation = OpenAPISpecParser(spec).get_operations()[0]

        self.assertEqual(operation.parameters[0].name, "limit")
        self.assertTrue(operation.request_body.required)
        self.assertEqual(operation.responses[0].description, "Not found")

    def test_missing_component_reference(self):
        paths = {
            "/items": {
                "get": {
                    "parameters": [{"$ref": "#/components/parameters/Missing"}],
                    "responses": {"200": {"description": "OK"}},
                }
            }
        }
        parser = OpenAPISpecParser(make_spec(paths))
        with self.assertRaises(SpecError) as context:
            parser.get_operations()
        self.assertIn("#/components/parameters/Missing", str(context.exception))

    def test_operation_servers_and_security(self):
        paths = {
            "/upload": {
                "servers": [{"url": "https://uploads.example.com"}],
                "post": {
                    "security": [],
                    "responses": {"200": {"description": "OK"}},
                },
            }
        }
        operation = OpenAPISpecParser(make_spec(paths)).get_operations()[0]
        self.assertEqual(operation.base_url, "https://uploads.example.com")
        self.assertEqual(operation.security, [])

    def test_security_schemes(self):
        parser = OpenAPISpecParser(NOTION_SPEC)
        self.assertEqual(parser.get_security_schemes(), {"bearerAuth": {"type": "http", "scheme": "bearer"}})
        self.assertEqual(parser.get_security_requirements(), [{"bearerAuth": []}])


if __name__ == "__main__":
    unittest.main()
