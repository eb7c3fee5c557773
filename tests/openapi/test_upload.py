"""Unit tests for request body planning."""

import unittest

from openapi_mcp.openapi.models import ApiRequestBody
from openapi_mcp.openapi.schema import SchemaResolver
from openapi_mcp.openapi.upload import (
    FORM_MEDIA_TYPE,
    MULTIPART_MEDIA_TYPE,
    NO_BODY,
    find_file_fields,
    is_json_media_type,
    plan_body,
)

UPLOAD_SCHEMA = {
    "type": "object",
    "properties": {
        "file": {"type": "string", "format": "binary"},
        "attachments": {"type": "array", "items": {"type": "string", "format": "binary"}},
        "purpose": {"type": "string"},
    },
}
FIELDS_SCHEMA = {"type": "object", "properties": {"purpose": {"type": "string"}}}


class TestPlanBody(unittest.TestCase):
    """Tests for plan_body."""

    def setUp(self):
        self.resolver = SchemaResolver({})
        self.graph = self.resolver.build()

    def make_body(self, content):
        return ApiRequestBody(
            content={media_type: self.resolver.resolve(schema) for media_type, schema in content.items()}
        )

    def test_no_body(self):
        self.assertEqual(plan_body(None, self.graph, "GET /"), NO_BODY)
        self.assertEqual(plan_body(ApiRequestBody(), self.graph, "GET /"), NO_BODY)

    def test_multipart_with_files(self):
        plan = plan_body(
            self.make_body({MULTIPART_MEDIA_TYPE: UPLOAD_SCHEMA}), self.graph, "POST /files"
        )
        self.assertEqual(plan.encoding, "multipart")
        self.assertTrue(plan.requires_multipart)
        self.assertEqual(plan.file_fields, ["file", "attachments"])

    def test_multipart_wins_over_json(self):
        plan = plan_body(
            self.make_body(
                {"application/json": FIELDS_SCHEMA, MULTIPART_MEDIA_TYPE: UPLOAD_SCHEMA}
            ),
            self.graph,
            "POST /files",
        )
        self.assertEqual(plan.encoding, "multipart")

    def test_multipart_without_files_prefers_json(self):
        plan = plan_body(
            self.make_body(
                {MULTIPART_MEDIA_TYPE: FIELDS_SCHEMA, "application/json": FIELDS_SCHEMA}
            ),
            self.graph,
            "POST /notes",
        )
        self.assertEqual(plan.encoding, "json")
        self.assertFalse(plan.requires_multipart)

    def test_multipart_without_files_is_form(self):
        plan = plan_body(
            self.make_body({MULTIPART_MEDIA_TYPE: FIELDS_SCHEMA}), self.graph, "POST /notes"
        )
        self.assertEqual(plan.encoding, "form")
        self.assertEqual(plan.media_type, MULTIPART_MEDIA_TYPE)

    def test_vendor_json(self):
        plan = plan_body(
            self.make_body({"application/vnd.api+json; charset=utf-8": FIELDS_SCHEMA}),
            self.graph,
            "POST /notes",
        )
        self.assertEqual(plan.encoding, "json")
        self.assertEqual(plan.media_type, "application/vnd.api+json")

    def test_urlencoded_form(self):
        plan = plan_body(self.make_body({FORM_MEDIA_TYPE: FIELDS_SCHEMA}), self.graph, "POST /token")
        self.assertEqual(plan.encoding, "form")
        self.assertEqual(plan.media_type, FORM_MEDIA_TYPE)

    def test_unsupported_media_type(self):
        with self.assertLogs("openapi_mcp.openapi.upload", level="WARNING") as logs:
            plan = plan_body(
                self.make_body({"text/csv": {"type": "string"}}), self.graph, "POST /import"
            )
        self.assertIs(plan, NO_BODY)
        self.assertIn("POST /import", logs.output[0])


class TestFileFields(unittest.TestCase):
    """Tests for file field detection."""

    def test_file_fields_through_references(self):
        resolver = SchemaResolver(
            {
                "Binary": {"type": "string", "format": "binary"},
                "Upload": {
                    "allOf": [
                        {"type": "object", "properties": {"name": {"type": "string"}}},
                        {"type": "object", "properties": {"data": {"$ref": "#/components/schemas/Binary"}}},
                    ]
                },
            }
        )
        graph = resolver.build()
        self.assertEqual(find_file_fields(graph["Upload"], graph), ["data"])

    def test_is_json_media_type(self):
        self.assertTrue(is_json_media_type("application/json"))
        self.assertTrue(is_json_media_type("Application/JSON; charset=utf-8"))
        self.assertTrue(is_json_media_type("application/problem+json"))
        self.assertFalse(is_json_media_type("text/plain"))


if __name__ == "__main__":
    unittest.main()
