import argparse
import io
import json
import os
import tempfile
import unittest
from unittest.mock import patch

import httpx

from openapi_mcp.main import call_command, list_tools_command, load_config, main
from openapi_mcp.openapi.models import AuthConfig
from openapi_mcp.openapi.tools import OpenAPIToolkit
from tests.fixtures.specs import NOTION_SPEC


def make_args(**kwargs):
    defaults = {"config": None, "spec": None, "base_url": None, "debug": False}
    defaults.update(kwargs)
    return argparse.Namespace(**defaults)


class TestCommands(unittest.TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.spec_path = os.path.join(tmp.name, "notion.json")
        with open(self.spec_path, "w", encoding="utf-8") as f:
            json.dump(NOTION_SPEC, f)

    def test_load_config_from_spec_path(self):
        config = load_config(make_args(spec=self.spec_path, base_url="http://localhost:9000"))

        self.assertEqual(config.openapi_spec_path, self.spec_path)
        self.assertIsNone(config.openapi_spec_url)
        self.assertEqual(config.base_url, "http://localhost:9000")

    def test_load_config_from_spec_url(self):
        config = load_config(make_args(spec="https://example.com/openapi.json"))
        self.assertEqual(config.openapi_spec_url, "https://example.com/openapi.json")

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_list_tools_command(self, mock_stdout):
        list_tools_command(make_args(spec=self.spec_path))

        listing = json.loads(mock_stdout.getvalue())
        self.assertEqual(
            [tool["name"] for tool in listing],
            ["retrievePage", "search", "uploadFile", "get_v1_users_me"],
        )

    @patch("sys.stdout", new_callable=io.StringIO)
    @patch("openapi_mcp.main.create_toolkit")
    def test_call_command(self, mock_create_toolkit, mock_stdout):
        mock_create_toolkit.return_value = OpenAPIToolkit(
            NOTION_SPEC,
            auth_config=AuthConfig(type="bearer", value="abc123"),
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"object": "page", "id": "123456"})
            ),
        )

        exit_code = call_command(
            make_args(spec=self.spec_path, tool="retrievePage", arguments='{"page_id": "123456"}')
        )

        self.assertEqual(exit_code, 0)
        output = json.loads(mock_stdout.getvalue())
        self.assertEqual(output["content"], {"object": "page", "id": "123456"})
        self.assertFalse(output["is_error"])

    @patch("sys.stdout", new_callable=io.StringIO)
    @patch("openapi_mcp.main.create_toolkit")
    def test_call_command_failure(self, mock_create_toolkit, mock_stdout):
        mock_create_toolkit.return_value = OpenAPIToolkit(
            NOTION_SPEC,
            auth_config=AuthConfig(type="bearer", value="abc123"),
            transport=httpx.MockTransport(lambda request: httpx.Response(404, text="not found")),
        )

        exit_code = call_command(
            make_args(spec=self.spec_path, tool="retrievePage", arguments='{"page_id": "x"}')
        )

        self.assertEqual(exit_code, 1)
        self.assertEqual(json.loads(mock_stdout.getvalue())["error"]["kind"], "UpstreamApiError")

    def test_call_command_invalid_json(self):
        with self.assertLogs("openapi_mcp.main", level="ERROR"):
            exit_code = call_command(
                make_args(spec=self.spec_path, tool="retrievePage", arguments="{page_id")
            )
        self.assertEqual(exit_code, 2)


@patch("openapi_mcp.main.setup_environment")
class TestMain(unittest.TestCase):

    @patch("sys.stdout", new_callable=io.StringIO)
    def test_no_command_prints_help(self, mock_stdout, mock_setup):
        with patch("sys.argv", ["openapi-mcp"]):
            main()
        self.assertIn("usage", mock_stdout.getvalue())
        mock_setup.assert_not_called()

    @patch("openapi_mcp.main.create_server_from_config")
    def test_serve_stdio(self, mock_create_server, mock_setup):
        with patch("sys.argv", ["openapi-mcp", "serve", "--spec", "notion.yaml", "--debug"]):
            main()

        mock_setup.assert_called_once_with(debug=True)
        mock_create_server.return_value.run.assert_called_once_with()

    @patch("openapi_mcp.main.create_server_from_config")
    def test_serve_http(self, mock_create_server, mock_setup):
        argv = ["openapi-mcp", "serve", "--spec", "notion.yaml", "--transport", "http", "--port", "9001"]
        with patch("sys.argv", argv):
            main()

        mock_create_server.return_value.run.assert_called_once_with(
            transport="http", host="127.0.0.1", port=9001
        )

    def test_spec_error_exits(self, mock_setup):
        argv = ["openapi-mcp", "list-tools", "--spec", "/nonexistent/notion.yaml"]
        with patch("sys.argv", argv), self.assertLogs("openapi_mcp.main", level="ERROR") as logs:
            with self.assertRaises(SystemExit) as context:
                main()

        self.assertEqual(context.exception.code, 1)
        self.assertIn("SpecError", logs.output[0])


if __name__ == "__main__":
    unittest.main()
