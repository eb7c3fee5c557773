"""
Name: Command-line interface.
Description: Implements the command-line interface for openapi-mcp with commands for listing the tools
compiled from an OpenAPI specification, calling a single tool, and serving the tools over MCP.
"""

import argparse
import json
import logging
import os
import sys

import anyio

from .constants import DEFAULT_SERVER_NAME
from .manager import build_config, create_server_from_config, create_toolkit, process_config
from .openapi.errors import OpenAPIMCPError
from .utils import ApiConfig, setup_environment

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def load_config(args) -> ApiConfig:
    """Build the API configuration from --config or --spec."""
    if args.config:
        api_config = process_config(args.config)
    else:
        source_key = (
            "openapi_spec_url"
            if args.spec.startswith(("http://", "https://"))
            else "openapi_spec_path"
        )
        api_config = build_config({"name": DEFAULT_SERVER_NAME, source_key: args.spec})
    if args.base_url:
        api_config = api_config.model_copy(update={"base_url": args.base_url})
    return api_config


def list_tools_command(args):
    """Print the tools compiled from the OpenAPI spec."""
    toolkit = create_toolkit(load_config(args))
    print(json.dumps(toolkit.list_tools(), indent=2))


def call_command(args) -> int:
    """Call one tool and print its result."""
    try:
        arguments = json.loads(args.arguments)
    except json.JSONDecodeError as e:
        logger.error(f"--arguments is not valid JSON: {e}")
        return 2

    toolkit = create_toolkit(load_config(args))

    async def _call():
        async with toolkit:
            return await toolkit.call(args.tool, arguments)

    result = anyio.run(_call)
    print(json.dumps(result.model_dump(exclude_none=True), indent=2))
    return 1 if result.is_error else 0


def serve_command(args):
    """Start the MCP server for the API configuration."""
    server = create_server_from_config(load_config(args))
    if args.transport == "stdio":
        server.run()
    else:
        server.run(transport=args.transport, host=args.host, port=args.port)


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="openapi-mcp - Serve any OpenAPI 3.x API as MCP tools"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    def add_source_args(parser):
        """Add spec source arguments to parser."""
        source = parser.add_mutually_exclusive_group(required=True)
        source.add_argument(
            "--config", type=str, help="Path to an API configuration JSON file"
        )
        source.add_argument(
            "--spec", type=str, help="Path or URL of an OpenAPI specification"
        )
        parser.add_argument(
            "--base-url",
            type=str,
            default=os.environ.get("OPENAPI_MCP_BASE_URL"),
            help="Base URL overriding the servers of the specification",
        )
        parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    # List tools command
    list_parser = subparsers.add_parser(
        "list-tools", help="List the tools compiled from the specification"
    )
    add_source_args(list_parser)

    # Call command
    call_parser = subparsers.add_parser("call", help="Call a single tool")
    call_parser.add_argument("tool", type=str, help="Name of the tool to call")
    call_parser.add_argument(
        "--arguments", type=str, default="{}", help="Tool arguments as a JSON object"
    )
    add_source_args(call_parser)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the MCP server")
    serve_parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "http", "sse"],
        default="stdio",
        help="MCP transport to serve on",
    )
    serve_parser.add_argument(
        "--host", type=str, default=DEFAULT_HOST, help="Host to bind the server to"
    )
    serve_parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Port to bind the server to"
    )
    add_source_args(serve_parser)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    # Setup environment (includes logging configuration)
    setup_environment(debug=args.debug)

    try:
        if args.command == "list-tools":
            list_tools_command(args)
        elif args.command == "call":
            sys.exit(call_command(args))
        elif args.command == "serve":
            serve_command(args)
    except OpenAPIMCPError as e:
        logger.error(f"{e.kind}: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
