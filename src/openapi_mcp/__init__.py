"""
Name: openapi-mcp package.
Description: Defines the package version and exposes the toolkit that turns an OpenAPI 3.x
specification into callable tools, served over MCP by the command-line interface.
"""

__version__ = "0.1.0"

from .main import main as cli_main
from .openapi.tools import OpenAPIToolkit

__all__ = ["OpenAPIToolkit", "cli_main"]
