"""
Name: MCP Server.
Description: Provides the MCP Server implementation for serving API tools. Registers every tool of an
OpenAPIToolkit catalog with a FastMCP instance and delegates tool execution to the toolkit.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import TextContent, ToolAnnotations
from pydantic import PrivateAttr

from ..constants import DEFAULT_SERVER_NAME
from ..openapi.models import ToolDefinition
from ..openapi.tools import OpenAPIToolkit

logger = logging.getLogger(__name__)

READ_ONLY_METHODS = ("get", "head", "options")


class FastMCPOpenAPITool(Tool):
    """Bridges a compiled ToolDefinition -> FastMCP Tool object."""

    _toolkit: Any = PrivateAttr(default=None)

    @classmethod
    def from_definition(
        cls, toolkit: OpenAPIToolkit, definition: ToolDefinition
    ) -> "FastMCPOpenAPITool":
        """Create a FastMCP tool for a catalog entry.

        Args:
            toolkit: Toolkit that executes the calls
            definition: Compiled tool definition

        Returns:
            The FastMCP tool
        """
        method = definition.operation.method
        tool = cls(
            name=definition.name,
            description=definition.description,
            parameters=definition.input_schema,
            annotations=ToolAnnotations(
                readOnlyHint=method in READ_ONLY_METHODS,
                destructiveHint=method == "delete",
            ),
        )
        tool._toolkit = toolkit
        return tool

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        """Execute the tool through the toolkit.

        Args:
            arguments: Arguments for the tool

        Returns:
            Tool execution result as MCP-compatible content

        Raises:
            ToolError: Carrying the JSON failure payload when the call fails
        """
        result = await self._toolkit.call(self.name, arguments)
        if result.is_error:
            raise ToolError(result.to_text())

        content = [TextContent(type="text", text=result.to_text())]
        if result.warnings:
            content.append(
                TextContent(type="text", text="Warnings:\n" + "\n".join(result.warnings))
            )
        return ToolResult(content=content)


class MCPServer:
    """MCP Server implementation."""

    def __init__(
        self,
        toolkit: OpenAPIToolkit,
        name: str = DEFAULT_SERVER_NAME,
        instructions: Optional[str] = None,
    ):
        """Initialize an MCP server.

        Args:
            toolkit: Toolkit holding the tool catalog
            name: Name of the server
            instructions: Description of the API for MCP clients
        """
        self.toolkit = toolkit
        self.name = name
        self.instructions = instructions or toolkit.spec_parser.description or None

        # Create FastMCP instance
        self.mcp = self._create_mcp_instance()

    def _create_mcp_instance(self) -> FastMCP:
        """Create a FastMCP instance for this server.

        Returns:
            FastMCP instance
        """
        toolkit = self.toolkit

        @asynccontextmanager
        async def lifespan(server):
            try:
                yield {}
            finally:
                await toolkit.aclose()

        mcp = FastMCP(self.name, instructions=self.instructions, lifespan=lifespan)

        # Register tools
        for definition in toolkit.get_tools():
            mcp.add_tool(FastMCPOpenAPITool.from_definition(toolkit, definition))
            logger.debug(f"Registered tool: {definition.name}")

        logger.info(f"Registered {len(toolkit.catalog)} tools on MCP server '{self.name}'")
        return mcp

    def run(self, transport: str = "stdio", **transport_kwargs: Any):
        """Run the server.

        Args:
            transport: FastMCP transport, e.g. ``stdio`` or ``http``
            **transport_kwargs: Transport options such as host and port
        """
        logger.info(f"Starting MCP server '{self.name}' over {transport}")
        self.mcp.run(transport=transport, **transport_kwargs)
