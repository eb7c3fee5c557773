"""MCP server module for openapi-mcp."""

from .server import FastMCPOpenAPITool, MCPServer

__all__ = ["FastMCPOpenAPITool", "MCPServer"]
