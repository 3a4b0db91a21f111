"""MCP server exposing the Fizzy project-tracking API as tools."""

__version__ = "0.1.0"
