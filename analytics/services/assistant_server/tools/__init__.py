"""MCP tools for the assistant server."""
