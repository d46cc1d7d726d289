"""
MCP Server Instance

The FastMCP object every tool module registers with. Tool modules import
``mcp`` from here; ``main`` imports the tool modules so their decorators run
before the server starts.
"""

from fastmcp import FastMCP

from analytics.services.assistant_server.lifespan import VERSION, app_lifespan

mcp = FastMCP(name="SaaS Metrics Assistant", version=VERSION, lifespan=app_lifespan)
