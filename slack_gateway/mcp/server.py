"""
MCP Server implementation using official MCP SDK.

One Server is built per connection, bound to the Slack identity that
authenticated it.
"""

from typing import Any, List

from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import Resource, TextContent, Tool

from slack_gateway.mcp import resources
from slack_gateway.mcp.tools import ToolDispatcher


class ToolCallError(Exception):
    """Raised inside call_tool so the SDK marks the result with isError."""


def create_mcp_server(dispatcher: ToolDispatcher) -> Server:
    server = Server("slack-mcp")

    @server.list_tools()
    async def list_tools() -> List[Tool]:
        """Return list of available Slack tools."""
        return dispatcher.list_tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> List[TextContent]:
        """Handle tool calls from MCP clients."""
        result = await dispatcher.invoke(name, arguments)
        if result.is_error:
            raise ToolCallError(result.text)
        return result.content()

    @server.list_resources()
    async def list_resources() -> List[Resource]:
        return resources.list_resources()

    @server.read_resource()
    async def read_resource(uri: Any) -> List[ReadResourceContents]:
        text = resources.read_resource(str(uri), dispatcher.token_data)
        return [ReadResourceContents(content=text, mime_type=resources.MIME_TYPE)]

    return server
