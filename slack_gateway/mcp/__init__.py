# slack_gateway/mcp/__init__.py
"""MCP tools, resources and server factory for Slack."""

from .formatting import ToolResult
from .server import create_mcp_server
from .tools import TOOLS, ToolDispatcher

__all__ = ["TOOLS", "ToolDispatcher", "ToolResult", "create_mcp_server"]
