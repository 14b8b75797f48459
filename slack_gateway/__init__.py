"""Slack MCP gateway: Slack tools for MCP clients, acting as each connected user."""
