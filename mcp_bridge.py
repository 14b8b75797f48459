#!/usr/bin/env python3
"""
stdio <-> HTTP bridge for the Slack MCP gateway.

Local MCP clients (Cursor, Claude Desktop) speak JSON-RPC over stdin/stdout;
this script relays each line to the gateway's POST /mcp endpoint and prints
the reply. The mcp-session-id returned by initialize is sent on every later
request and the session is closed on EOF.

Environment (a .env file works too):
    SLACK_MCP_TOKEN   bearer token from /token, or a Slack user token (xoxp-...)
    SLACK_MCP_URL     gateway base URL (default http://localhost:8000)
    LOG_LEVEL         bridge log level on stderr

Point the MCP client's command at `python mcp_bridge.py`.
"""

import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional

import httpx
from dotenv import load_dotenv

load_dotenv()

# Configuration from environment
SESSION_TOKEN = os.getenv("SLACK_MCP_TOKEN", "")
MCP_SERVER_URL = os.getenv("SLACK_MCP_URL", "http://localhost:8000")

SESSION_HEADER = "mcp-session-id"

# stdout is reserved for JSON-RPC
logger = logging.getLogger("mcp_bridge")


def make_error(msg_id: Any, code: int, message: str) -> dict:
    """Create a properly formatted JSON-RPC error response."""
    return {
        "jsonrpc": "2.0",
        "id": msg_id if msg_id is not None else 0,
        "error": {"code": code, "message": message}
    }


class HTTPBridge:
    """Bridge between stdio and the server's HTTP JSON-RPC endpoint."""

    def __init__(self, base_url: str, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session_id: Optional[str] = None
        self.client = httpx.AsyncClient(timeout=30.0, transport=transport)

    def headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.token}",
        }
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        return headers

    async def send_request(self, request: dict) -> Optional[dict]:
        """POST one JSON-RPC message; returns None for accepted notifications."""
        url = f"{self.base_url}/mcp"
        msg_id = request.get("id", 0)

        try:
            response = await self.client.post(url, json=request, headers=self.headers())
        except httpx.ConnectError as e:
            logger.error("Connection error: %s", e)
            return make_error(msg_id, -32000, "Cannot connect to MCP server")
        except httpx.HTTPError as e:
            logger.error("Request error: %s", e)
            return make_error(msg_id, -32000, str(e))

        if response.status_code == 202:
            return None

        if response.headers.get(SESSION_HEADER):
            self.session_id = response.headers[SESSION_HEADER]

        try:
            result = response.json()
        except ValueError:
            logger.error("HTTP %s with non-JSON body: %s", response.status_code, response.text[:200])
            return make_error(msg_id, -32000, f"HTTP Error: {response.status_code}")

        # Server errors come back as JSON-RPC errors; pass them through
        if "result" not in result and "error" not in result:
            return make_error(msg_id, -32000, f"HTTP Error: {response.status_code}")

        if result.get("id") is None:
            result["id"] = msg_id

        logger.debug("Got response: %s", json.dumps(result)[:200])
        return result

    async def close_session(self):
        if not self.session_id:
            return
        try:
            await self.client.delete(f"{self.base_url}/mcp", headers=self.headers())
        except httpx.HTTPError as e:
            logger.warning("Could not close session %s: %s", self.session_id, e)
        self.session_id = None

    async def close(self):
        """Close the session and the HTTP client."""
        await self.close_session()
        await self.client.aclose()


async def read_stdin_line() -> str:
    """Read a line from stdin asynchronously; empty string means EOF."""
    loop = asyncio.get_running_loop()
    line = await loop.run_in_executor(None, sys.stdin.readline)
    return line


def emit(message: dict):
    print(json.dumps(message), flush=True)


async def main():
    """Main bridge loop."""
    logging.basicConfig(
        stream=sys.stderr,
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="[Bridge] %(levelname)s %(message)s",
    )

    if not SESSION_TOKEN:
        emit(make_error(0, -32000, "SLACK_MCP_TOKEN not set. Create a .env file with your access token."))
        sys.exit(1)

    logger.info("Starting Slack MCP Bridge, server: %s", MCP_SERVER_URL)

    bridge = HTTPBridge(MCP_SERVER_URL, SESSION_TOKEN)

    try:
        while True:
            line = await read_stdin_line()

            if line == "":
                logger.info("EOF received, shutting down")
                break

            line = line.strip()
            if not line:
                continue

            try:
                request = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("Invalid JSON: %s", e)
                continue

            logger.info("Request: %s (id=%s)", request.get("method", ""), request.get("id"))

            response = await bridge.send_request(request)
            # Notifications get no reply
            if response is not None and "id" in request:
                emit(response)

    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        await bridge.close()
        logger.info("Bridge stopped")


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
