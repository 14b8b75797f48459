"""
Slack MCP Server - FastAPI Application

A Model Context Protocol (MCP) gateway for Slack. Each user connects their
own Slack account; tools then act as that user.

Transports:
    POST /mcp          JSON-RPC over plain HTTP (session id in mcp-session-id)
    GET  /mcp/sse      SSE transport from the MCP SDK
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mcp.server.sse import SseServerTransport

from slack_gateway.auth.routes import router as oauth_router
from slack_gateway.auth.schemas import McpSession, SlackTokenData
from slack_gateway.auth.tokens import authenticate_bearer, extract_bearer, lookup_token_data
from slack_gateway.config import Settings, configure_logging, settings as default_settings
from slack_gateway.connect.routes import router as connect_router
from slack_gateway.deps import get_base_url, get_registries, get_settings, make_slack_client
from slack_gateway.mcp import resources
from slack_gateway.mcp.server import create_mcp_server
from slack_gateway.mcp.tools import TOOLS, ToolDispatcher
from slack_gateway.slack.client import SlackClient
from slack_gateway.store import Registries, create_registries

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "slack-mcp-server", "version": "2.0.0"}
SESSION_HEADER = "mcp-session-id"


def rpc_result(msg_id: Any, result: dict, **kwargs) -> JSONResponse:
    return JSONResponse(content={"jsonrpc": "2.0", "id": msg_id, "result": result}, **kwargs)


def rpc_error(msg_id: Any, code: int, message: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}},
    )


def build_dispatcher(request: Request, client: SlackClient, token_data: SlackTokenData) -> ToolDispatcher:
    settings = get_settings(request)
    return ToolDispatcher(
        client,
        token_data,
        page_size=settings.DIRECTORY_PAGE_SIZE,
        directory_timeout=settings.DIRECTORY_TIMEOUT_SECONDS,
    )


async def authenticate_request(request: Request) -> Optional[SlackTokenData]:
    token = extract_bearer(request.headers.get("authorization")) or request.query_params.get("access_token")
    return await authenticate_bearer(
        get_registries(request),
        get_settings(request),
        token,
        transport=request.app.state.slack_transport,
    )


async def handle_rpc(request: Request, body: dict) -> Response:
    registries = get_registries(request)
    method = body.get("method", "")
    msg_id = body.get("id")
    params = body.get("params") or {}
    session_id = request.headers.get(SESSION_HEADER)

    if method == "initialize":
        token_data = await authenticate_request(request)
        if token_data is None and session_id:
            session = registries.sessions.get(session_id)
            if session:
                token_data = lookup_token_data(registries, McpSession.model_validate(session).token_key)

        if token_data is None:
            if request.headers.get("authorization"):
                message = "Invalid or expired authentication token. Please re-authenticate."
            else:
                message = "Authentication required. Connect your own Slack account first."
            return rpc_error(msg_id, -32000, message, status_code=401)

        session_id = session_id or str(uuid.uuid4())
        registries.sessions.set(session_id, McpSession(token_key=token_data.key).model_dump(mode="json"))
        logger.info("MCP session %s opened for %s", session_id, token_data.key)

        return rpc_result(
            msg_id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}, "resources": {}},
                "serverInfo": SERVER_INFO,
                "instructions": f"You are acting as {token_data.user_name} ({token_data.team_name}) on Slack.",
            },
            headers={SESSION_HEADER: session_id},
        )

    if method.startswith("notifications/"):
        return Response(status_code=202)

    session = registries.sessions.get(session_id) if session_id else None
    if session is None:
        return rpc_error(msg_id, -32000, "Session not found. Please initialize first.", status_code=400)

    token_data = lookup_token_data(registries, McpSession.model_validate(session).token_key)
    if token_data is None:
        registries.sessions.delete(session_id)
        return rpc_error(msg_id, -32000, "Slack connection no longer exists. Please re-authenticate.", status_code=401)

    if method == "ping":
        return rpc_result(msg_id, {})

    if method == "tools/list":
        return rpc_result(msg_id, {
            "tools": [
                {
                    "name": t.name,
                    "description": t.description,
                    "inputSchema": t.inputSchema,
                }
                for t in TOOLS
            ]
        })

    if method == "tools/call":
        async with make_slack_client(request, token_data.access_token) as client:
            dispatcher = build_dispatcher(request, client, token_data)
            result = await dispatcher.invoke(params.get("name", ""), params.get("arguments") or {})

        payload = {
            "content": [{"type": "text", "text": result.text}],
            "isError": result.is_error,
        }
        if result.data:
            payload["structuredContent"] = result.data
        return rpc_result(msg_id, payload)

    if method == "resources/list":
        return rpc_result(msg_id, {
            "resources": [r.model_dump(mode="json", exclude_none=True) for r in resources.list_resources()]
        })

    if method == "resources/read":
        uri = params.get("uri", "")
        try:
            text = resources.read_resource(uri, token_data)
        except ValueError as e:
            return rpc_error(msg_id, -32602, str(e))
        return rpc_result(msg_id, {
            "contents": [{"uri": uri, "mimeType": resources.MIME_TYPE, "text": text}]
        })

    return rpc_error(msg_id, -32601, f"Method not found: {method}")


def create_app(
    settings: Optional[Settings] = None,
    registries: Optional[Registries] = None,
    slack_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    if not settings.slack_oauth_configured:
        logger.warning("SLACK_CLIENT_ID / SLACK_CLIENT_SECRET not set; Slack OAuth is disabled")

    app = FastAPI(
        title="Slack MCP Server",
        description="Model Context Protocol gateway for Slack",
        version=SERVER_INFO["version"],
    )
    # Browser-based MCP clients need the preflight and must read the session header
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Origin",
            "X-Requested-With",
            "Content-Type",
            "Accept",
            "Authorization",
            SESSION_HEADER,
        ],
        expose_headers=[SESSION_HEADER],
    )

    app.state.settings = settings
    app.state.registries = registries or create_registries(settings.DATABASE_URL)
    # Tests swap in an httpx.MockTransport here
    app.state.slack_transport = slack_transport

    # Include routers
    app.include_router(oauth_router)
    app.include_router(connect_router)

    # SSE Transport for MCP connections
    sse_transport = SseServerTransport("/mcp/messages/")
    app.mount("/mcp/messages", app=sse_transport.handle_post_message)

    @app.get("/mcp/sse")
    async def mcp_sse_endpoint(request: Request):
        """
        SSE-based MCP endpoint for AI clients.

        Connect with an Authorization: Bearer header (or ?access_token=).
        """
        token_data = await authenticate_request(request)
        if token_data is None:
            raise HTTPException(status_code=401, detail="Invalid or missing access token")

        logger.info("SSE connection opened for %s", token_data.key)
        async with make_slack_client(request, token_data.access_token) as client:
            server = create_mcp_server(build_dispatcher(request, client, token_data))
            async with sse_transport.connect_sse(
                request.scope, request.receive, request._send
            ) as (read_stream, write_stream):
                await server.run(
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                )
        logger.info("SSE connection closed for %s", token_data.key)
        return Response()

    @app.post("/mcp")
    async def mcp_http_endpoint(request: Request):
        """
        HTTP-based MCP endpoint (JSON-RPC 2.0).

        initialize needs a bearer token and returns the session id in the
        mcp-session-id header; later requests must send it back.
        """
        try:
            body = await request.json()
        except ValueError as e:
            return rpc_error(None, -32700, f"Parse error: {e}")

        if not isinstance(body, dict):
            return rpc_error(None, -32600, "Invalid request: expected a JSON object")

        try:
            return await handle_rpc(request, body)
        except Exception as e:
            logger.exception("MCP endpoint error")
            return rpc_error(body.get("id"), -32603, f"Internal server error: {e}", status_code=500)

    @app.delete("/mcp")
    def mcp_terminate_session(request: Request):
        session_id = request.headers.get(SESSION_HEADER)
        if not session_id:
            raise HTTPException(status_code=400, detail="Missing session ID")

        if not get_registries(request).sessions.delete(session_id):
            raise HTTPException(status_code=404, detail="Session not found")

        logger.info("MCP session %s terminated", session_id)
        return {"terminated": session_id}

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint."""
        regs = get_registries(request)
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "connected_users": len(regs.slack_tokens),
            "active_sessions": len(regs.sessions),
            "access_tokens": len(regs.access_tokens),
        }

    @app.get("/debug/users")
    def debug_users(request: Request):
        if not get_settings(request).ENABLE_DEBUG_ENDPOINTS:
            raise HTTPException(status_code=404, detail="Not Found")

        regs = get_registries(request)
        connected = [
            {
                "key": key,
                "team_name": value.get("team_name"),
                "user_name": value.get("user_name"),
                "scopes": SlackTokenData.model_validate(value).scope_count,
                "created_at": value.get("created_at"),
            }
            for key, value in regs.slack_tokens.items()
        ]
        return {
            "success": True,
            "connected_users": connected,
            "active_mcp_sessions": [
                {"session_id": sid, "token_key": value.get("token_key")}
                for sid, value in regs.sessions.items()
            ],
            "access_tokens": len(regs.access_tokens),
            "total_users": len(connected),
        }

    @app.get("/")
    def root(request: Request):
        """Root endpoint with API info."""
        base_url = get_base_url(request)
        regs = get_registries(request)
        return {
            "name": "Slack MCP Server",
            "version": SERVER_INFO["version"],
            "status": "online",
            "connected_users": len(regs.slack_tokens),
            "active_sessions": len(regs.sessions),
            "endpoints": {
                "authorize": f"{base_url}/authorize",
                "oauth_slack": f"{base_url}/oauth/slack",
                "connect": f"{base_url}/connect",
                "mcp_endpoint": f"{base_url}/mcp",
                "mcp_sse": f"{base_url}/mcp/sse",
                "health_check": f"{base_url}/health",
            },
            "docs": "/docs",
        }

    return app


app = create_app()
