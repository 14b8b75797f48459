"""
OAuth 2.0 authorization-code flow for MCP clients, fronting Slack OAuth.

    client -> /authorize -> /oauth/slack -> Slack -> /oauth/callback
           -> client redirect_uri?code=... -> /token -> bearer access token
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from slack_gateway.auth.schemas import (
    AuthorizationCode,
    ClientRegistrationRequest,
    OAuthClient,
    PendingAuthorization,
    SlackTokenData,
    utcnow,
)
from slack_gateway.auth.tokens import (
    extract_bearer,
    fetch_user_name,
    issue_access_token,
    load_live,
    revoke_access_token,
)
from slack_gateway.config import Settings
from slack_gateway.deps import get_base_url, get_registries, get_settings, get_slack_transport
from slack_gateway.errors import SlackApiError
from slack_gateway.slack.client import SlackClient, exchange_oauth_code
from slack_gateway.store import Registries

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth"])

SLACK_AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"

# Scopes requested for the user token
USER_SCOPES = [
    "channels:read",
    "chat:write",
    "users:read",
    "channels:history",
    "im:history",
    "mpim:history",
    "search:read",
    "groups:read",
    "mpim:read",
    "channels:write",
    "groups:write",
    "im:write",
    "files:write",
    "files:read",
    "reactions:read",
    "reactions:write",
]

MCP_SCOPE = "slack:read slack:write"


def oauth_error(error: str, description: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "error_description": description},
    )


def slack_callback_url(request: Request, settings: Settings) -> str:
    return settings.SLACK_REDIRECT_URI or f"{get_base_url(request)}/oauth/callback"


def _not_configured() -> JSONResponse:
    return oauth_error(
        "server_error",
        "Slack OAuth is not configured (SLACK_CLIENT_ID / SLACK_CLIENT_SECRET)",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@router.get("/.well-known/oauth-authorization-server")
def authorization_server_metadata(request: Request):
    base_url = get_base_url(request)
    return {
        "issuer": base_url,
        "authorization_endpoint": f"{base_url}/authorize",
        "token_endpoint": f"{base_url}/token",
        "registration_endpoint": f"{base_url}/register",
        "revocation_endpoint": f"{base_url}/revoke",
        "response_types_supported": ["code"],
        "grant_types_supported": ["authorization_code"],
        "code_challenge_methods_supported": ["S256", "plain"],
        "token_endpoint_auth_methods_supported": ["none"],
        "scopes_supported": MCP_SCOPE.split(),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_client(
    payload: ClientRegistrationRequest,
    registries: Registries = Depends(get_registries),
):
    """Dynamic client registration."""
    client = OAuthClient(
        client_id=f"mcp_{secrets.token_hex(12)}",
        client_name=payload.client_name,
        redirect_uris=payload.redirect_uris,
    )
    registries.oauth_clients.set(client.client_id, client.model_dump(mode="json"))
    logger.info("Registered OAuth client %s (%s)", client.client_id, client.client_name)

    return {
        "client_id": client.client_id,
        "client_name": client.client_name,
        "redirect_uris": client.redirect_uris,
        "client_id_issued_at": int(client.created_at.timestamp()),
        "grant_types": ["authorization_code"],
        "response_types": ["code"],
        "token_endpoint_auth_method": "none",
    }


@router.get("/authorize")
def authorize(
    request: Request,
    state: Optional[str] = None,
    redirect_uri: Optional[str] = None,
    client_id: Optional[str] = None,
    code_challenge: Optional[str] = None,
    code_challenge_method: Optional[str] = None,
    registries: Registries = Depends(get_registries),
    settings: Settings = Depends(get_settings),
):
    """
    Entry point for MCP clients.

    Steps:
        - Check the client (if it registered) and its redirect URI
        - Record a pending authorization under a random session key
        - Send the user through Slack OAuth with that key as state
    """
    if not state or not redirect_uri:
        return oauth_error("invalid_request", "state and redirect_uri are required")

    if client_id:
        record = registries.oauth_clients.get(client_id)
        if record is None:
            return oauth_error("invalid_client", f"Unknown client_id: {client_id}")
        client = OAuthClient.model_validate(record)
        if client.redirect_uris and redirect_uri not in client.redirect_uris:
            return oauth_error("invalid_client", "redirect_uri is not registered for this client")

    client_user_id = f"client_{secrets.token_hex(16)}"
    session_key = f"auth_{client_user_id}_{secrets.token_hex(8)}"

    pending = PendingAuthorization(
        client_user_id=client_user_id,
        state=state,
        redirect_uri=redirect_uri,
        client_id=client_id,
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        expires_at=utcnow() + timedelta(minutes=settings.AUTH_CODE_TTL_MINUTES),
    )
    registries.pending_authorizations.set(session_key, pending.model_dump(mode="json"))

    logger.info("Client user %s starting OAuth flow", client_user_id)
    query = urlencode({"auth_session": session_key})
    return RedirectResponse(f"{get_base_url(request)}/oauth/slack?{query}")


@router.get("/oauth/slack")
def slack_oauth_start(
    request: Request,
    auth_session: Optional[str] = None,
    settings: Settings = Depends(get_settings),
):
    """Redirect the user to Slack's consent screen."""
    if not settings.slack_oauth_configured:
        return _not_configured()

    params = {
        "client_id": settings.SLACK_CLIENT_ID,
        "user_scope": " ".join(USER_SCOPES),
        "state": auth_session or secrets.token_hex(16),
        "redirect_uri": slack_callback_url(request, settings),
    }
    return RedirectResponse(f"{SLACK_AUTHORIZE_URL}?{urlencode(params)}")


@router.get("/oauth/callback")
async def slack_oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    registries: Registries = Depends(get_registries),
    settings: Settings = Depends(get_settings),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_slack_transport),
):
    """
    Slack redirects here after the user approves or denies.

    Steps:
        - Fail on error or missing code
        - Exchange code for the user token and store it
        - If the flow came from /authorize, mint a one-time code and
          redirect back to the MCP client
    """
    if error:
        logger.warning("OAuth error received: %s", error)
        return oauth_error("access_denied", f"OAuth error: {error}")

    if not code:
        return oauth_error("invalid_request", "Missing authorization code")

    if not settings.slack_oauth_configured:
        return _not_configured()

    try:
        data = await exchange_oauth_code(
            settings.SLACK_CLIENT_ID,
            settings.SLACK_CLIENT_SECRET,
            code,
            slack_callback_url(request, settings),
            base_url=settings.SLACK_API_BASE_URL,
            transport=transport,
        )
    except SlackApiError as e:
        logger.error("OAuth token exchange failed: %s", e.slack_error)
        return oauth_error("invalid_grant", f"Slack OAuth token exchange failed: {e.slack_error}")

    authed_user = data.get("authed_user") or {}
    team = data.get("team") or {}
    user_id = authed_user.get("id")
    access_token = authed_user.get("access_token")

    if not access_token or not user_id or not team.get("id"):
        return oauth_error("invalid_grant", "Missing required fields from Slack response")

    async with SlackClient(access_token, settings.SLACK_API_BASE_URL, transport=transport) as client:
        user_name = await fetch_user_name(client, user_id, authed_user.get("name"))

    token_data = SlackTokenData(
        access_token=access_token,
        team_id=team["id"],
        user_id=user_id,
        team_name=team.get("name"),
        user_name=user_name,
        scope=authed_user.get("scope", ""),
    )
    registries.slack_tokens.set(token_data.key, token_data.model_dump(mode="json"))
    logger.info("Slack token stored for user %s (%s)", token_data.user_name, token_data.key)

    pending = load_live(registries.pending_authorizations, state, PendingAuthorization) if state else None
    if pending is None:
        return {
            "success": True,
            "message": "Successfully authenticated with Slack",
            "user_data": {
                "team": token_data.team_name,
                "user": token_data.user_name,
                "team_id": token_data.team_id,
                "user_id": token_data.user_id,
                "scopes": token_data.scope_count,
            },
            "next_step": "You can now connect this server to your MCP client using the /mcp endpoint",
        }

    registries.pending_authorizations.delete(state)

    auth_code = secrets.token_hex(32)
    record = AuthorizationCode(
        team_id=token_data.team_id,
        user_id=token_data.user_id,
        client_user_id=pending.client_user_id,
        client_id=pending.client_id,
        expires_at=utcnow() + timedelta(minutes=settings.AUTH_CODE_TTL_MINUTES),
    )
    registries.authorization_codes.set(auth_code, record.model_dump(mode="json"))

    logger.info("Redirecting client user %s back with authorization code", pending.client_user_id)
    separator = "&" if "?" in pending.redirect_uri else "?"
    query = urlencode({"code": auth_code, "state": pending.state})
    return RedirectResponse(f"{pending.redirect_uri}{separator}{query}")


async def _read_params(request: Request) -> Optional[dict]:
    """Form or JSON body; None when a JSON body does not parse."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return dict(form)


@router.post("/token")
async def token(
    request: Request,
    registries: Registries = Depends(get_registries),
    settings: Settings = Depends(get_settings),
):
    """Exchange a one-time authorization code for a bearer access token."""
    params = await _read_params(request)
    if params is None:
        return oauth_error("invalid_request", "Malformed request body")
    grant_type = params.get("grant_type", "authorization_code")
    code = params.get("code")

    if grant_type != "authorization_code":
        return oauth_error("unsupported_grant_type", f"Unsupported grant_type: {grant_type}")
    if not code:
        return oauth_error("invalid_request", "Missing authorization code")

    auth_code = load_live(registries.authorization_codes, code, AuthorizationCode)
    if auth_code is None:
        return oauth_error("invalid_grant", "Authorization code not found or expired")

    # Codes are single use
    registries.authorization_codes.delete(code)

    if registries.slack_tokens.get(auth_code.token_key) is None:
        return oauth_error("invalid_grant", "Slack connection no longer exists")

    access_token = issue_access_token(registries, settings, auth_code)
    logger.info("Issued access token for client user %s -> Slack %s", auth_code.client_user_id, auth_code.token_key)

    return {
        "access_token": access_token,
        "token_type": "Bearer",
        "expires_in": settings.ACCESS_TOKEN_TTL_SECONDS,
        "scope": MCP_SCOPE,
        "user_context": {
            "client_user_id": auth_code.client_user_id,
            "slack_team_id": auth_code.team_id,
            "slack_user_id": auth_code.user_id,
        },
    }


@router.post("/revoke")
async def revoke(
    request: Request,
    registries: Registries = Depends(get_registries),
):
    """Forget an access token (logout). Unknown tokens are not an error."""
    params = await _read_params(request)
    if params is None:
        return oauth_error("invalid_request", "Malformed request body")
    token_value = params.get("token") or extract_bearer(request.headers.get("authorization"))
    if token_value and revoke_access_token(registries, token_value):
        logger.info("Access token revoked")
    return {"revoked": True}
