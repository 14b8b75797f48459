"""
Issuing and checking the bearer tokens MCP clients present.
"""

import logging
from datetime import timedelta
from typing import Optional, Type, TypeVar

import httpx
from pydantic import BaseModel

from slack_gateway.auth.jwt import create_access_token, decode_access_token
from slack_gateway.auth.schemas import AccessTokenGrant, AuthorizationCode, SlackTokenData, utcnow
from slack_gateway.config import Settings
from slack_gateway.errors import SlackApiError
from slack_gateway.slack.client import SlackClient
from slack_gateway.store import Registries, Store

logger = logging.getLogger(__name__)

SLACK_USER_TOKEN_PREFIX = "xoxp-"

M = TypeVar("M", bound=BaseModel)


def load_live(store: Store, key: str, model: Type[M]) -> Optional[M]:
    """Load a record, deleting it instead if its expires_at has passed."""
    record = store.get(key)
    if record is None:
        return None

    obj = model.model_validate(record)
    expires_at = getattr(obj, "expires_at", None)
    if expires_at is not None and expires_at <= utcnow():
        store.delete(key)
        logger.info("Dropped expired %s entry", model.__name__)
        return None
    return obj


def issue_access_token(
    registries: Registries,
    settings: Settings,
    code: AuthorizationCode,
) -> str:
    token = create_access_token(
        code.token_key,
        code.client_user_id,
        settings.APP_SECRET_KEY,
        settings.ACCESS_TOKEN_TTL_SECONDS,
    )
    grant = AccessTokenGrant(
        token_key=code.token_key,
        client_user_id=code.client_user_id,
        client_id=code.client_id,
        expires_at=utcnow() + timedelta(seconds=settings.ACCESS_TOKEN_TTL_SECONDS),
    )
    registries.access_tokens.set(token, grant.model_dump(mode="json"))
    return token


def revoke_access_token(registries: Registries, token: str) -> bool:
    return registries.access_tokens.delete(token)


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    # Bare Slack tokens are accepted without a scheme
    if authorization.startswith(SLACK_USER_TOKEN_PREFIX):
        return authorization.strip()
    return None


def lookup_token_data(registries: Registries, token_key: str) -> Optional[SlackTokenData]:
    record = registries.slack_tokens.get(token_key)
    return SlackTokenData.model_validate(record) if record else None


async def fetch_user_name(client: SlackClient, user_id: str, fallback: Optional[str] = None) -> str:
    """Best display name for the connected user: real name, username, display name."""
    try:
        resp = await client.users_info(user_id)
    except SlackApiError as e:
        logger.info("Could not fetch user details for %s (%s), using fallback name", user_id, e.slack_error)
        return fallback or f"User_{user_id[:8]}"

    user = resp.get("user") or {}
    profile = user.get("profile") or {}
    return (
        user.get("real_name")
        or user.get("name")
        or profile.get("display_name")
        or fallback
        or f"User_{user_id[:8]}"
    )


async def register_slack_token(
    registries: Registries,
    settings: Settings,
    slack_token: str,
    name: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SlackTokenData:
    """Validate a raw user token with auth.test and store it."""
    if not slack_token.startswith(SLACK_USER_TOKEN_PREFIX):
        raise ValueError("A Slack user token (xoxp-...) is required")

    async with SlackClient(slack_token, settings.SLACK_API_BASE_URL, transport=transport) as client:
        auth = await client.auth_test()
        user_name = name or await fetch_user_name(client, auth["user_id"], auth.get("user"))

    token_data = SlackTokenData(
        access_token=slack_token,
        team_id=auth["team_id"],
        user_id=auth["user_id"],
        team_name=auth.get("team"),
        user_name=user_name,
    )
    registries.slack_tokens.set(token_data.key, token_data.model_dump(mode="json"))
    logger.info("Registered direct Slack token for %s", token_data.key)
    return token_data


async def authenticate_bearer(
    registries: Registries,
    settings: Settings,
    token: Optional[str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[SlackTokenData]:
    """
    Map a bearer token to the Slack identity it may act as, or None.

    Issued access tokens must verify, be registered and unexpired; raw Slack
    user tokens are checked against auth.test.
    """
    if not token:
        return None

    if token.startswith(SLACK_USER_TOKEN_PREFIX):
        try:
            return await register_slack_token(registries, settings, token, transport=transport)
        except SlackApiError as e:
            logger.warning("Direct Slack token rejected: %s", e.slack_error)
            return None

    claims = decode_access_token(token, settings.APP_SECRET_KEY)
    if claims is None:
        # Expired or forged; forget it if we issued it
        registries.access_tokens.delete(token)
        return None

    grant = load_live(registries.access_tokens, token, AccessTokenGrant)
    if grant is None or grant.token_key != claims["sub"]:
        return None

    return lookup_token_data(registries, grant.token_key)
