"""
Slack API Client - Async wrapper for the Slack Web API.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from slack_gateway.errors import SlackApiError

SLACK_API_BASE_URL = "https://slack.com/api"

logger = logging.getLogger(__name__)


def _clean(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {k: v for k, v in (data or {}).items() if v is not None}


def _check_response(resp: httpx.Response, endpoint: str) -> Dict[str, Any]:
    if resp.status_code == 429:
        retry_after = resp.headers.get("Retry-After")
        raise SlackApiError(
            "Slack API Error: ratelimited",
            slack_error="ratelimited",
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )

    try:
        resp_data = resp.json()
    except ValueError as e:
        raise SlackApiError(
            f"Slack API returned HTTP {resp.status_code} for {endpoint}",
            slack_error="invalid_response",
        ) from e

    if not resp_data.get("ok"):
        error_code = resp_data.get("error", "unknown_error")
        raise SlackApiError(f"Slack API Error: {error_code}", slack_error=error_code)

    return resp_data


class SlackClient:
    """
    Thin async wrapper around Slack web API using a user access token.
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = SLACK_API_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 20.0,
    ):
        if not access_token:
            raise ValueError("access_token is required")
        self.access_token = access_token
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SlackClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self, method: str, endpoint: str, data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Send a request to Slack API and raise SlackApiError unless ok==True.
        """
        headers = {"Authorization": f"Bearer {self.access_token}"}
        payload = _clean(data)

        try:
            # Slack expects form-encoded for most web API endpoints
            if method.upper() == "POST":
                resp = await self._http.post(endpoint, data=payload, headers=headers)
            else:
                resp = await self._http.get(endpoint, params=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Slack request to %s failed: %s", endpoint, e)
            raise SlackApiError(
                f"Slack API request failed: {e}", slack_error="request_failed"
            ) from e

        return _check_response(resp, endpoint)

    # Public methods

    async def auth_test(self) -> Dict[str, Any]:
        return await self._request("POST", "auth.test")

    async def users_list(self, cursor: Optional[str] = None, limit: int = 200) -> Dict[str, Any]:
        """
        One page of users.list. The next cursor lives in
        response_metadata.next_cursor and is empty on the last page.
        """
        return await self._request("GET", "users.list", data={"limit": limit, "cursor": cursor or None})

    async def users_info(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", "users.info", data={"user": user_id})

    async def users_get_presence(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", "users.getPresence", data={"user": user_id})

    async def conversations_open(self, users: str) -> Dict[str, Any]:
        """Open (or reuse) a direct message with one or more comma-separated users."""
        return await self._request("POST", "conversations.open", data={"users": users})

    async def conversations_list(
        self,
        types: str = "public_channel,private_channel",
        limit: int = 200,
        cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            "conversations.list",
            data={"types": types, "limit": limit, "cursor": cursor or None},
        )

    async def conversations_history(
        self,
        channel_id: str,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Fetch message history using conversations.history.

        Args:
            channel_id: Conversation ID to read
            limit: Number of messages to return (Slack max is 1000, capped at 100 here)
            cursor: Pagination cursor for next page
        """
        return await self._request(
            "GET",
            "conversations.history",
            data={"channel": channel_id, "limit": min(limit, 100), "cursor": cursor or None},
        )

    async def chat_post_message(
        self,
        channel_id: str,
        text: str,
        thread_ts: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "chat.postMessage",
            data={"channel": channel_id, "text": text, "thread_ts": thread_ts},
        )

    async def search_messages(self, query: str, count: int = 20) -> Dict[str, Any]:
        return await self._request("GET", "search.messages", data={"query": query, "count": count})

    async def reactions_add(self, channel_id: str, timestamp: str, name: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "reactions.add",
            data={"channel": channel_id, "timestamp": timestamp, "name": name},
        )

    async def reactions_remove(self, channel_id: str, timestamp: str, name: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "reactions.remove",
            data={"channel": channel_id, "timestamp": timestamp, "name": name},
        )

    async def files_list(
        self,
        channel_id: Optional[str] = None,
        user_id: Optional[str] = None,
        count: int = 20,
    ) -> Dict[str, Any]:
        return await self._request(
            "GET",
            "files.list",
            data={"channel": channel_id, "user": user_id, "count": count},
        )


async def exchange_oauth_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    base_url: str = SLACK_API_BASE_URL,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, Any]:
    """Exchange an OAuth authorization code for tokens via oauth.v2.access."""
    data = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
    }

    async with httpx.AsyncClient(timeout=20, transport=transport) as client:
        try:
            resp = await client.post(f"{base_url.rstrip('/')}/oauth.v2.access", data=data)
        except httpx.HTTPError as e:
            raise SlackApiError(
                f"Slack OAuth request failed: {e}", slack_error="request_failed"
            ) from e

    return _check_response(resp, "oauth.v2.access")
