from typing import List, Optional, Tuple

from slack_gateway.errors import DirectoryUnavailable, SlackApiError, UserNotFoundError
from slack_gateway.resolution.profiles import UserProfile
from slack_gateway.slack.client import SlackClient

USER_LOOKUP_MISSES = ("user_not_found", "user_not_visible", "invalid_user")


class SlackDirectory:
    """Serves user lookups for the resolver from the Slack Web API."""

    def __init__(self, client: SlackClient):
        self.client = client

    async def fetch_user_page(
        self, cursor: Optional[str] = None, limit: int = 200
    ) -> Tuple[List[UserProfile], Optional[str]]:
        resp = await self.client.users_list(cursor=cursor, limit=limit)
        members = resp.get("members") or []
        next_cursor = (resp.get("response_metadata") or {}).get("next_cursor") or None
        return [UserProfile.from_slack(m) for m in members], next_cursor

    async def fetch_user_by_id(self, user_id: str) -> UserProfile:
        try:
            resp = await self.client.users_info(user_id)
        except SlackApiError as e:
            if e.slack_error in USER_LOOKUP_MISSES:
                raise UserNotFoundError(user_id, e.slack_error) from e
            raise DirectoryUnavailable(e) from e
        return UserProfile.from_slack(resp["user"])

    async def open_direct_message(self, user_id: str) -> str:
        resp = await self.client.conversations_open(user_id)
        return resp["channel"]["id"]
