"""
Per-call snapshot of the workspace user directory.
"""

import asyncio
import logging
from typing import List, Optional, Protocol, Tuple

from slack_gateway.errors import DirectoryUnavailable, GatewayError
from slack_gateway.resolution.profiles import UserProfile

logger = logging.getLogger(__name__)


class Directory(Protocol):
    """The lookups resolution needs from the upstream workspace."""

    async def fetch_user_page(
        self, cursor: Optional[str] = None, limit: int = 200
    ) -> Tuple[List[UserProfile], Optional[str]]:
        ...

    async def fetch_user_by_id(self, user_id: str) -> UserProfile:
        ...

    async def open_direct_message(self, user_id: str) -> str:
        ...


class DirectoryCache:
    """
    Holds the full user list for the lifetime of one tool call.

    Pages are fetched strictly in sequence, each cursor gating the next
    request, and every page is read before anything is returned. A failure
    on any page fails the whole listing; there is no partial result.
    """

    def __init__(
        self,
        directory: Directory,
        page_size: int = 200,
        timeout: Optional[float] = None,
    ):
        self.directory = directory
        self.page_size = page_size
        self.timeout = timeout
        self._users: Optional[List[UserProfile]] = None

    async def _enumerate(self) -> List[UserProfile]:
        users: List[UserProfile] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            page, cursor = await self.directory.fetch_user_page(cursor, self.page_size)
            pages += 1
            users.extend(page)
            logger.debug("Directory page %d: %d users, next cursor %r", pages, len(page), cursor)
            if not cursor:
                return users

    async def all_users(self) -> List[UserProfile]:
        if self._users is not None:
            return self._users

        try:
            if self.timeout:
                users = await asyncio.wait_for(self._enumerate(), self.timeout)
            else:
                users = await self._enumerate()
        except asyncio.TimeoutError as e:
            raise DirectoryUnavailable(
                e, message=f"Slack user directory timed out after {self.timeout}s"
            ) from e
        except DirectoryUnavailable:
            raise
        except GatewayError as e:
            raise DirectoryUnavailable(e) from e

        self._users = users
        return users

    async def active_users(self) -> List[UserProfile]:
        return [u for u in await self.all_users() if u.is_candidate]
