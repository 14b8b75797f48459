"""
Turns a free-form user identifier into exactly one workspace member, or a
structured reason why that is not possible.

Accepted forms: raw user ID (``U0123ABCD``), mention markup (``<@U0123ABCD>``),
``@handle``, display name, real name, partial name or email. When two or more
members tie for the best score the caller gets an ``Ambiguous`` result and
must ask again; the resolver never guesses.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from slack_gateway.errors import UserNotFoundError
from slack_gateway.resolution.directory import Directory, DirectoryCache
from slack_gateway.resolution.profiles import UserProfile
from slack_gateway.resolution.scoring import ScoredCandidate, normalize_query, rank_candidates

logger = logging.getLogger(__name__)

USER_ID_PATTERN = re.compile(r"^U[A-Z0-9]+$")
MENTION_PATTERN = re.compile(r"^<@(U[A-Z0-9]+)(?:\|[^>]*)?>$")

# Suggestions carried by an ambiguous result
MAX_SUGGESTIONS = 3


class NotFoundReason(str, Enum):
    INVALID_ID = "invalid_id"
    NO_MATCH = "no_match"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True)
class Resolved:
    profile: UserProfile
    score: Optional[int] = None


@dataclass(frozen=True)
class Ambiguous:
    query: str
    candidates: Tuple[ScoredCandidate, ...]
    top_score: int

    @property
    def profiles(self) -> Tuple[UserProfile, ...]:
        return tuple(c.profile for c in self.candidates)


@dataclass(frozen=True)
class NotFound:
    query: str
    reason: NotFoundReason = NotFoundReason.NO_MATCH


ResolutionResult = Union[Resolved, Ambiguous, NotFound]


def extract_user_id(identifier: str) -> Optional[str]:
    """Return the user ID when the identifier is written as one, else None."""
    value = identifier.strip()
    mention = MENTION_PATTERN.match(value)
    if mention:
        return mention.group(1)
    value = value.lstrip("@").strip()
    if USER_ID_PATTERN.match(value):
        return value
    return None


class Resolver:
    def __init__(self, directory: Directory, cache: Optional[DirectoryCache] = None):
        self.directory = directory
        self.cache = cache or DirectoryCache(directory)

    async def resolve(self, identifier: str) -> ResolutionResult:
        user_id = extract_user_id(identifier)
        if user_id:
            return await self._resolve_id(identifier, user_id)

        query = normalize_query(identifier)
        if not query:
            return NotFound(identifier, NotFoundReason.NO_MATCH)

        ranked = rank_candidates(await self.cache.active_users(), query)
        if not ranked:
            logger.info("No user matches %r", identifier)
            return NotFound(identifier, NotFoundReason.NO_MATCH)

        top_score = ranked[0].score
        tied = [c for c in ranked if c.score == top_score]
        if len(tied) > 1:
            logger.info(
                "Identifier %r is ambiguous: %d users at score %d",
                identifier, len(tied), top_score,
            )
            return Ambiguous(identifier, tuple(tied[:MAX_SUGGESTIONS]), top_score)

        return Resolved(ranked[0].profile, top_score)

    async def _resolve_id(self, identifier: str, user_id: str) -> ResolutionResult:
        # Direct lookups never fall back to enumerating the directory
        try:
            profile = await self.directory.fetch_user_by_id(user_id)
        except UserNotFoundError:
            logger.info("User ID %s rejected by directory", user_id)
            return NotFound(identifier, NotFoundReason.INVALID_ID)

        if profile.is_deleted:
            return NotFound(identifier, NotFoundReason.DEACTIVATED)
        return Resolved(profile)
