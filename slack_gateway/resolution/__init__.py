# slack_gateway/resolution/__init__.py
"""User resolution and disambiguation."""

from .directory import Directory, DirectoryCache
from .enrichment import resolve_display_names
from .profiles import Presence, UserProfile
from .resolver import Ambiguous, NotFound, NotFoundReason, Resolved, ResolutionResult, Resolver
from .scoring import ScoredCandidate, normalize_query, rank_candidates, score
from .targets import (
    ChannelRef,
    ConversationId,
    ConversationTarget,
    TargetBuilder,
    UserRef,
    classify_target,
)

__all__ = [
    "Ambiguous",
    "ChannelRef",
    "ConversationId",
    "ConversationTarget",
    "Directory",
    "DirectoryCache",
    "NotFound",
    "NotFoundReason",
    "Presence",
    "Resolved",
    "ResolutionResult",
    "Resolver",
    "ScoredCandidate",
    "TargetBuilder",
    "UserProfile",
    "UserRef",
    "classify_target",
    "normalize_query",
    "rank_candidates",
    "resolve_display_names",
    "score",
]
