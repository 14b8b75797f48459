"""
Match scoring for free-form user identifiers.

A profile's score is the highest tier it satisfies on any field; tiers are
never summed. Exact beats prefix beats substring for every field, and the
field order (username, real name, display name, email) breaks the rest.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from slack_gateway.resolution.profiles import UserProfile

# field -> (exact, prefix, contains); None means the tier does not apply
SCORE_LADDER = {
    "username": (100, 70, 30),
    "real_name": (90, 60, 20),
    "display_name": (85, 55, 15),
    "email": (80, None, 5),
}


def normalize_query(identifier: str) -> str:
    """Trim, drop a leading '@' and lower-case an identifier for comparison."""
    return identifier.strip().lstrip("@").strip().lower()


def _field_score(value: str, query: str, tiers: Tuple[Optional[int], ...]) -> int:
    exact, prefix, contains = tiers
    if value == query:
        return exact or 0
    if prefix is not None and value.startswith(query):
        return prefix
    if contains is not None and query in value:
        return contains
    return 0


def score(profile: UserProfile, query: str) -> int:
    """Score one profile against an already-normalized query. Pure."""
    if not query:
        return 0

    fields = {
        "username": profile.username,
        "real_name": profile.real_name,
        "display_name": profile.display_name,
        "email": profile.email or "",
    }

    best = 0
    for name, value in fields.items():
        if not value:
            continue
        best = max(best, _field_score(value.lower(), query, SCORE_LADDER[name]))
    return best


@dataclass(frozen=True)
class ScoredCandidate:
    profile: UserProfile
    score: int


def rank_candidates(profiles: Iterable[UserProfile], query: str) -> List[ScoredCandidate]:
    """
    Score every eligible profile, drop zero scores and sort best first.

    The sort is stable, so equal scores keep directory order; callers must
    still treat them as unordered.
    """
    scored: List[ScoredCandidate] = []
    for profile in profiles:
        if not profile.is_candidate:
            continue
        s = score(profile, query)
        if s > 0:
            scored.append(ScoredCandidate(profile, s))

    scored.sort(key=lambda c: c.score, reverse=True)
    return scored
