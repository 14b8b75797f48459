"""
Text rendering for tool results.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from mcp.types import TextContent

from slack_gateway.resolution.profiles import Presence, UserProfile
from slack_gateway.resolution.resolver import Ambiguous, NotFound, NotFoundReason


@dataclass
class ToolResult:
    text: str
    is_error: bool = False
    data: Optional[Dict[str, Any]] = None

    def content(self) -> List[TextContent]:
        return [TextContent(type="text", text=self.text)]


def error_result(text: str, **data: Any) -> ToolResult:
    return ToolResult(text=text, is_error=True, data=data or None)


def format_timestamp(ts: Optional[str]) -> str:
    if not ts:
        return "unknown time"
    try:
        moment = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    except (TypeError, ValueError):
        return str(ts)
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def presence_icon(profile: UserProfile) -> str:
    return "🟢" if profile.presence == Presence.ACTIVE else "⚪"


def format_user_line(
    profile: UserProfile,
    current_user_id: Optional[str] = None,
    show_email: bool = False,
) -> str:
    display = f" ({profile.display_name})" if profile.display_name else ""
    you = " (YOU)" if profile.id == current_user_id else ""
    bot = " 🤖" if profile.is_bot else ""
    email = f" • {profile.email}" if show_email and profile.email else ""
    name = profile.real_name or profile.username or profile.id
    return f"• {presence_icon(profile)} {name}{display} (@{profile.username}) - {profile.id}{you}{bot}{email}"


def describe_resolution_failure(result: Union[Ambiguous, NotFound], action: str) -> ToolResult:
    """
    Turn an unresolved identifier into a message the assistant can act on.

    Ambiguity lists every tied candidate so the user can pick one; the
    structured payload keeps the same list for programmatic callers.
    """
    if isinstance(result, Ambiguous):
        lines = "\n".join(
            f"• {c.profile.label}"
            + (f" ({c.profile.display_name})" if c.profile.display_name else "")
            + f" (@{c.profile.username}) - {c.profile.id}"
            for c in result.candidates
        )
        text = (
            f"❓ \"{result.query}\" matches more than one person equally well, "
            f"so I did not {action}.\n\n"
            f"Candidates:\n{lines}\n\n"
            "Ask which person is meant, then retry with their user ID or exact username."
        )
        return error_result(
            text,
            error="ambiguous",
            query=result.query,
            top_score=result.top_score,
            candidates=[
                dict(c.profile.summary(), score=c.score) for c in result.candidates
            ],
        )

    if result.reason == NotFoundReason.INVALID_ID:
        text = f"❌ No user with ID \"{result.query}\" exists in this workspace, so I did not {action}."
    elif result.reason == NotFoundReason.DEACTIVATED:
        text = f"❌ The account \"{result.query}\" is deactivated, so I did not {action}."
    else:
        text = (
            f"❌ No user matches \"{result.query}\", so I did not {action}.\n\n"
            "Tip: use slack_search_users or slack_get_users to find the right username or ID."
        )
    return error_result(text, error="not_found", query=result.query, reason=result.reason.value)
