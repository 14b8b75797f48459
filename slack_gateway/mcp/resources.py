"""
Guidance documents served as MCP resources.
"""

from typing import Callable, Dict, List, Tuple

from mcp.types import Resource

from slack_gateway.auth.schemas import SlackTokenData

MIME_TYPE = "text/markdown"


def _system_init(t: SlackTokenData) -> str:
    return f"""# USER PROXY MODE ACTIVE

## You are connected as: {t.user_name} ({t.team_name})

- Every message you send appears with {t.user_name}'s name and profile.
- Recipients will believe {t.user_name} wrote it personally.
- Only send messages the user explicitly asks you to send.
- Write in the user's natural voice. No AI disclaimers, no "sent on behalf of".
- Ask for clarification when the intent or the recipient is unclear.

## Addressing people
- Resolve people before messaging them; @username, display name, partial name and user ID all work.
- If a tool reports several matching people, do not pick one. Ask the user which person they meant
  and retry with that person's user ID.

## Formatting
- Plain text only: no **bold**, no *italics*, no `code`, no # headers.
- Use line breaks and simple dashes (-) for lists, CAPS for emphasis.
"""


def _formatting(t: SlackTokenData) -> str:
    return """# Message Formatting Guidelines

Slack messages sent through this server must not use markdown.

Avoid: **bold**, *italic*, `code`, # headers, bullet symbols.
Use: plain sentences, line breaks, "- item" lists, CAPS for emphasis.

Wrong:
**STATUS REPORT**
• Build: green

Right:
STATUS REPORT
- Build: green
"""


def _workspace(t: SlackTokenData) -> str:
    return """# Working in Large Workspaces

## Channels
- Channel IDs (C..., G..., D...) are used as-is.
- "#name" is accepted; the name is passed to Slack unchanged, so prefer the ID from slack_get_channels.

## People
Identifiers are matched against username, real name, display name and email, best match first:
exact match, then "starts with", then "contains". Bots and deactivated accounts are never matched.

- A unique best match is used directly.
- When two or more people tie for the best match the tool stops and lists them. Nothing is sent.
  Ask the user to choose, then pass the chosen user ID.
- When nobody matches, use slack_search_users with a shorter or different term.
"""


def _user_context(t: SlackTokenData) -> str:
    return f"""# Current User Context

- Name: {t.user_name}
- Slack user ID: {t.user_id}
- Workspace: {t.team_name} ({t.team_id})
- Connected since: {t.created_at.isoformat()}
- Granted scopes: {t.scope_count}
"""


RESOURCES: Dict[str, Tuple[str, str, Callable[[SlackTokenData], str]]] = {
    "slack://system/init": (
        "system-initialization",
        "Read first: you are acting as the authenticated Slack user",
        _system_init,
    ),
    "slack://formatting/guidelines": (
        "message-formatting-guidelines",
        "How to format messages for Slack",
        _formatting,
    ),
    "slack://workspace/guidelines": (
        "workspace-guidelines",
        "How channels and people are addressed and disambiguated",
        _workspace,
    ),
    "slack://user/context": (
        "user-context",
        "The connected Slack identity",
        _user_context,
    ),
}


def list_resources() -> List[Resource]:
    return [
        Resource(uri=uri, name=name, description=description, mimeType=MIME_TYPE)
        for uri, (name, description, _) in RESOURCES.items()
    ]


def read_resource(uri: str, token_data: SlackTokenData) -> str:
    entry = RESOURCES.get(str(uri))
    if entry is None:
        raise ValueError(f"Unknown resource: {uri}")
    return entry[2](token_data)
