"""
Slack tools exposed over MCP.

Every invocation gets its own Resolver and DirectoryCache, so nothing about
the workspace is remembered between calls.
"""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp.types import Tool

from slack_gateway.auth.schemas import SlackTokenData
from slack_gateway.errors import (
    ConversationOpenFailed,
    DirectoryUnavailable,
    GatewayError,
    SlackApiError,
)
from slack_gateway.mcp.formatting import (
    ToolResult,
    describe_resolution_failure,
    error_result,
    format_timestamp,
    format_user_line,
)
from slack_gateway.resolution import (
    ConversationTarget,
    DirectoryCache,
    Presence,
    Resolved,
    Resolver,
    TargetBuilder,
    normalize_query,
    rank_candidates,
    resolve_display_names,
    score,
)
from slack_gateway.slack.client import SlackClient
from slack_gateway.slack.directory import SlackDirectory

logger = logging.getLogger(__name__)

USER_REF_PATTERN = re.compile(r"(from:|to:|mention:)@([\w.\-]+)", re.IGNORECASE)

# Slack returns at most 20 matches per search page
SEARCH_MAX_COUNT = 20


TOOLS: List[Tool] = [
    Tool(
        name="slack_send_message",
        description=(
            "Send a message to a Slack channel or user. The message appears as the "
            "connected user."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "channel": {
                    "type": "string",
                    "description": "Channel ID (e.g. C0A1RJ2D0TV), #channel-name, @username, user ID or display name",
                },
                "text": {"type": "string", "description": "Message text to send"},
                "thread_ts": {"type": "string", "description": "Thread timestamp to reply to (optional)"},
            },
            "required": ["channel", "text"],
        },
    ),
    Tool(
        name="slack_send_dm",
        description=(
            "Send a direct message to a specific user. The user is resolved first; if "
            "several people match, nothing is sent and the candidates are listed."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "user": {"type": "string", "description": "User ID, @username, display name or real name"},
                "text": {"type": "string", "description": "Message text to send"},
            },
            "required": ["user", "text"],
        },
    ),
    Tool(
        name="slack_get_channels",
        description="List channels you have access to, largest first",
        inputSchema={
            "type": "object",
            "properties": {
                "types": {
                    "type": "string",
                    "description": "Channel types (public_channel,private_channel,mpim,im)",
                    "default": "public_channel,private_channel",
                },
                "limit": {"type": "number", "description": "Maximum number of channels to return", "default": 100},
            },
        },
    ),
    Tool(
        name="slack_get_channel_history",
        description="Get recent messages from a channel or a direct message conversation",
        inputSchema={
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "Channel ID, #channel-name or a user for DMs"},
                "limit": {"type": "number", "description": "Number of messages (default: 20, max: 100)", "default": 20},
            },
            "required": ["channel"],
        },
    ),
    Tool(
        name="slack_get_users",
        description="List workspace users, optionally filtered by a search term",
        inputSchema={
            "type": "object",
            "properties": {
                "limit": {"type": "number", "description": "Maximum number of users to return", "default": 50},
                "search": {"type": "string", "description": "Filter by name, username or email"},
                "include_bots": {"type": "boolean", "description": "Include bot users", "default": False},
                "active_only": {"type": "boolean", "description": "Hide users reported as away", "default": True},
            },
        },
    ),
    Tool(
        name="slack_search_users",
        description=(
            "Search for users by name, username or email, best matches first. Use this "
            "before sending DMs when unsure who is meant."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "search": {"type": "string", "description": "Search term (name, username or email)"},
                "limit": {"type": "number", "description": "Maximum number of results", "default": 10},
            },
            "required": ["search"],
        },
    ),
    Tool(
        name="slack_search_messages",
        description="Search messages across the workspace. from:@user, to:@user and mention:@user are resolved to user IDs.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query (e.g. 'from:@ada in:#general budget')"},
                "limit": {"type": "number", "description": "Number of results to return", "default": 10},
                "resolve_users": {"type": "boolean", "description": "Show author names instead of IDs", "default": True},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="slack_get_user_info",
        description="Get detailed information about a user by ID, @username or name",
        inputSchema={
            "type": "object",
            "properties": {
                "user": {"type": "string", "description": "User ID, @username, display name or real name"},
            },
            "required": ["user"],
        },
    ),
    Tool(
        name="slack_add_reaction",
        description="Add an emoji reaction to a message in a channel or DM",
        inputSchema={
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "Channel ID, #channel-name, user ID or @username for DMs"},
                "timestamp": {"type": "string", "description": "Message timestamp (from history or search results)"},
                "name": {"type": "string", "description": "Emoji name without colons (e.g. 'thumbsup', 'tada')"},
            },
            "required": ["channel", "timestamp", "name"],
        },
    ),
    Tool(
        name="slack_remove_reaction",
        description="Remove one of your emoji reactions from a message",
        inputSchema={
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "Channel ID, #channel-name, user ID or @username for DMs"},
                "timestamp": {"type": "string", "description": "Message timestamp"},
                "name": {"type": "string", "description": "Emoji name without colons"},
            },
            "required": ["channel", "timestamp", "name"],
        },
    ),
    Tool(
        name="slack_list_files",
        description="List files shared in the workspace, optionally in one conversation or by one user",
        inputSchema={
            "type": "object",
            "properties": {
                "channel": {"type": "string", "description": "Channel ID, #channel-name or a user for DMs (optional)"},
                "user": {"type": "string", "description": "Only files shared by this user (optional)"},
                "limit": {"type": "number", "description": "Maximum number of files", "default": 20},
            },
        },
    ),
]

REQUIRED_ARGUMENTS = {t.name: t.inputSchema.get("required", []) for t in TOOLS}


def _int_arg(arguments: Dict[str, Any], name: str, default: int, maximum: Optional[int] = None) -> int:
    try:
        value = int(arguments.get(name, default))
    except (TypeError, ValueError):
        value = default
    value = max(value, 1)
    return min(value, maximum) if maximum else value


def _bool_arg(arguments: Dict[str, Any], name: str, default: bool) -> bool:
    value = arguments.get(name, default)
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class ToolDispatcher:
    """Maps MCP tool calls onto resolution and the Slack Web API."""

    def __init__(
        self,
        client: SlackClient,
        token_data: SlackTokenData,
        page_size: int = 200,
        directory_timeout: Optional[float] = None,
    ):
        self.client = client
        self.token_data = token_data
        self.directory = SlackDirectory(client)
        self.page_size = page_size
        self.directory_timeout = directory_timeout

        self._handlers: Dict[str, Callable[[Dict[str, Any], Resolver], Awaitable[ToolResult]]] = {
            "slack_send_message": self.send_message,
            "slack_send_dm": self.send_dm,
            "slack_get_channels": self.get_channels,
            "slack_get_channel_history": self.get_channel_history,
            "slack_get_users": self.get_users,
            "slack_search_users": self.search_users,
            "slack_search_messages": self.search_messages,
            "slack_get_user_info": self.get_user_info,
            "slack_add_reaction": self.add_reaction,
            "slack_remove_reaction": self.remove_reaction,
            "slack_list_files": self.list_files,
        }

    def list_tools(self) -> List[Tool]:
        return list(TOOLS)

    def new_resolver(self) -> Resolver:
        cache = DirectoryCache(self.directory, self.page_size, self.directory_timeout)
        return Resolver(self.directory, cache)

    @property
    def signature(self) -> str:
        return f"{self.token_data.user_name} ({self.token_data.team_name})"

    async def invoke(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolResult:
        handler = self._handlers.get(name)
        if handler is None:
            return error_result(f"Unknown tool: {name}", error="unknown_tool")

        arguments = arguments or {}
        missing = [a for a in REQUIRED_ARGUMENTS[name] if arguments.get(a) in (None, "")]
        if missing:
            return error_result(
                f"Error: missing required argument(s): {', '.join(missing)}",
                error="invalid_arguments",
                missing=missing,
            )

        try:
            return await handler(arguments, self.new_resolver())
        except ConversationOpenFailed as e:
            return error_result(
                f"❌ Found {e.profile.label} ({e.profile.id}) but could not open a direct message: {e.cause}",
                error="conversation_open_failed",
                user=e.profile.summary(),
            )
        except DirectoryUnavailable as e:
            logger.warning("%s failed, directory unavailable: %s", name, e)
            return error_result(
                f"❌ Could not read the Slack user directory: {e}. This is usually temporary; try again.",
                error="directory_unavailable",
                retryable=True,
            )
        except SlackApiError as e:
            logger.warning("%s failed for %s: %s", name, self.token_data.key, e)
            return error_result(
                f"❌ {name} failed: {e}",
                error="slack_api_error",
                slack_error=e.slack_error,
                retryable=e.retryable,
                retry_after=e.retry_after,
            )
        except GatewayError as e:
            return error_result(f"❌ {name} failed: {e}", error="gateway_error")

    # Tools

    async def _target(self, raw: str, resolver: Resolver, action: str):
        target = await TargetBuilder(self.directory, resolver).build_target(raw)
        if isinstance(target, ConversationTarget):
            return target, None
        return None, describe_resolution_failure(target, action)

    async def send_message(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        channel = arguments["channel"]
        target, failure = await self._target(channel, resolver, "send the message")
        if failure:
            return failure

        resp = await self.client.chat_post_message(
            target.channel_id, arguments["text"], thread_ts=arguments.get("thread_ts")
        )
        logger.info("Message sent by %s to %s", self.token_data.key, target.label)

        return ToolResult(
            text=(
                f"✅ Message sent to {target.label}!\n\n"
                f"Timestamp: {resp.get('ts')}\n"
                f"Channel: {resp.get('channel')}\n"
                f"Sent as: {self.signature}"
            ),
            data={"channel": resp.get("channel"), "ts": resp.get("ts")},
        )

    async def send_dm(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        result = await resolver.resolve(arguments["user"])
        if not isinstance(result, Resolved):
            return describe_resolution_failure(result, "send the direct message")

        profile = result.profile
        target = await TargetBuilder(self.directory, resolver).open_direct_message(profile)
        resp = await self.client.chat_post_message(target.channel_id, arguments["text"])
        logger.info("DM sent by %s to %s", self.token_data.key, profile.id)

        return ToolResult(
            text=(
                f"✅ Direct message sent to {profile.label}!\n\n"
                f"Recipient: {profile.label} (@{profile.username})\n"
                f"User ID: {profile.id}\n"
                f"Timestamp: {resp.get('ts')}\n"
                f"Sent as: {self.token_data.user_name}"
            ),
            data={"channel": target.channel_id, "ts": resp.get("ts"), "user": profile.summary()},
        )

    async def get_channels(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        types = arguments.get("types") or "public_channel,private_channel"
        limit = _int_arg(arguments, "limit", 100)

        channels: List[Dict[str, Any]] = []
        cursor = None
        while True:
            resp = await self.client.conversations_list(types=types, limit=self.page_size, cursor=cursor)
            channels.extend(resp.get("channels") or [])
            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor or len(channels) >= limit:
                break

        channels.sort(key=lambda ch: (-(ch.get("num_members") or 0), ch.get("name") or ""))
        shown = channels[:limit]

        if not shown:
            return ToolResult(text=f"No channels found in {self.token_data.team_name}.", data={"channels": []})

        lines = []
        for ch in shown:
            kind = "🔒 Private" if ch.get("is_private") else "🌍 Public"
            members = f" ({ch['num_members']} members)" if ch.get("num_members") else ""
            archived = " [ARCHIVED]" if ch.get("is_archived") else ""
            lines.append(f"• #{ch.get('name')} {kind}{members}{archived} - {ch.get('id')}")

        return ToolResult(
            text=(
                f"📋 Channels in {self.token_data.team_name} (showing {len(shown)} of {len(channels)}):\n\n"
                + "\n".join(lines)
                + f"\n\n*Connected as: {self.token_data.user_name}*"
            ),
            data={"channels": [{"id": ch.get("id"), "name": ch.get("name")} for ch in shown]},
        )

    async def get_channel_history(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        target, failure = await self._target(arguments["channel"], resolver, "read the history")
        if failure:
            return failure

        limit = _int_arg(arguments, "limit", 20, maximum=100)
        resp = await self.client.conversations_history(target.channel_id, limit=limit)
        messages = resp.get("messages") or []

        if not messages:
            return ToolResult(text=f"No messages found in {target.label}.", data={"messages": []})

        names = await resolve_display_names(self.directory, [m.get("user") for m in messages])
        lines = [
            f"[{format_timestamp(m.get('ts'))}] {names.get(m.get('user'), m.get('user') or m.get('username') or 'Unknown')}: "
            f"{m.get('text') or '(no text)'} (ts: {m.get('ts')})"
            for m in messages
        ]

        return ToolResult(
            text=f"💬 Last {len(messages)} messages in {target.label}:\n\n" + "\n\n".join(lines),
            data={"channel": target.channel_id, "count": len(messages)},
        )

    async def get_users(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        limit = _int_arg(arguments, "limit", 50)
        search = arguments.get("search")
        include_bots = _bool_arg(arguments, "include_bots", False)
        active_only = _bool_arg(arguments, "active_only", True)
        query = normalize_query(search) if search else ""

        users = []
        for user in await resolver.cache.all_users():
            if user.is_deleted:
                continue
            if user.is_bot and not include_bots:
                continue
            # Presence is only known when Slack reports it
            if active_only and user.presence == Presence.AWAY:
                continue
            if query and score(user, query) == 0:
                continue
            users.append(user)

        users.sort(key=lambda u: (u.presence != Presence.ACTIVE, (u.real_name or u.username).lower()))
        shown = users[:limit]

        search_info = f' matching "{search}"' if search else ""
        if not shown:
            return ToolResult(text=f"No users found{search_info}.", data={"users": []})

        lines = "\n".join(format_user_line(u, self.token_data.user_id) for u in shown)
        return ToolResult(
            text=(
                f"👥 Users in {self.token_data.team_name} (showing {len(shown)} of {len(users)} users{search_info}):\n\n"
                f"{lines}\n\n*🟢 = Active, ⚪ = Away/Unknown, 🤖 = Bot*"
            ),
            data={"users": [u.summary() for u in shown]},
        )

    async def search_users(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        search = arguments["search"]
        limit = _int_arg(arguments, "limit", 10)

        ranked = rank_candidates(await resolver.cache.all_users(), normalize_query(search))[:limit]
        if not ranked:
            return ToolResult(text=f'🔍 No users found matching "{search}"', data={"users": []})

        lines = "\n".join(
            format_user_line(c.profile, self.token_data.user_id, show_email=True) for c in ranked
        )
        return ToolResult(
            text=f'🔍 User search results for "{search}":\n\n{lines}\n\n*Found {len(ranked)} matches*',
            data={"users": [dict(c.profile.summary(), score=c.score) for c in ranked]},
        )

    async def search_messages(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        query = arguments["query"]
        limit = _int_arg(arguments, "limit", 10, maximum=SEARCH_MAX_COUNT)
        resolve_users = _bool_arg(arguments, "resolve_users", True)

        processed = query
        notes = []
        for match in USER_REF_PATTERN.finditer(query):
            prefix, username = match.group(1), match.group(2)
            result = await resolver.resolve(username)
            if isinstance(result, Resolved):
                processed = processed.replace(match.group(0), f"{prefix}<@{result.profile.id}>", 1)
                continue
            logger.warning("Could not resolve user %r in search query", username)
            failure = describe_resolution_failure(result, f"narrow the search to {username}")
            notes.append(failure.text)

        resp = await self.client.search_messages(processed, count=limit)
        messages = resp.get("messages") or {}
        matches = (messages.get("matches") or [])[:limit]
        note_text = ("\n\n" + "\n\n".join(notes)) if notes else ""

        if not matches:
            return ToolResult(
                text=f'🔍 No messages found for query: "{query}"{note_text}',
                data={"query": processed, "total": 0},
            )

        names: Dict[str, str] = {}
        if resolve_users:
            names = await resolve_display_names(self.directory, [m.get("user") for m in matches])

        lines = []
        for m in matches:
            channel = m.get("channel") or {}
            where = f"#{channel['name']}" if channel.get("name") and not channel.get("is_im") else "DM"
            author = names.get(m.get("user")) or m.get("username") or m.get("user") or "Unknown"
            lines.append(f"[{format_timestamp(m.get('ts'))}] {author} in {where}: {m.get('text', '')}")

        total = messages.get("total", len(matches))
        return ToolResult(
            text=(
                f'🔍 Search results for "{query}":\n\n' + "\n\n".join(lines)
                + f"\n\n*Found {total} total messages • Showing {len(lines)}*{note_text}"
            ),
            data={"query": processed, "total": total},
        )

    async def get_user_info(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        result = await resolver.resolve(arguments["user"])
        if not isinstance(result, Resolved):
            return describe_resolution_failure(result, "look up the user")

        user_id = result.profile.id
        u = (await self.client.users_info(user_id)).get("user") or {}
        profile = u.get("profile") or {}

        try:
            presence_resp = await self.client.users_get_presence(user_id)
            presence = presence_resp.get("presence") or "unknown"
            if presence_resp.get("auto_away"):
                presence += " (auto away)"
        except SlackApiError:
            presence = "unknown"

        if u.get("is_bot"):
            account_type = "Bot"
        elif u.get("is_app_user"):
            account_type = "App User"
        else:
            account_type = "Regular User"

        def yes_no(flag):
            return "Yes" if flag else "No"

        text = "\n".join([
            "👤 User Information:",
            "",
            f"Name: {u.get('real_name') or u.get('name')}",
            f"Username: @{u.get('name')}",
            f"Display Name: {profile.get('display_name') or 'Not set'}",
            f"ID: {u.get('id', user_id)}",
            f"Email: {profile.get('email') or 'Not available'}",
            f"Title: {profile.get('title') or 'Not set'}",
            f"Status: {presence}",
            f"Timezone: {u.get('tz_label') or 'Not available'}",
            f"Is Admin: {yes_no(u.get('is_admin'))}",
            f"Is Owner: {yes_no(u.get('is_owner'))}",
            f"Account Type: {account_type}",
            f"Status Text: {profile.get('status_text') or 'None'}",
            f"Status Emoji: {profile.get('status_emoji') or 'None'}",
        ])
        return ToolResult(text=text, data={"user": result.profile.summary(), "presence": presence})

    async def _react(self, arguments: Dict[str, Any], resolver: Resolver, remove: bool) -> ToolResult:
        verb = "remove the reaction" if remove else "add the reaction"
        target, failure = await self._target(arguments["channel"], resolver, verb)
        if failure:
            return failure

        name = arguments["name"].replace(":", "").strip()
        timestamp = arguments["timestamp"]
        if remove:
            await self.client.reactions_remove(target.channel_id, timestamp, name)
        else:
            await self.client.reactions_add(target.channel_id, timestamp, name)

        logger.info(
            "Reaction :%s: %s by %s on %s in %s",
            name, "removed" if remove else "added", self.token_data.key, timestamp, target.label,
        )
        done = "Removed" if remove else "Added"
        return ToolResult(
            text=(
                f"✅ {done} :{name}: reaction!\n\n"
                f"Target: {target.label}\n"
                f"Message timestamp: {timestamp}"
            ),
            data={"channel": target.channel_id, "timestamp": timestamp, "name": name},
        )

    async def add_reaction(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        return await self._react(arguments, resolver, remove=False)

    async def remove_reaction(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        return await self._react(arguments, resolver, remove=True)

    async def list_files(self, arguments: Dict[str, Any], resolver: Resolver) -> ToolResult:
        limit = _int_arg(arguments, "limit", 20, maximum=100)
        channel_id = None
        user_id = None
        scope = []

        if arguments.get("channel"):
            target, failure = await self._target(arguments["channel"], resolver, "list the files")
            if failure:
                return failure
            channel_id = target.channel_id
            scope.append(f"in {target.label}")

        if arguments.get("user"):
            result = await resolver.resolve(arguments["user"])
            if not isinstance(result, Resolved):
                return describe_resolution_failure(result, "list the files")
            user_id = result.profile.id
            scope.append(f"from {result.profile.label}")

        resp = await self.client.files_list(channel_id=channel_id, user_id=user_id, count=limit)
        files = (resp.get("files") or [])[:limit]
        where = (" " + " ".join(scope)) if scope else ""

        if not files:
            return ToolResult(text=f"📁 No files found{where}.", data={"files": []})

        lines = []
        for f in files:
            size = f" {f['size']} bytes" if f.get("size") else ""
            lines.append(
                f"• {f.get('title') or f.get('name')} ({f.get('filetype', 'file')}{size}) - {f.get('id')}"
                + (f"\n  {f['permalink']}" if f.get("permalink") else "")
            )
        return ToolResult(
            text=f"📁 Files{where} (showing {len(files)}):\n\n" + "\n".join(lines),
            data={"files": [{"id": f.get("id"), "name": f.get("name")} for f in files]},
        )
