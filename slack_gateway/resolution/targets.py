"""
Classifies a channel argument once and turns it into an addressable
conversation.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from slack_gateway.errors import ConversationOpenFailed, GatewayError
from slack_gateway.resolution.directory import Directory
from slack_gateway.resolution.profiles import UserProfile
from slack_gateway.resolution.resolver import Ambiguous, NotFound, Resolved, Resolver

logger = logging.getLogger(__name__)

# Public (C), private/multi-party (G) and direct message (D) conversation IDs
# At least one digit, so all-caps names like CHRISTOPHER stay names
CONVERSATION_ID_PATTERN = re.compile(r"^[CGD](?=[A-Z0-9]*\d)[A-Z0-9]{8,}$")
CHANNEL_PREFIX = "#"


@dataclass(frozen=True)
class ConversationId:
    id: str


@dataclass(frozen=True)
class ChannelRef:
    name: str


@dataclass(frozen=True)
class UserRef:
    identifier: str


TargetRef = Union[ConversationId, ChannelRef, UserRef]


def classify_target(raw: str) -> TargetRef:
    value = raw.strip()
    if CONVERSATION_ID_PATTERN.match(value):
        return ConversationId(value)
    if value.startswith(CHANNEL_PREFIX):
        return ChannelRef(value[len(CHANNEL_PREFIX):])
    return UserRef(value)


@dataclass(frozen=True)
class ConversationTarget:
    channel_id: str
    user: Optional[UserProfile] = None

    @property
    def is_direct_message(self) -> bool:
        return self.user is not None

    @property
    def label(self) -> str:
        if self.user is not None:
            return f"DM with {self.user.label}"
        if CONVERSATION_ID_PATTERN.match(self.channel_id):
            return self.channel_id
        return f"#{self.channel_id}"


TargetResult = Union[ConversationTarget, Ambiguous, NotFound]


class TargetBuilder:
    def __init__(self, directory: Directory, resolver: Resolver):
        self.directory = directory
        self.resolver = resolver

    async def build_target(self, raw: str) -> TargetResult:
        ref = classify_target(raw)

        if isinstance(ref, ConversationId):
            return ConversationTarget(ref.id)
        if isinstance(ref, ChannelRef):
            # Existence is checked by whichever API call uses the target
            return ConversationTarget(ref.name)

        result = await self.resolver.resolve(ref.identifier)
        if not isinstance(result, Resolved):
            return result
        return await self.open_direct_message(result.profile)

    async def open_direct_message(self, profile: UserProfile) -> ConversationTarget:
        try:
            channel_id = await self.directory.open_direct_message(profile.id)
        except GatewayError as e:
            logger.warning("conversations.open failed for %s: %s", profile.id, e)
            raise ConversationOpenFailed(profile, e) from e
        return ConversationTarget(channel_id, user=profile)
