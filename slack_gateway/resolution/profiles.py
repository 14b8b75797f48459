from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Presence(str, Enum):
    ACTIVE = "active"
    AWAY = "away"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Presence":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class UserProfile:
    """Read-only view of a Slack workspace member."""

    id: str
    username: str = ""
    real_name: str = ""
    display_name: str = ""
    email: Optional[str] = None
    is_bot: bool = False
    is_deleted: bool = False
    presence: Presence = Presence.UNKNOWN
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_slack(cls, member: Dict[str, Any]) -> "UserProfile":
        profile = member.get("profile") or {}
        return cls(
            id=member["id"],
            username=member.get("name") or "",
            real_name=member.get("real_name") or profile.get("real_name") or "",
            display_name=profile.get("display_name") or "",
            email=profile.get("email") or None,
            # Slackbot is flagged only by its fixed ID
            is_bot=bool(member.get("is_bot")) or member["id"] == "USLACKBOT",
            is_deleted=bool(member.get("deleted")),
            presence=Presence.parse(member.get("presence")),
            raw=member,
        )

    @property
    def is_candidate(self) -> bool:
        """Bots and deactivated accounts never take part in name resolution."""
        return not (self.is_bot or self.is_deleted)

    @property
    def label(self) -> str:
        return self.real_name or self.username or self.display_name or self.id

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "real_name": self.real_name,
            "display_name": self.display_name,
        }
