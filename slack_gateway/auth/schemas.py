from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlackTokenData(BaseModel):
    """A Slack user token and the identity it acts as."""

    access_token: str
    team_id: str
    user_id: str
    team_name: Optional[str] = None
    user_name: str
    scope: str = ""
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> str:
        return f"{self.team_id}:{self.user_id}"

    @property
    def scope_count(self) -> int:
        return len([s for s in self.scope.split(",") if s])


class OAuthClient(BaseModel):
    client_id: str
    client_name: Optional[str] = None
    redirect_uris: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class PendingAuthorization(BaseModel):
    """An MCP client waiting for the user to finish Slack OAuth."""

    client_user_id: str
    state: str
    redirect_uri: str
    client_id: Optional[str] = None
    # Accepted for client compatibility, never verified
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    expires_at: datetime


class AuthorizationCode(BaseModel):
    team_id: str
    user_id: str
    client_user_id: str
    client_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    @property
    def token_key(self) -> str:
        return f"{self.team_id}:{self.user_id}"


class AccessTokenGrant(BaseModel):
    token_key: str
    client_user_id: str
    client_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


class McpSession(BaseModel):
    token_key: str
    created_at: datetime = Field(default_factory=utcnow)


class ClientRegistrationRequest(BaseModel):
    client_name: Optional[str] = None
    redirect_uris: List[str] = Field(default_factory=list)


class SlackTokenRegistration(BaseModel):
    slack_token: str
    name: Optional[str] = None
