"""
Exception taxonomy for the gateway.

Resolution outcomes (ambiguous or unknown users) are returned as values by the
resolver, not raised; the exceptions here cover upstream failures only.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for errors raised by the gateway."""

    retryable: bool = False


class SlackApiError(GatewayError):
    """Exception raised when Slack API returns an error."""

    def __init__(
        self,
        message: str,
        slack_error: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.slack_error = slack_error
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.slack_error in ("ratelimited", "request_failed")


class UserNotFoundError(GatewayError):
    """A direct lookup by user ID was rejected by the directory."""

    def __init__(self, user_id: str, slack_error: Optional[str] = None):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id
        self.slack_error = slack_error


class DirectoryUnavailable(GatewayError):
    """The workspace directory could not be read."""

    retryable = True

    def __init__(self, cause: Optional[BaseException] = None, message: Optional[str] = None):
        if message is None:
            message = f"Slack user directory unavailable: {cause}" if cause else "Slack user directory unavailable"
        super().__init__(message)
        self.cause = cause


class ConversationOpenFailed(GatewayError):
    """Opening a direct message failed after the user was resolved."""

    def __init__(self, profile, cause: Optional[BaseException] = None):
        label = getattr(profile, "label", None) or getattr(profile, "id", "user")
        super().__init__(f"Could not open a direct message with {label}: {cause}")
        self.profile = profile
        self.cause = cause
