from .client import SLACK_API_BASE_URL, SlackClient, exchange_oauth_code
from .directory import SlackDirectory

__all__ = ["SLACK_API_BASE_URL", "SlackClient", "SlackDirectory", "exchange_oauth_code"]
