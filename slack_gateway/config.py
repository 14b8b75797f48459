import logging
import os
import secrets
import sys

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")

        self.SLACK_CLIENT_ID: str = os.getenv("SLACK_CLIENT_ID", "")
        self.SLACK_CLIENT_SECRET: str = os.getenv("SLACK_CLIENT_SECRET", "")

        # Empty means "derive from the incoming request"
        self.SLACK_REDIRECT_URI: str = os.getenv("SLACK_REDIRECT_URI", "")
        self.SLACK_API_BASE_URL: str = os.getenv("SLACK_API_BASE_URL", "https://slack.com/api")

        # Signs MCP access tokens; a per-process key invalidates tokens on restart
        self.APP_SECRET_KEY: str = os.getenv("APP_SECRET_KEY") or secrets.token_hex(32)

        self.ACCESS_TOKEN_TTL_SECONDS: int = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "3600"))
        self.AUTH_CODE_TTL_MINUTES: int = int(os.getenv("AUTH_CODE_TTL_MINUTES", "10"))

        self.DIRECTORY_PAGE_SIZE: int = int(os.getenv("DIRECTORY_PAGE_SIZE", "200"))
        self.DIRECTORY_TIMEOUT_SECONDS: float = float(os.getenv("DIRECTORY_TIMEOUT_SECONDS", "30"))

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.ENABLE_DEBUG_ENDPOINTS: bool = _env_bool("ENABLE_DEBUG_ENDPOINTS")

    @property
    def slack_oauth_configured(self) -> bool:
        return bool(self.SLACK_CLIENT_ID and self.SLACK_CLIENT_SECRET)


settings = Settings()


def configure_logging(level: str = "INFO") -> None:
    """Install one stderr handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in root.handlers:
        if getattr(handler, "_slack_gateway", False):
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    handler._slack_gateway = True
    root.addHandler(handler)
