"""FastAPI dependencies shared by the routers."""

from typing import Optional

import httpx
from fastapi import Request

from slack_gateway.config import Settings
from slack_gateway.slack.client import SlackClient
from slack_gateway.store import Registries


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registries(request: Request) -> Registries:
    return request.app.state.registries


def get_slack_transport(request: Request) -> Optional[httpx.AsyncBaseTransport]:
    return request.app.state.slack_transport


def get_base_url(request: Request) -> str:
    protocol = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{protocol}://{host}"


def make_slack_client(request: Request, access_token: str) -> SlackClient:
    return SlackClient(
        access_token,
        base_url=get_settings(request).SLACK_API_BASE_URL,
        transport=get_slack_transport(request),
    )
