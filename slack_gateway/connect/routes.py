from fastapi import APIRouter, Depends, HTTPException, Request

from slack_gateway.auth.schemas import SlackTokenRegistration
from slack_gateway.auth.tokens import register_slack_token
from slack_gateway.deps import get_base_url, get_registries, get_settings, get_slack_transport
from slack_gateway.errors import SlackApiError

router = APIRouter(prefix="/connect", tags=["connect"])


@router.get("")
def get_connect_links(request: Request):
    base_url = get_base_url(request)

    # Links the user opens in a browser or pastes into their MCP client
    return {
        "authorize_url": f"{base_url}/oauth/slack",
        "mcp_endpoint": f"{base_url}/mcp",
        "sse_endpoint": f"{base_url}/mcp/sse",
        "direct_token_endpoint": f"{base_url}/connect/token",
        "note": "Each person connects their own Slack account; messages are sent as that user.",
    }


@router.post("/token", status_code=201)
async def register_direct_token(
    payload: SlackTokenRegistration,
    registries=Depends(get_registries),
    settings=Depends(get_settings),
    transport=Depends(get_slack_transport),
):
    """Register a raw Slack user token (xoxp-...) instead of going through OAuth."""
    try:
        token_data = await register_slack_token(
            registries, settings, payload.slack_token, payload.name, transport=transport
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SlackApiError as e:
        raise HTTPException(status_code=400, detail=f"Registration failed: {e.slack_error}")

    return {
        "success": True,
        "message": "Successfully registered",
        "team_id": token_data.team_id,
        "user_id": token_data.user_id,
        "user_name": token_data.user_name,
    }
