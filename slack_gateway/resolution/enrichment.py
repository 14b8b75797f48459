import asyncio
import logging
from typing import Dict, Iterable

from slack_gateway.errors import GatewayError
from slack_gateway.resolution.directory import Directory

logger = logging.getLogger(__name__)


async def _display_name(directory: Directory, user_id: str) -> str:
    try:
        profile = await directory.fetch_user_by_id(user_id)
    except GatewayError as e:
        logger.debug("Falling back to raw ID for %s: %s", user_id, e)
        return user_id
    return profile.label


async def resolve_display_names(directory: Directory, user_ids: Iterable[str]) -> Dict[str, str]:
    """
    Look up display names for every distinct author concurrently.

    A failed lookup maps the ID to itself instead of failing the batch.
    """
    distinct = list(dict.fromkeys(uid for uid in user_ids if uid))
    names = await asyncio.gather(*(_display_name(directory, uid) for uid in distinct))
    return dict(zip(distinct, names))
