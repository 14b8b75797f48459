from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import secrets

import jwt

ALGORITHM = "HS256"


def create_access_token(
    token_key: str,
    client_user_id: str,
    secret_key: str,
    ttl_seconds: int,
    now: Optional[datetime] = None,
) -> str:
    """
    Create a signed JWT access token bound to a Slack token key ("team:user").
    """
    now = now or datetime.now(timezone.utc)
    exp = now + timedelta(seconds=ttl_seconds)

    payload = {
        "sub": token_key,
        "cid": client_user_id,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        # Two tokens minted in the same second must still differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: Optional[str], secret_key: str) -> Optional[Dict[str, Any]]:
    """
    Decode JWT and return its claims if valid, else None.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    if not payload.get("sub"):
        return None
    return payload
