import os
import time
import logging
from typing import Optional, Dict, Any

import jwt

logger = logging.getLogger(__name__)


def _secret() -> str:
    return os.getenv("SECRET_KEY") or "dev-secret-change-me"


def create_access_token(user_id: str, ttl_seconds: int = 60 * 60 * 24 * 7) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + ttl_seconds,
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm="HS256")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, _secret(), algorithms=["HS256"])
    except jwt.PyJWTError:
        return None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def user_id_from_header(auth_header: str) -> Optional[str]:
    token = get_bearer_token(auth_header)
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    sub = str(payload.get("sub") or "").strip()
    return sub or None
