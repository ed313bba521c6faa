from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from fitstake.config import settings

JWT_ALG = "HS256"

def make_access_token(sub: str, role: str | None = None, ttl_min: int | None = None) -> str:
    """Issued by the identity service; minted here only for tooling and tests."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": sub,
        "type": "access",
        "iat": now.timestamp(),
        "exp": int((now + timedelta(minutes=ttl_min or settings.access_ttl_min)).timestamp()),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
