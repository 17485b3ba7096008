# app/core/security.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from app.core.config import get_settings

# tokens without these are rejected before any claim is read
_REQUIRED = {"require_exp": True, "require_sub": True}


def create_access_token(subject: str, claims: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.jwt_access_token_minutes)
    payload = {
        **claims,
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_principal_token(
    uid: str,
    role: Any,
    org_id: Optional[str] = None,
    display_name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Mints the claim set get_current_principal reads back:
    uid, role, optional orgId / display_name.
    """
    claims: Dict[str, Any] = {"uid": uid, "role": getattr(role, "value", role)}
    if org_id:
        claims["orgId"] = org_id
    if display_name:
        claims["display_name"] = display_name
    return create_access_token(uid, claims, expires_minutes)


def decode_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        options=_REQUIRED,
    )
