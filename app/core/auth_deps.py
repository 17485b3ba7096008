#app/core/auth_deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from app.core.security import decode_token
from app.models.enums import ParticipantRole
from app.policies.rbac import Principal

bearer = HTTPBearer(auto_error=False)


def get_current_principal(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid
    - uid and role are present
    - role is a valid ParticipantRole (the scheduler role is never accepted from a token)
    """

    if creds is None:
        raise HTTPException(status_code=401, detail="Missing bearer token.")

    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    uid = payload.get("uid") or payload.get("sub")
    role = payload.get("role")
    org_id = payload.get("orgId")
    display_name = payload.get("display_name") or "Unknown"

    if not role or not uid:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    try:
        role_enum = ParticipantRole(role)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid role in token.")
    if role_enum == ParticipantRole.SCHEDULER:
        raise HTTPException(status_code=401, detail="Invalid role in token.")

    principal = Principal(
        uid=str(uid),
        role=role_enum,
        org_id=str(org_id) if org_id else None,
        display_name=str(display_name),
    )

    # Make principal available to downstream middleware / handlers
    request.state.principal = principal

    return principal
