# deps/auth.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from uuid import UUID

from security import ROLES, decode_token

bearer = HTTPBearer(auto_error=False)


class CurrentUser:
    def __init__(self, user_id: UUID, role: str):
        self.user_id = user_id
        self.role = role

    @property
    def actor_name(self) -> str:
        return f"{self.role}:{self.user_id}"


def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> CurrentUser:
    if not creds:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # must be "Bearer"
    if (creds.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    payload = decode_token(creds.credentials)
    sub = payload.get("sub")
    role = (payload.get("role") or "").strip().upper()
    if not sub or role not in ROLES:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    try:
        user_id = UUID(str(sub))
    except ValueError:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    return CurrentUser(user_id=user_id, role=role)


def require_role(*roles: str):
    allowed = {r.upper() for r in roles}

    def _dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="FORBIDDEN")
        return user

    return _dep


require_admin = require_role("ADMIN")
require_vendor = require_role("VENDOR")
require_agency = require_role("DELIVERY_AGENCY")
require_customer = require_role("CUSTOMER")
