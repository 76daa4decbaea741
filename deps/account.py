# deps/account.py
from fastapi import Depends

from app.access.kyc import assert_account_active
from db import get_conn
from deps.auth import CurrentUser, get_current_user, require_role


def require_active_account(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    with get_conn() as conn:
        assert_account_active(conn, user)
    return user


def require_active_role(*roles: str):
    """Role check first, then the KYC / active-agency gate."""
    role_dep = require_role(*roles)

    def _dep(user: CurrentUser = Depends(role_dep)) -> CurrentUser:
        return require_active_account(user)

    return _dep


require_active_vendor = require_active_role("VENDOR")
require_active_agency = require_active_role("DELIVERY_AGENCY")
