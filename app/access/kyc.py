# app/access/kyc.py
from __future__ import annotations

import logging

from app.delivery import repository as delivery_repo
from app.errors import ForbiddenError
from app.orders import repository as orders_repo

logger = logging.getLogger("jemo")

KYC_APPROVED = "APPROVED"


def assert_account_active(conn, user) -> None:
    """
    Read-time gate in front of vendor and agency actions.

    Customers and admins pass; a vendor needs an APPROVED KYC record and an
    agency needs an active agency record.
    """
    role = (user.role or "").upper()

    if role in ("CUSTOMER", "ADMIN"):
        return

    if role == "VENDOR":
        profile = orders_repo.get_vendor_profile(conn, user.user_id)
        if not profile or profile.get("kyc_status") != KYC_APPROVED:
            logger.warning(
                "kyc_gate_denied user_id=%s kyc_status=%s",
                user.user_id,
                (profile or {}).get("kyc_status"),
            )
            raise ForbiddenError(
                "KYC_REQUIRED",
                "KYC approval required to perform this action",
                kycStatus=(profile or {}).get("kyc_status"),
            )
        return

    if role == "DELIVERY_AGENCY":
        agency = delivery_repo.get_agency_by_user(conn, user.user_id)
        if not agency or not agency.get("is_active"):
            logger.warning("agency_gate_denied user_id=%s", user.user_id)
            raise ForbiddenError(
                "AGENCY_INACTIVE",
                "Your delivery agency account is not active",
            )
        return

    raise ForbiddenError("FORBIDDEN", "Forbidden")
