# app/payouts/profile.py
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from app.errors import BadRequestError
from app.payouts import repository as payouts_repo
from app.payouts.phone import MTN, ORANGE, detect_operator, normalize_or_raise
from db import get_conn
from services.redaction import mask_phone

logger = logging.getLogger("jemo.payouts")

# payout method -> operator expected behind the number
METHOD_OPERATORS = {
    "CM_MOMO": MTN,
    "CM_OM": ORANGE,
}


def get_payout_profile(vendor_id: UUID) -> Optional[dict]:
    with get_conn() as conn:
        return payouts_repo.get_payout_profile(conn, vendor_id)


def upsert_payout_profile(vendor_id: UUID, *, method: str, phone: str, full_name: str) -> dict:
    method = (method or "").strip().upper()
    if method not in METHOD_OPERATORS:
        raise BadRequestError(
            "INVALID_PAYOUT_METHOD",
            f"Unsupported payout method: {method}",
            allowedMethods=sorted(METHOD_OPERATORS),
        )

    normalized = normalize_or_raise(phone)

    name = (full_name or "").strip()
    if not 2 <= len(name) <= 100:
        raise BadRequestError("INVALID_NAME", "Full name must be between 2 and 100 characters")

    operator = detect_operator(normalized)
    if operator and operator != METHOD_OPERATORS[method]:
        logger.warning(
            "payout_profile_operator_mismatch vendor_id=%s method=%s operator=%s phone=%s",
            vendor_id,
            method,
            operator,
            mask_phone(normalized),
        )

    with get_conn() as conn:
        return payouts_repo.upsert_payout_profile(
            conn, vendor_id=vendor_id, method=method, phone=normalized, full_name=name
        )
