# app/wallets/service.py
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from app.errors import BadRequestError, NotFoundError
from app.payouts import repository as payouts_repo
from app.wallets import repository as wallets_repo
from db import get_conn
from services import audit_log
from services.audit_log import write_audit_log
from services.observability import log_event
from settings import settings

logger = logging.getLogger("jemo.payouts")

# wallet_transactions.type
CREDIT_PENDING = "CREDIT_PENDING"
CREDIT_AVAILABLE = "CREDIT_AVAILABLE"
DEBIT_WITHDRAWAL = "DEBIT_WITHDRAWAL"
REVERSAL = "REVERSAL"

# wallet_transactions.status
TX_PENDING = "PENDING"
TX_POSTED = "POSTED"
TX_CANCELLED = "CANCELLED"

# wallet_transactions.reference_type
REF_ORDER = "ORDER"
REF_PAYOUT = "PAYOUT"
REF_ADJUSTMENT = "ADJUSTMENT"


def _wallet_not_found() -> NotFoundError:
    return NotFoundError("WALLET_NOT_FOUND", "Vendor wallet not found")


# ==========================================================
# Ledger helpers (run inside the caller's transaction)
# ==========================================================

def credit_available_for_order(conn, *, vendor_id: UUID, order_id: UUID, amount: int) -> Optional[dict]:
    """
    Credit a completed order's earnings to the vendor.

    The ledger row is unique per (ORDER, order_id, CREDIT_AVAILABLE); when it
    already exists nothing is credited and None is returned.
    Zero earnings (free items, full commission) write no ledger row.
    """
    wallet = wallets_repo.get_or_create_wallet(
        conn, vendor_id, currency=settings.CURRENCY, for_update=True
    )
    if int(amount) <= 0:
        log_event(logger, "wallet_credit_skipped", order_id=order_id, vendor_id=vendor_id, amount=amount)
        return None

    tx = wallets_repo.insert_transaction(
        conn,
        wallet_id=wallet["id"],
        type=CREDIT_AVAILABLE,
        amount=int(amount),
        currency=wallet["currency"],
        reference_type=REF_ORDER,
        reference_id=order_id,
        status=TX_POSTED,
        note="Order completed",
    )
    if tx is None:
        log_event(logger, "wallet_credit_duplicate", level=logging.WARNING, order_id=order_id, vendor_id=vendor_id)
        return None

    wallets_repo.adjust_available_balance(conn, wallet["id"], int(amount))
    log_event(logger, "wallet_credited", order_id=order_id, vendor_id=vendor_id, amount=amount)
    return tx


def reverse_payout(conn, payout: dict, *, reason: str) -> dict:
    """Give a failed payout's amount back to the wallet with a POSTED REVERSAL."""
    wallet = wallets_repo.get_wallet_by_id(conn, payout["wallet_id"], for_update=True)
    if not wallet:
        raise _wallet_not_found()

    tx = wallets_repo.insert_transaction(
        conn,
        wallet_id=wallet["id"],
        type=REVERSAL,
        amount=int(payout["amount"]),
        currency=wallet["currency"],
        reference_type=REF_PAYOUT,
        reference_id=payout["id"],
        status=TX_POSTED,
        note=reason,
    )
    wallets_repo.adjust_available_balance(conn, wallet["id"], int(payout["amount"]))
    return tx


# ==========================================================
# Vendor read side
# ==========================================================

def wallet_summary(vendor_id: UUID) -> dict[str, Any]:
    with get_conn() as conn:
        wallet = wallets_repo.get_or_create_wallet(conn, vendor_id, currency=settings.CURRENCY)
        recent = wallets_repo.recent_transactions(conn, wallet["id"], limit=10)
        in_flight = payouts_repo.count_in_flight(conn, vendor_id)

    return {
        "wallet_id": wallet["id"],
        "currency": wallet["currency"],
        "available_balance": int(wallet["available_balance"]),
        "pending_balance": int(wallet["pending_balance"]),
        "withdrawals_locked": bool(wallet["withdrawals_locked"]),
        "lock_reason": wallet.get("lock_reason"),
        "last_withdrawal_at": wallet.get("last_withdrawal_at"),
        "recent_transactions": recent,
        "payouts_in_flight": in_flight,
    }


# ==========================================================
# Admin lock / unlock
# ==========================================================

def lock_withdrawals(vendor_id: UUID, admin_id: UUID, *, reason: str) -> dict:
    with get_conn() as conn:
        wallet = wallets_repo.get_wallet(conn, vendor_id, for_update=True)
        if not wallet:
            raise _wallet_not_found()
        if wallet["withdrawals_locked"]:
            raise BadRequestError(
                "ALREADY_LOCKED",
                "Withdrawals are already locked for this wallet",
                lockReason=wallet.get("lock_reason"),
            )

        updated = wallets_repo.set_withdrawals_locked(conn, wallet["id"], reason=reason, admin_id=admin_id)
        if updated is None:
            raise BadRequestError("ALREADY_LOCKED", "Withdrawals are already locked for this wallet")

        write_audit_log(
            conn,
            actor_user_id=str(admin_id),
            action=audit_log.WITHDRAWALS_LOCK,
            target_type="vendor_wallet",
            target_id=str(wallet["id"]),
            metadata={"vendor_id": str(vendor_id), "reason": reason},
        )

    log_event(logger, "withdrawals_locked", vendor_id=vendor_id, admin_id=admin_id)
    return updated


def unlock_withdrawals(vendor_id: UUID, admin_id: UUID) -> dict:
    with get_conn() as conn:
        wallet = wallets_repo.get_wallet(conn, vendor_id, for_update=True)
        if not wallet:
            raise _wallet_not_found()
        if not wallet["withdrawals_locked"]:
            raise BadRequestError("NOT_LOCKED", "Withdrawals are not locked for this wallet")

        updated = wallets_repo.clear_withdrawals_lock(conn, wallet["id"])
        if updated is None:
            raise BadRequestError("NOT_LOCKED", "Withdrawals are not locked for this wallet")

        write_audit_log(
            conn,
            actor_user_id=str(admin_id),
            action=audit_log.WITHDRAWALS_UNLOCK,
            target_type="vendor_wallet",
            target_id=str(wallet["id"]),
            metadata={"vendor_id": str(vendor_id), "previous_reason": wallet.get("lock_reason")},
        )

    log_event(logger, "withdrawals_unlocked", vendor_id=vendor_id, admin_id=admin_id)
    return updated
