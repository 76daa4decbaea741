# app/payouts/service.py
from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.orders import repository as orders_repo
from app.payouts import repository as payouts_repo
from app.payouts import state_machine as payouts
from app.payouts.model import PayoutRequest
from app.providers.base import (
    ProviderError,
    StatusResult,
    is_success_response,
    provider_transaction_id,
)
from app.providers.factory import get_payout_provider
from app.wallets import repository as wallets_repo
from app.wallets import service as wallet_service
from db import get_conn
from services import audit_log
from services.audit_log import write_audit_log
from services.observability import log_event
from services.redaction import redact_dict
from settings import settings

logger = logging.getLogger("jemo.payouts")

KYC_APPROVED = "APPROVED"
WITHDRAWAL_REASON = "Jemo vendor withdrawal"

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while True:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
        if n == 0:
            return out


def generate_app_transaction_ref() -> str:
    """PAYOUT-<ms timestamp in base36>-<random hex>, upper-cased; new on every attempt."""
    return f"PAYOUT-{_base36(int(time.time() * 1000))}-{secrets.token_hex(4)}".upper()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _payout_not_found() -> NotFoundError:
    return NotFoundError("PAYOUT_NOT_FOUND", "Payout not found")


def _resolve_provider(provider):
    provider = provider or get_payout_provider()
    if provider is None:
        raise BadRequestError("PROVIDER_UNAVAILABLE", "No payout provider is configured")
    return provider


def _assert_not_locked(wallet: dict) -> None:
    if wallet.get("withdrawals_locked"):
        reason = wallet.get("lock_reason") or "No reason given"
        raise BadRequestError(
            "WITHDRAWALS_LOCKED",
            f"Withdrawals are locked for this wallet: {reason}",
            lockReason=wallet.get("lock_reason"),
        )


def _assert_can_cover(conn, wallet: dict, amount: int) -> None:
    """Balance minus debits already reserved by in-flight payouts must cover amount."""
    reserved = wallets_repo.pending_debits(conn, wallet["id"])
    spendable = int(wallet["available_balance"]) - reserved
    if spendable < int(amount):
        raise BadRequestError(
            "INSUFFICIENT_BALANCE",
            f"Insufficient balance. Available: {spendable}, required: {int(amount)}",
            availableBalance=spendable,
            requiredAmount=int(amount),
        )


def _require_profile(conn, vendor_id: UUID) -> dict:
    profile = payouts_repo.get_payout_profile(conn, vendor_id)
    if not profile:
        raise BadRequestError(
            "PAYOUT_PROFILE_REQUIRED",
            "Set up a payout profile before withdrawing",
        )
    return profile


# ==========================================================
# Provider leg: reserve -> call -> confirm or compensate
# ==========================================================

def _confirm(payout: dict, tx_id: UUID, response: dict[str, Any]) -> dict:
    with get_conn() as conn:
        moved = payouts_repo.mark_processing(
            conn,
            payout["id"],
            provider_ref=provider_transaction_id(response),
            provider_raw=response,
        )
        if not moved:
            raise BadRequestError(
                "PAYOUT_STATUS_CHANGED",
                "Payout status changed concurrently",
                payoutId=str(payout["id"]),
            )
        wallets_repo.set_transaction_status(conn, tx_id, status=wallet_service.TX_POSTED)
        wallets_repo.get_wallet_by_id(conn, payout["wallet_id"], for_update=True)
        wallets_repo.adjust_available_balance(
            conn, payout["wallet_id"], -int(payout["amount"]), touch_last_withdrawal=True
        )
        return payouts_repo.get_payout(conn, payout["id"])


def _compensate(payout: dict, tx_id: UUID, *, failure_reason: str, response: Optional[dict[str, Any]]) -> None:
    with get_conn() as conn:
        payouts_repo.mark_failed(
            conn,
            payout["id"],
            from_status=payouts.REQUESTED,
            failure_reason=failure_reason,
            provider_raw=response,
        )
        wallets_repo.set_transaction_status(
            conn, tx_id, status=wallet_service.TX_CANCELLED, note=failure_reason
        )


def _send_to_provider(
    provider,
    payout: dict,
    tx_id: UUID,
    *,
    name: str,
    failure_prefix: str,
) -> tuple[Optional[dict], Optional[str]]:
    """
    Call the provider outside any transaction, then settle the local side.

    Returns (payout, None) once the provider accepted, or (None, reason) after
    the compensating transaction has run. The wallet balance is only touched
    on acceptance.
    """
    request = PayoutRequest.for_payout(
        payout, name=name, reason=WITHDRAWAL_REASON, currency=settings.CURRENCY
    )

    response: Optional[dict[str, Any]] = None
    try:
        response = provider.initiate_payout(request)
        accepted = is_success_response(response)
        message = None if accepted else str((response or {}).get("message") or "Payment provider rejected the payout")
    except ProviderError as e:
        accepted = False
        message = e.message
        response = e.response if isinstance(e.response, dict) else None
    except Exception as e:
        logger.exception("payout_provider_call_failed payout_id=%s ref=%s", payout["id"], payout["app_transaction_ref"])
        accepted = False
        message = str(e) or type(e).__name__
        response = None

    if not accepted:
        reason = f"{failure_prefix}: {message}"
        _compensate(payout, tx_id, failure_reason=reason, response=response)
        log_event(
            logger,
            "payout_provider_rejected",
            level=logging.WARNING,
            payout_id=payout["id"],
            ref=payout["app_transaction_ref"],
            reason=message,
        )
        return None, reason

    try:
        updated = _confirm(payout, tx_id, response)
    except Exception:
        # provider holds the money; the payout stays REQUESTED with its debit reserved
        logger.critical(
            "payout_confirm_failed payout_id=%s ref=%s response=%s",
            payout["id"],
            payout["app_transaction_ref"],
            redact_dict(response),
            exc_info=True,
        )
        raise

    log_event(
        logger,
        "payout_processing",
        payout_id=payout["id"],
        ref=payout["app_transaction_ref"],
        provider_ref=updated.get("provider_ref"),
    )
    return updated, None


# ==========================================================
# Vendor withdraw
# ==========================================================

def withdraw(vendor_id: UUID, amount: int, *, provider=None) -> dict:
    amount = int(amount)
    if amount < settings.MIN_WITHDRAWAL_AMOUNT:
        raise BadRequestError(
            "AMOUNT_BELOW_MINIMUM",
            f"Minimum withdrawal is {settings.MIN_WITHDRAWAL_AMOUNT} {settings.CURRENCY}",
            minimum=settings.MIN_WITHDRAWAL_AMOUNT,
        )
    if amount > settings.MAX_WITHDRAWAL_AMOUNT:
        raise BadRequestError(
            "AMOUNT_ABOVE_MAXIMUM",
            f"Maximum withdrawal is {settings.MAX_WITHDRAWAL_AMOUNT} {settings.CURRENCY}",
            maximum=settings.MAX_WITHDRAWAL_AMOUNT,
        )

    provider = _resolve_provider(provider)

    with get_conn() as conn:
        vendor = orders_repo.get_vendor_profile(conn, vendor_id)
        if not vendor or vendor.get("kyc_status") != KYC_APPROVED:
            raise ForbiddenError("KYC_REQUIRED", "KYC approval required to withdraw funds")

        profile = _require_profile(conn, vendor_id)

        wallet = wallets_repo.get_or_create_wallet(
            conn, vendor_id, currency=settings.CURRENCY, for_update=True
        )
        _assert_not_locked(wallet)

        last = wallet.get("last_withdrawal_at")
        if last is not None:
            next_allowed = last + timedelta(minutes=settings.WITHDRAWAL_COOLDOWN_MINUTES)
            if _now() < next_allowed:
                raise BadRequestError(
                    "WITHDRAWAL_COOLDOWN",
                    f"Please wait {settings.WITHDRAWAL_COOLDOWN_MINUTES} minutes between withdrawals",
                    nextAllowedAt=next_allowed.isoformat(),
                )

        _assert_can_cover(conn, wallet, amount)

        payout = payouts_repo.create_payout(
            conn,
            vendor_id=vendor_id,
            wallet_id=wallet["id"],
            amount=amount,
            method=profile["preferred_method"],
            destination_phone=profile["phone"],
            app_transaction_ref=generate_app_transaction_ref(),
        )
        tx = wallets_repo.insert_transaction(
            conn,
            wallet_id=wallet["id"],
            type=wallet_service.DEBIT_WITHDRAWAL,
            amount=amount,
            currency=wallet["currency"],
            reference_type=wallet_service.REF_PAYOUT,
            reference_id=payout["id"],
            status=wallet_service.TX_PENDING,
            note="Withdrawal",
        )

    log_event(logger, "payout_requested", payout_id=payout["id"], vendor_id=vendor_id, amount=amount)

    updated, failure = _send_to_provider(
        provider, payout, tx["id"], name=profile["full_name"], failure_prefix="Withdrawal failed"
    )
    if failure:
        raise BadRequestError("WITHDRAWAL_FAILED", failure, payoutId=str(payout["id"]))
    return updated


# ==========================================================
# Admin retry
# ==========================================================

def retry_payout(payout_id: UUID, admin_id: UUID, *, provider=None) -> dict:
    """
    Re-send a FAILED payout with a fresh app_transaction_ref.

    Every precondition is checked before anything is written or sent; a
    provider rejection leaves the payout FAILED again with the wallet
    untouched and surfaces as PAYOUT_RETRY_FAILED.
    """
    provider = _resolve_provider(provider)

    with get_conn() as conn:
        payout = payouts_repo.get_payout(conn, payout_id, for_update=True)
        if not payout:
            raise _payout_not_found()

        payouts.assert_retryable(payout["status"])

        wallet = wallets_repo.get_wallet_by_id(conn, payout["wallet_id"], for_update=True)
        if not wallet:
            raise NotFoundError("WALLET_NOT_FOUND", "Vendor wallet not found")
        _assert_not_locked(wallet)
        _assert_can_cover(conn, wallet, int(payout["amount"]))

        profile = _require_profile(conn, payout["vendor_id"])

        payouts.assert_transition(payout["status"], payouts.REQUESTED)
        reset = payouts_repo.reset_for_retry(
            conn, payout_id, app_transaction_ref=generate_app_transaction_ref()
        )
        if reset is None:
            raise BadRequestError(
                "PAYOUT_STATUS_CHANGED",
                "Payout status changed concurrently",
                payoutId=str(payout_id),
            )

        tx = wallets_repo.insert_transaction(
            conn,
            wallet_id=wallet["id"],
            type=wallet_service.DEBIT_WITHDRAWAL,
            amount=int(reset["amount"]),
            currency=wallet["currency"],
            reference_type=wallet_service.REF_PAYOUT,
            reference_id=payout_id,
            status=wallet_service.TX_PENDING,
            note=f"Retry: Admin {admin_id}",
        )
        write_audit_log(
            conn,
            actor_user_id=str(admin_id),
            action=audit_log.PAYOUT_RETRY,
            target_type="payout",
            target_id=str(payout_id),
            metadata={
                "previous_ref": payout["app_transaction_ref"],
                "new_ref": reset["app_transaction_ref"],
                "previous_failure": payout.get("failure_reason"),
            },
        )

    log_event(logger, "payout_retry_requested", payout_id=payout_id, admin_id=admin_id, ref=reset["app_transaction_ref"])

    updated, failure = _send_to_provider(
        provider, reset, tx["id"], name=profile["full_name"], failure_prefix="Retry failed"
    )
    if failure:
        raise BadRequestError("PAYOUT_RETRY_FAILED", failure, payoutId=str(payout_id))
    return updated


# ==========================================================
# Settlement of PROCESSING payouts (worker and provider callback)
# ==========================================================

def settle_processing_payout(conn, payout: dict, result: StatusResult) -> str:
    """
    Apply a provider verdict to a PROCESSING payout locked by the caller.

    Returns the resulting payout status, or "NOOP" when another writer
    settled it first. A FAILED verdict credits the amount back exactly once.
    """
    if result.status == "SUCCESS":
        if not payouts_repo.mark_success(conn, payout["id"], provider_raw=result.response):
            return "NOOP"
        log_event(logger, "payout_succeeded", payout_id=payout["id"], ref=payout["app_transaction_ref"])
        return payouts.SUCCESS

    if result.status == "FAILED":
        reason = f"Provider reported {result.provider_status or 'FAILED'}"
        if not payouts_repo.mark_failed(
            conn,
            payout["id"],
            from_status=payouts.PROCESSING,
            failure_reason=reason,
            provider_raw={"status_check": result.response} if result.response else None,
        ):
            return "NOOP"
        wallet_service.reverse_payout(conn, payout, reason=f"Payout failed: {payout['app_transaction_ref']}")
        log_event(
            logger,
            "payout_failed_reversed",
            level=logging.WARNING,
            payout_id=payout["id"],
            ref=payout["app_transaction_ref"],
            amount=payout["amount"],
        )
        return payouts.FAILED

    return payouts.PROCESSING


def reconcile_payout(payout_id: UUID, app_transaction_ref: str, *, provider) -> str:
    """Ask the provider for a verdict (outside any transaction), then settle under lock."""
    result = provider.check_status(app_transaction_ref)
    if not result.is_final:
        return payouts.PROCESSING

    with get_conn() as conn:
        payout = payouts_repo.get_payout(conn, payout_id, for_update=True)
        if not payout or payout["status"] != payouts.PROCESSING:
            return "NOOP"
        if payout["app_transaction_ref"] != app_transaction_ref:
            return "NOOP"
        return settle_processing_payout(conn, payout, result)


def handle_provider_callback(payload: dict[str, Any], *, provider=None) -> dict[str, Any]:
    """
    The callback only names the payout; its status is re-read from the
    provider before anything is settled.
    """
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    ref = payload.get("app_transaction_ref") or data.get("app_transaction_ref") or payload.get("transaction_ref")
    if not ref:
        raise BadRequestError("INVALID_CALLBACK", "Callback does not reference a transaction")

    with get_conn() as conn:
        payout = payouts_repo.get_payout_by_ref(conn, str(ref))

    if not payout:
        log_event(logger, "payout_callback_unknown_ref", level=logging.WARNING, ref=ref)
        return {"status": "ignored"}
    if payout["status"] != payouts.PROCESSING:
        return {"status": "ignored", "payout_status": payout["status"]}

    provider = _resolve_provider(provider)
    try:
        outcome = reconcile_payout(payout["id"], payout["app_transaction_ref"], provider=provider)
    except ProviderError as e:
        log_event(logger, "payout_callback_status_error", level=logging.WARNING, ref=ref, error=e.message)
        return {"status": "deferred"}

    return {"status": "processed", "payout_status": outcome}


# ==========================================================
# Read side
# ==========================================================

def list_vendor_payouts(vendor_id: UUID, *, status: Optional[str] = None, limit: int = 20, offset: int = 0) -> dict:
    with get_conn() as conn:
        rows, total = payouts_repo.list_payouts(conn, vendor_id=vendor_id, status=status, limit=limit, offset=offset)
    return {"items": rows, "total": total, "limit": limit, "offset": offset}


def admin_list_payouts(
    *,
    status: Optional[str] = None,
    vendor_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    with get_conn() as conn:
        rows, total = payouts_repo.list_payouts(
            conn,
            status=status,
            vendor_id=vendor_id,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
        )
    return {"items": rows, "total": total, "limit": limit, "offset": offset}


def admin_payout_detail(payout_id: UUID) -> dict:
    with get_conn() as conn:
        payout = payouts_repo.get_payout(conn, payout_id)
        if not payout:
            raise _payout_not_found()
        wallet = wallets_repo.get_wallet_by_id(conn, payout["wallet_id"])
        ledger = wallets_repo.transactions_for_reference(
            conn, reference_type=wallet_service.REF_PAYOUT, reference_id=payout_id
        )
        vendor = orders_repo.get_vendor_profile(conn, payout["vendor_id"])
    return {"payout": payout, "wallet": wallet, "transactions": ledger, "vendor": vendor}


def admin_payout_stats() -> dict:
    with get_conn() as conn:
        stats = payouts_repo.payout_stats(conn)
        locked = wallets_repo.count_locked_wallets(conn)
    by_status = {s: int(stats["by_status"].get(s, 0)) for s in payouts.PAYOUT_STATUSES}
    return {
        "by_status": by_status,
        "total_paid_out": int(stats["total_paid_out"]),
        "locked_wallets": locked,
    }
