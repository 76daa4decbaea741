# routes/vendor.py
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.orders import service as order_service
from app.payouts import profile as payout_profile
from app.payouts import service as payout_service
from app.wallets import service as wallet_service
from deps.account import require_active_vendor
from deps.auth import CurrentUser, require_vendor
from schemas import CancelOrderRequest, OrderStatusUpdate, PayoutProfileRequest, WithdrawRequest

logger = logging.getLogger("jemo")
router = APIRouter(prefix="/v1/vendor", tags=["vendor"])


# -------- ORDERS --------
@router.get("/orders")
def list_orders(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_vendor),
):
    return {"items": order_service.list_vendor_orders(user.user_id, status=status, limit=limit, offset=offset)}


@router.post("/orders/{order_id}/confirm")
def confirm_order(order_id: UUID, user: CurrentUser = Depends(require_active_vendor)):
    return order_service.confirm_order(order_id, user.user_id)


@router.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: UUID,
    body: OrderStatusUpdate,
    user: CurrentUser = Depends(require_active_vendor),
):
    return order_service.update_vendor_order_status(order_id, user.user_id, body.status)


@router.post("/orders/{order_id}/cancel")
def cancel_order(
    order_id: UUID,
    body: CancelOrderRequest,
    user: CurrentUser = Depends(require_active_vendor),
):
    return order_service.cancel_order(order_id, actor="vendor", actor_id=user.user_id, reason=body.reason)


# -------- WALLET --------
@router.get("/wallet")
def wallet_summary(user: CurrentUser = Depends(require_vendor)):
    return wallet_service.wallet_summary(user.user_id)


@router.post("/wallet/withdraw")
def withdraw(body: WithdrawRequest, user: CurrentUser = Depends(require_active_vendor)):
    payout = payout_service.withdraw(user.user_id, body.amount)
    return {"payout": payout}


@router.get("/payouts")
def list_payouts(
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_vendor),
):
    return payout_service.list_vendor_payouts(user.user_id, status=status, limit=limit, offset=offset)


# -------- PAYOUT PROFILE --------
@router.get("/payout-profile")
def get_payout_profile(user: CurrentUser = Depends(require_vendor)):
    return {"profile": payout_profile.get_payout_profile(user.user_id)}


@router.put("/payout-profile")
def upsert_payout_profile(body: PayoutProfileRequest, user: CurrentUser = Depends(require_active_vendor)):
    profile = payout_profile.upsert_payout_profile(
        user.user_id, method=body.method, phone=body.phone, full_name=body.full_name
    )
    return {"profile": profile}
