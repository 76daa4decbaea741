# routes/orders.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.orders import service as order_service
from deps.auth import CurrentUser, require_customer
from schemas import CancelOrderRequest

router = APIRouter(prefix="/v1/orders", tags=["orders"])


@router.get("")
def list_my_orders(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_customer),
):
    return {"items": order_service.list_customer_orders(user.user_id, status=status, limit=limit, offset=offset)}


@router.post("/{order_id}/cancel")
def cancel_order(order_id: UUID, body: CancelOrderRequest, user: CurrentUser = Depends(require_customer)):
    return order_service.cancel_order(order_id, actor="customer", actor_id=user.user_id, reason=body.reason)


@router.post("/{order_id}/received")
def mark_received(order_id: UUID, user: CurrentUser = Depends(require_customer)):
    return order_service.mark_received(order_id, user.user_id)
