# app/orders/service.py
from __future__ import annotations

import logging
import math
from typing import Any, Optional
from uuid import UUID

from app.delivery import service as delivery_service
from app.errors import BadRequestError, NotFoundError
from app.orders import repository as orders_repo
from app.orders import state_machine as orders
from app.wallets import service as wallet_service
from db import get_conn
from services import audit_log
from services.audit_log import write_audit_log
from services.observability import log_event
from settings import settings

logger = logging.getLogger("jemo.orders")

# orders.cancelled_by
CANCELLED_BY = {"vendor": "VENDOR", "customer": "CUSTOMER", "admin": "ADMIN"}


def _order_not_found() -> NotFoundError:
    return NotFoundError("ORDER_NOT_FOUND", "Order not found")


def _status_changed(current: str) -> BadRequestError:
    return BadRequestError(
        "ORDER_STATUS_CHANGED",
        "Order status changed concurrently, please retry.",
        currentStatus=current,
    )


def _load_owned(conn, order_id: UUID, *, owner_field: str, owner_id: Optional[UUID]) -> dict:
    """Lock the order; someone else's order looks the same as a missing one."""
    order = orders_repo.get_order(conn, order_id, for_update=True)
    if not order:
        raise _order_not_found()
    if owner_id is not None and str(order[owner_field]) != str(owner_id):
        raise _order_not_found()
    return order


def _apply_transition(conn, order: dict, target: str) -> dict:
    updated = orders_repo.update_order_status(
        conn,
        order["id"],
        status=target,
        from_status=order["status"],
        timestamp_column=orders.STATUS_TIMESTAMPS.get(target),
    )
    if updated is None:
        raise _status_changed(order["status"])
    return updated


# ==========================================================
# Vendor
# ==========================================================

def confirm_order(order_id: UUID, vendor_id: UUID) -> dict[str, Any]:
    with get_conn() as conn:
        order = _load_owned(conn, order_id, owner_field="vendor_id", owner_id=vendor_id)
        orders.assert_order_transition(
            order["status"], orders.CONFIRMED, "vendor", delivery_method=order.get("delivery_method")
        )
        updated = _apply_transition(conn, order, orders.CONFIRMED)

        job = None
        if updated.get("delivery_method") == orders.JEMO_RIDER:
            job = delivery_service.create_job_for_order(conn, updated, actor_id=vendor_id)

    log_event(logger, "order_confirmed", order_id=order_id, vendor_id=vendor_id, job_created=job is not None)
    return {"order": updated, "delivery_job": job}


def update_vendor_order_status(order_id: UUID, vendor_id: UUID, status: str) -> dict[str, Any]:
    """
    Vendor-driven status change. CONFIRMED and CANCELLED carry side effects
    and go through their own operations.
    """
    target = (status or "").strip().upper()
    if target == orders.CONFIRMED:
        return confirm_order(order_id, vendor_id)
    if target == orders.CANCELLED:
        return cancel_order(order_id, actor="vendor", actor_id=vendor_id)
    if target not in orders.ORDER_STATUSES:
        raise BadRequestError("INVALID_STATUS", f"Unknown order status: {status}")

    with get_conn() as conn:
        order = _load_owned(conn, order_id, owner_field="vendor_id", owner_id=vendor_id)
        orders.assert_order_transition(
            order["status"], target, "vendor", delivery_method=order.get("delivery_method")
        )
        updated = _apply_transition(conn, order, target)

    log_event(logger, "order_status_updated", order_id=order_id, status=target, actor="vendor")
    return {"order": updated}


# ==========================================================
# Cancellation (vendor, customer, admin)
# ==========================================================

def _cancel_locked(conn, order: dict, *, actor: str, actor_id: UUID, reason: Optional[str]) -> dict[str, Any]:
    orders.assert_order_cancellable(order["status"])
    orders.assert_order_transition(
        order["status"], orders.CANCELLED, actor, delivery_method=order.get("delivery_method")
    )

    updated = orders_repo.cancel_order(
        conn,
        order["id"],
        from_status=order["status"],
        cancelled_by=CANCELLED_BY[actor],
        cancel_reason=reason,
    )
    if updated is None:
        raise _status_changed(order["status"])

    job = delivery_service.cancel_job_for_order(
        conn,
        order["id"],
        actor_id=actor_id,
        actor_type=CANCELLED_BY[actor],
        reason=reason,
    )

    items = orders_repo.get_order_items(conn, order["id"])
    orders_repo.restore_stock(conn, items)
    return {"order": updated, "delivery_job": job, "restocked_items": len(items)}


def cancel_order(
    order_id: UUID,
    *,
    actor: str,
    actor_id: UUID,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    owner_field = {"vendor": "vendor_id", "customer": "customer_id"}.get(actor)
    with get_conn() as conn:
        order = _load_owned(
            conn,
            order_id,
            owner_field=owner_field or "id",
            owner_id=actor_id if owner_field else None,
        )
        result = _cancel_locked(conn, order, actor=actor, actor_id=actor_id, reason=reason)

    log_event(logger, "order_cancelled", order_id=order_id, actor=actor, job_cancelled=result["delivery_job"] is not None)
    return result


# ==========================================================
# Customer
# ==========================================================

def order_earnings(items: list[dict[str, Any]], commission_rate: float) -> dict[str, int]:
    subtotal = sum(int(i["unit_price"]) * int(i["quantity"]) for i in items)
    commission = int(math.floor(subtotal * commission_rate))
    return {
        "subtotal": subtotal,
        "commission_amount": commission,
        "vendor_earning": subtotal - commission,
    }


def mark_received(order_id: UUID, customer_id: UUID) -> dict[str, Any]:
    """
    Customer confirms receipt: the order completes and the vendor is credited.

    Receiving an already COMPLETED order is answered with already_processed
    and changes nothing.
    """
    with get_conn() as conn:
        order = _load_owned(conn, order_id, owner_field="customer_id", owner_id=customer_id)
        if order["status"] == orders.COMPLETED:
            return {"order": order, "already_processed": True}

        orders.assert_order_transition(
            order["status"], orders.COMPLETED, "customer", delivery_method=order.get("delivery_method")
        )

        items = orders_repo.get_order_items(conn, order_id)
        earnings = order_earnings(items, settings.COMMISSION_RATE)

        wallet_service.credit_available_for_order(
            conn,
            vendor_id=order["vendor_id"],
            order_id=order_id,
            amount=earnings["vendor_earning"],
        )
        updated = orders_repo.complete_order(conn, order_id, **earnings)
        if updated is None:
            raise _status_changed(order["status"])

    log_event(
        logger,
        "order_completed",
        order_id=order_id,
        vendor_id=order["vendor_id"],
        vendor_earning=earnings["vendor_earning"],
    )
    return {"order": updated, "already_processed": False}


def list_customer_orders(customer_id: UUID, *, status: Optional[str] = None, limit: int = 50, offset: int = 0):
    with get_conn() as conn:
        return orders_repo.list_orders(conn, customer_id=customer_id, status=status, limit=limit, offset=offset)


def list_vendor_orders(vendor_id: UUID, *, status: Optional[str] = None, limit: int = 50, offset: int = 0):
    with get_conn() as conn:
        return orders_repo.list_orders(conn, vendor_id=vendor_id, status=status, limit=limit, offset=offset)


# ==========================================================
# Admin
# ==========================================================

def admin_update_status(
    order_id: UUID,
    admin_id: UUID,
    status: str,
    *,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    target = (status or "").strip().upper()
    if target not in orders.ORDER_STATUSES:
        raise BadRequestError("INVALID_STATUS", f"Unknown order status: {status}")

    with get_conn() as conn:
        order = _load_owned(conn, order_id, owner_field="id", owner_id=None)
        previous = order["status"]
        if orders.is_terminal_order_status(previous):
            raise orders.InvalidOrderTransition(
                "ORDER_FINALIZED",
                f"Order is already {previous} and can no longer change status.",
                currentStatus=previous,
                targetStatus=target,
            )

        if target == orders.CANCELLED:
            result = _cancel_locked(conn, order, actor="admin", actor_id=admin_id, reason=reason)
        else:
            orders.assert_order_transition(
                previous, target, "admin", delivery_method=order.get("delivery_method")
            )
            if target == orders.COMPLETED:
                items = orders_repo.get_order_items(conn, order_id)
                earnings = order_earnings(items, settings.COMMISSION_RATE)
                wallet_service.credit_available_for_order(
                    conn,
                    vendor_id=order["vendor_id"],
                    order_id=order_id,
                    amount=earnings["vendor_earning"],
                )
                updated = orders_repo.complete_order(conn, order_id, **earnings)
                if updated is None:
                    raise _status_changed(previous)
            else:
                updated = _apply_transition(conn, order, target)
            result = {"order": updated}
            if target == orders.CONFIRMED and updated.get("delivery_method") == orders.JEMO_RIDER:
                result["delivery_job"] = delivery_service.create_job_for_order(
                    conn, updated, actor_id=admin_id, actor_type="ADMIN"
                )

        write_audit_log(
            conn,
            actor_user_id=str(admin_id),
            action=audit_log.ORDER_STATUS_OVERRIDE,
            target_type="order",
            target_id=str(order_id),
            metadata={"from": previous, "to": target, "reason": reason},
        )

    log_event(logger, "order_status_updated", order_id=order_id, status=target, actor="admin", admin_id=admin_id)
    return result
