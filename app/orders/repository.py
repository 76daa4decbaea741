# app/orders/repository.py
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from db import dict_cursor

ORDER_COLUMNS = """
  o.id, o.customer_id, o.vendor_id, o.status, o.delivery_method, o.delivery_fee,
  o.delivery_address, o.delivery_city, o.delivery_phone, o.subtotal, o.total,
  o.commission_amount, o.vendor_earning, o.funds_released_at,
  o.cancel_reason, o.cancelled_by,
  o.confirmed_at, o.in_transit_at, o.delivered_at, o.completed_at, o.cancelled_at,
  o.created_at, o.updated_at
"""

# status timestamp columns that update_order_status may stamp
_TIMESTAMP_COLUMNS = {"confirmed_at", "in_transit_at", "delivered_at", "completed_at", "cancelled_at"}


def get_order(conn, order_id: UUID, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE OF o" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM app.orders o
            WHERE o.id = %s
            {lock}
            """,
            (str(order_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_order_items(conn, order_id: UUID) -> list[dict[str, Any]]:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT i.id, i.product_id, i.quantity, i.unit_price,
                   p.name AS product_name, p.city AS product_city
            FROM app.order_items i
            JOIN app.products p ON p.id = i.product_id
            WHERE i.order_id = %s
            ORDER BY i.id
            """,
            (str(order_id),),
        )
        return [dict(r) for r in cur.fetchall()]


def get_vendor_profile(conn, vendor_id: UUID) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT user_id, business_name, business_address, business_city, kyc_status
            FROM app.vendor_profiles
            WHERE user_id = %s
            """,
            (str(vendor_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def update_order_status(
    conn,
    order_id: UUID,
    *,
    status: str,
    from_status: str,
    timestamp_column: Optional[str] = None,
) -> dict | None:
    """
    Conditional on from_status; None means another writer moved the order first.
    """
    stamp = ""
    if timestamp_column:
        if timestamp_column not in _TIMESTAMP_COLUMNS:
            raise ValueError(f"unknown order timestamp column: {timestamp_column}")
        stamp = f", {timestamp_column} = now()"

    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.orders o
            SET status = %s{stamp}, updated_at = now()
            WHERE o.id = %s AND o.status = %s
            RETURNING {ORDER_COLUMNS}
            """,
            (status, str(order_id), from_status),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def cancel_order(
    conn,
    order_id: UUID,
    *,
    from_status: str,
    cancelled_by: str,
    cancel_reason: Optional[str],
) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.orders o
            SET status = 'CANCELLED',
                cancelled_at = now(),
                cancelled_by = %s,
                cancel_reason = %s,
                updated_at = now()
            WHERE o.id = %s AND o.status = %s
            RETURNING {ORDER_COLUMNS}
            """,
            (cancelled_by, cancel_reason, str(order_id), from_status),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def complete_order(
    conn,
    order_id: UUID,
    *,
    subtotal: int,
    commission_amount: int,
    vendor_earning: int,
) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.orders o
            SET status = 'COMPLETED',
                completed_at = now(),
                subtotal = %s,
                commission_amount = %s,
                vendor_earning = %s,
                funds_released_at = now(),
                updated_at = now()
            WHERE o.id = %s AND o.status = 'DELIVERED'
            RETURNING {ORDER_COLUMNS}
            """,
            (subtotal, commission_amount, vendor_earning, str(order_id)),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def restore_stock(conn, items: list[dict[str, Any]]) -> int:
    restored = 0
    with conn.cursor() as cur:
        for item in items:
            cur.execute(
                """
                UPDATE app.products
                SET stock = stock + %s, updated_at = now()
                WHERE id = %s
                """,
                (int(item["quantity"]), str(item["product_id"])),
            )
            restored += cur.rowcount
    return restored


def list_orders(
    conn,
    *,
    status: Optional[str] = None,
    vendor_id: Optional[UUID] = None,
    customer_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    where = ["1=1"]
    params: list[Any] = []
    if status:
        where.append("o.status = %s")
        params.append(status)
    if vendor_id:
        where.append("o.vendor_id = %s")
        params.append(str(vendor_id))
    if customer_id:
        where.append("o.customer_id = %s")
        params.append(str(customer_id))
    params.extend([limit, offset])

    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM app.orders o
            WHERE {" AND ".join(where)}
            ORDER BY o.created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params),
        )
        return [dict(r) for r in cur.fetchall()]
