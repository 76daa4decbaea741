# app/payouts/repository.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from psycopg2.extras import Json

from db import dict_cursor

PAYOUT_COLUMNS = """
  p.id, p.vendor_id, p.wallet_id, p.amount, p.status, p.method,
  p.destination_phone, p.app_transaction_ref, p.provider_ref, p.provider_raw,
  p.failure_reason, p.processed_at, p.created_at, p.updated_at
"""


def _adapt_json(value: Any):
    return Json(value) if value is not None else None


# ==========================================================
# Creation / reads
# ==========================================================

def create_payout(
    conn,
    *,
    vendor_id: UUID,
    wallet_id: UUID,
    amount: int,
    method: str,
    destination_phone: str,
    app_transaction_ref: str,
) -> dict:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO app.payouts AS p (
              vendor_id, wallet_id, amount, status, method, destination_phone, app_transaction_ref
            )
            VALUES (%s, %s, %s, 'REQUESTED', %s, %s, %s)
            RETURNING {PAYOUT_COLUMNS}
            """,
            (str(vendor_id), str(wallet_id), int(amount), method, destination_phone, app_transaction_ref),
        )
        return dict(cur.fetchone())


def get_payout(conn, payout_id: UUID, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {PAYOUT_COLUMNS} FROM app.payouts p WHERE p.id = %s {lock}",
            (str(payout_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_payout_by_ref(conn, app_transaction_ref: str, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {PAYOUT_COLUMNS} FROM app.payouts p WHERE p.app_transaction_ref = %s {lock}",
            (app_transaction_ref,),
        )
        row = cur.fetchone()
        return dict(row) if row else None


# ==========================================================
# Status updates (all conditional on the expected current status)
# ==========================================================

def reset_for_retry(conn, payout_id: UUID, *, app_transaction_ref: str) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.payouts p
            SET status = 'REQUESTED',
                app_transaction_ref = %s,
                provider_ref = NULL,
                provider_raw = NULL,
                failure_reason = NULL,
                processed_at = NULL,
                updated_at = now()
            WHERE p.id = %s AND p.status = 'FAILED'
            RETURNING {PAYOUT_COLUMNS}
            """,
            (app_transaction_ref, str(payout_id)),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def mark_processing(
    conn,
    payout_id: UUID,
    *,
    provider_ref: Optional[str],
    provider_raw: Optional[dict[str, Any]],
) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.payouts
            SET status = 'PROCESSING', provider_ref = %s, provider_raw = %s::jsonb, updated_at = now()
            WHERE id = %s AND status = 'REQUESTED'
            """,
            (provider_ref, _adapt_json(provider_raw), str(payout_id)),
        )
        return cur.rowcount == 1


def mark_failed(
    conn,
    payout_id: UUID,
    *,
    from_status: str,
    failure_reason: str,
    provider_raw: Optional[dict[str, Any]] = None,
) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.payouts
            SET status = 'FAILED',
                failure_reason = %s,
                provider_raw = COALESCE(%s::jsonb, provider_raw),
                processed_at = now(),
                updated_at = now()
            WHERE id = %s AND status = %s
            """,
            (failure_reason, _adapt_json(provider_raw), str(payout_id), from_status),
        )
        return cur.rowcount == 1


def mark_success(conn, payout_id: UUID, *, provider_raw: Optional[dict[str, Any]] = None) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.payouts
            SET status = 'SUCCESS',
                provider_raw = COALESCE(provider_raw, '{}'::jsonb) || COALESCE(%s::jsonb, '{}'::jsonb),
                processed_at = now(),
                updated_at = now()
            WHERE id = %s AND status = 'PROCESSING'
            """,
            (_adapt_json({"status_check": provider_raw} if provider_raw else None), str(payout_id)),
        )
        return cur.rowcount == 1


# ==========================================================
# Worker
# ==========================================================

def claim_processing_payouts(conn, *, batch_size: int, min_age_seconds: int) -> list[dict[str, Any]]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {PAYOUT_COLUMNS}
            FROM app.payouts p
            WHERE p.status = 'PROCESSING'
              AND p.updated_at <= now() - (%s || ' seconds')::interval
            ORDER BY p.updated_at ASC
            LIMIT %s
            FOR UPDATE SKIP LOCKED
            """,
            (min_age_seconds, batch_size),
        )
        return [dict(r) for r in cur.fetchall()]


# ==========================================================
# Admin / vendor listings
# ==========================================================

def list_payouts(
    conn,
    *,
    status: Optional[str] = None,
    vendor_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    where = ["1=1"]
    params: list[Any] = []
    if status:
        where.append("p.status = %s")
        params.append(status)
    if vendor_id:
        where.append("p.vendor_id = %s")
        params.append(str(vendor_id))
    if date_from:
        where.append("p.created_at >= %s")
        params.append(date_from)
    if date_to:
        where.append("p.created_at <= %s")
        params.append(date_to)
    clause = " AND ".join(where)

    with dict_cursor(conn) as cur:
        cur.execute(f"SELECT count(*) AS n FROM app.payouts p WHERE {clause}", tuple(params))
        total = int(cur.fetchone()["n"])
        cur.execute(
            f"""
            SELECT {PAYOUT_COLUMNS}, vp.business_name AS vendor_name
            FROM app.payouts p
            LEFT JOIN app.vendor_profiles vp ON vp.user_id = p.vendor_id
            WHERE {clause}
            ORDER BY p.created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, offset]),
        )
        return [dict(r) for r in cur.fetchall()], total


def payout_stats(conn) -> dict[str, Any]:
    with dict_cursor(conn) as cur:
        cur.execute("SELECT status, count(*) AS n, COALESCE(sum(amount), 0) AS amount FROM app.payouts GROUP BY status")
        rows = cur.fetchall()
    by_status = {r["status"]: int(r["n"]) for r in rows}
    paid = sum(int(r["amount"]) for r in rows if r["status"] == "SUCCESS")
    return {"by_status": by_status, "total_paid_out": paid}


def count_in_flight(conn, vendor_id: UUID) -> int:
    with conn.cursor() as cur:
        cur.execute(
            "SELECT count(*) FROM app.payouts WHERE vendor_id = %s AND status IN ('REQUESTED','PROCESSING')",
            (str(vendor_id),),
        )
        return int(cur.fetchone()[0])


# ==========================================================
# Payout profiles
# ==========================================================

def get_payout_profile(conn, vendor_id: UUID) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT vendor_id, preferred_method, phone, full_name, created_at, updated_at
            FROM app.vendor_payout_profiles
            WHERE vendor_id = %s
            """,
            (str(vendor_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def upsert_payout_profile(conn, *, vendor_id: UUID, method: str, phone: str, full_name: str) -> dict:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            INSERT INTO app.vendor_payout_profiles (vendor_id, preferred_method, phone, full_name)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (vendor_id) DO UPDATE
              SET preferred_method = EXCLUDED.preferred_method,
                  phone = EXCLUDED.phone,
                  full_name = EXCLUDED.full_name,
                  updated_at = now()
            RETURNING vendor_id, preferred_method, phone, full_name, created_at, updated_at
            """,
            (str(vendor_id), method, phone, full_name),
        )
        return dict(cur.fetchone())
