# app/delivery/repository.py
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from psycopg2.extras import Json

from db import dict_cursor

JOB_COLUMNS = """
  j.id, j.order_id, j.agency_id, j.status,
  j.pickup_city, j.pickup_address, j.dropoff_city, j.dropoff_address, j.fee,
  j.accepted_at, j.delivered_at, j.cancelled_at, j.created_at, j.updated_at
"""

# status -> column stamped when a job enters it
_STATUS_TIMESTAMP = {
    "ACCEPTED": "accepted_at",
    "DELIVERED": "delivered_at",
    "CANCELLED": "cancelled_at",
}


# ==========================================================
# Jobs
# ==========================================================

def get_job(conn, job_id: UUID, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {JOB_COLUMNS} FROM app.delivery_jobs j WHERE j.id = %s {lock}",
            (str(job_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_job_by_order(conn, order_id: UUID, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {JOB_COLUMNS} FROM app.delivery_jobs j WHERE j.order_id = %s {lock}",
            (str(order_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def create_job(
    conn,
    *,
    order_id: UUID,
    pickup_city: Optional[str],
    pickup_address: Optional[str],
    dropoff_city: Optional[str],
    dropoff_address: Optional[str],
    fee: int,
) -> dict | None:
    """
    ON CONFLICT keeps one job per order; None means a job already existed.
    """
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO app.delivery_jobs AS j (
              order_id, status, pickup_city, pickup_address, dropoff_city, dropoff_address, fee
            )
            VALUES (%s, 'OPEN', %s, %s, %s, %s, %s)
            ON CONFLICT (order_id) DO NOTHING
            RETURNING {JOB_COLUMNS}
            """,
            (str(order_id), pickup_city, pickup_address, dropoff_city, dropoff_address, int(fee)),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def assign_open_job(conn, job_id: UUID, agency_id: UUID) -> dict | None:
    """
    First agency wins: the WHERE clause re-checks OPEN/unassigned atomically.
    """
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.delivery_jobs j
            SET agency_id = %s, status = 'ACCEPTED', accepted_at = now(), updated_at = now()
            WHERE j.id = %s AND j.status = 'OPEN' AND j.agency_id IS NULL
            RETURNING {JOB_COLUMNS}
            """,
            (str(agency_id), str(job_id)),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def update_job_status(conn, job_id: UUID, *, from_status: str, to_status: str) -> dict | None:
    column = _STATUS_TIMESTAMP.get(to_status)
    stamp = f", {column} = now()" if column else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.delivery_jobs j
            SET status = %s{stamp}, updated_at = now()
            WHERE j.id = %s AND j.status = %s
            RETURNING {JOB_COLUMNS}
            """,
            (to_status, str(job_id), from_status),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def list_open_jobs(conn, *, city_keys: list[str], limit: int, offset: int) -> list[dict[str, Any]]:
    if not city_keys:
        return []
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {JOB_COLUMNS}
            FROM app.delivery_jobs j
            WHERE j.status = 'OPEN'
              AND j.agency_id IS NULL
              AND lower(btrim(j.pickup_city)) = ANY(%s)
            ORDER BY j.created_at ASC
            LIMIT %s OFFSET %s
            """,
            (list(city_keys), limit, offset),
        )
        return [dict(r) for r in cur.fetchall()]


def list_jobs(
    conn,
    *,
    agency_id: Optional[UUID] = None,
    status: Optional[str] = None,
    city: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    where = ["1=1"]
    params: list[Any] = []
    if agency_id:
        where.append("j.agency_id = %s")
        params.append(str(agency_id))
    if status:
        where.append("j.status = %s")
        params.append(status)
    if city:
        where.append("lower(btrim(j.pickup_city)) = %s")
        params.append(city)
    params.extend([limit, offset])

    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {JOB_COLUMNS}
            FROM app.delivery_jobs j
            WHERE {" AND ".join(where)}
            ORDER BY j.created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params),
        )
        return [dict(r) for r in cur.fetchall()]


def job_stats(conn, *, stale_minutes: int) -> dict[str, Any]:
    with dict_cursor(conn) as cur:
        cur.execute("SELECT status, count(*) AS n FROM app.delivery_jobs GROUP BY status")
        by_status = {r["status"]: int(r["n"]) for r in cur.fetchall()}
        cur.execute(
            """
            SELECT count(*) AS n
            FROM app.delivery_jobs
            WHERE status = 'OPEN'
              AND created_at <= now() - (%s || ' minutes')::interval
            """,
            (stale_minutes,),
        )
        stale = int(cur.fetchone()["n"])
    return {"by_status": by_status, "stale_open": stale}


# ==========================================================
# Logs (insert-only)
# ==========================================================

def append_job_log(
    conn,
    *,
    job_id: UUID,
    event: str,
    previous_status: Optional[str],
    new_status: Optional[str],
    actor_id: Optional[UUID],
    actor_type: str,
    actor_name: Optional[str] = None,
    notes: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.delivery_job_logs (
              job_id, event, previous_status, new_status,
              actor_id, actor_type, actor_name, notes, metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb)
            """,
            (
                str(job_id),
                event,
                previous_status,
                new_status,
                None if actor_id is None else str(actor_id),
                actor_type,
                actor_name,
                notes,
                Json(metadata or {}),
            ),
        )


def get_job_logs(conn, job_id: UUID) -> list[dict[str, Any]]:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT id, job_id, event, previous_status, new_status,
                   actor_id, actor_type, actor_name, notes, metadata, created_at
            FROM app.delivery_job_logs
            WHERE job_id = %s
            ORDER BY created_at ASC
            """,
            (str(job_id),),
        )
        return [dict(r) for r in cur.fetchall()]


# ==========================================================
# Agencies
# ==========================================================

def get_agency(conn, agency_id: UUID) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT id, user_id, name, phone, cities_covered, is_active
            FROM app.delivery_agencies
            WHERE id = %s
            """,
            (str(agency_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_agency_by_user(conn, user_id: UUID) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT id, user_id, name, phone, cities_covered, is_active
            FROM app.delivery_agencies
            WHERE user_id = %s
            """,
            (str(user_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None
