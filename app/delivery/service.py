# app/delivery/service.py
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from app.delivery import repository as delivery_repo
from app.delivery import state_machine as jobs
from app.delivery.cities import city_key, covers_city, normalize_city
from app.errors import BadRequestError, ForbiddenError, NotFoundError
from app.orders import repository as orders_repo
from app.orders import state_machine as orders
from db import get_conn
from services import audit_log
from services.audit_log import write_audit_log
from services.observability import log_event
from settings import settings

logger = logging.getLogger("jemo.delivery")

# job log events
CREATED = "CREATED"
ACCEPTED = "ACCEPTED"
ADMIN_ASSIGNED = "ADMIN_ASSIGNED"
DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"


def _job_not_found() -> NotFoundError:
    return NotFoundError("JOB_NOT_FOUND", "Delivery job not found")


def _require_agency(conn, user_id: UUID) -> dict:
    agency = delivery_repo.get_agency_by_user(conn, user_id)
    if not agency or not agency.get("is_active"):
        raise ForbiddenError("AGENCY_INACTIVE", "Your delivery agency account is not active")
    return agency


# ==========================================================
# Called from order flows, inside the caller's transaction
# ==========================================================

def create_job_for_order(conn, order: dict, *, actor_id: UUID, actor_type: str = "VENDOR") -> Optional[dict]:
    """
    Spawn the OPEN job for a confirmed JEMO_RIDER order.

    Returns None when the order already has a job; an existing job is never
    touched.
    """
    if delivery_repo.get_job_by_order(conn, order["id"]):
        return None

    items = orders_repo.get_order_items(conn, order["id"])
    vendor = orders_repo.get_vendor_profile(conn, order["vendor_id"]) or {}

    product_city = next((i.get("product_city") for i in items if i.get("product_city")), None)
    pickup_city = normalize_city(product_city or vendor.get("business_city"))
    dropoff_city = normalize_city(order.get("delivery_city"))
    fee = int(order.get("delivery_fee") or 0) or settings.DEFAULT_DELIVERY_FEE

    job = delivery_repo.create_job(
        conn,
        order_id=order["id"],
        pickup_city=pickup_city,
        pickup_address=vendor.get("business_address"),
        dropoff_city=dropoff_city,
        dropoff_address=order.get("delivery_address"),
        fee=fee,
    )
    if job is None:
        return None

    delivery_repo.append_job_log(
        conn,
        job_id=job["id"],
        event=CREATED,
        previous_status=None,
        new_status=jobs.OPEN,
        actor_id=actor_id,
        actor_type=actor_type,
        notes="Job created on order confirmation",
        metadata={"fee": fee, "pickup_city": pickup_city, "dropoff_city": dropoff_city},
    )
    log_event(logger, "delivery_job_created", job_id=job["id"], order_id=order["id"], pickup_city=pickup_city)
    return job


def cancel_job_for_order(
    conn,
    order_id: UUID,
    *,
    actor_id: UUID,
    actor_type: str,
    reason: Optional[str],
) -> Optional[dict]:
    """
    Withdraw the order's job if it is still OPEN or ACCEPTED. The agency
    reference stays on the row for audit.
    """
    job = delivery_repo.get_job_by_order(conn, order_id, for_update=True)
    if not job or jobs.is_terminal_job_status(job["status"]):
        return None

    actor = "admin" if actor_type == "ADMIN" else "system"
    jobs.assert_job_transition(job["status"], jobs.CANCELLED, actor)

    updated = delivery_repo.update_job_status(
        conn, job["id"], from_status=job["status"], to_status=jobs.CANCELLED
    )
    if updated is None:
        raise BadRequestError("JOB_STATUS_CHANGED", "Job status changed concurrently, please retry.")

    delivery_repo.append_job_log(
        conn,
        job_id=job["id"],
        event=CANCELLED,
        previous_status=job["status"],
        new_status=jobs.CANCELLED,
        actor_id=actor_id,
        actor_type=actor_type,
        notes=reason or "Order cancelled",
        metadata={"order_id": str(order_id)},
    )
    return updated


# ==========================================================
# Agency
# ==========================================================

def list_available_jobs(user_id: UUID, *, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
    with get_conn() as conn:
        agency = _require_agency(conn, user_id)
        keys = sorted({city_key(c) for c in (agency.get("cities_covered") or []) if city_key(c)})
        return delivery_repo.list_open_jobs(conn, city_keys=keys, limit=limit, offset=offset)


def list_my_jobs(
    user_id: UUID,
    *,
    status: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> list[dict[str, Any]]:
    with get_conn() as conn:
        agency = _require_agency(conn, user_id)
        return delivery_repo.list_jobs(conn, agency_id=agency["id"], status=status, limit=limit, offset=offset)


def _move_order(conn, order_id: UUID, target: str, actor: str) -> dict:
    order = orders_repo.get_order(conn, order_id, for_update=True)
    if not order:
        raise NotFoundError("ORDER_NOT_FOUND", "Order not found")
    orders.assert_order_transition(
        order["status"], target, actor, delivery_method=order.get("delivery_method")
    )
    updated = orders_repo.update_order_status(
        conn,
        order_id,
        status=target,
        from_status=order["status"],
        timestamp_column=orders.STATUS_TIMESTAMPS.get(target),
    )
    if updated is None:
        raise BadRequestError(
            "ORDER_STATUS_CHANGED",
            "Order status changed concurrently, please retry.",
            currentStatus=order["status"],
        )
    return updated


def accept_job(job_id: UUID, user_id: UUID) -> dict[str, Any]:
    with get_conn() as conn:
        agency = _require_agency(conn, user_id)

        job = delivery_repo.get_job(conn, job_id, for_update=True)
        if not job:
            raise _job_not_found()

        jobs.assert_job_acceptance(job["status"], job.get("agency_id"))

        if not covers_city(agency.get("cities_covered"), job.get("pickup_city")):
            raise ForbiddenError(
                "CITY_NOT_COVERED",
                f"Your agency does not cover {job.get('pickup_city')}.",
                pickupCity=job.get("pickup_city"),
            )

        jobs.assert_job_transition(job["status"], jobs.ACCEPTED, "agency")
        updated = delivery_repo.assign_open_job(conn, job_id, agency["id"])
        if updated is None:
            raise jobs.job_already_assigned()

        order = _move_order(conn, job["order_id"], orders.IN_TRANSIT, "agency")

        delivery_repo.append_job_log(
            conn,
            job_id=job_id,
            event=ACCEPTED,
            previous_status=job["status"],
            new_status=jobs.ACCEPTED,
            actor_id=user_id,
            actor_type="DELIVERY_AGENCY",
            actor_name=agency.get("name"),
            metadata={"agency_id": str(agency["id"])},
        )

    log_event(logger, "delivery_job_accepted", job_id=job_id, agency_id=agency["id"])
    return {"job": updated, "order": order}


def mark_job_delivered(job_id: UUID, user_id: UUID, *, notes: Optional[str] = None) -> dict[str, Any]:
    with get_conn() as conn:
        agency = _require_agency(conn, user_id)

        job = delivery_repo.get_job(conn, job_id, for_update=True)
        if not job:
            raise _job_not_found()

        jobs.assert_agency_owns_job(job.get("agency_id"), agency["id"])
        jobs.assert_job_transition(job["status"], jobs.DELIVERED, "agency")

        updated = delivery_repo.update_job_status(
            conn, job_id, from_status=job["status"], to_status=jobs.DELIVERED
        )
        if updated is None:
            raise BadRequestError("JOB_STATUS_CHANGED", "Job status changed concurrently, please retry.")

        order = _move_order(conn, job["order_id"], orders.DELIVERED, "agency")

        delivery_repo.append_job_log(
            conn,
            job_id=job_id,
            event=DELIVERED,
            previous_status=job["status"],
            new_status=jobs.DELIVERED,
            actor_id=user_id,
            actor_type="DELIVERY_AGENCY",
            actor_name=agency.get("name"),
            notes=notes,
        )

    log_event(logger, "delivery_job_delivered", job_id=job_id, agency_id=agency["id"])
    return {"job": updated, "order": order}


# ==========================================================
# Admin
# ==========================================================

def admin_assign_job(
    job_id: UUID,
    agency_id: UUID,
    admin_id: UUID,
    *,
    notes: Optional[str] = None,
) -> dict[str, Any]:
    with get_conn() as conn:
        agency = delivery_repo.get_agency(conn, agency_id)
        if not agency:
            raise NotFoundError("AGENCY_NOT_FOUND", "Delivery agency not found")
        if not agency.get("is_active"):
            raise BadRequestError("AGENCY_INACTIVE", "Cannot assign a job to an inactive agency")

        job = delivery_repo.get_job(conn, job_id, for_update=True)
        if not job:
            raise _job_not_found()

        jobs.assert_job_acceptance(job["status"], job.get("agency_id"))
        jobs.assert_job_transition(job["status"], jobs.ACCEPTED, "admin")

        updated = delivery_repo.assign_open_job(conn, job_id, agency_id)
        if updated is None:
            raise jobs.job_already_assigned()

        # the order moves as if the agency had accepted
        order = _move_order(conn, job["order_id"], orders.IN_TRANSIT, "agency")

        delivery_repo.append_job_log(
            conn,
            job_id=job_id,
            event=ADMIN_ASSIGNED,
            previous_status=job["status"],
            new_status=jobs.ACCEPTED,
            actor_id=admin_id,
            actor_type="ADMIN",
            notes=notes,
            metadata={"agency_id": str(agency_id), "agency_name": agency.get("name")},
        )
        write_audit_log(
            conn,
            actor_user_id=str(admin_id),
            action=audit_log.JOB_ASSIGN,
            target_type="delivery_job",
            target_id=str(job_id),
            metadata={"agency_id": str(agency_id)},
        )

    log_event(logger, "delivery_job_admin_assigned", job_id=job_id, agency_id=agency_id, admin_id=admin_id)
    return {"job": updated, "order": order}


def admin_cancel_job(job_id: UUID, admin_id: UUID, *, reason: str) -> dict[str, Any]:
    """Withdraws the job only; the order keeps its status."""
    with get_conn() as conn:
        job = delivery_repo.get_job(conn, job_id, for_update=True)
        if not job:
            raise _job_not_found()

        jobs.assert_job_transition(job["status"], jobs.CANCELLED, "admin")

        updated = delivery_repo.update_job_status(
            conn, job_id, from_status=job["status"], to_status=jobs.CANCELLED
        )
        if updated is None:
            raise BadRequestError("JOB_STATUS_CHANGED", "Job status changed concurrently, please retry.")

        delivery_repo.append_job_log(
            conn,
            job_id=job_id,
            event=CANCELLED,
            previous_status=job["status"],
            new_status=jobs.CANCELLED,
            actor_id=admin_id,
            actor_type="ADMIN",
            notes=reason,
        )
        write_audit_log(
            conn,
            actor_user_id=str(admin_id),
            action=audit_log.JOB_CANCEL,
            target_type="delivery_job",
            target_id=str(job_id),
            metadata={"reason": reason, "previous_status": job["status"]},
        )

    log_event(logger, "delivery_job_admin_cancelled", job_id=job_id, admin_id=admin_id)
    return {"job": updated}


def admin_list_jobs(
    *,
    status: Optional[str] = None,
    city: Optional[str] = None,
    agency_id: Optional[UUID] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict[str, Any]]:
    with get_conn() as conn:
        return delivery_repo.list_jobs(
            conn,
            agency_id=agency_id,
            status=status,
            city=city_key(city) or None,
            limit=limit,
            offset=offset,
        )


def admin_job_detail(job_id: UUID) -> dict[str, Any]:
    with get_conn() as conn:
        job = delivery_repo.get_job(conn, job_id)
        if not job:
            raise _job_not_found()
        order = orders_repo.get_order(conn, job["order_id"])
        agency = delivery_repo.get_agency(conn, job["agency_id"]) if job.get("agency_id") else None
        logs = delivery_repo.get_job_logs(conn, job_id)
    return {"job": job, "order": order, "agency": agency, "logs": logs}


def admin_job_stats() -> dict[str, Any]:
    with get_conn() as conn:
        stats = delivery_repo.job_stats(conn, stale_minutes=settings.STALE_JOB_MINUTES)
    by_status = {s: int(stats["by_status"].get(s, 0)) for s in jobs.JOB_STATUSES}
    return {
        "by_status": by_status,
        "total": sum(by_status.values()),
        "stale_open": int(stats["stale_open"]),
        "stale_after_minutes": settings.STALE_JOB_MINUTES,
    }
