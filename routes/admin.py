# routes/admin.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.delivery import service as delivery_service
from app.orders import service as order_service
from app.payouts import service as payout_service
from app.wallets import service as wallet_service
from deps.auth import CurrentUser, require_admin
from schemas import (
    AdminAssignJobRequest,
    AdminCancelJobRequest,
    AdminOrderStatusUpdate,
    LockWithdrawalsRequest,
)

logger = logging.getLogger("jemo")
router = APIRouter(prefix="/v1/admin", tags=["admin"])


# -------- ORDERS --------
@router.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: UUID,
    body: AdminOrderStatusUpdate,
    admin: CurrentUser = Depends(require_admin),
):
    return order_service.admin_update_status(order_id, admin.user_id, body.status, reason=body.reason)


# -------- DELIVERY JOBS --------
@router.get("/delivery-jobs")
def list_jobs(
    status: Optional[str] = None,
    city: Optional[str] = None,
    agency_id: Optional[UUID] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
):
    items = delivery_service.admin_list_jobs(
        status=status, city=city, agency_id=agency_id, limit=limit, offset=offset
    )
    return {"items": items}


@router.get("/delivery-jobs/stats")
def job_stats(admin: CurrentUser = Depends(require_admin)):
    return delivery_service.admin_job_stats()


@router.get("/delivery-jobs/{job_id}")
def job_detail(job_id: UUID, admin: CurrentUser = Depends(require_admin)):
    return delivery_service.admin_job_detail(job_id)


@router.post("/delivery-jobs/{job_id}/assign")
def assign_job(job_id: UUID, body: AdminAssignJobRequest, admin: CurrentUser = Depends(require_admin)):
    return delivery_service.admin_assign_job(job_id, body.agency_id, admin.user_id, notes=body.notes)


@router.post("/delivery-jobs/{job_id}/cancel")
def cancel_job(job_id: UUID, body: AdminCancelJobRequest, admin: CurrentUser = Depends(require_admin)):
    return delivery_service.admin_cancel_job(job_id, admin.user_id, reason=body.reason)


# -------- PAYOUTS --------
@router.get("/payouts")
def list_payouts(
    status: Optional[str] = None,
    vendor_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
):
    return payout_service.admin_list_payouts(
        status=status,
        vendor_id=vendor_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )


@router.get("/payouts/stats")
def payout_stats(admin: CurrentUser = Depends(require_admin)):
    return payout_service.admin_payout_stats()


@router.get("/payouts/{payout_id}")
def payout_detail(payout_id: UUID, admin: CurrentUser = Depends(require_admin)):
    return payout_service.admin_payout_detail(payout_id)


@router.post("/payouts/{payout_id}/retry")
def retry_payout(payout_id: UUID, admin: CurrentUser = Depends(require_admin)):
    logger.info("admin_payout_retry payout_id=%s admin_id=%s", payout_id, admin.user_id)
    return {"payout": payout_service.retry_payout(payout_id, admin.user_id)}


# -------- WALLETS --------
@router.post("/vendors/{vendor_id}/withdrawals/lock")
def lock_withdrawals(
    vendor_id: UUID,
    body: LockWithdrawalsRequest,
    admin: CurrentUser = Depends(require_admin),
):
    return {"wallet": wallet_service.lock_withdrawals(vendor_id, admin.user_id, reason=body.reason)}


@router.post("/vendors/{vendor_id}/withdrawals/unlock")
def unlock_withdrawals(vendor_id: UUID, admin: CurrentUser = Depends(require_admin)):
    return {"wallet": wallet_service.unlock_withdrawals(vendor_id, admin.user_id)}
