# routes/agency.py
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.delivery import service as delivery_service
from deps.account import require_active_agency
from deps.auth import CurrentUser
from schemas import MarkDeliveredRequest

router = APIRouter(prefix="/v1/agency", tags=["agency"])


@router.get("/jobs/available")
def available_jobs(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_active_agency),
):
    return {"items": delivery_service.list_available_jobs(user.user_id, limit=limit, offset=offset)}


@router.get("/jobs")
def my_jobs(
    status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(require_active_agency),
):
    return {"items": delivery_service.list_my_jobs(user.user_id, status=status, limit=limit, offset=offset)}


@router.post("/jobs/{job_id}/accept")
def accept_job(job_id: UUID, user: CurrentUser = Depends(require_active_agency)):
    return delivery_service.accept_job(job_id, user.user_id)


@router.post("/jobs/{job_id}/delivered")
def mark_delivered(
    job_id: UUID,
    body: Optional[MarkDeliveredRequest] = None,
    user: CurrentUser = Depends(require_active_agency),
):
    return delivery_service.mark_job_delivered(job_id, user.user_id, notes=body.notes if body else None)
