# app/delivery/state_machine.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.errors import BadRequestError, ConflictError, ForbiddenError

OPEN = "OPEN"
ACCEPTED = "ACCEPTED"
DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"

JOB_STATUSES = (OPEN, ACCEPTED, DELIVERED, CANCELLED)
TERMINAL_JOB_STATUSES = frozenset({DELIVERED, CANCELLED})

# "system" is the vendor side: it can only withdraw a job, never work it
JOB_TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    "agency": {
        OPEN: frozenset({ACCEPTED}),
        ACCEPTED: frozenset({DELIVERED}),
        DELIVERED: frozenset(),
        CANCELLED: frozenset(),
    },
    "system": {
        OPEN: frozenset({CANCELLED}),
        ACCEPTED: frozenset({CANCELLED}),
        DELIVERED: frozenset(),
        CANCELLED: frozenset(),
    },
    "admin": {
        OPEN: frozenset({ACCEPTED, CANCELLED}),
        ACCEPTED: frozenset({DELIVERED, CANCELLED}),
        DELIVERED: frozenset(),
        CANCELLED: frozenset(),
    },
}


@dataclass(frozen=True)
class AcceptCheck:
    can_accept: bool
    code: Optional[str] = None
    reason: Optional[str] = None


def assert_job_transition(current: str, target: str, actor: str) -> None:
    allowed = JOB_TRANSITIONS.get(actor, {}).get(current, frozenset())
    if target not in allowed:
        raise BadRequestError(
            "INVALID_JOB_TRANSITION",
            f"Cannot transition job from {current} to {target}.",
            currentStatus=current,
            targetStatus=target,
            actor=actor,
            allowedTransitions=sorted(allowed),
        )


def can_accept_job(status: str, agency_id) -> AcceptCheck:
    if status != OPEN:
        return AcceptCheck(
            can_accept=False,
            code="JOB_NOT_OPEN",
            reason=f"Job is not available for acceptance. Current status: {status}.",
        )
    if agency_id is not None:
        return AcceptCheck(
            can_accept=False,
            code="JOB_ALREADY_ASSIGNED",
            reason="Job has already been assigned to another agency.",
        )
    return AcceptCheck(can_accept=True)


def job_already_assigned() -> ConflictError:
    return ConflictError(
        "JOB_ALREADY_ASSIGNED",
        "Job has already been assigned to another agency.",
    )


def assert_job_acceptance(status: str, agency_id) -> None:
    """
    JOB_ALREADY_ASSIGNED is a 409: two agencies raced for the same job.
    JOB_NOT_OPEN is a plain client error.
    """
    check = can_accept_job(status, agency_id)
    if check.can_accept:
        return
    if check.code == "JOB_ALREADY_ASSIGNED":
        raise job_already_assigned()
    raise BadRequestError(check.code, check.reason, currentStatus=status)


def assert_agency_owns_job(job_agency_id, agency_id) -> None:
    if job_agency_id is None or str(job_agency_id) != str(agency_id):
        raise ForbiddenError(
            "NOT_ASSIGNED_AGENCY",
            "You can only update jobs assigned to your agency.",
        )


def is_terminal_job_status(status: str) -> bool:
    return status in TERMINAL_JOB_STATUSES
