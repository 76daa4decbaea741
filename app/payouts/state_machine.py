# app/payouts/state_machine.py
from app.errors import BadRequestError

REQUESTED = "REQUESTED"
PROCESSING = "PROCESSING"
SUCCESS = "SUCCESS"
FAILED = "FAILED"

PAYOUT_STATUSES = (REQUESTED, PROCESSING, SUCCESS, FAILED)
IN_FLIGHT_STATUSES = (REQUESTED, PROCESSING)


class InvalidTransition(BadRequestError):
    pass


ALLOWED = {
    REQUESTED: {PROCESSING, FAILED},
    PROCESSING: {SUCCESS, FAILED},
    SUCCESS: set(),
    FAILED: {REQUESTED},  # admin retry only
}


def assert_transition(old: str, new: str) -> None:
    if new not in ALLOWED.get(old, set()):
        raise InvalidTransition(
            "INVALID_PAYOUT_TRANSITION",
            f"Illegal payout transition: {old} -> {new}",
            currentStatus=old,
            targetStatus=new,
        )


def assert_retryable(status: str) -> None:
    if status != FAILED:
        raise InvalidTransition(
            "PAYOUT_NOT_RETRYABLE",
            f"Cannot retry payout. Status is {status}, expected FAILED.",
            currentStatus=status,
        )

