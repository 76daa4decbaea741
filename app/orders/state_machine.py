# app/orders/state_machine.py
from __future__ import annotations

from typing import Literal, Optional

from app.errors import BadRequestError

OrderActor = Literal["vendor", "customer", "agency", "admin"]

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
IN_TRANSIT = "IN_TRANSIT"
DELIVERED = "DELIVERED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

ORDER_STATUSES = (PENDING, CONFIRMED, IN_TRANSIT, DELIVERED, COMPLETED, CANCELLED)

VENDOR_DELIVERY = "VENDOR_DELIVERY"
JEMO_RIDER = "JEMO_RIDER"

CANCELLABLE_STATUSES = frozenset({PENDING, CONFIRMED})
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})


ORDER_TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    "vendor": {
        PENDING: frozenset({CONFIRMED, CANCELLED}),
        CONFIRMED: frozenset({IN_TRANSIT, CANCELLED}),
        IN_TRANSIT: frozenset({DELIVERED}),
        DELIVERED: frozenset(),
        COMPLETED: frozenset(),
        CANCELLED: frozenset(),
    },
    "customer": {
        PENDING: frozenset({CANCELLED}),
        CONFIRMED: frozenset({CANCELLED}),
        IN_TRANSIT: frozenset(),
        DELIVERED: frozenset({COMPLETED}),
        COMPLETED: frozenset(),
        CANCELLED: frozenset(),
    },
    "agency": {
        PENDING: frozenset(),
        CONFIRMED: frozenset({IN_TRANSIT}),
        IN_TRANSIT: frozenset({DELIVERED}),
        DELIVERED: frozenset(),
        COMPLETED: frozenset(),
        CANCELLED: frozenset(),
    },
    "admin": {
        PENDING: frozenset({CONFIRMED, CANCELLED}),
        CONFIRMED: frozenset({IN_TRANSIT, CANCELLED}),
        IN_TRANSIT: frozenset({DELIVERED, CANCELLED}),
        DELIVERED: frozenset({COMPLETED, CANCELLED}),
        COMPLETED: frozenset(),
        CANCELLED: frozenset(),
    },
}

# Column stamped when an order enters a status
STATUS_TIMESTAMPS = {
    CONFIRMED: "confirmed_at",
    IN_TRANSIT: "in_transit_at",
    DELIVERED: "delivered_at",
    COMPLETED: "completed_at",
    CANCELLED: "cancelled_at",
}


class InvalidOrderTransition(BadRequestError):
    pass


def allowed_order_transitions(
    actor: str,
    current: str,
    *,
    delivery_method: Optional[str] = None,
) -> frozenset[str]:
    allowed = ORDER_TRANSITIONS.get(actor, {}).get(current, frozenset())
    if actor in ("vendor", "admin") and delivery_method == JEMO_RIDER:
        # only the delivery job moves JEMO_RIDER orders in and out of transit
        return allowed - {IN_TRANSIT, DELIVERED}
    return allowed


def _received_message(delivery_method: Optional[str]) -> str:
    if (delivery_method or VENDOR_DELIVERY) == JEMO_RIDER:
        return (
            "For Jemo Delivery orders, you can only mark as received after the "
            "delivery agency confirms delivery."
        )
    return (
        "For vendor delivery orders, you can only mark as received after the "
        "vendor marks the order as delivered."
    )


def assert_order_transition(
    current: str,
    target: str,
    actor: str,
    *,
    delivery_method: Optional[str] = None,
) -> None:
    """
    Raise unless `actor` may move an order from `current` to `target`.

    A customer reaching COMPLETED is checked first so that every premature
    "mark received" gets the same INVALID_RECEIVED_TRANSITION answer.
    """
    if actor == "customer" and target == COMPLETED and current != DELIVERED:
        raise InvalidOrderTransition(
            "INVALID_RECEIVED_TRANSITION",
            _received_message(delivery_method),
            currentStatus=current,
            requiredStatus=DELIVERED,
        )

    allowed = allowed_order_transitions(actor, current, delivery_method=delivery_method)
    if target not in allowed:
        raise InvalidOrderTransition(
            "INVALID_ORDER_TRANSITION",
            f"Cannot transition order from {current} to {target}.",
            currentStatus=current,
            targetStatus=target,
            actor=actor,
            allowedTransitions=sorted(allowed),
        )


def can_cancel_order(status: str) -> bool:
    return status in CANCELLABLE_STATUSES


def assert_order_cancellable(status: str) -> None:
    if not can_cancel_order(status):
        raise InvalidOrderTransition(
            "CANNOT_CANCEL_ORDER",
            f"Cannot cancel order with status {status}. "
            "Only PENDING or CONFIRMED orders can be cancelled.",
            currentStatus=status,
            allowedStatuses=[PENDING, CONFIRMED],
        )


def is_terminal_order_status(status: str) -> bool:
    return status in TERMINAL_STATUSES
