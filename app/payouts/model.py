from __future__ import annotations
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PayoutRequest:
    """What the provider needs to move money to a vendor's phone."""
    amount: int
    currency: str
    method: str
    phone: str
    name: str
    app_transaction_ref: str
    reason: str

    @classmethod
    def for_payout(cls, payout: dict[str, Any], *, name: str, reason: str, currency: str) -> "PayoutRequest":
        return cls(
            amount=int(payout["amount"]),
            currency=currency,
            method=payout["method"],
            phone=payout["destination_phone"],
            name=name,
            app_transaction_ref=payout["app_transaction_ref"],
            reason=reason,
        )
