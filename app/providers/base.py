# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Literal

from app.payouts.model import PayoutRequest

ProviderStatus = Literal["SUCCESS", "FAILED", "PENDING"]


class ProviderError(Exception):
    """The provider could not be reached or answered with an error."""

    def __init__(self, message: str, *, http_status: Optional[int] = None, response: Any = None):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.response = response


@dataclass(frozen=True)
class StatusResult:
    status: ProviderStatus
    provider_status: Optional[str] = None
    response: Optional[dict[str, Any]] = None

    @property
    def is_final(self) -> bool:
        return self.status in ("SUCCESS", "FAILED")


def is_success_response(response: dict[str, Any] | None) -> bool:
    """MyCoolPay signals acceptance with status="success" or code=200."""
    if not isinstance(response, dict):
        return False
    status = str(response.get("status") or "").strip().lower()
    return status == "success" or response.get("code") == 200


def provider_transaction_id(response: dict[str, Any] | None) -> Optional[str]:
    data = (response or {}).get("data")
    if isinstance(data, dict) and data.get("transaction_id"):
        return str(data["transaction_id"])
    return None


def map_provider_status(raw: Optional[str]) -> ProviderStatus:
    status = (raw or "").strip().upper()
    if status in ("SUCCESS", "SUCCESSFUL", "COMPLETED"):
        return "SUCCESS"
    if status in ("FAILED", "CANCELLED", "REJECTED"):
        return "FAILED"
    return "PENDING"


class PayoutProvider(Protocol):
    def initiate_payout(self, request: PayoutRequest) -> dict[str, Any]: ...
    def check_status(self, app_transaction_ref: str) -> StatusResult: ...
