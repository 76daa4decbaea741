# app/providers/mock.py
from __future__ import annotations

import uuid
from typing import Any, Optional

from app.payouts.model import PayoutRequest
from app.providers.base import ProviderError, ProviderStatus, StatusResult


class MockPayoutProvider:
    """
    Test/dev provider.

    - succeed=True answers like MyCoolPay accepting the payout.
    - succeed=False answers {"status": "error"} (a non-success response).
    - raise_error=True raises ProviderError, like a network failure.
    Every initiate_payout call is recorded in `calls`.
    """

    def __init__(
        self,
        *,
        succeed: bool = True,
        raise_error: bool = False,
        failure_message: str = "Insufficient merchant balance",
        final_status: ProviderStatus = "SUCCESS",
    ):
        self.succeed = succeed
        self.raise_error = raise_error
        self.failure_message = failure_message
        self.final_status = final_status
        self.calls: list[PayoutRequest] = []
        self.status_checks: list[str] = []

    def initiate_payout(self, request: PayoutRequest) -> dict[str, Any]:
        self.calls.append(request)
        if self.raise_error:
            raise ProviderError("Could not connect to payment provider")
        if not self.succeed:
            return {"status": "error", "code": 400, "message": self.failure_message, "mock": True}
        return {
            "status": "success",
            "code": 200,
            "message": "Payout initiated",
            "data": {"transaction_id": f"mock-{uuid.uuid4().hex[:12]}"},
            "mock": True,
        }

    def check_status(self, app_transaction_ref: str) -> StatusResult:
        self.status_checks.append(app_transaction_ref)
        raw: Optional[str] = {"SUCCESS": "SUCCESSFUL", "FAILED": "FAILED"}.get(self.final_status, "PENDING")
        return StatusResult(
            status=self.final_status,
            provider_status=raw,
            response={"status": "success", "data": {"status": raw, "transaction_ref": app_transaction_ref}, "mock": True},
        )
