# app/providers/mycoolpay.py
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from app.payouts.model import PayoutRequest
from app.providers.base import ProviderError, StatusResult, map_provider_status
from app.providers.http import HttpClient
from services.redaction import redact_dict
from settings import settings

logger = logging.getLogger("jemo.payouts")

# payout method -> MyCoolPay operator
OPERATORS = {
    "CM_MOMO": "MTN",
    "CM_OM": "ORANGE",
}


class MyCoolPayProvider:
    """
    MyCoolPay mobile-money API.

    Every call is POST {base}/{public_key}/{endpoint} with the private key as
    a bearer token; the provider answers {status, code, message, data}.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[HttpClient] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.MYCOOLPAY_BASE_URL).rstrip("/")
        self.public_key = (public_key if public_key is not None else settings.MYCOOLPAY_PUBLIC_KEY).strip()
        self.private_key = (private_key if private_key is not None else settings.MYCOOLPAY_PRIVATE_KEY).strip()
        self.client = client or HttpClient(
            timeout_s=timeout_s if timeout_s is not None else settings.MYCOOLPAY_HTTP_TIMEOUT_S
        )

    def _call(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        if not self.public_key or not self.private_key:
            raise ProviderError("MyCoolPay not configured")

        url = f"{self.base_url}/{self.public_key}/{endpoint}"
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.private_key}",
        }

        try:
            resp = self.client.post(url, headers=headers, json_body=body)
        except httpx.HTTPError as e:
            logger.error("mycoolpay_network_error endpoint=%s error=%s", endpoint, type(e).__name__)
            raise ProviderError("Could not connect to payment provider") from e

        if resp.json is None:
            logger.error("mycoolpay_invalid_json endpoint=%s status=%s", endpoint, resp.status_code)
            raise ProviderError(
                "Invalid response from payment provider", http_status=resp.status_code
            )

        if not resp.ok:
            logger.error(
                "mycoolpay_api_error endpoint=%s status=%s body=%s",
                endpoint,
                resp.status_code,
                redact_dict(resp.json),
            )
            raise ProviderError(
                str(resp.json.get("message") or "Payment provider error"),
                http_status=resp.status_code,
                response=resp.json,
            )

        return resp.json

    def initiate_payout(self, request: PayoutRequest) -> dict[str, Any]:
        operator = OPERATORS.get(request.method)
        if operator is None:
            raise ProviderError(f"Unsupported payout method: {request.method}")

        body = {
            "transaction_amount": int(request.amount),
            "transaction_currency": request.currency,
            "transaction_reason": request.reason,
            "app_transaction_ref": request.app_transaction_ref,
            "customer_name": request.name,
            "customer_phone_number": request.phone,
            "customer_operator": operator,
        }
        result = self._call("payout", body)
        logger.info(
            "mycoolpay_payout_response ref=%s body=%s",
            request.app_transaction_ref,
            redact_dict(result),
        )
        return result

    def check_status(self, app_transaction_ref: str) -> StatusResult:
        result = self._call("checkStatus", {"transaction_ref": app_transaction_ref})
        data = result.get("data") if isinstance(result.get("data"), dict) else {}
        provider_status = str(data.get("status") or "").upper() or None
        return StatusResult(
            status=map_provider_status(provider_status),
            provider_status=provider_status,
            response=result,
        )
