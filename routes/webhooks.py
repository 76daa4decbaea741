# routes/webhooks.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body

from app.payouts import service as payout_service
from services.redaction import redact_dict

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])
logger = logging.getLogger("jemo.webhooks")


@router.post("/mycoolpay/payout")
def mycoolpay_payout_callback(payload: Dict[str, Any] = Body(...)):
    # the body only identifies the payout; its status is re-checked with the provider
    logger.info("mycoolpay_callback_received body=%s", redact_dict(payload))
    return payout_service.handle_provider_callback(payload)
