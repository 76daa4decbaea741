# app/workers/payout_worker.py
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List

from app.payouts import repository as payouts_repo
from app.payouts import service as payout_service
from app.providers.base import ProviderError
from app.providers.factory import get_payout_provider
from db import get_conn, init_pool

logger = logging.getLogger("jemo.worker")

DEFAULT_BATCH_SIZE = 50
# give the provider a moment before the first status check
DEFAULT_MIN_AGE_SECONDS = 60


def _claim_processing(*, batch_size: int, min_age_seconds: int) -> List[dict]:
    with get_conn() as conn:
        return payouts_repo.claim_processing_payouts(
            conn, batch_size=batch_size, min_age_seconds=min_age_seconds
        )


def process_once(
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS,
    provider=None,
) -> Dict[str, Any]:
    """
    One reconciliation pass over PROCESSING payouts.

    Status checks run outside any transaction; each verdict is settled in
    its own transaction so one bad payout does not hold back the batch.
    """
    provider = provider or get_payout_provider()
    if provider is None:
        logger.error("payout_worker_no_provider")
        return {"checked": 0, "outcomes": {}}

    claimed = _claim_processing(batch_size=batch_size, min_age_seconds=min_age_seconds)
    outcomes: Dict[str, int] = {}

    for p in claimed:
        try:
            outcome = payout_service.reconcile_payout(
                p["id"], p["app_transaction_ref"], provider=provider
            )
        except ProviderError as e:
            logger.warning(
                "payout_status_check_failed payout_id=%s ref=%s error=%s",
                p["id"],
                p["app_transaction_ref"],
                e.message,
            )
            outcome = "ERROR"
        except Exception:
            logger.exception(
                "payout_reconcile_failed payout_id=%s ref=%s", p["id"], p["app_transaction_ref"]
            )
            outcome = "ERROR"
        outcomes[outcome] = outcomes.get(outcome, 0) + 1

    if claimed:
        logger.info("payout_worker_pass checked=%s outcomes=%s", len(claimed), outcomes)
    return {"checked": len(claimed), "outcomes": outcomes}


def run_forever(
    *,
    poll_seconds: int = 15,
    batch_size: int = DEFAULT_BATCH_SIZE,
    min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS,
) -> None:
    init_pool()
    logger.info("payout_worker_started poll_seconds=%s", poll_seconds)
    while True:
        result = process_once(batch_size=batch_size, min_age_seconds=min_age_seconds)
        if result["checked"] == 0:
            time.sleep(poll_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    run_forever()
