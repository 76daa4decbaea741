from __future__ import annotations

from typing import Any
from psycopg2.extras import Json


# Admin actions recorded in app.audit_log
PAYOUT_RETRY = "PAYOUT_RETRY"
WITHDRAWALS_LOCK = "WITHDRAWALS_LOCK"
WITHDRAWALS_UNLOCK = "WITHDRAWALS_UNLOCK"
JOB_ASSIGN = "DELIVERY_JOB_ASSIGN"
JOB_CANCEL = "DELIVERY_JOB_CANCEL"
ORDER_STATUS_OVERRIDE = "ORDER_STATUS_OVERRIDE"


def write_audit_log(
    conn,
    *,
    actor_user_id: str,
    action: str,
    target_type: str,
    target_id: str | None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Append one row; runs inside the caller's transaction."""
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.audit_log (actor_user_id, action, target_type, target_id, metadata)
            VALUES (%s::uuid, %s, %s, %s, %s::jsonb);
            """,
            (
                str(actor_user_id),
                action,
                target_type,
                None if target_id is None else str(target_id),
                Json(metadata or {}),
            ),
        )
