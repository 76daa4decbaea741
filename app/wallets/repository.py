# app/wallets/repository.py
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from db import dict_cursor

WALLET_COLUMNS = """
  id, vendor_id, available_balance, pending_balance, currency,
  withdrawals_locked, lock_reason, locked_at, locked_by_id,
  last_withdrawal_at, created_at, updated_at
"""

TX_COLUMNS = """
  id, wallet_id, type, amount, currency, reference_type, reference_id,
  status, note, created_at, updated_at
"""


# ==========================================================
# Wallets
# ==========================================================

def get_wallet(conn, vendor_id: UUID, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {WALLET_COLUMNS} FROM app.vendor_wallets WHERE vendor_id = %s {lock}",
            (str(vendor_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_wallet_by_id(conn, wallet_id: UUID, *, for_update: bool = False) -> dict | None:
    lock = "FOR UPDATE" if for_update else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"SELECT {WALLET_COLUMNS} FROM app.vendor_wallets WHERE id = %s {lock}",
            (str(wallet_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def get_or_create_wallet(conn, vendor_id: UUID, *, currency: str, for_update: bool = False) -> dict:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.vendor_wallets (vendor_id, currency)
            VALUES (%s, %s)
            ON CONFLICT (vendor_id) DO NOTHING
            """,
            (str(vendor_id), currency),
        )
    return get_wallet(conn, vendor_id, for_update=for_update)


def adjust_available_balance(
    conn,
    wallet_id: UUID,
    delta: int,
    *,
    touch_last_withdrawal: bool = False,
) -> dict | None:
    """
    available_balance += delta; the CHECK constraint rejects going negative.
    """
    touch = ", last_withdrawal_at = now()" if touch_last_withdrawal else ""
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.vendor_wallets
            SET available_balance = available_balance + %s{touch}, updated_at = now()
            WHERE id = %s
            RETURNING {WALLET_COLUMNS}
            """,
            (int(delta), str(wallet_id)),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def set_withdrawals_locked(conn, wallet_id: UUID, *, reason: str, admin_id: UUID) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.vendor_wallets
            SET withdrawals_locked = true, lock_reason = %s, locked_at = now(),
                locked_by_id = %s, updated_at = now()
            WHERE id = %s AND withdrawals_locked = false
            RETURNING {WALLET_COLUMNS}
            """,
            (reason, str(admin_id), str(wallet_id)),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def clear_withdrawals_lock(conn, wallet_id: UUID) -> dict | None:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE app.vendor_wallets
            SET withdrawals_locked = false, lock_reason = NULL, locked_at = NULL,
                locked_by_id = NULL, updated_at = now()
            WHERE id = %s AND withdrawals_locked = true
            RETURNING {WALLET_COLUMNS}
            """,
            (str(wallet_id),),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def count_locked_wallets(conn) -> int:
    with conn.cursor() as cur:
        cur.execute("SELECT count(*) FROM app.vendor_wallets WHERE withdrawals_locked")
        return int(cur.fetchone()[0])


# ==========================================================
# Ledger entries
# ==========================================================

def insert_transaction(
    conn,
    *,
    wallet_id: UUID,
    type: str,
    amount: int,
    currency: str,
    reference_type: str,
    reference_id: Optional[UUID],
    status: str,
    note: Optional[str] = None,
) -> dict | None:
    """
    Order-referenced entries are unique per (reference, type); a duplicate returns None.
    """
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO app.wallet_transactions (
              wallet_id, type, amount, currency, reference_type, reference_id, status, note
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (reference_type, reference_id, type) WHERE reference_type = 'ORDER'
            DO NOTHING
            RETURNING {TX_COLUMNS}
            """,
            (
                str(wallet_id),
                type,
                int(amount),
                currency,
                reference_type,
                None if reference_id is None else str(reference_id),
                status,
                note,
            ),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def set_transaction_status(
    conn,
    tx_id: UUID,
    *,
    status: str,
    from_status: str = "PENDING",
    note: Optional[str] = None,
) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE app.wallet_transactions
            SET status = %s, note = COALESCE(%s, note), updated_at = now()
            WHERE id = %s AND status = %s
            """,
            (status, note, str(tx_id), from_status),
        )
        return cur.rowcount == 1


def pending_debits(conn, wallet_id: UUID) -> int:
    """Sum of withdrawals reserved but not yet confirmed by the provider."""
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT COALESCE(sum(amount), 0)
            FROM app.wallet_transactions
            WHERE wallet_id = %s AND type = 'DEBIT_WITHDRAWAL' AND status = 'PENDING'
            """,
            (str(wallet_id),),
        )
        return int(cur.fetchone()[0])


def recent_transactions(conn, wallet_id: UUID, *, limit: int = 10) -> list[dict[str, Any]]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {TX_COLUMNS}
            FROM app.wallet_transactions
            WHERE wallet_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (str(wallet_id), limit),
        )
        return [dict(r) for r in cur.fetchall()]


def transactions_for_reference(conn, *, reference_type: str, reference_id: UUID) -> list[dict[str, Any]]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {TX_COLUMNS}
            FROM app.wallet_transactions
            WHERE reference_type = %s AND reference_id = %s
            ORDER BY created_at ASC
            """,
            (reference_type, str(reference_id)),
        )
        return [dict(r) for r in cur.fetchall()]
