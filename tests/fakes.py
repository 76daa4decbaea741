# tests/fakes.py
"""
In-memory stand-ins for the repository modules.

FakeStore mirrors the repository function signatures (conn first) so it can
be monkeypatched over them. Its get_conn snapshots the tables on entry and
restores them when the block raises, like a rolled-back transaction.
"""
from __future__ import annotations

import copy
import importlib
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

ORDER_FUNCTIONS = (
    "get_order",
    "get_order_items",
    "get_vendor_profile",
    "update_order_status",
    "cancel_order",
    "complete_order",
    "restore_stock",
    "list_orders",
)
DELIVERY_FUNCTIONS = (
    "get_job",
    "get_job_by_order",
    "create_job",
    "assign_open_job",
    "update_job_status",
    "list_open_jobs",
    "list_jobs",
    "job_stats",
    "append_job_log",
    "get_job_logs",
    "get_agency",
    "get_agency_by_user",
)
WALLET_FUNCTIONS = (
    "get_wallet",
    "get_wallet_by_id",
    "get_or_create_wallet",
    "adjust_available_balance",
    "set_withdrawals_locked",
    "clear_withdrawals_lock",
    "count_locked_wallets",
    "insert_transaction",
    "set_transaction_status",
    "pending_debits",
    "recent_transactions",
    "transactions_for_reference",
)
PAYOUT_FUNCTIONS = (
    "create_payout",
    "get_payout",
    "get_payout_by_ref",
    "reset_for_retry",
    "mark_processing",
    "mark_failed",
    "mark_success",
    "claim_processing_payouts",
    "list_payouts",
    "payout_stats",
    "count_in_flight",
    "get_payout_profile",
    "upsert_payout_profile",
)

REPOSITORIES = {
    "app.orders.repository": ORDER_FUNCTIONS,
    "app.delivery.repository": DELIVERY_FUNCTIONS,
    "app.wallets.repository": WALLET_FUNCTIONS,
    "app.payouts.repository": PAYOUT_FUNCTIONS,
}

# modules holding their own reference to db.get_conn
CONN_USERS = (
    "app.delivery.service",
    "app.orders.service",
    "app.wallets.service",
    "app.payouts.service",
    "app.payouts.profile",
    "app.workers.payout_worker",
    "deps.account",
)

AUDIT_USERS = (
    "app.delivery.service",
    "app.orders.service",
    "app.wallets.service",
    "app.payouts.service",
)


class BalanceCheckViolation(Exception):
    """What the available_balance >= 0 CHECK constraint would raise."""


class AmountCheckViolation(Exception):
    """What the wallet_transactions amount > 0 CHECK constraint would raise."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _key(value: Any) -> str:
    return str(value)


class FakeConn:
    pass


class FakeStore:
    def __init__(self):
        self.db: dict[str, Any] = {
            "orders": {},
            "order_items": {},
            "products": {},
            "vendor_profiles": {},
            "agencies": {},
            "jobs": {},
            "job_logs": [],
            "wallets": {},
            "transactions": [],
            "payouts": {},
            "payout_profiles": {},
            "audit": [],
        }
        self.transactions_opened = 0
        self.rollbacks = 0

    # ------------------------------------------------------
    # wiring
    # ------------------------------------------------------
    def install(self, monkeypatch) -> "FakeStore":
        for module_name, names in REPOSITORIES.items():
            module = importlib.import_module(module_name)
            for name in names:
                monkeypatch.setattr(module, name, getattr(self, name))
        for module_name in CONN_USERS:
            monkeypatch.setattr(importlib.import_module(module_name), "get_conn", self.get_conn)
        for module_name in AUDIT_USERS:
            monkeypatch.setattr(importlib.import_module(module_name), "write_audit_log", self.write_audit_log)
        return self

    @contextmanager
    def get_conn(self):
        snapshot = copy.deepcopy(self.db)
        self.transactions_opened += 1
        try:
            yield FakeConn()
        except Exception:
            self.db = snapshot
            self.rollbacks += 1
            raise

    def write_audit_log(self, conn, *, actor_user_id, action, target_type, target_id, metadata=None) -> None:
        self.db["audit"].append(
            {
                "actor_user_id": str(actor_user_id),
                "action": action,
                "target_type": target_type,
                "target_id": target_id,
                "metadata": metadata or {},
            }
        )

    # ------------------------------------------------------
    # seeding
    # ------------------------------------------------------
    def add_vendor(self, *, kyc_status: str = "APPROVED", business_city: str = "Douala") -> uuid.UUID:
        vendor_id = uuid.uuid4()
        self.db["vendor_profiles"][_key(vendor_id)] = {
            "user_id": vendor_id,
            "business_name": "Boutique Akwa",
            "business_address": "Rue Joss, Akwa",
            "business_city": business_city,
            "kyc_status": kyc_status,
        }
        return vendor_id

    def add_product(self, *, vendor_id, price: int, stock: int = 10, city: Optional[str] = "douala ") -> uuid.UUID:
        product_id = uuid.uuid4()
        self.db["products"][_key(product_id)] = {
            "id": product_id,
            "vendor_id": vendor_id,
            "name": f"Product {str(product_id)[:6]}",
            "price": price,
            "stock": stock,
            "city": city,
        }
        return product_id

    def add_order(
        self,
        *,
        vendor_id,
        customer_id=None,
        status: str = "PENDING",
        delivery_method: str = "JEMO_RIDER",
        delivery_city: Optional[str] = "  yaoundé",
        delivery_fee: int = 1500,
        items: Optional[list[tuple[uuid.UUID, int, int]]] = None,
    ) -> dict:
        order_id = uuid.uuid4()
        order = {
            "id": order_id,
            "customer_id": customer_id or uuid.uuid4(),
            "vendor_id": vendor_id,
            "status": status,
            "delivery_method": delivery_method,
            "delivery_fee": delivery_fee,
            "delivery_address": "Carrefour Bastos",
            "delivery_city": delivery_city,
            "delivery_phone": "+237676858216",
            "subtotal": 0,
            "total": 0,
            "commission_amount": None,
            "vendor_earning": None,
            "funds_released_at": None,
            "cancel_reason": None,
            "cancelled_by": None,
            "confirmed_at": None,
            "in_transit_at": None,
            "delivered_at": None,
            "completed_at": None,
            "cancelled_at": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.db["orders"][_key(order_id)] = order
        self.db["order_items"][_key(order_id)] = [
            {"id": uuid.uuid4(), "product_id": pid, "quantity": qty, "unit_price": price}
            for pid, qty, price in (items or [])
        ]
        return dict(order)

    def add_agency(self, *, cities=("Douala",), is_active: bool = True) -> dict:
        agency = {
            "id": uuid.uuid4(),
            "user_id": uuid.uuid4(),
            "name": "Express Littoral",
            "phone": "+237699000000",
            "cities_covered": list(cities),
            "is_active": is_active,
        }
        self.db["agencies"][_key(agency["id"])] = agency
        return dict(agency)

    def add_wallet(
        self,
        vendor_id,
        *,
        available_balance: int = 0,
        withdrawals_locked: bool = False,
        lock_reason: Optional[str] = None,
        last_withdrawal_at: Optional[datetime] = None,
    ) -> dict:
        wallet = {
            "id": uuid.uuid4(),
            "vendor_id": vendor_id,
            "available_balance": available_balance,
            "pending_balance": 0,
            "currency": "XAF",
            "withdrawals_locked": withdrawals_locked,
            "lock_reason": lock_reason,
            "locked_at": _now() if withdrawals_locked else None,
            "locked_by_id": None,
            "last_withdrawal_at": last_withdrawal_at,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.db["wallets"][_key(wallet["id"])] = wallet
        return dict(wallet)

    def add_payout_profile(self, vendor_id, *, method: str = "CM_MOMO", phone: str = "+237676858216") -> dict:
        profile = {
            "vendor_id": vendor_id,
            "preferred_method": method,
            "phone": phone,
            "full_name": "Jean Mbarga",
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.db["payout_profiles"][_key(vendor_id)] = profile
        return dict(profile)

    def add_payout(self, *, vendor_id, wallet_id, amount: int, status: str = "FAILED", **extra) -> dict:
        payout = {
            "id": uuid.uuid4(),
            "vendor_id": vendor_id,
            "wallet_id": wallet_id,
            "amount": amount,
            "status": status,
            "method": "CM_MOMO",
            "destination_phone": "+237676858216",
            "app_transaction_ref": f"PAYOUT-SEED-{uuid.uuid4().hex[:8].upper()}",
            "provider_ref": None,
            "provider_raw": None,
            "failure_reason": "Insufficient merchant balance" if status == "FAILED" else None,
            "processed_at": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        payout.update(extra)
        self.db["payouts"][_key(payout["id"])] = payout
        return dict(payout)

    # ------------------------------------------------------
    # read helpers for assertions
    # ------------------------------------------------------
    def order(self, order_id) -> dict:
        return self.db["orders"][_key(order_id)]

    def wallet(self, wallet_id) -> dict:
        return self.db["wallets"][_key(wallet_id)]

    def payout(self, payout_id) -> dict:
        return self.db["payouts"][_key(payout_id)]

    def product(self, product_id) -> dict:
        return self.db["products"][_key(product_id)]

    def jobs_for_order(self, order_id) -> list[dict]:
        return [j for j in self.db["jobs"].values() if _key(j["order_id"]) == _key(order_id)]

    def ledger(self, **filters) -> list[dict]:
        return [
            t for t in self.db["transactions"]
            if all(_key(t.get(k)) == _key(v) for k, v in filters.items())
        ]

    # ------------------------------------------------------
    # app.orders.repository
    # ------------------------------------------------------
    def get_order(self, conn, order_id, *, for_update: bool = False):
        order = self.db["orders"].get(_key(order_id))
        return dict(order) if order else None

    def get_order_items(self, conn, order_id):
        items = []
        for item in self.db["order_items"].get(_key(order_id), []):
            product = self.db["products"].get(_key(item["product_id"]), {})
            items.append({**item, "product_name": product.get("name"), "product_city": product.get("city")})
        return items

    def get_vendor_profile(self, conn, vendor_id):
        profile = self.db["vendor_profiles"].get(_key(vendor_id))
        return dict(profile) if profile else None

    def update_order_status(self, conn, order_id, *, status, from_status, timestamp_column=None):
        order = self.db["orders"].get(_key(order_id))
        if not order or order["status"] != from_status:
            return None
        order["status"] = status
        if timestamp_column:
            order[timestamp_column] = _now()
        order["updated_at"] = _now()
        return dict(order)

    def cancel_order(self, conn, order_id, *, from_status, cancelled_by, cancel_reason):
        order = self.db["orders"].get(_key(order_id))
        if not order or order["status"] != from_status:
            return None
        order.update(
            status="CANCELLED",
            cancelled_at=_now(),
            cancelled_by=cancelled_by,
            cancel_reason=cancel_reason,
            updated_at=_now(),
        )
        return dict(order)

    def complete_order(self, conn, order_id, *, subtotal, commission_amount, vendor_earning):
        order = self.db["orders"].get(_key(order_id))
        if not order or order["status"] != "DELIVERED":
            return None
        order.update(
            status="COMPLETED",
            completed_at=_now(),
            subtotal=subtotal,
            commission_amount=commission_amount,
            vendor_earning=vendor_earning,
            funds_released_at=_now(),
            updated_at=_now(),
        )
        return dict(order)

    def restore_stock(self, conn, items):
        restored = 0
        for item in items:
            product = self.db["products"].get(_key(item["product_id"]))
            if product:
                product["stock"] += int(item["quantity"])
                restored += 1
        return restored

    def list_orders(self, conn, *, status=None, vendor_id=None, customer_id=None, limit=50, offset=0):
        rows = [
            dict(o) for o in self.db["orders"].values()
            if (not status or o["status"] == status)
            and (not vendor_id or _key(o["vendor_id"]) == _key(vendor_id))
            and (not customer_id or _key(o["customer_id"]) == _key(customer_id))
        ]
        return rows[offset:offset + limit]

    # ------------------------------------------------------
    # app.delivery.repository
    # ------------------------------------------------------
    def get_job(self, conn, job_id, *, for_update: bool = False):
        job = self.db["jobs"].get(_key(job_id))
        return dict(job) if job else None

    def get_job_by_order(self, conn, order_id, *, for_update: bool = False):
        for job in self.db["jobs"].values():
            if _key(job["order_id"]) == _key(order_id):
                return dict(job)
        return None

    def create_job(self, conn, *, order_id, pickup_city, pickup_address, dropoff_city, dropoff_address, fee):
        if self.get_job_by_order(conn, order_id):
            return None
        job = {
            "id": uuid.uuid4(),
            "order_id": order_id,
            "agency_id": None,
            "status": "OPEN",
            "pickup_city": pickup_city,
            "pickup_address": pickup_address,
            "dropoff_city": dropoff_city,
            "dropoff_address": dropoff_address,
            "fee": int(fee),
            "accepted_at": None,
            "delivered_at": None,
            "cancelled_at": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.db["jobs"][_key(job["id"])] = job
        return dict(job)

    def assign_open_job(self, conn, job_id, agency_id):
        job = self.db["jobs"].get(_key(job_id))
        if not job or job["status"] != "OPEN" or job["agency_id"] is not None:
            return None
        job.update(agency_id=agency_id, status="ACCEPTED", accepted_at=_now(), updated_at=_now())
        return dict(job)

    def update_job_status(self, conn, job_id, *, from_status, to_status):
        job = self.db["jobs"].get(_key(job_id))
        if not job or job["status"] != from_status:
            return None
        job["status"] = to_status
        column = {"ACCEPTED": "accepted_at", "DELIVERED": "delivered_at", "CANCELLED": "cancelled_at"}.get(to_status)
        if column:
            job[column] = _now()
        job["updated_at"] = _now()
        return dict(job)

    def list_open_jobs(self, conn, *, city_keys, limit, offset):
        rows = [
            dict(j) for j in self.db["jobs"].values()
            if j["status"] == "OPEN"
            and j["agency_id"] is None
            and (j["pickup_city"] or "").strip().lower() in city_keys
        ]
        return rows[offset:offset + limit]

    def list_jobs(self, conn, *, agency_id=None, status=None, city=None, limit=50, offset=0):
        rows = [
            dict(j) for j in self.db["jobs"].values()
            if (not agency_id or _key(j["agency_id"]) == _key(agency_id))
            and (not status or j["status"] == status)
            and (not city or (j["pickup_city"] or "").strip().lower() == city)
        ]
        return rows[offset:offset + limit]

    def job_stats(self, conn, *, stale_minutes):
        by_status: dict[str, int] = {}
        for job in self.db["jobs"].values():
            by_status[job["status"]] = by_status.get(job["status"], 0) + 1
        stale = sum(
            1 for j in self.db["jobs"].values()
            if j["status"] == "OPEN" and (_now() - j["created_at"]).total_seconds() >= stale_minutes * 60
        )
        return {"by_status": by_status, "stale_open": stale}

    def append_job_log(self, conn, *, job_id, event, previous_status, new_status, actor_id, actor_type,
                       actor_name=None, notes=None, metadata=None):
        self.db["job_logs"].append(
            {
                "id": uuid.uuid4(),
                "job_id": job_id,
                "event": event,
                "previous_status": previous_status,
                "new_status": new_status,
                "actor_id": actor_id,
                "actor_type": actor_type,
                "actor_name": actor_name,
                "notes": notes,
                "metadata": metadata or {},
                "created_at": _now(),
            }
        )

    def get_job_logs(self, conn, job_id):
        return [dict(log) for log in self.db["job_logs"] if _key(log["job_id"]) == _key(job_id)]

    def get_agency(self, conn, agency_id):
        agency = self.db["agencies"].get(_key(agency_id))
        return dict(agency) if agency else None

    def get_agency_by_user(self, conn, user_id):
        for agency in self.db["agencies"].values():
            if _key(agency["user_id"]) == _key(user_id):
                return dict(agency)
        return None

    # ------------------------------------------------------
    # app.wallets.repository
    # ------------------------------------------------------
    def get_wallet(self, conn, vendor_id, *, for_update: bool = False):
        for wallet in self.db["wallets"].values():
            if _key(wallet["vendor_id"]) == _key(vendor_id):
                return dict(wallet)
        return None

    def get_wallet_by_id(self, conn, wallet_id, *, for_update: bool = False):
        wallet = self.db["wallets"].get(_key(wallet_id))
        return dict(wallet) if wallet else None

    def get_or_create_wallet(self, conn, vendor_id, *, currency, for_update: bool = False):
        existing = self.get_wallet(conn, vendor_id)
        if existing:
            return existing
        return self.add_wallet(vendor_id)

    def adjust_available_balance(self, conn, wallet_id, delta, *, touch_last_withdrawal: bool = False):
        wallet = self.db["wallets"].get(_key(wallet_id))
        if not wallet:
            return None
        new_balance = wallet["available_balance"] + int(delta)
        if new_balance < 0:
            raise BalanceCheckViolation("vendor_wallets_available_balance_check")
        wallet["available_balance"] = new_balance
        if touch_last_withdrawal:
            wallet["last_withdrawal_at"] = _now()
        wallet["updated_at"] = _now()
        return dict(wallet)

    def set_withdrawals_locked(self, conn, wallet_id, *, reason, admin_id):
        wallet = self.db["wallets"].get(_key(wallet_id))
        if not wallet or wallet["withdrawals_locked"]:
            return None
        wallet.update(withdrawals_locked=True, lock_reason=reason, locked_at=_now(), locked_by_id=admin_id)
        return dict(wallet)

    def clear_withdrawals_lock(self, conn, wallet_id):
        wallet = self.db["wallets"].get(_key(wallet_id))
        if not wallet or not wallet["withdrawals_locked"]:
            return None
        wallet.update(withdrawals_locked=False, lock_reason=None, locked_at=None, locked_by_id=None)
        return dict(wallet)

    def count_locked_wallets(self, conn):
        return sum(1 for w in self.db["wallets"].values() if w["withdrawals_locked"])

    def insert_transaction(self, conn, *, wallet_id, type, amount, currency, reference_type, reference_id,
                           status, note=None):
        if int(amount) <= 0:
            raise AmountCheckViolation(f"wallet_transactions.amount must be positive, got {amount}")
        if reference_type == "ORDER":
            for tx in self.db["transactions"]:
                if (
                    tx["reference_type"] == "ORDER"
                    and _key(tx["reference_id"]) == _key(reference_id)
                    and tx["type"] == type
                ):
                    return None
        tx = {
            "id": uuid.uuid4(),
            "wallet_id": wallet_id,
            "type": type,
            "amount": int(amount),
            "currency": currency,
            "reference_type": reference_type,
            "reference_id": reference_id,
            "status": status,
            "note": note,
            "created_at": _now(),
            "updated_at": _now(),
        }
        self.db["transactions"].append(tx)
        return dict(tx)

    def set_transaction_status(self, conn, tx_id, *, status, from_status="PENDING", note=None):
        for tx in self.db["transactions"]:
            if _key(tx["id"]) == _key(tx_id) and tx["status"] == from_status:
                tx["status"] = status
                if note is not None:
                    tx["note"] = note
                return True
        return False

    def pending_debits(self, conn, wallet_id):
        return sum(
            t["amount"] for t in self.db["transactions"]
            if _key(t["wallet_id"]) == _key(wallet_id)
            and t["type"] == "DEBIT_WITHDRAWAL"
            and t["status"] == "PENDING"
        )

    def recent_transactions(self, conn, wallet_id, *, limit: int = 10):
        rows = [dict(t) for t in self.db["transactions"] if _key(t["wallet_id"]) == _key(wallet_id)]
        return list(reversed(rows))[:limit]

    def transactions_for_reference(self, conn, *, reference_type, reference_id):
        return [
            dict(t) for t in self.db["transactions"]
            if t["reference_type"] == reference_type and _key(t["reference_id"]) == _key(reference_id)
        ]

    # ------------------------------------------------------
    # app.payouts.repository
    # ------------------------------------------------------
    def create_payout(self, conn, *, vendor_id, wallet_id, amount, method, destination_phone, app_transaction_ref):
        return self.add_payout(
            vendor_id=vendor_id,
            wallet_id=wallet_id,
            amount=int(amount),
            status="REQUESTED",
            method=method,
            destination_phone=destination_phone,
            app_transaction_ref=app_transaction_ref,
            failure_reason=None,
        )

    def get_payout(self, conn, payout_id, *, for_update: bool = False):
        payout = self.db["payouts"].get(_key(payout_id))
        return dict(payout) if payout else None

    def get_payout_by_ref(self, conn, app_transaction_ref, *, for_update: bool = False):
        for payout in self.db["payouts"].values():
            if payout["app_transaction_ref"] == app_transaction_ref:
                return dict(payout)
        return None

    def reset_for_retry(self, conn, payout_id, *, app_transaction_ref):
        payout = self.db["payouts"].get(_key(payout_id))
        if not payout or payout["status"] != "FAILED":
            return None
        payout.update(
            status="REQUESTED",
            app_transaction_ref=app_transaction_ref,
            provider_ref=None,
            provider_raw=None,
            failure_reason=None,
            processed_at=None,
            updated_at=_now(),
        )
        return dict(payout)

    def mark_processing(self, conn, payout_id, *, provider_ref, provider_raw):
        payout = self.db["payouts"].get(_key(payout_id))
        if not payout or payout["status"] != "REQUESTED":
            return False
        payout.update(status="PROCESSING", provider_ref=provider_ref, provider_raw=provider_raw, updated_at=_now())
        return True

    def mark_failed(self, conn, payout_id, *, from_status, failure_reason, provider_raw=None):
        payout = self.db["payouts"].get(_key(payout_id))
        if not payout or payout["status"] != from_status:
            return False
        payout.update(status="FAILED", failure_reason=failure_reason, processed_at=_now(), updated_at=_now())
        if provider_raw is not None:
            payout["provider_raw"] = provider_raw
        return True

    def mark_success(self, conn, payout_id, *, provider_raw=None):
        payout = self.db["payouts"].get(_key(payout_id))
        if not payout or payout["status"] != "PROCESSING":
            return False
        raw = dict(payout.get("provider_raw") or {})
        if provider_raw:
            raw["status_check"] = provider_raw
        payout.update(status="SUCCESS", provider_raw=raw, processed_at=_now(), updated_at=_now())
        return True

    def claim_processing_payouts(self, conn, *, batch_size, min_age_seconds):
        rows = [dict(p) for p in self.db["payouts"].values() if p["status"] == "PROCESSING"]
        return rows[:batch_size]

    def list_payouts(self, conn, *, status=None, vendor_id=None, date_from=None, date_to=None, limit=20, offset=0):
        rows = [
            dict(p) for p in self.db["payouts"].values()
            if (not status or p["status"] == status)
            and (not vendor_id or _key(p["vendor_id"]) == _key(vendor_id))
        ]
        return rows[offset:offset + limit], len(rows)

    def payout_stats(self, conn):
        by_status: dict[str, int] = {}
        paid = 0
        for p in self.db["payouts"].values():
            by_status[p["status"]] = by_status.get(p["status"], 0) + 1
            if p["status"] == "SUCCESS":
                paid += int(p["amount"])
        return {"by_status": by_status, "total_paid_out": paid}

    def count_in_flight(self, conn, vendor_id):
        return sum(
            1 for p in self.db["payouts"].values()
            if _key(p["vendor_id"]) == _key(vendor_id) and p["status"] in ("REQUESTED", "PROCESSING")
        )

    def get_payout_profile(self, conn, vendor_id):
        profile = self.db["payout_profiles"].get(_key(vendor_id))
        return dict(profile) if profile else None

    def upsert_payout_profile(self, conn, *, vendor_id, method, phone, full_name):
        existing = self.db["payout_profiles"].get(_key(vendor_id))
        profile = {
            "vendor_id": vendor_id,
            "preferred_method": method,
            "phone": phone,
            "full_name": full_name,
            "created_at": existing["created_at"] if existing else _now(),
            "updated_at": _now(),
        }
        self.db["payout_profiles"][_key(vendor_id)] = profile
        return dict(profile)
