# schemas.py
from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

PayoutMethod = Literal["CM_MOMO", "CM_OM"]
OrderStatusName = Literal["PENDING", "CONFIRMED", "IN_TRANSIT", "DELIVERED", "COMPLETED", "CANCELLED"]


# -------- ORDERS --------
class OrderStatusUpdate(BaseModel):
    status: OrderStatusName


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AdminOrderStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: OrderStatusName
    reason: Optional[str] = Field(default=None, max_length=500)


# -------- DELIVERY --------
class MarkDeliveredRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=500)


class AdminAssignJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    agency_id: UUID
    notes: Optional[str] = Field(default=None, max_length=500)


class AdminCancelJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(min_length=3, max_length=500)


# -------- WALLET / PAYOUTS --------
class WithdrawRequest(BaseModel):
    amount: int = Field(gt=0)


class PayoutProfileRequest(BaseModel):
    method: PayoutMethod
    phone: str = Field(min_length=6, max_length=32)
    full_name: str = Field(max_length=200)


class LockWithdrawalsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(min_length=3, max_length=500)
