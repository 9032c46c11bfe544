"""Pydantic schemas for payments and vouchers"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from cinema_booking.models.payment import PaymentStatus


class CheckoutCreate(BaseModel):
    booking_id: int = Field(..., gt=0)
    voucher_id: Optional[int] = Field(None, gt=0)


class CheckoutResponse(BaseModel):
    booking_id: int
    client_secret: str


class PaymentStatusResponse(BaseModel):
    provider_payment_id: str
    status: PaymentStatus


class VoucherResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    value: Decimal
    valid_until: datetime
    max_usages: int
    usages: int
