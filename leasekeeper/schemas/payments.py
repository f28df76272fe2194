import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..models.models import PaymentStatus, PaymentMethod


class CashPaymentClaim(BaseModel):
    receipt_number: Optional[str] = Field(default=None, max_length=100)
    paid_date: Optional[date] = None
    notes: Optional[str] = None


class CashPaymentReject(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Rejection reason is required")
        return v


class PaymentOut(BaseModel):
    id: uuid.UUID
    lease_id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None
    amount: Decimal
    status: PaymentStatus
    method: Optional[PaymentMethod] = None
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    receipt_number: Optional[str] = None
    notes: Optional[str] = None
    claimed_paid_date: Optional[date] = None
    claimed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    class Config:
        from_attributes = True
