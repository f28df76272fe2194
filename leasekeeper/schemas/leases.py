import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..config import settings
from ..models.models import LeaseType, LeaseStatus, UnitStatus, PaymentStatus, PaymentMethod


# Inputs
class LeaseCreate(BaseModel):
    unit_id: uuid.UUID
    tenant_ids: List[uuid.UUID] = Field(min_length=1)
    type: LeaseType
    start_date: date
    end_date: Optional[date] = None
    rent_amount: Decimal = Field(gt=0)
    deposit: Decimal = Field(gt=0)
    late_fee_amount: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_days: Optional[int] = Field(default=None, ge=0)
    rent_due_day: int = Field(ge=1, le=31)
    terms: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("tenant_ids")
    @classmethod
    def dedupe_tenants(cls, v: List[uuid.UUID]) -> List[uuid.UUID]:
        # First occurrence wins; it becomes the primary tenant
        seen = []
        for tid in v:
            if tid not in seen:
                seen.append(tid)
        return seen

    @model_validator(mode="after")
    def check_term(self):
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class LeaseUpdate(BaseModel):
    status: Optional[LeaseStatus] = None
    rent_amount: Optional[Decimal] = Field(default=None, gt=0)
    deposit: Optional[Decimal] = Field(default=None, gt=0)
    late_fee_amount: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_days: Optional[int] = Field(default=None, ge=0)
    rent_due_day: Optional[int] = Field(default=None, ge=1, le=31)
    terms: Optional[str] = None
    notes: Optional[str] = None


class LeaseTerminate(BaseModel):
    termination_date: date
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_long_enough(cls, v: str) -> str:
        v = (v or "").strip()
        if len(v) < settings.termination_reason_min_chars:
            raise ValueError(
                f"Termination reason must be at least {settings.termination_reason_min_chars} characters"
            )
        return v


class LeaseListQuery(BaseModel):
    search: Optional[str] = None
    status: Optional[LeaseStatus] = None
    property_id: Optional[uuid.UUID] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=settings.leases_page_size_max)


# Outputs
class PropertyBrief(BaseModel):
    id: uuid.UUID
    name: str
    address: Optional[str] = None

    class Config:
        from_attributes = True


class UnitOut(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    unit_number: str
    status: UnitStatus
    is_active: bool
    rent_amount: Optional[Decimal] = None
    property: Optional[PropertyBrief] = None

    class Config:
        from_attributes = True


class LeaseTenantOut(BaseModel):
    tenant_id: uuid.UUID
    is_primary_tenant: bool

    class Config:
        from_attributes = True


class LeasePaymentOut(BaseModel):
    id: uuid.UUID
    amount: Decimal
    status: PaymentStatus
    method: Optional[PaymentMethod] = None
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeaseOut(BaseModel):
    id: uuid.UUID
    unit_id: uuid.UUID
    primary_tenant_id: uuid.UUID
    type: LeaseType
    status: LeaseStatus
    start_date: date
    end_date: Optional[date] = None
    rent_amount: Decimal
    deposit: Decimal
    late_fee_amount: Optional[Decimal] = None
    late_fee_days: int
    rent_due_day: int
    terms: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeaseDetailOut(LeaseOut):
    unit: Optional[UnitOut] = None
    tenants: List[LeaseTenantOut] = []
    payments: List[LeasePaymentOut] = []


class LeaseListItem(LeaseOut):
    unit: Optional[UnitOut] = None
    tenants: List[LeaseTenantOut] = []
    latest_payment: Optional[LeasePaymentOut] = None
