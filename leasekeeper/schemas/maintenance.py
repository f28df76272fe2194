import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.models import TicketStatus, AppointmentStatus


class AssignVendor(BaseModel):
    vendor_id: uuid.UUID


class AssignmentResponse(BaseModel):
    accept: bool
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class TicketUpdate(BaseModel):
    status: Optional[TicketStatus] = None
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class ScheduleTicket(BaseModel):
    scheduled_start: datetime
    scheduled_end: datetime
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.scheduled_end <= self.scheduled_start:
            raise ValueError("Appointment end must be after its start")
        return self


class AppointmentOut(BaseModel):
    id: uuid.UUID
    ticket_id: uuid.UUID
    vendor_id: uuid.UUID
    scheduled_start: datetime
    scheduled_end: datetime
    status: AppointmentStatus
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class TicketOut(BaseModel):
    id: uuid.UUID
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    title: str
    priority: str
    status: TicketStatus
    vendor_id: Optional[uuid.UUID] = None
    assigned_to_id: Optional[uuid.UUID] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    notes: Optional[str] = None
    decline_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduledTicketOut(BaseModel):
    ticket: TicketOut
    appointment: AppointmentOut
