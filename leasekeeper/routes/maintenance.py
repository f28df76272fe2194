"""
Maintenance ticket API routes.
Vendor assignment, vendor response, scheduling and ticket updates.
"""
import uuid
from typing import Dict, Any

from fastapi import APIRouter, Depends, Body
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user
from ..schemas.maintenance import TicketOut, AppointmentOut, ScheduledTicketOut
from ..services.envelope import execute, to_response
from ..services.maintenance import (
    assign_vendor,
    respond_to_ticket_assignment,
    update_maintenance_ticket,
    schedule_ticket,
)


router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


@router.post("/{ticket_id}/assign")
def assign_vendor_route(
    ticket_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "assign_vendor",
        lambda: TicketOut.model_validate(assign_vendor(db, user, ticket_id, payload)),
        message="Vendor assigned",
    )
    return to_response(result)


@router.post("/{ticket_id}/respond")
def respond_route(
    ticket_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "respond_to_ticket_assignment",
        lambda: TicketOut.model_validate(respond_to_ticket_assignment(db, user, ticket_id, payload)),
    )
    return to_response(result)


@router.patch("/{ticket_id}")
def update_ticket_route(
    ticket_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "update_maintenance_ticket",
        lambda: TicketOut.model_validate(update_maintenance_ticket(db, user, ticket_id, payload)),
        message="Ticket updated",
    )
    return to_response(result)


def _scheduled(ticket, appointment) -> ScheduledTicketOut:
    return ScheduledTicketOut(
        ticket=TicketOut.model_validate(ticket),
        appointment=AppointmentOut.model_validate(appointment),
    )


@router.post("/{ticket_id}/schedule")
def schedule_route(
    ticket_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "schedule_ticket",
        lambda: _scheduled(*schedule_ticket(db, user, ticket_id, payload)),
        message="Appointment scheduled",
    )
    return to_response(result, success_status=201)
