"""
Maintenance ticket vendor assignment, response and scheduling.
"""
from typing import Union, Dict, Any, Tuple

import structlog
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import AuthorizationError, NotFoundError, ConflictError, StateError
from ..models.models import (
    User,
    UserRole,
    Vendor,
    MaintenanceTicket,
    TicketStatus,
    ServiceAppointment,
    AppointmentStatus,
)
from ..schemas.maintenance import AssignVendor, AssignmentResponse, TicketUpdate, ScheduleTicket
from . import audit
from .lease_conflict import intervals_overlap
from .notifications import notify_user
from .permissions import require_any_role, can_manage_ticket, is_assigned_vendor
from .time_rules import now_utc, to_utc_naive


logger = structlog.get_logger(__name__)


TERMINAL_STATUSES = (TicketStatus.COMPLETED, TicketStatus.CANCELLED)

# General table for update_maintenance_ticket. WAITING_VENDOR is entered only by
# assignment and left (to OPEN/IN_PROGRESS) only by the vendor's response.
TICKET_TRANSITIONS = {
    TicketStatus.OPEN: {TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED},
    TicketStatus.WAITING_VENDOR: {TicketStatus.CANCELLED},
    TicketStatus.IN_PROGRESS: {
        TicketStatus.WAITING_PARTS,
        TicketStatus.SCHEDULED,
        TicketStatus.COMPLETED,
        TicketStatus.CANCELLED,
    },
    TicketStatus.WAITING_PARTS: {TicketStatus.IN_PROGRESS, TicketStatus.SCHEDULED, TicketStatus.CANCELLED},
    TicketStatus.SCHEDULED: {TicketStatus.IN_PROGRESS, TicketStatus.COMPLETED, TicketStatus.CANCELLED},
    TicketStatus.COMPLETED: set(),
    TicketStatus.CANCELLED: set(),
}

VENDOR_SETTABLE_STATUSES = (TicketStatus.IN_PROGRESS, TicketStatus.WAITING_PARTS, TicketStatus.COMPLETED)

SCHEDULABLE_STATUSES = (TicketStatus.IN_PROGRESS, TicketStatus.WAITING_PARTS)

# Appointments that hold a slot in the vendor's calendar
BUSY_APPOINTMENT_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
)


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target in TICKET_TRANSITIONS.get(current, set())


def _get_ticket(db: Session, ticket_id) -> MaintenanceTicket:
    ticket = db.query(MaintenanceTicket).filter(
        MaintenanceTicket.id == ticket_id,
        MaintenanceTicket.deleted_at.is_(None),
    ).with_for_update().first()
    if not ticket:
        raise NotFoundError("Maintenance ticket not found")
    return ticket


def _status_change(old: TicketStatus, new: TicketStatus):
    return f"{old.value} → {new.value}" if old != new else None


def assign_vendor(
    db: Session,
    actor: User,
    ticket_id,
    payload: Union[AssignVendor, Dict[str, Any]],
) -> MaintenanceTicket:
    """
    Assign a vendor to a ticket and wait for their response.

    Args:
        db: Database session
        actor: Landlord owning the ticket's property, or admin
        ticket_id: Ticket to assign
        payload: vendor_id

    Returns:
        The ticket, now WAITING_VENDOR
    """
    data = AssignVendor.model_validate(payload)
    require_any_role(actor, UserRole.LANDLORD, UserRole.ADMIN)

    with transaction(db):
        ticket = _get_ticket(db, ticket_id)
        if not can_manage_ticket(actor, ticket):
            raise AuthorizationError("Unauthorized")
        if ticket.status in TERMINAL_STATUSES:
            raise StateError(f"Cannot assign a vendor to a {ticket.status.value} ticket")

        vendor = db.query(Vendor).filter(
            Vendor.id == data.vendor_id,
            Vendor.deleted_at.is_(None),
        ).first()
        if not vendor:
            raise NotFoundError("Vendor not found")

        old_status = ticket.status
        ticket.vendor_id = vendor.id
        ticket.assigned_to_id = vendor.user_id
        ticket.status = TicketStatus.WAITING_VENDOR
        ticket.decline_reason = None
        ticket.updated_at = now_utc()

        audit.append_audit_entry(
            db,
            actor,
            audit.TICKET_UPDATED,
            f"Assigned {vendor.business_name} to ticket '{ticket.title}'",
            "ticket",
            ticket.id,
            metadata={
                "ticketId": ticket.id,
                "vendorId": vendor.id,
                "statusChange": _status_change(old_status, ticket.status),
            },
        )
        vendor_user_id = vendor.user_id

    notify_user(
        vendor_user_id,
        "ticket_assigned",
        "New maintenance request",
        f"You have been assigned to '{ticket.title}'. Please accept or decline.",
        {"ticket_id": ticket.id},
    )
    return ticket


def respond_to_ticket_assignment(
    db: Session,
    actor: User,
    ticket_id,
    payload: Union[AssignmentResponse, Dict[str, Any]],
) -> MaintenanceTicket:
    """Assigned vendor accepts (IN_PROGRESS) or declines (back to OPEN, unassigned)."""
    data = AssignmentResponse.model_validate(payload)
    require_any_role(actor, UserRole.VENDOR, message="Only vendors can respond to assignments")

    with transaction(db):
        ticket = _get_ticket(db, ticket_id)
        if not is_assigned_vendor(db, actor, ticket):
            raise AuthorizationError("You are not assigned to this ticket")
        if ticket.status != TicketStatus.WAITING_VENDOR:
            raise StateError("Ticket is not awaiting a vendor response")

        old_status = ticket.status
        vendor_id = ticket.vendor_id
        if data.accept:
            ticket.status = TicketStatus.IN_PROGRESS
            if data.estimated_cost is not None:
                ticket.estimated_cost = data.estimated_cost
            if data.notes is not None:
                ticket.notes = data.notes
        else:
            ticket.status = TicketStatus.OPEN
            ticket.vendor_id = None
            ticket.assigned_to_id = None
            ticket.decline_reason = data.notes
        ticket.updated_at = now_utc()

        audit.append_audit_entry(
            db,
            actor,
            audit.TICKET_UPDATED,
            f"Vendor {'accepted' if data.accept else 'declined'} ticket '{ticket.title}'",
            "ticket",
            ticket.id,
            metadata={
                "ticketId": ticket.id,
                "vendorId": vendor_id,
                "accepted": data.accept,
                "estimatedCost": data.estimated_cost,
                "statusChange": _status_change(old_status, ticket.status),
            },
        )
        landlord_id = ticket.property.landlord_id

    notify_user(
        landlord_id,
        "ticket_accepted" if data.accept else "ticket_declined",
        "Vendor accepted request" if data.accept else "Vendor declined request",
        f"The vendor {'accepted' if data.accept else 'declined'} '{ticket.title}'.",
        {"ticket_id": ticket.id},
    )
    return ticket


def update_maintenance_ticket(
    db: Session,
    actor: User,
    ticket_id,
    payload: Union[TicketUpdate, Dict[str, Any]],
) -> MaintenanceTicket:
    """
    Update a ticket's status, costs or notes.
    - Landlord owner and admin may change any field
    - The assigned vendor may set costs, notes and IN_PROGRESS/WAITING_PARTS/COMPLETED
    """
    data = TicketUpdate.model_validate(payload)
    changes = data.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)

    with transaction(db):
        ticket = _get_ticket(db, ticket_id)
        manager = can_manage_ticket(actor, ticket)
        if not manager and not is_assigned_vendor(db, actor, ticket):
            raise AuthorizationError("Unauthorized")

        old_status = ticket.status
        status_changed = new_status is not None and new_status != old_status
        if status_changed:
            if not manager and new_status not in VENDOR_SETTABLE_STATUSES:
                raise AuthorizationError(f"Vendors cannot set ticket status to {new_status.value}")
            if not can_transition(old_status, new_status):
                raise StateError(
                    f"Cannot change ticket status from {old_status.value} to {new_status.value}"
                )

        for field, value in changes.items():
            setattr(ticket, field, value)
        if status_changed:
            ticket.status = new_status
            if new_status == TicketStatus.COMPLETED:
                ticket.completed_date = now_utc()
        ticket.updated_at = now_utc()

        audit.append_audit_entry(
            db,
            actor,
            audit.TICKET_UPDATED,
            f"Updated ticket '{ticket.title}'",
            "ticket",
            ticket.id,
            metadata={
                "ticketId": ticket.id,
                "statusChange": _status_change(old_status, ticket.status),
                "updatedFields": sorted(changes.keys()) + (["status"] if status_changed else []),
            },
        )

    if status_changed:
        logger.info(
            "ticket_status_changed",
            ticket_id=str(ticket.id),
            old_status=old_status.value,
            new_status=new_status.value,
        )
    return ticket


def schedule_ticket(
    db: Session,
    actor: User,
    ticket_id,
    payload: Union[ScheduleTicket, Dict[str, Any]],
) -> Tuple[MaintenanceTicket, ServiceAppointment]:
    """
    Book the assigned vendor for a service window.

    The vendor's busy appointments must not overlap the half-open window
    [scheduled_start, scheduled_end).

    Returns:
        (ticket, appointment)
    """
    data = ScheduleTicket.model_validate(payload)
    require_any_role(actor, UserRole.LANDLORD, UserRole.ADMIN)
    start = to_utc_naive(data.scheduled_start)
    end = to_utc_naive(data.scheduled_end)

    with transaction(db):
        ticket = _get_ticket(db, ticket_id)
        if not can_manage_ticket(actor, ticket):
            raise AuthorizationError("Unauthorized")
        if not ticket.vendor_id:
            raise StateError("Ticket has no assigned vendor")
        if ticket.status not in SCHEDULABLE_STATUSES:
            raise StateError(f"Cannot schedule a {ticket.status.value} ticket")

        busy = db.query(ServiceAppointment).filter(
            ServiceAppointment.vendor_id == ticket.vendor_id,
            ServiceAppointment.status.in_(BUSY_APPOINTMENT_STATUSES),
        ).all()
        for appt in busy:
            if intervals_overlap(start, end, to_utc_naive(appt.scheduled_start), to_utc_naive(appt.scheduled_end)):
                raise ConflictError("Vendor already has an appointment during this time")

        appointment = ServiceAppointment(
            ticket_id=ticket.id,
            vendor_id=ticket.vendor_id,
            scheduled_start=start,
            scheduled_end=end,
            status=AppointmentStatus.SCHEDULED,
            notes=data.notes,
            created_at=now_utc(),
        )
        db.add(appointment)

        old_status = ticket.status
        ticket.status = TicketStatus.SCHEDULED
        ticket.scheduled_date = start
        ticket.updated_at = now_utc()
        db.flush()

        audit.append_audit_entry(
            db,
            actor,
            audit.TICKET_UPDATED,
            f"Scheduled ticket '{ticket.title}' for {start.isoformat()}",
            "ticket",
            ticket.id,
            metadata={
                "ticketId": ticket.id,
                "appointmentId": appointment.id,
                "vendorId": ticket.vendor_id,
                "scheduledStart": start.isoformat(),
                "scheduledEnd": end.isoformat(),
                "statusChange": _status_change(old_status, ticket.status),
            },
        )
        vendor_user_id = ticket.assigned_to_id

    notify_user(
        vendor_user_id,
        "ticket_scheduled",
        "Service appointment scheduled",
        f"'{ticket.title}' is scheduled for {start.isoformat()}.",
        {"ticket_id": ticket.id, "appointment_id": appointment.id},
    )
    return ticket, appointment
