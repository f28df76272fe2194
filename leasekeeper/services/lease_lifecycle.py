"""
Lease lifecycle service.

Create, transition, terminate and soft-delete leases, keeping the leased
unit's occupancy in step. Every mutation runs in one transaction with its
audit entry.
"""
import math
from datetime import timedelta
from typing import Optional, Dict, Any, List, Union

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..db import transaction
from ..errors import AuthorizationError, NotFoundError, ConflictError, StateError, ValidationError
from ..models.models import (
    User,
    UserRole,
    Unit,
    Property,
    Lease,
    LeaseStatus,
    LeaseTenant,
    Tenant,
    Payment,
    PaymentStatus,
    UnitStatus,
)
from ..schemas.leases import (
    LeaseCreate,
    LeaseUpdate,
    LeaseTerminate,
    LeaseListQuery,
    LeaseListItem,
    LeaseDetailOut,
    LeasePaymentOut,
    UnitOut,
)
from ..schemas.audit import AuditEntryOut
from . import audit
from .lease_conflict import BLOCKING_STATUSES, find_conflicting_leases
from .occupancy import lock_unit, project_unit
from .permissions import (
    require_any_role,
    can_manage_unit,
    can_manage_lease,
    can_view_lease,
    is_admin,
    is_landlord,
    is_tenant,
    tenant_for_user,
)
from .time_rules import now_utc, today_local


logger = structlog.get_logger(__name__)


LEASE_TRANSITIONS = {
    LeaseStatus.DRAFT: {LeaseStatus.PENDING_SIGNATURE, LeaseStatus.ACTIVE},
    LeaseStatus.PENDING_SIGNATURE: {LeaseStatus.ACTIVE, LeaseStatus.TERMINATED},
    LeaseStatus.ACTIVE: {
        LeaseStatus.EXPIRING_SOON,
        LeaseStatus.EXPIRED,
        LeaseStatus.TERMINATED,
        LeaseStatus.RENEWED,
    },
    LeaseStatus.EXPIRING_SOON: {LeaseStatus.EXPIRED, LeaseStatus.ACTIVE, LeaseStatus.TERMINATED},
    LeaseStatus.EXPIRED: set(),
    LeaseStatus.TERMINATED: set(),
    LeaseStatus.RENEWED: set(),
}

# Payments that keep a draft lease from being deleted
DELETE_BLOCKING_PAYMENTS = (PaymentStatus.COMPLETED, PaymentStatus.PENDING)

# Columns that cannot be cleared through an update
NON_NULLABLE_FIELDS = ("rent_amount", "deposit", "late_fee_days", "rent_due_day")


def can_transition(current: LeaseStatus, target: LeaseStatus) -> bool:
    return target in LEASE_TRANSITIONS.get(current, set())


def _get_lease(db: Session, lease_id) -> Lease:
    lease = db.query(Lease).filter(
        Lease.id == lease_id,
        Lease.deleted_at.is_(None),
    ).first()
    if not lease:
        raise NotFoundError("Lease not found")
    return lease


def _check_no_overlap(db: Session, unit_id, start_date, end_date, exclude_lease_id=None) -> None:
    conflicts = find_conflicting_leases(db, unit_id, start_date, end_date, exclude_lease_id)
    if conflicts:
        other = conflicts[0]
        until = other.end_date.isoformat() if other.end_date else "open-ended"
        raise ConflictError(
            f"Unit already has a {other.status.value} lease from "
            f"{other.start_date.isoformat()} to {until} that overlaps the requested dates"
        )


def create_lease(db: Session, actor: User, payload: Union[LeaseCreate, Dict[str, Any]]) -> Lease:
    """
    Create a DRAFT lease on a unit.

    Args:
        db: Database session
        actor: Landlord owning the unit's property, or admin
        payload: LeaseCreate fields; the first tenant id becomes the primary tenant

    Returns:
        The created Lease
    """
    data = LeaseCreate.model_validate(payload)
    require_any_role(actor, UserRole.LANDLORD, UserRole.ADMIN)

    with transaction(db):
        unit = lock_unit(db, data.unit_id)
        if not unit or unit.property is None or unit.property.deleted_at is not None:
            raise NotFoundError("Unit not found")
        if not can_manage_unit(actor, unit):
            raise AuthorizationError("Unauthorized")

        _check_no_overlap(db, unit.id, data.start_date, data.end_date)

        tenants = db.query(Tenant).filter(
            Tenant.id.in_(data.tenant_ids),
            Tenant.deleted_at.is_(None),
        ).all()
        if len(tenants) != len(data.tenant_ids):
            raise ValidationError("One or more tenants not found")

        lease = Lease(
            unit_id=unit.id,
            primary_tenant_id=data.tenant_ids[0],
            type=data.type,
            status=LeaseStatus.DRAFT,
            start_date=data.start_date,
            end_date=data.end_date,
            rent_amount=data.rent_amount,
            deposit=data.deposit,
            late_fee_amount=data.late_fee_amount,
            late_fee_days=data.late_fee_days if data.late_fee_days is not None else settings.default_late_fee_days,
            rent_due_day=data.rent_due_day,
            terms=data.terms,
            notes=data.notes,
            created_at=now_utc(),
        )
        db.add(lease)
        db.flush()

        for idx, tenant_id in enumerate(data.tenant_ids):
            db.add(LeaseTenant(lease_id=lease.id, tenant_id=tenant_id, is_primary_tenant=(idx == 0)))

        audit.append_audit_entry(
            db,
            actor,
            audit.LEASE_CREATED,
            f"Created lease for unit {unit.unit_number}",
            "lease",
            lease.id,
            metadata={
                "leaseId": lease.id,
                "unitId": unit.id,
                "propertyId": unit.property_id,
                "tenantIds": data.tenant_ids,
            },
        )

    logger.info("lease_created", lease_id=str(lease.id), unit_id=str(lease.unit_id))
    return lease


def update_lease(db: Session, actor: User, lease_id, payload: Union[LeaseUpdate, Dict[str, Any]]) -> Lease:
    """
    Update lease fields and optionally transition its status.

    A transition into ACTIVE or PENDING_SIGNATURE is checked for overlap with
    the unit's other blocking leases. Any status change re-projects the unit.
    """
    data = LeaseUpdate.model_validate(payload)
    changes = data.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    for field in NON_NULLABLE_FIELDS:
        if field in changes and changes[field] is None:
            changes.pop(field)

    with transaction(db):
        lease = _get_lease(db, lease_id)
        if not can_manage_lease(actor, lease):
            raise AuthorizationError("Unauthorized")

        old_status = lease.status
        status_changed = new_status is not None and new_status != old_status
        if status_changed:
            if not can_transition(old_status, new_status):
                raise StateError(
                    f"Cannot change lease status from {old_status.value} to {new_status.value}"
                )
            if new_status in BLOCKING_STATUSES:
                lock_unit(db, lease.unit_id)
                _check_no_overlap(db, lease.unit_id, lease.start_date, lease.end_date, exclude_lease_id=lease.id)

        before = {field: getattr(lease, field) for field in changes}
        for field, value in changes.items():
            setattr(lease, field, value)
        if status_changed:
            lease.status = new_status
        lease.updated_at = now_utc()
        db.flush()

        if status_changed:
            unit = lock_unit(db, lease.unit_id)
            if unit:
                project_unit(db, unit, reason=f"lease_{new_status.value.lower()}")

        status_change = f"{old_status.value} → {new_status.value}" if status_changed else None
        audit.append_audit_entry(
            db,
            actor,
            audit.PROPERTY_UPDATED,
            f"Updated lease {lease.id}" + (f" ({status_change})" if status_change else ""),
            "lease",
            lease.id,
            metadata={
                "leaseId": lease.id,
                "unitId": lease.unit_id,
                "statusChange": status_change,
                "updatedFields": sorted(changes.keys()) + (["status"] if status_changed else []),
                "changes": audit.compute_diff(before, {field: getattr(lease, field) for field in changes}),
            },
        )

    if status_changed:
        logger.info(
            "lease_status_changed",
            lease_id=str(lease.id),
            old_status=old_status.value,
            new_status=new_status.value,
        )
    return lease


def terminate_lease(db: Session, actor: User, lease_id, payload: Union[LeaseTerminate, Dict[str, Any]]) -> Lease:
    """
    Terminate a lease early.

    Args:
        db: Database session
        actor: Landlord owner or admin
        lease_id: Lease to terminate
        payload: termination_date (not before the lease start) and reason

    Returns:
        The terminated Lease
    """
    data = LeaseTerminate.model_validate(payload)

    with transaction(db):
        lease = _get_lease(db, lease_id)
        if not can_manage_lease(actor, lease):
            raise AuthorizationError("Unauthorized")
        if not can_transition(lease.status, LeaseStatus.TERMINATED):
            raise StateError(f"Cannot terminate a lease in {lease.status.value} status")
        if data.termination_date < lease.start_date:
            raise ValidationError("Termination date cannot be before the lease start date")

        old_status = lease.status
        unit = lock_unit(db, lease.unit_id)
        lease.status = LeaseStatus.TERMINATED
        lease.end_date = data.termination_date
        lease.notes = data.reason
        lease.updated_at = now_utc()
        db.flush()

        if unit:
            project_unit(db, unit, reason="lease_terminated")

        audit.append_audit_entry(
            db,
            actor,
            audit.LEASE_TERMINATED,
            f"Terminated lease {lease.id}",
            "lease",
            lease.id,
            metadata={
                "leaseId": lease.id,
                "unitId": lease.unit_id,
                "terminationDate": data.termination_date.isoformat(),
                "reason": data.reason,
                "statusChange": f"{old_status.value} → {LeaseStatus.TERMINATED.value}",
            },
        )

    logger.info(
        "lease_status_changed",
        lease_id=str(lease.id),
        old_status=old_status.value,
        new_status=LeaseStatus.TERMINATED.value,
    )
    return lease


def delete_lease(db: Session, actor: User, lease_id) -> Lease:
    """Soft-delete a DRAFT lease that has no completed or pending payments."""
    with transaction(db):
        lease = _get_lease(db, lease_id)
        if not can_manage_lease(actor, lease):
            raise AuthorizationError("Unauthorized")
        if lease.status != LeaseStatus.DRAFT:
            raise StateError("Only draft leases can be deleted; terminate active leases instead")

        blocking = db.query(Payment.id).filter(
            Payment.lease_id == lease.id,
            Payment.status.in_(DELETE_BLOCKING_PAYMENTS),
        ).count()
        if blocking:
            raise StateError("Cannot delete a lease with completed or pending payments")

        lease.deleted_at = now_utc()
        audit.append_audit_entry(
            db,
            actor,
            audit.PROPERTY_DELETED,
            f"Deleted draft lease {lease.id}",
            "lease",
            lease.id,
            metadata={"leaseId": lease.id, "unitId": lease.unit_id},
        )

    logger.info("lease_deleted", lease_id=str(lease.id))
    return lease


def get_expiring_leases(db: Session, actor: User, days_ahead: Optional[int] = None) -> List[LeaseListItem]:
    """
    Leases ending within the next `days_ahead` days, soonest first.

    Args:
        db: Database session
        actor: Landlord (own properties) or admin (all)
        days_ahead: Window size in days (default EXPIRING_LEASE_DAYS_DEFAULT)
    """
    require_any_role(actor, UserRole.LANDLORD, UserRole.ADMIN)
    if days_ahead is None:
        days_ahead = settings.expiring_lease_days_default
    if days_ahead < 0:
        raise ValidationError("days_ahead must not be negative")

    today = today_local()
    query = (
        db.query(Lease)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .filter(
            Lease.deleted_at.is_(None),
            Lease.status.in_((LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON)),
            Lease.end_date.isnot(None),
            Lease.end_date >= today,
            Lease.end_date <= today + timedelta(days=days_ahead),
        )
    )
    if not is_admin(actor):
        query = query.filter(Property.landlord_id == actor.id)

    return [_list_item(db, lease) for lease in query.order_by(Lease.end_date.asc()).all()]


def _latest_completed_payment(db: Session, lease_id) -> Optional[Payment]:
    return db.query(Payment).filter(
        Payment.lease_id == lease_id,
        Payment.status == PaymentStatus.COMPLETED,
    ).order_by(Payment.paid_at.desc()).first()


def _list_item(db: Session, lease: Lease) -> LeaseListItem:
    item = LeaseListItem.model_validate(lease)
    payment = _latest_completed_payment(db, lease.id)
    if payment:
        item.latest_payment = LeasePaymentOut.model_validate(payment)
    return item


def get_leases(db: Session, actor: User, params: Union[LeaseListQuery, Dict[str, Any], None] = None) -> Dict[str, Any]:
    """
    Role-scoped, paginated lease listing, newest first.
    - Landlord: leases on their properties
    - Tenant: leases they are linked to
    - Admin: all leases
    """
    q = LeaseListQuery.model_validate(params or {})
    if not (is_admin(actor) or is_landlord(actor) or is_tenant(actor)):
        raise AuthorizationError("Unauthorized")

    query = (
        db.query(Lease)
        .join(Unit, Lease.unit_id == Unit.id)
        .join(Property, Unit.property_id == Property.id)
        .filter(Lease.deleted_at.is_(None))
    )

    if is_landlord(actor):
        query = query.filter(Property.landlord_id == actor.id)
    elif is_tenant(actor):
        tenant = tenant_for_user(db, actor)
        if not tenant:
            return _page([], q.page, q.limit, 0)
        linked = db.query(LeaseTenant.lease_id).filter(LeaseTenant.tenant_id == tenant.id)
        query = query.filter(Lease.id.in_(linked))

    if q.status:
        query = query.filter(Lease.status == q.status)
    if q.property_id:
        query = query.filter(Unit.property_id == q.property_id)
    if q.search:
        pattern = f"%{q.search.strip()}%"
        query = query.filter(
            or_(
                Unit.unit_number.ilike(pattern),
                Property.name.ilike(pattern),
                Property.address.ilike(pattern),
            )
        )

    total = query.count()
    leases = (
        query.order_by(Lease.created_at.desc())
        .offset((q.page - 1) * q.limit)
        .limit(q.limit)
        .all()
    )
    return _page([_list_item(db, lease) for lease in leases], q.page, q.limit, total)


def _page(items: list, page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


def get_lease_by_id(db: Session, actor: User, lease_id) -> LeaseDetailOut:
    lease = _get_lease(db, lease_id)
    if not can_view_lease(db, actor, lease):
        raise AuthorizationError("Unauthorized")
    return LeaseDetailOut.model_validate(lease)


def get_vacant_units(db: Session, actor: User) -> List[UnitOut]:
    """Active, non-deleted VACANT units on the caller's properties (admin: all)."""
    require_any_role(actor, UserRole.LANDLORD, UserRole.ADMIN)
    query = (
        db.query(Unit)
        .join(Property, Unit.property_id == Property.id)
        .filter(
            Unit.status == UnitStatus.VACANT,
            Unit.is_active.is_(True),
            Unit.deleted_at.is_(None),
            Property.deleted_at.is_(None),
        )
    )
    if not is_admin(actor):
        query = query.filter(Property.landlord_id == actor.id)
    return [UnitOut.model_validate(u) for u in query.order_by(Property.name.asc(), Unit.unit_number.asc()).all()]

def get_lease_audit_trail(db: Session, actor: User, lease_id, limit: int = 100) -> List[AuditEntryOut]:
    """
    Audit entries recorded against a lease, newest first.

    Each entry is re-hashed so tampered rows show up as `verified=False`.
    Only the owning landlord or an admin may read the trail.
    """
    lease = _get_lease(db, lease_id)
    if not can_manage_lease(actor, lease):
        raise AuthorizationError("Unauthorized")

    entries = audit.list_entries(db, entity_type="lease", entity_id=lease.id, limit=limit)
    return [
        AuditEntryOut(
            id=entry.id,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            type=entry.type,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            metadata=entry.metadata_json,
            created_at=entry.created_at,
            verified=audit.verify_integrity(entry),
        )
        for entry in entries
    ]
