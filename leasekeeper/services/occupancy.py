"""
Unit occupancy projection and reconciliation.

A unit is OCCUPIED exactly when some non-deleted lease on it is a live
tenancy (ACTIVE or EXPIRING_SOON).
Inline lease transitions keep this true per unit; `reconcile_unit_occupancy`
repairs drift across all units.
"""
from typing import Optional, Dict, Set

import structlog
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import NotFoundError, AuthorizationError
from ..models.models import Unit, UnitStatus, Lease, LeaseStatus, User
from . import audit
from .permissions import can_manage_unit, is_admin
from .time_rules import now_utc


logger = structlog.get_logger(__name__)

# Lease statuses under which the tenant still holds the unit
OCCUPYING_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.EXPIRING_SOON)

ENDED_STATUSES = (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED)


def lock_unit(db: Session, unit_id) -> Optional[Unit]:
    """Load a non-deleted unit with a row lock (no-op on SQLite)."""
    return db.query(Unit).filter(
        Unit.id == unit_id,
        Unit.deleted_at.is_(None),
    ).with_for_update().first()


def has_occupying_lease(db: Session, unit_id, exclude_lease_id=None) -> bool:
    query = db.query(Lease.id).filter(
        Lease.unit_id == unit_id,
        Lease.deleted_at.is_(None),
        Lease.status.in_(OCCUPYING_STATUSES),
    )
    if exclude_lease_id:
        query = query.filter(Lease.id != exclude_lease_id)
    return query.first() is not None


def _set_unit_status(unit: Unit, status: UnitStatus, reason: str) -> bool:
    if unit.status == status:
        return False
    old = unit.status
    unit.status = status
    unit.updated_at = now_utc()
    logger.info(
        "unit_status_changed",
        unit_id=str(unit.id),
        old_status=getattr(old, "value", old),
        new_status=status.value,
        reason=reason,
    )
    return True


def project_unit(db: Session, unit: Unit, reason: str = "projection") -> bool:
    """
    Recompute a unit's status from its leases.
    Pending lease changes must already be flushed.

    Returns:
        True if the stored status changed
    """
    target = UnitStatus.OCCUPIED if has_occupying_lease(db, unit.id) else UnitStatus.VACANT
    return _set_unit_status(unit, target, reason)


def project_unit_occupancy(db: Session, actor: User, unit_id) -> Dict:
    """Re-project a single unit on demand (landlord owner or admin)."""
    with transaction(db):
        unit = lock_unit(db, unit_id)
        if not unit:
            raise NotFoundError("Unit not found")
        if not can_manage_unit(actor, unit):
            raise AuthorizationError("Unauthorized")

        old_status = unit.status
        changed = project_unit(db, unit, reason="manual_projection")
        if changed:
            audit.append_audit_entry(
                db,
                actor,
                audit.PROPERTY_UPDATED,
                f"Unit {unit.unit_number} status projected to {unit.status.value}",
                "unit",
                unit.id,
                metadata={
                    "unitId": unit.id,
                    "statusChange": f"{old_status.value} → {unit.status.value}",
                },
            )
    return {"unit_id": unit.id, "status": unit.status, "changed": changed}


def reconcile_unit_occupancy(db: Session) -> Dict[str, int]:
    """
    Bring every unit in line with its leases. Flushes but does not commit.

    1. Units with an ACTIVE or EXPIRING_SOON lease that are not OCCUPIED
       become OCCUPIED.
    2. Units whose leases ended (TERMINATED/EXPIRED) and that have no other
       occupying lease become VACANT unless they already are.
    3. OCCUPIED units with no occupying lease at all become VACANT.

    Returns:
        {"occupied_count": n, "vacant_count": m} counted over distinct units
    """
    occupying_unit_ids: Set = {
        row[0]
        for row in db.query(Lease.unit_id).filter(
            Lease.deleted_at.is_(None),
            Lease.status.in_(OCCUPYING_STATUSES),
        ).distinct().all()
    }
    ended_unit_ids: Set = {
        row[0]
        for row in db.query(Lease.unit_id).filter(
            Lease.status.in_(ENDED_STATUSES),
        ).distinct().all()
    }

    occupied: Set = set()
    vacated: Set = set()

    if occupying_unit_ids:
        to_occupy = db.query(Unit).filter(
            Unit.id.in_(list(occupying_unit_ids)),
            Unit.deleted_at.is_(None),
            Unit.status != UnitStatus.OCCUPIED,
        ).with_for_update().all()
        for unit in to_occupy:
            if _set_unit_status(unit, UnitStatus.OCCUPIED, "reconciliation"):
                occupied.add(unit.id)

    ended_without_tenancy = ended_unit_ids - occupying_unit_ids
    if ended_without_tenancy:
        to_vacate = db.query(Unit).filter(
            Unit.id.in_(list(ended_without_tenancy)),
            Unit.deleted_at.is_(None),
            Unit.status != UnitStatus.VACANT,
        ).with_for_update().all()
        for unit in to_vacate:
            if _set_unit_status(unit, UnitStatus.VACANT, "reconciliation"):
                vacated.add(unit.id)

    stale_query = db.query(Unit).filter(
        Unit.deleted_at.is_(None),
        Unit.status == UnitStatus.OCCUPIED,
    )
    if occupying_unit_ids:
        stale_query = stale_query.filter(Unit.id.notin_(list(occupying_unit_ids)))
    for unit in stale_query.with_for_update().all():
        if _set_unit_status(unit, UnitStatus.VACANT, "reconciliation"):
            vacated.add(unit.id)

    db.flush()
    return {"occupied_count": len(occupied), "vacant_count": len(vacated)}


def sync_lease_and_unit_statuses(db: Session, actor: Optional[User] = None) -> Dict[str, int]:
    """
    Run reconciliation in its own transaction.

    Args:
        db: Database session
        actor: Admin user, or None when run as a system job

    Returns:
        Counts of units set OCCUPIED and VACANT
    """
    if actor is not None and not is_admin(actor):
        raise AuthorizationError("Only administrators can synchronize unit occupancy")

    with transaction(db):
        result = reconcile_unit_occupancy(db)
        if result["occupied_count"] or result["vacant_count"]:
            audit.append_audit_entry(
                db,
                actor,
                audit.OCCUPANCY_SYNCED,
                f"Reconciled unit occupancy: {result['occupied_count']} occupied, "
                f"{result['vacant_count']} vacated",
                "unit",
                None,
                metadata=result,
            )

    logger.info("occupancy_sync_completed", **result)
    return result
