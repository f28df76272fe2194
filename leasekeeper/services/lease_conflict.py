"""
Lease conflict detection service.
HARD STOP rule: no two blocking leases may overlap on the same unit.

Intervals are half-open [start, end); a missing end is unbounded.
"""
from datetime import date, datetime
from typing import Optional, List, Union

from sqlalchemy.orm import Session

from ..models.models import Lease, LeaseStatus


# Statuses that reserve a unit for their date range. DRAFT, EXPIRING_SOON and
# the terminal states never block.
BLOCKING_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.PENDING_SIGNATURE)

Bound = Union[date, datetime]


def intervals_overlap(
    start1: Bound,
    end1: Optional[Bound],
    start2: Bound,
    end2: Optional[Bound],
) -> bool:
    """
    Two half-open intervals overlap if start1 < end2 AND start2 < end1.
    A None end stands for +infinity.
    """
    starts_before_other_ends = end2 is None or start1 < end2
    other_starts_before_end = end1 is None or start2 < end1
    return starts_before_other_ends and other_starts_before_end


def find_conflicting_leases(
    db: Session,
    unit_id,
    start_date: date,
    end_date: Optional[date],
    exclude_lease_id=None,
) -> List[Lease]:
    """
    Get the unit's blocking leases whose term overlaps [start_date, end_date).

    Args:
        db: Database session
        unit_id: Unit to check
        start_date: Candidate term start
        end_date: Candidate term end (None = open-ended)
        exclude_lease_id: Lease to ignore (the lease being transitioned)

    Returns:
        List of conflicting leases, oldest start first
    """
    query = db.query(Lease).filter(
        Lease.unit_id == unit_id,
        Lease.deleted_at.is_(None),
        Lease.status.in_(BLOCKING_STATUSES),
    )
    if exclude_lease_id:
        query = query.filter(Lease.id != exclude_lease_id)

    conflicts = []
    for lease in query.order_by(Lease.start_date.asc()).all():
        if intervals_overlap(start_date, end_date, lease.start_date, lease.end_date):
            conflicts.append(lease)
    return conflicts
