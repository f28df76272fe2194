"""
Unit occupancy API routes.
"""
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles
from ..schemas.units import OccupancyProjection, OccupancySyncResult
from ..services.envelope import execute, to_response
from ..services.lease_lifecycle import get_vacant_units
from ..services.occupancy import project_unit_occupancy, sync_lease_and_unit_statuses


router = APIRouter(prefix="/api/units", tags=["units"])


@router.get("/vacant")
def vacant_units(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return to_response(execute("get_vacant_units", get_vacant_units, db, user))


@router.post("/sync-occupancy")
def sync_occupancy(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ADMIN")),
):
    result = execute(
        "sync_lease_and_unit_statuses",
        lambda: OccupancySyncResult(**sync_lease_and_unit_statuses(db, user)),
        message="Unit occupancy synchronized",
    )
    return to_response(result)


@router.post("/{unit_id}/project-occupancy")
def project_occupancy(
    unit_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "project_unit",
        lambda: OccupancyProjection(**project_unit_occupancy(db, user, unit_id)),
    )
    return to_response(result)
