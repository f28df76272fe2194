"""
Lease API routes.
Lifecycle mutations and role-scoped queries, all returning the result envelope.
"""
import uuid
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Body, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User, LeaseStatus
from ..auth.security import get_current_user
from ..schemas.leases import LeaseOut
from ..services.envelope import execute, to_response
from ..services.lease_lifecycle import (
    create_lease,
    update_lease,
    terminate_lease,
    delete_lease,
    get_leases,
    get_lease_by_id,
    get_expiring_leases,
    get_lease_audit_trail,
)


router = APIRouter(prefix="/api/leases", tags=["leases"])


@router.post("")
def create_lease_route(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "create_lease",
        lambda: LeaseOut.model_validate(create_lease(db, user, payload)),
        message="Lease created successfully",
    )
    return to_response(result, success_status=201)


@router.get("")
def list_leases(
    search: Optional[str] = Query(None),
    status: Optional[LeaseStatus] = Query(None),
    property_id: Optional[uuid.UUID] = Query(None),
    page: int = Query(1),
    limit: int = Query(10),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    params = {"search": search, "status": status, "property_id": property_id, "page": page, "limit": limit}
    return to_response(execute("get_leases", get_leases, db, user, params))


@router.get("/expiring")
def expiring_leases(
    days_ahead: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return to_response(execute("get_expiring_leases", get_expiring_leases, db, user, days_ahead))


@router.get("/{lease_id}")
def get_lease(
    lease_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return to_response(execute("get_lease_by_id", get_lease_by_id, db, user, lease_id))


@router.patch("/{lease_id}")
def patch_lease(
    lease_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "update_lease",
        lambda: LeaseOut.model_validate(update_lease(db, user, lease_id, payload)),
        message="Lease updated successfully",
    )
    return to_response(result)


@router.post("/{lease_id}/terminate")
def terminate_lease_route(
    lease_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "terminate_lease",
        lambda: LeaseOut.model_validate(terminate_lease(db, user, lease_id, payload)),
        message="Lease terminated successfully",
    )
    return to_response(result)


@router.delete("/{lease_id}")
def delete_lease_route(
    lease_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "delete_lease",
        lambda: {"id": delete_lease(db, user, lease_id).id},
        message="Lease deleted successfully",
    )
    return to_response(result)


@router.get("/{lease_id}/audit")
def lease_audit_trail(
    lease_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return to_response(execute("get_lease_audit_trail", get_lease_audit_trail, db, user, lease_id, limit))
