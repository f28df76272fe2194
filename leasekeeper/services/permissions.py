"""
Permission checking service for lease, payment and maintenance operations.

The acting principal is the resolved `User` row; only `id` and `role` are read.
"""
from typing import Optional
from sqlalchemy.orm import Session

from ..models.models import (
    User,
    UserRole,
    Property,
    Unit,
    Lease,
    LeaseTenant,
    Tenant,
    Vendor,
    MaintenanceTicket,
)
from ..errors import AuthorizationError


def _role(user: User) -> Optional[str]:
    role = getattr(user, "role", None)
    return getattr(role, "value", role)


def is_admin(user: User) -> bool:
    return _role(user) == UserRole.ADMIN.value


def is_landlord(user: User) -> bool:
    return _role(user) == UserRole.LANDLORD.value


def is_tenant(user: User) -> bool:
    return _role(user) == UserRole.TENANT.value


def is_vendor(user: User) -> bool:
    return _role(user) == UserRole.VENDOR.value


def require_any_role(user: User, *roles: UserRole, message: str = "Unauthorized") -> None:
    if _role(user) not in {r.value for r in roles}:
        raise AuthorizationError(message)


def owns_property(user: User, prop: Optional[Property]) -> bool:
    """Landlord owns the property. Admin is not implied here."""
    return bool(prop) and is_landlord(user) and str(prop.landlord_id) == str(user.id)


def can_manage_unit(user: User, unit: Unit) -> bool:
    """
    Check if user can manage leases on a unit.
    - Admin can manage any unit
    - Landlord can manage units of properties they own
    """
    if is_admin(user):
        return True
    return owns_property(user, unit.property)


def can_manage_lease(user: User, lease: Lease) -> bool:
    return can_manage_unit(user, lease.unit)


def tenant_for_user(db: Session, user: User) -> Optional[Tenant]:
    return db.query(Tenant).filter(
        Tenant.user_id == user.id,
        Tenant.deleted_at.is_(None),
    ).first()


def vendor_for_user(db: Session, user: User) -> Optional[Vendor]:
    return db.query(Vendor).filter(
        Vendor.user_id == user.id,
        Vendor.deleted_at.is_(None),
    ).first()


def is_tenant_on_lease(db: Session, user: User, lease_id) -> bool:
    if not is_tenant(user):
        return False
    tenant = tenant_for_user(db, user)
    if not tenant:
        return False
    link = db.query(LeaseTenant).filter(
        LeaseTenant.lease_id == lease_id,
        LeaseTenant.tenant_id == tenant.id,
    ).first()
    return link is not None


def can_view_lease(db: Session, user: User, lease: Lease) -> bool:
    """
    Check if user can read a lease.
    - Admin and owning landlord can read any of their leases
    - Tenant can read leases they are linked to
    """
    if can_manage_lease(user, lease):
        return True
    return is_tenant_on_lease(db, user, lease.id)


def can_manage_ticket(user: User, ticket: MaintenanceTicket) -> bool:
    if is_admin(user):
        return True
    return owns_property(user, ticket.property)


def is_assigned_vendor(db: Session, user: User, ticket: MaintenanceTicket) -> bool:
    if not is_vendor(user) or not ticket.vendor_id:
        return False
    vendor = vendor_for_user(db, user)
    return bool(vendor) and str(vendor.id) == str(ticket.vendor_id)
