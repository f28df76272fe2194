"""
Seed the local database with a landlord, tenants, a vendor and a small property.

Usage:
  python scripts/seed_dev_data.py

This script is idempotent: running it multiple times will reuse the same
records based on unique fields (email for users, name for properties,
unit_number within a property).
"""
import sys
import os
from datetime import datetime
from decimal import Decimal

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from leasekeeper.db import SessionLocal, Base, engine
from leasekeeper.models.models import (
    User,
    UserRole,
    Property,
    Unit,
    UnitStatus,
    Tenant,
    Vendor,
)


def ensure_user(session, email: str, name: str, role: UserRole) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        user.name = name
        user.role = role
        user.is_active = True
        return user
    user = User(email=email, name=name, role=role, is_active=True, created_at=datetime.utcnow())
    session.add(user)
    session.flush()
    return user


def ensure_tenant(session, user: User) -> Tenant:
    tenant = session.query(Tenant).filter(Tenant.user_id == user.id).first()
    if tenant:
        return tenant
    tenant = Tenant(user_id=user.id)
    session.add(tenant)
    session.flush()
    return tenant


def ensure_vendor(session, user: User, business_name: str) -> Vendor:
    vendor = session.query(Vendor).filter(Vendor.user_id == user.id).first()
    if vendor:
        vendor.business_name = business_name
        return vendor
    vendor = Vendor(user_id=user.id, business_name=business_name)
    session.add(vendor)
    session.flush()
    return vendor


def ensure_property(session, landlord: User, name: str, address: str) -> Property:
    prop = session.query(Property).filter(Property.name == name, Property.landlord_id == landlord.id).first()
    if prop:
        prop.address = address
        return prop
    prop = Property(landlord_id=landlord.id, name=name, address=address)
    session.add(prop)
    session.flush()
    return prop


def ensure_unit(session, prop: Property, unit_number: str, rent: Decimal) -> Unit:
    unit = session.query(Unit).filter(Unit.property_id == prop.id, Unit.unit_number == unit_number).first()
    if unit:
        return unit
    unit = Unit(property_id=prop.id, unit_number=unit_number, rent_amount=rent, status=UnitStatus.VACANT)
    session.add(unit)
    session.flush()
    return unit


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        ensure_user(session, "admin@example.com", "Admin", UserRole.ADMIN)
        landlord = ensure_user(session, "landlord@example.com", "Lana Landlord", UserRole.LANDLORD)
        for i in range(1, 3):
            ensure_tenant(session, ensure_user(session, f"tenant{i}@example.com", f"Tenant {i}", UserRole.TENANT))
        ensure_vendor(
            session,
            ensure_user(session, "vendor@example.com", "Victor Vendor", UserRole.VENDOR),
            "Victor Plumbing Ltd.",
        )
        prop = ensure_property(session, landlord, "Maple Court", "100 Maple St")
        for number in ("101", "102", "201"):
            ensure_unit(session, prop, number, Decimal("1500.00"))
        session.commit()
        print("Seed completed")
    finally:
        session.close()


if __name__ == "__main__":
    main()
