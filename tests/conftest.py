"""
Test fixtures for the lease consistency engine.

Every test gets a fresh in-memory SQLite database; the API client shares the
test's session through a `get_db` override and authenticates with real
bearer tokens signed with the test secret.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("TZ_DEFAULT", "UTC")
os.environ.setdefault("RATE_LIMIT", "10000/minute")

import uuid
from datetime import date, datetime
from decimal import Decimal

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leasekeeper.config import settings
from leasekeeper.db import Base, get_db
from leasekeeper.main import app as application
from leasekeeper.models.models import (
    User,
    UserRole,
    Property,
    Unit,
    UnitStatus,
    Tenant,
    Lease,
    LeaseTenant,
    LeaseType,
    LeaseStatus,
    Payment,
    PaymentStatus,
    Vendor,
    MaintenanceTicket,
    TicketStatus,
)


class Factory:
    """Inserts committed rows with sensible defaults."""

    def __init__(self, session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def user(self, role: UserRole, email: str = None, is_active: bool = True) -> User:
        email = email or f"{role.value.lower()}-{uuid.uuid4().hex[:8]}@example.com"
        return self._save(User(email=email, name=email.split("@")[0], role=role, is_active=is_active))

    def property(self, landlord: User, name: str = "Maple Court", address: str = "100 Maple St") -> Property:
        return self._save(Property(landlord_id=landlord.id, name=name, address=address))

    def unit(self, prop: Property, unit_number: str = "101", status: UnitStatus = UnitStatus.VACANT) -> Unit:
        return self._save(Unit(property_id=prop.id, unit_number=unit_number, status=status, is_active=True))

    def tenant(self, user: User = None) -> Tenant:
        user = user or self.user(UserRole.TENANT)
        return self._save(Tenant(user_id=user.id))

    def vendor(self, user: User = None, business_name: str = "Pipe Pros") -> Vendor:
        user = user or self.user(UserRole.VENDOR)
        return self._save(Vendor(user_id=user.id, business_name=business_name))

    def lease(
        self,
        unit: Unit,
        tenant: Tenant,
        status: LeaseStatus = LeaseStatus.DRAFT,
        start_date: date = date(2024, 1, 1),
        end_date: date = date(2024, 12, 31),
        created_at: datetime = None,
    ) -> Lease:
        lease = Lease(
            unit_id=unit.id,
            primary_tenant_id=tenant.id,
            type=LeaseType.FIXED_TERM,
            status=status,
            start_date=start_date,
            end_date=end_date,
            rent_amount=Decimal("1500.00"),
            deposit=Decimal("1500.00"),
            late_fee_days=5,
            rent_due_day=1,
            created_at=created_at or datetime.utcnow(),
        )
        self.session.add(lease)
        self.session.flush()
        self.session.add(LeaseTenant(lease_id=lease.id, tenant_id=tenant.id, is_primary_tenant=True))
        self.session.commit()
        return lease

    def payment(
        self,
        lease: Lease,
        tenant: Tenant,
        status: PaymentStatus = PaymentStatus.PENDING,
        amount: Decimal = Decimal("1500.00"),
        **kwargs,
    ) -> Payment:
        return self._save(
            Payment(lease_id=lease.id, tenant_id=tenant.id, amount=amount, status=status, **kwargs)
        )

    def ticket(
        self,
        prop: Property,
        created_by: User,
        status: TicketStatus = TicketStatus.OPEN,
        vendor: Vendor = None,
        title: str = "Leaking kitchen faucet",
    ) -> MaintenanceTicket:
        return self._save(
            MaintenanceTicket(
                property_id=prop.id,
                created_by_id=created_by.id,
                title=title,
                status=status,
                vendor_id=vendor.id if vendor else None,
                assigned_to_id=vendor.user_id if vendor else None,
            )
        )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def admin(factory):
    return factory.user(UserRole.ADMIN, email="admin@example.com")


@pytest.fixture
def landlord(factory):
    return factory.user(UserRole.LANDLORD, email="landlord@example.com")


@pytest.fixture
def other_landlord(factory):
    return factory.user(UserRole.LANDLORD, email="other-landlord@example.com")


@pytest.fixture
def prop(factory, landlord):
    return factory.property(landlord)


@pytest.fixture
def unit(factory, prop):
    return factory.unit(prop, "U1")


@pytest.fixture
def tenant_user(factory):
    return factory.user(UserRole.TENANT, email="tenant@example.com")


@pytest.fixture
def tenant(factory, tenant_user):
    return factory.tenant(tenant_user)


@pytest.fixture
def vendor_user(factory):
    return factory.user(UserRole.VENDOR, email="vendor@example.com")


@pytest.fixture
def vendor(factory, vendor_user):
    return factory.vendor(vendor_user)


@pytest.fixture
def auth():
    """Build bearer headers for a user."""
    def _headers(user: User) -> dict:
        payload = {"sub": str(user.id)}
        token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def app(db):
    def _override_get_db():
        yield db

    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Async test client for the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
