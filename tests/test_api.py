"""Test the HTTP surface: envelopes, status codes and authentication."""
import uuid

import pytest

from leasekeeper.models.models import LeaseStatus, PaymentStatus, TicketStatus, UnitStatus, UserRole


@pytest.mark.asyncio
async def test_requires_bearer_token(client):
    resp = await client.get("/api/leases")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_inactive_user_rejected(client, factory, auth):
    ghost = factory.user(UserRole.LANDLORD, is_active=False)
    resp = await client.get("/api/leases", headers=auth(ghost))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_lease_lifecycle_over_http(client, db, auth, landlord, unit, tenant):
    """Create, activate and terminate a lease; the unit follows."""
    resp = await client.post("/api/leases", headers=auth(landlord), json={
        "unit_id": str(unit.id),
        "tenant_ids": [str(tenant.id)],
        "type": "FIXED_TERM",
        "start_date": "2024-01-01",
        "end_date": "2024-12-31",
        "rent_amount": "1500.00",
        "deposit": "1500.00",
        "rent_due_day": 1,
    })
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["status"] == "DRAFT"
    lease_id = body["data"]["id"]

    resp = await client.patch(f"/api/leases/{lease_id}", headers=auth(landlord), json={"status": "ACTIVE"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "ACTIVE"
    db.refresh(unit)
    assert unit.status == UnitStatus.OCCUPIED

    resp = await client.post(f"/api/leases/{lease_id}/terminate", headers=auth(landlord), json={
        "termination_date": "2024-07-01",
        "reason": "Tenant moved out",
    })
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "TERMINATED"
    assert data["end_date"] == "2024-07-01"
    db.refresh(unit)
    assert unit.status == UnitStatus.VACANT


@pytest.mark.asyncio
async def test_overlap_returns_conflict_envelope(client, factory, auth, landlord, unit, tenant):
    factory.lease(unit, tenant, status=LeaseStatus.ACTIVE)
    resp = await client.post("/api/leases", headers=auth(landlord), json={
        "unit_id": str(unit.id),
        "tenant_ids": [str(tenant.id)],
        "type": "MONTH_TO_MONTH",
        "start_date": "2024-06-01",
        "rent_amount": "1500.00",
        "deposit": "1500.00",
        "rent_due_day": 15,
    })
    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "CONFLICT"
    assert body["error"]


@pytest.mark.asyncio
async def test_invalid_body_returns_validation_envelope(client, auth, landlord, unit, tenant):
    resp = await client.post("/api/leases", headers=auth(landlord), json={
        "unit_id": str(unit.id),
        "tenant_ids": [str(tenant.id)],
        "type": "FIXED_TERM",
        "start_date": "2024-01-01",
        "rent_amount": "1500.00",
        "deposit": "1500.00",
        "rent_due_day": 40,
    })
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert "rent_due_day" in body["error"]


@pytest.mark.asyncio
async def test_get_unknown_lease(client, auth, landlord):
    resp = await client.get(f"/api/leases/{uuid.uuid4()}", headers=auth(landlord))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_list_and_expiring(client, factory, auth, landlord, unit, tenant):
    factory.lease(unit, tenant)
    resp = await client.get("/api/leases?page=1&limit=5", headers=auth(landlord))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["items"][0]["unit"]["unit_number"] == "U1"

    resp = await client.get("/api/leases/expiring?days_ahead=30", headers=auth(landlord))
    assert resp.status_code == 200
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_delete_draft_lease(client, factory, auth, landlord, unit, tenant):
    lease = factory.lease(unit, tenant)
    resp = await client.delete(f"/api/leases/{lease.id}", headers=auth(landlord))
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == str(lease.id)

    resp = await client.delete(f"/api/leases/{lease.id}", headers=auth(landlord))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_vacant_units_and_sync(client, factory, auth, admin, landlord, prop, unit, tenant):
    factory.lease(unit, tenant, status=LeaseStatus.ACTIVE)

    resp = await client.get("/api/units/vacant", headers=auth(landlord))
    assert [u["unit_number"] for u in resp.json()["data"]] == ["U1"]

    resp = await client.post("/api/units/sync-occupancy", headers=auth(landlord))
    assert resp.status_code == 403

    resp = await client.post("/api/units/sync-occupancy", headers=auth(admin))
    assert resp.status_code == 200
    assert resp.json()["data"] == {"occupied_count": 1, "vacant_count": 0}

    resp = await client.get("/api/units/vacant", headers=auth(landlord))
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_project_occupancy_endpoint(client, factory, auth, landlord, unit, tenant):
    factory.lease(unit, tenant, status=LeaseStatus.ACTIVE)
    resp = await client.post(f"/api/units/{unit.id}/project-occupancy", headers=auth(landlord))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "OCCUPIED"


@pytest.mark.asyncio
async def test_cash_payment_endpoints(client, factory, auth, landlord, tenant_user, unit, tenant):
    lease = factory.lease(unit, tenant, status=LeaseStatus.ACTIVE)
    payment = factory.payment(lease, tenant)

    resp = await client.post(f"/api/payments/{payment.id}/cash/confirm", headers=auth(landlord))
    assert resp.status_code == 409
    assert resp.json()["code"] == "STATE_ERROR"

    resp = await client.post(
        f"/api/payments/{payment.id}/cash/claim", headers=auth(tenant_user), json={"receipt_number": "R-1"}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "PROCESSING"

    resp = await client.post(f"/api/payments/{payment.id}/cash/reject", headers=auth(landlord), json={"reason": ""})
    assert resp.status_code == 422

    resp = await client.post(f"/api/payments/{payment.id}/cash/confirm", headers=auth(landlord))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == PaymentStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_maintenance_endpoints(client, factory, auth, landlord, prop, tenant_user, vendor_user, vendor):
    ticket = factory.ticket(prop, tenant_user)

    resp = await client.post(
        f"/api/maintenance/{ticket.id}/assign", headers=auth(landlord), json={"vendor_id": str(vendor.id)}
    )
    assert resp.json()["data"]["status"] == TicketStatus.WAITING_VENDOR.value

    resp = await client.post(f"/api/maintenance/{ticket.id}/respond", headers=auth(vendor_user), json={"accept": True})
    assert resp.json()["data"]["status"] == TicketStatus.IN_PROGRESS.value

    resp = await client.post(f"/api/maintenance/{ticket.id}/schedule", headers=auth(landlord), json={
        "scheduled_start": "2024-05-01T09:00:00Z",
        "scheduled_end": "2024-05-01T11:00:00Z",
    })
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["ticket"]["status"] == TicketStatus.SCHEDULED.value
    assert data["appointment"]["vendor_id"] == str(vendor.id)

    resp = await client.patch(f"/api/maintenance/{ticket.id}", headers=auth(vendor_user), json={"status": "CANCELLED"})
    assert resp.status_code == 403

    resp = await client.patch(f"/api/maintenance/{ticket.id}", headers=auth(vendor_user), json={"status": "COMPLETED"})
    assert resp.status_code == 200
    assert resp.json()["data"]["completed_date"] is not None


@pytest.mark.asyncio
async def test_request_id_header_is_echoed(client):
    resp = await client.get("/healthz", headers={"X-Request-ID": "abc-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_lease_audit_trail_endpoint(client, factory, auth, landlord, other_landlord, unit, tenant):
    lease = factory.lease(unit, tenant)
    resp = await client.patch(f"/api/leases/{lease.id}", headers=auth(landlord), json={"status": "ACTIVE"})
    assert resp.status_code == 200

    resp = await client.get(f"/api/leases/{lease.id}/audit", headers=auth(landlord))
    assert resp.status_code == 200
    entries = resp.json()["data"]
    assert [e["type"] for e in entries] == ["PROPERTY_UPDATED"]
    assert entries[0]["verified"] is True
    assert entries[0]["metadata"]["statusChange"] == "DRAFT → ACTIVE"

    resp = await client.get(f"/api/leases/{lease.id}/audit", headers=auth(other_landlord))
    assert resp.status_code == 403
