"""Test the append-only audit log and the result envelope."""
import pytest
from pydantic import BaseModel, Field

from leasekeeper.errors import ConflictError, NotFoundError, StateError
from leasekeeper.models.models import AuditLog, LeaseStatus, PaymentStatus, TicketStatus, UnitStatus
from leasekeeper.services import audit
from leasekeeper.services.cash_payments import tenant_confirm_cash_payment
from leasekeeper.services.envelope import execute, http_status_for, GENERIC_ERROR_MESSAGE
from leasekeeper.services.lease_lifecycle import terminate_lease, update_lease
from leasekeeper.services.maintenance import assign_vendor
from leasekeeper.services.occupancy import sync_lease_and_unit_statuses


def test_append_flushes_without_committing(db, landlord):
    entry = audit.append_audit_entry(
        db, landlord, audit.LEASE_CREATED, "Created lease", "lease", None, metadata={"unitId": "u-1"}
    )
    assert entry.id is not None
    assert entry.actor_role == "LANDLORD"

    db.rollback()
    assert db.query(AuditLog).count() == 0


def test_integrity_hash_detects_tampering(db, landlord):
    entry = audit.append_audit_entry(
        db, landlord, audit.PAYMENT_MADE, "Tenant reported cash payment", "payment", None,
        metadata={"amount": "1500.00"},
    )
    db.commit()
    assert audit.verify_integrity(entry)

    entry.metadata_json = {"amount": "15.00"}
    db.commit()
    assert not audit.verify_integrity(entry)


def test_list_entries_filters(db, landlord, admin):
    audit.append_audit_entry(db, landlord, audit.LEASE_CREATED, "a", "lease", None)
    audit.append_audit_entry(db, admin, audit.TICKET_UPDATED, "b", "ticket", None)
    db.commit()

    assert [e.action for e in audit.list_entries(db, entity_type="ticket")] == ["b"]
    assert [e.action for e in audit.list_entries(db, type=audit.LEASE_CREATED)] == ["a"]


def test_compute_diff():
    diff = audit.compute_diff({"status": "DRAFT", "rent": 10}, {"status": "ACTIVE", "rent": 10})
    assert diff == {"status": {"before": "DRAFT", "after": "ACTIVE"}}


def test_compute_diff_covers_added_and_removed_keys():
    assert audit.compute_diff({"notes": "a"}, {"terms": "b"}) == {
        "notes": {"before": "a", "after": None},
        "terms": {"before": None, "after": "b"},
    }


# -- envelope -------------------------------------------------------------

class _Input(BaseModel):
    reason: str = Field(min_length=3)


def test_execute_success():
    result = execute("noop", lambda: {"ok": True}, message="done")
    assert result.success is True
    assert result.data == {"ok": True}
    assert result.message == "done"


@pytest.mark.parametrize("error,status", [
    (NotFoundError("Lease not found"), 404),
    (ConflictError("overlap"), 409),
    (StateError("bad state"), 409),
])
def test_execute_domain_error(error, status):
    def _raise():
        raise error

    result = execute("op", _raise)
    assert result.success is False
    assert result.error == error.message
    assert http_status_for(result) == status


def test_execute_converts_schema_errors():
    result = execute("op", _Input.model_validate, {"reason": "x"})
    assert result.success is False
    assert result.code == "VALIDATION_ERROR"
    assert result.error.startswith("reason")
    assert http_status_for(result) == 422


def test_execute_hides_unexpected_errors():
    def _boom():
        raise RuntimeError("database exploded: password=hunter2")

    result = execute("op", _boom)
    assert result.success is False
    assert result.error == GENERIC_ERROR_MESSAGE
    assert http_status_for(result) == 500


# -- atomicity ------------------------------------------------------------

@pytest.fixture
def failing_audit(monkeypatch):
    def _fail(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(audit, "append_audit_entry", _fail)


def test_failed_audit_rolls_back_lease_activation(db, factory, landlord, unit, tenant, failing_audit):
    lease = factory.lease(unit, tenant)

    with pytest.raises(RuntimeError):
        update_lease(db, landlord, lease.id, {"status": "ACTIVE"})

    db.refresh(lease)
    db.refresh(unit)
    assert lease.status == LeaseStatus.DRAFT
    assert unit.status == UnitStatus.VACANT


def test_failed_audit_rolls_back_termination(db, factory, landlord, unit, tenant, failing_audit):
    lease = factory.lease(unit, tenant, status=LeaseStatus.ACTIVE)
    unit.status = UnitStatus.OCCUPIED
    db.commit()

    with pytest.raises(RuntimeError):
        terminate_lease(db, landlord, lease.id, {"termination_date": "2024-07-01", "reason": "Tenant moved out"})

    db.refresh(lease)
    db.refresh(unit)
    assert lease.status == LeaseStatus.ACTIVE
    assert lease.end_date.isoformat() == "2024-12-31"
    assert unit.status == UnitStatus.OCCUPIED


def test_failed_audit_rolls_back_cash_claim(db, factory, tenant_user, unit, tenant, failing_audit):
    lease = factory.lease(unit, tenant, status=LeaseStatus.ACTIVE)
    payment = factory.payment(lease, tenant)

    with pytest.raises(RuntimeError):
        tenant_confirm_cash_payment(db, tenant_user, payment.id, {"receipt_number": "R-9"})

    db.refresh(payment)
    assert payment.status == PaymentStatus.PENDING
    assert payment.method is None
    assert payment.receipt_number is None


def test_failed_audit_rolls_back_vendor_assignment(db, factory, landlord, prop, tenant_user, vendor, failing_audit):
    ticket = factory.ticket(prop, tenant_user)

    with pytest.raises(RuntimeError):
        assign_vendor(db, landlord, ticket.id, {"vendor_id": vendor.id})

    db.refresh(ticket)
    assert ticket.status == TicketStatus.OPEN
    assert ticket.vendor_id is None


def test_failed_audit_rolls_back_occupancy_sync(db, factory, prop, tenant, failing_audit):
    drifted_unit = factory.unit(prop, "D1", status=UnitStatus.VACANT)
    factory.lease(drifted_unit, tenant, status=LeaseStatus.ACTIVE)

    with pytest.raises(RuntimeError):
        sync_lease_and_unit_statuses(db)

    db.refresh(drifted_unit)
    assert drifted_unit.status == UnitStatus.VACANT
