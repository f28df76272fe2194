"""
Cash payment dual confirmation.

PENDING -> (tenant claims) -> PROCESSING/CASH -> (landlord confirms) -> COMPLETED
                                              -> (landlord rejects)  -> PENDING
"""
from typing import Union, Dict, Any

import structlog
from sqlalchemy.orm import Session

from ..db import transaction
from ..errors import AuthorizationError, NotFoundError, ConflictError, StateError, ValidationError
from ..models.models import User, UserRole, Payment, PaymentStatus, PaymentMethod
from ..schemas.payments import CashPaymentClaim, CashPaymentReject
from . import audit
from .notifications import notify_user
from .permissions import require_any_role, is_tenant_on_lease, owns_property
from .time_rules import now_utc, today_local


logger = structlog.get_logger(__name__)


def _get_payment(db: Session, payment_id) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
    if not payment or payment.lease is None or payment.lease.deleted_at is not None:
        raise NotFoundError("Payment not found")
    return payment


def _is_cash_claim(payment: Payment) -> bool:
    return payment.status == PaymentStatus.PROCESSING and payment.method == PaymentMethod.CASH


def _landlord_id(payment: Payment):
    return payment.lease.unit.property.landlord_id


def _tenant_user_id(payment: Payment):
    return payment.tenant.user_id if payment.tenant else None


def tenant_confirm_cash_payment(
    db: Session,
    actor: User,
    payment_id,
    payload: Union[CashPaymentClaim, Dict[str, Any], None] = None,
) -> Payment:
    """
    Tenant claims a pending payment was made in cash.

    Args:
        db: Database session
        actor: Tenant linked to the payment's lease
        payment_id: Payment to claim
        payload: receipt_number, paid_date (defaults to today, never in the future), notes

    Returns:
        The payment, now PROCESSING with method CASH
    """
    data = CashPaymentClaim.model_validate(payload or {})
    require_any_role(actor, UserRole.TENANT, message="Only tenants can mark a payment as paid in cash")

    today = today_local()
    paid_date = data.paid_date or today
    if paid_date > today:
        raise ValidationError("Paid date cannot be in the future")

    with transaction(db):
        payment = _get_payment(db, payment_id)
        if not is_tenant_on_lease(db, actor, payment.lease_id):
            raise AuthorizationError("You are not a tenant on this lease")

        if payment.status == PaymentStatus.COMPLETED or _is_cash_claim(payment):
            raise ConflictError("Payment has already been marked as paid")
        if payment.status != PaymentStatus.PENDING:
            raise StateError(f"Cannot mark a {payment.status.value} payment as paid")

        payment.status = PaymentStatus.PROCESSING
        payment.method = PaymentMethod.CASH
        payment.receipt_number = data.receipt_number
        payment.claimed_paid_date = paid_date
        payment.claimed_at = now_utc()
        payment.rejection_reason = None
        if data.notes is not None:
            payment.notes = data.notes
        payment.updated_at = now_utc()

        audit.append_audit_entry(
            db,
            actor,
            audit.PAYMENT_MADE,
            f"Tenant reported cash payment of {payment.amount}",
            "payment",
            payment.id,
            metadata={
                "paymentId": payment.id,
                "leaseId": payment.lease_id,
                "amount": payment.amount,
                "receiptNumber": data.receipt_number,
                "claimedPaidDate": paid_date.isoformat(),
                "stage": "TENANT_CLAIMED",
            },
        )
        landlord_id = _landlord_id(payment)

    notify_user(
        landlord_id,
        "payment_claimed",
        "Cash payment reported",
        f"A tenant reported a cash payment of {payment.amount}. Please confirm receipt.",
        {"payment_id": payment.id, "lease_id": payment.lease_id},
    )
    logger.info("cash_payment_claimed", payment_id=str(payment.id))
    return payment


def _landlord_payment(db: Session, actor: User, payment_id) -> Payment:
    require_any_role(actor, UserRole.LANDLORD, message="Only landlords can confirm cash payments")
    payment = _get_payment(db, payment_id)
    if not owns_property(actor, payment.lease.unit.property):
        raise AuthorizationError("Unauthorized")
    if payment.status == PaymentStatus.COMPLETED:
        raise ConflictError("Payment has already been confirmed")
    if not _is_cash_claim(payment):
        raise StateError("Payment is not awaiting cash confirmation")
    return payment


def landlord_confirm_cash_payment(db: Session, actor: User, payment_id) -> Payment:
    """Landlord confirms receipt of a claimed cash payment."""
    with transaction(db):
        payment = _landlord_payment(db, actor, payment_id)
        payment.status = PaymentStatus.COMPLETED
        payment.paid_at = now_utc()
        payment.updated_at = now_utc()

        audit.append_audit_entry(
            db,
            actor,
            audit.PAYMENT_MADE,
            f"Landlord confirmed cash payment of {payment.amount}",
            "payment",
            payment.id,
            metadata={
                "paymentId": payment.id,
                "leaseId": payment.lease_id,
                "amount": payment.amount,
                "stage": "LANDLORD_CONFIRMED",
            },
        )
        tenant_user_id = _tenant_user_id(payment)

    notify_user(
        tenant_user_id,
        "payment_confirmed",
        "Cash payment confirmed",
        f"Your cash payment of {payment.amount} was confirmed.",
        {"payment_id": payment.id},
    )
    logger.info("cash_payment_confirmed", payment_id=str(payment.id))
    return payment


def landlord_reject_cash_payment(
    db: Session,
    actor: User,
    payment_id,
    payload: Union[CashPaymentReject, Dict[str, Any]],
) -> Payment:
    """Landlord rejects a cash claim; the payment returns to PENDING with the claim cleared and the reason kept."""
    data = CashPaymentReject.model_validate(payload)

    with transaction(db):
        payment = _landlord_payment(db, actor, payment_id)
        payment.status = PaymentStatus.PENDING
        payment.receipt_number = None
        payment.claimed_paid_date = None
        payment.claimed_at = None
        payment.rejection_reason = data.reason
        payment.updated_at = now_utc()

        audit.append_audit_entry(
            db,
            actor,
            audit.PAYMENT_FAILED,
            f"Landlord rejected cash payment of {payment.amount}",
            "payment",
            payment.id,
            metadata={
                "paymentId": payment.id,
                "leaseId": payment.lease_id,
                "reason": data.reason,
                "stage": "LANDLORD_REJECTED",
            },
        )
        tenant_user_id = _tenant_user_id(payment)

    notify_user(
        tenant_user_id,
        "payment_rejected",
        "Cash payment not confirmed",
        f"Your landlord could not confirm your cash payment: {data.reason}",
        {"payment_id": payment.id},
    )
    logger.info("cash_payment_rejected", payment_id=str(payment.id))
    return payment
