"""
Cash payment confirmation API routes.
"""
import uuid
from typing import Optional, Dict, Any

from fastapi import APIRouter, Depends, Body
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user
from ..schemas.payments import PaymentOut
from ..services.envelope import execute, to_response
from ..services.cash_payments import (
    tenant_confirm_cash_payment,
    landlord_confirm_cash_payment,
    landlord_reject_cash_payment,
)


router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/{payment_id}/cash/claim")
def claim_cash_payment(
    payment_id: uuid.UUID,
    payload: Optional[Dict[str, Any]] = Body(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "tenant_confirm_cash_payment",
        lambda: PaymentOut.model_validate(tenant_confirm_cash_payment(db, user, payment_id, payload)),
        message="Payment marked as paid. Awaiting landlord confirmation.",
    )
    return to_response(result)


@router.post("/{payment_id}/cash/confirm")
def confirm_cash_payment(
    payment_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "landlord_confirm_cash_payment",
        lambda: PaymentOut.model_validate(landlord_confirm_cash_payment(db, user, payment_id)),
        message="Cash payment confirmed",
    )
    return to_response(result)


@router.post("/{payment_id}/cash/reject")
def reject_cash_payment(
    payment_id: uuid.UUID,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = execute(
        "landlord_reject_cash_payment",
        lambda: PaymentOut.model_validate(landlord_reject_cash_payment(db, user, payment_id, payload)),
        message="Cash payment rejected",
    )
    return to_response(result)
