"""
Payment API endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gst_billing.api.deps import get_actor, get_tenant_id, http_error
from gst_billing.errors import BillingError
from gst_billing.models.base import get_db
from gst_billing.schemas.payment import PaymentCreate, PaymentResponse
from gst_billing.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("", response_model=PaymentResponse, status_code=201)
def record_payment(
    request: PaymentCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """
    Record a payment against a finalized invoice.

    The payment, the invoice balance and the journal entry are
    written together. Cash receipts above the Section 269ST limit
    are rejected with 422.
    """
    try:
        return PaymentService(db, tenant_id).record_payment(request, created_by=actor)
    except BillingError as e:
        raise http_error(e)


@router.get("", response_model=list[PaymentResponse])
def list_payments(
    invoice_id: int | None = None,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    return PaymentService(db, tenant_id).list_payments(invoice_id)


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    try:
        return PaymentService(db, tenant_id).get_payment(payment_id)
    except BillingError as e:
        raise http_error(e)
