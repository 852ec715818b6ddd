"""
Invoice API endpoints.

Previewing, drafting, finalizing, approving (draft + finalize in
one call), deleting drafts and issuing credit notes. Each write
endpoint is one unit of work; a failed finalize leaves the invoice
a draft.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gst_billing.api.deps import get_actor, get_tenant_id, http_error
from gst_billing.errors import BillingError
from gst_billing.models.base import get_db
from gst_billing.models.enums import InvoiceStatus
from gst_billing.schemas.invoice import (
    ApproveInvoiceRequest,
    CreditNoteCreate,
    DraftInvoiceCreate,
    FinalizeRequest,
    InvoicePreview,
    InvoiceResponse,
)
from gst_billing.schemas.ledger import JournalEntryResponse
from gst_billing.services.credit_note_service import CreditNoteService
from gst_billing.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/drafts", response_model=InvoiceResponse, status_code=201)
def create_draft_invoice(
    request: DraftInvoiceCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """Bill a shipment as a draft invoice. One invoice per shipment."""
    try:
        return InvoiceService(db, tenant_id).create_draft(request, created_by=actor)
    except BillingError as e:
        raise http_error(e)


@router.post("/approve", response_model=InvoiceResponse, status_code=201)
def approve_invoice(
    request: ApproveInvoiceRequest,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """
    Create and finalize an invoice for a shipment in one call.

    Either a finalized, posted invoice exists afterwards or
    nothing was written.
    """
    try:
        return InvoiceService(db, tenant_id).create_and_finalize(request, actor=actor)
    except BillingError as e:
        raise http_error(e)


@router.get("", response_model=list[InvoiceResponse])
def list_invoices(
    status: InvoiceStatus | None = None,
    customer_id: int | None = None,
    is_credit_note: bool | None = None,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    return InvoiceService(db, tenant_id).list_invoices(status, customer_id, is_credit_note)


@router.get("/preview", response_model=InvoicePreview)
def preview_invoice(
    shipment_id: int,
    adjustment_amount: Decimal = Decimal("0.00"),
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """Price and tax a shipment without creating an invoice."""
    try:
        return InvoiceService(db, tenant_id).preview(shipment_id, adjustment_amount)
    except BillingError as e:
        raise http_error(e)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    try:
        return InvoiceService(db, tenant_id).get_invoice(invoice_id)
    except BillingError as e:
        raise http_error(e)


@router.post("/{invoice_id}/finalize", response_model=InvoiceResponse)
def finalize_invoice(
    invoice_id: int,
    request: FinalizeRequest | None = None,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """
    Finalize a draft invoice and post it to the ledger.

    Transport and e-way bill details are optional.
    """
    try:
        return InvoiceService(db, tenant_id).finalize(invoice_id, request, finalized_by=actor)
    except BillingError as e:
        raise http_error(e)


@router.delete("/{invoice_id}", status_code=204)
def delete_draft_invoice(
    invoice_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """Delete a draft invoice. Finalized invoices are credited instead."""
    try:
        InvoiceService(db, tenant_id).delete_draft(invoice_id, actor=actor)
    except BillingError as e:
        raise http_error(e)


@router.post(
    "/{invoice_id}/credit-note",
    response_model=InvoiceResponse,
    status_code=201,
)
def create_credit_note(
    invoice_id: int,
    request: CreditNoteCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """Reverse a finalized invoice with a credit note."""
    try:
        return CreditNoteService(db, tenant_id).create_credit_note(
            invoice_id, request, actor=actor
        )
    except BillingError as e:
        raise http_error(e)


@router.get(
    "/{invoice_id}/journal-entries",
    response_model=list[JournalEntryResponse],
)
def get_invoice_journal_entries(
    invoice_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    try:
        return InvoiceService(db, tenant_id).get_journal_entries(invoice_id)
    except BillingError as e:
        raise http_error(e)
