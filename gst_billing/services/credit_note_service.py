"""
Credit note service: reverses a finalized invoice.

A credit note is an invoice-shaped document with every quantity
negated. Its lines are re-priced and re-taxed with the original's
rates and states rather than copied, and they come out as the
exact negative of the original. Its journal entries are the
mirror images of the original's entries, so every ledger the
invoice touched nets to zero. The original becomes CREDITED,
which is terminal.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from gst_billing.errors import AlreadyCredited, InvoiceNotFinalized
from gst_billing.models.base import atomic
from gst_billing.models.enums import (
    DocumentType,
    InvoiceStatus,
    PaymentStatus,
    SourceType,
    TransactionType,
)
from gst_billing.models.invoice import Invoice
from gst_billing.schemas.invoice import CreditNoteCreate
from gst_billing.services.audit import record_event
from gst_billing.services.invoice_service import (
    InvoiceService,
    apply_totals,
    build_line,
)
from gst_billing.services.ledger_service import LedgerService, mirror_lines
from gst_billing.services.numbering_service import NumberingService

logger = logging.getLogger(__name__)


class CreditNoteService:

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id
        self.numbering = NumberingService(db, tenant_id)
        self.ledger = LedgerService(db, tenant_id)
        self.invoices = InvoiceService(db, tenant_id)

    def create_credit_note(
        self, invoice_id: int, request: CreditNoteCreate, actor: str | None = None
    ) -> Invoice:
        """
        Issue a credit note against a finalized invoice.

        Raises AlreadyCredited if the invoice was credited before
        and InvoiceNotFinalized if it is still a draft.
        """
        with atomic(self.db):
            original = self.invoices.lock_invoice(invoice_id)
            if original.status == InvoiceStatus.CREDITED:
                raise AlreadyCredited(
                    f"Invoice {original.invoice_number} has already been credited"
                )
            if original.status != InvoiceStatus.FINALIZED or original.is_credit_note:
                raise InvoiceNotFinalized(
                    f"Invoice {original.invoice_number} is {original.status.value}; "
                    f"only finalized invoices can be credited"
                )

            # Guarded transition: only one caller can move FINALIZED -> CREDITED
            result = self.db.execute(
                update(Invoice)
                .where(
                    Invoice.id == original.id,
                    Invoice.tenant_id == self.tenant_id,
                    Invoice.status == InvoiceStatus.FINALIZED,
                )
                .values(status=InvoiceStatus.CREDITED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyCredited(
                    f"Invoice {original.invoice_number} was credited concurrently"
                )
            self.db.refresh(original)

            credit_note = self._build_credit_note(original, request, actor)
            self._post_reversals(original, credit_note, actor)

            record_event(
                self.db,
                tenant_id=self.tenant_id,
                event_type="invoice.credit_note_issued",
                instance=credit_note,
                actor_id=actor,
                details={
                    "credit_note_number": credit_note.invoice_number,
                    "original_invoice": original.invoice_number,
                    "total_amount": credit_note.total_amount,
                    "reason": request.reason,
                },
            )
            record_event(
                self.db,
                tenant_id=self.tenant_id,
                event_type="invoice.credited",
                instance=original,
                actor_id=actor,
                details={"credit_note_number": credit_note.invoice_number},
            )
            self.db.flush()

        logger.info(
            "Credit note %s issued for invoice %s, total %s",
            credit_note.invoice_number, original.invoice_number, credit_note.total_amount,
            extra={"tenant": self.tenant_id},
        )
        return credit_note

    def _build_credit_note(
        self, original: Invoice, request: CreditNoteCreate, actor: str | None
    ) -> Invoice:
        lines = [
            build_line(
                line.line_no,
                description=line.description,
                quantity=-line.quantity,
                unit_price=line.unit_price,
                discount=-line.discount_amount,
                gst_rate=line.gst_rate,
                customer_state=original.place_of_supply,
                company_state=original.company_state,
                unit_cost=line.unit_cost,
                product_id=line.product_id,
                hsn_code=line.hsn_code,
                sac_code=line.sac_code,
                unit_of_measurement=line.unit_of_measurement,
            )
            for line in original.lines
        ]

        note_date = request.credit_note_date or date.today()
        credit_note = Invoice(
            tenant_id=self.tenant_id,
            invoice_number=self.numbering.next_number(DocumentType.CREDIT_NOTE, note_date),
            invoice_date=note_date,
            customer_id=original.customer_id,
            shipment_id=None,
            invoice_type=original.invoice_type,
            place_of_supply=original.place_of_supply,
            company_state=original.company_state,
            reverse_charge=original.reverse_charge,
            status=InvoiceStatus.FINALIZED,
            payment_status=PaymentStatus.PAID,
            finalized_at=datetime.utcnow(),
            finalized_by=actor,
            is_credit_note=True,
            credit_note_for=original.id,
            notes=f"Credit note for {original.invoice_number}: {request.reason}",
            created_by=actor,
            lines=lines,
        )
        apply_totals(credit_note, lines, -original.adjustment_amount)
        credit_note.total_paid = credit_note.total_amount
        credit_note.balance_due = Decimal("0.00")

        self.db.add(credit_note)
        self.db.flush()
        return credit_note

    def _post_reversals(self, original: Invoice, credit_note: Invoice, actor: str | None) -> None:
        """Mirror every entry the original invoice posted (primary and COGS)."""
        for entry in self.ledger.get_entries_for_source(SourceType.INVOICE, original.id):
            self.ledger.post(
                SourceType.CREDIT_NOTE,
                credit_note.id,
                mirror_lines(entry),
                f"Credit note {credit_note.invoice_number} reversing "
                f"{entry.entry_number} for invoice {original.invoice_number}",
                TransactionType.REVERSAL,
                posting_role=entry.posting_role,
                entry_date=credit_note.invoice_date,
                created_by=actor,
            )
