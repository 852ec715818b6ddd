"""
Invoice service: builds tax invoices from shipments.

A draft is assembled from a shipment's items: unit price (selling
price, else cost price), per-line GST from the tax calculator and
header totals. Finalizing a draft flips its status and posts it to
the ledger in the same unit of work. If posting fails the invoice
stays a draft; there is no state where an invoice is finalized but
has no journal entry.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gst_billing.errors import (
    CompanyNotFound,
    CustomerNotFound,
    InvalidAmount,
    InvoiceAlreadyExists,
    InvoiceNotDraft,
    InvoiceNotFound,
    MissingUnitPrice,
    NoCustomerAssigned,
    ShipmentNotFound,
    ValidationError,
)
from gst_billing.models.base import atomic
from gst_billing.models.company import Company
from gst_billing.models.customer import Customer
from gst_billing.models.enums import (
    DocumentType,
    InvoiceStatus,
    InvoiceType,
    PaymentStatus,
    PostingRole,
    SourceType,
    TransactionType,
)
from gst_billing.models.invoice import Invoice, InvoiceLine
from gst_billing.models.journal_entry import JournalEntry
from gst_billing.models.shipment import Shipment
from gst_billing.schemas.invoice import (
    ApproveInvoiceRequest,
    DraftInvoiceCreate,
    FinalizeRequest,
)
from gst_billing.schemas.ledger import JournalLineInput
from gst_billing.services.account_service import (
    AccountService,
    CGST_OUTPUT,
    COST_OF_GOODS_SOLD,
    IGST_OUTPUT,
    INVENTORY,
    ROUND_OFF,
    SALES,
    SGST_OUTPUT,
)
from gst_billing.services.audit import record_event
from gst_billing.services.ledger_service import LedgerService
from gst_billing.services.numbering_service import NumberingService
from gst_billing.services.tax_calculator import (
    TaxCalculator,
    compute_line_tax,
    normalize_state,
    round_money,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def build_line(
    line_no: int,
    *,
    description: str,
    quantity: Decimal,
    unit_price: Decimal,
    discount: Decimal,
    gst_rate: Decimal,
    customer_state: str,
    company_state: str,
    unit_cost: Decimal = ZERO,
    product_id: int | None = None,
    hsn_code: str | None = None,
    sac_code: str | None = None,
    unit_of_measurement: str = "PCS",
) -> InvoiceLine:
    """
    Price and tax one line.

    taxable = round(quantity x unit_price) - discount. A negative
    quantity with a negated discount gives the exact negative of
    the positive line, which is how credit notes mirror invoices.
    """
    gross = round_money(Decimal(str(quantity)) * Decimal(str(unit_price)))
    discount = round_money(discount)
    taxable = gross - discount
    tax = compute_line_tax(taxable, customer_state, company_state, gst_rate)

    return InvoiceLine(
        line_no=line_no,
        product_id=product_id,
        description=description,
        hsn_code=hsn_code,
        sac_code=sac_code,
        unit_of_measurement=unit_of_measurement or "PCS",
        quantity=quantity,
        unit_price=unit_price,
        unit_cost=unit_cost,
        discount_amount=discount,
        taxable_amount=taxable,
        gst_rate=tax.gst_rate,
        cgst_rate=tax.cgst_rate,
        cgst_amount=tax.cgst_amount,
        sgst_rate=tax.sgst_rate,
        sgst_amount=tax.sgst_amount,
        igst_rate=tax.igst_rate,
        igst_amount=tax.igst_amount,
        line_total=taxable + tax.total_tax,
    )


def apply_totals(invoice: Invoice, lines: list[InvoiceLine], adjustment: Decimal = ZERO) -> None:
    """
    Set header totals from the lines.

    total = subtotal - discount + cgst + sgst + igst + adjustment
    """
    subtotal = sum((line.taxable_amount + line.discount_amount for line in lines), ZERO)
    discount = sum((line.discount_amount for line in lines), ZERO)
    cgst = sum((line.cgst_amount for line in lines), ZERO)
    sgst = sum((line.sgst_amount for line in lines), ZERO)
    igst = sum((line.igst_amount for line in lines), ZERO)
    adjustment = round_money(adjustment)

    invoice.subtotal = subtotal
    invoice.discount_amount = discount
    invoice.taxable_amount = subtotal - discount
    invoice.cgst_amount = cgst
    invoice.sgst_amount = sgst
    invoice.igst_amount = igst
    invoice.adjustment_amount = adjustment
    invoice.total_amount = subtotal - discount + cgst + sgst + igst + adjustment


def invoice_entry_lines(
    invoice: Invoice,
    receivable_id: int,
    ledgers: dict[str, int],
) -> list[JournalLineInput]:
    """
    Journal lines for a finalized invoice.

    Dr customer ledger          total
        Cr Sales                taxable amount
        Cr CGST/SGST/IGST Output  each non-zero component
        Cr/Dr Round Off         adjustment
    """
    lines = [
        JournalLineInput(
            account_id=receivable_id,
            debit_amount=invoice.total_amount,
            bill_reference=invoice.invoice_number,
        )
    ]
    credits = [
        (SALES, invoice.taxable_amount),
        (CGST_OUTPUT, invoice.cgst_amount),
        (SGST_OUTPUT, invoice.sgst_amount),
        (IGST_OUTPUT, invoice.igst_amount),
    ]
    for code, amount in credits:
        if amount:
            lines.append(JournalLineInput(account_id=ledgers[code], credit_amount=amount))

    adjustment = invoice.adjustment_amount
    if adjustment > 0:
        lines.append(JournalLineInput(account_id=ledgers[ROUND_OFF], credit_amount=adjustment))
    elif adjustment < 0:
        lines.append(JournalLineInput(account_id=ledgers[ROUND_OFF], debit_amount=-adjustment))
    return lines


class InvoiceService:

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id
        self.numbering = NumberingService(db, tenant_id)
        self.accounts = AccountService(db, tenant_id)
        self.ledger = LedgerService(db, tenant_id)
        self.taxes = TaxCalculator(db, tenant_id)

    # --- Public operations (one unit of work each) ---

    def create_draft(
        self, request: DraftInvoiceCreate, created_by: str | None = None
    ) -> Invoice:
        """
        Bill a shipment as a draft invoice.

        Raises ShipmentNotFound, NoCustomerAssigned,
        InvoiceAlreadyExists, MissingStateError or MissingUnitPrice.
        Nothing is written on failure.
        """
        with atomic(self.db):
            invoice = self._build_draft(request, created_by)
        logger.info(
            "Draft invoice %s created for shipment %s, total %s",
            invoice.invoice_number, invoice.shipment_id, invoice.total_amount,
            extra={"tenant": self.tenant_id},
        )
        return invoice

    def finalize(
        self,
        invoice_id: int,
        request: FinalizeRequest | None = None,
        finalized_by: str | None = None,
    ) -> Invoice:
        """
        Finalize a draft and post it to the ledger.

        Both happen or neither does. A second finalize of the same
        invoice, concurrent or not, raises InvoiceNotDraft.
        """
        with atomic(self.db):
            invoice = self._finalize(invoice_id, request or FinalizeRequest(), finalized_by)
        logger.info(
            "Invoice %s finalized, total %s",
            invoice.invoice_number, invoice.total_amount,
            extra={"tenant": self.tenant_id},
        )
        return invoice

    def create_and_finalize(
        self, request: ApproveInvoiceRequest, actor: str | None = None
    ) -> Invoice:
        """
        Draft and finalize in one unit of work.

        Either a finalized, posted invoice exists afterwards or
        nothing was written at all.
        """
        finalize_request = FinalizeRequest(
            transport=request.transport,
            e_way_bill=request.e_way_bill,
            terms_and_conditions=request.terms_and_conditions,
        )
        with atomic(self.db):
            draft = self._build_draft(request, actor)
            invoice = self._finalize(draft.id, finalize_request, actor)
        logger.info(
            "Invoice %s approved for shipment %s, total %s",
            invoice.invoice_number, invoice.shipment_id, invoice.total_amount,
            extra={"tenant": self.tenant_id},
        )
        return invoice

    def delete_draft(self, invoice_id: int, actor: str | None = None) -> None:
        """
        Delete a draft. The shipment can be billed again afterwards.

        The draft's number is not reused.
        """
        with atomic(self.db):
            invoice = self.lock_invoice(invoice_id)
            if invoice.status != InvoiceStatus.DRAFT or invoice.is_credit_note:
                raise InvoiceNotDraft(
                    f"Invoice {invoice.invoice_number} is {invoice.status.value}; "
                    f"only drafts can be deleted"
                )
            record_event(
                self.db,
                tenant_id=self.tenant_id,
                event_type="invoice.draft_deleted",
                instance=invoice,
                actor_id=actor,
                details={
                    "invoice_number": invoice.invoice_number,
                    "shipment_id": invoice.shipment_id,
                },
            )
            number = invoice.invoice_number
            self.db.delete(invoice)
        logger.info(
            "Draft invoice %s deleted", number,
            extra={"tenant": self.tenant_id},
        )

    # --- Queries ---

    def get_invoice(self, invoice_id: int) -> Invoice:
        invoice = self.db.execute(
            select(Invoice).where(
                Invoice.id == invoice_id,
                Invoice.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice

    def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        customer_id: int | None = None,
        is_credit_note: bool | None = None,
    ) -> list[Invoice]:
        query = select(Invoice).where(Invoice.tenant_id == self.tenant_id)
        if status:
            query = query.where(Invoice.status == status)
        if customer_id:
            query = query.where(Invoice.customer_id == customer_id)
        if is_credit_note is not None:
            query = query.where(Invoice.is_credit_note.is_(is_credit_note))
        invoices = self.db.execute(
            query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
        ).scalars().all()
        return list(invoices)

    def get_journal_entries(self, invoice_id: int) -> list[JournalEntry]:
        """Entries posted for an invoice or credit note."""
        invoice = self.get_invoice(invoice_id)
        source_type = SourceType.CREDIT_NOTE if invoice.is_credit_note else SourceType.INVOICE
        return self.ledger.get_entries_for_source(source_type, invoice.id)

    def preview(
        self, shipment_id: int, adjustment_amount: Decimal = ZERO
    ) -> Invoice:
        """
        Price and tax a shipment without saving anything.

        Runs the same checks as create_draft. The returned invoice
        is transient: it has no number and is not in the session.
        """
        shipment, customer, company, lines = self._price_shipment(shipment_id)
        invoice = Invoice(
            tenant_id=self.tenant_id,
            customer_id=customer.id,
            shipment_id=shipment.id,
            invoice_type=InvoiceType.B2B if (customer.gstin or "").strip() else InvoiceType.B2C,
            place_of_supply=customer.state.strip(),
            company_state=company.state.strip(),
            lines=lines,
        )
        apply_totals(invoice, lines, adjustment_amount)
        return invoice

    # --- Building blocks (caller owns the unit of work) ---

    def _billed_as(self, shipment_id: int) -> str | None:
        """Number of the invoice already raised for a shipment, if any."""
        return self.db.execute(
            select(Invoice.invoice_number).where(Invoice.shipment_id == shipment_id)
        ).scalar_one_or_none()

    def _price_shipment(
        self, shipment_id: int
    ) -> tuple[Shipment, Customer, Company, list[InvoiceLine]]:
        shipment = self.db.execute(
            select(Shipment).where(
                Shipment.id == shipment_id,
                Shipment.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not shipment:
            raise ShipmentNotFound(f"Shipment {shipment_id} not found")
        if shipment.customer_id is None:
            raise NoCustomerAssigned(
                f"Shipment {shipment.shipment_number} has no customer assigned"
            )

        existing = self._billed_as(shipment.id)
        if existing:
            raise InvoiceAlreadyExists(
                f"Shipment {shipment.shipment_number} is already billed as {existing}"
            )

        customer = self.db.execute(
            select(Customer).where(
                Customer.id == shipment.customer_id,
                Customer.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not customer:
            raise CustomerNotFound(f"Customer {shipment.customer_id} not found")

        company = self.db.get(Company, self.tenant_id)
        if not company:
            raise CompanyNotFound(f"Company {self.tenant_id} not found")

        normalize_state(customer.state, "customer")
        normalize_state(company.state, "company")
        if not shipment.items:
            raise ValidationError(f"Shipment {shipment.shipment_number} has no items")

        lines = []
        for line_no, item in enumerate(shipment.items, start=1):
            product = item.product
            if item.quantity <= 0:
                raise InvalidAmount(
                    f"Line {line_no}: quantity must be positive, got {item.quantity}"
                )
            unit_price = product.selling_price
            if unit_price is None:
                unit_price = product.cost_price
            if unit_price is None:
                raise MissingUnitPrice(
                    f"Product '{product.name}' has neither a selling nor a cost price"
                )

            line = build_line(
                line_no,
                description=product.name,
                quantity=item.quantity,
                unit_price=unit_price,
                discount=item.discount_amount or ZERO,
                gst_rate=self.taxes.rates.rate_for(product.hsn_code, product.sac_code),
                customer_state=customer.state,
                company_state=company.state,
                unit_cost=product.cost_price or ZERO,
                product_id=product.id,
                hsn_code=product.hsn_code,
                sac_code=product.sac_code,
                unit_of_measurement=product.unit_of_measurement,
            )
            if line.taxable_amount < 0:
                raise InvalidAmount(f"Line {line_no}: discount exceeds line amount")
            lines.append(line)
        return shipment, customer, company, lines

    def _build_draft(
        self, request: DraftInvoiceCreate, created_by: str | None
    ) -> Invoice:
        shipment, customer, company, lines = self._price_shipment(request.shipment_id)

        invoice_date = request.invoice_date or date.today()
        invoice = Invoice(
            tenant_id=self.tenant_id,
            invoice_number=self.numbering.next_number(DocumentType.INVOICE, invoice_date),
            invoice_date=invoice_date,
            customer_id=customer.id,
            shipment_id=shipment.id,
            invoice_type=InvoiceType.B2B if (customer.gstin or "").strip() else InvoiceType.B2C,
            place_of_supply=customer.state.strip(),
            company_state=company.state.strip(),
            reverse_charge=False,
            status=InvoiceStatus.DRAFT,
            payment_status=PaymentStatus.UNPAID,
            notes=request.notes,
            created_by=created_by,
            lines=lines,
        )
        apply_totals(invoice, lines, request.adjustment_amount)
        if invoice.total_amount <= 0:
            raise InvalidAmount(
                f"Invoice total must be positive, got {invoice.total_amount}"
            )
        invoice.total_paid = ZERO
        invoice.balance_due = invoice.total_amount

        self.db.add(invoice)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise InvoiceAlreadyExists(
                f"Shipment {shipment.shipment_number} was billed concurrently"
            ) from exc

        record_event(
            self.db,
            tenant_id=self.tenant_id,
            event_type="invoice.draft_created",
            instance=invoice,
            actor_id=created_by,
            details={
                "invoice_number": invoice.invoice_number,
                "shipment_id": shipment.id,
                "total_amount": invoice.total_amount,
            },
        )
        return invoice

    def _finalize(
        self, invoice_id: int, request: FinalizeRequest, finalized_by: str | None
    ) -> Invoice:
        invoice = self.lock_invoice(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT or invoice.is_credit_note:
            raise InvoiceNotDraft(
                f"Invoice {invoice.invoice_number} is {invoice.status.value}; "
                f"only drafts can be finalized"
            )

        values = {
            "status": InvoiceStatus.FINALIZED,
            "finalized_at": datetime.utcnow(),
            "finalized_by": finalized_by,
            "terms_and_conditions": request.terms_and_conditions,
        }
        if request.transport:
            values.update(request.transport.model_dump())
        if request.e_way_bill:
            values.update(request.e_way_bill.model_dump())

        # Guarded transition: only one caller can move DRAFT -> FINALIZED
        result = self.db.execute(
            update(Invoice)
            .where(
                Invoice.id == invoice.id,
                Invoice.tenant_id == self.tenant_id,
                Invoice.status == InvoiceStatus.DRAFT,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvoiceNotDraft(
                f"Invoice {invoice.invoice_number} was finalized concurrently"
            )
        self.db.refresh(invoice)

        self._post_invoice(invoice, finalized_by)

        record_event(
            self.db,
            tenant_id=self.tenant_id,
            event_type="invoice.finalized",
            instance=invoice,
            actor_id=finalized_by,
            details={
                "invoice_number": invoice.invoice_number,
                "total_amount": invoice.total_amount,
            },
        )
        return invoice

    def _post_invoice(self, invoice: Invoice, actor: str | None) -> None:
        """Post the primary entry and, for shipped goods, the COGS entry."""
        receivable = self.accounts.get_or_create_customer_ledger(invoice.customer_id)
        ledgers = {
            code: self.accounts.get_system_account(code).id
            for code in (SALES, CGST_OUTPUT, SGST_OUTPUT, IGST_OUTPUT, ROUND_OFF)
        }
        self.ledger.post(
            SourceType.INVOICE,
            invoice.id,
            invoice_entry_lines(invoice, receivable.id, ledgers),
            f"Sales invoice {invoice.invoice_number}",
            TransactionType.INVOICE,
            entry_date=invoice.invoice_date,
            created_by=actor,
        )

        if invoice.shipment_id is None:
            return
        cost = sum(
            (round_money(line.quantity * line.unit_cost) for line in invoice.lines),
            ZERO,
        )
        if cost <= 0:
            logger.info(
                "No cost recorded for invoice %s, COGS entry skipped",
                invoice.invoice_number,
                extra={"tenant": self.tenant_id},
            )
            return
        self.ledger.post(
            SourceType.INVOICE,
            invoice.id,
            [
                JournalLineInput(
                    account_id=self.accounts.get_system_account(COST_OF_GOODS_SOLD).id,
                    debit_amount=cost,
                    bill_reference=invoice.invoice_number,
                ),
                JournalLineInput(
                    account_id=self.accounts.get_system_account(INVENTORY).id,
                    credit_amount=cost,
                    bill_reference=invoice.invoice_number,
                ),
            ],
            f"Cost of goods sold for invoice {invoice.invoice_number}",
            TransactionType.INVOICE,
            posting_role=PostingRole.COGS,
            entry_date=invoice.invoice_date,
            created_by=actor,
        )

    def lock_invoice(self, invoice_id: int) -> Invoice:
        """Load an invoice with a row lock, bypassing stale session state."""
        invoice = self.db.execute(
            select(Invoice)
            .where(
                Invoice.id == invoice_id,
                Invoice.tenant_id == self.tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not invoice:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return invoice
