"""
Payment service: applies receipts against finalized invoices.

Recording a payment persists the payment, reduces the invoice's
balance and posts Dr Cash/Bank, Cr customer in one unit of work.
The balance is reduced with a guarded UPDATE
(... WHERE balance_due >= amount), so two concurrent payments that
jointly exceed the balance cannot both succeed.
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gst_billing.config import get_settings
from gst_billing.errors import (
    AccountInactive,
    AlreadyCredited,
    CashLimitExceeded,
    ConcurrentModification,
    InvalidAmount,
    InvoiceAlreadyPaid,
    InvoiceNotFinalized,
    PaymentExceedsBalance,
    PaymentNotFound,
    ValidationError,
)
from gst_billing.models.base import atomic
from gst_billing.models.enums import (
    AccountType,
    DocumentType,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    SourceType,
    TransactionType,
)
from gst_billing.models.invoice import Invoice
from gst_billing.models.ledger_account import LedgerAccount
from gst_billing.models.payment import Payment
from gst_billing.schemas.ledger import JournalLineInput
from gst_billing.schemas.payment import PaymentCreate
from gst_billing.services.account_service import (
    AccountService,
    BANK_DEFAULT,
    CASH_IN_HAND,
)
from gst_billing.services.audit import record_event
from gst_billing.services.invoice_service import InvoiceService
from gst_billing.services.ledger_service import LedgerService
from gst_billing.services.numbering_service import NumberingService
from gst_billing.services.tax_calculator import round_money

logger = logging.getLogger(__name__)


class PaymentService:

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id
        self.numbering = NumberingService(db, tenant_id)
        self.accounts = AccountService(db, tenant_id)
        self.ledger = LedgerService(db, tenant_id)
        self.invoices = InvoiceService(db, tenant_id)

    def record_payment(
        self, request: PaymentCreate, created_by: str | None = None
    ) -> Payment:
        """
        Record a payment against a finalized invoice.

        Preconditions, checked in this order:
        - amount is positive with at most 2 decimals (InvalidAmount)
        - cash receipts do not exceed CASH_RECEIPT_LIMIT (CashLimitExceeded)
        - invoice is finalized (InvoiceNotFinalized / AlreadyCredited)
        - invoice is not fully paid (InvoiceAlreadyPaid)
        - amount <= balance_due (PaymentExceedsBalance)
        """
        amount = Decimal(str(request.amount))
        if amount <= 0:
            raise InvalidAmount(f"Payment amount must be positive, got {amount}")
        if round_money(amount) != amount:
            raise InvalidAmount("Payment amount cannot have more than 2 decimal places")
        amount = round_money(amount)

        limit = get_settings().CASH_RECEIPT_LIMIT
        if request.payment_method == PaymentMethod.CASH and amount > limit:
            logger.warning(
                "Rejected cash payment of %s against invoice %s (limit %s)",
                amount, request.invoice_id, limit,
                extra={"tenant": self.tenant_id},
            )
            raise CashLimitExceeded(
                f"Cash receipt of {amount} exceeds the Section 269ST limit of {limit}"
            )

        with atomic(self.db):
            invoice = self.invoices.lock_invoice(request.invoice_id)
            self._check_payable(invoice, amount)
            debit_account = self._debit_account(request)

            # Guarded decrement: fails if another payment got there first
            result = self.db.execute(
                update(Invoice)
                .where(
                    Invoice.id == invoice.id,
                    Invoice.tenant_id == self.tenant_id,
                    Invoice.status == InvoiceStatus.FINALIZED,
                    Invoice.balance_due >= amount,
                )
                .values(
                    total_paid=Invoice.total_paid + amount,
                    balance_due=Invoice.balance_due - amount,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrentModification(
                    f"Invoice {invoice.invoice_number} changed while recording the payment"
                )
            self.db.refresh(invoice)
            invoice.payment_status = (
                PaymentStatus.PAID if invoice.balance_due == 0 else PaymentStatus.PARTIAL
            )

            payment_date = request.payment_date or date.today()
            payment = Payment(
                tenant_id=self.tenant_id,
                payment_number=self.numbering.next_number(DocumentType.PAYMENT, payment_date),
                invoice_id=invoice.id,
                amount=amount,
                payment_method=request.payment_method,
                payment_date=payment_date,
                bank_account_id=None if debit_account.code == CASH_IN_HAND else debit_account.id,
                cheque_number=request.cheque_number,
                cheque_date=request.cheque_date,
                upi_reference=request.upi_reference,
                bank_reference=request.bank_reference,
                notes=request.notes,
                created_by=created_by,
            )
            self.db.add(payment)
            self.db.flush()

            receivable = self.accounts.get_or_create_customer_ledger(invoice.customer_id)
            self.ledger.post(
                SourceType.PAYMENT,
                payment.id,
                [
                    JournalLineInput(
                        account_id=debit_account.id,
                        debit_amount=amount,
                        bill_reference=invoice.invoice_number,
                    ),
                    JournalLineInput(
                        account_id=receivable.id,
                        credit_amount=amount,
                        bill_reference=invoice.invoice_number,
                    ),
                ],
                f"Payment received {payment.payment_number} for Invoice "
                f"{invoice.invoice_number} via {request.payment_method.value}",
                TransactionType.PAYMENT,
                entry_date=payment_date,
                created_by=created_by,
            )

            record_event(
                self.db,
                tenant_id=self.tenant_id,
                event_type="payment.recorded",
                instance=payment,
                actor_id=created_by,
                details={
                    "payment_number": payment.payment_number,
                    "invoice_number": invoice.invoice_number,
                    "amount": amount,
                    "method": request.payment_method.value,
                    "balance_due": invoice.balance_due,
                },
            )
            self.db.flush()

        logger.info(
            "Payment %s of %s recorded against invoice %s",
            payment.payment_number, payment.amount, invoice.invoice_number,
            extra={"tenant": self.tenant_id},
        )
        return payment

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.db.execute(
            select(Payment).where(
                Payment.id == payment_id,
                Payment.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not payment:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return payment

    def list_payments(self, invoice_id: int | None = None) -> list[Payment]:
        query = select(Payment).where(Payment.tenant_id == self.tenant_id)
        if invoice_id:
            query = query.where(Payment.invoice_id == invoice_id)
        payments = self.db.execute(
            query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        ).scalars().all()
        return list(payments)

    def _check_payable(self, invoice: Invoice, amount: Decimal) -> None:
        if invoice.status == InvoiceStatus.CREDITED:
            raise AlreadyCredited(
                f"Invoice {invoice.invoice_number} has been credited; no further payments"
            )
        if invoice.status != InvoiceStatus.FINALIZED or invoice.is_credit_note:
            raise InvoiceNotFinalized(
                f"Invoice {invoice.invoice_number} is {invoice.status.value}; "
                f"only finalized invoices accept payments"
            )
        if invoice.payment_status == PaymentStatus.PAID:
            raise InvoiceAlreadyPaid(f"Invoice {invoice.invoice_number} is already paid")
        if amount > invoice.balance_due:
            raise PaymentExceedsBalance(
                f"Payment of {amount} exceeds balance due {invoice.balance_due} "
                f"on invoice {invoice.invoice_number}"
            )

    def _debit_account(self, request: PaymentCreate) -> LedgerAccount:
        """Cash-in-Hand for cash, else the chosen bank ledger or the default bank."""
        if request.payment_method == PaymentMethod.CASH:
            return self.accounts.get_system_account(CASH_IN_HAND)
        if request.bank_account_id is None:
            return self.accounts.get_system_account(BANK_DEFAULT)

        account = self.accounts.get_account(request.bank_account_id)
        if account.account_type != AccountType.ASSET:
            raise ValidationError(
                f"Account {account.code} is not an asset ledger and cannot receive payments"
            )
        if not account.is_active:
            raise AccountInactive(f"Account {account.code} is not active")
        return account
