"""Business logic services."""

from gst_billing.services.tax_calculator import TaxCalculator
from gst_billing.services.numbering_service import NumberingService
from gst_billing.services.account_service import AccountService
from gst_billing.services.ledger_service import LedgerService
from gst_billing.services.invoice_service import InvoiceService
from gst_billing.services.payment_service import PaymentService
from gst_billing.services.credit_note_service import CreditNoteService

__all__ = [
    "TaxCalculator",
    "NumberingService",
    "AccountService",
    "LedgerService",
    "InvoiceService",
    "PaymentService",
    "CreditNoteService",
]
