"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An invalid status or
payment method is caught at the database level, not just
in Python validation.
"""

import enum


class AccountType(str, enum.Enum):
    """The five fundamental accounting categories."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class InvoiceStatus(str, enum.Enum):
    """draft -> finalized -> credited. Only drafts may be deleted."""
    DRAFT = "draft"
    FINALIZED = "finalized"
    CREDITED = "credited"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class InvoiceType(str, enum.Enum):
    """GSTR-1 classification: B2B when the buyer has a GSTIN."""
    B2B = "B2B"
    B2C = "B2C"


class TransportMode(str, enum.Enum):
    ROAD = "road"
    RAIL = "rail"
    AIR = "air"
    SHIP = "ship"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CHEQUE = "cheque"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CARD = "card"
    NEFT_RTGS = "neft_rtgs"
    IMPS = "imps"
    OTHERS = "others"


class TransactionType(str, enum.Enum):
    """Business meaning of a journal entry."""
    INVOICE = "invoice"
    PAYMENT = "payment"
    MANUAL = "manual"
    REVERSAL = "reversal"


class SourceType(str, enum.Enum):
    """Kind of document a journal entry was posted for."""
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    PAYMENT = "payment"
    JOURNAL_ENTRY = "journal_entry"
    MANUAL = "manual"


class PostingRole(str, enum.Enum):
    """
    Distinguishes the entries one source document may produce.

    An invoice posts one PRIMARY entry (receivable, sales, GST)
    and at most one COGS entry (cost of goods, inventory).
    """
    PRIMARY = "primary"
    COGS = "cogs"


class DocumentType(str, enum.Enum):
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    PAYMENT = "payment"
    JOURNAL_ENTRY = "journal_entry"
    DISPATCH = "dispatch"
    RECEIPT = "receipt"
