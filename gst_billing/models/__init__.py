"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from gst_billing.models.base import Base
from gst_billing.models.enums import (
    AccountType,
    InvoiceStatus,
    PaymentStatus,
    InvoiceType,
    TransportMode,
    PaymentMethod,
    TransactionType,
    SourceType,
    PostingRole,
    DocumentType,
)
from gst_billing.models.company import Company
from gst_billing.models.customer import Customer
from gst_billing.models.shipment import Product, Shipment, ShipmentItem
from gst_billing.models.tax_rate import TaxRate
from gst_billing.models.audit_log import AuditLog
from gst_billing.models.ledger_account import LedgerAccount
from gst_billing.models.journal_entry import JournalEntry, JournalLine
from gst_billing.models.invoice import Invoice, InvoiceLine
from gst_billing.models.payment import Payment
from gst_billing.models.document_sequence import DocumentSequence

__all__ = [
    "Base",
    "AccountType",
    "InvoiceStatus",
    "PaymentStatus",
    "InvoiceType",
    "TransportMode",
    "PaymentMethod",
    "TransactionType",
    "SourceType",
    "PostingRole",
    "DocumentType",
    "Company",
    "Customer",
    "Product",
    "Shipment",
    "ShipmentItem",
    "TaxRate",
    "AuditLog",
    "LedgerAccount",
    "JournalEntry",
    "JournalLine",
    "Invoice",
    "InvoiceLine",
    "Payment",
    "DocumentSequence",
]
