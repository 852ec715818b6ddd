"""
Invoice and invoice line models.

An invoice is created as a draft from a shipment, finalized
(which posts it to the ledger), paid down by payments and
optionally reversed by a credit note. A credit note is stored
as an invoice with is_credit_note=True and negative amounts.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, Date, DateTime, Numeric, ForeignKey, Text,
    Integer, UniqueConstraint, CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gst_billing.models.base import Base
from gst_billing.models.enums import (
    InvoiceStatus, PaymentStatus, InvoiceType, TransportMode,
)

ZERO = Decimal("0.00")


class Invoice(Base):
    """
    Tax invoice (or credit note) header.

    balance_due = total_amount - total_paid at all times and never
    goes below zero. Payments change both columns in one guarded
    UPDATE so concurrent payments cannot overdraw the invoice.
    """

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "invoice_number", name="uq_invoices_tenant_number"
        ),
        UniqueConstraint("shipment_id", name="uq_invoices_shipment"),
        CheckConstraint("balance_due >= 0", name="ck_invoices_balance_due"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer_id: Mapped[int] = mapped_column(
        ForeignKey("customers.id"), nullable=False, index=True
    )
    # One invoice per shipment; credit notes carry no shipment
    shipment_id: Mapped[int | None] = mapped_column(
        ForeignKey("shipments.id"), nullable=True
    )

    invoice_type: Mapped[InvoiceType] = mapped_column(
        SAEnum(InvoiceType, name="invoice_type_enum"),
        nullable=False,
        default=InvoiceType.B2C,
    )
    place_of_supply: Mapped[str] = mapped_column(String(100), nullable=False)
    company_state: Mapped[str] = mapped_column(String(100), nullable=False)
    reverse_charge: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    # --- Totals ---
    subtotal: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    taxable_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    adjustment_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)

    # --- Lifecycle ---
    status: Mapped[InvoiceStatus] = mapped_column(
        SAEnum(InvoiceStatus, name="invoice_status_enum"),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="payment_status_enum"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    total_paid: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    balance_due: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_credit_note: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    credit_note_for: Mapped[int | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True, index=True
    )

    # --- Transport and e-way bill (set at finalize) ---
    vehicle_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    lr_rr_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    lr_rr_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    transport_mode: Mapped[TransportMode | None] = mapped_column(
        SAEnum(TransportMode, name="transport_mode_enum"), nullable=True
    )
    transporter_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    distance_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    e_way_bill_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    e_way_bill_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    terms_and_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLine.line_no",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.status.value} {self.total_amount}>"


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    product_id: Mapped[int | None] = mapped_column(
        ForeignKey("products.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(String(300), nullable=False)
    hsn_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    sac_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    unit_of_measurement: Mapped[str] = mapped_column(String(10), nullable=False, default="PCS")

    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)
    # Cost snapshot at billing time, used for the COGS entry
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    taxable_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)

    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    cgst_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=ZERO)
    cgst_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    sgst_rate: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=ZERO)
    sgst_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    igst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=ZERO)
    igst_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False, default=ZERO)
    line_total: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<InvoiceLine {self.description} x{self.quantity} = {self.line_total}>"
