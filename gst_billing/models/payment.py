"""
Payment model.

A payment is recorded once against a finalized invoice and is
never edited afterwards. Corrections are posted as new entries.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, ForeignKey, Text,
    UniqueConstraint, CheckConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gst_billing.models.base import Base
from gst_billing.models.enums import PaymentMethod


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "payment_number", name="uq_payments_tenant_number"
        ),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    payment_number: Mapped[str] = mapped_column(String(30), nullable=False)
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoices.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        SAEnum(PaymentMethod, name="payment_method_enum"),
        nullable=False,
    )
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Ledger debited for non-cash receipts
    bank_account_id: Mapped[int | None] = mapped_column(
        ForeignKey("ledger_accounts.id"), nullable=True
    )

    cheque_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cheque_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    upi_reference: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_reference: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    invoice: Mapped["Invoice"] = relationship()

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number} {self.amount} {self.payment_method.value}>"
