"""
Journal entry and journal line models.

A journal entry is one balanced accounting transaction. Its
lines are the individual debits and credits. Entries are
append-only: once posted they are never modified or deleted.
Corrections are new, mirrored entries.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String, Date, DateTime, Numeric, ForeignKey, CheckConstraint,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gst_billing.models.base import Base
from gst_billing.models.enums import TransactionType, SourceType, PostingRole


class JournalEntry(Base):
    """
    Header of a balanced set of journal lines.

    The sum of debit_amount over the lines must equal the sum of
    credit_amount. This invariant is enforced by LedgerService
    before anything is written. (tenant, source_type, source_id,
    posting_role) is unique so one business event can never be
    posted twice.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "entry_number", name="uq_journal_entries_tenant_number"
        ),
        UniqueConstraint(
            "tenant_id", "source_type", "source_id", "posting_role",
            name="uq_journal_entries_source",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    entry_number: Mapped[str] = mapped_column(String(30), nullable=False)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType, name="transaction_type_enum"),
        nullable=False,
    )
    source_type: Mapped[SourceType] = mapped_column(
        SAEnum(SourceType, name="source_type_enum"),
        nullable=False,
    )
    # Manual entries have no source document
    source_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    posting_role: Mapped[PostingRole] = mapped_column(
        SAEnum(PostingRole, name="posting_role_enum"),
        nullable=False,
        default=PostingRole.PRIMARY,
    )
    narration: Mapped[str] = mapped_column(String(500), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        order_by="JournalLine.line_no",
        cascade="all, delete-orphan",
    )

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit_amount for line in self.lines), Decimal("0.00"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit_amount for line in self.lines), Decimal("0.00"))

    def __repr__(self) -> str:
        return (
            f"<JournalEntry {self.entry_number} "
            f"{self.transaction_type.value} {self.source_type.value}:{self.source_id}>"
        )


class JournalLine(Base):
    """
    One debit or one credit against one ledger account.

    Exactly one of debit_amount / credit_amount is non-zero; the
    other is stored as zero (not NULL) so sums never need COALESCE.
    """

    __tablename__ = "journal_lines"
    __table_args__ = (
        CheckConstraint(
            "debit_amount >= 0 AND credit_amount >= 0",
            name="ck_journal_lines_non_negative",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entry_id: Mapped[int] = mapped_column(
        ForeignKey("journal_entries.id"), nullable=False, index=True
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("ledger_accounts.id"), nullable=False, index=True
    )
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    bill_reference: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")
    account: Mapped["LedgerAccount"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine acct={self.account_id} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )
