"""
Ledger account model (chart of accounts).

Every account in the system (customer receivables, cash,
sales, GST output, etc.) is a ledger account. Journal lines
are posted against these accounts.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, Numeric, ForeignKey,
    UniqueConstraint, Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from gst_billing.models.base import Base
from gst_billing.models.enums import AccountType


class LedgerAccount(Base):
    """
    A single account in the chart of accounts.

    Once created, an account is never deleted, only deactivated
    via is_active=False. current_balance is the running sum of
    (debit - credit) over every posted line. It is moved only by
    LedgerService.post with an atomic SQL increment.
    """

    __tablename__ = "ledger_accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_ledger_accounts_tenant_code"),
        UniqueConstraint(
            "tenant_id", "partner_id", name="uq_ledger_accounts_tenant_partner"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    group_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType, name="account_type_enum"),
        nullable=False,
    )
    current_balance: Mapped[Decimal] = mapped_column(
        Numeric(19, 2), nullable=False, default=Decimal("0.00")
    )
    # Customer this receivable ledger belongs to, if any
    partner_id: Mapped[int | None] = mapped_column(
        ForeignKey("customers.id"), nullable=True
    )
    is_system: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account"
    )

    @validates("current_balance")
    def _guard_balance(self, key, value):
        if self.id is not None:
            raise AttributeError(
                "current_balance is maintained by the ledger; post a journal entry instead"
            )
        return value

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.code} ({self.account_type.value})>"
