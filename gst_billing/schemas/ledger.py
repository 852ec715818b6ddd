"""
Pydantic schemas for ledger operations.

These define the API contract: what data comes in and what
data goes out. Business rules (balance, one-sided lines, active
accounts) are enforced by LedgerService, not here, so that a
rejected entry always carries a stable error code.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from gst_billing.models.enums import (
    AccountType, TransactionType, SourceType, PostingRole,
)


# --- Request Schemas ---

class JournalLineInput(BaseModel):
    """A single debit or credit against one ledger account."""
    account_id: int
    debit_amount: Decimal = Decimal("0.00")
    credit_amount: Decimal = Decimal("0.00")
    bill_reference: str | None = Field(default=None, max_length=50)


class ManualEntryCreate(BaseModel):
    """
    A hand-written journal entry.

    Used for adjustments that no invoice or payment produces,
    e.g. opening balances or expense bookings.
    """
    entry_date: date | None = None
    narration: str = Field(min_length=1, max_length=500)
    lines: list[JournalLineInput] = Field(min_length=2)


class ReverseEntryRequest(BaseModel):
    narration: str | None = Field(default=None, max_length=500)


class LedgerAccountCreate(BaseModel):
    """Request to create a new ledger account."""
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    account_type: AccountType
    group_name: str | None = Field(default=None, max_length=100)


class LedgerAccountRename(BaseModel):
    name: str = Field(min_length=1, max_length=200)


# --- Response Schemas ---

class JournalLineResponse(BaseModel):
    id: int
    line_no: int
    account_id: int
    debit_amount: Decimal
    credit_amount: Decimal
    bill_reference: str | None

    model_config = {"from_attributes": True}


class JournalEntryResponse(BaseModel):
    """Journal entry with its lines, as returned by the API."""
    id: int
    entry_number: str
    entry_date: date
    transaction_type: TransactionType
    source_type: SourceType
    source_id: int | None
    posting_role: PostingRole
    narration: str
    created_by: str | None
    created_at: datetime
    total_debit: Decimal
    total_credit: Decimal
    lines: list[JournalLineResponse]

    model_config = {"from_attributes": True}


class AccountLineResponse(BaseModel):
    """A journal line seen from its account, with entry context."""
    entry_id: int
    entry_number: str
    entry_date: date
    narration: str
    debit_amount: Decimal
    credit_amount: Decimal
    bill_reference: str | None


class AccountBalanceResponse(BaseModel):
    """
    Balance in the account's natural direction.

    Assets and expenses are reported debit-positive; liabilities,
    income and equity credit-positive. side tells which way the
    balance actually lies.
    """
    account_id: int
    account_code: str
    account_type: AccountType
    balance: Decimal
    side: str
    currency: str


class LedgerAccountResponse(BaseModel):
    """Ledger account in API responses."""
    id: int
    code: str
    name: str
    group_name: str | None
    account_type: AccountType
    current_balance: Decimal
    partner_id: int | None
    is_system: bool
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountDrift(BaseModel):
    account_id: int
    code: str
    stored_balance: Decimal
    computed_balance: Decimal


class IntegrityReport(BaseModel):
    """Result of LedgerService.check_integrity()."""
    total_debits: Decimal
    total_credits: Decimal
    difference: Decimal
    # True only when totals match, no entry is unbalanced and no balance drifted
    is_balanced: bool
    entry_count: int
    unbalanced_entry_ids: list[int]
    drifted_accounts: list[AccountDrift]
