"""
Ledger API endpoints.

These endpoints expose the chart of accounts and the journal to
HTTP clients. The API layer is thin: it handles HTTP concerns
(status codes, response formatting) and delegates all business
logic to AccountService and LedgerService. Each service call is
its own unit of work.
"""

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gst_billing.api.deps import get_actor, get_tenant_id, http_error
from gst_billing.config import get_settings
from gst_billing.errors import BillingError
from gst_billing.models.base import get_db
from gst_billing.models.enums import TransactionType
from gst_billing.schemas.ledger import (
    AccountBalanceResponse,
    AccountLineResponse,
    IntegrityReport,
    JournalEntryResponse,
    LedgerAccountCreate,
    LedgerAccountRename,
    LedgerAccountResponse,
    ManualEntryCreate,
    ReverseEntryRequest,
)
from gst_billing.services.account_service import AccountService
from gst_billing.services.ledger_service import LedgerService

router = APIRouter(prefix="/ledger", tags=["Ledger"])


# --- Chart of accounts ---

@router.post("/setup", response_model=list[LedgerAccountResponse], status_code=201)
def setup_chart_of_accounts(
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """Seed the system ledgers for the tenant. Safe to repeat."""
    try:
        return AccountService(db, tenant_id).setup_chart_of_accounts()
    except BillingError as e:
        raise http_error(e)


@router.post("/accounts", response_model=LedgerAccountResponse, status_code=201)
def create_ledger_account(
    request: LedgerAccountCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """
    Create a new ledger account.

    Every account must exist before entries can be posted to it.
    """
    try:
        return AccountService(db, tenant_id).create_account(request)
    except BillingError as e:
        raise http_error(e)


@router.get("/accounts", response_model=list[LedgerAccountResponse])
def list_ledger_accounts(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    return AccountService(db, tenant_id).list_accounts(include_inactive)


@router.patch("/accounts/{account_id}", response_model=LedgerAccountResponse)
def rename_ledger_account(
    account_id: int,
    request: LedgerAccountRename,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """Rename a ledger. System ledgers are refused."""
    try:
        return AccountService(db, tenant_id).rename_account(account_id, request.name)
    except BillingError as e:
        raise http_error(e)


@router.post("/accounts/{account_id}/deactivate", response_model=LedgerAccountResponse)
def deactivate_ledger_account(
    account_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    try:
        return AccountService(db, tenant_id).deactivate_account(account_id)
    except BillingError as e:
        raise http_error(e)


@router.get(
    "/accounts/{account_id}/balance",
    response_model=AccountBalanceResponse,
)
def get_account_balance(
    account_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """
    Get the current balance for a ledger account.

    Reported in the account's natural direction: debit-positive
    for assets and expenses, credit-positive otherwise.
    """
    service = LedgerService(db, tenant_id)
    try:
        balance = service.get_account_balance(account_id)
        account = AccountService(db, tenant_id).get_account(account_id)
    except BillingError as e:
        raise http_error(e)

    return AccountBalanceResponse(
        account_id=account.id,
        account_code=account.code,
        account_type=account.account_type,
        balance=balance,
        side=service.balance_side(account),
        currency=get_settings().CURRENCY,
    )


@router.get(
    "/accounts/{account_id}/lines",
    response_model=list[AccountLineResponse],
)
def get_account_lines(
    account_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """Get all journal lines posted to an account, newest first."""
    try:
        lines = LedgerService(db, tenant_id).get_lines_by_account(account_id)
    except BillingError as e:
        raise http_error(e)

    return [
        AccountLineResponse(
            entry_id=line.entry.id,
            entry_number=line.entry.entry_number,
            entry_date=line.entry.entry_date,
            narration=line.entry.narration,
            debit_amount=line.debit_amount,
            credit_amount=line.credit_amount,
            bill_reference=line.bill_reference,
        )
        for line in lines
    ]


# --- Journal ---

@router.post("/entries", response_model=JournalEntryResponse, status_code=201)
def post_manual_entry(
    request: ManualEntryCreate,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """
    Post a manual journal entry.

    Total debits must equal total credits and every line must be
    one-sided. Cash receipts above the Section 269ST limit are
    rejected.
    """
    try:
        return LedgerService(db, tenant_id).post_manual_entry(request, created_by=actor)
    except BillingError as e:
        raise http_error(e)


@router.get("/entries", response_model=list[JournalEntryResponse])
def list_entries(
    start_date: date | None = None,
    end_date: date | None = None,
    transaction_type: TransactionType | None = None,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    return LedgerService(db, tenant_id).list_entries(start_date, end_date, transaction_type)


@router.get("/entries/{entry_id}", response_model=JournalEntryResponse)
def get_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    try:
        return LedgerService(db, tenant_id).get_entry(entry_id)
    except BillingError as e:
        raise http_error(e)


@router.post(
    "/entries/{entry_id}/reverse",
    response_model=JournalEntryResponse,
    status_code=201,
)
def reverse_entry(
    entry_id: int,
    request: ReverseEntryRequest | None = None,
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
    actor: str | None = Depends(get_actor),
):
    """Reverse a manual entry by posting its mirror image."""
    narration = request.narration if request else None
    try:
        return LedgerService(db, tenant_id).reverse_manual_entry(
            entry_id, narration, created_by=actor
        )
    except BillingError as e:
        raise http_error(e)


@router.get("/integrity", response_model=IntegrityReport)
def check_integrity(
    db: Session = Depends(get_db),
    tenant_id: int = Depends(get_tenant_id),
):
    """Verify that the books balance and running balances match the lines."""
    return LedgerService(db, tenant_id).check_integrity()
