"""
Account service: the chart of accounts.

Seeds the system ledgers every tenant needs (cash, bank, sales,
GST output, stock, round off), creates one receivable ledger per
customer on first use, and manages the lifecycle of user-created
ledgers. Accounts are never deleted, only deactivated.

Balances are not touched here. Only LedgerService moves them.
"""

import logging

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gst_billing.errors import (
    AccountNotFound,
    AccountInactive,
    ConflictError,
    CustomerNotFound,
    SystemAccountImmutable,
)
from gst_billing.models.customer import Customer
from gst_billing.models.enums import AccountType
from gst_billing.models.ledger_account import LedgerAccount
from gst_billing.models.base import atomic
from gst_billing.schemas.ledger import LedgerAccountCreate

logger = logging.getLogger(__name__)

# System ledger codes
CASH_IN_HAND = "CASH"
BANK_DEFAULT = "BANK"
SALES = "SALES"
CGST_OUTPUT = "CGST-OUT"
SGST_OUTPUT = "SGST-OUT"
IGST_OUTPUT = "IGST-OUT"
COST_OF_GOODS_SOLD = "COGS"
INVENTORY = "INVENTORY"
ROUND_OFF = "ROUND-OFF"

SUNDRY_DEBTORS = "Sundry Debtors"

# code -> (name, type, group)
SYSTEM_ACCOUNTS = {
    CASH_IN_HAND: ("Cash-in-Hand", AccountType.ASSET, "Cash-in-Hand"),
    BANK_DEFAULT: ("Bank Account (Default)", AccountType.ASSET, "Bank Accounts"),
    INVENTORY: ("Inventory", AccountType.ASSET, "Stock-in-Hand"),
    SALES: ("Sales", AccountType.INCOME, "Sales Accounts"),
    CGST_OUTPUT: ("CGST Output", AccountType.LIABILITY, "Duties & Taxes"),
    SGST_OUTPUT: ("SGST Output", AccountType.LIABILITY, "Duties & Taxes"),
    IGST_OUTPUT: ("IGST Output", AccountType.LIABILITY, "Duties & Taxes"),
    COST_OF_GOODS_SOLD: ("Cost of Goods Sold", AccountType.EXPENSE, "Direct Expenses"),
    ROUND_OFF: ("Round Off", AccountType.EXPENSE, "Indirect Expenses"),
}


def customer_ledger_code(customer_id: int) -> str:
    return f"CUST-{customer_id:05d}"


class AccountService:

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id

    def setup_chart_of_accounts(self) -> list[LedgerAccount]:
        """
        Create any missing system ledger for this tenant.

        Safe to call repeatedly; existing ledgers are left as is.
        """
        with atomic(self.db):
            accounts = [self._ensure_system_account(code) for code in SYSTEM_ACCOUNTS]
        return accounts

    def get_system_account(self, code: str) -> LedgerAccount:
        """
        Return a system ledger, creating it if the tenant was never
        set up. Runs inside the caller's unit of work.
        """
        if code not in SYSTEM_ACCOUNTS:
            raise AccountNotFound(f"Unknown system account '{code}'")
        return self._ensure_system_account(code)

    def get_or_create_customer_ledger(self, customer_id: int) -> LedgerAccount:
        """
        Receivable ledger for a customer, under Sundry Debtors.

        Created on first use. Runs inside the caller's unit of work.
        If another transaction creates it first, that ledger is
        returned.
        """
        account = self._find_customer_ledger(customer_id)
        if account:
            return account

        customer = self.db.execute(
            select(Customer).where(
                Customer.id == customer_id,
                Customer.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not customer:
            raise CustomerNotFound(f"Customer {customer_id} not found")

        code = customer_ledger_code(customer.id)
        self._insert_ledger(
            code=code,
            name=customer.name,
            group_name=SUNDRY_DEBTORS,
            account_type=AccountType.ASSET,
            partner_id=customer.id,
        )
        account = self._find_customer_ledger(customer.id)
        if account is None:
            raise ConflictError(
                f"Ledger code '{code}' is taken by another account; "
                f"cannot open a receivable ledger for customer {customer.id}"
            )
        logger.info(
            "Receivable ledger %s ready for customer %s",
            account.code, customer.id,
            extra={"tenant": self.tenant_id},
        )
        return account

    def create_account(self, request: LedgerAccountCreate) -> LedgerAccount:
        """
        Create a user-defined ledger account.

        Raises ConflictError if the code is taken in this tenant.
        """
        with atomic(self.db):
            existing = self.db.execute(
                select(LedgerAccount).where(
                    LedgerAccount.tenant_id == self.tenant_id,
                    LedgerAccount.code == request.code,
                )
            ).scalar_one_or_none()
            if existing:
                raise ConflictError(f"Account with code '{request.code}' already exists")

            account = LedgerAccount(
                tenant_id=self.tenant_id,
                code=request.code,
                name=request.name,
                account_type=request.account_type,
                group_name=request.group_name,
            )
            self.db.add(account)
            self.db.flush()
        return account

    def rename_account(self, account_id: int, name: str) -> LedgerAccount:
        """Rename a ledger. System ledgers keep their names."""
        with atomic(self.db):
            account = self.get_account(account_id)
            if account.is_system:
                raise SystemAccountImmutable(
                    f"System account '{account.name}' cannot be renamed"
                )
            account.name = name
            self.db.flush()
        return account

    def deactivate_account(self, account_id: int) -> LedgerAccount:
        """
        Deactivate a ledger. It keeps its history and balance but
        rejects new postings.
        """
        with atomic(self.db):
            account = self.get_account(account_id)
            if account.is_system:
                raise SystemAccountImmutable(
                    f"System account '{account.name}' cannot be deactivated"
                )
            if not account.is_active:
                raise AccountInactive(f"Account {account.code} is already inactive")
            account.is_active = False
            self.db.flush()
        logger.info("Deactivated account %s", account.code, extra={"tenant": self.tenant_id})
        return account

    def get_account(self, account_id: int) -> LedgerAccount:
        account = self.db.execute(
            select(LedgerAccount).where(
                LedgerAccount.id == account_id,
                LedgerAccount.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not account:
            raise AccountNotFound(f"Account {account_id} not found")
        return account

    def list_accounts(self, include_inactive: bool = False) -> list[LedgerAccount]:
        query = select(LedgerAccount).where(LedgerAccount.tenant_id == self.tenant_id)
        if not include_inactive:
            query = query.where(LedgerAccount.is_active.is_(True))
        accounts = self.db.execute(query.order_by(LedgerAccount.code)).scalars().all()
        return list(accounts)

    def _ensure_system_account(self, code: str) -> LedgerAccount:
        account = self._find_by_code(code)
        if account:
            return account

        name, account_type, group_name = SYSTEM_ACCOUNTS[code]
        self._insert_ledger(
            code=code,
            name=name,
            account_type=account_type,
            group_name=group_name,
            is_system=True,
        )
        return self._find_by_code(code)

    def _find_by_code(self, code: str) -> LedgerAccount | None:
        return self.db.execute(
            select(LedgerAccount).where(
                LedgerAccount.tenant_id == self.tenant_id,
                LedgerAccount.code == code,
            )
        ).scalar_one_or_none()

    def _find_customer_ledger(self, customer_id: int) -> LedgerAccount | None:
        return self.db.execute(
            select(LedgerAccount).where(
                LedgerAccount.tenant_id == self.tenant_id,
                LedgerAccount.partner_id == customer_id,
            )
        ).scalar_one_or_none()

    def _insert_ledger(self, **values) -> None:
        """
        Insert a ledger unless its code or customer is already taken.

        A conflicting row left by a concurrent transaction is kept;
        callers read back whichever row won.
        """
        values["tenant_id"] = self.tenant_id
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            result = self.db.execute(
                insert(LedgerAccount).values(**values).on_conflict_do_nothing()
            )
            if result.rowcount != 1:
                logger.info(
                    "Ledger %s created concurrently", values["code"],
                    extra={"tenant": self.tenant_id},
                )
            return

        try:
            with self.db.begin_nested():
                self.db.add(LedgerAccount(**values))
        except IntegrityError:
            logger.info(
                "Ledger %s created concurrently", values["code"],
                extra={"tenant": self.tenant_id},
            )
