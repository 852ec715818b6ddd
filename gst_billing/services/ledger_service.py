"""
Ledger service: the posting engine of the billing system.

This service enforces the fundamental rules:
1. Every journal entry must balance (debits = credits)
2. Every line is one-sided: a debit or a credit, never both
3. Entries are immutable (append-only)
4. Accounts must exist, belong to the tenant and be active
5. One business event is posted at most once

No other service writes journal entries or account balances.
All financial operations go through post().
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gst_billing.config import get_settings
from gst_billing.errors import (
    AccountInactive,
    AccountNotFound,
    AlreadyPosted,
    CashLimitExceeded,
    InvalidJournalLine,
    JournalEntryNotFound,
    PreconditionError,
    UnbalancedEntryError,
)
from gst_billing.models.base import atomic
from gst_billing.models.enums import (
    AccountType, DocumentType, PostingRole, SourceType, TransactionType,
)
from gst_billing.models.journal_entry import JournalEntry, JournalLine
from gst_billing.models.ledger_account import LedgerAccount
from gst_billing.schemas.ledger import (
    AccountDrift,
    IntegrityReport,
    JournalLineInput,
    ManualEntryCreate,
)
from gst_billing.services.account_service import CASH_IN_HAND
from gst_billing.services.numbering_service import NumberingService
from gst_billing.services.tax_calculator import round_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

DEBIT_NORMAL = (AccountType.ASSET, AccountType.EXPENSE)


def mirror_lines(entry: JournalEntry) -> list[JournalLineInput]:
    """Swap every debit and credit of a posted entry."""
    return [
        JournalLineInput(
            account_id=line.account_id,
            debit_amount=line.credit_amount,
            credit_amount=line.debit_amount,
            bill_reference=line.bill_reference,
        )
        for line in entry.lines
    ]


class LedgerService:
    """
    All ledger operations pass through this service.

    post() only flushes: it runs inside the unit of work of the
    operation that produced the entry (finalize, payment, credit
    note), so the source document and its entry commit together.
    Manual entries open their own unit of work.
    """

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id
        self.numbering = NumberingService(db, tenant_id)

    def post(
        self,
        source_type: SourceType,
        source_id: int | None,
        lines: list[JournalLineInput],
        narration: str,
        transaction_type: TransactionType,
        posting_role: PostingRole = PostingRole.PRIMARY,
        entry_date: date | None = None,
        created_by: str | None = None,
    ) -> JournalEntry:
        """
        Post a balanced journal entry and move account balances.

        This is the most critical method in the entire system.
        It enforces:
        - At least two lines, each with exactly one non-zero side
        - Amounts are non-negative and carry at most 2 decimals
        - Total debits equal total credits exactly
        - All referenced accounts exist in this tenant and are active
        - (source_type, source_id, posting_role) has not been posted

        Posting the same source again with identical lines is a
        no-op that returns the existing entry. Posting it again with
        different lines raises AlreadyPosted. If any check fails,
        nothing is written.
        """
        normalized = self._validate_lines(lines)

        # --- Idempotency ---
        if source_id is not None:
            existing = self._find_posted(source_type, source_id, posting_role)
            if existing:
                if self._same_lines(existing, normalized):
                    logger.info(
                        "Entry for %s:%s already posted as %s",
                        source_type.value, source_id, existing.entry_number,
                        extra={"tenant": self.tenant_id},
                    )
                    return existing
                raise AlreadyPosted(
                    f"{source_type.value} {source_id} already posted as "
                    f"{existing.entry_number} with different lines"
                )

        accounts = self._load_postable_accounts(
            {account_id for account_id, _, _, _ in normalized}
        )

        entry_date = entry_date or date.today()
        entry = JournalEntry(
            tenant_id=self.tenant_id,
            entry_number=self.numbering.next_number(DocumentType.JOURNAL_ENTRY, entry_date),
            entry_date=entry_date,
            transaction_type=transaction_type,
            source_type=source_type,
            source_id=source_id,
            posting_role=posting_role,
            narration=narration,
            created_by=created_by,
        )
        for line_no, (account_id, debit, credit, reference) in enumerate(normalized, start=1):
            entry.lines.append(
                JournalLine(
                    line_no=line_no,
                    account_id=account_id,
                    debit_amount=debit,
                    credit_amount=credit,
                    bill_reference=reference,
                )
            )
        self.db.add(entry)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent post for the same source
            raise AlreadyPosted(
                f"{source_type.value} {source_id} was posted concurrently"
            ) from exc

        self._apply_balances(normalized, accounts)

        logger.info(
            "Posted %s (%s %s:%s) for %s",
            entry.entry_number, transaction_type.value,
            source_type.value, source_id, entry.total_debit,
            extra={"tenant": self.tenant_id},
        )
        return entry

    # --- Manual entries ---

    def post_manual_entry(
        self, request: ManualEntryCreate, created_by: str | None = None
    ) -> JournalEntry:
        """
        Post a hand-written entry in its own unit of work.

        Debits to Cash-in-Hand above CASH_RECEIPT_LIMIT are refused
        (Section 269ST).
        """
        with atomic(self.db):
            self._check_cash_limit(request.lines)
            entry = self.post(
                SourceType.MANUAL,
                None,
                request.lines,
                request.narration,
                TransactionType.MANUAL,
                entry_date=request.entry_date,
                created_by=created_by,
            )
        return entry

    def reverse_manual_entry(
        self,
        entry_id: int,
        narration: str | None = None,
        created_by: str | None = None,
    ) -> JournalEntry:
        """
        Post the mirror image of a manual entry.

        Invoice and payment entries are reversed through credit
        notes, not here. An entry can be reversed once.
        """
        with atomic(self.db):
            original = self.get_entry(entry_id)
            if original.transaction_type != TransactionType.MANUAL:
                raise PreconditionError(
                    f"Entry {original.entry_number} is a "
                    f"{original.transaction_type.value} entry; only manual "
                    f"entries can be reversed directly"
                )
            if self._find_posted(SourceType.JOURNAL_ENTRY, original.id, PostingRole.PRIMARY):
                raise AlreadyPosted(f"Entry {original.entry_number} is already reversed")

            reversal = self.post(
                SourceType.JOURNAL_ENTRY,
                original.id,
                mirror_lines(original),
                narration or f"Reversal of {original.entry_number}",
                TransactionType.REVERSAL,
                created_by=created_by,
            )
        return reversal

    # --- Queries ---

    def get_account_balance(self, account_id: int) -> Decimal:
        """
        Account balance in its natural direction.

        For ASSET and EXPENSE accounts: balance = debits - credits
        For LIABILITY, EQUITY and INCOME: balance = credits - debits
        """
        account = self._get_account(account_id)
        stored = Decimal(account.current_balance)
        if account.account_type in DEBIT_NORMAL:
            return stored
        return -stored

    @staticmethod
    def balance_side(account: LedgerAccount) -> str:
        """Which side the running balance lies on: "debit" or "credit"."""
        return "credit" if account.current_balance < 0 else "debit"

    def get_lines_by_account(self, account_id: int) -> list[JournalLine]:
        """Return all lines posted to an account, newest first."""
        self._get_account(account_id)
        lines = self.db.execute(
            select(JournalLine)
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.tenant_id == self.tenant_id,
            )
            .order_by(JournalEntry.entry_date.desc(), JournalLine.id.desc())
        ).scalars().all()
        return list(lines)

    def get_entry(self, entry_id: int) -> JournalEntry:
        entry = self.db.execute(
            select(JournalEntry).where(
                JournalEntry.id == entry_id,
                JournalEntry.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not entry:
            raise JournalEntryNotFound(f"Journal entry {entry_id} not found")
        return entry

    def get_entries_for_source(
        self, source_type: SourceType, source_id: int
    ) -> list[JournalEntry]:
        """Return every entry posted for a source document."""
        entries = self.db.execute(
            select(JournalEntry)
            .where(
                JournalEntry.tenant_id == self.tenant_id,
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
            .order_by(JournalEntry.id)
        ).scalars().all()
        return list(entries)

    def list_entries(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        transaction_type: TransactionType | None = None,
    ) -> list[JournalEntry]:
        query = select(JournalEntry).where(JournalEntry.tenant_id == self.tenant_id)
        if start_date:
            query = query.where(JournalEntry.entry_date >= start_date)
        if end_date:
            query = query.where(JournalEntry.entry_date <= end_date)
        if transaction_type:
            query = query.where(JournalEntry.transaction_type == transaction_type)
        entries = self.db.execute(
            query.order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc())
        ).scalars().all()
        return list(entries)

    def check_integrity(self) -> IntegrityReport:
        """
        Verify the tenant's books.

        Checks that all lines sum to zero overall, that every entry
        balances on its own, and that every account's running
        balance equals the sum of its lines.
        """
        total_debits, total_credits = self.db.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit_amount), 0),
                func.coalesce(func.sum(JournalLine.credit_amount), 0),
            )
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(JournalEntry.tenant_id == self.tenant_id)
        ).one()
        total_debits = round_money(total_debits)
        total_credits = round_money(total_credits)

        entry_count = self.db.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.tenant_id == self.tenant_id
            )
        ).scalar()

        unbalanced = self.db.execute(
            select(JournalLine.entry_id)
            .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
            .where(JournalEntry.tenant_id == self.tenant_id)
            .group_by(JournalLine.entry_id)
            .having(
                func.abs(
                    func.sum(JournalLine.debit_amount) - func.sum(JournalLine.credit_amount)
                ) >= Decimal("0.01")
            )
        ).scalars().all()

        computed = dict(
            self.db.execute(
                select(
                    JournalLine.account_id,
                    func.sum(JournalLine.debit_amount) - func.sum(JournalLine.credit_amount),
                )
                .join(JournalEntry, JournalLine.entry_id == JournalEntry.id)
                .where(JournalEntry.tenant_id == self.tenant_id)
                .group_by(JournalLine.account_id)
            ).all()
        )

        drifted = []
        accounts = self.db.execute(
            select(LedgerAccount)
            .where(LedgerAccount.tenant_id == self.tenant_id)
            .order_by(LedgerAccount.code)
        ).scalars().all()
        for account in accounts:
            stored = round_money(account.current_balance)
            expected = round_money(computed.get(account.id, ZERO))
            if stored != expected:
                drifted.append(
                    AccountDrift(
                        account_id=account.id,
                        code=account.code,
                        stored_balance=stored,
                        computed_balance=expected,
                    )
                )

        if drifted or unbalanced:
            logger.warning(
                "Integrity check found %d unbalanced entries and %d drifted accounts",
                len(unbalanced), len(drifted),
                extra={"tenant": self.tenant_id},
            )

        return IntegrityReport(
            total_debits=total_debits,
            total_credits=total_credits,
            difference=total_debits - total_credits,
            is_balanced=(total_debits == total_credits and not unbalanced and not drifted),
            entry_count=entry_count,
            unbalanced_entry_ids=list(unbalanced),
            drifted_accounts=drifted,
        )

    # --- Internals ---

    def _validate_lines(
        self, lines: list[JournalLineInput]
    ) -> list[tuple[int, Decimal, Decimal, str | None]]:
        if len(lines) < 2:
            raise InvalidJournalLine("A journal entry needs at least two lines")

        normalized = []
        for index, line in enumerate(lines, start=1):
            debit = Decimal(str(line.debit_amount))
            credit = Decimal(str(line.credit_amount))
            if debit < 0 or credit < 0:
                raise InvalidJournalLine(f"Line {index}: amounts cannot be negative")
            if round_money(debit) != debit or round_money(credit) != credit:
                raise InvalidJournalLine(
                    f"Line {index}: amounts cannot have more than 2 decimal places"
                )
            if (debit > 0) == (credit > 0):
                raise InvalidJournalLine(
                    f"Line {index}: exactly one of debit and credit must be non-zero"
                )
            normalized.append(
                (line.account_id, round_money(debit), round_money(credit), line.bill_reference)
            )

        total_debits = sum((debit for _, debit, _, _ in normalized), ZERO)
        total_credits = sum((credit for _, _, credit, _ in normalized), ZERO)
        if total_debits != total_credits:
            raise UnbalancedEntryError(
                f"Entry does not balance: debits={total_debits}, credits={total_credits}"
            )
        return normalized

    def _load_postable_accounts(self, account_ids: set[int]) -> dict[int, LedgerAccount]:
        accounts = self.db.execute(
            select(LedgerAccount).where(
                LedgerAccount.id.in_(account_ids),
                LedgerAccount.tenant_id == self.tenant_id,
            )
        ).scalars().all()
        accounts_by_id = {a.id: a for a in accounts}

        missing = account_ids - set(accounts_by_id)
        if missing:
            raise AccountNotFound(f"Accounts not found: {sorted(missing)}")

        for account in accounts_by_id.values():
            if not account.is_active:
                raise AccountInactive(f"Account {account.code} is not active")
        return accounts_by_id

    def _apply_balances(
        self,
        normalized: list[tuple[int, Decimal, Decimal, str | None]],
        accounts: dict[int, LedgerAccount],
    ) -> None:
        """
        Add each line's (debit - credit) to its account.

        One atomic UPDATE per account, in id order, so concurrent
        postings to Sales or GST Output never lose an update.
        """
        deltas: dict[int, Decimal] = {}
        for account_id, debit, credit, _ in normalized:
            deltas[account_id] = deltas.get(account_id, ZERO) + debit - credit

        for account_id in sorted(deltas):
            self.db.execute(
                update(LedgerAccount)
                .where(LedgerAccount.id == account_id)
                .values(current_balance=LedgerAccount.current_balance + deltas[account_id])
                .execution_options(synchronize_session=False)
            )
            self.db.expire(accounts[account_id], ["current_balance"])

    def _check_cash_limit(self, lines: list[JournalLineInput]) -> None:
        cash_account_id = self.db.execute(
            select(LedgerAccount.id).where(
                LedgerAccount.tenant_id == self.tenant_id,
                LedgerAccount.code == CASH_IN_HAND,
            )
        ).scalar_one_or_none()
        if cash_account_id is None:
            return

        cash_debit = sum(
            (Decimal(str(line.debit_amount)) for line in lines
             if line.account_id == cash_account_id),
            ZERO,
        )
        limit = get_settings().CASH_RECEIPT_LIMIT
        if cash_debit > limit:
            logger.warning(
                "Rejected manual cash receipt of %s (limit %s)", cash_debit, limit,
                extra={"tenant": self.tenant_id},
            )
            raise CashLimitExceeded(
                f"Cash receipt of {cash_debit} exceeds the Section 269ST "
                f"limit of {limit}"
            )

    def _find_posted(
        self, source_type: SourceType, source_id: int, posting_role: PostingRole
    ) -> JournalEntry | None:
        return self.db.execute(
            select(JournalEntry).where(
                JournalEntry.tenant_id == self.tenant_id,
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
                JournalEntry.posting_role == posting_role,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _same_lines(
        entry: JournalEntry, normalized: list[tuple[int, Decimal, Decimal, str | None]]
    ) -> bool:
        posted = [(l.account_id, l.debit_amount, l.credit_amount) for l in entry.lines]
        return posted == [(a, d, c) for a, d, c, _ in normalized]

    def _get_account(self, account_id: int) -> LedgerAccount:
        account = self.db.execute(
            select(LedgerAccount).where(
                LedgerAccount.id == account_id,
                LedgerAccount.tenant_id == self.tenant_id,
            )
        ).scalar_one_or_none()
        if not account:
            raise AccountNotFound(f"Account {account_id} not found")
        return account
