"""
Document numbering service.

Issues numbers like INV-2025-00042 or GD-2025-10-00007, unique per
tenant, document type and period. Allocation never reads the last
number and adds one in Python. The counter row is advanced with
a single atomic UPDATE, which also row-locks it until the caller's
unit of work commits, so concurrent allocations are serialized.

Numbers consumed by a rolled-back unit of work are returned with
the rollback. Numbers of deleted drafts are not reused, so gaps
are possible and tolerated.
"""

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gst_billing.config import get_settings
from gst_billing.errors import NumberingConflict
from gst_billing.models.document_sequence import DocumentSequence
from gst_billing.models.enums import DocumentType

logger = logging.getLogger(__name__)

YEARLY = "yearly"
MONTHLY = "monthly"

# document type -> (prefix, period granularity)
NUMBER_FORMATS = {
    DocumentType.INVOICE: ("INV", YEARLY),
    DocumentType.CREDIT_NOTE: ("CN", YEARLY),
    DocumentType.PAYMENT: ("PMT", YEARLY),
    DocumentType.JOURNAL_ENTRY: ("JE", YEARLY),
    DocumentType.DISPATCH: ("GD", MONTHLY),
    DocumentType.RECEIPT: ("GR", MONTHLY),
}


def period_key(document_type: DocumentType, on: date) -> str:
    """Return "2025" for yearly documents, "2025-10" for monthly ones."""
    _, granularity = NUMBER_FORMATS[document_type]
    if granularity == MONTHLY:
        return f"{on.year:04d}-{on.month:02d}"
    return f"{on.year:04d}"


def format_number(document_type: DocumentType, period: str, sequence: int) -> str:
    prefix, _ = NUMBER_FORMATS[document_type]
    return f"{prefix}-{period}-{sequence:05d}"


class NumberingService:

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id

    def next_number(
        self, document_type: DocumentType, on: date | None = None
    ) -> str:
        """
        Allocate the next number for a document dated `on`.

        Runs inside the caller's transaction. Raises
        NumberingConflict when the counter could not be advanced
        within NUMBERING_MAX_RETRIES attempts. On PostgreSQL and
        SQLite the counter row always exists by the time of the
        UPDATE, so the retries only matter on other backends.
        """
        period = period_key(document_type, on or date.today())
        max_retries = get_settings().NUMBERING_MAX_RETRIES

        for attempt in range(1, max_retries + 1):
            self._ensure_counter(document_type, period)

            result = self.db.execute(
                update(DocumentSequence)
                .where(
                    DocumentSequence.tenant_id == self.tenant_id,
                    DocumentSequence.document_type == document_type,
                    DocumentSequence.period == period,
                )
                .values(last_value=DocumentSequence.last_value + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                value = self.db.execute(
                    select(DocumentSequence.last_value).where(
                        DocumentSequence.tenant_id == self.tenant_id,
                        DocumentSequence.document_type == document_type,
                        DocumentSequence.period == period,
                    )
                ).scalar_one()
                return format_number(document_type, period, value)

            logger.warning(
                "Counter %s/%s not advanced (attempt %d of %d)",
                document_type.value, period, attempt, max_retries,
                extra={"tenant": self.tenant_id},
            )

        raise NumberingConflict(
            f"Could not allocate a {document_type.value} number for "
            f"period {period} after {max_retries} attempts"
        )

    def _ensure_counter(self, document_type: DocumentType, period: str) -> None:
        """Create the counter row if it does not exist yet."""
        values = {
            "tenant_id": self.tenant_id,
            "document_type": document_type,
            "period": period,
            "last_value": 0,
        }
        dialect = self.db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            self.db.execute(
                insert(DocumentSequence)
                .values(**values)
                .on_conflict_do_nothing(
                    index_elements=["tenant_id", "document_type", "period"]
                )
            )
            return

        exists = self.db.execute(
            select(DocumentSequence.id).where(
                DocumentSequence.tenant_id == self.tenant_id,
                DocumentSequence.document_type == document_type,
                DocumentSequence.period == period,
            )
        ).scalar_one_or_none()
        if exists is not None:
            return
        try:
            with self.db.begin_nested():
                self.db.add(DocumentSequence(**values))
        except IntegrityError:
            # Another transaction created it first
            logger.info("Counter %s/%s created concurrently", document_type.value, period)
