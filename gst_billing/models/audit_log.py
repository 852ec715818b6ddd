"""
Audit log model.

Records every lifecycle change of a billing document: who did
it, to which record, and with what values. GST records must be
traceable, so every finalize, payment and credit note leaves a
row here.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from gst_billing.models.base import Base


class AuditLog(Base):
    """
    Immutable record of a billing event.

    Like journal entries, audit rows are append-only. They are
    written in the same unit of work as the change they describe.
    """

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False, index=True
    )
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # JSON-encoded payload
    details: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
