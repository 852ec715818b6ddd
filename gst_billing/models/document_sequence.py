"""
Per-tenant document counters.

One row per (tenant, document type, period). The counter is only
ever advanced with an atomic UPDATE, never read-then-written.
"""

from sqlalchemy import String, ForeignKey, UniqueConstraint, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from gst_billing.models.base import Base
from gst_billing.models.enums import DocumentType


class DocumentSequence(Base):
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "document_type", "period",
            name="uq_document_sequences_scope",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id"), nullable=False
    )
    document_type: Mapped[DocumentType] = mapped_column(
        SAEnum(DocumentType, name="document_type_enum"),
        nullable=False,
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    last_value: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return (
            f"<DocumentSequence {self.document_type.value} "
            f"{self.period} @{self.last_value}>"
        )
