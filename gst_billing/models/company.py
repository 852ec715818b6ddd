"""
Company (tenant) model.

Each company is one tenant. Every other table carries a
tenant_id pointing here, and every query filters by it.
The engine only reads companies; onboarding owns writes.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from gst_billing.models.base import Base


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    # Used to choose CGST+SGST versus IGST
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_gst_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Company {self.name} ({self.state})>"
