"""
Pydantic schemas for payments.

Method-specific fields are optional; which ones apply depends
on payment_method (cheque details for cheques, a UPI reference
for UPI, a bank reference for transfers).
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from gst_billing.models.enums import PaymentMethod


class PaymentCreate(BaseModel):
    """Request to record a payment against a finalized invoice."""
    invoice_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date | None = None
    bank_account_id: int | None = None
    cheque_number: str | None = Field(default=None, max_length=20)
    cheque_date: date | None = None
    upi_reference: str | None = Field(default=None, max_length=50)
    bank_reference: str | None = Field(default=None, max_length=50)
    notes: str | None = None


class PaymentResponse(BaseModel):
    id: int
    payment_number: str
    invoice_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date
    bank_account_id: int | None
    cheque_number: str | None
    cheque_date: date | None
    upi_reference: str | None
    bank_reference: str | None
    notes: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
