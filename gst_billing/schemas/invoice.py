"""
Pydantic schemas for invoices and credit notes.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from gst_billing.models.enums import (
    InvoiceStatus, PaymentStatus, InvoiceType, TransportMode,
)


# --- Request Schemas ---

class DraftInvoiceCreate(BaseModel):
    """Request to bill a shipment as a draft invoice."""
    shipment_id: int
    invoice_date: date | None = None
    adjustment_amount: Decimal = Field(default=Decimal("0.00"), decimal_places=2)
    notes: str | None = None


class TransportDetails(BaseModel):
    """Consignment details printed on the invoice and e-way bill."""
    vehicle_number: str | None = Field(default=None, max_length=20)
    lr_rr_number: str | None = Field(default=None, max_length=50)
    lr_rr_date: date | None = None
    transport_mode: TransportMode | None = None
    transporter_name: str | None = Field(default=None, max_length=200)
    distance_km: int | None = Field(default=None, ge=0)


class EWayBill(BaseModel):
    e_way_bill_number: str | None = Field(default=None, max_length=20)
    e_way_bill_date: date | None = None


class FinalizeRequest(BaseModel):
    transport: TransportDetails | None = None
    e_way_bill: EWayBill | None = None
    terms_and_conditions: str | None = None


class ApproveInvoiceRequest(DraftInvoiceCreate):
    """Create and finalize in one call."""
    transport: TransportDetails | None = None
    e_way_bill: EWayBill | None = None
    terms_and_conditions: str | None = None


class CreditNoteCreate(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    credit_note_date: date | None = None


# --- Response Schemas ---

class InvoiceLinePreview(BaseModel):
    line_no: int
    product_id: int | None
    description: str
    hsn_code: str | None
    sac_code: str | None
    unit_of_measurement: str
    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    gst_rate: Decimal
    cgst_rate: Decimal
    cgst_amount: Decimal
    sgst_rate: Decimal
    sgst_amount: Decimal
    igst_rate: Decimal
    igst_amount: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class InvoiceLineResponse(InvoiceLinePreview):
    id: int


class InvoicePreview(BaseModel):
    """Priced and taxed shipment that has not been billed yet."""
    customer_id: int
    shipment_id: int
    invoice_type: InvoiceType
    place_of_supply: str
    company_state: str

    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    adjustment_amount: Decimal
    total_amount: Decimal

    lines: list[InvoiceLinePreview]

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    """Invoice or credit note in API responses."""
    id: int
    invoice_number: str
    invoice_date: date
    customer_id: int
    shipment_id: int | None
    invoice_type: InvoiceType
    place_of_supply: str
    company_state: str
    reverse_charge: bool

    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    adjustment_amount: Decimal
    total_amount: Decimal

    status: InvoiceStatus
    payment_status: PaymentStatus
    total_paid: Decimal
    balance_due: Decimal
    finalized_at: datetime | None
    finalized_by: str | None

    is_credit_note: bool
    credit_note_for: int | None

    vehicle_number: str | None
    lr_rr_number: str | None
    lr_rr_date: date | None
    transport_mode: TransportMode | None
    transporter_name: str | None
    distance_km: int | None
    e_way_bill_number: str | None
    e_way_bill_date: date | None
    terms_and_conditions: str | None
    notes: str | None

    created_at: datetime
    lines: list[InvoiceLineResponse]

    model_config = {"from_attributes": True}
