"""GST split for one invoice line."""

from decimal import Decimal

from pydantic import BaseModel

ZERO = Decimal("0.00")


class LineTax(BaseModel):
    """
    Output of the tax calculator for a single line.

    Either the CGST/SGST pair or IGST is populated, never both.
    """
    gst_rate: Decimal
    cgst_rate: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_rate: Decimal = ZERO
    igst_amount: Decimal = ZERO

    model_config = {"frozen": True}

    @property
    def is_inter_state(self) -> bool:
        return self.igst_rate > 0 or self.igst_amount != 0

    @property
    def total_tax(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount
