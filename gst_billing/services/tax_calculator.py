"""
GST calculation for invoice lines.

Intra-state supplies (customer state == company state) split the
GST rate evenly into CGST and SGST. Inter-state supplies carry the
full rate as IGST. Every amount is rounded to paise with
ROUND_HALF_UP, which rounds away from zero, so a credit note line
rounds to exactly the negative of its invoice line.

A blank state on either side is an error. Guessing a state would
pick the wrong tax type, which is a compliance defect.
"""

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.orm import Session

from gst_billing.config import get_settings
from gst_billing.errors import MissingStateError, InvalidTaxRate
from gst_billing.models.company import Company
from gst_billing.models.tax_rate import TaxRate
from gst_billing.schemas.tax import LineTax

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value) -> Decimal:
    """Quantize to 2 decimal places, half away from zero."""
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def normalize_state(state: str | None, side: str = "customer") -> str:
    """
    Canonical form of a state name for comparison.

    "  tamil   Nadu " and "Tamil Nadu" compare equal.
    """
    if state is None or not state.strip():
        raise MissingStateError(f"{side.capitalize()} state is required to compute GST")
    return " ".join(state.split()).casefold()


def is_intra_state(customer_state: str | None, company_state: str | None) -> bool:
    return (
        normalize_state(customer_state, "customer")
        == normalize_state(company_state, "company")
    )


def compute_line_tax(
    taxable_amount: Decimal,
    customer_state: str | None,
    company_state: str | None,
    gst_rate: Decimal,
) -> LineTax:
    """
    Split GST for one line.

    Pure function: the rate has already been looked up. Negative
    taxable amounts (credit notes) produce negative tax amounts.
    """
    rate = Decimal(str(gst_rate))
    if rate < 0 or rate > HUNDRED:
        raise InvalidTaxRate(f"GST rate {rate} is outside 0-100")

    taxable = Decimal(str(taxable_amount))

    if is_intra_state(customer_state, company_state):
        half_rate = rate / 2
        half_tax = round_money(taxable * half_rate / HUNDRED)
        return LineTax(
            gst_rate=rate,
            cgst_rate=half_rate,
            cgst_amount=half_tax,
            sgst_rate=half_rate,
            sgst_amount=half_tax,
        )

    return LineTax(
        gst_rate=rate,
        igst_rate=rate,
        igst_amount=round_money(taxable * rate / HUNDRED),
    )


class GstRateLookup:
    """
    Resolve the GST rate for a product.

    Order: tenant rate for the HSN code, then for the SAC code,
    then the company's default rate, then DEFAULT_GST_RATE.
    Results are cached for the lifetime of the lookup, which is
    one unit of work.
    """

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id
        self._cache: dict[str, Decimal] = {}
        self._company_default: Decimal | None = None

    def rate_for(self, hsn_code: str | None, sac_code: str | None) -> Decimal:
        for code in (hsn_code, sac_code):
            if not code:
                continue
            if code not in self._cache:
                rate = self.db.execute(
                    select(TaxRate.rate).where(
                        TaxRate.tenant_id == self.tenant_id,
                        TaxRate.code == code,
                    )
                ).scalar_one_or_none()
                if rate is None:
                    continue
                self._cache[code] = Decimal(rate)
            return self._cache[code]

        return self._default_rate()

    def _default_rate(self) -> Decimal:
        if self._company_default is None:
            company = self.db.get(Company, self.tenant_id)
            if company is not None and company.default_gst_rate is not None:
                self._company_default = Decimal(company.default_gst_rate)
            else:
                self._company_default = get_settings().DEFAULT_GST_RATE
        return self._company_default


class TaxCalculator:
    """Tax calculator bound to one tenant's rate table."""

    def __init__(self, db: Session, tenant_id: int):
        self.rates = GstRateLookup(db, tenant_id)

    def compute_line(
        self,
        taxable_amount: Decimal,
        customer_state: str | None,
        company_state: str | None,
        hsn_code: str | None = None,
        sac_code: str | None = None,
    ) -> LineTax:
        rate = self.rates.rate_for(hsn_code, sac_code)
        return compute_line_tax(taxable_amount, customer_state, company_state, rate)
