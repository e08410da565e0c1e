"""
Tax Calculator - splits a flat tax rate by jurisdiction.

Same jurisdiction for seller and buyer: the tax is split evenly into two
components (CGST + SGST style). Different jurisdictions: a single
inter-jurisdiction component (IGST style).

Rounding: components are rounded to cents with ROUND_HALF_UP and the total is
the sum of the rounded components, so the components always add up exactly.
An intra split rounds each half, which keeps both halves equal; the total can
then differ from taxable * rate by at most one cent.
"""
from decimal import Decimal
from typing import Optional

from .models import TaxBreakdown, to_money

ZERO = Decimal("0.00")
TWO = Decimal("2")


def normalize_jurisdiction(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def is_intra_jurisdiction(seller_jurisdiction: Optional[str], buyer_jurisdiction: Optional[str]) -> bool:
    seller = normalize_jurisdiction(seller_jurisdiction)
    return bool(seller) and seller == normalize_jurisdiction(buyer_jurisdiction)


def split_tax(
    taxable_amount: Decimal,
    seller_jurisdiction: str,
    buyer_jurisdiction: Optional[str],
    rate: Decimal,
) -> TaxBreakdown:
    taxable_amount = to_money(taxable_amount)
    rate = Decimal(str(rate))
    raw_tax = taxable_amount * rate

    if is_intra_jurisdiction(seller_jurisdiction, buyer_jurisdiction):
        half = to_money(raw_tax / TWO)
        return TaxBreakdown(
            taxable_amount=taxable_amount,
            rate=rate,
            component_a=half,
            component_b=half,
            inter_component=ZERO,
            total_tax=half + half,
        )

    inter = to_money(raw_tax)
    return TaxBreakdown(
        taxable_amount=taxable_amount,
        rate=rate,
        component_a=ZERO,
        component_b=ZERO,
        inter_component=inter,
        total_tax=inter,
    )


class TaxCalculator:
    """Tax splitting bound to the seller's home jurisdiction and flat rate."""

    def __init__(self, seller_jurisdiction: str, rate: Decimal):
        self.seller_jurisdiction = seller_jurisdiction
        self.rate = Decimal(str(rate))

    def split(self, taxable_amount: Decimal, buyer_jurisdiction: Optional[str]) -> TaxBreakdown:
        return split_tax(taxable_amount, self.seller_jurisdiction, buyer_jurisdiction, self.rate)
