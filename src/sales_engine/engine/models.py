"""
Data models for the sales engine.

Uses dataclasses for structured, type-safe data representation. Money is
carried as Decimal and quantized to cents at the edges of each calculation.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Union


GENERAL_SCOPE = "general"

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize a number to cents (ROUND_HALF_UP)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so rule windows compare consistently."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TraceStep:
    """A single step in the price resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


# ---------------------------------------------------------------------------
# Pricing rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Percentage:
    """Percentage-off discount (10 means 10% off the base price)."""
    value: Decimal

    @property
    def kind(self) -> str:
        return "percent"


@dataclass(frozen=True)
class FixedPrice:
    """Fixed replacement unit price."""
    value: Decimal

    @property
    def kind(self) -> str:
        return "fixed"


DiscountSpec = Union[Percentage, FixedPrice]


@dataclass(frozen=True)
class PricingRule:
    """A stored discount rule for exactly one product."""
    rule_id: str
    product_id: str
    discount: DiscountSpec
    valid_from: datetime
    scope: str = GENERAL_SCOPE
    min_quantity: int = 1
    max_quantity: Optional[int] = None
    valid_until: Optional[datetime] = None
    active: bool = True
    name: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_buyer_specific(self) -> bool:
        return self.scope != GENERAL_SCOPE

    def covers_quantity(self, quantity: int) -> bool:
        """Quantity band check (both bounds inclusive)."""
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity

    def is_live(self, as_of: datetime) -> bool:
        """Active and inside its validity window at ``as_of``."""
        if not self.active:
            return False
        as_of = as_utc(as_of)
        if as_utc(self.valid_from) > as_of:
            return False
        return self.valid_until is None or as_utc(self.valid_until) >= as_of

    def deactivated(self) -> "PricingRule":
        return replace(self, active=False)

    def describe(self) -> str:
        if isinstance(self.discount, FixedPrice):
            action = f"fixed price {self.discount.value}"
        else:
            action = f"{self.discount.value}% off"
        band = f"qty>={self.min_quantity}"
        if self.max_quantity is not None:
            band += f", qty<={self.max_quantity}"
        return f"{self.rule_id} [{self.scope}] {band}: {action}"


# ---------------------------------------------------------------------------
# Price resolution
# ---------------------------------------------------------------------------

@dataclass
class ResolvedPrice:
    """Result of resolving a unit price for one product and quantity."""
    product_id: str
    quantity: int
    base_price: Decimal
    final_price: Decimal
    discount_amount: Decimal = Decimal("0.00")
    discount_percentage: Decimal = Decimal("0.00")
    buyer_id: Optional[str] = None
    matched_rules: list[PricingRule] = field(default_factory=list)
    applicable_rules: list[PricingRule] = field(default_factory=list)
    applied_rule: Optional[PricingRule] = None
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        return to_money(self.final_price * self.quantity)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this resolution."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Tax
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaxBreakdown:
    """
    Jurisdiction-aware split of a flat tax.

    component_a/component_b carry the two halves of an intra-jurisdiction
    tax (CGST/SGST style); inter_component carries a cross-jurisdiction tax
    (IGST style). Exactly one of the two forms is non-zero.
    """
    taxable_amount: Decimal
    rate: Decimal
    component_a: Decimal
    component_b: Decimal
    inter_component: Decimal
    total_tax: Decimal

    @property
    def is_intra_jurisdiction(self) -> bool:
        return self.inter_component == 0 and self.total_tax != 0


# ---------------------------------------------------------------------------
# Collaborator records (products, customers, orders)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Product:
    id: str
    base_price: Decimal
    name: str = ""
    sku: str = ""
    currency: str = "INR"


@dataclass(frozen=True)
class Customer:
    id: str
    classification: Optional[str] = None
    jurisdiction: Optional[str] = None
    name: str = ""


@dataclass(frozen=True)
class OrderLineItem:
    description: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    discount: Decimal = Decimal("0")


@dataclass(frozen=True)
class Order:
    id: str
    customer_id: str
    payment_status: str
    subtotal: Decimal
    discount: Decimal = Decimal("0")
    line_items: tuple[OrderLineItem, ...] = ()

    @property
    def is_paid(self) -> bool:
        return str(self.payment_status).strip().lower() == "paid"


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class InvoiceLineItem:
    """A line copied 1:1 from an order line; immutable once invoiced."""
    description: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class Invoice:
    """Financial document assembled from exactly one paid order."""
    id: str
    invoice_number: str
    order_id: str
    customer_id: str
    issue_date: date
    due_date: date
    items: tuple[InvoiceLineItem, ...]
    subtotal: Decimal
    discount_amount: Decimal
    tax: TaxBreakdown
    total_amount: Decimal
    status: InvoiceStatus = InvoiceStatus.DRAFT
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    payment_instructions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status != InvoiceStatus.CANCELLED

    def with_status(self, status: InvoiceStatus, updated_at: datetime) -> "Invoice":
        return replace(self, status=status, updated_at=updated_at)
