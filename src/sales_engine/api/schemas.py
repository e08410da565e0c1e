"""
Pydantic request/response models for the HTTP API.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..engine.models import Invoice, PricingRule, ResolvedPrice, TaxBreakdown


class RuleCreate(BaseModel):
    """Request model for creating a rule."""
    product_id: str
    scope: Optional[str] = None
    min_quantity: int = 1
    max_quantity: Optional[int] = None
    discount_percent: Optional[Decimal] = None
    fixed_price: Optional[Decimal] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    rule_id: Optional[str] = None
    name: str = ""


class RuleResponse(BaseModel):
    """Response model for a rule."""
    rule_id: str
    name: str
    product_id: str
    scope: str
    min_quantity: int
    max_quantity: Optional[int]
    discount_type: str
    discount_value: Decimal
    valid_from: datetime
    valid_until: Optional[datetime]
    active: bool

    @classmethod
    def from_rule(cls, rule: PricingRule) -> "RuleResponse":
        return cls(
            rule_id=rule.rule_id,
            name=rule.name,
            product_id=rule.product_id,
            scope=rule.scope,
            min_quantity=rule.min_quantity,
            max_quantity=rule.max_quantity,
            discount_type=rule.discount.kind,
            discount_value=rule.discount.value,
            valid_from=rule.valid_from,
            valid_until=rule.valid_until,
            active=rule.active,
        )


class ValidationResponse(BaseModel):
    """Response model for validation."""
    valid: bool
    errors: list[str]
    warnings: list[str]


class PriceRequest(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    buyer_id: Optional[str] = None


class PriceResponse(BaseModel):
    product_id: str
    buyer_id: Optional[str]
    quantity: int
    base_price: Decimal
    final_price: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    line_total: Decimal
    applied_rule: Optional[RuleResponse]
    applicable_rules: list[RuleResponse]
    trace: list[str]

    @classmethod
    def from_resolved(cls, resolved: ResolvedPrice) -> "PriceResponse":
        return cls(
            product_id=resolved.product_id,
            buyer_id=resolved.buyer_id,
            quantity=resolved.quantity,
            base_price=resolved.base_price,
            final_price=resolved.final_price,
            discount_amount=resolved.discount_amount,
            discount_percentage=resolved.discount_percentage,
            line_total=resolved.line_total,
            applied_rule=RuleResponse.from_rule(resolved.applied_rule) if resolved.applied_rule else None,
            applicable_rules=[RuleResponse.from_rule(r) for r in resolved.applicable_rules],
            trace=resolved.get_trace_text().splitlines(),
        )


class InvoiceCreate(BaseModel):
    order_id: str
    due_date: Optional[date] = None
    notes: Optional[str] = None
    terms_and_conditions: Optional[str] = None
    payment_instructions: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class TaxResponse(BaseModel):
    taxable_amount: Decimal
    rate: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_tax: Decimal

    @classmethod
    def from_breakdown(cls, tax: TaxBreakdown) -> "TaxResponse":
        return cls(
            taxable_amount=tax.taxable_amount,
            rate=tax.rate,
            cgst=tax.component_a,
            sgst=tax.component_b,
            igst=tax.inter_component,
            total_tax=tax.total_tax,
        )


class InvoiceItemResponse(BaseModel):
    description: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    line_total: Decimal


class InvoiceResponse(BaseModel):
    id: str
    invoice_number: str
    order_id: str
    customer_id: str
    issue_date: date
    due_date: date
    items: list[InvoiceItemResponse]
    subtotal: Decimal
    discount_amount: Decimal
    tax: TaxResponse
    total_amount: Decimal
    status: str
    notes: Optional[str]
    terms_and_conditions: Optional[str]
    payment_instructions: Optional[str]

    @classmethod
    def from_invoice(cls, invoice: Invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            order_id=invoice.order_id,
            customer_id=invoice.customer_id,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            items=[
                InvoiceItemResponse(
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount=item.discount,
                    line_total=item.line_total,
                )
                for item in invoice.items
            ],
            subtotal=invoice.subtotal,
            discount_amount=invoice.discount_amount,
            tax=TaxResponse.from_breakdown(invoice.tax),
            total_amount=invoice.total_amount,
            status=invoice.status.value,
            notes=invoice.notes,
            terms_and_conditions=invoice.terms_and_conditions,
            payment_instructions=invoice.payment_instructions,
        )
